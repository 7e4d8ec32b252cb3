"""Artifact records, registry and manifest."""

from .manifest import load_manifest, save_manifest
from .model import ApkMetadata, Artifact, ArtifactExtra, ArtifactType
from .registry import (
    ArtifactFilter,
    Artifacts,
    and_,
    by_arch,
    by_arch_variant,
    by_os,
    by_type,
    not_,
    or_,
)

__all__ = [
    # model
    "ApkMetadata",
    "Artifact",
    "ArtifactExtra",
    "ArtifactType",
    # registry
    "ArtifactFilter",
    "Artifacts",
    "and_",
    "by_arch",
    "by_arch_variant",
    "by_os",
    "by_type",
    "not_",
    "or_",
    # manifest
    "load_manifest",
    "save_manifest",
]
