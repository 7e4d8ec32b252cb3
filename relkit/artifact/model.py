"""Artifact records produced and consumed by the pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path

__all__ = [
    "ApkMetadata",
    "Artifact",
    "ArtifactExtra",
    "ArtifactType",
]


class ArtifactType(Enum):
    """Kinds of artifact a release can contain.

    Values are the stable names used in the artifact manifest.
    """

    BINARY = "binary"
    UPLOADABLE_BINARY = "uploadable_binary"
    UPLOADABLE_ARCHIVE = "archive"
    LINUX_PACKAGE = "linux_package"
    CHECKSUM = "checksum"
    SIGNATURE = "signature"
    APK = "apk"
    APK_INDEX = "apk_index"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True, slots=True)
class ApkMetadata:
    """Metadata attached to artifacts produced by the apk stage.

    Attributes:
        alpine_arch: Architecture name as understood by abuild (e.g. x86_64).
    """

    alpine_arch: str


# Closed set of metadata records; extend the union, not a free-form dict.
type ArtifactExtra = ApkMetadata | None


@dataclass(frozen=True, slots=True)
class Artifact:
    """One produced file.

    Attributes:
        type: Artifact kind.
        name: Display / file name, also the last component of remote keys.
        path: Local path of the artifact's bytes.
        os: Target OS ("" = not platform specific).
        arch: Target architecture, canonical naming (amd64, 386, arm64...).
        arch_variant: Architecture revision, e.g. ARM "6" ("" = none).
        repo_dir: Destination subdirectory used by publishers.
        extra: Stage specific metadata.
    """

    type: ArtifactType
    name: str
    path: Path
    os: str = ""
    arch: str = ""
    arch_variant: str = ""
    repo_dir: str = ""
    extra: ArtifactExtra = None

    @property
    def key(self) -> tuple[ArtifactType, str, str, str]:
        """Identity used to reject duplicate registrations."""
        return (self.type, self.name, self.arch, self.repo_dir)
