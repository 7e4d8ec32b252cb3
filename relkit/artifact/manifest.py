"""JSON artifact manifest.

The build step that runs before relkit leaves a list of artifact records in
``dist/artifacts.json``. relkit seeds its registry from that file and writes
the registry back after each stage, so packages registered by ``relkit apk``
are visible to a later ``relkit publish``.

Record shape:
    {"type": "uploadable_binary", "name": "app", "path": "dist/app_linux_amd64/app",
     "os": "linux", "arch": "amd64", "arch_variant": "", "repo_dir": "",
     "extra": {"alpine_arch": "x86_64"}}
"""

from __future__ import annotations

import json
from pathlib import Path

from relkit.core.pipe import PipeError
from relkit.core.result import Err, Ok, Result
from relkit.core.structured import StrDict, as_obj_list, as_str_dict, get_str, get_table
from relkit.platform.files import atomic_write_text

from .model import ApkMetadata, Artifact, ArtifactExtra, ArtifactType
from .registry import Artifacts

__all__ = ["load_manifest", "save_manifest"]


def _extra_from_dict(data: StrDict | None) -> ArtifactExtra:
    if data is None:
        return None
    alpine_arch = get_str(data, "alpine_arch")
    if alpine_arch is not None:
        return ApkMetadata(alpine_arch=alpine_arch)
    return None


def _extra_to_dict(extra: ArtifactExtra) -> dict[str, str] | None:
    match extra:
        case ApkMetadata(alpine_arch=arch):
            return {"alpine_arch": arch}
        case None:
            return None


def _artifact_from_dict(data: StrDict, index: int) -> Result[Artifact, PipeError]:
    type_name = get_str(data, "type")
    name = get_str(data, "name")
    path = get_str(data, "path")
    if type_name is None or name is None or path is None:
        return Err(
            PipeError(
                kind="configuration",
                message=f"artifact #{index}: 'type', 'name' and 'path' are required",
            )
        )
    try:
        kind = ArtifactType(type_name)
    except ValueError:
        return Err(
            PipeError(
                kind="unknown_artifact_type",
                message=f"artifact #{index}: unknown artifact type: {type_name}",
                hint="known types: " + ", ".join(t.value for t in ArtifactType),
            )
        )
    return Ok(
        Artifact(
            type=kind,
            name=name,
            path=Path(path),
            os=get_str(data, "os") or "",
            arch=get_str(data, "arch") or "",
            arch_variant=get_str(data, "arch_variant") or "",
            repo_dir=get_str(data, "repo_dir") or "",
            extra=_extra_from_dict(get_table(data, "extra")),
        )
    )


def load_manifest(path: Path) -> Result[Artifacts, PipeError]:
    """Load an artifact manifest; a missing file is an empty registry."""
    if not path.exists():
        return Ok(Artifacts())
    try:
        obj: object = json.loads(path.read_text(encoding="utf-8"))
    except OSError as e:
        return Err(PipeError(kind="filesystem", message=f"cannot read {path}: {e}"))
    except json.JSONDecodeError as e:
        return Err(PipeError(kind="configuration", message=f"invalid JSON in {path}: {e}"))

    items = as_obj_list(obj)
    if items is None:
        return Err(PipeError(kind="configuration", message=f"{path}: expected a list"))

    registry = Artifacts()
    for index, item in enumerate(items):
        data = as_str_dict(item)
        if data is None:
            return Err(
                PipeError(kind="configuration", message=f"artifact #{index}: expected an object")
            )
        parsed = _artifact_from_dict(data, index)
        if isinstance(parsed, Err):
            return parsed
        registry.add(parsed.value)
    return Ok(registry)


def save_manifest(path: Path, artifacts: Artifacts) -> Result[None, PipeError]:
    records = [
        {
            "type": a.type.value,
            "name": a.name,
            "path": str(a.path),
            "os": a.os,
            "arch": a.arch,
            "arch_variant": a.arch_variant,
            "repo_dir": a.repo_dir,
            "extra": _extra_to_dict(a.extra),
        }
        for a in artifacts.list()
    ]
    try:
        atomic_write_text(path, json.dumps(records, indent=2) + "\n")
    except OSError as e:
        return Err(PipeError(kind="filesystem", message=f"cannot write {path}: {e}"))
    return Ok(None)
