from __future__ import annotations

import os
import stat
from pathlib import Path

import pytest

from relkit.platform.files import atomic_write_text, copy_executable


def test_atomic_write_text_creates_parent_dirs(tmp_path: Path) -> None:
    path = tmp_path / "alpine-app" / "x86_64" / "APKBUILD"
    atomic_write_text(path, "pkgname=app\n")

    assert path.read_text(encoding="utf-8") == "pkgname=app\n"


def test_atomic_write_text_replaces_existing_content(tmp_path: Path) -> None:
    path = tmp_path / "APKBUILD"
    path.write_text("old", encoding="utf-8")

    atomic_write_text(path, "new", encoding="utf-8")

    assert path.read_text(encoding="utf-8") == "new"


def test_atomic_write_text_cleans_temp_file_on_replace_failure(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    path = tmp_path / "artifacts.json"

    def fail_replace(_src: Path, _dst: Path) -> None:
        raise OSError("replace failed")

    monkeypatch.setattr(os, "replace", fail_replace)

    with pytest.raises(OSError, match="replace failed"):
        atomic_write_text(path, "[]", encoding="utf-8")

    leftovers = list(path.parent.glob(f".{path.name}.*.tmp"))
    assert leftovers == []


def test_copy_executable_sets_mode(tmp_path: Path) -> None:
    src = tmp_path / "build" / "app"
    src.parent.mkdir()
    src.write_bytes(b"\x7fELF")
    dest = tmp_path / "alpine-app" / "x86_64" / "x86_64" / "app"

    copy_executable(src, dest)

    assert dest.read_bytes() == b"\x7fELF"
    assert stat.S_IMODE(dest.stat().st_mode) == 0o555


def test_copy_executable_replaces_read_only_copy(tmp_path: Path) -> None:
    src = tmp_path / "app"
    src.write_bytes(b"v2")
    dest = tmp_path / "out" / "app"
    dest.parent.mkdir()
    dest.write_bytes(b"v1")
    dest.chmod(0o555)

    copy_executable(src, dest)

    assert dest.read_bytes() == b"v2"
