"""Artifact registry with composable filters.

The registry is shared by every stage of one release run. Stages read it
through ``filter(...).list()`` and write to it with ``add`` while other
stages may be doing the same from worker threads. A stage that rebuilds
outputs recorded by an earlier run drops the stale records with
``discard`` before registering the new ones.

Usage:
    linux_binaries = ctx.artifacts.filter(
        and_(by_os("linux"), by_arch_variant(""), by_type(ArtifactType.UPLOADABLE_BINARY))
    ).list()
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable

from relkit.core.pipe import PipeError
from relkit.core.result import Err, Ok, Result

from .model import Artifact, ArtifactType

__all__ = [
    "ArtifactFilter",
    "Artifacts",
    "and_",
    "by_arch",
    "by_arch_variant",
    "by_os",
    "by_type",
    "not_",
    "or_",
]

type ArtifactFilter = Callable[[Artifact], bool]


def by_type(kind: ArtifactType) -> ArtifactFilter:
    return lambda a: a.type == kind


def by_os(os_name: str) -> ArtifactFilter:
    return lambda a: a.os == os_name


def by_arch(arch: str) -> ArtifactFilter:
    return lambda a: a.arch == arch


def by_arch_variant(variant: str) -> ArtifactFilter:
    return lambda a: a.arch_variant == variant


def and_(*filters: ArtifactFilter) -> ArtifactFilter:
    """Match when every filter matches (always true with no filters)."""
    return lambda a: all(f(a) for f in filters)


def or_(*filters: ArtifactFilter) -> ArtifactFilter:
    """Match when any filter matches (always false with no filters)."""
    return lambda a: any(f(a) for f in filters)


def not_(f: ArtifactFilter) -> ArtifactFilter:
    return lambda a: not f(a)


class Artifacts:
    """Thread-safe list of artifacts.

    Artifacts are immutable, so copying the list under the lock is enough
    to give readers a consistent snapshot.
    """

    def __init__(self, items: Iterable[Artifact] = ()) -> None:
        self._lock = threading.Lock()
        self._items: list[Artifact] = list(items)

    def add(self, artifact: Artifact) -> None:
        with self._lock:
            self._items.append(artifact)

    def add_unique(self, artifact: Artifact) -> Result[None, PipeError]:
        """Append unless an artifact with the same key is already registered.

        The key is (type, name, arch, repo_dir). ``repo_dir`` is part of it
        because one apk name is legitimately built once per repository: two
        ``[[alpine]]`` entries that differ only by repository produce the
        same file name for the same architecture.
        """
        with self._lock:
            if any(a.key == artifact.key for a in self._items):
                return Err(
                    PipeError(
                        kind="duplicate_artifact",
                        message=f"{artifact.type} artifact {artifact.name!r} "
                        f"(arch {artifact.arch or 'any'}, repo {artifact.repo_dir or '-'}) "
                        "is already registered",
                    )
                )
            self._items.append(artifact)
        return Ok(None)

    def discard(self, predicate: ArtifactFilter) -> int:
        """Remove every artifact matching predicate; returns how many went."""
        with self._lock:
            kept = [a for a in self._items if not predicate(a)]
            removed = len(self._items) - len(kept)
            self._items = kept
        return removed

    def list(self) -> list[Artifact]:
        """Snapshot of every artifact, in registration order."""
        with self._lock:
            return list(self._items)

    def filter(self, predicate: ArtifactFilter) -> Artifacts:
        """Snapshot of the artifacts matching predicate, as a new registry."""
        return Artifacts(a for a in self.list() if predicate(a))

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)
