"""Alpine apk packaging stage.

For every ``[[alpine]]`` entry and every linux architecture the release was
built for, this stage produces a signed apk repository:

    PENDING -> DESCRIPTOR_WRITTEN -> NATIVE_BUILT -> SIGNED -> REGISTERED
                      \\                 \\             \\
                       +---------------- FAILED(reason) +

1. Render APKBUILD into the (package, arch) working directory.
2. Copy the arch's binaries next to it and run ``abuild`` with CBUILD set to
   the Alpine architecture name.
3. Sign the generated APKINDEX.tar.gz with ``abuild-sign``.
4. Register the apk and the index as artifacts so publish stages can upload
   them.

Each (package, arch) pair has its own state machine and working directory
and runs as one unit of a BoundedTaskGroup. A failed architecture never
stops the others; the stage reports every failed architecture together.
"""

from __future__ import annotations

import os
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Protocol

from relkit.artifact.model import ApkMetadata, Artifact, ArtifactType
from relkit.artifact.registry import and_, by_arch_variant, by_os, by_type
from relkit.core.config import PRIVKEY_ENV, PUBKEY_ENV, AlpineConfig, SigningKeys
from relkit.core.context import PipelineContext
from relkit.core.pipe import PipeError, Skipped
from relkit.core.result import Err, Ok, Result
from relkit.core.taskgroup import BoundedTaskGroup, UnitCrash
from relkit.output.console import ConsoleProtocol, Style
from relkit.platform.files import atomic_write_text, copy_executable
from relkit.platform.process import ProcessError
from relkit.platform.process import run as run_process
from relkit.platform.process import which

from .apk_template import render_apkbuild

__all__ = [
    "ABUILD",
    "ABUILD_SIGN",
    "ApkPackager",
    "ApkReport",
    "ApkState",
    "ArchBuild",
    "SubprocessRunner",
    "ToolRunner",
    "alpine_arch",
]

ABUILD = "abuild"
ABUILD_SIGN = "abuild-sign"

APKBUILD_FILE_NAME = "APKBUILD"
APKINDEX_FILE_NAME = "APKINDEX.tar.gz"
ABUILD_OUTPUT_DIR = "dist"

_ALPINE_ARCHES: dict[str, str] = {
    "386": "x86",
    "amd64": "x86_64",
}


def alpine_arch(arch: str) -> str:
    """Translate a canonical architecture name to abuild's name."""
    return _ALPINE_ARCHES.get(arch, arch)


class ToolRunner(Protocol):
    """Seam for the external packaging tools."""

    def which(self, name: str) -> str | None: ...

    def run(
        self,
        cmd: list[str],
        *,
        cwd: Path,
        env: dict[str, str],
        cancel: threading.Event,
    ) -> Result[str, ProcessError]: ...


class SubprocessRunner:
    """ToolRunner backed by real subprocesses."""

    def which(self, name: str) -> str | None:
        return which(name)

    def run(
        self,
        cmd: list[str],
        *,
        cwd: Path,
        env: dict[str, str],
        cancel: threading.Event,
    ) -> Result[str, ProcessError]:
        return run_process(cmd, cwd=cwd, env=env, cancel=cancel)


class ApkState(Enum):
    PENDING = "pending"
    DESCRIPTOR_WRITTEN = "descriptor_written"
    NATIVE_BUILT = "native_built"
    SIGNED = "signed"
    REGISTERED = "registered"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ApkState.REGISTERED, ApkState.FAILED)


@dataclass(slots=True)
class ArchBuild:
    """State machine of one (package, architecture) pair.

    Attributes:
        spec: Package configuration.
        arch: Canonical architecture (amd64, 386, arm64...).
        version: Release version.
        binaries: Binary artifacts built for this architecture.
        package_binaries: File names installed by the APKBUILD.
        workdir: Working directory owned by this pair only.
        state: Current state.
        failed_at: State the machine was in when it failed.
        error: Failure reason once FAILED.
    """

    spec: AlpineConfig
    arch: str
    version: str
    binaries: tuple[Artifact, ...]
    package_binaries: tuple[str, ...]
    workdir: Path
    state: ApkState = ApkState.PENDING
    failed_at: ApkState | None = None
    error: PipeError | None = None
    visited: list[ApkState] = field(default_factory=lambda: [ApkState.PENDING])

    @property
    def alpine_arch(self) -> str:
        return alpine_arch(self.arch)

    @property
    def label(self) -> str:
        return f"{self.spec.name}/{self.alpine_arch}"

    @property
    def output_dir(self) -> Path:
        return self.workdir / ABUILD_OUTPUT_DIR / self.alpine_arch

    @property
    def apk_name(self) -> str:
        return f"{self.spec.name}-{self.version}-r{self.spec.rel}.apk"

    @property
    def repo_dir(self) -> str:
        return f"{self.spec.repo_path}/{self.alpine_arch}"

    def advance(self, state: ApkState) -> None:
        self.state = state
        self.visited.append(state)

    def fail(self, error: PipeError) -> None:
        if self.state.is_terminal:
            return
        self.failed_at = self.state
        self.error = error
        self.advance(ApkState.FAILED)


@dataclass(frozen=True, slots=True)
class ApkReport:
    builds: tuple[ArchBuild, ...]

    @property
    def registered(self) -> list[ArchBuild]:
        return [b for b in self.builds if b.state == ApkState.REGISTERED]

    @property
    def failed(self) -> list[ArchBuild]:
        return [b for b in self.builds if b.state == ApkState.FAILED]


type _Step = Callable[[PipelineContext, ArchBuild], Result[None, PipeError]]


class ApkPackager:
    """Build, sign and register apk packages.

    The signing keys are validated by ``load_signing_keys`` before the
    packager exists, so a missing key can never start a build.
    """

    def __init__(
        self,
        keys: SigningKeys,
        *,
        console: ConsoleProtocol,
        runner: ToolRunner | None = None,
    ) -> None:
        self._keys = keys
        self._console = console
        self._runner: ToolRunner = runner or SubprocessRunner()
        self._transitions: dict[ApkState, tuple[_Step, ApkState]] = {
            ApkState.PENDING: (self._write_descriptor, ApkState.DESCRIPTOR_WRITTEN),
            ApkState.DESCRIPTOR_WRITTEN: (self._build_native, ApkState.NATIVE_BUILT),
            ApkState.NATIVE_BUILT: (self._sign_index, ApkState.SIGNED),
            ApkState.SIGNED: (self._register, ApkState.REGISTERED),
        }

    def run(self, ctx: PipelineContext) -> Result[ApkReport | Skipped, PipeError]:
        if not ctx.config.alpine:
            return Ok(Skipped("alpine section is not configured"))

        for tool in (ABUILD, ABUILD_SIGN):
            if self._runner.which(tool) is None:
                return Err(
                    PipeError(
                        kind="configuration",
                        message=f"{tool} not found in PATH",
                        hint="install alpine-sdk (apk add alpine-sdk)",
                    )
                )

        builds = self.plan(ctx)
        if not builds:
            self._console.warning("no linux binaries to package")
            return Ok(ApkReport(builds=()))

        self.forget_previous(ctx, builds)
        self.build_all(ctx, builds)

        failed = [b for b in builds if b.state == ApkState.FAILED]
        for build in failed:
            error = build.error
            self._console.error(f"{build.label}: {error.pretty() if error else 'failed'}")
        if failed:
            return Err(
                PipeError(
                    kind="fanout_failed",
                    message=f"apk: {len(failed)} of {len(builds)} builds failed",
                    causes=tuple(b.error for b in failed if b.error is not None),
                )
            )
        return Ok(ApkReport(builds=tuple(builds)))

    def plan(self, ctx: PipelineContext) -> list[ArchBuild]:
        """One ArchBuild per (package, linux architecture) pair."""
        binaries = ctx.artifacts.filter(
            and_(
                by_type(ArtifactType.UPLOADABLE_BINARY),
                by_os("linux"),
                by_arch_variant(""),
            )
        ).list()
        self._console.print(f"will package {len(binaries)} binaries", Style.DIM)

        per_arch: dict[str, list[Artifact]] = {}
        for artifact in binaries:
            per_arch.setdefault(artifact.arch, []).append(artifact)
        package_binaries = tuple(sorted({a.path.name for a in binaries}))

        builds: list[ArchBuild] = []
        for spec in ctx.config.alpine:
            spec_dir = ctx.dist / f"alpine-{spec.name}"
            for arch, artifacts in per_arch.items():
                builds.append(
                    ArchBuild(
                        spec=spec,
                        arch=arch,
                        version=ctx.version,
                        binaries=tuple(artifacts),
                        package_binaries=package_binaries,
                        workdir=spec_dir / alpine_arch(arch),
                    )
                )
        return builds

    def forget_previous(self, ctx: PipelineContext, builds: list[ArchBuild]) -> None:
        """Drop apk records a previous run left for the pairs about to be rebuilt.

        The registry may be seeded from a saved manifest. Duplicates
        registered within one run are still rejected by ``add_unique``.
        """
        planned = {(b.arch, b.repo_dir) for b in builds}

        def stale(a: Artifact) -> bool:
            return (
                a.type in (ArtifactType.APK, ArtifactType.APK_INDEX)
                and (a.arch, a.repo_dir) in planned
            )

        removed = ctx.artifacts.discard(stale)
        if removed:
            self._console.print(f"replacing {removed} apk records from a previous run", Style.DIM)

    def build_all(self, ctx: PipelineContext, builds: list[ArchBuild]) -> None:
        """Drive every state machine to a terminal state."""
        group: BoundedTaskGroup[PipeError] = BoundedTaskGroup(ctx.max_parallel)
        for build in builds:
            group.go(lambda b=build: self._drive(ctx, b))

        waited = group.wait()
        if isinstance(waited, Ok):
            return
        for failure in waited.error.failures:
            if isinstance(failure.error, UnitCrash):
                builds[failure.index].fail(
                    PipeError(
                        kind="crashed",
                        message=f"{builds[failure.index].label}: {failure.error}",
                    )
                )

    def _drive(self, ctx: PipelineContext, build: ArchBuild) -> Result[None, PipeError]:
        while not build.state.is_terminal:
            self.step(ctx, build)
        if build.error is not None:
            return Err(build.error)
        return Ok(None)

    def step(self, ctx: PipelineContext, build: ArchBuild) -> None:
        """Apply one transition to a non-terminal build."""
        if ctx.is_cancelled():
            build.fail(PipeError(kind="cancelled", message=f"{build.label}: cancelled"))
            return
        handler, target = self._transitions[build.state]
        result = handler(ctx, build)
        if isinstance(result, Err):
            build.fail(result.error)
            return
        build.advance(target)

    # Transitions

    def _write_descriptor(self, ctx: PipelineContext, build: ArchBuild) -> Result[None, PipeError]:
        rendered = render_apkbuild(
            build.spec,
            version=build.version,
            binaries=build.package_binaries,
        )
        if isinstance(rendered, Err):
            return rendered

        path = build.workdir / APKBUILD_FILE_NAME
        self._console.info(f"writing {path}")
        try:
            atomic_write_text(path, rendered.value)
        except OSError as e:
            return Err(
                PipeError(kind="filesystem", message=f"{build.label}: cannot write {path}: {e}")
            )
        return Ok(None)

    def _build_native(self, ctx: PipelineContext, build: ArchBuild) -> Result[None, PipeError]:
        bin_dir = build.workdir / build.alpine_arch
        for artifact in build.binaries:
            dest = bin_dir / artifact.path.name
            try:
                copy_executable(artifact.path, dest)
            except OSError as e:
                return Err(
                    PipeError(
                        kind="filesystem",
                        message=f"{build.label}: cannot copy {artifact.path} to {dest}: {e}",
                    )
                )

        env = self._tool_env()
        env["CBUILD"] = build.alpine_arch
        cmd = [ABUILD, "-P", str(build.workdir.resolve()), "-r"]
        self._console.print(f"{build.label}: {' '.join(cmd)}", Style.DIM)
        return self._run_tool(ctx, build, cmd, env)

    def _sign_index(self, ctx: PipelineContext, build: ArchBuild) -> Result[None, PipeError]:
        index = (build.output_dir / APKINDEX_FILE_NAME).resolve()
        cmd = [
            ABUILD_SIGN,
            "-k",
            str(self._keys.private_key),
            "-p",
            str(self._keys.public_key.parent),
            str(index),
        ]
        self._console.print(f"{build.label}: signing {index.name}", Style.DIM)
        return self._run_tool(ctx, build, cmd, self._tool_env())

    def _register(self, ctx: PipelineContext, build: ArchBuild) -> Result[None, PipeError]:
        meta = ApkMetadata(alpine_arch=build.alpine_arch)
        apk = Artifact(
            type=ArtifactType.APK,
            name=build.apk_name,
            path=build.output_dir / build.apk_name,
            os="linux",
            arch=build.arch,
            repo_dir=build.repo_dir,
            extra=meta,
        )
        index = Artifact(
            type=ArtifactType.APK_INDEX,
            name=APKINDEX_FILE_NAME,
            path=build.output_dir / APKINDEX_FILE_NAME,
            os="linux",
            arch=build.arch,
            repo_dir=build.repo_dir,
            extra=meta,
        )
        for artifact in (apk, index):
            added = ctx.artifacts.add_unique(artifact)
            if isinstance(added, Err):
                return added
        self._console.success(f"{build.label}: {build.apk_name} -> {build.repo_dir}")
        return Ok(None)

    # Helpers

    def _tool_env(self) -> dict[str, str]:
        env = dict(os.environ)
        env[PUBKEY_ENV] = str(self._keys.public_key)
        env[PRIVKEY_ENV] = str(self._keys.private_key)
        return env

    def _run_tool(
        self,
        ctx: PipelineContext,
        build: ArchBuild,
        cmd: list[str],
        env: dict[str, str],
    ) -> Result[None, PipeError]:
        result = self._runner.run(cmd, cwd=build.workdir, env=env, cancel=ctx.cancelled)
        if isinstance(result, Ok):
            return Ok(None)
        e = result.error
        if e.cancelled:
            return Err(PipeError(kind="cancelled", message=f"{build.label}: {cmd[0]} cancelled"))
        return Err(
            PipeError(
                kind="external_tool",
                message=f"{build.label}: {e}",
                exit_code=e.returncode,
                output=e.output,
            )
        )
