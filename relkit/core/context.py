"""State shared by every stage of one release run."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from pathlib import Path

from relkit.artifact.registry import Artifacts

from .config import Config
from .template import TemplateResolver, template_fields


@dataclass(slots=True)
class PipelineContext:
    """One release run.

    Attributes:
        config: Parsed release configuration.
        version: Release version without the leading "v" (1.2.3).
        tag: Git tag of the release (v1.2.3).
        env: Variables exposed to templates as .Env.
        artifacts: Registry shared by every stage of this run.
        parallelism: Default fan-out ceiling for every stage.
        skip_publish: Publish stages become no-ops.
        cancelled: Set to ask in-flight units to stop at their next blocking call.
    """

    config: Config
    version: str
    tag: str = ""
    env: dict[str, str] = field(default_factory=dict)
    artifacts: Artifacts = field(default_factory=Artifacts)
    parallelism: int | None = None
    skip_publish: bool = False
    cancelled: threading.Event = field(default_factory=threading.Event)

    @property
    def project_name(self) -> str:
        return self.config.project_name

    @property
    def dist(self) -> Path:
        return Path(self.config.dist)

    @property
    def max_parallel(self) -> int:
        if self.parallelism is not None:
            return self.parallelism
        return self.config.parallelism

    def cancel(self) -> None:
        self.cancelled.set()

    def is_cancelled(self) -> bool:
        return self.cancelled.is_set()

    def resolver(self) -> TemplateResolver:
        return TemplateResolver(
            template_fields(
                project_name=self.project_name,
                version=self.version,
                tag=self.tag,
                env={**self.config.env, **self.env},
            )
        )
