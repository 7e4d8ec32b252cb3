"""S3 publish stage.

Uploads registered artifacts to S3 or any S3-compatible store (minio,
garage...). Every ``[[s3]]`` entry is one destination:

    [[s3]]
    bucket = "releases"
    folder = "{{ .ProjectName }}/{{ .Version }}"
    artifacts = ["archive", "checksum", "apk", "apkindex"]
    endpoint = "http://localhost:9000"   # optional, forces path-style URLs

Each matching artifact is uploaded to ``<folder>/<repo_dir>/<name>`` as one
unit of a BoundedTaskGroup. Failed uploads are not retried; every failure is
reported and the operator re-runs the stage.

Cancellation is checked before each upload starts. A ``put_object`` call
already on the wire is not interrupted: boto3 offers no way to abort a
running request from another thread, so it finishes (or times out) and the
remaining uploads of the destination are then reported as cancelled.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import BinaryIO, Protocol

import boto3
from botocore.client import BaseClient
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from relkit.artifact.model import Artifact, ArtifactType
from relkit.artifact.registry import ArtifactFilter, by_type, or_
from relkit.core.config import S3Config
from relkit.core.context import PipelineContext
from relkit.core.pipe import PipeError, Skipped, from_group
from relkit.core.result import Err, Ok, Result
from relkit.core.taskgroup import BoundedTaskGroup
from relkit.output.console import ConsoleProtocol, Style

__all__ = [
    "ARTIFACT_KINDS",
    "Boto3Uploader",
    "ObjectUploader",
    "PublishReport",
    "S3Publisher",
    "Upload",
    "artifact_filter",
    "object_key",
]

ARTIFACT_KINDS: dict[str, ArtifactType] = {
    "archive": ArtifactType.UPLOADABLE_ARCHIVE,
    "binary": ArtifactType.UPLOADABLE_BINARY,
    "nfpm": ArtifactType.LINUX_PACKAGE,
    "checksum": ArtifactType.CHECKSUM,
    "signature": ArtifactType.SIGNATURE,
    "apk": ArtifactType.APK,
    "apkindex": ArtifactType.APK_INDEX,
}


class ObjectUploader(Protocol):
    """One blocking upload per call."""

    def put_object(
        self,
        *,
        bucket: str,
        key: str,
        body: BinaryIO,
        acl: str,
    ) -> Result[None, PipeError]: ...


type UploaderFactory = Callable[[S3Config], Result[ObjectUploader, PipeError]]


class Boto3Uploader:
    """ObjectUploader backed by a boto3 S3 client."""

    def __init__(self, client: BaseClient) -> None:
        self._client = client

    @classmethod
    def create(cls, conf: S3Config) -> Result[ObjectUploader, PipeError]:
        try:
            session = boto3.session.Session(profile_name=conf.profile)
            client_config = BotoConfig(s3={"addressing_style": "path"}) if conf.endpoint else None
            client = session.client(
                "s3",
                region_name=conf.region,
                endpoint_url=conf.endpoint,
                config=client_config,
            )
        except BotoCoreError as e:
            return Err(
                PipeError(
                    kind="configuration",
                    message=f"cannot create S3 client: {e}",
                    hint="check the 'profile' and 'endpoint' settings",
                )
            )
        return Ok(cls(client))

    def put_object(
        self,
        *,
        bucket: str,
        key: str,
        body: BinaryIO,
        acl: str,
    ) -> Result[None, PipeError]:
        try:
            self._client.put_object(Bucket=bucket, Key=key, Body=body, ACL=acl)
        except (BotoCoreError, ClientError) as e:
            return Err(
                PipeError(
                    kind="remote_storage",
                    message=f"upload to s3://{bucket}/{key} failed: {e}",
                )
            )
        return Ok(None)


@dataclass(frozen=True, slots=True)
class Upload:
    bucket: str
    key: str
    artifact: Artifact


@dataclass(frozen=True, slots=True)
class PublishReport:
    uploads: tuple[Upload, ...]

    @property
    def keys(self) -> list[str]:
        return [u.key for u in self.uploads]


def artifact_filter(kinds: tuple[str, ...]) -> Result[ArtifactFilter, PipeError]:
    """Map configured kind names to a registry filter."""
    filters: list[ArtifactFilter] = []
    for name in kinds:
        kind = ARTIFACT_KINDS.get(name)
        if kind is None:
            return Err(
                PipeError(
                    kind="unknown_artifact_type",
                    message=f"unknown artifact type: {name}",
                    hint="expected one of: " + ", ".join(ARTIFACT_KINDS),
                )
            )
        filters.append(by_type(kind))
    return Ok(or_(*filters))


def _check_destination(conf: S3Config) -> Result[ArtifactFilter, PipeError]:
    if not conf.artifacts:
        return Err(
            PipeError(
                kind="configuration",
                message=f"s3 bucket {conf.bucket!r}: no artifacts configured",
                hint="set artifacts = [\"archive\", \"checksum\", ...]",
            )
        )
    return artifact_filter(conf.artifacts)


def object_key(*parts: str) -> str:
    """Join key components with "/", ignoring empty ones."""
    return "/".join(p.strip("/") for p in parts if p.strip("/"))


class S3Publisher:
    def __init__(
        self,
        *,
        console: ConsoleProtocol,
        uploader_factory: UploaderFactory | None = None,
    ) -> None:
        self._console = console
        self._uploader_factory: UploaderFactory = uploader_factory or Boto3Uploader.create

    def publish(self, ctx: PipelineContext) -> Result[PublishReport | Skipped, PipeError]:
        """Publish every configured destination."""
        if not ctx.config.s3:
            return Ok(Skipped("s3 section is not configured"))
        if ctx.skip_publish:
            return Ok(Skipped("publishing is disabled"))

        for conf in ctx.config.s3:
            checked = _check_destination(conf)
            if isinstance(checked, Err):
                return checked

        uploads: list[Upload] = []
        lock = threading.Lock()

        def destination(conf: S3Config) -> Result[None, PipeError]:
            result = self.publish_destination(ctx, conf)
            if isinstance(result, Err):
                return result
            with lock:
                uploads.extend(result.value.uploads)
            return Ok(None)

        group: BoundedTaskGroup[PipeError] = BoundedTaskGroup(ctx.max_parallel)
        for conf in ctx.config.s3:
            group.go(lambda c=conf: destination(c))

        waited = group.wait()
        if isinstance(waited, Err):
            causes = from_group("s3", waited.error).leaves()
            for cause in causes:
                self._console.error(cause.pretty())
            if len(causes) == 1:
                return Err(causes[0])
            return Err(
                PipeError(
                    kind="fanout_failed",
                    message=f"s3: {len(causes)} failures across {len(ctx.config.s3)} destinations",
                    causes=causes,
                )
            )
        return Ok(PublishReport(uploads=tuple(uploads)))

    def publish_destination(
        self,
        ctx: PipelineContext,
        conf: S3Config,
    ) -> Result[PublishReport, PipeError]:
        """Upload the matching artifacts of one destination."""
        checked = _check_destination(conf)
        if isinstance(checked, Err):
            return checked

        resolver = ctx.resolver()
        resolved: list[str] = []
        for template in (conf.bucket, conf.folder, conf.acl):
            applied = resolver.apply(template)
            if isinstance(applied, Err):
                return applied
            resolved.append(applied.value)
        bucket, folder, acl = resolved

        artifacts = ctx.artifacts.filter(checked.value).list()
        if not artifacts:
            self._console.print(f"s3://{bucket}: no matching artifacts", Style.DIM)
            return Ok(PublishReport(uploads=()))

        created = self._uploader_factory(conf)
        if isinstance(created, Err):
            return created
        uploader = created.value

        uploads: list[Upload] = []
        lock = threading.Lock()

        def upload(artifact: Artifact) -> Result[None, PipeError]:
            if ctx.is_cancelled():
                return Err(PipeError(kind="cancelled", message=f"{artifact.name}: cancelled"))
            key = object_key(folder, artifact.repo_dir, artifact.name)
            self._console.print(f"uploading {artifact.name} to s3://{bucket}/{key}", Style.DIM)
            try:
                with artifact.path.open("rb") as body:
                    result = uploader.put_object(bucket=bucket, key=key, body=body, acl=acl)
            except OSError as e:
                return Err(
                    PipeError(kind="filesystem", message=f"cannot read {artifact.path}: {e}")
                )
            if isinstance(result, Err):
                return result
            with lock:
                uploads.append(Upload(bucket=bucket, key=key, artifact=artifact))
            return Ok(None)

        group: BoundedTaskGroup[PipeError] = BoundedTaskGroup(ctx.max_parallel)
        for artifact in artifacts:
            group.go(lambda a=artifact: upload(a))

        waited = group.wait()
        if isinstance(waited, Err):
            return Err(from_group(f"s3://{bucket}", waited.error))
        self._console.success(f"s3://{bucket}: uploaded {len(uploads)} artifacts")
        return Ok(PublishReport(uploads=tuple(uploads)))
