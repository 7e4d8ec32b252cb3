"""Tests for relkit.services.s3 module."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import boto3
import pytest
from botocore.client import BaseClient
from botocore.stub import ANY, Stubber

from relkit.artifact.model import Artifact, ArtifactType
from relkit.artifact.registry import Artifacts
from relkit.core.config import Config, S3Config
from relkit.core.context import PipelineContext
from relkit.core.pipe import PipeError, Skipped
from relkit.core.result import Err, Ok, Result
from relkit.output.console import MockConsole
from relkit.services.s3 import (
    Boto3Uploader,
    PublishReport,
    S3Publisher,
    artifact_filter,
    object_key,
)

from ._fakes import FakeFactory, FakeUploader, Put


def _artifact(tmp_path: Path, kind: ArtifactType, name: str, *, repo_dir: str = "") -> Artifact:
    path = tmp_path / "dist" / (repo_dir or ".") / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(name.encode())
    return Artifact(type=kind, name=name, path=path, os="linux", repo_dir=repo_dir)


def _release(tmp_path: Path) -> list[Artifact]:
    return [
        _artifact(tmp_path, ArtifactType.UPLOADABLE_ARCHIVE, "app_linux_amd64"),
        _artifact(tmp_path, ArtifactType.CHECKSUM, "checksums.txt"),
        _artifact(
            tmp_path,
            ArtifactType.APK,
            "app-1.2.3-r0.apk",
            repo_dir="alpine/edge/main/x86_64",
        ),
    ]


def _publisher(factory: FakeFactory) -> S3Publisher:
    return S3Publisher(console=MockConsole(), uploader_factory=factory)


def _ctx(
    tmp_path: Path,
    destinations: tuple[S3Config, ...],
    artifacts: list[Artifact] | None = None,
    **kwargs: object,
) -> PipelineContext:
    config = Config(project_name="app", dist=str(tmp_path / "dist"), s3=destinations)
    return PipelineContext(
        config=config,
        version="1.2.3",
        tag="v1.2.3",
        artifacts=Artifacts(_release(tmp_path) if artifacts is None else artifacts),
        **kwargs,  # type: ignore[arg-type]
    )


class TestObjectKey:
    def test_skips_empty_parts(self) -> None:
        key = object_key("releases/1.2.3", "", "app_linux_amd64")
        assert key == "releases/1.2.3/app_linux_amd64"

    def test_strips_slashes(self) -> None:
        assert object_key("/releases/", "alpine/edge/main/x86/", "a.apk") == (
            "releases/alpine/edge/main/x86/a.apk"
        )

    def test_no_folder(self) -> None:
        assert object_key("", "", "checksums.txt") == "checksums.txt"


class TestArtifactFilter:
    def test_known_kinds(self) -> None:
        result = artifact_filter(("apk", "apkindex"))
        assert isinstance(result, Ok)

    def test_unknown_kind(self) -> None:
        result = artifact_filter(("archive", "deb"))

        assert isinstance(result, Err)
        assert result.error.kind == "unknown_artifact_type"
        assert "deb" in result.error.message


class TestPublishDestination:
    def test_uploads_matching_artifacts(self, tmp_path: Path) -> None:
        factory = FakeFactory()
        conf = S3Config(bucket="releases", folder="releases/{{.Version}}", artifacts=("archive",))
        ctx = _ctx(tmp_path, (conf,))

        result = _publisher(factory).publish_destination(ctx, conf)

        assert isinstance(result, Ok)
        assert result.value.keys == ["releases/1.2.3/app_linux_amd64"]
        (put,) = factory.uploader.puts
        assert put == Put(
            bucket="releases",
            key="releases/1.2.3/app_linux_amd64",
            body=b"app_linux_amd64",
            acl="private",
        )

    def test_repo_dir_is_part_of_key(self, tmp_path: Path) -> None:
        factory = FakeFactory()
        conf = S3Config(
            bucket="pkgs", folder="{{ .ProjectName }}", artifacts=("apk",), acl="public-read"
        )
        ctx = _ctx(tmp_path, (conf,))

        result = _publisher(factory).publish_destination(ctx, conf)

        assert isinstance(result, Ok)
        assert result.value.keys == ["app/alpine/edge/main/x86_64/app-1.2.3-r0.apk"]
        assert factory.uploader.puts[0].acl == "public-read"

    def test_zero_matches_uploads_nothing(self, tmp_path: Path) -> None:
        factory = FakeFactory()
        conf = S3Config(bucket="releases", artifacts=("signature",))
        ctx = _ctx(tmp_path, (conf,))

        result = _publisher(factory).publish_destination(ctx, conf)

        assert result == Ok(PublishReport(uploads=()))
        assert factory.created == []

    def test_unknown_kind_uploads_nothing(self, tmp_path: Path) -> None:
        factory = FakeFactory()
        conf = S3Config(bucket="releases", artifacts=("deb",))
        ctx = _ctx(tmp_path, (conf,))

        result = _publisher(factory).publish_destination(ctx, conf)

        assert isinstance(result, Err)
        assert result.error.kind == "unknown_artifact_type"
        assert factory.created == []

    def test_no_artifacts_configured(self, tmp_path: Path) -> None:
        conf = S3Config(bucket="releases")
        ctx = _ctx(tmp_path, (conf,))

        result = _publisher(FakeFactory()).publish_destination(ctx, conf)

        assert isinstance(result, Err)
        assert result.error.kind == "configuration"

    def test_template_failure_aborts_destination(self, tmp_path: Path) -> None:
        factory = FakeFactory()
        conf = S3Config(bucket="releases", folder="{{ .Nope }}", artifacts=("archive",))
        ctx = _ctx(tmp_path, (conf,))

        result = _publisher(factory).publish_destination(ctx, conf)

        assert isinstance(result, Err)
        assert result.error.kind == "template"
        assert factory.uploader.puts == []

    def test_bucket_from_env(self, tmp_path: Path) -> None:
        factory = FakeFactory()
        conf = S3Config(bucket="releases-{{ .Env.STAGE }}", artifacts=("checksum",))
        ctx = _ctx(tmp_path, (conf,), env={"STAGE": "prod"})

        result = _publisher(factory).publish_destination(ctx, conf)

        assert isinstance(result, Ok)
        assert factory.uploader.puts[0].bucket == "releases-prod"

    def test_partial_failures_are_all_reported(self, tmp_path: Path) -> None:
        uploader = FakeUploader(fail_keys={"app_linux_amd64", "checksums.txt"})
        factory = FakeFactory(uploader=uploader)
        conf = S3Config(bucket="releases", artifacts=("archive", "checksum", "apk"))
        ctx = _ctx(tmp_path, (conf,))

        result = _publisher(factory).publish_destination(ctx, conf)

        assert isinstance(result, Err)
        assert result.error.kind == "fanout_failed"
        assert [c.message for c in result.error.causes] == [
            "upload of app_linux_amd64 failed",
            "upload of checksums.txt failed",
        ]
        # The third upload still ran.
        assert [p.key for p in uploader.puts] == ["alpine/edge/main/x86_64/app-1.2.3-r0.apk"]

    def test_missing_file_is_filesystem_error(self, tmp_path: Path) -> None:
        conf = S3Config(bucket="releases", artifacts=("archive",))
        missing = Artifact(
            type=ArtifactType.UPLOADABLE_ARCHIVE,
            name="gone.tar.gz",
            path=tmp_path / "gone.tar.gz",
        )
        ctx = _ctx(tmp_path, (conf,), artifacts=[missing])

        result = _publisher(FakeFactory()).publish_destination(ctx, conf)

        assert isinstance(result, Err)
        (cause,) = result.error.causes
        assert cause.kind == "filesystem"

    def test_cancelled_uploads_nothing(self, tmp_path: Path) -> None:
        factory = FakeFactory()
        conf = S3Config(bucket="releases", artifacts=("archive", "checksum"))
        ctx = _ctx(tmp_path, (conf,))
        ctx.cancel()

        result = _publisher(factory).publish_destination(ctx, conf)

        assert isinstance(result, Err)
        assert {c.kind for c in result.error.causes} == {"cancelled"}
        assert factory.uploader.puts == []

    def test_cancel_during_upload_stops_the_rest(self, tmp_path: Path) -> None:
        conf = S3Config(bucket="releases", artifacts=("archive", "checksum", "apk"))
        ctx = _ctx(tmp_path, (conf,), parallelism=1)

        class CancellingUploader(FakeUploader):
            def put_object(self, **kwargs: Any) -> Result[None, PipeError]:
                result = super().put_object(**kwargs)
                ctx.cancel()
                return result

        uploader = CancellingUploader()
        factory = FakeFactory(uploader=uploader)

        result = _publisher(factory).publish_destination(ctx, conf)

        # The upload in flight completes; the ones not yet started do not.
        assert [p.key for p in uploader.puts] == ["app_linux_amd64"]
        assert isinstance(result, Err)
        assert [c.kind for c in result.error.causes] == ["cancelled", "cancelled"]


class TestPublish:
    def test_not_configured_is_skipped(self, tmp_path: Path) -> None:
        result = S3Publisher(console=MockConsole(), uploader_factory=FakeFactory()).publish(
            _ctx(tmp_path, ())
        )

        assert isinstance(result, Ok)
        assert isinstance(result.value, Skipped)

    def test_skip_publish(self, tmp_path: Path) -> None:
        factory = FakeFactory()
        conf = S3Config(bucket="releases", artifacts=("archive",))
        ctx = _ctx(tmp_path, (conf,), skip_publish=True)

        result = S3Publisher(console=MockConsole(), uploader_factory=factory).publish(ctx)

        assert result == Ok(Skipped("publishing is disabled"))
        assert factory.created == []

    def test_every_destination(self, tmp_path: Path) -> None:
        factory = FakeFactory()
        destinations = (
            S3Config(bucket="archives", artifacts=("archive", "checksum")),
            S3Config(bucket="packages", artifacts=("apk",)),
        )
        ctx = _ctx(tmp_path, destinations)

        result = S3Publisher(console=MockConsole(), uploader_factory=factory).publish(ctx)

        assert isinstance(result, Ok)
        report = result.value
        assert isinstance(report, PublishReport)
        assert sorted(report.keys) == [
            "alpine/edge/main/x86_64/app-1.2.3-r0.apk",
            "app_linux_amd64",
            "checksums.txt",
        ]
        assert {(p.bucket, p.key) for p in factory.uploader.puts} == {
            ("archives", "app_linux_amd64"),
            ("archives", "checksums.txt"),
            ("packages", "alpine/edge/main/x86_64/app-1.2.3-r0.apk"),
        }

    def test_invalid_destination_stops_before_any_upload(self, tmp_path: Path) -> None:
        factory = FakeFactory()
        destinations = (
            S3Config(bucket="archives", artifacts=("archive",)),
            S3Config(bucket="packages", artifacts=("deb",)),
        )
        ctx = _ctx(tmp_path, destinations)

        result = S3Publisher(console=MockConsole(), uploader_factory=factory).publish(ctx)

        assert isinstance(result, Err)
        assert result.error.kind == "unknown_artifact_type"
        assert factory.uploader.puts == []

    def test_single_failure_is_returned_as_is(self, tmp_path: Path) -> None:
        console = MockConsole()
        factory = FakeFactory(uploader=FakeUploader(fail_keys={"checksums.txt"}))
        ctx = _ctx(tmp_path, (S3Config(bucket="archives", artifacts=("archive", "checksum")),))

        result = S3Publisher(console=console, uploader_factory=factory).publish(ctx)

        assert isinstance(result, Err)
        assert result.error.kind == "remote_storage"
        assert console.has_error()

    def test_failures_across_destinations_are_flattened(self, tmp_path: Path) -> None:
        failing = {"checksums.txt", "alpine/edge/main/x86_64/app-1.2.3-r0.apk"}
        factory = FakeFactory(uploader=FakeUploader(fail_keys=failing))
        destinations = (
            S3Config(bucket="archives", artifacts=("archive", "checksum")),
            S3Config(bucket="packages", artifacts=("apk",)),
        )
        ctx = _ctx(tmp_path, destinations)

        result = S3Publisher(console=MockConsole(), uploader_factory=factory).publish(ctx)

        assert isinstance(result, Err)
        assert result.error.kind == "fanout_failed"
        assert {c.kind for c in result.error.causes} == {"remote_storage"}
        assert len(result.error.causes) == 2


class TestBoto3Uploader:
    @pytest.fixture
    def client(self) -> BaseClient:
        return boto3.session.Session().client(
            "s3",
            region_name="us-east-1",
            aws_access_key_id="testing",
            aws_secret_access_key="testing",
        )

    def test_put_object(self, client: BaseClient, tmp_path: Path) -> None:
        path = tmp_path / "checksums.txt"
        path.write_bytes(b"abc")
        with Stubber(client) as stubber:
            stubber.add_response(
                "put_object",
                {},
                {"Bucket": "releases", "Key": "1.2.3/checksums.txt", "Body": ANY, "ACL": "private"},
            )
            with path.open("rb") as body:
                result = Boto3Uploader(client).put_object(
                    bucket="releases", key="1.2.3/checksums.txt", body=body, acl="private"
                )
            stubber.assert_no_pending_responses()

        assert result == Ok(None)

    def test_client_error_is_remote_storage(self, client: BaseClient, tmp_path: Path) -> None:
        path = tmp_path / "checksums.txt"
        path.write_bytes(b"abc")
        with Stubber(client) as stubber:
            stubber.add_client_error("put_object", service_error_code="AccessDenied")
            with path.open("rb") as body:
                result = Boto3Uploader(client).put_object(
                    bucket="releases", key="checksums.txt", body=body, acl="private"
                )

        assert isinstance(result, Err)
        assert result.error.kind == "remote_storage"
        assert "s3://releases/checksums.txt" in result.error.message

    def test_create_with_endpoint_uses_path_style(self) -> None:
        conf = S3Config(bucket="releases", endpoint="http://localhost:9000", region="eu-west-1")

        result = Boto3Uploader.create(conf)

        assert isinstance(result, Ok)
        uploader = result.value
        assert isinstance(uploader, Boto3Uploader)
        client = uploader._client
        assert client.meta.endpoint_url == "http://localhost:9000"
        assert client.meta.region_name == "eu-west-1"
        assert client.meta.config.s3["addressing_style"] == "path"
