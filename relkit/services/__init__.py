"""Pipeline stages.

Stages read and extend the shared artifact registry of a PipelineContext and
delegate all parallel work to BoundedTaskGroup.
"""

from .apk import ApkPackager, ApkReport, ApkState, ArchBuild, alpine_arch
from .pipeline import StageResult, run_apk, run_publish, run_release
from .s3 import PublishReport, S3Publisher

__all__ = [
    # apk
    "ApkPackager",
    "ApkReport",
    "ApkState",
    "ArchBuild",
    "alpine_arch",
    # s3
    "PublishReport",
    "S3Publisher",
    # pipeline
    "StageResult",
    "run_apk",
    "run_publish",
    "run_release",
]
