"""Core types: results, errors, configuration and the task group.

``relkit.core.context`` is not re-exported here: it depends on the artifact
registry, which itself depends on this package.
"""

from .config import AlpineConfig, Config, ConfigError, S3Config, SigningKeys, load_config
from .errors import ErrorCode
from .pipe import PipeError, Skipped
from .result import Err, Ok, Result, is_err, is_ok
from .taskgroup import BoundedTaskGroup, TaskGroupError, UnitCrash, UnitFailure
from .template import TemplateResolver

__all__ = [
    # config
    "AlpineConfig",
    "Config",
    "ConfigError",
    "S3Config",
    "SigningKeys",
    "load_config",
    # errors
    "ErrorCode",
    "PipeError",
    "Skipped",
    # result
    "Err",
    "Ok",
    "Result",
    "is_err",
    "is_ok",
    # taskgroup
    "BoundedTaskGroup",
    "TaskGroupError",
    "UnitCrash",
    "UnitFailure",
    # template
    "TemplateResolver",
]
