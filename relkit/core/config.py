"""Typed release configuration.

This module maps the relkit.toml structure onto frozen dataclasses and
applies defaults at load time:

    project_name = "app"
    dist = "dist"
    parallelism = 4

    [[alpine]]
    name = "app"
    description = "Example application"
    url = "https://example.com/app"
    license = "MIT"
    maintainer = "Jane Doe <jane@example.com>"
    rel = 1
    check = "./app --version"

    [[s3]]
    bucket = "releases-{{ .Env.STAGE }}"
    folder = "app/{{ .Version }}"
    artifacts = ["archive", "checksum", "apk", "apkindex"]
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from .pipe import PipeError
from .result import Err, Ok, Result
from .structured import StrDict, as_str_dict, get_int, get_list, get_str, get_str_list

__all__ = [
    "AlpineConfig",
    "Config",
    "ConfigError",
    "S3Config",
    "SigningKeys",
    "load_config",
    "load_signing_keys",
    "DEFAULT_DIST",
    "DEFAULT_PARALLELISM",
    "PUBKEY_ENV",
    "PRIVKEY_ENV",
]

DEFAULT_DIST = "dist"
DEFAULT_PARALLELISM = 4

ALPINE_DEFAULT_ROOT = "alpine"
ALPINE_DEFAULT_BRANCH = "edge"
ALPINE_DEFAULT_REPOSITORY = "main"

S3_DEFAULT_REGION = "us-east-1"
S3_DEFAULT_ACL = "private"

PUBKEY_ENV = "PACKAGER_PUBKEY"
PRIVKEY_ENV = "PACKAGER_PRIVKEY"


@dataclass(frozen=True, slots=True)
class ConfigError:
    """Error when config cannot be loaded or parsed."""

    message: str
    path: Path | None = None


@dataclass(frozen=True, slots=True)
class AlpineConfig:
    """One Alpine repository/channel to publish an apk into.

    Attributes:
        name: Package name (pkgname).
        root: Repository root directory.
        branch: Alpine branch (edge, v3.19...).
        repository: Sub-repository (main, community...).
        rel: Package release number (pkgrel).
        check: Shell snippet run by abuild's check(); None disables check.
    """

    name: str
    root: str = ALPINE_DEFAULT_ROOT
    branch: str = ALPINE_DEFAULT_BRANCH
    repository: str = ALPINE_DEFAULT_REPOSITORY
    rel: int = 0
    description: str = ""
    url: str = ""
    license: str = ""
    maintainer: str | None = None
    contributor: str | None = None
    check: str | None = None

    @property
    def repo_path(self) -> str:
        return f"{self.root}/{self.branch}/{self.repository}"


@dataclass(frozen=True, slots=True)
class S3Config:
    """One S3 (or S3-compatible) publish destination.

    ``bucket``, ``folder`` and ``acl`` are templates.
    """

    bucket: str
    artifacts: tuple[str, ...] = ()
    folder: str = ""
    region: str = S3_DEFAULT_REGION
    acl: str = S3_DEFAULT_ACL
    endpoint: str | None = None
    profile: str | None = None


@dataclass(frozen=True, slots=True)
class SigningKeys:
    """abuild signing key pair."""

    public_key: Path
    private_key: Path


@dataclass(frozen=True, slots=True)
class Config:
    """Main configuration container."""

    project_name: str = ""
    dist: str = DEFAULT_DIST
    parallelism: int = DEFAULT_PARALLELISM
    alpine: tuple[AlpineConfig, ...] = ()
    s3: tuple[S3Config, ...] = ()
    env: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> Config:
        """Create Config from a mapping (parsed TOML).

        Raises:
            ValueError: An entry has the wrong shape.
        """
        alpine = tuple(_alpine_from_dict(t) for t in _tables(data, "alpine"))
        s3 = tuple(c for c in (_s3_from_dict(t) for t in _tables(data, "s3")) if c is not None)

        env: dict[str, str] = {}
        for item in get_str_list(data, "env") or []:
            key, sep, value = item.partition("=")
            if not sep:
                raise ValueError(f"env entry must be KEY=VALUE: {item!r}")
            env[key.strip()] = value

        parallelism = get_int(data, "parallelism")
        return cls(
            project_name=get_str(data, "project_name") or "",
            dist=get_str(data, "dist") or DEFAULT_DIST,
            parallelism=parallelism if parallelism is not None else DEFAULT_PARALLELISM,
            alpine=alpine,
            s3=s3,
            env=env,
        )


def _tables(data: Mapping[str, object], key: str) -> list[StrDict]:
    items = get_list(data, key)
    if items is None:
        return []
    tables: list[StrDict] = []
    for item in items:
        table = as_str_dict(item)
        if table is None:
            raise ValueError(f"[[{key}]] entries must be tables")
        tables.append(table)
    return tables


def _alpine_from_dict(table: StrDict) -> AlpineConfig:
    name = get_str(table, "name")
    if name is None:
        raise ValueError("[[alpine]] entry requires 'name'")
    return AlpineConfig(
        name=name,
        root=get_str(table, "root") or ALPINE_DEFAULT_ROOT,
        branch=get_str(table, "branch") or ALPINE_DEFAULT_BRANCH,
        repository=get_str(table, "repository") or ALPINE_DEFAULT_REPOSITORY,
        rel=get_int(table, "rel") or 0,
        description=get_str(table, "description") or "",
        url=get_str(table, "url") or "",
        license=get_str(table, "license") or "",
        maintainer=get_str(table, "maintainer"),
        contributor=get_str(table, "contributor"),
        check=get_str(table, "check"),
    )


def _s3_from_dict(table: StrDict) -> S3Config | None:
    bucket = get_str(table, "bucket")
    if bucket is None:
        return None
    artifacts = get_str_list(table, "artifacts")
    if artifacts is None and "artifacts" in table:
        raise ValueError("[[s3]] 'artifacts' must be a list of strings")
    return S3Config(
        bucket=bucket,
        artifacts=tuple(artifacts or ()),
        folder=get_str(table, "folder") or "",
        region=get_str(table, "region") or S3_DEFAULT_REGION,
        acl=get_str(table, "acl") or S3_DEFAULT_ACL,
        endpoint=get_str(table, "endpoint"),
        profile=get_str(table, "profile"),
    )


def _parse_toml(path: Path) -> Result[StrDict, ConfigError]:
    """Parse a TOML file, handling import and parse errors."""
    import tomllib

    try:
        content = path.read_bytes()
        data_obj: object = tomllib.loads(content.decode("utf-8"))
        data = as_str_dict(data_obj)
        if data is None:
            return Err(ConfigError("Config root must be a TOML table", path=path))
        return Ok(data)
    except FileNotFoundError:
        return Err(ConfigError(f"Config file not found: {path}", path=path))
    except PermissionError:
        return Err(ConfigError(f"Permission denied reading: {path}", path=path))
    except tomllib.TOMLDecodeError as e:
        return Err(ConfigError(f"Invalid TOML syntax: {e}", path=path))
    except UnicodeDecodeError as e:
        return Err(ConfigError(f"Error reading config: {e}", path=path))


def load_config(path: Path) -> Result[Config, ConfigError]:
    """Load and parse configuration from a TOML file.

    Args:
        path: Path to relkit.toml

    Returns:
        Ok(Config) on success, Err(ConfigError) on failure
    """
    result = _parse_toml(path)
    if isinstance(result, Err):
        return result

    try:
        return Ok(Config.from_dict(result.value))
    except (KeyError, TypeError, ValueError) as e:
        return Err(ConfigError(f"Invalid config structure: {e}", path=path))


def load_signing_keys(environ: Mapping[str, str] | None = None) -> Result[SigningKeys, PipeError]:
    """Read the abuild key pair paths from the environment, once.

    Both variables are required; the check happens before any package is
    built so a missing key never surfaces as a per-architecture failure.
    """
    env = os.environ if environ is None else environ
    public_key = (env.get(PUBKEY_ENV) or "").strip()
    private_key = (env.get(PRIVKEY_ENV) or "").strip()
    if not public_key or not private_key:
        return Err(
            PipeError(
                kind="configuration",
                message=f"environment variables {PUBKEY_ENV} and {PRIVKEY_ENV} need to be set",
                hint="point them at the abuild public and private key files",
            )
        )
    return Ok(SigningKeys(public_key=Path(public_key), private_key=Path(private_key)))
