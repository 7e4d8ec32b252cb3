"""Release-context templating for configuration strings.

Config values such as an S3 bucket or folder may reference the release being
published with ``{{ .Field }}`` placeholders:

    folder = "releases/{{ .Version }}"
    bucket = "{{ .Env.RELEASE_BUCKET }}"

Placeholders are rendered with Jinja2 after dropping the leading dot, under
StrictUndefined so that a misspelled field fails the whole resolution instead
of silently rendering an empty path.
"""

from __future__ import annotations

import re
from collections.abc import Mapping

from jinja2 import Environment, StrictUndefined, TemplateError

from .pipe import PipeError
from .result import Err, Ok, Result

__all__ = ["TemplateResolver", "template_fields"]

# "{{ .Version }}" / "{{- .Env.X }}" -> "{{ Version }}" / "{{- Env.X }}"
_DOT_FIELD_RE = re.compile(r"(\{\{-?\s*)\.(?=[A-Za-z_])")

_ENV = Environment(undefined=StrictUndefined, autoescape=False, keep_trailing_newline=True)


def template_fields(
    *,
    project_name: str,
    version: str,
    tag: str,
    env: Mapping[str, str],
) -> dict[str, object]:
    """Build the field mapping exposed to templates."""
    return {
        "ProjectName": project_name,
        "Version": version,
        "Tag": tag,
        "Env": dict(env),
    }


class TemplateResolver:
    """Resolve ``{{ .Field }}`` placeholders against one release."""

    def __init__(self, fields: Mapping[str, object]) -> None:
        self._fields = dict(fields)

    def apply(self, text: str) -> Result[str, PipeError]:
        if "{{" not in text:
            return Ok(text)
        source = _DOT_FIELD_RE.sub(r"\1", text)
        try:
            return Ok(_ENV.from_string(source).render(**self._fields))
        except TemplateError as e:
            return Err(
                PipeError(
                    kind="template",
                    message=f"failed to apply template {text!r}: {e}",
                    hint="available fields: " + ", ".join(sorted(self._fields)),
                )
            )
