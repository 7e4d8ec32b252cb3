"""APKBUILD rendering for the apk stage."""

from __future__ import annotations

from collections.abc import Iterable

from jinja2 import Environment, StrictUndefined, TemplateError

from relkit.core.config import AlpineConfig
from relkit.core.pipe import PipeError
from relkit.core.result import Err, Ok, Result

__all__ = ["APKBUILD_TEMPLATE", "render_apkbuild"]

# Tag-only lines vanish (trim_blocks + lstrip_blocks); abuild wants tabs.
APKBUILD_TEMPLATE = """\
{% if spec.contributor %}
# Contributor: {{ spec.contributor }}
{% endif %}
{% if spec.maintainer %}
# Maintainer: {{ spec.maintainer }}
{% endif %}
pkgname={{ spec.name }}
pkgver={{ version }}
pkgrel={{ spec.rel }}
pkgdesc="{{ spec.description }}"
url="{{ spec.url }}"
arch="all"
license="{{ spec.license }}"
depends=""
makedepends=""
install=""
subpackages=""
source=""
builddir=""
{% if spec.check %}

check() {
\tcd "$builddir"
\t{{ spec.check }}
}
{% else %}
options="!check"
{% endif %}

package() {
{% for name, source in binaries %}
\tinstall -Dm755 "{{ source }}" "$pkgdir/usr/bin/{{ name }}"
{% endfor %}
}
"""

_ENV = Environment(
    undefined=StrictUndefined,
    autoescape=False,
    trim_blocks=True,
    lstrip_blocks=True,
    keep_trailing_newline=True,
)


def render_apkbuild(
    spec: AlpineConfig,
    *,
    version: str,
    binaries: Iterable[str],
) -> Result[str, PipeError]:
    """Render the APKBUILD of one package.

    Args:
        spec: Package configuration.
        version: Release version (pkgver).
        binaries: File names of the release binaries; each is installed from
            ``$pkgarch/<name>`` to ``/usr/bin/<name>``.
    """
    data = {
        "spec": spec,
        "version": version,
        "binaries": [(name, f"$pkgarch/{name}") for name in sorted(set(binaries))],
    }
    try:
        return Ok(_ENV.from_string(APKBUILD_TEMPLATE).render(**data))
    except TemplateError as e:
        return Err(
            PipeError(kind="template", message=f"{spec.name}: failed to render APKBUILD: {e}")
        )
