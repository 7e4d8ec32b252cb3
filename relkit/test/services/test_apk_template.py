"""Tests for relkit.services.apk_template module."""

from __future__ import annotations

from relkit.core.config import AlpineConfig
from relkit.core.result import Ok
from relkit.services.apk_template import render_apkbuild


def _render(spec: AlpineConfig, *binaries: str) -> str:
    result = render_apkbuild(spec, version="1.2.3", binaries=binaries or ("app",))
    assert isinstance(result, Ok)
    return result.value


def test_package_fields() -> None:
    spec = AlpineConfig(
        name="app",
        rel=2,
        description="An app",
        url="https://example.com",
        license="MIT",
    )

    text = _render(spec)

    assert text.startswith("pkgname=app\n")
    assert "pkgver=1.2.3\n" in text
    assert "pkgrel=2\n" in text
    assert 'pkgdesc="An app"\n' in text
    assert 'url="https://example.com"\n' in text
    assert 'license="MIT"\n' in text
    assert 'arch="all"\n' in text


def test_without_check_disables_check() -> None:
    text = _render(AlpineConfig(name="app"))

    assert 'options="!check"\n' in text
    assert "check()" not in text


def test_with_check_emits_check_function() -> None:
    text = _render(AlpineConfig(name="app", check="./app --version"))

    assert 'check() {\n\tcd "$builddir"\n\t./app --version\n}\n' in text
    assert "options=" not in text


def test_author_comments_only_when_set() -> None:
    plain = _render(AlpineConfig(name="app"))
    assert "# Maintainer" not in plain
    assert "# Contributor" not in plain

    text = _render(
        AlpineConfig(
            name="app",
            contributor="John <john@example.com>",
            maintainer="Jane <jane@example.com>",
        )
    )
    lines = text.splitlines()
    assert lines[0] == "# Contributor: John <john@example.com>"
    assert lines[1] == "# Maintainer: Jane <jane@example.com>"
    assert lines[2] == "pkgname=app"


def test_package_installs_every_binary_sorted() -> None:
    text = _render(AlpineConfig(name="app"), "appd", "app", "appd")

    body = text[text.index("package() {") :]
    assert body == (
        "package() {\n"
        '\tinstall -Dm755 "$pkgarch/app" "$pkgdir/usr/bin/app"\n'
        '\tinstall -Dm755 "$pkgarch/appd" "$pkgdir/usr/bin/appd"\n'
        "}\n"
    )


def test_no_blank_lines_from_control_tags() -> None:
    text = _render(AlpineConfig(name="app"))

    assert "\n\n\n" not in text
    assert "{%" not in text
