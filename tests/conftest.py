"""Shared fixtures: a small catalog, fake apktool output and fake collaborators."""

from __future__ import annotations

from pathlib import Path

import pytest

from stackzy.core import decompiler
from stackzy.exceptions import TransportError
from stackzy.models.library import Library, LibraryCatalog

APP_PACKAGE = "com.example.app"

MANIFEST_TEMPLATE = """<?xml version="1.0" encoding="utf-8" standalone="no"?>
<manifest xmlns:android="http://schemas.android.com/apk/res/android" package="{package}">
{permissions}
    <application android:label="@string/app_name" android:name="{package}.App">
        <activity android:name="{package}.MainActivity"/>
    </application>
</manifest>
"""

APKTOOL_YML_TEMPLATE = """!!brut.androlib.meta.MetaInfo
apkFileName: base.apk
isFrameworkApk: false
sdkInfo:
  minSdkVersion: '21'
  targetSdkVersion: '34'
version: 2.9.3
versionInfo:
  versionCode: '{version_code}'
  versionName: {version_name}
"""


def make_catalog() -> LibraryCatalog:
    return LibraryCatalog(
        [
            Library(id=1, name="OkHttp", category="Networking", package_name="com.squareup.okhttp"),
            Library(id=2, name="Firebase", category="Backend", package_name="com.google.firebase"),
            Library(id=3, name="Gson", category="JSON", package_name="com.google.gson"),
        ]
    )


def write_apk(path: Path, size: int = 1_500_000) -> Path:
    path.write_bytes(b"PK\x03\x04" + b"\0" * (size - 4))
    return path


def build_decompiled_tree(
    root: Path,
    namespaces: list[str],
    *,
    package: str = APP_PACKAGE,
    permissions: list[str] | None = None,
    label: str = "Example App",
    version_name: str = "1.2.3",
    version_code: int = 42,
    extra_files: list[str] | None = None,
) -> Path:
    for namespace in namespaces:
        directory = root / "smali" / Path(*namespace.split("."))
        directory.mkdir(parents=True, exist_ok=True)
        (directory / "Main.smali").write_text(".class public LMain;\n")

    permission_lines = "\n".join(
        f'    <uses-permission android:name="{name}"/>' for name in permissions or []
    )
    root.mkdir(parents=True, exist_ok=True)
    (root / "AndroidManifest.xml").write_text(
        MANIFEST_TEMPLATE.format(package=package, permissions=permission_lines)
    )

    values = root / "res" / "values"
    values.mkdir(parents=True, exist_ok=True)
    (values / "strings.xml").write_text(
        f'<resources><string name="app_name">{label}</string></resources>'
    )

    (root / "apktool.yml").write_text(
        APKTOOL_YML_TEMPLATE.format(version_code=version_code, version_name=version_name)
    )

    for relative in extra_files or []:
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(b"\0")

    return root


class FakeApktool:
    """Stands in for stream_tool: writes an apktool-like tree to the -o target."""

    def __init__(self) -> None:
        self.namespaces = ["com.squareup.okhttp", "com.google.firebase.auth", "com.example.app.ui"]
        self.permissions = ["android.permission.INTERNET"]
        self.lines = ["I: Using Apktool 2.9.3 on base.apk", "I: Decoding AndroidManifest.xml"]
        self.returncode = 0
        self.calls: list[list[str]] = []
        self.events: list[str] | None = None

    async def __call__(self, command, on_line, *, cancel=None):
        self.calls.append(command)
        if self.events is not None:
            self.events.append("decompile")
        target = Path(command[command.index("-o") + 1])
        for line in self.lines:
            on_line(line)
        if self.returncode == 0:
            build_decompiled_tree(target, self.namespaces, permissions=self.permissions)
        else:
            target.mkdir(parents=True, exist_ok=True)
            (target / "half-written.smali").write_text("")
        return self.returncode


class FakeCache:
    def __init__(self, result=None, error: str | None = None, store_error: str | None = None):
        self.result = result
        self.error = error
        self.store_error = store_error
        self.lookups = []
        self.stored = []

    async def lookup(self, fingerprint):
        self.lookups.append(fingerprint)
        if self.error:
            raise TransportError(self.error)
        return self.result

    async def store(self, result):
        if self.store_error:
            raise TransportError(self.store_error)
        self.stored.append(result)


class FakeStore:
    def __init__(self, percentages, events: list[str] | None = None, on_yield=None):
        self.percentages = percentages
        self.events = events
        self.on_yield = on_yield
        self.destinations: list[Path] = []

    async def download(self, account, package_name, destination):
        self.destinations.append(destination)
        write_apk(destination)
        for percentage in self.percentages:
            if self.events is not None:
                self.events.append(f"progress:{percentage}")
            yield percentage
            if self.on_yield is not None:
                self.on_yield(percentage)


@pytest.fixture
def catalog() -> LibraryCatalog:
    return make_catalog()


@pytest.fixture
def fake_apktool(monkeypatch) -> FakeApktool:
    fake = FakeApktool()
    monkeypatch.setattr(decompiler, "stream_tool", fake)
    return fake
