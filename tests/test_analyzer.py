import pytest

from conftest import APP_PACKAGE, build_decompiled_tree, write_apk
from stackzy.core.analyzer import FrameworkDetector, LibraryAnalyzer
from stackzy.exceptions import CatalogUnavailableError
from stackzy.models.library import LibraryCatalog
from stackzy.models.report import Platform


@pytest.fixture
def apk(tmp_path):
    return write_apk(tmp_path / "app.apk", size=2_500_000)


@pytest.mark.parametrize("catalog", [None, LibraryCatalog([])])
def test_missing_catalog_fails_fast(tmp_path, apk, catalog):
    tree = build_decompiled_tree(tmp_path / "out", ["com.squareup.okhttp"])

    with pytest.raises(CatalogUnavailableError):
        LibraryAnalyzer(catalog).analyze(APP_PACKAGE, apk, tree)


def test_catalog_libraries_are_never_untracked(tmp_path, apk, catalog):
    tree = build_decompiled_tree(
        tmp_path / "out",
        [
            "com.squareup.okhttp",
            "com.squareup.okhttp.internal.http",
            "com.google.firebase.auth",
            "io.unknown.sdk.core",
            "com.example.app.ui",
            "android.support.v4",
            "a.b",
        ],
    )

    report = LibraryAnalyzer(catalog).analyze(APP_PACKAGE, apk, tree)

    assert [lib.package_name for lib in report.libraries] == [
        "com.squareup.okhttp",
        "com.google.firebase",
    ]
    assert report.untracked_libraries == {"io.unknown.sdk"}


def test_own_package_is_not_untracked(tmp_path, apk, catalog):
    tree = build_decompiled_tree(tmp_path / "out", ["com.example.app", "com.example.app.data.db"])

    report = LibraryAnalyzer(catalog).analyze(APP_PACKAGE, apk, tree)

    assert report.libraries == []
    assert report.untracked_libraries == frozenset()


def test_metadata_extraction(tmp_path, apk, catalog):
    tree = build_decompiled_tree(
        tmp_path / "out",
        ["com.google.gson"],
        permissions=[
            "android.permission.INTERNET",
            "android.permission.CAMERA",
            "android.permission.INTERNET",
        ],
        label="Topcorn",
        version_name="2.0.1",
        version_code=201,
    )

    report = LibraryAnalyzer(catalog).analyze(APP_PACKAGE, apk, tree)

    assert report.app_name == "Topcorn"
    assert report.permissions == ["android.permission.INTERNET", "android.permission.CAMERA"]
    assert report.apk_size_in_mb == 2.5
    assert report.gradle_info.version_name == "2.0.1"
    assert report.gradle_info.version_code == 201
    assert report.gradle_info.min_sdk == 21
    assert report.gradle_info.target_sdk == 34
    assert report.assets_dir is None


def test_platform_from_framework_markers(tmp_path, apk, catalog):
    tree = build_decompiled_tree(
        tmp_path / "out",
        ["io.flutter.embedding"],
        extra_files=["lib/arm64-v8a/libflutter.so", "assets/flutter_assets/AssetManifest.json"],
    )

    report = LibraryAnalyzer(catalog).analyze(APP_PACKAGE, apk, tree)

    assert report.platform == Platform.FLUTTER
    assert report.assets_dir == tree / "assets"


def test_platform_kotlin_vs_java(tmp_path, apk, catalog):
    kotlin_tree = build_decompiled_tree(tmp_path / "kotlin", ["kotlin.collections", "com.example.app"])
    java_tree = build_decompiled_tree(tmp_path / "java", ["com.example.app"])

    analyzer = LibraryAnalyzer(catalog)

    assert analyzer.analyze(APP_PACKAGE, apk, kotlin_tree).platform == Platform.NATIVE_KOTLIN
    assert analyzer.analyze(APP_PACKAGE, apk, java_tree).platform == Platform.NATIVE_JAVA


@pytest.mark.parametrize(
    "files, expected",
    [
        (["assets/index.android.bundle"], Platform.REACT_NATIVE),
        (["assets/www/cordova.js"], Platform.CORDOVA),
        (["unknown/assemblies/Mono.Android.dll"], Platform.XAMARIN),
        (["assets/bin/Data/level0"], Platform.UNITY),
        (["assets/fonts/roboto.ttf"], None),
    ],
)
def test_framework_detector(tmp_path, files, expected):
    for relative in files:
        path = tmp_path / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(b"")

    assert FrameworkDetector(tmp_path).detect() == expected


def test_analysis_is_idempotent(tmp_path, apk, catalog):
    tree = build_decompiled_tree(
        tmp_path / "out",
        ["com.squareup.okhttp", "io.unknown.sdk", "org.greenrobot.eventbus", "com.google.gson"],
        permissions=["android.permission.INTERNET"],
    )
    analyzer = LibraryAnalyzer(catalog)

    first = analyzer.analyze(APP_PACKAGE, apk, tree)
    second = analyzer.analyze(APP_PACKAGE, apk, tree)

    assert first.model_dump_json() == second.model_dump_json()


def test_literal_label_and_missing_metadata(tmp_path, apk, catalog):
    tree = tmp_path / "out"
    (tree / "smali" / "com" / "example" / "app").mkdir(parents=True)
    (tree / "AndroidManifest.xml").write_text(
        '<manifest xmlns:android="http://schemas.android.com/apk/res/android">'
        '<application android:label="Plain Label"/></manifest>'
    )

    report = LibraryAnalyzer(catalog).analyze(APP_PACKAGE, apk, tree)

    assert report.app_name == "Plain Label"
    assert report.gradle_info.version_code is None
    assert report.permissions == []


def test_classify_without_catalog_fails_fast():
    with pytest.raises(CatalogUnavailableError):
        LibraryAnalyzer(None).classify(APP_PACKAGE, {"com.squareup.okhttp"})
