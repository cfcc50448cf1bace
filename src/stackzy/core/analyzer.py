"""APK analysis: match decompiled namespaces against the library catalog."""

import logging
import os
import xml.etree.ElementTree as ET
from pathlib import Path

import yaml

from stackzy.exceptions import CatalogUnavailableError, StackzyError
from stackzy.models.library import Library, LibraryCatalog
from stackzy.models.report import AnalysisReport, GradleInfo, Platform
from stackzy.utils.apk import size_in_mb

logger = logging.getLogger(__name__)

ANDROID_NS = "{http://schemas.android.com/apk/res/android}"

# Namespaces shipped by the platform or the language runtime, never libraries
PLATFORM_NAMESPACES = (
    "android",
    "java",
    "javax",
    "dalvik",
    "kotlin",
    "kotlinx",
    "org.json",
    "org.w3c",
    "org.xml",
    "org.xmlpull",
    "org.apache.http",
)

UNTRACKED_DEPTH = 3


class FrameworkDetector:
    """Detect cross-platform frameworks in a decompiled APK."""

    FRAMEWORK_SIGNATURES: dict[Platform, list[str]] = {
        Platform.FLUTTER: [
            "lib/arm64-v8a/libflutter.so",
            "lib/armeabi-v7a/libflutter.so",
            "lib/x86_64/libflutter.so",
            "assets/flutter_assets/",
        ],
        Platform.REACT_NATIVE: [
            "lib/arm64-v8a/libreactnativejni.so",
            "lib/armeabi-v7a/libreactnativejni.so",
            "lib/x86/libreactnativejni.so",
            "lib/x86_64/libreactnativejni.so",
            "assets/index.android.bundle",
        ],
        Platform.XAMARIN: [
            "unknown/assemblies/Xamarin.Android.dll",
            "unknown/assemblies/Mono.Android.dll",
            "assemblies/Mono.Android.dll",
            "lib/arm64-v8a/libmonosgen-2.0.so",
            "lib/armeabi-v7a/libmonosgen-2.0.so",
        ],
        Platform.CORDOVA: [
            "assets/www/cordova.js",
            "assets/www/cordova_plugins.js",
        ],
        Platform.UNITY: [
            "lib/arm64-v8a/libunity.so",
            "lib/armeabi-v7a/libunity.so",
            "assets/bin/Data/",
        ],
    }

    # Only these top-level folders carry framework markers
    SCANNED_ROOTS = ("lib", "assets", "unknown", "assemblies")

    def __init__(self, decompiled_dir: Path):
        self.decompiled_dir = decompiled_dir

    def _collect_files(self) -> list[str]:
        files: list[str] = []
        for root_name in self.SCANNED_ROOTS:
            root = self.decompiled_dir / root_name
            if not root.is_dir():
                continue
            for path in root.rglob("*"):
                if path.is_file():
                    files.append(path.relative_to(self.decompiled_dir).as_posix())
        return files

    def detect(self) -> Platform | None:
        """Return the first framework whose signature matches, if any."""
        namelist = self._collect_files()
        files_set = set(namelist)

        for framework, signatures in self.FRAMEWORK_SIGNATURES.items():
            for sig in signatures:
                if sig.endswith("/"):
                    # Directory signature: any file below it counts
                    if any(entry.startswith(sig) for entry in namelist):
                        return framework
                elif sig in files_set:
                    return framework

        return None


def is_sub_namespace(namespace: str, prefix: str) -> bool:
    """True if ``namespace`` is ``prefix`` or one of its sub-packages."""
    return namespace == prefix or namespace.startswith(prefix + ".")


def _to_int(value: object) -> int | None:
    try:
        return int(str(value))
    except (TypeError, ValueError):
        return None


class LibraryAnalyzer:
    """Scan an apktool output tree for known and unknown libraries."""

    def __init__(self, catalog: LibraryCatalog | None):
        self.catalog = catalog

    def analyze(
        self,
        package_name: str,
        apk_file: Path,
        decompiled_dir: Path,
    ) -> AnalysisReport:
        """Build an AnalysisReport for one decompiled APK.

        Args:
            package_name: The app's own package; its namespaces are not libraries.
            apk_file: The original APK, used for its size.
            decompiled_dir: apktool output directory.

        Raises:
            CatalogUnavailableError: If the catalog is missing or empty.
            StackzyError: If the decompiled tree is unusable.
        """
        if not self.catalog:
            raise CatalogUnavailableError()
        if not decompiled_dir.is_dir():
            raise StackzyError(f"Decompiled directory not found: {decompiled_dir}")

        namespaces = self.collect_namespaces(decompiled_dir)
        libraries, untracked = self.classify(package_name, namespaces)
        manifest = self._read_manifest(decompiled_dir)

        platform = FrameworkDetector(decompiled_dir).detect()
        if platform is None:
            uses_kotlin = any(is_sub_namespace(ns, "kotlin") for ns in namespaces)
            platform = Platform.NATIVE_KOTLIN if uses_kotlin else Platform.NATIVE_JAVA

        assets_dir = decompiled_dir / "assets"
        return AnalysisReport(
            app_name=self._app_name(manifest, decompiled_dir) or package_name,
            package_name=package_name,
            platform=platform,
            libraries=libraries,
            untracked_libraries=frozenset(untracked),
            apk_size_in_mb=size_in_mb(apk_file),
            assets_dir=assets_dir if assets_dir.is_dir() else None,
            permissions=self._permissions(manifest),
            gradle_info=self._gradle_info(decompiled_dir),
        )

    @staticmethod
    def collect_namespaces(decompiled_dir: Path) -> set[str]:
        """Dotted names of every smali directory that holds classes."""
        namespaces: set[str] = set()
        for smali_root in sorted(decompiled_dir.glob("smali*")):
            if not smali_root.is_dir():
                continue
            for dirpath, _dirnames, filenames in os.walk(smali_root):
                if not any(name.endswith(".smali") for name in filenames):
                    continue
                relative = Path(dirpath).relative_to(smali_root)
                if relative.parts:
                    namespaces.add(".".join(relative.parts))
        return namespaces

    def classify(
        self, package_name: str, namespaces: set[str]
    ) -> tuple[list[Library], set[str]]:
        """Split namespaces into catalog libraries and untracked prefixes."""
        if not self.catalog:
            raise CatalogUnavailableError()
        matched: set[str] = set()
        untracked: set[str] = set()

        for namespace in sorted(namespaces):
            library = self.catalog.match(namespace)
            if library is not None:
                matched.add(library.package_name)
                continue
            if is_sub_namespace(namespace, package_name):
                continue
            if any(is_sub_namespace(namespace, ns) for ns in PLATFORM_NAMESPACES):
                continue
            if len(namespace.split(".")[0]) == 1:
                # ProGuard-renamed package
                continue
            untracked.add(".".join(namespace.split(".")[:UNTRACKED_DEPTH]))

        return self.catalog.filter_packages(matched), untracked

    @staticmethod
    def _read_manifest(decompiled_dir: Path) -> ET.Element | None:
        manifest_path = decompiled_dir / "AndroidManifest.xml"
        if not manifest_path.is_file():
            logger.warning("No AndroidManifest.xml in %s", decompiled_dir)
            return None
        try:
            return ET.parse(manifest_path).getroot()
        except ET.ParseError as exc:
            logger.warning("Unreadable manifest %s: %s", manifest_path, exc)
            return None

    @staticmethod
    def _permissions(manifest: ET.Element | None) -> list[str]:
        if manifest is None:
            return []
        # dict keeps first-seen order
        seen: dict[str, None] = {}
        for element in manifest:
            if element.tag in ("uses-permission", "uses-permission-sdk-23"):
                name = element.get(f"{ANDROID_NS}name")
                if name:
                    seen.setdefault(name, None)
        return list(seen)

    @staticmethod
    def _app_name(manifest: ET.Element | None, decompiled_dir: Path) -> str | None:
        if manifest is None:
            return None
        application = manifest.find("application")
        if application is None:
            return None
        label = application.get(f"{ANDROID_NS}label")
        if not label or not label.startswith("@string/"):
            return label or None

        strings_path = decompiled_dir / "res" / "values" / "strings.xml"
        if not strings_path.is_file():
            return None
        key = label.removeprefix("@string/")
        try:
            strings = ET.parse(strings_path).getroot()
        except ET.ParseError:
            return None
        for element in strings.iter("string"):
            if element.get("name") == key:
                return (element.text or "").strip() or None
        return None

    @staticmethod
    def _gradle_info(decompiled_dir: Path) -> GradleInfo:
        apktool_yml = decompiled_dir / "apktool.yml"
        if not apktool_yml.is_file():
            return GradleInfo()

        # apktool tags the document with a Java class (!!brut.androlib...)
        lines = [
            line
            for line in apktool_yml.read_text().splitlines()
            if not line.startswith("!!")
        ]
        try:
            meta = yaml.safe_load("\n".join(lines)) or {}
        except yaml.YAMLError as exc:
            logger.warning("Unreadable apktool.yml: %s", exc)
            return GradleInfo()

        version_info = meta.get("versionInfo") or {}
        sdk_info = meta.get("sdkInfo") or {}
        version_name = version_info.get("versionName")
        return GradleInfo(
            version_name=str(version_name) if version_name is not None else None,
            version_code=_to_int(version_info.get("versionCode")),
            min_sdk=_to_int(sdk_info.get("minSdkVersion")),
            target_sdk=_to_int(sdk_info.get("targetSdkVersion")),
        )
