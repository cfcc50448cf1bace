"""Pydantic models for analysis reports and their cached projection."""

from enum import StrEnum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from stackzy.models.library import Library


class Platform(StrEnum):
    """Framework the app was built with."""

    NATIVE_JAVA = "NativeJava"
    NATIVE_KOTLIN = "NativeKotlin"
    FLUTTER = "Flutter"
    REACT_NATIVE = "ReactNative"
    CORDOVA = "Cordova"
    XAMARIN = "Xamarin"
    UNITY = "Unity"

    @classmethod
    def from_class_name(cls, class_name: str) -> "Platform":
        """Parse the class-name string stored in the result cache.

        Accepts both the bare name ('Flutter') and a qualified one
        ('Platform$Flutter', 'Platform.Flutter').
        """
        short_name = class_name.replace("$", ".").rsplit(".", 1)[-1]
        try:
            return cls(short_name)
        except ValueError:
            return cls.NATIVE_JAVA


class PackageFingerprint(BaseModel):
    """Identity of a cacheable analysis result."""

    model_config = ConfigDict(frozen=True)

    package_name: str
    version_code: int
    analyzer_version: str


class GradleInfo(BaseModel):
    """Build metadata recovered from the decompiled APK."""

    model_config = ConfigDict(frozen=True)

    version_name: str | None = None
    version_code: int | None = None
    min_sdk: int | None = None
    target_sdk: int | None = None


class AnalysisReport(BaseModel):
    """Libraries and metadata found in one APK."""

    model_config = ConfigDict(frozen=True)

    app_name: str
    """Human-readable application name."""

    package_name: str
    """Application package (e.g., com.example.app)."""

    platform: Platform
    """Detected framework."""

    libraries: list[Library]
    """Catalog entries found in the APK, in catalog order."""

    untracked_libraries: frozenset[str] = Field(default_factory=frozenset)
    """Namespaces not in the catalog and not owned by the app. Empty for cache hits."""

    apk_size_in_mb: float
    """APK size in megabytes (bytes / 1,000,000)."""

    assets_dir: Path | None = None
    """Decompiled assets directory, if any."""

    permissions: list[str] = Field(default_factory=list)
    """Declared permissions, first-seen order."""

    gradle_info: GradleInfo = Field(default_factory=GradleInfo)


class CachedResult(BaseModel):
    """Serialization-friendly projection of an AnalysisReport stored remotely."""

    app_name: str
    package_name: str
    platform: str
    lib_packages: str
    """Comma-joined library package names."""
    permissions: str
    """Comma-joined permissions."""
    apk_size_in_mb: float
    gradle_info_json: str
    version_code: int
    stackzy_lib_version: str
