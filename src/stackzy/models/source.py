"""Pydantic models for the app under analysis and where its APK comes from."""

from enum import StrEnum
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field


class DeviceState(StrEnum):
    """ADB device connection state."""

    DEVICE = "device"
    OFFLINE = "offline"
    UNAUTHORIZED = "unauthorized"
    NO_PERMISSIONS = "no permissions"
    UNKNOWN = "unknown"


class Device(BaseModel):
    """A device as reported by ``adb devices -l``."""

    id: str
    state: DeviceState
    model: str | None = None

    @property
    def is_available(self) -> bool:
        return self.state == DeviceState.DEVICE


class AndroidApp(BaseModel):
    """Reference to the application to analyze."""

    model_config = ConfigDict(frozen=True)

    package_name: str
    """Full package name (e.g., com.example.app)."""

    app_name: str | None = None
    """Display name, when the caller already knows it."""

    version_name: str | None = None

    version_code: int | None = None
    """Known version code. Without it the result cache is bypassed."""


class StoreAccount(BaseModel):
    """Credential used to open a store download session."""

    model_config = ConfigDict(frozen=True)

    email: str
    token: str
    gsf_id: str | None = None
    locale: str = "en_US"


class DeviceSource(BaseModel):
    """Pull the APK from a connected device."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["device"] = "device"
    device_id: str | None = None
    """ADB serial. None targets the only connected device."""


class StoreSource(BaseModel):
    """Download the APK from the store."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["store"] = "store"
    account: StoreAccount


AcquisitionSource = Annotated[DeviceSource | StoreSource, Field(discriminator="kind")]
