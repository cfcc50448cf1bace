"""External tool dependency checker."""

from __future__ import annotations

import shutil

from stackzy.exceptions import ToolNotFoundError
from stackzy.utils.config import get_config_value

# Install hints for required tools
TOOL_INSTALL_HINTS: dict[str, str] = {
    "adb": "https://developer.android.com/tools/releases/platform-tools",
    "apktool": "https://apktool.ibotpeaches.com/",
}


def get_tool_path(tool: str) -> str | None:
    """Resolve a tool via ``<tool>_path`` in the config, then PATH."""

    configured = get_config_value(f"{tool}_path")
    if isinstance(configured, str) and shutil.which(configured):
        return configured

    return shutil.which(tool)


def require(*tools: str) -> None:
    """Require that all specified tools are available.

    Args:
        *tools: Names of tools that must be available.

    Raises:
        ToolNotFoundError: If any tool is not found.
    """
    for tool in tools:
        if get_tool_path(tool) is None:
            raise ToolNotFoundError(tool, TOOL_INSTALL_HINTS.get(tool))


def tool_command(tool: str) -> str:
    """Get the executable to invoke for ``tool``.

    Raises:
        ToolNotFoundError: If the tool is not found.
    """
    path = get_tool_path(tool)
    if path is None:
        raise ToolNotFoundError(tool, TOOL_INSTALL_HINTS.get(tool))
    return path
