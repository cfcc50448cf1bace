"""CLI commands for library analysis."""

import asyncio
import contextlib
import signal
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import TypeVar

import typer
from rich.table import Table

from stackzy.core.adb import ADBWrapper
from stackzy.core.pipeline import AnalysisPipeline
from stackzy.exceptions import CatalogUnavailableError, StackzyError
from stackzy.models.library import LibraryCatalog
from stackzy.models.report import AnalysisReport
from stackzy.models.source import (
    AndroidApp,
    DeviceSource,
    StoreAccount,
    StoreSource,
)
from stackzy.utils.config import StackzyConfig, get_settings
from stackzy.utils.deps import require, tool_command
from stackzy.utils.output import configure_logging, console

app = typer.Typer(no_args_is_help=True)

T = TypeVar("T")

DEVICE_OPTION = typer.Option(None, "--device", "-d", help="Target device ID.")
STORE_OPTION = typer.Option(
    False, "--store", help="Download the APK from the store instead of a device."
)
CATALOG_OPTION = typer.Option(
    None,
    "--catalog",
    "-c",
    help="Library catalog JSON (default: catalog_path from config).",
    exists=True,
    dir_okay=False,
    readable=True,
)
VERSION_CODE_OPTION = typer.Option(
    None,
    "--version-code",
    help="Version code, for store downloads (enables the result cache).",
)
VERBOSE_OPTION = typer.Option(False, "--verbose", "-V", help="Show debug logs.")


def _load_catalog(path: Path | None, config: StackzyConfig) -> LibraryCatalog:
    catalog_path = path or config.catalog_path
    if catalog_path is None or not catalog_path.is_file():
        raise CatalogUnavailableError()
    return LibraryCatalog.from_json(catalog_path)


def _build_pipeline(
    package_name: str,
    device: str | None,
    store: bool,
    version_code: int | None,
    catalog_path: Path | None,
) -> AnalysisPipeline:
    config = get_settings()
    catalog = _load_catalog(catalog_path, config)
    require("apktool")

    adb_path = "adb"
    if store:
        if not (config.store_email and config.store_token):
            raise StackzyError(
                "Store credentials missing: set store_email and store_token "
                "in ~/.stackzy/config.json"
            )
        source: DeviceSource | StoreSource = StoreSource(
            account=StoreAccount(email=config.store_email, token=config.store_token)
        )
        target = AndroidApp(package_name=package_name, version_code=version_code)
    else:
        require("adb")
        adb_path = tool_command("adb")
        adb = ADBWrapper(device_id=device, adb_path=adb_path)
        adb.ensure_device()
        target = adb.get_app(package_name)
        source = DeviceSource(device_id=device)

    return AnalysisPipeline.from_config(
        target,
        source,
        catalog,
        config,
        adb=adb_path,
        apktool=tool_command("apktool"),
    )


async def _analyze(pipeline: AnalysisPipeline) -> AnalysisReport:
    report = await pipeline.run()
    await pipeline.wait_for_background()
    return report


async def _run_cancellable(
    pipeline: AnalysisPipeline, work: Callable[[], Awaitable[T]]
) -> T:
    loop = asyncio.get_running_loop()
    with contextlib.suppress(NotImplementedError):
        loop.add_signal_handler(signal.SIGINT, pipeline.cancel)
    try:
        return await work()
    finally:
        with contextlib.suppress(NotImplementedError):
            loop.remove_signal_handler(signal.SIGINT)


def _execute(pipeline: AnalysisPipeline, work: Callable[[], Awaitable[T]]) -> T:
    with console.follow(pipeline.state):
        return asyncio.run(_run_cancellable(pipeline, work))


def _report_payload(report: AnalysisReport) -> dict[str, object]:
    payload = report.model_dump(mode="json")
    payload["untracked_libraries"] = sorted(report.untracked_libraries)
    return payload


def _print_report(report: AnalysisReport) -> None:
    console.print(f"\n[bold cyan]{report.app_name}[/bold cyan] ({report.package_name})\n")
    console.print(f"  Platform:     {report.platform.value}")
    if report.gradle_info.version_name:
        console.print(f"  Version:      {report.gradle_info.version_name}")
    if report.gradle_info.version_code:
        console.print(f"  Version Code: {report.gradle_info.version_code}")
    if report.gradle_info.min_sdk:
        console.print(f"  Min SDK:      {report.gradle_info.min_sdk}")
    if report.gradle_info.target_sdk:
        console.print(f"  Target SDK:   {report.gradle_info.target_sdk}")
    console.print(f"  APK Size:     {report.apk_size_in_mb:.2f} MB")

    if report.libraries:
        table = Table(title=f"Libraries ({len(report.libraries)})")
        table.add_column("Name", style="cyan")
        table.add_column("Category", style="green")
        table.add_column("Package")
        for lib in report.libraries:
            table.add_row(lib.name, lib.category, lib.package_name)
        console.print(table)
    else:
        console.print_warning("No known libraries found.")

    if report.untracked_libraries:
        console.print(
            f"\n[bold]Untracked Libraries ({len(report.untracked_libraries)}):[/bold]"
        )
        for name in sorted(report.untracked_libraries):
            console.print(f"  {name}")

    if report.permissions:
        console.print(f"\n[bold]Permissions ({len(report.permissions)}):[/bold]")
        for permission in report.permissions:
            console.print(f"  {permission}")

    console.print()


@app.command("report")
def analyze_report(
    package_name: str = typer.Argument(..., help="Package name to analyze."),
    device: str = DEVICE_OPTION,
    store: bool = STORE_OPTION,
    version_code: int = VERSION_CODE_OPTION,
    catalog: Path = CATALOG_OPTION,
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON."),
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """List the third-party libraries an app is built with.

    Uses a cached result when the version code is known, otherwise pulls
    (or downloads) the APK, decompiles it with apktool and matches its
    packages against the library catalog.
    """
    configure_logging(verbose)
    console.set_json_mode(json_output)

    try:
        pipeline = _build_pipeline(package_name, device, store, version_code, catalog)
        report = _execute(pipeline, lambda: _analyze(pipeline))

        if json_output:
            console.print_json(_report_payload(report))
            return

        _print_report(report)
        for warning in pipeline.state.value.warnings:
            console.print_warning(warning)

    except StackzyError as e:
        console.print_error(str(e))
        raise typer.Exit(1) from None


@app.command("source")
def open_source(
    package_name: str = typer.Argument(..., help="Package name to decompile."),
    device: str = DEVICE_OPTION,
    store: bool = STORE_OPTION,
    catalog: Path = CATALOG_OPTION,
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """Print the decompiled source directory, decompiling if needed."""
    configure_logging(verbose)

    try:
        pipeline = _build_pipeline(package_name, device, store, None, catalog)
        path = _execute(pipeline, pipeline.open_source_code)
        typer.echo(str(path))
    except StackzyError as e:
        console.print_error(str(e))
        raise typer.Exit(1) from None
