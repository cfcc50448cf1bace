import json

from typer.testing import CliRunner

from conftest import make_catalog, write_apk
from stackzy import __version__
from stackzy.cli import analyze
from stackzy.cli.main import app
from stackzy.core.pipeline import AnalysisPipeline
from stackzy.models.source import AndroidApp, DeviceSource
from stackzy.utils.config import StackzyConfig

runner = CliRunner()


class StaticResolver:
    def __init__(self, tmp_path):
        self.tmp_path = tmp_path

    async def acquire(self, app, source, on_progress, cancel=None):
        on_progress(100)
        return write_apk(self.tmp_path / "base.apk")


def test_version():
    result = runner.invoke(app, ["--version"])

    assert result.exit_code == 0
    assert __version__ in result.stdout


def test_report_without_catalog_fails(monkeypatch):
    monkeypatch.setattr(analyze, "get_settings", lambda: StackzyConfig())

    result = runner.invoke(app, ["analyze", "report", "com.example.app"])

    assert result.exit_code == 1


def test_store_mode_requires_credentials(monkeypatch, tmp_path):
    catalog = tmp_path / "libs.json"
    catalog.write_text("[]")
    monkeypatch.setattr(analyze, "get_settings", lambda: StackzyConfig())
    monkeypatch.setattr(analyze, "require", lambda *tools: None)

    result = runner.invoke(
        app, ["analyze", "report", "com.example.app", "--store", "--catalog", str(catalog)]
    )

    assert result.exit_code == 1


def test_report_with_malformed_catalog_fails_cleanly(monkeypatch, tmp_path):
    catalog = tmp_path / "libs.json"
    catalog.write_text("{'id': 1,}")
    monkeypatch.setattr(analyze, "get_settings", lambda: StackzyConfig())

    result = runner.invoke(
        app, ["analyze", "report", "com.example.app", "--catalog", str(catalog)]
    )

    assert result.exit_code == 1
    assert isinstance(result.exception, SystemExit)


def test_report_json_output(monkeypatch, tmp_path, fake_apktool):
    pipeline = AnalysisPipeline(
        AndroidApp(package_name="com.example.app"),
        DeviceSource(),
        config=StackzyConfig(caching_enabled=False, settle_delay=0),
        catalog=make_catalog(),
        resolver=StaticResolver(tmp_path),
        work_root=tmp_path / "work",
    )
    monkeypatch.setattr(analyze, "_build_pipeline", lambda *args: pipeline)

    result = runner.invoke(app, ["analyze", "report", "com.example.app", "--json"])

    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    assert payload["package_name"] == "com.example.app"
    assert [lib["name"] for lib in payload["libraries"]] == ["OkHttp", "Firebase"]
    assert payload["untracked_libraries"] == []
