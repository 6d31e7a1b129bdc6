"""End-to-end tests for the ``oremon`` command line."""

from __future__ import annotations

import typing as t
from pathlib import Path

import pytest
import rich.console
from conftest import FakeOre, write_jar
from typer.testing import CliRunner

from oremon import cli, config
from oremon.client import CatalogClient
from oremon.config import Settings

runner = CliRunner()


@pytest.fixture(autouse=True)
def offline_cli(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
    make_client: t.Callable[..., CatalogClient],
    settings: Settings,
) -> None:
    """Point the CLI at the fake catalog and give it a wide console."""
    monkeypatch.setattr(config, "DEFAULT_CONFIG_PATH", tmp_path / "absent.yaml")
    monkeypatch.setattr(cli, "CatalogClient", lambda _settings: make_client(settings))
    monkeypatch.setattr(cli, "console", rich.console.Console(width=200))
    monkeypatch.setattr(cli, "err_console", rich.console.Console(width=200, stderr=True))


def test_no_arguments_prints_help() -> None:
    result = runner.invoke(cli.app, [])

    assert result.exit_code == 0
    assert "search" in result.output
    assert "install" in result.output


def test_help_command() -> None:
    result = runner.invoke(cli.app, ["help"])

    assert result.exit_code == 0
    assert "check" in result.output


class TestSearch:
    def test_lists_matching_plugins(self) -> None:
        result = runner.invoke(cli.app, ["search", "nuc"])

        assert result.exit_code == 0, result.output
        assert "nucleus" in result.output
        assert "huskycrates" not in result.output
        assert "Showing 1-1 of 1" in result.output

    def test_flags_reach_the_catalog(self, fake_ore: FakeOre) -> None:
        result = runner.invoke(
            cli.app,
            ["search", "-c", "chat", "-s", "stars", "--no-relevance", "-l", "99", "--order", "asc"],
        )

        assert result.exit_code == 0, result.output
        params = fake_ore.api_requests[-1].url.params
        assert params["categories"] == "chat"
        assert params["sort"] == "stars"
        assert params["relevance"] == "false"
        assert params["limit"] == "25"

    def test_relevance_is_only_sent_when_given(self, fake_ore: FakeOre) -> None:
        runner.invoke(cli.app, ["search", "nucleus"])
        assert "relevance" not in fake_ore.api_requests[-1].url.params

        runner.invoke(cli.app, ["search", "nucleus", "--relevance"])
        assert fake_ore.api_requests[-1].url.params["relevance"] == "true"

    def test_negative_offset_is_a_usage_error(self) -> None:
        result = runner.invoke(cli.app, ["search", "--offset=-1"])

        assert result.exit_code == 2
        assert "offset must be non-negative" in result.output

    def test_unknown_category_is_a_usage_error(self) -> None:
        result = runner.invoke(cli.app, ["search", "-c", "cooking"])

        assert result.exit_code == 2


class TestPlugin:
    def test_summary(self) -> None:
        result = runner.invoke(cli.app, ["plugin", "nucleus"])

        assert result.exit_code == 0, result.output
        assert "Promoted Version : 2.1.4 (Sponge 7.3)" in result.output

    def test_version_list(self) -> None:
        result = runner.invoke(cli.app, ["plugin", "nucleus", "--versions"])

        assert result.exit_code == 0, result.output
        assert "2.1.0" in result.output
        assert "3 of 3 version(s)" in result.output

    def test_single_version(self, fake_ore: FakeOre) -> None:
        result = runner.invoke(cli.app, ["plugin", "nucleus", "2.0.0", "-V"])

        assert result.exit_code == 0, result.output
        assert "Promoted : no" in result.output
        assert fake_ore.versions["nucleus"][2]["file_info"]["md_5_hash"] in result.output

    def test_version_without_flag_is_a_usage_error(self) -> None:
        result = runner.invoke(cli.app, ["plugin", "nucleus", "2.0.0"])

        assert result.exit_code == 2

    def test_unknown_plugin_exits_3(self) -> None:
        result = runner.invoke(cli.app, ["plugin", "missing"])

        assert result.exit_code == 3
        assert "Plugin 'missing' not found" in result.output

    def test_unknown_version_exits_3(self) -> None:
        result = runner.invoke(cli.app, ["plugin", "nucleus", "9.9.9", "--versions"])

        assert result.exit_code == 3
        assert "Version '9.9.9' not found" in result.output

    def test_unavailable_catalog_exits_4(self, fake_ore: FakeOre) -> None:
        fake_ore.failures.extend([503] * 5)

        result = runner.invoke(cli.app, ["plugin", "nucleus"])

        assert result.exit_code == 4


class TestInstall:
    def test_installs_into_directory(self, tmp_path: Path) -> None:
        target = tmp_path / "plugins"

        result = runner.invoke(cli.app, ["install", "nucleus", "2.1.4", "--dir", str(target)])

        assert result.exit_code == 0, result.output
        assert "Installed 'nucleus-2.1.4.jar'" in result.output
        assert (target / "nucleus-2.1.4.jar").is_file()

    def test_unwritable_directory_exits_5(self, tmp_path: Path) -> None:
        blocker = tmp_path / "plugins"
        blocker.write_text("not a directory")
        target = blocker / "sponge"

        result = runner.invoke(cli.app, ["install", "nucleus", "2.1.4", "-d", str(target)])

        assert result.exit_code == 5
        assert not target.exists()


class TestCheck:
    def test_reports_each_archive(self, tmp_path: Path) -> None:
        write_jar(tmp_path / "nucleus.jar", "nucleus", "2.1.0")
        write_jar(tmp_path / "crates.jar", "huskycrates", "2.0.0PRE9H2")
        write_jar(tmp_path / "mystery.jar")

        result = runner.invoke(cli.app, ["check", str(tmp_path)])

        assert result.exit_code == 0, result.output
        assert "OUTDATED" in result.output
        assert "UP TO DATE" in result.output
        assert "UNPARSEABLE" in result.output
        assert "1 plugin(s) outdated." in result.output

    def test_fail_outdated(self, tmp_path: Path) -> None:
        write_jar(tmp_path / "nucleus.jar", "nucleus", "2.1.0")

        result = runner.invoke(cli.app, ["check", str(tmp_path), "--fail-outdated"])

        assert result.exit_code == 1

    def test_everything_current(self, tmp_path: Path) -> None:
        write_jar(tmp_path / "nucleus.jar", "nucleus", "2.1.4")

        result = runner.invoke(cli.app, ["check", str(tmp_path), "--fail-outdated"])

        assert result.exit_code == 0, result.output
        assert "No outdated plugins found." in result.output

    def test_latest_policy(self, tmp_path: Path, fake_ore: FakeOre) -> None:
        fake_ore.add_plugin("nucleus", ["2.2.0", "2.1.4"], promoted=["2.1.4"])
        write_jar(tmp_path / "nucleus.jar", "nucleus", "2.1.4")

        result = runner.invoke(cli.app, ["check", str(tmp_path), "--policy", "latest"])

        assert result.exit_code == 0, result.output
        assert "2.2.0" in result.output
        assert "OUTDATED" in result.output

    def test_empty_directory(self, tmp_path: Path) -> None:
        result = runner.invoke(cli.app, ["check", str(tmp_path)])

        assert result.exit_code == 0
        assert "No plugin archives found" in result.output

    def test_missing_path_exits_5(self, tmp_path: Path) -> None:
        result = runner.invoke(cli.app, ["check", str(tmp_path / "nope")])

        assert result.exit_code == 5


def test_invalid_config_file_is_reported(tmp_path: Path) -> None:
    bad = tmp_path / "config.yaml"
    bad.write_text("retries: lots\n")

    result = runner.invoke(cli.app, ["--config", str(bad), "search"])

    assert result.exit_code == 1
    assert "invalid settings" in result.output
