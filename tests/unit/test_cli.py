"""Unit tests for the typer CLI."""

from __future__ import annotations

import json

from typer.testing import CliRunner

from pdfbuddy.cli import app as app_module
from pdfbuddy.cli.app import APP_HELP, CONFIG_PRECEDENCE, app
from pdfbuddy.cli.template_cmd import watermark_from_options

runner = CliRunner()


class TestRootCommand:
    def test_version(self) -> None:
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert result.output.startswith("pdfbuddy ")

    def test_no_command_shows_help(self) -> None:
        result = runner.invoke(app, [])
        assert result.exit_code == 0
        assert "capture" in result.output

    def test_help_and_docstring_agree_on_precedence(self) -> None:
        assert "settings.<env>.toml" in CONFIG_PRECEDENCE
        assert CONFIG_PRECEDENCE in APP_HELP
        assert CONFIG_PRECEDENCE in app_module.__doc__


class TestSettingsCommands:
    def test_validate(self) -> None:
        result = runner.invoke(app, ["settings", "validate"])
        assert result.exit_code == 0
        assert "Settings are valid" in result.output
        assert "letter" in result.output

    def test_invalid_settings(self, monkeypatch) -> None:
        monkeypatch.setenv("PDFBUDDY_LAYOUT__PAPER", "tabloid")
        result = runner.invoke(app, ["settings", "validate"])
        assert result.exit_code == 1
        assert "validation failed" in result.output

    def test_show(self) -> None:
        result = runner.invoke(app, ["settings", "show"])
        assert result.exit_code == 0
        assert json.loads(result.stdout)["layout"]["paper"] == "letter"


class TestTemplateCommands:
    def test_seed_list_delete(self) -> None:
        assert runner.invoke(app, ["template", "seed"]).exit_code == 0
        listed = runner.invoke(app, ["template", "list"])
        assert "Confidential" in listed.output
        assert "Draft" in listed.output

        deleted = runner.invoke(app, ["template", "delete", "draft"])
        assert deleted.exit_code == 0
        assert "Draft" not in runner.invoke(app, ["template", "list"]).output

    def test_delete_unknown(self) -> None:
        result = runner.invoke(app, ["template", "delete", "nope"])
        assert result.exit_code == 1

    def test_save_until_limit(self) -> None:
        for name in ("A", "B", "C"):
            result = runner.invoke(app, ["template", "save", name, "--text", name, "--position", "topLeft"])
            assert result.exit_code == 0, result.output
        result = runner.invoke(app, ["template", "save", "D", "--text", "D"])
        assert result.exit_code == 1
        assert "limited to 3" in result.output

    def test_export_import(self, tmp_path) -> None:
        runner.invoke(app, ["template", "seed"])
        target = tmp_path / "templates.json"
        assert runner.invoke(app, ["template", "export", "-o", str(target)]).exit_code == 0
        assert len(json.loads(target.read_text())) == 2

        # Two existing plus two imported exceeds the free limit of three.
        over = runner.invoke(app, ["template", "import", str(target)])
        assert over.exit_code == 1
        assert "limited to 3" in over.output

        runner.invoke(app, ["template", "delete", "Confidential"])
        runner.invoke(app, ["template", "delete", "Draft"])
        result = runner.invoke(app, ["template", "import", str(target)])
        assert result.exit_code == 0, result.output
        assert "Imported 2 template(s)" in result.output

    def test_import_bad_json(self, tmp_path) -> None:
        bad = tmp_path / "bad.json"
        bad.write_text("{not json")
        result = runner.invoke(app, ["template", "import", str(bad)])
        assert result.exit_code == 1
        assert "not valid JSON" in result.output

    def test_preview(self, tmp_path) -> None:
        runner.invoke(app, ["template", "seed"])
        out = tmp_path / "preview.png"
        result = runner.invoke(app, ["template", "preview", "Confidential", "-o", str(out), "--width", "200", "--height", "100"])
        assert result.exit_code == 0, result.output
        assert out.read_bytes()[:8] == b"\x89PNG\r\n\x1a\n"


class TestWatermarkOptions:
    def test_unset_options_keep_defaults(self) -> None:
        config = watermark_from_options("SECRET")
        assert config.text == "SECRET"
        assert config.rotation == -45
        assert config.color == "#FF0000"

    def test_invalid_options_fail_open(self) -> None:
        config = watermark_from_options("X", color="nope", opacity=3.0, position="middle")
        assert config.color == "#FF0000"
        assert config.opacity == 0.5
        assert config.position.value == "center"
