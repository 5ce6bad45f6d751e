import json
import shutil
from pathlib import Path

import yaml
from click.testing import CliRunner

from apiweaver.cli import main

FIXTURES = Path(__file__).parent / "fixtures"


def _copy(name: str, tmp_path: Path, target: str | None = None) -> Path:
    dest = tmp_path / (target or name)
    shutil.copy(FIXTURES / name, dest)
    return dest


class TestCliGenerate:
    def test_generate_to_stdout(self):
        runner = CliRunner()
        result = runner.invoke(main, ["generate", str(FIXTURES / "tasks-api.md")])

        assert result.exit_code == 0
        spec = yaml.safe_load(result.output)
        assert spec["openapi"] == "3.1.0"
        assert list(spec["paths"]) == ["/tasks", "/tasks/{id}"]

    def test_generate_json_file(self, tmp_path):
        output_file = tmp_path / "out" / "openapi.json"
        runner = CliRunner()
        result = runner.invoke(main, ["generate", str(FIXTURES / "tasks-api.md"), "-o", str(output_file), "-f", "json"])

        assert result.exit_code == 0
        assert "Generated 3 endpoints and 3 components" in result.output
        assert json.loads(output_file.read_text())["info"]["title"] == "Tasks API"

    def test_generate_strict_fails(self, tmp_path):
        doc = tmp_path / "api.md"
        doc.write_text("## GET tasks\n\n## GET /ok\n")
        runner = CliRunner()
        result = runner.invoke(main, ["generate", str(doc), "--strict", "-o", str(tmp_path / "out.yaml")])

        assert result.exit_code == 1
        assert "parsing failed" in result.output
        assert not (tmp_path / "out.yaml").exists()

    def test_generate_reports_diagnostics_by_severity(self, tmp_path):
        doc = tmp_path / "api.md"
        doc.write_text("## GET tasks\n\n## GET /ok\n")
        output_file = tmp_path / "out.yaml"
        runner = CliRunner()
        result = runner.invoke(main, ["generate", str(doc), "-o", str(output_file)])

        assert result.exit_code == 0
        assert "ERRORS:" in result.output
        assert "must start with '/'" in result.output
        assert list(yaml.safe_load(output_file.read_text())["paths"]) == ["/ok"]

    def test_generate_unterminated_fence(self, tmp_path):
        doc = tmp_path / "api.md"
        doc.write_text("## GET /a\n```json\n{}\n")
        runner = CliRunner()
        result = runner.invoke(main, ["generate", str(doc)])

        assert result.exit_code == 1
        assert "cannot parse markdown" in result.output

    def test_invalid_config(self, tmp_path):
        config = tmp_path / "apiweaver.yaml"
        config.write_text("max_errors: -1\n")
        runner = CliRunner()
        result = runner.invoke(main, ["generate", str(FIXTURES / "tasks-api.md"), "-c", str(config)])

        assert result.exit_code == 1
        assert "configuration error in field 'max_errors'" in result.output


class TestCliAmend:
    def test_amend_to_output_file(self, tmp_path):
        spec = _copy("tasks-api.md", tmp_path)
        output_file = tmp_path / "openapi.yaml"
        runner = CliRunner()
        result = runner.invoke(main, ["amend", str(spec), "-c", str(FIXTURES / "changes.md"), "-o", str(output_file)])

        assert result.exit_code == 0
        assert "Applied 6 changes:" in result.output
        assert "added endpoint DELETE /tasks/{id}" in result.output
        amended = yaml.safe_load(output_file.read_text())
        assert "delete" in amended["paths"]["/tasks/{id}"]
        assert "NotFound" not in amended["components"].get("responses", {})

    def test_amend_overwrites_input_by_default(self, tmp_path):
        spec = _copy("petstore.yaml", tmp_path)
        changes = tmp_path / "changes.md"
        changes.write_text("## Remove Endpoint POST /pets\n")
        runner = CliRunner()
        result = runner.invoke(main, ["amend", str(spec), "--changes", str(changes)])

        assert result.exit_code == 0
        amended = yaml.safe_load(spec.read_text())
        assert amended["openapi"] == "3.1.0"
        assert list(amended["paths"]["/pets"]) == ["get"]

    def test_amend_format_from_suffix(self, tmp_path):
        spec = _copy("petstore.yaml", tmp_path)
        changes = tmp_path / "changes.md"
        changes.write_text("## Modify Endpoint GET /pets\n- summary: List all pets\n")
        output_file = tmp_path / "openapi.json"
        runner = CliRunner()
        result = runner.invoke(main, ["amend", str(spec), "-c", str(changes), "-o", str(output_file)])

        assert result.exit_code == 0
        assert json.loads(output_file.read_text())["paths"]["/pets"]["get"]["summary"] == "List all pets"

    def test_dry_run_writes_nothing(self, tmp_path):
        spec = _copy("tasks-api.md", tmp_path)
        before = spec.read_text()
        runner = CliRunner()
        result = runner.invoke(main, ["amend", str(spec), "-c", str(FIXTURES / "changes.md"), "--dry-run"])

        assert result.exit_code == 0
        assert "Would apply 6 changes:" in result.output
        assert "Dry run: no files written." in result.output
        assert spec.read_text() == before

    def test_conflict_exits_nonzero(self, tmp_path):
        spec = _copy("petstore.yaml", tmp_path)
        changes = tmp_path / "changes.md"
        changes.write_text("## Add Endpoint GET /pets\nDuplicate.\n")
        output_file = tmp_path / "openapi.yaml"
        runner = CliRunner()
        result = runner.invoke(main, ["amend", str(spec), "-c", str(changes), "-o", str(output_file)])

        assert result.exit_code == 1
        assert "Conflicts:" in result.output
        assert output_file.exists()

    def test_allow_breaking_accepts_conflict(self, tmp_path):
        spec = _copy("petstore.yaml", tmp_path)
        changes = tmp_path / "changes.md"
        changes.write_text("## Add Endpoint GET /pets\nDuplicate.\n")
        output_file = tmp_path / "openapi.yaml"
        runner = CliRunner()
        result = runner.invoke(
            main, ["amend", str(spec), "-c", str(changes), "-o", str(output_file), "--allow-breaking"]
        )

        assert result.exit_code == 0
        assert yaml.safe_load(output_file.read_text())["paths"]["/pets"]["get"]["summary"] == "Duplicate."

    def test_changes_required(self, tmp_path):
        spec = _copy("petstore.yaml", tmp_path)
        runner = CliRunner()
        result = runner.invoke(main, ["amend", str(spec)])
        assert result.exit_code == 2


class TestCliValidate:
    def test_validate_markdown(self):
        runner = CliRunner()
        result = runner.invoke(main, ["validate", str(FIXTURES / "tasks-api.md")])

        assert result.exit_code == 0
        assert result.output.startswith("Valid")

    def test_validate_openapi_json_report(self):
        runner = CliRunner()
        result = runner.invoke(main, ["validate", str(FIXTURES / "petstore.yaml"), "--format", "json", "--best-practices"])

        assert result.exit_code == 0
        report = json.loads(result.output)
        assert report["valid"] is True
        assert report["errors"] == []

    def test_validate_invalid(self, tmp_path):
        doc = tmp_path / "api.md"
        doc.write_text("## GET tasks\n")
        runner = CliRunner()
        result = runner.invoke(main, ["validate", str(doc), "-t", "markdown"])

        assert result.exit_code == 1
        assert "Invalid" in result.output
        assert "must start with '/'" in result.output
