from pathlib import Path

from apiweaver.generator.service import Generator
from apiweaver.generator.validator import SpecValidator, ValidatorConfig, example_problem

FIXTURES = Path(__file__).parent / "fixtures"

MINIMAL = """\
openapi: 3.1.0
info:
  title: t
  version: '1'
paths:
  /a:
    get: {}
"""


def _generated() -> str:
    return Generator().generate((FIXTURES / "tasks-api.md").read_text(encoding="utf-8")).content


class TestValidate:
    def test_generated_spec_is_valid(self):
        result = SpecValidator().validate(_generated())
        assert result.valid
        assert result.errors == []
        assert result.warnings == []

    def test_missing_required_fields(self):
        result = SpecValidator().validate("info: {}\npaths: {/a: {get: {}}}\n")
        assert not result.valid
        assert result.errors == ["Missing 'openapi' field", "Missing 'info.title'", "Missing 'info.version'"]

    def test_swagger_warns(self):
        result = SpecValidator().validate("swagger: '2.0'\ninfo: {title: t, version: '1'}\npaths: {/a: {get: {}}}\n")
        assert result.valid
        assert "consider upgrading" in result.warnings[0]

    def test_no_paths_warns(self):
        result = SpecValidator().validate("openapi: 3.1.0\ninfo: {title: t, version: '1'}\n")
        assert result.valid
        assert result.warnings == ["No 'paths' object found - API has no endpoints"]

    def test_invalid_yaml(self):
        result = SpecValidator().validate("openapi: [3\n")
        assert not result.valid

    def test_extensions_in_strict_mode(self):
        result = SpecValidator(ValidatorConfig(strict_mode=True, allow_extensions=False)).validate(_generated())
        assert any("x-owner" in w for w in result.warnings)
        assert SpecValidator(ValidatorConfig(strict_mode=True)).validate(_generated()).warnings == []

    def test_best_practices(self):
        result = SpecValidator(ValidatorConfig(check_best_practices=True)).validate(MINIMAL)
        assert result.suggestions == [
            "GET /a: consider adding a summary or description",
            "Consider adding examples to improve API usability",
            "Consider using components for reusable schemas",
        ]

    def test_validate_examples(self):
        spec = MINIMAL.replace(
            "get: {}",
            "get:\n      parameters:\n        - {name: q, in: query, schema: {type: integer, example: x}}",
        )
        result = SpecValidator(ValidatorConfig(validate_examples=True)).validate(spec)
        assert any("does not match type 'integer'" in w for w in result.warnings)


class TestExampleProblem:
    def test_fits(self):
        assert example_problem(3, {"type": "integer"}) == ""
        assert example_problem({"id": 1}, {"type": "object", "required": ["id"]}) == ""

    def test_type_mismatch(self):
        assert example_problem(True, {"type": "integer"}) == "does not match type 'integer'"

    def test_enum(self):
        assert example_problem("lost", {"type": "string", "enum": ["open", "done"]}).startswith("is not one of")

    def test_missing_required(self):
        problem = example_problem({}, {"type": "object", "required": ["id"]})
        assert problem == "is missing required properties: id"

    def test_type_list(self):
        assert example_problem(None, {"type": ["string", "null"]}) == ""


class TestValidateMarkdown:
    def test_fixture(self):
        result = SpecValidator().validate_markdown((FIXTURES / "tasks-api.md").read_text(encoding="utf-8"))
        assert result.valid
        assert result.suggestions == []

    def test_frontmatter_suggestion(self):
        result = SpecValidator().validate_markdown("## GET /a\nFetch.\n")
        assert result.valid
        assert result.suggestions == ["Consider adding YAML frontmatter with API metadata"]

    def test_best_practices(self):
        config = ValidatorConfig(check_best_practices=True)
        result = SpecValidator(config).validate_markdown("## GET /a\nFetch.\n")
        assert "Endpoint GET /a is missing a description" in result.suggestions

    def test_errors_make_invalid(self):
        result = SpecValidator().validate_markdown("## GET tasks\n")
        assert not result.valid
        assert "must start with '/'" in result.errors[0]

    def test_broken_frontmatter_not_suggested(self):
        result = SpecValidator().validate_markdown("---\ntitle: [x\n---\n## GET /a\n")
        assert not result.valid
        assert "invalid frontmatter" in result.errors[0]
        assert result.suggestions == []
