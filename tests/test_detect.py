from pathlib import Path

from apiweaver.parser.detect import detect_format

FIXTURES = Path(__file__).parent / "fixtures"


class TestDetectFormat:
    def test_openapi_yaml(self):
        assert detect_format((FIXTURES / "petstore.yaml").read_text()) == "openapi"

    def test_openapi_json(self):
        assert detect_format('{"openapi": "3.1.0", "info": {}}') == "openapi"

    def test_swagger(self):
        assert detect_format("swagger: '2.0'\ninfo: {}\n") == "openapi"

    def test_markdown_with_frontmatter(self):
        assert detect_format((FIXTURES / "tasks-api.md").read_text()) == "markdown"

    def test_plain_yaml_is_not_openapi(self):
        assert detect_format("title: notes\n") == "markdown"

    def test_empty(self):
        assert detect_format("") == "markdown"
