import pytest

from apiweaver.config import Settings, load_config
from apiweaver.errors import ConfigError


class TestSettings:
    def test_defaults(self):
        settings = Settings()
        assert settings.strict_mode is False
        assert settings.allow_breaking_changes is False
        assert settings.max_errors == 100
        assert settings.output_format == "yaml"
        assert "DELETE" in settings.allowed_methods

    def test_methods_uppercased(self):
        assert Settings(allowed_methods=["get", " post "]).allowed_methods == ["GET", "POST"]


class TestLoadConfig:
    def test_file_values(self, tmp_path):
        path = tmp_path / "apiweaver.yaml"
        path.write_text("strict_mode: true\nmax_errors: 5\noutput_format: JSON\n")
        settings = load_config(path, environ={})
        assert settings.strict_mode is True
        assert settings.max_errors == 5
        assert settings.output_format == "json"

    def test_environment_overrides_file(self, tmp_path):
        path = tmp_path / "apiweaver.yaml"
        path.write_text("max_errors: 5\n")
        settings = load_config(path, environ={"APIWEAVER_MAX_ERRORS": "7", "APIWEAVER_ALLOWED_METHODS": "get,put"})
        assert settings.max_errors == 7
        assert settings.allowed_methods == ["GET", "PUT"]

    def test_no_file_uses_defaults(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        assert load_config(environ={}) == Settings()

    def test_default_file_in_cwd(self, tmp_path, monkeypatch):
        (tmp_path / "apiweaver.yml").write_text("allow_breaking_changes: true\n")
        monkeypatch.chdir(tmp_path)
        assert load_config(environ={}).allow_breaking_changes is True

    def test_invalid_value_names_field(self, tmp_path):
        path = tmp_path / "apiweaver.yaml"
        path.write_text("max_errors: -1\n")
        with pytest.raises(ConfigError) as exc:
            load_config(path, environ={})
        assert exc.value.field == "max_errors"

    def test_invalid_env_value(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        with pytest.raises(ConfigError, match="output_format"):
            load_config(environ={"APIWEAVER_OUTPUT_FORMAT": "xml"})

    def test_unknown_key(self, tmp_path):
        path = tmp_path / "apiweaver.yaml"
        path.write_text("colour: blue\n")
        with pytest.raises(ConfigError, match="unknown keys: colour"):
            load_config(path, environ={})

    def test_non_mapping_file(self, tmp_path):
        path = tmp_path / "apiweaver.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigError, match="must contain a mapping"):
            load_config(path, environ={})
