from pathlib import Path

import pytest

from bangspec.config import CompilerConfig, ConfigError, find_config, load_config


class TestLoadConfig:
    def test_defaults_without_file(self):
        config = load_config(None)
        assert config == CompilerConfig()
        assert config.openapi_version == "3.0.3"
        assert config.format == "auto"

    def test_load_values(self, tmp_path):
        path = tmp_path / ".bangspec.yml"
        path.write_text(
            "source: src\n"
            "output: build/openapi.json\n"
            "format: json\n"
            "openapi_version: 3.1.0\n"
            "exclude:\n"
            "  - migrations\n"
            "strict: true\n"
        )
        config = load_config(path)
        assert config.source == tmp_path / "src"
        assert config.output == tmp_path / "build" / "openapi.json"
        assert config.format == "json"
        assert config.openapi_version == "3.1.0"
        assert config.exclude == ["migrations"]
        assert config.strict is True

    def test_empty_file(self, tmp_path):
        path = tmp_path / ".bangspec.yml"
        path.write_text("")
        assert load_config(path).source == tmp_path / "."

    def test_unknown_key_rejected(self, tmp_path):
        path = tmp_path / ".bangspec.yml"
        path.write_text("colour: blue\n")
        with pytest.raises(ConfigError, match="invalid configuration"):
            load_config(path)

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / ".bangspec.yml"
        path.write_text("exclude: [unclosed\n")
        with pytest.raises(ConfigError, match="invalid YAML"):
            load_config(path)

    def test_top_level_must_be_mapping(self, tmp_path):
        path = tmp_path / ".bangspec.yml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigError, match="mapping"):
            load_config(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="cannot read"):
            load_config(tmp_path / "nope.yml")


class TestFindConfig:
    def test_finds_yml_then_yaml(self, tmp_path):
        assert find_config(tmp_path) is None
        (tmp_path / ".bangspec.yaml").write_text("strict: true\n")
        assert find_config(tmp_path) == tmp_path / ".bangspec.yaml"
        (tmp_path / ".bangspec.yml").write_text("strict: true\n")
        assert find_config(tmp_path) == tmp_path / ".bangspec.yml"

    def test_file_start_uses_parent(self, tmp_path):
        (tmp_path / ".bangspec.yml").write_text("")
        source = tmp_path / "api.py"
        source.write_text("")
        assert find_config(source) == tmp_path / ".bangspec.yml"


class TestCompilerConfigPaths:
    def test_source_is_path(self):
        assert CompilerConfig(source="api").source == Path("api")
