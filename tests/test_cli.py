import json
import shutil
from pathlib import Path

import yaml
from click.testing import CliRunner

from bangspec.cli import main

FIXTURES = Path(__file__).parent / "fixtures"


def _project(tmp_path: Path) -> Path:
    src = tmp_path / "src"
    src.mkdir()
    shutil.copy(FIXTURES / "petstore_api.py", src / "petstore_api.py")
    return src


class TestCliGenerate:
    def test_generate_yaml(self, tmp_path):
        src = _project(tmp_path)
        output_file = tmp_path / "out" / "openapi.yaml"
        runner = CliRunner()
        result = runner.invoke(main, ["generate", str(src), "-o", str(output_file)])

        assert result.exit_code == 0, result.output
        assert output_file.exists()
        document = yaml.safe_load(output_file.read_text(encoding="utf-8"))
        assert document["openapi"] == "3.0.3"
        assert "/pet/{petId}" in document["paths"]

    def test_generate_json_from_extension(self, tmp_path):
        src = _project(tmp_path)
        output_file = tmp_path / "openapi.json"
        result = CliRunner().invoke(main, ["generate", str(src), "-o", str(output_file)])

        assert result.exit_code == 0, result.output
        document = json.loads(output_file.read_text(encoding="utf-8"))
        assert document["info"]["title"] == "Swagger Petstore - OpenAPI 3.0"

    def test_explicit_format_overrides_extension(self, tmp_path):
        src = _project(tmp_path)
        output_file = tmp_path / "openapi.txt"
        result = CliRunner().invoke(main, ["generate", str(src), "-o", str(output_file), "--format", "json"])

        assert result.exit_code == 0, result.output
        assert json.loads(output_file.read_text(encoding="utf-8"))["openapi"] == "3.0.3"

    def test_errors_exit_non_zero(self, tmp_path):
        (tmp_path / "a.py").write_text("# !GET /users -> listUsers\ndef a():\n    pass\n")
        (tmp_path / "b.py").write_text("# !GET /users -> getUsers\ndef b():\n    pass\n")
        output_file = tmp_path / "openapi.yaml"
        result = CliRunner().invoke(main, ["generate", str(tmp_path), "-o", str(output_file)])

        assert result.exit_code == 1
        assert output_file.exists()
        assert "duplicate operation GET /users" in result.output

    def test_strict_fails_on_warnings(self, tmp_path):
        (tmp_path / "api.py").write_text("# !GET /x -> getX\n# !ok Ghost\ndef f():\n    pass\n")
        output_file = tmp_path / "openapi.yaml"
        args = ["generate", str(tmp_path), "-o", str(output_file)]

        assert CliRunner().invoke(main, args).exit_code == 0
        assert CliRunner().invoke(main, args + ["--strict"]).exit_code == 1

    def test_exclude(self, tmp_path):
        (tmp_path / "a.py").write_text("# !GET /a -> getA\ndef a():\n    pass\n")
        (tmp_path / "b.py").write_text("# !GET /b -> getB\ndef b():\n    pass\n")
        output_file = tmp_path / "openapi.json"
        result = CliRunner().invoke(main, ["generate", str(tmp_path), "-o", str(output_file), "--exclude", "b.py"])

        assert result.exit_code == 0, result.output
        assert list(json.loads(output_file.read_text(encoding="utf-8"))["paths"]) == ["/a"]

    def test_config_file(self, tmp_path):
        _project(tmp_path)
        (tmp_path / ".bangspec.yml").write_text("source: src\noutput: spec/openapi.json\nindent: 4\n")
        result = CliRunner().invoke(main, ["generate", "--config", str(tmp_path / ".bangspec.yml")])

        assert result.exit_code == 0, result.output
        output_file = tmp_path / "spec" / "openapi.json"
        assert output_file.exists()
        assert '\n    "openapi"' in output_file.read_text(encoding="utf-8")

    def test_invalid_config(self, tmp_path):
        (tmp_path / ".bangspec.yml").write_text("unknown: 1\n")
        result = CliRunner().invoke(main, ["generate", str(tmp_path), "-o", str(tmp_path / "o.yaml")])

        assert result.exit_code == 1
        assert "invalid configuration" in result.output


class TestCliCheck:
    def test_check_clean_project(self, tmp_path):
        src = _project(tmp_path)
        result = CliRunner().invoke(main, ["check", str(src)])

        assert result.exit_code == 0, result.output
        assert "9 operations, 8 schemas" in result.output
        assert not list(tmp_path.glob("*.yaml"))

    def test_check_reports_errors(self, tmp_path):
        (tmp_path / "api.py").write_text("# !query q:string\ndef f():\n    pass\n")
        result = CliRunner().invoke(main, ["check", str(tmp_path)])

        assert result.exit_code == 1
        assert "api.py:2: error:" in result.output

    def test_check_survives_undecodable_file(self, tmp_path):
        _project(tmp_path)
        (tmp_path / "src" / "legacy.py").write_bytes(b"X = '\xff'\n")
        result = CliRunner().invoke(main, ["check", str(tmp_path / "src")])

        assert result.exit_code == 1
        assert "legacy.py:1: error: cannot decode source" in result.output
        assert "9 operations, 8 schemas" in result.output


class TestCliLex:
    def test_lex_prints_directives(self):
        result = CliRunner().invoke(main, ["lex", str(FIXTURES / "petstore_api.py")])

        assert result.exit_code == 0, result.output
        assert "petstore_api.py:7: api version='3.0.3'" in result.output
        assert "route method='GET' path='/pet/{petId}' operationId='getPetById' summary='Find pet by ID' #pet" in result.output

    def test_lex_requires_existing_file(self, tmp_path):
        result = CliRunner().invoke(main, ["lex", str(tmp_path / "missing.py")])
        assert result.exit_code == 2

    def test_lex_honours_coding_declaration(self, tmp_path):
        path = tmp_path / "legacy.py"
        path.write_bytes(b'# -*- coding: latin-1 -*-\n# !tag caf\xe9s "Caf\xe9s"\nX = 1\n')
        result = CliRunner().invoke(main, ["lex", str(path)])

        assert result.exit_code == 0, result.output
        assert "legacy.py:2: tag name='cafés' description='Cafés'" in result.output

    def test_lex_undecodable_file(self, tmp_path):
        path = tmp_path / "broken.py"
        path.write_bytes(b"X = '\xff'\n")
        result = CliRunner().invoke(main, ["lex", str(path)])

        assert result.exit_code == 1
        assert "cannot decode" in result.output
