from pathlib import Path

from bangspec.compiler import compile_directory, compile_sources
from bangspec.config import CompilerConfig
from bangspec.discover import SourceFile
from bangspec.generator.output import OutputFormat, serialize
from bangspec.parser.base import Severity

FIXTURES = Path(__file__).parent / "fixtures"

MINIMAL = (
    "# !api 3.0.3\n"
    '# !info "T" v1.0.0\n'
    "\n"
    "\n"
    '# !GET /x -> getX "s" #t\n'
    '# !ok User "ok"\n'
    "def get_x():\n"
    "    pass\n"
)


def _petstore() -> SourceFile:
    return SourceFile(path="petstore_api.py", text=(FIXTURES / "petstore_api.py").read_text(encoding="utf-8"))


class TestEndToEnd:
    def test_minimal_document(self):
        result = compile_sources([SourceFile(path="api.py", text=MINIMAL)])
        doc = result.document.to_dict()

        assert doc["openapi"] == "3.0.3"
        assert doc["info"] == {"title": "T", "version": "1.0.0"}
        operation = doc["paths"]["/x"]["get"]
        assert operation["operationId"] == "getX"
        assert operation["summary"] == "s"
        assert operation["tags"] == ["t"]
        assert operation["responses"]["200"] == {
            "description": "ok",
            "content": {"application/json": {"schema": {"$ref": "#/components/schemas/User"}}},
        }
        assert "components" not in doc

        assert len(result.diagnostics) == 1
        assert result.diagnostics[0].severity == Severity.WARNING
        assert "User" in result.diagnostics[0].message
        assert result.has_errors is False

    def test_compilation_is_idempotent(self):
        files = [_petstore(), SourceFile(path="api.py", text=MINIMAL)]
        first = compile_sources(files)
        second = compile_sources(files)
        assert serialize(first.document, OutputFormat.JSON) == serialize(second.document, OutputFormat.JSON)
        assert first.diagnostics == second.diagnostics

    def test_conflicting_operations(self):
        a = SourceFile(path="a.py", text="# !GET /users -> listUsers\ndef list_users():\n    pass\n")
        b = SourceFile(path="b.py", text="# !GET /users -> getUsers\ndef get_users():\n    pass\n")
        result = compile_sources([a, b])

        assert result.document.paths["/users"].get.operation_id == "listUsers"
        assert len(result.errors) == 1
        assert "a.py:2" in result.errors[0].message
        assert "b.py:2" in result.errors[0].message
        assert result.has_errors is True

    def test_syntax_error_is_reported_and_skipped(self):
        broken = SourceFile(path="broken.py", text="def broken(:\n    pass\n")
        good = SourceFile(path="good.py", text="# !GET /ok -> ok\ndef ok():\n    pass\n")
        result = compile_sources([broken, good])

        assert "/ok" in result.document.paths
        assert len(result.errors) == 1
        assert result.errors[0].location.file == "broken.py"

    def test_undecodable_file_is_reported_and_skipped(self, tmp_path):
        (tmp_path / "legacy.py").write_bytes(
            b'# -*- coding: latin-1 -*-\n# !GET /cafes -> listCafes "Caf\xe9s"\ndef cafes():\n    pass\n'
        )
        (tmp_path / "noise.py").write_bytes(b'# !GET /bad -> bad\ndef bad():\n    return "\xff"\n')
        result = compile_directory(tmp_path)

        assert result.document.paths["/cafes"].get.summary == "Cafés"
        assert "/bad" not in result.document.paths
        assert len(result.errors) == 1
        assert result.errors[0].location.file == "noise.py"
        assert "cannot decode source" in result.errors[0].message

    def test_default_version_from_config(self):
        source = SourceFile(path="api.py", text='# !info "T" v1\nX = 1\n')
        result = compile_sources([source], CompilerConfig(openapi_version="3.1.0"))
        assert result.document.openapi == "3.1.0"


class TestPetstore:
    def test_compiles_cleanly(self):
        result = compile_sources([_petstore()])
        assert result.diagnostics == []

    def test_document_shape(self):
        document = compile_sources([_petstore()]).document
        assert document.info.title == "Swagger Petstore - OpenAPI 3.0"
        assert document.info.version == "1.0.27"
        assert [s.url for s in document.servers] == [
            "https://petstore3.swagger.io/api/v3",
            "http://localhost:8080/api/v3",
        ]
        assert [t.name for t in document.tags] == ["pet", "store", "user"]
        assert len(list(document.operations())) == 9
        assert list(document.components.schemas) == [
            "Pet",
            "Category",
            "Tag",
            "Order",
            "User",
            "ApiResponse",
            "InventoryResponse",
            "LoginResponse",
        ]

    def test_pet_schema(self):
        pet = compile_sources([_petstore()]).document.to_dict()["components"]["schemas"]["Pet"]
        assert pet["type"] == "object"
        assert pet["required"] == ["name", "photoUrls"]
        assert pet["properties"]["id"] == {
            "type": "integer",
            "format": "int64",
            "description": "Unique identifier for the pet",
            "example": 10,
        }
        assert pet["properties"]["tags"] == {
            "type": "array",
            "items": {"$ref": "#/components/schemas/Tag"},
            "description": "Tags associated with the pet",
        }
        assert pet["properties"]["status"]["enum"] == ["available", "pending", "sold"]

    def test_find_by_status(self):
        doc = compile_sources([_petstore()]).document.to_dict()
        operation = doc["paths"]["/pet/findByStatus"]["get"]
        assert operation["parameters"][0]["schema"] == {"type": "string", "default": "available"}
        assert operation["responses"]["200"]["content"]["application/json"]["schema"] == {
            "type": "array",
            "items": {"$ref": "#/components/schemas/Pet"},
        }
        assert operation["security"] == [{"petstore_auth": ["write:pets", "read:pets"]}, {"api_key": []}]

    def test_query_bounds(self):
        doc = compile_sources([_petstore()]).document.to_dict()
        limit = doc["paths"]["/user/login"]["get"]["parameters"][2]
        assert limit["schema"] == {"type": "integer", "default": 20, "minimum": 1, "maximum": 100}

    def test_links_and_external_docs(self):
        document = compile_sources([_petstore()]).document
        assert "- [The Pet Store repository](https://github.com/swagger-api/swagger-petstore)" in document.info.description
        assert document.external_docs.url == "https://swagger.io"


class TestCompileDirectory:
    def test_files_compile_in_sorted_order(self, tmp_path):
        (tmp_path / "b.py").write_text("# !GET /users -> fromB\ndef b():\n    pass\n")
        (tmp_path / "a.py").write_text("# !GET /users -> fromA\ndef a():\n    pass\n")
        result = compile_directory(tmp_path)
        assert result.document.paths["/users"].get.operation_id == "fromA"
        assert len(result.errors) == 1

    def test_exclude_from_config(self, tmp_path):
        (tmp_path / "a.py").write_text("# !GET /a -> getA\ndef a():\n    pass\n")
        (tmp_path / "skip.py").write_text("# !GET /b -> getB\ndef b():\n    pass\n")
        result = compile_directory(tmp_path, CompilerConfig(exclude=["skip.py"]))
        assert list(result.document.paths) == ["/a"]
