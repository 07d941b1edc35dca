"""OpenAPI 3.x document model.

These are the immutable values handed to serializers and other consumers
once compilation finishes. Field aliases carry the wire names, so
``model_dump(by_alias=True, exclude_defaults=True)`` yields a document in
the standard field order with empty members left out.
"""

from typing import Any, Iterator

from pydantic import BaseModel, ConfigDict, Field, SerializerFunctionWrapHandler, model_serializer

COMPONENT_SCHEMA_PREFIX = "#/components/schemas/"

OPERATION_METHODS = ("get", "put", "post", "delete", "options", "head", "patch", "trace")


class _Node(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)


class Contact(_Node):
    name: str = ""
    url: str = ""
    email: str = ""


class License(_Node):
    name: str
    url: str = ""


class Info(_Node):
    title: str
    description: str = ""
    terms_of_service: str = Field("", alias="termsOfService")
    contact: Contact | None = None
    license: License | None = None
    version: str


class Server(_Node):
    url: str
    description: str = ""


class ExternalDocs(_Node):
    description: str = ""
    url: str


class Tag(_Node):
    name: str
    description: str = ""


class Schema(_Node):
    """A JSON Schema node; ``type`` holds one or more type names."""

    ref: str = Field("", alias="$ref")
    type: list[str] = []
    format: str = ""
    description: str = ""
    nullable: bool = False
    properties: dict[str, "Schema"] = {}
    required: list[str] = []
    items: "Schema | None" = None
    all_of: list["Schema"] = Field([], alias="allOf")
    one_of: list["Schema"] = Field([], alias="oneOf")
    any_of: list["Schema"] = Field([], alias="anyOf")
    enum: list[Any] = []
    minimum: float | None = None
    maximum: float | None = None
    min_length: int | None = Field(None, alias="minLength")
    max_length: int | None = Field(None, alias="maxLength")
    pattern: str = ""
    default: Any = None
    example: Any = None

    @model_serializer(mode="wrap")
    def _serialize(self, handler: SerializerFunctionWrapHandler) -> dict[str, Any]:
        data = handler(self)
        # Single types are written bare; multi-type sets (3.1) as a list.
        if len(data.get("type") or ()) == 1:
            data["type"] = data["type"][0]
        for bound in ("minimum", "maximum"):
            value = data.get(bound)
            if isinstance(value, float) and value.is_integer():
                data[bound] = int(value)
        return data

    @classmethod
    def reference(cls, name: str) -> "Schema":
        return cls(ref=f"{COMPONENT_SCHEMA_PREFIX}{name}")

    @classmethod
    def array_of(cls, items: "Schema") -> "Schema":
        return cls(type=["array"], items=items)

    @property
    def ref_name(self) -> str:
        return self.ref.removeprefix(COMPONENT_SCHEMA_PREFIX)


class MediaType(_Node):
    schema_: Schema | None = Field(None, alias="schema")
    example: Any = None


class Parameter(_Node):
    name: str
    in_: str = Field(alias="in")  # query / path / header / cookie
    description: str = ""
    required: bool = False
    schema_: Schema | None = Field(None, alias="schema")


class RequestBody(_Node):
    description: str = ""
    content: dict[str, MediaType] = {}
    required: bool = False


class Response(_Node):
    description: str
    content: dict[str, MediaType] = {}


SecurityRequirement = dict[str, list[str]]


class Operation(_Node):
    tags: list[str] = []
    summary: str = ""
    description: str = ""
    operation_id: str = Field("", alias="operationId")
    parameters: list[Parameter] = []
    request_body: RequestBody | None = Field(None, alias="requestBody")
    responses: dict[str, Response] = {}
    security: list[SecurityRequirement] = []


class PathItem(_Node):
    get: Operation | None = None
    put: Operation | None = None
    post: Operation | None = None
    delete: Operation | None = None
    options: Operation | None = None
    head: Operation | None = None
    patch: Operation | None = None
    trace: Operation | None = None

    def operations(self) -> dict[str, Operation]:
        """Operations keyed by lowercase method, in OpenAPI field order."""
        result = {}
        for method in OPERATION_METHODS:
            operation = getattr(self, method)
            if operation is not None:
                result[method] = operation
        return result


class OAuthFlow(_Node):
    authorization_url: str = Field("", alias="authorizationUrl")
    token_url: str = Field("", alias="tokenUrl")
    refresh_url: str = Field("", alias="refreshUrl")
    scopes: dict[str, str] = {}


class OAuthFlows(_Node):
    implicit: OAuthFlow | None = None
    password: OAuthFlow | None = None
    client_credentials: OAuthFlow | None = Field(None, alias="clientCredentials")
    authorization_code: OAuthFlow | None = Field(None, alias="authorizationCode")


class SecurityScheme(_Node):
    type: str  # apiKey / http / oauth2 / openIdConnect
    description: str = ""
    name: str = ""
    in_: str = Field("", alias="in")
    scheme: str = ""
    flows: OAuthFlows | None = None
    open_id_connect_url: str = Field("", alias="openIdConnectUrl")


class Components(_Node):
    schemas: dict[str, Schema] = {}
    security_schemes: dict[str, SecurityScheme] = Field({}, alias="securitySchemes")


class Document(_Node):
    """Root OpenAPI document."""

    openapi: str
    info: Info
    servers: list[Server] = []
    paths: dict[str, PathItem] = {}
    webhooks: dict[str, PathItem] = {}
    components: Components = Components()
    tags: list[Tag] = []
    external_docs: ExternalDocs | None = Field(None, alias="externalDocs")

    def operations(self) -> Iterator[tuple[str, str, Operation]]:
        """Yield (path, method, operation) in document order."""
        for path, item in self.paths.items():
            for method, operation in item.operations().items():
                yield path, method, operation

    def to_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_defaults=True)


Schema.model_rebuild()
