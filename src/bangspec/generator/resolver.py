"""Reference resolver.

Turns the type tokens recorded on a DocumentDraft into schemas, coerces
string defaults and examples to the resolved types, and wires security
requirement names to the declared schemes and scopes. Gaps such as a
dangling ``$ref`` are reported as warnings while the output is still
produced.
"""

import math
from http import HTTPStatus
from typing import Any

from bangspec.logging import get_logger
from bangspec.openapi import (
    Components,
    Document,
    Info,
    MediaType,
    OAuthFlow,
    OAuthFlows,
    Operation,
    Parameter,
    PathItem,
    RequestBody,
    Response,
    Schema,
    SecurityRequirement,
    SecurityScheme,
)
from bangspec.parser.base import Diagnostic, SourceLocation

from .assembler import (
    BodyDraft,
    DocumentDraft,
    FieldDraft,
    OperationDraft,
    ParamDraft,
    ResponseDraft,
    SchemaDraft,
    WebhookDraft,
)

logger = get_logger("resolver")

DEFAULT_OPENAPI_VERSION = "3.0.3"
JSON_MEDIA_TYPE = "application/json"

PRIMITIVES = ("string", "integer", "number", "boolean", "object", "null", "array")

# Shorthand type names mapped to (type, format).
FORMAT_ALIASES: dict[str, tuple[str, str]] = {
    "int": ("integer", ""),
    "int32": ("integer", "int32"),
    "int64": ("integer", "int64"),
    "long": ("integer", "int64"),
    "float": ("number", "float"),
    "double": ("number", "double"),
    "bool": ("boolean", ""),
    "str": ("string", ""),
    "date": ("string", "date"),
    "date-time": ("string", "date-time"),
    "datetime": ("string", "date-time"),
    "uuid": ("string", "uuid"),
    "email": ("string", "email"),
    "uri": ("string", "uri"),
    "binary": ("string", "binary"),
    "byte": ("string", "byte"),
    "password": ("string", "password"),
}

OAUTH_FLOWS = ("implicit", "password", "clientCredentials", "authorizationCode")
_TOKEN_URL_FLOWS = ("password", "clientCredentials")


class ReferenceResolver:
    """Resolves one DocumentDraft into an immutable Document."""

    def __init__(self, draft: DocumentDraft, default_version: str = DEFAULT_OPENAPI_VERSION):
        self.draft = draft
        self.version = draft.openapi or default_version
        self.diagnostics: list[Diagnostic] = []
        self._reported_refs: set[str] = set()

    @property
    def supports_type_sets(self) -> bool:
        """OpenAPI 3.1 follows JSON Schema and allows ``type: [T, "null"]``."""
        return _version_tuple(self.version) >= (3, 1)

    def resolve(self) -> tuple[Document, list[Diagnostic]]:
        draft = self.draft
        security_schemes = self._resolve_security_schemes()

        paths: dict[str, dict[str, Operation]] = {}
        for (path, method), operation in draft.operations.items():
            paths.setdefault(path, {})[method.lower()] = self._resolve_operation(operation)

        webhooks = {}
        if draft.webhooks and not self.supports_type_sets:
            first = next(iter(draft.webhooks.values()))
            self.diagnostics.append(
                Diagnostic.warning(f"webhooks require OpenAPI 3.1 or later; document declares {self.version}", first.location)
            )
        for name, webhook in draft.webhooks.items():
            webhooks[name] = PathItem(**{webhook.method: self._resolve_webhook(webhook)})

        schemas = {name: self._resolve_model(schema) for name, schema in draft.schemas.items()}

        document = Document(
            openapi=self.version,
            info=self._resolve_info(),
            servers=list(draft.servers),
            paths={path: PathItem(**operations) for path, operations in paths.items()},
            webhooks=webhooks,
            components=Components(schemas=schemas, security_schemes=security_schemes),
            tags=list(draft.tags),
            external_docs=draft.external_docs,
        )
        logger.debug("resolved document with %d paths, %d warnings", len(document.paths), len(self.diagnostics))
        return document, self.diagnostics

    # Type tokens

    def resolve_type(self, token: str, location: SourceLocation | None = None) -> Schema:
        """Resolve a type token such as ``User``, ``User[]`` or ``int64``."""
        token = token.strip()
        if token.endswith("[]"):
            return Schema.array_of(self.resolve_type(token[:-2], location))
        if "|" in token:
            return self._resolve_union([t for t in token.split("|") if t], location)
        if token in FORMAT_ALIASES:
            type_name, fmt = FORMAT_ALIASES[token]
            return Schema(type=[type_name], format=fmt)
        if token in PRIMITIVES:
            return Schema(type=[token])

        if token not in self.draft.schemas and token not in self._reported_refs:
            self._reported_refs.add(token)
            self.diagnostics.append(
                Diagnostic.warning(f"reference to undeclared schema '{token}' (no !model for it)", location)
            )
        return Schema.reference(token)

    def _resolve_union(self, tokens: list[str], location: SourceLocation | None) -> Schema:
        members = [self.resolve_type(token, location) for token in tokens]
        if not all(_is_plain_primitive(member) for member in members):
            return Schema(one_of=members)

        types: list[str] = []
        for member in members:
            if member.type[0] not in types:
                types.append(member.type[0])
        formats = {member.format for member in members if member.format}
        fmt = formats.pop() if len(formats) == 1 else ""

        if not self.supports_type_sets and "null" in types and len(types) == 2:
            types.remove("null")
            return Schema(type=types, format=fmt, nullable=True)
        return Schema(type=types, format=fmt)

    def _make_nullable(self, schema: Schema) -> Schema:
        if not self.supports_type_sets:
            return self._with_siblings(schema, nullable=True)
        if schema.type:
            if "null" in schema.type:
                return schema
            return schema.model_copy(update={"type": [*schema.type, "null"]})
        return Schema(one_of=[schema, Schema(type=["null"])])

    def _with_siblings(self, schema: Schema, **updates: Any) -> Schema:
        """Attach keywords to a schema; 3.0 ignores ``$ref`` siblings so wrap in allOf."""
        updates = {key: value for key, value in updates.items() if not _is_empty(value)}
        if not updates:
            return schema
        if schema.ref and not self.supports_type_sets:
            return Schema(all_of=[schema], **updates)
        return schema.model_copy(update=updates)

    # Values

    def coerce(self, value: str, schema: Schema, what: str, location: SourceLocation | None) -> Any:
        """Convert a directive string to the schema's primitive type."""
        type_name = _primary_type(schema)
        if type_name == "array" and schema.items is not None:
            return [self.coerce(item.strip(), schema.items, what, location) for item in value.split(",") if item.strip()]
        try:
            if type_name == "integer":
                return int(value)
            if type_name == "number":
                return _parse_number(value)
            if type_name == "boolean":
                return _parse_bool(value)
        except ValueError:
            self.diagnostics.append(
                Diagnostic.warning(f"{what} value '{value}' is not a valid {type_name}; kept as a string", location)
            )
        return value

    def _apply_constraints(
        self,
        schema: Schema,
        constraints: dict[str, str],
        location: SourceLocation | None,
        description: str = "",
    ) -> Schema:
        updates: dict[str, Any] = {"description": description}
        type_name = _primary_type(schema)
        for key in ("default", "example"):
            if key in constraints:
                updates[key] = self.coerce(constraints[key], schema, key, location)
        if "enum" in constraints:
            updates["enum"] = [
                self.coerce(item.strip(), schema, "enum", location) for item in constraints["enum"].split(",")
            ]
        if "format" in constraints:
            updates["format"] = constraints["format"]
        if "pattern" in constraints:
            updates["pattern"] = constraints["pattern"]

        for key, length_key, bound_key in (("min", "min_length", "minimum"), ("max", "max_length", "maximum")):
            if key not in constraints:
                continue
            try:
                if type_name == "string":
                    updates[length_key] = int(constraints[key])
                else:
                    updates[bound_key] = _parse_number(constraints[key])
            except ValueError:
                self.diagnostics.append(
                    Diagnostic.warning(f"{key} value '{constraints[key]}' is not a number; ignored", location)
                )
        for key, length_key in (("minLength", "min_length"), ("maxLength", "max_length")):
            if key in constraints:
                try:
                    updates[length_key] = int(constraints[key])
                except ValueError:
                    self.diagnostics.append(
                        Diagnostic.warning(f"{key} value '{constraints[key]}' is not an integer; ignored", location)
                    )
        return self._with_siblings(schema, **updates)

    # Operations

    def _resolve_operation(self, operation: OperationDraft) -> Operation:
        location = operation.location
        return Operation(
            tags=list(operation.tags),
            summary=operation.summary,
            operation_id=operation.operation_id,
            parameters=[self._resolve_param(param, location) for param in operation.parameters],
            request_body=self._resolve_body(operation.body, location),
            responses={status: self._resolve_response(r, location) for status, r in operation.responses.items()},
            security=[self._resolve_requirement(name, location) for name in operation.security],
        )

    def _resolve_param(self, param: ParamDraft, location: SourceLocation) -> Parameter:
        schema = self.resolve_type(param.type_token, location)
        schema = self._apply_constraints(schema, param.constraints, location)
        if param.nullable:
            schema = self._make_nullable(schema)
        return Parameter(
            name=param.name,
            in_=param.location,
            description=param.description,
            required=param.required or param.location == "path",
            schema_=schema,
        )

    def _resolve_body(self, body: BodyDraft | None, location: SourceLocation) -> RequestBody | None:
        if body is None:
            return None
        return RequestBody(
            description=body.description,
            required=body.required,
            content={JSON_MEDIA_TYPE: MediaType(schema_=self.resolve_type(body.schema_token, location))},
        )

    def _resolve_response(self, response: ResponseDraft, location: SourceLocation) -> Response:
        content = {}
        if response.schema_token:
            content[JSON_MEDIA_TYPE] = MediaType(schema_=self.resolve_type(response.schema_token, location))
        return Response(description=response.description or _reason_phrase(response.status), content=content)

    def _resolve_webhook(self, webhook: WebhookDraft) -> Operation:
        location = webhook.location
        return Operation(
            summary=webhook.description,
            request_body=self._resolve_body(webhook.body, location),
            responses={status: self._resolve_response(r, location) for status, r in webhook.responses.items()},
        )

    # Schemas

    def _resolve_model(self, model: SchemaDraft) -> Schema:
        properties = {name: self._resolve_field(field) for name, field in model.fields.items()}
        own = Schema(type=["object"], properties=properties, required=list(model.required))
        if not model.extends:
            return own.model_copy(update={"description": model.description})
        parents = [self.resolve_type(name, model.location) for name in model.extends]
        parts = parents + [own] if properties or model.required else parents
        return Schema(all_of=parts, description=model.description)

    def _resolve_field(self, field: FieldDraft) -> Schema:
        schema = self.resolve_type(field.type_token, field.location)
        schema = self._apply_constraints(schema, field.constraints, field.location, field.description)
        if field.nullable:
            schema = self._make_nullable(schema)
        return schema

    # Header and security

    def _resolve_info(self) -> Info:
        draft = self.draft
        description = draft.description
        if draft.links:
            lines = ["Some useful links:"] + [f"- [{label}]({url})" for label, url in draft.links]
            links = "\n".join(lines)
            description = f"{description}\n\n{links}" if description else links
        return Info(
            title=draft.title,
            description=description,
            terms_of_service=draft.terms_of_service,
            contact=draft.contact,
            license=draft.license,
            version=draft.version,
        )

    def _resolve_security_schemes(self) -> dict[str, SecurityScheme]:
        draft = self.draft
        for name, location in draft.scope_locations.items():
            if name not in draft.security_schemes:
                self.diagnostics.append(
                    Diagnostic.warning(f"!scope refers to undeclared security scheme '{name}'", location)
                )

        schemes = {}
        for name, scheme in draft.security_schemes.items():
            scopes = dict(draft.scopes.get(name, {}))
            if scheme.type == "apiKey":
                schemes[name] = SecurityScheme(
                    type="apiKey", description=scheme.description, name=name, in_=scheme.location or "header"
                )
            elif scheme.type == "http":
                schemes[name] = SecurityScheme(
                    type="http", description=scheme.description, scheme=scheme.location or "bearer"
                )
            elif scheme.type == "openIdConnect":
                schemes[name] = SecurityScheme(
                    type="openIdConnect", description=scheme.description, open_id_connect_url=scheme.url
                )
            else:
                flows = self._oauth_flows(scheme.location, scheme.url, scopes, scheme.declared_at)
                schemes[name] = SecurityScheme(type="oauth2", description=scheme.description, flows=flows)
        return schemes

    def _oauth_flows(self, flow: str, url: str, scopes: dict[str, str], location: SourceLocation) -> OAuthFlows:
        flow = flow or "implicit"
        if flow not in OAUTH_FLOWS:
            self.diagnostics.append(
                Diagnostic.warning(f"unknown OAuth2 flow '{flow}'; using implicit", location)
            )
            flow = "implicit"
        if flow in _TOKEN_URL_FLOWS:
            oauth_flow = OAuthFlow(token_url=url, scopes=scopes)
        else:
            oauth_flow = OAuthFlow(authorization_url=url, scopes=scopes)
        field_name = {"clientCredentials": "client_credentials", "authorizationCode": "authorization_code"}.get(flow, flow)
        return OAuthFlows(**{field_name: oauth_flow})

    def _resolve_requirement(self, name: str, location: SourceLocation) -> SecurityRequirement:
        if name not in self.draft.security_schemes:
            self.diagnostics.append(
                Diagnostic.warning(f"!secure refers to undeclared security scheme '{name}'", location)
            )
        return {name: list(self.draft.scopes.get(name, {}))}


def resolve(draft: DocumentDraft, default_version: str = DEFAULT_OPENAPI_VERSION) -> tuple[Document, list[Diagnostic]]:
    """Resolve a draft into a finished Document plus warning diagnostics."""
    return ReferenceResolver(draft, default_version=default_version).resolve()


def _is_plain_primitive(schema: Schema) -> bool:
    return len(schema.type) == 1 and schema.type[0] != "array" and not schema.ref


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, (str, list)) and not value)


def _primary_type(schema: Schema) -> str:
    for type_name in schema.type:
        if type_name != "null":
            return type_name
    return ""


def _parse_number(value: str) -> int | float:
    number = float(value)
    if not math.isfinite(number):
        raise ValueError(value)
    if number.is_integer() and "." not in value and "e" not in value.lower():
        return int(number)
    return number


def _parse_bool(value: str) -> bool:
    lowered = value.lower()
    if lowered in ("true", "1", "yes"):
        return True
    if lowered in ("false", "0", "no"):
        return False
    raise ValueError(value)


def _reason_phrase(status: str) -> str:
    try:
        return HTTPStatus(int(status)).phrase
    except ValueError:
        return "Response"


def _version_tuple(version: str) -> tuple[int, ...]:
    parts = []
    for part in version.split(".")[:2]:
        if not part.isdigit():
            break
        parts.append(int(part))
    return tuple(parts)
