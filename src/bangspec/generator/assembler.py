"""Document assembler: merges scope blocks into one document draft.

Header directives overwrite single-valued fields (last write wins) while
servers, tags, security schemes, scopes, links and webhooks accumulate.
Operation and schema blocks are merged per (path, method) and per class.
Conflicts never abort the run: they become error diagnostics and the
first declaration is kept.
"""

from typing import Iterable

from pydantic import BaseModel

from bangspec.logging import get_logger
from bangspec.openapi import Contact, ExternalDocs, License, Server, Tag
from bangspec.parser.base import (
    Annotation,
    AnnotationKind,
    DeclarationKind,
    Diagnostic,
    ScopeBlock,
    ScopeRole,
    SourceLocation,
)

logger = get_logger("assembler")

PARAM_KINDS = (AnnotationKind.QUERY, AnnotationKind.PATH, AnnotationKind.HEADER, AnnotationKind.COOKIE)
CONSTRAINT_ARG_KEYS = ("default", "example", "enum", "format", "min", "max", "minLength", "maxLength", "pattern")


class ParamDraft(BaseModel):
    name: str
    location: str
    type_token: str
    description: str = ""
    required: bool = False
    nullable: bool = False
    constraints: dict[str, str] = {}


class BodyDraft(BaseModel):
    schema_token: str
    description: str = ""
    required: bool = False


class ResponseDraft(BaseModel):
    status: str
    schema_token: str = ""
    description: str = ""


class OperationDraft(BaseModel):
    method: str
    path: str
    operation_id: str
    summary: str = ""
    tags: list[str] = []
    parameters: list[ParamDraft] = []
    body: BodyDraft | None = None
    responses: dict[str, ResponseDraft] = {}
    security: list[str] = []
    location: SourceLocation


class FieldDraft(BaseModel):
    name: str
    type_token: str
    description: str = ""
    nullable: bool = False
    constraints: dict[str, str] = {}
    location: SourceLocation


class SchemaDraft(BaseModel):
    name: str
    description: str = ""
    extends: list[str] = []
    fields: dict[str, FieldDraft] = {}
    required: list[str] = []
    location: SourceLocation


class SecuritySchemeDraft(BaseModel):
    name: str
    type: str
    location: str = ""
    description: str = ""
    url: str = ""
    declared_at: SourceLocation


class WebhookDraft(BaseModel):
    name: str
    method: str
    description: str = ""
    body: BodyDraft | None = None
    responses: dict[str, ResponseDraft] = {}
    location: SourceLocation


class DocumentDraft(BaseModel):
    """Mutable document state owned by one compilation."""

    openapi: str = ""
    title: str = ""
    version: str = ""
    description: str = ""
    terms_of_service: str = ""
    contact: Contact | None = None
    license: License | None = None
    external_docs: ExternalDocs | None = None
    servers: list[Server] = []
    tags: list[Tag] = []
    links: list[tuple[str, str]] = []
    security_schemes: dict[str, SecuritySchemeDraft] = {}
    scopes: dict[str, dict[str, str]] = {}
    scope_locations: dict[str, SourceLocation] = {}
    webhooks: dict[str, WebhookDraft] = {}
    operations: dict[tuple[str, str], OperationDraft] = {}
    schemas: dict[str, SchemaDraft] = {}

    def operation_by_id(self, operation_id: str) -> OperationDraft | None:
        for operation in self.operations.values():
            if operation.operation_id == operation_id:
                return operation
        return None


class DocumentAssembler:
    """Consumes scope blocks in declaration order and builds a DocumentDraft."""

    def __init__(self):
        self.draft = DocumentDraft()
        self.diagnostics: list[Diagnostic] = []
        # class declarations that lost a model name conflict
        self._rejected_models: set[SourceLocation] = set()

    def assemble(self, blocks: Iterable[ScopeBlock]) -> tuple[DocumentDraft, list[Diagnostic]]:
        for block in blocks:
            if block.role == ScopeRole.NONE:
                continue
            annotations = self._split_roles(block)
            if block.role == ScopeRole.API:
                self._apply_api(block, annotations)
            elif block.role == ScopeRole.OPERATION:
                self._apply_operation(block, annotations)
            else:
                self._apply_schema(block, annotations)

        logger.debug(
            "assembled %d operations, %d schemas, %d diagnostics",
            len(self.draft.operations),
            len(self.draft.schemas),
            len(self.diagnostics),
        )
        return self.draft, self.diagnostics

    def _split_roles(self, block: ScopeBlock) -> list[Annotation]:
        kept = [a for a in block.annotations if a.role == block.role]
        foreign = [a for a in block.annotations if a.role != block.role]
        if foreign:
            kinds = ", ".join(_directive_name(a) for a in foreign)
            self.diagnostics.append(
                Diagnostic.error(
                    f"comment block on '{block.declaration}' mixes {block.role.value} directives "
                    f"with other scopes ({kinds}); those directives were ignored",
                    block.location,
                )
            )
        return kept

    # API scope

    def _apply_api(self, block: ScopeBlock, annotations: list[Annotation]) -> None:
        draft = self.draft
        current_webhook: WebhookDraft | None = None
        for a in annotations:
            args = a.args
            if a.kind == AnnotationKind.API:
                draft.openapi = args["version"]
            elif a.kind == AnnotationKind.INFO:
                draft.title = args["title"]
                draft.version = args["version"]
                if args["description"]:
                    draft.description = args["description"]
            elif a.kind == AnnotationKind.CONTACT:
                draft.contact = Contact(name=args["name"], email=args["email"], url=args["url"])
            elif a.kind == AnnotationKind.LICENSE:
                draft.license = License(name=args["name"], url=args["url"])
            elif a.kind == AnnotationKind.TOS:
                draft.terms_of_service = args["url"]
            elif a.kind == AnnotationKind.EXTERNAL_DOCS:
                draft.external_docs = ExternalDocs(url=args["url"], description=args["description"])
            elif a.kind == AnnotationKind.SERVER:
                draft.servers.append(Server(url=args["url"], description=args["description"]))
            elif a.kind == AnnotationKind.TAG:
                self._add_tag(Tag(name=args["name"], description=args["description"]))
            elif a.kind == AnnotationKind.LINK:
                draft.links.append((args["label"], args["url"]))
            elif a.kind == AnnotationKind.SECURITY:
                draft.security_schemes[args["name"]] = SecuritySchemeDraft(
                    name=args["name"],
                    type=args["type"],
                    location=args["location"],
                    description=args["description"],
                    url=args["url"],
                    declared_at=block.location,
                )
            elif a.kind == AnnotationKind.SCOPE:
                draft.scopes.setdefault(args["security"], {})[args["name"]] = args["description"]
                draft.scope_locations.setdefault(args["security"], block.location)
            elif a.kind == AnnotationKind.WEBHOOK:
                current_webhook = self._add_webhook(a, block)
            elif a.kind in (AnnotationKind.WEBHOOK_BODY, AnnotationKind.WEBHOOK_RESPONSE):
                if current_webhook is None:
                    self.diagnostics.append(
                        Diagnostic.warning(f"!{a.kind.value} has no preceding !webhook in its block", block.location)
                    )
                elif a.kind == AnnotationKind.WEBHOOK_BODY:
                    current_webhook.body = BodyDraft(
                        schema_token=args["schema"],
                        description=args["description"],
                        required=a.flag("required"),
                    )
                else:
                    current_webhook.responses[args["status"]] = ResponseDraft(
                        status=args["status"],
                        schema_token=args["schema"],
                        description=args["description"],
                    )

    def _add_tag(self, tag: Tag) -> None:
        tags = self.draft.tags
        for i, existing in enumerate(tags):
            if existing.name == tag.name:
                if tag.description:
                    tags[i] = tag
                return
        tags.append(tag)

    def _add_webhook(self, a: Annotation, block: ScopeBlock) -> WebhookDraft | None:
        name = a.args["name"]
        existing = self.draft.webhooks.get(name)
        if existing is not None:
            self.diagnostics.append(
                Diagnostic.error(
                    f"webhook '{name}' is declared at {block.location} and {existing.location}; "
                    f"keeping the first declaration",
                    block.location,
                )
            )
            return None
        webhook = WebhookDraft(
            name=name,
            method=a.args["method"].lower(),
            description=a.args["description"],
            location=block.location,
        )
        self.draft.webhooks[name] = webhook
        return webhook

    # Operation scope

    def _apply_operation(self, block: ScopeBlock, annotations: list[Annotation]) -> None:
        routes = [a for a in annotations if a.kind == AnnotationKind.ROUTE]
        if not routes:
            self.diagnostics.append(
                Diagnostic.error(
                    f"operation directives on '{block.declaration}' have no route directive (e.g. !GET /path -> id)",
                    block.location,
                )
            )
            return
        for extra in routes[1:]:
            self.diagnostics.append(
                Diagnostic.error(
                    f"'{block.declaration}' declares more than one route; ignoring '{extra.raw_line}'",
                    block.location,
                )
            )

        route = routes[0]
        method, path, operation_id = route.args["method"], route.args["path"], route.args["operationId"]
        existing = self.draft.operations.get((path, method))
        if existing is not None:
            self.diagnostics.append(
                Diagnostic.error(
                    f"duplicate operation {method} {path}: declared at {existing.location} and again at "
                    f"{block.location}; keeping the first declaration",
                    block.location,
                )
            )
            return
        clash = self.draft.operation_by_id(operation_id)
        if clash is not None:
            self.diagnostics.append(
                Diagnostic.error(
                    f"duplicate operationId '{operation_id}': used by {clash.method} {clash.path} at "
                    f"{clash.location} and by {method} {path} at {block.location}; keeping the first declaration",
                    block.location,
                )
            )
            return

        operation = OperationDraft(
            method=method,
            path=path,
            operation_id=operation_id,
            summary=route.args["summary"],
            tags=list(route.tags),
            location=block.location,
        )
        for a in annotations:
            if a.kind in PARAM_KINDS:
                operation.parameters.append(
                    ParamDraft(
                        name=a.args["name"],
                        location=a.args["in"],
                        type_token=a.args["type"],
                        description=a.args["description"],
                        required=a.flag("required"),
                        nullable=a.flag("nullable"),
                        constraints=_constraints(a),
                    )
                )
            elif a.kind == AnnotationKind.BODY:
                operation.body = BodyDraft(
                    schema_token=a.args["schema"],
                    description=a.args["description"],
                    required=a.flag("required"),
                )
            elif a.kind in (AnnotationKind.OK, AnnotationKind.ERROR):
                status = a.args["status"]
                operation.responses[status] = ResponseDraft(
                    status=status,
                    schema_token=a.args["schema"],
                    description=a.args["description"],
                )
            elif a.kind == AnnotationKind.SECURE:
                operation.security.extend(a.tags)

        self.draft.operations[(path, method)] = operation
        logger.debug("operation %s %s -> %s at %s", method, path, operation_id, block.location)

    # Schema scope

    def _apply_schema(self, block: ScopeBlock, annotations: list[Annotation]) -> None:
        if block.declaration_kind == DeclarationKind.FIELD and block.owner:
            owner = block.owner
        else:
            owner = block.declaration
        declared_at = block.owner_location

        if declared_at in self._rejected_models:
            return
        existing = self.draft.schemas.get(owner)
        if existing is not None and existing.location != declared_at:
            self.diagnostics.append(
                Diagnostic.error(
                    f"duplicate model '{owner}': declared at {existing.location} and again at "
                    f"{declared_at}; keeping the first declaration",
                    block.location,
                )
            )
            self._rejected_models.add(declared_at)
            return

        models = [a for a in annotations if a.kind == AnnotationKind.MODEL]
        for extra in models[1:]:
            self.diagnostics.append(
                Diagnostic.error(
                    f"'{owner}' declares more than one model; ignoring '{extra.raw_line}'",
                    block.location,
                )
            )
        if models:
            schema = self._schema_for(owner, declared_at)
            model = models[0]
            schema.description = model.args["description"]
            if "extends" in model.args:
                schema.extends = [name.strip() for name in model.args["extends"].split(",") if name.strip()]

        for a in annotations:
            if a.kind != AnnotationKind.FIELD:
                continue
            schema = self._schema_for(owner, declared_at)
            name = a.args["name"]
            schema.fields[name] = FieldDraft(
                name=name,
                type_token=a.args["type"],
                description=a.args["description"],
                nullable=a.flag("nullable"),
                constraints=_constraints(a),
                location=block.location,
            )
            if a.flag("required") and name not in schema.required:
                schema.required.append(name)

    def _schema_for(self, name: str, location: SourceLocation) -> SchemaDraft:
        schema = self.draft.schemas.get(name)
        if schema is None:
            schema = SchemaDraft(name=name, location=location)
            self.draft.schemas[name] = schema
        return schema


def assemble(blocks: Iterable[ScopeBlock]) -> tuple[DocumentDraft, list[Diagnostic]]:
    """Merge scope blocks, in order, into a document draft plus diagnostics."""
    return DocumentAssembler().assemble(blocks)


def _directive_name(a: Annotation) -> str:
    if a.kind == AnnotationKind.ROUTE:
        return f"!{a.args['method']}"
    return f"!{a.kind.value}"


def _constraints(a: Annotation) -> dict[str, str]:
    return {key: a.args[key] for key in CONSTRAINT_ARG_KEYS if key in a.args}
