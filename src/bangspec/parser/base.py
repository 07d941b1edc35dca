"""Shared data models for the directive front end.

The lexer turns comment text into Annotation records, the associator
groups them into ScopeBlocks, and every later stage reports anomalies
as Diagnostic values instead of raising.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict


class AnnotationKind(str, Enum):
    """Closed set of directive kinds recognised by the lexer."""

    API = "api"
    INFO = "info"
    CONTACT = "contact"
    LICENSE = "license"
    SERVER = "server"
    TAG = "tag"
    TOS = "tos"
    SECURITY = "security"
    SCOPE = "scope"
    EXTERNAL_DOCS = "externalDocs"
    LINK = "link"
    WEBHOOK = "webhook"
    WEBHOOK_BODY = "webhook-body"
    WEBHOOK_RESPONSE = "webhook-response"

    ROUTE = "route"
    QUERY = "query"
    PATH = "path"
    HEADER = "header"
    COOKIE = "cookie"
    BODY = "body"
    OK = "ok"
    ERROR = "error"
    SECURE = "secure"

    MODEL = "model"
    FIELD = "field"


class ScopeRole(str, Enum):
    """Semantic role of a comment block, decided by its first directive."""

    API = "api"
    OPERATION = "operation"
    SCHEMA = "schema"
    NONE = "none"


ROLE_BY_KIND: dict[AnnotationKind, ScopeRole] = {
    AnnotationKind.API: ScopeRole.API,
    AnnotationKind.INFO: ScopeRole.API,
    AnnotationKind.CONTACT: ScopeRole.API,
    AnnotationKind.LICENSE: ScopeRole.API,
    AnnotationKind.SERVER: ScopeRole.API,
    AnnotationKind.TAG: ScopeRole.API,
    AnnotationKind.TOS: ScopeRole.API,
    AnnotationKind.SECURITY: ScopeRole.API,
    AnnotationKind.SCOPE: ScopeRole.API,
    AnnotationKind.EXTERNAL_DOCS: ScopeRole.API,
    AnnotationKind.LINK: ScopeRole.API,
    AnnotationKind.WEBHOOK: ScopeRole.API,
    AnnotationKind.WEBHOOK_BODY: ScopeRole.API,
    AnnotationKind.WEBHOOK_RESPONSE: ScopeRole.API,
    AnnotationKind.ROUTE: ScopeRole.OPERATION,
    AnnotationKind.QUERY: ScopeRole.OPERATION,
    AnnotationKind.PATH: ScopeRole.OPERATION,
    AnnotationKind.HEADER: ScopeRole.OPERATION,
    AnnotationKind.COOKIE: ScopeRole.OPERATION,
    AnnotationKind.BODY: ScopeRole.OPERATION,
    AnnotationKind.OK: ScopeRole.OPERATION,
    AnnotationKind.ERROR: ScopeRole.OPERATION,
    AnnotationKind.SECURE: ScopeRole.OPERATION,
    AnnotationKind.MODEL: ScopeRole.SCHEMA,
    AnnotationKind.FIELD: ScopeRole.SCHEMA,
}


class Annotation(BaseModel):
    """A single recognised directive line."""

    model_config = ConfigDict(frozen=True)

    kind: AnnotationKind
    raw_line: str
    args: dict[str, str] = {}
    tags: list[str] = []

    @property
    def role(self) -> ScopeRole:
        return ROLE_BY_KIND[self.kind]

    def flag(self, key: str) -> bool:
        """True when a boolean attribute such as ``required`` was set."""
        return self.args.get(key) == "true"


class DeclarationKind(str, Enum):
    MODULE = "module"
    FUNCTION = "function"
    CLASS = "class"
    FIELD = "field"


class SourceLocation(BaseModel):
    model_config = ConfigDict(frozen=True)

    file: str
    line: int

    def __str__(self) -> str:
        return f"{self.file}:{self.line}"


class ScopeBlock(BaseModel):
    """Annotations attached to one declaration, tagged with their role."""

    role: ScopeRole
    annotations: list[Annotation]
    declaration: str
    declaration_kind: DeclarationKind
    location: SourceLocation
    owner: str | None = None  # enclosing class name for fields
    owner_line: int | None = None

    @property
    def owner_location(self) -> SourceLocation:
        """Location of the class a field belongs to, or of the declaration itself."""
        if self.owner_line is None:
            return self.location
        return SourceLocation(file=self.location.file, line=self.owner_line)


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


class Diagnostic(BaseModel):
    """A non-fatal anomaly found while compiling."""

    model_config = ConfigDict(frozen=True)

    severity: Severity
    message: str
    location: SourceLocation | None = None

    @classmethod
    def error(cls, message: str, location: SourceLocation | None = None) -> "Diagnostic":
        return cls(severity=Severity.ERROR, message=message, location=location)

    @classmethod
    def warning(cls, message: str, location: SourceLocation | None = None) -> "Diagnostic":
        return cls(severity=Severity.WARNING, message=message, location=location)

    @property
    def is_error(self) -> bool:
        return self.severity == Severity.ERROR

    def __str__(self) -> str:
        prefix = f"{self.location}: " if self.location else ""
        return f"{prefix}{self.severity.value}: {self.message}"


def has_errors(diagnostics: list[Diagnostic]) -> bool:
    return any(d.is_error for d in diagnostics)
