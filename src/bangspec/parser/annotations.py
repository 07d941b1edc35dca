"""Directive lexer.

Turns the text of one comment block into an ordered list of Annotation
records. Only lines starting with ``!`` are considered; everything else is
prose and is skipped, as is any directive line whose keyword is unknown or
whose body does not fit the grammar for that keyword.
"""

import re
from functools import partial
from typing import Callable

from .base import Annotation, AnnotationKind

HTTP_METHODS = ("GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS", "HEAD", "TRACE")
PARAM_LOCATIONS = ("query", "path", "header", "cookie")
CONSTRAINT_KEYS = ("default", "example", "enum", "format", "min", "max", "minLength", "maxLength", "pattern")

_KEYWORD = re.compile(r"^!([A-Za-z][\w-]*)")
_TYPE_NAME = r"\w[\w-]*(?:\[\])*"
_TYPE_TOKEN = rf"{_TYPE_NAME}(?:\|{_TYPE_NAME})*(?![\w\[\]|-])"

# Header directives: each capture group maps positionally to a key.
_API = re.compile(r"^!api\s+v?(\d[\w.+-]*)")
_INFO = re.compile(r'^!info\s+"([^"]+)"\s+v?(\d[\w.+-]*)(?:\s+"([^"]*)")?')
_CONTACT = re.compile(r'^!contact\s+"([^"]*)"(?:\s+<([^>]+)>)?(?:\s+\(([^)]+)\))?')
_LICENSE = re.compile(r"^!license\s+(\S+)(?:\s+(\S+))?")
_SERVER = re.compile(r'^!server\s+(\S+)(?:\s+"([^"]*)")?')
_TAG = re.compile(r'^!tag\s+(\S+)(?:\s+"([^"]*)")?')
_TOS = re.compile(r"^!tos\s+(\S+)")
_SECURITY = re.compile(
    r'^!security\s+(\w+):(apiKey|oauth2|http|openIdConnect)(?::(\w*))?(?:\s+"([^"]*)")?(?:\s+(\S+))?'
)
_SCOPE = re.compile(r'^!scope\s+(\w+)\s+([\w:./-]+)(?:\s+"([^"]*)")?')
_EXTERNAL_DOCS = re.compile(r'^!externalDocs\s+(\S+)(?:\s+"([^"]*)")?')
_LINK = re.compile(r'^!link\s+"([^"]+)"\s+(\S+)')
_WEBHOOK = re.compile(r'^!webhook\s+(\w+):(get|post|put|delete|patch)(?:\s+"([^"]*)")?')
_WEBHOOK_BODY = re.compile(r'^!webhook-body\s+([^\s"]+)(?:\s+"([^"]*)")?')
_WEBHOOK_RESPONSE = re.compile(r'^!webhook-response\s+(\d{3})\s+([^\s"]+)(?:\s+"([^"]*)")?')

# Operation directives.
_ROUTE = re.compile(rf'^!({"|".join(HTTP_METHODS)})\s+(\S+)\s+->\s+(\S+)(?:\s+"([^"]*)")?')
_PARAM = re.compile(rf'^!({"|".join(PARAM_LOCATIONS)})\s+([\w-]+):({_TYPE_TOKEN})(\?)?(?:\s+"([^"]*)")?')
_BODY = re.compile(r'^!body\s+([^\s"]+)(?:\s+"([^"]*)")?')
_RESPONSE = re.compile(r'^!(ok|error)(?:\s+(\d{3}))?(?:\s+([^\s"]+))?(?:\s+"([^"]*)")?')
_SECURE = re.compile(r"^!secure\s+(.+)")

# Schema directives.
_MODEL = re.compile(r'^!model(?:\s+"([^"]*)")?')
_FIELD = re.compile(rf'^!field\s+([\w-]+):({_TYPE_TOKEN})(\?)?(?:\s+"([^"]*)")?')

_HASHTAG = re.compile(r"#([\w-]+)")

DEFAULT_STATUS = {AnnotationKind.OK: "200", AnnotationKind.ERROR: "500"}

_Parser = Callable[[str], Annotation | None]


def extract(text: str) -> list[Annotation]:
    """Extract every recognised directive from a block of comment text."""
    annotations = []
    for line in text.splitlines():
        annotation = parse_line(line)
        if annotation is not None:
            annotations.append(annotation)
    return annotations


def parse_line(line: str) -> Annotation | None:
    """Parse a single line; returns None for prose and malformed directives."""
    line = line.strip()
    keyword_match = _KEYWORD.match(line)
    if keyword_match is None:
        return None

    keyword = keyword_match.group(1)
    for keywords, parser in _GRAMMARS:
        if keyword in keywords:
            return parser(line)
    return None


def scan_keyword(text: str, key: str) -> str | None:
    """Find ``key=value`` or ``key="quoted value"`` and return the bare value."""
    match = re.search(rf'(?:^|\s){re.escape(key)}=("[^"]*"|\S+)', text)
    if match is None:
        return None
    return match.group(1).strip("\"'")


def _is_required(line: str) -> bool:
    keyword_end = _KEYWORD.match(line).end()
    return " required" in line[keyword_end:]


def _flag(value: bool) -> str:
    return "true" if value else ""


def _scan_constraints(text: str, args: dict[str, str]) -> None:
    for key in CONSTRAINT_KEYS:
        value = scan_keyword(text, key)
        if value is not None:
            args[key] = value


def _parse_simple(kind: AnnotationKind, pattern: re.Pattern, keys: tuple[str, ...], line: str) -> Annotation | None:
    match = pattern.match(line)
    if match is None:
        return None
    args = {key: value or "" for key, value in zip(keys, match.groups())}
    return Annotation(kind=kind, raw_line=line, args=args)


def _parse_route(line: str) -> Annotation | None:
    match = _ROUTE.match(line)
    if match is None:
        return None
    method, path, operation_id, summary = match.groups()
    return Annotation(
        kind=AnnotationKind.ROUTE,
        raw_line=line,
        args={
            "method": method.upper(),
            "path": path,
            "operationId": operation_id,
            "summary": summary or "",
        },
        tags=_HASHTAG.findall(line[match.end():]),
    )


def _parse_param(line: str) -> Annotation | None:
    match = _PARAM.match(line)
    if match is None:
        return None
    location, name, type_token, nullable, description = match.groups()
    args = {
        "in": location,
        "name": name,
        "type": type_token,
        "description": description or "",
        "required": _flag(_is_required(line)),
        "nullable": _flag(bool(nullable)),
    }
    _scan_constraints(line[match.end():], args)
    return Annotation(kind=AnnotationKind(location), raw_line=line, args=args)


def _parse_body(pattern: re.Pattern, kind: AnnotationKind, line: str) -> Annotation | None:
    match = pattern.match(line)
    if match is None:
        return None
    schema, description = match.groups()
    args = {
        "schema": schema,
        "description": description or "",
        "required": _flag(_is_required(line)),
    }
    return Annotation(kind=kind, raw_line=line, args=args)


def _parse_response(line: str) -> Annotation | None:
    match = _RESPONSE.match(line)
    if match is None:
        return None
    keyword, status, schema, description = match.groups()
    kind = AnnotationKind(keyword)
    return Annotation(
        kind=kind,
        raw_line=line,
        args={
            "status": status or DEFAULT_STATUS[kind],
            "schema": schema or "",
            "description": description or "",
        },
    )


def _parse_secure(line: str) -> Annotation | None:
    match = _SECURE.match(line)
    if match is None:
        return None
    names = match.group(1).split()
    return Annotation(
        kind=AnnotationKind.SECURE,
        raw_line=line,
        args={"names": ",".join(names)},
        tags=names,
    )


def _parse_model(line: str) -> Annotation | None:
    match = _MODEL.match(line)
    if match is None:
        return None
    args = {"description": match.group(1) or ""}
    extends = scan_keyword(line[match.end():], "extends")
    if extends is not None:
        args["extends"] = extends
    return Annotation(kind=AnnotationKind.MODEL, raw_line=line, args=args)


def _parse_field(line: str) -> Annotation | None:
    match = _FIELD.match(line)
    if match is None:
        return None
    name, type_token, nullable, description = match.groups()
    args = {
        "name": name,
        "type": type_token,
        "description": description or "",
        "required": _flag(_is_required(line)),
        "nullable": _flag(bool(nullable)),
    }
    _scan_constraints(line[match.end():], args)
    return Annotation(kind=AnnotationKind.FIELD, raw_line=line, args=args)


# Priority order: the first entry whose keyword set contains the line's
# keyword decides the grammar, even if its body then fails to match.
_GRAMMARS: tuple[tuple[frozenset[str], _Parser], ...] = (
    (frozenset({"api"}), partial(_parse_simple, AnnotationKind.API, _API, ("version",))),
    (frozenset({"info"}), partial(_parse_simple, AnnotationKind.INFO, _INFO, ("title", "version", "description"))),
    (frozenset({"contact"}), partial(_parse_simple, AnnotationKind.CONTACT, _CONTACT, ("name", "email", "url"))),
    (frozenset({"license"}), partial(_parse_simple, AnnotationKind.LICENSE, _LICENSE, ("name", "url"))),
    (frozenset({"server"}), partial(_parse_simple, AnnotationKind.SERVER, _SERVER, ("url", "description"))),
    (frozenset({"tag"}), partial(_parse_simple, AnnotationKind.TAG, _TAG, ("name", "description"))),
    (frozenset({"tos"}), partial(_parse_simple, AnnotationKind.TOS, _TOS, ("url",))),
    (
        frozenset({"security"}),
        partial(
            _parse_simple,
            AnnotationKind.SECURITY,
            _SECURITY,
            ("name", "type", "location", "description", "url"),
        ),
    ),
    (frozenset({"scope"}), partial(_parse_simple, AnnotationKind.SCOPE, _SCOPE, ("security", "name", "description"))),
    (
        frozenset({"externalDocs"}),
        partial(_parse_simple, AnnotationKind.EXTERNAL_DOCS, _EXTERNAL_DOCS, ("url", "description")),
    ),
    (frozenset({"link"}), partial(_parse_simple, AnnotationKind.LINK, _LINK, ("label", "url"))),
    (frozenset(HTTP_METHODS), _parse_route),
    (frozenset(PARAM_LOCATIONS), _parse_param),
    (frozenset({"body"}), partial(_parse_body, _BODY, AnnotationKind.BODY)),
    (frozenset({"ok", "error"}), _parse_response),
    (frozenset({"secure"}), _parse_secure),
    (
        frozenset({"webhook"}),
        partial(_parse_simple, AnnotationKind.WEBHOOK, _WEBHOOK, ("name", "method", "description")),
    ),
    (frozenset({"webhook-body"}), partial(_parse_body, _WEBHOOK_BODY, AnnotationKind.WEBHOOK_BODY)),
    (
        frozenset({"webhook-response"}),
        partial(
            _parse_simple,
            AnnotationKind.WEBHOOK_RESPONSE,
            _WEBHOOK_RESPONSE,
            ("status", "schema", "description"),
        ),
    ),
    (frozenset({"model"}), _parse_model),
    (frozenset({"field"}), _parse_field),
)
