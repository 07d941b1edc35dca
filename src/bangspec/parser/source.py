"""Entity associator for Python sources.

Walks module-level declarations in file order and pairs each with the
comment block sitting directly above it. The module itself takes its
docstring plus every comment line above the first declaration, except
the block glued to that declaration.
"""

import ast
import io
import tokenize
from pathlib import Path

from bangspec.logging import get_logger

from .annotations import extract
from .base import DeclarationKind, ScopeBlock, ScopeRole, SourceLocation

logger = get_logger("associator")


def associate(source: str, filename: str = "<string>") -> list[ScopeBlock]:
    """Return one ScopeBlock per declaration, in declaration order.

    Raises SyntaxError when the source cannot be parsed.
    """
    tree = ast.parse(source, filename=filename)
    comments = _collect_comments(source)

    declarations: list[tuple[str, DeclarationKind, int, tuple[str, int] | None]] = []
    for node in tree.body:
        if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
            declarations.append((node.name, DeclarationKind.FUNCTION, _start_line(node), None))
        elif isinstance(node, ast.ClassDef):
            class_line = _start_line(node)
            declarations.append((node.name, DeclarationKind.CLASS, class_line, None))
            for item in node.body:
                field_name = _field_name(item)
                if field_name:
                    declarations.append((field_name, DeclarationKind.FIELD, item.lineno, (node.name, class_line)))

    first_declaration = declarations[0][2] if declarations else None
    blocks = [_module_block(tree, comments, filename, first_declaration)]
    for name, kind, line, owner in declarations:
        text = "\n".join(_preceding_comments(comments, line))
        blocks.append(_make_block(text, name, kind, SourceLocation(file=filename, line=line), owner))

    logger.debug("%s: %d declarations, %d annotated", filename, len(blocks), sum(1 for b in blocks if b.annotations))
    return blocks


def comment_blocks(source: str) -> list[tuple[int, str]]:
    """Group every full-line comment into (first_line, text) runs."""
    comments = _collect_comments(source)
    runs: list[tuple[int, list[str]]] = []
    previous = None
    for line in sorted(comments):
        if previous is not None and line == previous + 1:
            runs[-1][1].append(comments[line])
        else:
            runs.append((line, [comments[line]]))
        previous = line
    return [(start, "\n".join(lines)) for start, lines in runs]


def _make_block(
    text: str,
    name: str,
    kind: DeclarationKind,
    location: SourceLocation,
    owner: tuple[str, int] | None = None,
) -> ScopeBlock:
    annotations = extract(text)
    role = annotations[0].role if annotations else ScopeRole.NONE
    owner_name, owner_line = owner if owner else (None, None)
    return ScopeBlock(
        role=role,
        annotations=annotations,
        declaration=name,
        declaration_kind=kind,
        location=location,
        owner=owner_name,
        owner_line=owner_line,
    )


def _module_block(
    tree: ast.Module,
    comments: dict[int, str],
    filename: str,
    first_declaration: int | None,
) -> ScopeBlock:
    parts = []
    header = _header_comments(comments, first_declaration)
    if header:
        parts.append("\n".join(header))

    docstring = ast.get_docstring(tree)
    if docstring:
        parts.append(docstring)

    name = Path(filename).stem if filename != "<string>" else "<module>"
    return _make_block("\n".join(parts), name, DeclarationKind.MODULE, SourceLocation(file=filename, line=1))


def _collect_comments(source: str) -> dict[int, str]:
    """Map line number to the text of every comment that occupies a whole line."""
    comments = {}
    tokens = tokenize.generate_tokens(io.StringIO(source).readline)
    for tok in tokens:
        if tok.type != tokenize.COMMENT:
            continue
        row, col = tok.start
        if tok.line[:col].strip():
            continue  # trailing comment after code
        text = tok.string[1:]
        if text.startswith(" "):
            text = text[1:]
        comments[row] = text
    return comments


def _header_comments(comments: dict[int, str], first_declaration: int | None) -> list[str]:
    """Comment lines above the first declaration, minus the block glued to it."""
    if first_declaration is None:
        return [comments[line] for line in sorted(comments)]
    glued = first_declaration - 1
    while glued in comments:
        glued -= 1
    return [comments[line] for line in sorted(comments) if line <= glued]


def _preceding_comments(comments: dict[int, str], start_line: int) -> list[str]:
    lines = []
    line = start_line - 1
    while line in comments:
        lines.append(comments[line])
        line -= 1
    lines.reverse()
    return lines


def _start_line(node: ast.FunctionDef | ast.AsyncFunctionDef | ast.ClassDef) -> int:
    lines = [node.lineno] + [decorator.lineno for decorator in node.decorator_list]
    return min(lines)


def _field_name(node: ast.stmt) -> str | None:
    if isinstance(node, ast.AnnAssign) and isinstance(node.target, ast.Name):
        return node.target.id
    if isinstance(node, ast.Assign) and len(node.targets) == 1 and isinstance(node.targets[0], ast.Name):
        return node.targets[0].id
    return None
