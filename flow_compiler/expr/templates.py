"""
Parsing utilities for designer ``{{...}}`` placeholders and their rewrite into
engine ``${...}`` expressions.

The designer lets users drop placeholders such as ``{{txt_welcome.body.text}}``
anywhere in free text. A value that is exactly one placeholder becomes a plain
reference; text mixing literals and placeholders becomes a concatenation
expression with every reference wrapped in ``string()``. Numeric placeholders
such as ``{{1}}`` are message-template parameters and stay literal.
"""

from __future__ import annotations

from dataclasses import dataclass
import json
import re
from typing import Any, Dict, Iterator, List, Sequence

PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*([^{}]+?)\s*\}\}")
POSITIONAL_PARAMETER = re.compile(r"^\d+$")
_NAME = re.compile(r"[^.\[\]]+")
_PROPERTY = re.compile(r"\.([^.\[\]]+)")
_BRACKET = re.compile(r"\[([^\]]*)\]")
_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


@dataclass(frozen=True)
class PathSegment:
    pass


@dataclass(frozen=True)
class PropertySegment(PathSegment):
    key: str


@dataclass(frozen=True)
class IndexSegment(PathSegment):
    index: int | str


@dataclass(frozen=True)
class ReferenceExpr:
    raw: str
    root: str
    segments: Sequence[PathSegment]

    def render(self) -> str:
        parts = [self.root]
        for segment in self.segments:
            if isinstance(segment, PropertySegment):
                if _IDENTIFIER.match(segment.key):
                    parts.append(f".{segment.key}")
                else:
                    parts.append(f"[{json.dumps(segment.key)}]")
            elif isinstance(segment, IndexSegment):
                if isinstance(segment.index, int):
                    parts.append(f"[{segment.index}]")
                else:
                    parts.append(f"[{json.dumps(segment.index)}]")
        return "".join(parts)


@dataclass(frozen=True)
class TemplateLiteral:
    text: str


@dataclass(frozen=True)
class TemplateReference:
    placeholder: str
    reference: ReferenceExpr


TemplateToken = TemplateLiteral | TemplateReference


def parse_reference_string(expr: str) -> ReferenceExpr:
    """
    Split ``root.key[0]['quoted key']`` into a root symbol and accessors.

    Raises ``ValueError`` for empty references and malformed accessors.
    """

    working = expr.strip()
    if not working:
        raise ValueError("Reference cannot be empty")
    root = _NAME.match(working)
    if root is None or not root.group(0).strip():
        raise ValueError(f"Reference '{expr}' is missing a root symbol")

    segments: List[PathSegment] = []
    pos = root.end()
    while pos < len(working):
        prop = _PROPERTY.match(working, pos)
        if prop is not None:
            segments.append(PropertySegment(prop.group(1).strip()))
            pos = prop.end()
            continue
        bracket = _BRACKET.match(working, pos)
        if bracket is None:
            raise ValueError(f"Malformed accessor at offset {pos} in reference '{expr}'")
        segments.append(IndexSegment(_index(bracket.group(1).strip(), expr)))
        pos = bracket.end()

    return ReferenceExpr(raw=expr, root=root.group(0).strip(), segments=tuple(segments))


def _index(token: str, expr: str) -> int | str:
    if not token:
        raise ValueError(f"Empty bracket accessor in reference '{expr}'")
    if len(token) >= 2 and token[0] in {"'", '"'} and token[-1] == token[0]:
        return token[1:-1]
    try:
        return int(token)
    except ValueError as exc:
        raise ValueError(f"Bracket accessor must be an integer or quoted string in '{expr}'") from exc


def is_positional(inner: str) -> bool:
    """Message-template parameters such as ``{{1}}`` belong to the provider, not the flow."""
    return bool(POSITIONAL_PARAMETER.match(inner))


def parse_template(text: str) -> List[TemplateToken]:
    """
    Tokenize ``text`` into literals and references.

    Positional parameters stay inside the surrounding literal.
    """

    tokens: List[TemplateToken] = []
    cursor = 0
    for match in PLACEHOLDER_PATTERN.finditer(text):
        if is_positional(match.group(1)):
            continue
        start, end = match.span()
        if start > cursor:
            tokens.append(TemplateLiteral(text[cursor:start]))
        tokens.append(TemplateReference(placeholder=match.group(0), reference=parse_reference_string(match.group(1))))
        cursor = end
    if cursor < len(text) or not tokens:
        tokens.append(TemplateLiteral(text[cursor:]))
    return tokens


def has_placeholders(text: str) -> bool:
    return any(not is_positional(match.group(1)) for match in PLACEHOLDER_PATTERN.finditer(text))


def single_placeholder(text: str) -> ReferenceExpr | None:
    """Return the reference when ``text`` is exactly one placeholder."""

    tokens = parse_template(text.strip())
    if len(tokens) == 1 and isinstance(tokens[0], TemplateReference):
        return tokens[0].reference
    return None


def to_engine_expression(text: str) -> str:
    """
    Rewrite designer placeholders in ``text`` into an engine expression.

    Text without placeholders is returned unchanged.
    """

    if not has_placeholders(text):
        return text

    reference = single_placeholder(text)
    if reference is not None:
        return f"${{{reference.render()}}}"

    parts: List[str] = []
    for token in parse_template(text):
        if isinstance(token, TemplateLiteral):
            if token.text:
                parts.append(json.dumps(token.text))
        else:
            parts.append(f"string({token.reference.render()})")
    return "${" + " + ".join(parts) + "}"


def transform_value(value: Any) -> Any:
    """Apply ``to_engine_expression`` to every string inside a JSON value."""

    if isinstance(value, str):
        return to_engine_expression(value)
    if isinstance(value, list):
        return [transform_value(item) for item in value]
    if isinstance(value, dict):
        return {key: transform_value(item) for key, item in value.items()}
    return value


def referenced_values(value: Any) -> Dict[str, str]:
    """
    Map every placeholder path found in ``value`` to its engine expression.

    Order follows first appearance; duplicates are dropped.
    """

    found: Dict[str, str] = {}
    for reference in _iterate_references(value):
        path = reference.render()
        found.setdefault(path, f"${{{path}}}")
    return found


def check_placeholders(value: Any) -> None:
    """Raise ``ValueError`` for the first malformed placeholder inside ``value``."""

    for _ in _iterate_references(value):
        pass


def _iterate_references(value: Any) -> Iterator[ReferenceExpr]:
    if isinstance(value, str):
        for token in parse_template(value):
            if isinstance(token, TemplateReference):
                yield token.reference
        return
    if isinstance(value, list):
        for item in value:
            yield from _iterate_references(item)
        return
    if isinstance(value, dict):
        for item in value.values():
            yield from _iterate_references(item)
