from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from gwkit.errors import DescriptorError

SegmentKind = Literal["literal", "wildcard", "deep_wildcard", "variable"]


@dataclass(frozen=True)
class Segment:
    kind: SegmentKind
    value: str = ""                         # literal text or variable field path
    pattern: tuple["Segment", ...] = ()     # variable sub-pattern, empty means "*"


@dataclass(frozen=True)
class PathTemplate:
    template: str
    segments: tuple[Segment, ...]
    verb: str = ""

    @property
    def fields(self) -> list[str]:
        return [s.value for s in self.segments if s.kind == "variable"]


def _parse_plain(tok: str, template: str) -> Segment:
    if tok == "*":
        return Segment(kind="wildcard")
    if tok == "**":
        return Segment(kind="deep_wildcard")
    if not tok or any(c in tok for c in "{}=*"):
        raise DescriptorError(f"invalid segment {tok!r} in path template {template!r}")
    return Segment(kind="literal", value=tok)


def _split_segments(body: str, template: str) -> list[str]:
    # split on "/" outside of braces
    out: list[str] = []
    depth = 0
    cur: list[str] = []
    for c in body:
        if c == "{":
            depth += 1
        elif c == "}":
            depth -= 1
            if depth < 0:
                raise DescriptorError(f"unbalanced braces in path template {template!r}")
        if c == "/" and depth == 0:
            out.append("".join(cur))
            cur = []
            continue
        cur.append(c)
    if depth != 0:
        raise DescriptorError(f"unbalanced braces in path template {template!r}")
    out.append("".join(cur))
    return out


def _parse_variable(tok: str, template: str) -> Segment:
    inner = tok[1:-1]
    if "{" in inner or "}" in inner:
        raise DescriptorError(f"nested variable in path template {template!r}")
    field_path, _, sub = inner.partition("=")
    if not field_path or not all(p.isidentifier() for p in field_path.split(".")):
        raise DescriptorError(f"invalid variable {tok!r} in path template {template!r}")
    pattern: tuple[Segment, ...] = ()
    if sub:
        pattern = tuple(_parse_plain(p, template) for p in sub.split("/"))
        if pattern == (Segment(kind="wildcard"),):
            pattern = ()
    return Segment(kind="variable", value=field_path, pattern=pattern)


def parse_template(template: str, assume_colon_verb: bool = True) -> PathTemplate:
    """
    Parse an HTTP rule path template.

      /v1/shelves/{shelf}/books/{book.id}
      /v1/{name=shelves/*/books/*}:publish

    With ``assume_colon_verb`` a trailing ``:verb`` after the last segment is
    split off as the custom verb; otherwise the colon stays in the literal.
    """
    if not template.startswith("/"):
        raise DescriptorError(f"path template must start with '/': {template!r}")

    body = template[1:]
    verb = ""
    if assume_colon_verb:
        last_slash = body.rfind("/")
        last_close = body.rfind("}")
        colon = body.rfind(":")
        if colon > max(last_slash, last_close):
            body, verb = body[:colon], body[colon + 1 :]
            if not verb:
                raise DescriptorError(f"empty verb in path template {template!r}")

    segments: list[Segment] = []
    for tok in _split_segments(body, template) if body else []:
        if tok.startswith("{") and tok.endswith("}"):
            segments.append(_parse_variable(tok, template))
        else:
            segments.append(_parse_plain(tok, template))

    seen: set[str] = set()
    for s in segments:
        if s.kind != "variable":
            continue
        if s.value in seen:
            raise DescriptorError(f"field {s.value!r} bound twice in path template {template!r}")
        seen.add(s.value)

    return PathTemplate(template=template, segments=tuple(segments), verb=verb)


def route_key(field_path: str) -> str:
    # path parameter names must be identifiers: shelf.id -> shelf__id
    return field_path.replace(".", "__")


@dataclass(frozen=True)
class RoutePart:
    """One route segment contributed by a path variable."""

    kind: Literal["literal", "param"]
    value: str              # literal text or route parameter name
    deep: bool = False      # param spans several segments (``**``)

    def render(self) -> str:
        if self.kind == "literal":
            return self.value
        return f"{{{self.value}:path}}" if self.deep else f"{{{self.value}}}"


def variable_parts(var: Segment) -> tuple[RoutePart, ...]:
    """
    Route segments of a path variable. The field value is the parts joined
    with "/", route parameters replaced by what they captured.

      {book}                     -> {book}
      {book.name=shelves/*}      -> shelves/{book__name__1}
      {name=files/**}            -> files/{name__1:path}
    """
    key = route_key(var.value)
    if not var.pattern:
        return (RoutePart(kind="param", value=key),)
    parts: list[RoutePart] = []
    for i, s in enumerate(var.pattern):
        if s.kind == "literal":
            parts.append(RoutePart(kind="literal", value=s.value))
        else:
            parts.append(RoutePart(kind="param", value=f"{key}__{i}", deep=s.kind == "deep_wildcard"))
    return tuple(parts)


def route_path(tmpl: PathTemplate) -> str:
    """
    Render a template as a Starlette route path.

      {book}                  -> {book}
      {name=shelves/*}        -> shelves/{name__1}
      *, **                   -> {_w0}, {_w1:path}
    """
    parts: list[str] = []
    anon = 0
    for s in tmpl.segments:
        if s.kind == "literal":
            parts.append(s.value)
        elif s.kind == "variable":
            parts.extend(p.render() for p in variable_parts(s))
        else:
            conv = ":path" if s.kind == "deep_wildcard" else ""
            parts.append(f"{{_w{anon}{conv}}}")
            anon += 1
    path = "/" + "/".join(parts)
    if tmpl.verb:
        path += f":{tmpl.verb}"
    return path
