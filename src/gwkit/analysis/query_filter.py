from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional, Sequence, Union

from gwkit.descriptor.model import Body, Message, Parameter
from gwkit.trie.double_array import DoubleArray

FieldPathLike = Union[str, Sequence[str]]


def _segments(path: FieldPathLike) -> tuple[str, ...]:
    if isinstance(path, str):
        return tuple(path.split(".")) if path else ()
    return tuple(path)


@dataclass(frozen=True)
class QueryFilter:
    """
    Field paths of a request that may arrive as query-string parameters,
    i.e. everything not consumed by the body or bound by the path.
    """

    free: tuple[tuple[str, ...], ...]
    consumed: tuple[tuple[str, ...], ...]
    repeated: tuple[str, ...]
    trie: DoubleArray

    @property
    def free_fields(self) -> list[str]:
        return [".".join(p) for p in self.free]

    def accepts(self, path: FieldPathLike) -> bool:
        """A free field itself, or anything nested below one."""
        return self.trie.has_common_prefix(_segments(path))

    def literal(self, qualifier: str = "") -> str:
        return self.trie.literal(qualifier)


def consumed_paths(body: Optional[Body], params: Iterable[Parameter]) -> list[tuple[str, ...]]:
    out: list[tuple[str, ...]] = []
    if body is not None and not body.is_wildcard:
        out.append(body.field_path.segments)
    for p in params:
        seg = p.field_path.segments
        if seg not in out:
            out.append(seg)
    return out


def _free_paths(
    msg: Message,
    consumed: list[tuple[str, ...]],
    prefix: tuple[str, ...],
    repeated: list[str],
) -> list[tuple[str, ...]]:
    out: list[tuple[str, ...]] = []
    for f in msg.fields:
        path = prefix + (f.name,)
        if path in consumed:
            continue
        through = any(len(c) > len(path) and c[: len(path)] == path for c in consumed)
        if through and f.message_type is not None:
            # partially consumed: only the untouched sub-fields stay free
            out.extend(_free_paths(f.message_type, consumed, path, repeated))
            continue
        out.append(path)
        if f.repeated:
            repeated.append(".".join(path))
        elif f.message_type is not None:
            repeated.extend(_nested_repeated(f.message_type, path, frozenset({id(msg), id(f.message_type)})))
    return out


def _nested_repeated(msg: Message, prefix: tuple[str, ...], visiting: frozenset[int]) -> list[str]:
    # repeated fields below a free message field; recursive messages stop at the first cycle
    out: list[str] = []
    for f in msg.fields:
        path = prefix + (f.name,)
        if f.repeated:
            out.append(".".join(path))
        elif f.message_type is not None and id(f.message_type) not in visiting:
            out.extend(_nested_repeated(f.message_type, path, visiting | {id(f.message_type)}))
    return out


def synthesize(
    request: Message,
    body: Optional[Body],
    params: Iterable[Parameter],
) -> Optional[QueryFilter]:
    """
    Build the query filter for one binding, or None when the binding takes
    no query parameters: the body is ``*`` or nothing is left after removing
    the body and path fields.
    """
    if body is not None and body.is_wildcard:
        return None

    consumed = consumed_paths(body, params)
    repeated: list[str] = []
    free = _free_paths(request, consumed, (), repeated)
    if not free:
        return None

    return QueryFilter(
        free=tuple(free),
        consumed=tuple(consumed),
        repeated=tuple(repeated),
        trie=DoubleArray.build(free),
    )
