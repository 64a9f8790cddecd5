"""
Helpers called by generated gateway handlers at request time.

Generated modules import this as ``from gwkit import runtime``; everything
here works on plain JSON-shaped payload dicts that are later fed to
``json_format.ParseDict``.
"""

from __future__ import annotations

from typing import Any, Iterable, Mapping, Optional

from gwkit.trie.double_array import DoubleArray

__all__ = [
    "DoubleArray",
    "convert_query_value",
    "field_mask_from_body",
    "merge_body",
    "populate_query_parameters",
    "resolve_query_key",
    "set_field",
    "split_repeated",
]


def set_field(payload: dict[str, Any], field_path: str, value: Any) -> None:
    """Set ``a.b.c`` in a nested payload dict, creating intermediate dicts."""
    *parents, leaf = field_path.split(".")
    cur = payload
    for name in parents:
        nxt = cur.get(name)
        if not isinstance(nxt, dict):
            nxt = {}
            cur[name] = nxt
        cur = nxt
    cur[leaf] = value


def merge_body(payload: dict[str, Any], body: Any) -> None:
    if not isinstance(body, Mapping):
        raise ValueError("request body must be a JSON object")
    for key, value in body.items():
        payload[key] = value


def split_repeated(raw: str, separator: str) -> list[str]:
    if raw == "":
        return []
    return raw.split(separator)


def _lower_camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(p[:1].upper() + p[1:] for p in rest)


def _mask_paths(body: Mapping[str, Any], prefix: str) -> list[str]:
    out: list[str] = []
    for key, value in body.items():
        path = f"{prefix}.{_lower_camel(key)}" if prefix else _lower_camel(key)
        if isinstance(value, Mapping) and value:
            out.extend(_mask_paths(value, path))
        else:
            out.append(path)
    return out


def field_mask_from_body(body: Any) -> str:
    """
    FieldMask (JSON form) naming every leaf present in a PATCH body.

      {"title": "x", "author": {"display_name": "y"}} -> "title,author.displayName"
    """
    if not isinstance(body, Mapping):
        return ""
    return ",".join(_mask_paths(body, ""))
_TRUE = frozenset({"true", "t", "1"})
_FALSE = frozenset({"false", "f", "0"})


def _field_by_name(descriptor: Any, name: str) -> Any:
    fd = descriptor.fields_by_name.get(name)
    if fd is not None:
        return fd
    for candidate in descriptor.fields:
        if candidate.json_name == name:
            return candidate
    return None


def resolve_query_key(descriptor: Any, key: str) -> Optional[tuple[str, Any]]:
    """
    Map a query key given with proto or JSON field names onto the proto field
    path, e.g. ``filter.pageSize`` -> ``("filter.page_size", <field>)``.

    Returns None when some segment names no field of the message.
    """
    names: list[str] = []
    msg = descriptor
    fd = None
    for segment in key.split("."):
        if msg is None:
            return None
        fd = _field_by_name(msg, segment)
        if fd is None:
            return None
        names.append(fd.name)
        msg = fd.message_type
    if fd is None:
        return None
    return ".".join(names), fd


def convert_query_value(fd: Any, raw: str) -> Any:
    """
    Query strings carry text only; ``json_format.ParseDict`` accepts text for
    every scalar except bool, which is converted here.
    """
    if fd.type != fd.TYPE_BOOL:
        return raw
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ValueError(f"invalid value {raw!r} for bool field {fd.name}")


def populate_query_parameters(
    payload: dict[str, Any],
    items: Iterable[tuple[str, str]],
    query_filter: Optional[DoubleArray],
    repeated: Iterable[str] = (),
    descriptor: Any = None,
) -> None:
    """
    Copy query-string pairs into ``payload``.

    Only keys accepted by ``query_filter`` (free fields of the binding, or
    paths nested below one) are copied; everything else is ignored. Keys in
    ``repeated`` always collect into lists; other keys keep the last value.

    With the request message ``descriptor`` keys may also use JSON names,
    repeated fields are recognised at any depth, bool values are converted,
    and keys naming no field are ignored.
    """
    if query_filter is None:
        return
    repeated = set(repeated)
    lists: dict[str, list[Any]] = {}

    for key, raw in items:
        value: Any = raw
        if descriptor is not None:
            resolved = resolve_query_key(descriptor, key)
            if resolved is None:
                continue
            key, fd = resolved
            value = convert_query_value(fd, raw)
            if fd.label == fd.LABEL_REPEATED:
                repeated.add(key)

        if not query_filter.has_common_prefix(key.split(".")):
            continue
        if key in repeated:
            lists.setdefault(key, []).append(value)
            continue
        set_field(payload, key, value)

    for key, values in lists.items():
        set_field(payload, key, values)
