from __future__ import annotations


def _is_lower(c: str) -> bool:
    return "a" <= c <= "z"


def _is_digit(c: str) -> bool:
    return "0" <= c <= "9"


def camel(s: str) -> str:
    """
    Convert a protobuf identifier to CamelCase.

      get_book     -> GetBook
      GetBook      -> GetBook   (idempotent on already-camel names)
      _private     -> XPrivate
      shelf.book_id -> Shelf.BookId

    Dotted names are converted segment by segment.
    """
    if not s:
        return ""
    if "." in s:
        return ".".join(camel(part) for part in s.split("."))

    out: list[str] = []
    i = 0
    if s[0] == "_":
        out.append("X")
        i += 1

    n = len(s)
    while i < n:
        c = s[i]
        if c == "_" and i + 1 < n and _is_lower(s[i + 1]):
            i += 1
            continue
        if _is_digit(c):
            out.append(c)
            i += 1
            continue
        out.append(c.upper() if _is_lower(c) else c)
        i += 1
        # copy the rest of a lowercase run as-is
        while i < n and _is_lower(s[i]):
            out.append(s[i])
            i += 1
    return "".join(out)


def route_name(method_name: str) -> str:
    # GetBook -> getbook
    return method_name.lower()
