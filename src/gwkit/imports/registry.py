from __future__ import annotations

import logging
import sys
import threading
from dataclasses import dataclass
from typing import Iterator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImportRef:
    """A module import of a generated artifact: ``path`` bound to ``alias``."""

    path: str           # dotted module path, e.g. bookstore.v1.shelf_pb2
    alias: str = ""     # empty when the module is bound under its own name

    @property
    def name(self) -> str:
        return self.path.rsplit(".", 1)[-1]

    @property
    def local_name(self) -> str:
        return self.alias or self.name

    @property
    def standard(self) -> bool:
        return self.path.split(".", 1)[0] in sys.stdlib_module_names

    def statement(self) -> str:
        """
        import json
        import json as json_0
        from bookstore.v1 import shelf_pb2
        from bookstore.v1 import shelf_pb2 as shelf_pb2_0
        """
        suffix = f" as {self.alias}" if self.alias else ""
        if "." not in self.path:
            return f"import {self.path}{suffix}"
        parent, name = self.path.rsplit(".", 1)
        return f"from {parent} import {name}{suffix}"


class ImportRegistry:
    """
    Run-scoped module path <-> alias bindings.

    Invariants (whole run):
      - each path is bound to exactly one alias once assigned
      - each alias is bound to at most one path
    """

    def __init__(self) -> None:
        self._alias_to_path: dict[str, str] = {}
        self._path_to_alias: dict[str, str] = {}
        self._lock = threading.Lock()

    def __contains__(self, path: object) -> bool:
        return path in self._path_to_alias

    def __len__(self) -> int:
        return len(self._path_to_alias)

    def __iter__(self) -> Iterator[tuple[str, str]]:
        return iter(list(self._path_to_alias.items()))

    def alias_for(self, path: str) -> str | None:
        return self._path_to_alias.get(path)

    def reserve(self, alias: str, path: str) -> tuple[str, bool]:
        """
        Try to bind ``alias`` to ``path``.

        Returns (alias, ok). A path that is already bound returns its existing
        alias with ok=True whatever alias was asked for. An alias owned by a
        different path returns ok=False and commits nothing.
        """
        with self._lock:
            return self._reserve_locked(alias, path)

    def _reserve_locked(self, alias: str, path: str) -> tuple[str, bool]:
        existing = self._path_to_alias.get(path)
        if existing is not None:
            return existing, True

        owner = self._alias_to_path.get(alias)
        if owner is not None and owner != path:
            return alias, False

        self._alias_to_path[alias] = path
        self._path_to_alias[path] = alias
        return alias, True

    def assign(self, name: str, path: str) -> str:
        """
        Bind ``path`` under ``name`` or, on collision, the first free
        ``name_0``, ``name_1``, ... and return the committed alias.
        """
        with self._lock:
            alias, ok = self._reserve_locked(name, path)
            i = 0
            while not ok:
                alias, ok = self._reserve_locked(f"{name}_{i}", path)
                i += 1
            if alias != name:
                logger.debug("import alias %s -> %s (collision on %s)", path, alias, name)
            return alias

    def ref(self, path: str) -> ImportRef:
        """ImportRef for ``path``, assigning an alias on first use."""
        name = path.rsplit(".", 1)[-1]
        alias = self.assign(name, path)
        return ImportRef(path=path, alias="" if alias == name else alias)
