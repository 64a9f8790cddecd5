from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from gwkit.analysis.query_filter import QueryFilter, consumed_paths, synthesize
from gwkit.descriptor.model import FIELD_MASK_TYPE, Binding, File, Method
from gwkit.descriptor.registry import Found, Registry
from gwkit.imports.registry import ImportRef, ImportRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BindingAnalysis:
    binding: Binding
    body_fields: frozenset[str]
    body_is_wildcard: bool
    path_fields: frozenset[str]
    query_filter: Optional[QueryFilter]
    field_mask_field: str = ""

    @property
    def has_query_param(self) -> bool:
        return self.query_filter is not None

    @property
    def has_enum_path_param(self) -> bool:
        return self._has_enum_path_param(repeated=False)

    @property
    def has_repeated_enum_path_param(self) -> bool:
        return self._has_enum_path_param(repeated=True)

    def _has_enum_path_param(self, repeated: bool) -> bool:
        return any(p.is_enum and p.is_repeated == repeated for p in self.binding.path_params)


@dataclass(frozen=True)
class MethodAnalysis:
    method: Method
    bindings: tuple[BindingAnalysis, ...]
    imports: tuple[ImportRef, ...]


def field_mask_field(method: Method) -> str:
    """Name of the request's single FieldMask field, or "" when there are zero or several."""
    found = [f for f in method.request_type.fields if f.type_name == FIELD_MASK_TYPE]
    return found[0].name if len(found) == 1 else ""


class BindingAnalyzer:
    def __init__(self, registry: Registry, imports: ImportRegistry) -> None:
        self.registry = registry
        self.imports = imports

    def enum_imports(self, file: File, method: Method, seen: set[str]) -> list[ImportRef]:
        """
        Packages of enums targeted by path parameters and defined outside
        ``file``. ``seen`` holds paths already imported by the unit and is
        updated in place.
        """
        out: list[ImportRef] = []
        for b in method.bindings:
            for p in b.path_params:
                res = self.registry.lookup_enum(p.target.type_name)
                if not isinstance(res, Found):
                    continue
                pkg = res.enum.file.py_package
                if pkg == file.py_package or pkg in seen:
                    continue
                seen.add(pkg)
                out.append(self.imports.ref(pkg))
        return out

    def type_imports(self, file: File, method: Method, seen: set[str]) -> list[ImportRef]:
        # request / response messages living in another package
        out: list[ImportRef] = []
        if not method.bindings:
            return out
        for msg in (method.request_type, method.response_type):
            pkg = msg.file.py_package
            if pkg == file.py_package or pkg in seen:
                continue
            seen.add(pkg)
            out.append(self.imports.ref(pkg))
        return out

    def analyze_binding(self, b: Binding) -> BindingAnalysis:
        body_is_wildcard = b.body is not None and b.body.is_wildcard
        body_fields: frozenset[str] = frozenset()
        if b.body is not None and not body_is_wildcard:
            body_fields = frozenset({str(b.body.field_path)})
        path_fields = frozenset(".".join(p) for p in consumed_paths(None, b.path_params))

        qf = synthesize(b.method.request_type, b.body, b.path_params)
        return BindingAnalysis(
            binding=b,
            body_fields=body_fields,
            body_is_wildcard=body_is_wildcard,
            path_fields=path_fields,
            query_filter=qf,
            field_mask_field=field_mask_field(b.method),
        )

    def analyze_method(self, file: File, method: Method, seen: set[str]) -> MethodAnalysis:
        imports = self.enum_imports(file, method, seen) + self.type_imports(file, method, seen)
        bindings = tuple(self.analyze_binding(b) for b in method.bindings)
        for ba in bindings:
            logger.debug(
                "%s %s: body=%s path=%s query=%s",
                ba.binding.http_method,
                ba.binding.path_tmpl.template,
                "*" if ba.body_is_wildcard else sorted(ba.body_fields),
                sorted(ba.path_fields),
                ba.query_filter.free_fields if ba.query_filter else "-",
            )
        return MethodAnalysis(method=method, bindings=bindings, imports=tuple(imports))
