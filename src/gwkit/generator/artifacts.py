from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Optional

from gwkit.analysis.query_filter import QueryFilter
from gwkit.descriptor.httprule import RoutePart
from gwkit.imports.registry import ImportRef

ArtifactKind = Literal["unit", "service", "router", "endpoints", "muxkit"]

UNIT_SUFFIX = "_gw"
SERVICE_MODULE = "service_gw"
ROUTES_MODULE = "routes_gw"
ENDPOINTS_MODULE = "endpoints_gw"
MUXKIT_MODULE = "muxkit_gw"


@dataclass(frozen=True)
class ContractMethod:
    name: str               # GetBook
    request_type: str       # shelf_pb2.GetBookRequest
    response_type: str      # shelf_pb2.Book


@dataclass(frozen=True)
class ServiceContract:
    class_name: str         # BookstoreService
    full_name: str          # bookstore.v1.Bookstore
    methods: tuple[ContractMethod, ...]


@dataclass(frozen=True)
class PathParamDecl:
    field_path: str         # shelf.id
    route_key: str          # shelf__id
    parts: tuple[RoutePart, ...] = ()   # route segments the value is rebuilt from
    repeated: bool = False
    enum_type: str = ""     # genre_pb2.Genre when the field is an enum


@dataclass(frozen=True)
class HandlerDecl:
    class_name: str         # GetBook, GetBook_2 for additional bindings
    method_name: str        # GetBook
    handler_func: str       # GetBookHandler
    http_method: str
    template: str           # original path template, for the docstring
    route_path: str
    route_name: str
    request_type: str
    response_type: str
    body_field: str = ""    # "" means no body mapping
    body_wildcard: bool = False
    field_mask_field: str = ""
    path_params: tuple[PathParamDecl, ...] = ()
    query_filter: Optional[QueryFilter] = None


@dataclass(frozen=True)
class Artifact:
    kind: ArtifactKind
    module: str             # module name without .py
    source: str = ""        # proto file name for unit artifacts
    imports: tuple[ImportRef, ...] = ()
    contracts: tuple[ServiceContract, ...] = ()
    handlers: tuple[HandlerDecl, ...] = ()
    unit_modules: tuple[str, ...] = ()   # muxkit only
    metrics: str = ""                    # local name of the metrics module
    error_encoder: str = ""              # qualified error encoder expression
    separator: str = ","

    @property
    def filename(self) -> str:
        return f"{self.module}.py"
