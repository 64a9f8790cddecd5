from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from gwkit.descriptor.httprule import PathTemplate

FIELD_MASK_TYPE = ".google.protobuf.FieldMask"


@dataclass(eq=False)
class File:
    name: str                 # bookstore/v1/shelf.proto
    package: str              # bookstore.v1
    py_package: str           # bookstore.v1.shelf_pb2
    messages: list["Message"] = field(default_factory=list)
    enums: list["Enum"] = field(default_factory=list)
    services: list["Service"] = field(default_factory=list)


@dataclass(eq=False)
class Message:
    name: str
    fqmn: str                 # .bookstore.v1.GetBookRequest
    file: File
    fields: list["Field"] = field(default_factory=list)

    def field_by_name(self, name: str) -> Optional["Field"]:
        for f in self.fields:
            if f.name == name:
                return f
        return None


@dataclass(eq=False)
class Field:
    name: str
    number: int
    type: str
    type_name: str
    repeated: bool
    message: Message = field(repr=False)
    message_type: Optional[Message] = field(default=None, repr=False)

    @property
    def is_enum(self) -> bool:
        return self.type == "TYPE_ENUM"


@dataclass(eq=False)
class Enum:
    name: str
    fqen: str
    file: File
    values: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class FieldPath:
    components: tuple[Field, ...] = ()

    def __str__(self) -> str:
        return ".".join(f.name for f in self.components)

    def __bool__(self) -> bool:
        return bool(self.components)

    @property
    def segments(self) -> tuple[str, ...]:
        return tuple(f.name for f in self.components)

    @property
    def target(self) -> Field:
        return self.components[-1]


@dataclass(frozen=True)
class Parameter:
    """A request field bound to a path template variable."""

    field_path: FieldPath

    @property
    def target(self) -> Field:
        return self.field_path.target

    @property
    def is_enum(self) -> bool:
        return self.target.is_enum

    @property
    def is_repeated(self) -> bool:
        return self.target.repeated


@dataclass(frozen=True)
class Body:
    """Request body mapping; an empty field path means the whole request (``*``)."""

    field_path: FieldPath = FieldPath()

    @property
    def is_wildcard(self) -> bool:
        return not self.field_path


@dataclass(eq=False)
class Binding:
    index: int
    http_method: str
    path_tmpl: PathTemplate
    method: "Method" = field(repr=False)
    body: Optional[Body] = None
    path_params: list[Parameter] = field(default_factory=list)


@dataclass(eq=False)
class Method:
    name: str
    service: "Service" = field(repr=False)
    request_type: Message = field(repr=False)
    response_type: Message = field(repr=False)
    bindings: list[Binding] = field(default_factory=list)


@dataclass(eq=False)
class Service:
    name: str
    file: File = field(repr=False)
    methods: list[Method] = field(default_factory=list)
