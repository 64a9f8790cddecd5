from __future__ import annotations

import copy
import json
from types import ModuleType
from typing import Any

import pytest
from google.protobuf import descriptor_pb2, descriptor_pool, field_mask_pb2, message_factory
from google.protobuf.internal.enum_type_wrapper import EnumTypeWrapper

from gwkit.descriptor.registry import Registry, load_registry
from gwkit.domain.models import CodeGeneratorRequest

GENRE = ".common.v1.Genre"


def field(name: str, number: int, type: str = "TYPE_STRING", type_name: str = "", repeated: bool = False) -> dict:
    return {
        "name": name,
        "number": number,
        "type": type,
        "type_name": type_name,
        "label": "LABEL_REPEATED" if repeated else "LABEL_OPTIONAL",
    }


COMMON_FILE: dict[str, Any] = {
    "name": "common/v1/genre.proto",
    "package": "common.v1",
    "enum_type": [{"name": "Genre", "value": ["GENRE_UNSPECIFIED", "FICTION", "POETRY"]}],
}

SHELF_FILE: dict[str, Any] = {
    "name": "bookstore/v1/shelf.proto",
    "package": "bookstore.v1",
    "dependency": ["common/v1/genre.proto"],
    "message_type": [
        {
            "name": "Author",
            "field": [field("display_name", 1), field("email", 2)],
        },
        {
            "name": "Book",
            "field": [
                field("name", 1),
                field("title", 2),
                field("author", 3, "TYPE_MESSAGE", ".bookstore.v1.Author"),
                field("genre", 4, "TYPE_ENUM", GENRE),
                field("tags", 5, repeated=True),
            ],
        },
        {
            "name": "GetBookRequest",
            "field": [field("shelf", 1), field("book", 2), field("view", 3)],
        },
        {
            "name": "ListBooksRequest",
            "field": [
                field("shelf", 1),
                field("genre", 2, "TYPE_ENUM", GENRE),
                field("page_size", 3, "TYPE_INT32"),
                field("tags", 4, repeated=True),
            ],
        },
        {
            "name": "ListBooksResponse",
            "field": [field("books", 1, "TYPE_MESSAGE", ".bookstore.v1.Book", repeated=True)],
        },
        {
            "name": "CreateBookRequest",
            "field": [
                field("shelf", 1),
                field("book", 2, "TYPE_MESSAGE", ".bookstore.v1.Book"),
                field("request_id", 3),
            ],
        },
        {
            "name": "UpdateBookRequest",
            "field": [
                field("book", 1, "TYPE_MESSAGE", ".bookstore.v1.Book"),
                field("update_mask", 2, "TYPE_MESSAGE", ".google.protobuf.FieldMask"),
            ],
        },
        {
            "name": "SearchBooksRequest",
            "field": [field("genre", 1, "TYPE_ENUM", GENRE), field("query", 2)],
        },
    ],
    "service": [
        {
            "name": "bookstore",
            "method": [
                {
                    "name": "get_book",
                    "input_type": ".bookstore.v1.GetBookRequest",
                    "output_type": ".bookstore.v1.Book",
                    "http": {"get": "/v1/shelves/{shelf}/books/{book}"},
                },
                {
                    "name": "list_books",
                    "input_type": ".bookstore.v1.ListBooksRequest",
                    "output_type": ".bookstore.v1.ListBooksResponse",
                    "http": {
                        "get": "/v1/shelves/{shelf}/genres/{genre}/books",
                        "additional_bindings": [{"get": "/v1/books"}],
                    },
                },
                {
                    "name": "create_book",
                    "input_type": ".bookstore.v1.CreateBookRequest",
                    "output_type": ".bookstore.v1.Book",
                    "http": {"post": "/v1/shelves/{shelf}/books", "body": "book"},
                },
                {
                    "name": "update_book",
                    "input_type": ".bookstore.v1.UpdateBookRequest",
                    "output_type": ".bookstore.v1.Book",
                    "http": {"patch": "/v1/{book.name=shelves/*/books/*}", "body": "book"},
                },
                {
                    "name": "search_books",
                    "input_type": ".bookstore.v1.SearchBooksRequest",
                    "output_type": ".bookstore.v1.ListBooksResponse",
                    "http": {"get": "/v1/genres/{genre}:search"},
                },
                {
                    "name": "import_books",
                    "input_type": ".bookstore.v1.CreateBookRequest",
                    "output_type": ".bookstore.v1.Book",
                },
            ],
        }
    ],
}

ADMIN_FILE: dict[str, Any] = {
    "name": "admin/v1/admin.proto",
    "package": "admin.v1",
    "message_type": [{"name": "PingRequest"}, {"name": "PingResponse"}],
    "service": [
        {
            "name": "Admin",
            "method": [
                {
                    "name": "Ping",
                    "input_type": ".admin.v1.PingRequest",
                    "output_type": ".admin.v1.PingResponse",
                }
            ],
        }
    ],
}


ITEMS_FILE: dict[str, Any] = {
    "name": "items/v1/items.proto",
    "package": "items.v1",
    "message_type": [
        {"name": "Inner", "field": [field("tags", 1, repeated=True), field("note", 2)]},
        {
            # snake_case on purpose: _pb2 modules keep proto names as-is
            "name": "item_query",
            "field": [
                field("id", 1),
                field("show_deleted", 2, "TYPE_BOOL"),
                field("page_size", 3, "TYPE_INT32"),
                field("inner", 4, "TYPE_MESSAGE", ".items.v1.Inner"),
            ],
        },
    ],
    "service": [
        {
            "name": "Items",
            "method": [
                {
                    "name": "list_items",
                    "input_type": ".items.v1.item_query",
                    "output_type": ".items.v1.item_query",
                    "http": {"get": "/v1/items/{id}"},
                }
            ],
        }
    ],
}



def make_request(
    files: list[dict] | None = None,
    targets: list[str] | None = None,
    parameter: str = "",
    **extra: Any,
) -> CodeGeneratorRequest:
    files = copy.deepcopy(files if files is not None else [COMMON_FILE, SHELF_FILE, ADMIN_FILE])
    if targets is None:
        targets = [f["name"] for f in files if f.get("service")]
    return CodeGeneratorRequest.model_validate(
        {"file_to_generate": targets, "parameter": parameter, "proto_file": files, **extra}
    )


def message_file(name: str, fields: list[dict], http: dict, package: str = "demo.v1") -> dict:
    """A single-file request with one message, used as both request and response."""
    fq = f".{package}.{name}"
    return {
        "name": f"{package.replace('.', '/')}/demo.proto",
        "package": package,
        "message_type": [{"name": name, "field": fields}],
        "service": [
            {
                "name": "Demo",
                "method": [{"name": "Call", "input_type": fq, "output_type": fq, "http": http}],
            }
        ],
    }


@pytest.fixture
def request_doc() -> CodeGeneratorRequest:
    return make_request()


@pytest.fixture
def registry(request_doc: CodeGeneratorRequest) -> Registry:
    return load_registry(request_doc)


@pytest.fixture
def request_json(request_doc: CodeGeneratorRequest) -> str:
    return json.dumps(request_doc.model_dump())


_FIELD_TYPE = descriptor_pb2.FieldDescriptorProto.Type
_FIELD_LABEL = descriptor_pb2.FieldDescriptorProto.Label
_FIELD_MASK_FILE = "google/protobuf/field_mask.proto"


def _file_proto(f: dict) -> descriptor_pb2.FileDescriptorProto:
    fdp = descriptor_pb2.FileDescriptorProto(name=f["name"], package=f.get("package", ""), syntax="proto3")
    deps = list(f.get("dependency", []))
    for m in f.get("message_type", []):
        mp = fdp.message_type.add(name=m["name"])
        for fld in m.get("field", []):
            fp = mp.field.add(
                name=fld["name"],
                number=fld["number"],
                type=_FIELD_TYPE.Value(fld["type"]),
                label=_FIELD_LABEL.Value(fld["label"]),
            )
            if fld["type_name"]:
                fp.type_name = fld["type_name"]
            if fld["type_name"] == ".google.protobuf.FieldMask" and _FIELD_MASK_FILE not in deps:
                deps.append(_FIELD_MASK_FILE)
    for e in f.get("enum_type", []):
        ep = fdp.enum_type.add(name=e["name"])
        for number, value in enumerate(e["value"]):
            ep.value.add(name=value, number=number)
    fdp.dependency.extend(deps)
    return fdp


def build_pb2(files: list[dict], module_names: dict[str, str]) -> dict[str, ModuleType]:
    """
    In-memory equivalents of protoc's ``_pb2`` modules for request ``files``,
    keyed by module name. ``module_names`` maps proto file -> module name.
    Files must come in dependency order.
    """
    pool = descriptor_pool.DescriptorPool()
    wkt = descriptor_pb2.FileDescriptorProto()
    field_mask_pb2.DESCRIPTOR.CopyToProto(wkt)
    pool.Add(wkt)

    modules: dict[str, ModuleType] = {}
    for f in files:
        pool.Add(_file_proto(f))
        prefix = f"{f['package']}." if f.get("package") else ""
        mod = ModuleType(module_names[f["name"]])
        mod.DESCRIPTOR = pool.FindFileByName(f["name"])
        for m in f.get("message_type", []):
            desc = pool.FindMessageTypeByName(prefix + m["name"])
            setattr(mod, m["name"], message_factory.GetMessageClass(desc))
        for e in f.get("enum_type", []):
            setattr(mod, e["name"], EnumTypeWrapper(pool.FindEnumTypeByName(prefix + e["name"])))
        modules[mod.__name__] = mod
    return modules
