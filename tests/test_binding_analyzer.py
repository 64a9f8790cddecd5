from conftest import GENRE, field, make_request, message_file

from gwkit.analysis.binding import BindingAnalyzer, field_mask_field
from gwkit.descriptor.registry import load_registry
from gwkit.imports.registry import ImportRef, ImportRegistry


def _shelf(registry):
    f = registry.lookup_file("bookstore/v1/shelf.proto")
    return f, {m.name: m for m in f.services[0].methods}


def test_enum_import_is_deduplicated_across_methods(registry):
    f, methods = _shelf(registry)
    analyzer = BindingAnalyzer(registry, ImportRegistry())
    seen: set[str] = set()

    refs = []
    for m in f.services[0].methods:
        refs.extend(analyzer.analyze_method(f, m, seen).imports)

    assert refs == [ImportRef(path="common.v1.genre_pb2")]
    assert seen == {"common.v1.genre_pb2"}
    # list_books and search_books both bind the enum in their path
    assert analyzer.analyze_binding(methods["search_books"].bindings[0]).has_enum_path_param


def test_enum_in_same_package_and_unknown_enum_are_skipped():
    fields = [field("color", 1, "TYPE_ENUM", ".demo.v1.Color"), field("shade", 2, "TYPE_ENUM", ".elsewhere.Shade")]
    f = message_file("Req", fields, {"get": "/v1/{color}/{shade}"})
    f["enum_type"] = [{"name": "Color", "value": ["RED"]}]
    reg = load_registry(make_request([f]))

    file = reg.lookup_file(f["name"])
    method = file.services[0].methods[0]
    analyzer = BindingAnalyzer(reg, ImportRegistry())

    assert analyzer.enum_imports(file, method, set()) == []


def test_binding_analysis_fields(registry):
    _, methods = _shelf(registry)
    analyzer = BindingAnalyzer(registry, ImportRegistry())

    create = analyzer.analyze_binding(methods["create_book"].bindings[0])
    assert create.body_fields == frozenset({"book"})
    assert not create.body_is_wildcard
    assert create.path_fields == frozenset({"shelf"})
    assert create.has_query_param
    assert create.query_filter.free_fields == ["request_id"]
    assert not create.has_enum_path_param

    update = analyzer.analyze_binding(methods["update_book"].bindings[0])
    assert update.path_fields == frozenset({"book.name"})
    assert update.field_mask_field == "update_mask"


def test_wildcard_body_has_no_query_param():
    f = message_file("Req", [field("a", 1), field("b", 2)], {"put": "/v1/{a}", "body": "*"})
    reg = load_registry(make_request([f]))
    binding = reg.lookup_file(f["name"]).services[0].methods[0].bindings[0]

    ba = BindingAnalyzer(reg, ImportRegistry()).analyze_binding(binding)
    assert ba.body_is_wildcard
    assert ba.body_fields == frozenset()
    assert not ba.has_query_param


def test_repeated_enum_path_param():
    f = message_file("Req", [field("genres", 1, "TYPE_ENUM", GENRE, repeated=True)], {"get": "/v1/{genres}"})
    common = {"name": "common/v1/genre.proto", "package": "common.v1", "enum_type": [{"name": "Genre", "value": ["X"]}]}
    reg = load_registry(make_request([common, f], targets=[f["name"]]))
    binding = reg.lookup_file(f["name"]).services[0].methods[0].bindings[0]

    ba = BindingAnalyzer(reg, ImportRegistry()).analyze_binding(binding)
    assert ba.has_repeated_enum_path_param
    assert not ba.has_enum_path_param


def test_type_imports_for_foreign_messages(registry):
    admin = registry.lookup_file("admin/v1/admin.proto")
    _, methods = _shelf(registry)
    analyzer = BindingAnalyzer(registry, ImportRegistry())

    # seen from another file, shelf messages are foreign
    refs = analyzer.type_imports(admin, methods["get_book"], set())
    assert refs == [ImportRef(path="bookstore.v1.shelf_pb2")]
    # methods without bindings never reach generated code
    assert analyzer.type_imports(admin, methods["import_books"], set()) == []


def test_field_mask_field_requires_exactly_one(registry):
    _, methods = _shelf(registry)
    assert field_mask_field(methods["update_book"]) == "update_mask"
    assert field_mask_field(methods["get_book"]) == ""

    two = [
        field("a", 1, "TYPE_MESSAGE", ".google.protobuf.FieldMask"),
        field("b", 2, "TYPE_MESSAGE", ".google.protobuf.FieldMask"),
    ]
    f = message_file("Req", two, {"get": "/v1/x"})
    reg = load_registry(make_request([f]))
    assert field_mask_field(reg.lookup_file(f["name"]).services[0].methods[0]) == ""
