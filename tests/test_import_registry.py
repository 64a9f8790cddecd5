from gwkit.imports.registry import ImportRef, ImportRegistry


def test_reserve_and_collision():
    reg = ImportRegistry()

    assert reg.reserve("shelf_pb2", "a.v1.shelf_pb2") == ("shelf_pb2", True)
    # alias owned by another path: nothing committed
    assert reg.reserve("shelf_pb2", "b.v1.shelf_pb2") == ("shelf_pb2", False)
    assert "b.v1.shelf_pb2" not in reg
    assert len(reg) == 1


def test_reserve_is_idempotent_and_returns_previous_alias():
    reg = ImportRegistry()
    reg.reserve("shelf_pb2", "a.v1.shelf_pb2")

    assert reg.reserve("shelf_pb2", "a.v1.shelf_pb2") == ("shelf_pb2", True)
    # a later call site asking for another alias still gets the first one
    assert reg.reserve("other", "a.v1.shelf_pb2") == ("shelf_pb2", True)
    assert reg.alias_for("a.v1.shelf_pb2") == "shelf_pb2"
    assert len(reg) == 1


def test_assign_appends_numeric_suffix_until_free():
    reg = ImportRegistry()

    assert reg.assign("common_pb2", "a.common_pb2") == "common_pb2"
    assert reg.assign("common_pb2", "b.common_pb2") == "common_pb2_0"
    assert reg.assign("common_pb2", "c.common_pb2") == "common_pb2_1"
    # already bound paths keep their alias
    assert reg.assign("common_pb2", "b.common_pb2") == "common_pb2_0"


def test_assign_skips_suffix_taken_by_another_path():
    reg = ImportRegistry()
    reg.assign("x_0", "pkg.x_0")
    reg.assign("x", "one.x")

    assert reg.assign("x", "two.x") == "x_1"


def test_aliases_are_unique_across_many_reservations():
    reg = ImportRegistry()
    paths = [f"p{i % 7}.mod{i % 3}" for i in range(50)]
    for p in paths:
        reg.assign(p.rsplit(".", 1)[1], p)

    bound = dict(reg)
    assert set(bound) == set(paths)
    assert len(set(bound.values())) == len(bound)
    for p in paths:
        assert reg.assign("anything", p) == bound[p]


def test_ref_and_statements():
    reg = ImportRegistry()
    first = reg.ref("bookstore.v1.shelf_pb2")
    second = reg.ref("library.v1.shelf_pb2")

    assert first == ImportRef(path="bookstore.v1.shelf_pb2")
    assert first.local_name == "shelf_pb2"
    assert first.statement() == "from bookstore.v1 import shelf_pb2"

    assert second.alias == "shelf_pb2_0"
    assert second.local_name == "shelf_pb2_0"
    assert second.statement() == "from library.v1 import shelf_pb2 as shelf_pb2_0"

    assert reg.ref("bookstore.v1.shelf_pb2") == first


def test_standard_library_detection():
    assert ImportRef(path="typing").standard
    assert ImportRef(path="json").statement() == "import json"
    assert not ImportRef(path="fastapi").standard
    assert not ImportRef(path="google.protobuf.json_format").standard
