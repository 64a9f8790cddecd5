import json

import pytest
from conftest import make_request

from gwkit.errors import ConfigurationError, DescriptorError
from gwkit.orchestrator.pipeline import (
    generate_response,
    inspect_bindings,
    parse_request,
    read_request,
    run_generate,
    write_files,
)


def test_read_request_from_file(tmp_path, request_json):
    p = tmp_path / "req.json"
    p.write_text(request_json, encoding="utf-8")

    req = read_request(path=p)
    assert req.file_to_generate == ["bookstore/v1/shelf.proto", "admin/v1/admin.proto"]


def test_parse_request_rejects_bad_documents():
    with pytest.raises(DescriptorError, match="invalid code generator request"):
        parse_request("{not json")
    bad_rule = {"proto_file": [{"name": "x.proto", "service": [{"name": "S", "method": [
        {"name": "M", "input_type": ".R", "output_type": ".R", "http": {"get": "/a", "post": "/b"}}
    ]}]}]}
    with pytest.raises(DescriptorError, match="exactly one pattern"):
        parse_request(json.dumps(bad_rule))


def test_unknown_target_file():
    with pytest.raises(DescriptorError, match="no such file given"):
        run_generate(make_request(targets=["missing.proto"]))


def test_parameters_are_validated_before_loading():
    req = make_request(targets=["missing.proto"], parameter="module=a,paths=source_relative")
    with pytest.raises(ConfigurationError):
        run_generate(req)


def test_generate_response_carries_errors():
    resp = generate_response(make_request(parameter="paths=absolute"))
    assert resp.file == []
    assert "invalid generator parameters" in resp.error

    ok = generate_response(make_request())
    assert ok.error is None
    assert [f.name for f in ok.file][0] == "gateway/shelf_gw.py"


def test_overrides_apply_on_top_of_request_parameters():
    result = run_generate(make_request(parameter="output_path=a"), {"output_path": "b"})
    assert result.params.output_path == "b"
    assert all(f.name.startswith("b/") for f in result.files)


def test_write_files(tmp_path):
    result = run_generate(make_request())
    written = write_files(result.files, tmp_path)

    assert [p.relative_to(tmp_path).as_posix() for p in written] == [f.name for f in result.files]
    assert (tmp_path / "gateway" / "shelf_gw.py").read_text(encoding="utf-8") == result.files[0].content


def test_inspect_bindings():
    rows = {(r.method, r.path): r for r in inspect_bindings(make_request())}

    get_book = rows[("GetBook", "/v1/shelves/{shelf}/books/{book}")]
    assert get_book.service == "Bookstore"
    assert get_book.http_method == "GET"
    assert get_book.body == ""
    assert get_book.path_fields == ["shelf", "book"]
    assert get_book.query_fields == ["view"]

    update = rows[("UpdateBook", "/v1/{book.name=shelves/*/books/*}")]
    assert update.body == "book"
    assert update.query_fields == ["update_mask"]

    all_books = rows[("ListBooks", "/v1/books")]
    assert all_books.query_fields == ["shelf", "genre", "page_size", "tags"]
