"""Tests for the loader module."""

import httpx
import pytest

from openapi2mcp.errors import DanglingReference, MalformedInput, UnsupportedVersion
from openapi2mcp.loader import (
    escape_pointer_token,
    fetch_document,
    load_document,
    load_document_file,
    read_source,
    resolve_pointer,
)

_JSON = '{"openapi": "3.0.0", "info": {"title": "Ping", "version": "2"}, "paths": {}}'

_YAML = """
openapi: 3.1.0
info:
  title: Ping
  version: "2"
paths:
  /ping:
    get:
      responses:
        200:
          description: ok
"""


class TestLoadDocument:
    """Syntax sniffing and version checks."""

    def test_json(self):
        doc = load_document(_JSON)
        assert doc.version == "3.0.0"
        assert doc.title == "Ping"
        assert doc.paths == {}

    def test_yaml(self):
        doc = load_document(_YAML)
        assert doc.version == "3.1.0"
        assert "/ping" in doc.paths

    def test_json_with_leading_whitespace(self):
        assert load_document("\n   " + _JSON).title == "Ping"

    def test_bytes_with_bom(self):
        assert load_document(b"\xef\xbb\xbf" + _JSON.encode()).api_version == "2"

    def test_integer_keys_become_strings(self):
        doc = load_document(_YAML)
        assert "200" in doc.paths["/ping"]["get"]["responses"]

    def test_same_document_both_syntaxes(self):
        yaml_doc = load_document("openapi: 3.0.0\ninfo:\n  title: Ping\n  version: '2'\npaths: {}\n")
        assert yaml_doc.raw == load_document(_JSON).raw

    def test_invalid_json_reports_position(self):
        with pytest.raises(MalformedInput) as exc_info:
            load_document('{"openapi": "3.0.0",\n  "paths": }')
        assert exc_info.value.line == 2

    def test_invalid_yaml(self):
        with pytest.raises(MalformedInput) as exc_info:
            load_document("openapi: 3.0.0\npaths: [unclosed\n")
        assert exc_info.value.line is not None

    def test_top_level_must_be_mapping(self):
        with pytest.raises(MalformedInput):
            load_document("- just\n- a list\n")

    def test_paths_must_be_mapping(self):
        with pytest.raises(MalformedInput):
            load_document('{"openapi": "3.0.0", "paths": []}')

    def test_swagger_rejected(self):
        with pytest.raises(UnsupportedVersion):
            load_document('{"swagger": "2.0", "paths": {}}')

    def test_missing_version_rejected(self):
        with pytest.raises(UnsupportedVersion):
            load_document('{"paths": {}}')

    def test_version_4_rejected(self):
        with pytest.raises(UnsupportedVersion):
            load_document('{"openapi": "4.0.0", "paths": {}}')

    def test_servers(self, petstore):
        assert petstore.servers == ("https://petstore.example.com/v1", "http://localhost:8080/v1")


class TestSources:
    """File and HTTP sources."""

    def test_load_file(self, petstore_path):
        doc = load_document_file(petstore_path)
        assert doc.title == "Swagger Petstore"
        assert doc.source == str(petstore_path)

    def test_read_source_path(self, petstore_path):
        assert read_source(str(petstore_path)).api_version == "1.2.0"

    def test_fetch(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/openapi.json"
            return httpx.Response(200, text=_JSON)

        client = httpx.Client(transport=httpx.MockTransport(handler))
        doc = fetch_document("https://api.example.com/openapi.json", client=client)
        assert doc.title == "Ping"
        assert doc.source == "https://api.example.com/openapi.json"

    def test_fetch_error_status(self):
        client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(404)))
        with pytest.raises(MalformedInput, match="HTTP 404"):
            fetch_document("https://api.example.com/missing.yaml", client=client)

    def test_fetch_transport_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        client = httpx.Client(transport=httpx.MockTransport(handler))
        with pytest.raises(MalformedInput, match="Failed to fetch"):
            fetch_document("https://api.example.com/openapi.json", client=client)


class TestResolvePointer:
    _RAW = {"components": {"schemas": {"a/b": {"type": "string"}, "List": {"items": [1, 2]}}}}

    def test_escaped_token(self):
        ref = "#/components/schemas/" + escape_pointer_token("a/b")
        assert resolve_pointer(self._RAW, ref) == {"type": "string"}

    def test_list_index(self):
        assert resolve_pointer(self._RAW, "#/components/schemas/List/items/1") == 2

    def test_missing(self):
        with pytest.raises(DanglingReference) as exc_info:
            resolve_pointer(self._RAW, "#/components/schemas/Nope", pointer="#/paths/~1x")
        assert exc_info.value.reference == "#/components/schemas/Nope"
        assert exc_info.value.pointer == "#/paths/~1x"

    def test_external_reference(self):
        with pytest.raises(DanglingReference):
            resolve_pointer(self._RAW, "other.yaml#/components/schemas/Pet")
