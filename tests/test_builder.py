import pytest
from pydantic import BaseModel

from service_client.builder import RequestBuilder, append_query_string, basic_auth_header
from service_client.errors import ArgumentError
from service_client.serializers import JsonSerializer


class GetItem(BaseModel):
    id: int
    name: str | None = None


def make_builder(**kwargs) -> RequestBuilder:
    return RequestBuilder(JsonSerializer(), **kwargs)


class TestQueryString:
    def test_get_payload_becomes_query_string(self):
        descriptor = make_builder().build("GET", "https://api.example.com/items", {"id": 5, "name": "a b"})
        assert descriptor.url == "https://api.example.com/items?id=5&name=a%20b"
        assert descriptor.url.count("?") == 1
        assert descriptor.payload is None
        assert not descriptor.has_body

    def test_model_payload_skips_none_fields(self):
        descriptor = make_builder().build("GET", "https://api.example.com/items", GetItem(id=5))
        assert descriptor.url == "https://api.example.com/items?id=5"

    @pytest.mark.parametrize("method", ["DELETE", "HEAD"])
    def test_other_bodyless_methods(self, method):
        descriptor = make_builder().build(method, "https://api.example.com/items", {"id": 1})
        assert descriptor.url.endswith("?id=1")
        assert descriptor.payload is None

    def test_existing_query_string_is_extended(self):
        assert append_query_string("https://x/items?a=1", "b=2") == "https://x/items?a=1&b=2"

    def test_empty_query_string_leaves_url(self):
        assert append_query_string("https://x/items", "") == "https://x/items"

    def test_post_payload_stays_in_body(self):
        descriptor = make_builder().build("POST", "https://api.example.com/items", {"id": 5})
        assert descriptor.url == "https://api.example.com/items"
        assert descriptor.payload == {"id": 5}
        assert descriptor.has_body
        assert descriptor.headers["Content-Type"] == "application/json"


class TestHeaders:
    def test_accept_has_wildcard_fallback(self):
        descriptor = make_builder(content_type="application/xml").build("GET", "https://x/")
        assert descriptor.headers["Accept"] == "application/xml, */*"

    def test_method_is_uppercased(self):
        assert make_builder().build("get", "https://x/").method == "GET"

    @pytest.mark.parametrize("method", ["PUT", "DELETE", "PATCH"])
    def test_emulated_verbs_go_out_as_post(self, method):
        descriptor = make_builder(emulate_http_via_post=True).build(method, "https://x/", None)
        assert descriptor.method == "POST"
        assert descriptor.verb == method
        assert descriptor.headers["X-HTTP-Method-Override"] == method

    @pytest.mark.parametrize("method", ["GET", "POST"])
    def test_native_verbs_are_not_emulated(self, method):
        descriptor = make_builder(emulate_http_via_post=True).build(method, "https://x/")
        assert descriptor.method == method
        assert "X-HTTP-Method-Override" not in descriptor.headers

    def test_always_send_basic_auth(self):
        descriptor = make_builder(
            always_send_basic_auth_header=True, username="user", password="pass"
        ).build("GET", "https://x/")
        assert descriptor.headers["Authorization"] == "Basic dXNlcjpwYXNz"

    def test_basic_auth_only_on_demand_by_default(self):
        descriptor = make_builder(username="user", password="pass").build("GET", "https://x/")
        assert "Authorization" not in descriptor.headers

    def test_with_basic_auth_builds_new_descriptor(self):
        builder = make_builder(username="user", password="pass")
        original = builder.build("GET", "https://x/")
        retried = builder.with_basic_auth(original)
        assert retried is not original
        assert "Authorization" not in original.headers
        assert retried.headers["Authorization"] == basic_auth_header("user", "pass")

    def test_credentials_are_carried(self):
        credentials = object()
        assert make_builder(credentials=credentials).build("GET", "https://x/").credentials is credentials


class TestValidation:
    @pytest.mark.parametrize("method", [None, ""])
    def test_missing_method(self, method):
        with pytest.raises(ArgumentError):
            make_builder().build(method, "https://x/")

    def test_descriptor_is_immutable(self):
        descriptor = make_builder().build("GET", "https://x/")
        with pytest.raises(AttributeError):
            descriptor.method = "POST"
