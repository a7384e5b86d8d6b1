"""Unit tests for the header catalog, verbs, content types and statuses."""

import pytest

from httpfacade.catalog import (
    DEFAULT_CATALOG,
    HeaderCatalog,
    HeaderCategory,
    HeaderDefinition,
    HttpContentType,
    HttpStatus,
    HttpVerb,
    calculate_content_type,
    calculate_priority,
    get_content_type,
    is_content_type,
    is_header,
    is_http_status,
    is_verb,
    resolve_http_method,
    status_for,
)
from httpfacade.constants import STATUS_CODES
from httpfacade.errors import IllegalArgumentError


class TestHeaderCatalog:
    """Tests for HeaderCatalog lookups."""

    def test_lookup_ignores_case(self) -> None:
        """Test that registered names resolve regardless of case."""
        lower = DEFAULT_CATALOG.get("content-type")
        upper = DEFAULT_CATALOG.get("CONTENT-TYPE")

        assert lower is not None
        assert lower == upper
        assert lower.name == "Content-Type"
        assert lower.category == HeaderCategory.MESSAGE_BODY

    def test_custom_header_gets_synthetic_definition(self) -> None:
        """Test that X- names resolve to a CUSTOM definition with id -1."""
        definition = DEFAULT_CATALOG.definition_for("X-Request-Id")

        assert definition is not None
        assert definition.id == -1
        assert definition.category == HeaderCategory.CUSTOM
        assert definition.name == "X-Request-Id"

    def test_unknown_name_has_no_definition(self) -> None:
        """Test that unregistered, non X- names are not headers."""
        assert DEFAULT_CATALOG.definition_for("Bogus-Header") is None
        assert DEFAULT_CATALOG.definition_for("X-") is None

    def test_first_definition_wins(self) -> None:
        """Test that a duplicate name does not replace the first definition."""
        catalog = HeaderCatalog(
            [
                HeaderDefinition(id=1, name="Accept", description="first"),
                HeaderDefinition(id=2, name="accept", description="second"),
            ]
        )

        definition = catalog.get("ACCEPT")
        assert definition is not None
        assert definition.description == "first"
        assert len(catalog) == 1

    def test_from_mapping_assigns_ids_in_order(self) -> None:
        """Test that ids follow table order."""
        catalog = HeaderCatalog.from_mapping(
            {"CACHING": {"Age": "a", "Expires": "b"}, "COOKIE": {"Cookie": "c"}}
        )

        assert [d.id for d in catalog] == [0, 1, 2]
        assert catalog.categories() == [HeaderCategory.CACHING, HeaderCategory.COOKIE]
        assert [d.name for d in catalog.in_category(HeaderCategory.CACHING)] == [
            "Age",
            "Expires",
        ]

    def test_is_header_is_total(self) -> None:
        """Test that is_header never raises for odd inputs."""
        assert is_header("Accept")
        assert is_header("x-trace")
        assert "Retry-After" in DEFAULT_CATALOG
        for value in (None, 42, "", "   ", b"Accept", ["Accept"], object(), "X-Bad Name"):
            assert not is_header(value)

    def test_tables_are_read_only(self) -> None:
        """Test that the shared tables cannot be modified."""
        with pytest.raises(TypeError):
            STATUS_CODES["OK"] = 201  # type: ignore[index]


class TestHttpVerb:
    """Tests for method resolution."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("post", "POST"),
            (" Delete ", "DELETE"),
            (HttpVerb.PATCH, "PATCH"),
            (1, "POST"),
            ("4", "HEAD"),
            ('{"method": "put"}', "PUT"),
            ({"method": "options"}, "OPTIONS"),
            (None, "GET"),
            (True, "GET"),
            (99, "GET"),
            ("FETCH", "GET"),
        ],
    )
    def test_resolve_http_method(self, value: object, expected: str) -> None:
        """Test that method-like values resolve to verb names."""
        assert resolve_http_method(value) == expected

    def test_body_rules(self) -> None:
        """Test body requirements per verb."""
        assert HttpVerb.POST.requires_body
        assert HttpVerb.DELETE.allows_body
        assert not HttpVerb.DELETE.requires_body
        assert HttpVerb.GET.forbids_body
        assert HttpVerb.TRACE.forbids_body

    def test_is_verb(self) -> None:
        """Test verb classification."""
        assert is_verb("get")
        assert is_verb(HttpVerb.TRACE)
        assert not is_verb("FETCH")
        assert not is_verb(0)


class TestContentTypes:
    """Tests for content type helpers."""

    @pytest.mark.parametrize(
        ("body", "expected"),
        [
            (None, ""),
            (b"\x00\x01", "application/octet-stream"),
            ('{"a": 1}', "application/json"),
            ("a=1&b=2", "application/x-www-form-urlencoded"),
            (42, "application/x-www-form-urlencoded"),
            ({"a": 1}, "application/json"),
            ([1, 2], "application/json"),
        ],
    )
    def test_calculate_content_type(self, body: object, expected: str) -> None:
        """Test content type inference from the body."""
        assert calculate_content_type(body) == expected

    def test_declared_content_type_wins(self) -> None:
        """Test that a declared Content-Type header is returned unchanged."""
        config = {"headers": {"Content-Type": "text/csv"}, "body": {"a": 1}}

        assert get_content_type(config) == "text/csv"

    def test_inferred_when_not_declared(self) -> None:
        """Test that the content type is inferred from the body otherwise."""
        assert get_content_type({"data": b"raw"}) == "application/octet-stream"

    def test_is_content_type(self) -> None:
        """Test content type classification by key or MIME type."""
        assert is_content_type("json")
        assert is_content_type("application/json; charset=utf-8")
        assert is_content_type(HttpContentType.of("csv"))
        assert not is_content_type("foo/bar")
        assert not is_content_type(None)


class TestPriority:
    """Tests for calculate_priority."""

    def test_numeric_priorities(self) -> None:
        """Test that negative is low and positive is high."""
        assert calculate_priority({"priority": -3}) == "low"
        assert calculate_priority({"priority": 2}) == "high"
        assert calculate_priority({"priority": 0}) == "auto"

    def test_named_priorities_and_fallback(self) -> None:
        """Test named priorities and the config fallback."""
        assert calculate_priority({"priority": "HIGH"}) == "high"
        assert calculate_priority(None, {"priority": "low"}) == "low"
        assert calculate_priority({"priority": "urgent"}) == "auto"
        assert calculate_priority() == "auto"


# (informational, success, redirect, client_error, server_error, use_cached)
STATUS_PARTITION = {
    100: (True, False, False, False, False, False),
    200: (False, True, False, False, False, False),
    201: (False, True, False, False, False, False),
    204: (False, True, False, False, False, False),
    301: (False, False, True, False, False, False),
    304: (False, False, False, False, False, True),
    400: (False, False, False, True, False, False),
    404: (False, False, False, True, False, False),
    429: (False, False, False, True, False, False),
    500: (False, False, False, False, True, False),
}


class TestHttpStatus:
    """Tests for HttpStatus resolution and classification."""

    @pytest.mark.parametrize(("code", "expected"), sorted(STATUS_PARTITION.items()))
    def test_classification_partition(
        self, code: int, expected: tuple[bool, ...]
    ) -> None:
        """Test that each code falls in exactly the documented classes."""
        status = HttpStatus.from_code(code)

        actual = (
            status.is_informational(),
            status.is_success(),
            status.is_redirect(),
            status.is_client_error(),
            status.is_server_error(),
            status.is_use_cached(),
        )
        assert actual == expected

    def test_not_modified_is_not_redirect(self) -> None:
        """Test that 304 is use-cached rather than a redirect."""
        status = HttpStatus.from_code(304)

        assert status.is_use_cached()
        assert not status.is_redirect()

    def test_from_text(self) -> None:
        """Test resolution from status names."""
        assert HttpStatus.from_code("OK").code == 200
        assert HttpStatus.from_code("Not Found").code == 404
        assert HttpStatus.from_code("too-many-requests").code == 429
        assert HttpStatus.from_code("503").code == 503

    def test_canonical_name_is_first_listed(self) -> None:
        """Test that aliases resolve to the canonical name."""
        assert HttpStatus.from_code("MOVED") == HttpStatus.from_code(301)
        assert HttpStatus.from_code(301).name == "MOVED_PERMANENTLY"
        assert HttpStatus.from_code(666).name == "CLIENT_ERROR"

    def test_candidate_list_first_resolvable_wins(self) -> None:
        """Test that candidate lists skip None and unresolvable entries."""
        assert HttpStatus.from_code([None, "bogus", 503, 200]).code == 503

    def test_exhausted_candidate_list_raises(self) -> None:
        """Test that a list with no resolvable entry raises."""
        with pytest.raises(IllegalArgumentError) as exc_info:
            HttpStatus.from_code([None, "bogus"])

        assert exc_info.value.context == "from_code"

    def test_single_value_raises_with_context(self) -> None:
        """Test that an unresolvable scalar raises with diagnostics."""
        with pytest.raises(IllegalArgumentError) as exc_info:
            HttpStatus.from_code(299)

        assert exc_info.value.context == "from_code"
        assert exc_info.value.arguments == (299,)
        assert exc_info.value.to_dict()["context"] == "from_code"

    def test_from_response_shapes(self) -> None:
        """Test resolution from response-like values."""
        assert HttpStatus.from_code({"status": 201}).code == 201
        assert HttpStatus.from_response({"response": {"status_code": 404}}).code == 404
        assert HttpStatus.from_response({"status": 0, "statusText": "OK"}).code == 0
        assert HttpStatus.from_response({"statusText": "Bad Gateway"}).code == 502

    def test_from_response_raises_without_status(self) -> None:
        """Test that from_response raises for values with no status."""
        with pytest.raises(IllegalArgumentError) as exc_info:
            HttpStatus.from_response({"headers": {}})

        assert exc_info.value.context == "from_response"

    def test_retry_and_validity(self) -> None:
        """Test can_retry, is_ok and is_valid."""
        assert HttpStatus.from_code(503).can_retry()
        assert HttpStatus.from_code(429).can_retry()
        assert not HttpStatus.from_code(404).can_retry()
        assert HttpStatus.from_code(202).is_valid()
        assert not HttpStatus.from_code(201).is_ok()
        assert HttpStatus.from_code(429).is_exceeds_rate_limit()

    def test_is_http_status_is_total(self) -> None:
        """Test that is_http_status never raises."""
        assert is_http_status(200)
        assert is_http_status("Created")
        assert is_http_status(HttpStatus.from_code(404))
        for value in (None, 299, "nope", 1.5, object(), [None], "²", "--404"):
            assert not is_http_status(value)

    def test_self_containing_list_is_not_a_status(self) -> None:
        """Test that a list containing itself neither recurses nor resolves."""
        cyclic: list[object] = []
        cyclic.append(cyclic)

        assert not is_http_status(cyclic)
        with pytest.raises(IllegalArgumentError):
            HttpStatus.from_code(cyclic)

    def test_nested_lists_are_skipped(self) -> None:
        """Test that only scalar candidates of a list are considered."""
        assert HttpStatus.from_code([[404], "Created"]).code == 201
        assert not is_http_status([[200]])

    def test_listed_statuses_are_shared(self) -> None:
        """Test that every route to a listed code yields the same instance."""
        assert HttpStatus.from_code(404) is HttpStatus.from_code("Not Found")
        assert HttpStatus.from_code("404") is status_for(404)
        assert HttpStatus.from_code({"status": 404}) is status_for(404)
