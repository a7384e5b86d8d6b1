"""Unit tests for rule-based merging."""

import pytest

from httpfacade.headers import HeaderStore, RequestHeaders
from httpfacade.merge import (
    COMBINE,
    PRESERVE,
    REMOVE,
    REPLACE,
    REPLACE_STRING,
    ConfigMerger,
    HeadersMerger,
    MergeRule,
    PropertiesMerger,
    PropertyRule,
    combine_values,
    define_property_rules,
    normalize_property_name,
)


class TestMergeRules:
    """Tests for the built-in merge rules."""

    @pytest.mark.parametrize(
        ("rule", "base", "incoming", "expected"),
        [
            (REPLACE, {"a": "x"}, {"a": "y"}, {"a": "y"}),
            (REPLACE, {"a": "x"}, {"a": ""}, {"a": "x"}),
            (PRESERVE, {"a": "x"}, {"a": "y"}, {"a": "x"}),
            (PRESERVE, {"a": ""}, {"a": "y"}, {"a": "y"}),
            (PRESERVE, {}, {"a": "y"}, {"a": "y"}),
            (REPLACE_STRING, {"a": "x"}, {"a": 5}, {"a": "x"}),
            (REPLACE_STRING, {"a": "x"}, {"a": "y"}, {"a": "y"}),
            (COMBINE, {"a": "x"}, {"a": "y"}, {"a": "x, y"}),
            (COMBINE, {"a": "x, y"}, {"a": "y"}, {"a": "x, y"}),
            (REMOVE, {"a": "x", "b": 1}, {"a": "y"}, {"b": 1}),
        ],
    )
    def test_rule(
        self,
        rule: MergeRule,
        base: dict[str, object],
        incoming: dict[str, object],
        expected: dict[str, object],
    ) -> None:
        """Test each rule against a single property."""
        merger = PropertiesMerger({"a": rule})

        assert merger.merge_properties(base, incoming) == expected

    def test_unruled_properties(self) -> None:
        """Test that properties without a rule take non-blank incoming values."""
        merger = PropertiesMerger()

        result = merger.merge_properties({"a": "x", "b": "y"}, {"a": "z", "b": "", "c": None})

        assert result == {"a": "z", "b": "y", "c": None}

    def test_inputs_are_not_modified(self) -> None:
        """Test that merging never mutates its arguments."""
        base = {"tags": ["a"]}
        other = {"tags": ["b"]}

        result = PropertiesMerger({"tags": COMBINE}).merge_properties(base, other)

        assert result == {"tags": ["a", "b"]}
        assert base == {"tags": ["a"]}
        assert other == {"tags": ["b"]}


class TestMergeOrdering:
    """Tests for left-to-right folding."""

    def test_combine_is_order_dependent(self) -> None:
        """Test that COMBINE groups differently left and right."""
        merger = PropertiesMerger({"tags": COMBINE})
        a, b, c = {"tags": "text/html"}, {"tags": "html"}, {"tags": "text"}

        left = merger.merge_properties(merger.merge_properties(a, b), c)
        right = merger.merge_properties(a, merger.merge_properties(b, c))

        assert left == {"tags": "text/html"}
        assert right == {"tags": "text/html, html, text"}

    @pytest.mark.parametrize(("rule", "expected"), [(REPLACE, "text"), (PRESERVE, "text/html")])
    def test_replace_and_preserve_are_associative(self, rule: MergeRule, expected: str) -> None:
        """Test that REPLACE and PRESERVE group the same way."""
        merger = PropertiesMerger({"tags": rule})
        a, b, c = {"tags": "text/html"}, {"tags": "html"}, {"tags": "text"}

        left = merger.merge_properties(merger.merge_properties(a, b), c)
        right = merger.merge_properties(a, merger.merge_properties(b, c))

        assert left == right == {"tags": expected}

    def test_later_values_win(self) -> None:
        """Test that several values fold in order."""
        merger = PropertiesMerger({"a": REPLACE})

        assert merger.merge_properties({"a": 1}, {"a": 2}, {"a": 3}) == {"a": 3}


class TestRuleResolution:
    """Tests for resolving rules from names and objects."""

    def test_resolve_by_name(self) -> None:
        """Test that rule names resolve case-insensitively."""
        assert MergeRule.resolve("replace") is REPLACE
        assert MergeRule.resolve(" Preserve ") is PRESERVE
        assert MergeRule.resolve("delete") is REMOVE

    def test_unresolvable_falls_back_to_combine(self) -> None:
        """Test that unknown rules fall back to COMBINE."""
        assert MergeRule.resolve("bogus") is COMBINE
        assert MergeRule.resolve(42) is COMBINE

    def test_resolve_callable_and_object(self) -> None:
        """Test custom callables and rule-bearing objects."""
        calls: list[tuple[str, object]] = []

        def upper(target: dict[str, object], name: str, incoming: object) -> None:
            calls.append((name, incoming))
            target[name] = str(incoming).upper()

        custom = MergeRule.resolve(upper)
        merger = PropertiesMerger({"a": custom})

        assert custom.name == "UPPER"
        assert merger.merge_properties({}, {"a": "x"}) == {"a": "X"}
        assert calls == [("a", "x")]
        assert MergeRule.resolve({"rule": "remove"}) is REMOVE

    def test_property_names_are_normalized(self) -> None:
        """Test that hyphens, underscores and case are ignored in rule lookup."""
        rules = define_property_rules({"Content-Type": "replace"})

        assert normalize_property_name("content_type") == "contenttype"
        assert rules["contenttype"] == PropertyRule("Content-Type", REPLACE)
        assert PropertiesMerger(rules.values()).rule_for("CONTENT_TYPE") is REPLACE

    def test_combine_values(self) -> None:
        """Test combination of lists and mappings."""
        assert combine_values([1, 2], [2, 3]) == [1, 2, 3]
        assert combine_values({"a": 1}, {"b": 2}) == {"a": 1, "b": 2}
        assert combine_values(None, "x") == "x"
        assert combine_values("x", None) == "x"
        assert combine_values(1, 2) == 2


class TestHeadersMerger:
    """Tests for merging header stores."""

    def test_default_header_rules(self) -> None:
        """Test the default rules for common headers."""
        base = HeaderStore(
            {"Accept": "text/html", "Content-Type": "a/b", "Connection": "keep-alive"}
        )
        other = {"Accept": "application/json", "Content-Type": "c/d", "X-Trace": "1"}

        merged = HeadersMerger().merge_headers(base, other)

        assert merged.get("accept") == "text/html, application/json"
        assert merged.get("content-type") == "c/d"
        assert merged.get("x-trace") == "1"
        assert base.get("content-type") == "a/b"

    def test_hop_by_hop_headers_are_removed(self) -> None:
        """Test that connection headers in an incoming value are removed."""
        merged = HeadersMerger().merge_headers(
            {"Connection": "keep-alive"}, {"Connection": "close"}
        )

        assert not merged.has("connection")

    def test_store_type_is_kept(self) -> None:
        """Test that the base store's type carries over to the result."""
        merged = HeadersMerger().merge_headers(RequestHeaders({"Accept": "x"}), {"X-A": "1"})

        assert isinstance(merged, RequestHeaders)

    def test_store_merge_shortcut(self) -> None:
        """Test HeaderStore.merge returns a new store."""
        store = HeaderStore({"Accept": "x"})

        merged = store.merge({"X-A": "1"}, {"Accept": "y"})

        assert merged.get("accept") == "x, y"
        assert merged.get("x-a") == "1"
        assert not store.has("x-a")


class TestConfigMerger:
    """Tests for request config merging."""

    def test_merge_configs(self) -> None:
        """Test the default config rules, including nested headers."""
        base = {"url": "/a", "base_url": "https://one", "headers": {"Accept": "x"}}
        override = {
            "url": "/b",
            "base_url": "https://two",
            "headers": {"Accept": "y"},
            "response_type": 5,
            "method": "POST",
        }

        merged = ConfigMerger().merge_configs(base, override)

        assert merged["url"] == "/b"
        assert merged["base_url"] == "https://one"
        assert merged["method"] == "POST"
        assert merged["headers"] == {"accept": "x, y"}
        assert "response_type" not in merged

    def test_nested_store_stays_a_store(self) -> None:
        """Test that a headers store in the base stays a store."""
        merged = ConfigMerger().merge_configs(
            {"headers": HeaderStore({"Accept": "x"})}, {"headers": {"X-A": "1"}}
        )

        assert isinstance(merged["headers"], HeaderStore)
        assert merged["headers"].get("x-a") == "1"
