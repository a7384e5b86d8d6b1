"""Rule-based merging of header stores and config mappings.

A ``MergeRule`` is a named function ``(target, name, incoming) -> None``
that mutates ``target`` in place. Merges fold left to right into a copy
of the first argument, applying the rule registered for each incoming
property name.

Merging is associative only when every rule involved is REPLACE or
PRESERVE. COMBINE concatenates with containment-based de-duplication,
so ``merge(merge(a, b), c)`` can differ from ``merge(a, merge(b, c))``.
"""

import copy
from collections.abc import Callable, Iterable, Mapping, MutableMapping
from dataclasses import dataclass
from typing import Any

import structlog

from httpfacade.constants import HEADER_VALUE_SEPARATOR
from httpfacade.headers import HeaderStore
from httpfacade.shape import get_field, is_blank


logger = structlog.get_logger()

MergeFunction = Callable[[Any, str, Any], None]


def _read(target: Any, name: str) -> Any:
    if isinstance(target, HeaderStore):
        return target.get(name)
    if isinstance(target, Mapping):
        return target.get(name)
    return getattr(target, name, None)


def _write(target: Any, name: str, value: Any) -> None:
    if isinstance(target, HeaderStore):
        target.set(name, value)
    elif isinstance(target, MutableMapping):
        target[name] = value
    else:
        setattr(target, name, value)


def _remove(target: Any, name: str) -> None:
    if isinstance(target, HeaderStore):
        target.delete(name)
    elif isinstance(target, MutableMapping):
        target.pop(name, None)
    elif hasattr(target, name):
        delattr(target, name)


def combine_values(existing: Any, incoming: Any) -> Any:
    """Combine two property values the way ``HeaderStore.append`` does.

    Strings are joined with ``", "`` unless the incoming value is already
    contained in the existing one. Lists are extended with new items and
    mappings are shallow-merged. Otherwise the incoming value wins.
    """
    if is_blank(existing):
        return incoming
    if is_blank(incoming):
        return existing
    if isinstance(existing, str) and isinstance(incoming, str):
        if incoming.strip() in existing:
            return existing
        return f"{existing}{HEADER_VALUE_SEPARATOR}{incoming.strip()}"
    if isinstance(existing, list) and isinstance(incoming, (list, tuple)):
        return existing + [item for item in incoming if item not in existing]
    if isinstance(existing, Mapping) and isinstance(incoming, Mapping):
        return {**existing, **incoming}
    return incoming


def _preserve(target: Any, name: str, incoming: Any) -> None:
    if is_blank(_read(target, name)) and incoming is not None:
        _write(target, name, incoming)


def _replace(target: Any, name: str, incoming: Any) -> None:
    if not is_blank(incoming):
        _write(target, name, incoming)


def _replace_string(target: Any, name: str, incoming: Any) -> None:
    if isinstance(incoming, str) and incoming.strip():
        _write(target, name, incoming)


def _combine(target: Any, name: str, incoming: Any) -> None:
    if isinstance(target, HeaderStore):
        target.append(name, incoming)
        return
    _write(target, name, combine_values(_read(target, name), incoming))


def _remove_rule(target: Any, name: str, incoming: Any) -> None:
    _remove(target, name)


class MergeRule:
    """A named strategy for merging one incoming property into a target."""

    __slots__ = ("_name", "_fn")

    def __init__(self, name: str, fn: MergeFunction) -> None:
        """Initialize the rule.

        Args:
            name: Rule name (e.g. ``"REPLACE"``).
            fn: Function ``(target, property_name, incoming_value)``.
        """
        self._name = name.upper()
        self._fn = fn

    @property
    def name(self) -> str:
        return self._name

    def execute(self, target: Any, name: str, incoming: Any) -> None:
        """Apply the rule to ``target[name]``."""
        self._fn(target, name, incoming)

    __call__ = execute

    def __repr__(self) -> str:
        return f"MergeRule({self._name})"

    @classmethod
    def resolve(cls, value: Any) -> "MergeRule":
        """Resolve a rule, rule name, callable or rule-bearing object.

        Unresolvable values fall back to COMBINE.
        """
        if isinstance(value, MergeRule):
            return value
        if isinstance(value, str):
            rule = BUILTIN_RULES.get(value.strip().upper())
            if rule is not None:
                return rule
        elif callable(value):
            return cls(getattr(value, "__name__", "CUSTOM"), value)
        else:
            nested = get_field(value, "rule", "merge_rule", "name")
            if nested is not None and nested is not value:
                return cls.resolve(nested)
        logger.debug("merge_rule_unresolved", component="merge", rule=repr(value))
        return COMBINE


PRESERVE = MergeRule("PRESERVE", _preserve)
REPLACE = MergeRule("REPLACE", _replace)
REPLACE_STRING = MergeRule("REPLACE_STRING", _replace_string)
COMBINE = MergeRule("COMBINE", _combine)
REMOVE = MergeRule("REMOVE", _remove_rule)
DELETE = REMOVE
DEFAULT_RULE = COMBINE

BUILTIN_RULES: dict[str, MergeRule] = {
    "PRESERVE": PRESERVE,
    "REPLACE": REPLACE,
    "REPLACE_STRING": REPLACE_STRING,
    "COMBINE": COMBINE,
    "REMOVE": REMOVE,
    "DELETE": DELETE,
}


def normalize_property_name(name: Any) -> str:
    """Lookup key for a property: lowercase without ``-`` or ``_``."""
    return str(name).strip().lower().replace("-", "").replace("_", "")


@dataclass(frozen=True)
class PropertyRule:
    """Associates a merge rule with a property name."""

    property_name: str
    rule: MergeRule

    @property
    def key(self) -> str:
        return normalize_property_name(self.property_name)


def define_property_rules(
    rules: Mapping[str, Any] | Iterable[PropertyRule] | None,
) -> dict[str, PropertyRule]:
    """Build a lookup of property rules.

    Args:
        rules: Mapping of property name to rule (rule, rule name or
            callable), or an iterable of ``PropertyRule``.

    Returns:
        Mapping of normalized property name to ``PropertyRule``.
    """
    if rules is None:
        return {}
    if isinstance(rules, Mapping):
        items = [
            PropertyRule(name, MergeRule.resolve(rule)) for name, rule in rules.items()
        ]
    else:
        items = list(rules)
    return {item.key: item for item in items}


def _as_mapping(value: Any) -> dict[str, Any]:
    if value is None:
        return {}
    if isinstance(value, Mapping):
        return dict(value)
    dump = getattr(value, "model_dump", None)
    if callable(dump):
        return dict(dump())
    if hasattr(value, "__dict__"):
        return {k: v for k, v in vars(value).items() if not k.startswith("_")}
    return {}


class PropertiesMerger:
    """Merges mappings property by property using per-name rules."""

    def __init__(
        self,
        rules: Mapping[str, Any] | Iterable[PropertyRule] | None = None,
        deep_copy: bool = False,
    ) -> None:
        """Initialize the merger.

        Args:
            rules: Property rules; see ``define_property_rules``.
            deep_copy: Deep-copy the base before merging into it.
        """
        self._rules = define_property_rules(rules)
        self._deep_copy = deep_copy

    def rule_for(self, name: str) -> MergeRule | None:
        """Rule registered for a property name, if any."""
        property_rule = self._rules.get(normalize_property_name(name))
        return property_rule.rule if property_rule else None

    def merge_properties(self, base: Any, *others: Any) -> dict[str, Any]:
        """Fold ``others`` into a copy of ``base``, left to right.

        Properties without a rule take the incoming value when it is not
        blank, and are adopted when absent from the accumulator.

        Args:
            base: Mapping, pydantic model or plain object.
            *others: Values merged in order.

        Returns:
            New mapping; no input is modified.
        """
        accumulator = _as_mapping(base)
        if self._deep_copy:
            accumulator = copy.deepcopy(accumulator)
        for other in others:
            for name, incoming in _as_mapping(other).items():
                rule = self.rule_for(name)
                if rule is not None:
                    rule.execute(accumulator, name, incoming)
                elif not is_blank(incoming) or name not in accumulator:
                    accumulator[name] = incoming
        return accumulator


DEFAULT_HEADER_MERGE_RULES: dict[str, MergeRule] = {
    "api_key": PRESERVE,
    "accept": COMBINE,
    "content-type": REPLACE,
    "content-length": REPLACE,
    "authorization": REPLACE,
    "www-authenticate": REPLACE,
    "proxy-authenticate": REPLACE,
    "proxy-authorization": REPLACE,
    "cache-control": REPLACE,
    "connection": REMOVE,
    "keep-alive": REMOVE,
    "proxy-connection": REMOVE,
    "te": REMOVE,
    "trailer": REMOVE,
    "transfer-encoding": REMOVE,
    "upgrade": REMOVE,
}


class HeadersMerger:
    """Merges header-like values into a new ``HeaderStore``.

    Headers without a registered rule are combined with ``append``.
    """

    def __init__(
        self, rules: Mapping[str, Any] | Iterable[PropertyRule] | None = None
    ) -> None:
        self._rules = define_property_rules(
            DEFAULT_HEADER_MERGE_RULES if rules is None else rules
        )

    def merge_headers(self, base: Any, *others: Any) -> HeaderStore:
        """Fold header-like values into a copy of ``base``.

        Args:
            base: Store or header-like value; a store's type, catalog and
                policy are kept for the result.
            *others: Header-like values merged in order.

        Returns:
            New store.
        """
        accumulator = base.clone() if isinstance(base, HeaderStore) else HeaderStore(base)
        for other in others:
            incoming = other if isinstance(other, HeaderStore) else accumulator.empty()
            if incoming is not other:
                incoming.update(other)
            for name, value in incoming.entries():
                property_rule = self._rules.get(normalize_property_name(name))
                rule = property_rule.rule if property_rule else DEFAULT_RULE
                rule.execute(accumulator, name, value)
        return accumulator


def _merge_nested_headers(target: Any, name: str, incoming: Any) -> None:
    existing = _read(target, name)
    if existing is None:
        merged = HeaderStore(incoming)
    else:
        merged = HeadersMerger().merge_headers(existing, incoming)
    _write(target, name, merged if isinstance(existing, HeaderStore) else merged.to_literal())


HEADERS = MergeRule("HEADERS", _merge_nested_headers)

DEFAULT_CONFIG_MERGE_RULES: dict[str, MergeRule] = {
    "method": REPLACE,
    "url": REPLACE,
    "auth": REPLACE,
    "timeout": REPLACE,
    "data": REPLACE,
    "body": REPLACE,
    "params": REPLACE,
    "signal": REPLACE,
    "redirect": REPLACE,
    "cache": REPLACE,
    "credentials": REPLACE,
    "mode": REPLACE,
    "base_url": PRESERVE,
    "env": PRESERVE,
    "validate_status": PRESERVE,
    "allow_absolute_urls": PRESERVE,
    "response_type": REPLACE_STRING,
    "response_encoding": REPLACE_STRING,
    "accept": COMBINE,
    "headers": HEADERS,
}


class ConfigMerger(PropertiesMerger):
    """Merges request configs, merging nested ``headers`` with header rules."""

    def __init__(
        self,
        rules: Mapping[str, Any] | Iterable[PropertyRule] | None = None,
        deep_copy: bool = False,
    ) -> None:
        super().__init__(
            DEFAULT_CONFIG_MERGE_RULES if rules is None else rules, deep_copy=deep_copy
        )

    def merge_configs(self, base: Any, *others: Any) -> dict[str, Any]:
        """Merge request configs left to right."""
        return self.merge_properties(base, *others)
