"""Value transformer tests: strings, mappings, sequences and field orchestration."""

from __future__ import annotations

import copy
import datetime

import pytest

from scrubgate.sanitize import (
    DepthExceededError,
    MAX_DEPTH_LIMIT,
    TypeMismatchError,
    build_options,
    sanitize_fields,
    sanitize_mapping,
    sanitize_sequence,
    sanitize_string,
    sanitize_value,
)

_SAMPLE_STRINGS = [
    "$ne",
    "a.b.c",
    "{ $where: 'sleep(1000)' }",
    "${process.env.SECRET}",
    "name\x00.$gt",
    "plain text",
    "",
    "  $  ",
    "user@localhost",
    "$$$...$$$",
    "db.users.find({})",
]

_SAMPLE_VALUES = [
    {"$ne": "admin"},
    {"user": {"$gt": "", "$or": [{"a.b": 1}, {"$where": "x.y"}]}},
    ["$a", "$a", "b", None, 0, {"k.$": "v.$"}],
    {"email": "john.doe@example.com", "john.doe@example.com": "x"},
    "$regex",
    42,
    None,
    {"nested": [[["$deep"]]]},
]


# ══════════════════════════════════════════════════════════════════════
# Strings
# ══════════════════════════════════════════════════════════════════════


class TestSanitizeString:
    @pytest.mark.parametrize("text", _SAMPLE_STRINGS)
    def test_no_operator_or_separator_left(self, text, default_options):
        result = sanitize_value(text, default_options)
        assert "$" not in result
        assert "." not in result

    def test_email_value_exempt(self, default_options):
        assert sanitize_string("john.doe@example.com", default_options) == "john.doe@example.com"

    def test_email_key_not_exempt(self, default_options):
        assert sanitize_string("john.doe@example.com", default_options, is_value=False) == "johndoe@examplecom"

    def test_non_string_returned_as_is(self, default_options):
        assert sanitize_string(5, default_options) == 5
        assert sanitize_string(None, default_options) is None

    def test_replace_with(self):
        options = build_options({"replace_with": "_"})
        assert sanitize_string("$gt.x", options) == "_gt_x"

    def test_trim_and_lowercase_after_patterns(self):
        options = build_options({"string_options": {"trim": True, "lowercase": True}})
        assert sanitize_string("  $Admin  ", options) == "admin"

    def test_max_length_caps_values(self):
        options = build_options({"string_options": {"max_length": 3}})
        assert sanitize_string("$abcdef", options) == "abc"

    def test_max_length_never_caps_keys(self):
        options = build_options({"string_options": {"max_length": 3}})
        assert sanitize_string("abcdef", options, is_value=False) == "abcdef"

    def test_trim_before_max_length(self):
        options = build_options({"string_options": {"trim": True, "max_length": 3}})
        assert sanitize_string("   abcdef", options) == "abc"

    def test_zero_max_length_means_no_cap(self):
        options = build_options({"string_options": {"max_length": 0}})
        assert sanitize_string("abcdef", options) == "abcdef"


# ══════════════════════════════════════════════════════════════════════
# Scalars and opaque values
# ══════════════════════════════════════════════════════════════════════


class TestPassThrough:
    @pytest.mark.parametrize("value", [None, 0, 1, 3.14, True, False])
    def test_scalars_unchanged(self, value, default_options):
        assert sanitize_value(value, default_options) is value

    def test_dates_unchanged(self, default_options):
        now = datetime.datetime(2024, 5, 1, 10, 30)
        assert sanitize_value(now, default_options) is now
        assert sanitize_value({"at": now}, default_options) == {"at": now}

    @pytest.mark.parametrize("value", [b"$ne", {"$a", "$b"}, object()])
    def test_unknown_types_unchanged(self, value, default_options):
        assert sanitize_value(value, default_options) is value

    def test_callables_unchanged(self, default_options):
        assert sanitize_value(len, default_options) is len


# ══════════════════════════════════════════════════════════════════════
# Mappings
# ══════════════════════════════════════════════════════════════════════


class TestSanitizeMapping:
    def test_operator_key_scrubbed(self, default_options):
        assert sanitize_value({"$ne": "admin"}, default_options) == {"ne": "admin"}

    def test_nested_operators(self, default_options):
        data = {"user": {"$gt": "", "profile.name": {"$regex": ".*"}}}
        assert sanitize_value(data, default_options) == {"user": {"gt": "", "profilename": {"regex": ""}}}

    def test_input_not_mutated(self, default_options):
        data = {"a": {"$gt": 1, "list": ["$x"]}}
        snapshot = copy.deepcopy(data)
        result = sanitize_value(data, default_options)
        assert data == snapshot
        assert result is not data
        assert result["a"] is not data["a"]

    def test_colliding_keys_later_wins(self, default_options):
        assert sanitize_value({"$a": 1, "a": 2}, default_options) == {"a": 2}

    def test_email_value_kept(self, default_options):
        data = {"email": "john.doe@example.com", "name": "j.doe"}
        assert sanitize_value(data, default_options) == {"email": "john.doe@example.com", "name": "jdoe"}

    def test_allowed_keys(self):
        options = build_options({"allowed_keys": ["username", "email"]})
        data = {"username": "$admin", "email": "a@b.com", "password": "$x"}
        assert sanitize_value(data, options) == {"username": "admin", "email": "a@b.com"}

    def test_allowed_keys_apply_at_every_level(self):
        options = build_options({"allowed_keys": ["user", "name"]})
        data = {"user": {"name": "x", "role": "admin"}, "other": 1}
        assert sanitize_value(data, options) == {"user": {"name": "x"}}

    def test_key_filter_sees_raw_key(self):
        options = build_options({"allowed_keys": ["$where"]})
        assert sanitize_value({"$where": "1", "where": "2"}, options) == {"where": "1"}

    def test_denied_keys(self):
        options = build_options({"denied_keys": ["password"]})
        assert sanitize_value({"password": "x", "name": "y"}, options) == {"name": "y"}

    def test_allowed_then_denied(self):
        options = build_options({"allowed_keys": ["a", "b"], "denied_keys": ["b"]})
        assert sanitize_value({"a": 1, "b": 2, "c": 3}, options) == {"a": 1}

    def test_empty_lists_do_not_filter(self):
        options = build_options({"allowed_keys": [], "denied_keys": []})
        assert sanitize_value({"a": 1, "b": 2}, options) == {"a": 1, "b": 2}

    def test_remove_matches_drops_value_match(self):
        options = build_options({"remove_matches": True})
        assert sanitize_value({"role": "$super"}, options) == {}

    def test_remove_matches_drops_key_match(self):
        options = build_options({"remove_matches": True})
        assert sanitize_value({"$where": "1", "ok": "fine"}, options) == {"ok": "fine"}

    def test_remove_matches_keeps_email_value(self):
        options = build_options({"remove_matches": True})
        assert sanitize_value({"contact": "a.b@example.com"}, options) == {"contact": "a.b@example.com"}

    def test_remove_matches_key_beats_email_value(self):
        """An email value does not protect its entry when the key itself matches."""
        options = build_options({"remove_matches": True})
        assert sanitize_value({"$contact": "a@b.com"}, options) == {}

    def test_remove_matches_recurses_into_non_matching(self):
        options = build_options({"remove_matches": True})
        data = {"filter": {"$gt": 1, "name": "bob", "tag": "a.b"}, "n": 3}
        assert sanitize_value(data, options) == {"filter": {"name": "bob"}, "n": 3}

    def test_remove_empty_drops_falsy(self):
        options = build_options({"remove_empty": True})
        data = {"$": "x", "a": "$", "b": 0, "c": False, "d": None, "e": "ok", "f": [], "g": {}}
        assert sanitize_value(data, options) == {"e": "ok"}

    def test_remove_empty_checks_sanitized_value(self):
        options = build_options({"remove_empty": True})
        assert sanitize_value({"a": "$.", "b": "x$"}, options) == {"b": "x"}

    def test_remove_empty_nested_mapping_emptied(self):
        options = build_options({"remove_empty": True})
        assert sanitize_value({"a": {"b": "$"}, "c": 1}, options) == {"c": 1}

    def test_empty_check_escape_hatch(self):
        options = build_options({"remove_empty": True, "empty_check": lambda v: v is None or v == ""})
        data = {"b": 0, "c": False, "d": None, "e": "$", "f": "x"}
        assert sanitize_value(data, options) == {"b": 0, "c": False, "f": "x"}

    def test_empty_key_kept_without_remove_empty(self, default_options):
        assert sanitize_value({"$": 1}, default_options) == {"": 1}

    def test_non_string_keys_pass_through(self, default_options):
        assert sanitize_value({1: "$a", None: "b"}, default_options) == {1: "a", None: "b"}


# ══════════════════════════════════════════════════════════════════════
# Sequences
# ══════════════════════════════════════════════════════════════════════


class TestSanitizeSequence:
    def test_elements_sanitized(self, default_options):
        assert sanitize_value(["$a", {"$b": "c.d"}, 1], default_options) == ["a", {"b": "cd"}, 1]

    def test_tuple_stays_tuple(self, default_options):
        assert sanitize_value(("$a", "b"), default_options) == ("a", "b")

    def test_array_options_on_nested_array(self):
        options = build_options({"array_options": {"filter_null": True, "distinct": True}})
        data = {"a": {"$gt": 1, "b": [1, 1, 2, None]}}
        assert sanitize_value(data, options) == {"a": {"gt": 1, "b": [1, 2]}}

    def test_postprocessing_sees_sanitized_elements(self):
        options = build_options({"array_options": {"filter_null": True, "distinct": True}})
        assert sanitize_value(["$", "a", "$a", "a.", "b"], options) == ["a", "b"]

    def test_filter_null_drops_zero_and_false(self):
        options = build_options({"array_options": {"filter_null": True}})
        assert sanitize_value([0, False, None, "", 1, "x"], options) == [1, "x"]

    def test_array_string_elements_are_values(self):
        options = build_options({"string_options": {"max_length": 2}})
        assert sanitize_value(["abcd", "john.doe@example.com"], options) == ["ab", "john.doe@example.com"]

    def test_distinct_structural(self):
        options = build_options({"array_options": {"distinct": True}})
        assert sanitize_value([{"$a": 1}, {"a": 1}], options) == [{"a": 1}]


# ══════════════════════════════════════════════════════════════════════
# Recursion toggle and depth guard
# ══════════════════════════════════════════════════════════════════════


class TestRecursion:
    def test_recursion_disabled_leaves_nested_untouched(self):
        options = build_options({"recursive": False})
        nested = {"$b": "c.d"}
        items = [{"$x": 1}, ["$y"]]
        data = {"$a": nested, "list": items, "s": "$y"}

        result = sanitize_value(data, options)

        assert result == {"a": {"$b": "c.d"}, "list": [{"$x": 1}, ["$y"]], "s": "y"}
        assert result["a"] is nested
        assert result["list"][0] is items[0]
        assert result["list"][1] is items[1]

    def test_recursion_disabled_top_level_array(self):
        options = build_options({"recursive": False})
        inner = {"$a": 1}
        result = sanitize_value(["$x", inner], options)
        assert result == ["x", {"$a": 1}]
        assert result[1] is inner

    def test_depth_guard(self):
        options = build_options({"max_depth": 3})
        assert sanitize_value({"a": {"b": {"c": 1}}}, options) == {"a": {"b": {"c": 1}}}
        with pytest.raises(DepthExceededError) as exc_info:
            sanitize_value({"a": {"b": {"c": {"d": 1}}}}, options)
        assert exc_info.value.type == "depth_error"
        assert exc_info.value.max_depth == 3

    def test_depth_guard_counts_arrays(self):
        options = build_options({"max_depth": 2})
        with pytest.raises(DepthExceededError):
            sanitize_value([[["x"]]], options)

    def test_default_depth_guard(self, default_options):
        data: dict = {}
        node = data
        for _ in range(100):
            node["n"] = {}
            node = node["n"]
        with pytest.raises(DepthExceededError):
            sanitize_value(data, default_options)

    def test_largest_depth_limit_fails_cleanly(self):
        options = build_options({"max_depth": MAX_DEPTH_LIMIT})
        data: dict = {}
        node = data
        for _ in range(3000):
            node["n"] = {}
            node = node["n"]
        with pytest.raises(DepthExceededError) as exc_info:
            sanitize_value(data, options)
        assert exc_info.value.max_depth == MAX_DEPTH_LIMIT

    def test_largest_depth_limit_fails_cleanly_for_arrays(self):
        options = build_options({"max_depth": MAX_DEPTH_LIMIT})
        data: list = []
        node = data
        for _ in range(3000):
            node.append([])
            node = node[0]
        with pytest.raises(DepthExceededError):
            sanitize_value(data, options)

    def test_depth_guard_not_reached_without_recursion(self):
        options = build_options({"max_depth": 1, "recursive": False})
        deep = {"a": {"b": {"c": {}}}}
        assert sanitize_value(deep, options) == deep


# ══════════════════════════════════════════════════════════════════════
# Typed entry points
# ══════════════════════════════════════════════════════════════════════


class TestTypedEntryPoints:
    def test_sanitize_mapping(self, default_options):
        assert sanitize_mapping({"$a": 1}, default_options) == {"a": 1}

    @pytest.mark.parametrize("value", [["a"], "a", None, 1])
    def test_sanitize_mapping_type_mismatch(self, value, default_options):
        with pytest.raises(TypeMismatchError) as exc_info:
            sanitize_mapping(value, default_options)
        assert exc_info.value.type == "type_error"

    def test_sanitize_sequence(self, default_options):
        assert sanitize_sequence(["$a"], default_options) == ["a"]

    @pytest.mark.parametrize("value", [{"a": 1}, "abc", None])
    def test_sanitize_sequence_type_mismatch(self, value, default_options):
        with pytest.raises(TypeMismatchError):
            sanitize_sequence(value, default_options)


# ══════════════════════════════════════════════════════════════════════
# Idempotence
# ══════════════════════════════════════════════════════════════════════


@pytest.mark.parametrize("value", _SAMPLE_VALUES + _SAMPLE_STRINGS)
def test_sanitize_is_idempotent(value, default_options):
    once = sanitize_value(value, default_options)
    assert sanitize_value(once, default_options) == once


# ══════════════════════════════════════════════════════════════════════
# Field orchestration
# ══════════════════════════════════════════════════════════════════════


class TestSanitizeFields:
    def test_replaces_present_fields(self, default_options):
        body = {"$ne": 1}
        payload = {"body": body, "query": {"q": "$x"}, "params": {}}

        replaced = sanitize_fields(payload, default_options)

        assert replaced == ["body", "query"]
        assert payload["body"] == {"ne": 1}
        assert payload["query"] == {"q": "x"}
        assert payload["params"] == {}
        assert body == {"$ne": 1}

    def test_missing_fields_skipped(self, default_options):
        payload: dict = {}
        assert sanitize_fields(payload, default_options) == []
        assert payload == {}

    def test_only_configured_fields(self):
        options = build_options({"sanitize_objects": ["query"]})
        payload = {"body": {"$a": 1}, "query": {"$b": 2}}
        sanitize_fields(payload, options)
        assert payload == {"body": {"$a": 1}, "query": {"b": 2}}

    def test_custom_sanitizer_replaces_builtin(self):
        options = build_options({"custom_sanitizer": lambda data: {"custom": sorted(data)}})
        payload = {"body": {"$b": 1, "$a": 2}}
        sanitize_fields(payload, options)
        assert payload["body"] == {"custom": ["$a", "$b"]}

    def test_custom_sanitizer_gets_shallow_copy(self):
        seen = []

        def record(data):
            seen.append(data)
            data["added"] = True
            return data

        original = {"a": 1}
        payload = {"body": original}
        sanitize_fields(payload, build_options({"custom_sanitizer": record}))

        assert seen[0] is not original
        assert original == {"a": 1}
        assert payload["body"] == {"a": 1, "added": True}

    def test_failure_leaves_partial_state(self):
        """Fields before the failing one stay sanitized, the rest stay raw."""
        options = build_options({"max_depth": 2, "sanitize_objects": ["body", "query", "params"]})
        deep_query = {"x": {"y": {"z": "$1"}}}
        payload = {"body": {"a": "$1"}, "query": deep_query, "params": {"p": "$2"}}

        with pytest.raises(DepthExceededError):
            sanitize_fields(payload, options)

        assert payload["body"] == {"a": "1"}
        assert payload["query"] is deep_query
        assert payload["params"] == {"p": "$2"}

    def test_custom_sanitizer_error_propagates(self):
        def boom(data):
            raise ValueError("broken sanitizer")

        payload = {"body": {"a": 1}}
        with pytest.raises(ValueError, match="broken sanitizer"):
            sanitize_fields(payload, build_options({"custom_sanitizer": boom}))
        assert payload["body"] == {"a": 1}

    def test_scalar_field(self, default_options):
        payload = {"body": "$where"}
        sanitize_fields(payload, default_options)
        assert payload["body"] == "where"
