"""
Unit tests for query parameter sanitization.

Tests string coercion, list splitting, JSON query parsing and the
pagination math of list mode.
"""

import pytest

from entity_engine.core.params import parse_query, sanitize_params, split_fields
from entity_engine.exceptions import ValidationFailedError


class TestCoercion:
    """Test coercion of string-encoded parameters."""

    def test_numeric_strings_become_numbers(self):
        """Numeric strings keep their value but become numbers."""
        plan = sanitize_params({"limit": "20", "offset": "5", "page": "3", "page_size": "15"})

        assert plan["limit"] == 20 and isinstance(plan["limit"], int)
        assert plan["offset"] == 5
        assert plan["page"] == 3
        assert plan["page_size"] == 15

    def test_float_strings(self):
        """Non-integral numeric strings become floats, integral ones ints."""
        plan = sanitize_params({"limit": "2.5", "offset": "4.0"})

        assert plan["limit"] == 2.5
        assert plan["offset"] == 4 and isinstance(plan["offset"], int)

    def test_non_numeric_string_rejected(self):
        """A non-numeric pagination value raises ValidationFailedError."""
        with pytest.raises(ValidationFailedError) as exc_info:
            sanitize_params({"limit": "ten"})

        assert exc_info.value.field == "limit"

    def test_string_query_parsed(self):
        """A JSON-encoded query is parsed into a dict."""
        plan = sanitize_params({"query": '{"status": "active", "votes": {"$gt": 2}}'})

        assert plan["query"] == {"status": "active", "votes": {"$gt": 2}}

    def test_invalid_query_rejected(self):
        """Malformed JSON or a non-object query raises ValidationFailedError."""
        with pytest.raises(ValidationFailedError):
            sanitize_params({"query": "{status"})
        with pytest.raises(ValidationFailedError):
            parse_query("[1, 2]")

    def test_list_fields_split(self):
        """Comma and space separated strings become ordered lists."""
        plan = sanitize_params(
            {
                "sort": "-votes,title",
                "fields": "title votes",
                "populate": "author, comments",
                "search_fields": "title",
            }
        )

        assert plan["sort"] == ["-votes", "title"]
        assert plan["fields"] == ["title", "votes"]
        assert plan["populate"] == ["author", "comments"]
        assert plan["search_fields"] == ["title"]

    def test_split_drops_empty_tokens(self):
        """Repeated separators do not produce empty field names."""
        assert split_fields("a,, b  ,c") == ["a", "b", "c"]

    def test_caller_params_not_mutated(self):
        """The caller's mapping is left untouched."""
        params = {"limit": "5", "sort": "title"}
        sanitize_params(params, list_mode=True)

        assert params == {"limit": "5", "sort": "title"}

    def test_unknown_keys_kept(self):
        """Keys outside the query plan survive sanitization."""
        plan = sanitize_params({"id": 5, "mapping": True})

        assert plan["id"] == 5
        assert plan["mapping"] is True


class TestListMode:
    """Test pagination in list mode."""

    def test_page_scenario(self):
        """page '2' / page_size '10' with max_limit 50 yields offset 10."""
        plan = sanitize_params({"page": "2", "page_size": "10"}, list_mode=True, max_limit=50)

        assert plan["limit"] == 10
        assert plan["offset"] == 10
        assert plan["page"] == 2
        assert plan["page_size"] == 10

    def test_defaults(self):
        """Missing page and page_size fall back to 1 and the default page size."""
        plan = sanitize_params({}, list_mode=True, default_page_size=25)

        assert plan["page"] == 1
        assert plan["page_size"] == 25
        assert plan["limit"] == 25
        assert plan["offset"] == 0

    def test_zero_page_size_uses_default(self):
        """A falsy page size is replaced by the default."""
        plan = sanitize_params({"page_size": 0, "page": 0}, list_mode=True, default_page_size=10)

        assert plan["page_size"] == 10
        assert plan["page"] == 1

    def test_page_size_clamped(self):
        """page_size never exceeds max_limit."""
        plan = sanitize_params({"page": 3, "page_size": 500}, list_mode=True, max_limit=50)

        assert plan["page_size"] == 50
        assert plan["limit"] == 50
        assert plan["offset"] == 100

    def test_unlimited_when_max_limit_zero(self):
        """max_limit 0 disables clamping."""
        plan = sanitize_params({"page_size": 500}, list_mode=True, max_limit=0)

        assert plan["page_size"] == 500

    @pytest.mark.parametrize("page,page_size", [(1, 1), (2, 10), (7, 3), (10, 50)])
    def test_offset_invariant(self, page, page_size):
        """offset is always (page - 1) * page_size."""
        plan = sanitize_params(
            {"page": str(page), "page_size": str(page_size)}, list_mode=True, max_limit=50
        )

        assert plan["offset"] == (plan["page"] - 1) * plan["page_size"]
        assert plan["page_size"] <= 50

    def test_caller_limit_overridden(self):
        """A caller-supplied limit/offset is derived from paging instead."""
        plan = sanitize_params({"limit": 3, "offset": 99, "page": 2, "page_size": 5}, list_mode=True)

        assert plan["limit"] == 5
        assert plan["offset"] == 5


class TestRemoveLimit:
    """Test removal of pagination fields."""

    def test_strips_pagination(self):
        """Every pagination field is removed."""
        plan = sanitize_params(
            {"limit": 5, "offset": 0, "page": "1", "page_size": 10, "query": {"a": 1}},
            remove_limit=True,
        )

        for name in ("limit", "offset", "page", "page_size"):
            assert name not in plan
        assert plan["query"] == {"a": 1}

    def test_no_clamp_applied(self):
        """remove_limit returns before the limit clamp."""
        plan = sanitize_params({"limit": 500}, remove_limit=True, max_limit=10)

        assert "limit" not in plan


class TestLimitClamp:
    """Test the bare limit clamp."""

    def test_bare_limit_clamped(self):
        """Without list mode a bare limit is still clamped."""
        plan = sanitize_params({"limit": "100"}, max_limit=20)

        assert plan["limit"] == 20
        assert "page" not in plan

    def test_limit_below_max_untouched(self):
        """Limits within bounds are left alone."""
        assert sanitize_params({"limit": 5}, max_limit=20)["limit"] == 5
