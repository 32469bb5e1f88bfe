import datetime as dt

import pytest

from docstore.core.normalize import (
    build_page,
    created_timestamp,
    normalize_items,
    paginate,
    same_value,
    search_items,
    sort_newest_first,
)
from docstore.errors import ValidationError


# ---- shape detection --------------------------------------------------------
def test_list_is_used_directly():
    items = [{"id": "1"}, {"id": "2"}]
    assert normalize_items(items) == items


def test_envelope_around_list():
    assert normalize_items({"success": True, "data": [{"id": "1"}]}) == [{"id": "1"}]


def test_id_map_becomes_items():
    value = {"a": {"name": "A"}, "b": {"name": "B"}}
    assert normalize_items(value) == [
        {"id": "a", "name": "A"},
        {"id": "b", "name": "B"},
    ]


def test_envelope_around_id_map():
    value = {"success": True, "data": {"a": {"name": "A"}}}
    assert normalize_items(value) == [{"id": "a", "name": "A"}]


def test_id_map_with_a_document_called_data():
    value = {"data": {"name": "first"}, "abc": {"name": "second"}}
    assert sorted(normalize_items(value), key=lambda i: i["id"]) == [
        {"id": "abc", "name": "second"},
        {"id": "data", "name": "first"},
    ]


def test_envelope_needs_only_envelope_keys():
    assert normalize_items({"data": [{"id": "1"}], "pagination": {}}) == [{"id": "1"}]
    assert normalize_items({"data": [{"id": "1"}], "other": {"x": 1}}) == [
        {"id": "data", "value": [{"id": "1"}]},
        {"id": "other", "x": 1},
    ]


def test_non_mapping_list_entries_are_dropped():
    assert normalize_items([1, "two", None, {"id": "3"}, {}]) == [{"id": "3"}, {}]
    page = build_page([1, 2, {"id": "a"}])
    assert page.data == [{"id": "a"}]


@pytest.mark.parametrize("value", [None, "text", 42, {}, []])
def test_absent_or_unusable_values_are_empty(value):
    assert normalize_items(value) == []


# ---- search -----------------------------------------------------------------
def test_search_matches_description_only_field():
    items = [
        {"id": "1", "name": "Hammer", "description": "Forged STEEL head"},
        {"id": "2", "name": "Rake", "description": "wooden"},
    ]
    assert [i["id"] for i in search_items(items, "steel")] == ["1"]


def test_search_ors_across_fields_and_ignores_non_strings():
    items = [
        {"id": "1", "name": "Paint", "category": "garden"},
        {"id": "2", "name": "Gardener gloves"},
        {"id": "3", "name": 12, "category": None},
    ]
    assert [i["id"] for i in search_items(items, "GARDEN")] == ["1", "2"]


def test_empty_search_keeps_everything():
    items = [{"id": "1"}, {"id": "2"}, {}]
    assert search_items(items, None) == items
    assert search_items(items, "") == items


def test_same_value_is_typed():
    assert same_value(3, 3.0)
    assert same_value("a", "a")
    assert not same_value("3", 3)
    assert not same_value(True, 1)
    assert not same_value(0, False)
    assert same_value(False, False)
    assert same_value(None, None)


# ---- sorting ----------------------------------------------------------------
def test_created_timestamp_formats():
    expected = dt.datetime(2024, 5, 1, tzinfo=dt.timezone.utc).timestamp()
    assert created_timestamp("2024-05-01T00:00:00.000Z") == expected
    assert created_timestamp("2024-05-01T00:00:00+00:00") == expected
    assert created_timestamp(expected * 1000) == expected
    assert created_timestamp(dt.datetime(2024, 5, 1)) == expected
    assert created_timestamp(None) == 0.0
    assert created_timestamp("not a date") == 0.0


def test_sort_newest_first_puts_undated_last():
    items = [
        {"id": "old", "createdAt": "2023-01-01T00:00:00Z"},
        {"id": "none"},
        {"id": "new", "createdAt": "2024-01-01T00:00:00Z"},
    ]
    assert [i["id"] for i in sort_newest_first(items)] == ["new", "old", "none"]


# ---- pagination -------------------------------------------------------------
@pytest.fixture
def twenty_five():
    return [{"id": str(i)} for i in range(25)]


def test_first_page(twenty_five):
    page = paginate(twenty_five, page=1, limit=10)
    assert len(page.data) == 10
    assert page.pagination.has_next is True
    assert page.pagination.has_prev is False
    assert page.pagination.total_items == 25
    assert page.pagination.total_pages == 3


def test_last_page(twenty_five):
    page = paginate(twenty_five, page=3, limit=10)
    assert [i["id"] for i in page.data] == [str(i) for i in range(20, 25)]
    assert page.pagination.has_next is False
    assert page.pagination.has_prev is True


def test_page_beyond_range(twenty_five):
    page = paginate(twenty_five, page=4, limit=10)
    assert page.data == []
    assert page.pagination.total_pages == 3
    assert page.pagination.has_next is False


def test_empty_collection_page():
    page = paginate([], page=1)
    assert page.data == []
    assert page.pagination.total_pages == 0
    assert page.pagination.has_next is False
    assert page.pagination.has_prev is False


@pytest.mark.parametrize("page, limit", [(0, 10), (1, 0), (-1, 5)])
def test_invalid_page_arguments(page, limit):
    with pytest.raises(ValidationError):
        paginate([{"id": "1"}], page=page, limit=limit)


def test_response_uses_camel_case():
    body = paginate([{"id": "1"}]).to_response()
    assert body["pagination"] == {
        "currentPage": 1,
        "totalItems": 1,
        "totalPages": 1,
        "hasNext": False,
        "hasPrev": False,
    }


def test_build_page_chains_everything():
    value = {
        "data": {
            "a": {"name": "Blue lamp", "createdAt": "2024-01-01T00:00:00Z"},
            "b": {"name": "Red lamp", "createdAt": "2024-03-01T00:00:00Z"},
            "c": {"name": "Chair", "createdAt": "2024-02-01T00:00:00Z"},
        }
    }
    page = build_page(value, page=1, limit=1, search="lamp")
    assert [i["id"] for i in page.data] == ["b"]
    assert page.pagination.total_items == 2
    assert page.pagination.has_next is True
