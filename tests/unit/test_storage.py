"""
Unit tests for the in-memory Storage backend.

Covers:
    - insert-if-absent (never overwrites, rejects empty destinations)
    - destination index (first code wins)
    - record_visit increments and stamps in one call
    - visit log append/list
    - delete_link and index re-pointing
"""

from datetime import datetime, timedelta, timezone

import pytest

from vlink.storage.base import LinkRecord, VisitRecord
from vlink.storage.storage import Storage

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def storage():
    return Storage()


def test_insert_and_get(storage):
    assert storage.insert_link(LinkRecord(code="abc", destination="https://x.com", created_at=T0))
    record = storage.get_link("abc")
    assert record.destination == "https://x.com"
    assert record.created_at == T0
    assert record.visit_count == 0


def test_insert_existing_code_is_rejected(storage):
    storage.insert_link(LinkRecord(code="abc", destination="https://x.com"))
    assert storage.insert_link(LinkRecord(code="abc", destination="https://y.com")) is False
    assert storage.insert_link(LinkRecord(code="abc", destination="https://x.com")) is False
    assert storage.get_link("abc").destination == "https://x.com"


def test_insert_empty_destination_is_rejected(storage):
    assert storage.insert_link(LinkRecord(code="abc", destination="")) is False
    assert storage.get_link("abc") is None


def test_codes_are_case_sensitive(storage):
    assert storage.insert_link(LinkRecord(code="abc", destination="https://x.com"))
    assert storage.insert_link(LinkRecord(code="ABC", destination="https://y.com"))
    assert storage.get_link("ABC").destination == "https://y.com"


def test_find_code_by_url_first_wins(storage):
    storage.insert_link(LinkRecord(code="one", destination="https://x.com"))
    storage.insert_link(LinkRecord(code="two", destination="https://x.com"))
    assert storage.find_code_by_url("https://x.com") == "one"
    assert storage.find_code_by_url("https://nope.com") is None


def test_get_unknown_returns_none(storage):
    assert storage.get_link("missing") is None


def test_record_visit_increments_and_stamps(storage):
    storage.insert_link(LinkRecord(code="abc", destination="https://x.com", created_at=T0))
    first = storage.record_visit("abc", T0 + timedelta(seconds=1))
    second = storage.record_visit("abc", T0 + timedelta(seconds=2))

    assert first.visit_count == 1
    assert second.visit_count == 2
    assert second.last_accessed_at == T0 + timedelta(seconds=2)
    assert storage.get_link("abc") == second
    # Records are immutable snapshots
    assert first.visit_count == 1


def test_record_visit_unknown_code(storage):
    assert storage.record_visit("missing", T0) is None


def test_append_and_list_visits(storage):
    storage.insert_link(LinkRecord(code="abc", destination="https://x.com"))
    storage.append_visit(VisitRecord(link_code="abc", visited_at=T0, user_agent="ua1"))
    storage.append_visit(VisitRecord(link_code="abc", visited_at=T0, user_agent="ua2"))

    visits = storage.list_visits("abc")
    assert [v.user_agent for v in visits] == ["ua1", "ua2"]
    assert storage.list_visits("other") == []

    # Returned list is a copy
    visits.clear()
    assert len(storage.list_visits("abc")) == 2


def test_delete_link_removes_record_and_visits(storage):
    storage.insert_link(LinkRecord(code="abc", destination="https://x.com"))
    storage.append_visit(VisitRecord(link_code="abc"))

    assert storage.delete_link("abc") is True
    assert storage.get_link("abc") is None
    assert storage.list_visits("abc") == []
    assert storage.find_code_by_url("https://x.com") is None
    assert storage.delete_link("abc") is False


def test_visit_for_deleted_code_is_dropped(storage):
    storage.insert_link(LinkRecord(code="abc", destination="https://x.com"))
    storage.delete_link("abc")
    storage.append_visit(VisitRecord(link_code="abc", visited_at=T0))
    assert "abc" not in storage.visits
    assert storage.list_visits("abc") == []

    # A later link reusing the code starts with an empty log
    storage.insert_link(LinkRecord(code="abc", destination="https://y.com"))
    assert storage.list_visits("abc") == []


def test_delete_repoints_destination_index(storage):
    storage.insert_link(LinkRecord(code="one", destination="https://x.com"))
    storage.insert_link(LinkRecord(code="two", destination="https://x.com"))

    storage.delete_link("one")
    assert storage.find_code_by_url("https://x.com") == "two"


def test_delete_non_indexed_code_keeps_index(storage):
    storage.insert_link(LinkRecord(code="one", destination="https://x.com"))
    storage.insert_link(LinkRecord(code="two", destination="https://x.com"))

    storage.delete_link("two")
    assert storage.find_code_by_url("https://x.com") == "one"


def test_close_is_noop(storage):
    storage.insert_link(LinkRecord(code="abc", destination="https://x.com"))
    storage.close()
    assert storage.get_link("abc") is not None
