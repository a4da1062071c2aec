"""Tests for document serialisation, stores and the sync channel."""

import json
from unittest.mock import Mock

from taxi_ledger.model import RemarkTags
from taxi_ledger.shift import start_shift
from taxi_ledger.store_gateway import (
    USERS,
    InMemoryDocumentStore,
    JsonFileDocumentStore,
    SyncChannel,
    record_from_document,
    record_to_document,
    session_from_document,
    session_to_document,
)


# --------------------------------------------------------------------
# SERIALISATION TESTS
# --------------------------------------------------------------------
def test_record_document_round_trip(make_record, at):
    record = make_record(
        at(2024, 3, 25, 11),
        amount=3000,
        toll=500,
        payment_method="CARD",
        non_cash_amount=3500,
        tags=RemarkTags(stopovers=("難波",), dispatch_vendor="GO"),
    )
    assert record_from_document(record_to_document(record), now=0) == record


def test_record_from_document_sanitises_bad_values(at):
    now = at(2024, 3, 25, 12)
    record = record_from_document(
        {
            "amount": "abc",
            "paymentMethod": "BITCOIN",
            "rideType": "DISPATCH",
            "nonCashAmount": 500,
            "remarks": "(経由)梅田 Uber決済 忘れ物",
        },
        now,
    )
    assert record.amount == 0
    assert record.timestamp == now
    assert record.payment_method == "CASH"
    assert record.non_cash_amount == 0
    assert record.ride_type == "WIRELESS"
    assert record.remarks == "忘れ物"
    assert record.tags == RemarkTags(stopovers=("梅田",), payment_vendor="Uber")
    assert record.id


def test_session_document_round_trip(session, make_record, at):
    opened = start_shift(session, now=at(2024, 3, 25, 10), shift_id="shift-1")
    document = session_to_document(opened)

    restored = session_from_document(opened.uid, document, at(2024, 3, 25, 12))

    assert restored.shift == opened.shift
    assert restored.status == "active"
    assert restored.stats == opened.stats


def test_missing_document_gives_defaults(at):
    restored = session_from_document("nobody", None, at(2024, 3, 25, 12))
    assert restored.shift is None
    assert restored.history == ()
    assert restored.status == "offline"
    assert restored.stats.shimebi_day == 20


def test_out_of_range_stats_fall_back(at):
    restored = session_from_document(
        "u", {"stats": {"shimebiDay": 45, "businessStartHour": "7"}}, at(2024, 3, 25)
    )
    assert restored.stats.shimebi_day == 20
    assert restored.stats.business_start_hour == 7


# --------------------------------------------------------------------
# STORE TESTS
# --------------------------------------------------------------------
def test_in_memory_store_merges_top_level_fields():
    store = InMemoryDocumentStore()
    store.set_document(USERS, "u", {"a": 1, "b": 2})
    store.set_document(USERS, "u", {"b": 3})
    assert store.get_document(USERS, "u") == {"a": 1, "b": 3}


def test_subscribe_delivers_snapshots_until_unsubscribed():
    store = InMemoryDocumentStore()
    seen = []
    unsubscribe = store.subscribe(USERS, "u", seen.append)
    store.set_document(USERS, "u", {"a": 1})
    unsubscribe()
    store.set_document(USERS, "u", {"a": 2})
    assert seen == [None, {"a": 1}]


def test_json_file_store_persists(tmp_path):
    path = tmp_path / "state.json"
    JsonFileDocumentStore(path).set_document(USERS, "u", {"name": "山田"})

    assert json.loads(path.read_text(encoding="utf-8")) == {USERS: {"u": {"name": "山田"}}}
    assert JsonFileDocumentStore(path).get_document(USERS, "u") == {"name": "山田"}


# --------------------------------------------------------------------
# SYNC CHANNEL TESTS
# --------------------------------------------------------------------
def test_failed_write_stays_queued():
    store = Mock()
    store.set_document.side_effect = [ConnectionError("offline"), None]
    channel = SyncChannel(store)

    assert channel.push(USERS, "u", {"a": 1}) is False
    assert len(channel.pending) == 1
    assert channel.flush() is True
    assert not channel.pending
    assert store.set_document.call_count == 2


def test_full_queue_drops_oldest_write():
    store = Mock()
    store.set_document.side_effect = ConnectionError("offline")
    channel = SyncChannel(store, limit=2)

    for n in range(3):
        channel.push(USERS, "u", {"n": n})

    assert [fields["n"] for _, _, fields in channel.pending] == [1, 2]
