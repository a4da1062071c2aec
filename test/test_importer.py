from dataclasses import replace

import pytest

from taxi_ledger.errors import UnrecognizedFormatError
from taxi_ledger.importer import import_into_session, is_duplicate, match_imports, merge_batch
from taxi_ledger.model import Shift
from taxi_ledger.records import all_records


def test_same_minute_same_amount_is_duplicate(make_record, at):
    existing = make_record(at(2024, 3, 25, 10, 0, 0), amount=1500)
    candidate = make_record(at(2024, 3, 25, 10, 0, 30), amount=1500)
    assert is_duplicate(existing, candidate)


def test_same_minute_same_pickup_is_duplicate(make_record, at):
    existing = make_record(at(2024, 3, 25, 10), amount=1500, pickup_location="難波")
    candidate = make_record(at(2024, 3, 25, 10, 0, 20), amount=1800, pickup_location="難波")
    assert is_duplicate(existing, candidate)


def test_blank_pickup_never_matches_on_location(make_record, at):
    existing = make_record(at(2024, 3, 25, 10), amount=1500)
    candidate = make_record(at(2024, 3, 25, 10, 0, 20), amount=1800)
    assert not is_duplicate(existing, candidate)


def test_update_keeps_existing_id(make_record, at):
    existing = make_record(at(2024, 3, 25, 10), amount=1500, id="kept")
    candidate = make_record(at(2024, 3, 25, 10, 0, 30), amount=1500, dropoff_location="梅田")

    result = match_imports([candidate], [existing])

    assert result.updated_count == 1
    assert result.added_count == 0
    assert [r.id for r in result.records] == ["kept"]
    assert result.records[0].dropoff_location == "梅田"


def test_five_minutes_apart_is_inserted(make_record, at):
    existing = make_record(at(2024, 3, 25, 10), amount=1500, id="old")
    candidate = make_record(at(2024, 3, 25, 10, 5), amount=1500)

    result = match_imports([candidate], [existing])

    assert result.added_count == 1
    assert len(result.records) == 2
    new_id = result.decisions[0].record_id
    assert new_id not in ("old", candidate.id)


def test_rows_within_one_batch_are_not_deduplicated(make_record, at):
    first = make_record(at(2024, 3, 25, 10), amount=1500)
    second = make_record(at(2024, 3, 25, 10, 0, 10), amount=1500)

    result = match_imports([first, second], [])

    assert result.added_count == 2
    assert len(result.records) == 2


def test_import_into_session_repartitions(session, make_record, at):
    shift = Shift(id="s", start_time=at(2024, 3, 25, 9), daily_goal=50000, planned_hours=12)
    session = replace(session, shift=shift)
    candidates = [
        make_record(at(2024, 3, 24, 12)),
        make_record(at(2024, 3, 25, 12)),
    ]

    result_session, result = import_into_session(session, candidates)

    assert result.added_count == 2
    assert len(result_session.shift.records) == 1
    assert len(result_session.history) == 1
    assert len(all_records(result_session)) == 2


def test_empty_batch_is_rejected(session):
    with pytest.raises(UnrecognizedFormatError):
        import_into_session(session, [])


def test_later_candidates_match_the_records_before_the_batch(make_record, at):
    existing = make_record(at(2024, 3, 25, 10), amount=2800, pickup_location="難波", id="old")
    first = make_record(at(2024, 3, 25, 10), amount=3000, pickup_location="難波")
    # Matches the stored 2800 fare even though ``first`` already replaced it
    second = make_record(at(2024, 3, 25, 10), amount=2800, pickup_location="梅田")

    result = match_imports([first, second], [existing])

    assert [d.action for d in result.decisions] == ["update", "update"]
    assert [(r.id, r.pickup_location) for r in result.records] == [("old", "梅田")]


def test_merge_batch_rejects_empty_batch(make_record, at):
    with pytest.raises(UnrecognizedFormatError):
        merge_batch("driver-1", [], [make_record(at(2024, 3, 25, 10))])
