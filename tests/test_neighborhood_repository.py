from __future__ import annotations

from datetime import UTC, datetime

import allure
import pytest

from region_ingest.neighborhoods.models import NeighborhoodRecord
from region_ingest.neighborhoods.repository import NeighborhoodRepository

pytestmark = [
    allure.epic("Neighborhood Dataset"),
    allure.feature("Repository"),
]


def _record(code: str, city: str = "Utrecht", **overrides) -> NeighborhoodRecord:
    values = {
        "code": code,
        "name": f"Buurt {code[-2:]}",
        "city": city,
        "neighborhood_type": "Buurt",
    }
    values.update(overrides)
    return NeighborhoodRecord(**values)


def test_save_changes_inserts_buffered_records_and_assigns_ids(
    neighborhood_repository: NeighborhoodRepository,
) -> None:
    records = [_record("BU03440002"), _record("BU03440001")]
    neighborhood_repository.add_range(records)

    assert neighborhood_repository.get_by_city("Utrecht") == []

    result = neighborhood_repository.save_changes()

    assert (result.added, result.updated, result.total) == (2, 0, 2)
    assert all(record.record_id is not None for record in records)
    stored = neighborhood_repository.get_by_city("Utrecht")
    assert [record.code for record in stored] == ["BU03440001", "BU03440002"]
    assert neighborhood_repository.save_changes().total == 0


def test_update_range_changes_existing_rows(
    neighborhood_repository: NeighborhoodRepository,
) -> None:
    record = _record("BU03440001")
    neighborhood_repository.add_range([record])
    neighborhood_repository.save_changes()

    record.population_density = 5200
    record.average_woz_value = 398_000.0
    record.crime_rate = 41
    record.last_updated = datetime(2026, 10, 1, 12, tzinfo=UTC)
    neighborhood_repository.update_range([record])
    result = neighborhood_repository.save_changes()

    assert result.updated == 1
    stored = neighborhood_repository.get_by_code("Utrecht", "BU03440001")
    assert stored is not None
    assert stored.record_id == record.record_id
    assert stored.population_density == 5200
    assert stored.average_woz_value == 398_000.0
    assert stored.crime_rate == 41
    assert stored.last_updated == datetime(2026, 10, 1, 12, tzinfo=UTC)


def test_save_changes_is_atomic(neighborhood_repository: NeighborhoodRepository) -> None:
    neighborhood_repository.add_range([_record("BU03440001")])
    neighborhood_repository.update_range([_record("BU99990000")])

    with pytest.raises(LookupError, match="BU99990000"):
        neighborhood_repository.save_changes()

    assert neighborhood_repository.get_by_city("Utrecht") == []


def test_same_code_in_different_cities_is_allowed(
    neighborhood_repository: NeighborhoodRepository,
) -> None:
    neighborhood_repository.add_range(
        [_record("BU00000001", city="Ede"), _record("BU00000001", city="Delft")],
    )
    neighborhood_repository.save_changes()

    assert neighborhood_repository.get_by_code("Ede", "BU00000001") is not None
    assert neighborhood_repository.get_by_code("Delft", "BU00000001") is not None
    assert neighborhood_repository.get_by_code("Utrecht", "BU00000001") is None


def test_list_dataset_status_groups_by_city(
    neighborhood_repository: NeighborhoodRepository,
) -> None:
    older = datetime(2026, 9, 1, tzinfo=UTC)
    newer = datetime(2026, 10, 1, tzinfo=UTC)
    neighborhood_repository.add_range(
        [
            _record("BU00010001", city="Ede", last_updated=older),
            _record("BU00010002", city="Ede", last_updated=newer),
            _record("BU00020001", city="Delft"),
        ],
    )
    neighborhood_repository.save_changes()

    statuses = neighborhood_repository.list_dataset_status()

    assert [(status.city, status.neighborhood_count) for status in statuses] == [
        ("Delft", 1),
        ("Ede", 2),
    ]
    assert statuses[0].last_updated is None
    assert statuses[1].last_updated == newer
