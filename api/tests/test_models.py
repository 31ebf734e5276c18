# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Unit tests for Pydantic models.
"""

import pytest
from datetime import datetime, timezone
from pydantic import ValidationError
from bson import ObjectId

from models.entities import DOBEntry, DOBEntryMetadata, GPSCoordinates, AssignmentSnapshot
from models.enums import DOBEntryType, DOBEventType, AssignmentStatus
from models.requests import DOBEntryFilters, DateRange, DOBEntryQuery, StatisticsQuery


def _entry(**overrides):
    data = {
        "cpo_id": "cpo-1",
        "entry_type": DOBEntryType.MANUAL,
        "event_type": DOBEventType.INCIDENT,
        "timestamp": datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc),
        "description": "Suspicious vehicle"
    }
    data.update(overrides)
    return DOBEntry(**data)


class TestDOBEntryModel:
    """Test DOBEntry model validation."""

    def test_valid_entry(self):
        entry = _entry()
        assert entry.entry_type == "manual"
        assert entry.is_immutable is False
        assert entry.schema_version == 1
        assert ObjectId.is_valid(entry.id)

    def test_naive_timestamp_is_treated_as_utc(self):
        entry = _entry(timestamp=datetime(2024, 3, 15, 12, 0))
        assert entry.timestamp.tzinfo == timezone.utc

    def test_blank_description_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            _entry(description="   ")
        assert "Description cannot be empty" in str(exc_info.value)

    def test_auto_route_deviation_requires_reason(self):
        with pytest.raises(ValidationError) as exc_info:
            _entry(entry_type="auto", event_type="route_deviation")
        assert "require a reason" in str(exc_info.value)

        entry = _entry(
            entry_type="auto",
            event_type="route_deviation",
            metadata=DOBEntryMetadata(reason="Road closure")
        )
        assert entry.metadata.reason == "Road closure"

    def test_auto_location_change_requires_distance(self):
        with pytest.raises(ValidationError):
            _entry(entry_type="auto", event_type="location_change")

        assert _entry(
            entry_type="auto",
            event_type="location_change",
            metadata=DOBEntryMetadata(distance_meters=612)
        ).metadata.distance_meters == 612

    def test_operator_location_change_needs_no_distance(self):
        entry = _entry(
            entry_type="auto",
            event_type="location_change",
            metadata=DOBEntryMetadata(manually_triggered=True)
        )
        assert entry.metadata.distance_meters is None

    def test_document_round_trip_uses_aliases(self):
        entry = _entry(
            assignment_id="a-1",
            gps_coordinates=GPSCoordinates(latitude=51.5, longitude=-0.12, accuracy_meters=8)
        )
        document = entry.to_document()

        assert document["_id"] == ObjectId(entry.id)
        assert document["cpoId"] == "cpo-1"
        assert document["assignmentId"] == "a-1"
        assert document["gpsCoordinates"]["accuracyMeters"] == 8
        assert "id" not in document

        restored = DOBEntry.from_document(document)
        assert restored.model_dump() == entry.model_dump()


class TestDOBEntryMetadata:
    """Test entry metadata validation."""

    def test_unknown_keys_rejected(self):
        with pytest.raises(ValidationError):
            DOBEntryMetadata(colour="red")

    def test_negative_distance_rejected(self):
        with pytest.raises(ValidationError):
            DOBEntryMetadata(distance_meters=-1)

    def test_annotation_limits(self):
        with pytest.raises(ValidationError):
            DOBEntryMetadata(annotations={f"k{i}": "v" for i in range(11)})
        with pytest.raises(ValidationError):
            DOBEntryMetadata(annotations={"note": "x" * 201})


class TestGPSCoordinates:
    """Test coordinate range checks."""

    @pytest.mark.parametrize("latitude,longitude", [(91, 0), (-91, 0), (0, 181), (0, -181)])
    def test_out_of_range(self, latitude, longitude):
        with pytest.raises(ValidationError):
            GPSCoordinates(latitude=latitude, longitude=longitude)


class TestRequestModels:
    """Test query and filter models."""

    def test_filters_to_mongo_query(self):
        start = datetime(2024, 3, 1, tzinfo=timezone.utc)
        filters = DOBEntryFilters(
            assignment_id="a-1",
            entry_type="auto",
            event_type="assignment_start",
            search_query="gate (north)",
            date_range=DateRange(start=start)
        )

        assert filters.to_mongo_query() == {
            "assignmentId": "a-1",
            "entryType": "auto",
            "eventType": "assignment_start",
            "description": {"$regex": r"gate\ \(north\)", "$options": "i"},
            "timestamp": {"$gte": start}
        }

    def test_inverted_date_range_rejected(self):
        with pytest.raises(ValidationError):
            DateRange(
                start=datetime(2024, 3, 2, tzinfo=timezone.utc),
                end=datetime(2024, 3, 1, tzinfo=timezone.utc)
            )

    def test_query_to_filters(self):
        query = DOBEntryQuery(assignment_id="a-1", search="", date_to=datetime(2024, 3, 2))
        filters = query.to_filters()

        assert filters.assignment_id == "a-1"
        assert filters.search_query is None
        assert filters.date_range.start is None
        assert filters.date_range.end == datetime(2024, 3, 2, tzinfo=timezone.utc)

    def test_statistics_window_bounds(self):
        assert StatisticsQuery().days == 30
        with pytest.raises(ValidationError):
            StatisticsQuery(days=0)
        with pytest.raises(ValidationError):
            StatisticsQuery(days=366)


def test_assignment_snapshot_accepts_aliases():
    snapshot = AssignmentSnapshot.model_validate({"id": "a-1", "status": "active", "cpoId": "cpo-1"})
    assert snapshot.status == AssignmentStatus.ACTIVE
    assert snapshot.cpo_id == "cpo-1"
