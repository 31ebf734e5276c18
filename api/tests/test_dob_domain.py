# SPDX-License-Identifier: Apache-2.0

"""
Unit tests for DOB domain logic.
"""

import pytest
from datetime import datetime, timedelta, timezone

from domain.dob import (
    classify_transition, default_description, format_assignment_reference,
    validate_entry_request, matches_filters
)
from models.entities import DOBEntry
from models.enums import AssignmentStatus, DOBEventType, DOBEntryType
from models.requests import DOBEntryFilters, DateRange

NOW = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)


class TestClassifyTransition:
    """Test assignment transition classification."""

    def test_pending_to_assigned_starts_assignment(self):
        assert classify_transition("pending", "assigned") == [DOBEventType.ASSIGNMENT_START]

    def test_assigned_to_active_is_pickup(self):
        assert classify_transition("assigned", "active") == [DOBEventType.PRINCIPAL_PICKUP]

    @pytest.mark.parametrize("previous", ["active", "en_route"])
    def test_completion_logs_dropoff_then_end(self, previous):
        assert classify_transition(previous, "completed") == [
            DOBEventType.PRINCIPAL_DROPOFF,
            DOBEventType.ASSIGNMENT_END
        ]

    @pytest.mark.parametrize("previous,current", [
        ("active", "active"),
        ("pending", "active"),
        ("assigned", "cancelled"),
        ("completed", "pending"),
        ("assigned", "en_route"),
    ])
    def test_unmapped_transitions_produce_nothing(self, previous, current):
        assert classify_transition(previous, current) == []

    def test_unknown_status_produces_nothing(self):
        assert classify_transition("pending", "archived") == []
        assert classify_transition(None, "assigned") == []

    def test_returned_list_is_a_copy(self):
        events = classify_transition(AssignmentStatus.ACTIVE, AssignmentStatus.COMPLETED)
        events.clear()
        assert len(classify_transition("active", "completed")) == 2


class TestDefaultDescription:
    """Test default entry descriptions."""

    def test_base_description_with_reference(self):
        assert default_description(DOBEventType.ASSIGNMENT_START, "PA-20240315-ABC") == \
            "Protection detail commenced - PA-20240315-ABC"

    def test_base_description_without_reference(self):
        assert default_description("principal_pickup") == "Principal collected from location"

    def test_route_deviation_includes_reason(self):
        assert default_description(DOBEventType.ROUTE_DEVIATION, reason="Road closure") == \
            "Route deviation: Road closure"
        assert default_description(DOBEventType.ROUTE_DEVIATION) == "Route deviation: unspecified"

    def test_location_change_includes_rounded_distance(self):
        assert default_description(DOBEventType.LOCATION_CHANGE, distance_meters=612.4) == \
            "Significant location change detected (612m)"

    def test_other_kinds_use_readable_value(self):
        assert default_description(DOBEventType.MANUAL_NOTE) == "Manual note"


def test_format_assignment_reference():
    created = datetime(2024, 3, 15, 8, 0, tzinfo=timezone.utc)
    assert format_assignment_reference("abc123", created) == "PA-20240315-ABC"


class TestValidateEntryRequest:
    """Test entry request validation."""

    def test_valid_manual_request(self):
        result = validate_entry_request("incident", NOW, "Suspicious vehicle", "cpo-1", True, NOW)
        assert result.is_valid
        assert result.errors == []

    def test_missing_fields_are_all_reported(self):
        result = validate_entry_request(None, None, "  ", None, True, NOW)
        assert not result.is_valid
        assert result.errors == [
            "Event type is required",
            "Timestamp is required",
            "Description is required",
            "Officer ID is required"
        ]

    def test_unknown_event_type(self):
        result = validate_entry_request("teleport", NOW, "x", "cpo-1", False, NOW)
        assert result.errors == ["Unknown event type: teleport"]

    def test_future_timestamp_rejected_for_manual_entries(self):
        future = NOW + timedelta(minutes=5)
        result = validate_entry_request("incident", future, "x", "cpo-1", True, NOW)
        assert result.errors == ["Timestamp cannot be in the future"]

    def test_future_timestamp_allowed_for_auto_entries(self):
        future = NOW + timedelta(minutes=5)
        assert validate_entry_request("incident", future, "x", "cpo-1", False, NOW).is_valid

    def test_description_length_limit_for_manual_entries(self):
        assert validate_entry_request("incident", NOW, "x" * 1000, "cpo-1", True, NOW).is_valid

        result = validate_entry_request("incident", NOW, "x" * 1001, "cpo-1", True, NOW)
        assert result.errors == ["Description cannot exceed 1000 characters"]


class TestMatchesFilters:
    """Test in-process filter matching."""

    def setup_method(self):
        self.entry = DOBEntry(
            cpo_id="cpo-1",
            entry_type=DOBEntryType.MANUAL,
            event_type=DOBEventType.INCIDENT,
            timestamp=NOW,
            description="Suspicious Vehicle near gate",
            assignment_id="a-1"
        )

    def test_no_filters_match(self):
        assert matches_filters(self.entry, None)
        assert matches_filters(self.entry, DOBEntryFilters())

    def test_all_filters_must_match(self):
        filters = DOBEntryFilters(assignment_id="a-1", event_type="incident", entry_type="auto")
        assert not matches_filters(self.entry, filters)

        filters = DOBEntryFilters(assignment_id="a-1", event_type="incident", entry_type="manual")
        assert matches_filters(self.entry, filters)

    def test_search_is_case_insensitive(self):
        assert matches_filters(self.entry, DOBEntryFilters(search_query="vehicle"))
        assert not matches_filters(self.entry, DOBEntryFilters(search_query="bicycle"))

    def test_date_range_is_inclusive(self):
        assert matches_filters(self.entry, DOBEntryFilters(date_range=DateRange(start=NOW, end=NOW)))
        later = DateRange(start=NOW + timedelta(seconds=1))
        assert not matches_filters(self.entry, DOBEntryFilters(date_range=later))
