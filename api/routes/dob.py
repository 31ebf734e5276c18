# SPDX-License-Identifier: Apache-2.0

"""
Daily Occurrence Book endpoints.

Officers list and read their own entries, submit manual entries and fetch
entry statistics. Automatic entries are written by the auto-logging engine
and never through this API; there is no update or delete endpoint.
"""

from flask import jsonify, current_app, g
from flask_openapi3 import APIBlueprint, Tag
from opentelemetry import trace
from pydantic import ValidationError
import logging

from middleware.auth import require_auth
from middleware.error_handler import ValidationException
from models.entities import DOBEntry
from models.requests import CreateDOBEntryRequest, DOBEntryQuery, DOBEntryPath, StatisticsQuery
from models.responses import DOBEntryResponse, DOBStatisticsResponse, ErrorResponse

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

dob_tag = Tag(name="DOB", description="Daily Occurrence Book entries")
dob_bp = APIBlueprint(
    'dob',
    __name__,
    url_prefix='/api/dob',
    abp_tags=[dob_tag]
)


def _serialize(entry: DOBEntry) -> dict:
    return entry.model_dump(mode="json")


@dob_bp.get('/entries')
@require_auth
def list_entries(query: DOBEntryQuery):
    """
    List the authenticated officer's entries, newest first.

    All supplied filters must match; ``search`` is a case-insensitive
    substring match on the description.
    """
    officer = g.officer_context

    with tracer.start_as_current_span("dob.api.list_entries") as span:
        span.set_attribute("dob.cpo_id", officer.cpo_id)

        try:
            filters = query.to_filters()
        except ValidationError as e:
            raise ValidationException(
                "Invalid entry filters",
                [{"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]} for err in e.errors()]
            )

        entries = current_app.dob_service.list_entries(officer.cpo_id, filters)
        span.set_attribute("dob.result_count", len(entries))

        return jsonify(current_app.hal_formatter.format_entry_collection(
            [_serialize(entry) for entry in entries],
            query.model_dump(mode="json", exclude_none=True)
        ))


@dob_bp.get('/entries/<entry_id>', responses={200: DOBEntryResponse, 403: ErrorResponse, 404: ErrorResponse})
@require_auth
def get_entry(path: DOBEntryPath):
    """Get one entry owned by the authenticated officer."""
    officer = g.officer_context

    with tracer.start_as_current_span("dob.api.get_entry") as span:
        span.set_attributes({"dob.cpo_id": officer.cpo_id, "dob.entry_id": path.entry_id})

        entry = current_app.dob_service.get_entry(path.entry_id, officer.cpo_id)
        return jsonify(current_app.hal_formatter.format_entry(_serialize(entry)))


@dob_bp.post('/entries', responses={201: DOBEntryResponse, 400: ErrorResponse})
@require_auth
def create_entry(body: CreateDOBEntryRequest):
    """
    Submit a manual entry.

    The entry is finalized on creation; a timestamp in the future or a
    description over 1000 characters is rejected.
    """
    officer = g.officer_context

    with tracer.start_as_current_span("dob.api.create_entry") as span:
        span.set_attribute("dob.cpo_id", officer.cpo_id)

        entry = current_app.dob_service.create_manual_entry(body, officer.cpo_id)

        logger.info(
            "Manual DOB entry created",
            extra={"entry_id": entry.id, "cpo_id": entry.cpo_id, "event_type": entry.event_type}
        )
        span.set_attribute("dob.entry_id", entry.id)

        return jsonify(current_app.hal_formatter.format_entry(_serialize(entry))), 201


@dob_bp.get('/statistics', responses={200: DOBStatisticsResponse})
@require_auth
def get_statistics(query: StatisticsQuery):
    """Entry counts for the authenticated officer."""
    officer = g.officer_context

    statistics = current_app.dob_service.get_statistics(officer.cpo_id, query.days)
    return jsonify(current_app.hal_formatter.format_statistics(statistics))
