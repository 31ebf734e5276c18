# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
HAL (Hypertext Application Language) response formatting utilities.
Implements HATEOAS API responses for Daily Occurrence Book resources.
"""

from typing import Dict, List, Any, Optional
from urllib.parse import urljoin, urlencode

from models.responses import HalLink

PROBLEM_TYPE_BASE = "https://api.dob-service.org/problems"
ENTRIES_PATH = "/api/dob/entries"
STATISTICS_PATH = "/api/dob/statistics"

PROBLEM_TITLES = {
    "validation-error": "Validation Error",
    "authentication-required": "Authentication Required",
    "resource-not-found": "Resource Not Found",
    "resource-conflict": "Resource Conflict",
    "service-unavailable": "Service Unavailable",
    "internal-server-error": "Internal Server Error",
    "integrity-violation": "Integrity Violation",
    "immutable-entry": "Integrity Violation",
    "duplicate-entry": "Integrity Violation",
    "entry-ownership": "Integrity Violation",
}


class HalLinkBuilder:
    """Builder for HAL links with proper URL construction."""

    def __init__(self, base_url: str):
        self.base_url = base_url.rstrip('/') + '/'

    def build_link(
        self,
        path: str,
        method: str = "GET",
        content_type: Optional[str] = None,
        title: Optional[str] = None,
        templated: bool = False
    ) -> HalLink:
        """Build a HAL link with proper URL construction."""
        href = urljoin(self.base_url, path.lstrip('/'))

        return HalLink(
            href=href,
            method=method,
            type=content_type,
            title=title,
            templated=templated
        )

    def build_self_link(self, resource_path: str) -> HalLink:
        """Build self link for a resource."""
        return self.build_link(resource_path, title="Self")

    def build_collection_link(self, collection_path: str) -> HalLink:
        """Build link to parent collection."""
        return self.build_link(collection_path, title="Collection")


class HalResponseBuilder:
    """Main HAL response builder."""

    def __init__(self, base_url: str):
        self.base_url = base_url.rstrip('/')
        self.link_builder = HalLinkBuilder(base_url)

    @staticmethod
    def _dump_links(links: Dict[str, HalLink]) -> Dict[str, Any]:
        return {rel: link.model_dump(exclude_none=True) for rel, link in links.items()}

    def build_entry_response(self, entry: Dict[str, Any]) -> Dict[str, Any]:
        """Build a HAL resource response for one DOB entry."""
        response = dict(entry)
        links = {
            'self': self.link_builder.build_self_link(f"{ENTRIES_PATH}/{entry['id']}"),
            'collection': self.link_builder.build_collection_link(ENTRIES_PATH)
        }

        # Entries of one assignment are a filtered view of the collection
        if entry.get('assignment_id'):
            links['assignment_entries'] = self.link_builder.build_link(
                f"{ENTRIES_PATH}?{urlencode({'assignment_id': entry['assignment_id']})}",
                title="Entries for this assignment"
            )

        response['_links'] = self._dump_links(links)
        return response

    def build_collection_response(
        self,
        items: List[Dict[str, Any]],
        collection_path: str,
        query_params: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """Build a HAL collection response."""
        params = {k: v for k, v in (query_params or {}).items() if v is not None}
        self_path = f"{collection_path}?{urlencode(params)}" if params else collection_path

        links = {
            'self': self.link_builder.build_link(self_path, title="Current view"),
            'create': self.link_builder.build_link(
                collection_path,
                method="POST",
                content_type="application/json",
                title="Create manual entry"
            ),
            'statistics': self.link_builder.build_link(STATISTICS_PATH, title="Entry statistics")
        }

        return {
            'total': len(items),
            '_links': self._dump_links(links),
            '_embedded': {
                'items': items
            }
        }

    def build_error_response(
        self,
        error_type: str,
        title: str,
        status: int,
        detail: str,
        instance: str,
        validation_errors: Optional[List[Dict[str, Any]]] = None
    ) -> Dict[str, Any]:
        """Build RFC 7807 compliant error response with HAL links."""
        error_response = {
            'type': f"{PROBLEM_TYPE_BASE}/{error_type}",
            'title': title,
            'status': status,
            'detail': detail,
            'instance': instance
        }

        if validation_errors:
            error_response['errors'] = validation_errors

        # Add helpful links
        links = {
            'help': self.link_builder.build_link(
                f"/docs/errors#{error_type}",
                title="Error documentation"
            )
        }

        if error_type == "validation-error":
            links['schema'] = self.link_builder.build_link(
                "/openapi/openapi.json",
                title="API schema"
            )
        elif error_type == "service-unavailable":
            links['health'] = self.link_builder.build_link(
                "/api/healthz",
                title="Service health"
            )

        error_response['_links'] = self._dump_links(links)
        return error_response


class HalFormatter:
    """High-level HAL formatter with convenience methods."""

    def __init__(self, base_url: str):
        self.builder = HalResponseBuilder(base_url)

    def format_entry(self, entry: Dict[str, Any]) -> Dict[str, Any]:
        """Format a DOB entry with HAL links."""
        return self.builder.build_entry_response(entry)

    def format_entry_collection(
        self,
        entries: List[Dict[str, Any]],
        filters: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """Format a list of DOB entries with HAL links."""
        formatted_entries = [self.format_entry(entry) for entry in entries]
        return self.builder.build_collection_response(formatted_entries, ENTRIES_PATH, filters)

    def format_statistics(self, statistics: Dict[str, Any]) -> Dict[str, Any]:
        """Format officer statistics with HAL links."""
        response = dict(statistics)
        links = {
            'self': self.builder.link_builder.build_self_link(STATISTICS_PATH),
            'entries': self.builder.link_builder.build_collection_link(ENTRIES_PATH)
        }
        response['_links'] = self.builder._dump_links(links)
        return response

    def format_problem(
        self,
        error_type: str,
        status: int,
        detail: str,
        instance: str,
        validation_errors: Optional[List[Dict[str, Any]]] = None
    ) -> Dict[str, Any]:
        """Format an RFC 7807 problem for one of the known problem types."""
        title = PROBLEM_TITLES.get(error_type, "Application Error")
        return self.builder.build_error_response(
            error_type, title, status, detail, instance, validation_errors
        )

    def format_validation_error(
        self,
        detail: str,
        instance: str,
        validation_errors: List[Dict[str, Any]]
    ) -> Dict[str, Any]:
        return self.format_problem("validation-error", 400, detail, instance, validation_errors)

    def format_conflict_error(
        self,
        detail: str,
        instance: str,
        error_type: str = "resource-conflict",
        status: int = 409
    ) -> Dict[str, Any]:
        return self.format_problem(error_type, status, detail, instance)

    def format_server_error(self, detail: str, instance: str) -> Dict[str, Any]:
        return self.format_problem("internal-server-error", 500, detail, instance)


# Convenience function for creating HAL formatter
def create_hal_formatter(base_url: str) -> HalFormatter:
    """Create a HAL formatter instance."""
    return HalFormatter(base_url)
