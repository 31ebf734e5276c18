# SPDX-License-Identifier: Apache-2.0

"""
Tests for best-effort geolocation reads.
"""

import threading

from models.entities import GPSCoordinates
from services.geolocation import GeolocationProvider, StaticGeolocationProvider, read_position


class BlockingProvider(GeolocationProvider):
    """Provider that never answers until released."""

    def __init__(self):
        self.release = threading.Event()

    def get_current_position(self, timeout):
        self.release.wait(5)
        return GPSCoordinates(latitude=0, longitude=0)


class FailingProvider(GeolocationProvider):
    def get_current_position(self, timeout):
        raise PermissionError("location permission denied")


def test_reads_current_position():
    position = GPSCoordinates(latitude=51.5, longitude=-0.12)
    assert read_position(StaticGeolocationProvider(position), timeout=1) == position


def test_no_provider():
    assert read_position(None) is None


def test_timeout_resolves_to_none():
    provider = BlockingProvider()
    try:
        assert read_position(provider, timeout=0.05) is None
    finally:
        provider.release.set()


def test_provider_error_resolves_to_none():
    assert read_position(FailingProvider(), timeout=1) is None
