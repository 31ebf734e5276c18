# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Geolocation provider interface and bounded position reads.
"""

import logging
import threading
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from typing import Optional

from models.entities import GPSCoordinates

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 5.0

_executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="geolocation")


class GeolocationProvider(ABC):
    """Source of the officer device's current position."""

    @abstractmethod
    def get_current_position(self, timeout: float) -> Optional[GPSCoordinates]:
        """Return the current position, or None when it is unavailable."""


class StaticGeolocationProvider(GeolocationProvider):
    """Provider that reports a position set by the caller."""

    def __init__(self, position: Optional[GPSCoordinates] = None):
        self._position = position
        self._lock = threading.Lock()

    def set_position(self, position: Optional[GPSCoordinates]) -> None:
        with self._lock:
            self._position = position

    def get_current_position(self, timeout: float) -> Optional[GPSCoordinates]:
        with self._lock:
            return self._position


def read_position(
    provider: Optional[GeolocationProvider],
    timeout: float = DEFAULT_TIMEOUT_SECONDS
) -> Optional[GPSCoordinates]:
    """
    Best-effort one-shot position read.

    The provider call runs on a worker thread and is abandoned after
    ``timeout`` seconds. Timeouts and provider errors resolve to None.
    """
    if provider is None:
        return None

    future = _executor.submit(provider.get_current_position, timeout)
    try:
        return future.result(timeout=timeout)
    except FutureTimeoutError:
        future.cancel()
        logger.warning("Geolocation read timed out", extra={"timeout_seconds": timeout})
        return None
    except Exception as e:
        logger.warning(
            "Geolocation read failed",
            extra={"error": str(e), "error_class": e.__class__.__name__}
        )
        return None
