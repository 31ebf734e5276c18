# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Assignment service interface consumed by the auto-logging engine.

Assignment CRUD lives elsewhere; this module only defines how snapshots
reach the DOB engine, plus an in-process implementation.
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Optional

from models.entities import AssignmentSnapshot
from models.enums import AssignmentStatus

logger = logging.getLogger(__name__)

SnapshotListener = Callable[[AssignmentSnapshot], None]


class AssignmentService(ABC):
    """Read-only view of an officer's assignments."""

    @abstractmethod
    def subscribe(self, cpo_id: str, on_change: SnapshotListener) -> Callable[[], None]:
        """Deliver snapshots for ``cpo_id``; returns a callable that unsubscribes."""

    @abstractmethod
    def get_active_assignment(self, cpo_id: str) -> Optional[AssignmentSnapshot]:
        """The officer's assignment currently in ``active`` status, if any."""


class InMemoryAssignmentService(AssignmentService):
    """Assignment feed driven by ``publish`` calls."""

    def __init__(self):
        self._lock = threading.Lock()
        self._listeners: Dict[str, List[SnapshotListener]] = {}
        self._assignments: Dict[str, AssignmentSnapshot] = {}

    def subscribe(self, cpo_id: str, on_change: SnapshotListener) -> Callable[[], None]:
        with self._lock:
            self._listeners.setdefault(cpo_id, []).append(on_change)

        def unsubscribe() -> None:
            with self._lock:
                listeners = self._listeners.get(cpo_id, [])
                if on_change in listeners:
                    listeners.remove(on_change)

        return unsubscribe

    def get_active_assignment(self, cpo_id: str) -> Optional[AssignmentSnapshot]:
        with self._lock:
            for snapshot in self._assignments.values():
                if snapshot.cpo_id == cpo_id and snapshot.status == AssignmentStatus.ACTIVE:
                    return snapshot
        return None

    def publish(self, snapshot: AssignmentSnapshot) -> None:
        """Record a snapshot and deliver it to the owning officer's listeners."""
        with self._lock:
            self._assignments[snapshot.id] = snapshot
            listeners = list(self._listeners.get(snapshot.cpo_id, []))

        for listener in listeners:
            listener(snapshot)
