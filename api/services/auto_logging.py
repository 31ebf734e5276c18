# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Automatic DOB logging driven by assignment transitions and GPS movement.

Each officer gets one AutoLoggingSession holding its own observer baseline,
geofence references and polling thread. Sessions live in an
AutoLoggingRegistry keyed by officer ID; nothing is shared across officers.
"""

import os
import logging
import threading
from typing import Callable, Dict, List, Optional
from opentelemetry import trace

from domain.dob import classify_transition
from domain.geo import haversine_distance
from models.entities import AssignmentSnapshot, DOBEntry, GeoSample
from models.enums import AssignmentStatus, DOBEventType
from .assignments import AssignmentService
from .dob import DOBService
from .geolocation import GeolocationProvider, read_position

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

DEFAULT_GEOFENCE_THRESHOLD_METERS = 500.0
DEFAULT_POLL_INTERVAL_SECONDS = 30.0
DEFAULT_GEOLOCATION_TIMEOUT_SECONDS = 5.0
STOP_JOIN_TIMEOUT_SECONDS = 10.0


class GeofenceMonitor:
    """Turns significant movement during an active assignment into location_change entries."""

    def __init__(
        self,
        cpo_id: str,
        dob_service: DOBService,
        geolocation_provider: Optional[GeolocationProvider],
        threshold_meters: float = DEFAULT_GEOFENCE_THRESHOLD_METERS,
        geolocation_timeout: float = DEFAULT_GEOLOCATION_TIMEOUT_SECONDS
    ):
        self.cpo_id = cpo_id
        self.dob_service = dob_service
        self.geolocation_provider = geolocation_provider
        self.threshold_meters = threshold_meters
        self.geolocation_timeout = geolocation_timeout
        self._references: Dict[str, GeoSample] = {}
        self._lock = threading.Lock()
        self._closed = False

    def reference_for(self, assignment_id: str) -> Optional[GeoSample]:
        return self._references.get(assignment_id)

    def drop(self, assignment_id: str) -> None:
        """Forget the reference point of an assignment that left ``active``."""
        with self._lock:
            self._references.pop(assignment_id, None)

    def close(self) -> None:
        self._closed = True

    def check(self, assignment: AssignmentSnapshot) -> Optional[DOBEntry]:
        """
        Sample the position once and log if it moved past the threshold.

        Returns:
            The stored location_change entry, or None when nothing was logged
        """
        # Serialized so passive and polling triggers cannot log one movement twice
        with self._lock:
            if self._closed or assignment.status != AssignmentStatus.ACTIVE:
                return None

            with tracer.start_as_current_span("geofence.check") as span:
                span.set_attributes({"dob.cpo_id": self.cpo_id, "dob.assignment_id": assignment.id})

                position = read_position(self.geolocation_provider, self.geolocation_timeout)
                if position is None:
                    span.set_attribute("geofence.position_available", False)
                    return None

                sample = GeoSample.from_coordinates(position)
                reference = self._references.get(assignment.id)
                if reference is None:
                    self._references[assignment.id] = sample
                    return None

                distance = haversine_distance(
                    reference.latitude, reference.longitude,
                    sample.latitude, sample.longitude
                )
                span.set_attribute("geofence.distance_meters", distance)

                if distance < self.threshold_meters:
                    return None

                try:
                    entry = self.dob_service.log_location_change(
                        self.cpo_id,
                        assignment.id,
                        assignment_reference=self.dob_service.format_assignment_reference(assignment),
                        gps_coordinates=position,
                        distance_meters=int(round(distance))
                    )
                except Exception as e:
                    span.record_exception(e)
                    logger.error(
                        "Automatic location change logging failed",
                        extra={
                            "cpo_id": self.cpo_id,
                            "assignment_id": assignment.id,
                            "distance_meters": round(distance),
                            "error": str(e)
                        },
                        exc_info=True
                    )
                    return None

                if not self._closed:
                    self._references[assignment.id] = sample
                return entry


class AssignmentTransitionObserver:
    """Classifies assignment snapshots for one officer into DOB entries."""

    def __init__(
        self,
        cpo_id: str,
        dob_service: DOBService,
        geolocation_provider: Optional[GeolocationProvider],
        monitor: GeofenceMonitor,
        geolocation_timeout: float = DEFAULT_GEOLOCATION_TIMEOUT_SECONDS
    ):
        self.cpo_id = cpo_id
        self.dob_service = dob_service
        self.geolocation_provider = geolocation_provider
        self.monitor = monitor
        self.geolocation_timeout = geolocation_timeout
        self._baselines: Dict[str, AssignmentSnapshot] = {}
        self._lock = threading.RLock()
        self._closed = False

    def baseline_for(self, assignment_id: str) -> Optional[AssignmentSnapshot]:
        return self._baselines.get(assignment_id)

    def close(self) -> None:
        self._closed = True

    def _owned(self, snapshot: AssignmentSnapshot) -> bool:
        return snapshot.cpo_id is None or snapshot.cpo_id == self.cpo_id

    def on_snapshot(self, snapshot: AssignmentSnapshot) -> List[DOBEntry]:
        """
        Process one assignment snapshot.

        The snapshot becomes the new baseline whether or not logging
        succeeded. Persistence failures are logged and swallowed.

        Returns:
            Entries stored for this transition, in event order
        """
        with self._lock:
            if self._closed:
                return []

            previous = self._baselines.get(snapshot.id)
            try:
                if previous is None:
                    return []
                return self._process(previous, snapshot)
            finally:
                if not self._closed:
                    self._baselines[snapshot.id] = snapshot
                if snapshot.status != AssignmentStatus.ACTIVE:
                    self.monitor.drop(snapshot.id)

    def _process(self, previous: AssignmentSnapshot, snapshot: AssignmentSnapshot) -> List[DOBEntry]:
        events = classify_transition(previous.status, snapshot.status)

        if not events:
            if (previous.status == AssignmentStatus.ACTIVE
                    and snapshot.status == AssignmentStatus.ACTIVE
                    and self._owned(snapshot)):
                entry = self.monitor.check(snapshot)
                return [entry] if entry else []
            return []

        with tracer.start_as_current_span("observer.transition") as span:
            span.set_attributes({
                "dob.cpo_id": self.cpo_id,
                "dob.assignment_id": snapshot.id,
                "dob.previous_status": previous.status,
                "dob.current_status": snapshot.status,
                "dob.event_count": len(events)
            })

            # One read shared by every event of this transition
            position = read_position(self.geolocation_provider, self.geolocation_timeout)
            reference = self.dob_service.format_assignment_reference(snapshot)

            entries = []
            for event_type in events:
                try:
                    entries.append(self.dob_service.log_event(
                        event_type,
                        self.cpo_id,
                        snapshot.id,
                        assignment_reference=reference,
                        gps_coordinates=position,
                        previous_status=previous.status,
                        current_status=snapshot.status
                    ))
                except Exception as e:
                    span.record_exception(e)
                    logger.error(
                        "Automatic DOB logging failed",
                        extra={
                            "cpo_id": self.cpo_id,
                            "assignment_id": snapshot.id,
                            "event_type": event_type.value,
                            "previous_status": previous.status,
                            "current_status": snapshot.status,
                            "error": str(e)
                        },
                        exc_info=True
                    )
            return entries


class LocationPoller(threading.Thread):
    """Periodically runs the geofence check for the officer's active assignment."""

    def __init__(
        self,
        cpo_id: str,
        assignment_service: AssignmentService,
        monitor: GeofenceMonitor,
        interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS
    ):
        super().__init__(name=f"dob-location-poller-{cpo_id}", daemon=True)
        self.cpo_id = cpo_id
        self.assignment_service = assignment_service
        self.monitor = monitor
        self.interval_seconds = interval_seconds
        self._stop_event = threading.Event()

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    def stop(self, timeout: Optional[float] = STOP_JOIN_TIMEOUT_SECONDS) -> None:
        """Signal the loop to end and wait for an in-flight cycle to finish."""
        self._stop_event.set()
        if self.is_alive() and threading.current_thread() is not self:
            self.join(timeout)

    def run(self) -> None:
        while not self._stop_event.wait(self.interval_seconds):
            try:
                self.poll_once()
            except Exception as e:
                logger.error(
                    "Location polling cycle failed",
                    extra={"cpo_id": self.cpo_id, "error": str(e)},
                    exc_info=True
                )

    def poll_once(self) -> Optional[DOBEntry]:
        """Single polling cycle; collaborator failures skip the cycle."""
        try:
            assignment = self.assignment_service.get_active_assignment(self.cpo_id)
        except Exception as e:
            logger.warning(
                "Active assignment lookup failed",
                extra={"cpo_id": self.cpo_id, "error": str(e)}
            )
            return None

        if assignment is None or assignment.status != AssignmentStatus.ACTIVE:
            return None
        if self._stop_event.is_set():
            return None
        return self.monitor.check(assignment)


def _setting(value: Optional[float], env_name: str, default: float) -> float:
    if value is not None:
        return value
    return float(os.getenv(env_name, default))


class AutoLoggingSession:
    """Auto-logging state and resources for one officer."""

    def __init__(
        self,
        cpo_id: str,
        dob_service: DOBService,
        assignment_service: AssignmentService,
        geolocation_provider: Optional[GeolocationProvider] = None,
        threshold_meters: Optional[float] = None,
        poll_interval_seconds: Optional[float] = None,
        geolocation_timeout: Optional[float] = None
    ):
        self.cpo_id = cpo_id
        self.dob_service = dob_service
        self.assignment_service = assignment_service
        self.geolocation_provider = geolocation_provider
        self.threshold_meters = _setting(
            threshold_meters, 'DOB_GEOFENCE_THRESHOLD_METERS', DEFAULT_GEOFENCE_THRESHOLD_METERS
        )
        self.poll_interval_seconds = _setting(
            poll_interval_seconds, 'DOB_LOCATION_POLL_SECONDS', DEFAULT_POLL_INTERVAL_SECONDS
        )
        self.geolocation_timeout = _setting(
            geolocation_timeout, 'DOB_GEOLOCATION_TIMEOUT_SECONDS', DEFAULT_GEOLOCATION_TIMEOUT_SECONDS
        )

        self.monitor = GeofenceMonitor(
            cpo_id,
            dob_service,
            geolocation_provider,
            self.threshold_meters,
            self.geolocation_timeout
        )
        self.observer = AssignmentTransitionObserver(
            cpo_id,
            dob_service,
            geolocation_provider,
            self.monitor,
            self.geolocation_timeout
        )
        self.poller: Optional[LocationPoller] = None
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._lock = threading.Lock()
        self._started = False
        self._closed = False

    @property
    def is_active(self) -> bool:
        return self._started and not self._closed

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self) -> None:
        """Subscribe to assignment changes and start the polling thread."""
        with self._lock:
            if self._started or self._closed:
                return

            self._unsubscribe = self.assignment_service.subscribe(self.cpo_id, self.observer.on_snapshot)
            self.poller = LocationPoller(
                self.cpo_id,
                self.assignment_service,
                self.monitor,
                self.poll_interval_seconds
            )
            self.poller.start()
            self._started = True

        logger.info(
            "Auto-logging session started",
            extra={
                "cpo_id": self.cpo_id,
                "threshold_meters": self.threshold_meters,
                "poll_interval_seconds": self.poll_interval_seconds
            }
        )

    def stop(self) -> None:
        """
        Tear the session down.

        In-flight writes may still complete but no longer touch session state.
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True

            self.observer.close()
            self.monitor.close()
            if self._unsubscribe is not None:
                self._unsubscribe()
                self._unsubscribe = None
            poller = self.poller

        if poller is not None:
            poller.stop()

        logger.info("Auto-logging session stopped", extra={"cpo_id": self.cpo_id})

    def _assignment_reference(self, assignment_id: Optional[str]) -> Optional[str]:
        """Reference code from the last snapshot seen, or the active assignment."""
        if assignment_id is None:
            return None

        snapshot = self.observer.baseline_for(assignment_id)
        if snapshot is None:
            try:
                active = self.assignment_service.get_active_assignment(self.cpo_id)
            except Exception as e:
                logger.warning(
                    "Active assignment lookup failed",
                    extra={"cpo_id": self.cpo_id, "assignment_id": assignment_id, "error": str(e)}
                )
                active = None
            if active is not None and active.id == assignment_id:
                snapshot = active

        if snapshot is None:
            return None
        return self.dob_service.format_assignment_reference(snapshot)

    def log_operator_event(
        self,
        event_type: DOBEventType,
        assignment_id: Optional[str] = None,
        description: Optional[str] = None,
        reason: Optional[str] = None
    ) -> DOBEntry:
        """
        Log an auto entry on the officer's explicit request.

        Unlike engine-triggered events, failures reach the caller.
        """
        if self._closed:
            raise RuntimeError(f"Auto-logging session for {self.cpo_id} is closed")

        event_type = DOBEventType(event_type)
        if event_type == DOBEventType.ROUTE_DEVIATION and reason is None:
            reason = description

        position = read_position(self.geolocation_provider, self.geolocation_timeout)
        kwargs = {
            "gps_coordinates": position,
            "description": description,
            "assignment_reference": self._assignment_reference(assignment_id),
            "manually_triggered": True
        }
        if reason is not None:
            kwargs["reason"] = reason

        return self.dob_service.log_event(event_type, self.cpo_id, assignment_id, **kwargs)


class AutoLoggingRegistry:
    """Arena of auto-logging sessions keyed by officer ID."""

    def __init__(self, session_factory: Callable[[str], AutoLoggingSession]):
        self.session_factory = session_factory
        self._sessions: Dict[str, AutoLoggingSession] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def get(self, cpo_id: str) -> Optional[AutoLoggingSession]:
        with self._lock:
            return self._sessions.get(cpo_id)

    def start_session(self, cpo_id: str) -> AutoLoggingSession:
        """Return the officer's running session, starting one if needed."""
        with self._lock:
            session = self._sessions.get(cpo_id)
            if session is None or session.closed:
                session = self.session_factory(cpo_id)
                self._sessions[cpo_id] = session

        session.start()
        return session

    def stop_session(self, cpo_id: str) -> bool:
        with self._lock:
            session = self._sessions.pop(cpo_id, None)

        if session is None:
            return False
        session.stop()
        return True

    def stop_all(self) -> None:
        with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()

        for session in sessions:
            session.stop()
