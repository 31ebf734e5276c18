# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
In-process publish/subscribe bridge for DOB entry events.

Listeners are called synchronously in publish order. A failing listener is
logged and skipped; it never affects the publisher or other listeners.
"""

import logging
import threading
from typing import Callable, Dict, List, Optional
from opentelemetry import trace

from domain.dob import matches_filters
from models.entities import DOBEntry
from models.enums import EntryEvent
from models.requests import DOBEntryFilters

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

EntryListener = Callable[[DOBEntry, EntryEvent], None]


class Subscription:
    """Handle for one registered listener."""

    def __init__(
        self,
        bridge: "DOBSubscriptionBridge",
        cpo_id: Optional[str],
        listener: EntryListener,
        filters: Optional[DOBEntryFilters] = None
    ):
        self._bridge = bridge
        self.cpo_id = cpo_id
        self.listener = listener
        self.filters = filters
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        """Stop deliveries to this listener; safe to call more than once."""
        if not self._active:
            return
        self._active = False
        self._bridge._remove(self)

    def accepts(self, entry: DOBEntry) -> bool:
        if self.cpo_id is not None and entry.cpo_id != self.cpo_id:
            return False
        return matches_filters(entry, self.filters)


class DOBSubscriptionBridge:
    """Fans out created and finalized entries to registered listeners."""

    def __init__(self):
        self._lock = threading.RLock()
        # None holds wildcard subscriptions
        self._subscriptions: Dict[Optional[str], List[Subscription]] = {}

    def subscribe(
        self,
        cpo_id: str,
        listener: EntryListener,
        filters: Optional[DOBEntryFilters] = None
    ) -> Subscription:
        """
        Register a listener for one officer's entries.

        Args:
            cpo_id: Officer whose entries are delivered
            listener: Callable receiving ``(entry, event)``
            filters: Optional query filters an entry must match to be delivered

        Returns:
            Subscription handle used to unregister
        """
        subscription = Subscription(self, cpo_id, listener, filters)
        with self._lock:
            self._subscriptions.setdefault(cpo_id, []).append(subscription)

        logger.debug("Listener subscribed", extra={"cpo_id": cpo_id})
        return subscription

    def subscribe_all(self, listener: EntryListener) -> Subscription:
        """Register a listener for every officer's entries."""
        subscription = Subscription(self, None, listener)
        with self._lock:
            self._subscriptions.setdefault(None, []).append(subscription)
        return subscription

    def _remove(self, subscription: Subscription) -> None:
        with self._lock:
            listeners = self._subscriptions.get(subscription.cpo_id, [])
            if subscription in listeners:
                listeners.remove(subscription)
            if not listeners:
                self._subscriptions.pop(subscription.cpo_id, None)

    def subscriber_count(self, cpo_id: Optional[str] = None) -> int:
        with self._lock:
            return len(self._subscriptions.get(cpo_id, []))

    def publish(self, entry: DOBEntry, event: EntryEvent) -> int:
        """
        Deliver an entry event to matching listeners.

        Returns:
            Number of listeners that handled the event without raising
        """
        with self._lock:
            targets = list(self._subscriptions.get(entry.cpo_id, []))
            targets.extend(self._subscriptions.get(None, []))

        delivered = 0
        event = EntryEvent(event)

        with tracer.start_as_current_span("dob_bridge.publish") as span:
            span.set_attributes({
                "dob.entry_id": entry.id,
                "dob.cpo_id": entry.cpo_id,
                "dob.event": event.value,
                "dob.listeners": len(targets)
            })

            for subscription in targets:
                if not subscription.active or not subscription.accepts(entry):
                    continue
                try:
                    subscription.listener(entry, event)
                    delivered += 1
                except Exception as e:
                    span.record_exception(e)
                    logger.error(
                        "DOB entry listener failed",
                        extra={
                            "entry_id": entry.id,
                            "cpo_id": entry.cpo_id,
                            "event": event.value,
                            "error": str(e)
                        },
                        exc_info=True
                    )

        return delivered

