"""Notification dispatch for newly created reports.

Stands in for the processing queue a new report is handed to. Delivery is
best-effort: it runs on the event worker, after the creating request has
already been answered.
"""

from __future__ import annotations

import logging

from bugtracker.events.bus import EventBus
from bugtracker.schemas.events import EventType, SystemEvent

logger = logging.getLogger(__name__)


async def enqueue_new_report(event: SystemEvent) -> None:
    """Hand a freshly created report to the processing queue."""
    logger.info(
        'Background log: New report %s ("%s") enqueued for processing',
        event.report_id,
        event.data.get("title", ""),
    )


async def log_event(event: SystemEvent) -> None:
    """Global subscriber: one log line per event."""
    logger.debug(
        "Event %s report=%s actor=%s data=%s",
        event.event_type.value,
        event.report_id,
        event.actor_id,
        event.data,
    )


def register_subscribers(bus: EventBus) -> None:
    bus.subscribe(log_event)
    bus.subscribe(enqueue_new_report, event_types=[EventType.REPORT_CREATED])
