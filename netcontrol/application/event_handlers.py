"""Event handlers for domain events."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from netcontrol.domain.events import (
        AnalysisStatusChanged,
        EntitiesCreated,
        EntitiesDeleted,
        EntitiesEdited,
        JobCompleted,
        PayloadsRejected,
    )

logger = logging.getLogger(__name__)


class AuditLogHandler:
    """Logs all domain events for audit trail."""

    def handle_entities_created(self, event: EntitiesCreated) -> None:
        logger.info(f"[AUDIT] {len(event.entity_ids)} {event.kind} entities created")

    def handle_entities_edited(self, event: EntitiesEdited) -> None:
        logger.info(f"[AUDIT] {len(event.entity_ids)} {event.kind} entities edited")

    def handle_entities_deleted(self, event: EntitiesDeleted) -> None:
        logger.info(f"[AUDIT] {event.count} {event.kind} entities deleted (cascade from {event.root_kind})")

    def handle_payloads_rejected(self, event: PayloadsRejected) -> None:
        logger.info(f"[AUDIT] {len(event.reasons)} {event.kind} items rejected on {event.operation}")

    def handle_analysis_status_changed(self, event: AnalysisStatusChanged) -> None:
        logger.info(f"[AUDIT] Analysis {event.aggregate_id}: {event.previous_status} -> {event.status}")

    def handle_job_completed(self, event: JobCompleted) -> None:
        logger.info(f"[AUDIT] Job {event.aggregate_id} completed: {event.operation} {event.kind}")


class CancellationWatchHandler:
    """Flags jobs that stopped before processing all of their items."""

    def handle_job_completed(self, event: JobCompleted) -> None:
        if event.cancelled:
            logger.warning(f"[JOBS] Job {event.aggregate_id} was cancelled; remaining items were not processed")


def register_event_handlers():
    """Register all event handlers with the publisher."""
    from netcontrol.domain.events import (
        event_publisher,
        AnalysisStatusChanged,
        EntitiesCreated,
        EntitiesDeleted,
        EntitiesEdited,
        JobCompleted,
        PayloadsRejected,
    )

    audit = AuditLogHandler()
    cancellation = CancellationWatchHandler()

    # Audit handlers (all events)
    event_publisher.subscribe(EntitiesCreated, audit.handle_entities_created)
    event_publisher.subscribe(EntitiesEdited, audit.handle_entities_edited)
    event_publisher.subscribe(EntitiesDeleted, audit.handle_entities_deleted)
    event_publisher.subscribe(PayloadsRejected, audit.handle_payloads_rejected)
    event_publisher.subscribe(AnalysisStatusChanged, audit.handle_analysis_status_changed)
    event_publisher.subscribe(JobCompleted, audit.handle_job_completed)

    # Cancelled jobs
    event_publisher.subscribe(JobCompleted, cancellation.handle_job_completed)
