"""Domain events for decoupled side effects and integrations."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List
from uuid import uuid4

logger = logging.getLogger(__name__)


@dataclass
class DomainEvent:
    """Base class for all domain events."""
    event_id: str
    timestamp: datetime
    aggregate_id: str

    def __post_init__(self):
        if not hasattr(self, 'event_id') or not self.event_id:
            object.__setattr__(self, 'event_id', str(uuid4()))
        if not hasattr(self, 'timestamp') or not self.timestamp:
            object.__setattr__(self, 'timestamp', datetime.now())


@dataclass
class EntitiesCreated(DomainEvent):
    """Raised when a batch of entities of one kind was committed."""
    kind: str
    entity_ids: List[str] = field(default_factory=list)


@dataclass
class EntitiesEdited(DomainEvent):
    """Raised when a batch of entities of one kind was updated."""
    kind: str
    entity_ids: List[str] = field(default_factory=list)


@dataclass
class EntitiesDeleted(DomainEvent):
    """Raised when one layer of a cascade was deleted."""
    kind: str
    root_kind: str
    count: int = 0


@dataclass
class PayloadsRejected(DomainEvent):
    """Raised when a create or edit request dropped some of its items."""
    kind: str
    operation: str
    reasons: Dict[str, str] = field(default_factory=dict)


@dataclass
class AnalysisStatusChanged(DomainEvent):
    """Raised when an analysis moves through its lifecycle."""
    previous_status: str
    status: str


@dataclass
class JobCompleted(DomainEvent):
    """Raised when a background job ran to the end and its record was removed."""
    kind: str
    operation: str
    cancelled: bool = False


class DomainEventPublisher:
    """Singleton publisher for domain events."""

    _instance: DomainEventPublisher | None = None
    _subscribers: Dict[type, List[Callable[[DomainEvent], None]]]

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._subscribers = {}
        return cls._instance

    def subscribe(self, event_type: type[DomainEvent], handler: Callable[[DomainEvent], None]) -> None:
        """Subscribe a handler to an event type."""
        if event_type not in self._subscribers:
            self._subscribers[event_type] = []
        self._subscribers[event_type].append(handler)

    def publish(self, event: DomainEvent) -> None:
        """Publish an event to all subscribers."""
        event_type = type(event)
        if event_type in self._subscribers:
            for handler in self._subscribers[event_type]:
                try:
                    handler(event)
                except Exception as e:
                    # Handlers never fail the mutation that raised the event
                    logger.error(f"Event handler error for {event_type.__name__}: {e}")

    def clear_subscribers(self) -> None:
        """Clear all subscribers (useful for testing)."""
        self._subscribers = {}


# Singleton instance
event_publisher = DomainEventPublisher()
