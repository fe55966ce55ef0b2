"""Internal result types returned by the mutation engine."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional


@dataclass
class Rejection:
    """One item dropped from a create or edit request."""
    index: int
    item_id: Optional[str]
    reason: str


@dataclass
class MutationReport:
    """Outcome of one create, edit or delete request."""
    kind: str
    operation: str
    requested: int = 0
    accepted_ids: List[str] = field(default_factory=list)
    rejections: List[Rejection] = field(default_factory=list)
    deleted: Dict[str, int] = field(default_factory=dict)
    cancelled: bool = False

    @property
    def accepted(self) -> int:
        return len(self.accepted_ids)

    def reject(self, index: int, item_id: Optional[str], reason: str) -> None:
        self.rejections.append(Rejection(index=index, item_id=item_id, reason=reason))

    def record_deleted(self, kind: str, count: int) -> None:
        """Add ``count`` removed entities of ``kind`` to the cascade totals."""
        self.deleted[kind] = self.deleted.get(kind, 0) + count
