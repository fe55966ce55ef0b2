"""Specification pattern for reusable validation rules on assembled items."""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, Optional


class Specification(ABC):
    """Abstract base for specifications (item rules)."""

    reason: str = "the item is invalid"

    @abstractmethod
    def is_satisfied_by(self, candidate: Dict[str, Any]) -> bool:
        """Check if candidate satisfies this specification."""
        pass


# Generic rules

class HasText(Specification):
    """Items whose text attribute is present and not blank."""

    def __init__(self, key: str, reason: str = None):
        self.key = key
        self.reason = reason or f"{key} is required"

    def is_satisfied_by(self, candidate: Dict[str, Any]) -> bool:
        value = candidate.get(self.key)
        return value is not None and str(value).strip() != ""


class HasAtLeast(Specification):
    """Items referencing at least ``minimum`` resolved entities under ``key``."""

    def __init__(self, key: str, minimum: int = 1, reason: str = None):
        self.key = key
        self.minimum = minimum
        self.reason = reason or f"at least {minimum} valid {key.replace('_', ' ')} required"

    def is_satisfied_by(self, candidate: Dict[str, Any]) -> bool:
        return len(candidate.get(self.key) or ()) >= self.minimum


class IsUnique(Specification):
    """Items whose value under ``key`` is not already taken."""

    def __init__(self, key: str, taken: Iterable[str], reason: str = None):
        self.key = key
        self.taken = set(taken)
        self.reason = reason or f"{key} is already in use"

    def is_satisfied_by(self, candidate: Dict[str, Any]) -> bool:
        return candidate.get(self.key) not in self.taken


# Element rules

class HasEdgeRole(Specification):
    """Edges with at least one resolved node in the given role."""

    def __init__(self, role: str):
        self.role = role
        self.reason = f"a valid {role.lower()} node is required"

    def is_satisfied_by(self, edge: Dict[str, Any]) -> bool:
        return any(node_type == self.role for _, node_type in edge.get("edge_nodes", ()))


class SingleDatabaseType(Specification):
    """Snapshots whose databases all share one database type."""

    reason = "all databases must be of the same type"

    def is_satisfied_by(self, network: Dict[str, Any]) -> bool:
        return len(set(network.get("database_type_ids", ()))) <= 1


class NotGeneric(Specification):
    """Catalog entries outside the generic database type."""

    def __init__(self, reason: str = None):
        self.reason = reason or "generic data cannot be changed this way"

    def is_satisfied_by(self, candidate: Dict[str, Any]) -> bool:
        return not candidate.get("is_generic")


# Helper functions

def first_unsatisfied(rules: Iterable[Specification], candidate: Dict[str, Any]) -> Optional[Specification]:
    """Return the first rule the candidate breaks, or None when it satisfies all of them."""
    for rule in rules:
        if not rule.is_satisfied_by(candidate):
            return rule
    return None
