"""Capability markers for rows that depend on a parent entity.

A model mixes in one marker per parent it references. Each marker names the
foreign-key column pointing at that parent, so owned rows can be removed in
batches for a set of parent ids without knowing the concrete model.
"""
from __future__ import annotations

from typing import Any


class DependentCapability:
    """Base for all capability markers."""

    parent_key: str = ""

    @classmethod
    def parent_column(cls, model: type) -> Any:
        """Return the model attribute holding the parent id for this capability."""
        return getattr(model, cls.parent_key)


class DatabaseTypeDependent(DependentCapability):
    parent_key = "database_type_id"


class DatabaseDependent(DependentCapability):
    parent_key = "database_id"


class DatabaseNodeFieldDependent(DependentCapability):
    parent_key = "database_node_field_id"


class DatabaseEdgeFieldDependent(DependentCapability):
    parent_key = "database_edge_field_id"


class NodeDependent(DependentCapability):
    parent_key = "node_id"


class EdgeDependent(DependentCapability):
    parent_key = "edge_id"


class NodeCollectionDependent(DependentCapability):
    parent_key = "node_collection_id"


class NetworkDependent(DependentCapability):
    parent_key = "network_id"


class AnalysisDependent(DependentCapability):
    parent_key = "analysis_id"


class ControlPathDependent(DependentCapability):
    parent_key = "control_path_id"


class PathDependent(DependentCapability):
    parent_key = "path_id"


class UserDependent(DependentCapability):
    parent_key = "user_id"


class RoleDependent(DependentCapability):
    parent_key = "role_id"
