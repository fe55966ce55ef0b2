"""Entity builders, one per kind the engine creates or edits."""
from typing import Dict, Type

from netcontrol.domain.enumerations import EntityKind
from netcontrol.engine.builders.base import Draft, EntityBuilder, ItemRejected
from netcontrol.engine.builders.catalog import (
    DatabaseBuilder,
    DatabaseEdgeFieldBuilder,
    DatabaseNodeFieldBuilder,
    DatabaseTypeBuilder,
    RoleBuilder,
    UserBuilder,
)
from netcontrol.engine.builders.elements import EdgeBuilder, NodeBuilder
from netcontrol.engine.builders.groups import NodeCollectionBuilder
from netcontrol.engine.builders.snapshots import AnalysisBuilder, ControlPathBuilder, NetworkBuilder

BUILDERS: Dict[EntityKind, Type[EntityBuilder]] = {
    EntityKind.DATABASE_TYPE: DatabaseTypeBuilder,
    EntityKind.DATABASE: DatabaseBuilder,
    EntityKind.DATABASE_NODE_FIELD: DatabaseNodeFieldBuilder,
    EntityKind.DATABASE_EDGE_FIELD: DatabaseEdgeFieldBuilder,
    EntityKind.NODE: NodeBuilder,
    EntityKind.EDGE: EdgeBuilder,
    EntityKind.NODE_COLLECTION: NodeCollectionBuilder,
    EntityKind.NETWORK: NetworkBuilder,
    EntityKind.ANALYSIS: AnalysisBuilder,
    EntityKind.USER: UserBuilder,
    EntityKind.ROLE: RoleBuilder,
}

__all__ = [
    "BUILDERS",
    "ControlPathBuilder",
    "Draft",
    "EntityBuilder",
    "ItemRejected",
]
