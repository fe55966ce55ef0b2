"""
Registry of the queries that find the entities depending on other entities.

Dependencies are declared once, as one-hop links between adjacent layers
(for example "edges touching these nodes"). The query for any
(source kind, target kind) pair is composed from those links by walking the
layers upward from the source, so a chain never needs its own query code.
Dependents that are not reached through those links (what a deleted user
owns alone, the elements generated for a generic network) have their own
queries. Every query selects only the target model's id and is rebuilt on each call
so it always reflects live state.
"""
from __future__ import annotations

from typing import Callable, Dict, List, Sequence, Tuple, Union

from sqlalchemy import and_, or_, select
from sqlalchemy.sql import Select

from netcontrol.config import settings
from netcontrol.db.models import (
    MODELS_BY_KIND,
    AnalysisDatabase,
    AnalysisEdge,
    AnalysisNetwork,
    AnalysisNode,
    AnalysisNodeCollection,
    AnalysisUser,
    ControlPath,
    Database,
    DatabaseEdge,
    DatabaseEdgeField,
    DatabaseEdgeFieldEdge,
    DatabaseNode,
    DatabaseNodeField,
    DatabaseNodeFieldNode,
    DatabaseType,
    Edge,
    EdgeNode,
    Network,
    NetworkDatabase,
    NetworkEdge,
    NetworkNode,
    NetworkNodeCollection,
    NetworkUser,
    Node,
    NodeCollectionDatabase,
    NodeCollectionNode,
    Analysis,
)
from netcontrol.domain.enumerations import EntityKind

# Source ids are either a literal list or a select of ids
Ids = Union[Sequence[str], Select]
DependencyQuery = Callable[[Ids], Select]

# Layers from the leaves upward; a layer only depends on layers before it.
LAYER_ORDER: List[EntityKind] = [
    EntityKind.DATABASE_TYPE,
    EntityKind.DATABASE,
    EntityKind.DATABASE_NODE_FIELD,
    EntityKind.DATABASE_EDGE_FIELD,
    EntityKind.NODE,
    EntityKind.EDGE,
    EntityKind.NODE_COLLECTION,
    EntityKind.NETWORK,
    EntityKind.ANALYSIS,
    EntityKind.CONTROL_PATH,
]


def _link(column, key) -> Callable[[Ids], Select]:
    """One-hop link: ``column`` values of the rows whose ``key`` is among the ids."""
    return lambda ids: select(column).where(key.in_(ids))


# target kind -> [(source kind, ids of target entities referencing the source ids)]
LINKS: Dict[EntityKind, List[Tuple[EntityKind, Callable[[Ids], Select]]]] = {
    EntityKind.DATABASE: [
        (EntityKind.DATABASE_TYPE, _link(Database.id, Database.database_type_id)),
    ],
    EntityKind.DATABASE_NODE_FIELD: [
        (EntityKind.DATABASE, _link(DatabaseNodeField.id, DatabaseNodeField.database_id)),
    ],
    EntityKind.DATABASE_EDGE_FIELD: [
        (EntityKind.DATABASE, _link(DatabaseEdgeField.id, DatabaseEdgeField.database_id)),
    ],
    EntityKind.NODE: [
        (EntityKind.DATABASE, _link(DatabaseNode.node_id, DatabaseNode.database_id)),
        (EntityKind.DATABASE_NODE_FIELD,
         _link(DatabaseNodeFieldNode.node_id, DatabaseNodeFieldNode.database_node_field_id)),
    ],
    EntityKind.EDGE: [
        (EntityKind.DATABASE, _link(DatabaseEdge.edge_id, DatabaseEdge.database_id)),
        (EntityKind.DATABASE_EDGE_FIELD,
         _link(DatabaseEdgeFieldEdge.edge_id, DatabaseEdgeFieldEdge.database_edge_field_id)),
        (EntityKind.NODE, _link(EdgeNode.edge_id, EdgeNode.node_id)),
    ],
    EntityKind.NODE_COLLECTION: [
        (EntityKind.DATABASE,
         _link(NodeCollectionDatabase.node_collection_id, NodeCollectionDatabase.database_id)),
        (EntityKind.NODE, _link(NodeCollectionNode.node_collection_id, NodeCollectionNode.node_id)),
    ],
    EntityKind.NETWORK: [
        (EntityKind.DATABASE, _link(NetworkDatabase.network_id, NetworkDatabase.database_id)),
        (EntityKind.NODE, _link(NetworkNode.network_id, NetworkNode.node_id)),
        (EntityKind.EDGE, _link(NetworkEdge.network_id, NetworkEdge.edge_id)),
        (EntityKind.NODE_COLLECTION,
         _link(NetworkNodeCollection.network_id, NetworkNodeCollection.node_collection_id)),
    ],
    EntityKind.ANALYSIS: [
        (EntityKind.DATABASE, _link(AnalysisDatabase.analysis_id, AnalysisDatabase.database_id)),
        (EntityKind.NODE, _link(AnalysisNode.analysis_id, AnalysisNode.node_id)),
        (EntityKind.EDGE, _link(AnalysisEdge.analysis_id, AnalysisEdge.edge_id)),
        (EntityKind.NODE_COLLECTION,
         _link(AnalysisNodeCollection.analysis_id, AnalysisNodeCollection.node_collection_id)),
        (EntityKind.NETWORK, _link(AnalysisNetwork.analysis_id, AnalysisNetwork.network_id)),
    ],
    EntityKind.CONTROL_PATH: [
        (EntityKind.ANALYSIS, _link(ControlPath.id, ControlPath.analysis_id)),
    ],
}

def existing(kind: EntityKind, ids: Ids) -> Select:
    """Ids among ``ids`` that exist for ``kind``."""
    model = MODELS_BY_KIND[kind]
    return select(model.id).where(model.id.in_(ids))


def structural_dependents(source_kind: EntityKind, target_kind: EntityKind, ids: Ids) -> Select:
    """
    Ids of the ``target_kind`` entities built, directly or transitively, on the source ids.

    Walks the layers above the source, collecting each layer's dependents from
    every lower layer already reached. Every intermediate layer is named once
    as a common table expression that the layers above refer to, so the
    statement grows linearly with the number of layers.
    """
    if target_kind == source_kind:
        return existing(source_kind, ids)
    reached: Dict[EntityKind, Ids] = {source_kind: ids}
    for kind in LAYER_ORDER[LAYER_ORDER.index(source_kind) + 1:]:
        model = MODELS_BY_KIND[kind]
        conditions = [
            model.id.in_(link(reached[source]))
            for source, link in LINKS.get(kind, ())
            if source in reached
        ]
        if not conditions:
            continue
        statement = select(model.id).where(or_(*conditions))
        if kind == target_kind:
            return statement
        layer = statement.cte(f"{kind.name.lower()}_dependents")
        reached[kind] = select(layer.c.id)
    raise KeyError(f"{target_kind.value} does not depend on {source_kind.value}")


# Ownership by users

def _ownership(join_model, owner_key: str, user_ids: Ids) -> Tuple[Select, Select]:
    """Owner ids held by any of ``user_ids``, and owner ids held by anyone else."""
    owner = getattr(join_model, owner_key)
    owned = select(owner).where(join_model.user_id.in_(user_ids))
    shared = select(owner).where(~join_model.user_id.in_(user_ids))
    return owned, shared


def networks_owned_only_by(user_ids: Ids) -> Select:
    """Networks every owner of which is among the given users."""
    owned, shared = _ownership(NetworkUser, "network_id", user_ids)
    return select(Network.id).where(Network.id.in_(owned), ~Network.id.in_(shared))


def analyses_owned_only_by(user_ids: Ids) -> Select:
    """Analyses every owner of which is among the given users, or built on networks that are."""
    owned, shared = _ownership(AnalysisUser, "analysis_id", user_ids)
    orphaned_by_networks = select(AnalysisNetwork.analysis_id).where(
        AnalysisNetwork.network_id.in_(networks_owned_only_by(user_ids))
    )
    return select(Analysis.id).where(
        or_(
            and_(Analysis.id.in_(owned), ~Analysis.id.in_(shared)),
            Analysis.id.in_(orphaned_by_networks),
        )
    )


# Elements generated for generic networks

def _generic_databases() -> Select:
    return (
        select(Database.id)
        .join(DatabaseType, Database.database_type_id == DatabaseType.id)
        .where(DatabaseType.name == settings.GENERIC_DATABASE_TYPE)
    )


def generic_networks(network_ids: Ids) -> Select:
    """Networks among ``network_ids`` drawing on a generic database."""
    return select(NetworkDatabase.network_id).where(
        NetworkDatabase.network_id.in_(network_ids),
        NetworkDatabase.database_id.in_(_generic_databases()),
    )


def generic_nodes_of_networks(network_ids: Ids) -> Select:
    """Nodes of the generic networks among ``network_ids``."""
    return select(Node.id).where(
        Node.id.in_(select(NetworkNode.node_id).where(NetworkNode.network_id.in_(generic_networks(network_ids))))
    )


def generic_edges_of_networks(network_ids: Ids) -> Select:
    """Edges of the generic networks among ``network_ids``, or touching their nodes."""
    networks = generic_networks(network_ids).cte("generic_networks")
    nodes = select(NetworkNode.node_id).where(NetworkNode.network_id.in_(select(networks.c.network_id)))
    return select(Edge.id).where(
        or_(
            Edge.id.in_(select(NetworkEdge.edge_id).where(NetworkEdge.network_id.in_(select(networks.c.network_id)))),
            Edge.id.in_(select(EdgeNode.edge_id).where(EdgeNode.node_id.in_(nodes))),
        )
    )


# Pairs whose dependents are not the structural ones
NON_STRUCTURAL_QUERIES: Dict[Tuple[EntityKind, EntityKind], DependencyQuery] = {
    (EntityKind.USER, EntityKind.ANALYSIS): analyses_owned_only_by,
    (EntityKind.USER, EntityKind.NETWORK): networks_owned_only_by,
    (EntityKind.USER, EntityKind.EDGE): lambda ids: generic_edges_of_networks(networks_owned_only_by(ids)),
    (EntityKind.USER, EntityKind.NODE): lambda ids: generic_nodes_of_networks(networks_owned_only_by(ids)),
    (EntityKind.NETWORK, EntityKind.EDGE): generic_edges_of_networks,
    (EntityKind.NETWORK, EntityKind.NODE): generic_nodes_of_networks,
}


def dependency_query(source_kind: EntityKind, target_kind: EntityKind) -> DependencyQuery:
    """
    Return the query builder for the ``target_kind`` dependents of ``source_kind`` ids.

    Raises:
        KeyError: If no dependency between the two kinds is known
    """
    if (source_kind, target_kind) in NON_STRUCTURAL_QUERIES:
        return NON_STRUCTURAL_QUERIES[(source_kind, target_kind)]
    if source_kind == target_kind:
        return lambda ids: existing(source_kind, ids)
    if source_kind not in LAYER_ORDER or target_kind not in LAYER_ORDER:
        raise KeyError(f"{target_kind.value} does not depend on {source_kind.value}")
    if LAYER_ORDER.index(target_kind) <= LAYER_ORDER.index(source_kind):
        raise KeyError(f"{target_kind.value} does not depend on {source_kind.value}")
    return lambda ids: structural_dependents(source_kind, target_kind, ids)
