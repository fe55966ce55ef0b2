"""Builders for nodes and edges."""
from __future__ import annotations

import logging
from typing import Dict, Iterable, Set

from sqlalchemy import select
from sqlalchemy.orm import Session

from netcontrol.db.models import (
    Database,
    DatabaseEdge,
    DatabaseEdgeField,
    DatabaseEdgeFieldEdge,
    DatabaseNode,
    DatabaseNodeField,
    DatabaseNodeFieldNode,
    Edge,
    EdgeNode,
    Node,
)
from netcontrol.domain.enumerations import EdgeNodeType, EntityKind
from netcontrol.domain.specifications import HasAtLeast, HasEdgeRole, HasText
from netcontrol.engine.builders.base import Draft, EntityBuilder, check_rules, unique

logger = logging.getLogger(__name__)

EDGE_RULES = [
    HasEdgeRole(EdgeNodeType.SOURCE.value),
    HasEdgeRole(EdgeNodeType.TARGET.value),
    HasAtLeast("database_ids", reason="at least one valid database is required"),
]


def edge_name(source_name: str, target_name: str) -> str:
    return f"{source_name} - {target_name}"


def owned_by_databases(session: Session, ownership, key: str, ids: Iterable[str], databases) -> Set[str]:
    """Ids among ``ids`` with an ``ownership`` row pointing into ``databases``."""
    ids = list(ids)
    if not ids:
        return set()
    owner_id = getattr(ownership, key)
    statement = select(owner_id).where(owner_id.in_(ids), ownership.database_id.in_(databases))
    return set(session.execute(statement).scalars())


def rename_edges(session: Session, edge_ids: Iterable[str]) -> int:
    """
    Recompute the names of the given edges from the current names of their nodes.

    Returns:
        Number of edges renamed
    """
    edge_ids = unique(edge_ids)
    if not edge_ids:
        return 0
    endpoints: Dict[str, Dict[str, str]] = {}
    rows = (
        session.query(EdgeNode.edge_id, EdgeNode.type, Node.name)
        .join(Node, Node.id == EdgeNode.node_id)
        .filter(EdgeNode.edge_id.in_(edge_ids))
    )
    for row in rows:
        endpoints.setdefault(row.edge_id, {})[row.type] = row.name
    renamed = 0
    for edge in session.query(Edge).filter(Edge.id.in_(edge_ids)):
        names = endpoints.get(edge.id, {})
        source, target = names.get(EdgeNodeType.SOURCE.value), names.get(EdgeNodeType.TARGET.value)
        if source is None or target is None:
            continue
        name = edge_name(source, target)
        if edge.name != name:
            edge.name = name
            renamed += 1
    return renamed


class NodeBuilder(EntityBuilder):
    """
    Nodes are identified by their field values.

    Only fields of non-generic databases are accepted. The first searchable
    value becomes the node's name, and the node belongs to every database
    owning one of its fields.
    """

    kind = EntityKind.NODE
    model = Node
    edit_collections = ("field_values", "database_nodes")

    def editable_ids(self, session, ids):
        return owned_by_databases(session, DatabaseNode, "node_id", ids, self.canonical_databases())

    def resolve_references(self, session, payloads, editing):
        field_ids = unique(value.field_id for payload in payloads for value in payload.field_values)
        rows = (
            session.query(DatabaseNodeField.id, DatabaseNodeField.database_id, DatabaseNodeField.is_searchable)
            .filter(
                DatabaseNodeField.id.in_(field_ids),
                DatabaseNodeField.database_id.in_(self.canonical_databases()),
            )
        )
        return {"fields": {row.id: row for row in rows}}

    def assemble(self, payload, references, editing):
        fields = references["fields"]
        values: Dict[str, str] = {}
        for item in payload.field_values:
            value = (item.value or "").strip()
            if item.field_id in fields and value and item.field_id not in values:
                values[item.field_id] = value
        searchable = [value for field_id, value in values.items() if fields[field_id].is_searchable]
        database_ids = sorted({fields[field_id].database_id for field_id in values})
        candidate = {"name": searchable[0] if searchable else None, "database_ids": database_ids}
        check_rules([HasText("name", reason="a value for a searchable field is required")], candidate)
        return Draft(
            id=self._draft_id(payload),
            fields={"name": candidate["name"], "description": payload.description},
            collections={
                "field_values": [
                    DatabaseNodeFieldNode(database_node_field_id=field_id, value=value)
                    for field_id, value in values.items()
                ],
                "database_nodes": [DatabaseNode(database_id=database_id) for database_id in database_ids],
            },
        )

    def after_edit(self, session, node):
        session.flush()
        edge_ids = [row.edge_id for row in session.query(EdgeNode.edge_id).filter(EdgeNode.node_id == node.id)]
        renamed = rename_edges(session, edge_ids)
        if renamed:
            logger.debug(f"Renamed {renamed} edges touching node {node.id}")


class EdgeBuilder(EntityBuilder):
    """
    Edges join exactly one source node to exactly one target node. When
    several valid nodes are given for a role, the first one is kept.

    Both nodes must be canonical (owned by a non-generic database). The edge
    belongs to the databases given explicitly plus those owning its fields.
    """

    kind = EntityKind.EDGE
    model = Edge
    edit_collections = ("edge_nodes", "field_values", "database_edges")

    def editable_ids(self, session, ids):
        return owned_by_databases(session, DatabaseEdge, "edge_id", ids, self.canonical_databases())

    def resolve_references(self, session, payloads, editing):
        node_ids = unique(item.node_id for payload in payloads for item in payload.edge_nodes)
        canonical_nodes = select(DatabaseNode.node_id).where(
            DatabaseNode.database_id.in_(self.canonical_databases())
        )
        nodes = dict(
            session.query(Node.id, Node.name)
            .filter(Node.id.in_(node_ids), Node.id.in_(canonical_nodes))
            .all()
        )
        field_ids = unique(value.field_id for payload in payloads for value in payload.field_values)
        fields = dict(
            session.query(DatabaseEdgeField.id, DatabaseEdgeField.database_id)
            .filter(
                DatabaseEdgeField.id.in_(field_ids),
                DatabaseEdgeField.database_id.in_(self.canonical_databases()),
            )
            .all()
        )
        database_ids = unique(database_id for payload in payloads for database_id in payload.database_ids)
        databases = {
            row.id for row in
            session.query(Database.id).filter(
                Database.id.in_(database_ids),
                Database.id.in_(self.canonical_databases()),
            )
        }
        return {"nodes": nodes, "fields": fields, "databases": databases}

    def assemble(self, payload, references, editing):
        nodes, fields = references["nodes"], references["fields"]
        roles = {EdgeNodeType.SOURCE.value, EdgeNodeType.TARGET.value}
        edge_nodes = unique(
            (item.node_id, item.type) for item in payload.edge_nodes
            if item.node_id in nodes and item.type in roles
        )
        values: Dict[str, str] = {}
        for item in payload.field_values:
            value = (item.value or "").strip()
            if item.field_id in fields and value and item.field_id not in values:
                values[item.field_id] = value
        database_ids = sorted(
            {database_id for database_id in payload.database_ids if database_id in references["databases"]}
            | {fields[field_id] for field_id in values}
        )
        candidate = {"edge_nodes": edge_nodes, "database_ids": database_ids}
        check_rules(EDGE_RULES, candidate)
        # First node given in each role
        by_role: Dict[str, str] = {}
        for node_id, node_type in edge_nodes:
            by_role.setdefault(node_type, node_id)
        source, target = by_role[EdgeNodeType.SOURCE.value], by_role[EdgeNodeType.TARGET.value]
        return Draft(
            id=self._draft_id(payload),
            fields={"name": edge_name(nodes[source], nodes[target]), "description": payload.description},
            collections={
                "edge_nodes": [
                    EdgeNode(node_id=source, type=EdgeNodeType.SOURCE.value),
                    EdgeNode(node_id=target, type=EdgeNodeType.TARGET.value),
                ],
                "field_values": [
                    DatabaseEdgeFieldEdge(database_edge_field_id=field_id, value=value)
                    for field_id, value in values.items()
                ],
                "database_edges": [DatabaseEdge(database_id=database_id) for database_id in database_ids],
            },
        )
