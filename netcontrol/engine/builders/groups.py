"""Builder for node collections."""
from __future__ import annotations

from typing import Dict, Set

from netcontrol.db.models import Database, DatabaseNode, NodeCollection, NodeCollectionDatabase, NodeCollectionNode
from netcontrol.domain.enumerations import EntityKind
from netcontrol.domain.specifications import HasAtLeast, HasText
from netcontrol.engine.builders.base import Draft, EntityBuilder, check_rules, unique

COLLECTION_RULES = [
    HasText("name", reason="a name is required"),
    HasAtLeast("node_ids", reason="at least one valid node is required"),
    HasAtLeast("database_ids", reason="at least one valid database is required"),
]


class NodeCollectionBuilder(EntityBuilder):
    """
    Collections group canonical nodes under canonical databases.

    A node is kept only if one of the collection's databases owns it, and a
    database is kept only if it owns one of the kept nodes.
    """

    kind = EntityKind.NODE_COLLECTION
    model = NodeCollection
    edit_collections = ("node_collection_nodes", "node_collection_databases")

    def resolve_references(self, session, payloads, editing):
        database_ids = unique(database_id for payload in payloads for database_id in payload.database_ids)
        databases = {
            row.id for row in
            session.query(Database.id).filter(
                Database.id.in_(database_ids),
                Database.id.in_(self.canonical_databases()),
            )
        }
        node_ids = unique(node_id for payload in payloads for node_id in payload.node_ids)
        owners: Dict[str, Set[str]] = {}
        rows = session.query(DatabaseNode.node_id, DatabaseNode.database_id).filter(
            DatabaseNode.node_id.in_(node_ids),
            DatabaseNode.database_id.in_(list(databases)),
        )
        for row in rows:
            owners.setdefault(row.node_id, set()).add(row.database_id)
        return {"databases": databases, "owners": owners}

    def assemble(self, payload, references, editing):
        owners = references["owners"]
        database_ids = [item for item in unique(payload.database_ids) if item in references["databases"]]
        node_ids = [
            node_id for node_id in unique(payload.node_ids)
            if owners.get(node_id, set()) & set(database_ids)
        ]
        used = set().union(*(owners[node_id] for node_id in node_ids)) if node_ids else set()
        database_ids = [database_id for database_id in database_ids if database_id in used]
        candidate = {"name": payload.name, "node_ids": node_ids, "database_ids": database_ids}
        check_rules(COLLECTION_RULES, candidate)
        return Draft(
            id=self._draft_id(payload),
            fields={"name": payload.name.strip(), "description": payload.description},
            collections={
                "node_collection_nodes": [NodeCollectionNode(node_id=node_id) for node_id in node_ids],
                "node_collection_databases": [
                    NodeCollectionDatabase(database_id=database_id) for database_id in database_ids
                ],
            },
        )
