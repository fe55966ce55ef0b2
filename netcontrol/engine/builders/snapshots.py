"""Builders for networks, analyses and the control paths analyses produce.

Networks and analyses freeze the lower-layer entities they were built from.
An edit may only rename them or change their owners; anything else requires
building a new one.
"""
from __future__ import annotations

import datetime
from typing import Dict, List, Set, Tuple

from netcontrol.db.models import (
    Analysis,
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
    Edge,
    EdgeNode,
    Network,
    NetworkDatabase,
    NetworkEdge,
    NetworkNode,
    NetworkNodeCollection,
    NetworkUser,
    Node,
    NodeCollection,
    Path,
    PathEdge,
    PathNode,
    User,
    generate_uuid,
)
from netcontrol.domain.enumerations import (
    AnalysisAlgorithm,
    AnalysisStatus,
    EdgeNodeType,
    EntityKind,
    NetworkAlgorithm,
    NetworkDatabaseType,
    NetworkNodeType,
    NetworkStatus,
    PathNodeType,
)
from netcontrol.domain.specifications import HasAtLeast, HasText, SingleDatabaseType
from netcontrol.engine.builders.base import Draft, EntityBuilder, ItemRejected, check_rules, unique
from netcontrol.engine.builders.elements import edge_name


def _existing(session, model, ids: List[str]) -> Set[str]:
    ids = unique(ids)
    if not ids:
        return set()
    return {row.id for row in session.query(model.id).filter(model.id.in_(ids))}


def _grouped(rows) -> Dict[str, Set[str]]:
    grouped: Dict[str, Set[str]] = {}
    for owner, member in rows:
        grouped.setdefault(owner, set()).add(member)
    return grouped


def log_entry(message: str) -> str:
    return f"{datetime.datetime.utcnow().isoformat()}: {message}"


OWNER_RULES = [
    HasText("name", reason="a name is required"),
    HasAtLeast("user_ids", reason="at least one valid user is required"),
]

NETWORK_RULES = OWNER_RULES + [
    HasAtLeast("database_ids", reason="at least one valid database is required"),
    SingleDatabaseType(),
]

GENERIC_NETWORK_RULES = [
    HasAtLeast("seed_edges", reason="the seed data does not contain any valid edges"),
]

ANALYSIS_RULES = OWNER_RULES + [
    HasAtLeast("network_ids", reason="at least one valid network is required"),
]


def seed_pairs(seed_edges) -> List[Tuple[str, str]]:
    """Distinct (source, target) name pairs of the seed edges with both names given."""
    pairs = ((edge.source.strip(), edge.target.strip()) for edge in seed_edges)
    return unique((source, target) for source, target in pairs if source and target)


class NetworkBuilder(EntityBuilder):
    """
    Networks snapshot a set of databases, nodes, edges and node collections.

    A network over canonical databases takes the nodes and edges it is given;
    the nodes at both ends of every kept edge are added to it. A network over
    generic databases owns new nodes and edges generated from its seed edges
    instead, one node per distinct name and one edge per distinct pair.
    """

    kind = EntityKind.NETWORK
    model = Network
    edit_collections = ("network_users",)

    def resolve_references(self, session, payloads, editing):
        users = _existing(session, User, [item for payload in payloads for item in payload.user_ids])
        if editing:
            return {"users": users}
        database_ids = unique(
            item for payload in payloads
            for item in payload.database_ids + (payload.edge_database_ids or [])
        )
        databases = dict(
            session.query(Database.id, Database.database_type_id).filter(Database.id.in_(database_ids)).all()
        )
        generic = set(
            session.execute(self.generic_databases().where(Database.id.in_(database_ids))).scalars()
        )
        edges = _existing(session, Edge, [item for payload in payloads for item in payload.edge_ids])
        endpoints = _grouped(
            session.query(EdgeNode.edge_id, EdgeNode.node_id).filter(EdgeNode.edge_id.in_(list(edges)))
        )
        return {
            "users": users,
            "databases": databases,
            "generic": generic,
            "node_fields": _grouped(
                session.query(DatabaseNodeField.database_id, DatabaseNodeField.id)
                .filter(DatabaseNodeField.database_id.in_(list(generic)))
            ),
            "edge_fields": _grouped(
                session.query(DatabaseEdgeField.database_id, DatabaseEdgeField.id)
                .filter(DatabaseEdgeField.database_id.in_(list(generic)))
            ),
            "nodes": _existing(session, Node, [item for payload in payloads for item in payload.node_ids]),
            "edges": edges,
            "endpoints": endpoints,
            "collections": _existing(
                session, NodeCollection, [item for payload in payloads for item in payload.node_collection_ids]
            ),
        }

    def assemble(self, payload, references, editing):
        user_ids = [item for item in unique(payload.user_ids) if item in references["users"]]
        if editing:
            check_rules(OWNER_RULES, {"name": payload.name, "user_ids": user_ids})
            return Draft(
                id=payload.id,
                fields={"name": payload.name.strip(), "description": payload.description},
                collections={"network_users": [NetworkUser(user_id=user_id) for user_id in user_ids]},
            )
        try:
            algorithm = NetworkAlgorithm(payload.algorithm)
        except ValueError:
            raise ItemRejected(f"unknown algorithm '{payload.algorithm}'")
        databases = references["databases"]
        node_database_ids = [item for item in unique(payload.database_ids) if item in databases]
        edge_database_ids = [
            item for item in unique(
                node_database_ids if payload.edge_database_ids is None else payload.edge_database_ids
            )
            if item in databases
        ]
        all_database_ids = unique(node_database_ids + edge_database_ids)
        candidate = {
            "name": payload.name,
            "user_ids": user_ids,
            "database_ids": node_database_ids,
            "database_type_ids": [databases[item] for item in all_database_ids],
        }
        check_rules(NETWORK_RULES, candidate)
        network_id = self._draft_id(payload)
        is_generic = all_database_ids[0] in references["generic"]
        if is_generic and algorithm != NetworkAlgorithm.NONE:
            raise ItemRejected("generic networks cannot use a generation algorithm")
        if is_generic:
            network_nodes, network_edges, message = self._generate(
                network_id, payload, node_database_ids, edge_database_ids, references
            )
        else:
            network_nodes, network_edges, message = self._select(payload, references)
        collection_ids = [item for item in unique(payload.node_collection_ids) if item in references["collections"]]
        return Draft(
            id=network_id,
            fields={
                "name": payload.name.strip(),
                "description": payload.description,
                "algorithm": algorithm.value,
                "status": NetworkStatus.COMPLETED.value,
                "log": [log_entry("Network has been created."), log_entry(message)],
            },
            collections={
                "network_users": [NetworkUser(user_id=item) for item in user_ids],
                "network_databases": (
                    [NetworkDatabase(database_id=item, type=NetworkDatabaseType.NODE.value) for item in node_database_ids]
                    + [NetworkDatabase(database_id=item, type=NetworkDatabaseType.EDGE.value) for item in edge_database_ids]
                ),
                "network_nodes": network_nodes,
                "network_edges": network_edges,
                "network_node_collections": [
                    NetworkNodeCollection(node_collection_id=item) for item in collection_ids
                ],
            },
        )

    def _select(self, payload, references):
        edge_ids = [item for item in unique(payload.edge_ids) if item in references["edges"]]
        seed_ids = [item for item in unique(payload.node_ids) if item in references["nodes"]]
        reached = sorted(
            {node_id for edge_id in edge_ids for node_id in references["endpoints"].get(edge_id, ())}
            - set(seed_ids)
        )
        network_nodes = (
            [NetworkNode(node_id=item, type=NetworkNodeType.SEED.value) for item in seed_ids]
            + [NetworkNode(node_id=item, type=NetworkNodeType.NONE.value) for item in reached]
        )
        network_edges = [NetworkEdge(edge_id=item) for item in edge_ids]
        message = f"Network holds {len(network_nodes)} nodes and {len(network_edges)} edges."
        return network_nodes, network_edges, message

    def _generate(self, network_id, payload, node_database_ids, edge_database_ids, references):
        pairs = seed_pairs(payload.seed_edges)
        check_rules(GENERIC_NETWORK_RULES, {"seed_edges": pairs})
        node_description = f'This is an automatically generated node for the network "{network_id}".'
        edge_description = f'This is an automatically generated edge for the network "{network_id}".'
        node_fields = [
            field_id for database_id in node_database_ids
            for field_id in sorted(references["node_fields"].get(database_id, ()))
        ]
        edge_fields = [
            field_id for database_id in edge_database_ids
            for field_id in sorted(references["edge_fields"].get(database_id, ()))
        ]
        nodes = {
            name: Node(
                id=generate_uuid(),
                name=name,
                description=node_description,
                field_values=[DatabaseNodeFieldNode(database_node_field_id=item, value=name) for item in node_fields],
                database_nodes=[DatabaseNode(database_id=item) for item in node_database_ids],
            )
            for name in unique(name for pair in pairs for name in pair)
        }
        edges = [
            Edge(
                id=generate_uuid(),
                name=edge_name(source, target),
                description=edge_description,
                edge_nodes=[
                    EdgeNode(node=nodes[source], type=EdgeNodeType.SOURCE.value),
                    EdgeNode(node=nodes[target], type=EdgeNodeType.TARGET.value),
                ],
                field_values=[
                    DatabaseEdgeFieldEdge(database_edge_field_id=item, value=edge_name(source, target))
                    for item in edge_fields
                ],
                database_edges=[DatabaseEdge(database_id=item) for item in edge_database_ids],
            )
            for source, target in pairs
        ]
        network_nodes = [NetworkNode(node=node, type=NetworkNodeType.NONE.value) for node in nodes.values()]
        network_edges = [NetworkEdge(edge=edge) for edge in edges]
        message = f"Generated {len(nodes)} nodes and {len(edges)} edges from the seed data."
        return network_nodes, network_edges, message


class AnalysisBuilder(EntityBuilder):
    """
    Analyses snapshot one or more networks.

    Databases, nodes and edges are taken from the networks; the analysis
    starts in the Initializing state.
    """

    kind = EntityKind.ANALYSIS
    model = Analysis
    edit_collections = ("analysis_users",)

    def resolve_references(self, session, payloads, editing):
        users = _existing(session, User, [item for payload in payloads for item in payload.user_ids])
        if editing:
            return {"users": users}
        networks = list(_existing(session, Network, [item for payload in payloads for item in payload.network_ids]))
        return {
            "users": users,
            "networks": set(networks),
            "network_databases": _grouped(
                session.query(NetworkDatabase.network_id, NetworkDatabase.database_id)
                .filter(NetworkDatabase.network_id.in_(networks))
            ),
            "network_nodes": _grouped(
                session.query(NetworkNode.network_id, NetworkNode.node_id)
                .filter(NetworkNode.network_id.in_(networks))
            ),
            "network_edges": _grouped(
                session.query(NetworkEdge.network_id, NetworkEdge.edge_id)
                .filter(NetworkEdge.network_id.in_(networks))
            ),
            "collections": _existing(
                session, NodeCollection, [item for payload in payloads for item in payload.node_collection_ids]
            ),
        }

    def assemble(self, payload, references, editing):
        user_ids = [item for item in unique(payload.user_ids) if item in references["users"]]
        if editing:
            check_rules(OWNER_RULES, {"name": payload.name, "user_ids": user_ids})
            return Draft(
                id=payload.id,
                fields={"name": payload.name.strip(), "description": payload.description},
                collections={"analysis_users": [AnalysisUser(user_id=user_id) for user_id in user_ids]},
            )
        network_ids = [item for item in unique(payload.network_ids) if item in references["networks"]]
        check_rules(ANALYSIS_RULES, {"name": payload.name, "user_ids": user_ids, "network_ids": network_ids})
        try:
            algorithm = AnalysisAlgorithm(payload.algorithm)
        except ValueError:
            raise ItemRejected(f"unknown algorithm '{payload.algorithm}'")

        def union(key: str) -> List[str]:
            return sorted(set().union(*(references[key].get(network_id, set()) for network_id in network_ids)))

        collection_ids = [item for item in unique(payload.node_collection_ids) if item in references["collections"]]
        return Draft(
            id=self._draft_id(payload),
            fields={
                "name": payload.name.strip(),
                "description": payload.description,
                "algorithm": algorithm.value,
                "parameters": dict(payload.parameters),
                "max_iterations": payload.max_iterations,
                "status": AnalysisStatus.INITIALIZING.value,
                "log": [log_entry("Analysis has been created.")],
            },
            collections={
                "analysis_users": [AnalysisUser(user_id=item) for item in user_ids],
                "analysis_networks": [AnalysisNetwork(network_id=item) for item in network_ids],
                "analysis_databases": [AnalysisDatabase(database_id=item) for item in union("network_databases")],
                "analysis_nodes": [AnalysisNode(node_id=item) for item in union("network_nodes")],
                "analysis_edges": [AnalysisEdge(edge_id=item) for item in union("network_edges")],
                "analysis_node_collections": [
                    AnalysisNodeCollection(node_collection_id=item) for item in collection_ids
                ],
            },
        )


class ControlPathBuilder(EntityBuilder):
    """Control paths of one analysis, restricted to the nodes and edges the analysis was built on."""

    kind = EntityKind.CONTROL_PATH
    model = ControlPath

    def __init__(self, analysis_id: str, generic_type_name: str = None):
        super().__init__(generic_type_name)
        self.analysis_id = analysis_id

    def resolve_references(self, session, payloads, editing):
        node_ids = unique(node.node_id for payload in payloads for path in payload.paths for node in path.nodes)
        edge_ids = unique(edge_id for payload in payloads for path in payload.paths for edge_id in path.edge_ids)
        nodes = {
            row.node_id for row in
            session.query(AnalysisNode.node_id).filter(
                AnalysisNode.analysis_id == self.analysis_id,
                AnalysisNode.node_id.in_(node_ids),
            )
        }
        edges = {
            row.edge_id for row in
            session.query(AnalysisEdge.edge_id).filter(
                AnalysisEdge.analysis_id == self.analysis_id,
                AnalysisEdge.edge_id.in_(edge_ids),
            )
        }
        return {"nodes": nodes, "edges": edges}

    def assemble(self, payload, references, editing):
        node_types = {item.value for item in PathNodeType}
        paths = []
        for path in payload.paths:
            if not path.nodes:
                raise ItemRejected("every path needs at least one node")
            if any(node.node_id not in references["nodes"] or node.type not in node_types for node in path.nodes):
                raise ItemRejected("a path references a node outside the analysis")
            if any(edge_id not in references["edges"] for edge_id in path.edge_ids):
                raise ItemRejected("a path references an edge outside the analysis")
            paths.append(Path(
                path_nodes=[
                    PathNode(node_id=node.node_id, type=node.type, index=index)
                    for index, node in enumerate(path.nodes)
                ],
                path_edges=[PathEdge(edge_id=edge_id, index=index) for index, edge_id in enumerate(path.edge_ids)],
            ))
        check_rules([HasAtLeast("paths", reason="at least one path is required")], {"paths": paths})
        return Draft(
            id=self._draft_id(payload),
            fields={"analysis_id": self.analysis_id},
            collections={"paths": paths},
        )
