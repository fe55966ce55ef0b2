"""Tests for ordered cascading deletion."""
from __future__ import annotations

import pytest

from netcontrol.db.models import (
    Analysis,
    AnalysisNode,
    ControlPath,
    Database,
    DatabaseEdgeField,
    DatabaseNodeField,
    DatabaseType,
    Edge,
    EdgeNode,
    Network,
    NetworkNode,
    NetworkUser,
    Node,
    NodeCollection,
    Path,
    PathNode,
    Role,
    User,
    UserRole,
)
from netcontrol.domain.capabilities import NetworkDependent, NodeDependent
from netcontrol.domain.enumerations import EntityKind
from netcontrol.domain.errors import InvalidArgumentError
from netcontrol.domain.events import EntitiesDeleted, event_publisher
from netcontrol.engine.batch_mutator import BatchMutator
from netcontrol.engine.cancellation import CancellationToken
from netcontrol.engine.cascade import CASCADE_CHAINS, CascadeOrchestrator
from netcontrol.engine.dependency_resolver import DependencyResolver

SNAPSHOT_MODELS = [
    DatabaseType, Database, DatabaseNodeField, DatabaseEdgeField, Node, Edge,
    NodeCollection, Network, Analysis, ControlPath, Path, User, Role,
]


def snapshot(stored_ids):
    return {model.__tablename__: stored_ids(model) for model in SNAPSHOT_MODELS}


class TestCascadeChains:
    """Test the declared deletion orders."""

    def test_every_chain_ends_with_its_root(self):
        """Test that the root kind is deleted last, or just before the elements generated for it."""
        for root, chain in CASCADE_CHAINS.items():
            if root == EntityKind.NETWORK:
                assert chain[chain.index(root) + 1:] == [EntityKind.EDGE, EntityKind.NODE]
            else:
                assert chain[-1] == root

    def test_snapshots_go_before_elements(self):
        """Test that analyses and networks precede the layers they are built on."""
        chain = CASCADE_CHAINS[EntityKind.DATABASE]
        assert chain.index(EntityKind.ANALYSIS) < chain.index(EntityKind.NETWORK)
        assert chain.index(EntityKind.NETWORK) < chain.index(EntityKind.NODE_COLLECTION)
        assert chain.index(EntityKind.EDGE) < chain.index(EntityKind.NODE)
        assert chain.index(EntityKind.NODE) < chain.index(EntityKind.DATABASE_NODE_FIELD)


class TestCascadeDelete:
    """Test deleting entities with everything built on them."""

    def test_delete_database(self, dataset, orchestrator, stored_ids, published):
        """Test that deleting a database removes its whole dependency tree, top down."""
        report = orchestrator.delete(EntityKind.DATABASE, ["D1"])

        deleted_order = [event.kind for event in published if isinstance(event, EntitiesDeleted)]
        assert deleted_order == [
            "Analysis", "Network", "NodeCollection", "Edge", "Node",
            "DatabaseEdgeField", "DatabaseNodeField", "Database",
        ]
        assert report.deleted["Analysis"] == 1
        assert report.deleted["Node"] == 2
        assert report.deleted["DatabaseNodeField"] == 2
        assert not report.cancelled

        assert stored_ids(Database) == {"D2", "G1"}
        assert stored_ids(Node) == {"N2", "GN1", "GN2"}
        assert stored_ids(Edge) == {"GE1"}
        assert stored_ids(NodeCollection) == set()
        assert stored_ids(Network) == {"W2"}
        assert stored_ids(Analysis) == {"A2"}
        assert stored_ids(ControlPath) == set()
        assert stored_ids(Path) == set()
        assert stored_ids(DatabaseNodeField) == {"F2", "GF1"}
        assert stored_ids(DatabaseEdgeField) == set()

    def test_owned_rows_go_with_their_parent(self, dataset, orchestrator, row_count):
        """Test that no join row survives its parent."""
        orchestrator.delete(EntityKind.DATABASE, ["D1"])

        assert row_count(PathNode) == 0
        assert row_count(AnalysisNode) == 1
        assert row_count(NetworkNode) == 2
        assert row_count(EdgeNode) == 2

    def test_delete_is_idempotent(self, dataset, orchestrator, stored_ids):
        """Test that deleting the same ids again changes nothing."""
        orchestrator.delete(EntityKind.DATABASE, ["D1"])
        before = snapshot(stored_ids)

        report = orchestrator.delete(EntityKind.DATABASE, ["D1"])

        assert sum(report.deleted.values()) == 0
        assert snapshot(stored_ids) == before

    def test_delete_unknown_ids(self, dataset, orchestrator, stored_ids):
        """Test that ids that do not exist are ignored."""
        before = snapshot(stored_ids)
        report = orchestrator.delete(EntityKind.NODE, ["missing"])
        assert sum(report.deleted.values()) == 0
        assert snapshot(stored_ids) == before

    @pytest.mark.parametrize("size", [1, 500])
    def test_outcome_does_not_depend_on_batch_size(self, dataset, session_factory, stored_ids, size):
        """Test that batch and page sizes only change how the work is split."""
        orchestrator = CascadeOrchestrator(
            session_factory,
            DependencyResolver(session_factory, page_size=size),
            BatchMutator(batch_size=size),
        )
        orchestrator.delete(EntityKind.DATABASE_TYPE, ["T1"])

        assert "T1" not in stored_ids(DatabaseType)
        assert stored_ids(Database) == {"G1"}
        assert stored_ids(Node) == {"GN1", "GN2"}
        assert stored_ids(Edge) == set()
        assert stored_ids(Network) == set()
        assert stored_ids(Analysis) == set()
        assert stored_ids(User) == {"U1", "U2"}

    def test_delete_node(self, dataset, orchestrator, stored_ids):
        """Test that deleting a node removes the snapshots, collections and edges using it."""
        report = orchestrator.delete(EntityKind.NODE, ["N1"])

        assert stored_ids(Node) == {"N2", "N3", "GN1", "GN2"}
        assert stored_ids(Edge) == {"GE1"}
        assert stored_ids(NodeCollection) == set()
        assert stored_ids(Network) == {"W2"}
        assert stored_ids(Analysis) == {"A2"}
        assert stored_ids(Database) == {"D1", "D2", "G1"}
        assert report.deleted == {
            "Analysis": 1, "Network": 1, "NodeCollection": 1, "Edge": 1, "Node": 1,
        }

    def test_delete_edge(self, dataset, orchestrator, stored_ids):
        """Test that deleting an edge leaves its nodes and collections alone."""
        orchestrator.delete(EntityKind.EDGE, ["E1"])

        assert stored_ids(Edge) == {"GE1"}
        assert stored_ids(Node) == {"N1", "N2", "N3", "GN1", "GN2"}
        assert stored_ids(NodeCollection) == {"C1"}
        assert stored_ids(Network) == {"W2"}
        assert stored_ids(Analysis) == {"A2"}

    def test_delete_analysis(self, dataset, orchestrator, stored_ids, row_count):
        """Test that deleting an analysis removes its control paths."""
        orchestrator.delete(EntityKind.ANALYSIS, ["A1"])

        assert stored_ids(Analysis) == {"A2"}
        assert stored_ids(ControlPath) == set()
        assert row_count(PathNode) == 0
        assert stored_ids(Network) == {"W1", "W2"}

    def test_delete_user(self, dataset, orchestrator, stored_ids, session_factory):
        """Test that a user takes along only what nobody else owns."""
        report = orchestrator.delete(EntityKind.USER, ["U1"])

        assert stored_ids(User) == {"U2"}
        assert stored_ids(Network) == {"W2"}
        assert stored_ids(Analysis) == {"A2"}
        assert stored_ids(Edge) == {"E1", "GE1"}
        assert stored_ids(Node) == {"N1", "N2", "N3", "GN1", "GN2"}
        assert report.deleted["Edge"] == 0
        assert report.deleted["Node"] == 0
        with session_factory() as session:
            owners = {row.user_id for row in session.query(NetworkUser).filter(NetworkUser.network_id == "W2")}
            assert owners == {"U2"}
            assert session.query(UserRole).count() == 0

    def test_delete_user_removes_elements_of_owned_generic_networks(
        self, generic_network, orchestrator, stored_ids
    ):
        """Test that the generated elements of a user's own generic network go with it."""
        report = orchestrator.delete(EntityKind.USER, ["U1"])

        assert stored_ids(Network) == {"W2"}
        assert stored_ids(Edge) == {"E1", "GE1"}
        assert stored_ids(Node) == {"N1", "N2", "N3", "GN1", "GN2"}
        assert report.deleted["Network"] == 2
        assert report.deleted["Edge"] == 2
        assert report.deleted["Node"] == 2

    def test_delete_generic_network(self, generic_network, orchestrator, stored_ids, published):
        """Test that deleting a generic network removes the nodes and edges generated for it."""
        report = orchestrator.delete(EntityKind.NETWORK, ["W3"])

        assert stored_ids(Network) == {"W1", "W2"}
        assert stored_ids(Edge) == {"E1", "GE1"}
        assert stored_ids(Node) == {"N1", "N2", "N3", "GN1", "GN2"}
        assert report.deleted == {"Analysis": 0, "Network": 1, "Edge": 2, "Node": 2}
        deleted_order = [event.kind for event in published if isinstance(event, EntitiesDeleted)]
        assert deleted_order == ["Network", "Edge", "Node"]

    def test_delete_canonical_network_keeps_elements(self, generic_network, orchestrator, stored_ids):
        """Test that a network over canonical databases takes no node or edge with it."""
        report = orchestrator.delete(EntityKind.NETWORK, ["W1", "W2"])

        assert stored_ids(Network) == {"W3"}
        assert stored_ids(Node) == {"N1", "N2", "N3", "GN1", "GN2", "GN3", "GN4"}
        assert stored_ids(Edge) == {"E1", "GE1", "GE2", "GE3"}
        assert report.deleted["Node"] == 0

    def test_generic_elements_resolved_before_networks_go(
        self, generic_network, session_factory, stored_ids
    ):
        """Test that generated elements are found even though their network is deleted first."""
        orchestrator = CascadeOrchestrator(
            session_factory,
            DependencyResolver(session_factory, page_size=1),
            BatchMutator(batch_size=1),
        )
        orchestrator.delete(EntityKind.NETWORK, ["W3"])

        assert stored_ids(Node) == {"N1", "N2", "N3", "GN1", "GN2"}
        assert stored_ids(Edge) == {"E1", "GE1"}

    def test_delete_role(self, dataset, orchestrator, stored_ids, row_count):
        """Test that deleting a role removes its assignments but not its users."""
        orchestrator.delete(EntityKind.ROLE, ["R1"])

        assert stored_ids(Role) == set()
        assert row_count(UserRole) == 0
        assert stored_ids(User) == {"U1", "U2"}

    def test_cancelled_before_start(self, dataset, orchestrator, stored_ids):
        """Test that a cancelled token deletes nothing."""
        token = CancellationToken()
        token.cancel()
        before = snapshot(stored_ids)

        report = orchestrator.delete(EntityKind.DATABASE, ["D1"], token)

        assert report.cancelled
        assert snapshot(stored_ids) == before

    def test_cancelled_between_layers(self, dataset, orchestrator, stored_ids):
        """Test that cancelling mid-chain keeps every layer below untouched."""
        token = CancellationToken()

        def cancel_after_analyses(event):
            if event.kind == "Analysis":
                token.cancel()
        event_publisher.subscribe(EntitiesDeleted, cancel_after_analyses)

        report = orchestrator.delete(EntityKind.DATABASE, ["D1"], token)

        assert report.cancelled
        assert stored_ids(Analysis) == {"A2"}
        assert stored_ids(Network) == {"W1", "W2"}
        assert stored_ids(Database) == {"D1", "D2", "G1"}

    def test_failure_aborts_the_rest_of_the_chain(self, dataset, session_factory, resolver, stored_ids):
        """Test that an error stops the chain and keeps the layers already deleted."""

        class FailingMutator(BatchMutator):
            def delete(self, session, query, token=None, batch_size=None):
                if query.column_descriptions[0]["entity"] is Network:
                    raise RuntimeError("storage unavailable")
                return super().delete(session, query, token, batch_size)

        orchestrator = CascadeOrchestrator(session_factory, resolver, FailingMutator(batch_size=2))

        with pytest.raises(RuntimeError):
            orchestrator.delete(EntityKind.NODE, ["N1"])

        assert stored_ids(Analysis) == {"A2"}
        assert stored_ids(Network) == {"W1", "W2"}
        assert "N1" in stored_ids(Node)

    def test_delete_none_ids(self, orchestrator):
        """Test that missing ids are rejected."""
        with pytest.raises(InvalidArgumentError):
            orchestrator.delete(EntityKind.NODE, None)


class TestInvalidate:
    """Test removing snapshots ahead of an edit."""

    def test_invalidate_node(self, dataset, orchestrator, stored_ids):
        """Test that only networks and analyses are removed."""
        report = orchestrator.invalidate(EntityKind.NODE, ["N2"])

        assert stored_ids(Network) == {"W1"}
        assert stored_ids(Analysis) == {"A1"}
        assert "N2" in stored_ids(Node)
        assert report.deleted == {"Analysis": 1, "Network": 1}

    def test_invalidate_kind_without_snapshots(self, dataset, orchestrator, stored_ids):
        """Test that editing a kind no snapshot freezes removes nothing."""
        before = snapshot(stored_ids)
        report = orchestrator.invalidate(EntityKind.ROLE, ["R1"])
        assert report.deleted == {}
        assert snapshot(stored_ids) == before


class TestDeleteRelatedEntities:
    """Test capability-based removal of dependent rows."""

    def test_delete_rows_of_parent(self, dataset, orchestrator, row_count):
        """Test that the rows depending on the parents are deleted."""
        deleted = orchestrator.delete_related_entities(NetworkNode, NodeDependent, ["N1", "N3"])
        assert deleted == 2
        assert row_count(NetworkNode) == 2

    def test_model_without_capability(self, orchestrator):
        """Test that a model not implementing the capability is rejected."""
        with pytest.raises(InvalidArgumentError):
            orchestrator.delete_related_entities(Node, NetworkDependent, ["W1"])

    def test_not_a_capability(self, orchestrator):
        """Test that an arbitrary type is not accepted as a capability."""
        with pytest.raises(InvalidArgumentError):
            orchestrator.delete_related_entities(NetworkNode, str, ["W1"])

    def test_no_parents(self, orchestrator):
        """Test that an empty parent list deletes nothing."""
        assert orchestrator.delete_related_entities(NetworkNode, NetworkDependent, []) == 0
