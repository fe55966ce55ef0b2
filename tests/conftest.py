"""
Test configuration and fixtures for netcontrol tests.

Every test runs against its own file-backed SQLite database with
foreign-key enforcement on, so cascades behave as they do in PostgreSQL.
"""
import pytest

from netcontrol.application.mutation_service import MutationService
from netcontrol.db.database import create_db_engine, create_session_factory
from netcontrol.db.init_db import create_tables, seed_generic_database_type
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
    NodeCollection,
    NodeCollectionDatabase,
    NodeCollectionNode,
    Path,
    PathEdge,
    PathNode,
    Role,
    User,
    UserRole,
)
from netcontrol.domain.events import (
    AnalysisStatusChanged,
    EntitiesCreated,
    EntitiesDeleted,
    EntitiesEdited,
    JobCompleted,
    PayloadsRejected,
    event_publisher,
)
from netcontrol.engine.batch_mutator import BatchMutator
from netcontrol.engine.cascade import CascadeOrchestrator
from netcontrol.engine.dependency_resolver import DependencyResolver


@pytest.fixture(autouse=True)
def clean_event_publisher():
    """Start and end every test with no event subscribers."""
    event_publisher.clear_subscribers()
    yield
    event_publisher.clear_subscribers()


@pytest.fixture
def engine(tmp_path):
    """Create a fresh SQLite database with all tables."""
    engine = create_db_engine(f"sqlite:///{tmp_path / 'netcontrol.db'}")
    create_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def generic_type(engine):
    """Seed the generic database type."""
    return seed_generic_database_type(engine)


@pytest.fixture
def session_factory(engine, generic_type):
    return create_session_factory(engine)


@pytest.fixture
def stored_ids(session_factory):
    """Return a function listing the ids currently stored for a model."""
    def ids(model):
        with session_factory() as session:
            return {row[0] for row in session.query(model.id)}
    return ids


@pytest.fixture
def row_count(session_factory):
    """Return a function counting the rows currently stored for a model."""
    def count(model):
        with session_factory() as session:
            return session.query(model).count()
    return count


@pytest.fixture
def published():
    """Collect every domain event published during the test."""
    events = []
    for event_type in (
        EntitiesCreated,
        EntitiesEdited,
        EntitiesDeleted,
        PayloadsRejected,
        AnalysisStatusChanged,
        JobCompleted,
    ):
        event_publisher.subscribe(event_type, events.append)
    return events


@pytest.fixture
def mutator():
    return BatchMutator(batch_size=2)


@pytest.fixture
def resolver(session_factory):
    return DependencyResolver(session_factory, page_size=2)


@pytest.fixture
def orchestrator(session_factory, resolver, mutator):
    return CascadeOrchestrator(session_factory, resolver, mutator)


@pytest.fixture
def service(session_factory, resolver, mutator, orchestrator):
    """Mutation service with small batches and pages so every path is paged."""
    return MutationService(session_factory, mutator=mutator, resolver=resolver, orchestrator=orchestrator)


def make_node(node_id, database_id, field_id, value):
    return Node(
        id=node_id,
        name=value,
        field_values=[DatabaseNodeFieldNode(database_node_field_id=field_id, value=value)],
        database_nodes=[DatabaseNode(database_id=database_id)],
    )


@pytest.fixture
def dataset(session_factory, generic_type):
    """
    Seed a small dataset spanning every layer.

    Catalog:
        T1 "Protein" with databases D1 and D2; G1 is the generic database.
        Searchable node fields F1 (D1), F2 (D2), GF1 (G1); F3 (D1) is not searchable.
        Edge field EF1 (D1).
    Elements:
        N1 "TP53" and N3 "MYC" in D1, N2 "EGFR" in D2.
        E1 "TP53 - MYC" in D1.
        Generic nodes GN1 (unreferenced) and GN2, generic edge GE1 GN2 -> N2.
    Groups:
        C1 holds N1 and N3 under D1.
    Accounts:
        U1 (role R1) and U2.
    Snapshots:
        W1 owned by U1 over D1, N1, N3, E1, C1.
        W2 owned by U1 and U2 over D2, N2, GN2.
        A1 (Ongoing) owned by U1 on W1, with control path CP1 (path P1 N1 -> N3 via E1).
        A2 (Completed) owned by U2 on W2.
    """
    with session_factory() as session:
        session.add_all([
            DatabaseType(id="T1", name="Protein"),
            Role(id="R1", name="Administrator"),
        ])
        session.flush()
        session.add_all([
            Database(id="D1", database_type_id="T1", name="UniProt", is_public=True),
            Database(id="D2", database_type_id="T1", name="Ensembl"),
            Database(id="G1", database_type_id=generic_type.id, name="Generic data"),
            User(id="U1", email="ana@example.org", name="Ana", user_roles=[UserRole(role_id="R1")]),
            User(id="U2", email="ben@example.org", name="Ben"),
        ])
        session.flush()
        session.add_all([
            DatabaseNodeField(id="F1", database_id="D1", name="UniProt ID", is_searchable=True),
            DatabaseNodeField(id="F2", database_id="D2", name="Ensembl ID", is_searchable=True),
            DatabaseNodeField(id="F3", database_id="D1", name="UniProt Organism"),
            DatabaseNodeField(id="GF1", database_id="G1", name="Generic ID", is_searchable=True),
            DatabaseEdgeField(id="EF1", database_id="D1", name="UniProt Interaction"),
        ])
        session.flush()
        session.add_all([
            make_node("N1", "D1", "F1", "TP53"),
            make_node("N2", "D2", "F2", "EGFR"),
            make_node("N3", "D1", "F1", "MYC"),
            make_node("GN1", "G1", "GF1", "orphan"),
            make_node("GN2", "G1", "GF1", "custom"),
        ])
        session.flush()
        session.add_all([
            Edge(
                id="E1",
                name="TP53 - MYC",
                edge_nodes=[EdgeNode(node_id="N1", type="Source"), EdgeNode(node_id="N3", type="Target")],
                field_values=[DatabaseEdgeFieldEdge(database_edge_field_id="EF1", value="physical")],
                database_edges=[DatabaseEdge(database_id="D1")],
            ),
            Edge(
                id="GE1",
                name="custom - EGFR",
                edge_nodes=[EdgeNode(node_id="GN2", type="Source"), EdgeNode(node_id="N2", type="Target")],
                database_edges=[DatabaseEdge(database_id="G1")],
            ),
            NodeCollection(
                id="C1",
                name="Drivers",
                node_collection_nodes=[NodeCollectionNode(node_id="N1"), NodeCollectionNode(node_id="N3")],
                node_collection_databases=[NodeCollectionDatabase(database_id="D1")],
            ),
        ])
        session.flush()
        session.add_all([
            Network(
                id="W1",
                name="Driver network",
                network_users=[NetworkUser(user_id="U1")],
                network_databases=[NetworkDatabase(database_id="D1")],
                network_nodes=[NetworkNode(node_id="N1"), NetworkNode(node_id="N3")],
                network_edges=[NetworkEdge(edge_id="E1")],
                network_node_collections=[NetworkNodeCollection(node_collection_id="C1")],
            ),
            Network(
                id="W2",
                name="Shared network",
                network_users=[NetworkUser(user_id="U1"), NetworkUser(user_id="U2")],
                network_databases=[NetworkDatabase(database_id="D2")],
                network_nodes=[NetworkNode(node_id="N2"), NetworkNode(node_id="GN2")],
            ),
        ])
        session.flush()
        session.add_all([
            Analysis(
                id="A1",
                name="Driver control",
                algorithm="Greedy",
                status="Ongoing",
                analysis_users=[AnalysisUser(user_id="U1")],
                analysis_databases=[AnalysisDatabase(database_id="D1")],
                analysis_nodes=[AnalysisNode(node_id="N1"), AnalysisNode(node_id="N3")],
                analysis_edges=[AnalysisEdge(edge_id="E1")],
                analysis_networks=[AnalysisNetwork(network_id="W1")],
                analysis_node_collections=[AnalysisNodeCollection(node_collection_id="C1")],
            ),
            Analysis(
                id="A2",
                name="Shared control",
                algorithm="Genetic",
                status="Completed",
                analysis_users=[AnalysisUser(user_id="U2")],
                analysis_databases=[AnalysisDatabase(database_id="D2")],
                analysis_nodes=[AnalysisNode(node_id="N2")],
                analysis_networks=[AnalysisNetwork(network_id="W2")],
            ),
        ])
        session.flush()
        session.add(ControlPath(
            id="CP1",
            analysis_id="A1",
            paths=[Path(
                id="P1",
                path_nodes=[
                    PathNode(node_id="N1", type="Source", index=0),
                    PathNode(node_id="N3", type="Target", index=1),
                ],
                path_edges=[PathEdge(edge_id="E1", index=0)],
            )],
        ))
        session.commit()
    return session_factory


@pytest.fixture
def generic_network(dataset):
    """
    Add a network generated over the generic database to the dataset.

    W3 "Custom network" owned by U1 draws nodes and edges from G1 and holds
    the generated nodes GN3 "alpha" and GN4 "beta" and the generated edge GE2
    "alpha - beta". GE3 GN3 -> N2 touches a generated node without being
    part of the network.
    """
    session_factory = dataset
    with session_factory() as session:
        session.add_all([
            make_node("GN3", "G1", "GF1", "alpha"),
            make_node("GN4", "G1", "GF1", "beta"),
        ])
        session.flush()
        session.add_all([
            Edge(
                id="GE2",
                name="alpha - beta",
                edge_nodes=[EdgeNode(node_id="GN3", type="Source"), EdgeNode(node_id="GN4", type="Target")],
                database_edges=[DatabaseEdge(database_id="G1")],
            ),
            Edge(
                id="GE3",
                name="alpha - EGFR",
                edge_nodes=[EdgeNode(node_id="GN3", type="Source"), EdgeNode(node_id="N2", type="Target")],
                database_edges=[DatabaseEdge(database_id="G1")],
            ),
        ])
        session.flush()
        session.add(Network(
            id="W3",
            name="Custom network",
            network_users=[NetworkUser(user_id="U1")],
            network_databases=[
                NetworkDatabase(database_id="G1", type="Node"),
                NetworkDatabase(database_id="G1", type="Edge"),
            ],
            network_nodes=[NetworkNode(node_id="GN3"), NetworkNode(node_id="GN4")],
            network_edges=[NetworkEdge(edge_id="GE2")],
        ))
        session.commit()
    return session_factory
