"""Tests for paged dependency resolution."""
from __future__ import annotations

import pytest

from netcontrol.db.models import Role
from netcontrol.domain.enumerations import EntityKind
from netcontrol.domain.errors import InvalidArgumentError
from netcontrol.engine.cancellation import CancellationToken
from netcontrol.engine.dependency_resolver import DependencyResolver


@pytest.fixture
def many_roles(session_factory):
    with session_factory() as session:
        session.add_all([Role(id=f"R{index}", name=f"role-{index}") for index in range(1, 6)])
        session.commit()
    return [f"R{index}" for index in range(1, 6)]


class TestStructuralDependents:
    """Test which entities are found as dependents."""

    def test_networks_on_node(self, dataset, resolver):
        """Test that networks including a node are found."""
        pages = resolver.find_dependents(EntityKind.NODE, EntityKind.NETWORK, ["N1"])
        assert pages.all_ids() == ["W1"]

    def test_analyses_on_database_are_transitive(self, dataset, resolver):
        """Test that analyses reached through several layers are found."""
        pages = resolver.find_dependents(EntityKind.DATABASE, EntityKind.ANALYSIS, ["D1"])
        assert pages.all_ids() == ["A1"]

    def test_nodes_on_database_type(self, dataset, resolver):
        """Test that every node of every database of a type is found, in id order."""
        pages = resolver.find_dependents(EntityKind.DATABASE_TYPE, EntityKind.NODE, ["T1"])
        assert pages.all_ids() == ["N1", "N2", "N3"]

    def test_edges_on_node(self, dataset, resolver):
        """Test that edges are found from either endpoint."""
        assert resolver.find_dependents(EntityKind.NODE, EntityKind.EDGE, ["N3"]).all_ids() == ["E1"]
        assert resolver.find_dependents(EntityKind.NODE, EntityKind.EDGE, ["N2"]).all_ids() == ["GE1"]

    def test_deepest_chain(self, dataset, resolver):
        """Test that control paths are reached from a database type through every layer."""
        pages = resolver.find_dependents(EntityKind.DATABASE_TYPE, EntityKind.CONTROL_PATH, ["T1"])
        assert pages.count() == 1
        assert pages.all_ids() == ["CP1"]

    def test_collections_on_node_field(self, dataset, resolver):
        """Test that collections are found through the nodes of a field."""
        pages = resolver.find_dependents(EntityKind.DATABASE_NODE_FIELD, EntityKind.NODE_COLLECTION, ["F1"])
        assert pages.all_ids() == ["C1"]

    def test_control_paths_on_analysis(self, dataset, resolver):
        """Test that the control paths of an analysis are found."""
        pages = resolver.find_dependents(EntityKind.ANALYSIS, EntityKind.CONTROL_PATH, ["A1", "A2"])
        assert pages.all_ids() == ["CP1"]

    def test_same_kind_returns_existing_ids(self, dataset, resolver):
        """Test that resolving a kind against itself keeps only stored ids."""
        pages = resolver.find_dependents(EntityKind.NODE, EntityKind.NODE, ["N2", "missing", "N1"])
        assert pages.all_ids() == ["N1", "N2"]

    def test_no_dependents(self, dataset, resolver):
        """Test that an unreferenced entity has no dependents."""
        assert resolver.find_dependents(EntityKind.NODE, EntityKind.NETWORK, ["GN1"]).all_ids() == []

    def test_unknown_pair(self, dataset, resolver):
        """Test that kinds without a dependency are rejected."""
        with pytest.raises(InvalidArgumentError):
            resolver.find_dependents(EntityKind.ROLE, EntityKind.NODE, ["R1"])

    def test_none_source_ids(self, resolver):
        """Test that missing source ids are rejected."""
        with pytest.raises(InvalidArgumentError):
            resolver.find_dependents(EntityKind.NODE, EntityKind.NETWORK, None)

    def test_invalid_page_size(self, resolver):
        """Test that a non-positive page size is rejected."""
        with pytest.raises(InvalidArgumentError):
            resolver.find_dependents(EntityKind.NODE, EntityKind.NETWORK, ["N1"], page_size=-2)


class TestOwnershipDependents:
    """Test dependents found through user ownership."""

    def test_networks_owned_only_by_user(self, dataset, resolver):
        """Test that networks shared with another user are not dependents."""
        assert resolver.find_dependents(EntityKind.USER, EntityKind.NETWORK, ["U1"]).all_ids() == ["W1"]

    def test_networks_owned_by_all_deleted_users(self, dataset, resolver):
        """Test that a network whose owners are all listed is a dependent."""
        pages = resolver.find_dependents(EntityKind.USER, EntityKind.NETWORK, ["U1", "U2"])
        assert pages.all_ids() == ["W1", "W2"]

    def test_analyses_owned_only_by_user(self, dataset, resolver):
        """Test that analyses owned by another user are not dependents."""
        assert resolver.find_dependents(EntityKind.USER, EntityKind.ANALYSIS, ["U1"]).all_ids() == ["A1"]

    def test_no_generic_elements_without_generic_networks(self, dataset, resolver):
        """Test that generic elements outside the user's generic networks are not dependents."""
        assert resolver.find_dependents(EntityKind.USER, EntityKind.EDGE, ["U1", "U2"]).all_ids() == []
        assert resolver.find_dependents(EntityKind.USER, EntityKind.NODE, ["U1", "U2"]).all_ids() == []

    def test_elements_of_owned_generic_networks(self, generic_network, resolver):
        """Test that the nodes and edges of a user's generic networks are found."""
        assert resolver.find_dependents(EntityKind.USER, EntityKind.EDGE, ["U1"]).all_ids() == ["GE2", "GE3"]
        assert resolver.find_dependents(EntityKind.USER, EntityKind.NODE, ["U1"]).all_ids() == ["GN3", "GN4"]
        assert resolver.find_dependents(EntityKind.USER, EntityKind.NODE, ["U2"]).all_ids() == []


class TestGenericNetworkDependents:
    """Test the elements generated for generic networks."""

    def test_nodes_of_generic_network(self, generic_network, resolver):
        """Test that the nodes of a generic network are its dependents."""
        pages = resolver.find_dependents(EntityKind.NETWORK, EntityKind.NODE, ["W3"])
        assert pages.count() == 2
        assert pages.all_ids() == ["GN3", "GN4"]

    def test_edges_of_generic_network(self, generic_network, resolver):
        """Test that edges listed by or touching the nodes of a generic network are found."""
        assert resolver.find_dependents(EntityKind.NETWORK, EntityKind.EDGE, ["W3"]).all_ids() == ["GE2", "GE3"]

    def test_canonical_network_has_no_element_dependents(self, generic_network, resolver):
        """Test that the elements of a network over canonical databases are not its dependents."""
        assert resolver.find_dependents(EntityKind.NETWORK, EntityKind.NODE, ["W1", "W2"]).all_ids() == []
        assert resolver.find_dependents(EntityKind.NETWORK, EntityKind.EDGE, ["W1", "W2"]).all_ids() == []


class TestDependentPages:
    """Test paging over live state."""

    def test_pages_are_bounded_and_ordered(self, many_roles, session_factory):
        """Test that pages hold at most page_size ids in id order."""
        resolver = DependencyResolver(session_factory, page_size=2)
        pages = list(resolver.find_dependents(EntityKind.ROLE, EntityKind.ROLE, many_roles))
        assert pages == [["R1", "R2"], ["R3", "R4"], ["R5"]]

    def test_count(self, many_roles, session_factory):
        """Test counting the dependents currently stored."""
        pages = DependencyResolver(session_factory).find_dependents(EntityKind.ROLE, EntityKind.ROLE, many_roles)
        assert pages.count() == 5

    def test_pages_are_restartable(self, many_roles, session_factory):
        """Test that iterating twice starts over against the live store."""
        pages = DependencyResolver(session_factory, page_size=2).find_dependents(
            EntityKind.ROLE, EntityKind.ROLE, many_roles
        )
        assert pages.all_ids() == many_roles
        assert pages.all_ids() == many_roles

    def test_removed_entities_are_not_returned(self, many_roles, session_factory):
        """Test that ids removed between pages are skipped without repeating others."""
        pages = DependencyResolver(session_factory, page_size=2).find_dependents(
            EntityKind.ROLE, EntityKind.ROLE, many_roles
        )
        seen = []
        for page in pages:
            seen.extend(page)
            if page == ["R1", "R2"]:
                with session_factory() as session:
                    session.query(Role).filter(Role.id.in_(["R3", "R4", "R5"])).delete(synchronize_session=False)
                    session.commit()
        assert seen == ["R1", "R2"]

    def test_entities_added_during_iteration_are_drained(self, session_factory):
        """Test that paging continues past the initial count until a page is empty."""
        with session_factory() as session:
            session.add_all([Role(id="R1", name="first"), Role(id="R2", name="second")])
            session.commit()
        pages = DependencyResolver(session_factory, page_size=2).find_dependents(
            EntityKind.ROLE, EntityKind.ROLE, ["R1", "R2", "R3"]
        )
        seen = []
        for page in pages:
            seen.append(page)
            if page == ["R1", "R2"]:
                with session_factory() as session:
                    session.add(Role(id="R3", name="third"))
                    session.commit()
        assert seen == [["R1", "R2"], ["R3"]]

    def test_cancellation_stops_paging(self, many_roles, session_factory):
        """Test that no page is fetched once the token is cancelled."""
        token = CancellationToken()
        pages = DependencyResolver(session_factory, page_size=2).find_dependents(
            EntityKind.ROLE, EntityKind.ROLE, many_roles, token=token
        )
        seen = []
        for page in pages:
            seen.append(page)
            token.cancel()
        assert seen == [["R1", "R2"]]
