"""
Database Models using SQLAlchemy.

These define the layered schema of the dataset, from the reference catalog
(database types, databases, fields) through nodes and edges, node collections,
user-owned networks and analyses, down to the control paths an analysis produces.
They are NOT related to:
- Job payloads (see netcontrol.schemas.payloads)
- The algorithms that produce control paths (only their results are stored here)

Every foreign key cascades on delete. Join rows are owned by the first parent
listed in their name; the ORM cascade lives on that side only.
"""
from sqlalchemy import Boolean, Column, ForeignKey, Integer, String, DateTime, Text, JSON
from sqlalchemy.ext.declarative import declarative_base
from sqlalchemy.orm import relationship
import datetime
import uuid

from netcontrol.domain.capabilities import (
    AnalysisDependent,
    ControlPathDependent,
    DatabaseDependent,
    DatabaseEdgeFieldDependent,
    DatabaseNodeFieldDependent,
    DatabaseTypeDependent,
    EdgeDependent,
    NetworkDependent,
    NodeCollectionDependent,
    NodeDependent,
    PathDependent,
    RoleDependent,
    UserDependent,
)
from netcontrol.domain.enumerations import (
    AnalysisStatus,
    NetworkAlgorithm,
    NetworkDatabaseType,
    NetworkNodeType,
    NetworkStatus,
)

Base = declarative_base()

def generate_uuid():
    return str(uuid.uuid4())

OWNED = dict(cascade="all, delete-orphan", passive_deletes=True)

# Reference catalog

class DatabaseType(Base):
    __tablename__ = "database_types"

    id = Column(String, primary_key=True, default=generate_uuid)
    name = Column(String, nullable=False, unique=True)
    description = Column(Text)
    created_at = Column(DateTime, default=datetime.datetime.utcnow)

    # Relationships
    databases = relationship("Database", back_populates="database_type", **OWNED)

class Database(Base, DatabaseTypeDependent):
    __tablename__ = "databases"

    id = Column(String, primary_key=True, default=generate_uuid)
    database_type_id = Column(String, ForeignKey("database_types.id", ondelete="CASCADE"), nullable=False)
    name = Column(String, nullable=False, unique=True)
    description = Column(Text)
    url = Column(String)
    is_public = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.datetime.utcnow)

    # Relationships
    database_type = relationship("DatabaseType", back_populates="databases")
    node_fields = relationship("DatabaseNodeField", back_populates="database", **OWNED)
    edge_fields = relationship("DatabaseEdgeField", back_populates="database", **OWNED)
    database_users = relationship("DatabaseUser", back_populates="database", **OWNED)

class DatabaseNodeField(Base, DatabaseDependent):
    __tablename__ = "database_node_fields"

    id = Column(String, primary_key=True, default=generate_uuid)
    database_id = Column(String, ForeignKey("databases.id", ondelete="CASCADE"), nullable=False)
    name = Column(String, nullable=False, unique=True)
    description = Column(Text)
    url = Column(String)
    is_searchable = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.datetime.utcnow)

    # Relationships
    database = relationship("Database", back_populates="node_fields")

class DatabaseEdgeField(Base, DatabaseDependent):
    __tablename__ = "database_edge_fields"

    id = Column(String, primary_key=True, default=generate_uuid)
    database_id = Column(String, ForeignKey("databases.id", ondelete="CASCADE"), nullable=False)
    name = Column(String, nullable=False, unique=True)
    description = Column(Text)
    url = Column(String)
    is_searchable = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.datetime.utcnow)

    # Relationships
    database = relationship("Database", back_populates="edge_fields")

# Elements

class Node(Base):
    __tablename__ = "nodes"

    id = Column(String, primary_key=True, default=generate_uuid)
    name = Column(String, nullable=False)
    description = Column(Text)
    created_at = Column(DateTime, default=datetime.datetime.utcnow)

    # Relationships
    field_values = relationship("DatabaseNodeFieldNode", back_populates="node", **OWNED)
    database_nodes = relationship("DatabaseNode", back_populates="node", **OWNED)

class DatabaseNodeFieldNode(Base, NodeDependent, DatabaseNodeFieldDependent):
    __tablename__ = "database_node_field_nodes"

    node_id = Column(String, ForeignKey("nodes.id", ondelete="CASCADE"), primary_key=True)
    database_node_field_id = Column(String, ForeignKey("database_node_fields.id", ondelete="CASCADE"), primary_key=True)
    value = Column(String, nullable=False)

    # Relationships
    node = relationship("Node", back_populates="field_values")
    database_node_field = relationship("DatabaseNodeField")

class DatabaseNode(Base, NodeDependent, DatabaseDependent):
    __tablename__ = "database_nodes"

    node_id = Column(String, ForeignKey("nodes.id", ondelete="CASCADE"), primary_key=True)
    database_id = Column(String, ForeignKey("databases.id", ondelete="CASCADE"), primary_key=True)

    # Relationships
    node = relationship("Node", back_populates="database_nodes")
    database = relationship("Database")

class Edge(Base):
    __tablename__ = "edges"

    id = Column(String, primary_key=True, default=generate_uuid)
    name = Column(String, nullable=False)
    description = Column(Text)
    created_at = Column(DateTime, default=datetime.datetime.utcnow)

    # Relationships
    edge_nodes = relationship("EdgeNode", back_populates="edge", **OWNED)
    field_values = relationship("DatabaseEdgeFieldEdge", back_populates="edge", **OWNED)
    database_edges = relationship("DatabaseEdge", back_populates="edge", **OWNED)

class EdgeNode(Base, EdgeDependent, NodeDependent):
    __tablename__ = "edge_nodes"

    edge_id = Column(String, ForeignKey("edges.id", ondelete="CASCADE"), primary_key=True)
    node_id = Column(String, ForeignKey("nodes.id", ondelete="CASCADE"), primary_key=True)
    type = Column(String, primary_key=True)  # "Source" or "Target"

    # Relationships
    edge = relationship("Edge", back_populates="edge_nodes")
    node = relationship("Node")

class DatabaseEdgeFieldEdge(Base, EdgeDependent, DatabaseEdgeFieldDependent):
    __tablename__ = "database_edge_field_edges"

    edge_id = Column(String, ForeignKey("edges.id", ondelete="CASCADE"), primary_key=True)
    database_edge_field_id = Column(String, ForeignKey("database_edge_fields.id", ondelete="CASCADE"), primary_key=True)
    value = Column(String, nullable=False)

    # Relationships
    edge = relationship("Edge", back_populates="field_values")
    database_edge_field = relationship("DatabaseEdgeField")

class DatabaseEdge(Base, EdgeDependent, DatabaseDependent):
    __tablename__ = "database_edges"

    edge_id = Column(String, ForeignKey("edges.id", ondelete="CASCADE"), primary_key=True)
    database_id = Column(String, ForeignKey("databases.id", ondelete="CASCADE"), primary_key=True)

    # Relationships
    edge = relationship("Edge", back_populates="database_edges")
    database = relationship("Database")

# Groups

class NodeCollection(Base):
    __tablename__ = "node_collections"

    id = Column(String, primary_key=True, default=generate_uuid)
    name = Column(String, nullable=False)
    description = Column(Text)
    created_at = Column(DateTime, default=datetime.datetime.utcnow)

    # Relationships
    node_collection_nodes = relationship("NodeCollectionNode", back_populates="node_collection", **OWNED)
    node_collection_databases = relationship("NodeCollectionDatabase", back_populates="node_collection", **OWNED)

class NodeCollectionNode(Base, NodeCollectionDependent, NodeDependent):
    __tablename__ = "node_collection_nodes"

    node_collection_id = Column(String, ForeignKey("node_collections.id", ondelete="CASCADE"), primary_key=True)
    node_id = Column(String, ForeignKey("nodes.id", ondelete="CASCADE"), primary_key=True)

    # Relationships
    node_collection = relationship("NodeCollection", back_populates="node_collection_nodes")

class NodeCollectionDatabase(Base, NodeCollectionDependent, DatabaseDependent):
    __tablename__ = "node_collection_databases"

    node_collection_id = Column(String, ForeignKey("node_collections.id", ondelete="CASCADE"), primary_key=True)
    database_id = Column(String, ForeignKey("databases.id", ondelete="CASCADE"), primary_key=True)

    # Relationships
    node_collection = relationship("NodeCollection", back_populates="node_collection_databases")

# Accounts

class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True, default=generate_uuid)
    email = Column(String, nullable=False, unique=True)
    name = Column(String)
    created_at = Column(DateTime, default=datetime.datetime.utcnow)

    # Relationships
    user_roles = relationship("UserRole", back_populates="user", **OWNED)

class Role(Base):
    __tablename__ = "roles"

    id = Column(String, primary_key=True, default=generate_uuid)
    name = Column(String, nullable=False, unique=True)
    created_at = Column(DateTime, default=datetime.datetime.utcnow)

class UserRole(Base, UserDependent, RoleDependent):
    __tablename__ = "user_roles"

    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    role_id = Column(String, ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True)

    # Relationships
    user = relationship("User", back_populates="user_roles")

class DatabaseUser(Base, DatabaseDependent, UserDependent):
    """Access granted to a user on a private database."""
    __tablename__ = "database_users"

    database_id = Column(String, ForeignKey("databases.id", ondelete="CASCADE"), primary_key=True)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    created_at = Column(DateTime, default=datetime.datetime.utcnow)

    # Relationships
    database = relationship("Database", back_populates="database_users")

# Networks

class Network(Base):
    __tablename__ = "networks"

    id = Column(String, primary_key=True, default=generate_uuid)
    name = Column(String, nullable=False)
    description = Column(Text)
    algorithm = Column(String, default=NetworkAlgorithm.NONE.value, nullable=False)
    status = Column(String, default=NetworkStatus.DEFINED.value, nullable=False)
    log = Column(JSON, default=list)
    created_at = Column(DateTime, default=datetime.datetime.utcnow)

    # Relationships
    network_users = relationship("NetworkUser", back_populates="network", **OWNED)
    network_databases = relationship("NetworkDatabase", back_populates="network", **OWNED)
    network_nodes = relationship("NetworkNode", back_populates="network", **OWNED)
    network_edges = relationship("NetworkEdge", back_populates="network", **OWNED)
    network_node_collections = relationship("NetworkNodeCollection", back_populates="network", **OWNED)

class NetworkUser(Base, NetworkDependent, UserDependent):
    __tablename__ = "network_users"

    network_id = Column(String, ForeignKey("networks.id", ondelete="CASCADE"), primary_key=True)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)

    network = relationship("Network", back_populates="network_users")

class NetworkDatabase(Base, NetworkDependent, DatabaseDependent):
    __tablename__ = "network_databases"

    network_id = Column(String, ForeignKey("networks.id", ondelete="CASCADE"), primary_key=True)
    database_id = Column(String, ForeignKey("databases.id", ondelete="CASCADE"), primary_key=True)
    type = Column(String, primary_key=True, default=NetworkDatabaseType.NODE.value)  # "Node" or "Edge"

    network = relationship("Network", back_populates="network_databases")

class NetworkNode(Base, NetworkDependent, NodeDependent):
    __tablename__ = "network_nodes"

    network_id = Column(String, ForeignKey("networks.id", ondelete="CASCADE"), primary_key=True)
    node_id = Column(String, ForeignKey("nodes.id", ondelete="CASCADE"), primary_key=True)
    type = Column(String, primary_key=True, default=NetworkNodeType.NONE.value)  # "None" or "Seed"

    network = relationship("Network", back_populates="network_nodes")
    node = relationship("Node")

class NetworkEdge(Base, NetworkDependent, EdgeDependent):
    __tablename__ = "network_edges"

    network_id = Column(String, ForeignKey("networks.id", ondelete="CASCADE"), primary_key=True)
    edge_id = Column(String, ForeignKey("edges.id", ondelete="CASCADE"), primary_key=True)

    network = relationship("Network", back_populates="network_edges")
    edge = relationship("Edge")

class NetworkNodeCollection(Base, NetworkDependent, NodeCollectionDependent):
    __tablename__ = "network_node_collections"

    network_id = Column(String, ForeignKey("networks.id", ondelete="CASCADE"), primary_key=True)
    node_collection_id = Column(String, ForeignKey("node_collections.id", ondelete="CASCADE"), primary_key=True)

    network = relationship("Network", back_populates="network_node_collections")

# Analyses

class Analysis(Base):
    __tablename__ = "analyses"

    id = Column(String, primary_key=True, default=generate_uuid)
    name = Column(String, nullable=False)
    description = Column(Text)
    algorithm = Column(String, nullable=False)
    parameters = Column(JSON, default=dict)
    max_iterations = Column(Integer, default=100, nullable=False)
    status = Column(String, default=AnalysisStatus.INITIALIZING.value, nullable=False)
    log = Column(JSON, default=list)
    started_at = Column(DateTime, nullable=True)
    ended_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.datetime.utcnow)

    # Relationships
    analysis_users = relationship("AnalysisUser", back_populates="analysis", **OWNED)
    analysis_databases = relationship("AnalysisDatabase", back_populates="analysis", **OWNED)
    analysis_nodes = relationship("AnalysisNode", back_populates="analysis", **OWNED)
    analysis_edges = relationship("AnalysisEdge", back_populates="analysis", **OWNED)
    analysis_node_collections = relationship("AnalysisNodeCollection", back_populates="analysis", **OWNED)
    analysis_networks = relationship("AnalysisNetwork", back_populates="analysis", **OWNED)
    control_paths = relationship("ControlPath", back_populates="analysis", **OWNED)

class AnalysisUser(Base, AnalysisDependent, UserDependent):
    __tablename__ = "analysis_users"

    analysis_id = Column(String, ForeignKey("analyses.id", ondelete="CASCADE"), primary_key=True)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)

    analysis = relationship("Analysis", back_populates="analysis_users")

class AnalysisDatabase(Base, AnalysisDependent, DatabaseDependent):
    __tablename__ = "analysis_databases"

    analysis_id = Column(String, ForeignKey("analyses.id", ondelete="CASCADE"), primary_key=True)
    database_id = Column(String, ForeignKey("databases.id", ondelete="CASCADE"), primary_key=True)

    analysis = relationship("Analysis", back_populates="analysis_databases")

class AnalysisNode(Base, AnalysisDependent, NodeDependent):
    __tablename__ = "analysis_nodes"

    analysis_id = Column(String, ForeignKey("analyses.id", ondelete="CASCADE"), primary_key=True)
    node_id = Column(String, ForeignKey("nodes.id", ondelete="CASCADE"), primary_key=True)

    analysis = relationship("Analysis", back_populates="analysis_nodes")

class AnalysisEdge(Base, AnalysisDependent, EdgeDependent):
    __tablename__ = "analysis_edges"

    analysis_id = Column(String, ForeignKey("analyses.id", ondelete="CASCADE"), primary_key=True)
    edge_id = Column(String, ForeignKey("edges.id", ondelete="CASCADE"), primary_key=True)

    analysis = relationship("Analysis", back_populates="analysis_edges")

class AnalysisNodeCollection(Base, AnalysisDependent, NodeCollectionDependent):
    __tablename__ = "analysis_node_collections"

    analysis_id = Column(String, ForeignKey("analyses.id", ondelete="CASCADE"), primary_key=True)
    node_collection_id = Column(String, ForeignKey("node_collections.id", ondelete="CASCADE"), primary_key=True)

    analysis = relationship("Analysis", back_populates="analysis_node_collections")

class AnalysisNetwork(Base, AnalysisDependent, NetworkDependent):
    __tablename__ = "analysis_networks"

    analysis_id = Column(String, ForeignKey("analyses.id", ondelete="CASCADE"), primary_key=True)
    network_id = Column(String, ForeignKey("networks.id", ondelete="CASCADE"), primary_key=True)

    analysis = relationship("Analysis", back_populates="analysis_networks")

# Results

class ControlPath(Base, AnalysisDependent):
    __tablename__ = "control_paths"

    id = Column(String, primary_key=True, default=generate_uuid)
    analysis_id = Column(String, ForeignKey("analyses.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime, default=datetime.datetime.utcnow)

    # Relationships
    analysis = relationship("Analysis", back_populates="control_paths")
    paths = relationship("Path", back_populates="control_path", **OWNED)

class Path(Base, ControlPathDependent):
    __tablename__ = "paths"

    id = Column(String, primary_key=True, default=generate_uuid)
    control_path_id = Column(String, ForeignKey("control_paths.id", ondelete="CASCADE"), nullable=False)

    # Relationships
    control_path = relationship("ControlPath", back_populates="paths")
    path_nodes = relationship("PathNode", back_populates="path", order_by="PathNode.index", **OWNED)
    path_edges = relationship("PathEdge", back_populates="path", order_by="PathEdge.index", **OWNED)

class PathNode(Base, PathDependent, NodeDependent):
    __tablename__ = "path_nodes"

    path_id = Column(String, ForeignKey("paths.id", ondelete="CASCADE"), primary_key=True)
    node_id = Column(String, ForeignKey("nodes.id", ondelete="CASCADE"), primary_key=True)
    type = Column(String, primary_key=True)
    index = Column(Integer, primary_key=True)

    path = relationship("Path", back_populates="path_nodes")

class PathEdge(Base, PathDependent, EdgeDependent):
    __tablename__ = "path_edges"

    path_id = Column(String, ForeignKey("paths.id", ondelete="CASCADE"), primary_key=True)
    edge_id = Column(String, ForeignKey("edges.id", ondelete="CASCADE"), primary_key=True)
    index = Column(Integer, primary_key=True)

    path = relationship("Path", back_populates="path_edges")

# Jobs

class BackgroundTask(Base):
    __tablename__ = "background_tasks"

    id = Column(String, primary_key=True, default=generate_uuid)
    name = Column(String, nullable=False)
    kind = Column(String, nullable=False)
    operation = Column(String, nullable=False)
    data = Column(Text, nullable=False)  # JSON-encoded job payload
    created_at = Column(DateTime, default=datetime.datetime.utcnow)


# Model for each entity kind the engine mutates
MODELS_BY_KIND = {
    "DatabaseType": DatabaseType,
    "Database": Database,
    "DatabaseNodeField": DatabaseNodeField,
    "DatabaseEdgeField": DatabaseEdgeField,
    "Node": Node,
    "Edge": Edge,
    "NodeCollection": NodeCollection,
    "Network": Network,
    "Analysis": Analysis,
    "ControlPath": ControlPath,
    "User": User,
    "Role": Role,
}
