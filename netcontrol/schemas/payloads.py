"""
Job Payload Schemas using Pydantic.

Structure of the items a background job asks the engine to create, edit or
delete. Identifiers are caller-assignable; references to lower layers are
plain identifier lists resolved by the entity builders.
"""
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional

# Reference catalog
class DatabaseTypePayload(BaseModel):
    id: Optional[str] = Field(None, description="Caller-assigned identifier (generated if omitted)")
    name: str = Field(..., description="Unique name of the database type")
    description: Optional[str] = Field(None, description="Free-text description")

class DatabasePayload(BaseModel):
    id: Optional[str] = Field(None, description="Caller-assigned identifier (generated if omitted)")
    name: str = Field(..., description="Unique name of the database")
    description: Optional[str] = Field(None, description="Free-text description")
    url: Optional[str] = Field(None, description="Homepage of the database")
    is_public: bool = Field(default=False, description="Whether every user may read the database")
    database_type_id: Optional[str] = Field(None, description="ID of the owning database type")
    user_ids: List[str] = Field(default_factory=list, description="IDs of the users granted access to a private database")

class DatabaseFieldPayload(BaseModel):
    id: Optional[str] = Field(None, description="Caller-assigned identifier (generated if omitted)")
    name: str = Field(..., description="Unique name of the field")
    description: Optional[str] = Field(None, description="Free-text description")
    url: Optional[str] = Field(None, description="Link template for field values")
    is_searchable: bool = Field(default=False, description="Whether values of this field identify an element")
    database_id: Optional[str] = Field(None, description="ID of the owning database")

# Elements
class FieldValuePayload(BaseModel):
    field_id: str = Field(..., description="ID of the database field")
    value: str = Field(..., description="Value of the field for this element")

class NodePayload(BaseModel):
    id: Optional[str] = Field(None, description="Caller-assigned identifier (generated if omitted)")
    description: Optional[str] = Field(None, description="Free-text description")
    field_values: List[FieldValuePayload] = Field(default_factory=list, description="Values of the node's fields")

class EdgeNodePayload(BaseModel):
    node_id: str = Field(..., description="ID of the node")
    type: str = Field(..., description="Role of the node on the edge: Source or Target")

class EdgePayload(BaseModel):
    id: Optional[str] = Field(None, description="Caller-assigned identifier (generated if omitted)")
    description: Optional[str] = Field(None, description="Free-text description")
    edge_nodes: List[EdgeNodePayload] = Field(default_factory=list, description="Source and target nodes")
    field_values: List[FieldValuePayload] = Field(default_factory=list, description="Values of the edge's fields")
    database_ids: List[str] = Field(default_factory=list, description="IDs of the databases owning the edge")

# Groups
class NodeCollectionPayload(BaseModel):
    id: Optional[str] = Field(None, description="Caller-assigned identifier (generated if omitted)")
    name: str = Field(..., description="Name of the collection")
    description: Optional[str] = Field(None, description="Free-text description")
    database_ids: List[str] = Field(default_factory=list, description="IDs of the member databases")
    node_ids: List[str] = Field(default_factory=list, description="IDs of the member nodes")

# Accounts
class UserPayload(BaseModel):
    id: Optional[str] = Field(None, description="Caller-assigned identifier (generated if omitted)")
    email: str = Field(..., description="Unique e-mail address")
    name: Optional[str] = Field(None, description="Display name")
    role_ids: List[str] = Field(default_factory=list, description="IDs of the roles assigned to the user")

class RolePayload(BaseModel):
    id: Optional[str] = Field(None, description="Caller-assigned identifier (generated if omitted)")
    name: str = Field(..., description="Unique name of the role")

# Snapshots
class SeedEdgePayload(BaseModel):
    source: str = Field(..., description="Name of the source node")
    target: str = Field(..., description="Name of the target node")

class NetworkPayload(BaseModel):
    id: Optional[str] = Field(None, description="Caller-assigned identifier (generated if omitted)")
    name: str = Field(..., description="Name of the network")
    description: Optional[str] = Field(None, description="Free-text description")
    algorithm: str = Field(default="None", description="How the elements were chosen: None, Neighbors or Gap")
    user_ids: List[str] = Field(default_factory=list, description="IDs of the owning users")
    database_ids: List[str] = Field(default_factory=list, description="IDs of the databases the nodes come from")
    edge_database_ids: Optional[List[str]] = Field(
        None, description="IDs of the databases the edges come from (the node databases if omitted)"
    )
    seed_edges: List[SeedEdgePayload] = Field(
        default_factory=list, description="Edges, by node name, to generate the elements of a generic network from"
    )
    node_ids: List[str] = Field(default_factory=list, description="IDs of the nodes in the network")
    edge_ids: List[str] = Field(default_factory=list, description="IDs of the edges in the network")
    node_collection_ids: List[str] = Field(default_factory=list, description="IDs of the node collections used")

class AnalysisPayload(BaseModel):
    id: Optional[str] = Field(None, description="Caller-assigned identifier (generated if omitted)")
    name: str = Field(..., description="Name of the analysis")
    description: Optional[str] = Field(None, description="Free-text description")
    algorithm: str = Field(default="Greedy", description="Control algorithm: Greedy or Genetic")
    parameters: Dict[str, Any] = Field(default_factory=dict, description="Algorithm parameters")
    max_iterations: int = Field(default=100, ge=1, description="Maximum number of algorithm iterations")
    user_ids: List[str] = Field(default_factory=list, description="IDs of the owning users")
    network_ids: List[str] = Field(default_factory=list, description="IDs of the networks analysed")
    node_collection_ids: List[str] = Field(default_factory=list, description="IDs of the source or target collections")

# Results
class PathNodePayload(BaseModel):
    node_id: str = Field(..., description="ID of the node on the path")
    type: str = Field(default="None", description="Role of the node: Source, Target or None")

class PathPayload(BaseModel):
    nodes: List[PathNodePayload] = Field(default_factory=list, description="Nodes along the path, in order")
    edge_ids: List[str] = Field(default_factory=list, description="Edges along the path, in order")

class ControlPathPayload(BaseModel):
    id: Optional[str] = Field(None, description="Caller-assigned identifier (generated if omitted)")
    paths: List[PathPayload] = Field(default_factory=list, description="Paths making up the control path")

# Jobs
class JobData(BaseModel):
    items: List[Dict[str, Any]] = Field(default_factory=list, description="Items to create or edit")
    ids: List[str] = Field(default_factory=list, description="IDs of the entities to delete")
    user_ids: List[str] = Field(
        default_factory=list, description="IDs of the users losing access, paired with ``ids`` (DatabaseUser only)"
    )


PAYLOADS_BY_KIND = {
    "DatabaseType": DatabaseTypePayload,
    "Database": DatabasePayload,
    "DatabaseNodeField": DatabaseFieldPayload,
    "DatabaseEdgeField": DatabaseFieldPayload,
    "Node": NodePayload,
    "Edge": EdgePayload,
    "NodeCollection": NodeCollectionPayload,
    "Network": NetworkPayload,
    "Analysis": AnalysisPayload,
    "User": UserPayload,
    "Role": RolePayload,
}
