"""Enumerations shared by the data model and the mutation engine."""
from __future__ import annotations

from enum import Enum
from typing import Dict, FrozenSet


class EntityKind(str, Enum):
    """Every kind of entity the engine can mutate or resolve."""
    DATABASE_TYPE = "DatabaseType"
    DATABASE = "Database"
    DATABASE_NODE_FIELD = "DatabaseNodeField"
    DATABASE_EDGE_FIELD = "DatabaseEdgeField"
    NODE = "Node"
    EDGE = "Edge"
    NODE_COLLECTION = "NodeCollection"
    NETWORK = "Network"
    ANALYSIS = "Analysis"
    CONTROL_PATH = "ControlPath"
    USER = "User"
    ROLE = "Role"
    DATABASE_USER = "DatabaseUser"


class MutationOperation(str, Enum):
    CREATE = "create"
    EDIT = "edit"
    DELETE = "delete"


class EdgeNodeType(str, Enum):
    """Role of a node on an edge."""
    SOURCE = "Source"
    TARGET = "Target"


class PathNodeType(str, Enum):
    """Role of a node along a control path."""
    SOURCE = "Source"
    TARGET = "Target"
    NONE = "None"


class AnalysisAlgorithm(str, Enum):
    GREEDY = "Greedy"
    GENETIC = "Genetic"


class NetworkAlgorithm(str, Enum):
    """How the elements of a network were chosen."""
    NONE = "None"
    NEIGHBORS = "Neighbors"
    GAP = "Gap"


class NetworkStatus(str, Enum):
    DEFINED = "Defined"
    GENERATING = "Generating"
    COMPLETED = "Completed"
    ERROR = "Error"


class NetworkNodeType(str, Enum):
    """Whether a network node was asked for or only reached through an edge."""
    NONE = "None"
    SEED = "Seed"


class NetworkDatabaseType(str, Enum):
    """Whether a network draws its nodes or its edges from a database."""
    NODE = "Node"
    EDGE = "Edge"


class AnalysisStatus(str, Enum):
    """Lifecycle of an analysis."""
    INITIALIZING = "Initializing"
    ONGOING = "Ongoing"
    STOPPING = "Stopping"
    STOPPED = "Stopped"
    COMPLETED = "Completed"
    ERROR = "Error"


# Error is reachable from every state and is terminal.
ANALYSIS_TRANSITIONS: Dict[AnalysisStatus, FrozenSet[AnalysisStatus]] = {
    AnalysisStatus.INITIALIZING: frozenset({AnalysisStatus.ONGOING, AnalysisStatus.ERROR}),
    AnalysisStatus.ONGOING: frozenset({
        AnalysisStatus.COMPLETED,
        AnalysisStatus.STOPPING,
        AnalysisStatus.ERROR,
    }),
    AnalysisStatus.STOPPING: frozenset({AnalysisStatus.STOPPED, AnalysisStatus.ERROR}),
    AnalysisStatus.STOPPED: frozenset({AnalysisStatus.ERROR}),
    AnalysisStatus.COMPLETED: frozenset({AnalysisStatus.ERROR}),
    AnalysisStatus.ERROR: frozenset(),
}

# States in which an analysis may hold control paths.
RESULT_BEARING_STATUSES = frozenset({
    AnalysisStatus.ONGOING,
    AnalysisStatus.STOPPING,
    AnalysisStatus.COMPLETED,
})


def can_transition(current: AnalysisStatus, target: AnalysisStatus) -> bool:
    """Check whether an analysis may move from ``current`` to ``target``."""
    return target in ANALYSIS_TRANSITIONS.get(current, frozenset())
