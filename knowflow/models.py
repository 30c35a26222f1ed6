"""
Workflow Data Models
"""

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, model_validator
from typing import List, Dict, Any, Optional
from enum import Enum
from datetime import datetime
import json
import uuid


class NodeType(str, Enum):
    """Registered node type tags"""
    TRIGGER = "trigger"
    LLM = "llm"
    RAG = "rag"
    KNOWLEDGE_BASE = "knowledge-base"
    WEB_SEARCH = "web-search"
    FUNCTION = "function"
    CONDITIONAL = "conditional"
    LANCEDB = "lancedb"
    OUTPUT = "output"


class NodeCategory(str, Enum):
    """Categories for workflow nodes"""
    TRIGGER = "trigger"
    LLM = "llm"
    RAG = "rag"
    TOOLS = "tools"
    CONTROL = "control"
    DATABASE = "database"
    OUTPUT = "output"


class NodeStatus(str, Enum):
    """Lifecycle of a single node within a run"""
    PENDING = "pending"
    READY = "ready"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"

    @property
    def is_terminal(self) -> bool:
        return self in (NodeStatus.COMPLETED, NodeStatus.FAILED, NodeStatus.SKIPPED)


class ExecutionStatus(str, Enum):
    """Status of a workflow execution"""
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"
    CANCELLED = "cancelled"
    TIMEOUT = "timeout"


class Position(BaseModel):
    """Position on the canvas"""
    x: float = 0
    y: float = 0


class WorkflowNode(BaseModel):
    """A node in the workflow"""
    id: str
    type: str
    position: Optional[Position] = None  # UI only
    data: Dict[str, Any] = Field(default_factory=dict)

    @property
    def label(self) -> str:
        return str(self.data.get("label") or self.id)


class WorkflowEdge(BaseModel):
    """A directed connection between two nodes"""
    id: str
    source: str
    target: str
    sourceHandle: Optional[str] = None  # branch tag, e.g. "true"/"false"
    targetHandle: Optional[str] = None
    label: Optional[str] = None

    @property
    def branch(self) -> Optional[str]:
        """
        Branch tag carried by this edge, if any.

        Handles such as "handle-true" or "output-false" are normalized to
        "true"/"false"; an edge label is used when no handle is set.
        """
        for tag in (self.sourceHandle, self.label):
            if not tag:
                continue
            value = tag.lower()
            if value in ("true", "false"):
                return value
            if value.endswith("true"):
                return "true"
            if value.endswith("false"):
                return "false"
        return None


class Workflow(BaseModel):
    """Complete workflow definition"""
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=lambda: f"wf-{uuid.uuid4().hex[:12]}")
    name: str = "Untitled Workflow"
    description: Optional[str] = None
    nodes: List[WorkflowNode] = Field(default_factory=list)
    edges: List[WorkflowEdge] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _accept_connections(cls, values: Any) -> Any:
        # older exports call edges "connections"
        if isinstance(values, dict) and "edges" not in values and "connections" in values:
            values = {**values, "edges": values["connections"]}
        return values

    def get_node(self, node_id: str) -> Optional[WorkflowNode]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def incoming_edges(self, node_id: str) -> List[WorkflowEdge]:
        return [e for e in self.edges if e.target == node_id]

    def outgoing_edges(self, node_id: str) -> List[WorkflowEdge]:
        return [e for e in self.edges if e.source == node_id]

    def to_json(self, indent: Optional[int] = 2) -> str:
        return self.model_dump_json(indent=indent, exclude_none=True)

    @classmethod
    def from_json(cls, payload: str) -> "Workflow":
        return cls.model_validate(json.loads(payload))

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "Workflow":
        return cls.model_validate(payload)


class NodeExecution(BaseModel):
    """Execution state of a single node"""
    nodeId: str
    nodeType: str
    nodeName: str
    status: NodeStatus = NodeStatus.PENDING
    startedAt: Optional[datetime] = None
    completedAt: Optional[datetime] = None
    duration: Optional[int] = None  # Milliseconds
    error: Optional[str] = None
    skipReason: Optional[str] = None


class WorkflowExecution(BaseModel):
    """Execution state of a workflow"""
    id: str = Field(default_factory=lambda: f"exec-{uuid.uuid4().hex[:12]}")
    workflowId: str
    status: ExecutionStatus = ExecutionStatus.PENDING
    startedAt: datetime = Field(default_factory=datetime.utcnow)
    completedAt: Optional[datetime] = None
    triggerData: Dict[str, Any] = Field(default_factory=dict)
    nodeExecutions: Dict[str, NodeExecution] = Field(default_factory=dict)
    context: Dict[str, Any] = Field(default_factory=dict)
    finalOutput: Optional[Any] = None
    error: Optional[str] = None
    errorNodeId: Optional[str] = None
    errorNodeType: Optional[str] = None
    logs: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)

    _failure: Optional[BaseException] = PrivateAttr(default=None)

    @property
    def failure(self) -> Optional[BaseException]:
        """The exception that ended the run, if any"""
        return self._failure

    @property
    def succeeded(self) -> bool:
        return self.status == ExecutionStatus.SUCCESS

    def nodes_with_status(self, status: NodeStatus) -> List[str]:
        return [nid for nid, ne in self.nodeExecutions.items() if ne.status == status]


class NodeTypeDefinition(BaseModel):
    """Definition of a node type for the registry catalogue"""
    type: str
    displayName: str
    category: NodeCategory
    description: str
    configSchema: Dict[str, Any] = Field(default_factory=dict)
