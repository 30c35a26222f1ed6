"""
Workflow Errors - Exception taxonomy for validation and execution
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional


class WorkflowError(Exception):
    """Base class for all workflow engine errors"""


class UnknownNodeTypeError(WorkflowError, KeyError):
    """Raised when a node type has no registered executor"""

    def __init__(self, node_type: str, node_id: Optional[str] = None):
        self.node_type = node_type
        self.node_id = node_id
        if node_id:
            message = f"Unknown node type '{node_type}' for node '{node_id}'"
        else:
            message = f"Unknown node type '{node_type}'"
        super().__init__(message)

    def __str__(self) -> str:
        # KeyError quotes its message otherwise
        return self.args[0]


class InvalidNodeConfigError(WorkflowError):
    """A node failed its executor's validate() check"""

    def __init__(self, node_id: str, node_type: str, messages: List[str]):
        self.node_id = node_id
        self.node_type = node_type
        self.messages = messages
        detail = "; ".join(messages) if messages else "invalid configuration"
        super().__init__(f"Node '{node_id}' ({node_type}): {detail}")


class CycleError(WorkflowError):
    """The workflow graph contains at least one cycle"""

    def __init__(self, node_ids: List[str]):
        self.node_ids = node_ids
        super().__init__(f"Workflow contains a cycle through: {', '.join(node_ids)}")


class InvalidEdgeError(WorkflowError):
    """An edge references a missing node or targets a trigger"""

    def __init__(self, edge_id: str, message: str):
        self.edge_id = edge_id
        super().__init__(f"Edge '{edge_id}': {message}")


class DuplicateNodeError(WorkflowError):
    def __init__(self, node_id: str):
        self.node_id = node_id
        super().__init__(f"Duplicate node id '{node_id}'")


class DuplicateEdgeError(WorkflowError):
    def __init__(self, edge_id: str):
        self.edge_id = edge_id
        super().__init__(f"Duplicate edge id '{edge_id}'")


class GraphValidationError(WorkflowError):
    """
    Aggregate of every problem found while validating a workflow graph.

    Raised before any node runs, so a failed validation has no side effects.
    """

    def __init__(self, errors: List[WorkflowError]):
        self.errors = errors
        lines = "\n".join(f"  - {e}" for e in errors)
        super().__init__(f"Workflow validation failed with {len(errors)} error(s):\n{lines}")

    def by_type(self, error_type: type) -> List[WorkflowError]:
        return [e for e in self.errors if isinstance(e, error_type)]


class NodeExecutionError(WorkflowError):
    """
    A node executor failed.

    Carries the failing node id/type and the underlying cause. When raised out
    of a run, ``context`` holds the results of every node that completed
    before the failure and ``execution`` the full execution record.
    """

    def __init__(
        self,
        node_id: str,
        node_type: str,
        cause: BaseException,
        context: Optional[Dict[str, Any]] = None,
    ):
        self.node_id = node_id
        self.node_type = node_type
        self.cause = cause
        self.context: Dict[str, Any] = context or {}
        self.execution = None
        super().__init__(f"Node '{node_id}' ({node_type}) failed: {cause}")


class TemplateResolutionError(WorkflowError):
    """Raised in strict mode when a {{reference}} cannot be resolved"""

    def __init__(self, reference: str, template: str):
        self.reference = reference
        self.template = template
        super().__init__(f"Unresolved template reference '{{{{{reference}}}}}'")


class WorkflowTimeoutError(WorkflowError):
    def __init__(self, timeout: float, context: Optional[Dict[str, Any]] = None):
        self.timeout = timeout
        self.context: Dict[str, Any] = context or {}
        self.execution = None
        super().__init__(f"Workflow execution exceeded timeout of {timeout}s")


class ExecutionCancelledError(WorkflowError):
    def __init__(self, execution_id: str, context: Optional[Dict[str, Any]] = None):
        self.execution_id = execution_id
        self.context: Dict[str, Any] = context or {}
        self.execution = None
        super().__init__(f"Workflow execution '{execution_id}' was cancelled")


class ProviderError(WorkflowError):
    """An external collaborator (LLM, retrieval, search, vector store) failed"""

    def __init__(self, provider: str, message: str):
        self.provider = provider
        super().__init__(f"{provider}: {message}")


@dataclass
class TemplateResolutionWarning:
    """Non-fatal record of a {{reference}} left verbatim"""

    reference: str
    template: str
    node_id: Optional[str] = None

    def __str__(self) -> str:
        where = f" in node '{self.node_id}'" if self.node_id else ""
        return f"Unresolved template reference '{{{{{self.reference}}}}}'{where}"
