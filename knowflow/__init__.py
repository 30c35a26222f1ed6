"""
knowflow - DAG workflow engine for LLM, retrieval and search pipelines
"""

from .context import ExecutionContext
from .engine import WorkflowEngine, execute_workflow
from .errors import (
    CycleError,
    DuplicateEdgeError,
    DuplicateNodeError,
    ExecutionCancelledError,
    GraphValidationError,
    InvalidEdgeError,
    InvalidNodeConfigError,
    NodeExecutionError,
    ProviderError,
    TemplateResolutionError,
    TemplateResolutionWarning,
    UnknownNodeTypeError,
    WorkflowError,
    WorkflowTimeoutError,
)
from .executors import FunctionRegistry, NodeExecutor, create_default_registry
from .models import (
    ExecutionStatus,
    NodeStatus,
    NodeType,
    Workflow,
    WorkflowEdge,
    WorkflowExecution,
    WorkflowNode,
)
from .registry import ExecutorRegistry
from .templates import get_workflow_template, get_workflow_templates, instantiate_template

__version__ = "1.0.0"

__all__ = [
    'ExecutionContext',
    'WorkflowEngine',
    'execute_workflow',
    'ExecutorRegistry',
    'create_default_registry',
    'FunctionRegistry',
    'NodeExecutor',
    'Workflow',
    'WorkflowNode',
    'WorkflowEdge',
    'WorkflowExecution',
    'NodeType',
    'NodeStatus',
    'ExecutionStatus',
    'WorkflowError',
    'GraphValidationError',
    'UnknownNodeTypeError',
    'InvalidNodeConfigError',
    'InvalidEdgeError',
    'DuplicateEdgeError',
    'DuplicateNodeError',
    'CycleError',
    'NodeExecutionError',
    'TemplateResolutionError',
    'TemplateResolutionWarning',
    'WorkflowTimeoutError',
    'ExecutionCancelledError',
    'ProviderError',
    'get_workflow_templates',
    'get_workflow_template',
    'instantiate_template',
]
