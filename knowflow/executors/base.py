"""
Base Node Executor - Abstract base class for all node executors
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Type
import logging

from pydantic import BaseModel, ConfigDict, ValidationError

from ..context import ExecutionContext
from ..models import NodeCategory, NodeTypeDefinition, WorkflowNode

logger = logging.getLogger(__name__)


class NodeConfig(BaseModel):
    """Base for typed node configuration parsed from ``node.data``"""
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    label: Optional[str] = None
    description: Optional[str] = None


class NodeExecutor(ABC):
    """
    Abstract base class for node executors.

    Executors are stateless: one instance serves every node of its type and
    may run concurrently for distinct nodes. Each executor:
    1. Parses ``node.data`` into its typed config model
    2. Validates required fields (``validate``), used before a run starts
    3. Resolves templated fields against the context
    4. Performs its action and returns a result
    """

    # Node metadata (override in subclasses)
    node_type: str = "base"
    display_name: str = "Base Node"
    category: NodeCategory = NodeCategory.TOOLS
    description: str = "Base node executor"

    config_model: Type[NodeConfig] = NodeConfig

    def parse_config(self, node: WorkflowNode) -> NodeConfig:
        """Parse node data into the typed config; raises ValueError when invalid"""
        try:
            return self.config_model.model_validate(node.data or {})
        except ValidationError as e:
            raise ValueError(f"Invalid {self.node_type} configuration: {e}") from e

    def validation_errors(self, node: WorkflowNode) -> List[str]:
        """
        Validate node configuration.

        Returns:
            List of error messages (empty if valid)
        """
        try:
            config = self.parse_config(node)
        except ValueError as e:
            return [str(e)]
        return self.check_config(config)

    def check_config(self, config: NodeConfig) -> List[str]:
        """Checks beyond the schema; override in subclasses"""
        return []

    def validate(self, node: WorkflowNode) -> bool:
        return not self.validation_errors(node)

    @abstractmethod
    async def execute(self, node: WorkflowNode, context: ExecutionContext) -> Any:
        """
        Execute the node logic.

        Args:
            node: The node being executed; its data is read-only
            context: Execution context with results, variables and services

        Returns:
            The node result, stored in the context under the node id
        """
        raise NotImplementedError

    def describe(self) -> NodeTypeDefinition:
        return NodeTypeDefinition(
            type=self.node_type,
            displayName=self.display_name,
            category=self.category,
            description=self.description,
            configSchema=self.config_model.model_json_schema(),
        )


def require(config: NodeConfig, *fields: str) -> List[str]:
    """Messages for each named field that is missing or empty"""
    errors = []
    for name in fields:
        value = getattr(config, name, None)
        if value is None or (isinstance(value, str) and not value.strip()):
            errors.append(f"'{name}' is required")
    return errors


def dump(result: BaseModel) -> Dict[str, Any]:
    """Plain-dict form of a result model, as stored in the context"""
    return result.model_dump(exclude_none=True)
