"""
Trigger Node Executors - Entry points for workflow execution
"""

from datetime import datetime
from typing import Any, Dict

from pydantic import BaseModel, Field

from ..context import ExecutionContext
from ..models import NodeCategory, WorkflowNode
from .base import NodeConfig, NodeExecutor, dump


class TriggerNodeConfig(NodeConfig):
    triggerType: str = "manual"
    # Defaults exposed as run variables, overridden by the run payload
    inputs: Dict[str, Any] = Field(default_factory=dict)


class TriggerResult(BaseModel):
    triggerType: str
    payload: Any = None
    inputs: Dict[str, Any] = Field(default_factory=dict)
    timestamp: str


class TriggerExecutor(NodeExecutor):
    """
    Start node - exposes the run payload to downstream nodes.

    Resolved `inputs` are returned in the result; the engine copies them into
    the run variables.
    """

    node_type = "trigger"
    display_name = "Trigger"
    category = NodeCategory.TRIGGER
    description = "Workflow entry point; seeds the input from the run payload"

    config_model = TriggerNodeConfig

    async def execute(self, node: WorkflowNode, context: ExecutionContext) -> Dict[str, Any]:
        config: TriggerNodeConfig = self.parse_config(node)
        payload = context.input

        context.log(f"{config.triggerType.capitalize()} trigger activated")

        inputs = {}
        for key, value in config.inputs.items():
            # the payload wins over node defaults
            if isinstance(payload, dict) and key in payload:
                value = payload[key]
            inputs[key] = value

        return dump(TriggerResult(
            triggerType=config.triggerType,
            payload=payload,
            inputs=inputs,
            timestamp=datetime.utcnow().isoformat(),
        ))
