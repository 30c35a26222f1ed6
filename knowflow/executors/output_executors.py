"""
Output Node Executors - Workflow outputs
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional
import json

from pydantic import BaseModel

from ..context import ExecutionContext
from ..models import NodeCategory, WorkflowNode
from ..resolver import lookup
from .base import NodeConfig, NodeExecutor


class OutputNodeConfig(NodeConfig):
    variableName: str = "result"
    source: Optional[str] = None  # dotted path, copied raw
    value: Any = None  # template or literal
    format: Optional[str] = None


class OutputResult(BaseModel):
    variableName: str
    value: Any = None


def format_output(value: Any, format: Optional[str]) -> Any:
    """Convert value to the requested output type"""
    if not format:
        return value

    fmt = format.lower()
    if fmt == "json":
        return json.loads(value) if isinstance(value, str) else value
    if fmt == "string":
        return json.dumps(value, default=str) if isinstance(value, (dict, list)) else str(value)
    if fmt == "number":
        return float(value)
    if fmt == "boolean":
        if isinstance(value, str):
            return value.strip().lower() not in ("", "false", "0", "no")
        return bool(value)
    if fmt == "date":
        if isinstance(value, (int, float)):
            return datetime.fromtimestamp(value, timezone.utc).isoformat()
        return datetime.fromisoformat(str(value)).isoformat()
    return value


class OutputExecutor(NodeExecutor):
    """Workflow output"""

    node_type = "output"
    display_name = "Output"
    category = NodeCategory.OUTPUT
    description = "Publish a context value as part of the workflow result"

    config_model = OutputNodeConfig

    async def execute(self, node: WorkflowNode, context: ExecutionContext) -> Dict[str, Any]:
        config: OutputNodeConfig = self.parse_config(node)

        if config.source:
            found, value = lookup(config.source, context.scope)
            if not found:
                raise ValueError(f"Output source '{config.source}' not found in context")
        elif config.value is not None:
            value = context.resolve(config.value, node_id=node.id)
        else:
            # default to whatever the live predecessors produced
            upstream = context.inputs_for(node.id)
            if len(upstream) == 1:
                value = next(iter(upstream.values()))
            else:
                value = upstream or None

        try:
            value = format_output(value, config.format)
        except (TypeError, ValueError) as e:
            raise ValueError(f"Cannot format output as {config.format}: {e}") from e

        context.log(f"Workflow output '{config.variableName}': {type(value).__name__}")

        return OutputResult(variableName=config.variableName, value=value).model_dump()
