"""
Control Flow Node Executors - Conditional branching
"""

from typing import Any, Dict, List, Optional
import re

from pydantic import BaseModel

from ..context import ExecutionContext
from ..expressions import ExpressionError, evaluate_condition
from ..models import NodeCategory, WorkflowNode
from .base import NodeConfig, NodeExecutor, dump

OPERATORS = (
    "==", "===", "!=", "!==", ">", ">=", "<", "<=",
    "contains", "startsWith", "endsWith", "matches",
)


class ConditionalNodeConfig(NodeConfig):
    condition: Optional[str] = None
    leftValue: Any = None
    operator: Optional[str] = None
    rightValue: Any = None


class ConditionResult(BaseModel):
    result: bool
    path: str


def _coerce_number(value: Any) -> Any:
    if isinstance(value, str):
        try:
            return float(value) if value.strip() else value
        except ValueError:
            return value
    return value


def compare(left: Any, operator: str, right: Any) -> bool:
    """Evaluate a structured comparison; numeric strings compare as numbers"""
    left, right = _coerce_number(left), _coerce_number(right)

    try:
        if operator in ("==", "==="):
            return left == right
        if operator in ("!=", "!=="):
            return left != right
        if operator == ">":
            return left > right
        if operator == ">=":
            return left >= right
        if operator == "<":
            return left < right
        if operator == "<=":
            return left <= right
    except TypeError:
        return False

    if operator == "contains":
        if isinstance(left, str):
            return str(right) in left
        if isinstance(left, (list, tuple)):
            return right in left
        return False
    if operator == "startsWith":
        return isinstance(left, str) and left.startswith(str(right))
    if operator == "endsWith":
        return isinstance(left, str) and left.endswith(str(right))
    if operator == "matches":
        return isinstance(left, str) and re.search(str(right), left) is not None

    raise ValueError(f"Unsupported operator: {operator}")


class ConditionalExecutor(NodeExecutor):
    """Branch based on condition"""

    node_type = "conditional"
    display_name = "Conditional"
    category = NodeCategory.CONTROL
    description = "Route execution along the true or false branch"

    config_model = ConditionalNodeConfig

    def check_config(self, config: ConditionalNodeConfig) -> List[str]:
        if config.condition:
            return []
        if config.leftValue is not None and config.operator and config.rightValue is not None:
            if config.operator not in OPERATORS:
                return [f"Unsupported operator '{config.operator}'"]
            return []
        return ["requires 'condition' or 'leftValue', 'operator' and 'rightValue'"]

    async def execute(self, node: WorkflowNode, context: ExecutionContext) -> Dict[str, Any]:
        config: ConditionalNodeConfig = self.parse_config(node)
        errors = self.check_config(config)
        if errors:
            raise ValueError(f"Conditional node misconfigured: {'; '.join(errors)}")

        if config.condition:
            # {{refs}} are substituted first so hyphenated node ids can be used
            expression = context.substitute(config.condition, node_id=node.id)
            context.log(f"Evaluating condition: {expression}")
            try:
                result = evaluate_condition(expression, context.scope)
            except ExpressionError as e:
                raise ValueError(f"Condition evaluation failed: {e}") from e
        else:
            left = context.resolve(config.leftValue, node_id=node.id)
            right = context.resolve(config.rightValue, node_id=node.id)
            context.log(f"Evaluating {left!r} {config.operator} {right!r}")
            result = compare(left, config.operator, right)

        context.log(f"Condition result: {result}")
        return dump(ConditionResult(result=result, path="true" if result else "false"))
