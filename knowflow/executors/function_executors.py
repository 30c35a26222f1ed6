"""
Function Node Executors - Named user transforms

Functions are Python callables registered by name. Workflows reference them
by ``functionName``; no code strings are ever evaluated.
"""

from typing import Any, Callable, Dict, List, Optional, Union
import inspect
import json
import re

from ..context import ExecutionContext
from ..models import NodeCategory, WorkflowNode
from .base import NodeConfig, NodeExecutor


def _sort(items: List[Any], key: Optional[str] = None) -> List[Any]:
    if key:
        return sorted(items, key=lambda item: item.get(key) if isinstance(item, dict) else item)
    return sorted(items)


def _pick(obj: Dict[str, Any], keys: List[str]) -> Dict[str, Any]:
    return {k: obj[k] for k in keys if k in obj}


def _omit(obj: Dict[str, Any], keys: List[str]) -> Dict[str, Any]:
    return {k: v for k, v in obj.items() if k not in keys}


def _round(value: float, decimals: int = 0) -> float:
    return round(float(value), int(decimals))


BUILTIN_FUNCTIONS: Dict[str, Callable] = {
    # String
    "toUpperCase": lambda text: str(text).upper(),
    "toLowerCase": lambda text: str(text).lower(),
    "trim": lambda text: str(text).strip(),
    "replace": lambda text, search, replacement: re.sub(search, replacement, str(text)),
    "length": lambda value: len(value),
    # Collections
    "sort": _sort,
    "pick": _pick,
    "omit": _omit,
    # Math
    "add": lambda a, b: float(a) + float(b),
    "subtract": lambda a, b: float(a) - float(b),
    "multiply": lambda a, b: float(a) * float(b),
    "divide": lambda a, b: float(a) / float(b),
    "round": _round,
    # JSON
    "jsonParse": lambda text: json.loads(text) if isinstance(text, str) else text,
    "jsonStringify": lambda value: json.dumps(value, default=str),
}


class FunctionRegistry:
    """Named callables available to function nodes"""

    def __init__(self, include_builtins: bool = True):
        self._functions: Dict[str, Callable] = dict(BUILTIN_FUNCTIONS) if include_builtins else {}

    def register(self, name: str, fn: Callable):
        if not callable(fn):
            raise TypeError(f"Function '{name}' is not callable")
        self._functions[name] = fn

    def get(self, name: str) -> Optional[Callable]:
        return self._functions.get(name)

    def __contains__(self, name: str) -> bool:
        return name in self._functions

    def names(self) -> List[str]:
        return sorted(self._functions)


class FunctionNodeConfig(NodeConfig):
    functionName: Optional[str] = None
    params: Union[Dict[str, Any], List[Any]] = {}


class FunctionExecutor(NodeExecutor):
    """Call a registered function with templated parameters"""

    node_type = "function"
    display_name = "Function"
    category = NodeCategory.TOOLS
    description = "Transform data with a registered function"

    config_model = FunctionNodeConfig

    def __init__(self, functions: Optional[FunctionRegistry] = None):
        self.functions = functions or FunctionRegistry()

    def check_config(self, config: FunctionNodeConfig) -> List[str]:
        if not config.functionName:
            return ["'functionName' is required"]
        if config.functionName not in self.functions:
            return [f"Function '{config.functionName}' is not registered"]
        return []

    async def execute(self, node: WorkflowNode, context: ExecutionContext) -> Any:
        config: FunctionNodeConfig = self.parse_config(node)
        errors = self.check_config(config)
        if errors:
            raise ValueError(f"Function node misconfigured: {'; '.join(errors)}")

        fn = self.functions.get(config.functionName)
        params = context.resolve(config.params, node_id=node.id)

        context.log(f"Calling function '{config.functionName}'")
        context.check_cancelled()

        if isinstance(params, dict):
            result = fn(**params)
        else:
            result = fn(*params)
        if inspect.isawaitable(result):
            result = await result

        return result
