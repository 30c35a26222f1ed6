"""
Executor Registry - Maps node type tags to executor instances
"""

import logging
from typing import TYPE_CHECKING, Dict, Iterator, List, Union

from .errors import UnknownNodeTypeError
from .models import NodeType, NodeTypeDefinition

if TYPE_CHECKING:
    from .executors.base import NodeExecutor

logger = logging.getLogger(__name__)


class ExecutorRegistry:
    """
    Explicit registry of node executors.

    Built once at startup and handed to the engine. Registration is not
    locked, so it must finish before runs start.
    """

    def __init__(self):
        self._executors: Dict[str, "NodeExecutor"] = {}

    def register(self, node_type: Union[str, NodeType], executor: "NodeExecutor", replace: bool = False):
        key = node_type.value if isinstance(node_type, NodeType) else node_type
        if key in self._executors and not replace:
            raise ValueError(f"Executor already registered for node type '{key}'")
        self._executors[key] = executor
        logger.debug(f"Registered executor {type(executor).__name__} for '{key}'")

    def get(self, node_type: str) -> "NodeExecutor":
        try:
            return self._executors[node_type]
        except KeyError:
            raise UnknownNodeTypeError(node_type) from None

    def __contains__(self, node_type: str) -> bool:
        return node_type in self._executors

    def __iter__(self) -> Iterator[str]:
        return iter(self._executors)

    def __len__(self) -> int:
        return len(self._executors)

    def types(self) -> List[str]:
        return list(self._executors)

    def describe(self) -> List[NodeTypeDefinition]:
        """Catalogue of the registered node types"""
        return [executor.describe() for executor in self._executors.values()]
