"""
Execution Context - Per-run store of node results and variables
"""

import asyncio
import logging
from collections import ChainMap
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from .errors import ExecutionCancelledError, TemplateResolutionWarning
from .resolver import resolve_value, substitute

logger = logging.getLogger(__name__)

INPUT_KEY = "input"


@dataclass
class ExecutionContext:
    """
    Context passed to node executors during execution.

    ``results`` maps node ids (and the reserved key ``input``) to the result
    each node produced. Only the engine writes to it, one completed node at a
    time; executors read it through ``scope`` and the resolve helpers.
    """

    # Workflow context
    workflow_id: str
    execution_id: str
    results: Dict[str, Any] = field(default_factory=dict)
    variables: Dict[str, Any] = field(default_factory=dict)

    # Template behaviour
    strict_templates: bool = False

    # Execution state
    logs: List[str] = field(default_factory=list)
    warnings: List[TemplateResolutionWarning] = field(default_factory=list)
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event)

    # Live predecessor results per node, filled in by the engine
    node_inputs: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    @property
    def input(self) -> Any:
        return self.results.get(INPUT_KEY)

    @property
    def scope(self) -> Mapping:
        """Lookup scope for templates: node results layered over variables"""
        return ChainMap(self.results, self.variables)

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def cancel(self):
        self.cancel_event.set()

    def check_cancelled(self):
        """Raise if the run was cancelled; executors call this between awaits"""
        if self.cancel_event.is_set():
            raise ExecutionCancelledError(self.execution_id)

    def log(self, message: str, level: str = "info"):
        """Add a log message"""
        self.logs.append(f"[{level.upper()}] {message}")
        getattr(logger, level, logger.info)(f"[{self.execution_id}] {message}")

    def get_variable(self, name: str, default: Any = None) -> Any:
        """Get a workflow variable"""
        return self.variables.get(name, default)

    def set_variable(self, name: str, value: Any):
        """Set a workflow variable"""
        self.variables[name] = value

    def set_result(self, node_id: str, result: Any):
        self.results[node_id] = result

    def inputs_for(self, node_id: str) -> Dict[str, Any]:
        """Results of the live predecessors of node_id, keyed by their ids"""
        return dict(self.node_inputs.get(node_id, {}))

    def substitute(self, template: str, node_id: Optional[str] = None) -> str:
        return substitute(
            template,
            self.scope,
            strict=self.strict_templates,
            warnings=self.warnings,
            node_id=node_id,
        )

    def resolve(self, value: Any, node_id: Optional[str] = None) -> Any:
        return resolve_value(
            value,
            self.scope,
            strict=self.strict_templates,
            warnings=self.warnings,
            node_id=node_id,
        )

    def snapshot(self) -> Dict[str, Any]:
        """Shallow copy of the results for reporting"""
        return dict(self.results)
