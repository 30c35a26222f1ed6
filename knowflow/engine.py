"""
Workflow Engine - Executes workflows by traversing the node graph
"""

import asyncio
import inspect
import logging
from collections import defaultdict
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from .config import EngineConfig, get_engine_config
from .context import INPUT_KEY, ExecutionContext
from .errors import (
    CycleError,
    DuplicateEdgeError,
    DuplicateNodeError,
    ExecutionCancelledError,
    GraphValidationError,
    InvalidEdgeError,
    InvalidNodeConfigError,
    NodeExecutionError,
    UnknownNodeTypeError,
    WorkflowError,
    WorkflowTimeoutError,
)
from .models import (
    ExecutionStatus,
    NodeExecution,
    NodeStatus,
    NodeType,
    Workflow,
    WorkflowEdge,
    WorkflowExecution,
    WorkflowNode,
)
from .registry import ExecutorRegistry

logger = logging.getLogger(__name__)

# Edge states
LIVE = "live"
DEAD = "dead"
FAILED = "failed"

SKIP_BRANCH = "branch not taken"
SKIP_UPSTREAM = "upstream failure"

ProgressCallback = Callable[[Dict[str, Any]], Any]


def topological_order(workflow: Workflow) -> Tuple[List[str], List[str]]:
    """
    Kahn's algorithm over the workflow edges.

    Returns the ordered node ids and the ids left over because they sit on
    (or between) cycles. Edges to unknown nodes are ignored.
    """
    node_ids = list(dict.fromkeys(node.id for node in workflow.nodes))
    known = set(node_ids)

    edges: Dict[str, List[str]] = defaultdict(list)
    in_degree: Dict[str, int] = {nid: 0 for nid in node_ids}
    for edge in workflow.edges:
        if edge.source in known and edge.target in known:
            edges[edge.source].append(edge.target)
            in_degree[edge.target] += 1

    queue = [nid for nid in node_ids if in_degree[nid] == 0]
    order = []
    while queue:
        node_id = queue.pop(0)
        order.append(node_id)
        for neighbor in edges[node_id]:
            in_degree[neighbor] -= 1
            if in_degree[neighbor] == 0:
                queue.append(neighbor)

    remaining = set(nid for nid in node_ids if nid not in order)
    # peel off nodes that only hang below a cycle
    changed = True
    while changed:
        changed = False
        for nid in list(remaining):
            if not any(t in remaining for t in edges[nid]):
                remaining.discard(nid)
                changed = True

    return order, [nid for nid in node_ids if nid in remaining]


class WorkflowEngine:
    """
    Executes workflows by traversing the node graph.

    The engine:
    1. Validates the whole graph up front, collecting every problem
    2. Seeds the context with the run input
    3. Launches each node once all of its in-edges are decided
    4. Prunes the untaken branch of every conditional
    5. Runs independent branches concurrently
    6. Aggregates the output nodes into the final result
    """

    def __init__(self, registry: ExecutorRegistry, config: Optional[EngineConfig] = None):
        self.registry = registry
        self.config = config or get_engine_config()
        self.running_executions: Dict[str, WorkflowExecution] = {}
        self.progress_callbacks: Dict[str, ProgressCallback] = {}
        self._contexts: Dict[str, ExecutionContext] = {}

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate_workflow(self, workflow: Workflow):
        """Raise GraphValidationError listing every problem in the graph"""
        errors: List[WorkflowError] = []

        nodes: Dict[str, WorkflowNode] = {}
        for node in workflow.nodes:
            if node.id in nodes:
                errors.append(DuplicateNodeError(node.id))
                continue
            nodes[node.id] = node

        edge_ids = set()
        for edge in workflow.edges:
            if edge.id in edge_ids:
                errors.append(DuplicateEdgeError(edge.id))
            edge_ids.add(edge.id)
            if edge.source not in nodes:
                errors.append(InvalidEdgeError(edge.id, f"source node '{edge.source}' does not exist"))
            if edge.target not in nodes:
                errors.append(InvalidEdgeError(edge.id, f"target node '{edge.target}' does not exist"))
            elif nodes[edge.target].type == NodeType.TRIGGER.value:
                errors.append(InvalidEdgeError(edge.id, f"trigger node '{edge.target}' cannot have incoming edges"))

        for node in nodes.values():
            if node.type not in self.registry:
                errors.append(UnknownNodeTypeError(node.type, node.id))
                continue
            messages = self.registry.get(node.type).validation_errors(node)
            if messages:
                errors.append(InvalidNodeConfigError(node.id, node.type, messages))

        _, cyclic = topological_order(workflow)
        if cyclic:
            errors.append(CycleError(cyclic))

        if errors:
            logger.error(f"Workflow {workflow.id} failed validation with {len(errors)} error(s)")
            raise GraphValidationError(errors)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def execute_workflow(
        self,
        workflow: Workflow,
        input: Any = None,
        *,
        timeout: Optional[float] = None,
        execution_id: Optional[str] = None,
        variables: Optional[Dict[str, Any]] = None,
        progress_callback: Optional[ProgressCallback] = None,
        strict_templates: Optional[bool] = None,
    ) -> WorkflowExecution:
        """
        Execute a workflow from start to finish.

        Args:
            workflow: The workflow to execute
            input: Run payload, available to templates as ``input``
            timeout: Seconds for the whole run; defaults to the configured
                workflow timeout, 0 or None there disables it
            execution_id: Optional custom execution ID
            variables: Extra variables visible to templates
            progress_callback: Sync or async callable receiving node events
            strict_templates: Fail on unresolved references

        Returns:
            WorkflowExecution with final status, context and outputs. Failures
            are recorded on it rather than raised; see ``run``.

        Raises:
            GraphValidationError: before any node runs
        """
        self.validate_workflow(workflow)

        execution = WorkflowExecution(
            workflowId=workflow.id,
            triggerData=input if isinstance(input, dict) else ({} if input is None else {"value": input}),
        )
        if execution_id:
            execution.id = execution_id

        if strict_templates is None:
            strict_templates = self.config.strict_templates
        if timeout is None:
            timeout = self.config.workflow_timeout

        context = ExecutionContext(
            workflow_id=workflow.id,
            execution_id=execution.id,
            variables={**workflow.metadata.get("variables", {}), **(variables or {})},
            strict_templates=strict_templates,
        )
        context.set_result(INPUT_KEY, input)

        for node in workflow.nodes:
            execution.nodeExecutions[node.id] = NodeExecution(
                nodeId=node.id,
                nodeType=node.type,
                nodeName=node.label,
            )

        execution.status = ExecutionStatus.RUNNING
        self.running_executions[execution.id] = execution
        self._contexts[execution.id] = context
        if progress_callback:
            self.progress_callbacks[execution.id] = progress_callback

        logger.info(f"Starting workflow execution: {execution.id} ({len(workflow.nodes)} nodes)")

        try:
            await self._schedule(workflow, context, execution, timeout)
            execution.status = ExecutionStatus.SUCCESS
            execution.finalOutput = self._extract_final_output(workflow, execution, context)
        except NodeExecutionError as e:
            self._record_failure(execution, ExecutionStatus.ERROR, e, context)
            execution.errorNodeId = e.node_id
            execution.errorNodeType = e.node_type
        except WorkflowTimeoutError as e:
            self._record_failure(execution, ExecutionStatus.TIMEOUT, e, context)
        except ExecutionCancelledError as e:
            self._record_failure(execution, ExecutionStatus.CANCELLED, e, context)
        finally:
            execution.completedAt = datetime.utcnow()
            execution.context = context.snapshot()
            execution.logs = list(context.logs)
            execution.warnings = [str(w) for w in context.warnings]

            self.running_executions.pop(execution.id, None)
            self._contexts.pop(execution.id, None)
            self.progress_callbacks.pop(execution.id, None)

        logger.info(f"Workflow execution completed: {execution.id} - {execution.status.value}")
        return execution

    async def run(self, workflow: Workflow, input: Any = None, **kwargs) -> Any:
        """
        Execute a workflow and return its aggregated output.

        Raises the failure that ended the run (NodeExecutionError,
        WorkflowTimeoutError or ExecutionCancelledError) with ``context``
        holding the partial results and ``execution`` the full record.
        """
        execution = await self.execute_workflow(workflow, input, **kwargs)
        if execution.failure is not None:
            raise execution.failure
        return execution.finalOutput

    async def cancel_execution(self, execution_id: str) -> bool:
        """Cancel a running execution"""
        context = self._contexts.get(execution_id)
        if context is None:
            return False
        context.cancel()
        logger.info(f"Cancellation requested for: {execution_id}")
        return True

    def _record_failure(
        self,
        execution: WorkflowExecution,
        status: ExecutionStatus,
        error: WorkflowError,
        context: ExecutionContext,
    ):
        logger.error(f"Workflow execution failed: {execution.id} - {error}")
        execution.status = status
        execution.error = str(error)
        error.context = context.snapshot()
        error.execution = execution
        execution._failure = error

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    async def _schedule(
        self,
        workflow: Workflow,
        context: ExecutionContext,
        execution: WorkflowExecution,
        timeout: Optional[float],
    ):
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout if timeout else None
        semaphore = asyncio.Semaphore(self.config.max_concurrency)

        incoming: Dict[str, List[WorkflowEdge]] = defaultdict(list)
        outgoing: Dict[str, List[WorkflowEdge]] = defaultdict(list)
        for edge in workflow.edges:
            incoming[edge.target].append(edge)
            outgoing[edge.source].append(edge)

        edge_state: Dict[str, str] = {}
        running: Dict[asyncio.Task, WorkflowNode] = {}
        failures: List[NodeExecutionError] = []
        cancel_waiter = asyncio.ensure_future(context.cancel_event.wait())

        try:
            while True:
                await self._launch_ready(
                    workflow, context, execution, incoming, outgoing, edge_state, running, semaphore
                )
                if not running:
                    break

                remaining = None
                if deadline is not None:
                    remaining = max(deadline - loop.time(), 0)

                done, _ = await asyncio.wait(
                    set(running) | {cancel_waiter},
                    timeout=remaining,
                    return_when=asyncio.FIRST_COMPLETED,
                )

                if context.cancelled:
                    await self._abort(running, execution, "cancelled")
                    raise ExecutionCancelledError(execution.id)
                if not done:
                    context.cancel()
                    await self._abort(running, execution, "timed out")
                    raise WorkflowTimeoutError(timeout)

                for task in done:
                    node = running.pop(task)
                    await self._complete(node, task, context, execution, outgoing, edge_state, failures)
        finally:
            cancel_waiter.cancel()

        if failures:
            raise failures[0]

    async def _launch_ready(
        self,
        workflow: Workflow,
        context: ExecutionContext,
        execution: WorkflowExecution,
        incoming: Dict[str, List[WorkflowEdge]],
        outgoing: Dict[str, List[WorkflowEdge]],
        edge_state: Dict[str, str],
        running: Dict[asyncio.Task, WorkflowNode],
        semaphore: asyncio.Semaphore,
    ):
        """Skip or launch every pending node whose in-edges are all decided"""
        progressed = True
        while progressed:
            progressed = False
            for node in workflow.nodes:
                node_exec = execution.nodeExecutions[node.id]
                if node_exec.status != NodeStatus.PENDING:
                    continue
                edges = incoming[node.id]
                if any(e.id not in edge_state for e in edges):
                    continue

                states = [edge_state[e.id] for e in edges]
                if FAILED in states:
                    await self._skip(node, SKIP_UPSTREAM, FAILED, execution, outgoing, edge_state)
                    progressed = True
                elif edges and LIVE not in states:
                    await self._skip(node, SKIP_BRANCH, DEAD, execution, outgoing, edge_state)
                    progressed = True
                else:
                    context.node_inputs[node.id] = {
                        e.source: context.results[e.source]
                        for e in edges
                        if edge_state[e.id] == LIVE and e.source in context.results
                    }
                    node_exec.status = NodeStatus.READY
                    task = asyncio.ensure_future(self._execute_node(node, context, semaphore))
                    running[task] = node
                    node_exec.status = NodeStatus.RUNNING
                    node_exec.startedAt = datetime.utcnow()
                    await self._notify_progress(execution, node_exec)

    async def _execute_node(self, node: WorkflowNode, context: ExecutionContext, semaphore: asyncio.Semaphore) -> Any:
        executor = self.registry.get(node.type)
        async with semaphore:
            context.check_cancelled()
            context.log(f"Executing node: {node.label} ({node.type})")
            return await executor.execute(node, context)

    async def _complete(
        self,
        node: WorkflowNode,
        task: asyncio.Task,
        context: ExecutionContext,
        execution: WorkflowExecution,
        outgoing: Dict[str, List[WorkflowEdge]],
        edge_state: Dict[str, str],
        failures: List[NodeExecutionError],
    ):
        node_exec = execution.nodeExecutions[node.id]
        node_exec.completedAt = datetime.utcnow()
        node_exec.duration = int((node_exec.completedAt - node_exec.startedAt).total_seconds() * 1000)

        error = task.exception()
        if error is not None:
            logger.error(f"Node execution failed: {node.id} - {error}")
            failure = NodeExecutionError(node.id, node.type, error)
            failure.__cause__ = error
            failures.append(failure)
            node_exec.status = NodeStatus.FAILED
            node_exec.error = str(error)
            context.log(f"Node failed: {node.label} - {error}", "error")
            for edge in outgoing[node.id]:
                edge_state[edge.id] = FAILED
        else:
            result = task.result()
            # single writer: only the engine stores results
            context.set_result(node.id, result)
            if node.type == NodeType.TRIGGER.value and isinstance(result, dict):
                for key, value in (result.get("inputs") or {}).items():
                    context.set_variable(key, value)
            node_exec.status = NodeStatus.COMPLETED
            context.log(f"Node completed: {node.label} ({node_exec.duration}ms)")

            path = self._branch_path(node, result)
            for edge in outgoing[node.id]:
                branch = edge.branch
                edge_state[edge.id] = LIVE if path is None or branch is None or branch == path else DEAD

        await self._notify_progress(execution, node_exec)

    @staticmethod
    def _branch_path(node: WorkflowNode, result: Any) -> Optional[str]:
        if node.type != NodeType.CONDITIONAL.value:
            return None
        if isinstance(result, dict) and "path" in result:
            return str(result["path"]).lower()
        return "true" if result else "false"

    async def _skip(
        self,
        node: WorkflowNode,
        reason: str,
        out_state: str,
        execution: WorkflowExecution,
        outgoing: Dict[str, List[WorkflowEdge]],
        edge_state: Dict[str, str],
    ):
        node_exec = execution.nodeExecutions[node.id]
        node_exec.status = NodeStatus.SKIPPED
        node_exec.skipReason = reason
        logger.debug(f"Skipping node {node.id}: {reason}")
        for edge in outgoing[node.id]:
            edge_state[edge.id] = out_state
        await self._notify_progress(execution, node_exec)

    async def _abort(self, running: Dict[asyncio.Task, WorkflowNode], execution: WorkflowExecution, reason: str):
        """Cancel in-flight nodes and close out the ones that never started"""
        for task in running:
            task.cancel()
        await asyncio.gather(*running, return_exceptions=True)

        now = datetime.utcnow()
        for node in running.values():
            node_exec = execution.nodeExecutions[node.id]
            node_exec.status = NodeStatus.FAILED
            node_exec.error = f"Node {reason}"
            node_exec.completedAt = now
        running.clear()

        for node_exec in execution.nodeExecutions.values():
            if node_exec.status in (NodeStatus.PENDING, NodeStatus.READY):
                node_exec.status = NodeStatus.SKIPPED
                node_exec.skipReason = f"workflow {reason}"

    # ------------------------------------------------------------------
    # Output and progress
    # ------------------------------------------------------------------

    def _extract_final_output(
        self,
        workflow: Workflow,
        execution: WorkflowExecution,
        context: ExecutionContext,
    ) -> Any:
        """Output node values keyed by variableName, else the whole context"""
        outputs = {}
        for node in workflow.nodes:
            if node.type != NodeType.OUTPUT.value:
                continue
            if execution.nodeExecutions[node.id].status != NodeStatus.COMPLETED:
                continue
            result = context.results.get(node.id)
            if isinstance(result, dict) and "variableName" in result:
                outputs[result["variableName"]] = result.get("value")

        if outputs:
            return outputs
        return context.snapshot()

    async def _notify_progress(self, execution: WorkflowExecution, node_exec: NodeExecution):
        """Notify progress callback"""
        callback = self.progress_callbacks.get(execution.id)
        if not callback:
            return
        try:
            result = callback({
                "execution_id": execution.id,
                "node_id": node_exec.nodeId,
                "node_type": node_exec.nodeType,
                "node_name": node_exec.nodeName,
                "status": node_exec.status.value,
                "duration": node_exec.duration,
                "error": node_exec.error,
                "skip_reason": node_exec.skipReason,
            })
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.warning(f"Progress callback error: {e}")

    def get_available_node_types(self) -> List[Dict[str, Any]]:
        """Get list of available node types"""
        return [definition.model_dump(exclude={"configSchema"}) for definition in self.registry.describe()]


async def execute_workflow(
    nodes: List[Any],
    edges: List[Any],
    input: Any = None,
    registry: Optional[ExecutorRegistry] = None,
    **kwargs,
) -> Any:
    """
    Run a graph given as bare node and edge lists.

    Returns the aggregated output; raises like ``WorkflowEngine.run``.
    """
    if registry is None:
        from .executors import create_default_registry
        registry = create_default_registry()

    workflow = Workflow.model_validate({"nodes": nodes, "edges": edges})
    engine = WorkflowEngine(registry)
    return await engine.run(workflow, input, **kwargs)
