"""
Tests for the workflow engine scheduler.
"""

import asyncio

import pytest

from conftest import build_workflow, edge, node
from knowflow.config import EngineConfig
from knowflow.engine import WorkflowEngine, execute_workflow, topological_order
from knowflow.errors import (
    CycleError,
    DuplicateEdgeError,
    DuplicateNodeError,
    ExecutionCancelledError,
    GraphValidationError,
    InvalidEdgeError,
    InvalidNodeConfigError,
    NodeExecutionError,
    TemplateResolutionError,
    UnknownNodeTypeError,
    WorkflowTimeoutError,
)
from knowflow.models import ExecutionStatus, NodeStatus


def rag_pipeline():
    return build_workflow(
        [
            node("trigger-1", "trigger"),
            node("kb-1", "knowledge-base", query="{{input.query}}", workspaceId="ws-1", similarityThreshold=70),
            node("llm-1", "llm", model="test-model", prompt="Context: {{kb-1.context}}\nQuestion: {{input.query}}"),
            node("output-1", "output", variableName="answer", source="llm-1.text"),
        ],
        [edge("trigger-1", "kb-1"), edge("kb-1", "llm-1"), edge("llm-1", "output-1")],
    )


def branching_workflow(handle_true="true", handle_false="false"):
    return build_workflow(
        [
            node("trigger-1", "trigger"),
            node("check", "conditional", condition="input.count > 5"),
            node("yes", "output", variableName="route", value="yes"),
            node("no", "output", variableName="route", value="no"),
        ],
        [
            edge("trigger-1", "check"),
            edge("check", "yes", handle_true),
            edge("check", "no", handle_false),
        ],
    )


class TestScenarios:
    """End-to-end runs over mocked collaborators."""

    async def test_rag_pipeline_output_is_llm_text(self, engine, mock_llm):
        output = await engine.run(rag_pipeline(), {"query": "What is X?"})

        assert output == {"answer": "X is Y, according to the knowledge base."}
        prompt = mock_llm.generate_text.call_args.kwargs["prompt"]
        assert prompt == "Context: X is Y\nQuestion: What is X?"

    async def test_similarity_threshold_reaches_retriever_as_probability(self, engine, mock_retriever):
        await engine.run(rag_pipeline(), {"query": "What is X?"})

        options = mock_retriever.retrieve_knowledge.call_args.args[1]
        assert options.threshold == pytest.approx(0.7)

    async def test_conditional_true_branch_only(self, engine):
        execution = await engine.execute_workflow(branching_workflow(), {"count": 10})

        assert execution.status == ExecutionStatus.SUCCESS
        assert execution.finalOutput == {"route": "yes"}
        assert execution.nodeExecutions["yes"].status == NodeStatus.COMPLETED
        assert execution.nodeExecutions["no"].status == NodeStatus.SKIPPED
        assert execution.nodeExecutions["no"].skipReason == "branch not taken"
        assert "no" not in execution.context

    async def test_conditional_false_branch_only(self, engine):
        execution = await engine.execute_workflow(branching_workflow(), {"count": 1})

        assert execution.finalOutput == {"route": "no"}
        assert execution.nodeExecutions["yes"].status == NodeStatus.SKIPPED

    async def test_prefixed_handles_are_normalized(self, engine):
        workflow = branching_workflow("output-true", "output-false")
        assert await engine.run(workflow, {"count": 10}) == {"route": "yes"}

    async def test_unknown_node_type_fails_before_execution(self, engine, mock_llm):
        workflow = build_workflow(
            [
                node("trigger-1", "trigger"),
                node("llm-1", "llm", model="m", prompt="p"),
                node("mystery", "teleporter"),
            ],
            [edge("trigger-1", "llm-1"), edge("llm-1", "mystery")],
        )

        with pytest.raises(GraphValidationError) as exc_info:
            await engine.run(workflow, {})

        unknown = exc_info.value.by_type(UnknownNodeTypeError)
        assert len(unknown) == 1
        assert unknown[0].node_id == "mystery"
        assert "mystery" in str(exc_info.value)
        mock_llm.generate_text.assert_not_called()

    async def test_failure_keeps_completed_siblings(self, engine, functions):
        async def slow_echo(value):
            await asyncio.sleep(0.05)
            return value

        functions.register("slowEcho", slow_echo)
        workflow = build_workflow(
            [
                node("trigger-1", "trigger"),
                node("ok", "function", functionName="slowEcho", params={"value": "{{input.value}}"}),
                node("boom", "function", functionName="divide", params=[1, 0]),
                node("after-boom", "output", variableName="never"),
            ],
            [edge("trigger-1", "ok"), edge("trigger-1", "boom"), edge("boom", "after-boom")],
        )

        with pytest.raises(NodeExecutionError) as exc_info:
            await engine.run(workflow, {"value": "kept"})

        error = exc_info.value
        assert error.node_id == "boom"
        assert error.node_type == "function"
        assert isinstance(error.cause, ZeroDivisionError)
        assert error.__cause__ is error.cause
        assert error.context["ok"] == "kept"
        assert error.context["trigger-1"]["payload"] == {"value": "kept"}

        execution = error.execution
        assert execution.status == ExecutionStatus.ERROR
        assert execution.errorNodeId == "boom"
        assert execution.nodeExecutions["ok"].status == NodeStatus.COMPLETED
        assert execution.nodeExecutions["after-boom"].status == NodeStatus.SKIPPED
        assert execution.nodeExecutions["after-boom"].skipReason == "upstream failure"


class TestValidation:
    """Test graph validation."""

    def test_collects_every_problem(self, engine):
        workflow = build_workflow(
            [
                node("trigger-1", "trigger"),
                node("llm-1", "llm", model="m"),
                node("llm-1", "llm", model="m", prompt="p"),
                node("a", "function", functionName="trim"),
                node("b", "function", functionName="trim"),
                node("ghost-type", "nope"),
            ],
            [
                edge("a", "b"),
                edge("b", "a"),
                edge("llm-1", "missing"),
                edge("a", "trigger-1"),
            ],
        )

        with pytest.raises(GraphValidationError) as exc_info:
            engine.validate_workflow(workflow)

        error = exc_info.value
        assert [e.node_id for e in error.by_type(DuplicateNodeError)] == ["llm-1"]
        assert [e.node_id for e in error.by_type(UnknownNodeTypeError)] == ["ghost-type"]
        config_errors = error.by_type(InvalidNodeConfigError)
        assert [e.node_id for e in config_errors] == ["llm-1"]
        assert config_errors[0].messages == ["'prompt' is required"]
        assert len(error.by_type(InvalidEdgeError)) == 2
        cycles = error.by_type(CycleError)
        assert len(cycles) == 1
        assert set(cycles[0].node_ids) >= {"a", "b"}

    def test_cycle_reports_only_cycle_members(self):
        workflow = build_workflow(
            [node("a", "function"), node("b", "function"), node("c", "function")],
            [edge("a", "b"), edge("b", "a"), edge("b", "c")],
        )
        order, cyclic = topological_order(workflow)
        assert order == []
        assert cyclic == ["a", "b"]

    def test_topological_order(self):
        workflow = build_workflow(
            [node("c", "output"), node("a", "trigger"), node("b", "llm")],
            [edge("a", "b"), edge("b", "c")],
        )
        assert topological_order(workflow) == (["a", "b", "c"], [])

    async def test_duplicate_edge_ids_rejected(self, engine, functions):
        calls = []

        async def slow(name):
            await asyncio.sleep(0.05)
            calls.append(name)
            return name

        functions.register("slow", slow)
        workflow = build_workflow(
            [
                node("trigger-1", "trigger"),
                node("a", "function", functionName="trim", params=["a"]),
                node("b", "function", functionName="slow", params=["b"]),
                node("merge", "output", value="{{a}} {{b}}"),
            ],
            [
                edge("trigger-1", "a"),
                edge("trigger-1", "b"),
                {"id": "shared", "source": "a", "target": "merge"},
                {"id": "shared", "source": "b", "target": "merge"},
            ],
        )

        with pytest.raises(GraphValidationError) as exc_info:
            await engine.execute_workflow(workflow, {})

        assert [e.edge_id for e in exc_info.value.by_type(DuplicateEdgeError)] == ["shared"]
        assert calls == []

    async def test_invalid_workflow_runs_nothing(self, engine, mock_llm):
        workflow = build_workflow(
            [node("llm-1", "llm", model="m", prompt="p"), node("bad", "web-search")],
            [],
        )
        with pytest.raises(GraphValidationError):
            await engine.execute_workflow(workflow, {})
        mock_llm.generate_text.assert_not_called()
        assert engine.running_executions == {}


class TestScheduling:
    """Test readiness, pruning and concurrency."""

    async def test_merge_after_conditional_runs(self, engine, functions):
        functions.register("tag", lambda name: name)
        workflow = build_workflow(
            [
                node("trigger-1", "trigger"),
                node("check", "conditional", condition="input.count > 5"),
                node("big", "function", functionName="tag", params={"name": "big"}),
                node("small", "function", functionName="tag", params={"name": "small"}),
                node("merge", "output", variableName="picked"),
            ],
            [
                edge("trigger-1", "check"),
                edge("check", "big", "true"),
                edge("check", "small", "false"),
                edge("big", "merge"),
                edge("small", "merge"),
            ],
        )

        assert await engine.run(workflow, {"count": 7}) == {"picked": "big"}

    async def test_pruned_subtree_never_executes(self, engine, mock_llm):
        workflow = build_workflow(
            [
                node("trigger-1", "trigger"),
                node("check", "conditional", condition="input.count > 5"),
                node("llm-1", "llm", model="m", prompt="p"),
                node("llm-2", "llm", model="m", prompt="{{llm-1.text}}"),
                node("out", "output", value="done"),
            ],
            [
                edge("trigger-1", "check"),
                edge("check", "llm-1", "false"),
                edge("llm-1", "llm-2"),
                edge("check", "out", "true"),
            ],
        )

        execution = await engine.execute_workflow(workflow, {"count": 10})

        assert execution.succeeded
        mock_llm.generate_text.assert_not_called()
        assert execution.nodes_with_status(NodeStatus.SKIPPED) == ["llm-1", "llm-2"]

    async def test_each_node_runs_once(self, engine, functions):
        calls = []

        def record(name):
            calls.append(name)
            return name

        functions.register("record", record)
        workflow = build_workflow(
            [
                node("trigger-1", "trigger"),
                node("left", "function", functionName="record", params={"name": "left"}),
                node("right", "function", functionName="record", params={"name": "right"}),
                node("join", "function", functionName="record", params={"name": "join"}),
            ],
            [
                edge("trigger-1", "left"),
                edge("trigger-1", "right"),
                edge("left", "join"),
                edge("right", "join"),
            ],
        )

        execution = await engine.execute_workflow(workflow, {})

        assert sorted(calls) == ["join", "left", "right"]
        assert calls[-1] == "join"
        assert all(ne.status == NodeStatus.COMPLETED for ne in execution.nodeExecutions.values())

    async def test_independent_branches_run_concurrently(self, engine, functions):
        arrived = []
        both_running = asyncio.Event()

        async def rendezvous(name):
            arrived.append(name)
            if len(arrived) == 2:
                both_running.set()
            # deadlocks into a timeout if the branches were serialized
            await asyncio.wait_for(both_running.wait(), timeout=2)
            return name

        functions.register("rendezvous", rendezvous)
        workflow = build_workflow(
            [
                node("trigger-1", "trigger"),
                node("kb", "function", functionName="rendezvous", params={"name": "kb"}),
                node("web", "function", functionName="rendezvous", params={"name": "web"}),
            ],
            [edge("trigger-1", "kb"), edge("trigger-1", "web")],
        )

        execution = await engine.execute_workflow(workflow, {})

        assert execution.succeeded
        assert sorted(arrived) == ["kb", "web"]

    async def test_max_concurrency_bounds_running_nodes(self, registry, functions):
        in_flight = 0
        peak = 0

        async def busy():
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return True

        functions.register("busy", busy)
        workflow = build_workflow(
            [node("trigger-1", "trigger")]
            + [node(f"f{i}", "function", functionName="busy") for i in range(4)],
            [edge("trigger-1", f"f{i}") for i in range(4)],
        )
        engine = WorkflowEngine(registry, EngineConfig(max_concurrency=1, workflow_timeout=10))

        await engine.run(workflow, {})

        assert peak == 1

    async def test_failure_beside_untaken_branch_fails_run(self, engine):
        workflow = build_workflow(
            [
                node("trigger-1", "trigger"),
                node("check", "conditional", condition="input.count > 5"),
                node("boom", "function", functionName="divide", params=[1, 0]),
                node("fallback", "output", variableName="fallback", value="unused"),
                node("main", "output", variableName="main", value="ok"),
            ],
            [
                edge("trigger-1", "check"),
                edge("trigger-1", "boom"),
                edge("check", "main", "true"),
                edge("check", "fallback", "false"),
                edge("boom", "fallback"),
            ],
        )

        execution = await engine.execute_workflow(workflow, {"count": 10})

        assert execution.status == ExecutionStatus.ERROR
        assert execution.errorNodeId == "boom"
        assert execution.nodeExecutions["main"].status == NodeStatus.COMPLETED
        assert execution.nodeExecutions["fallback"].status == NodeStatus.SKIPPED
        assert execution.nodeExecutions["fallback"].skipReason == "upstream failure"

    async def test_failure_propagates_through_dead_in_edge(self, engine):
        workflow = build_workflow(
            [
                node("trigger-1", "trigger"),
                node("check", "conditional", condition="false"),
                node("boom", "function", functionName="divide", params=[1, 0]),
                node("x", "function", functionName="trim", params=["x"]),
                node("after-x", "output", source="x"),
            ],
            [
                edge("trigger-1", "check"),
                edge("trigger-1", "boom"),
                edge("check", "x", "true"),
                edge("boom", "x"),
                edge("x", "after-x"),
            ],
        )

        execution = await engine.execute_workflow(workflow, {})

        assert execution.status == ExecutionStatus.ERROR
        assert execution.nodeExecutions["x"].skipReason == "upstream failure"
        assert execution.nodeExecutions["after-x"].skipReason == "upstream failure"

    async def test_failing_leaf_fails_run(self, engine):
        workflow = build_workflow(
            [node("trigger-1", "trigger"), node("out", "output", source="nowhere")],
            [edge("trigger-1", "out")],
        )

        execution = await engine.execute_workflow(workflow, {})

        assert execution.status == ExecutionStatus.ERROR
        assert execution.errorNodeId == "out"
        assert execution.errorNodeType == "output"
        assert "nowhere" in execution.error


class TestOutputAndContext:
    """Test aggregation, templates and variables."""

    async def test_without_output_nodes_returns_context(self, engine):
        workflow = build_workflow(
            [node("trigger-1", "trigger"), node("fn", "function", functionName="toUpperCase", params=["{{input.word}}"])],
            [edge("trigger-1", "fn")],
        )

        output = await engine.run(workflow, {"word": "shout"})

        assert output["input"] == {"word": "shout"}
        assert output["fn"] == "SHOUT"
        assert "trigger-1" in output

    async def test_unresolved_reference_recorded_as_warning(self, engine, mock_llm):
        workflow = build_workflow(
            [node("trigger-1", "trigger"), node("llm-1", "llm", model="m", prompt="Hi {{typo.value}}")],
            [edge("trigger-1", "llm-1")],
        )

        execution = await engine.execute_workflow(workflow, {})

        assert execution.succeeded
        assert mock_llm.generate_text.call_args.kwargs["prompt"] == "Hi {{typo.value}}"
        assert len(execution.warnings) == 1
        assert "typo.value" in execution.warnings[0]

    async def test_strict_templates_fail_the_node(self, engine):
        workflow = build_workflow(
            [node("trigger-1", "trigger"), node("llm-1", "llm", model="m", prompt="Hi {{typo.value}}")],
            [edge("trigger-1", "llm-1")],
        )

        with pytest.raises(NodeExecutionError) as exc_info:
            await engine.run(workflow, {}, strict_templates=True)

        assert isinstance(exc_info.value.cause, TemplateResolutionError)

    async def test_trigger_inputs_and_run_variables(self, engine):
        workflow = build_workflow(
            [
                node("trigger-1", "trigger", inputs={"tone": "plain"}),
                node("out", "output", value="{{tone}} / {{region}}"),
            ],
            [edge("trigger-1", "out")],
        )

        output = await engine.run(workflow, {}, variables={"region": "eu"})

        assert output == {"result": "plain / eu"}

    async def test_execution_record(self, engine):
        execution = await engine.execute_workflow(branching_workflow(), {"count": 10}, execution_id="exec-fixed")

        assert execution.id == "exec-fixed"
        assert execution.triggerData == {"count": 10}
        assert execution.completedAt is not None
        assert execution.nodeExecutions["check"].duration is not None
        assert any("Node completed" in line for line in execution.logs)
        assert engine.running_executions == {}


class TestTimeoutAndCancellation:
    """Test run timeout and cooperative cancellation."""

    @pytest.fixture
    def waiting_workflow(self, functions):
        started = asyncio.Event()

        async def wait_forever():
            started.set()
            await asyncio.sleep(5)

        functions.register("waitForever", wait_forever)
        workflow = build_workflow(
            [
                node("trigger-1", "trigger"),
                node("wait", "function", functionName="waitForever"),
                node("out", "output", value="never"),
            ],
            [edge("trigger-1", "wait"), edge("wait", "out")],
        )
        return workflow, started

    async def test_timeout(self, engine, waiting_workflow):
        workflow, _ = waiting_workflow

        execution = await engine.execute_workflow(workflow, {}, timeout=0.05)

        assert execution.status == ExecutionStatus.TIMEOUT
        assert isinstance(execution.failure, WorkflowTimeoutError)
        assert execution.nodeExecutions["trigger-1"].status == NodeStatus.COMPLETED
        assert execution.nodeExecutions["wait"].status == NodeStatus.FAILED
        assert execution.nodeExecutions["out"].status == NodeStatus.SKIPPED
        assert "trigger-1" in execution.failure.context

    async def test_run_raises_timeout(self, engine, waiting_workflow):
        workflow, _ = waiting_workflow
        with pytest.raises(WorkflowTimeoutError):
            await engine.run(workflow, {}, timeout=0.05)

    async def test_cancel_execution(self, engine, waiting_workflow):
        workflow, started = waiting_workflow

        task = asyncio.ensure_future(engine.execute_workflow(workflow, {}, execution_id="exec-cancel"))
        await asyncio.wait_for(started.wait(), timeout=2)

        assert await engine.cancel_execution("exec-cancel") is True
        execution = await asyncio.wait_for(task, timeout=2)

        assert execution.status == ExecutionStatus.CANCELLED
        assert isinstance(execution.failure, ExecutionCancelledError)
        assert execution.nodeExecutions["out"].status == NodeStatus.SKIPPED

    async def test_cancel_unknown_execution(self, engine):
        assert await engine.cancel_execution("exec-missing") is False


class TestProgressCallback:
    """Test progress notifications."""

    async def test_sync_callback_receives_node_events(self, engine):
        events = []
        await engine.execute_workflow(branching_workflow(), {"count": 10}, progress_callback=events.append)

        statuses = [(e["node_id"], e["status"]) for e in events]
        assert ("check", "running") in statuses
        assert ("check", "completed") in statuses
        assert ("no", "skipped") in statuses
        assert statuses.index(("check", "running")) < statuses.index(("check", "completed"))

    async def test_async_callback(self, engine):
        events = []

        async def callback(event):
            events.append(event["status"])

        await engine.execute_workflow(branching_workflow(), {"count": 1}, progress_callback=callback)
        assert "completed" in events

    async def test_callback_errors_are_not_fatal(self, engine, caplog):
        def callback(event):
            raise RuntimeError("listener broke")

        execution = await engine.execute_workflow(branching_workflow(), {"count": 1}, progress_callback=callback)

        assert execution.succeeded
        assert "Progress callback error" in caplog.text


class TestExecuteWorkflowFunction:
    """Test the module-level entry point."""

    async def test_runs_bare_lists(self, registry):
        nodes = [node("trigger-1", "trigger"), node("out", "output", source="input.query")]
        edges = [edge("trigger-1", "out")]

        output = await execute_workflow(nodes, edges, {"query": "hello"}, registry=registry)

        assert output == {"result": "hello"}

    def test_available_node_types(self, engine):
        types = {t["type"] for t in engine.get_available_node_types()}
        assert types == {
            "trigger", "llm", "rag", "knowledge-base", "web-search",
            "function", "conditional", "lancedb", "output",
        }
