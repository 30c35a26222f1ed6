"""
Pytest configuration and fixtures for workflow engine tests.

External collaborators (LLM, retrieval, search, vector store) are replaced by
mocks; nothing here touches the network.
"""

import logging
from unittest.mock import AsyncMock, Mock

import pytest

from knowflow.config import EngineConfig, reset_engine_config
from knowflow.context import INPUT_KEY, ExecutionContext
from knowflow.engine import WorkflowEngine
from knowflow.executors import create_default_registry
from knowflow.executors.function_executors import FunctionRegistry
from knowflow.models import Workflow
from knowflow.providers import (
    KnowledgeRetrievalResult,
    LLMResponse,
    RetrievalMetadata,
    RetrievalQuery,
    TokenUsage,
    WebSearchResult,
)


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep environment driven config and logger state out of each test."""
    for name in (
        "LLM_API_URL", "LLM_API_KEY", "OPENAI_API_KEY", "SEARCH_API_KEY", "BRAVE_API_KEY",
        "WORKFLOW_TIMEOUT", "WORKFLOW_MAX_CONCURRENCY", "STRICT_TEMPLATES", "LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)
    reset_engine_config()
    yield
    reset_engine_config()
    package_logger = logging.getLogger("knowflow")
    package_logger.handlers.clear()
    package_logger.propagate = True
    package_logger.setLevel(logging.NOTSET)


@pytest.fixture
def engine_config():
    return EngineConfig(workflow_timeout=10.0, max_concurrency=4, search_api_key="test-key")


@pytest.fixture
def retrieval_result():
    return KnowledgeRetrievalResult(
        context="X is Y",
        citations=[],
        query=RetrievalQuery(originalQuery="What is X?", processedQuery="What is X?"),
        results=[
            {"documentName": "x.md", "similarity": 0.91, "content": "X is Y"},
            {"documentName": "y.md", "similarity": 0.74, "content": "Y relates to X"},
        ],
        metadata=RetrievalMetadata(executionTimeMs=12.5),
    )


@pytest.fixture
def mock_llm():
    llm = Mock()
    llm.generate_text = AsyncMock(return_value=LLMResponse(
        text="X is Y, according to the knowledge base.",
        model="test-model",
        usage=TokenUsage(promptTokens=20, completionTokens=10, totalTokens=30),
    ))
    return llm


@pytest.fixture
def mock_retriever(retrieval_result):
    retriever = Mock()
    retriever.retrieve_knowledge = AsyncMock(return_value=retrieval_result)
    return retriever


@pytest.fixture
def mock_search():
    search = Mock()
    search.search = AsyncMock(return_value=[
        WebSearchResult(title="X explained", url="https://example.com/x", snippet="X is Y."),
        WebSearchResult(title="More on X", url="https://example.com/more", snippet="Details."),
    ])
    return search


@pytest.fixture
def mock_vector_store():
    store = Mock()
    store.search = AsyncMock(return_value=[{"id": 1, "text": "row one", "_distance": 0.1}])
    store.insert = AsyncMock(return_value=2)
    store.update = AsyncMock(return_value=1)
    store.delete = AsyncMock(return_value=3)
    return store


@pytest.fixture
def functions():
    return FunctionRegistry()


@pytest.fixture
def registry(mock_llm, mock_retriever, mock_search, mock_vector_store, functions, engine_config):
    return create_default_registry(
        llm=mock_llm,
        retriever=mock_retriever,
        search=mock_search,
        vector_store=mock_vector_store,
        functions=functions,
        config=engine_config,
    )


@pytest.fixture
def engine(registry, engine_config):
    return WorkflowEngine(registry, engine_config)


@pytest.fixture
def make_context():
    """Build an execution context seeded with input and earlier results."""
    def _make(input=None, results=None, variables=None, strict=False):
        context = ExecutionContext(
            workflow_id="wf-test",
            execution_id="exec-test",
            variables=dict(variables or {}),
            strict_templates=strict,
        )
        context.set_result(INPUT_KEY, input)
        for node_id, result in (results or {}).items():
            context.set_result(node_id, result)
        return context
    return _make


def node(node_id, node_type, **data):
    return {"id": node_id, "type": node_type, "data": data}


def edge(source, target, handle=None):
    payload = {"id": f"{source}->{target}", "source": source, "target": target}
    if handle:
        payload["sourceHandle"] = handle
    return payload


def build_workflow(nodes, edges, **kwargs):
    return Workflow.model_validate({"id": "wf-test", "name": "Test", "nodes": nodes, "edges": edges, **kwargs})
