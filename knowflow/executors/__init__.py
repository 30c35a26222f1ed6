"""
Node Executors - Implementations for each workflow node type
"""

from typing import Optional

from ..config import EngineConfig, get_engine_config
from ..models import NodeType
from ..providers import (
    BraveSearchProvider,
    HttpKnowledgeRetriever,
    HttpVectorStore,
    KnowledgeRetriever,
    LLMProvider,
    OpenAICompatibleLLMProvider,
    VectorStore,
    WebSearchProvider,
)
from ..registry import ExecutorRegistry
from .base import NodeConfig, NodeExecutor
from .control_executors import ConditionalExecutor
from .function_executors import FunctionExecutor, FunctionRegistry
from .knowledge_executors import KnowledgeBaseExecutor, RAGExecutor
from .llm_executors import LLMExecutor
from .output_executors import OutputExecutor
from .search_executors import WebSearchExecutor
from .trigger_executors import TriggerExecutor
from .vector_executors import LanceDBExecutor


def create_default_registry(
    llm: Optional[LLMProvider] = None,
    retriever: Optional[KnowledgeRetriever] = None,
    search: Optional[WebSearchProvider] = None,
    vector_store: Optional[VectorStore] = None,
    functions: Optional[FunctionRegistry] = None,
    config: Optional[EngineConfig] = None,
) -> ExecutorRegistry:
    """
    Build a registry with every built-in node type.

    Collaborators that are not supplied fall back to the HTTP providers
    configured from ``config`` (or the environment).
    """
    config = config or get_engine_config()
    llm = llm or OpenAICompatibleLLMProvider(config)
    retriever = retriever or HttpKnowledgeRetriever(config)
    search = search or BraveSearchProvider(config)
    vector_store = vector_store or HttpVectorStore(config)

    registry = ExecutorRegistry()
    registry.register(NodeType.TRIGGER, TriggerExecutor())
    registry.register(NodeType.LLM, LLMExecutor(llm))
    registry.register(NodeType.RAG, RAGExecutor(retriever, llm))
    registry.register(NodeType.KNOWLEDGE_BASE, KnowledgeBaseExecutor(retriever))
    registry.register(NodeType.WEB_SEARCH, WebSearchExecutor(search))
    registry.register(NodeType.FUNCTION, FunctionExecutor(functions))
    registry.register(NodeType.CONDITIONAL, ConditionalExecutor())
    registry.register(NodeType.LANCEDB, LanceDBExecutor(vector_store))
    registry.register(NodeType.OUTPUT, OutputExecutor())
    return registry


__all__ = [
    'NodeConfig',
    'NodeExecutor',
    'FunctionRegistry',
    'create_default_registry',
]
