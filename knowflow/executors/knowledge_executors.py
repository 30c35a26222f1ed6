"""
Knowledge Node Executors - Knowledge-base retrieval and RAG
"""

from typing import Any, Dict, List, Optional
import logging

from pydantic import BaseModel, Field

from ..context import ExecutionContext
from ..models import NodeCategory, WorkflowNode
from ..providers import KnowledgeRetrievalResult, KnowledgeRetriever, LLMProvider, LLMResponse, RetrievalOptions
from ..resolver import TEMPLATE_PATTERN, stringify
from .base import NodeConfig, NodeExecutor, dump, require

logger = logging.getLogger(__name__)

DEFAULT_KEYWORD_WEIGHT = 0.3


class KnowledgeBaseNodeConfig(NodeConfig):
    query: Optional[str] = None
    workspaceId: Optional[str] = None
    topK: int = Field(5, gt=0)
    similarityThreshold: float = Field(70, ge=0, le=100)  # percent
    retrievalMethod: str = "hybrid"
    keywordWeight: Optional[float] = Field(None, ge=0, le=1)
    useQueryExpansion: bool = True
    includeMetadata: bool = True
    formatResults: str = "text"
    maxContextLength: int = Field(2000, gt=0)
    enhancedContext: bool = False
    generateCitations: bool = True
    filterOptions: Dict[str, Any] = Field(default_factory=dict)


class RAGNodeConfig(KnowledgeBaseNodeConfig):
    topK: int = Field(3, gt=0)
    retrievalMethod: str = "similarity"
    datasource: Optional[str] = None
    documentStore: Optional[str] = None
    # Optional generation step over the retrieved context
    model: Optional[str] = None
    prompt: Optional[str] = None
    systemPrompt: Optional[str] = None
    temperature: float = 0.7
    maxTokens: int = 1000

    @property
    def scope_id(self) -> Optional[str]:
        return self.workspaceId or self.datasource or self.documentStore


# One result model per output format

class TextKnowledgeResult(BaseModel):
    context: str
    citations: List[Any]
    query: str
    expandedQuery: str
    documentCount: int
    executionTime: float


class JsonKnowledgeResult(BaseModel):
    context: str
    citations: List[Any]
    results: List[Dict[str, Any]]
    query: Dict[str, Any]
    metadata: Dict[str, Any]


class CompactKnowledgeResult(BaseModel):
    context: str
    documentCount: int
    topDocuments: List[Dict[str, Any]]


class CitationsOnlyResult(BaseModel):
    citations: List[Any] = Field(default_factory=list)
    query: Optional[str] = None
    message: Optional[str] = None


class RAGResult(BaseModel):
    query: str
    context: str
    citations: List[Any]
    results: List[Dict[str, Any]]
    documentCount: int
    expandedQuery: str
    answer: Optional[str] = None
    executionTime: float


def similarity_to_threshold(similarity: float) -> float:
    """0-100 similarity percentage to a 0-1 threshold"""
    return similarity / 100


def format_knowledge_results(
    result: KnowledgeRetrievalResult,
    format: Optional[str] = "text",
    generate_citations: bool = True,
) -> Dict[str, Any]:
    """
    Shape a retrieval result into one of the supported output formats.

    Unknown formats fall back to "raw", the unmodified retrieval result.
    """
    fmt = (format or "raw").lower()
    citations = result.citations if generate_citations else []

    if fmt == "text":
        return TextKnowledgeResult(
            context=result.context,
            citations=citations,
            query=result.query.processedQuery,
            expandedQuery="; ".join(result.query.expandedQueries),
            documentCount=len(result.results),
            executionTime=result.metadata.executionTimeMs,
        ).model_dump()

    if fmt == "json":
        return JsonKnowledgeResult(
            context=result.context,
            citations=citations,
            results=result.results,
            query={
                "original": result.query.originalQuery,
                "processed": result.query.processedQuery,
                "expanded": result.query.expandedQueries,
            },
            metadata=result.metadata.model_dump(),
        ).model_dump()

    if fmt == "compact":
        return CompactKnowledgeResult(
            context=result.context,
            documentCount=len(result.results),
            topDocuments=[
                {"title": doc.get("documentName"), "score": doc.get("similarity")}
                for doc in result.results[:3]
            ],
        ).model_dump()

    if fmt == "citations-only":
        if not generate_citations:
            return dump(CitationsOnlyResult(message="Citations were disabled in the node configuration"))
        return dump(CitationsOnlyResult(citations=result.citations, query=result.query.processedQuery))

    return result.model_dump()


class KnowledgeBaseExecutor(NodeExecutor):
    """Retrieve context from a workspace knowledge base"""

    node_type = "knowledge-base"
    display_name = "Knowledge Base"
    category = NodeCategory.RAG
    description = "Retrieve relevant knowledge with vector or hybrid search"

    config_model = KnowledgeBaseNodeConfig

    def __init__(self, retriever: KnowledgeRetriever):
        self.retriever = retriever

    def check_config(self, config: KnowledgeBaseNodeConfig) -> List[str]:
        return require(config, "query", "workspaceId")

    def build_options(
        self,
        config: KnowledgeBaseNodeConfig,
        workspace_id: str,
        node: WorkflowNode,
        context: ExecutionContext,
    ) -> RetrievalOptions:
        hybrid = config.retrievalMethod == "hybrid"
        keyword_weight = 0.0
        if hybrid:
            keyword_weight = config.keywordWeight if config.keywordWeight is not None else DEFAULT_KEYWORD_WEIGHT

        options = RetrievalOptions(
            workspaceId=workspace_id,
            limit=config.topK,
            threshold=similarity_to_threshold(config.similarityThreshold),
            useHybridSearch=hybrid,
            keywordWeight=keyword_weight,
            includeMetadata=config.includeMetadata,
            includeSourceText=True,
            maxContextLength=config.maxContextLength,
        )
        if config.filterOptions:
            options.filters = process_filters(config.filterOptions, node, context)
        return options

    async def retrieve(
        self,
        config: KnowledgeBaseNodeConfig,
        workspace_id: str,
        node: WorkflowNode,
        context: ExecutionContext,
    ) -> KnowledgeRetrievalResult:
        query = context.substitute(config.query, node_id=node.id)
        workspace_id = context.substitute(workspace_id, node_id=node.id)
        options = self.build_options(config, workspace_id, node, context)

        context.log(
            f"Retrieving from '{workspace_id}': limit={options.limit}, "
            f"threshold={options.threshold}, hybrid={options.useHybridSearch}"
        )
        context.check_cancelled()

        result = await self.retriever.retrieve_knowledge(query, options)
        if not isinstance(result, KnowledgeRetrievalResult):
            result = KnowledgeRetrievalResult.model_validate(result)
        context.log(f"Retrieved {len(result.results)} documents")
        return result

    async def execute(self, node: WorkflowNode, context: ExecutionContext) -> Dict[str, Any]:
        config: KnowledgeBaseNodeConfig = self.parse_config(node)
        errors = self.check_config(config)
        if errors:
            raise ValueError(f"Knowledge Base node misconfigured: {'; '.join(errors)}")

        result = await self.retrieve(config, config.workspaceId, node, context)
        return format_knowledge_results(result, config.formatResults, config.generateCitations)


class RAGExecutor(KnowledgeBaseExecutor):
    """Retrieval over a datasource, optionally followed by answer generation"""

    node_type = "rag"
    display_name = "RAG"
    description = "Retrieve documents and optionally generate an answer from them"

    config_model = RAGNodeConfig

    def __init__(self, retriever: KnowledgeRetriever, llm: Optional[LLMProvider] = None):
        super().__init__(retriever)
        self.llm = llm

    def check_config(self, config: RAGNodeConfig) -> List[str]:
        errors = require(config, "query")
        if not config.scope_id:
            errors.append("one of 'workspaceId', 'datasource' or 'documentStore' is required")
        if config.prompt and not config.model:
            errors.append("'model' is required when 'prompt' is set")
        return errors

    async def execute(self, node: WorkflowNode, context: ExecutionContext) -> Dict[str, Any]:
        config: RAGNodeConfig = self.parse_config(node)
        errors = self.check_config(config)
        if errors:
            raise ValueError(f"RAG node misconfigured: {'; '.join(errors)}")

        result = await self.retrieve(config, config.scope_id, node, context)
        citations = result.citations if config.generateCitations else []

        answer = None
        if config.prompt:
            answer = await self._generate_answer(config, result, node, context)

        return dump(RAGResult(
            query=result.query.processedQuery,
            context=result.context,
            citations=citations,
            results=result.results,
            documentCount=len(result.results),
            expandedQuery="; ".join(result.query.expandedQueries),
            answer=answer,
            executionTime=result.metadata.executionTimeMs,
        ))

    async def _generate_answer(
        self,
        config: RAGNodeConfig,
        result: KnowledgeRetrievalResult,
        node: WorkflowNode,
        context: ExecutionContext,
    ) -> str:
        if self.llm is None:
            raise ValueError("RAG node has a prompt but no LLM provider is configured")

        # the retrieval is visible to the prompt as {{context}} and {{query}}
        local_scope = {"context": result.context, "query": result.query.processedQuery}
        prompt = context.substitute(_bind_locals(config.prompt, local_scope), node_id=node.id)
        system_prompt = context.substitute(config.systemPrompt, node_id=node.id) if config.systemPrompt else None

        context.check_cancelled()
        response = await self.llm.generate_text(
            model=config.model,
            prompt=prompt,
            system_prompt=system_prompt,
            temperature=config.temperature,
            max_tokens=config.maxTokens,
        )
        if not isinstance(response, LLMResponse):
            response = LLMResponse.model_validate(response)
        context.log(f"RAG answer generated: {response.usage.totalTokens} tokens used")
        return response.text


def _bind_locals(template: str, local_scope: Dict[str, Any]) -> str:
    """Substitute node-local names first, leaving other references for the context"""
    def replace(match):
        name = match.group(1)
        if name in local_scope:
            return stringify(local_scope[name])
        return match.group(0)

    return TEMPLATE_PATTERN.sub(replace, template)


def process_filters(filter_options: Dict[str, Any], node: WorkflowNode, context: ExecutionContext) -> Dict[str, Any]:
    """Substitute variables in filter values (strings and string arrays)"""
    processed = {}
    for key, value in filter_options.items():
        if isinstance(value, str):
            processed[key] = context.substitute(value, node_id=node.id)
        elif isinstance(value, list):
            processed[key] = [
                context.substitute(item, node_id=node.id) if isinstance(item, str) else item
                for item in value
            ]
        elif isinstance(value, dict):
            processed[key] = process_filters(value, node, context)
        else:
            processed[key] = value
    return processed
