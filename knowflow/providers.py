"""
Provider Collaborators - LLM, knowledge retrieval, web search and vector store

Executors depend on the abstract interfaces only; the httpx implementations
below talk to OpenAI-compatible, retrieval, Brave and vector-store services.
Connection retries live here, never in the engine.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional
import logging
import time

import httpx
from pydantic import BaseModel, Field

from .config import EngineConfig, get_engine_config
from .errors import ProviderError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Data types
# ---------------------------------------------------------------------------

class TokenUsage(BaseModel):
    promptTokens: int = 0
    completionTokens: int = 0
    totalTokens: int = 0


class LLMResponse(BaseModel):
    text: str
    usage: TokenUsage = Field(default_factory=TokenUsage)
    model: Optional[str] = None


class RetrievalOptions(BaseModel):
    """Options accepted by KnowledgeRetriever.retrieve_knowledge"""
    workspaceId: str
    limit: int = 5
    threshold: float = 0.7
    useHybridSearch: bool = True
    keywordWeight: float = 0.3
    includeMetadata: bool = True
    includeSourceText: bool = True
    maxContextLength: int = 2000
    filters: Optional[Dict[str, Any]] = None


class RetrievalQuery(BaseModel):
    originalQuery: str = ""
    processedQuery: str = ""
    expandedQueries: List[str] = Field(default_factory=list)


class RetrievalMetadata(BaseModel):
    executionTimeMs: float = 0
    totalResults: Optional[int] = None


class KnowledgeRetrievalResult(BaseModel):
    context: str = ""
    citations: List[Any] = Field(default_factory=list)
    query: RetrievalQuery = Field(default_factory=RetrievalQuery)
    results: List[Dict[str, Any]] = Field(default_factory=list)
    metadata: RetrievalMetadata = Field(default_factory=RetrievalMetadata)


class WebSearchResult(BaseModel):
    title: str
    url: str
    snippet: str = ""
    source: Optional[str] = None
    timestamp: Optional[str] = None
    provider: Optional[str] = None


# ---------------------------------------------------------------------------
# Interfaces
# ---------------------------------------------------------------------------

class LLMProvider(ABC):
    @abstractmethod
    async def generate_text(
        self,
        model: str,
        prompt: str,
        system_prompt: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 1000,
    ) -> LLMResponse:
        raise NotImplementedError


class KnowledgeRetriever(ABC):
    @abstractmethod
    async def retrieve_knowledge(self, query: str, options: RetrievalOptions) -> KnowledgeRetrievalResult:
        raise NotImplementedError


class WebSearchProvider(ABC):
    @abstractmethod
    async def search(
        self,
        query: str,
        provider: Optional[str] = None,
        result_count: int = 3,
        safe_search: bool = True,
        time_range: Optional[str] = None,
    ) -> List[WebSearchResult]:
        raise NotImplementedError


class VectorStore(ABC):
    @abstractmethod
    async def search(
        self,
        table: str,
        query: Optional[str] = None,
        embeddings: Optional[List[float]] = None,
        limit: int = 10,
        filter: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        raise NotImplementedError

    @abstractmethod
    async def insert(self, table: str, records: List[Dict[str, Any]]) -> int:
        raise NotImplementedError

    @abstractmethod
    async def update(self, table: str, filter: Optional[str], values: Dict[str, Any]) -> int:
        raise NotImplementedError

    @abstractmethod
    async def delete(self, table: str, filter: Optional[str]) -> int:
        raise NotImplementedError


# ---------------------------------------------------------------------------
# HTTP implementations
# ---------------------------------------------------------------------------

class _HttpProvider:
    """Shared httpx client construction for the HTTP collaborators"""

    name = "http"

    def __init__(self, base_url: str, config: Optional[EngineConfig] = None, api_key: Optional[str] = None):
        self.config = config or get_engine_config()
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key

    def _client(self) -> httpx.AsyncClient:
        # transport-level retries cover connection failures only
        transport = httpx.AsyncHTTPTransport(retries=self.config.provider_retries)
        return httpx.AsyncClient(timeout=self.config.provider_timeout, transport=transport)

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            async with self._client() as client:
                response = await client.post(url, json=payload, headers=self._headers())
                response.raise_for_status()
                return response.json()
        except httpx.HTTPStatusError as e:
            raise ProviderError(self.name, f"{url} returned {e.response.status_code}") from e
        except httpx.RequestError as e:
            raise ProviderError(self.name, f"request to {url} failed: {e}") from e


class OpenAICompatibleLLMProvider(_HttpProvider, LLMProvider):
    """Chat completion against an OpenAI-compatible /v1/chat/completions endpoint"""

    name = "llm"

    def __init__(self, config: Optional[EngineConfig] = None):
        config = config or get_engine_config()
        super().__init__(config.llm_api_url, config, api_key=config.llm_api_key)

    async def generate_text(
        self,
        model: str,
        prompt: str,
        system_prompt: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 1000,
    ) -> LLMResponse:
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        data = await self._post(
            "/v1/chat/completions",
            {
                "model": model or self.config.default_llm_model,
                "messages": messages,
                "temperature": temperature,
                "max_tokens": max_tokens,
            },
        )

        choice = (data.get("choices") or [{}])[0]
        message = choice.get("message", {})
        usage = data.get("usage", {})

        return LLMResponse(
            text=message.get("content", "") or "",
            model=data.get("model", model),
            usage=TokenUsage(
                promptTokens=usage.get("prompt_tokens", 0),
                completionTokens=usage.get("completion_tokens", 0),
                totalTokens=usage.get("total_tokens", 0),
            ),
        )


class HttpKnowledgeRetriever(_HttpProvider, KnowledgeRetriever):
    """Knowledge retrieval through the document service's retrieve endpoint"""

    name = "retrieval"

    def __init__(self, config: Optional[EngineConfig] = None):
        config = config or get_engine_config()
        super().__init__(config.retrieval_api_url, config)

    async def retrieve_knowledge(self, query: str, options: RetrievalOptions) -> KnowledgeRetrievalResult:
        start = time.monotonic()
        data = await self._post(
            "/api/v1/rag/retrieve",
            {"query": query, **options.model_dump(exclude_none=True)},
        )
        result = KnowledgeRetrievalResult.model_validate(data)
        if not result.query.processedQuery:
            result.query = RetrievalQuery(originalQuery=query, processedQuery=query)
        if not result.metadata.executionTimeMs:
            result.metadata.executionTimeMs = round((time.monotonic() - start) * 1000, 1)
        return result


class BraveSearchProvider(_HttpProvider, WebSearchProvider):
    """Web search via the Brave Search API"""

    name = "web-search"

    FRESHNESS = {"day": "pd", "week": "pw", "month": "pm", "year": "py"}

    def __init__(self, config: Optional[EngineConfig] = None):
        config = config or get_engine_config()
        super().__init__(config.search_api_url, config, api_key=config.search_api_key)

    async def search(
        self,
        query: str,
        provider: Optional[str] = None,
        result_count: int = 3,
        safe_search: bool = True,
        time_range: Optional[str] = None,
    ) -> List[WebSearchResult]:
        provider = provider or self.config.search_provider
        if provider != "brave":
            raise ProviderError(self.name, f"unsupported search provider: {provider}")
        if not self.api_key:
            raise ProviderError(self.name, f"API key not set for provider: {provider}")

        params = {
            "q": query,
            "count": result_count,
            "safesearch": "strict" if safe_search else "off",
        }
        if time_range in self.FRESHNESS:
            params["freshness"] = self.FRESHNESS[time_range]

        try:
            async with self._client() as client:
                response = await client.get(
                    self.base_url,
                    params=params,
                    headers={"Accept": "application/json", "X-Subscription-Token": self.api_key},
                )
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            raise ProviderError(self.name, f"search returned {e.response.status_code}") from e
        except httpx.RequestError as e:
            raise ProviderError(self.name, f"search request failed: {e}") from e

        timestamp = datetime.utcnow().isoformat()
        results = []
        for item in data.get("web", {}).get("results", [])[:result_count]:
            results.append(WebSearchResult(
                title=item.get("title", ""),
                url=item.get("url", ""),
                snippet=item.get("description", ""),
                source=item.get("profile", {}).get("name") or provider,
                timestamp=timestamp,
                provider=provider,
            ))
        return results


class HttpVectorStore(_HttpProvider, VectorStore):
    """LanceDB table operations exposed by the vector service"""

    name = "lancedb"

    def __init__(self, config: Optional[EngineConfig] = None):
        config = config or get_engine_config()
        super().__init__(config.vector_api_url, config)

    async def search(self, table, query=None, embeddings=None, limit=10, filter=None):
        data = await self._post(
            f"/api/v1/lancedb/{table}/search",
            {"query": query, "vector": embeddings, "limit": limit, "filter": filter},
        )
        return data.get("results", [])

    async def insert(self, table, records):
        data = await self._post(f"/api/v1/lancedb/{table}/insert", {"records": records})
        return data.get("count", len(records))

    async def update(self, table, filter, values):
        data = await self._post(f"/api/v1/lancedb/{table}/update", {"filter": filter, "values": values})
        return data.get("count", 0)

    async def delete(self, table, filter):
        data = await self._post(f"/api/v1/lancedb/{table}/delete", {"filter": filter})
        return data.get("count", 0)
