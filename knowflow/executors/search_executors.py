"""
Web Search Node Executors
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from ..context import ExecutionContext
from ..models import NodeCategory, WorkflowNode
from ..providers import WebSearchProvider, WebSearchResult
from .base import NodeConfig, NodeExecutor, dump, require


class WebSearchNodeConfig(NodeConfig):
    query: Optional[str] = None
    provider: Optional[str] = None
    maxResults: int = Field(3, gt=0, le=50)
    safeSearch: bool = True
    timeRange: Optional[str] = None


class WebSearchResultSet(BaseModel):
    query: str
    provider: Optional[str] = None
    results: List[Dict[str, Any]]
    count: int
    llmContext: str


def format_llm_context(results: List[WebSearchResult]) -> str:
    """Flatten search results into a numbered block suitable for a prompt"""
    blocks = []
    for i, result in enumerate(results, start=1):
        lines = [f"[{i}] {result.title}", f"URL: {result.url}"]
        if result.snippet:
            lines.append(result.snippet)
        blocks.append("\n".join(lines))
    return "\n\n".join(blocks)


class WebSearchExecutor(NodeExecutor):
    """Search the web and expose the results to downstream prompts"""

    node_type = "web-search"
    display_name = "Web Search"
    category = NodeCategory.TOOLS
    description = "Search the web via the configured search provider"

    config_model = WebSearchNodeConfig

    def __init__(self, provider: WebSearchProvider):
        self.provider = provider

    def check_config(self, config: WebSearchNodeConfig) -> List[str]:
        return require(config, "query")

    async def execute(self, node: WorkflowNode, context: ExecutionContext) -> Dict[str, Any]:
        config: WebSearchNodeConfig = self.parse_config(node)
        errors = self.check_config(config)
        if errors:
            raise ValueError(f"Web search node misconfigured: {'; '.join(errors)}")

        query = context.substitute(config.query, node_id=node.id)
        context.log(f"Searching the web for: {query[:100]}")
        context.check_cancelled()

        raw_results = await self.provider.search(
            query=query,
            provider=config.provider,
            result_count=config.maxResults,
            safe_search=config.safeSearch,
            time_range=config.timeRange,
        )
        results = [
            r if isinstance(r, WebSearchResult) else WebSearchResult.model_validate(r)
            for r in raw_results
        ][:config.maxResults]

        context.log(f"Web search returned {len(results)} results")

        return dump(WebSearchResultSet(
            query=query,
            provider=config.provider,
            results=[r.model_dump(exclude_none=True) for r in results],
            count=len(results),
            llmContext=format_llm_context(results),
        ))
