"""
LLM Node Executors - Language model operations
"""

from typing import Any, Dict, List, Optional
import time

from pydantic import BaseModel, Field

from ..context import ExecutionContext
from ..models import NodeCategory, WorkflowNode
from ..providers import LLMProvider, LLMResponse, TokenUsage
from .base import NodeConfig, NodeExecutor, dump, require


class LLMNodeConfig(NodeConfig):
    model: Optional[str] = None
    prompt: Optional[str] = None
    systemPrompt: Optional[str] = None
    temperature: float = Field(0.7, ge=0, le=2)
    maxTokens: int = Field(1000, gt=0)


class LLMResult(BaseModel):
    text: str
    model: str
    usage: TokenUsage
    executionTime: int  # Milliseconds


class LLMExecutor(NodeExecutor):
    """Text generation with the configured model provider"""

    node_type = "llm"
    display_name = "LLM"
    category = NodeCategory.LLM
    description = "Generate text from a templated prompt"

    config_model = LLMNodeConfig

    def __init__(self, provider: LLMProvider):
        self.provider = provider

    def check_config(self, config: LLMNodeConfig) -> List[str]:
        return require(config, "model", "prompt")

    async def execute(self, node: WorkflowNode, context: ExecutionContext) -> Dict[str, Any]:
        config: LLMNodeConfig = self.parse_config(node)
        errors = self.check_config(config)
        if errors:
            raise ValueError(f"LLM node misconfigured: {'; '.join(errors)}")

        prompt = context.substitute(config.prompt, node_id=node.id)
        system_prompt = (
            context.substitute(config.systemPrompt, node_id=node.id)
            if config.systemPrompt else None
        )

        context.log(f"Calling {config.model} with {len(prompt)} prompt chars")
        context.check_cancelled()

        start = time.monotonic()
        response = await self.provider.generate_text(
            model=config.model,
            prompt=prompt,
            system_prompt=system_prompt,
            temperature=config.temperature,
            max_tokens=config.maxTokens,
        )
        if not isinstance(response, LLMResponse):
            response = LLMResponse.model_validate(response)
        elapsed = int((time.monotonic() - start) * 1000)

        context.log(f"LLM response: {response.usage.totalTokens} tokens used")

        return dump(LLMResult(
            text=response.text,
            model=response.model or config.model,
            usage=response.usage,
            executionTime=elapsed,
        ))
