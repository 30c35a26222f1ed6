"""
Workflow Templates - Pre-built workflow templates for common use cases
"""

import copy
import uuid
from typing import Any, Dict, List, Optional

from .models import Workflow

# Pre-built workflow templates
WORKFLOW_TEMPLATES = [
    {
        "id": "simple-rag",
        "name": "Simple RAG",
        "description": "Answer a question from a workspace knowledge base",
        "category": "rag",
        "nodes": [
            {
                "id": "trigger-1",
                "type": "trigger",
                "position": {"x": 100, "y": 200},
                "data": {"label": "Start", "triggerType": "manual"},
            },
            {
                "id": "kb-1",
                "type": "knowledge-base",
                "position": {"x": 350, "y": 200},
                "data": {
                    "label": "Knowledge Base",
                    "query": "{{input.query}}",
                    "workspaceId": "{{input.workspaceId}}",
                    "topK": 5,
                    "similarityThreshold": 70,
                    "retrievalMethod": "hybrid",
                    "formatResults": "text",
                },
            },
            {
                "id": "llm-1",
                "type": "llm",
                "position": {"x": 600, "y": 200},
                "data": {
                    "label": "Generate Answer",
                    "model": "gpt-4o-mini",
                    "systemPrompt": "Answer using only the provided context.",
                    "prompt": "Context:\n{{kb-1.context}}\n\nQuestion: {{input.query}}\n\nAnswer:",
                    "temperature": 0.3,
                    "maxTokens": 800,
                },
            },
            {
                "id": "output-1",
                "type": "output",
                "position": {"x": 850, "y": 200},
                "data": {"label": "Answer", "variableName": "answer", "source": "llm-1.text"},
            },
        ],
        "edges": [
            {"id": "e1", "source": "trigger-1", "target": "kb-1"},
            {"id": "e2", "source": "kb-1", "target": "llm-1"},
            {"id": "e3", "source": "llm-1", "target": "output-1"},
        ],
    },
    {
        "id": "web-search-answer",
        "name": "Web Search Answer",
        "description": "Search the web and summarize the findings",
        "category": "tools",
        "nodes": [
            {
                "id": "trigger-1",
                "type": "trigger",
                "position": {"x": 100, "y": 200},
                "data": {"label": "Start"},
            },
            {
                "id": "search-1",
                "type": "web-search",
                "position": {"x": 350, "y": 200},
                "data": {"label": "Web Search", "query": "{{input.query}}", "maxResults": 5},
            },
            {
                "id": "llm-1",
                "type": "llm",
                "position": {"x": 600, "y": 200},
                "data": {
                    "label": "Summarize",
                    "model": "gpt-4o-mini",
                    "prompt": "Using these search results:\n{{search-1.llmContext}}\n\nAnswer: {{input.query}}",
                },
            },
            {
                "id": "output-1",
                "type": "output",
                "position": {"x": 850, "y": 200},
                "data": {"label": "Answer", "variableName": "answer", "source": "llm-1.text"},
            },
        ],
        "edges": [
            {"id": "e1", "source": "trigger-1", "target": "search-1"},
            {"id": "e2", "source": "search-1", "target": "llm-1"},
            {"id": "e3", "source": "llm-1", "target": "output-1"},
        ],
    },
    {
        "id": "conditional-routing",
        "name": "Conditional Routing",
        "description": "Route long questions to retrieval and short ones straight to the model",
        "category": "control",
        "nodes": [
            {
                "id": "trigger-1",
                "type": "trigger",
                "position": {"x": 100, "y": 200},
                "data": {"label": "Start"},
            },
            {
                "id": "condition-1",
                "type": "conditional",
                "position": {"x": 350, "y": 200},
                "data": {"label": "Needs retrieval?", "condition": "input.query.length > 40"},
            },
            {
                "id": "rag-1",
                "type": "rag",
                "position": {"x": 600, "y": 100},
                "data": {
                    "label": "Retrieve",
                    "query": "{{input.query}}",
                    "workspaceId": "{{input.workspaceId}}",
                    "model": "gpt-4o-mini",
                    "prompt": "Context:\n{{context}}\n\nQuestion: {{query}}",
                },
            },
            {
                "id": "llm-1",
                "type": "llm",
                "position": {"x": 600, "y": 300},
                "data": {"label": "Quick Answer", "model": "gpt-4o-mini", "prompt": "{{input.query}}"},
            },
            {
                "id": "output-long",
                "type": "output",
                "position": {"x": 850, "y": 100},
                "data": {"label": "Detailed Answer", "variableName": "answer", "source": "rag-1.answer"},
            },
            {
                "id": "output-short",
                "type": "output",
                "position": {"x": 850, "y": 300},
                "data": {"label": "Quick Answer", "variableName": "answer", "source": "llm-1.text"},
            },
        ],
        "edges": [
            {"id": "e1", "source": "trigger-1", "target": "condition-1"},
            {"id": "e2", "source": "condition-1", "target": "rag-1", "sourceHandle": "true"},
            {"id": "e3", "source": "condition-1", "target": "llm-1", "sourceHandle": "false"},
            {"id": "e4", "source": "rag-1", "target": "output-long"},
            {"id": "e5", "source": "llm-1", "target": "output-short"},
        ],
    },
    {
        "id": "hybrid-research",
        "name": "Hybrid Research",
        "description": "Combine internal knowledge and web results in one answer",
        "category": "rag",
        "nodes": [
            {
                "id": "trigger-1",
                "type": "trigger",
                "position": {"x": 100, "y": 200},
                "data": {"label": "Start"},
            },
            {
                "id": "kb-1",
                "type": "knowledge-base",
                "position": {"x": 350, "y": 100},
                "data": {
                    "label": "Internal Knowledge",
                    "query": "{{input.query}}",
                    "workspaceId": "{{input.workspaceId}}",
                    "formatResults": "compact",
                },
            },
            {
                "id": "search-1",
                "type": "web-search",
                "position": {"x": 350, "y": 300},
                "data": {"label": "Web Search", "query": "{{input.query}}", "maxResults": 3},
            },
            {
                "id": "llm-1",
                "type": "llm",
                "position": {"x": 600, "y": 200},
                "data": {
                    "label": "Synthesize",
                    "model": "gpt-4o-mini",
                    "systemPrompt": "Combine internal and external sources. Prefer internal sources.",
                    "prompt": (
                        "Internal:\n{{kb-1.context}}\n\nWeb:\n{{search-1.llmContext}}\n\n"
                        "Question: {{input.query}}"
                    ),
                },
            },
            {
                "id": "output-1",
                "type": "output",
                "position": {"x": 850, "y": 200},
                "data": {"label": "Report", "variableName": "report", "source": "llm-1.text"},
            },
        ],
        "edges": [
            {"id": "e1", "source": "trigger-1", "target": "kb-1"},
            {"id": "e2", "source": "trigger-1", "target": "search-1"},
            {"id": "e3", "source": "kb-1", "target": "llm-1"},
            {"id": "e4", "source": "search-1", "target": "llm-1"},
            {"id": "e5", "source": "llm-1", "target": "output-1"},
        ],
    },
]


def get_workflow_templates() -> List[Dict[str, Any]]:
    """Get all workflow templates (summary only)"""
    return [
        {
            "id": t["id"],
            "name": t["name"],
            "description": t["description"],
            "category": t["category"],
            "nodeCount": len(t["nodes"]),
        }
        for t in WORKFLOW_TEMPLATES
    ]


def get_workflow_template(template_id: str) -> Optional[Dict[str, Any]]:
    """Get a specific workflow template by ID"""
    for template in WORKFLOW_TEMPLATES:
        if template["id"] == template_id:
            return copy.deepcopy(template)
    return None


def instantiate_template(
    template_id: str,
    name: Optional[str] = None,
    overrides: Optional[Dict[str, Dict[str, Any]]] = None,
) -> Workflow:
    """
    Build a fresh Workflow from a template.

    ``overrides`` maps node ids to data keys merged into that node's data.
    """
    template = get_workflow_template(template_id)
    if template is None:
        raise KeyError(f"Unknown workflow template '{template_id}'")

    for node in template["nodes"]:
        if overrides and node["id"] in overrides:
            node["data"].update(overrides[node["id"]])

    return Workflow(
        id=f"wf-{uuid.uuid4().hex[:12]}",
        name=name or template["name"],
        description=template["description"],
        nodes=template["nodes"],
        edges=template["edges"],
        metadata={"template": template_id, "category": template["category"]},
    )
