"""
Vector Database Node Executors - LanceDB table operations
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from ..context import ExecutionContext
from ..models import NodeCategory, WorkflowNode
from ..providers import VectorStore
from .base import NodeConfig, NodeExecutor, dump, require

OPERATIONS = ("search", "insert", "update", "delete")


class LanceDBNodeConfig(NodeConfig):
    operation: Optional[str] = None
    table: Optional[str] = None
    query: Optional[str] = None
    embeddings: Optional[Any] = None  # list of floats or a {{reference}}
    limit: int = Field(10, gt=0)
    filter: Optional[str] = None
    records: Any = None
    values: Dict[str, Any] = Field(default_factory=dict)


class LanceDBResult(BaseModel):
    operation: str
    table: str
    query: Optional[str] = None
    filter: Optional[str] = None
    results: Optional[List[Dict[str, Any]]] = None
    count: int = 0


class LanceDBExecutor(NodeExecutor):
    """Search, insert, update or delete rows of a LanceDB table"""

    node_type = "lancedb"
    display_name = "LanceDB"
    category = NodeCategory.DATABASE
    description = "Run an operation against a LanceDB table"

    config_model = LanceDBNodeConfig

    def __init__(self, store: VectorStore):
        self.store = store

    def check_config(self, config: LanceDBNodeConfig) -> List[str]:
        errors = require(config, "operation", "table")
        if config.operation and config.operation not in OPERATIONS:
            errors.append(f"Unsupported LanceDB operation: {config.operation}")
        return errors

    async def execute(self, node: WorkflowNode, context: ExecutionContext) -> Dict[str, Any]:
        config: LanceDBNodeConfig = self.parse_config(node)
        errors = self.check_config(config)
        if errors:
            raise ValueError(f"LanceDB node misconfigured: {'; '.join(errors)}")

        query = context.substitute(config.query, node_id=node.id) if config.query else None
        filter_expr = context.substitute(config.filter, node_id=node.id) if config.filter else None

        context.log(f"LanceDB {config.operation} on table '{config.table}'")
        context.check_cancelled()

        result = LanceDBResult(operation=config.operation, table=config.table, filter=filter_expr)

        if config.operation == "search":
            embeddings = context.resolve(config.embeddings, node_id=node.id)
            rows = await self.store.search(
                config.table,
                query=query,
                embeddings=embeddings,
                limit=config.limit,
                filter=filter_expr,
            )
            result.query = query
            result.results = rows
            result.count = len(rows)
        elif config.operation == "insert":
            records = context.resolve(config.records, node_id=node.id) or []
            if isinstance(records, dict):
                records = [records]
            result.count = await self.store.insert(config.table, records)
        elif config.operation == "update":
            values = context.resolve(config.values, node_id=node.id)
            result.count = await self.store.update(config.table, filter_expr, values)
        else:
            result.count = await self.store.delete(config.table, filter_expr)

        context.log(f"LanceDB {config.operation} affected {result.count} rows")
        return dump(result)
