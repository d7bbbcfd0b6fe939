from pydantic import BaseModel, Field
from typing import Any, List, Literal, Optional

from entity_queries.core.config import settings

Op = Literal["=", "!=", ">", "<", ">=", "<=", "~"]
Dir = Literal["asc", "desc"]
Match = Literal["all", "any"]

class FilterClause(BaseModel):
    field: str
    op: Op
    value: Any

class SortClause(BaseModel):
    field: str
    dir: Dir = "asc"

class Page(BaseModel):
    limit: int = Field(default_factory=lambda: settings.QUERY_DEFAULT_PAGE_LIMIT, ge=0)
    offset: int = Field(default=0, ge=0)

class UniversalQuery(BaseModel):
    filters: List[FilterClause] = []
    sort: List[SortClause] = []
    # None disables paging entirely.
    page: Optional[Page] = Field(default_factory=Page)
    # "all" ANDs the filter clauses, "any" ORs them.
    match: Match = "all"
