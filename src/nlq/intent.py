"""
QueryIntent -- the structured intermediate representation between a
natural-language question and SQL.
"""
from __future__ import annotations

from typing import Literal, Union

from pydantic import BaseModel, Field

IntentType = Literal["select", "count", "aggregate", "group", "filter", "sort", "join"]
Operator = Literal["=", "!=", ">", "<", ">=", "<=", "LIKE"]
JoinType = Literal["inner", "left", "right", "full"]
AggregateFunction = Literal["count", "sum", "avg", "min", "max"]


class Condition(BaseModel):
    field: str
    operator: Operator
    value: Union[int, float, str]


class OrderBy(BaseModel):
    field: str
    direction: Literal["asc", "desc"] = "asc"


class Join(BaseModel):
    table: str
    condition: str = Field(..., description="ON expression, e.g. 'patients.doctor_id = doctors.id'")
    type: JoinType = "inner"


class Aggregate(BaseModel):
    function: AggregateFunction
    field: str = Field("*", description="Column the function is applied to ('*' for COUNT(*))")
    alias: str

    @property
    def expression(self) -> str:
        return f"{self.function.upper()}({self.field}) AS {self.alias}"


class QueryIntent(BaseModel):
    """What a question is asking for, before it is rendered to SQL."""

    type: IntentType = "select"
    table: str
    columns: list[str] = Field(default_factory=list)
    conditions: list[Condition] = Field(default_factory=list)
    group_by: list[str] = Field(default_factory=list)
    order_by: list[OrderBy] = Field(default_factory=list)
    joins: list[Join] = Field(default_factory=list)
    limit: int | None = None
    offset: int | None = None
    aggregate: list[Aggregate] = Field(default_factory=list)


class QueryExplanation(BaseModel):
    """User-facing breakdown of a statement, rendered by the explainer."""

    action: str
    tables: list[str] = Field(default_factory=list)
    filters: str | None = None
    grouping: str | None = None
    sorting: str | None = None
    limit: str | None = None
    joins: str | None = None
