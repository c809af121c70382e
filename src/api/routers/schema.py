"""
GET /schema, GET /schema/{table} -- schema explorer endpoints.
"""
from __future__ import annotations

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from src.nlq.service import get_schema
from src.schema.models import find_table

router = APIRouter()


class ColumnItem(BaseModel):
    name: str
    type: str
    isPrimaryKey: bool
    isNullable: bool
    isForeign: bool
    description: str | None = None


class ForeignKeyItem(BaseModel):
    column: str
    foreignTable: str
    foreignColumn: str


class TableItem(BaseModel):
    name: str
    columns: list[ColumnItem]
    foreignKeys: list[ForeignKeyItem]
    error: str | None = None


class SchemaResponse(BaseModel):
    tables: list[TableItem]


@router.get("/schema", response_model=SchemaResponse)
def list_schema(live: bool = True) -> SchemaResponse:
    """Every configured table; live introspection unless ``live=false`` or the database is down."""
    return SchemaResponse(tables=[TableItem(**t.to_dict()) for t in get_schema(live=live)])


@router.get("/schema/{table_name}", response_model=TableItem)
def get_table(table_name: str, live: bool = True) -> TableItem:
    """One table's columns and foreign keys."""
    table = find_table(get_schema(live=live), table_name)
    if table is None:
        raise HTTPException(status_code=404, detail=f"Table '{table_name}' not found")
    return TableItem(**table.to_dict())
