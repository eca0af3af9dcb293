from __future__ import annotations

from pydantic import BaseModel, Field, model_validator

from .registry import ToolSpec


class TableInput(BaseModel):
    headers: list[str] = Field(..., description="Headers of the table")
    rows: list[list[str]] = Field(..., description="Rows of the table, each with one cell per header")


class DataTable(BaseModel):
    headers: list[str]
    rows: list[list[str]]

    @model_validator(mode="after")
    def _rows_match_headers(self) -> "DataTable":
        width = len(self.headers)
        for index, row in enumerate(self.rows):
            if len(row) != width:
                raise ValueError(f"row {index} has {len(row)} cells, expected {width}")
        return self


class TableOutput(BaseModel):
    dataTable: DataTable


def generate_table(payload: TableInput) -> dict:
    """Return the table in the structure clients render."""

    return {"dataTable": {"headers": payload.headers, "rows": payload.rows}}


table_tool = ToolSpec(
    name="table_tool",
    description=(
        "Generates a data table with headers and rows and returns it in structured format for "
        "visualization. Use this whenever the user asks for a table instead of writing one in text."
    ),
    input_schema=TableInput,
    output_schema=TableOutput,
    invoke=generate_table,
    timeout=5.0,
    stream_event="table",
    status="Building a table…",
)
