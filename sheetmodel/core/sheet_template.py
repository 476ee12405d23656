"""Worksheet Template Format Definition.

Defines the YAML structure that tells the parser how to read a worksheet:
1. Which row holds the column titles (an explicit row, the first non-blank row or none)
2. Whether titles and text cells are turned into identifiers
3. Which rows and columns are parsed (1-based inclusion/exclusion ranges)
4. Per-column attributes: alias name, grouping characteristics, sort order and priority

Columns are addressed either by 1-based index or by a regular expression that has to
match exactly one of the titles read from the worksheet.
"""

from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from sheetmodel.core.sort_order import SortOrder

# Values of WorksheetTemplate.title_row besides an explicit 1-based row number
FIRST_NON_BLANK_ROW = 0
NO_TITLE_ROW = -1


class IndexRange(BaseModel):
    """A single 1-based index or an including range of such."""
    first: int = Field(..., ge=1)
    last: Optional[int] = None

    @model_validator(mode="after")
    def check_order(self) -> "IndexRange":
        if self.last is not None and self.last < self.first:
            raise ValueError(f"Bad index range {self.first}..{self.last}")
        return self

    def contains(self, idx: int) -> bool:
        if self.last is None:
            return idx == self.first
        return self.first <= idx <= self.last


def _coerce_ranges(value: Any) -> Any:
    """Accept `3`, `[2, 5]` and `{first: 2, last: 5}` as list elements."""
    if value is None:
        return []
    ranges = []
    for item in value:
        if isinstance(item, int):
            ranges.append({"first": item})
        elif isinstance(item, (list, tuple)) and len(item) == 2:
            ranges.append({"first": item[0], "last": item[1]})
        else:
            ranges.append(item)
    return ranges


def _is_in_set(ranges: list[IndexRange], idx: int) -> bool:
    return any(r.contains(idx) for r in ranges)


class ColumnAttributes(BaseModel):
    """User attributes of a single worksheet column."""
    title: Optional[str] = None          # regular expression, full match
    index: Optional[int] = Field(None, ge=1)
    name: Optional[str] = None
    is_grouping_column: bool = False
    sort_order: SortOrder = SortOrder.UNDEFINED
    sort_priority: int = -1

    @model_validator(mode="after")
    def check_consistency(self) -> "ColumnAttributes":
        if self.name is not None and not self.name.strip():
            raise ValueError(f"{self}: Column name is empty")
        if (self.title is None) == (self.index is None):
            raise ValueError(
                f"{self}: Column attributes are associated with a column either by"
                " title or by index; exactly one of both needs to be specified"
            )
        if self.is_grouping_column and self.sort_priority > 0:
            raise ValueError(f"{self}: A grouping column can't have a sort priority")
        return self

    def __str__(self) -> str:
        if self.name is not None:
            return self.name
        if self.title is not None:
            return f"title:{self.title}"
        if self.index is not None:
            return f"index:{self.index}"
        return "(anonymous)"


class WorksheetTemplate(BaseModel):
    name: Optional[str] = None
    title_row: int = Field(FIRST_NON_BLANK_ROW, ge=NO_TITLE_ROW)
    column_titles_are_identifiers: bool = False
    cell_identifiers: bool = True
    included_rows: list[IndexRange] = []
    excluded_rows: list[IndexRange] = []
    included_columns: list[IndexRange] = []
    excluded_columns: list[IndexRange] = []
    columns: Optional[list[ColumnAttributes]] = None

    @field_validator(
        "included_rows", "excluded_rows", "included_columns", "excluded_columns",
        mode="before",
    )
    @classmethod
    def coerce_ranges(cls, value: Any) -> Any:
        return _coerce_ranges(value)

    @property
    def reads_title_row(self) -> bool:
        return self.title_row != NO_TITLE_ROW

    def is_row_supported(self, idx_row: int) -> bool:
        """Exclusion overrules inclusion; no inclusion ranges means all rows."""
        if _is_in_set(self.excluded_rows, idx_row):
            return False
        if not self.included_rows:
            return True
        return _is_in_set(self.included_rows, idx_row)

    def is_col_supported(self, idx_col: int) -> bool:
        if _is_in_set(self.excluded_columns, idx_col):
            return False
        if not self.included_columns:
            return True
        return _is_in_set(self.included_columns, idx_col)

    def __str__(self) -> str:
        return self.name if self.name is not None else "(anonymous)"


class WorkbookTemplate(BaseModel):
    """Which worksheets of a workbook to parse and with which template."""
    sheet_names: Optional[list[str]] = None
    sheet_indexes: Optional[list[int]] = None
    sheet_names_are_identifiers: bool = False
    sort_order_worksheets: SortOrder = SortOrder.UNDEFINED
    worksheet: WorksheetTemplate = WorksheetTemplate()
