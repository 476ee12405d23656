"""Sheet Source — evaluated cell values of a worksheet, read with openpyxl.

The parser core never touches openpyxl objects. It sees a worksheet as rows of
populated cells, each either an EvaluatedCell (value, declared type tag, number
format, comment) or an EvaluationFailure if the formula result isn't available.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Any, Optional, Protocol, Union

from openpyxl.styles.numbers import is_date_format
from openpyxl.utils.datetime import to_excel
from openpyxl.worksheet.worksheet import Worksheet

logger = logging.getLogger(__name__)


class CellValueType(str, Enum):
    BOOLEAN = "boolean"
    NUMERIC = "numeric"
    STRING = "string"
    ERROR = "error"
    BLANK = "blank"


@dataclass
class EvaluatedCell:
    """A formula-resolved cell value with its declared type tag."""
    row: int                    # 0-based
    column: int                 # 0-based
    value_type: CellValueType
    value: Any = None           # bool, float, str or the error code
    number_format: str = "General"
    is_date_formatted: bool = False
    comment: Optional[str] = None
    comment_author: Optional[str] = None


@dataclass
class EvaluationFailure:
    """The value of a cell could not be determined."""
    row: int
    column: int
    reason: str


CellSource = Union[EvaluatedCell, EvaluationFailure]


class SheetSource(Protocol):
    """What the parser needs to know about a worksheet."""

    @property
    def name(self) -> str: ...

    def has_rows(self) -> bool: ...

    def last_row_index(self) -> int: ...

    def row(self, idx_row: int) -> Optional[list[CellSource]]: ...


_TRIM_CHARS = "".join(map(chr, range(0x21)))


def trim(text: str) -> str:
    """Strip leading and trailing blanks and control characters.

    Other Unicode whitespace, e.g. a no-break space, is kept as part of the text.
    """
    return text.strip(_TRIM_CHARS)


_ERROR_CODES = {"#NULL!", "#DIV/0!", "#VALUE!", "#REF!", "#NAME?", "#NUM!", "#N/A"}


def _evaluate(cell, cached_value: Any, has_cached_value: bool) -> CellSource:
    """Turn an openpyxl cell into an EvaluatedCell."""
    row = cell.row - 1
    col = cell.column - 1
    value = cell.value
    number_format = cell.number_format or "General"
    comment = author = None
    if cell.comment is not None:
        comment = trim(cell.comment.text or "")
        author = trim(cell.comment.author or "")

    if cell.data_type == "f":
        # A formula: its result is only known if the workbook holds a cached value
        if not has_cached_value or cached_value is None:
            return EvaluationFailure(row, col, f"No evaluated result for formula {value}")
        value = cached_value

    if value is None:
        return EvaluatedCell(row, col, CellValueType.BLANK, None, number_format)

    if isinstance(value, bool):
        value_type = CellValueType.BOOLEAN
    elif isinstance(value, (datetime, date, time, timedelta)):
        value = float(to_excel(value))
        value_type = CellValueType.NUMERIC
        return EvaluatedCell(
            row, col, value_type, value, number_format,
            is_date_formatted=True, comment=comment, comment_author=author,
        )
    elif isinstance(value, (int, float)):
        value = float(value)
        value_type = CellValueType.NUMERIC
    elif cell.data_type == "e" or isinstance(value, str) and value in _ERROR_CODES:
        value_type = CellValueType.ERROR
    else:
        value = str(value)
        value_type = CellValueType.STRING

    return EvaluatedCell(
        row, col, value_type, value, number_format,
        is_date_formatted=value_type == CellValueType.NUMERIC and is_date_format(number_format),
        comment=comment, comment_author=author,
    )


class OpenpyxlSheet:
    """SheetSource over an openpyxl worksheet.

    `values_ws` is the same worksheet loaded with data_only=True; it supplies the
    cached results of formula cells. Without it formulas can't be evaluated.
    """

    def __init__(self, ws: Worksheet, values_ws: Optional[Worksheet] = None):
        self._ws = ws
        self._cached: dict[tuple[int, int], Any] = {}
        if values_ws is not None:
            for row_cells in values_ws.iter_rows():
                for c in row_cells:
                    if c.value is not None:
                        self._cached[(c.row, c.column)] = c.value

        self._rows: dict[int, list] = {}
        for row_cells in ws.iter_rows():
            populated = [c for c in row_cells if c.value is not None]
            if populated:
                self._rows[populated[0].row - 1] = populated

    @property
    def name(self) -> str:
        return self._ws.title

    def has_rows(self) -> bool:
        return bool(self._rows)

    def last_row_index(self) -> int:
        return max(self._rows) if self._rows else -1

    def row(self, idx_row: int) -> Optional[list[CellSource]]:
        cells = self._rows.get(idx_row)
        if cells is None:
            return None
        result = []
        for c in cells:
            key = (c.row, c.column)
            result.append(_evaluate(c, self._cached.get(key), key in self._cached))
        return result
