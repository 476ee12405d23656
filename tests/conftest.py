"""Shared test helpers for the sheetmodel test suite."""

from pathlib import Path
from typing import Optional

import openpyxl

from sheetmodel.core.error_counter import ErrorCounter
from sheetmodel.core.identifier import IdentifierTable
from sheetmodel.core.sheet_source import CellValueType, EvaluatedCell, OpenpyxlSheet


def make_sheet(rows: list[list], sheet_name: str = "Items") -> OpenpyxlSheet:
    """Build an in-memory worksheet from rows (None leaves a cell empty)."""
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = sheet_name
    for row in rows:
        ws.append(row)
    return OpenpyxlSheet(ws)


def save_workbook(path: Path, sheets: dict[str, list[list]]) -> Path:
    """Write a workbook with one worksheet per entry of `sheets`."""
    wb = openpyxl.Workbook()
    wb.remove(wb.active)
    for name, rows in sheets.items():
        ws = wb.create_sheet(name)
        for row in rows:
            ws.append(row)
    wb.save(path)
    wb.close()
    return path


def text_cell(text: str, row: int = 1, column: int = 0) -> EvaluatedCell:
    return EvaluatedCell(row, column, CellValueType.STRING, text)


def number_cell(
    number: float,
    row: int = 1,
    column: int = 0,
    number_format: str = "General",
    is_date_formatted: bool = False,
) -> EvaluatedCell:
    return EvaluatedCell(
        row, column, CellValueType.NUMERIC, float(number), number_format,
        is_date_formatted=is_date_formatted,
    )


def make_identifiers(errors: Optional[ErrorCounter] = None) -> IdentifierTable:
    return IdentifierTable(errors if errors is not None else ErrorCounter())
