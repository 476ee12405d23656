"""Sheet Model Builder — turns worksheets into row objects, row groups and sorted lists.

Every parsed row of a worksheet becomes a RowObject whose properties are the classified
cells, named by the column titles. Row objects are placed into the worksheet's root
group or into nested sub-groups according to the grouping scheme; finally rows and
groups are sorted according to the sort scheme.
"""

import logging
from dataclasses import dataclass, field
from functools import cmp_to_key
from pathlib import Path
from typing import Optional

import openpyxl

from sheetmodel.core.cell import Cell, CellType, classify_cell, compare_cells
from sheetmodel.core.column_titles import ColumnTitleRegistry, SchemeEntry
from sheetmodel.core.error_counter import ErrorCounter
from sheetmodel.core.identifier import IdentifierTable
from sheetmodel.core.sheet_source import OpenpyxlSheet, SheetSource
from sheetmodel.core.sheet_template import WorkbookTemplate, WorksheetTemplate
from sheetmodel.core.sort_order import SortOrder, comparator

logger = logging.getLogger(__name__)


@dataclass
class RowObject:
    """One parsed worksheet row; property name -> non-blank cell."""
    row: int                                 # 0-based worksheet row
    cells: dict[str, Cell] = field(default_factory=dict)
    i0: int = -1

    @property
    def i(self) -> int:
        return self.i0 + 1

    @property
    def i_row(self) -> int:
        return self.row + 1

    def get(self, name: str) -> Optional[Cell]:
        return self.cells.get(name)

    def put_cell(self, name: str, cell: Cell, errors: ErrorCounter, log_context: str = "") -> bool:
        """Add a cell as property `name`. A second cell of the same name is rejected."""
        if name in self.cells:
            errors.error()
            logger.error(
                f"{log_context}Cell ({cell.i_row},{cell.i_col}): Property {name} is"
                f" defined more than once in row {self.i_row}. The cell is ignored"
            )
            return False
        cell.name = name
        cell.i0 = len(self.cells)
        self.cells[name] = cell
        return True


@dataclass
class RowGroup:
    """A group of row objects with nested sub-groups.

    The root group represents the whole worksheet and has no name. Sub-groups are
    named after the text of the grouping cells that created them.
    """
    name: Optional[str] = None
    ident: Optional[str] = None
    sort_order: SortOrder = SortOrder.UNDEFINED
    origin_column: int = -1                  # column that created the group, -1 for root
    rows: list[RowObject] = field(default_factory=list)
    groups: list["RowGroup"] = field(default_factory=list)
    i0: int = -1

    @property
    def i(self) -> int:
        return self.i0 + 1

    @property
    def prop(self) -> Optional[RowObject]:
        """The only row object of the group, None if there are none or several."""
        return self.rows[0] if len(self.rows) == 1 else None

    def get(self, name: str) -> Optional["RowGroup"]:
        for group in self.groups:
            if group.name == name:
                return group
        return None

    def add_row(self, row: RowObject) -> None:
        row.i0 = len(self.rows)
        self.rows.append(row)

    def add_group(self, group: "RowGroup") -> None:
        group.i0 = len(self.groups)
        self.groups.append(group)

    def __str__(self) -> str:
        return self.name if self.name is not None else "(root)"


@dataclass
class WorksheetModel:
    name: str
    root: RowGroup
    titles: dict[int, str]
    grouping_scheme: Optional[tuple[SchemeEntry, ...]] = None
    sort_scheme: Optional[tuple[SchemeEntry, ...]] = None
    ident: Optional[str] = None             # identifier form of the tab name, if requested
    i0: int = -1

    @property
    def sort_name(self) -> str:
        return self.ident if self.ident is not None else self.name

    @property
    def rows(self) -> list[RowObject]:
        return self.root.rows

    @property
    def groups(self) -> list[RowGroup]:
        return self.root.groups


@dataclass
class WorkbookModel:
    file_name: str
    sheets: list[WorksheetModel] = field(default_factory=list)
    errors: ErrorCounter = field(default_factory=ErrorCounter)

    def sheet(self, name: str) -> Optional[WorksheetModel]:
        for ws in self.sheets:
            if ws.name == name or ws.ident == name:
                return ws
        return None


# ---------------------------------------------------------------------------
# Grouping
# ---------------------------------------------------------------------------

def _set_group_sort_order(
    group: RowGroup,
    sort_order: SortOrder,
    idx_col: int,
    errors: ErrorCounter,
    log_context: str,
) -> None:
    if idx_col == group.origin_column:
        group.sort_order = sort_order
    elif group.sort_order != sort_order:
        errors.error()
        logger.error(
            f"{log_context}Group {group} has been referenced from worksheet column"
            f" {idx_col + 1}. This column specifies sort order {sort_order.value}. However,"
            f" the group had been created with sort order {group.sort_order.value} in"
            f" worksheet column {group.origin_column + 1}. If the same group is referenced"
            f" from different columns then both columns need to have consistent settings"
        )


def add_row_with_path(
    root: RowGroup,
    row: RowObject,
    grouping_scheme: Optional[tuple[SchemeEntry, ...]],
    errors: ErrorCounter,
    identifiers: Optional[IdentifierTable] = None,
    log_context: str = "",
) -> RowGroup:
    """Place a row object into the group its grouping cells designate.

    Blank grouping cells are skipped as if the column weren't part of the path. Returns
    the group the row was added to.
    """
    parent = root
    for entry in grouping_scheme or ():
        cell = row.get(entry.title)
        if cell is None or cell.type == CellType.BLANK:
            continue

        group_name = cell.text
        if cell.type != CellType.TEXT:
            message = (
                f"{log_context}Cell ({cell.i_row},{cell.i_col}) is part of the group path"
                f" but is of unexpected type {cell.type.value}. Expect a cell of type"
                f" {CellType.TEXT.value}"
            )
            # Integers often play the role of enumerations
            if cell.type == CellType.INTEGER:
                logger.debug(message)
            else:
                errors.warning()
                logger.warning(message)

        group = parent.get(group_name)
        if group is None:
            ident = identifiers.identifierfy(group_name) if identifiers is not None else None
            group = RowGroup(name=group_name, ident=ident, origin_column=entry.index)
            parent.add_group(group)
            logger.debug(
                f"{log_context}Row {row.i_row}: Group {group} has been created as child of"
                f" parent group {parent}"
            )
        _set_group_sort_order(group, entry.sort_order, entry.index, errors, log_context)
        parent = group

    parent.add_row(row)
    return parent


# ---------------------------------------------------------------------------
# Sorting
# ---------------------------------------------------------------------------

def compare_rows(a: RowObject, b: RowObject, sort_scheme: tuple[SchemeEntry, ...]) -> int:
    """Compare two row objects by the sort scheme, primary key first.

    A row lacking a sorted property sorts behind a row that has it.
    """
    for entry in sort_scheme:
        cell_a = a.get(entry.title)
        cell_b = b.get(entry.title)
        if cell_a is None and cell_b is None:
            continue
        if cell_a is None:
            return 1
        if cell_b is None:
            return -1
        result = compare_cells(cell_a, cell_b, entry.sort_order)
        if result != 0:
            return result
    return 0


def _sort_order_of_sub_groups(group: RowGroup, errors: ErrorCounter, log_context: str) -> SortOrder:
    sort_order = group.groups[0].sort_order
    for sub_group in group.groups:
        if sub_group.sort_order != sort_order:
            errors.error()
            logger.error(
                f"{log_context}The sub-groups {group.groups[0]} and {sub_group} of group"
                f" {group} specify the deviating sort orders {sort_order.value} and"
                f" {sub_group.sort_order.value}, respectively. Sorting of sub-groups is"
                f" undefined. Please check if the involved sub-groups are defined in"
                f" different columns of the worksheet. If so adjust the sort properties of"
                f" these columns"
            )
            return SortOrder.UNDEFINED
    return sort_order


def sort_group(
    group: RowGroup,
    sort_scheme: Optional[tuple[SchemeEntry, ...]],
    errors: ErrorCounter,
    log_context: str = "",
) -> None:
    """Sort the rows and sub-groups of a group, recursively."""
    if group.rows and sort_scheme:
        logger.debug(
            f"{log_context}Sort row objects of group {group} by"
            f" {', '.join(e.title for e in sort_scheme)}"
        )
        group.rows.sort(key=cmp_to_key(lambda a, b: compare_rows(a, b, sort_scheme)))
    for i, row in enumerate(group.rows):
        row.i0 = i

    if group.groups:
        sort_order = _sort_order_of_sub_groups(group, errors, log_context)
        if sort_order != SortOrder.UNDEFINED:
            logger.debug(
                f"{log_context}Apply sort order {sort_order.value} to sub-groups of group"
                f" {group}"
            )
            key = comparator(sort_order)
            group.groups.sort(key=lambda g: key(g.name))
            for i, sub_group in enumerate(group.groups):
                sub_group.i0 = i
        for sub_group in group.groups:
            sort_group(sub_group, sort_scheme, errors, log_context)


# ---------------------------------------------------------------------------
# Worksheets and workbooks
# ---------------------------------------------------------------------------

def parse_sheet(
    sheet: SheetSource,
    template: Optional[WorksheetTemplate],
    errors: ErrorCounter,
    identifiers: Optional[IdentifierTable] = None,
    log_context: str = "",
) -> Optional[WorksheetModel]:
    """Parse a single worksheet into its data model.

    Returns None for a worksheet without populated rows.
    """
    if not sheet.has_rows():
        errors.warning()
        logger.warning(f"{log_context}Worksheet {sheet.name} is empty and is ignored")
        return None

    if identifiers is None:
        identifiers = IdentifierTable(errors, log_context)
    registry = ColumnTitleRegistry(sheet, errors, template, identifiers, log_context)
    cell_identifiers = identifiers if template is None or template.cell_identifiers else None

    root = RowGroup()
    for idx_row in range(sheet.last_row_index() + 1):
        if idx_row == registry.title_row_index:
            continue
        if template is not None and not template.is_row_supported(idx_row + 1):
            continue
        cells = sheet.row(idx_row)
        if cells is None:
            continue

        row_obj = RowObject(row=idx_row)
        for source in cells:
            if template is not None and not template.is_col_supported(source.column + 1):
                continue
            cell = classify_cell(source, errors, cell_identifiers, log_context)
            if not cell.is_not_blank:
                continue
            row_obj.put_cell(registry.title(source.column), cell, errors, log_context)

        if row_obj.cells:
            add_row_with_path(
                root, row_obj, registry.grouping_scheme(), errors, identifiers, log_context
            )

    sort_scheme = registry.sort_scheme()
    if not errors.has_errors:
        sort_group(root, sort_scheme, errors, log_context)
    else:
        logger.warning(
            f"{log_context}Sorting of row objects and groups is skipped because of earlier"
            f" errors"
        )

    return WorksheetModel(
        name=sheet.name,
        root=root,
        titles=registry.titles,
        grouping_scheme=registry.grouping_scheme(),
        sort_scheme=sort_scheme,
    )


def _sheet_identifier(sheet_name: str, identifiers: IdentifierTable, log_context: str) -> str:
    ident = identifiers.identifierfy(sheet_name)
    if ident != sheet_name:
        logger.info(
            f"{log_context}Worksheet name read from Excel tab is modified from {sheet_name}"
            f" to {ident} to make it an identifier"
        )
    return ident


def sort_worksheets(model: WorkbookModel, sort_order: SortOrder) -> None:
    """Order the worksheets of a workbook by name. Skipped once an error was counted."""
    if model.errors.has_errors:
        logger.warning(
            f"{model.file_name}: Sorting of worksheets is skipped because of earlier errors"
        )
        return
    logger.debug(f"{model.file_name}: Apply sort order {sort_order.value} to worksheets")
    key = comparator(sort_order)
    model.sheets.sort(key=lambda ws: key(ws.sort_name))
    for i, ws in enumerate(model.sheets):
        ws.i0 = i


def _select_sheets(wb, template: WorkbookTemplate) -> list[str]:
    """Names of the worksheets to parse, in workbook order."""
    if template.sheet_names is None and template.sheet_indexes is None:
        return list(wb.sheetnames)

    selected = set()
    for name in template.sheet_names or []:
        if name not in wb.sheetnames:
            logger.warning(f"Sheet '{name}' not found in workbook")
            continue
        selected.add(name)
    for idx in template.sheet_indexes or []:
        if not 0 <= idx < len(wb.sheetnames):
            logger.warning(f"Sheet index {idx} out of range")
            continue
        selected.add(wb.sheetnames[idx])
    return [name for name in wb.sheetnames if name in selected]


def parse_workbook(
    file_path: Path,
    template: Optional[WorkbookTemplate] = None,
    errors: Optional[ErrorCounter] = None,
) -> WorkbookModel:
    """Parse an Excel workbook into row objects and groups, one model per worksheet.

    The workbook is read twice: once with formulas and once with the cached formula
    results. All worksheets share one identifier table.
    """
    file_path = Path(file_path)
    template = template or WorkbookTemplate()
    errors = errors if errors is not None else ErrorCounter()
    model = WorkbookModel(file_name=file_path.name, errors=errors)

    logger.info(f"Parsing workbook {file_path}")
    wb = openpyxl.load_workbook(file_path, data_only=False)
    wb_values = openpyxl.load_workbook(file_path, data_only=True)
    identifiers = IdentifierTable(errors, f"{file_path.name}: ")

    for sheet_name in _select_sheets(wb, template):
        log_context = f"{file_path.name}, {sheet_name}: "
        sheet = OpenpyxlSheet(wb[sheet_name], wb_values[sheet_name])
        ws_model = parse_sheet(sheet, template.worksheet, errors, identifiers, log_context)
        if ws_model is not None:
            if template.sheet_names_are_identifiers:
                ws_model.ident = _sheet_identifier(sheet_name, identifiers, log_context)
            ws_model.i0 = len(model.sheets)
            model.sheets.append(ws_model)

    if template.sort_order_worksheets != SortOrder.UNDEFINED:
        sort_worksheets(model, template.sort_order_worksheets)

    wb.close()
    wb_values.close()
    logger.info(
        f"Workbook {file_path.name} parsed: {len(model.sheets)} worksheet(s),"
        f" {errors.no_errors} error(s), {errors.no_warnings} warning(s)"
    )
    return model
