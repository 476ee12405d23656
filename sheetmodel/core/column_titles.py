"""Column Title Registry — names the columns of a worksheet.

The column titles are the property names of the row objects in the data model:
- Titles are read from a title row of the worksheet
- Titles are aliased by user column attributes
- Anonymous columns get generic, disambiguated names (Col1, Col2, Col2_1, ...)

The registry also records the grouping scheme (nested groups of row objects) and the
sort scheme (multi-key sorting of row objects). Both are recorded by column index and
get their titles on first read, when all titles are final.
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional, Union

from sheetmodel.core.config import settings
from sheetmodel.core.error_counter import ErrorCounter
from sheetmodel.core.identifier import IdentifierTable
from sheetmodel.core.sheet_source import (
    CellSource,
    CellValueType,
    EvaluationFailure,
    SheetSource,
    trim,
)
from sheetmodel.core.sheet_template import (
    FIRST_NON_BLANK_ROW,
    ColumnAttributes,
    WorksheetTemplate,
)
from sheetmodel.core.sort_order import SortOrder

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SchemeEntry:
    """A column of the grouping or sort scheme with its final title."""
    index: int
    title: str
    sort_order: SortOrder
    priority: int = -1


@dataclass
class RecordedColumn:
    """A scheme entry as recorded, before its title is known."""
    index: int
    sort_order: SortOrder
    priority: int = -1


@dataclass(frozen=True)
class ResolutionFailure:
    """A column attribute specification couldn't be associated with a column."""
    reason: str


def resolve_column(
    attribs: ColumnAttributes,
    titles_as_read: dict[int, str],
) -> Union[int, ResolutionFailure]:
    """Find the 0-based column index a column attribute specification refers to.

    A title regular expression needs to match exactly one title as a whole.
    """
    if attribs.title is None:
        return attribs.index - 1

    try:
        re_title = re.compile(attribs.title)
    except re.error as e:
        return ResolutionFailure(
            f"Column attribute specification {attribs} refers to a column title by bad"
            f" regular expression {attribs.title}. {e}"
        )

    matches = [idx for idx, title in titles_as_read.items() if re_title.fullmatch(title)]
    if len(matches) != 1:
        return ResolutionFailure(
            f"Column attribute specification {attribs} refers to a column title by"
            f" regular expression {attribs.title}. An unambiguous match is required but"
            f" {len(matches)} matches were found"
        )
    return matches[0]


def insert_by_priority(scheme: list[RecordedColumn], column: RecordedColumn) -> None:
    """Insert a sorted-property column into the sort scheme.

    A pseudo priority (<= 0) puts the column at the head. A real priority is placed in
    front of the next real priority that isn't greater; pseudo entries in between are
    only passed if a greater real priority follows them.
    """
    if column.priority <= 0:
        scheme.insert(0, column)
        return

    pos = 0
    while pos < len(scheme):
        look_ahead = pos
        next_real_priority = None
        while look_ahead < len(scheme):
            candidate = scheme[look_ahead]
            look_ahead += 1
            if candidate.priority > 0:
                next_real_priority = candidate.priority
                break
        if next_real_priority is None or next_real_priority <= column.priority:
            break
        pos = look_ahead
    scheme.insert(pos, column)


class ColumnTitleRegistry:
    """Index to title mapping of one worksheet plus its grouping and sort schemes.

    Created once per worksheet, before the first data row is parsed.
    """

    def __init__(
        self,
        sheet: SheetSource,
        errors: ErrorCounter,
        template: Optional[WorksheetTemplate] = None,
        identifiers: Optional[IdentifierTable] = None,
        log_context: str = "",
    ):
        self._sheet = sheet
        self._errors = errors
        self._template = template
        self._log_context = log_context
        self._identifiers = identifiers or IdentifierTable(errors, log_context)

        self._titles: dict[int, str] = {}
        self._title_row_index: Optional[int] = None

        self._grouping_columns: list[RecordedColumn] = []
        self._sorted_columns: list[RecordedColumn] = []
        self._grouping_scheme: Optional[tuple[SchemeEntry, ...]] = None
        self._sort_scheme: Optional[tuple[SchemeEntry, ...]] = None
        self._grouping_resolved = False
        self._sort_resolved = False

        self._read_titles()
        self._apply_column_attributes()

    @property
    def title_row_index(self) -> Optional[int]:
        """0-based index of the row the titles were read from, None if there is none."""
        return self._title_row_index

    @property
    def titles(self) -> dict[int, str]:
        return dict(self._titles)

    # ------------------------------------------------------------------
    # Reading titles from the worksheet
    # ------------------------------------------------------------------

    def _find_title_row(self, idx_row: int) -> Optional[list[CellSource]]:
        """Get the title row by 0-based index or, for a negative index, the first
        non-blank row."""
        if not self._sheet.has_rows():
            return None
        if idx_row >= 0:
            row = self._sheet.row(idx_row)
            if row is not None:
                self._title_row_index = idx_row
            return row
        for idx in range(self._sheet.last_row_index() + 1):
            row = self._sheet.row(idx)
            if row is not None:
                self._title_row_index = idx
                logger.info(f"{self._log_context}Row {idx + 1} is used as column title row")
                return row
        return None

    def _title_from_cell(self, cell: CellSource) -> Optional[str]:
        position = f"Cell ({cell.row + 1},{cell.column + 1})"
        if isinstance(cell, EvaluationFailure):
            self._errors.warning()
            logger.warning(
                f"{self._log_context}{position} is specified to contain the column title"
                f" but it can't be evaluated. A generic column name will be used instead."
                f" {cell.reason}"
            )
            return None

        if cell.value_type == CellValueType.BOOLEAN:
            self._errors.warning()
            logger.warning(
                f"{self._log_context}{position} is specified to contain the column title"
                f" but is of type boolean. A generic column name will be used instead"
            )
            return None
        if cell.value_type == CellValueType.NUMERIC:
            self._errors.warning()
            logger.warning(
                f"{self._log_context}{position} is specified to contain the column title"
                f" but is of numeric type. A generic column name will be used instead"
            )
            return None
        if cell.value_type != CellValueType.STRING:
            return None

        title = trim(str(cell.value))
        logger.debug(f"{self._log_context}{position}: Found \"{title}\" as column title")
        return title or None

    def _read_titles(self) -> None:
        template = self._template
        if template is not None and not template.reads_title_row:
            logger.info(f"{self._log_context}No title row is read from the worksheet")
            return

        title_row = template.title_row if template is not None else FIRST_NON_BLANK_ROW
        idx_title_row = title_row - 1
        row_designation = str(title_row) if title_row != FIRST_NON_BLANK_ROW else "(first non-empty)"

        row = self._find_title_row(idx_title_row)
        if row is None:
            self._errors.error()
            logger.error(
                f"{self._log_context}Row {row_designation}, which is specified to hold the"
                f" column titles, doesn't exist in the worksheet"
            )
            return

        logger.debug(
            f"{self._log_context}Parsing row {row_designation} as title row with"
            f" {len(row)} cells"
        )
        no_titles_found = 0
        for cell in row:
            if template is not None and not template.is_col_supported(cell.column + 1):
                continue

            title = self._title_from_cell(cell)
            if title is None:
                continue

            no_titles_found += 1
            if template is not None and template.column_titles_are_identifiers:
                title_ident = self._identifiers.identifierfy(title, strict=False)
                if title_ident != title:
                    logger.info(
                        f"{self._log_context}Column title read from cell"
                        f" ({cell.row + 1},{cell.column + 1}) is modified from {title} to"
                        f" {title_ident} to make it an identifier"
                    )
                    title = title_ident
            self._titles[cell.column] = title

        if no_titles_found == 0:
            self._errors.error()
            logger.error(
                f"{self._log_context}Row {row_designation}, which is specified to hold the"
                f" column titles, doesn't contain valid cells"
            )

    # ------------------------------------------------------------------
    # Column attributes
    # ------------------------------------------------------------------

    def _put_title(self, idx_col: int, title: str) -> None:
        aliased_title = self._titles.get(idx_col)
        self._titles[idx_col] = title
        if aliased_title is not None and aliased_title != title:
            logger.info(
                f"{self._log_context}User specified column title {title} aliases column"
                f" title {aliased_title}, which had been read from the worksheet"
            )

    def _apply_column_attributes(self) -> None:
        """Apply aliases and record the grouping and sort schemes."""
        if self._template is None or self._template.columns is None:
            return

        # Regular expressions are matched against the titles as read from the sheet;
        # a later specification must not re-match an alias made by an earlier one
        titles_as_read = dict(self._titles)
        visited_columns: set[int] = set()

        for attribs in self._template.columns:
            resolution = resolve_column(attribs, titles_as_read)
            if isinstance(resolution, ResolutionFailure):
                self._errors.error()
                logger.error(f"{self._log_context}{resolution.reason}")
                continue

            idx_col = resolution
            if idx_col in visited_columns:
                self._errors.error()
                logger.error(
                    f"{self._log_context}Column attribute specification {attribs} refers to"
                    f" column {idx_col + 1} in the parsed worksheet. However, the attributes"
                    f" of this column had already been specified before, either by column"
                    f" title or by index"
                )
                continue
            visited_columns.add(idx_col)

            if attribs.name is not None:
                self._put_title(idx_col, attribs.name)

            if attribs.is_grouping_column:
                self._grouping_columns.append(RecordedColumn(idx_col, attribs.sort_order))
            elif attribs.sort_order != SortOrder.UNDEFINED:
                insert_by_priority(
                    self._sorted_columns,
                    RecordedColumn(idx_col, attribs.sort_order, attribs.sort_priority),
                )

    # ------------------------------------------------------------------
    # Title queries
    # ------------------------------------------------------------------

    def _create_generic_title(self, idx_col: int) -> str:
        title = f"Col{idx_col + 1}"
        titles_so_far = set(self._titles.values())
        attempt = 0
        checked_title = title
        while checked_title in titles_so_far:
            if attempt >= settings.max_disambiguation_attempts:
                self._errors.error()
                logger.error(
                    f"{self._log_context}No unambiguous, generic title could be found for"
                    f" column {idx_col + 1}. The name clash with another column disables"
                    f" safe data access from the data model"
                )
                break
            attempt += 1
            checked_title = f"{title}_{attempt}"

        self._titles[idx_col] = checked_title
        return checked_title

    def title(self, idx_col: int) -> str:
        """Get the title of a column; a generic one is made if the column has none."""
        title = self._titles.get(idx_col)
        if title is None:
            title = self._create_generic_title(idx_col)
            self._errors.warning()
            logger.warning(
                f"{self._log_context}No title has been found or specified for column"
                f" {idx_col + 1}. The generic name {title} is used instead"
            )
        return title

    def _finalize(self, recorded: list[RecordedColumn], kind: str) -> tuple[SchemeEntry, ...]:
        logger.debug(f"{self._log_context}{kind}:")
        entries = []
        for column in recorded:
            entry = SchemeEntry(
                column.index, self.title(column.index), column.sort_order, column.priority
            )
            logger.debug(
                f"  idx: {entry.index}, title: {entry.title}, sort order:"
                f" {entry.sort_order.value}, priority: {entry.priority}"
            )
            entries.append(entry)
        return tuple(entries)

    def grouping_scheme(self) -> Optional[tuple[SchemeEntry, ...]]:
        """The grouping columns, outermost first, or None if no column groups."""
        if not self._grouping_resolved:
            if self._grouping_columns:
                self._grouping_scheme = self._finalize(self._grouping_columns, "grouping scheme")
            self._grouping_resolved = True
        return self._grouping_scheme

    def sort_scheme(self) -> Optional[tuple[SchemeEntry, ...]]:
        """The sorted property columns, primary sort key first, or None."""
        if not self._sort_resolved:
            if self._sorted_columns:
                self._sort_scheme = self._finalize(self._sorted_columns, "sort scheme")
            self._sort_resolved = True
        return self._sort_scheme
