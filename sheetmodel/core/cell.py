"""Cell Classifier — turns an evaluated worksheet cell into a typed Cell record.

Cell types: blank, bool, integer, real, date, text, error. Numeric cells are narrowed
to integers if the value survives the round trip through a 64 bit integer. Text cells
additionally get identifier forms and a JSON string representation. Every non-blank
cell has the membership map `is_` for "cell text equals X" queries from templates.
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime, time
from enum import Enum
from typing import Optional

from openpyxl.utils.datetime import WINDOWS_EPOCH, from_excel

from sheetmodel.core.error_counter import ErrorCounter
from sheetmodel.core.identifier import IdentifierTable
from sheetmodel.core.sheet_source import (
    CellSource,
    CellValueType,
    EvaluatedCell,
    EvaluationFailure,
    trim,
)
from sheetmodel.core.sort_order import SortOrder, compare, compare_numbers

logger = logging.getLogger(__name__)

ERROR_TEXT = "#error in cell"
TRUE_WORDS = {"true", "yes", "okay", "ok"}

_INT64_MIN = -(2 ** 63)
_INT64_MAX_EXCL = 2 ** 63


class CellType(str, Enum):
    BLANK = "blank"
    BOOL = "bool"
    INTEGER = "integer"
    REAL = "real"
    DATE = "date"
    TEXT = "text"
    ERROR = "error"


@dataclass
class Cell:
    """A single cell of a row object.

    Blank cells are never added to the data model; a template accessing a missing
    property sees nothing rather than a blank Cell.
    """
    type: CellType = CellType.BLANK
    text: Optional[str] = None
    number: Optional[float] = None
    integer: Optional[int] = None
    boolean: bool = False
    date: Optional[datetime] = None
    ident: Optional[str] = None
    ident_strict: Optional[str] = None
    ident_equals: bool = False
    ident_strict_equals: bool = False
    json_string: Optional[str] = None
    is_: Optional[dict[str, bool]] = None
    comment: Optional[str] = None
    comment_author: Optional[str] = None
    row: int = 0
    column: int = 0
    name: Optional[str] = None
    i0: int = -1

    @property
    def i(self) -> int:
        return self.i0 + 1 if self.i0 >= 0 else -1

    @property
    def i_row(self) -> int:
        return self.row + 1

    @property
    def i_col(self) -> int:
        return self.column + 1

    @property
    def is_not_blank(self) -> bool:
        return self.type != CellType.BLANK

    @property
    def is_int(self) -> bool:
        return self.type == CellType.INTEGER

    @property
    def is_real(self) -> bool:
        return self.type == CellType.REAL

    @property
    def is_date(self) -> bool:
        return self.type == CellType.DATE

    @property
    def is_text(self) -> bool:
        return self.type == CellType.TEXT

    @property
    def is_bool(self) -> bool:
        return self.type == CellType.BOOL

    @property
    def is_error(self) -> bool:
        return self.type == CellType.ERROR

    def __str__(self) -> str:
        return self.text if self.text is not None else ""


# ---------------------------------------------------------------------------
# Text helpers
# ---------------------------------------------------------------------------

_JSON_SHORT_ESCAPES = {
    '"': '\\"',
    "\\": "\\\\",
    "/": "\\/",
    "\b": "\\b",
    "\f": "\\f",
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
}


def json_stringify(text: str) -> str:
    """Escape text for use inside a JSON string literal.

    Control characters and everything from 0x7F upwards become \\uXXXX escapes;
    characters outside the BMP are escaped as UTF-16 surrogate pairs.
    """
    parts = []
    for ch in text:
        short = _JSON_SHORT_ESCAPES.get(ch)
        if short is not None:
            parts.append(short)
            continue
        code = ord(ch)
        if code < 0x20 or code >= 0x7F:
            if code > 0xFFFF:
                code -= 0x10000
                parts.append(f"\\u{0xD800 + (code >> 10):04x}\\u{0xDC00 + (code & 0x3FF):04x}")
            else:
                parts.append(f"\\u{code:04x}")
        else:
            parts.append(ch)
    return "".join(parts)


_MONTHS = (
    "January", "February", "March", "April", "May", "June", "July",
    "August", "September", "October", "November", "December",
)
_WEEKDAYS = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")

_RE_DATE_TOKEN = re.compile(
    r'"[^"]*"|\\.|_.|\*.|AM/PM|am/pm|A/P|a/p|'
    r"[yY]+|[mM]+|[dD]+|[hH]+|[sS]+|.",
)
_RE_BRACKET = re.compile(r"\[([^\]]*)\]")


def _first_section(number_format: str) -> str:
    in_quotes = False
    for idx, ch in enumerate(number_format):
        if ch == '"':
            in_quotes = not in_quotes
        elif ch == ";" and not in_quotes:
            return number_format[:idx]
    return number_format


def format_excel_date(value: datetime, number_format: str) -> str:
    """Render a date with an Excel number format string.

    Supports the common year, month, day, hour, minute, second and AM/PM tokens,
    quoted literals and escapes. Locale and colour sections are dropped.
    """
    fmt = _first_section(number_format)
    # [h], [mm] etc. (elapsed time) are rendered like their plain counterparts
    fmt = _RE_BRACKET.sub(
        lambda m: m.group(1) if m.group(1).lower() in {"h", "hh", "m", "mm", "s", "ss"} else "",
        fmt,
    )
    if not fmt.strip() or fmt.strip().lower() == "general":
        return value.isoformat(sep=" ")

    tokens = _RE_DATE_TOKEN.findall(fmt)
    twelve_hours = any(t.lower() in ("am/pm", "a/p") for t in tokens)

    # m and mm denote minutes after an hour token or before a seconds token
    minute_positions = set()
    last_time_token = None
    for pos, tok in enumerate(tokens):
        low = tok.lower()
        if low[0] in "hs" and low.strip("hs") == "":
            if low[0] == "s" and last_time_token is not None and last_time_token[1] in ("m", "mm"):
                minute_positions.add(last_time_token[0])
            last_time_token = (pos, low)
        elif low in ("m", "mm"):
            if last_time_token is not None and last_time_token[1][0] == "h":
                minute_positions.add(pos)
            last_time_token = (pos, low)
        elif low[0] in "yd" and low.strip(low[0]) == "":
            last_time_token = None

    hour = value.hour
    if twelve_hours:
        hour = hour % 12 or 12

    out = []
    for pos, tok in enumerate(tokens):
        low = tok.lower()
        if tok.startswith('"'):
            out.append(tok[1:-1])
        elif tok.startswith("\\"):
            out.append(tok[1:])
        elif tok.startswith("_"):
            out.append(" ")
        elif tok.startswith("*") or tok == "@":
            continue
        elif low in ("am/pm", "a/p"):
            marker = "AM" if value.hour < 12 else "PM"
            if low == "a/p":
                marker = marker[0]
            out.append(marker if tok[0].isupper() else marker.lower())
        elif low[0] == "y" and low.strip("y") == "":
            out.append(f"{value.year % 100:02d}" if len(low) <= 2 else f"{value.year:04d}")
        elif low[0] == "m" and low.strip("m") == "":
            if pos in minute_positions:
                out.append(f"{value.minute:02d}" if len(low) == 2 else str(value.minute))
            elif len(low) == 1:
                out.append(str(value.month))
            elif len(low) == 2:
                out.append(f"{value.month:02d}")
            elif len(low) == 3:
                out.append(_MONTHS[value.month - 1][:3])
            elif len(low) == 5:
                out.append(_MONTHS[value.month - 1][0])
            else:
                out.append(_MONTHS[value.month - 1])
        elif low[0] == "d" and low.strip("d") == "":
            if len(low) == 1:
                out.append(str(value.day))
            elif len(low) == 2:
                out.append(f"{value.day:02d}")
            elif len(low) == 3:
                out.append(_WEEKDAYS[value.weekday()][:3])
            else:
                out.append(_WEEKDAYS[value.weekday()])
        elif low[0] == "h" and low.strip("h") == "":
            out.append(f"{hour:02d}" if len(low) >= 2 else str(hour))
        elif low[0] == "s" and low.strip("s") == "":
            out.append(f"{value.second:02d}" if len(low) >= 2 else str(value.second))
        else:
            out.append(tok)
    return "".join(out)


def _to_datetime(serial: float) -> datetime:
    value = from_excel(serial)
    if isinstance(value, time):
        return datetime.combine(WINDOWS_EPOCH.date(), value)
    return value


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

def narrow_to_integer(number: float) -> Optional[int]:
    """Return the integer equal to `number` if it fits losslessly into an int64."""
    if not (_INT64_MIN <= number < _INT64_MAX_EXCL):
        return None
    integer = int(number)
    if float(integer) != number:
        return None
    return integer


def classify_cell(
    source: CellSource,
    errors: ErrorCounter,
    identifiers: Optional[IdentifierTable] = None,
    log_context: str = "",
) -> Cell:
    """Classify one evaluated cell.

    An EvaluationFailure yields an error cell and a warning. Identifier forms of text
    cells are only derived if an identifier table is passed.
    """
    cell = Cell(row=source.row, column=source.column)

    if isinstance(source, EvaluationFailure):
        errors.warning()
        logger.warning(
            f"{log_context}Cell ({source.row + 1},{source.column + 1}) can't be evaluated."
            f" The cell is handled like a cell with a data error. {source.reason}"
        )
        source = EvaluatedCell(source.row, source.column, CellValueType.ERROR)

    cell.comment = source.comment
    cell.comment_author = source.comment_author

    if source.value_type == CellValueType.BLANK:
        return cell

    if source.value_type == CellValueType.BOOLEAN:
        cell.type = CellType.BOOL
        cell.boolean = bool(source.value)
        cell.text = "true" if cell.boolean else "false"
        cell.number = 1.0 if cell.boolean else 0.0

    elif source.value_type == CellValueType.NUMERIC:
        number = float(source.value)
        cell.number = number
        if source.is_date_formatted:
            cell.type = CellType.DATE
            cell.date = _to_datetime(number)
            cell.text = format_excel_date(cell.date, source.number_format)
            logger.debug(
                f"{log_context}Cell ({cell.i_row},{cell.i_col}): Date format is"
                f" {source.number_format}, formatted date is {cell.text}"
            )
        else:
            cell.type = CellType.REAL
            cell.text = repr(number)
        cell.boolean = number != 0.0

    elif source.value_type == CellValueType.STRING:
        text = trim(str(source.value))
        if not text:
            return cell
        cell.type = CellType.TEXT
        cell.text = text
        cell.boolean = text.lower() in TRUE_WORDS

    else:
        cell.type = CellType.ERROR
        cell.text = ERROR_TEXT

    if cell.number is not None:
        cell.integer = narrow_to_integer(cell.number)
        if cell.integer is not None and cell.type == CellType.REAL:
            cell.type = CellType.INTEGER
            cell.text = str(cell.integer)

    if cell.type == CellType.TEXT:
        if identifiers is not None:
            cell.ident = identifiers.identifierfy(cell.text, strict=False)
            cell.ident_equals = cell.text == cell.ident
            cell.ident_strict = identifiers.identifierfy(cell.text, strict=True)
            cell.ident_strict_equals = cell.text == cell.ident_strict
        cell.json_string = json_stringify(cell.text)

    cell.is_ = {trim(cell.text): True}
    return cell


def compare_cells(a: Cell, b: Cell, sort_order: SortOrder) -> int:
    """Compare two cells under a sort order.

    Lexical and ASCII orders compare the text representation. The numerical orders
    compare the numeric values; cells without one sort behind the numbers and among
    themselves by text.
    """
    if sort_order == SortOrder.NUMERICAL:
        return compare_numbers(a.number, b.number, str(a), str(b))
    if sort_order == SortOrder.INVERSE_NUMERICAL:
        return compare_numbers(a.number, b.number, str(a), str(b), inverse=True)
    return compare(str(a), str(b), sort_order)
