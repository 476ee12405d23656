"""Identifier forms of names and cell text.

Names taken from a workbook (column titles, group names, text cells) usually contain
blanks and special characters. Two identifier forms are derived from them:

- lenient: [A-Za-z_][A-Za-z0-9_]*, blanks become underscores
- strict:  [A-Za-z][A-Za-z0-9]*, blanks are removed

Other unpermitted character runs become a single 'x'. Within one workbook, different
names never share an identifier: the IdentifierTable remembers every transformed name
and disambiguates colliding stems.
"""

import logging
import re
from typing import Optional

from sheetmodel.core.config import settings
from sheetmodel.core.error_counter import ErrorCounter
from sheetmodel.core.sheet_source import trim

logger = logging.getLogger(__name__)

_RE_IDENTIFIER = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")
_RE_STRICT_IDENTIFIER = re.compile(r"[A-Za-z][A-Za-z0-9]*")
_RE_WHITESPACE = re.compile(r"[ \t\n\x0b\f\r]+")
_RE_NOT_IDENTIFIER_CHARS = re.compile(r"[^a-zA-Z0-9_]+")
_RE_NOT_STRICT_IDENTIFIER_CHARS = re.compile(r"[^a-zA-Z0-9]+")

_MAX_LEN_LOGGED_NAME = 32


def is_identifier(name: str) -> bool:
    return _RE_IDENTIFIER.fullmatch(name) is not None


def is_strict_identifier(name: str) -> bool:
    return _RE_STRICT_IDENTIFIER.fullmatch(name) is not None


def make_identifier(name: str) -> str:
    """Shape a lenient identifier from a name, without disambiguation."""
    ident = trim(name)
    if not ident or "0" <= ident[0] <= "9":
        ident = "_" + ident
    ident = _RE_WHITESPACE.sub("_", ident)
    return _RE_NOT_IDENTIFIER_CHARS.sub("x", ident)


def make_strict_identifier(name: str) -> str:
    """Shape a strict identifier from a name, without disambiguation."""
    ident = trim(name)
    if not ident or "0" <= ident[0] <= "9":
        ident = "x" + ident
    ident = _RE_WHITESPACE.sub("", ident)
    return _RE_NOT_STRICT_IDENTIFIER_CHARS.sub("x", ident)


def _truncated(name: str) -> str:
    if len(name) > _MAX_LEN_LOGGED_NAME:
        return name[:_MAX_LEN_LOGGED_NAME] + "[..]"
    return name


class IdentifierTable:
    """Per-workbook memo of the identifiers handed out so far.

    Lenient and strict identifiers are independent namespaces. The table is created for
    one workbook and dropped when the next workbook is parsed.
    """

    def __init__(
        self,
        errors: ErrorCounter,
        log_context: str = "",
        max_attempts: Optional[int] = None,
    ):
        self._errors = errors
        self._log_context = log_context
        self._max_attempts = (
            max_attempts if max_attempts is not None
            else settings.max_disambiguation_attempts
        )
        # ident -> name and name -> ident, per namespace
        self._name_by_ident: dict[bool, dict[str, str]] = {False: {}, True: {}}
        self._ident_by_name: dict[bool, dict[str, str]] = {False: {}, True: {}}

    def identifierfy(self, name: str, strict: bool = False) -> str:
        """Return the identifier for a name, reusing earlier results for the same name."""
        if strict and is_strict_identifier(name) or not strict and is_identifier(name):
            return name

        ident_by_name = self._ident_by_name[strict]
        name_by_ident = self._name_by_ident[strict]

        ident = ident_by_name.get(name)
        if ident is not None:
            return ident

        stem = make_strict_identifier(name) if strict else make_identifier(name)
        separator = "x" if strict else "_"
        ident = stem
        attempt = 0
        while ident in name_by_ident:
            if attempt >= self._max_attempts:
                self._errors.error()
                logger.error(
                    f"{self._log_context}No unambiguous identifier could be found for"
                    f" name {_truncated(name)}. The input data is too ambiguous"
                )
                return ident
            attempt += 1
            ident = f"{stem}{separator}{attempt}"

        logger.debug(
            f"{self._log_context}Associate \"{_truncated(name)}\" with identifier"
            f" {_truncated(ident)}"
        )
        name_by_ident[ident] = name
        ident_by_name[name] = ident
        return ident
