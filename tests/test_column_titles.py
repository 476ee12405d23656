"""Tests for the column title registry — uses programmatic openpyxl worksheets."""

import logging
from unittest.mock import patch

from sheetmodel.core.column_titles import (
    ColumnTitleRegistry,
    RecordedColumn,
    ResolutionFailure,
    insert_by_priority,
    resolve_column,
)
from sheetmodel.core.config import settings
from sheetmodel.core.error_counter import ErrorCounter
from sheetmodel.core.sheet_template import ColumnAttributes, WorksheetTemplate
from sheetmodel.core.sort_order import SortOrder
from tests.conftest import make_sheet


def _registry(rows, errors=None, **template_fields) -> ColumnTitleRegistry:
    template = WorksheetTemplate(**template_fields) if template_fields else None
    errors = errors if errors is not None else ErrorCounter()
    return ColumnTitleRegistry(make_sheet(rows), errors, template)


# ---------------------------------------------------------------------------
# Title acquisition
# ---------------------------------------------------------------------------

class TestReadTitles:
    def test_first_row_without_template(self):
        reg = _registry([["Name", " Qty "], ["Widget", 3]])
        assert reg.titles == {0: "Name", 1: "Qty"}
        assert reg.title_row_index == 0

    def test_first_non_blank_row(self):
        reg = _registry([[], [], ["A", "B"], ["x", "y"]], title_row=0)
        assert reg.titles == {0: "A", 1: "B"}
        assert reg.title_row_index == 2

    def test_explicit_title_row(self):
        reg = _registry([["Report"], ["A", "B"], ["x", "y"]], title_row=2)
        assert reg.titles == {0: "A", 1: "B"}
        assert reg.title_row_index == 1

    def test_no_title_row(self):
        errors = ErrorCounter()
        reg = _registry([["A", "B"]], errors, title_row=-1)
        assert reg.titles == {}
        assert reg.title_row_index is None
        assert errors.no_errors == 0

    def test_missing_title_row_is_error(self):
        errors = ErrorCounter()
        reg = _registry([["A"], ["x"]], errors, title_row=5)
        assert reg.titles == {}
        assert reg.title_row_index is None
        assert errors.no_errors == 1

    def test_non_text_titles_are_warnings(self):
        errors = ErrorCounter()
        reg = _registry([[1, True, "C"]], errors)
        assert reg.titles == {2: "C"}
        assert errors.no_warnings == 2
        assert errors.no_errors == 0

    def test_row_without_usable_titles_is_error(self):
        errors = ErrorCounter()
        _registry([[1, "  "]], errors)
        assert errors.no_errors == 1
        assert errors.no_warnings == 1

    def test_unevaluated_formula_is_warning(self):
        errors = ErrorCounter()
        reg = _registry([["A", "=CONCAT(\"B\",\"C\")"]], errors)
        assert reg.titles == {0: "A"}
        assert errors.no_warnings == 1

    def test_titles_made_identifiers(self):
        reg = _registry([["Part No.", "Qty"]], column_titles_are_identifiers=True)
        assert reg.titles == {0: "Part_Nox", 1: "Qty"}

    def test_coercion_to_identifier_is_logged(self, caplog):
        with caplog.at_level(logging.INFO, logger="sheetmodel.core.column_titles"):
            _registry([["Part No.", "Qty"]], column_titles_are_identifiers=True)
        assert "modified from Part No. to Part_Nox" in caplog.text
        assert "Qty to" not in caplog.text

    def test_only_blanks_and_controls_are_trimmed(self):
        reg = _registry([["\tName \n", "\u00a0Qty\u00a0"]])
        assert reg.titles == {0: "Name", 1: "\u00a0Qty\u00a0"}

    def test_excluded_columns_are_not_read(self):
        reg = _registry([["A", "B", "C"]], excluded_columns=[2])
        assert reg.titles == {0: "A", 2: "C"}


# ---------------------------------------------------------------------------
# Generic titles
# ---------------------------------------------------------------------------

class TestGenericTitles:
    def test_unnamed_column(self):
        errors = ErrorCounter()
        reg = _registry([["Name", "Qty"]], errors)
        assert reg.title(2) == "Col3"
        assert errors.no_warnings == 1

    def test_generic_title_is_recorded(self):
        errors = ErrorCounter()
        reg = _registry([["Name", "Qty"]], errors)
        assert reg.title(2) == reg.title(2) == "Col3"
        assert errors.no_warnings == 1

    def test_disambiguation(self):
        reg = _registry([["Col3", "Col3_1"]])
        assert reg.title(2) == "Col3_2"

    def test_disambiguation_within_bound(self):
        errors = ErrorCounter()
        reg = _registry([["Col3", "Col3_1"]], errors)
        with patch.object(settings, "max_disambiguation_attempts", 2):
            assert reg.title(2) == "Col3_2"
        assert errors.no_errors == 0

    def test_disambiguation_bound_exceeded_is_error(self):
        errors = ErrorCounter()
        reg = _registry([["Col3", "Col3_1"]], errors)
        with patch.object(settings, "max_disambiguation_attempts", 1):
            title = reg.title(2)
        assert title == "Col3_1"
        assert reg.titles[2] == title
        assert errors.no_errors == 1
        assert errors.no_warnings == 1

    def test_known_title(self):
        errors = ErrorCounter()
        reg = _registry([["Name"]], errors)
        assert reg.title(0) == "Name"
        assert errors.no_warnings == 0


# ---------------------------------------------------------------------------
# Column attributes
# ---------------------------------------------------------------------------

class TestResolveColumn:
    titles = {0: "Name", 1: "Name2", 2: "Qty"}

    def test_by_index(self):
        assert resolve_column(ColumnAttributes(index=3), self.titles) == 2

    def test_regex_is_full_match(self):
        assert resolve_column(ColumnAttributes(title="Name"), self.titles) == 0
        assert resolve_column(ColumnAttributes(title="Name\\d"), self.titles) == 1

    def test_regex_matching_several_titles(self):
        result = resolve_column(ColumnAttributes(title="Name.*"), self.titles)
        assert isinstance(result, ResolutionFailure)
        assert "2 matches" in result.reason

    def test_regex_matching_nothing(self):
        result = resolve_column(ColumnAttributes(title="Nam"), self.titles)
        assert isinstance(result, ResolutionFailure)
        assert "0 matches" in result.reason

    def test_malformed_regex(self):
        result = resolve_column(ColumnAttributes(title="Name("), self.titles)
        assert isinstance(result, ResolutionFailure)


class TestApplyColumnAttributes:
    rows = [["Name", "Name2", "Qty"]]

    def test_alias_by_regex(self):
        errors = ErrorCounter()
        reg = _registry(self.rows, errors, columns=[{"title": "Name", "name": "Product"}])
        assert reg.titles == {0: "Product", 1: "Name2", 2: "Qty"}
        assert errors.no_errors == 0

    def test_alias_is_logged(self, caplog):
        with caplog.at_level(logging.INFO, logger="sheetmodel.core.column_titles"):
            _registry(self.rows, columns=[{"title": "Name", "name": "Product"}])
        assert "Product aliases column title Name" in caplog.text

    def test_alias_of_same_title_is_not_logged(self, caplog):
        with caplog.at_level(logging.INFO, logger="sheetmodel.core.column_titles"):
            _registry(self.rows, columns=[{"title": "Qty", "name": "Qty"}])
        assert "aliases" not in caplog.text

    def test_alias_by_index_of_untitled_column(self):
        reg = _registry(self.rows, columns=[{"index": 5, "name": "Remark"}])
        assert reg.title(4) == "Remark"

    def test_ambiguous_regex_is_error(self):
        errors = ErrorCounter()
        reg = _registry(self.rows, errors, columns=[{"title": "Name.*", "name": "X"}])
        assert errors.no_errors == 1
        assert reg.titles == {0: "Name", 1: "Name2", 2: "Qty"}

    def test_unmatched_regex_is_error(self):
        errors = ErrorCounter()
        _registry(self.rows, errors, columns=[{"title": "Price", "name": "X"}])
        assert errors.no_errors == 1

    def test_malformed_regex_is_error(self):
        errors = ErrorCounter()
        _registry(self.rows, errors, columns=[{"title": "[Qty", "name": "X"}])
        assert errors.no_errors == 1

    def test_column_targeted_twice_is_error(self):
        errors = ErrorCounter()
        reg = _registry(
            self.rows, errors,
            columns=[{"index": 1, "name": "A"}, {"title": "Name", "name": "B"}],
        )
        assert errors.no_errors == 1
        assert reg.title(0) == "A"

    def test_regex_matches_titles_as_read(self):
        errors = ErrorCounter()
        reg = _registry(
            self.rows, errors,
            columns=[{"index": 2, "name": "Name"}, {"title": "Name", "name": "First"}],
        )
        assert errors.no_errors == 0
        assert reg.titles == {0: "First", 1: "Name", 2: "Qty"}

    def test_no_schemes_without_attributes(self):
        reg = _registry(self.rows)
        assert reg.grouping_scheme() is None
        assert reg.sort_scheme() is None

    def test_grouping_scheme_in_declaration_order(self):
        reg = _registry(
            self.rows,
            columns=[
                {"title": "Qty", "is_grouping_column": True},
                {"index": 1, "is_grouping_column": True, "sort_order": "lexical"},
            ],
        )
        scheme = reg.grouping_scheme()
        assert [(e.index, e.title, e.sort_order) for e in scheme] == [
            (2, "Qty", SortOrder.UNDEFINED),
            (0, "Name", SortOrder.LEXICAL),
        ]

    def test_grouping_column_is_not_sorted_property(self):
        reg = _registry(
            self.rows, columns=[{"title": "Qty", "is_grouping_column": True, "sort_order": "numerical"}]
        )
        assert reg.sort_scheme() is None

    def test_scheme_titles_are_resolved_lazily(self):
        errors = ErrorCounter()
        reg = _registry(self.rows, errors, columns=[{"index": 4, "sort_order": "lexical"}])
        assert errors.no_warnings == 0
        scheme = reg.sort_scheme()
        assert scheme[0].title == "Col4"
        assert errors.no_warnings == 1

    def test_schemes_are_memoized(self):
        reg = _registry(self.rows, columns=[{"title": "Qty", "sort_order": "numerical"}])
        assert reg.sort_scheme() is reg.sort_scheme()


# ---------------------------------------------------------------------------
# Priority merge
# ---------------------------------------------------------------------------

def _col(index: int, priority: int) -> RecordedColumn:
    return RecordedColumn(index, SortOrder.LEXICAL, priority)


class TestInsertByPriority:
    def test_pseudo_priorities_go_to_front(self):
        scheme = []
        insert_by_priority(scheme, _col(0, -1))
        insert_by_priority(scheme, _col(1, 0))
        assert [c.index for c in scheme] == [1, 0]

    def test_higher_priority_first(self):
        scheme = [_col(0, 3)]
        insert_by_priority(scheme, _col(1, 5))
        insert_by_priority(scheme, _col(2, 1))
        assert [c.index for c in scheme] == [1, 0, 2]

    def test_real_priority_ahead_of_pseudo_entries(self):
        scheme = [_col(0, -1)]
        insert_by_priority(scheme, _col(1, 5))
        assert [c.index for c in scheme] == [1, 0]

    def test_pseudo_entries_passed_for_greater_priority(self):
        scheme = [_col(0, 5), _col(1, -1), _col(2, 3)]
        insert_by_priority(scheme, _col(3, 4))
        assert [c.index for c in scheme] == [0, 3, 1, 2]

    def test_sort_scheme_of_registry(self):
        reg = _registry(
            [["A", "B", "C", "D"]],
            columns=[
                {"title": "A", "sort_order": "lexical"},
                {"title": "B", "sort_order": "lexical"},
                {"title": "C", "sort_order": "lexical", "sort_priority": 5},
                {"title": "D", "sort_order": "lexical", "sort_priority": 5},
            ],
        )
        assert [e.title for e in reg.sort_scheme()] == ["D", "C", "B", "A"]
        assert [e.priority for e in reg.sort_scheme()] == [5, 5, -1, -1]
