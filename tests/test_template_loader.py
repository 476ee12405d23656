"""Tests for the workbook template loader."""

import pytest
from unittest.mock import patch

from sheetmodel.core.config import settings
from sheetmodel.core.sort_order import SortOrder
from sheetmodel.core.template_loader import list_templates, load_template


class TestLoadTemplate:
    def test_load_nonexistent_raises(self):
        with pytest.raises(FileNotFoundError):
            load_template("nonexistent_template")

    def test_load_example_directly(self):
        """Can load _example_template directly by name (underscore is just list filter)."""
        template = load_template("_example_template")
        assert template.sheet_names == ["Parts"]
        worksheet = template.worksheet
        assert worksheet.title_row == 1
        assert worksheet.column_titles_are_identifiers
        assert len(worksheet.columns) == 3
        assert worksheet.columns[0].sort_order == SortOrder.NUMERICAL
        assert worksheet.columns[0].sort_priority == 10
        assert worksheet.columns[1].is_grouping_column
        assert not worksheet.is_row_supported(3)

    def test_non_mapping_raises(self, tmp_path):
        (tmp_path / "broken.yaml").write_text("- just\n- a list\n")
        with patch.object(settings, "templates_dir", str(tmp_path)):
            with pytest.raises(ValueError):
                load_template("broken")

    def test_absolute_templates_dir(self, tmp_path):
        (tmp_path / "mine.yaml").write_text("sheet_indexes: [0]\n")
        with patch.object(settings, "templates_dir", str(tmp_path)):
            assert load_template("mine").sheet_indexes == [0]


class TestListTemplates:
    def test_example_not_listed(self):
        """The _example_template.yaml should not be listed (underscore prefix)."""
        assert "_example_template" not in list_templates()

    def test_lists_yaml_files(self, tmp_path):
        (tmp_path / "b.yaml").write_text("{}\n")
        (tmp_path / "a.yaml").write_text("{}\n")
        (tmp_path / "_hidden.yaml").write_text("{}\n")
        with patch.object(settings, "templates_dir", str(tmp_path)):
            assert list_templates() == ["a", "b"]

    def test_missing_dir(self, tmp_path):
        with patch.object(settings, "templates_dir", str(tmp_path / "missing")):
            assert list_templates() == []
