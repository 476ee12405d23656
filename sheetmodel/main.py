"""Sheet Model — entry point for parsing workbooks into the typed data model."""

import logging
from pathlib import Path
from typing import Optional

from sheetmodel.core.config import settings
from sheetmodel.core.sheet_model import WorkbookModel, parse_workbook
from sheetmodel.core.template_loader import load_template

logger = logging.getLogger(__name__)


def configure_logging(level: Optional[str] = None) -> None:
    logging.basicConfig(
        level=getattr(logging, (level or settings.log_level).upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def parse_workbook_file(file_path: Path, template_name: Optional[str] = None) -> WorkbookModel:
    """Parse a workbook, optionally with a named template from the templates directory."""
    template = load_template(template_name) if template_name else None
    model = parse_workbook(Path(file_path), template)

    errors = model.errors
    if errors.no_errors:
        logger.error(
            f"{model.file_name}: {errors.no_errors} error(s) and {errors.no_warnings}"
            f" warning(s) occurred. The data model may be incomplete"
        )
    elif errors.no_warnings:
        logger.warning(f"{model.file_name}: {errors.no_warnings} warning(s) occurred")
    return model
