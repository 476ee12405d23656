"""Template Loader — loads and validates YAML workbook templates."""

import logging
from pathlib import Path

import yaml

from sheetmodel.core.config import settings
from sheetmodel.core.sheet_template import WorkbookTemplate

logger = logging.getLogger(__name__)


def _templates_dir() -> Path:
    templates_dir = Path(settings.templates_dir)
    if not templates_dir.is_absolute():
        templates_dir = settings.project_root / templates_dir
    return templates_dir


def load_template(template_name: str) -> WorkbookTemplate:
    """Load a workbook template from the templates directory.

    Looks for {templates_dir}/{template_name}.yaml
    """
    template_path = _templates_dir() / f"{template_name}.yaml"

    if not template_path.exists():
        raise FileNotFoundError(f"Workbook template not found: {template_path}")

    with open(template_path) as f:
        data = yaml.safe_load(f)

    if not isinstance(data, dict):
        raise ValueError(f"Invalid template format in {template_path}: expected a YAML mapping")

    logger.debug(f"Loaded workbook template {template_path}")
    return WorkbookTemplate(**data)


def list_templates() -> list[str]:
    """List available template names (without .yaml extension)."""
    templates_dir = _templates_dir()
    if not templates_dir.exists():
        return []
    return sorted(p.stem for p in templates_dir.glob("*.yaml") if not p.stem.startswith("_"))
