"""
Template Loader

Loads preflight templates from the package, with user overrides.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

from jinja2 import ChoiceLoader, Environment, FileSystemLoader, StrictUndefined, TemplateNotFound

from common.constants import CONFIG_DIR
from common.exceptions import TemplateNotFoundError

logger = logging.getLogger(__name__)


class TemplateLoader:
    """
    Renders preflight templates.

    Search order:
    1. User templates (~/.config/localcluster/templates)
    2. Templates shipped with the package
    """

    TEMPLATE_PATHS = [
        CONFIG_DIR / "templates",
        Path(__file__).parent,
    ]

    def __init__(self, additional_paths: Optional[List[Path]] = None):
        self._paths = list(additional_paths or []) + list(self.TEMPLATE_PATHS)
        self._env = self._create_environment()

    def _create_environment(self) -> Environment:
        loaders = []
        for path in self._paths:
            if path.is_dir():
                loaders.append(FileSystemLoader(str(path)))
                logger.debug(f"Added template path: {path}")

        return Environment(
            loader=ChoiceLoader(loaders),
            autoescape=False,
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
            undefined=StrictUndefined,
        )

    def render(self, template_name: str, /, **variables) -> str:
        """
        Render a template with variables.

        Raises:
            TemplateNotFoundError: If no search path has the template
        """
        try:
            template = self._env.get_template(template_name)
        except TemplateNotFound:
            raise TemplateNotFoundError(template_name) from None
        return template.render(**variables)

    def list_templates(self) -> List[str]:
        """List all available templates."""
        templates = []
        for path in self._paths:
            if path.is_dir():
                templates.extend(f.name for f in path.glob("*.j2"))
        return sorted(set(templates))


_loader: Optional[TemplateLoader] = None


def get_template_loader() -> TemplateLoader:
    """Get the shared template loader."""
    global _loader
    if _loader is None:
        _loader = TemplateLoader()
    return _loader
