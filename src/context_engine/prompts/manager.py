"""YAML prompt files rendered as Mako templates."""

from enum import Enum
from pathlib import Path
from typing import Any

import structlog
import yaml
from mako.exceptions import MakoException
from mako.template import Template

from ..exceptions import ConfigurationError

logger = structlog.get_logger()


class PromptManager:
    """Serves prompts from ``{name}.yaml`` files next to this module.

    A file is parsed and all of its entries compiled on first use, so a
    broken template fails the first summary rather than a later one.
    Templates use ``strict_undefined``: a missing variable is an error,
    never an empty string in the prompt.
    """

    def __init__(self, prompts_dir: Path | None = None) -> None:
        self.prompts_dir = prompts_dir or Path(__file__).parent
        self._files: dict[str, dict[str, Template]] = {}

    def _templates(self, name: str) -> dict[str, Template]:
        """Compiled templates of one prompt file.

        Raises:
            ConfigurationError: If the file is missing, unparsable, or holds
                a non-string entry
        """
        if name in self._files:
            return self._files[name]

        path = self.prompts_dir / f"{name}.yaml"
        try:
            raw = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Cannot load prompt file {path}", e) from e
        if not isinstance(raw, dict):
            raise ConfigurationError(f"Prompt file {path} must be a mapping of templates")

        templates: dict[str, Template] = {}
        for key, source in raw.items():
            if not isinstance(source, str):
                raise ConfigurationError(f"Prompt '{key}' in {path.name} must be a string")
            try:
                templates[key] = Template(text=source, strict_undefined=True)
            except MakoException as e:
                raise ConfigurationError(f"Prompt '{key}' in {path.name} does not compile", e) from e

        logger.debug("prompt_file_loaded", prompt_file=name, keys=sorted(templates))
        self._files[name] = templates
        return templates

    def render(self, name: str, prompt_key: Enum, **variables: Any) -> str:
        """Render one prompt.

        Args:
            name: File name without extension, e.g. ``"summarizer"``
            prompt_key: Entry to render
            **variables: Template variables

        Returns:
            Rendered text without surrounding whitespace

        Raises:
            KeyError: If the file has no such entry
            ValueError: If rendering fails (e.g. a variable is missing)
        """
        templates = self._templates(name)
        key = str(prompt_key.value)
        if key not in templates:
            raise KeyError(f"Prompt '{key}' not in {name}.yaml (has {sorted(templates)})")

        try:
            return str(templates[key].render(**variables)).strip()
        except Exception as e:
            logger.error(
                "prompt_render_failed",
                prompt_file=name,
                prompt_key=key,
                variables=sorted(variables),
                error=str(e),
            )
            raise ValueError(f"Failed to render prompt '{key}': {e}") from e
