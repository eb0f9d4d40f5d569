"""Loads prompt templates from the package prompts directory."""
from pathlib import Path
from string import Template
from typing import Any, Dict, Optional

from trial_matcher.config.logging_config import get_logger

logger = get_logger(__name__)

PROMPTS_DIR = Path(__file__).resolve().parent.parent / "prompts"


class PromptLoader:
    """Reads ``$placeholder`` templates and fills them in."""

    def __init__(self, prompts_dir: Optional[Path] = None):
        self.prompts_dir = prompts_dir or PROMPTS_DIR
        self._templates: Dict[str, Template] = {}

    def _template(self, name: str) -> Template:
        if name not in self._templates:
            path = (self.prompts_dir / name).resolve()
            try:
                path.relative_to(self.prompts_dir.resolve())
            except ValueError:
                raise ValueError(f"Invalid prompt path: {name}")
            if not path.exists():
                logger.error("Prompt template not found", path=str(path))
                raise FileNotFoundError(f"Prompt template not found: {name}")
            with open(path, "r", encoding="utf-8") as f:
                self._templates[name] = Template(f.read())
        return self._templates[name]

    def load(self, name: str, variables: Optional[Dict[str, Any]] = None) -> str:
        """
        Render a prompt template.

        Args:
            name: Template path relative to the prompts directory
            variables: Values substituted for ``$name`` placeholders

        Returns:
            The rendered prompt text
        """
        return self._template(name).safe_substitute(variables or {})


# Global instance
_prompt_loader: Optional[PromptLoader] = None


def get_prompt_loader() -> PromptLoader:
    """Get or create the global PromptLoader."""
    global _prompt_loader
    if _prompt_loader is None:
        _prompt_loader = PromptLoader()
    return _prompt_loader
