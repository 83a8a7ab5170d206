"""
Prompt Loader
=============

Centralized prompt and reply-text management.
Loads every prompt and localized reply from prompts.yaml so texts can be
tuned without code changes.
"""

import yaml
from pathlib import Path
from typing import Any, Dict, Optional

from logger_config import get_logger

logger = get_logger(__name__)


class PromptLoader:
    """
    Loads and provides access to prompts from prompts.yaml.

    Usage:
        prompts = PromptLoader()
        system = prompts.get("classifier.system")
        text = prompts.format("replies.es.ask_value", field="fechas")
    """

    def __init__(self, prompts_file: Optional[str] = None):
        """
        Initialize the prompt loader.

        Args:
            prompts_file: Path to prompts YAML file. Defaults to the one shipped
                next to this module.
        """
        if prompts_file is None:
            prompts_file = Path(__file__).parent / "prompts.yaml"

        self.prompts_file = Path(prompts_file)
        self._prompts: Dict[str, Any] = {}
        self._load_prompts()

    def _load_prompts(self):
        """Load prompts from YAML file."""
        try:
            with open(self.prompts_file, "r", encoding="utf-8") as f:
                self._prompts = yaml.safe_load(f) or {}
            logger.info("Prompts loaded", path=str(self.prompts_file))
        except FileNotFoundError:
            logger.warning("Prompts file not found", path=str(self.prompts_file))
            self._prompts = {}
        except yaml.YAMLError as e:
            logger.error("Error parsing prompts YAML", error=str(e))
            self._prompts = {}

    def get(self, path: str) -> str:
        """
        Get a prompt by its path.

        Args:
            path: Dot-separated path to prompt (e.g., "replies.es.ask_field")

        Returns:
            The prompt text, or empty string if not found
        """
        value: Any = self._prompts
        try:
            for key in path.split("."):
                value = value[key]
            return value if isinstance(value, str) else ""
        except (KeyError, TypeError):
            logger.warning("Prompt not found", path=path)
            return ""

    def has(self, path: str) -> bool:
        value: Any = self._prompts
        for key in path.split("."):
            if not isinstance(value, dict) or key not in value:
                return False
            value = value[key]
        return isinstance(value, str)

    def format(self, path: str, **kwargs) -> str:
        """
        Get a prompt and format it with provided variables.

        Returns:
            Formatted prompt text; the raw text when a variable is missing
        """
        prompt = self.get(path)
        try:
            return prompt.format(**kwargs)
        except (KeyError, IndexError) as e:
            logger.warning("Missing variable in prompt", path=path, error=str(e))
            return prompt

    def reload(self):
        """Reload prompts from file (useful for development)."""
        self._load_prompts()


# Global instance for easy access across modules
_prompt_loader: Optional[PromptLoader] = None


def get_prompts() -> PromptLoader:
    """
    Get the global prompt loader instance.
    Creates one if it doesn't exist.
    """
    global _prompt_loader
    if _prompt_loader is None:
        _prompt_loader = PromptLoader()
    return _prompt_loader
