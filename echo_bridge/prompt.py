"""
Prompt composition for Spacebot.

Every utterance is sent with a fixed instruction block that tells the agent
how to format a visual update. The block lives in prompts/visual_preamble.yaml
so wording can be tuned without touching code; it is loaded once at import.

We use PyYAML's safe_load; the file holds plain strings only.
"""

from pathlib import Path
from typing import Any, Dict

import yaml


def _get_prompts_dir() -> Path:
    return Path(__file__).parent / "prompts"


def load_preamble(name: str = "visual_preamble") -> Dict[str, Any]:
    """
    Load a preamble definition.

    Raises:
        ValueError: if the file has no `lines` list
    """
    path = _get_prompts_dir() / f"{name}.yaml"
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    lines = data.get("lines")
    if not isinstance(lines, list) or not all(isinstance(line, str) for line in lines):
        raise ValueError(f"Preamble {path.name} must define a list of strings under 'lines'")
    return data


_PREAMBLE = load_preamble()

VISUAL_PROMPT_PREAMBLE: str = "\n".join(_PREAMBLE["lines"])
USER_MESSAGE_LABEL: str = _PREAMBLE.get("user_label", "User message:")


def build_prompt(utterance: str) -> str:
    """Prefix the trimmed utterance with the visual instruction block."""
    return f"{VISUAL_PROMPT_PREAMBLE}\n\n{USER_MESSAGE_LABEL}\n{utterance.strip()}"
