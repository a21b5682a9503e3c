"""
Prompt templates and LLM output parsing

Loads versioned Jinja2 prompt templates ('classification:v1' ->
prompts/classification/v1/template.jinja2 + meta.yaml) and pulls JSON
payloads out of free-form model output.
"""

import json
import logging
import re
from pathlib import Path
from typing import Any, Optional

import jinja2
import yaml

from .config import get_config

logger = logging.getLogger(__name__)


def extract_json_from_text(text: str) -> Optional[dict[str, Any]]:
    """
    Extract the first JSON object from text that may contain markdown
    fences, explanations, or other content around the JSON.
    """
    if not text:
        return None

    # Fenced ```json blocks first
    json_block_pattern = r"```(?:json)?\s*(\{.*?\})\s*```"
    for match in re.findall(json_block_pattern, text, re.DOTALL | re.IGNORECASE):
        try:
            parsed = json.loads(match)
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, dict):
            return parsed

    # Balanced-brace scan for bare objects
    depth = 0
    start_pos = None
    in_string = False
    escaped = False

    for i, char in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue

        if char == '"' and depth > 0:
            in_string = True
        elif char == "{":
            if depth == 0:
                start_pos = i
            depth += 1
        elif char == "}" and depth > 0:
            depth -= 1
            if depth == 0 and start_pos is not None:
                try:
                    parsed = json.loads(text[start_pos : i + 1])
                except json.JSONDecodeError:
                    start_pos = None
                    continue
                if isinstance(parsed, dict):
                    return parsed

    return None


class PromptManager:
    """Manages Jinja2 templates for LLM prompts"""

    def __init__(self, prompts_dir: Optional[str] = None):
        if prompts_dir is None:
            prompts_dir = get_config().prompts.prompts_dir

        self.prompts_dir = Path(prompts_dir)
        self.env = jinja2.Environment(
            loader=jinja2.FileSystemLoader(str(self.prompts_dir)),
            autoescape=jinja2.select_autoescape(["html", "xml"]),
            trim_blocks=True,
            lstrip_blocks=True,
        )

    def get_template(self, template_path: str) -> jinja2.Template:
        """Get Jinja2 template by path (e.g., 'planning/v1/template.jinja2')"""
        try:
            return self.env.get_template(template_path)
        except jinja2.TemplateNotFound:
            logger.error(f"Template not found: {template_path}")
            raise

    def load_template_meta(self, template_key: str) -> dict[str, Any]:
        """Load template metadata (e.g., 'planning:v1' -> meta.yaml)"""
        template_name, version = template_key.split(":")
        meta_path = self.prompts_dir / template_name / version / "meta.yaml"

        if not meta_path.exists():
            logger.warning(f"Template metadata not found: {meta_path}")
            return {}

        with open(meta_path, encoding="utf-8") as f:
            return yaml.safe_load(f) or {}

    def render_template(self, template_key: str, context: dict[str, Any]) -> str:
        """Render template with context"""
        template_name, version = template_key.split(":")
        template = self.get_template(f"{template_name}/{version}/template.jinja2")
        return template.render(**context)
