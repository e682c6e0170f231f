"""
Bundled form templates.

A template is a markdown file with a YAML frontmatter header holding the
form title and its field definitions. The builder offers templates as
starting points; the markdown body is shown as the form description.

Format:
    ---
    title: Job Application
    fields:
      - fieldId: role
        label: Which role are you applying for?
        type: singleSelect
        options: [Engineer, Designer, Intern]
        required: true
      - fieldId: languages
        label: Languages you use
        type: multipleSelects
        options: [Go, Rust, Python]
        visibilityRule:
          logic: AND
          conditions:
            - {questionKey: role, operator: equals, value: Engineer}
    ---
    Tell us about yourself.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from pydantic import TypeAdapter, ValidationError

from airform.core.schema import FieldDefinition

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).parent.parent / "templates"

_fields_adapter = TypeAdapter(list[FieldDefinition])


class TemplateError(Exception):
    """Raised when a template file cannot be turned into field definitions."""


@dataclass
class FormTemplate:
    name: str
    title: str
    description: str = ""
    fields: list = field(default_factory=list)


def parse_frontmatter(content: str) -> tuple[dict[str, Any], str]:
    """Split a template file into its YAML header and markdown description.

    The header is the block between the first two lines that consist of
    `---` alone. A file without a readable mapping header yields an
    empty dict and its whole text as the body.
    """
    lines = content.strip().splitlines()
    if not lines or lines[0].strip() != "---":
        return {}, content

    closing = next((i for i in range(1, len(lines)) if lines[i].strip() == "---"), None)
    if closing is None:
        return {}, content

    try:
        header = yaml.safe_load("\n".join(lines[1:closing]))
    except yaml.YAMLError as e:
        logger.warning("Template header is not valid YAML: %s", e)
        return {}, content

    if not isinstance(header, dict):
        logger.warning("Template header is not a mapping, ignoring")
        return {}, content
    return header, "\n".join(lines[closing + 1:]).strip()


def load_template(path: Path) -> FormTemplate:
    """Load and validate one template file.

    Raises:
        TemplateError: If the header is missing or its fields are invalid.
    """
    header, body = parse_frontmatter(path.read_text(encoding="utf-8"))
    if not header:
        raise TemplateError(f"Template '{path.name}' has no frontmatter")

    raw_fields = header.get("fields", [])
    if not isinstance(raw_fields, list):
        raise TemplateError(f"Template '{path.name}' has a non-list 'fields'")

    try:
        fields = _fields_adapter.validate_python(raw_fields)
    except ValidationError as e:
        raise TemplateError(f"Template '{path.name}' has invalid fields: {e}") from e

    return FormTemplate(
        name=path.stem,
        title=str(header.get("title") or path.stem),
        description=body,
        fields=fields,
    )


def list_templates(directory: Path = TEMPLATES_DIR) -> list[FormTemplate]:
    """Load every valid template in a directory, sorted by file name.

    Invalid templates are skipped with a warning.
    """
    templates = []
    if not directory.exists():
        return templates
    for path in sorted(directory.glob("*.md")):
        try:
            templates.append(load_template(path))
        except (OSError, TemplateError) as e:
            logger.warning("Skipping template %s: %s", path.name, e)
    return templates
