"""
Maps Airtable table metadata onto form field definitions.

Only the field types the form builder can render are kept; formulas,
rollups, lookups, attachments and the rest are dropped here so that
nothing downstream ever sees an unsupported type.
"""

import logging
from typing import Any

from pydantic import TypeAdapter, ValidationError

from airform.core.schema import SUPPORTED_FIELD_TYPES, FieldDefinition, FieldType

logger = logging.getLogger(__name__)

_field_adapter = TypeAdapter(FieldDefinition)
_SELECT_TYPES = {FieldType.SINGLE_SELECT.value, FieldType.MULTIPLE_SELECTS.value}


def _choice_names(raw_field: dict[str, Any]) -> list[str]:
    options = raw_field.get("options")
    if not isinstance(options, dict):
        return []
    choices = options.get("choices") or []
    return [c["name"] for c in choices if isinstance(c, dict) and c.get("name")]


def supported_fields(table: dict[str, Any]) -> list:
    """Build field definitions for the supported fields of an Airtable table.

    Args:
        table: A table object from the metadata API (with a `fields` list).

    Returns:
        Field definitions in table order, not required, with no rules.
    """
    result = []
    for raw in table.get("fields", []):
        field_type = raw.get("type")
        if field_type not in SUPPORTED_FIELD_TYPES:
            logger.debug("Skipping field %s of unsupported type %s", raw.get("id"), field_type)
            continue

        try:
            result.append(_field_adapter.validate_python({
                "fieldId": raw.get("id", ""),
                "label": raw.get("name", ""),
                "type": field_type,
                "options": _choice_names(raw) if field_type in _SELECT_TYPES else [],
                "required": False,
            }))
        except ValidationError as e:
            # e.g. a select field with no choices yet
            logger.debug("Skipping field %s: %s", raw.get("id"), e)
    return result


def normalize_table(table: dict[str, Any]) -> dict[str, Any]:
    """Return the table summary the builder UI consumes."""
    return {
        "id": table.get("id"),
        "name": table.get("name"),
        "fields": [
            f.model_dump(by_alias=True, mode="json") for f in supported_fields(table)
        ],
    }
