"""
Form definition models.

These Pydantic models define the contract between the form builder UI,
the stores, and the renderer. Field definitions mirror the subset of
Airtable field types the builder supports, and each field may carry a
conditional visibility rule evaluated by `airform.core.visibility`.

Wire names are camelCase (as the builder sends them); Python attributes
are snake_case. Both spellings are accepted on input.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


def _new_id() -> str:
    return uuid.uuid4().hex


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# --- Enums ---


class FieldType(str, Enum):
    """Airtable field types the form builder supports."""

    SINGLE_LINE_TEXT = "singleLineText"
    MULTILINE_TEXT = "multilineText"
    SINGLE_SELECT = "singleSelect"
    MULTIPLE_SELECTS = "multipleSelects"


SUPPORTED_FIELD_TYPES = frozenset(t.value for t in FieldType)


class ConditionOperator(str, Enum):
    """Operators a visibility condition may apply to a prior answer."""

    EQUALS = "equals"
    NOT_EQUALS = "notEquals"
    CONTAINS = "contains"


class LogicCombinator(str, Enum):
    """How the per-condition results of a rule are combined."""

    AND = "AND"
    OR = "OR"


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# --- Visibility Rule Models ---


class Condition(_CamelModel):
    """One atomic test against a previously collected answer."""

    question_key: str = Field(
        ...,
        alias="questionKey",
        description="Field ID whose answer is inspected",
    )
    operator: ConditionOperator = Field(
        ...,
        description="The comparison operator to apply",
    )
    value: Any = Field(
        ...,
        description="Comparison operand, or the element to look for in a multi-select answer",
    )

    @model_validator(mode="after")
    def validate_value(self) -> "Condition":
        if self.value is None:
            raise ValueError(f"Condition on '{self.question_key}' must have a 'value'")
        return self


class ConditionalRules(_CamelModel):
    """A set of conditions combined with AND or OR.

    An empty condition list means the field is always visible.
    """

    logic: LogicCombinator = Field(
        default=LogicCombinator.AND,
        description="Combinator applied across all conditions",
    )
    conditions: list[Condition] = Field(
        default_factory=list,
        description="Conditions in authoring order",
    )


# --- Field Definitions ---


class _BaseField(_CamelModel):
    field_id: str = Field(
        ...,
        alias="fieldId",
        min_length=1,
        description="Airtable field ID, also the key into the answer map",
    )
    label: str = Field(
        default="",
        description="Text shown to the respondent",
    )
    required: bool = Field(
        default=False,
        description="Whether a visible field must be answered before submission",
    )
    options: list[str] = Field(
        default_factory=list,
        description="Allowed choices (select types only)",
    )
    visibility_rule: ConditionalRules | None = Field(
        default=None,
        alias="visibilityRule",
        description="Conditional visibility rule (always visible if absent)",
    )

    @model_validator(mode="before")
    @classmethod
    def lift_legacy_logic(cls, data: Any) -> Any:
        """Accept the stored `logic: {rules: {...}}` shape used by older forms."""
        if not isinstance(data, dict):
            return data
        if "visibilityRule" in data or "visibility_rule" in data:
            return data
        legacy = data.get("logic")
        if isinstance(legacy, dict) and "rules" in legacy:
            data = {k: v for k, v in data.items() if k != "logic"}
            data["visibilityRule"] = legacy["rules"]
        return data


class TextField(_BaseField):
    """Single-line or multi-line free text."""

    type: Literal["singleLineText", "multilineText"]

    @model_validator(mode="after")
    def validate_no_options(self) -> "TextField":
        if self.options:
            raise ValueError(
                f"Field '{self.field_id}' of type '{self.type}' should not have 'options'"
            )
        return self


class SingleSelectField(_BaseField):
    """Exactly one choice from `options`."""

    type: Literal["singleSelect"]

    @model_validator(mode="after")
    def validate_options(self) -> "SingleSelectField":
        if not self.options:
            raise ValueError(
                f"Field '{self.field_id}' of type '{self.type}' must have non-empty 'options'"
            )
        return self


class MultiSelectField(_BaseField):
    """Any number of choices from `options`."""

    type: Literal["multipleSelects"]

    @model_validator(mode="after")
    def validate_options(self) -> "MultiSelectField":
        if not self.options:
            raise ValueError(
                f"Field '{self.field_id}' of type '{self.type}' must have non-empty 'options'"
            )
        return self


FieldDefinition = Annotated[
    Union[TextField, SingleSelectField, MultiSelectField],
    Field(discriminator="type"),
]


# --- Forms and Responses ---


class FormDefinition(_CamelModel):
    """A published form bound to one Airtable table."""

    id: str = Field(default_factory=_new_id)
    owner_id: str = Field(default="", alias="ownerId")
    base_id: str = Field(..., alias="baseId", min_length=1)
    table_id: str = Field(..., alias="tableId", min_length=1)
    title: str = Field(default="Untitled form")
    webhook_id: str | None = Field(default=None, alias="webhookId")
    fields: list[FieldDefinition] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utcnow, alias="createdAt")

    @model_validator(mode="after")
    def validate_unique_field_ids(self) -> "FormDefinition":
        """Field IDs key the answer map, so they must be unique within a form.

        Rules may reference field IDs that are not in the form; those
        conditions simply never pass.
        """
        seen = set()
        for f in self.fields:
            if f.field_id in seen:
                raise ValueError(f"Duplicate field ID: '{f.field_id}'")
            seen.add(f.field_id)
        return self

    def get_field(self, field_id: str):
        for f in self.fields:
            if f.field_id == field_id:
                return f
        return None


class FormResponse(_CamelModel):
    """One submitted answer map, as persisted locally."""

    id: str = Field(default_factory=_new_id)
    form_id: str = Field(..., alias="formId")
    airtable_record_id: str | None = Field(default=None, alias="airtableRecordId")
    answers: dict[str, Any] = Field(default_factory=dict)
    submitted_at: datetime = Field(default_factory=_utcnow, alias="submittedAt")
