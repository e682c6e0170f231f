"""
Form session state for one respondent.

Holds the answer map of a single form-filling session and answers the
questions the renderer asks on every change:
- Which fields are visible given the current answers
- Which visible required fields are still unanswered
- Whether the form may be submitted
- Whether an answer is valid for its field type

The session is a plain, serializable object owned by whoever drives the
form (a UI controller, a test, the server). Nothing here is global.
"""

from typing import Any

from airform.core.schema import FieldType, FormDefinition
from airform.core.visibility import is_answered, missing_required_fields, visible_fields


class AnswerValidationError(Exception):
    """Raised when an answer fails validation for its field type."""

    def __init__(self, field_id: str, message: str):
        self.field_id = field_id
        self.message = message
        super().__init__(f"Field '{field_id}': {message}")


class MissingRequiredFieldsError(Exception):
    """Raised when visible required fields are unanswered at submission time."""

    def __init__(self, labels: list[str]):
        self.labels = labels
        super().__init__(
            "Please fill in the following required fields: " + ", ".join(labels)
        )


class FormSession:
    """Tracks the answers of a single form-filling session.

    Args:
        form: The form being filled.
    """

    def __init__(self, form: FormDefinition):
        self.form = form
        self.answers: dict[str, Any] = {}

    # -----------------------------------------------------------------
    # Field resolution
    # -----------------------------------------------------------------

    def get_visible_fields(self) -> list:
        """Return all fields that are currently visible, in form order."""
        return visible_fields(self.form.fields, self.answers)

    def get_missing_required_fields(self) -> list:
        """Return visible, required fields that have not been answered yet."""
        return missing_required_fields(self.form.fields, self.answers)

    def missing_labels(self) -> list[str]:
        return [f.label or f.field_id for f in self.get_missing_required_fields()]

    def is_complete(self) -> bool:
        """Check if all visible required fields have been answered."""
        return len(self.get_missing_required_fields()) == 0

    def ensure_submittable(self) -> None:
        """Raise MissingRequiredFieldsError if the form cannot be submitted yet."""
        labels = self.missing_labels()
        if labels:
            raise MissingRequiredFieldsError(labels)

    # -----------------------------------------------------------------
    # Answer management
    # -----------------------------------------------------------------

    def set_answer(self, field_id: str, value: Any) -> None:
        """Store a validated answer for the given field.

        Validates the answer against the field type, stores it, and
        drops answers of fields that the change has hidden.

        Raises:
            AnswerValidationError: If the value is invalid for the field type.
            ValueError: If the field_id does not exist in the form.
        """
        field = self.form.get_field(field_id)
        if field is None:
            raise ValueError(f"Field '{field_id}' does not exist in the form")

        self._validate_answer(field, value)
        self.answers[field_id] = value
        self._handle_cascading_visibility()

    def get_answer(self, field_id: str) -> Any:
        """Retrieve the current answer for a field, or None if not answered."""
        return self.answers.get(field_id)

    def clear_answer(self, field_id: str) -> None:
        """Remove an answer and re-evaluate visibility."""
        if field_id in self.answers:
            del self.answers[field_id]
            self._handle_cascading_visibility()

    def get_all_answers(self) -> dict[str, Any]:
        """Return a copy of all current answers."""
        return dict(self.answers)

    def get_visible_answers(self) -> dict[str, Any]:
        """Return only answered values of currently visible fields."""
        visible_ids = {f.field_id for f in self.get_visible_fields()}
        return {k: v for k, v in self.answers.items() if k in visible_ids}

    # -----------------------------------------------------------------
    # Serialization
    # -----------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        return {"formId": self.form.id, "answers": dict(self.answers)}

    @classmethod
    def from_dict(cls, form: FormDefinition, data: dict[str, Any]) -> "FormSession":
        """Rebuild a session from `to_dict` output.

        Answers are restored as-is; answers for fields no longer in the
        form are kept so the caller can decide what to do with them.
        """
        if data.get("formId") not in (None, form.id):
            raise ValueError(
                f"Session belongs to form '{data.get('formId')}', not '{form.id}'"
            )
        session = cls(form)
        session.answers = dict(data.get("answers") or {})
        return session

    # -----------------------------------------------------------------
    # Answer validation per field type
    # -----------------------------------------------------------------

    def _validate_answer(self, field, value: Any) -> None:
        match field.type:
            case FieldType.SINGLE_LINE_TEXT | FieldType.MULTILINE_TEXT:
                self._validate_text(field, value)
            case FieldType.SINGLE_SELECT:
                self._validate_single_select(field, value)
            case FieldType.MULTIPLE_SELECTS:
                self._validate_multi_select(field, value)

    def _validate_text(self, field, value: Any) -> None:
        if not isinstance(value, str):
            raise AnswerValidationError(field.field_id, "Text answer must be a string")
        if field.type == FieldType.SINGLE_LINE_TEXT and "\n" in value:
            raise AnswerValidationError(
                field.field_id, "Single-line answer must not contain line breaks"
            )

    def _validate_single_select(self, field, value: Any) -> None:
        """Value must be one of the defined options."""
        if not isinstance(value, str):
            raise AnswerValidationError(field.field_id, "Select answer must be a string")
        if value not in field.options:
            raise AnswerValidationError(
                field.field_id,
                f"'{value}' is not a valid option. Choose from: {field.options}",
            )

    def _validate_multi_select(self, field, value: Any) -> None:
        """Value must be a list whose items are all defined options."""
        if not isinstance(value, list):
            raise AnswerValidationError(field.field_id, "Multi-select answer must be a list")
        invalid = [v for v in value if v not in field.options]
        if invalid:
            raise AnswerValidationError(
                field.field_id,
                f"Invalid choices: {invalid}. Choose from: {field.options}",
            )

    # -----------------------------------------------------------------
    # Internal helpers
    # -----------------------------------------------------------------

    def _handle_cascading_visibility(self) -> None:
        """Drop answers of fields that became hidden, until stable.

        Hiding one field can hide another whose rule depended on it, so
        the check repeats after each removal.
        """
        visible_ids = {f.field_id for f in self.get_visible_fields()}
        form_ids = {f.field_id for f in self.form.fields}

        hidden_answered = [
            field_id for field_id in list(self.answers.keys())
            if field_id in form_ids and field_id not in visible_ids
        ]

        for field_id in hidden_answered:
            del self.answers[field_id]

        if hidden_answered:
            self._handle_cascading_visibility()


def prune_hidden_answers(form: FormDefinition, answers: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of answers without values for hidden or unknown fields.

    Unanswered entries (None, blank, empty) are dropped too.
    """
    session = FormSession(form)
    session.answers = {
        k: v for k, v in answers.items()
        if form.get_field(k) is not None and is_answered(v)
    }
    session._handle_cascading_visibility()
    return session.get_all_answers()
