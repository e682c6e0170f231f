"""
Deterministic visibility evaluator for form fields.

Decides whether a field should be shown to the respondent given its
conditional rules and the answers collected so far. The evaluator is a
pure function: it never mutates the answers, keeps no state between
calls, does no I/O and never raises, so the renderer can call it on
every change and the server can re-run it safely.

Rules may arrive as validated `ConditionalRules` models or as the raw
dicts the form store hands back. Malformed input is normalized rather
than reported:

- `conditions` that is not a list or tuple is treated as "no rules".
- `logic` other than "AND" (case-insensitive) combines with OR.
- A condition that is not a mapping, has no string `questionKey` or has
  no `value` never passes. Neither does an unknown operator.
"""

from collections.abc import Mapping
from typing import Any

from airform.core.schema import Condition, ConditionalRules, ConditionOperator

_SEQUENCE_TYPES = (list, tuple)


def should_show(rules: ConditionalRules | Mapping | None, answers: Mapping) -> bool:
    """Determine if a field with the given rules should be visible.

    If there are no rules, or the rule has no conditions, the field is
    always visible. Otherwise every condition is evaluated and the
    results are combined with the rule's logic (AND: all pass, OR: at
    least one passes).

    Args:
        rules: The field's visibility rule, raw or validated, or None.
        answers: Current answers keyed by field ID. Not modified.

    Returns:
        True if the field should be visible, False otherwise.
    """
    if rules is None:
        return True

    logic, conditions = _unpack_rules(rules)
    if not isinstance(conditions, _SEQUENCE_TYPES) or len(conditions) == 0:
        return True

    results = [_evaluate_condition(c, answers) for c in conditions]

    if _is_and(logic):
        return all(results)
    return any(results)


def _unpack_rules(rules: Any) -> tuple[Any, Any]:
    if isinstance(rules, ConditionalRules):
        return rules.logic, rules.conditions
    if isinstance(rules, Mapping):
        return rules.get("logic"), rules.get("conditions")
    return None, None


def _is_and(logic: Any) -> bool:
    if isinstance(logic, str):
        return logic.upper() == "AND"
    return False


def _evaluate_condition(condition: Any, answers: Mapping) -> bool:
    """Evaluate a single condition against the current answers.

    An unanswered dependency (missing key or None) fails the condition
    whatever the operator, including notEquals. So does a condition
    without a comparison value.
    """
    if isinstance(condition, Condition):
        key, operator, expected = condition.question_key, condition.operator, condition.value
    elif isinstance(condition, Mapping):
        key = condition.get("questionKey")
        operator = condition.get("operator")
        expected = condition.get("value")
    else:
        return False

    if not isinstance(key, str) or expected is None:
        return False

    answer = answers.get(key)
    if answer is None:
        return False

    match operator:
        case ConditionOperator.EQUALS:
            return canonical_string(answer) == canonical_string(expected)

        case ConditionOperator.NOT_EQUALS:
            return canonical_string(answer) != canonical_string(expected)

        case ConditionOperator.CONTAINS:
            if isinstance(answer, _SEQUENCE_TYPES):
                return expected in answer
            return canonical_string(expected) in canonical_string(answer)

    # Unrecognized operator never passes
    return False


def canonical_string(value: Any) -> str:
    """Render a value the way answers are compared.

    Booleans become "true"/"false", whole floats drop their ".0", and
    sequences join their items with commas.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, _SEQUENCE_TYPES):
        return ",".join(canonical_string(v) for v in value)
    return str(value)


def is_answered(value: Any) -> bool:
    """Check whether a value counts as answered for required-field checks.

    None, blank strings and empty sequences are unanswered.
    """
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, _SEQUENCE_TYPES):
        return len(value) > 0
    return True


def visible_fields(fields: list, answers: Mapping) -> list:
    """Return the fields whose rules pass, in form order."""
    return [f for f in fields if should_show(f.visibility_rule, answers)]


def missing_required_fields(fields: list, answers: Mapping) -> list:
    """Return visible, required fields that have not been answered yet."""
    return [
        f for f in visible_fields(fields, answers)
        if f.required and not is_answered(answers.get(f.field_id))
    ]
