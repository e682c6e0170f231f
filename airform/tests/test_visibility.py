"""
Unit tests for the deterministic visibility evaluator.

Tests cover:
- No rules / empty conditions (always visible)
- Unanswered dependencies fail every operator, including notEquals
- equals / notEquals string normalization and complementarity
- contains on multi-select lists (membership) and scalars (substring)
- AND / OR combination over mixed condition vectors
- Unknown operators and malformed rule payloads
- Purity: answers are not mutated, results are repeatable
- Required-field helpers used by the renderer
"""

import copy
import itertools

import pytest

from airform.core.schema import ConditionalRules
from airform.core.visibility import (
    canonical_string,
    is_answered,
    missing_required_fields,
    should_show,
    visible_fields,
)


# --- Helpers ---


def rule(logic: str = "AND", *conditions: tuple) -> dict:
    """Build a raw rule from (questionKey, operator, value) tuples."""
    return {
        "logic": logic,
        "conditions": [
            {"questionKey": k, "operator": op, "value": v} for k, op, v in conditions
        ],
    }


ROLE_IS_ENGINEER = rule("AND", ("role", "equals", "Engineer"))


# =============================================================
# Test: Scenarios
# =============================================================


class TestScenarios:
    """Worked examples of the renderer's common cases."""

    def test_equals_matches(self):
        assert should_show(ROLE_IS_ENGINEER, {"role": "Engineer"}) is True

    def test_equals_other_value(self):
        assert should_show(ROLE_IS_ENGINEER, {"role": "Manager"}) is False

    def test_equals_unanswered(self):
        assert should_show(ROLE_IS_ENGINEER, {}) is False

    def test_or_second_condition_satisfies(self):
        rules = rule("OR", ("role", "equals", "Engineer"), ("dept", "equals", "Sales"))
        assert should_show(rules, {"dept": "Sales"}) is True

    def test_contains_in_multi_select(self):
        rules = rule("AND", ("skills", "contains", "Go"))
        assert should_show(rules, {"skills": ["Go", "Rust"]}) is True
        assert should_show(rules, {"skills": ["Rust"]}) is False

    def test_not_equals_answered_and_unanswered(self):
        rules = rule("AND", ("role", "notEquals", "Intern"))
        assert should_show(rules, {"role": "Engineer"}) is True
        assert should_show(rules, {}) is False


# =============================================================
# Test: No rules
# =============================================================


class TestNoRules:
    """Fields without rules, or with empty rules, are always visible."""

    @pytest.mark.parametrize("answers", [{}, {"role": "Engineer"}, {"x": None}])
    def test_absent_rules(self, answers):
        assert should_show(None, answers) is True

    @pytest.mark.parametrize("logic", ["AND", "OR", "XOR", None, 42])
    def test_empty_conditions_any_logic(self, logic):
        assert should_show({"logic": logic, "conditions": []}, {}) is True

    def test_empty_model_rules(self):
        assert should_show(ConditionalRules(logic="OR", conditions=[]), {}) is True

    def test_missing_conditions_key(self):
        assert should_show({"logic": "AND"}, {"role": "Engineer"}) is True


# =============================================================
# Test: Unanswered dependencies
# =============================================================


class TestUnanswered:
    """An unanswered dependency never satisfies a condition."""

    @pytest.mark.parametrize("operator", ["equals", "notEquals", "contains", "bogus"])
    @pytest.mark.parametrize("answers", [{}, {"role": None}, {"other": "Engineer"}])
    def test_condition_fails(self, operator, answers):
        rules = rule("AND", ("role", operator, "Engineer"))
        assert should_show(rules, answers) is False

    def test_not_equals_none_value_still_fails(self):
        rules = rule("OR", ("role", "notEquals", None))
        assert should_show(rules, {"role": None}) is False

    def test_empty_string_counts_as_answered(self):
        """Only a missing key or None is unanswered for the evaluator."""
        rules = rule("AND", ("role", "notEquals", "Intern"))
        assert should_show(rules, {"role": ""}) is True


# =============================================================
# Test: equals / notEquals
# =============================================================


class TestEqualsNotEquals:
    """Comparison uses the canonical string form of both sides."""

    def test_number_matches_string(self):
        assert should_show(rule("AND", ("age", "equals", "30")), {"age": 30}) is True

    def test_whole_float_matches_int_text(self):
        assert should_show(rule("AND", ("age", "equals", 30)), {"age": 30.0}) is True

    def test_bool_matches_lowercase_text(self):
        assert should_show(rule("AND", ("ok", "equals", "true")), {"ok": True}) is True

    def test_list_answer_compared_as_joined_text(self):
        assert should_show(rule("AND", ("skills", "equals", "Go,Rust")), {"skills": ["Go", "Rust"]}) is True

    def test_case_sensitive(self):
        assert should_show(rule("AND", ("role", "equals", "engineer")), {"role": "Engineer"}) is False

    @pytest.mark.parametrize("answer", ["Engineer", "Intern", "", 0, 1.5, True, ["Go"], []])
    @pytest.mark.parametrize("value", ["Engineer", "0", "", 1.5, "true", "Go"])
    def test_exact_complements(self, answer, value):
        equals = should_show(rule("AND", ("k", "equals", value)), {"k": answer})
        not_equals = should_show(rule("AND", ("k", "notEquals", value)), {"k": answer})
        assert equals != not_equals


# =============================================================
# Test: contains
# =============================================================


class TestContains:
    """List answers test membership; scalar answers test substrings."""

    def test_list_exact_element(self):
        assert should_show(rule("AND", ("s", "contains", "a")), {"s": ["a", "b"]}) is True

    def test_list_no_substring_match(self):
        assert should_show(rule("AND", ("s", "contains", "ab")), {"s": ["a", "b"]}) is False

    def test_empty_list(self):
        assert should_show(rule("AND", ("s", "contains", "a")), {"s": []}) is False

    def test_tuple_answer(self):
        assert should_show(rule("AND", ("s", "contains", "b")), {"s": ("a", "b")}) is True

    def test_scalar_substring(self):
        assert should_show(rule("AND", ("s", "contains", "b")), {"s": "abc"}) is True

    def test_scalar_not_substring(self):
        assert should_show(rule("AND", ("s", "contains", "z")), {"s": "abc"}) is False

    def test_scalar_number(self):
        assert should_show(rule("AND", ("n", "contains", 2)), {"n": 123}) is True


# =============================================================
# Test: AND / OR combination
# =============================================================


def _conditions_for(vector: tuple[bool, ...]) -> tuple[list, dict]:
    """Conditions whose individual results equal the given booleans."""
    conditions = []
    answers = {}
    for i, expected in enumerate(vector):
        key = f"q{i}"
        answers[key] = "yes"
        conditions.append((key, "equals", "yes" if expected else "no"))
    return conditions, answers


VECTORS = [v for n in range(1, 6) for v in itertools.product([True, False], repeat=n)]


class TestCombinators:
    """AND is the conjunction and OR the disjunction of condition results."""

    @pytest.mark.parametrize("vector", VECTORS)
    def test_and(self, vector):
        conditions, answers = _conditions_for(vector)
        assert should_show(rule("AND", *conditions), answers) is all(vector)

    @pytest.mark.parametrize("vector", VECTORS)
    def test_or(self, vector):
        conditions, answers = _conditions_for(vector)
        assert should_show(rule("OR", *conditions), answers) is any(vector)

    def test_order_does_not_matter(self):
        conditions, answers = _conditions_for((True, False, True))
        forward = should_show(rule("OR", *conditions), answers)
        backward = should_show(rule("OR", *reversed(conditions)), answers)
        assert forward is backward is True

    def test_lowercase_and(self):
        conditions, answers = _conditions_for((True, False))
        assert should_show(rule("and", *conditions), answers) is False

    @pytest.mark.parametrize("logic", ["XOR", "", None, 1])
    def test_unknown_logic_combines_as_or(self, logic):
        conditions, answers = _conditions_for((True, False))
        assert should_show(rule(logic, *conditions), answers) is True

    def test_model_rules(self):
        rules = ConditionalRules.model_validate(rule("OR", ("role", "equals", "Engineer"), ("dept", "equals", "Sales")))
        assert should_show(rules, {"dept": "Sales"}) is True
        assert should_show(rules, {"dept": "Ops"}) is False


# =============================================================
# Test: Malformed input
# =============================================================


class TestMalformed:
    """Malformed payloads are normalized, never raised."""

    def test_unknown_operator_fails(self):
        assert should_show(rule("AND", ("role", "startsWith", "Eng")), {"role": "Engineer"}) is False

    def test_unknown_operator_in_or_does_not_block(self):
        rules = rule("OR", ("role", "startsWith", "Eng"), ("role", "equals", "Engineer"))
        assert should_show(rules, {"role": "Engineer"}) is True

    @pytest.mark.parametrize("conditions", ["role", {"questionKey": "role"}, 5])
    def test_non_list_conditions_means_no_rules(self, conditions):
        assert should_show({"logic": "AND", "conditions": conditions}, {}) is True

    @pytest.mark.parametrize("condition", [None, "role", 3, {"operator": "equals"}, {"questionKey": 7, "operator": "equals", "value": 7}])
    def test_bad_condition_fails(self, condition):
        assert should_show({"logic": "AND", "conditions": [condition]}, {"role": "x", "7": 7}) is False

    @pytest.mark.parametrize("operator", ["equals", "notEquals", "contains"])
    @pytest.mark.parametrize("answer", ["Engineer", "", ["Go"]])
    def test_condition_without_value_fails(self, operator, answer):
        rules = {"logic": "AND", "conditions": [{"questionKey": "role", "operator": operator}]}
        assert should_show(rules, {"role": answer}) is False

    def test_condition_with_null_value_fails(self):
        assert should_show(rule("AND", ("role", "contains", None)), {"role": "Engineer"}) is False

    def test_rules_of_wrong_type_means_no_rules(self):
        assert should_show("not-a-rule", {}) is True

    def test_unhashable_value(self):
        rules = rule("AND", ("s", "contains", ["a"]))
        assert should_show(rules, {"s": [["a"], "b"]}) is True


# =============================================================
# Test: Purity
# =============================================================


class TestPurity:
    """The evaluator keeps no state and does not touch its inputs."""

    def test_answers_not_mutated(self):
        answers = {"role": "Engineer", "skills": ["Go"]}
        snapshot = copy.deepcopy(answers)
        should_show(rule("AND", ("skills", "contains", "Go"), ("role", "equals", "Engineer")), answers)
        assert answers == snapshot

    def test_rules_not_mutated(self):
        rules = rule("OR", ("role", "equals", "Engineer"))
        snapshot = copy.deepcopy(rules)
        should_show(rules, {"role": "Engineer"})
        assert rules == snapshot

    def test_repeatable(self):
        rules = rule("OR", ("role", "equals", "Engineer"), ("skills", "contains", "Go"))
        answers = {"skills": ["Go"]}
        results = {should_show(rules, answers) for _ in range(20)}
        assert results == {True}


# =============================================================
# Test: Helpers
# =============================================================


class TestCanonicalString:
    @pytest.mark.parametrize(
        "value, expected",
        [
            (None, ""),
            (True, "true"),
            (False, "false"),
            (3, "3"),
            (3.0, "3"),
            (3.5, "3.5"),
            (["a", 1, None], "a,1,"),
            ("Engineer", "Engineer"),
        ],
    )
    def test_values(self, value, expected):
        assert canonical_string(value) == expected


class TestIsAnswered:
    @pytest.mark.parametrize("value", [None, "", "   ", [], ()])
    def test_unanswered(self, value):
        assert is_answered(value) is False

    @pytest.mark.parametrize("value", ["x", ["Go"], 0, False])
    def test_answered(self, value):
        assert is_answered(value) is True


class TestFieldHelpers:
    """visible_fields / missing_required_fields over a whole form."""

    def test_initial_visibility(self, job_form):
        ids = [f.field_id for f in visible_fields(job_form.fields, {})]
        assert ids == ["name", "role"]

    def test_engineer_reveals_skills(self, job_form):
        ids = [f.field_id for f in visible_fields(job_form.fields, {"role": "Engineer"})]
        assert ids == ["name", "role", "skills"]

    def test_chained_rule(self, job_form):
        answers = {"role": "Engineer", "skills": ["Go"]}
        ids = [f.field_id for f in visible_fields(job_form.fields, answers)]
        assert ids == ["name", "role", "skills", "go_project"]

    def test_missing_required_only_visible(self, job_form):
        missing = missing_required_fields(job_form.fields, {"role": "Designer"})
        assert [f.field_id for f in missing] == ["name"]

    def test_missing_required_blank_answer(self, job_form):
        missing = missing_required_fields(job_form.fields, {"name": "  ", "role": "Engineer", "skills": []})
        assert [f.label for f in missing] == ["Full name", "Skills"]

    def test_optional_visible_field_not_missing(self, job_form):
        missing = missing_required_fields(job_form.fields, {"name": "Ada", "role": "Intern"})
        assert missing == []
