"""Trigger-condition evaluators.

Each evaluator is a pure ``(condition, context) -> bool`` over a frozen
``EvaluationContext``. ``evaluate_condition`` dispatches on the condition
type; types it does not know evaluate to ``False`` so definitions written
for newer releases stay harmless.
"""

import logging
import re

from cds.models.alert import ClinicalAlertDefinition, TriggerCondition, TriggerType
from cds.models.clinical import EvaluationContext

logger = logging.getLogger(__name__)

SEASON_MONTHS = {
    "winter": {12, 1, 2},
    "spring": {3, 4, 5},
    "summer": {6, 7, 8},
    "fall": {9, 10, 11},
}

_LEADING_NUMBER = re.compile(r"^\s*([-+]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][-+]?\d+)?)")
_LEADING_INT = re.compile(r"^\s*([-+]?\d+)")


def _parse_number(text: str) -> float | None:
    """Parse the leading numeric part of a lab value ("8.5 %" -> 8.5)."""
    match = _LEADING_NUMBER.match(text or "")
    if not match:
        return None
    return float(match.group(1))


def _parse_int(text: str) -> int | None:
    match = _LEADING_INT.match(text or "")
    if not match:
        return None
    return int(match.group(1))


def evaluate_diagnosis(condition: TriggerCondition, context: EvaluationContext) -> bool:
    return any(d.code in condition.codes for d in context.diagnoses)


def evaluate_medication(condition: TriggerCondition, context: EvaluationContext) -> bool:
    codes = condition.codes
    return any(
        m.id in codes or m.generic_name in codes or (m.classification is not None and m.classification in codes)
        for m in context.medications
    )


def evaluate_lab_result(condition: TriggerCondition, context: EvaluationContext) -> bool:
    value_range = condition.value_range
    for result in context.lab_results:
        if result.test_code not in condition.codes:
            continue
        if value_range is None:
            return True
        value = _parse_number(result.value)
        if value is None:
            continue
        if value_range.min is not None and value < value_range.min:
            continue
        if value_range.max is not None and value > value_range.max:
            continue
        return True
    return False


def evaluate_demographic(condition: TriggerCondition, context: EvaluationContext) -> bool:
    """Codes are ``age>N``, ``age<N``, ``age=N`` or ``gender=X``, OR'd together."""
    patient = context.patient
    for code in condition.codes:
        if code[:4] in ("age>", "age<", "age="):
            bound = _parse_int(code[4:])
            if bound is None or patient.age is None:
                continue
            op = code[3]
            if op == ">" and patient.age > bound:
                return True
            if op == "<" and patient.age < bound:
                return True
            if op == "=" and patient.age == bound:
                return True
        elif patient.gender is not None and code == f"gender={patient.gender}":
            return True
    return False


def evaluate_seasonal(condition: TriggerCondition, context: EvaluationContext) -> bool:
    month = context.current_date.month
    for code in condition.codes:
        if code.startswith("month="):
            months = {_parse_int(m) for m in code[len("month="):].split(",")}
            if month in months:
                return True
        elif code.startswith("season="):
            if month in SEASON_MONTHS.get(code[len("season="):], set()):
                return True
    return False


def evaluate_appointment_type(condition: TriggerCondition, context: EvaluationContext) -> bool:
    if context.appointment is None:
        return False
    return context.appointment.type in condition.codes


def evaluate_custom(condition: TriggerCondition, context: EvaluationContext) -> bool:
    # Reserved extension point: no semantics are defined for custom conditions yet.
    return False


def evaluate_condition(condition: TriggerCondition, context: EvaluationContext) -> bool:
    match condition.type:
        case TriggerType.DIAGNOSIS:
            return evaluate_diagnosis(condition, context)
        case TriggerType.MEDICATION:
            return evaluate_medication(condition, context)
        case TriggerType.LAB_RESULT:
            return evaluate_lab_result(condition, context)
        case TriggerType.PATIENT_DEMOGRAPHIC:
            return evaluate_demographic(condition, context)
        case TriggerType.SEASONAL:
            return evaluate_seasonal(condition, context)
        case TriggerType.APPOINTMENT_TYPE:
            return evaluate_appointment_type(condition, context)
        case TriggerType.CUSTOM:
            return evaluate_custom(condition, context)
        case _:
            return False


def evaluate_alert(alert: ClinicalAlertDefinition, context: EvaluationContext) -> bool:
    """True if any trigger condition matches. A malformed condition counts as no match."""
    for condition in alert.trigger_conditions:
        try:
            if evaluate_condition(condition, context):
                return True
        except (ValueError, TypeError, AttributeError) as exc:
            logger.warning(
                "Skipping malformed %s condition on alert %s: %s", condition.type, alert.id, exc
            )
    return False
