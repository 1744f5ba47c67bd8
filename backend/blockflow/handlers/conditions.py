"""Condition blocks: decide a routing hint from the context.

Conditions only add their own result key to the context, so evaluating the
same condition twice against the same context gives the same answer.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any

from blockflow.compiler.blocks import (
    DateRules,
    DateValidConfig,
    ExprConfig,
    IsFilledConfig,
    RoleIsConfig,
    SwitchConfig,
)
from blockflow.compiler.ir import DEFAULT_CASE_LABEL
from blockflow.handlers.base import BlockHandler, Outcome, utcnow_iso
from blockflow.handlers.dates import AUTO_DETECT, WEEKDAY_NAMES, age_on, js_weekday, parse_date
from blockflow.services.access_service import AccessLookup
from blockflow.templating.engine import resolve, stringify
from blockflow.templating.expressions import evaluate_condition
from blockflow.utils.redaction import mask_value

logger = logging.getLogger("blockflow.handlers.conditions")


class ConditionHandler(BlockHandler):
    """A faulted condition routes down the "no" branch."""

    def on_error(self, exc: Exception) -> Outcome:
        return Outcome.failed(str(exc), routing_hint=False)


# ── isFilled ────────────────────────────────────────────────────


def is_filled(value: Any, element_type: str | None) -> bool:
    kind = (element_type or "").lower()
    if kind in ("select", "dropdown"):
        return value is not None and value != "" and value != "default"
    if kind == "checkbox":
        return bool(value)
    if kind == "file":
        if isinstance(value, str):
            return len(value) > 0
        return isinstance(value, dict) and bool(value.get("name"))
    if value is None:
        return False
    if isinstance(value, (list, dict)):
        return len(value) > 0
    return len(stringify(value).strip()) > 0


def _infer_type(value: Any) -> str:
    if isinstance(value, bool):
        return "checkbox"
    if isinstance(value, dict) and "name" in value:
        return "file"
    return "text"


class IsFilledHandler(ConditionHandler):
    block_type = "isFilled"

    async def run(self, config: IsFilledConfig, context, tenant_id, actor_id) -> Outcome:
        element_ids = config.element_ids
        if not element_ids:
            raise ValueError("No form elements selected for validation")

        form_data = context.get("formData") or {}
        declared_types = {**(context.get("elementTypes") or {}), **config.element_types}
        results = []
        for element_id in element_ids:
            value = form_data[element_id] if element_id in form_data else context.get(element_id)
            element_type = declared_types.get(element_id) or _infer_type(value)
            filled = is_filled(value, element_type)
            results.append({
                "elementId": element_id,
                "elementType": element_type,
                "isFilled": filled,
                "elementValue": mask_value(value),
            })

        filled_count = sum(1 for r in results if r["isFilled"])
        all_filled = filled_count == len(results)
        message = f"{filled_count}/{len(results)} elements are filled"
        patch: dict[str, Any] = {
            "isFilledResult": {
                "allFilled": all_filled,
                "anyFilled": filled_count > 0,
                "filledCount": filled_count,
                "elementCount": len(results),
                "validationResults": results,
            },
        }
        if not all_filled and config.show_toast_on_fail:
            extra = config.model_extra or {}
            patch["toast"] = {
                "title": extra.get("failureTitle") or "Validation Failed",
                "message": extra.get("failureMessage")
                or f"Please fill all required fields. {message}.",
                "variant": "destructive",
                "duration": 5000,
            }
        return Outcome(success=True, routing_hint=all_filled, message=message, context_patch=patch)


# ── dateValid ───────────────────────────────────────────────────


def validate_date_value(
    value: Any,
    rules: DateRules,
    fmt: str = AUTO_DETECT,
    today: date | None = None,
) -> dict[str, Any]:
    """Check one value against every configured rule, collecting all violations."""
    today = today or date.today()
    text = stringify(value).strip()
    errors: list[str] = []

    if not text:
        if rules.required:
            errors.append("Date is required")
        return {"isValid": not errors, "errors": errors, "parsedDate": None}

    parsed = parse_date(text, fmt)
    if parsed is None:
        expected = fmt if fmt and fmt != AUTO_DETECT else "a valid date"
        return {
            "isValid": False,
            "errors": [f"Invalid date format. Expected: {expected}"],
            "parsedDate": None,
        }

    min_date = parse_date(rules.min_date) if rules.min_date else None
    if min_date and parsed < min_date:
        errors.append(f"Date must be after {min_date.isoformat()}")
    max_date = parse_date(rules.max_date) if rules.max_date else None
    if max_date and parsed > max_date:
        errors.append(f"Date must be before {max_date.isoformat()}")
    if rules.business_days_only and parsed.weekday() >= 5:
        errors.append("Date must be a business day (Monday-Friday)")
    if rules.future_only and parsed <= today:
        errors.append("Date must be in the future")
    if rules.past_only and parsed >= today:
        errors.append("Date must be in the past")
    excluded = {d for d in (parse_date(x) for x in rules.excluded_dates) if d}
    if parsed in excluded:
        errors.append("This date is not available")
    if rules.allowed_days_of_week and js_weekday(parsed) not in rules.allowed_days_of_week:
        names = ", ".join(WEEKDAY_NAMES[d] for d in rules.allowed_days_of_week if 0 <= d <= 6)
        errors.append(f"Date must be on: {names}")
    if rules.no_leap_year and (parsed.month, parsed.day) == (2, 29):
        errors.append("February 29th is not allowed")
    if rules.min_age is not None or rules.max_age is not None:
        age = age_on(parsed, today)
        if rules.min_age is not None and age < rules.min_age:
            errors.append(f"Age must be at least {rules.min_age} years")
        if rules.max_age is not None and age > rules.max_age:
            errors.append(f"Age must be no more than {rules.max_age} years")

    return {"isValid": not errors, "errors": errors, "parsedDate": parsed.isoformat()}


class DateValidHandler(ConditionHandler):
    block_type = "dateValid"

    async def run(self, config: DateValidConfig, context, tenant_id, actor_id) -> Outcome:
        if not config.selected_element_ids:
            raise ValueError("No date elements selected for validation")

        form_data = context.get("formData") or {}
        results = []
        for element_id in config.selected_element_ids:
            value = form_data.get(element_id)
            check = validate_date_value(value, config.validation_rules, config.date_format)
            results.append({"elementId": element_id, "value": value, **check})

        valid_count = sum(1 for r in results if r["isValid"])
        all_valid = valid_count == len(results)
        return Outcome(
            success=True,
            routing_hint=all_valid,
            message=f"{valid_count}/{len(results)} dates are valid",
            context_patch={
                "dateValidation": {
                    "results": results,
                    "allValid": all_valid,
                    "anyValid": valid_count > 0,
                    "validCount": valid_count,
                    "validatedAt": utcnow_iso(),
                },
            },
        )


# ── roleIs ──────────────────────────────────────────────────────

BASELINE_ROLE = "user"


def _normalize(role: Any) -> str:
    return str(role or "").strip().lower()


class RoleIsHandler(ConditionHandler):
    block_type = "roleIs"

    def __init__(self, access: AccessLookup) -> None:
        self._access = access

    async def run(self, config: RoleIsConfig, context, tenant_id, actor_id) -> Outcome:
        user = context.get("user") if isinstance(context.get("user"), dict) else {}
        role = user.get("role") or context.get("userRole")
        if not role:
            role = await self._access.get_role(tenant_id, actor_id)
        if not role:
            return Outcome(
                success=True,
                routing_hint=False,
                message="User role missing",
                context_patch={"roleCheck": {"isValid": False, "reason": "User role missing"}},
            )

        user_role = _normalize(role)
        if config.check_multiple:
            role_valid = user_role in {_normalize(r) for r in config.roles}
        else:
            role_valid = user_role == (_normalize(config.required_role) or BASELINE_ROLE)

        page_valid = True
        if config.required_pages:
            grants = user.get("pages") or user.get("allowedPages")
            if grants is None:
                grants = await self._access.get_page_grants(tenant_id, actor_id)
            page_valid = all(page in grants for page in config.required_pages)

        is_valid = role_valid and page_valid
        return Outcome(
            success=True,
            routing_hint=is_valid,
            message=f"Role '{user_role}' {'passes' if is_valid else 'fails'} access check",
            context_patch={
                "roleCheck": {
                    "isValid": is_valid,
                    "roleValid": role_valid,
                    "pageValid": page_valid,
                    "userRole": user_role,
                    "requiredRole": config.required_role,
                    "roles": config.roles,
                    "requiredPages": config.required_pages,
                },
            },
        )


# ── expr ────────────────────────────────────────────────────────


class ExprHandler(ConditionHandler):
    block_type = "expr"

    async def run(self, config: ExprConfig, context, tenant_id, actor_id) -> Outcome:
        result = evaluate_condition(config.expression, context)
        return Outcome(
            success=True,
            routing_hint=result,
            message=f"Expression evaluated to {result}",
            context_patch={
                config.output_variable: result,
                "exprResult": {"expression": config.expression, "result": result},
            },
        )


# ── switch ──────────────────────────────────────────────────────


class SwitchHandler(BlockHandler):
    block_type = "switch"

    async def run(self, config: SwitchConfig, context, tenant_id, actor_id) -> Outcome:
        raw_input = resolve(config.input_value, context)
        needle = stringify(raw_input).strip().lower()

        matched_case: str | None = None
        for case in config.cases:
            candidate = stringify(resolve(case.case_value, context)).strip().lower()
            if candidate == needle:
                matched_case = case.label
                break

        label = matched_case or DEFAULT_CASE_LABEL
        return Outcome(
            success=True,
            routing_hint=label,
            message=f"Switch matched '{label}'",
            context_patch={
                "switchResult": {
                    "inputValue": raw_input,
                    "matchedCase": label,
                    "isDefault": matched_case is None,
                    "defaultCase": config.default_case,
                },
            },
        )

    def on_error(self, exc: Exception) -> Outcome:
        return Outcome.failed(str(exc), routing_hint=DEFAULT_CASE_LABEL)
