"""Typed block configuration: one pydantic model per block type.

Graphs arrive with camelCase configuration blobs from the authoring canvas;
each block type maps to a model below, validated once when the graph is
loaded.  String fields may embed ``{{context.path}}`` placeholders and are
resolved by the handler at execution time.
"""

from __future__ import annotations

import json
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from blockflow.compiler.ir import NodeKind


class BlockConfig(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    continue_on_error: bool = False


def _json_or_value(value: Any) -> Any:
    """Accept JSON text where the canvas stores structured values as strings."""
    if isinstance(value, str) and value.strip()[:1] in ("{", "["):
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return value
    return value


def _element_ids(value: Any) -> list[str]:
    if value is None or value == "":
        return []
    if isinstance(value, str):
        return [v.strip() for v in value.split(",") if v.strip()]
    return [str(v) for v in value]


# ── Triggers ────────────────────────────────────────────────────


class PageLoadConfig(BlockConfig):
    target_page_id: str | None = None


class ClickConfig(BlockConfig):
    target_element_id: str | None = None


class SubmitConfig(BlockConfig):
    selected_form_group: str | None = None


class DropConfig(BlockConfig):
    accepted_types: list[str] = Field(default_factory=list)
    max_file_size: int | None = None  # bytes
    allow_multiple: bool = True

    @field_validator("accepted_types", mode="before")
    @classmethod
    def _split_types(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [v.strip() for v in value.split(",") if v.strip()]
        return value or []


class ScheduleConfig(BlockConfig):
    schedule_type: Literal["interval", "cron"] = "interval"
    schedule_value: float = 1
    schedule_unit: str = "minutes"
    cron_expression: str | None = None
    enabled: bool = True

    @model_validator(mode="after")
    def _check_mode(self) -> "ScheduleConfig":
        if self.schedule_type == "cron" and not (self.cron_expression or "").strip():
            raise ValueError("cronExpression is required when scheduleType is 'cron'")
        if self.schedule_type == "interval" and self.schedule_value <= 0:
            raise ValueError("scheduleValue must be positive")
        return self


class RecordCreateConfig(BlockConfig):
    table_name: str
    enabled: bool = True


class RecordUpdateConfig(BlockConfig):
    table_name: str
    watch_columns: list[str] = Field(default_factory=list)
    enabled: bool = True

    @field_validator("watch_columns", mode="before")
    @classmethod
    def _split_columns(cls, value: Any) -> Any:
        return _element_ids(value)


class LoginConfig(BlockConfig):
    capture_user_data: bool = True
    capture_metadata: bool = False
    store_token: bool = True


class WebhookConfig(BlockConfig):
    match_path: str | None = None
    match_value: Any = None


# ── Conditions ──────────────────────────────────────────────────


class IsFilledConfig(BlockConfig):
    selected_element_ids: list[str] = Field(default_factory=list)
    selected_element_id: str | None = None
    element_types: dict[str, str] = Field(default_factory=dict)
    show_toast_on_fail: bool = False

    @field_validator("selected_element_ids", mode="before")
    @classmethod
    def _split_ids(cls, value: Any) -> Any:
        return _element_ids(value)

    @property
    def element_ids(self) -> list[str]:
        ids = list(self.selected_element_ids)
        if self.selected_element_id and self.selected_element_id not in ids:
            ids.append(self.selected_element_id)
        return ids


class DateRules(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    required: bool = False
    min_date: str | None = None
    max_date: str | None = None
    business_days_only: bool = False
    future_only: bool = False
    past_only: bool = False
    excluded_dates: list[str] = Field(default_factory=list)
    allowed_days_of_week: list[int] = Field(default_factory=list)  # 0 = Sunday
    no_leap_year: bool = False
    min_age: int | None = None
    max_age: int | None = None


class DateValidConfig(BlockConfig):
    selected_element_ids: list[str] = Field(default_factory=list)
    date_format: str = "auto-detect"
    validation_rules: DateRules = Field(default_factory=DateRules)

    @field_validator("selected_element_ids", mode="before")
    @classmethod
    def _split_ids(cls, value: Any) -> Any:
        return _element_ids(value)


class MatchOptions(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    ignore_case: bool = False
    trim_spaces: bool = False


class MatchConfig(BlockConfig):
    left_value: Any = None
    right_value: Any = None
    comparison_type: Literal["text", "number", "date", "list"] = "text"
    operator: str = "equals"
    options: MatchOptions = Field(default_factory=MatchOptions)


class RoleIsConfig(BlockConfig):
    required_role: str = ""
    roles: list[str] = Field(default_factory=list)
    required_pages: list[str] = Field(default_factory=list)
    check_multiple: bool = False

    @field_validator("roles", "required_pages", mode="before")
    @classmethod
    def _split(cls, value: Any) -> Any:
        return _element_ids(value)


class ExprConfig(BlockConfig):
    expression: str = Field(min_length=1)
    output_variable: str = "exprResult"


class SwitchCase(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    case_value: Any = None
    case_label: str | None = None

    @property
    def label(self) -> str:
        return self.case_label or str(self.case_value)


class SwitchConfig(BlockConfig):
    input_value: Any = None
    cases: list[SwitchCase] = Field(default_factory=list)
    default_case: str | None = None

    @field_validator("cases", mode="before")
    @classmethod
    def _parse_cases(cls, value: Any) -> Any:
        return _json_or_value(value) or []


# ── Actions ─────────────────────────────────────────────────────


class Condition(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    field: str
    operator: str = "equals"
    value: Any = None
    logic: Literal["AND", "OR"] = "AND"

    @field_validator("logic", mode="before")
    @classmethod
    def _upper(cls, value: Any) -> Any:
        return str(value or "AND").upper()


class OrderBy(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    field: str
    direction: Literal["ASC", "DESC"] = "ASC"

    @field_validator("direction", mode="before")
    @classmethod
    def _upper(cls, value: Any) -> Any:
        return str(value or "ASC").upper()


class DbCreateConfig(BlockConfig):
    table_name: str = Field(min_length=1)
    insert_data: dict[str, Any] = Field(default_factory=dict)

    @field_validator("insert_data", mode="before")
    @classmethod
    def _parse(cls, value: Any) -> Any:
        return _json_or_value(value) or {}


class DbFindConfig(BlockConfig):
    table_name: str = Field(min_length=1)
    conditions: list[Condition] = Field(default_factory=list)
    order_by: list[OrderBy] = Field(default_factory=list)
    limit: int = 100
    offset: int = 0
    columns: list[str] = Field(default_factory=list)

    @field_validator("conditions", "order_by", mode="before")
    @classmethod
    def _parse(cls, value: Any) -> Any:
        return _json_or_value(value) or []

    @field_validator("columns", mode="before")
    @classmethod
    def _split(cls, value: Any) -> Any:
        return _element_ids(value)


class DbUpdateConfig(BlockConfig):
    table_name: str = Field(min_length=1)
    update_data: dict[str, Any] = Field(default_factory=dict)
    where_conditions: list[Condition] = Field(min_length=1)

    @field_validator("update_data", "where_conditions", mode="before")
    @classmethod
    def _parse(cls, value: Any) -> Any:
        return _json_or_value(value)


class DbUpsertConfig(BlockConfig):
    table_name: str = Field(min_length=1)
    unique_fields: list[str] = Field(min_length=1)
    insert_data: dict[str, Any] = Field(default_factory=dict)
    update_data: dict[str, Any] = Field(default_factory=dict)

    @field_validator("unique_fields", mode="before")
    @classmethod
    def _parse_fields(cls, value: Any) -> Any:
        value = _json_or_value(value)
        if isinstance(value, str):
            value = value.split(",")
        fields = [str(f).strip().strip("'\"") for f in value or []]
        fields = [f for f in fields if f]
        for name in fields:
            if name.isdigit():
                raise ValueError(f"unique field '{name}' must be a column name")
        return fields

    @field_validator("insert_data", "update_data", mode="before")
    @classmethod
    def _parse_data(cls, value: Any) -> Any:
        return _json_or_value(value) or {}

    @model_validator(mode="after")
    def _need_data(self) -> "DbUpsertConfig":
        if not self.insert_data and not self.update_data:
            raise ValueError("insertData or updateData is required")
        return self


class EmailSendConfig(BlockConfig):
    email_to: str = Field(min_length=1)
    email_subject: str = Field(min_length=1)
    email_body: str = Field(min_length=1)
    email_from: str | None = None
    email_cc: str | None = None
    email_bcc: str | None = None
    email_body_type: Literal["html", "text"] = "html"


class HeaderEntry(BaseModel):
    key: str = ""
    value: Any = ""


class AuthConfig(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    token: str | None = None
    api_key: str | None = None
    api_key_header: str = "X-API-Key"
    username: str | None = None
    password: str | None = None


class HttpRequestConfig(BlockConfig):
    url: str = Field(min_length=1)
    method: Literal["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"] = "GET"
    headers: list[HeaderEntry] = Field(default_factory=list)
    body_type: Literal["none", "json", "raw", "form"] = "none"
    body: Any = None
    auth_type: Literal["none", "bearer", "api-key", "basic"] = "none"
    auth_config: AuthConfig = Field(default_factory=AuthConfig)
    timeout: int | None = None  # ms
    follow_redirects: bool = True
    validate_ssl: bool = Field(default=True, alias="validateSSL")
    save_response_to: str = "httpResponse"

    @field_validator("method", mode="before")
    @classmethod
    def _upper(cls, value: Any) -> Any:
        return str(value or "GET").upper()

    @field_validator("headers", mode="before")
    @classmethod
    def _headers(cls, value: Any) -> Any:
        value = _json_or_value(value)
        if isinstance(value, dict):
            return [{"key": k, "value": v} for k, v in value.items()]
        return value or []


class SummarizeConfig(BlockConfig):
    file_variable: str | None = None
    api_key: str | None = None
    output_variable: str = "aiSummary"
    prompt: str | None = None
    max_length: int | None = None  # words


class OpenModalConfig(BlockConfig):
    modal_id: str = Field(min_length=1)
    modal_title: str = ""
    modal_content: str = ""
    modal_size: Literal["small", "medium", "large", "full"] = "medium"
    show_close_button: bool = True
    show_backdrop: bool = True
    close_on_backdrop_click: bool = True
    modal_data: dict[str, Any] = Field(default_factory=dict)


class ToastConfig(BlockConfig):
    message: str = Field(min_length=1)
    title: str | None = None
    variant: Literal["default", "destructive", "success"] = "default"
    duration: int = 5000
    position: str = "bottom-right"


class RedirectConfig(BlockConfig):
    target_page_id: str | None = None
    url: str | None = None
    open_in_new_tab: bool = False

    @model_validator(mode="after")
    def _need_target(self) -> "RedirectConfig":
        if not self.target_page_id and not self.url:
            raise ValueError("targetPageId or url is required")
        return self


class GoBackConfig(BlockConfig):
    pass


class AuthVerifyConfig(BlockConfig):
    token: str | None = None
    required_role: str | None = None
    required_roles: list[str] = Field(default_factory=list)
    validate_expiration: bool = True
    check_blacklist: bool = True

    @field_validator("required_roles", mode="before")
    @classmethod
    def _split(cls, value: Any) -> Any:
        return _element_ids(value)


# ── Block catalogue ─────────────────────────────────────────────

BLOCK_TYPES: dict[str, tuple[NodeKind, type[BlockConfig]]] = {
    "onPageLoad": (NodeKind.TRIGGER, PageLoadConfig),
    "onClick": (NodeKind.TRIGGER, ClickConfig),
    "onSubmit": (NodeKind.TRIGGER, SubmitConfig),
    "onDrop": (NodeKind.TRIGGER, DropConfig),
    "onSchedule": (NodeKind.TRIGGER, ScheduleConfig),
    "onRecordCreate": (NodeKind.TRIGGER, RecordCreateConfig),
    "onRecordUpdate": (NodeKind.TRIGGER, RecordUpdateConfig),
    "onLogin": (NodeKind.TRIGGER, LoginConfig),
    "onWebhook": (NodeKind.TRIGGER, WebhookConfig),
    "isFilled": (NodeKind.CONDITION, IsFilledConfig),
    "dateValid": (NodeKind.CONDITION, DateValidConfig),
    "match": (NodeKind.CONDITION, MatchConfig),
    "roleIs": (NodeKind.CONDITION, RoleIsConfig),
    "expr": (NodeKind.CONDITION, ExprConfig),
    "switch": (NodeKind.CONDITION, SwitchConfig),
    "db.create": (NodeKind.ACTION, DbCreateConfig),
    "db.find": (NodeKind.ACTION, DbFindConfig),
    "db.update": (NodeKind.ACTION, DbUpdateConfig),
    "db.upsert": (NodeKind.ACTION, DbUpsertConfig),
    "email.send": (NodeKind.ACTION, EmailSendConfig),
    "http.request": (NodeKind.ACTION, HttpRequestConfig),
    "ai.summarize": (NodeKind.ACTION, SummarizeConfig),
    "ui.openModal": (NodeKind.ACTION, OpenModalConfig),
    "notify.toast": (NodeKind.ACTION, ToastConfig),
    "page.redirect": (NodeKind.ACTION, RedirectConfig),
    "page.goBack": (NodeKind.ACTION, GoBackConfig),
    "auth.verify": (NodeKind.ACTION, AuthVerifyConfig),
}

# Multi-way nodes route on a case label instead of yes/no.
MULTI_WAY_TYPES = frozenset({"switch"})


def kind_of(block_type: str) -> NodeKind | None:
    entry = BLOCK_TYPES.get(block_type)
    return entry[0] if entry else None


def parse_block_config(block_type: str, raw: dict[str, Any]) -> BlockConfig:
    """Validate *raw* against the model registered for *block_type*.

    Raises ``KeyError`` for unknown types and ``pydantic.ValidationError``
    for bad configuration.
    """
    _, model = BLOCK_TYPES[block_type]
    return model.model_validate(raw)
