"""Default block-type -> handler table."""

from __future__ import annotations

from dataclasses import dataclass, field

from blockflow.connectors.email_client import EmailConnector
from blockflow.connectors.http_client import HttpConnector
from blockflow.connectors.summary_client import SummaryClient
from blockflow.handlers.auth import AuthVerifyHandler
from blockflow.handlers.base import HandlerRegistry
from blockflow.handlers.conditions import (
    DateValidHandler,
    ExprHandler,
    IsFilledHandler,
    RoleIsHandler,
    SwitchHandler,
)
from blockflow.handlers.integrations import EmailSendHandler, HttpRequestHandler, SummarizeHandler
from blockflow.handlers.matching import MatchHandler
from blockflow.handlers.records import DbCreateHandler, DbFindHandler, DbUpdateHandler, DbUpsertHandler
from blockflow.handlers.triggers import (
    ClickHandler,
    DropHandler,
    LoginHandler,
    PageLoadHandler,
    RecordCreateHandler,
    RecordUpdateHandler,
    ScheduleHandler,
    SubmitHandler,
    WebhookHandler,
)
from blockflow.handlers.ui import GoBackHandler, OpenModalHandler, RedirectHandler, ToastHandler
from blockflow.services.access_service import AccessLookup, StaticAccessLookup
from blockflow.services.record_store import InMemoryRecordStore, RecordStore


@dataclass
class BlockServices:
    """Collaborators handed to handlers that need them."""

    records: RecordStore = field(default_factory=InMemoryRecordStore)
    access: AccessLookup = field(default_factory=StaticAccessLookup)
    http: HttpConnector = field(default_factory=HttpConnector)
    email: EmailConnector = field(default_factory=EmailConnector)
    summary: SummaryClient = field(default_factory=SummaryClient)


def build_default_registry(services: BlockServices | None = None) -> HandlerRegistry:
    services = services or BlockServices()
    handlers = [
        PageLoadHandler(),
        ClickHandler(),
        SubmitHandler(),
        DropHandler(),
        ScheduleHandler(),
        RecordCreateHandler(),
        RecordUpdateHandler(),
        LoginHandler(),
        WebhookHandler(),
        IsFilledHandler(),
        DateValidHandler(),
        MatchHandler(),
        RoleIsHandler(services.access),
        ExprHandler(),
        SwitchHandler(),
        DbCreateHandler(services.records),
        DbFindHandler(services.records),
        DbUpdateHandler(services.records),
        DbUpsertHandler(services.records),
        EmailSendHandler(services.email),
        HttpRequestHandler(services.http),
        SummarizeHandler(services.summary, services.http),
        OpenModalHandler(),
        ToastHandler(),
        RedirectHandler(),
        GoBackHandler(),
        AuthVerifyHandler(services.access),
    ]
    return HandlerRegistry({h.block_type: h for h in handlers})
