"""UI directive actions; the caller delivers them to the page."""

from __future__ import annotations

from blockflow.compiler.blocks import GoBackConfig, OpenModalConfig, RedirectConfig, ToastConfig
from blockflow.handlers.base import BlockHandler, Outcome, utcnow_iso
from blockflow.templating.engine import resolve, stringify

TOAST_MIN_MS = 1000
TOAST_MAX_MS = 30000


class OpenModalHandler(BlockHandler):
    block_type = "ui.openModal"

    async def run(self, config: OpenModalConfig, context, tenant_id, actor_id) -> Outcome:
        modal = {
            "modalId": config.modal_id,
            "title": stringify(resolve(config.modal_title, context)),
            "content": stringify(resolve(config.modal_content, context)),
            "size": config.modal_size,
            "showCloseButton": config.show_close_button,
            "showBackdrop": config.show_backdrop,
            "closeOnBackdropClick": config.close_on_backdrop_click,
            "data": resolve(config.modal_data, context),
        }
        return Outcome(
            success=True,
            message=f"Modal '{config.modal_id}' opened",
            context_patch={"openModalResult": modal},
        )


class ToastHandler(BlockHandler):
    block_type = "notify.toast"

    async def run(self, config: ToastConfig, context, tenant_id, actor_id) -> Outcome:
        message = stringify(resolve(config.message, context))
        if not message.strip():
            raise ValueError("Toast message is empty after context variable substitution")
        toast = {
            "message": message,
            "title": stringify(resolve(config.title, context)) if config.title else None,
            "variant": config.variant,
            "duration": min(max(config.duration, TOAST_MIN_MS), TOAST_MAX_MS),
            "position": config.position,
        }
        return Outcome(success=True, message=message, context_patch={"toast": toast})


class RedirectHandler(BlockHandler):
    block_type = "page.redirect"

    async def run(self, config: RedirectConfig, context, tenant_id, actor_id) -> Outcome:
        if config.target_page_id:
            kind, target = "page", stringify(resolve(config.target_page_id, context))
        else:
            kind, target = "url", stringify(resolve(config.url, context))
        if not target:
            raise ValueError("No target page ID or URL specified for redirect")
        return Outcome(
            success=True,
            message=f"Redirect to {kind} {target}",
            context_patch={
                "redirectProcessed": True,
                "redirectTarget": target,
                "redirectType": kind,
                "redirect": {
                    "type": kind,
                    "target": target,
                    "openInNewTab": config.open_in_new_tab,
                    "timestamp": utcnow_iso(),
                },
            },
        )


class GoBackHandler(BlockHandler):
    block_type = "page.goBack"

    async def run(self, config: GoBackConfig, context, tenant_id, actor_id) -> Outcome:
        return Outcome(success=True, message="Navigate back", context_patch={"goBackProcessed": True})
