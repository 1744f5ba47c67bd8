"""auth.verify: check a bearer token and the caller's roles.

Tokens are HS256 JWTs issued by the platform login service; the user record,
verification flag and revocation list come from the AccessLookup.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

import jwt

from blockflow.compiler.blocks import AuthVerifyConfig
from blockflow.config import settings
from blockflow.handlers.base import BlockHandler, Outcome, utcnow_iso
from blockflow.handlers.triggers import find_token, strip_bearer
from blockflow.services.access_service import AccessLookup
from blockflow.templating.engine import resolve

logger = logging.getLogger("blockflow.handlers.auth")

_TOKEN_PATHS = (
    "session.token",
    "token",
    "authToken",
    "accessToken",
    "headers.authorization",
    "request.headers.authorization",
    "loginResponse.token",
    "authResponse.token",
    "httpResponse.data.token",
)


def _failure(reason: str, message: str, is_authenticated: bool = False) -> Outcome:
    logger.warning("auth.verify failed: %s", reason)
    return Outcome.failed(
        message,
        context_patch={
            "authVerifyResult": {
                "isAuthenticated": is_authenticated,
                "isAuthorized": False,
                "failureReason": reason,
                "verifiedAt": utcnow_iso(),
            },
        },
    )


def _collect_roles(*sources: Any) -> list[str]:
    roles: list[str] = []
    for source in sources:
        if not isinstance(source, dict):
            continue
        for role in [*(source.get("roles") or []), source.get("role")]:
            if role and role not in roles:
                roles.append(role)
    return roles


class AuthVerifyHandler(BlockHandler):
    block_type = "auth.verify"

    def __init__(self, access: AccessLookup) -> None:
        self._access = access

    def decode(self, token: str, validate_expiration: bool) -> dict[str, Any]:
        return jwt.decode(
            token,
            settings.AUTH_SECRET_KEY,
            algorithms=[settings.AUTH_ALGORITHM],
            options={"verify_exp": validate_expiration},
        )

    async def run(self, config: AuthVerifyConfig, context, tenant_id, actor_id) -> Outcome:
        token = find_token(context, _TOKEN_PATHS) or strip_bearer(resolve(config.token, context))
        if not token:
            return _failure("NO_TOKEN", "No authentication token provided")

        try:
            claims = self.decode(token, config.validate_expiration)
        except jwt.ExpiredSignatureError:
            return _failure("TOKEN_EXPIRED", "Authentication token has expired")
        except jwt.InvalidTokenError:
            return _failure("INVALID_TOKEN", "Invalid authentication token")

        if config.check_blacklist and await self._access.is_token_revoked(token):
            return _failure("TOKEN_REVOKED", "Token has been revoked. Please login again")

        user_id = claims.get("id") or claims.get("sub")
        record = await self._access.get_user(tenant_id, user_id)
        if record is None:
            return _failure("USER_NOT_FOUND", "User not found")
        if not record.get("verified", True):
            return _failure("ACCOUNT_NOT_VERIFIED", "Account not verified", is_authenticated=True)

        ctx_user = context.get("user") if isinstance(context.get("user"), dict) else {}
        ctx_session = context.get("session") if isinstance(context.get("session"), dict) else {}
        roles = _collect_roles(claims, record, ctx_user)
        required = [r for r in [*config.required_roles, config.required_role] if r]
        is_authorized = not required or any(role in roles for role in required)

        email = record.get("email")
        name = (
            ctx_session.get("name")
            or ctx_user.get("name")
            or claims.get("name")
            or (email.split("@")[0] if email else None)
        )
        user = {
            "id": record.get("id", user_id),
            "email": email,
            "name": name,
            "role": roles[0] if roles else None,
            "roles": roles,
            "verified": record.get("verified", True),
        }
        if ctx_session.get("loginTimestamp"):
            login_at = ctx_session["loginTimestamp"]
        elif claims.get("iat"):
            login_at = datetime.fromtimestamp(claims["iat"], timezone.utc).isoformat()
        else:
            login_at = utcnow_iso()

        verified_at = utcnow_iso()
        session = {
            **ctx_session,
            "userId": user["id"],
            "email": email,
            "name": name,
            "roles": roles,
            "token": token,
            "loginTimestamp": login_at,
            "validatedAt": verified_at,
            "user": user,
        }
        result = {
            "isAuthenticated": True,
            "isAuthorized": is_authorized,
            "failureReason": None if is_authorized else "INSUFFICIENT_PERMISSIONS",
            "verifiedAt": verified_at,
            "requiredRoles": required,
        }
        auth = context.get("auth") if isinstance(context.get("auth"), dict) else {}
        return Outcome(
            success=is_authorized,
            message=f"User {email} {'authorized' if is_authorized else 'lacks required role'}",
            error=None if is_authorized else "User lacks required role(s)",
            context_patch={
                "token": token,
                "isAuthenticated": True,
                "isAuthorized": is_authorized,
                "user": {**ctx_user, **user},
                "session": session,
                "authVerifyResult": result,
                "auth": {**auth, **result},
            },
        )
