"""
FastAPI dependencies - map authorization decisions onto HTTP.

The host application owns authentication: it overrides ``get_principal``
(``app.dependency_overrides[get_principal] = ...``) with a dependency that
turns its session or token into a ``Principal``.

A DENY becomes 403 with the canonical error payload. The reason code is
logged server-side and never returned to the client, so responses do not
reveal how the policy is structured.
"""
from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Request, status

from .auth.contract import Action, Module, SettingCategory
from .auth.engine import Decision, PermissionRequest, Principal
from .errors import AccessDeniedError, AuthError, ConfigurationError, error_payload
from .schemas.audit_log import AuditContext
from .services.access_control import AccessControl

logger = logging.getLogger("access_core.http")


def get_access_control(request: Request) -> AccessControl:
    access_control = getattr(request.app.state, "access_control", None)
    if access_control is None:
        raise ConfigurationError("Access control is not configured on this application")
    return access_control


async def get_principal() -> Principal:
    """Placeholder for the AuthN collaborator; always 401 until overridden."""
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=error_payload(AuthError.code, AuthError.message),
    )


def audit_context_from_request(request: Request) -> AuditContext:
    return AuditContext(
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
        extra={
            "request_method": request.method,
            "request_path": request.url.path,
        },
    )


def require_permission(
    module: Module | str,
    action: Action | str,
    *,
    category: SettingCategory | str | None = None,
    owner_param: str | None = None,
) -> Callable:
    """
    Enforce a (module, action) permission on a route.

    Args:
        module: The requested module
        action: The requested action (typed or free-form)
        category: Guarded category whose SecurityRequirement also applies
        owner_param: Path or query parameter holding the owner id of the
            target record, for owner-scoped grants

    Returns:
        Dependency that returns the granting ``Decision`` or raises 403
    """
    async def dependency(
        request: Request,
        principal: Principal = Depends(get_principal),
        access_control: AccessControl = Depends(get_access_control),
    ) -> Decision:
        owner_id = None
        if owner_param is not None:
            owner_id = request.path_params.get(owner_param) or request.query_params.get(owner_param)

        permission_request = PermissionRequest(
            module=module,
            action=action,
            category=category,
            resource_owner_id=owner_id,
        )
        decision = access_control.authorize(
            principal,
            permission_request,
            audit_context_from_request(request),
        )
        if not decision.allowed:
            logger.warning(
                "[%s] path=%s user_id=%s permission=%s reason=%s",
                AccessDeniedError.code,
                request.url.path,
                principal.user_id,
                decision.matched_permission or f"{permission_request.module_name}_{permission_request.action_name}",
                decision.reason_code.value,
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=error_payload(AccessDeniedError.code, AccessDeniedError.message),
            )
        return decision

    return dependency


def access_control_lifespan(access_control: AccessControl) -> Callable[[FastAPI], AbstractAsyncContextManager[None]]:
    """Lifespan that publishes ``access_control`` on app.state, runs its recorder
    and closes the audit sink on shutdown."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        app.state.access_control = access_control
        recorder = access_control.recorder
        if recorder is not None:
            await recorder.start()
        try:
            yield
        finally:
            if recorder is not None:
                await recorder.stop()
                close = getattr(recorder.sink, "close", None)
                if close is not None:
                    await close()
                    logger.info("audit_sink_closed sink=%s", type(recorder.sink).__name__)

    return lifespan
