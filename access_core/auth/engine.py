"""Decision Engine - the single authorization entry point.

``DecisionEngine.authorize`` is a pure function of (principal, request) and
the immutable catalog, registry and policy table the engine was built with.
It performs no I/O, takes no locks and never raises for malformed module or
action input; every outcome is a ``Decision`` value.

Resolution order:

    1. permission resolves in the catalog     else UNKNOWN_PERMISSION
    2. principal status is ACTIVE             else ACCOUNT_NOT_ACTIVE
    3. category requirement (if a category)   else the policy's reason
    4. role grants the permission             else MISSING_PERMISSION
    5. owner-scoped grant covers the record   else NOT_RESOURCE_OWNER
    6. GRANTED
"""
from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from .catalog import PermissionCatalog
from .contract import Action, Module, ReasonCode, SettingCategory, UserStatus
from .policy import IpAllowList, NetworkAllowList, SecurityPolicyTable, SecurityRequirement
from .registry import RoleRegistry, role_name


Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class Principal:
    """The calling identity for one request, built by the AuthN layer."""
    user_id: str
    role: str
    status: UserStatus = UserStatus.ACTIVE
    two_factor_verified: bool = False
    source_ip: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "user_id", str(self.user_id))
        normalized_role = role_name(self.role)
        object.__setattr__(self, "role", normalized_role or "")
        if not isinstance(self.status, UserStatus):
            try:
                status = UserStatus(str(self.status).strip().upper())
            except ValueError:
                # Unrecognized statuses are treated as not active
                status = UserStatus.INACTIVE
            object.__setattr__(self, "status", status)


@dataclass(frozen=True, slots=True)
class PermissionRequest:
    module: Module | str
    action: Action | str
    category: SettingCategory | str | None = None
    resource_owner_id: str | None = None

    @property
    def module_name(self) -> str:
        return _text(self.module)

    @property
    def action_name(self) -> str:
        return _text(self.action)


def _text(value: Any) -> str:
    if isinstance(value, Enum):
        return str(value.value)
    return "" if value is None else str(value)


@dataclass(frozen=True, slots=True)
class Decision:
    allowed: bool
    reason_code: ReasonCode
    evaluated_at: datetime = field(default_factory=utc_now, compare=False)
    matched_permission: str | None = None
    matched_requirement: SecurityRequirement | None = None

    @property
    def denied(self) -> bool:
        return not self.allowed


class DecisionEngine:
    __slots__ = ("_catalog", "_registry", "_policies", "_ip_allow_list", "_clock")

    def __init__(
        self,
        catalog: PermissionCatalog,
        registry: RoleRegistry,
        policies: SecurityPolicyTable,
        ip_allow_list: IpAllowList | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self._catalog = catalog
        self._registry = registry
        self._policies = policies
        self._ip_allow_list = ip_allow_list if ip_allow_list is not None else NetworkAllowList()
        self._clock = clock

    @property
    def catalog(self) -> PermissionCatalog:
        return self._catalog

    @property
    def registry(self) -> RoleRegistry:
        return self._registry

    @property
    def policies(self) -> SecurityPolicyTable:
        return self._policies

    @property
    def ip_allow_list(self) -> IpAllowList:
        return self._ip_allow_list

    def authorize(self, principal: Principal, request: PermissionRequest) -> Decision:
        permission = self._catalog.resolve(request.module, request.action)
        if permission is None:
            return self._deny(ReasonCode.UNKNOWN_PERMISSION)

        key = permission.key
        if principal.status is not UserStatus.ACTIVE:
            return self._deny(ReasonCode.ACCOUNT_NOT_ACTIVE, key)

        requirement: SecurityRequirement | None = None
        if request.category is not None:
            requirement = self._policies.requirement_for(request.category)
            if requirement is None:
                return self._deny(ReasonCode.UNKNOWN_PERMISSION, key)
            outcome = SecurityPolicyTable.evaluate(
                principal, requirement, self._registry, self._ip_allow_list
            )
            if outcome is not ReasonCode.GRANTED:
                return self._deny(outcome, key, requirement)

        if not self._registry.has_permission(principal.role, key):
            return self._deny(ReasonCode.MISSING_PERMISSION, key, requirement)

        if (
            request.resource_owner_id is not None
            and self._registry.is_owner_scoped(principal.role, key)
            and str(request.resource_owner_id) != principal.user_id
        ):
            return self._deny(ReasonCode.NOT_RESOURCE_OWNER, key, requirement)

        return Decision(
            allowed=True,
            reason_code=ReasonCode.GRANTED,
            evaluated_at=self._clock(),
            matched_permission=key,
            matched_requirement=requirement,
        )

    def _deny(
        self,
        reason: ReasonCode,
        key: str | None = None,
        requirement: SecurityRequirement | None = None,
    ) -> Decision:
        return Decision(
            allowed=False,
            reason_code=reason,
            evaluated_at=self._clock(),
            matched_permission=key,
            matched_requirement=requirement,
        )
