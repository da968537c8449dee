import logging
import threading
from collections.abc import Iterable

from ..auth.catalog import PermissionCatalog
from ..auth.contract import action_value
from ..auth.definitions import (
    AccessDefinitions,
    PermissionDefinition,
    PolicyDefinition,
    RoleDefinition,
)
from ..auth.engine import Clock, Decision, DecisionEngine, PermissionRequest, Principal, utc_now
from ..auth.policy import IpAllowList, NetworkAllowList, SecurityPolicyTable
from ..auth.registry import RoleRegistry
from ..audit.recorder import AuditRecorder
from ..schemas.audit_log import AuditContext

logger = logging.getLogger("access_core.access")


class AccessControl:
    """Authorization entry point for callers: decide, then record.

    SECURITY: the decision returned by ``authorize`` is final. The audit
    recorder runs after the decision is made and its failures are reported on
    the audit error channel only.

    The catalog, registry and policy table are immutable snapshots held by a
    single ``DecisionEngine``. ``register_role`` builds a new registry and a
    new engine under a writer lock and swaps the engine reference; readers
    take no lock and always see one complete snapshot.
    """

    def __init__(
        self,
        catalog: PermissionCatalog,
        registry: RoleRegistry,
        policies: SecurityPolicyTable,
        *,
        recorder: AuditRecorder | None = None,
        ip_allow_list: IpAllowList | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self._ip_allow_list = ip_allow_list if ip_allow_list is not None else NetworkAllowList()
        self._clock = clock
        self._recorder = recorder
        self._write_lock = threading.Lock()
        self._engine = DecisionEngine(catalog, registry, policies, self._ip_allow_list, clock)

    @classmethod
    def from_definitions(
        cls,
        definitions: AccessDefinitions,
        *,
        recorder: AuditRecorder | None = None,
        ip_allow_list: IpAllowList | None = None,
        clock: Clock = utc_now,
    ) -> "AccessControl":
        """Build every snapshot from structured definitions.

        Raises:
            ConfigurationError: any catalog, role or policy problem; the
                service must not start.
        """
        catalog = PermissionCatalog.load(definitions.permissions)
        registry = RoleRegistry.seed(catalog, definitions.roles)
        policies = SecurityPolicyTable.load(definitions.policies, registry=registry)
        return cls(
            catalog,
            registry,
            policies,
            recorder=recorder,
            ip_allow_list=ip_allow_list,
            clock=clock,
        )

    @property
    def engine(self) -> DecisionEngine:
        return self._engine

    @property
    def catalog(self) -> PermissionCatalog:
        return self._engine.catalog

    @property
    def registry(self) -> RoleRegistry:
        return self._engine.registry

    @property
    def policies(self) -> SecurityPolicyTable:
        return self._engine.policies

    @property
    def recorder(self) -> AuditRecorder | None:
        return self._recorder

    def authorize(
        self,
        principal: Principal,
        request: PermissionRequest,
        context: AuditContext | None = None,
    ) -> Decision:
        engine = self._engine
        decision = engine.authorize(principal, request)

        if decision.allowed:
            logger.debug(
                "access_granted user_id=%s role=%s permission=%s",
                principal.user_id,
                principal.role,
                decision.matched_permission,
            )
        else:
            if principal.role not in engine.registry:
                logger.warning(
                    "unknown_role user_id=%s role=%s", principal.user_id, principal.role
                )
            logger.info(
                "access_denied user_id=%s role=%s module=%s action=%s reason=%s",
                principal.user_id,
                principal.role,
                request.module_name,
                request.action_name,
                decision.reason_code.value,
            )

        if self._recorder is not None:
            try:
                self._recorder.record(principal, request, decision, context)
            except Exception:  # noqa: BLE001
                logger.exception(
                    "audit_record_failed user_id=%s module=%s action=%s",
                    principal.user_id,
                    request.module_name,
                    request.action_name,
                )
        return decision

    def check(
        self,
        principal: Principal,
        request: PermissionRequest,
        context: AuditContext | None = None,
    ) -> bool:
        return self.authorize(principal, request, context).allowed

    def register_role(
        self,
        name: str,
        permission_keys: Iterable[str],
        *,
        description: str | None = None,
        display_name: str | None = None,
        owner_scoped: Iterable[str] = (),
    ) -> None:
        """Register a custom role and publish the new snapshot.

        Raises:
            DuplicateRoleError, UnknownPermissionError: nothing is published.
        """
        with self._write_lock:
            current = self._engine
            registry = current.registry.register_role(
                name,
                permission_keys,
                description=description,
                display_name=display_name,
                owner_scoped=owner_scoped,
            )
            self._engine = DecisionEngine(
                current.catalog,
                registry,
                current.policies,
                self._ip_allow_list,
                self._clock,
            )
        logger.info("role_registered role=%s permissions=%d", name, len(registry.grants(name)))

    def snapshot(self) -> AccessDefinitions:
        """Export the live catalog, roles and policies as structured definitions."""
        engine = self._engine
        permissions = [
            PermissionDefinition(
                module=permission.module.value,
                action=action_value(permission.action),
                description=permission.description,
                key=permission.key,
            )
            for permission in engine.catalog
        ]
        roles = [
            RoleDefinition(
                name=role.name,
                display_name=role.display_name,
                description=role.description,
                is_system=role.is_system,
                all_permissions=role.all_permissions,
                permissions=[] if role.all_permissions else sorted(role.permissions),
                owner_scoped=sorted(role.owner_scoped),
            )
            for role in engine.registry
        ]
        policies = [
            PolicyDefinition(
                category=category.value,
                level=requirement.level.value,
                allowed_roles=sorted(requirement.allowed_roles),
                required_permissions=sorted(requirement.required_permissions),
                two_factor_required=requirement.two_factor_required,
                ip_restricted=requirement.ip_restricted,
            )
            for category, requirement in engine.policies.items()
        ]
        return AccessDefinitions(permissions=permissions, roles=roles, policies=policies)
