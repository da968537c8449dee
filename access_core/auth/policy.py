"""Security Policy Table - guarded categories and their SecurityRequirements.

``evaluate`` runs its checks in a fixed order and stops at the first failure:

    1. account status is ACTIVE            -> ACCOUNT_NOT_ACTIVE
    2. role is in allowed_roles            -> ROLE_NOT_ALLOWED
    3. role grants required_permissions    -> MISSING_PERMISSION
    4. two-factor verified (if required)   -> TWO_FACTOR_REQUIRED
    5. source IP allowed (if restricted)   -> IP_NOT_ALLOWED

The order is part of the contract: a suspended administrator is reported as
ACCOUNT_NOT_ACTIVE, never as a missing permission.
"""
from __future__ import annotations

import ipaddress
import logging
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from ..errors import PolicyError
from .contract import ReasonCode, SecurityLevel, SettingCategory, UserStatus, parse_category
from .definitions import PolicyDefinition
from .registry import RoleRegistry, role_name

if TYPE_CHECKING:
    from .engine import Principal

logger = logging.getLogger("access_core.policy")


@dataclass(frozen=True, slots=True)
class SecurityRequirement:
    level: SecurityLevel
    allowed_roles: frozenset[str] = field(default_factory=frozenset)
    required_permissions: frozenset[str] = field(default_factory=frozenset)
    two_factor_required: bool = False
    ip_restricted: bool = False


# ============================================================================
# IP ALLOW-LIST COLLABORATOR
# ============================================================================

@runtime_checkable
class IpAllowList(Protocol):
    def is_allowed(self, ip: str) -> bool: ...


class NetworkAllowList:
    """Allow-list of single addresses and CIDR networks (IPv4 and IPv6).

    An empty list allows nothing. Unparsable client addresses are refused.
    """

    __slots__ = ("_networks",)

    def __init__(self, entries: Iterable[str] = ()) -> None:
        networks = []
        for entry in entries:
            try:
                networks.append(ipaddress.ip_network(entry.strip(), strict=False))
            except ValueError as exc:
                raise PolicyError(
                    f"Invalid IP allow-list entry '{entry}'",
                    details={"entry": entry},
                ) from exc
        self._networks = tuple(networks)

    def is_allowed(self, ip: str) -> bool:
        try:
            address = ipaddress.ip_address(ip.strip())
        except (AttributeError, ValueError):
            return False
        return any(
            address.version == network.version and address in network
            for network in self._networks
        )

    def __len__(self) -> int:
        return len(self._networks)


# ============================================================================
# POLICY TABLE
# ============================================================================

class SecurityPolicyTable:
    __slots__ = ("_requirements",)

    def __init__(self, requirements: Mapping[SettingCategory, SecurityRequirement] | None = None) -> None:
        self._requirements = MappingProxyType(dict(requirements or {}))

    @classmethod
    def load(
        cls,
        definitions: Iterable[PolicyDefinition],
        *,
        registry: RoleRegistry,
    ) -> "SecurityPolicyTable":
        """Validate and freeze the category -> requirement table.

        Raises:
            PolicyError: unknown category or level, duplicate category,
                unknown roles or permissions, or a CRITICAL requirement that
                requires no permission.
        """
        catalog = registry.catalog
        requirements: dict[SettingCategory, SecurityRequirement] = {}

        for definition in definitions:
            category = parse_category(definition.category)
            if category is None:
                raise PolicyError(
                    f"Unknown setting category '{definition.category}'",
                    details={"category": definition.category},
                )
            if category in requirements:
                raise PolicyError(
                    f"Duplicate requirement for category '{category.value}'",
                    details={"category": category.value},
                )
            try:
                level = SecurityLevel(definition.level.strip().upper())
            except ValueError as exc:
                raise PolicyError(
                    f"Unknown security level '{definition.level}' for '{category.value}'",
                    details={"category": category.value, "level": definition.level},
                ) from exc

            allowed_roles = frozenset(
                name for name in (role_name(r) for r in definition.allowed_roles) if name
            )
            unknown_roles = sorted(r for r in allowed_roles if r not in registry)
            if unknown_roles:
                raise PolicyError(
                    f"Category '{category.value}' allows unregistered roles: "
                    f"{', '.join(unknown_roles)}",
                    details={"category": category.value, "roles": unknown_roles},
                )

            required = frozenset(key.strip().upper() for key in definition.required_permissions)
            unknown_keys = sorted(key for key in required if key not in catalog)
            if unknown_keys:
                raise PolicyError(
                    f"Category '{category.value}' requires permissions missing from the "
                    f"catalog: {', '.join(unknown_keys)}",
                    details={"category": category.value, "permissions": unknown_keys},
                )
            if level is SecurityLevel.CRITICAL and not required:
                raise PolicyError(
                    f"CRITICAL category '{category.value}' must require at least one permission",
                    details={"category": category.value},
                )

            requirements[category] = SecurityRequirement(
                level=level,
                allowed_roles=allowed_roles,
                required_permissions=required,
                two_factor_required=definition.two_factor_required,
                ip_restricted=definition.ip_restricted,
            )

        logger.debug("policies_loaded categories=%d", len(requirements))
        return cls(requirements)

    def requirement_for(self, category: object) -> SecurityRequirement | None:
        parsed = parse_category(category)
        if parsed is None:
            return None
        return self._requirements.get(parsed)

    def items(self) -> Iterator[tuple[SettingCategory, SecurityRequirement]]:
        return iter(self._requirements.items())

    def __contains__(self, category: object) -> bool:
        return self.requirement_for(category) is not None

    def __len__(self) -> int:
        return len(self._requirements)

    @staticmethod
    def evaluate(
        principal: "Principal",
        requirement: SecurityRequirement,
        registry: RoleRegistry,
        ip_allow_list: IpAllowList,
    ) -> ReasonCode:
        """Check ``principal`` against ``requirement``; GRANTED or the first failure."""
        if principal.status is not UserStatus.ACTIVE:
            return ReasonCode.ACCOUNT_NOT_ACTIVE

        role = role_name(principal.role)
        if role is None or role not in requirement.allowed_roles:
            return ReasonCode.ROLE_NOT_ALLOWED

        granted = registry.get(role)
        if granted is None or not requirement.required_permissions <= granted.permissions:
            return ReasonCode.MISSING_PERMISSION

        if requirement.two_factor_required and not principal.two_factor_verified:
            return ReasonCode.TWO_FACTOR_REQUIRED

        if requirement.ip_restricted:
            if not principal.source_ip or not ip_allow_list.is_allowed(principal.source_ip):
                return ReasonCode.IP_NOT_ALLOWED

        return ReasonCode.GRANTED
