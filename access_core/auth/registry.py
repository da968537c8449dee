"""Role Registry - role name -> granted permission keys.

A registry is an immutable snapshot. ``register_role`` never mutates the
registry it is called on; it validates the new role against the catalog and
returns a new snapshot, which the owner swaps in atomically (see
``AccessControl.register_role``). In-flight authorizations keep reading the
snapshot they started with.
"""
from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType

from ..errors import DuplicateRoleError, UnknownPermissionError, UnknownRoleError
from .catalog import PermissionCatalog
from .definitions import RoleDefinition

logger = logging.getLogger("access_core.registry")


@dataclass(frozen=True, slots=True)
class Role:
    name: str
    permissions: frozenset[str]
    description: str | None = None
    display_name: str | None = None
    is_system: bool = False
    all_permissions: bool = False
    owner_scoped: frozenset[str] = field(default_factory=frozenset)


def role_name(value: object) -> str | None:
    """Role names are case-insensitive; the canonical form is upper case."""
    if isinstance(value, Enum):
        value = value.value
    if not isinstance(value, str):
        return None
    return value.strip().upper() or None


class RoleRegistry:
    __slots__ = ("_catalog", "_roles")

    def __init__(self, catalog: PermissionCatalog, roles: Mapping[str, Role] | None = None) -> None:
        self._catalog = catalog
        self._roles: Mapping[str, Role] = MappingProxyType(dict(roles or {}))

    @classmethod
    def seed(
        cls,
        catalog: PermissionCatalog,
        definitions: Iterable[RoleDefinition],
    ) -> "RoleRegistry":
        """Build the registry from role definitions.

        A definition with ``all_permissions`` receives every key of ``catalog``
        as it stands now; nothing is hand-listed for it.
        """
        registry = cls(catalog)
        for definition in definitions:
            registry = registry.register_role(
                definition.name,
                definition.permissions,
                description=definition.description,
                display_name=definition.display_name,
                is_system=definition.is_system,
                all_permissions=definition.all_permissions,
                owner_scoped=definition.owner_scoped,
            )
        logger.info("roles_seeded roles=%d permissions=%d", len(registry), len(catalog))
        return registry

    @property
    def catalog(self) -> PermissionCatalog:
        return self._catalog

    def register_role(
        self,
        name: str,
        permission_keys: Iterable[str],
        *,
        description: str | None = None,
        display_name: str | None = None,
        is_system: bool = False,
        all_permissions: bool = False,
        owner_scoped: Iterable[str] = (),
    ) -> "RoleRegistry":
        """Return a new registry with ``name`` added.

        Raises:
            DuplicateRoleError: if ``name`` is already registered
            UnknownPermissionError: if any key (granted or owner-scoped) is not
                in the catalog, or an owner-scoped key is not granted
        """
        normalized = role_name(name)
        if normalized is None:
            raise UnknownRoleError("Role name must be a non-empty string")
        if normalized in self._roles:
            raise DuplicateRoleError(
                f"Role '{normalized}' is already registered",
                details={"role": normalized},
            )

        if all_permissions:
            granted = self._catalog.keys()
        else:
            granted = frozenset(key.strip().upper() for key in permission_keys)
        unknown = sorted(key for key in granted if key not in self._catalog)
        if unknown:
            logger.error("role_rejected role=%s unknown_permissions=%s", normalized, unknown)
            raise UnknownPermissionError(
                f"Role '{normalized}' references permissions missing from the catalog: "
                f"{', '.join(unknown)}",
                details={"role": normalized, "permissions": unknown},
            )

        scoped = frozenset(key.strip().upper() for key in owner_scoped)
        not_granted = sorted(scoped - granted)
        if not_granted:
            logger.error("role_rejected role=%s ungranted_owner_scope=%s", normalized, not_granted)
            raise UnknownPermissionError(
                f"Role '{normalized}' scopes permissions it does not grant: "
                f"{', '.join(not_granted)}",
                details={"role": normalized, "permissions": not_granted},
            )

        role = Role(
            name=normalized,
            permissions=granted,
            description=description,
            display_name=display_name,
            is_system=is_system,
            all_permissions=all_permissions,
            owner_scoped=scoped,
        )
        return RoleRegistry(self._catalog, {**self._roles, normalized: role})

    def get(self, name: object) -> Role | None:
        normalized = role_name(name)
        if normalized is None:
            return None
        return self._roles.get(normalized)

    def grants(self, name: object) -> frozenset[str]:
        role = self.get(name)
        if role is None:
            raise UnknownRoleError(
                f"Role '{name}' is not registered",
                details={"role": str(name)},
            )
        return role.permissions

    def has_permission(self, name: object, permission_key: str) -> bool:
        role = self.get(name)
        return role is not None and permission_key in role.permissions

    def is_owner_scoped(self, name: object, permission_key: str) -> bool:
        role = self.get(name)
        return role is not None and permission_key in role.owner_scoped

    def names(self) -> tuple[str, ...]:
        return tuple(self._roles)

    def __contains__(self, name: object) -> bool:
        return self.get(name) is not None

    def __iter__(self) -> Iterator[Role]:
        return iter(self._roles.values())

    def __len__(self) -> int:
        return len(self._roles)
