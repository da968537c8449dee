"""Permission Catalog - the closed, immutable set of (module, action) permissions."""
from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

from pydantic import ValidationError

from ..errors import CatalogError
from .contract import Action, Module, action_value, parse_action, parse_module, permission_key
from .definitions import PermissionDefinition

logger = logging.getLogger("access_core.catalog")


@dataclass(frozen=True, slots=True)
class Permission:
    key: str
    module: Module
    action: Action | str
    description: str = ""

    @property
    def action_name(self) -> str:
        return action_value(self.action)


class PermissionCatalog:
    """Immutable key -> Permission map with an O(1) (module, action) index.

    Build it with ``PermissionCatalog.load``; the instance never changes after
    construction.
    """

    __slots__ = ("_by_key", "_by_pair")

    def __init__(
        self,
        by_key: Mapping[str, Permission],
        by_pair: Mapping[tuple[Module, str], Permission],
    ) -> None:
        self._by_key = MappingProxyType(dict(by_key))
        self._by_pair = MappingProxyType(dict(by_pair))

    @classmethod
    def load(
        cls,
        entries: Iterable[PermissionDefinition | Mapping[str, Any]],
    ) -> "PermissionCatalog":
        """Build a catalog from ``{module, action, description[, key]}`` entries.

        Raises:
            CatalogError: on unknown modules, empty actions, duplicate keys or
                duplicate (module, action) pairs.
        """
        by_key: dict[str, Permission] = {}
        by_pair: dict[tuple[Module, str], Permission] = {}

        for entry in entries:
            if not isinstance(entry, PermissionDefinition):
                try:
                    entry = PermissionDefinition.model_validate(entry)
                except ValidationError as exc:
                    raise CatalogError(
                        "Malformed permission catalog entry",
                        details={"entry": dict(entry)},
                    ) from exc

            module = parse_module(entry.module)
            if module is None:
                raise CatalogError(
                    f"Unknown module '{entry.module}' in permission catalog",
                    details={"module": entry.module},
                )
            action = parse_action(entry.action)
            if action is None:
                raise CatalogError(
                    f"Empty action for module '{module.value}' in permission catalog",
                    details={"module": module.value},
                )

            key = (entry.key or permission_key(module, action)).strip().upper()
            if key in by_key:
                raise CatalogError(
                    f"Duplicate permission key '{key}'",
                    details={"key": key},
                )
            pair = (module, action_value(action))
            if pair in by_pair:
                raise CatalogError(
                    f"Duplicate permission for {module.value}.{pair[1]} "
                    f"(keys '{by_pair[pair].key}' and '{key}')",
                    details={"module": module.value, "action": pair[1]},
                )

            permission = Permission(
                key=key,
                module=module,
                action=action,
                description=entry.description,
            )
            by_key[key] = permission
            by_pair[pair] = permission

        logger.debug("catalog_loaded permissions=%d", len(by_key))
        return cls(by_key, by_pair)

    def lookup(self, key: str) -> Permission | None:
        if not isinstance(key, str):
            return None
        return self._by_key.get(key.strip().upper())

    def resolve(self, module: object, action: object) -> Permission | None:
        """Resolve a requested (module, action) to its catalog permission.

        Tries the pair index first, then the key spelling ``<MODULE>_<ACTION>``
        so that both (CASES, READ) and (CASES, VIEW) reach CASES_VIEW.
        Malformed input returns None; this never raises.
        """
        parsed_module = parse_module(module)
        parsed_action = parse_action(action)
        if parsed_module is None or parsed_action is None:
            return None
        name = action_value(parsed_action)
        permission = self._by_pair.get((parsed_module, name))
        if permission is not None:
            return permission
        return self._by_key.get(f"{parsed_module.value}_{name}")

    def by_module(self, module: Module | str) -> tuple[Permission, ...]:
        parsed = parse_module(module)
        return tuple(p for p in self._by_key.values() if p.module is parsed)

    def keys(self) -> frozenset[str]:
        return frozenset(self._by_key)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and key in self._by_key

    def __iter__(self) -> Iterator[Permission]:
        return iter(self._by_key.values())

    def __len__(self) -> int:
        return len(self._by_key)
