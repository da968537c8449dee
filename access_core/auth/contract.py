"""
Access Control Contract - closed vocabularies for the authorization core.

Every module, action, role, account status, security level, setting category
and decision reason used by the core is enumerated here. Anything outside
these sets is either a configuration error (at load time) or a DENY (at
request time). Nothing here is mutable at runtime.

Actions are the one open-ended vocabulary: the typed CRUD-style actions are
enumerated in ``Action``, but the catalog also carries free-form operations
such as ``LOGIN`` or ``SEND``. Those travel as upper-case strings.
"""
from __future__ import annotations

from enum import Enum
from typing import Final


# ============================================================================
# MODULES AND ACTIONS
# ============================================================================

class Module(str, Enum):
    """Coarse resource domains of the platform."""
    AUTH = "AUTH"
    USERS = "USERS"
    ROLES = "ROLES"
    CASES = "CASES"
    DOCUMENTS = "DOCUMENTS"
    SETTINGS = "SETTINGS"
    REPORTS = "REPORTS"
    COMMUNICATIONS = "COMMUNICATIONS"
    BILLING = "BILLING"
    AUDIT = "AUDIT"
    SERVICES = "SERVICES"
    APPOINTMENTS = "APPOINTMENTS"


class Action(str, Enum):
    """Typed operation kinds. Free-form actions are plain strings."""
    CREATE = "CREATE"
    READ = "READ"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    APPROVE = "APPROVE"
    REJECT = "REJECT"
    ASSIGN = "ASSIGN"
    MANAGE = "MANAGE"
    EXPORT = "EXPORT"
    IMPORT = "IMPORT"


# Catalog keys spell READ as VIEW (CASES_VIEW, not CASES_READ)
ACTION_KEY_ALIASES: Final[dict[str, str]] = {
    Action.READ.value: "VIEW",
}


# ============================================================================
# ROLES AND ACCOUNT STATUS
# ============================================================================

class RoleName(str, Enum):
    """Built-in roles seeded from the default definitions."""
    SUPER_ADMIN = "SUPER_ADMIN"
    ADMIN = "ADMIN"
    LAWYER = "LAWYER"
    COORDINATOR = "COORDINATOR"
    CLIENT = "CLIENT"
    PARALEGAL = "PARALEGAL"
    ACCOUNTANT = "ACCOUNTANT"


BUILTIN_ROLES: Final[frozenset[str]] = frozenset(role.value for role in RoleName)


class UserStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    SUSPENDED = "SUSPENDED"
    BANNED = "BANNED"


# ============================================================================
# SECURITY LEVELS AND GUARDED CATEGORIES
# ============================================================================

class SecurityLevel(str, Enum):
    """Totally ordered: LOW < MEDIUM < HIGH < CRITICAL.

    The str mixin would otherwise compare alphabetically, so every ordering
    operator is defined on rank.
    """
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"

    @property
    def rank(self) -> int:
        return _LEVEL_RANK[self.value]

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, SecurityLevel):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: object) -> bool:
        if not isinstance(other, SecurityLevel):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, SecurityLevel):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, SecurityLevel):
            return NotImplemented
        return self.rank >= other.rank


_LEVEL_RANK: Final[dict[str, int]] = {"LOW": 0, "MEDIUM": 1, "HIGH": 2, "CRITICAL": 3}


class SettingCategory(str, Enum):
    """Guarded setting/resource categories carrying a SecurityRequirement."""
    GENERAL = "GENERAL"
    SITE = "SITE"
    EMAIL = "EMAIL"
    NOTIFICATIONS = "NOTIFICATIONS"
    SECURITY = "SECURITY"
    DATABASE = "DATABASE"
    API = "API"
    TEMPLATES = "TEMPLATES"
    APPEARANCE = "APPEARANCE"
    LOCALIZATION = "LOCALIZATION"
    BACKUP = "BACKUP"


# ============================================================================
# DECISION OUTCOMES
# ============================================================================

class ReasonCode(str, Enum):
    GRANTED = "GRANTED"
    ACCOUNT_NOT_ACTIVE = "ACCOUNT_NOT_ACTIVE"
    ROLE_NOT_ALLOWED = "ROLE_NOT_ALLOWED"
    MISSING_PERMISSION = "MISSING_PERMISSION"
    TWO_FACTOR_REQUIRED = "TWO_FACTOR_REQUIRED"
    IP_NOT_ALLOWED = "IP_NOT_ALLOWED"
    NOT_RESOURCE_OWNER = "NOT_RESOURCE_OWNER"
    UNKNOWN_PERMISSION = "UNKNOWN_PERMISSION"


class DecisionOutcome(str, Enum):
    ALLOW = "ALLOW"
    DENY = "DENY"


# ============================================================================
# PARSERS - never raise, return None for anything outside the vocabulary
# ============================================================================

def _normalize(value: object) -> str | None:
    if isinstance(value, Enum):
        value = value.value
    if not isinstance(value, str):
        return None
    normalized = value.strip().upper()
    return normalized or None


def parse_module(value: object) -> Module | None:
    normalized = _normalize(value)
    if normalized is None:
        return None
    try:
        return Module(normalized)
    except ValueError:
        return None


def parse_action(value: object) -> Action | str | None:
    """Return the typed Action when one matches, else the free-form string."""
    normalized = _normalize(value)
    if normalized is None:
        return None
    try:
        return Action(normalized)
    except ValueError:
        return normalized


def parse_category(value: object) -> SettingCategory | None:
    normalized = _normalize(value)
    if normalized is None:
        return None
    try:
        return SettingCategory(normalized)
    except ValueError:
        return None


def action_value(action: Action | str) -> str:
    return action.value if isinstance(action, Action) else action


def permission_key(module: Module | str, action: Action | str) -> str:
    """Default stable key for a (module, action) pair, e.g. CASES_VIEW."""
    module_name = module.value if isinstance(module, Module) else str(module)
    name = action_value(action)
    return f"{module_name}_{ACTION_KEY_ALIASES.get(name, name)}"
