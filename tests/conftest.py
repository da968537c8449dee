"""Shared test fixtures and configuration."""
import os
from datetime import datetime, timezone

import pytest

# Keep a developer's .env from changing the sink or definitions under test
os.environ.setdefault("AUDIT_SINK", "memory")

from access_core.auth.catalog import PermissionCatalog
from access_core.auth.definitions import load_definitions
from access_core.auth.engine import DecisionEngine
from access_core.auth.policy import NetworkAllowList, SecurityPolicyTable
from access_core.auth.registry import RoleRegistry

FIXED_NOW = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)


def fixed_clock() -> datetime:
    return FIXED_NOW


@pytest.fixture(scope="session")
def definitions():
    """Packaged default definitions."""
    return load_definitions()


@pytest.fixture
def catalog(definitions):
    return PermissionCatalog.load(definitions.permissions)


@pytest.fixture
def registry(catalog, definitions):
    return RoleRegistry.seed(catalog, definitions.roles)


@pytest.fixture
def policies(registry, definitions):
    return SecurityPolicyTable.load(definitions.policies, registry=registry)


@pytest.fixture
def allow_list():
    return NetworkAllowList(["10.0.0.0/8", "192.168.1.10"])


@pytest.fixture
def engine(catalog, registry, policies, allow_list):
    return DecisionEngine(catalog, registry, policies, allow_list, clock=fixed_clock)


@pytest.fixture
def fixed_now():
    return FIXED_NOW


@pytest.fixture
def anyio_backend():
    """The audit recorder and sinks are built on asyncio (see DESIGN.md)."""
    return "asyncio"
