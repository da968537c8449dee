"""Structured access definitions: the catalog, role grants and category policies
as data.

The packaged ``access_core/data/definitions.json`` holds the platform defaults.
A deployment may point ``ACCESS_DEFINITIONS_PATH`` at its own file with the
same shape. Schema problems and unreadable files raise ``DefinitionsError``;
cross-reference problems (unknown keys, unknown roles) are caught later when
the catalog, registry and policy table are built from these schemas.
"""
from __future__ import annotations

import json
import logging
from importlib import resources
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from ..errors import DefinitionsError

logger = logging.getLogger("access_core.definitions")

DEFAULT_DEFINITIONS_RESOURCE = "definitions.json"


class PermissionDefinition(BaseModel):
    model_config = ConfigDict(frozen=True)

    module: str = Field(..., min_length=1, max_length=100)
    action: str = Field(..., min_length=1, max_length=100)
    description: str = ""
    key: str | None = Field(default=None, min_length=1, max_length=200)


class RoleDefinition(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1, max_length=100)
    display_name: str | None = None
    description: str | None = None
    is_system: bool = False
    all_permissions: bool = False
    permissions: list[str] = Field(default_factory=list)
    owner_scoped: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_grant_source(self) -> "RoleDefinition":
        if self.all_permissions and self.permissions:
            raise ValueError(
                f"Role '{self.name}' cannot combine all_permissions with an explicit list"
            )
        return self


class PolicyDefinition(BaseModel):
    model_config = ConfigDict(frozen=True)

    category: str = Field(..., min_length=1, max_length=100)
    level: str
    allowed_roles: list[str] = Field(default_factory=list)
    required_permissions: list[str] = Field(default_factory=list)
    two_factor_required: bool = False
    ip_restricted: bool = False


class AccessDefinitions(BaseModel):
    model_config = ConfigDict(frozen=True)

    version: int = 1
    permissions: list[PermissionDefinition]
    roles: list[RoleDefinition] = Field(default_factory=list)
    policies: list[PolicyDefinition] = Field(default_factory=list)


def parse_definitions(raw: str | bytes, *, source: str = "<string>") -> AccessDefinitions:
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise DefinitionsError(
            f"Access definitions in {source} are not valid JSON: {exc}",
            details={"source": source},
        ) from exc
    try:
        return AccessDefinitions.model_validate(payload)
    except ValidationError as exc:
        raise DefinitionsError(
            f"Access definitions in {source} do not match the schema",
            details={"source": source, "errors": exc.errors(include_url=False)},
        ) from exc


def load_definitions(path: str | Path | None = None) -> AccessDefinitions:
    """Load definitions from ``path``, or the packaged defaults when omitted."""
    if path is None:
        raw = (
            resources.files("access_core.data")
            .joinpath(DEFAULT_DEFINITIONS_RESOURCE)
            .read_text(encoding="utf-8")
        )
        return parse_definitions(raw, source=f"access_core/data/{DEFAULT_DEFINITIONS_RESOURCE}")

    file_path = Path(path)
    try:
        raw = file_path.read_text(encoding="utf-8")
    except OSError as exc:
        logger.error("definitions_unreadable path=%s error=%s", file_path, exc)
        raise DefinitionsError(
            f"Access definitions file '{file_path}' could not be read",
            details={"source": str(file_path)},
        ) from exc
    return parse_definitions(raw, source=str(file_path))
