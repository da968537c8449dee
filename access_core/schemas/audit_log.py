import uuid
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from ..auth.contract import DecisionOutcome, ReasonCode


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class AuditContext(BaseModel):
    """Request context supplied by the caller alongside a decision."""
    model_config = ConfigDict(frozen=True)

    ip_address: str | None = Field(default=None, max_length=45)
    user_agent: str | None = None
    extra: dict[str, Any] = Field(default_factory=dict)


class AuditLogEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    user_id: str = Field(..., max_length=255)
    action: str = Field(..., max_length=100)
    module: str = Field(..., max_length=100)
    decision: DecisionOutcome
    reason_code: ReasonCode
    details: dict[str, Any] = Field(default_factory=dict)
    ip_address: str | None = Field(default=None, max_length=45)
    user_agent: str | None = None
    timestamp: datetime = Field(default_factory=_utc_now)


class AuditLogResponse(AuditLogEntry):
    model_config = ConfigDict(frozen=True, from_attributes=True)

    details: dict[str, Any] | None = Field(default_factory=dict)


class AuditLogFilter(BaseModel):
    user_id: str | None = None
    module: str | None = None
    action: str | None = None
    decision: DecisionOutcome | None = None
    reason_code: ReasonCode | None = None
    from_date: datetime | None = None
    to_date: datetime | None = None

    def matches(self, entry: AuditLogEntry) -> bool:
        if self.user_id is not None and entry.user_id != self.user_id:
            return False
        if self.module is not None and entry.module != self.module:
            return False
        if self.action is not None and entry.action != self.action:
            return False
        if self.decision is not None and entry.decision is not self.decision:
            return False
        if self.reason_code is not None and entry.reason_code is not self.reason_code:
            return False
        if self.from_date is not None and entry.timestamp < self.from_date:
            return False
        if self.to_date is not None and entry.timestamp > self.to_date:
            return False
        return True
