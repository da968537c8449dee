import uuid
from datetime import datetime

from sqlalchemy import JSON, CheckConstraint, DateTime, String, Text, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, validates

from .base import Base

ALLOWED_DECISIONS = frozenset({"ALLOW", "DENY"})


class AccessAuditLog(Base):
    """One row per authorization decision. Rows are never updated or deleted here."""

    __tablename__ = "access_audit_logs"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    module: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    decision: Mapped[str] = mapped_column(String(10), nullable=False, index=True)
    reason_code: Mapped[str] = mapped_column(String(50), nullable=False)
    details: Mapped[dict | None] = mapped_column(JSON)
    ip_address: Mapped[str | None] = mapped_column(String(45))  # IPv4/IPv6
    user_agent: Mapped[str | None] = mapped_column(Text)
    timestamp: Mapped[datetime] = mapped_column(
        "created_at",
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
        index=True,
    )

    __table_args__ = (
        CheckConstraint(
            "decision IN ('ALLOW', 'DENY')",
            name="valid_access_decision",
        ),
    )

    @validates("decision")
    def validate_decision(self, key: str, value: str) -> str:
        if value not in ALLOWED_DECISIONS:
            raise ValueError(
                f"Invalid decision '{value}'. "
                f"Must be one of: {', '.join(sorted(ALLOWED_DECISIONS))}"
            )
        return value
