from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import DateTime, ForeignKey, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from orchestrator.db.base import Base


class Sandbox(Base):
    __tablename__ = "sandboxes"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    # Unique: concurrent provisioning for one repository converges on a single row.
    repository_id: Mapped[UUID] = mapped_column(
        ForeignKey("repositories.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    workspace_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    provider: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default="daytona",
        server_default="daytona",
    )
    status: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default="provisioning",
        server_default="provisioning",
        index=True,
    )
    preview_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_active_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False, index=True
    )
    last_checkpoint_id: Mapped[UUID | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )
