"""Deploy history model - the append-only deployment ledger."""

from datetime import datetime

from sqlalchemy import JSON, DateTime, Integer, String, Text
from sqlalchemy.dialects import postgresql
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from .base import Base


class DeployHistory(Base):
    """One recorded deployment. Rows are inserted once and never updated."""

    __tablename__ = "deploy_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    service_name: Mapped[str] = mapped_column(String(255), index=True)
    commit: Mapped[str] = mapped_column(String(64))
    previous_commit: Mapped[str | None] = mapped_column(String(64))
    version: Mapped[str | None] = mapped_column(String(255))
    deployed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), index=True
    )
    deployed_by: Mapped[str | None] = mapped_column(String(255))
    changes: Mapped[str | None] = mapped_column(Text)
    # Opaque cross-reference tokens (e.g. Context-Palace shard IDs); text[] in Postgres
    shard_ids: Mapped[list[str] | None] = mapped_column(
        postgresql.ARRAY(Text).with_variant(JSON, "sqlite"), nullable=True
    )

    def __repr__(self) -> str:
        return (
            f"<DeployHistory(id={self.id}, service={self.service_name}, "
            f"commit={self.commit}, deployed_at={self.deployed_at})>"
        )
