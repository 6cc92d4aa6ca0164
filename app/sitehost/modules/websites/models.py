from __future__ import annotations

import json
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.sitehost.models import Base

if TYPE_CHECKING:
    from app.sitehost.models import User


class Website(Base):
    __tablename__ = "websites"
    __table_args__ = (
        UniqueConstraint("subdomain", name="uq_websites_subdomain"),
        # One website per account, backed by the schema as well as the workflow.
        UniqueConstraint("user_id", name="uq_websites_user_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    subdomain: Mapped[str] = mapped_column(String(63), nullable=False)  # immutable after creation
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    current_script: Mapped[str | None] = mapped_column(String(255), nullable=True)  # template file name
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    user: Mapped["User"] = relationship("User", back_populates="websites")
    logs: Mapped[list["WebsiteLog"]] = relationship(
        "WebsiteLog",
        back_populates="website",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "name": self.name,
            "subdomain": self.subdomain,
            "description": self.description,
            "currentScript": self.current_script,
            "isActive": self.is_active,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }


class WebsiteLog(Base):
    """
    Append-only audit entry for one website.
    Rows are only ever removed by the cascade from their website.
    """

    __tablename__ = "website_logs"
    __table_args__ = (
        Index("idx_website_logs_website_created", "website_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    website_id: Mapped[int] = mapped_column(ForeignKey("websites.id", ondelete="CASCADE"), nullable=False)

    action: Mapped[str] = mapped_column(String(64), nullable=False)  # created, updated, script_changed
    details_json: Mapped[str | None] = mapped_column(Text, nullable=True)  # small JSON string
    request_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    website: Mapped[Website] = relationship("Website", back_populates="logs")

    @property
    def details(self) -> dict | None:
        if not self.details_json:
            return None
        return json.loads(self.details_json)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "websiteId": self.website_id,
            "action": self.action,
            "details": self.details,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
