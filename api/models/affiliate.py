import enum
import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy import UUID, Boolean, DateTime, Enum, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base
from utils.clock import utcnow


class AffiliateTier(enum.Enum):
    BRONZE = "BRONZE"
    SILVER = "SILVER"
    GOLD = "GOLD"
    PLATINUM = "PLATINUM"


class Affiliate(Base):
    __tablename__ = "affiliates"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"), nullable=False, unique=True)
    affiliate_code: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    tier: Mapped[AffiliateTier] = mapped_column(
        Enum(AffiliateTier, name="affiliatetier"), default=AffiliateTier.BRONZE, nullable=False
    )
    tier_updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # Points totals; balance only moves through the points ledger
    total_points_earned: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    current_points_balance: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    total_referrals: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    active_referrals: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    # Relationships
    user: Mapped["User"] = relationship(back_populates="affiliate")
    referrals: Mapped[List["AffiliateReferral"]] = relationship(back_populates="affiliate")
    clicks: Mapped[List["AffiliateLinkClick"]] = relationship(back_populates="affiliate")
