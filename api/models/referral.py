import enum
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import UUID, Boolean, DateTime, Enum, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base
from utils.clock import utcnow
# avoid importing User to prevent cycles; use string annotations in relationships


class ReferralStatus(enum.Enum):
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class AffiliateReferral(Base):
    __tablename__ = "affiliate_referrals"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    affiliate_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("affiliates.id"), nullable=False, index=True)
    # a user can be referred once
    referred_user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"), nullable=False, unique=True)
    status: Mapped[ReferralStatus] = mapped_column(
        Enum(ReferralStatus, name="referralstatus"), default=ReferralStatus.PENDING, nullable=False
    )
    referral_date: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    first_order_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    # Relationships - use string annotations to avoid cycles
    affiliate: Mapped["Affiliate"] = relationship(back_populates="referrals")
    referred_user: Mapped["User"] = relationship(back_populates="referral", foreign_keys=[referred_user_id])


class AffiliateLinkClick(Base):
    __tablename__ = "affiliate_link_clicks"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    affiliate_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("affiliates.id"), nullable=False, index=True)
    clicked_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    ip_address: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    converted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    converted_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    converted_user_id: Mapped[Optional[uuid.UUID]] = mapped_column(ForeignKey("users.id"), nullable=True)

    affiliate: Mapped["Affiliate"] = relationship(back_populates="clicks")
