import enum
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import UUID, JSON, Boolean, DateTime, Enum, ForeignKey, Integer, Numeric, String, Index
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base
from utils.clock import utcnow


class PointsTransactionType(enum.Enum):
    AFFILIATE_REFERRAL = "AFFILIATE_REFERRAL"
    AFFILIATE_PURCHASE = "AFFILIATE_PURCHASE"
    REDEMPTION = "REDEMPTION"
    MANUAL_ADJUSTMENT = "MANUAL_ADJUSTMENT"


class PointsActionType(enum.Enum):
    REFERRAL_SIGNUP = "REFERRAL_SIGNUP"
    REFERRAL_FIRST_ORDER = "REFERRAL_FIRST_ORDER"
    REFERRAL_REPEAT_ORDER = "REFERRAL_REPEAT_ORDER"
    OWN_PURCHASE = "OWN_PURCHASE"


class PointsRuleKind(enum.Enum):
    FIXED = "FIXED"
    TIERED = "TIERED"


class PointsTransaction(Base):
    """Append-only; rows are never updated or deleted."""
    __tablename__ = "points_transactions"
    __table_args__ = (
        Index("ix_points_transactions_user_created", "user_id", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    type: Mapped[PointsTransactionType] = mapped_column(
        Enum(PointsTransactionType, name="pointstransactiontype"), nullable=False
    )
    balance_before: Mapped[int] = mapped_column(Integer, nullable=False)
    balance_after: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str] = mapped_column(String, nullable=False)
    related_entity_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), nullable=True)
    dedupe_key: Mapped[Optional[str]] = mapped_column(String, nullable=True, unique=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)


class PointsConfig(Base):
    __tablename__ = "points_configs"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    action_type: Mapped[PointsActionType] = mapped_column(
        Enum(PointsActionType, name="pointsactiontype"), nullable=False, index=True
    )
    rule_kind: Mapped[PointsRuleKind] = mapped_column(
        Enum(PointsRuleKind, name="pointsrulekind"), default=PointsRuleKind.FIXED, nullable=False
    )
    points_amount: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    # [{"min_order_value": 0, "max_order_value": 100, "points": 10}, ...]
    tiers: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    min_order_value: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    max_points_per_transaction: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    valid_from: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    valid_until: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
