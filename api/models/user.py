from .base import Base
import enum
import uuid
from datetime import datetime
from sqlalchemy import UUID, DateTime, Enum, String, text
from sqlalchemy.orm import Mapped, mapped_column, relationship
from typing import List, Optional

from utils.clock import utcnow


class UserRole(enum.Enum):
    USER = "USER"
    ADMIN = "ADMIN"


class User(Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    password_hash: Mapped[str] = mapped_column(String, nullable=False)
    role: Mapped[UserRole] = mapped_column(
        Enum(UserRole, name="userrole"),
        default=UserRole.USER,
        server_default=text(f"'{UserRole.USER.value}'"),
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    # Relationships
    affiliate: Mapped[Optional["Affiliate"]] = relationship(back_populates="user", uselist=False)
    # The referral that brought me in (at most one)
    referral: Mapped[Optional["AffiliateReferral"]] = relationship(
        back_populates="referred_user",
        foreign_keys="[AffiliateReferral.referred_user_id]",
        uselist=False,
    )
    orders: Mapped[List["Order"]] = relationship(back_populates="user")
