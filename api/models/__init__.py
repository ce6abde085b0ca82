from .user import User, UserRole
from .affiliate import Affiliate, AffiliateTier
from .referral import AffiliateReferral, AffiliateLinkClick, ReferralStatus
from .points import (
    PointsTransaction,
    PointsTransactionType,
    PointsConfig,
    PointsActionType,
    PointsRuleKind,
)
from .coupon import Coupon, CouponSource, DiscountType
from .rewards import Reward, PointsRedemption, RedemptionStatus
from .order import Order, OrderItem, OrderStatus
from .notification import Notification, NotificationType
from .audit import AuditLog
from .effect import PendingEffect, EffectStatus
from .base import Base
