from .registry import AffiliateRegistry
from .referrals import ReferralTracker
from .tiers import TierService, calculate_tier, tier_benefits
