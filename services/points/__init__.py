from .ledger import PointsLedger, LedgerFilters
from .policy import PointsPolicy, points_for_config
