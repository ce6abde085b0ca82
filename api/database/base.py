from api.models.base import Base

# Import all the models, so that Base has them before being
# imported by Alembic.
# This ensures that Alembic's autogenerate can "see" the models.
from api.models.user import User  # noqa
from api.models.affiliate import *  # noqa
from api.models.referral import *  # noqa
from api.models.points import *  # noqa
from api.models.coupon import *  # noqa
from api.models.rewards import *  # noqa
from api.models.order import *  # noqa
from api.models.notification import *  # noqa
from api.models.audit import *  # noqa
from api.models.effect import *  # noqa
