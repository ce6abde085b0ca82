"""
Test configuration.

Every test gets a fresh in-memory SQLite database (aiosqlite) with real
SAVEPOINT support, and the API client runs the app in-process through
httpx's ASGI transport with the session dependency pointed at that database.
"""
import os

os.environ["API_KEY"] = "test-key"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"

from datetime import timedelta  # noqa: E402
from decimal import Decimal  # noqa: E402

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy import event  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from api.database import get_async_session  # noqa: E402
from api.models import (  # noqa: E402
    Base,
    Coupon,
    CouponSource,
    DiscountType,
    PointsActionType,
    PointsConfig,
    PointsRuleKind,
    Reward,
    User,
    UserRole,
)
from main import app  # noqa: E402
from utils.clock import utcnow  # noqa: E402

API_KEY = "test-key"


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # pysqlite's own transaction handling breaks SAVEPOINT; emit BEGIN ourselves
    @event.listens_for(engine.sync_engine, "connect")
    def _connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


@pytest.fixture
async def session(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
async def client(session_maker):
    async def override_session():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_async_session] = override_session
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test", headers={"X-API-Key": API_KEY}) as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(session):
    """Inserts a user directly; password hashing is skipped to keep tests fast."""
    async def _make(email: str, name: str = "Test User", role: UserRole = UserRole.USER) -> User:
        user = User(email=email, name=name, password_hash="not-a-real-hash", role=role)
        session.add(user)
        await session.commit()
        return user
    return _make


@pytest.fixture
async def admin(make_user):
    return await make_user("admin@biosculpture.test", "Admin", UserRole.ADMIN)


@pytest.fixture
def as_user():
    def _headers(user_or_id) -> dict:
        user_id = getattr(user_or_id, "id", user_or_id)
        return {"X-User-Id": str(user_id)}
    return _headers


@pytest.fixture
def points_config(session):
    async def _make(
        action_type: PointsActionType,
        points_amount: int = 0,
        tiers: list | None = None,
        min_order_value: Decimal | None = None,
        max_points_per_transaction: int | None = None,
        **kwargs,
    ) -> PointsConfig:
        config = PointsConfig(
            action_type=action_type,
            rule_kind=PointsRuleKind.TIERED if tiers else PointsRuleKind.FIXED,
            points_amount=points_amount,
            tiers=tiers,
            min_order_value=min_order_value,
            max_points_per_transaction=max_points_per_transaction,
            valid_from=kwargs.pop("valid_from", utcnow() - timedelta(days=1)),
            **kwargs,
        )
        session.add(config)
        await session.commit()
        return config
    return _make


@pytest.fixture
async def referral_rules(points_config):
    """Signup +50, first referral order +20, repeat order +10."""
    await points_config(PointsActionType.REFERRAL_SIGNUP, 50)
    await points_config(PointsActionType.REFERRAL_FIRST_ORDER, 20)
    await points_config(PointsActionType.REFERRAL_REPEAT_ORDER, 10)


@pytest.fixture
def make_reward(session):
    async def _make(points_cost: int = 100, **kwargs) -> Reward:
        data = {
            "name": "10% off",
            "discount_type": DiscountType.PERCENTAGE,
            "discount_value": Decimal("10"),
            "is_active": True,
            "redeemed_count": 0,
            **kwargs,
        }
        reward = Reward(points_cost=points_cost, **data)
        session.add(reward)
        await session.commit()
        return reward
    return _make


@pytest.fixture
def make_coupon(session):
    async def _make(code: str = "SAVE10", **kwargs) -> Coupon:
        data = {
            "discount_type": DiscountType.PERCENTAGE,
            "discount_value": Decimal("10"),
            "used_count": 0,
            "is_active": True,
            "source": CouponSource.ADMIN,
            "valid_from": utcnow() - timedelta(days=1),
            **kwargs,
        }
        coupon = Coupon(code=code, **data)
        session.add(coupon)
        await session.commit()
        return coupon
    return _make
