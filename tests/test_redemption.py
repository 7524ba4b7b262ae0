import asyncio
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from coupon_engine.core import metrics
from coupon_engine.db.session import build_engine, build_sessionmaker
from coupon_engine.models.coupon import Coupon, CouponRedemption
from coupon_engine.schemas.coupon import RedemptionStatus
from coupon_engine.services import store
from coupon_engine.services.coupons import new_coupon, save_coupon
from coupon_engine.services.engine import EngineConfig
from coupon_engine.services.redemption import RedemptionCoordinator

pytestmark = pytest.mark.anyio

TODAY = date(2026, 10, 21)


async def _create(session_factory: async_sessionmaker[AsyncSession], config: EngineConfig, **fields) -> Coupon:
    params = {
        "code": "SAVE10",
        "discount_type": "amount",
        "amount": 10,
        "valid_from_date": TODAY,
        "valid_until_date": TODAY + timedelta(days=30),
        "redemption_limit_global": 0,
        "redemption_limit_user": 0,
    }
    params.update(fields)
    async with session_factory() as session:
        coupon = new_coupon(config, **params)
        assert await save_coupon(session, coupon, config=config) == []
        return coupon


async def _redeem(session_factory, config: EngineConfig, code: str, amount: str = "50.00", **kwargs):
    async with session_factory() as session:
        return await RedemptionCoordinator(config).redeem(session, code, amount=Decimal(amount), **kwargs)


async def _reload(session_factory, coupon_id) -> Coupon:
    async with session_factory() as session:
        return await session.get(Coupon, coupon_id)


async def test_single_use_coupon_end_to_end(session_factory, config: EngineConfig) -> None:
    coupon = await _create(session_factory, config, redemption_limit_global=1)

    first = await _redeem(session_factory, config, "SAVE10", "50.00")
    assert first.status == RedemptionStatus.found
    assert first.discount == Decimal("10.00")
    assert first.total == Decimal("40.00")
    assert first.redemption is not None

    second = await _redeem(session_factory, config, "SAVE10", "50.00")
    assert second.status == RedemptionStatus.limit_exceeded
    assert second.discount == Decimal("0")
    assert second.total == Decimal("50.00")
    assert second.reasons == ("sold_out",)

    assert (await _reload(session_factory, coupon.id)).redemption_count == 1
    assert metrics.snapshot() == {"redemptions_found": 1, "redemptions_limit_exceeded": 1}


async def test_code_lookup_is_case_insensitive_and_trimmed(session_factory, config: EngineConfig) -> None:
    await _create(session_factory, config, code="Spring", discount_type="percentage", amount=50)
    outcome = await _redeem(session_factory, config, "  sPRING ", "200.00")
    assert outcome.status == RedemptionStatus.found
    assert outcome.discount == Decimal("100.00")
    assert outcome.total == Decimal("100.00")


async def test_unknown_code_is_not_found(session_factory, config: EngineConfig) -> None:
    outcome = await _redeem(session_factory, config, "NOPE")
    assert outcome.status == RedemptionStatus.not_found
    assert outcome.coupon is None
    assert outcome.total == Decimal("50.00")


async def test_blank_code_is_not_found(session_factory, config: EngineConfig) -> None:
    assert (await _redeem(session_factory, config, "   ")).status == RedemptionStatus.not_found


async def test_coupon_outside_its_window_is_not_found(session_factory, config: EngineConfig, clock) -> None:
    await _create(session_factory, config, valid_from_date=TODAY + timedelta(days=2))
    assert (await _redeem(session_factory, config, "SAVE10")).status == RedemptionStatus.not_found

    clock.set(clock.now() + timedelta(days=2))
    assert (await _redeem(session_factory, config, "SAVE10")).status == RedemptionStatus.found

    clock.set(clock.now() + timedelta(days=60))
    assert (await _redeem(session_factory, config, "SAVE10")).status == RedemptionStatus.not_found


async def test_weekly_coupon_redeems_on_listed_days_only(session_factory, config: EngineConfig, clock) -> None:
    await _create(session_factory, config, code="WEEKEND", recurrence_type="weekly", recurrence={"days": [0, 6]})
    assert (await _redeem(session_factory, config, "WEEKEND")).status == RedemptionStatus.not_found

    clock.set(datetime(2026, 10, 24, 10, tzinfo=timezone.utc))
    assert (await _redeem(session_factory, config, "WEEKEND")).status == RedemptionStatus.found


async def test_per_user_limit(session_factory, config: EngineConfig) -> None:
    coupon = await _create(session_factory, config, redemption_limit_user=2)

    for _ in range(2):
        outcome = await _redeem(session_factory, config, "SAVE10", user_id="alice", order_id="o-1")
        assert outcome.status == RedemptionStatus.found

    exhausted = await _redeem(session_factory, config, "SAVE10", user_id="alice")
    assert exhausted.status == RedemptionStatus.limit_exceeded
    assert exhausted.reasons == ("per_user_limit_reached",)

    assert (await _redeem(session_factory, config, "SAVE10", user_id="bob")).status == RedemptionStatus.found

    async with session_factory() as session:
        rows = (await session.execute(select(CouponRedemption).where(CouponRedemption.coupon_id == coupon.id))).scalars().all()
    assert sorted(row.user_id for row in rows) == ["alice", "alice", "bob"]
    assert {row.order_id for row in rows if row.user_id == "alice"} == {"o-1"}


async def test_anonymous_redemption_of_per_user_coupon_is_refused(session_factory, config: EngineConfig) -> None:
    coupon = await _create(session_factory, config, redemption_limit_user=1)
    outcome = await _redeem(session_factory, config, "SAVE10")
    assert outcome.status == RedemptionStatus.limit_exceeded
    assert (await _reload(session_factory, coupon.id)).redemption_count == 0


async def test_depleted_predecessor_does_not_shadow_its_successor(session_factory, config: EngineConfig) -> None:
    await _create(session_factory, config, redemption_limit_global=1, redemption_count=1, amount=5)
    successor = await _create(session_factory, config, redemption_limit_global=1, amount=7)

    outcome = await _redeem(session_factory, config, "SAVE10", "20.00")
    assert outcome.status == RedemptionStatus.found
    assert outcome.coupon.id == successor.id
    assert outcome.discount == Decimal("7")


async def test_concurrent_redemptions_of_last_slot(session_factory, config: EngineConfig) -> None:
    coupon = await _create(session_factory, config, redemption_limit_global=1)

    outcomes = await asyncio.gather(
        _redeem(session_factory, config, "SAVE10"),
        _redeem(session_factory, config, "SAVE10"),
    )

    statuses = sorted(outcome.status.value for outcome in outcomes)
    assert statuses == ["found", "limit_exceeded"]
    assert (await _reload(session_factory, coupon.id)).redemption_count == 1
    async with session_factory() as session:
        count = (
            await session.execute(
                select(func.count()).select_from(CouponRedemption).where(CouponRedemption.coupon_id == coupon.id)
            )
        ).scalar_one()
    assert count == 1


async def test_commit_rechecks_capacity_after_stale_read(session_factory, config: EngineConfig) -> None:
    coupon = await _create(session_factory, config, redemption_limit_global=1)

    async with session_factory() as first, session_factory() as second:
        seen_by_first = await first.get(Coupon, coupon.id)
        seen_by_second = await second.get(Coupon, coupon.id)
        assert seen_by_first.redemption_count == seen_by_second.redemption_count == 0

        assert await store.commit_redemption(first, coupon=seen_by_first, user_id=None) is not None
        assert await store.commit_redemption(second, coupon=seen_by_second, user_id=None) is None

    assert (await _reload(session_factory, coupon.id)).redemption_count == 1


async def test_commit_rechecks_user_capacity(session_factory, config: EngineConfig) -> None:
    coupon = await _create(session_factory, config, redemption_limit_user=1)
    async with session_factory() as session:
        loaded = await session.get(Coupon, coupon.id)
        assert await store.commit_redemption(session, coupon=loaded, user_id="alice") is not None
        assert await store.commit_redemption(session, coupon=loaded, user_id="alice") is None
        assert await store.commit_redemption(session, coupon=loaded, user_id=None) is None
        assert await store.commit_redemption(session, coupon=loaded, user_id="bob") is not None


async def test_lost_commit_race_reports_limit_exceeded(session_factory, config: EngineConfig, monkeypatch) -> None:
    await _create(session_factory, config, redemption_limit_global=1)

    async def _exhausted(*args, **kwargs):
        return None

    monkeypatch.setattr(store, "commit_redemption", _exhausted)
    outcome = await _redeem(session_factory, config, "SAVE10")
    assert outcome.status == RedemptionStatus.limit_exceeded
    assert outcome.reasons == ("commit_capacity_exhausted",)
    assert metrics.snapshot()["redemption_commit_races_lost"] == 1


async def test_resolvers_shape_the_outcome(session_factory, clock) -> None:
    class _Cap:
        def resolve(self, coupon, options):
            return {**options, "discount": min(options["discount"], Decimal("3")), "total": options["amount"] - 3}

    config = EngineConfig(clock=clock, code_generator=lambda: "UNUSED", resolvers=[_Cap()])
    await _create(session_factory, config)
    outcome = await _redeem(session_factory, config, "SAVE10", "50.00", order_id="o-9")
    assert outcome.discount == Decimal("3")
    assert outcome.total == Decimal("47.00")
    assert outcome.options["order_id"] == "o-9"


async def test_storage_failures_are_not_reported_as_not_found(tmp_path: Path, config: EngineConfig) -> None:
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'empty.db'}")
    try:
        async with build_sessionmaker(engine)() as session:
            with pytest.raises(store.CouponStorageError) as excinfo:
                await RedemptionCoordinator(config).redeem(session, "SAVE10", amount=Decimal("1"))
    finally:
        await engine.dispose()
    assert excinfo.value.operation == "get_coupons_by_code"
    assert metrics.snapshot("storage_failures") == {"storage_failures_get_coupons_by_code": 1}
    assert metrics.snapshot("redemptions") == {}


async def test_non_finite_amount_is_rejected(session_factory, config: EngineConfig) -> None:
    coupon = await _create(session_factory, config, discount_type="percentage", amount=50)
    async with session_factory() as session:
        for raw in ("NaN", "Infinity"):
            with pytest.raises(ValueError):
                await RedemptionCoordinator(config).redeem(session, "SAVE10", amount=raw)
    assert (await _reload(session_factory, coupon.id)).redemption_count == 0
    assert metrics.snapshot("redemptions") == {}
