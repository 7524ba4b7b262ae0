import argparse
import asyncio
import json
from datetime import date
from decimal import Decimal

from coupon_engine.core.config import settings
from coupon_engine.core.logging_config import configure_logging
from coupon_engine.db.base import Base
from coupon_engine.db.session import SessionLocal, engine
from coupon_engine.schemas.coupon import CouponRead
from coupon_engine.services import coupons as coupons_service
from coupon_engine.services.engine import EngineConfig
from coupon_engine.services.pricing import to_decimal
from coupon_engine.services.redemption import RedemptionCoordinator


def _engine_config() -> EngineConfig:
    return EngineConfig.from_settings()


def _amount(raw: str) -> Decimal:
    try:
        return to_decimal(raw)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


async def init_db() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def create_coupon(args: argparse.Namespace) -> dict:
    config = _engine_config()
    coupon = coupons_service.new_coupon(
        config,
        code=args.code,
        description=args.description,
        discount_type=args.discount_type,
        amount=args.amount,
        valid_from_date=args.valid_from,
        valid_until_date=args.valid_until,
        valid_from_time=args.valid_from_time,
        valid_until_time=args.valid_until_time,
        redemption_limit_global=args.limit_global,
        redemption_limit_user=args.limit_user,
        recurrence_type="weekly" if args.weekdays else None,
        recurrence={"days": args.weekdays} if args.weekdays else None,
    )
    async with SessionLocal() as session:
        violations = await coupons_service.save_coupon(session, coupon, config=config)
    if violations:
        return {"saved": False, "violations": [v.model_dump() for v in violations]}
    return {"saved": True, "coupon": CouponRead.model_validate(coupon).model_dump(mode="json")}


async def redeem(code: str, *, amount: Decimal, user_id: str | None, order_id: str | None) -> dict:
    coordinator = RedemptionCoordinator(_engine_config())
    async with SessionLocal() as session:
        outcome = await coordinator.redeem(session, code, amount=amount, user_id=user_id, order_id=order_id)
    return {
        "status": outcome.status.value,
        "amount": str(outcome.amount),
        "discount": str(outcome.discount),
        "total": str(outcome.total),
    }


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Coupon engine utilities")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("init-db", help="Create coupon tables")

    create_parser = subparsers.add_parser("create-coupon", help="Validate and store a coupon")
    create_parser.add_argument("--code")
    create_parser.add_argument("--description")
    create_parser.add_argument("--discount-type", choices=["percentage", "amount"], default="amount")
    create_parser.add_argument("--amount", type=int, default=0)
    create_parser.add_argument("--valid-from", type=date.fromisoformat)
    create_parser.add_argument("--valid-until", type=date.fromisoformat)
    create_parser.add_argument("--valid-from-time")
    create_parser.add_argument("--valid-until-time")
    create_parser.add_argument("--limit-global", type=int)
    create_parser.add_argument("--limit-user", type=int)
    create_parser.add_argument("--weekdays", type=int, nargs="*", help="0 = Sunday ... 6 = Saturday")

    redeem_parser = subparsers.add_parser("redeem", help="Redeem a coupon code")
    redeem_parser.add_argument("code")
    redeem_parser.add_argument("--amount", type=_amount, default=Decimal("0"))
    redeem_parser.add_argument("--user-id")
    redeem_parser.add_argument("--order-id")
    return parser


def _run_cli_command(args: argparse.Namespace) -> bool:
    if args.command == "init-db":
        asyncio.run(init_db())
        return True

    if args.command == "create-coupon":
        print(json.dumps(asyncio.run(create_coupon(args))))
        return True

    if args.command == "redeem":
        result = asyncio.run(redeem(args.code, amount=args.amount, user_id=args.user_id, order_id=args.order_id))
        print(json.dumps(result))
        return True

    return False


def main():
    configure_logging(settings.log_json)
    parser = _build_parser()
    args = parser.parse_args()
    if not _run_cli_command(args):
        parser.print_help()


if __name__ == "__main__":
    main()
