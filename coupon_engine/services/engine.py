from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from coupon_engine.core.clock import Clock, SystemClock
from coupon_engine.core.config import Settings, settings as default_settings
from coupon_engine.services.codes import code_generator
from coupon_engine.services.discounts import Resolver


@dataclass(frozen=True)
class EngineConfig:
    """Strategies the coupon services run with; tests swap in deterministic ones."""

    clock: Clock = field(default_factory=SystemClock)
    code_generator: Callable[[], str] = field(default_factory=code_generator)
    resolvers: Sequence[Resolver] = ()
    money_rounding: str = "half_up"

    @classmethod
    def from_settings(cls, settings: Settings | None = None, *, resolvers: Sequence[Resolver] = ()) -> EngineConfig:
        settings = settings or default_settings
        return cls(
            clock=SystemClock(tz=settings.timezone),
            code_generator=code_generator(prefix=settings.coupon_code_prefix, length=settings.coupon_code_length),
            resolvers=tuple(resolvers),
            money_rounding=settings.money_rounding,
        )
