from functools import lru_cache

from fastapi import Header

from coupon_engine.services.engine import EngineConfig


@lru_cache
def get_engine_config() -> EngineConfig:
    return EngineConfig.from_settings()


async def get_user_id(x_user_id: str | None = Header(default=None)) -> str | None:
    """Identity is established upstream; the gateway forwards it as ``X-User-Id``."""
    cleaned = (x_user_id or "").strip()
    return cleaned or None
