from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from coupon_engine.models.coupon import Coupon

logger = logging.getLogger(__name__)

Loader = Callable[[str], Any]


@dataclass(frozen=True)
class AttachmentRef:
    """Stable external identifier ``"<kind>/<id>"`` stored in ``coupon.attachments``."""

    kind: str
    ref_id: str

    @classmethod
    def parse(cls, raw: object) -> AttachmentRef | None:
        if not isinstance(raw, str):
            return None
        kind, sep, ref_id = raw.strip().partition("/")
        if not sep or not kind or not ref_id:
            return None
        return cls(kind=kind, ref_id=ref_id)

    def __str__(self) -> str:
        return f"{self.kind}/{self.ref_id}"


def attach(coupon: Coupon, key: str, kind: str, ref_id: object) -> None:
    coupon.attachments = {**(coupon.attachments or {}), key: str(AttachmentRef(kind=kind, ref_id=str(ref_id)))}


class AttachmentResolver:
    """Resolves attachment references lazily; a dangling reference yields None."""

    def __init__(self, loaders: Mapping[str, Loader] | None = None) -> None:
        self.loaders: dict[str, Loader] = dict(loaders or {})

    def register(self, kind: str, loader: Loader) -> None:
        self.loaders[kind] = loader

    def resolve_ref(self, raw: object) -> Any:
        ref = AttachmentRef.parse(raw)
        if ref is None:
            return None
        loader = self.loaders.get(ref.kind)
        if loader is None:
            return None
        try:
            return loader(ref.ref_id)
        except LookupError:
            logger.info("coupon_attachment_dangling", extra={"ref": str(ref)})
            return None

    def resolve(self, coupon: Coupon) -> dict[str, Any]:
        return {key: self.resolve_ref(raw) for key, raw in (coupon.attachments or {}).items()}


class AttachmentsResolver:
    """Discount post-resolver exposing the resolved attachments under ``attachments``."""

    def __init__(self, resolver: AttachmentResolver) -> None:
        self.resolver = resolver

    def resolve(self, coupon: Coupon, options: dict[str, Any]) -> dict[str, Any]:
        return {**options, "attachments": self.resolver.resolve(coupon)}
