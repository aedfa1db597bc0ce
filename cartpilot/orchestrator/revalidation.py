"""Re-check carted shops' delivery zones when the delivery address changes."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from cartpilot.capabilities.models import DeliveryAddress

from .session import ConversationSession

logger = logging.getLogger("cartpilot.revalidation")


@dataclass(slots=True)
class RevalidationResult:
    accepted: bool
    rejected_shop_id: str | None = None
    checked: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "accepted": self.accepted,
            "rejected_shop_id": self.rejected_shop_id,
            "checked": self.checked,
            "skipped": self.skipped,
        }


class AddressRevalidator:
    """Validates a new address against every shop whose cart it affects.

    Candidate shops are the explicitly named shop, else the shops touched by
    the most recent cart mutation, else every shop with a non-empty cart. The
    first shop outside its zone rejects the change. A check that errors or
    times out is skipped.
    """

    def __init__(self, timeout: float | None = 5.0) -> None:
        self._timeout = timeout

    async def candidate_shops(self, session: ConversationSession, shop_id: str | None = None) -> list[str]:
        if shop_id:
            return [shop_id]
        if session.cart_memory.shop_ids:
            return list(session.cart_memory.shop_ids)
        carts = await session.bindings.get_all_carts()
        return [cart.shop_id for cart in carts if cart.total_items > 0]

    async def revalidate(
        self,
        session: ConversationSession,
        address: DeliveryAddress,
        *,
        shop_id: str | None = None,
    ) -> RevalidationResult:
        result = RevalidationResult(accepted=True)
        for candidate in await self.candidate_shops(session, shop_id):
            try:
                check = await asyncio.wait_for(
                    session.bindings.validate_delivery_address(
                        candidate,
                        address.coords.latitude,
                        address.coords.longitude,
                    ),
                    timeout=self._timeout,
                )
            except asyncio.TimeoutError:
                logger.warning("Delivery zone check for shop %s timed out, skipping", candidate)
                result.skipped.append(candidate)
                continue
            except Exception:  # noqa: BLE001
                logger.exception("Delivery zone check for shop %s failed, skipping", candidate)
                result.skipped.append(candidate)
                continue

            result.checked.append(candidate)
            if not check.is_within_delivery_zone:
                logger.info("Address %s is outside the delivery zone of shop %s", address.label, candidate)
                result.accepted = False
                result.rejected_shop_id = candidate
                return result

        if session.cancelled:
            return RevalidationResult(accepted=False, checked=result.checked, skipped=result.skipped)

        session.current_address = address
        return result
