"""Per-message delivery handle and redelivery accounting."""
from __future__ import annotations

from typing import Any, Mapping, Optional

from ..exceptions import DeliveryAlreadySettled

RETRY_COUNT_HEADER = "x-retry-count"
DELIVERY_COUNT_HEADER = "x-delivery-count"
DEATH_HEADER = "x-death"


def retry_count_from_headers(headers: Optional[Mapping[str, Any]]) -> int:
    """Return the broker-accumulated redelivery count for a message.

    Quorum queues stamp ``x-delivery-count`` on every redelivery. Messages
    that passed through a dead-letter exchange carry ``x-death`` entries whose
    counts are summed. ``x-retry-count`` is honoured for producers that track
    attempts themselves.
    """

    if not headers:
        return 0
    delivery_count = _non_negative(headers.get(DELIVERY_COUNT_HEADER))
    if delivery_count is not None:
        return delivery_count
    deaths = headers.get(DEATH_HEADER)
    if isinstance(deaths, (list, tuple)):
        total = 0
        for death in deaths:
            if isinstance(death, Mapping):
                total += _non_negative(death.get("count")) or 0
        return total
    return _non_negative(headers.get(RETRY_COUNT_HEADER)) or 0


def _non_negative(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = int(value)
    except (TypeError, ValueError):
        return None
    return max(0, number)


class Delivery:
    """A received message awaiting exactly one terminal action."""

    def __init__(
        self,
        *,
        body: bytes,
        headers: Optional[Mapping[str, Any]] = None,
        delivery_tag: Any = None,
        redelivered: bool = False,
        message: Any = None,
    ) -> None:
        self.body = body
        self.headers = dict(headers or {})
        self.delivery_tag = delivery_tag
        self.redelivered = redelivered
        self.message = message
        self._outcome: Optional[str] = None

    @property
    def retry_count(self) -> int:
        return retry_count_from_headers(self.headers)

    @property
    def outcome(self) -> Optional[str]:
        """``"ack"``, ``"requeue"``, ``"dead-letter"`` or None while pending."""

        return self._outcome

    @property
    def settled(self) -> bool:
        return self._outcome is not None

    def text(self, limit: Optional[int] = None) -> str:
        body = self.body.decode("utf-8", errors="replace") if isinstance(self.body, bytes) else str(self.body)
        if limit is not None and len(body) > limit:
            return body[:limit] + "..."
        return body

    def mark_settled(self, outcome: str) -> None:
        if self._outcome is not None:
            raise DeliveryAlreadySettled(
                f"Delivery {self.delivery_tag} already settled ({self._outcome}); refusing {outcome}"
            )
        self._outcome = outcome


__all__ = ["Delivery", "retry_count_from_headers"]
