"""Message broker access for publishing and consuming conversion jobs."""
from __future__ import annotations

from .client import BrokerClient
from .delivery import Delivery, retry_count_from_headers

__all__ = ["BrokerClient", "Delivery", "retry_count_from_headers"]
