from __future__ import annotations

import logging
import random
import time
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Callable

from food_ordering.core.config import (
    PAYMENT_MAX_DELAY_SECONDS,
    PAYMENT_MIN_DELAY_SECONDS,
    PAYMENT_SUCCESS_RATE,
)
from food_ordering.models.enums import PaymentStatus

logger = logging.getLogger(__name__)


class PaymentGateway(ABC):
    @abstractmethod
    def process(self, order_id: int, amount: Decimal) -> PaymentStatus:
        """Charge amount for the order and return the terminal payment status."""


class PaymentSimulator(PaymentGateway):
    """Stand-in gateway: waits a random delay, then succeeds with success_rate probability.

    rng and sleep are injectable so tests can run deterministically and without waiting.
    """

    def __init__(
        self,
        *,
        success_rate: float = PAYMENT_SUCCESS_RATE,
        min_delay_seconds: float = PAYMENT_MIN_DELAY_SECONDS,
        max_delay_seconds: float = PAYMENT_MAX_DELAY_SECONDS,
        rng: random.Random | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if not 0.0 <= success_rate <= 1.0:
            raise ValueError("success_rate must be between 0 and 1")
        if min_delay_seconds < 0 or max_delay_seconds < min_delay_seconds:
            raise ValueError("invalid payment delay range")
        self.success_rate = success_rate
        self.min_delay_seconds = min_delay_seconds
        self.max_delay_seconds = max_delay_seconds
        self._rng = rng or random.Random()
        self._sleep = sleep

    def process(self, order_id: int, amount: Decimal) -> PaymentStatus:
        delay = self._rng.uniform(self.min_delay_seconds, self.max_delay_seconds)
        if delay > 0:
            self._sleep(delay)
        outcome = PaymentStatus.SUCCESS if self._rng.random() < self.success_rate else PaymentStatus.FAILED
        logger.info(
            "Payment processed order_id=%s amount=%s status=%s",
            order_id,
            amount,
            outcome.value,
            extra={"duration_ms": round(delay * 1000, 2)},
        )
        return outcome
