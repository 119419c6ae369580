"""Payment checkout abstractions."""

from __future__ import annotations

import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, List

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class CheckoutReceipt:
    payment_id: str
    amount: int
    currency: str
    description: str


class CheckoutProvider(ABC):
    """Modal, fire-and-forget checkout. The caller only reacts to the callbacks."""

    @abstractmethod
    def open(
        self,
        amount: int,
        currency: str,
        description: str,
        on_success: Callable[[CheckoutReceipt], None],
        on_cancel: Callable[[], None],
    ) -> None:
        """Present the checkout for ``amount`` in ``currency``."""


@dataclass
class MockCheckoutProvider(CheckoutProvider):
    """Offline checkout that resolves immediately with a fixed outcome."""

    outcome: str = "success"
    opened: List[dict] = field(default_factory=list)

    def open(
        self,
        amount: int,
        currency: str,
        description: str,
        on_success: Callable[[CheckoutReceipt], None],
        on_cancel: Callable[[], None],
    ) -> None:
        if amount <= 0:
            raise ValueError("amount must be positive")
        self.opened.append({"amount": amount, "currency": currency, "description": description})
        LOGGER.info("Mock checkout opened", extra={"amount": amount, "currency": currency})
        if self.outcome == "success":
            on_success(
                CheckoutReceipt(
                    payment_id=f"pay_{uuid.uuid4().hex[:14]}",
                    amount=amount,
                    currency=currency,
                    description=description,
                )
            )
        else:
            on_cancel()


__all__ = ["CheckoutProvider", "CheckoutReceipt", "MockCheckoutProvider"]
