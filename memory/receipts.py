"""Locally recorded payment receipts."""

import time
from dataclasses import asdict, dataclass
from typing import Dict, List, Optional

from tools.checkout import CheckoutReceipt
from tools.local_store import LocalKeyValueStore

RECEIPTS_KEY = "purchase_receipts"


@dataclass
class PurchaseRecord:
    payment_id: str
    listing_id: str
    amount: int
    currency: str
    availability: str
    recorded_at: float
    user_id: Optional[str] = None


class ReceiptLedger:
    """Append-only receipt list kept in the local key-value store."""

    def __init__(self, store: LocalKeyValueStore) -> None:
        self.store = store

    def record(
        self, receipt: CheckoutReceipt, listing_id: str, availability: str, user_id: str | None = None
    ) -> PurchaseRecord:
        record = PurchaseRecord(
            payment_id=receipt.payment_id,
            listing_id=listing_id,
            amount=receipt.amount,
            currency=receipt.currency,
            availability=availability,
            recorded_at=time.time(),
            user_id=user_id,
        )
        receipts = self.store.load_list(RECEIPTS_KEY)
        receipts.append(asdict(record))
        self.store.save_list(RECEIPTS_KEY, receipts)
        return record

    def list_receipts(self) -> List[Dict]:
        return self.store.load_list(RECEIPTS_KEY)
