"""建立第三方付款連結（Venmo / Cash App）的模組。"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List
from urllib.parse import quote


@dataclass
class PaymentLink:
    """代表單一付款方式的連結。"""

    provider: str
    label: str
    url: str

    def to_dict(self) -> Dict[str, str]:
        return {"provider": self.provider, "label": self.label, "url": self.url}


class PaymentLinkBuilder:
    """依訂單名稱與件數組出付款連結，不保存任何狀態。"""

    def __init__(self, unit_price: int, cashtag: str) -> None:
        self._unit_price = unit_price
        self._cashtag = cashtag if cashtag.startswith("$") else f"${cashtag}"

    def total_price(self, total_items: int) -> int:
        return total_items * self._unit_price

    def build(self, name: str, total_items: int) -> List[PaymentLink]:
        amount = self.total_price(total_items)
        note = quote(f"T-Shirt Order - {name}", safe="")
        return [
            PaymentLink(
                provider="venmo",
                label="Pay with Venmo",
                url=f"https://venmo.com/?txn=pay&audience=private&amount={amount}&note={note}",
            ),
            PaymentLink(
                provider="cashapp",
                label="Pay with Cash App",
                url=f"https://cash.app/{self._cashtag}/{amount}",
            ),
        ]
