"""商店前台專用服務模組入口。"""

from .identity import SessionIdentityProvider
from .payment_links import PaymentLink, PaymentLinkBuilder

__all__ = [
    "SessionIdentityProvider",
    "PaymentLink",
    "PaymentLinkBuilder",
]
