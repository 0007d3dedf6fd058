import math
import re
from typing import Any, Dict, Mapping, Optional, Tuple

from ..errors import ValidationError
from ..models.order import SIZES


_LEADING_INT = re.compile(r"\s*([+-]?\d+)")

# per size; keeps every stored quantity far inside a 64-bit INTEGER column
MAX_QUANTITY = 10_000


def parse_quantity(value: Any) -> int:
    """Parse a size quantity the way the order form does.

    Blank or unparsable input counts as 0, "3 shirts" counts as 3 and
    negative values are clamped to 0. Infinity and NaN count as 0.
    """
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, float) and not math.isfinite(value):
        return 0
    if isinstance(value, (int, float)):
        n = int(value)
    else:
        m = _LEADING_INT.match(str(value))
        if not m:
            return 0
        n = int(m.group(1))
    return max(0, n)


def clean_text(value: Optional[Any]) -> str:
    return "" if value is None else str(value).strip()


def normalize_sizes(sizes: Optional[Mapping[str, Any]]) -> Dict[str, int]:
    unknown = sorted(set(sizes or {}) - set(SIZES))
    if unknown:
        raise ValidationError("sizes", f"Unknown size(s): {', '.join(map(str, unknown))}")
    normalized = {s: parse_quantity((sizes or {}).get(s)) for s in SIZES}
    too_many = [s for s, n in normalized.items() if n > MAX_QUANTITY]
    if too_many:
        raise ValidationError(
            "sizes", f"At most {MAX_QUANTITY} shirts per size ({', '.join(too_many)})."
        )
    return normalized


def validate_order_fields(name: Any, sizes: Optional[Mapping[str, Any]]) -> Tuple[str, Dict[str, int], int]:
    """Check name, then quantities. Returns (name, sizes, total_items)."""
    name = clean_text(name)
    if not name:
        raise ValidationError("name", "Please enter your name.")
    normalized = normalize_sizes(sizes)
    total = sum(normalized.values())
    if total < 1:
        raise ValidationError("sizes", "Please select at least one t-shirt.")
    return name, normalized, total
