"""
Reception shifts and per-shift revenue
"""
from datetime import datetime
from typing import Dict, List, Optional

from motel.utils.helpers import to_local, utc_now

SHIFTS = (
    ("morning", "Morning", 6, 14),
    ("afternoon", "Afternoon", 14, 22),
)
NIGHT_SHIFT = ("night", "Night")

PAYMENT_METHODS = ("cash", "card", "pix", "transfer")
PAYMENT_METHOD_ALIASES = {
    "dinheiro": "cash",
    "cartão": "card",
    "cartao": "card",
    "pix": "pix",
    "transferência": "transfer",
    "transferencia": "transfer",
}
REVENUE_STATUSES = ("confirmed", "checked-in", "checked-out")


def normalize_payment_method(value: Optional[str]) -> str:
    if not value:
        return "cash"
    lowered = value.strip().lower()
    if lowered in PAYMENT_METHODS:
        return lowered
    try:
        return PAYMENT_METHOD_ALIASES[lowered]
    except KeyError:
        raise ValueError(f"Unknown payment method '{value}'") from None


def detect_shift(user: Dict, now: Optional[datetime] = None) -> Dict:
    """Shift the user is working at ``now`` (motel local time)"""
    now = now or utc_now()
    local_now = to_local(now)
    shift_key, shift_name = NIGHT_SHIFT
    for key, name, start_hour, end_hour in SHIFTS:
        if start_hour <= local_now.hour < end_hour:
            shift_key, shift_name = key, name
            break
    user_id = str(user.get("_id") or user.get("id") or "unknown")
    return {
        "shift_id": f"shift_{shift_key}_{local_now.strftime('%Y-%m-%d')}_{user_id}",
        "shift_name": shift_name,
        "staff_id": user_id,
        "staff_name": user.get("name") or "Staff",
        "started_at": now,
    }


def summarize_revenue(reservations: List[Dict]) -> Dict:
    """Revenue split by payment method; unknown methods count as cash"""
    revenue = {method: 0.0 for method in PAYMENT_METHODS}
    revenue["total"] = 0.0
    for reservation in reservations:
        amount = float(reservation.get("total_price") or 0)
        method = reservation.get("payment_method")
        revenue[method if method in PAYMENT_METHODS else "cash"] += amount
        revenue["total"] += amount
    return {key: round(value, 2) for key, value in revenue.items()}
