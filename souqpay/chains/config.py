"""
Confirmation depth defaults per accepted currency.
"""
from souqpay.core.config import settings

# Mined / included in a block counts as final unless overridden via REQUIRED_CONFIRMATIONS
DEFAULT_CURRENCY_CONFIRMATIONS = {
    "btc": 1,
    "eth": 1,
    "usdt": 1,
}

FALLBACK_REQUIRED_CONFIRMATIONS = int(getattr(settings, "DEFAULT_CONFIRMATIONS", 1))


def required_confirmations_for(crypto: str | None) -> int:
    if not crypto:
        return FALLBACK_REQUIRED_CONFIRMATIONS
    key = crypto.lower()
    overrides = {k.lower(): int(v) for k, v in (getattr(settings, "REQUIRED_CONFIRMATIONS", None) or {}).items()}
    if key in overrides:
        return overrides[key]
    return DEFAULT_CURRENCY_CONFIRMATIONS.get(key, FALLBACK_REQUIRED_CONFIRMATIONS)
