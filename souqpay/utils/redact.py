import re

SECRET_KEY_PATTERN = re.compile(r"key|secret|token|private|mnemonic|seed", re.IGNORECASE)


def redact(value):
    if value is None or not isinstance(value, str):
        return value
    if len(value) <= 8:
        return "***"
    return f"{value[:4]}***{value[-2:]}"


def sanitize(payload):
    """Copy of payload with secret-looking keys redacted, safe to log."""
    if isinstance(payload, dict):
        out = {}
        for k, v in payload.items():
            if SECRET_KEY_PATTERN.search(str(k)):
                out[k] = redact(str(v if v is not None else ""))
            else:
                out[k] = sanitize(v)
        return out
    if isinstance(payload, (list, tuple)):
        return [sanitize(v) for v in payload]
    return payload
