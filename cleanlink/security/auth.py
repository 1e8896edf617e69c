from __future__ import annotations
import secrets
from cleanlink.config import Settings

def constant_time_equals(a: str, b: str) -> bool:
    return secrets.compare_digest(a.encode("utf-8"), b.encode("utf-8"))

def verify_client_key(settings: Settings, provided: str | None) -> bool:
    """Gate for POST /sanitize; open unless ``require_client_auth`` is set."""
    if not settings.require_client_auth:
        return True
    if not provided:
        return False
    return any(constant_time_equals(k, provided) for k in settings.client_api_keys)
