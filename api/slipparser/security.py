# api/slipparser/security.py
import logging
import os

from fastapi import HTTPException, status

logger = logging.getLogger(__name__)

DEFAULT_API_KEYS = "dev_123:tenant_demo"


def _load_key_map() -> dict[str, str]:
    """Parse API_KEYS ("key:tenant,key2:tenant2"); falls back to the dev key."""
    raw = os.getenv("API_KEYS", "").strip()
    if not raw:
        raw = DEFAULT_API_KEYS
        logger.info("API_KEYS not set, using default dev key")

    mapping: dict[str, str] = {}
    for token in [s.strip() for s in raw.split(",") if s.strip()]:
        if ":" in token:
            k, t = token.split(":", 1)
        else:
            k, t = token, "default"
        mapping[k.strip()] = t.strip()

    logger.info("Loaded %s API keys from env", len(mapping))
    return mapping


API_KEY_TENANTS = _load_key_map()


def reload_api_keys() -> None:
    global API_KEY_TENANTS
    API_KEY_TENANTS = _load_key_map()


def _extract_key(authorization: str | None, x_api_key: str | None) -> str:
    if x_api_key and x_api_key.strip():
        return x_api_key.strip()
    if authorization and authorization.lower().startswith("bearer "):
        return authorization.split(None, 1)[1].strip()
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Missing API key. Provide 'x-api-key' header or 'Authorization: Bearer <token>'",
    )


def verify_api_key(authorization: str | None, x_api_key: str | None) -> tuple[str, str]:
    """Return (key, tenant_id) or raise 401."""
    key = _extract_key(authorization, x_api_key)
    tenant_id = API_KEY_TENANTS.get(key)
    if not tenant_id:
        preview = key[:4] + "..." if len(key) > 4 else key
        logger.warning("Rejected API key %s", preview)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid API key")
    return key, tenant_id
