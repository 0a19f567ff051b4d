"""Startup-time helpers for safe config logging."""

import os

from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError

from stkpay.common.logging import logger


SECRET_MARKERS = ("KEY", "SECRET", "PASSWORD", "TOKEN")
URL_KEYS = ("DATABASE_URL",)

INITIATOR_STARTUP_KEYS = [
    "SERVICE_NAME",
    "DATABASE_URL",
    "MPESA_BASE_URL",
    "MPESA_BUSINESS_SHORT_CODE",
    "MPESA_CONSUMER_KEY",
    "MPESA_CONSUMER_SECRET",
    "MPESA_PASSKEY",
    "MPESA_CALLBACK_URL",
    "OTEL_ENABLED",
]
RECONCILER_STARTUP_KEYS = ["SERVICE_NAME", "DATABASE_URL", "DEFAULT_BUSINESS_ID", "OTEL_ENABLED"]


def _mask_url_password(value: str) -> str:
    try:
        return make_url(value).render_as_string(hide_password=True)
    except ArgumentError:
        return "<unparseable>"


def _safe_env(name: str) -> str:
    """Env value with secret-like names (PASSKEY, CONSUMER_KEY...) and URL passwords hidden."""

    value = os.getenv(name)
    if value is None:
        return "<unset>"
    if any(marker in name for marker in SECRET_MARKERS):
        return "<redacted>"
    if name in URL_KEYS:
        return _mask_url_password(value)
    return value


def startup_config(service_name: str, keys: list[str]) -> dict[str, str]:
    config = {"service": service_name}
    missing = []
    for key in keys:
        config[key] = _safe_env(key)
        if key.startswith("MPESA_") and config[key] == "<unset>":
            missing.append(key)
    if missing:
        config["missing_mpesa_settings"] = ",".join(missing)
    return config


def log_startup_config(service_name: str, keys: list[str]) -> None:
    """Log selected startup config keys; unset MPESA_* keys also raise a warning."""

    config = startup_config(service_name, keys)
    logger.info("startup_config=%s", config)
    if "missing_mpesa_settings" in config:
        logger.warning("mpesa_settings_unset keys=%s", config["missing_mpesa_settings"])
