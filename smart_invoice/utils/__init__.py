"""Utility helpers for the application."""
from os import getenv


def env_bool(key: str, default: bool = False) -> bool:
    val = getenv(key)
    if val is None:
        return default
    return val.lower() in {"1", "true", "t", "yes", "y"}


def env_list(key: str, default: list) -> list:
    val = getenv(key)
    if val is None:
        return list(default)
    return [item.strip() for item in val.split(",") if item.strip()]


def mask_phone(phone: str | None) -> str:
    """Keep only the leading digits of a phone number for log output."""
    if not phone:
        return "none"
    return f"{phone[:3]}***"
