"""
config.py
Runtime configuration flags for the tax-form assistant, read from the
environment (a local .env is loaded first).
"""

import os

import dotenv

dotenv.load_dotenv()


def _to_bool(val: str | None, default: bool = False) -> bool:
    if val is None:
        return default
    return str(val).strip().lower() in {"1", "true", "yes", "y", "on"}


def _to_float(val: str | None, default: float) -> float:
    try:
        return float(val) if val is not None else default
    except ValueError:
        return default


def _to_int(val: str | None, default: int) -> int:
    try:
        return int(val) if val is not None else default
    except ValueError:
        return default


OPENAI_MODEL: str = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
ASSISTANT_TEMPERATURE: float = _to_float(os.getenv("ASSISTANT_TEMPERATURE"), 0.7)
ASSISTANT_MAX_TOKENS: int = _to_int(os.getenv("ASSISTANT_MAX_TOKENS"), 1000)

# When on, chat extraction never overwrites a field last written on the review surface.
PROTECT_MANUAL_EDITS: bool = _to_bool(os.getenv("PROTECT_MANUAL_EDITS"), default=False)

STORE_ROOT: str = os.getenv("RENTA_STORE_ROOT", "local_store")
TAX_FORM_NAME: str = os.getenv("TAX_FORM_NAME", "Modelo 100")
