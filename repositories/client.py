"""
Settings and Supabase client initialization.

This module contains *only* environment loading and the database connection
setup. The client is created on demand by the composition root rather than at
import time, so the in-memory store (tests, local runs) needs no credentials.

Environment variables:
- SUPABASE_URL: Your Supabase project URL (required for the supabase store)
- SUPABASE_KEY: Your Supabase API key (use a server-side key only on the backend)
- LEAD_ROUTER_STORE: "supabase" (default) or "memory"
- LEADS_TABLE, CONFIGURATIONS_TABLE, CONFIGURATION_STATE_TABLE: table overrides
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

# The dependency is `supabase` (supabase-py). If your editor can't resolve it,
# install it in your environment: `pip install supabase`.
from supabase import Client, create_client  # type: ignore[import-not-found]

# Load environment variables from the .env file at the project root.
env_path = Path(__file__).parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

STORE_BACKENDS = ("supabase", "memory")


@dataclass(frozen=True, slots=True)
class Settings:
    store_backend: str
    supabase_url: str | None
    supabase_key: str | None
    leads_table: str = "leads"
    configurations_table: str = "configurations"
    configuration_state_table: str = "configuration_state"


def load_settings() -> Settings:
    """Read settings from the environment (after .env has been loaded)."""

    backend = os.getenv("LEAD_ROUTER_STORE", "supabase").strip().lower()
    if backend not in STORE_BACKENDS:
        raise RuntimeError(
            f"Invalid LEAD_ROUTER_STORE={backend!r}. Expected one of {', '.join(STORE_BACKENDS)}."
        )

    return Settings(
        store_backend=backend,
        supabase_url=os.getenv("SUPABASE_URL"),
        supabase_key=os.getenv("SUPABASE_KEY"),
        leads_table=os.getenv("LEADS_TABLE", "leads"),
        configurations_table=os.getenv("CONFIGURATIONS_TABLE", "configurations"),
        configuration_state_table=os.getenv("CONFIGURATION_STATE_TABLE", "configuration_state"),
    )


def create_supabase_client(settings: Settings) -> Client:
    """Create the official Supabase client from settings, failing loudly on missing credentials."""

    if not settings.supabase_url:
        raise RuntimeError(
            "Missing environment variable: SUPABASE_URL. "
            "Set SUPABASE_URL to your Supabase project URL."
        )

    if not settings.supabase_key:
        raise RuntimeError(
            "Missing environment variable: SUPABASE_KEY. "
            "Set SUPABASE_KEY to your Supabase API key."
        )

    return create_client(settings.supabase_url, settings.supabase_key)


__all__ = ["Settings", "load_settings", "create_supabase_client"]
