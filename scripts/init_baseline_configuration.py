"""
Create and activate the baseline configuration.

Run this once to initialize configuration version control:
- If any configuration already exists, nothing is written.
- Otherwise a draft baseline is created with the default thresholds and email
  template, then activated through the version controller (which also writes
  the activation guard document).
"""

import logging
import sys
from pathlib import Path
from uuid import uuid4

# Add parent directory to path so we can import from repositories
sys.path.insert(0, str(Path(__file__).parent.parent))

from api.dependencies import build_store
from domain.configuration import DEFAULT_EMAIL_TEMPLATE, Configuration, ConfigurationStatus
from repositories.client import load_settings
from repositories.configuration_repository import insert_configuration, list_configurations
from services.configuration_cache import ActiveConfigurationCache
from services.configuration_service import activate_configuration

BASELINE_SETTINGS = {
    "autoRejectConfidenceThreshold": 0.9,
    "qualityLeadConfidenceThreshold": 0.7,
}


def init_baseline_configuration():
    """Create the baseline configuration unless configurations already exist."""

    store = build_store(load_settings())

    existing = list_configurations(store)
    if existing:
        print("Configurations already exist. Skipping initialization.")
        print(f"Found {len(existing)} existing configuration(s)")
        return

    draft = insert_configuration(
        store,
        Configuration(
            configuration_id=f"cfg_{uuid4().hex[:12]}",
            status=ConfigurationStatus.DRAFT,
            email_template=DEFAULT_EMAIL_TEMPLATE,
            name="Baseline",
            settings=BASELINE_SETTINGS,
        ),
    )

    active = activate_configuration(store, ActiveConfigurationCache(store), draft.configuration_id)

    print("[SUCCESS] Baseline configuration created and activated!")
    print(f"  Configuration ID: {active.configuration_id}")
    print(f"  Status: {active.status.value}")
    print("  Settings:")
    for key, value in BASELINE_SETTINGS.items():
        print(f"    - {key}: {value}")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    init_baseline_configuration()
