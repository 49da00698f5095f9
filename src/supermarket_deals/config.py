# ==============================================================================
#  Copyright 2025 Matthew Pounsett <matt@conundrum.com>
#
#  Licensed under the Apache License, Version 2.0 (the "License");
#  you may not use this file except in compliance with the License.
#  You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
#  Unless required by applicable law or agreed to in writing, software
#  distributed under the License is distributed on an "AS IS" BASIS,
#  WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
#  See the License for the specific language governing permissions and
#  limitations under the License.
# ==============================================================================
"""Per-user state directory and the persisted search preferences."""

import json
import logging
import os
import re
from pathlib import Path

from supermarket_deals.errors import ConfigError
from supermarket_deals.models import Preferences

logger = logging.getLogger(__name__)

HOME_ENV_VAR = "SUPERMARKET_DEALS_HOME"
CONFIG_FILENAME = "config.json"
KEYS_FILENAME = "keys.json"

DEFAULT_ZIP = "85540"
DEFAULT_STORES = ("Aldi", "Lidl", "REWE", "EDEKA", "ALDI SÜD", "ALDI NORD", "Kaufland")

ZIP_PATTERN = re.compile(r"[0-9]{4,6}")
SET_USAGE = "Usage: supermarket-deals config set <zip|stores|reset> <value>"


def state_dir() -> Path:
    """Return the directory holding preferences and cached API keys.

    ``$SUPERMARKET_DEALS_HOME`` takes precedence over ``~/.supermarket-deals``.
    """
    override = os.environ.get(HOME_ENV_VAR)
    if override:
        return Path(override).expanduser()
    return Path.home() / ".supermarket-deals"


def config_path() -> Path:
    return state_dir() / CONFIG_FILENAME


def keys_path() -> Path:
    return state_dir() / KEYS_FILENAME


def defaults() -> Preferences:
    """Return a fresh copy of the built-in preferences."""
    return Preferences(default_zip=DEFAULT_ZIP, default_stores=list(DEFAULT_STORES))


def parse_list(value: str | None) -> list[str] | None:
    """Split a comma-separated list.

    Args:
        value: Raw text such as ``"Lidl, REWE,,EDEKA"``.

    Returns:
        The trimmed, non-empty entries, or None when there are none.
    """
    if not value:
        return None
    entries = [entry.strip() for entry in value.split(",")]
    entries = [entry for entry in entries if entry]
    return entries or None


def normalize_preferences(raw: dict) -> Preferences:
    """Build preferences from a decoded file, defaulting each bad field.

    Args:
        raw: The decoded JSON object.

    Returns:
        Preferences where a blank zip or an empty store list is replaced by
        the built-in value for that field alone.
    """
    zip_code = raw.get("defaultZip")
    if isinstance(zip_code, str) and zip_code.strip():
        zip_code = zip_code.strip()
    else:
        zip_code = DEFAULT_ZIP

    stores = raw.get("defaultStores")
    if isinstance(stores, list) and stores:
        stores = [str(store).strip() for store in stores]
        stores = [store for store in stores if store]
    else:
        stores = list(DEFAULT_STORES)

    return Preferences(default_zip=zip_code, default_stores=stores)


class PreferenceStore:
    """Reads and writes ``config.json``.

    Args:
        path: Location of the preference file (defaults to the per-user one).
    """

    def __init__(self, path: Path | None = None) -> None:
        self.path = path or config_path()

    def load(self) -> Preferences:
        """Return the stored preferences.

        An absent, unreadable or corrupt file never raises: it is replaced by
        freshly written defaults, which are returned.
        """
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
            if not isinstance(raw, dict):
                raise ValueError("preference file is not a JSON object")
            return normalize_preferences(raw)
        except FileNotFoundError:
            logger.debug("No preference file at %s, writing defaults", self.path)
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable preference file %s: %s", self.path, e)

        preferences = defaults()
        self.save(preferences)
        return preferences

    def save(self, preferences: Preferences) -> None:
        """Write ``preferences`` to disk, creating the directory if needed."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        data = preferences.model_dump(by_alias=True)
        self.path.write_text(
            json.dumps(data, indent=2, ensure_ascii=False) + "\n", encoding="utf-8"
        )
        logger.debug("Preferences written to: %s", self.path)


def apply_setting(preferences: Preferences, key: str, value: str) -> Preferences:
    """Return a copy of ``preferences`` with one setting changed.

    Args:
        preferences: Current preferences.
        key: ``zip``, ``stores`` or ``reset``.
        value: New value; ignored for ``reset``.

    Returns:
        The updated preferences.

    Raises:
        ConfigError: If the key is unsupported or the value is unusable.
    """
    if key == "reset":
        return defaults()

    if key not in ("zip", "stores"):
        raise ConfigError("Supported config keys: zip, stores, reset")

    value = value.strip()
    if not value:
        raise ConfigError(SET_USAGE)

    if key == "zip":
        if not ZIP_PATTERN.fullmatch(value):
            raise ConfigError(f'Invalid ZIP code: "{value}". Expected 4-6 digits.')
        return preferences.model_copy(update={"default_zip": value})

    stores = parse_list(value)
    if not stores:
        raise ConfigError("stores must be a comma-separated list")
    return preferences.model_copy(update={"default_stores": stores})
