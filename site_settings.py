# site_settings.py
import json
import logging
from pathlib import Path
from typing import Dict, Optional

logger = logging.getLogger(__name__)


def read_ga_config(path: str) -> Dict[str, str]:
    """Missing file means no settings yet."""
    p = Path(path)
    if not p.exists():
        return {}
    data = json.loads(p.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        return {}
    return {k: v for k, v in data.items() if k in ("measurementId", "propertyId") and isinstance(v, str)}


def write_ga_config(path: str, measurement_id: str, property_id: str) -> Dict[str, str]:
    config = read_ga_config(path)
    config["measurementId"] = measurement_id.strip()
    config["propertyId"] = property_id.strip()
    Path(path).write_text(json.dumps(config, indent=2), encoding="utf-8")
    return config


def public_measurement_id(path: str) -> Optional[str]:
    """Never raises: an unreadable file just means no id."""
    try:
        value = read_ga_config(path).get("measurementId", "")
    except (OSError, ValueError) as e:
        logger.error(f"[SETTINGS] Could not read GA config for public measurement id: {e}")
        return None
    return value.strip() or None


def resolve_property_id(path: str, env_fallback: str = "") -> Dict[str, Optional[str]]:
    """Property id from the config file first, then the environment."""
    try:
        from_file = read_ga_config(path).get("propertyId", "").strip()
    except (OSError, ValueError) as e:
        logger.error(f"[SETTINGS] Error reading GA config: {e}")
        from_file = ""
    if from_file:
        return {"propertyId": from_file, "source": "ga_config.json"}
    if env_fallback.strip():
        return {"propertyId": env_fallback.strip(), "source": "environment variable"}
    return {"propertyId": None, "source": None}
