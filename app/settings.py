from constants import *
import copy
import yaml
import os

import structlog

logger = structlog.get_logger("settings")


# Cache variable
_cached_settings = None


def merge_settings(defaults, overrides):
    """Deep merge user settings over defaults so new keys are always present"""
    merged = copy.deepcopy(defaults)
    for section, values in (overrides or {}).items():
        if isinstance(values, dict) and section in merged and isinstance(merged[section], dict):
            merged[section].update(values)
        else:
            merged[section] = values
    return merged


def load_settings(config_file=None, force=False):
    global _cached_settings

    if _cached_settings and not force and config_file is None:
        return _cached_settings

    config_file = config_file or CONFIG_FILE

    if os.path.exists(config_file):
        logger.debug("Reading configuration file", path=config_file)
        with open(config_file, "r") as yaml_file:
            settings = yaml.safe_load(yaml_file) or {}
        settings = merge_settings(DEFAULT_SETTINGS, settings)
    else:
        settings = copy.deepcopy(DEFAULT_SETTINGS)
        try:
            os.makedirs(os.path.dirname(config_file), exist_ok=True)
            with open(config_file, "w") as yaml_file:
                yaml.dump(settings, yaml_file)
            logger.info("Wrote default configuration file", path=config_file)
        except OSError as e:
            logger.warning("Could not write default configuration file", path=config_file, error=str(e))

    success, errors = verify_all_settings(settings)
    if not success:
        logger.warning("Invalid settings, falling back to defaults for those sections", errors=errors)
        for error in errors:
            section = error["path"].split("/")[0]
            settings[section] = copy.deepcopy(DEFAULT_SETTINGS[section])

    _cached_settings = settings
    return settings


def verify_settings(section, data):
    success = True
    errors = []
    if section == "roadmap":
        if not str(data.get("api_url", "")).startswith(("http://", "https://")):
            success = False
            errors.append({"path": "roadmap/api_url", "error": "API URL must be an http(s) URL."})
        if int(data.get("max_retries", 0)) < 1:
            success = False
            errors.append({"path": "roadmap/max_retries", "error": "At least one attempt is required."})
        if float(data.get("timeout_seconds", 0)) <= 0:
            success = False
            errors.append({"path": "roadmap/timeout_seconds", "error": "Timeout must be positive."})
    elif section == "database":
        if int(data.get("busy_timeout_ms", 0)) <= 0:
            success = False
            errors.append({"path": "database/busy_timeout_ms", "error": "Busy timeout must be positive."})
    elif section == "sync":
        for key in ["staleness_hours", "fresh_threshold_hours", "interval_minutes", "lock_timeout_minutes"]:
            if float(data.get(key, 0)) <= 0:
                success = False
                errors.append({"path": f"sync/{key}", "error": f"{key} must be positive."})
    elif section == "search":
        max_limit = int(data.get("max_limit", 0))
        default_limit = int(data.get("default_limit", 0))
        if max_limit < 1 or not 1 <= default_limit <= max_limit:
            success = False
            errors.append({"path": "search/default_limit", "error": "Limits must satisfy 1 <= default <= max."})
    return success, errors


def verify_all_settings(settings):
    success = True
    errors = []
    for section, data in settings.items():
        if not isinstance(data, dict):
            continue
        try:
            section_success, section_errors = verify_settings(section, data)
        except (TypeError, ValueError) as e:
            section_success, section_errors = False, [{"path": f"{section}/", "error": str(e)}]
        success = success and section_success
        errors.extend(section_errors)
    return success, errors
