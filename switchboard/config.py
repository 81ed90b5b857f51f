"""
Config loader for switchboard.
Reads config.yaml once at startup. All other modules import from here.
The provider credential is resolved separately so a missing key never
stops the server from starting.
"""

import logging
import os
import re
import yaml
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

_CONFIG_PATH = Path(__file__).parent.parent / "config.yaml"

_config: dict | None = None


def _resolve_env_vars(value: str) -> str:
    """Replace ${ENV_VAR} patterns with actual environment variable values."""
    def replacer(match):
        var_name = match.group(1)
        return os.environ.get(var_name, "")
    return re.sub(r"\$\{(\w+)\}", replacer, value)


def _walk_and_resolve(obj):
    """Recursively resolve env vars in all string values."""
    if isinstance(obj, dict):
        return {k: _walk_and_resolve(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_walk_and_resolve(v) for v in obj]
    elif isinstance(obj, str):
        return _resolve_env_vars(obj)
    return obj


def load_config(path: Path | None = None) -> dict:
    """Load and cache config from YAML file."""
    global _config
    if _config is not None:
        return _config

    config_path = path or _CONFIG_PATH
    if not config_path.exists():
        raise FileNotFoundError(f"Config not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    _config = _walk_and_resolve(raw)
    return _config


def get_config() -> dict:
    """Return cached base config, loading if necessary."""
    if _config is None:
        return load_config()
    return _config


def resolve_api_key(cfg: dict) -> str:
    """
    Find the completion provider credential.

    Order: provider.api_key (after ${VAR} expansion), then the environment
    variable named by provider.api_key_env, then the first line of
    provider.api_key_file. Returns "" when nothing is configured.
    """
    p_cfg = cfg.get("provider", {})

    key = (p_cfg.get("api_key") or "").strip()
    if key:
        return key

    env_name = p_cfg.get("api_key_env", "")
    if env_name:
        key = os.environ.get(env_name, "").strip()
        if key:
            return key

    key_file = p_cfg.get("api_key_file", "")
    if key_file:
        try:
            key = Path(key_file).read_text().strip()
        except OSError:
            key = ""
        if key:
            logger.debug("Provider credential read from %s", key_file)
            return key

    logger.warning("No provider API key found in config, environment or key file")
    return ""
