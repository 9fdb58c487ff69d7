"""Configuration loading and environment variable parsing for vmctl."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional

try:
    import yaml  # type: ignore
except ImportError as exc:  # pragma: no cover
    raise SystemExit("PyYAML is required but not installed") from exc

from vmctl.constants import DEFAULT_CONFIG_PATH
from vmctl.exceptions import ManagerError
from vmctl.models import ControllerConfig
from vmctl.utils import get_env, get_env_list, log

_CONFIG_KEYS = {
    "endpoints",
    "emulator_paths",
    "emulator_binary",
    "system_images_dir",
    "user_images_subdir",
    "arch",
    "network",
}


def load_config_file(config_path: Optional[Path] = None) -> Dict[str, Any]:
    """Read the optional YAML settings file.

    The default location may be absent; an explicitly requested file may not.
    """
    explicit = config_path is not None
    path = Path(config_path) if explicit else DEFAULT_CONFIG_PATH
    if not path.exists():
        if explicit:
            raise ManagerError(f"Config file missing: {path}")
        return {}
    try:
        data = yaml.safe_load(path.read_text())
    except yaml.YAMLError as exc:
        raise ManagerError(f"Invalid YAML in {path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ManagerError(f"Config file {path} must contain a mapping at the top level")
    unknown = sorted(set(data) - _CONFIG_KEYS)
    if unknown:
        log("WARN", f"Ignoring unknown keys in {path}: {', '.join(unknown)}")
    log("DEBUG", f"Loaded settings from {path}")
    return {key: value for key, value in data.items() if key in _CONFIG_KEYS}


def _as_str_list(key: str, value: Any) -> List[str]:
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list) or not all(isinstance(item, str) and item.strip() for item in value):
        raise ManagerError(f"'{key}' must be a list of non-empty strings")
    return [item.strip() for item in value]


def parse_env(config_path: Optional[Path] = None) -> ControllerConfig:
    """Resolve settings: defaults, then the YAML file, then environment variables."""
    if config_path is None:
        env_path = get_env("VMCTL_CONFIG")
        if env_path:
            config_path = Path(env_path)
    file_cfg = load_config_file(config_path)
    cfg = ControllerConfig()

    if "endpoints" in file_cfg:
        cfg.endpoints = tuple(_as_str_list("endpoints", file_cfg["endpoints"]))
    if "emulator_paths" in file_cfg:
        cfg.emulator_paths = [Path(p) for p in _as_str_list("emulator_paths", file_cfg["emulator_paths"])]
    for key in ("emulator_binary", "arch", "network"):
        if key in file_cfg:
            setattr(cfg, key, _as_str_list(key, file_cfg[key])[0])
    if "system_images_dir" in file_cfg:
        cfg.system_images_dir = Path(_as_str_list("system_images_dir", file_cfg["system_images_dir"])[0])
    if "user_images_subdir" in file_cfg:
        cfg.user_images_subdir = Path(_as_str_list("user_images_subdir", file_cfg["user_images_subdir"])[0])

    endpoints = get_env_list("LIBVIRT_URIS")
    if endpoints:
        cfg.endpoints = tuple(endpoints)
    single_uri = (get_env("LIBVIRT_URI") or "").strip()
    if single_uri:
        cfg.endpoints = (single_uri,) + tuple(uri for uri in cfg.endpoints if uri != single_uri)

    emulator_paths = get_env_list("EMULATOR_PATHS", separator=":")
    if emulator_paths:
        cfg.emulator_paths = [Path(p) for p in emulator_paths]
    emulator_binary = (get_env("EMULATOR_BINARY") or "").strip()
    if emulator_binary:
        cfg.emulator_binary = emulator_binary

    images_dir = (get_env("IMAGES_DIR") or "").strip()
    if images_dir:
        cfg.system_images_dir = Path(images_dir)
    arch = (get_env("GUEST_ARCH") or "").strip()
    if arch:
        cfg.arch = arch
    network = (get_env("GUEST_NETWORK") or "").strip()
    if network:
        cfg.network = network

    if not cfg.endpoints:
        raise ManagerError("At least one libvirt endpoint must be configured")
    return cfg
