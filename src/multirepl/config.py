"""Load multirepl configuration"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Union

import toml

from .config_classes import ClusterConfig, SessionConfig, StoreConfig
from .exceptions import UserResolvableError

LOG = logging.getLogger(__name__)

DEFAULT_CONFIG_FILEPATH = Path("multirepl.toml")
OUTPUT_DIR_ENV = "MULTIREPL_OUTPUT_DIR"
MASTER_ENV = "MULTIREPL_MASTER"


class ConfigError(UserResolvableError):
    """Error loading configuration"""


LAST_LOADED = None


@dataclass
class Config:
    root: Path
    config_file: Union[Path, None]
    store: StoreConfig = field(default_factory=StoreConfig)
    cluster: ClusterConfig = field(default_factory=ClusterConfig)
    session: SessionConfig = field(default_factory=SessionConfig)


def get_last_loaded() -> Config:
    return LAST_LOADED


def _config_file(args: dict) -> Path:
    if args.get("--config"):
        return Path(args["--config"])
    return DEFAULT_CONFIG_FILEPATH


def load(args: dict) -> Config:
    """Load the configuration from the file named in ARGS"""
    config_file = _config_file(args)
    project_root = config_file.parent.resolve()

    try:
        data = toml.load(config_file)
    except FileNotFoundError:
        raise ConfigError(
            f"{config_file} not found",
            "Create it, or run without --config to use the defaults.",
        )
    except toml.TomlDecodeError as exc:
        raise ConfigError(f"{config_file} is not valid TOML", str(exc))

    unknown = set(data) - {"store", "cluster", "session"}
    if unknown:
        raise ConfigError(
            f"Unknown section(s) in {config_file}: {', '.join(sorted(unknown))}",
            "Valid sections are [store], [cluster] and [session].",
        )

    try:
        store = StoreConfig(**data.get("store", {}))
        cluster = ClusterConfig(**data.get("cluster", {}))
        session = SessionConfig(**data.get("session", {}))
    except TypeError as exc:
        raise ConfigError(f"Bad option in {config_file}", str(exc))

    # make the output dir absolute, relative to the config file
    if store.output_dir and not store.output_dir.is_absolute():
        store.output_dir = (project_root / store.output_dir).resolve()

    return _finish(Config(project_root, config_file, store, cluster, session))


def load_or_default(args: dict) -> Config:
    """Like load, but fall back to defaults if no config file exists

    An explicitly requested --config file must exist.
    """
    try:
        return load(args)
    except ConfigError:
        if args.get("--config") or DEFAULT_CONFIG_FILEPATH.exists():
            raise

    LOG.info("No %s, using defaults", DEFAULT_CONFIG_FILEPATH)
    root = Path(".").resolve()
    store = StoreConfig(output_dir=root / StoreConfig().output_dir)
    return _finish(Config(root, None, store=store))


def _finish(cfg: Config) -> Config:
    """Apply environment overrides and remember the result"""
    if os.getenv(OUTPUT_DIR_ENV):
        cfg.store.output_dir = Path(os.environ[OUTPUT_DIR_ENV]).resolve()
    if os.getenv(MASTER_ENV):
        cfg.cluster.master = os.environ[MASTER_ENV]

    global LAST_LOADED
    LAST_LOADED = cfg
    LOG.debug("Loaded config: %s", cfg)
    return cfg
