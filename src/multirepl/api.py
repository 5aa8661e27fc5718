"""User-facing API entrypoints"""

import logging
import threading
from dataclasses import dataclass
from typing import Optional

from . import cluster as clusters
from . import config as multirepl_config
from .config_classes import SessionConfig
from .exceptions import UnknownSessionError
from .naming import SessionId
from .registry import SessionRegistry
from .results import EvalResult

LOG = logging.getLogger(__name__)

_DEFAULT_REGISTRY: Optional[SessionRegistry] = None
_DEFAULT_REGISTRY_LOCK = threading.Lock()


@dataclass(frozen=True)
class SessionHandle:
    session_id: SessionId
    registry: SessionRegistry

    @property
    def interpreter(self):
        interpreter = self.registry.get(self.session_id)
        if interpreter is None:
            raise UnknownSessionError(
                f"Session {self.session_id!r} does not exist",
                "It may have been destroyed. Create it again with create_session().",
            )
        return interpreter


def default_registry() -> SessionRegistry:
    """The process-wide registry, built from the last loaded config if any"""
    global _DEFAULT_REGISTRY
    with _DEFAULT_REGISTRY_LOCK:
        if _DEFAULT_REGISTRY is None:
            cfg = multirepl_config.get_last_loaded()
            if cfg is not None:
                cluster = clusters.from_config(cfg.cluster)
                _DEFAULT_REGISTRY = SessionRegistry(cluster, store_config=cfg.store)
            else:
                _DEFAULT_REGISTRY = SessionRegistry(clusters.local_context())
        return _DEFAULT_REGISTRY


def set_default_registry(registry: Optional[SessionRegistry]):
    global _DEFAULT_REGISTRY
    with _DEFAULT_REGISTRY_LOCK:
        _DEFAULT_REGISTRY = registry


def create_session(
    session_id: SessionId,
    config: Optional[SessionConfig] = None,
    registry: Optional[SessionRegistry] = None,
) -> SessionHandle:
    """Create (or reuse) the session SESSION_ID"""
    if registry is None:
        registry = default_registry()
    if config is None:
        cfg = multirepl_config.get_last_loaded()
        config = cfg.session if cfg else None
    registry.get_or_create(session_id, config)
    return SessionHandle(session_id, registry)


def evaluate(handle: SessionHandle, source: str) -> EvalResult:
    """Evaluate a snippet in the session behind HANDLE"""
    return handle.interpreter.compile_and_eval(source)


def destroy_session(handle: SessionHandle) -> bool:
    """Destroy a session. Return whether it still existed."""
    return handle.registry.remove(handle.session_id)
