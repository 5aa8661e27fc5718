"""The session registry: session id -> interpreter"""

import logging
import threading
from concurrent.futures import Future
from typing import Dict, List, Optional

from . import bootstrap
from .cluster import ClusterContext
from .config_classes import SessionConfig, StoreConfig
from .interpreter import Interpreter
from .naming import SessionId, validate_session_id
from .store import CompiledOutputStore, get_default_store

LOG = logging.getLogger(__name__)


class SessionRegistry:
    """Creates, finds and destroys session interpreters

    The registry lock guards the mapping only. Interpreters are constructed
    outside it, so sessions with different ids are set up in parallel, while
    callers racing on the same new id all receive the one instance built by
    whoever got there first.
    """

    def __init__(
        self,
        cluster: ClusterContext,
        store: Optional[CompiledOutputStore] = None,
        controller: Optional[bootstrap.InitializationController] = None,
        store_config: Optional[StoreConfig] = None,
    ):
        self.cluster = cluster
        self.store = get_default_store() if store is None else store
        self.controller = bootstrap.CONTROLLER if controller is None else controller
        self.store_config = StoreConfig() if store_config is None else store_config
        self._lock = threading.Lock()
        self._sessions: Dict[SessionId, Interpreter] = {}
        self._pending: Dict[SessionId, Future] = {}

    def get_or_create(
        self, session_id: SessionId, config: Optional[SessionConfig] = None
    ) -> Interpreter:
        """Return the interpreter of SESSION_ID, creating it if necessary"""
        validate_session_id(session_id)
        self.controller.ensure_initialized(self.cluster, self.store)

        with self._lock:
            if session_id in self._sessions:
                return self._sessions[session_id]
            pending = self._pending.get(session_id)
            if pending is None:
                pending = self._pending[session_id] = Future()
                creator = True
            else:
                creator = False

        if not creator:
            return pending.result()

        try:
            interpreter = Interpreter(session_id, self.store, config=config)
        except BaseException as exc:
            with self._lock:
                del self._pending[session_id]
            pending.set_exception(exc)
            raise

        with self._lock:
            self._sessions[session_id] = interpreter
            del self._pending[session_id]
        pending.set_result(interpreter)
        LOG.info("Registered session %r", session_id)
        return interpreter

    def get(self, session_id: SessionId) -> Optional[Interpreter]:
        with self._lock:
            return self._sessions.get(session_id)

    def remove(self, session_id: SessionId) -> bool:
        """Destroy a session. Return whether it existed."""
        with self._lock:
            interpreter = self._sessions.pop(session_id, None)
        if interpreter is None:
            return False

        interpreter.close()
        if self.store_config.purge_on_destroy:
            self.store.purge(interpreter.names)
        LOG.info("Removed session %r", session_id)
        return True

    def session_ids(self) -> List[SessionId]:
        with self._lock:
            return list(self._sessions)

    def close_all(self):
        for session_id in self.session_ids():
            self.remove(session_id)

    def __contains__(self, session_id):
        with self._lock:
            return session_id in self._sessions

    def __len__(self):
        with self._lock:
            return len(self._sessions)
