"""One-time wiring of the distribution loader into the cluster"""

import logging
import threading
from typing import Optional

from .cluster import ClusterContext
from .exceptions import ConfigurationError
from .loader import DistributionLoader
from .store import CompiledOutputStore

LOG = logging.getLogger(__name__)


class InitializationController:
    """Sets up code distribution at most once

    The first caller of ensure_initialized does the work while any concurrent
    callers wait for it. A failure sticks: later calls raise again until
    reset() is called.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._loader: Optional[DistributionLoader] = None
        self._failure: Optional[ConfigurationError] = None
        self.runs = 0

    @property
    def loader(self) -> Optional[DistributionLoader]:
        return self._loader

    @property
    def initialized(self) -> bool:
        return self._loader is not None

    def ensure_initialized(
        self, cluster: ClusterContext, store: CompiledOutputStore
    ) -> DistributionLoader:
        with self._lock:
            if self._loader is not None:
                return self._loader
            if self._failure is not None:
                raise ConfigurationError(
                    f"Initialization failed earlier: {self._failure.msg}",
                    "Fix the cluster context, then reset() the controller.",
                )
            self.runs += 1
            try:
                self._loader = self._initialize(cluster, store)
            except ConfigurationError as exc:
                self._failure = exc
                raise
            return self._loader

    def _initialize(self, cluster, store) -> DistributionLoader:
        if not isinstance(cluster, ClusterContext):
            raise ConfigurationError(
                f"No cluster context (got {cluster!r})",
                "Create one with local_context() or process_context().",
            )
        cluster.validate()

        if cluster.is_local:
            # threads of this process import session modules via the code path
            cluster.code_path.add_path(store.root)
            loader = DistributionLoader(store.root)
        elif cluster.driver_loader is not None:
            loader = DistributionLoader(store.root, parent=cluster.driver_loader)
            loader.install()
        else:
            # not started from a driver with its own loader
            loader = DistributionLoader(store.root)
            loader.install()

        for serializer in cluster.serializers:
            serializer.set_default_loader(loader)

        LOG.info("Initialized code distribution (%s): %s", cluster.master, loader)
        return loader

    def reset(self):
        """Forget earlier initialization, successful or not"""
        with self._lock:
            if self._loader is not None:
                self._loader.uninstall()
            self._loader = None
            self._failure = None


CONTROLLER = InitializationController()
