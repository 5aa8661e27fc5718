"""Pickle-based serializers with a settable default loader

The cluster uses two of these: one for task closures and one for data. Objects
defined in a session are pickled by reference (module + qualname), so the
receiving side has to be able to find session modules. That is what the
default loader is for.
"""

import io
import logging
import pickle
from typing import Any

LOG = logging.getLogger(__name__)


class _LoaderUnpickler(pickle.Unpickler):
    """Unpickler that resolves globals through a DistributionLoader"""

    def __init__(self, payload_stream: io.BytesIO, loader):
        super().__init__(payload_stream)
        self._loader = loader

    def find_class(self, module: str, name: str) -> Any:
        return self._loader.find_class(module, name)


class Serializer:
    """Serialize values for shipping to (and back from) workers"""

    def __init__(self, name: str, default_loader=None):
        self.name = name
        self.default_loader = default_loader

    def set_default_loader(self, loader):
        LOG.info("Default loader of %s serializer: %s", self.name, loader)
        self.default_loader = loader

    def dumps(self, value: Any) -> bytes:
        return pickle.dumps(value, protocol=pickle.HIGHEST_PROTOCOL)

    def loads(self, payload: bytes) -> Any:
        if self.default_loader is None:
            return pickle.loads(payload)
        return _LoaderUnpickler(io.BytesIO(payload), self.default_loader).load()

    def __repr__(self):
        return f"<Serializer {self.name} loader={self.default_loader!r}>"
