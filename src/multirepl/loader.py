"""Resolve generated session code by name

Two finders live here:

- CodePath: the in-process search path used in local mode. The store root is
  added to it once, and it sits on sys.meta_path so threads of the local
  cluster import session modules like any other.

- DistributionLoader: the loader handed to the serializers. It looks in the
  store first, then asks its parent (usually the driver's own loader), and
  falls back to the normal import system. It knows nothing about sessions;
  disjoint module names are what keep sessions apart.
"""

import importlib
import importlib.abc
import importlib.util
import logging
import sys
import threading
from pathlib import Path
from typing import Any, Iterable, List, Union

from .store import CompiledOutputStore

LOG = logging.getLogger(__name__)


class _MetaPathMixin:
    """install/uninstall for sys.meta_path finders"""

    def install(self, index: int = 0):
        if self not in sys.meta_path:
            sys.meta_path.insert(index, self)
            LOG.debug("Installed %s", self)

    def uninstall(self):
        if self in sys.meta_path:
            sys.meta_path.remove(self)
            LOG.debug("Uninstalled %s", self)

    @property
    def installed(self) -> bool:
        return self in sys.meta_path


class CodePath(_MetaPathMixin, importlib.abc.MetaPathFinder):
    """A mutable list of directories to import from"""

    def __init__(self, paths: Iterable[Union[str, Path]] = ()):
        self._lock = threading.Lock()
        self._stores: List[CompiledOutputStore] = []
        for path in paths:
            self.add_path(path)

    def add_path(self, path: Union[str, Path]):
        """Append PATH to the search path (no-op if it's already there)"""
        with self._lock:
            root = Path(path).resolve()
            if any(store.root == root for store in self._stores):
                return
            self._stores.append(CompiledOutputStore(root))
        LOG.info("Added %s to the local code path", root)

    @property
    def paths(self) -> List[Path]:
        with self._lock:
            return [store.root for store in self._stores]

    def find_spec(self, fullname, path=None, target=None):
        with self._lock:
            stores = list(self._stores)
        for store in stores:
            spec = store.spec_for(fullname)
            if spec is not None:
                return spec
        return None

    def __repr__(self):
        return f"<CodePath {[str(p) for p in self.paths]}>"


class DistributionLoader(_MetaPathMixin, importlib.abc.MetaPathFinder):
    """Loads modules and objects from the compiled output store

    Modules found in the store run their import preamble through the normal
    import system, which finds sibling lines via sys.meta_path. In a process
    that did not evaluate the session itself (e.g. a worker), install() this
    loader, or a CodePath over the same root, before resolving anything.
    """

    def __init__(self, root: Union[str, Path], parent=None):
        self.store = CompiledOutputStore(root)
        self.parent = parent

    @property
    def root(self) -> Path:
        return self.store.root

    def find_spec(self, fullname, path=None, target=None):
        spec = self.store.spec_for(fullname)
        if spec is None and self.parent is not None:
            spec = self.parent.find_spec(fullname, path, target)
        return spec

    def load_module(self, fullname: str):
        """Import FULLNAME, preferring the store over the parent and sys.path"""
        module = sys.modules.get(fullname)
        if module is not None:
            return module

        spec = self.find_spec(fullname)
        if spec is None:
            return importlib.import_module(fullname)

        parent_name, _, child = fullname.rpartition(".")
        parent_module = self.load_module(parent_name) if parent_name else None

        # Same dance as importlib._bootstrap: register first, remove on failure
        module = importlib.util.module_from_spec(spec)
        sys.modules[fullname] = module
        try:
            spec.loader.exec_module(module)
        except BaseException:
            sys.modules.pop(fullname, None)
            raise
        if parent_module is not None:
            setattr(parent_module, child, module)
        LOG.info("Loaded %s from %s", fullname, spec.origin)
        return module

    def find_class(self, module_name: str, qualname: str) -> Any:
        """Resolve a (possibly nested) object by module and qualified name"""
        obj = self.load_module(module_name)
        for part in qualname.split("."):
            obj = getattr(obj, part)
        return obj

    def __repr__(self):
        return f"<DistributionLoader {self.root} parent={self.parent!r}>"
