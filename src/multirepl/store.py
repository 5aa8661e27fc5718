"""The compiled output store

One directory shared by every session in the process. Each session writes
under its own package directory, so concurrent writers never touch the same
file and the store itself needs no lock:

    <root>/
      session_1/
        __init__.py
        line1.py
        line2.py
        __pycache__/
      session_2/
        ...

The root is what the distribution loader searches.
"""

import importlib.util
import logging
import os
import shutil
import tempfile
import threading
from importlib.machinery import ModuleSpec
from pathlib import Path
from typing import List, Optional, Union

from . import config
from .exceptions import NamespaceCollisionError
from .naming import PACKAGE_PREFIX, SessionNames

LOG = logging.getLogger(__name__)

PACKAGE_HEADER = '"""Generated by multirepl: session {session_id!r}"""\n'


class CompiledOutputStore:
    """A directory of generated session modules"""

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root).resolve()
        os.makedirs(self.root, exist_ok=True)

    def __repr__(self):
        return f"<CompiledOutputStore {self.root}>"

    ## Paths

    def _parts(self, module_name: str) -> List[str]:
        parts = module_name.split(".")
        if not all(p.isidentifier() for p in parts):
            raise ValueError(f"Not a module name: {module_name!r}")
        return parts

    def path_for(self, module_name: str) -> Path:
        """Where the source of (non-package) MODULE_NAME lives"""
        parts = self._parts(module_name)
        return self.root.joinpath(*parts[:-1], parts[-1] + ".py")

    def package_dir(self, names: SessionNames) -> Path:
        return self.root / names.package

    def spec_for(self, module_name: str) -> Optional[ModuleSpec]:
        """Find MODULE_NAME in the store, as a package or a plain module"""
        try:
            parts = self._parts(module_name)
        except ValueError:
            return None

        package_dir = self.root.joinpath(*parts)
        init = package_dir / "__init__.py"
        if init.is_file():
            return importlib.util.spec_from_file_location(
                module_name, init, submodule_search_locations=[str(package_dir)]
            )

        source = self.path_for(module_name)
        if source.is_file():
            return importlib.util.spec_from_file_location(module_name, source)

        return None

    def contains(self, module_name: str) -> bool:
        return self.spec_for(module_name) is not None

    ## Writing

    def ensure_package(self, names: SessionNames) -> Path:
        """Create the package directory of a session, if it doesn't exist"""
        package_dir = self.package_dir(names)
        os.makedirs(package_dir, exist_ok=True)
        try:
            with open(package_dir / "__init__.py", "x", encoding="utf-8") as f:
                f.write(PACKAGE_HEADER.format(session_id=names.session_id))
            LOG.info("New session package %s", package_dir)
        except FileExistsError:
            pass
        return package_dir

    def write(self, module_name: str, source: str) -> Path:
        """Write a new module. Existing modules are never overwritten."""
        path = self.path_for(module_name)
        try:
            with open(path, "x", encoding="utf-8") as f:
                f.write(source)
        except FileExistsError:
            raise NamespaceCollisionError(
                f"{module_name} already exists in {self.root}"
            )
        LOG.debug("Wrote %s (%d bytes)", path, len(source))
        return path

    ## Inspection and cleanup

    def line_modules(self, names: SessionNames) -> List[str]:
        """Line modules of a session present in the store, in order"""
        package_dir = self.package_dir(names)
        if not package_dir.is_dir():
            return []
        found = []
        for path in package_dir.glob("*.py"):
            module_name = names.prefix + path.stem
            index = names.line_index(module_name)
            if index is not None:
                found.append((index, module_name))
        return [name for _, name in sorted(found)]

    def last_line(self, names: SessionNames) -> int:
        """Highest line number used by a session so far (0 if none)"""
        lines = self.line_modules(names)
        return names.line_index(lines[-1]) if lines else 0

    def session_packages(self) -> List[str]:
        """Names of all session packages in the store"""
        return sorted(
            p.name
            for p in self.root.iterdir()
            if p.name.startswith(PACKAGE_PREFIX) and (p / "__init__.py").is_file()
        )

    def purge(self, names: SessionNames) -> bool:
        """Delete every artifact of a session. Return whether any existed."""
        package_dir = self.package_dir(names)
        if not package_dir.exists():
            return False
        shutil.rmtree(package_dir)
        LOG.info("Purged %s", package_dir)
        return True


_DEFAULT_STORE = None
_DEFAULT_STORE_LOCK = threading.Lock()


def get_default_store() -> CompiledOutputStore:
    """The process-wide store, created on first use

    The root comes from MULTIREPL_OUTPUT_DIR, then the last loaded config, and
    otherwise a new temporary directory.
    """
    global _DEFAULT_STORE
    with _DEFAULT_STORE_LOCK:
        if _DEFAULT_STORE is None:
            root = os.getenv(config.OUTPUT_DIR_ENV)
            cfg = config.get_last_loaded()
            if not root and cfg and cfg.store.output_dir:
                root = cfg.store.output_dir
            if not root:
                root = tempfile.mkdtemp(prefix="multirepl-")
            _DEFAULT_STORE = CompiledOutputStore(root)
            LOG.info("Compiled output store: %s", _DEFAULT_STORE.root)
        return _DEFAULT_STORE


def set_default_store(store: Optional[CompiledOutputStore]):
    global _DEFAULT_STORE
    with _DEFAULT_STORE_LOCK:
        _DEFAULT_STORE = store
