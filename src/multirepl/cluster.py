"""The cluster context sessions run against

This is the small surface of the compute cluster that session setup needs:
whether work runs in-process (threads) or in separate processes, the two
serializers used for task closures and data, the in-process code path (local
mode only) and, optionally, a driver-level loader to delegate to.
"""

import logging
import os
import re
from dataclasses import dataclass, field
from typing import Optional

from .config_classes import ClusterConfig
from .exceptions import ConfigurationError
from .loader import CodePath
from .serializer import Serializer

LOG = logging.getLogger(__name__)

LOCAL_RE = re.compile(r"^local(\[(?P<n>[0-9]+|\*)\])?$")
PROCESSES_RE = re.compile(r"^processes(\[(?P<n>[0-9]+|\*)\])?$")

MASTER_HELP = "Use local, local[N], local[*], processes[N] or processes[*]."


def _parse_parallelism(value: Optional[str], default: int) -> int:
    if value is None:
        return default
    if value == "*":
        return os.cpu_count() or 1
    return int(value)


@dataclass
class ClusterContext:
    master: str
    serializer: Serializer = field(default_factory=lambda: Serializer("data"))
    closure_serializer: Serializer = field(
        default_factory=lambda: Serializer("closure")
    )
    code_path: Optional[CodePath] = None
    driver_loader: object = None

    @property
    def is_local(self) -> bool:
        return isinstance(self.master, str) and bool(LOCAL_RE.match(self.master))

    @property
    def parallelism(self) -> int:
        self.validate()
        match = LOCAL_RE.match(self.master) or PROCESSES_RE.match(self.master)
        return _parse_parallelism(match.group("n"), 1 if self.is_local else 2)

    @property
    def serializers(self):
        return [self.serializer, self.closure_serializer]

    def validate(self):
        """Raise ConfigurationError unless the context is usable"""
        if not isinstance(self.master, str):
            raise ConfigurationError(f"Bad master: {self.master!r}", MASTER_HELP)

        match = LOCAL_RE.match(self.master) or PROCESSES_RE.match(self.master)
        if not match:
            raise ConfigurationError(f"Unknown master `{self.master}'", MASTER_HELP)
        if match.group("n") not in (None, "*") and int(match.group("n")) < 1:
            raise ConfigurationError(
                f"Master `{self.master}' has no workers", MASTER_HELP
            )

        for name in ["serializer", "closure_serializer"]:
            if not isinstance(getattr(self, name), Serializer):
                raise ConfigurationError(
                    f"Cluster context has no {name}",
                    "Build contexts with local_context() or process_context().",
                )

        if self.is_local and not isinstance(self.code_path, CodePath):
            raise ConfigurationError(
                "Local cluster context has no code path",
                "Local mode needs a CodePath to register compiled output with.",
            )

        if self.driver_loader is not None and not hasattr(
            self.driver_loader, "find_spec"
        ):
            raise ConfigurationError(
                f"Driver loader {self.driver_loader!r} has no find_spec",
                "The driver loader must be an importlib meta path finder.",
            )

    def close(self):
        """Remove the local code path from sys.meta_path"""
        if self.code_path is not None:
            self.code_path.uninstall()


def local_context(parallelism: Optional[int] = None) -> ClusterContext:
    """A cluster whose workers are threads of this process"""
    master = "local" if parallelism is None else f"local[{parallelism}]"
    code_path = CodePath()
    code_path.install()
    return ClusterContext(master=master, code_path=code_path)


def process_context(parallelism: Optional[int] = None, driver_loader=None):
    """A cluster whose workers are separate Python processes"""
    master = "processes" if parallelism is None else f"processes[{parallelism}]"
    return ClusterContext(master=master, driver_loader=driver_loader)


def from_config(cfg: ClusterConfig) -> ClusterContext:
    """Build a context from the [cluster] section of multirepl.toml"""
    if LOCAL_RE.match(cfg.master):
        ctx = local_context()
        ctx.master = cfg.master
    elif PROCESSES_RE.match(cfg.master):
        ctx = process_context()
        ctx.master = cfg.master
    else:
        raise ConfigurationError(f"Unknown master `{cfg.master}'", MASTER_HELP)
    LOG.info("Cluster: %s", ctx.master)
    return ctx
