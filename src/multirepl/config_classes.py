"""multirepl configuration data, usually stored in multirepl.toml"""

from dataclasses import dataclass
from pathlib import Path
from typing import Union

# Constants
DEFAULT_OUTPUT_DIR = ".multirepl/classes"
DEFAULT_MASTER = "local[4]"


@dataclass(unsafe_hash=True)
class StoreConfig:
    output_dir: Union[Path, None] = Path(DEFAULT_OUTPUT_DIR)
    purge_on_destroy: bool = False

    def __post_init__(self):
        if self.output_dir:
            self.output_dir = Path(self.output_dir)


@dataclass(unsafe_hash=True)
class ClusterConfig:
    master: str = DEFAULT_MASTER


@dataclass(frozen=True)
class SessionConfig:
    """Per-session evaluation options"""

    # Re-raise snippet exceptions to the caller instead of returning them
    propagate_exceptions: bool = False
    # Trace evaluations so that cancel() can interrupt them
    cancellable: bool = True
