"""Isolated, concurrent REPL sessions whose code is shared with a cluster"""

__version__ = "0.1.0"

from .api import create_session, default_registry, destroy_session, evaluate
from .api import set_default_registry, SessionHandle
from .bootstrap import InitializationController
from .cluster import ClusterContext, local_context, process_context
from .exceptions import (
    ConfigurationError,
    MultiReplError,
    NamespaceCollisionError,
    SessionClosedError,
    UnexpectedError,
    UnknownSessionError,
    UserResolvableError,
)
from .interpreter import EvaluationCancelled, Interpreter
from .loader import CodePath, DistributionLoader
from .naming import SessionNames
from .registry import SessionRegistry
from .results import EvalResult, Outcome
from .store import CompiledOutputStore, get_default_store
