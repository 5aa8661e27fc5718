"""Minimal task runners for the local and process clusters"""

from ..cluster import ClusterContext
from ..store import CompiledOutputStore


def run_task(closure_serializer, data_serializer, payload: bytes) -> bytes:
    """Worker side of a task: unpack the closure, call it, pack the result"""
    fn, args = closure_serializer.loads(payload)
    return data_serializer.dumps(fn(*args))


def get_executor(cluster: ClusterContext, store: CompiledOutputStore):
    """An executor suitable for CLUSTER"""
    cluster.validate()
    if cluster.is_local:
        from .thread import Executor

        return Executor(cluster)
    else:
        from .multiprocess import Executor

        return Executor(cluster, store.root)
