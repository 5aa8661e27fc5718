"""Run tasks in separate worker processes

Workers don't share the driver's modules. Each one builds its own
DistributionLoader over the compiled output store when it starts, and uses it
both as an import hook and as the default loader of its serializers.
"""
import logging
import multiprocessing

from ..loader import DistributionLoader
from ..serializer import Serializer
from . import run_task

LOG = logging.getLogger(__name__)

# (closure serializer, data serializer) of this worker process
_WORKER_SERIALIZERS = None


def _init_worker(store_root: str):
    global _WORKER_SERIALIZERS
    loader = DistributionLoader(store_root)
    loader.install()
    _WORKER_SERIALIZERS = (Serializer("closure", loader), Serializer("data", loader))


def _worker_run(payload: bytes) -> bytes:
    closure_serializer, data_serializer = _WORKER_SERIALIZERS
    return run_task(closure_serializer, data_serializer, payload)


class Executor:
    def __init__(self, cluster, store_root, mp_context=None):
        self.cluster = cluster
        ctx = multiprocessing.get_context(mp_context)
        self._pool = ctx.Pool(
            cluster.parallelism, initializer=_init_worker, initargs=(str(store_root),)
        )
        LOG.info("Started %d worker processes", cluster.parallelism)

    def run(self, fn, *args):
        payload = self.cluster.closure_serializer.dumps((fn, args))
        data = self._pool.apply(_worker_run, (payload,))
        return self.cluster.serializer.loads(data)

    def map(self, fn, iterable) -> list:
        dumps = self.cluster.closure_serializer.dumps
        payloads = [dumps((fn, (item,))) for item in iterable]
        results = self._pool.map(_worker_run, payloads)
        return [self.cluster.serializer.loads(d) for d in results]

    def close(self):
        self._pool.close()
        self._pool.join()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()
