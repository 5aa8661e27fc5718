"""Run tasks on threads of this process"""
import logging
from concurrent.futures import ThreadPoolExecutor

from . import run_task

LOG = logging.getLogger(__name__)


class Executor:
    def __init__(self, cluster):
        self.cluster = cluster
        self._pool = ThreadPoolExecutor(
            max_workers=cluster.parallelism, thread_name_prefix="multirepl-worker"
        )

    def _submit(self, fn, args):
        payload = self.cluster.closure_serializer.dumps((fn, args))
        return self._pool.submit(
            run_task, self.cluster.closure_serializer, self.cluster.serializer, payload
        )

    def run(self, fn, *args):
        LOG.info("Running %s on a local worker", fn)
        data = self._submit(fn, args).result()
        return self.cluster.serializer.loads(data)

    def map(self, fn, iterable) -> list:
        futures = [self._submit(fn, (item,)) for item in iterable]
        return [self.cluster.serializer.loads(f.result()) for f in futures]

    def close(self):
        self._pool.shutdown(wait=True)

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()
