import logging
import threading
import uuid
from concurrent.futures import ThreadPoolExecutor, wait as wait_futures

import redis

from models import utcnow
from utilities.constants import TASK_TTL_SEC

logger = logging.getLogger(__name__)

PENDING = 'pending'
RUNNING = 'running'
DONE = 'done'
FAILED = 'failed'

MAX_TRACKED_TASKS = 1000


class EvaluationQueue:
    """Runs evaluation jobs off the request thread and records their outcome.

    Every job gets a task record ``task:<id>`` (a Redis hash) whose status moves
    pending -> running -> done|failed. Job exceptions are logged and written to
    the record; they never propagate back to the request that enqueued them.
    Futures are kept in-process so callers (the finalizer, tests) can wait for
    completion deterministically.
    """

    def __init__(self, app, redis_conn, max_workers=4):
        self.app = app
        self.r = redis_conn
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix='evaluator')
        self._futures = {}
        self._by_session = {}
        self._lock = threading.Lock()

    @staticmethod
    def key(task_id):
        return f"task:{task_id}"

    def _write(self, task_id, **fields):
        if not self.r:
            return
        mapping = {k: '' if v is None else str(v) for k, v in fields.items()}
        try:
            self.r.hset(self.key(task_id), mapping=mapping)
            self.r.expire(self.key(task_id), TASK_TTL_SEC)
        except redis.exceptions.RedisError as e:
            logger.error("Could not write task record %s: %s", task_id, e)

    def submit(self, session_id, question_number, fn, *args, **kwargs):
        """Queue ``fn(*args, **kwargs)`` and return the new task id immediately."""
        task_id = uuid.uuid4().hex
        self._write(
            task_id, status=PENDING, session_id=session_id,
            question_number=question_number, created_at=utcnow().isoformat(),
        )
        future = self._executor.submit(self._run, task_id, fn, args, kwargs)
        with self._lock:
            self._prune()
            self._futures[task_id] = future
            self._by_session.setdefault(session_id, []).append(task_id)
        return task_id

    def _prune(self):
        # Caller holds the lock. Finished futures are dropped once the map grows;
        # their outcome stays readable from the Redis record.
        if len(self._futures) < MAX_TRACKED_TASKS:
            return
        finished = {t for t, f in self._futures.items() if f.done()}
        for task_id in finished:
            del self._futures[task_id]
        for session_id in list(self._by_session):
            remaining = [t for t in self._by_session[session_id] if t not in finished]
            if remaining:
                self._by_session[session_id] = remaining
            else:
                del self._by_session[session_id]

    def _run(self, task_id, fn, args, kwargs):
        self._write(task_id, status=RUNNING)
        with self.app.app_context():
            try:
                result = fn(*args, **kwargs)
            except Exception as e:
                logger.exception("Evaluation task %s failed", task_id)
                self._write(task_id, status=FAILED, error=str(e), finished_at=utcnow().isoformat())
                return {'status': FAILED, 'error': str(e)}
        self._write(task_id, status=DONE, finished_at=utcnow().isoformat())
        return {'status': DONE, 'result': result}

    def status(self, task_id):
        """Return the task record as a dict, or None when unknown/expired."""
        if self.r:
            data = self.r.hgetall(self.key(task_id))
            if data:
                return data
        future = self._futures.get(task_id)
        if future is None:
            return None
        if not future.done():
            return {'status': PENDING}
        outcome = future.result()
        record = {'status': outcome.get('status')}
        if outcome.get('error'):
            record['error'] = outcome['error']
        return record

    def wait(self, task_id, timeout=None):
        """Block until the task finishes; returns its outcome dict or None."""
        future = self._futures.get(task_id)
        if future is None:
            return None
        return future.result(timeout=timeout)

    def wait_for_session(self, session_id, timeout=None):
        """Wait for every task queued for ``session_id``; returns the count still running."""
        with self._lock:
            futures = [self._futures[t] for t in self._by_session.get(session_id, []) if t in self._futures]
        if not futures:
            return 0
        _, not_done = wait_futures(futures, timeout=timeout)
        if not_done:
            logger.warning("%s evaluation(s) for %s still running after %ss", len(not_done), session_id, timeout)
        return len(not_done)

    def shutdown(self, wait=True):
        self._executor.shutdown(wait=wait)
