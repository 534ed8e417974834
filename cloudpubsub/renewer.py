import collections
import copy
import heapq
import logging
import threading
import time

log = logging.getLogger(__name__)


class AckDeadlineRenewer(object):
    """Keeps the ack deadline of pulled messages from expiring.

    Messages are tracked by (subscription, ack_id) from add() until remove().
    A daemon thread wakes up renewal_threshold_ms before a tracked deadline
    expires and pushes it min_deadline_seconds into the future by calling
    renew(subscription, deadline_seconds, ack_ids), which must return a
    Future.

    Keyword Arguments:
        min_deadline_seconds (int): deadline set on each renewal. Default: 10.
        renewal_threshold_ms (int): how long before expiration a deadline is
            renewed. Default: 1000.
    """
    DEFAULT_CONFIG = {
        'min_deadline_seconds': 10,
        'renewal_threshold_ms': 1000,
    }

    def __init__(self, renew, **configs):
        self.config = copy.copy(self.DEFAULT_CONFIG)
        for key in self.config:
            if key in configs:
                self.config[key] = configs.pop(key)
        assert not configs, 'Unrecognized configs: %s' % configs

        self._renew = renew
        self._lock = threading.Condition()
        self._expirations = {} # (subscription, ack_id): expiration time
        self._queue = [] # heap of (expiration time, (subscription, ack_id))
        self._thread = None
        self._closed = False

    def _next_expiration(self):
        return time.time() + self.config['min_deadline_seconds']

    def add(self, subscription, *ack_ids):
        """Start renewing the deadline of ack_ids"""
        with self._lock:
            if self._closed:
                return
            expiration = self._next_expiration()
            for ack_id in ack_ids:
                key = (subscription, ack_id)
                self._expirations[key] = expiration
                heapq.heappush(self._queue, (expiration, key))
            self._ensure_thread()
            self._lock.notify()

    def remove(self, subscription, *ack_ids):
        """Stop renewing the deadline of ack_ids"""
        with self._lock:
            for ack_id in ack_ids:
                self._expirations.pop((subscription, ack_id), None)

    def tracked(self, subscription, ack_id):
        with self._lock:
            return (subscription, ack_id) in self._expirations

    def __len__(self):
        with self._lock:
            return len(self._expirations)

    def _ensure_thread(self):
        if self._thread is None:
            self._thread = threading.Thread(target=self._run, name='pubsub-ack-deadline-renewer')
            self._thread.daemon = True
            self._thread.start()

    def _pop_due(self):
        """Collect due entries, re-queueing them with a new expiration.

        Returns the time in seconds until the next entry is due.
        """
        due = collections.defaultdict(list)
        threshold = self.config['renewal_threshold_ms'] / 1000
        while self._queue:
            expiration, key = self._queue[0]
            if self._expirations.get(key) != expiration:
                # removed or re-added since queued
                heapq.heappop(self._queue)
                continue
            wait = expiration - threshold - time.time()
            if wait > 0:
                return due, wait
            heapq.heappop(self._queue)
            new_expiration = self._next_expiration()
            self._expirations[key] = new_expiration
            heapq.heappush(self._queue, (new_expiration, key))
            due[key[0]].append(key[1])
        return due, None

    def _run(self):
        log.debug('Ack deadline renewer started')
        try:
            while True:
                with self._lock:
                    if self._closed:
                        break
                    due, wait = self._pop_due()
                    if not due:
                        self._lock.wait(wait)
                        continue
                for subscription, ack_ids in due.items():
                    self._send_renewal(subscription, ack_ids)
        finally:
            log.debug('Ack deadline renewer closed')

    def _send_renewal(self, subscription, ack_ids):
        log.debug('Renewing ack deadline of %d messages on %s', len(ack_ids), subscription)
        try:
            future = self._renew(subscription, self.config['min_deadline_seconds'], ack_ids)
        except Exception:
            log.exception('Failed to renew ack deadline on %s', subscription)
            return
        future.add_errback(self._on_renewal_failure, subscription)

    def _on_renewal_failure(self, subscription, error):
        log.warning('Ack deadline renewal on %s failed: %s', subscription, error)

    def close(self, timeout_ms=1000):
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._expirations.clear()
            del self._queue[:]
            self._lock.notify()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout_ms / 1000)
            if self._thread.is_alive():
                log.warning('Ack deadline renewer thread did not fully terminate during close')
