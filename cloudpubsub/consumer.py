import concurrent.futures
import copy
import logging
import threading

import cloudpubsub.errors as Errors

log = logging.getLogger(__name__)


class MessageConsumer(object):
    """Continuously pulls messages from a subscription and runs a callback
    on each of them.

    A pull thread fetches messages and submits callback(message) to an
    executor. The number of messages queued or being processed never exceeds
    max_queued_callbacks; the pull thread waits for callbacks to complete
    before pulling more. When a callback returns the message is acked, when
    it raises the message is nacked. Ack deadlines of queued messages are
    renewed until they are acked or nacked.

    Lifecycle: start() begins pulling, close() stops pulling and drains:
    callbacks not started yet are cancelled (and their messages nacked),
    ack deadline renewal stops, and callbacks already running are allowed to
    finish. The consumer is a context manager that closes on exit.

    Keyword Arguments:
        max_queued_callbacks (int): maximum number of messages being processed
            or waiting to be processed. Default: 100.
        executor (concurrent.futures.Executor): executor running callbacks.
            Left running on close. Default: None, the consumer creates (and
            shuts down on close) a thread pool of executor_threads threads.
        executor_threads (int): size of the consumer-owned thread pool.
            Default: 4.
        pull_backoff_ms (int): time to wait before pulling again after a pull
            returned no messages or failed. Default: 500.
    """
    DEFAULT_CONFIG = {
        'max_queued_callbacks': 100,
        'executor': None,
        'executor_threads': 4,
        'pull_backoff_ms': 500,
    }

    def __init__(self, pubsub, subscription, callback, **configs):
        self.config = copy.copy(self.DEFAULT_CONFIG)
        for key in self.config:
            if key in configs:
                self.config[key] = configs.pop(key)
        assert not configs, 'Unrecognized configs: %s' % configs
        if self.config['max_queued_callbacks'] < 1:
            raise Errors.IllegalArgumentError('max_queued_callbacks must be at least 1')

        self._pubsub = pubsub
        self.subscription = subscription
        self._callback = callback
        self._executor = self.config['executor']
        self._owns_executor = self._executor is None
        self._lock = threading.Condition()
        self._pending = {} # concurrent future: ReceivedMessage
        self._thread = None
        self._closed = False

    @property
    def closed(self):
        return self._closed

    @property
    def queued(self):
        """Number of messages being processed or waiting to be processed"""
        with self._lock:
            return len(self._pending)

    def start(self):
        with self._lock:
            if self._closed:
                raise Errors.IllegalStateError('MessageConsumer is closed')
            if self._thread is not None:
                return self
            if self._owns_executor:
                self._executor = concurrent.futures.ThreadPoolExecutor(
                    max_workers=self.config['executor_threads'],
                    thread_name_prefix='pubsub-callback-' + self.subscription)
            self._thread = threading.Thread(
                target=self._run, name='pubsub-consumer-' + self.subscription)
            self._thread.daemon = True
            self._thread.start()
        log.debug('Started consumer on subscription %s', self.subscription)
        return self

    def _run(self):
        backoff = self.config['pull_backoff_ms'] / 1000
        try:
            while True:
                with self._lock:
                    while not self._closed and len(self._pending) >= self.config['max_queued_callbacks']:
                        self._lock.wait()
                    if self._closed:
                        break
                    max_messages = self.config['max_queued_callbacks'] - len(self._pending)

                try:
                    messages = list(self._pubsub.pull(self.subscription, max_messages))
                except Errors.PubSubError as e:
                    log.warning('Pull from subscription %s failed: %s', self.subscription, e)
                    messages = []
                except Exception:
                    log.exception('Unexpected error pulling from subscription %s', self.subscription)
                    messages = []

                with self._lock:
                    for message in messages:
                        if self._closed:
                            self._discard(message)
                            continue
                        future = self._executor.submit(self._process, message)
                        self._pending[future] = message
                        future.add_done_callback(self._done)
                    if not messages and not self._closed:
                        self._lock.wait(backoff)
        finally:
            log.debug('Consumer pull thread for %s closed', self.subscription)

    def _process(self, message):
        try:
            self._callback(message)
        except Exception:
            log.warning('Callback failed on message %s from %s, nacking',
                        message.id, self.subscription, exc_info=True)
            message.nack_async().add_errback(self._on_ack_failure, 'nack', message)
        else:
            message.ack_async().add_errback(self._on_ack_failure, 'ack', message)

    def _on_ack_failure(self, operation, message, error):
        log.error('Failed to %s message %s from %s: %s',
                  operation, message.id, self.subscription, error)

    def _done(self, future):
        with self._lock:
            self._pending.pop(future, None)
            self._lock.notify_all()

    def _discard(self, message):
        message.nack_async().add_errback(self._on_ack_failure, 'nack', message)

    def close(self, timeout_ms=None):
        """Stop pulling and wait for running callbacks to finish.

        Arguments:
            timeout_ms (int, optional): maximum time to wait for running
                callbacks. Default: wait until they finish.
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._lock.notify_all()
            pending = list(self._pending.items())

        log.debug('Closing consumer on subscription %s', self.subscription)
        running = []
        for future, message in pending:
            self._pubsub.renewer.remove(self.subscription, message.ack_id)
            if future.cancel():
                self._discard(message)
            else:
                running.append(future)

        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join()
        timeout = timeout_ms / 1000 if timeout_ms is not None else None
        _, not_done = concurrent.futures.wait(running, timeout=timeout)
        if not_done:
            log.warning('%d callbacks on %s still running after close', len(not_done), self.subscription)
        if self._owns_executor and self._executor is not None:
            self._executor.shutdown(wait=False)
        log.debug('Consumer on subscription %s closed', self.subscription)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()
