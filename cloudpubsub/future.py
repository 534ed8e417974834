import functools
import logging
import threading

import cloudpubsub.errors as Errors

log = logging.getLogger(__name__)


class Future(object):
    """Result of an asynchronous Pub/Sub operation.

    Completed once, by success(value) or failure(exception), usually from a
    client executor thread. Callbacks and errbacks added after completion run
    right away in the calling thread. wait() and get() block the caller until
    completion.
    """
    error_on_callbacks = False # and errbacks

    def __init__(self):
        self.is_done = False
        self.value = None
        self.exception = None
        self._callbacks = []
        self._errbacks = []
        self._lock = threading.Lock()
        self._latch = threading.Event()

    def succeeded(self):
        return self.is_done and not bool(self.exception)

    def failed(self):
        return self.is_done and bool(self.exception)

    def retriable(self):
        try:
            return self.exception.retriable
        except AttributeError:
            return False

    def success(self, value):
        assert not self.is_done, 'Future is already complete'
        with self._lock:
            self.value = value
            self.is_done = True
        try:
            if self._callbacks:
                self._call_backs('callback', self._callbacks, self.value)
        finally:
            self._latch.set()
        return self

    def failure(self, e):
        assert not self.is_done, 'Future is already complete'
        exception = e if type(e) is not type else e()
        assert isinstance(exception, BaseException), (
            'future failed without an exception')
        with self._lock:
            self.exception = exception
            self.is_done = True
        try:
            self._call_backs('errback', self._errbacks, self.exception)
        finally:
            self._latch.set()
        return self

    def add_callback(self, f, *args, **kwargs):
        if args or kwargs:
            f = functools.partial(f, *args, **kwargs)
        with self._lock:
            if not self.is_done:
                self._callbacks.append(f)
            elif self.succeeded():
                self._lock.release()
                self._call_backs('callback', [f], self.value)
                self._lock.acquire()
        return self

    def add_errback(self, f, *args, **kwargs):
        if args or kwargs:
            f = functools.partial(f, *args, **kwargs)
        with self._lock:
            if not self.is_done:
                self._errbacks.append(f)
            elif self.failed():
                self._lock.release()
                self._call_backs('errback', [f], self.exception)
                self._lock.acquire()
        return self

    def chain(self, future):
        self.add_callback(future.success)
        self.add_errback(future.failure)
        return self

    def wait(self, timeout=None):
        """Block until the future completes or timeout (seconds) expires.

        Returns:
            bool: True if the future is done
        """
        return self._latch.wait(timeout)

    def get(self, timeout=None):
        """Block until the future completes and return its value.

        Arguments:
            timeout (float, optional): seconds to wait. Default: forever.

        Raises:
            PubSubTimeoutError: if the future is not done within timeout
            Exception: the failure the future completed with
        """
        if not self.is_done and not self.wait(timeout):
            raise Errors.PubSubTimeoutError(
                "Timeout after waiting for %s secs." % timeout)
        if self.failed():
            raise self.exception # pylint: disable-msg=raising-bad-type
        return self.value

    def _call_backs(self, back_type, backs, value):
        for f in backs:
            try:
                f(value)
            except Exception as e:
                log.exception('Error processing %s', back_type)
                if self.error_on_callbacks:
                    raise e
