import copy
import logging
import os
import threading

import cloudpubsub.errors as Errors
from cloudpubsub.rpc.local import LocalPubSubRpc

log = logging.getLogger(__name__)


PROJECT_ENV_NAME = 'GOOGLE_CLOUD_PROJECT'
EMULATOR_HOST_ENV_NAME = 'PUBSUB_EMULATOR_HOST'
DEFAULT_HOST = 'localhost:8085'

# PubSub clients by options, shared by all equal options
_services = {}
_services_lock = threading.Lock()


class PubSubOptions(object):
    """Configuration of a PubSub client.

    Options are plain values: two PubSubOptions with the same configuration
    are equal, hash equally, and survive pickling. service() lazily creates
    the PubSub client for this configuration.

    Keyword Arguments:
        project_id (str): the project topics and subscriptions belong to.
            Default: the GOOGLE_CLOUD_PROJECT environment variable.
        host (str): 'host:port' of the Pub/Sub endpoint. Default: the
            PUBSUB_EMULATOR_HOST environment variable, or 'localhost:8085'.
        rpc_factory (callable): called as rpc_factory(options) to create the
            PubSubRpc transport. Must be picklable (a module-level class or
            function). Default: LocalPubSubRpc, the in-process emulator.
            Use cloudpubsub.rpc.CloudPubSubRpc to reach the Pub/Sub service
            (or an emulator) through google-cloud-pubsub.
        executor_threads (int): number of threads completing asynchronous
            requests. Default: 4.
        request_timeout_ms (int): maximum time synchronous calls wait for a
            response. Default: 30000.
        ack_renewal_threshold_ms (int): how long before an ack deadline
            expires it is renewed. Default: 1000.
        min_ack_deadline_seconds (int): ack deadline set on each renewal.
            Default: 10.
    """
    DEFAULT_CONFIG = {
        'project_id': None,
        'host': None,
        'rpc_factory': LocalPubSubRpc,
        'executor_threads': 4,
        'request_timeout_ms': 30000,
        'ack_renewal_threshold_ms': 1000,
        'min_ack_deadline_seconds': 10,
    }

    def __init__(self, **configs):
        self.config = copy.copy(self.DEFAULT_CONFIG)
        for key in self.config:
            if key in configs:
                self.config[key] = configs.pop(key)
        assert not configs, 'Unrecognized configs: %s' % configs

        if self.config['project_id'] is None:
            self.config['project_id'] = os.environ.get(PROJECT_ENV_NAME)
        if self.config['project_id'] is None:
            raise Errors.PubSubConfigurationError(
                'A project_id is required (or set %s)' % PROJECT_ENV_NAME)
        if self.config['host'] is None:
            self.config['host'] = os.environ.get(EMULATOR_HOST_ENV_NAME, DEFAULT_HOST)
        if self.config['executor_threads'] < 1:
            raise Errors.PubSubConfigurationError('executor_threads must be at least 1')
        if self.config['min_ack_deadline_seconds'] * 1000 <= self.config['ack_renewal_threshold_ms']:
            raise Errors.PubSubConfigurationError(
                'ack_renewal_threshold_ms must be lower than min_ack_deadline_seconds (%s ms v %s s)' % (
                    self.config['ack_renewal_threshold_ms'], self.config['min_ack_deadline_seconds']))

    @property
    def project_id(self):
        return self.config['project_id']

    @property
    def host(self):
        return self.config['host']

    def rpc(self):
        """Create a new transport for this configuration"""
        return self.config['rpc_factory'](self)

    def service(self):
        """Return the PubSub client for this configuration, creating it on
        first use.

        Equal options share one client, so handles restored from pickles reuse
        the client of the process instead of opening one each.
        """
        from cloudpubsub.client import PubSub
        with _services_lock:
            service = _services.get(self)
            if service is None or service.closed:
                log.debug('Creating PubSub client for project %s at %s',
                          self.project_id, self.host)
                service = _services[self] = PubSub(self)
            return service

    def __eq__(self, other):
        if not isinstance(other, PubSubOptions):
            return NotImplemented
        return self.config == other.config

    def __hash__(self):
        return hash(tuple(sorted(self.config.items())))

    def __repr__(self):
        return '<PubSubOptions project_id=%s host=%s>' % (self.project_id, self.host)
