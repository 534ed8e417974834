"""In-process Pub/Sub emulator.

LocalPubSubRpc serves requests from a LocalPubSubServer living in this
process. Servers are shared per emulator host, so every client configured
with the same host (including clients restored from pickled options) sees the
same topics, subscriptions, messages and policies.
"""
import base64
import collections
import copy
import logging
import threading
import time
import uuid

import cloudpubsub.errors as Errors
from cloudpubsub.rpc.abstract import PubSubRpc
from cloudpubsub.structs import DELETED_TOPIC_NAME
from cloudpubsub.util import (
    SUBSCRIPTION_PATH, TOPIC_PATH, ensure_valid_resource_name, millis_to_rfc3339)

log = logging.getLogger(__name__)


DEFAULT_ACK_DEADLINE_SECONDS = 10
MIN_ACK_DEADLINE_SECONDS = 10
MAX_ACK_DEADLINE_SECONDS = 600

# etag of a resource whose policy was never written
EMPTY_POLICY_ETAG = 'ACAB'

TOPIC_PERMISSIONS = frozenset([
    'pubsub.topics.attachSubscription',
    'pubsub.topics.delete',
    'pubsub.topics.get',
    'pubsub.topics.getIamPolicy',
    'pubsub.topics.publish',
    'pubsub.topics.setIamPolicy',
    'pubsub.topics.update',
])

SUBSCRIPTION_PERMISSIONS = frozenset([
    'pubsub.subscriptions.consume',
    'pubsub.subscriptions.delete',
    'pubsub.subscriptions.get',
    'pubsub.subscriptions.getIamPolicy',
    'pubsub.subscriptions.setIamPolicy',
    'pubsub.subscriptions.update',
])


_servers = {}
_servers_lock = threading.Lock()


def local_server(host):
    """Return the emulator serving host, starting it on first use"""
    with _servers_lock:
        if host not in _servers:
            log.debug('Starting local Pub/Sub emulator for %s', host)
            _servers[host] = LocalPubSubServer(host)
        return _servers[host]


class _SubscriptionState(object):
    def __init__(self, subscription_pb):
        self.config = subscription_pb
        self.backlog = collections.deque()
        self.outstanding = collections.OrderedDict() # ack_id: (message_pb, deadline)

    @property
    def ack_deadline_seconds(self):
        return self.config['ackDeadlineSeconds']

    def requeue_expired(self, now):
        expired = [ack_id for ack_id, (_, deadline) in self.outstanding.items()
                   if deadline <= now]
        for ack_id in reversed(expired):
            message_pb, _ = self.outstanding.pop(ack_id)
            self.backlog.appendleft(message_pb)


class LocalPubSubServer(object):
    def __init__(self, host):
        self.host = host
        self._lock = threading.RLock()
        self._topics = set()
        self._subscriptions = {}
        self._policies = {}
        self._next_message_id = 1
        self._handlers = {
            'CreateTopic': self._create_topic,
            'DeleteTopic': self._delete_topic,
            'Publish': self._publish,
            'CreateSubscription': self._create_subscription,
            'GetSubscription': self._get_subscription,
            'DeleteSubscription': self._delete_subscription,
            'ModifyPushConfig': self._modify_push_config,
            'Pull': self._pull,
            'Acknowledge': self._acknowledge,
            'ModifyAckDeadline': self._modify_ack_deadline,
            'GetIamPolicy': self._get_iam_policy,
            'SetIamPolicy': self._set_iam_policy,
            'TestIamPermissions': self._test_iam_permissions,
        }

    def handle(self, method, request):
        try:
            handler = self._handlers[method]
        except KeyError:
            raise Errors.UnimplementedError('Unknown method %s' % method)
        with self._lock:
            return copy.deepcopy(handler(copy.deepcopy(request)))

    def reset(self):
        """Drop all server state"""
        with self._lock:
            self._topics.clear()
            self._subscriptions.clear()
            self._policies.clear()

    def _check_path(self, pattern, path):
        match = pattern.match(path or '')
        if not match:
            raise Errors.InvalidArgumentError('Invalid resource path: %s' % path)
        try:
            ensure_valid_resource_name(match.group(2))
        except Errors.IllegalArgumentError as e:
            raise Errors.InvalidArgumentError(str(e.args[0]))
        return path

    def _topic(self, path):
        self._check_path(TOPIC_PATH, path)
        if path not in self._topics:
            raise Errors.NotFoundError('Topic not found: %s' % path)
        return path

    def _subscription(self, path):
        self._check_path(SUBSCRIPTION_PATH, path)
        try:
            return self._subscriptions[path]
        except KeyError:
            raise Errors.NotFoundError('Subscription not found: %s' % path)

    def _resource(self, path):
        if path in self._topics or path in self._subscriptions:
            return path
        raise Errors.NotFoundError('Resource not found: %s' % path)

    def _create_topic(self, request):
        path = self._check_path(TOPIC_PATH, request.get('name'))
        if path in self._topics:
            raise Errors.AlreadyExistsError('Topic already exists: %s' % path)
        self._topics.add(path)
        return {'name': path}

    def _delete_topic(self, request):
        path = self._topic(request.get('topic'))
        self._topics.discard(path)
        self._policies.pop(path, None)
        for state in self._subscriptions.values():
            if state.config['topic'] == path:
                state.config['topic'] = DELETED_TOPIC_NAME
        return {}

    def _publish(self, request):
        path = self._topic(request.get('topic'))
        messages = request.get('messages') or []
        if not messages:
            raise Errors.InvalidArgumentError('No messages to publish')
        now_ms = int(time.time() * 1000)
        message_ids = []
        for message_pb in messages:
            message_pb = {
                'data': message_pb.get('data', ''),
                'attributes': message_pb.get('attributes', {}),
                'messageId': str(self._next_message_id),
                'publishTime': millis_to_rfc3339(now_ms),
            }
            self._next_message_id += 1
            for state in self._subscriptions.values():
                if state.config['topic'] == path:
                    state.backlog.append(copy.deepcopy(message_pb))
            message_ids.append(message_pb['messageId'])
        return {'messageIds': message_ids}

    def _check_ack_deadline(self, seconds):
        if seconds == 0:
            return DEFAULT_ACK_DEADLINE_SECONDS
        if not MIN_ACK_DEADLINE_SECONDS <= seconds <= MAX_ACK_DEADLINE_SECONDS:
            raise Errors.InvalidArgumentError(
                'ackDeadlineSeconds must be between %s and %s, got %s' % (
                    MIN_ACK_DEADLINE_SECONDS, MAX_ACK_DEADLINE_SECONDS, seconds))
        return seconds

    def _create_subscription(self, request):
        path = self._check_path(SUBSCRIPTION_PATH, request.get('name'))
        topic = self._topic(request.get('topic'))
        if path in self._subscriptions:
            raise Errors.AlreadyExistsError('Subscription already exists: %s' % path)
        config = {
            'name': path,
            'topic': topic,
            'ackDeadlineSeconds': self._check_ack_deadline(request.get('ackDeadlineSeconds', 0)),
        }
        push_config = request.get('pushConfig')
        if push_config and push_config.get('pushEndpoint'):
            config['pushConfig'] = push_config
        self._subscriptions[path] = _SubscriptionState(config)
        return config

    def _get_subscription(self, request):
        return self._subscription(request.get('subscription')).config

    def _delete_subscription(self, request):
        path = request.get('subscription')
        self._subscription(path)
        del self._subscriptions[path]
        self._policies.pop(path, None)
        return {}

    def _modify_push_config(self, request):
        state = self._subscription(request.get('subscription'))
        push_config = request.get('pushConfig')
        if push_config and push_config.get('pushEndpoint'):
            state.config['pushConfig'] = push_config
        else:
            state.config.pop('pushConfig', None)
        return {}

    def _pull(self, request):
        state = self._subscription(request.get('subscription'))
        max_messages = request.get('maxMessages', 0)
        if max_messages <= 0:
            raise Errors.InvalidArgumentError('maxMessages must be positive')
        now = time.time()
        state.requeue_expired(now)
        received = []
        while state.backlog and len(received) < max_messages:
            message_pb = state.backlog.popleft()
            ack_id = uuid.uuid4().hex
            state.outstanding[ack_id] = (message_pb, now + state.ack_deadline_seconds)
            received.append({'ackId': ack_id, 'message': message_pb})
        return {'receivedMessages': received}

    def _ack_ids(self, request):
        ack_ids = request.get('ackIds') or []
        if not ack_ids:
            raise Errors.InvalidArgumentError('ackIds must not be empty')
        return ack_ids

    def _acknowledge(self, request):
        state = self._subscription(request.get('subscription'))
        for ack_id in self._ack_ids(request):
            state.outstanding.pop(ack_id, None)
        return {}

    def _modify_ack_deadline(self, request):
        state = self._subscription(request.get('subscription'))
        seconds = request.get('ackDeadlineSeconds', 0)
        if not 0 <= seconds <= MAX_ACK_DEADLINE_SECONDS:
            raise Errors.InvalidArgumentError(
                'ackDeadlineSeconds must be between 0 and %s, got %s' % (
                    MAX_ACK_DEADLINE_SECONDS, seconds))
        now = time.time()
        for ack_id in reversed(self._ack_ids(request)):
            if ack_id not in state.outstanding:
                continue
            message_pb, _ = state.outstanding[ack_id]
            if seconds == 0:
                del state.outstanding[ack_id]
                state.backlog.appendleft(message_pb)
            else:
                state.outstanding[ack_id] = (message_pb, now + seconds)
        return {}

    def _policy(self, resource):
        return self._policies.get(
            resource, {'version': 1, 'etag': EMPTY_POLICY_ETAG, 'bindings': []})

    def _get_iam_policy(self, request):
        return self._policy(self._resource(request.get('resource')))

    def _set_iam_policy(self, request):
        resource = self._resource(request.get('resource'))
        policy = request.get('policy') or {}
        current = self._policy(resource)
        etag = policy.get('etag')
        if etag is not None and etag != current['etag']:
            raise Errors.ConflictError(
                'Policy etag %s does not match current etag %s' % (etag, current['etag']))
        self._policies[resource] = {
            'version': policy.get('version', current['version']),
            'etag': base64.b64encode(uuid.uuid4().bytes[:8]).decode('ascii'),
            'bindings': policy.get('bindings', []),
        }
        return self._policies[resource]

    def _test_iam_permissions(self, request):
        resource = self._resource(request.get('resource'))
        known = TOPIC_PERMISSIONS if resource in self._topics else SUBSCRIPTION_PERMISSIONS
        return {'permissions': [p for p in request.get('permissions', []) if p in known]}


class LocalPubSubRpc(PubSubRpc):
    """PubSubRpc answering from the in-process emulator of options.host"""

    def __init__(self, options):
        self._host = options.host
        self._server = local_server(options.host)
        self._closed = False

    @property
    def server(self):
        return self._server

    def call(self, method, request):
        if self._closed:
            raise Errors.UnavailableError('Transport to %s is closed' % self._host)
        log.debug('Sending %s request to local emulator %s', method, self._host)
        return self._server.handle(method, request)

    def close(self):
        self._closed = True
