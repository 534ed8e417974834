"""PubSubRpc reaching the Pub/Sub service through google-cloud-pubsub.

Requests and responses keep the JSON shape of the v1 API: request dicts are
parsed into the library's request messages, response messages are rendered
back with protobuf's JSON mapping (camelCase names, base64 bytes, RFC 3339
timestamps). Errors raised by google-api-core are translated into the
ServiceError of the same status code.
"""
import base64
import concurrent.futures
import logging
import os

import proto
from google.api_core import exceptions as google_exceptions
from google.cloud import pubsub_v1
from google.iam.v1 import iam_policy_pb2
from google.protobuf import json_format
from google.pubsub_v1 import types as pubsub_types

import cloudpubsub.errors as Errors
from cloudpubsub.rpc.abstract import PubSubRpc

log = logging.getLogger(__name__)


EMULATOR_HOST_ENV_NAME = 'PUBSUB_EMULATOR_HOST'

# method: (client, client method, request type)
_CALLS = {
    'CreateTopic': ('publisher', 'create_topic', pubsub_types.Topic),
    'DeleteTopic': ('publisher', 'delete_topic', pubsub_types.DeleteTopicRequest),
    'CreateSubscription': ('subscriber', 'create_subscription', pubsub_types.Subscription),
    'GetSubscription': ('subscriber', 'get_subscription', pubsub_types.GetSubscriptionRequest),
    'DeleteSubscription': ('subscriber', 'delete_subscription', pubsub_types.DeleteSubscriptionRequest),
    'ModifyPushConfig': ('subscriber', 'modify_push_config', pubsub_types.ModifyPushConfigRequest),
    'Pull': ('subscriber', 'pull', pubsub_types.PullRequest),
    'Acknowledge': ('subscriber', 'acknowledge', pubsub_types.AcknowledgeRequest),
    'ModifyAckDeadline': ('subscriber', 'modify_ack_deadline', pubsub_types.ModifyAckDeadlineRequest),
    'GetIamPolicy': ('subscriber', 'get_iam_policy', iam_policy_pb2.GetIamPolicyRequest),
    'SetIamPolicy': ('subscriber', 'set_iam_policy', iam_policy_pb2.SetIamPolicyRequest),
    'TestIamPermissions': ('subscriber', 'test_iam_permissions', iam_policy_pb2.TestIamPermissionsRequest),
}


def to_request(request_type, request):
    """Parse a JSON-shaped request dict into a message of request_type"""
    if issubclass(request_type, proto.Message):
        message_pb = json_format.ParseDict(request, request_type.pb()(), ignore_unknown_fields=True)
        return request_type.wrap(message_pb)
    return json_format.ParseDict(request, request_type(), ignore_unknown_fields=True)


def to_dict(response):
    """Render a response message as a JSON-shaped dict"""
    if response is None:
        return {}
    if isinstance(response, proto.Message):
        response = type(response).pb(response)
    return json_format.MessageToDict(response)


def to_service_error(error):
    """Translate a google-api-core error into the matching ServiceError"""
    status = error.grpc_status_code
    code = status.value[0] if status is not None else Errors.UnknownError.code
    return Errors.for_code(code)(error.message)


class CloudPubSubRpc(PubSubRpc):
    """PubSubRpc backed by google.cloud.pubsub_v1 clients.

    When options.host is the PUBSUB_EMULATOR_HOST the library connects to the
    emulator itself; any other host is used as the API endpoint, e.g.
    'pubsub.googleapis.com:443'. Credentials are resolved by google-auth.
    """

    def __init__(self, options):
        self._host = options.host
        self._timeout = options.config['request_timeout_ms'] / 1000
        client_configs = {}
        if os.environ.get(EMULATOR_HOST_ENV_NAME) != options.host:
            client_configs['client_options'] = {'api_endpoint': options.host}
        self._clients = {
            'publisher': pubsub_v1.PublisherClient(**client_configs),
            'subscriber': pubsub_v1.SubscriberClient(**client_configs),
        }
        self._closed = False

    def call(self, method, request):
        if self._closed:
            raise Errors.UnavailableError('Transport to %s is closed' % self._host)
        log.debug('Sending %s request to %s', method, self._host)
        try:
            if method == 'Publish':
                return self._publish(request)
            try:
                client, client_method, request_type = _CALLS[method]
            except KeyError:
                raise Errors.UnimplementedError('Unknown method %s' % method)
            send = getattr(self._clients[client], client_method)
            return to_dict(send(request=to_request(request_type, request), timeout=self._timeout))
        except google_exceptions.GoogleAPICallError as e:
            raise to_service_error(e) from e
        except (google_exceptions.RetryError, concurrent.futures.TimeoutError) as e:
            raise Errors.DeadlineExceededError(str(e)) from e

    def _publish(self, request):
        publisher = self._clients['publisher']
        futures = [
            publisher.publish(request['topic'], base64.b64decode(message_pb.get('data', '')),
                              **message_pb.get('attributes', {}))
            for message_pb in request.get('messages', [])
        ]
        return {'messageIds': [future.result(timeout=self._timeout) for future in futures]}

    def close(self):
        if self._closed:
            return
        self._closed = True
        self._clients['publisher'].stop()
        self._clients['subscriber'].close()
