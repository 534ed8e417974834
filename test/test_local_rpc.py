import pytest

import cloudpubsub.errors as Errors
from cloudpubsub.rpc.local import EMPTY_POLICY_ETAG, LocalPubSubRpc, LocalPubSubServer, local_server


TOPIC = 'projects/project/topics/topic'
SUBSCRIPTION = 'projects/project/subscriptions/subscription'


@pytest.fixture
def server():
    server = LocalPubSubServer('test:0')
    server.handle('CreateTopic', {'name': TOPIC})
    server.handle('CreateSubscription', {'name': SUBSCRIPTION, 'topic': TOPIC})
    return server


def _pull(server, max_messages=10):
    return server.handle('Pull', {'subscription': SUBSCRIPTION, 'maxMessages': max_messages})['receivedMessages']


def test_servers_are_shared_per_host(options):
    assert local_server(options.host) is local_server(options.host)
    rpc = LocalPubSubRpc(options)
    assert rpc.server is local_server(options.host)
    rpc.close()
    with pytest.raises(Errors.UnavailableError):
        rpc.call('GetSubscription', {'subscription': SUBSCRIPTION})


def test_default_ack_deadline(server):
    assert server.handle('GetSubscription', {'subscription': SUBSCRIPTION})['ackDeadlineSeconds'] == 10


def test_publish_fans_out(server):
    other = 'projects/project/subscriptions/other'
    server.handle('CreateSubscription', {'name': other, 'topic': TOPIC, 'ackDeadlineSeconds': 600})
    response = server.handle('Publish', {'topic': TOPIC, 'messages': [{'data': 'YQ=='}, {'data': 'Yg=='}]})
    assert response == {'messageIds': ['1', '2']}

    assert [m['message']['data'] for m in _pull(server)] == ['YQ==', 'Yg==']
    received = server.handle('Pull', {'subscription': other, 'maxMessages': 1})['receivedMessages']
    assert [m['message']['messageId'] for m in received] == ['1']

    with pytest.raises(Errors.InvalidArgumentError):
        server.handle('Publish', {'topic': TOPIC, 'messages': []})
    with pytest.raises(Errors.NotFoundError):
        server.handle('Publish', {'topic': 'projects/project/topics/missing', 'messages': [{'data': ''}]})


def test_expired_messages_are_redelivered(server, mocker):
    now = mocker.patch('cloudpubsub.rpc.local.time.time', return_value=1000.0)
    server.handle('Publish', {'topic': TOPIC, 'messages': [{'data': 'YQ=='}]})
    first = _pull(server)
    assert len(first) == 1
    assert _pull(server) == []

    now.return_value = 1010.0
    second = _pull(server)
    assert [m['message']['messageId'] for m in second] == [first[0]['message']['messageId']]

    # acking the expired delivery has no effect
    server.handle('Acknowledge', {'subscription': SUBSCRIPTION, 'ackIds': [first[0]['ackId']]})
    now.return_value = 1020.0
    assert len(_pull(server)) == 1


def test_modify_ack_deadline_extends(server, mocker):
    now = mocker.patch('cloudpubsub.rpc.local.time.time', return_value=1000.0)
    server.handle('Publish', {'topic': TOPIC, 'messages': [{'data': 'YQ=='}]})
    ack_id = _pull(server)[0]['ackId']
    now.return_value = 1005.0
    server.handle('ModifyAckDeadline', {'subscription': SUBSCRIPTION, 'ackIds': [ack_id],
                                        'ackDeadlineSeconds': 30})
    now.return_value = 1020.0
    assert _pull(server) == []
    now.return_value = 1036.0
    assert len(_pull(server)) == 1


def test_set_iam_policy(server):
    policy = server.handle('GetIamPolicy', {'resource': SUBSCRIPTION})
    assert policy['etag'] == EMPTY_POLICY_ETAG

    bindings = [{'role': 'roles/viewer', 'members': ['allUsers']}]
    updated = server.handle('SetIamPolicy', {'resource': SUBSCRIPTION,
                                             'policy': {'etag': policy['etag'], 'bindings': bindings}})
    assert updated['etag'] != policy['etag']
    assert updated['bindings'] == bindings

    with pytest.raises(Errors.ConflictError):
        server.handle('SetIamPolicy', {'resource': SUBSCRIPTION,
                                       'policy': {'etag': policy['etag'], 'bindings': []}})
    blind = server.handle('SetIamPolicy', {'resource': SUBSCRIPTION, 'policy': {'bindings': []}})
    assert blind['bindings'] == []


def test_test_iam_permissions(server):
    response = server.handle('TestIamPermissions', {
        'resource': TOPIC,
        'permissions': ['pubsub.topics.publish', 'pubsub.subscriptions.consume'],
    })
    assert response == {'permissions': ['pubsub.topics.publish']}


def test_delete_subscription_drops_policy(server):
    server.handle('SetIamPolicy', {'resource': SUBSCRIPTION, 'policy': {'bindings': []}})
    server.handle('DeleteSubscription', {'subscription': SUBSCRIPTION})
    with pytest.raises(Errors.NotFoundError):
        server.handle('GetIamPolicy', {'resource': SUBSCRIPTION})
    server.handle('CreateSubscription', {'name': SUBSCRIPTION, 'topic': TOPIC})
    assert server.handle('GetIamPolicy', {'resource': SUBSCRIPTION})['etag'] == EMPTY_POLICY_ETAG


@pytest.mark.parametrize('method, request_', [
    ('CreateTopic', {'name': 'topics/topic'}),
    ('CreateTopic', {'name': 'projects/project/topics/goog-topic'}),
    ('GetSubscription', {'subscription': 'projects/project/subscriptions/a'}),
    ('Pull', {'subscription': SUBSCRIPTION, 'maxMessages': 0}),
    ('Acknowledge', {'subscription': SUBSCRIPTION, 'ackIds': []}),
    ('CreateSubscription', {'name': 'projects/project/subscriptions/other', 'topic': TOPIC,
                            'ackDeadlineSeconds': 601}),
])
def test_invalid_arguments(server, method, request_):
    with pytest.raises(Errors.InvalidArgumentError):
        server.handle(method, request_)


def test_unknown_method(server):
    with pytest.raises(Errors.UnimplementedError):
        server.handle('Seek', {})


def test_responses_are_copies(server):
    config = server.handle('GetSubscription', {'subscription': SUBSCRIPTION})
    config['ackDeadlineSeconds'] = 600
    assert server.handle('GetSubscription', {'subscription': SUBSCRIPTION})['ackDeadlineSeconds'] == 10

    server.reset()
    with pytest.raises(Errors.NotFoundError):
        server.handle('GetSubscription', {'subscription': SUBSCRIPTION})
