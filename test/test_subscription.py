import pickle
from unittest import mock

import pytest

from cloudpubsub.errors import ConflictError, IllegalArgumentError, NotFoundError
from cloudpubsub.iam import Identity, Policy, Role
from cloudpubsub.options import PubSubOptions
from cloudpubsub.structs import PushConfig, TopicId
from cloudpubsub.subscription import Subscription
from cloudpubsub.subscription_info import SubscriptionInfo


ENDPOINT = 'https://example.com/push'


@pytest.fixture
def handle(mock_pubsub):
    return (Subscription.builder(mock_pubsub, TopicId.of('topic', 'project'), 'subscription')
            .push_config(PushConfig.of(ENDPOINT))
            .ack_deadline_seconds(42)
            .build())


def test_builder(handle, mock_pubsub):
    assert handle.topic == TopicId('project', 'topic')
    assert handle.name == 'subscription'
    assert handle.push_config == PushConfig.of(ENDPOINT)
    assert handle.ack_deadline_seconds == 42
    assert handle.pubsub is mock_pubsub


def test_to_builder_round_trip(handle):
    assert handle.to_builder().build() == handle
    assert hash(handle.to_builder().build()) == hash(handle)


def test_to_builder_does_not_modify_handle(handle):
    builder = handle.to_builder()
    other = builder.name('other-subscription').topic('other-topic').build()
    builder.push_config(None).ack_deadline_seconds(10)

    assert other.name == 'other-subscription'
    assert other.topic == TopicId(None, 'other-topic')
    assert other.push_config == PushConfig.of(ENDPOINT)
    assert handle.name == 'subscription'
    assert handle.topic == TopicId('project', 'topic')
    assert handle.ack_deadline_seconds == 42


def test_requires_pubsub():
    with pytest.raises(IllegalArgumentError):
        Subscription(None, 'topic', 'subscription')


@pytest.mark.parametrize('change', [
    lambda b: b.name('other-subscription'),
    lambda b: b.topic('other-topic'),
    lambda b: b.push_config(None),
    lambda b: b.ack_deadline_seconds(10),
])
def test_not_equal_on_field_change(handle, change):
    assert change(handle.to_builder()).build() != handle


def test_equality_uses_options(handle, mocker):
    from cloudpubsub.client import PubSub

    other_pubsub = mocker.MagicMock(spec=PubSub)
    other_pubsub.options = PubSubOptions(**handle.pubsub.options.config)
    same = Subscription(other_pubsub, handle.topic, handle.name,
                        handle.push_config, handle.ack_deadline_seconds)
    assert same == handle
    assert hash(same) == hash(handle)

    other_pubsub.options = PubSubOptions(project_id='other-project')
    different = Subscription(other_pubsub, handle.topic, handle.name,
                             handle.push_config, handle.ack_deadline_seconds)
    assert different != handle


def test_not_equal_to_subscription_info(handle):
    info = SubscriptionInfo(handle.topic, handle.name, handle.push_config,
                            handle.ack_deadline_seconds)
    assert handle != info
    assert info != handle


def test_delete(handle, mock_pubsub):
    mock_pubsub.delete_subscription.return_value = True
    assert handle.delete() is True
    mock_pubsub.delete_subscription.assert_called_once_with('subscription')

    mock_pubsub.delete_subscription.return_value = False
    assert handle.delete() is False


def test_delete_async(handle, mock_pubsub):
    assert handle.delete_async() is mock_pubsub.delete_subscription_async.return_value
    mock_pubsub.delete_subscription_async.assert_called_once_with('subscription')


def test_reload(handle, mock_pubsub):
    latest = handle.to_builder().ack_deadline_seconds(60).build()
    mock_pubsub.get_subscription.return_value = latest
    assert handle.reload() is latest
    assert handle.ack_deadline_seconds == 42
    mock_pubsub.get_subscription.assert_called_once_with('subscription')

    mock_pubsub.get_subscription.return_value = None
    assert handle.reload() is None


def test_reload_async(handle, mock_pubsub):
    assert handle.reload_async() is mock_pubsub.get_subscription_async.return_value
    mock_pubsub.get_subscription_async.assert_called_once_with('subscription')


def test_replace_push_config(handle, mock_pubsub):
    push_config = PushConfig.of('https://example.com/other')
    handle.replace_push_config(push_config)
    handle.replace_push_config(None)
    assert mock_pubsub.replace_push_config.call_args_list == [
        mock.call('subscription', push_config), mock.call('subscription', None)]

    handle.replace_push_config_async(None)
    mock_pubsub.replace_push_config_async.assert_called_once_with('subscription', None)


def test_pull(handle, mock_pubsub):
    assert handle.pull(100) is mock_pubsub.pull.return_value
    mock_pubsub.pull.assert_called_once_with('subscription', 100)

    assert handle.pull_async(10) is mock_pubsub.pull_async.return_value
    mock_pubsub.pull_async.assert_called_once_with('subscription', 10)


def test_pull_with_callback(handle, mock_pubsub):
    callback = lambda message: None
    consumer = handle.pull_with_callback(callback, max_queued_callbacks=5)
    assert consumer is mock_pubsub.pull_with_callback.return_value
    mock_pubsub.pull_with_callback.assert_called_once_with(
        'subscription', callback, max_queued_callbacks=5)


def test_policy_operations(handle, mock_pubsub):
    policy = Policy({Role.viewer(): [Identity.all_users()]}, etag='etag')
    mock_pubsub.get_subscription_policy.return_value = policy
    mock_pubsub.replace_subscription_policy.return_value = policy.with_etag('new')

    assert handle.get_policy() is policy
    assert handle.replace_policy(policy) == policy.with_etag('new')
    mock_pubsub.get_subscription_policy.assert_called_once_with('subscription')
    mock_pubsub.replace_subscription_policy.assert_called_once_with('subscription', policy)

    handle.get_policy_async()
    handle.replace_policy_async(policy)
    mock_pubsub.get_subscription_policy_async.assert_called_once_with('subscription')
    mock_pubsub.replace_subscription_policy_async.assert_called_once_with('subscription', policy)


def test_test_permissions(handle, mock_pubsub):
    permissions = ['pubsub.subscriptions.get', 'pubsub.subscriptions.consume']
    mock_pubsub.test_subscription_permissions.return_value = [True, False]
    assert handle.test_permissions(permissions) == [True, False]
    mock_pubsub.test_subscription_permissions.assert_called_once_with('subscription', permissions)

    handle.test_permissions_async(permissions)
    mock_pubsub.test_subscription_permissions_async.assert_called_once_with(
        'subscription', permissions)


def test_errors_propagate(handle, mock_pubsub):
    mock_pubsub.replace_push_config.side_effect = NotFoundError('gone')
    with pytest.raises(NotFoundError):
        handle.replace_push_config(None)


def test_from_pb(mock_pubsub):
    subscription_pb = {
        'name': 'projects/project/subscriptions/subscription',
        'topic': 'projects/project/topics/topic',
        'pushConfig': {'pushEndpoint': ENDPOINT, 'attributes': {}},
        'ackDeadlineSeconds': 42,
    }
    handle = Subscription.from_pb(mock_pubsub, subscription_pb)
    assert isinstance(handle, Subscription)
    assert handle == Subscription(mock_pubsub, TopicId('project', 'topic'), 'subscription',
                                  PushConfig.of(ENDPOINT), 42)

    from_pb = Subscription.from_pb_function(mock_pubsub)
    assert from_pb(None) is None
    assert from_pb(subscription_pb) == handle


class TestWithEmulator(object):

    def test_pull_zero(self, subscription):
        assert list(subscription.pull(0)) == []

    def test_reload_and_delete(self, subscription):
        assert subscription.reload() == subscription
        assert subscription.delete() is True
        assert subscription.reload() is None
        assert subscription.delete() is False
        assert subscription.get_policy() is None

    def test_async_reload(self, subscription):
        assert subscription.reload_async().get(5) == subscription

    def test_replace_push_config(self, subscription):
        subscription.replace_push_config(PushConfig.of(ENDPOINT))
        assert subscription.reload().push_config == PushConfig.of(ENDPOINT)
        assert subscription.push_config is None
        subscription.replace_push_config_async(None).get(5)
        assert subscription.reload().push_config is None

    def test_replace_policy_with_stale_etag(self, subscription):
        policy = subscription.get_policy()
        updated = subscription.replace_policy(
            policy.add_identity(Role.viewer(), Identity.all_authenticated_users()))
        assert updated.etag != policy.etag
        assert updated.identities(Role.viewer()) == frozenset([Identity.all_authenticated_users()])

        with pytest.raises(ConflictError):
            subscription.replace_policy(policy.add_identity(Role.owner(), Identity.user('a@example.com')))
        future = subscription.replace_policy_async(policy)
        with pytest.raises(ConflictError):
            future.get(5)
        assert future.failed()

    def test_replace_policy_without_etag(self, subscription):
        subscription.replace_policy(Policy({Role.editor(): [Identity.group('g@example.com')]}))
        overwritten = subscription.replace_policy(
            Policy({Role.viewer(): [Identity.domain('example.com')]}))
        assert overwritten.bindings == {Role.viewer(): frozenset([Identity.domain('example.com')])}
        assert subscription.get_policy() == overwritten

    def test_test_permissions_preserves_order(self, subscription):
        permissions = ['pubsub.topics.publish', 'pubsub.subscriptions.get',
                       'pubsub.subscriptions.consume', 'unknown.permission']
        assert subscription.test_permissions(permissions) == [False, True, True, False]
        assert subscription.test_permissions_async(permissions[:2]).get(5) == [False, True]

    def test_pickle(self, subscription, pubsub):
        restored = pickle.loads(pickle.dumps(subscription))
        assert restored == subscription
        assert restored.pubsub is pubsub
        assert restored.reload() == subscription
        assert list(restored.pull(0)) == []
        assert restored.delete() is True
        assert subscription.reload() is None

    def test_pickled_handles_share_client(self, subscription, pubsub):
        first, second = pickle.loads(pickle.dumps([subscription, subscription.to_builder().build()]))
        other = pickle.loads(pickle.dumps(subscription))
        assert first.pubsub is second.pubsub is other.pubsub is pubsub

        pubsub.close()
        reopened = pickle.loads(pickle.dumps(subscription))
        try:
            assert reopened.pubsub is not pubsub
            assert not reopened.pubsub.closed
            assert reopened.reload() == subscription
        finally:
            reopened.pubsub.close()
