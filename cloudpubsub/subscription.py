import functools
import logging

from cloudpubsub.errors import IllegalArgumentError
from cloudpubsub.subscription_info import SubscriptionBuilder, SubscriptionInfo

log = logging.getLogger(__name__)


class Subscription(SubscriptionInfo):
    """A Pub/Sub subscription bound to the PubSub client that serves it.

    In a push subscription the service sends each message to the configured
    endpoint, and the endpoint's HTTP response acts as implicit ack (success)
    or nack (failure). In a pull subscription the application pulls messages
    with pull() or pull_with_callback() and acknowledges them.

    Subscription adds service operations on top of SubscriptionInfo. All of
    them delegate to the PubSub client using the subscription name; every
    synchronous operation has an _async variant returning a
    cloudpubsub.future.Future. Objects are immutable: use reload() to get a
    Subscription with the latest service-side configuration.

    Subscriptions can be pickled. The client is not part of the pickled state:
    it is obtained again from the persisted PubSubOptions on load.
    """

    def __init__(self, pubsub, topic, name, push_config=None, ack_deadline_seconds=0):
        if pubsub is None:
            raise IllegalArgumentError('pubsub must not be None')
        super(Subscription, self).__init__(topic, name, push_config, ack_deadline_seconds)
        self._pubsub = pubsub
        self._options = pubsub.options

    @classmethod
    def builder(cls, pubsub, topic, name):
        return SubscriptionBuilder(functools.partial(cls, pubsub), topic, name)

    def to_builder(self):
        return SubscriptionBuilder(functools.partial(Subscription, self._pubsub),
                                   self.topic, self.name, self.push_config,
                                   self.ack_deadline_seconds)

    def __eq__(self, other):
        if self is other:
            return True
        if type(other) is not Subscription:
            return False
        return self._base_equals(other) and self._options == other._options

    def __hash__(self):
        return hash((self._options, super(Subscription, self).__hash__()))

    @property
    def pubsub(self):
        """The PubSub client used to issue requests"""
        return self._pubsub

    def delete(self):
        """Delete this subscription.

        Returns:
            bool: True if the subscription was deleted, False if not found

        Raises:
            PubSubError: upon failure
        """
        return self._pubsub.delete_subscription(self.name)

    def delete_async(self):
        """Delete this subscription; the future's value is True if the
        subscription was deleted, False if it was not found."""
        return self._pubsub.delete_subscription_async(self.name)

    def reload(self):
        """Fetch this subscription's latest configuration.

        Returns:
            Subscription with the latest information, or None if not found
        """
        return self._pubsub.get_subscription(self.name)

    def reload_async(self):
        return self._pubsub.get_subscription_async(self.name)

    def replace_push_config(self, push_config):
        """Set the push configuration of this subscription.

        Pass None to turn a push subscription into a pull subscription, or a
        PushConfig to turn a pull subscription into a push one (or to change
        the endpoint of a push subscription). Messages accumulate for
        delivery regardless of push configuration changes.

        Raises:
            PubSubError: upon failure, or if the subscription does not exist
        """
        self._pubsub.replace_push_config(self.name, push_config)

    def replace_push_config_async(self, push_config):
        return self._pubsub.replace_push_config_async(self.name, push_config)

    def pull(self, max_messages):
        """Pull at most max_messages messages from this subscription.

        Returns immediately with the messages available when the request was
        processed, possibly none. Each message's ack deadline is renewed
        until it is acked or nacked:

            for message in subscription.pull(100):
                process(message)
                message.ack()

        Arguments:
            max_messages (int): maximum number of messages returned

        Returns:
            iterator of ReceivedMessage
        """
        return self._pubsub.pull(self.name, max_messages)

    def pull_async(self, max_messages):
        return self._pubsub.pull_async(self.name, max_messages)

    def pull_with_callback(self, callback, **options):
        """Continuously pull messages, running callback(message) on each one.

        A message is acked when callback returns and nacked when it raises.
        Ack deadlines are renewed while callbacks run. Stop pulling with
        MessageConsumer.close().

        Keyword Arguments:
            max_queued_callbacks (int): maximum number of messages being
                processed or waiting to be processed. Default: 100.
            executor (concurrent.futures.Executor): executor running the
                callbacks. Default: a pool owned by the consumer.

        Returns:
            MessageConsumer
        """
        return self._pubsub.pull_with_callback(self.name, callback, **options)

    def get_policy(self):
        """Return the IAM policy of this subscription, or None if the
        subscription was not found."""
        return self._pubsub.get_subscription_policy(self.name)

    def get_policy_async(self):
        return self._pubsub.get_subscription_policy_async(self.name)

    def replace_policy(self, new_policy):
        """Replace the IAM policy of this subscription and return the new one.

        If new_policy carries an etag the write only succeeds if the etag
        matches the service-side policy, otherwise ConflictError is raised.
        Without etag the policy is overwritten unconditionally.
        """
        return self._pubsub.replace_subscription_policy(self.name, new_policy)

    def replace_policy_async(self, new_policy):
        return self._pubsub.replace_subscription_policy_async(self.name, new_policy)

    def test_permissions(self, permissions):
        """Test which of permissions the caller has on this subscription.

        Arguments:
            permissions (list of str): e.g. ['pubsub.subscriptions.get']

        Returns:
            list of bool, in the order of permissions
        """
        return self._pubsub.test_subscription_permissions(self.name, permissions)

    def test_permissions_async(self, permissions):
        return self._pubsub.test_subscription_permissions_async(self.name, permissions)

    def __getstate__(self):
        state = self.__dict__.copy()
        del state['_pubsub']
        return state

    def __setstate__(self, state):
        self.__dict__.update(state)
        log.debug('Restoring PubSub client of subscription %s from options', self.name)
        self._pubsub = self._options.service()

    @classmethod
    def from_pb(cls, pubsub, subscription_pb):
        return cls(pubsub, *SubscriptionInfo._fields_from_pb(subscription_pb))

    @classmethod
    def from_pb_function(cls, pubsub):
        def _from_pb(subscription_pb):
            if subscription_pb is None:
                return None
            return cls.from_pb(pubsub, subscription_pb)
        return _from_pb
