import concurrent.futures
import logging
import threading

import cloudpubsub.errors as Errors
from cloudpubsub.consumer import MessageConsumer
from cloudpubsub.future import Future
from cloudpubsub.iam import Policy
from cloudpubsub.message import Message, ReceivedMessage
from cloudpubsub.renewer import AckDeadlineRenewer
from cloudpubsub.structs import TopicId
from cloudpubsub.subscription import Subscription
from cloudpubsub.util import format_subscription_name, format_topic_name

log = logging.getLogger(__name__)


_RAISE = object()


class PubSub(object):
    """Client for the Pub/Sub service.

    Every operation comes in two forms: a synchronous one that blocks until
    the service responded (at most request_timeout_ms) and raises on failure,
    and an _async one that returns a cloudpubsub.future.Future right away.
    Futures complete on the client's executor threads; failures are
    delivered through the future's errback / get().

    Operations on a topic or subscription that does not exist return None
    (reads) or False (deletes) instead of raising NotFoundError, where noted.

    Use PubSubOptions(...).service() to obtain a client. Close it with
    close(), or use it as a context manager.
    """

    def __init__(self, options):
        self._options = options
        self._rpc = options.rpc()
        self._executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=options.config['executor_threads'],
            thread_name_prefix='pubsub-' + options.project_id)
        self._renewer = AckDeadlineRenewer(
            self._renew_ack_deadline,
            min_deadline_seconds=options.config['min_ack_deadline_seconds'],
            renewal_threshold_ms=options.config['ack_renewal_threshold_ms'])
        self._consumers = []
        self._lock = threading.Lock()
        self._closing = False
        self._closed = False

    @property
    def options(self):
        return self._options

    @property
    def renewer(self):
        return self._renewer

    @property
    def closed(self):
        """True once close() was called"""
        return self._closing

    def _topic_path(self, topic):
        if isinstance(topic, TopicId):
            return topic.to_pb(self._options.project_id)
        return format_topic_name(self._options.project_id, topic)

    def _subscription_path(self, subscription):
        return format_subscription_name(self._options.project_id, subscription)

    def _send(self, method, request):
        future = Future()
        if self._closed:
            return future.failure(Errors.IllegalStateError('PubSub client is closed'))
        try:
            self._executor.submit(self._dispatch, method, request, future)
        except RuntimeError:
            # executor shut down by a concurrent close()
            return future.failure(Errors.IllegalStateError('PubSub client is closed'))
        return future

    def _dispatch(self, method, request, future):
        try:
            response = self._rpc.call(method, request)
        except Errors.PubSubError as e:
            log.debug('%s request failed: %s', method, e)
            future.failure(e)
        except Exception as e:
            log.exception('Unexpected error sending %s request', method)
            error = Errors.UnknownError('%s: %s' % (type(e).__name__, e))
            error.__cause__ = e
            future.failure(error)
        else:
            future.success(response)

    def _transform(self, future, fn, not_found=_RAISE):
        """Return a future completing with fn(response).

        If not_found is given, NotFoundError completes the returned future
        with not_found instead of failing it.
        """
        result = Future()

        def _on_success(response):
            try:
                value = fn(response)
            except Errors.PubSubError as e:
                result.failure(e)
            except Exception as e:
                log.exception('Unexpected response: %s', response)
                error = Errors.UnknownError('%s: %s' % (type(e).__name__, e))
                error.__cause__ = e
                result.failure(error)
            else:
                result.success(value)

        def _on_failure(error):
            if not_found is not _RAISE and isinstance(error, Errors.NotFoundError):
                result.success(not_found)
            else:
                result.failure(error)

        future.add_callback(_on_success)
        future.add_errback(_on_failure)
        return result

    def _get(self, future):
        return future.get(self._options.config['request_timeout_ms'] / 1000)

    # Topics

    def create_topic(self, topic):
        """Create a topic.

        Arguments:
            topic (str or TopicId): the topic to create

        Returns:
            TopicId of the created topic

        Raises:
            AlreadyExistsError: if the topic exists
        """
        return self._get(self.create_topic_async(topic))

    def create_topic_async(self, topic):
        future = self._send('CreateTopic', {'name': self._topic_path(topic)})
        return self._transform(future, lambda response: TopicId.from_pb(response['name']))

    def delete_topic(self, topic):
        """Delete a topic. Returns True if deleted, False if not found.

        Subscriptions of the topic are kept, pointing to
        TopicId.deleted_topic().
        """
        return self._get(self.delete_topic_async(topic))

    def delete_topic_async(self, topic):
        future = self._send('DeleteTopic', {'topic': self._topic_path(topic)})
        return self._transform(future, lambda response: True, not_found=False)

    def publish(self, topic, *messages):
        """Publish messages (Message, bytes or str) to topic.

        Returns:
            list of service-assigned message ids, in order
        """
        return self._get(self.publish_async(topic, *messages))

    def publish_async(self, topic, *messages):
        messages = [m if isinstance(m, Message) else Message(m) for m in messages]
        request = {
            'topic': self._topic_path(topic),
            'messages': [message.to_pb() for message in messages],
        }
        future = self._send('Publish', request)
        return self._transform(future, lambda response: list(response['messageIds']))

    # Subscriptions

    def create_subscription(self, subscription_info):
        """Create a subscription from a SubscriptionInfo.

        Returns:
            Subscription as created by the service
        """
        return self._get(self.create_subscription_async(subscription_info))

    def create_subscription_async(self, subscription_info):
        future = self._send('CreateSubscription',
                            subscription_info.to_pb(self._options.project_id))
        return self._transform(future, Subscription.from_pb_function(self))

    def get_subscription(self, subscription):
        """Return the Subscription named subscription, or None if not found"""
        return self._get(self.get_subscription_async(subscription))

    def get_subscription_async(self, subscription):
        future = self._send('GetSubscription',
                            {'subscription': self._subscription_path(subscription)})
        return self._transform(future, Subscription.from_pb_function(self), not_found=None)

    def delete_subscription(self, subscription):
        """Delete a subscription. Returns True if deleted, False if not found."""
        return self._get(self.delete_subscription_async(subscription))

    def delete_subscription_async(self, subscription):
        future = self._send('DeleteSubscription',
                            {'subscription': self._subscription_path(subscription)})
        return self._transform(future, lambda response: True, not_found=False)

    def replace_push_config(self, subscription, push_config):
        """Set the PushConfig of a subscription; None makes it a pull
        subscription.

        Raises:
            NotFoundError: if the subscription does not exist
        """
        return self._get(self.replace_push_config_async(subscription, push_config))

    def replace_push_config_async(self, subscription, push_config):
        request = {
            'subscription': self._subscription_path(subscription),
            'pushConfig': push_config.to_pb() if push_config is not None else {},
        }
        future = self._send('ModifyPushConfig', request)
        return self._transform(future, lambda response: None)

    # Message delivery

    def pull(self, subscription, max_messages):
        """Pull at most max_messages messages without waiting for messages
        to become available.

        The ack deadline of each returned message is renewed until the
        message is acked, nacked or its deadline is modified.

        Returns:
            iterator of ReceivedMessage
        """
        return self._get(self.pull_async(subscription, max_messages))

    def pull_async(self, subscription, max_messages):
        if max_messages < 0:
            return Future().failure(Errors.IllegalArgumentError(
                'max_messages must not be negative, got %s' % max_messages))
        if max_messages == 0:
            return Future().success(iter(()))
        request = {
            'subscription': self._subscription_path(subscription),
            'maxMessages': max_messages,
            'returnImmediately': True,
        }
        future = self._send('Pull', request)
        return self._transform(future, lambda response: self._received(subscription, response))

    def _received(self, subscription, response):
        messages = [ReceivedMessage.from_pb(self, subscription, received_pb)
                    for received_pb in response.get('receivedMessages', [])]
        if messages:
            log.debug('Pulled %d messages from %s', len(messages), subscription)
            self._renewer.add(subscription, *[message.ack_id for message in messages])
        return iter(messages)

    def pull_with_callback(self, subscription, callback, **options):
        """Start a MessageConsumer running callback on each message pulled
        from subscription. See MessageConsumer for options."""
        consumer = MessageConsumer(self, subscription, callback, **options)
        with self._lock:
            if self._closing:
                raise Errors.IllegalStateError('PubSub client is closed')
            self._consumers = [c for c in self._consumers if not c.closed]
            self._consumers.append(consumer)
        return consumer.start()

    def ack(self, subscription, *ack_ids):
        """Acknowledge messages by ack id"""
        return self._get(self.ack_async(subscription, *ack_ids))

    def ack_async(self, subscription, *ack_ids):
        self._renewer.remove(subscription, *ack_ids)
        request = {
            'subscription': self._subscription_path(subscription),
            'ackIds': list(ack_ids),
        }
        future = self._send('Acknowledge', request)
        return self._transform(future, lambda response: None)

    def nack(self, subscription, *ack_ids):
        """Make messages available for redelivery right away"""
        return self._get(self.nack_async(subscription, *ack_ids))

    def nack_async(self, subscription, *ack_ids):
        return self.modify_ack_deadline_async(subscription, 0, *ack_ids)

    def modify_ack_deadline(self, subscription, deadline_seconds, *ack_ids):
        """Set the ack deadline of messages to deadline_seconds from now and
        stop renewing it automatically."""
        return self._get(self.modify_ack_deadline_async(subscription, deadline_seconds, *ack_ids))

    def modify_ack_deadline_async(self, subscription, deadline_seconds, *ack_ids):
        self._renewer.remove(subscription, *ack_ids)
        return self._renew_ack_deadline(subscription, deadline_seconds, ack_ids)

    def _renew_ack_deadline(self, subscription, deadline_seconds, ack_ids):
        request = {
            'subscription': self._subscription_path(subscription),
            'ackDeadlineSeconds': deadline_seconds,
            'ackIds': list(ack_ids),
        }
        future = self._send('ModifyAckDeadline', request)
        return self._transform(future, lambda response: None)

    # IAM

    def get_subscription_policy(self, subscription):
        """Return the IAM Policy of subscription, or None if not found"""
        return self._get(self.get_subscription_policy_async(subscription))

    def get_subscription_policy_async(self, subscription):
        future = self._send('GetIamPolicy',
                            {'resource': self._subscription_path(subscription)})
        return self._transform(future, Policy.from_pb, not_found=None)

    def replace_subscription_policy(self, subscription, policy):
        """Replace the IAM Policy of subscription and return the new policy.

        Raises:
            ConflictError: if policy has an etag that does not match the
                current policy's etag
        """
        return self._get(self.replace_subscription_policy_async(subscription, policy))

    def replace_subscription_policy_async(self, subscription, policy):
        request = {
            'resource': self._subscription_path(subscription),
            'policy': policy.to_pb(),
        }
        future = self._send('SetIamPolicy', request)
        return self._transform(future, Policy.from_pb)

    def test_subscription_permissions(self, subscription, permissions):
        """Return, for each permission in order, whether the caller has it
        on subscription."""
        return self._get(self.test_subscription_permissions_async(subscription, permissions))

    def test_subscription_permissions_async(self, subscription, permissions):
        permissions = list(permissions)
        request = {
            'resource': self._subscription_path(subscription),
            'permissions': permissions,
        }
        future = self._send('TestIamPermissions', request)

        def _as_booleans(response):
            granted = set(response.get('permissions', []))
            return [permission in granted for permission in permissions]
        return self._transform(future, _as_booleans)

    def close(self):
        """Close consumers, stop ack deadline renewal and release the
        transport. Pending asynchronous requests are completed first."""
        with self._lock:
            if self._closing:
                return
            self._closing = True
            consumers, self._consumers = self._consumers, []
        log.debug('Closing PubSub client for project %s', self._options.project_id)
        # consumers ack/nack their in-flight messages while draining
        for consumer in consumers:
            consumer.close()
        with self._lock:
            self._closed = True
        self._renewer.close()
        self._executor.shutdown(wait=True)
        self._rpc.close()
        log.debug('PubSub client closed')

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()
