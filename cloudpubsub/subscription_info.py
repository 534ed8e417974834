from cloudpubsub.errors import IllegalArgumentError
from cloudpubsub.structs import PushConfig, TopicId
from cloudpubsub.util import (
    ensure_valid_resource_name, format_subscription_name, parse_subscription_name)


class SubscriptionBuilder(object):
    """Chainable builder for SubscriptionInfo and Subscription objects.

    build() hands the staged fields to factory, so objects already built are
    never affected by later builder calls.
    """

    def __init__(self, factory, topic, name, push_config=None, ack_deadline_seconds=0):
        self._factory = factory
        self._topic = topic
        self._name = name
        self._push_config = push_config
        self._ack_deadline_seconds = ack_deadline_seconds

    def topic(self, topic, project=None):
        """Set the topic, given as TopicId or as topic name (and project)"""
        if isinstance(topic, TopicId):
            if project is not None:
                raise IllegalArgumentError('project given twice: %s and %s' % (topic, project))
            self._topic = topic
        else:
            self._topic = TopicId.of(topic, project)
        return self

    def name(self, name):
        self._name = name
        return self

    def push_config(self, push_config):
        self._push_config = push_config
        return self

    def ack_deadline_seconds(self, ack_deadline_seconds):
        self._ack_deadline_seconds = ack_deadline_seconds
        return self

    def build(self):
        return self._factory(self._topic, self._name, self._push_config,
                             self._ack_deadline_seconds)


class SubscriptionInfo(object):
    """Configuration of a Pub/Sub subscription.

    A subscription represents the stream of messages from a single topic to
    be delivered to the subscribing application. Without a push_config the
    subscription is a pull subscription.

    Arguments:
        topic (TopicId or str): the topic messages are delivered from
        name (str): the subscription name
        push_config (PushConfig, optional): push delivery endpoint
        ack_deadline_seconds (int, optional): seconds the subscriber has to
            acknowledge a message before it is redelivered. 0 selects the
            service default (10 seconds). Default: 0.
    """

    def __init__(self, topic, name, push_config=None, ack_deadline_seconds=0):
        if not isinstance(topic, TopicId):
            topic = TopicId.of(topic)
        if push_config is not None and not isinstance(push_config, PushConfig):
            raise IllegalArgumentError('push_config must be of type PushConfig')
        if not isinstance(ack_deadline_seconds, int) or ack_deadline_seconds < 0:
            raise IllegalArgumentError('ack_deadline_seconds must be a non-negative int')
        self._topic = topic
        self._name = ensure_valid_resource_name(name)
        self._push_config = push_config
        self._ack_deadline_seconds = ack_deadline_seconds

    @classmethod
    def of(cls, topic, name, endpoint=None):
        push_config = PushConfig.of(endpoint) if endpoint is not None else None
        return cls(topic, name, push_config)

    @classmethod
    def builder(cls, topic, name):
        return SubscriptionBuilder(cls, topic, name)

    def to_builder(self):
        return SubscriptionBuilder(SubscriptionInfo, self._topic, self._name,
                                   self._push_config, self._ack_deadline_seconds)

    @property
    def topic(self):
        return self._topic

    @property
    def name(self):
        return self._name

    @property
    def push_config(self):
        return self._push_config

    @property
    def ack_deadline_seconds(self):
        return self._ack_deadline_seconds

    def _fields(self):
        return (self._topic, self._name, self._push_config, self._ack_deadline_seconds)

    def _base_equals(self, other):
        return self._fields() == other._fields()

    def __eq__(self, other):
        if type(other) is not SubscriptionInfo:
            return False
        return self._base_equals(other)

    def __ne__(self, other):
        return not self == other

    def __hash__(self):
        return hash(self._fields())

    def __repr__(self):
        return '%s(topic=%r, name=%r, push_config=%r, ack_deadline_seconds=%r)' % (
            self.__class__.__name__, self._topic, self._name,
            self._push_config, self._ack_deadline_seconds)

    def to_pb(self, project_id):
        subscription_pb = {
            'name': format_subscription_name(project_id, self._name),
            'topic': self._topic.to_pb(project_id),
            'ackDeadlineSeconds': self._ack_deadline_seconds,
        }
        if self._push_config is not None:
            subscription_pb['pushConfig'] = self._push_config.to_pb()
        return subscription_pb

    @staticmethod
    def _fields_from_pb(subscription_pb):
        _project, name = parse_subscription_name(subscription_pb['name'])
        push_config_pb = subscription_pb.get('pushConfig')
        push_config = None
        if push_config_pb and push_config_pb.get('pushEndpoint'):
            push_config = PushConfig.from_pb(push_config_pb)
        return (TopicId.from_pb(subscription_pb['topic']), name, push_config,
                subscription_pb.get('ackDeadlineSeconds', 0))

    @classmethod
    def from_pb(cls, subscription_pb):
        return SubscriptionInfo(*cls._fields_from_pb(subscription_pb))
