from collections import namedtuple

from cloudpubsub.errors import IllegalArgumentError
from cloudpubsub.util import format_topic_name, parse_topic_name


DELETED_TOPIC_NAME = '_deleted-topic_'


class TopicId(namedtuple('TopicId', ['project', 'topic'])):
    """Identity of a topic. project is None for topics of the client's
    default project."""

    @classmethod
    def of(cls, topic, project=None):
        if not topic:
            raise IllegalArgumentError('topic must be a non-empty string')
        return cls(project, topic)

    @classmethod
    def deleted_topic(cls):
        """The topic a subscription points to once its topic was deleted"""
        return cls(None, DELETED_TOPIC_NAME)

    @property
    def is_deleted(self):
        return self.topic == DELETED_TOPIC_NAME

    def to_pb(self, default_project):
        if self.is_deleted:
            return DELETED_TOPIC_NAME
        return format_topic_name(self.project or default_project, self.topic)

    @classmethod
    def from_pb(cls, path):
        if path == DELETED_TOPIC_NAME:
            return cls.deleted_topic()
        project, topic = parse_topic_name(path)
        return cls(project, topic)

    def __str__(self):
        if self.project is None:
            return self.topic
        return format_topic_name(self.project, self.topic)


class PushConfig(object):
    """Configuration of a push subscription.

    Arguments:
        endpoint (str): URL the service pushes messages to, for example
            'https://example.com/push'.
        attributes ({str: str}, optional): endpoint attributes, such as
            'x-goog-version' to select the push payload format.
    """

    def __init__(self, endpoint, attributes=None):
        if not endpoint:
            raise IllegalArgumentError('endpoint must be a non-empty string')
        self._endpoint = endpoint
        self._attributes = dict(attributes or {})

    @classmethod
    def of(cls, endpoint, attributes=None):
        return cls(endpoint, attributes)

    @property
    def endpoint(self):
        return self._endpoint

    @property
    def attributes(self):
        return dict(self._attributes)

    def to_pb(self):
        return {
            'pushEndpoint': self._endpoint,
            'attributes': dict(self._attributes),
        }

    @classmethod
    def from_pb(cls, push_config_pb):
        return cls(push_config_pb['pushEndpoint'],
                   push_config_pb.get('attributes'))

    def __eq__(self, other):
        if not isinstance(other, PushConfig):
            return NotImplemented
        return (self._endpoint == other._endpoint
                and self._attributes == other._attributes)

    def __hash__(self):
        return hash((self._endpoint, frozenset(self._attributes.items())))

    def __repr__(self):
        return 'PushConfig(endpoint=%r, attributes=%r)' % (self._endpoint, self._attributes)
