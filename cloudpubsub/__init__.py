__title__ = 'cloudpubsub'
from cloudpubsub.version import __version__
__license__ = 'Apache License 2.0'

# Set default logging handler to avoid "No handler found" warnings.
import logging

logging.getLogger(__name__).addHandler(logging.NullHandler())


from cloudpubsub.client import PubSub
from cloudpubsub.consumer import MessageConsumer
from cloudpubsub.future import Future
from cloudpubsub.iam import Identity, Policy, Role
from cloudpubsub.message import Message, ReceivedMessage
from cloudpubsub.options import PubSubOptions
from cloudpubsub.structs import PushConfig, TopicId
from cloudpubsub.subscription import Subscription
from cloudpubsub.subscription_info import SubscriptionInfo


__all__ = [
    'Future', 'Identity', 'Message', 'MessageConsumer', 'Policy', 'PubSub',
    'PubSubOptions', 'PushConfig', 'ReceivedMessage', 'Role', 'Subscription',
    'SubscriptionInfo', 'TopicId',
]
