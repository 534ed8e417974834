import abc


class PubSubRpc(object, metaclass=abc.ABCMeta):
    """Transport used by PubSub to reach the Pub/Sub service.

    Requests and responses are dicts in the JSON shape of the Pub/Sub v1 API,
    e.g. call('GetSubscription', {'subscription': 'projects/p/subscriptions/s'})
    returns {'name': ..., 'topic': ..., 'ackDeadlineSeconds': ...}.
    Implementations must be safe to call from multiple threads.
    """
    METHODS = (
        'CreateTopic', 'DeleteTopic', 'Publish',
        'CreateSubscription', 'GetSubscription', 'DeleteSubscription',
        'ModifyPushConfig', 'Pull', 'Acknowledge', 'ModifyAckDeadline',
        'GetIamPolicy', 'SetIamPolicy', 'TestIamPermissions',
    )

    @abc.abstractmethod
    def __init__(self, options):
        pass

    @abc.abstractmethod
    def call(self, method, request):
        """Execute method with request and return the response dict.

        Raises:
            ServiceError: a subclass matching the status the service
                returned, e.g. NotFoundError
        """
        pass

    def close(self):
        pass
