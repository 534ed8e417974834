from cloudpubsub.util import (
    decode_payload, encode_payload, millis_to_rfc3339, rfc3339_to_millis)


class Message(object):
    """A Pub/Sub message.

    Arguments:
        payload (bytes or str): message data; str payloads are utf-8 encoded
        attributes ({str: str}, optional): message attributes
        id (str, optional): service-assigned message id
        publish_time (int, optional): service-assigned publish time in
            milliseconds since the epoch
    """

    def __init__(self, payload, attributes=None, id=None, publish_time=None):
        if isinstance(payload, str):
            payload = payload.encode('utf-8')
        self.payload = payload
        self.attributes = dict(attributes or {})
        self.id = id
        self.publish_time = publish_time

    @classmethod
    def of(cls, payload, **attributes):
        return cls(payload, attributes)

    def payload_as_string(self, encoding='utf-8'):
        return self.payload.decode(encoding)

    def to_pb(self):
        message_pb = {
            'data': encode_payload(self.payload),
            'attributes': dict(self.attributes),
        }
        if self.id is not None:
            message_pb['messageId'] = self.id
        if self.publish_time is not None:
            message_pb['publishTime'] = millis_to_rfc3339(self.publish_time)
        return message_pb

    @classmethod
    def from_pb(cls, message_pb):
        return cls(decode_payload(message_pb.get('data')),
                   message_pb.get('attributes'),
                   message_pb.get('messageId'),
                   rfc3339_to_millis(message_pb.get('publishTime')))

    def _fields(self):
        return (self.payload, self.attributes, self.id, self.publish_time)

    def __eq__(self, other):
        if type(self) is not type(other):
            return NotImplemented
        return self._fields() == other._fields()

    def __hash__(self):
        return hash((self.payload, frozenset(self.attributes.items()), self.id, self.publish_time))

    def __repr__(self):
        return '%s(id=%r, payload=%r, attributes=%r)' % (
            self.__class__.__name__, self.id, self.payload, self.attributes)


class ReceivedMessage(Message):
    """A message pulled from a subscription.

    Holds the ack id the service handed out for this delivery. The message
    must be acknowledged (ack) or negatively acknowledged (nack) before its
    ack deadline expires, otherwise it is redelivered. Messages pulled through
    PubSub.pull() have their deadline renewed until then.
    """

    def __init__(self, pubsub, subscription, ack_id, message):
        super(ReceivedMessage, self).__init__(
            message.payload, message.attributes, message.id, message.publish_time)
        self._pubsub = pubsub
        self.subscription = subscription
        self.ack_id = ack_id

    @property
    def pubsub(self):
        return self._pubsub

    def ack(self):
        """Acknowledge the message; the service will not redeliver it."""
        self._pubsub.ack(self.subscription, self.ack_id)

    def ack_async(self):
        return self._pubsub.ack_async(self.subscription, self.ack_id)

    def nack(self):
        """Negatively acknowledge the message, making it available for
        redelivery right away."""
        self._pubsub.nack(self.subscription, self.ack_id)

    def nack_async(self):
        return self._pubsub.nack_async(self.subscription, self.ack_id)

    def modify_ack_deadline(self, deadline_seconds):
        """Set the message's ack deadline to deadline_seconds from now.

        This stops automatic deadline renewal for the message.
        """
        self._pubsub.modify_ack_deadline(self.subscription, deadline_seconds, self.ack_id)

    def modify_ack_deadline_async(self, deadline_seconds):
        return self._pubsub.modify_ack_deadline_async(
            self.subscription, deadline_seconds, self.ack_id)

    def _fields(self):
        return super(ReceivedMessage, self)._fields() + (self.subscription, self.ack_id)

    def __hash__(self):
        return hash((super(ReceivedMessage, self).__hash__(), self.subscription, self.ack_id))

    @classmethod
    def from_pb(cls, pubsub, subscription, received_message_pb):
        return cls(pubsub, subscription, received_message_pb['ackId'],
                   Message.from_pb(received_message_pb['message']))
