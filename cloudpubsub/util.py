import base64
import datetime
import re

from cloudpubsub.errors import IllegalArgumentError


NAME_MIN_LENGTH = 3
NAME_MAX_LENGTH = 255
NAME_LEGAL_CHARS = re.compile('^[a-zA-Z][a-zA-Z0-9._~+%-]*$')

PROJECT_PREFIX = 'projects/'
TOPIC_PATH = re.compile('^projects/([^/]+)/topics/([^/]+)$')
SUBSCRIPTION_PATH = re.compile('^projects/([^/]+)/subscriptions/([^/]+)$')

# fractional seconds may carry up to nanosecond precision
RFC3339_TIMESTAMP = re.compile(
    r'^(\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})(?:\.(\d{1,9}))?(Z|[+-]\d{2}:\d{2})$', re.IGNORECASE)


def ensure_valid_resource_name(name):
    """ Ensures that a topic or subscription name is accepted by the service. """
    if name is None:
        raise IllegalArgumentError('Resource names must not be None')
    if not isinstance(name, str):
        raise IllegalArgumentError('Resource names must be strings')
    if not NAME_MIN_LENGTH <= len(name) <= NAME_MAX_LENGTH:
        raise IllegalArgumentError(
            'Resource name "{0}" must be between {1} and {2} characters long'.format(
                name, NAME_MIN_LENGTH, NAME_MAX_LENGTH))
    if name.startswith('goog'):
        raise IllegalArgumentError('Resource name "{0}" must not start with "goog"'.format(name))
    if not NAME_LEGAL_CHARS.match(name):
        raise IllegalArgumentError(
            'Resource name "{0}" is illegal, it must start with a letter and contain only'
            ' ASCII alphanumerics, ".", "_", "~", "+", "%" and "-"'.format(name))
    return name


def format_topic_name(project, topic):
    return '{0}{1}/topics/{2}'.format(PROJECT_PREFIX, project, topic)


def format_subscription_name(project, subscription):
    return '{0}{1}/subscriptions/{2}'.format(PROJECT_PREFIX, project, subscription)


def parse_topic_name(path):
    """Split 'projects/{project}/topics/{topic}' into (project, topic)"""
    match = TOPIC_PATH.match(path)
    if not match:
        raise IllegalArgumentError('Malformed topic path: %s' % path)
    return match.groups()


def parse_subscription_name(path):
    """Split 'projects/{project}/subscriptions/{name}' into (project, name)"""
    match = SUBSCRIPTION_PATH.match(path)
    if not match:
        raise IllegalArgumentError('Malformed subscription path: %s' % path)
    return match.groups()


def encode_payload(payload):
    return base64.b64encode(payload).decode('ascii')


def decode_payload(data):
    return base64.b64decode(data) if data else b''


def millis_to_rfc3339(timestamp_ms):
    when = datetime.datetime.fromtimestamp(timestamp_ms / 1000, tz=datetime.timezone.utc)
    return when.strftime('%Y-%m-%dT%H:%M:%S.') + '%03dZ' % (timestamp_ms % 1000)


def rfc3339_to_millis(value):
    """Parse an RFC 3339 timestamp into epoch milliseconds.

    Sub-millisecond digits are truncated.
    """
    if value is None:
        return None
    match = RFC3339_TIMESTAMP.match(value)
    if not match:
        raise IllegalArgumentError('Malformed RFC 3339 timestamp: %s' % value)
    seconds, fraction, offset = match.groups()
    try:
        when = datetime.datetime.strptime(seconds, '%Y-%m-%dT%H:%M:%S')
    except ValueError:
        raise IllegalArgumentError('Malformed RFC 3339 timestamp: %s' % value)
    if offset.upper() != 'Z':
        delta = datetime.timedelta(hours=int(offset[1:3]), minutes=int(offset[4:6]))
        when = when - delta if offset[0] == '+' else when + delta
    when = when.replace(tzinfo=datetime.timezone.utc)
    millis = int(when.timestamp()) * 1000
    if fraction:
        millis += int(fraction[:3].ljust(3, '0'))
    return millis
