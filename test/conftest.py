import uuid

import pytest


@pytest.fixture
def options(request_timeout_ms):
    """Return options pointing to a fresh local emulator"""
    from cloudpubsub.options import PubSubOptions

    return PubSubOptions(project_id='test-project',
                         host='emulator-%s:8085' % uuid.uuid4().hex,
                         request_timeout_ms=request_timeout_ms)


@pytest.fixture
def pubsub(options):
    cli = options.service()
    try:
        yield cli
    finally:
        cli.close()


@pytest.fixture
def topic(pubsub):
    return pubsub.create_topic('test-topic')


@pytest.fixture
def subscription(pubsub, topic):
    from cloudpubsub.subscription_info import SubscriptionInfo

    return pubsub.create_subscription(SubscriptionInfo.of(topic, 'test-subscription'))


@pytest.fixture
def mock_pubsub(mocker, options):
    """Return a PubSub mocker fixture for delegation tests"""
    from cloudpubsub.client import PubSub

    mock = mocker.MagicMock(spec=PubSub)
    mock.options = options
    return mock
