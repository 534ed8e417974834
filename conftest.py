import pytest

def pytest_addoption(parser):
    parser.addoption(
        "--request-timeout-ms",
        action="store",
        default=10000,
        type=int,
        help="Timeout in milliseconds for synchronous PubSub calls during tests"
    )

@pytest.fixture
def request_timeout_ms(request):
    return request.config.getoption("--request-timeout-ms")
