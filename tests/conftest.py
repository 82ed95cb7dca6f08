import pytest

from airbrake_notifier.configuration import NotifierConfig
from airbrake_notifier.notifier import Notifier
from airbrake_notifier.transport import DummyTransport


@pytest.fixture
def config() -> NotifierConfig:
    return NotifierConfig(
        AIRBRAKE_API_KEY="test-api-key",
        AIRBRAKE_PROJECT_ROOT="/srv/app",
        AIRBRAKE_PROJECT_VERSION="2.0.1",
        AIRBRAKE_API_BASE_URL="http://airbrake.test",
        HOSTNAME="web-1",
    )


@pytest.fixture
def transport() -> DummyTransport:
    return DummyTransport()


@pytest.fixture
def notifier(config: NotifierConfig, transport: DummyTransport) -> Notifier:
    return Notifier(config, transport=transport)
