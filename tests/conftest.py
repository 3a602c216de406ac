import pytest

import packetsocket
import unitmessages
import unittransport


@pytest.fixture
def schema():
    return unitmessages.schema()


@pytest.fixture
def settings():
    return packetsocket.config.Settings(open_timeout=2, close_timeout=2, send_timeout=2)


@pytest.fixture
def backend():
    return unittransport.MockBackend()


@pytest.fixture
def connection(schema, settings, backend):

    connection = packetsocket.Connection('mock://unittest', schema, settings, backend)

    yield connection

    if connection.is_alive:
        connection.disconnect()


@pytest.fixture
def recorder():
    return unittransport.Recorder

# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
