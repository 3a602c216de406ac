""" Exercise the zmq transport against a ROUTER socket owned by the test.
"""

import socket

import pytest
import zmq

import packetsocket
from packetsocket import State
from packetsocket.protocol import pack_frame, unpack_frame
from packetsocket.transport.zmq import framing

from unitmessages import Say, Sync


@pytest.fixture
def router():

    context = zmq.Context.instance()
    router = context.socket(zmq.ROUTER)
    router.setsockopt(zmq.LINGER, 0)
    router.bind_to_random_port('tcp://127.0.0.1')

    yield router

    router.close(linger=0)


@pytest.fixture
def endpoint(router):
    return router.getsockopt_string(zmq.LAST_ENDPOINT)


@pytest.fixture
def zmq_settings():
    return packetsocket.config.Settings(transport='zmq', open_timeout=5, close_timeout=1, send_timeout=5)


@pytest.fixture
def live(endpoint, schema, zmq_settings):

    connection = packetsocket.Connection(endpoint, schema, zmq_settings)

    yield connection

    if connection.is_alive:
        connection.disconnect()


def receive(router):
    assert router.poll(5000)
    return router.recv_multipart()


def unused_port():
    with socket.socket() as probe:
        probe.bind(('127.0.0.1', 0))
        return probe.getsockname()[1]


def test_framing():

    assert framing.to_frames('hello') == (b'T', b'hello')
    assert framing.to_frames(b'\x00') == (b'B', b'\x00')
    assert framing.from_frames((b'T', b'hello')) == ('hello', True)
    assert framing.from_frames((b'identity', b'B', b'\x00')) == (b'\x00', False)

    with pytest.raises(TypeError):
        framing.to_frames(42)

    with pytest.raises(ValueError):
        framing.from_frames((b'T',))

    with pytest.raises(ValueError):
        framing.from_frames((b'X', b'data'))


def test_backend_by_name():

    from packetsocket.transport.zmq import DealerTransport
    assert packetsocket.transport.backend('zmq') is DealerTransport


def test_send_and_receive(live, router, schema, recorder):

    received = recorder()
    opened = recorder()
    live.received.register(received)
    live.opened.register(opened)

    live.connect()
    assert live.state == State.OPEN
    assert len(opened) == 1

    live.send([Say('hello'), Sync()])

    identity, kind, frame = receive(router)
    assert kind == b'T'
    assert unpack_frame(frame.decode('utf-8'), schema) == [Say('hello'), Sync()]

    reply = pack_frame([Say('back'), Say('again')])
    router.send_multipart([identity, b'T', reply.encode('utf-8')])

    assert received.wait(2)
    assert received.first == [Say('back'), Say('again')]


def test_send_from_opened_observer(live, router, schema):

    failures = list()

    def greet():
        try:
            live.send(Say('first'))
        except Exception as e:
            failures.append(e)

    live.opened.register(greet)
    live.connect()
    assert failures == []

    identity, kind, frame = receive(router)
    assert unpack_frame(frame.decode('utf-8'), schema) == [Say('first')]


def test_send_async(live, router, schema):

    live.connect()
    completions = list()

    future = live.send_async([Say('async')], completions.append)
    future.result(5)
    assert completions == [True]

    identity, kind, frame = receive(router)
    assert unpack_frame(frame.decode('utf-8'), schema) == [Say('async')]


def test_binary_and_unreadable(live, router, recorder):

    received = recorder()
    errors = recorder()
    live.received.register(received)
    live.error.register(errors)

    live.connect()
    live.send(Sync())
    identity = receive(router)[0]

    router.send_multipart([identity, b'B', b'\x00\x01'])
    router.send_multipart([identity, b'X', b'mystery'])
    router.send_multipart([identity, b'T', pack_frame([Say('marker')]).encode('utf-8')])

    assert received.wait(1)
    assert received.first == [Say('marker')]

    # The binary payload is dropped quietly; the unknown kind is not.
    assert len(errors) == 1
    assert isinstance(errors.first[0], ValueError)
    assert live.is_alive


def test_disconnect(live, recorder):

    closed = recorder()
    live.closed.register(closed)

    live.connect()
    live.disconnect(4000, 'bye')

    assert live.state == State.CLOSED
    assert len(closed) == 1
    assert closed.first[0].code == 4000
    assert closed.first[0].reason == 'bye'
    assert closed.first[0].clean == True

    with pytest.raises(packetsocket.TransportClosedError):
        live.send(Say('too late'))


def test_peer_goes_away(live, router, recorder):

    closed = recorder()
    errors = recorder()
    live.closed.register(closed)
    live.error.register(errors)

    live.connect()
    router.close(linger=0)

    assert closed.wait(1)
    assert closed.first[0].code == 1006
    assert closed.first[0].clean == False
    assert len(errors) == 1
    assert live.is_alive == False


def test_unreachable(schema):

    settings = packetsocket.config.Settings(transport='zmq', open_timeout=0.3, close_timeout=1)
    url = 'tcp://127.0.0.1:%d' % (unused_port())
    connection = packetsocket.Connection(url, schema, settings)

    with pytest.raises(packetsocket.TransportConnectionError):
        connection.connect()

    assert connection.state == State.CLOSED


def test_malformed_endpoint(schema, zmq_settings):

    connection = packetsocket.Connection('not an endpoint', schema, zmq_settings)

    with pytest.raises(packetsocket.TransportConnectionError):
        connection.connect()

    assert connection.state == State.CLOSED


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
