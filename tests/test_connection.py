import threading

import pytest

import packetsocket
from packetsocket import State
from packetsocket.protocol import pack_frame, unpack_frame

from unitmessages import Bounce, Say, Sync


def test_new_connection_is_not_alive(connection, backend):

    assert connection.state == State.IDLE
    assert connection.is_alive == False
    assert connection.url == 'mock://unittest'
    assert backend.transports == []


def test_scenario(connection, backend, schema, recorder):
    """ Connect, send, receive, disconnect against the mock transport.
    """

    received = recorder()
    closed = recorder()
    connection.received.register(received)
    connection.closed.register(closed)

    connection.connect()
    assert connection.state == State.OPEN
    assert connection.is_alive == True

    connection.send([Say('x')])

    transport = backend.current
    assert len(transport.writes) == 1
    assert unpack_frame(transport.writes[0], schema) == [Say('x')]

    transport.inject(pack_frame([Say('y'), Bounce(tags=['z'])]))
    assert received.first == [Say('y'), Bounce(tags=['z'])]

    connection.disconnect()
    assert connection.state == State.CLOSED
    assert connection.is_alive == False
    assert len(closed) == 1

    reason = closed.calls[0][0]
    assert reason.code == 1000
    assert reason.clean == True


def test_opened_notification(connection, recorder):

    opened = recorder()
    connection.opened.register(opened)

    connection.connect()
    assert len(opened) == 1

    # Already alive: nothing happens.
    connection.connect()
    assert len(opened) == 1


def test_send_from_opened_observer(connection, backend, schema):

    failures = list()

    def greet():
        try:
            connection.send(Say('hello'))
        except Exception as e:
            failures.append(e)

    connection.opened.register(greet)
    connection.connect()

    assert failures == []
    assert [unpack_frame(write, schema) for write in backend.current.writes] == [[Say('hello')]]


def test_send_async_from_opened_observer(connection, backend):

    completions = list()
    connection.opened.register(lambda: connection.send_async([Sync()], completions.append))

    connection.connect_async()
    assert completions == [True]
    assert len(backend.current.writes) == 1


def test_send_while_not_alive(connection, backend):

    with pytest.raises(packetsocket.TransportClosedError):
        connection.send([Say('nope')])

    connection.connect()
    transport = backend.current
    connection.disconnect()

    with pytest.raises(packetsocket.TransportClosedError):
        connection.send(Say('still nope'))

    with pytest.raises(packetsocket.TransportClosedError):
        connection.send_async([Say('async nope')])

    assert transport.writes == []


def test_send_async_closed_never_completes(connection):

    completions = list()

    with pytest.raises(packetsocket.TransportClosedError):
        connection.send_async([Say('x')], completions.append)

    assert completions == []


def test_send_requires_messages(connection):

    connection.connect()

    with pytest.raises(ValueError):
        connection.send([])

    with pytest.raises(ValueError):
        connection.send_async(iter(()))


def test_batch_is_one_frame(connection, backend, schema):

    connection.connect()
    batch = [Say('1'), Sync(), Say('2'), Bounce(data={'n': 3})]
    connection.send(batch)

    writes = backend.current.writes
    assert len(writes) == 1
    assert unpack_frame(writes[0], schema) == batch


def test_send_packet(connection, backend, schema):

    connection.connect()
    connection.send_packet(Say('single'))
    connection.send(Say('bare'))

    writes = backend.current.writes
    assert [unpack_frame(write, schema) for write in writes] == [[Say('single')], [Say('bare')]]


def test_send_async(connection, backend, schema):

    connection.connect()
    completions = list()

    future = connection.send_async([Say('a'), Say('b')], completions.append)
    future.result(1)

    assert completions == [True]
    assert unpack_frame(backend.current.writes[0], schema) == [Say('a'), Say('b')]

    connection.send_packet_async(Sync(), completions.append)
    assert completions == [True, True]


def test_send_async_failure(connection, backend, recorder):

    backend.fail_writes = True
    errors = recorder()
    connection.error.register(errors)
    connection.connect()

    completions = list()
    connection.send_async([Say('lost')], completions.append)

    assert completions == [False]
    assert len(errors) == 1
    assert isinstance(errors.calls[0][0], packetsocket.TransportError)


def test_send_failure_raises(connection, backend, recorder):

    backend.fail_writes = True
    errors = recorder()
    connection.error.register(errors)
    connection.connect()

    with pytest.raises(packetsocket.TransportError):
        connection.send([Say('lost')])

    # Blocking failures go to the caller, not the error channel.
    assert len(errors) == 0


def test_failing_completion_callback(connection):

    connection.connect()

    def broken(ok):
        raise RuntimeError('callback bug')

    future = connection.send_async([Say('x')], broken)
    assert future.exception() is None


def test_fan_out_order(connection, backend, recorder):

    received = recorder()
    connection.received.register(received)
    connection.connect()

    backend.current.inject(pack_frame([Say('A'), Say('B'), Say('C')]))
    assert received.first == [Say('A'), Say('B'), Say('C')]

    # Every message of the first frame precedes the next frame.
    backend.current.inject(pack_frame([Say('D')]))
    assert received.first == [Say('A'), Say('B'), Say('C'), Say('D')]


def test_fan_out_to_every_observer(connection, backend):

    order = list()
    connection.received.register(lambda message: order.append(('one', message.text)))
    connection.received.register(lambda message: order.append(('two', message.text)))
    connection.connect()

    backend.current.inject(pack_frame([Say('A'), Say('B')]))
    assert order == [('one', 'A'), ('two', 'A'), ('one', 'B'), ('two', 'B')]


def test_malformed_frame(connection, backend, recorder):

    received = recorder()
    errors = recorder()
    connection.received.register(received)
    connection.error.register(errors)
    connection.connect()

    backend.current.inject('[{"cmd":"Say","text":"fine"},{"cmd":"Unknown"}]')
    assert len(received) == 0
    assert len(errors) == 1

    exception, message = errors.calls[0]
    assert isinstance(exception, packetsocket.DecodeError)
    assert exception.discriminator == 'Unknown'
    assert 'Unknown' in message

    backend.current.inject('this is not json')
    assert len(received) == 0
    assert len(errors) == 2

    # The connection carries on after a bad frame.
    assert connection.is_alive
    backend.current.inject(pack_frame([Say('after')]))
    assert received.first == [Say('after')]


def test_binary_payload_ignored(connection, backend, recorder):

    received = recorder()
    errors = recorder()
    connection.received.register(received)
    connection.error.register(errors)
    connection.connect()

    backend.current.inject(pack_frame([Say('binary')]).encode(), is_text=False)
    assert len(received) == 0
    assert len(errors) == 0


def test_no_observers(connection, backend):

    connection.connect()
    backend.current.inject(pack_frame([Say('into the void')]))
    assert connection.is_alive


def test_failing_observer(connection, backend, recorder):

    received = recorder()

    def broken(message):
        raise RuntimeError('observer bug')

    connection.received.register(broken)
    connection.received.register(received)
    connection.connect()

    backend.current.inject(pack_frame([Say('1'), Say('2')]))
    assert received.first == [Say('1'), Say('2')]
    assert connection.is_alive


def test_disconnect_when_not_alive(connection, backend, recorder):

    closed = recorder()
    connection.closed.register(closed)

    connection.disconnect()
    connection.disconnect_async()
    assert connection.state == State.IDLE

    connection.connect()
    connection.disconnect()
    connection.disconnect()
    assert len(closed) == 1
    assert backend.current.close_requests == [(1000, '')]


def test_disconnect_async(connection, backend, recorder):

    closed = recorder()
    connection.closed.register(closed)
    connection.connect()

    connection.disconnect_async(4000, 'done here')
    assert connection.state == State.CLOSED
    assert closed.first[0].code == 4000
    assert closed.first[0].reason == 'done here'


def test_connect_refused(connection, backend, recorder):

    errors = recorder()
    opened = recorder()
    connection.error.register(errors)
    connection.opened.register(opened)
    backend.refuse = True

    with pytest.raises(packetsocket.TransportConnectionError):
        connection.connect()

    assert connection.state == State.CLOSED
    assert connection.is_alive == False
    assert len(opened) == 0

    # A blocking connect reports through the exception only.
    assert len(errors) == 0

    # The connection object is reusable.
    backend.refuse = False
    connection.connect()
    assert connection.state == State.OPEN
    assert len(backend.transports) == 2


def test_connection_error_is_builtin_connection_error():

    assert issubclass(packetsocket.TransportConnectionError, ConnectionError)


def test_connect_async(connection, backend, recorder):

    opened = recorder()
    connection.opened.register(opened)

    connection.connect_async()
    assert len(opened) == 1
    assert connection.state == State.OPEN


def test_connect_async_refused(connection, backend, recorder):

    errors = recorder()
    connection.error.register(errors)
    backend.refuse = True

    connection.connect_async()

    assert connection.state == State.CLOSED
    assert len(errors) == 1
    assert isinstance(errors.calls[0][0], packetsocket.TransportConnectionError)


def test_connect_while_connecting(connection, backend, recorder):

    opened = recorder()
    connection.opened.register(opened)
    backend.defer_open = True

    connection.connect_async()
    assert connection.state == State.CONNECTING
    assert connection.is_alive == False

    with pytest.raises(packetsocket.TransportConnectionError):
        connection.connect()

    backend.current.accept()
    assert connection.state == State.OPEN
    assert len(opened) == 1


def test_connect_timeout(schema, backend, recorder):

    settings = packetsocket.config.Settings(open_timeout=0.05)
    connection = packetsocket.Connection('mock://slow', schema, settings, backend)
    opened = recorder()
    connection.opened.register(opened)
    backend.defer_open = True

    with pytest.raises(packetsocket.TransportConnectionError):
        connection.connect()

    assert connection.state == State.CLOSED
    assert backend.current.close_requests == [(1006, 'connect timed out')]

    # A handshake completing after the timeout is ignored.
    backend.current.accept()
    assert connection.state == State.CLOSED
    assert len(opened) == 0


def test_connection_lost(connection, backend, recorder):

    errors = recorder()
    closed = recorder()
    connection.error.register(errors)
    connection.closed.register(closed)
    connection.connect()

    backend.current.drop()

    assert connection.state == State.CLOSED
    assert len(errors) == 1
    assert len(closed) == 1
    assert closed.first[0].code == 1006
    assert closed.first[0].clean == False


def test_reconnect_ignores_old_socket(connection, backend, recorder):

    received = recorder()
    closed = recorder()
    connection.received.register(received)
    connection.closed.register(closed)

    connection.connect()
    first = backend.current
    connection.disconnect()

    connection.connect()
    second = backend.current
    assert first is not second
    assert connection.state == State.OPEN

    first.inject(pack_frame([Say('stale')]))
    first.drop()
    assert len(received) == 0
    assert len(closed) == 1
    assert connection.state == State.OPEN

    second.inject(pack_frame([Say('fresh')]))
    assert received.first == [Say('fresh')]


def test_concurrent_sends_stay_whole(connection, backend, schema):

    connection.connect()

    def sender(name):
        for index in range(50):
            connection.send([Say('%s-%d-a' % (name, index)), Say('%s-%d-b' % (name, index))])

    threads = [threading.Thread(target=sender, args=(str(number),)) for number in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    writes = backend.current.writes
    assert len(writes) == 200

    for write in writes:
        first, second = unpack_frame(write, schema)
        assert first.text[:-1] == second.text[:-1]
        assert first.text.endswith('a')
        assert second.text.endswith('b')


def test_repr(connection):
    assert repr(connection) == '<Connection mock://unittest idle>'


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
