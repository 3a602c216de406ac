""" Client-side configuration. Settings are assembled from built-in defaults,
    an optional JSON file in the configuration directory, and environment
    variables, in that order; later sources win.
"""

import os

from . import json


default_filename = 'client.json'

_environment = {
    'transport': 'PACKETSOCKET_TRANSPORT',
    'open_timeout': 'PACKETSOCKET_OPEN_TIMEOUT',
    'close_timeout': 'PACKETSOCKET_CLOSE_TIMEOUT',
    'send_timeout': 'PACKETSOCKET_SEND_TIMEOUT',
    'max_size': 'PACKETSOCKET_MAX_SIZE',
}


class Settings:
    """ A convenience class to represent the tunable parameters of a
        :class:`packetsocket.Connection` and the transport it creates.

        :ivar transport: Name of the transport backend, see
            :func:`packetsocket.transport.backend`.
        :ivar open_timeout: Seconds a blocking connect waits for the
            handshake to complete.
        :ivar close_timeout: Seconds a blocking disconnect waits for the
            socket to close.
        :ivar send_timeout: Seconds a blocking send waits for the write to
            complete; None waits indefinitely.
        :ivar max_size: Largest inbound payload, in bytes, the transport
            will accept.
    """

    fields = ('transport', 'open_timeout', 'close_timeout', 'send_timeout', 'max_size')

    def __init__(self, transport='websocket', open_timeout=10.0, close_timeout=10.0, send_timeout=None, max_size=2**24):

        self.transport = transport
        self.open_timeout = _seconds(open_timeout)
        self.close_timeout = _seconds(close_timeout)
        self.send_timeout = _seconds(send_timeout)
        self.max_size = _size(max_size)


    def __eq__(self, other):
        if isinstance(other, Settings):
            return self.to_dict() == other.to_dict()
        return NotImplemented


    def __repr__(self):
        arguments = ', '.join('%s=%r' % (key, value) for key, value in self.to_dict().items())
        return 'Settings(' + arguments + ')'


    def to_dict(self):
        return dict((field, getattr(self, field)) for field in self.fields)


    def update(self, values):
        """ Apply the dictionary of *values* on top of the current settings.
            Unknown keys are rejected with a :class:`ValueError`.
        """

        for key, value in values.items():
            if key not in self.fields:
                raise ValueError('unknown setting: ' + repr(key))

            if key == 'transport':
                self.transport = str(value)
            elif key == 'max_size':
                self.max_size = _size(value)
            else:
                setattr(self, key, _seconds(value))


# end of class Settings



def directory(default=None):
    """ Return the directory location where configuration files are found.
        This defaults to ``$HOME/.packetsocket``, but can be overridden by
        calling this method with a valid path, or by setting the
        ``PACKETSOCKET_HOME`` environment variable. Note that changes to the
        environment variable will be ignored unless it is set prior to the
        first invocation of this method.
    """

    if default is not None:
        default = str(default)
        default = os.path.expandvars(default)

        if os.path.isabs(default):
            pass
        else:
            raise ValueError('the default directory must be an absolute path')

        if os.path.exists(default):
            pass
        else:
            os.makedirs(default, mode=0o775)

        os.environ['PACKETSOCKET_HOME'] = default
        directory.found = default


    found = directory.found

    if found is not None:
        return found

    try:
        found = os.environ['PACKETSOCKET_HOME']
    except KeyError:
        pass
    else:
        directory.found = found
        return found

    try:
        home = os.environ['HOME']
    except KeyError:
        raise RuntimeError('PACKETSOCKET_HOME and HOME environment variables not set, cannot determine configuration directory')

    found = os.path.join(home, '.packetsocket')

    directory.found = found
    return found

directory.found = None



def load(filename=None):
    """ Return a :class:`Settings` instance. The defaults are overlaid by the
        contents of *filename*, if it exists; if no *filename* is specified
        ``client.json`` in the :func:`directory` is used. Any ``PACKETSOCKET_*``
        environment variables are applied last.
    """

    settings = Settings()

    if filename is None:
        filename = os.path.join(directory(), default_filename)

    if os.path.exists(filename):
        with open(filename, 'rb') as contents:
            raw = contents.read()

        try:
            values = json.loads(raw)
        except json.DecodeError as e:
            raise ValueError('cannot parse %s: %s' % (filename, e)) from e

        if isinstance(values, dict):
            pass
        else:
            raise ValueError('%s must contain a JSON object' % (filename))

        settings.update(values)

    values = dict()
    for field, variable in _environment.items():
        try:
            values[field] = os.environ[variable]
        except KeyError:
            continue

    settings.update(values)
    return settings



def _seconds(value):

    if value is None or value == '' or value == 'none':
        return None

    try:
        value = float(value)
    except (TypeError, ValueError):
        raise ValueError('timeout must be a number of seconds: ' + repr(value))

    if value < 0:
        raise ValueError('timeout must not be negative: ' + repr(value))

    return value


def _size(value):

    try:
        value = int(value)
    except (TypeError, ValueError):
        raise ValueError('size must be an integer number of bytes: ' + repr(value))

    if value <= 0:
        raise ValueError('size must be positive: ' + repr(value))

    return value


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
