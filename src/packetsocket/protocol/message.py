""" A class representation of an application message, and the schema that
    maps discriminator values on the wire back to message classes.
"""

import threading

from .fields import DISCRIMINATOR


class Message:
    """ The :class:`Message` provides a very thin encapsulation of what it
        means to be a message in a packetsocket context. Application code
        defines the concrete message types by subclassing :class:`Message`
        and setting the *discriminator* class attribute, the value that
        identifies the type on the wire::

            class Say(Message):
                discriminator = 'Say'

                def __init__(self, text):
                    self.text = text

        The fields of a message are its public instance attributes; anything
        whose name begins with an underscore is local state and is not put
        on the wire. Subclasses with a different notion of their fields
        should override :func:`to_dict` and :func:`from_dict` together.

        :ivar discriminator: The string identifying this message type.
    """

    discriminator = None

    def __init__(self, **fields):

        # The generic constructor allows ad-hoc messages; the caller is
        # assumed to know that the values can be serialized as JSON.

        for key, value in fields.items():
            setattr(self, key, value)


    def __eq__(self, other):
        if type(self) is not type(other):
            return NotImplemented

        return self.to_dict() == other.to_dict()


    def __repr__(self):
        fields = ', '.join('%s=%r' % (key, value) for key, value in self.to_dict().items())
        return '%s(%s)' % (type(self).__name__, fields)


    __hash__ = None


    def to_dict(self):
        """ Return the fields of this message as a dictionary, excluding the
            discriminator. Field order follows attribute assignment order,
            which keeps the encoded form deterministic.
        """

        fields = dict()

        for key, value in vars(self).items():
            if key[:1] == '_':
                continue
            fields[key] = value

        return fields


    @classmethod
    def from_dict(cls, fields):
        """ Construct a message from the dictionary of *fields* decoded off
            the wire. A field the constructor does not accept, or a missing
            required field, raises :class:`TypeError`.
        """

        return cls(**fields)


# end of class Message



class Schema:
    """ A :class:`Schema` is the registry of concrete :class:`Message` types
        understood by one connection. The frame codec consults the schema
        when decoding: the discriminator *field* of every entry is looked up
        here to select the class to instantiate.

        Message types can be supplied to the constructor, or added later
        via :func:`register`, which also works as a class decorator::

            schema = Schema()

            @schema.register
            class Sync(Message):
                discriminator = 'Sync'
    """

    def __init__(self, *types, field=DISCRIMINATOR):

        if not field or not isinstance(field, str):
            raise ValueError('the discriminator field must be a non-empty string')

        self.field = field
        self._lock = threading.Lock()
        self._types = dict()

        for message_type in types:
            self.register(message_type)


    def __contains__(self, discriminator):
        return discriminator in self._types


    def __iter__(self):
        return iter(tuple(self._types.values()))


    def __len__(self):
        return len(self._types)


    def register(self, message_type):
        """ Add *message_type* to this schema and return it unchanged. The
            type must be a :class:`Message` subclass with a string
            discriminator; registering a second class under an existing
            discriminator raises :class:`ValueError`.
        """

        if isinstance(message_type, type) and issubclass(message_type, Message):
            pass
        else:
            raise TypeError('only Message subclasses can be registered: ' + repr(message_type))

        discriminator = message_type.discriminator

        if isinstance(discriminator, str) and discriminator != '':
            pass
        else:
            raise TypeError(message_type.__name__ + ' does not declare a discriminator')

        with self._lock:
            existing = self._types.get(discriminator)

            if existing is not None and existing is not message_type:
                raise ValueError("discriminator %r already registered to %s" % (discriminator, existing.__name__))

            self._types[discriminator] = message_type

        return message_type


    def resolve(self, discriminator):
        """ Return the :class:`Message` subclass registered for the
            *discriminator* value. Raises :class:`KeyError` if there is none.
        """

        return self._types[discriminator]


# end of class Schema


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
