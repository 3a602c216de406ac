""" Observer registrations for connection events. Each kind of event is an
    :class:`Event`; a :class:`Notifications` instance groups the four events
    a :class:`packetsocket.Connection` publishes.
"""

import logging
import threading

from . import weakref


logger = logging.getLogger(__name__)


class Event:
    """ An :class:`Event` is an ordered list of observers, all of which are
        invoked, in registration order, whenever the event is published by
        calling the instance. The arguments passed to the call are passed
        through to every observer.

        Publishing works on a snapshot of the registrations: observers may
        be registered or unregistered from any thread, including from an
        observer that is being invoked, without disturbing a dispatch that
        is already underway. A newly registered observer is first invoked
        on the next publication.

        An observer that raises an exception is logged and skipped; the
        remaining observers are still invoked, and the exception does not
        propagate to the publisher.
    """

    def __init__(self, name):
        self.name = name
        self._lock = threading.Lock()
        self._references = list()


    def __call__(self, *args):

        with self._lock:
            references = tuple(self._references)

        if references:
            pass
        else:
            return

        invalid = list()

        for reference in references:
            observer = reference()

            if observer is None:
                invalid.append(reference)
                continue

            try:
                observer(*args)
            except Exception:
                logger.exception('%s observer %r failed', self.name, observer)
                continue

        if invalid:
            with self._lock:
                for reference in invalid:
                    try:
                        self._references.remove(reference)
                    except ValueError:
                        pass


    def __len__(self):
        return len(self._references)


    def __repr__(self):
        return '<Event %s: %d observer(s)>' % (self.name, len(self))


    def register(self, method, weak=False):
        """ Register a callable to be invoked whenever this event is
            published. If *weak* is True only a weak reference is kept, and
            the observer is dropped once nothing else refers to it; this is
            convenient for bound methods of objects with a shorter lifetime
            than the connection. The *method* is returned unchanged, so
            this can be used as a decorator.
        """

        if callable(method):
            pass
        else:
            raise TypeError('the registered method must be callable')

        reference = weakref.ref(method, weak)

        with self._lock:
            self._references.append(reference)

        return method


    def unregister(self, method):
        """ Remove the first registration of *method*. Return True if a
            registration was removed, False if there was none.
        """

        with self._lock:
            for reference in self._references:
                if reference() == method:
                    self._references.remove(reference)
                    return True

        return False


    def clear(self):
        with self._lock:
            self._references = list()


# end of class Event



class Notifications:
    """ The set of events published for one connection:

        * ``opened()``: the socket handshake completed.
        * ``closed(reason)``: the socket closed; *reason* is a
          :class:`packetsocket.transport.CloseReason`.
        * ``received(message)``: one decoded message arrived.
        * ``error(exception, message)``: a failure outside of any blocking
          call, with a human-readable *message*.
    """

    def __init__(self):
        self.opened = Event('opened')
        self.closed = Event('closed')
        self.received = Event('received')
        self.error = Event('error')


    def __iter__(self):
        return iter((self.opened, self.closed, self.received, self.error))


    def clear(self):
        for event in self:
            event.clear()


# end of class Notifications


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
