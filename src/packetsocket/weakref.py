
import weakref


class Strong:
    """ A stand-in for a weak reference that keeps its target alive. Calling
        the instance returns the target, the same as dereferencing a
        :class:`weakref.ref`; the two can be stored side by side.
    """

    __slots__ = ('thing',)

    def __init__(self, thing):
        self.thing = thing

    def __call__(self):
        return self.thing


def ref(thing, weak=True):
    """ Return a reference to the supplied argument. If *weak* is True the
        reference is weak, regardless of whether the argument is a simple
        object or a bound method; the standard :func:`weakref.ref` would
        immediately expire for a bound method. If *weak* is False a
        :class:`Strong` reference is returned instead.
    """

    if weak == False:
        return Strong(thing)

    try:
        thing.__func__
        thing.__self__
    except AttributeError:
        return weakref.ref(thing)
    else:
        return weakref.WeakMethod(thing)


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
