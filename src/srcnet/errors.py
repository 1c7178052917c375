from __future__ import annotations


class SrcnetError(Exception):
    """Base class for every error raised by srcnet."""


class DecodeError(SrcnetError, ValueError):
    """Inbound bytes ended early or were malformed."""


class BufferOverflowError(SrcnetError, ValueError):
    """A write did not fit in the writer's fixed capacity."""


class TicketError(SrcnetError):
    """The identity ticket provider could not produce a ticket."""


class TransportError(SrcnetError):
    pass


class NotRegisteredError(SrcnetError):
    pass
