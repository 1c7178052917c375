"""Source engine connection handshake client.

The package keeps the layers apart:
- bit-level packet codec (`bitbuf`) and message factories (`message`)
- a UDP transport that only moves datagrams (`net`)
- the handshake state machine that only produces packets (`connector`)

Each layer is testable on its own without a live server.
"""

from .connector import ConnectionStep, Connector
from .message import Message

__all__ = ["ConnectionStep", "Connector", "Message"]
