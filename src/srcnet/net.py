from __future__ import annotations

import logging
import socket
from typing import Protocol

from .constants import DEFAULT_TIMEOUT_MS
from .errors import TransportError
from .message import Message

logger = logging.getLogger(__name__)


class Listener(Protocol):
    def register(self, client: "UdpClient") -> None: ...

    def receive(self, message: Message, msg_type: int) -> None: ...


class UdpClient:
    """Datagram transport to a single game server.

    Every message goes out as one plain datagram. The `reliable` flag of
    `send_message` is accepted but there is no netchannel underneath, so
    nothing is acknowledged or resent.
    """

    def __init__(self, timeout_ms: int = DEFAULT_TIMEOUT_MS):
        self.timeout_ms = timeout_ms
        self.sock: socket.socket | None = None
        self.listeners: list[Listener] = []

    @property
    def connected(self) -> bool:
        return self.sock is not None

    def connect(self, host: str, port: int) -> None:
        try:
            addr = socket.getaddrinfo(host, port, socket.AF_INET, socket.SOCK_DGRAM)[0][4]
            sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        except OSError as e:
            raise TransportError(f"cannot resolve {host}:{port}: {e}") from e
        try:
            sock.connect(addr)
        except OSError as e:
            sock.close()
            raise TransportError(f"cannot connect to {host}:{port}: {e}") from e
        if self.timeout_ms > 0:
            sock.settimeout(self.timeout_ms / 1000.0)
        self.sock = sock
        logger.info("connected; server=%s:%d", addr[0], addr[1])

    def disconnect(self, message: Message | None = None) -> None:
        if self.sock is None:
            return
        try:
            if message is not None:
                self.send_message(message)
        finally:
            self.sock.close()
            self.sock = None
            logger.info("disconnected")

    def add_listener(self, listener: Listener) -> None:
        self.listeners.append(listener)
        listener.register(self)

    def send_message(self, message: Message, reliable: bool = False) -> None:
        if self.sock is None:
            raise TransportError("not connected")
        try:
            self.sock.send(message.data)
        except OSError as e:
            raise TransportError(f"send failed: {e}") from e
        logger.debug(
            "sent %d bytes; connectionless=%s reliable=%s",
            len(message.data),
            message.connectionless,
            reliable,
        )

    def pump(self, bufsize: int = 65535) -> bool:
        """Dispatch at most one inbound datagram to the listeners."""
        if self.sock is None:
            raise TransportError("not connected")
        try:
            raw = self.sock.recv(bufsize)
        except TimeoutError:
            return False
        except ConnectionRefusedError:
            # ICMP port unreachable from an earlier send
            logger.debug("server port unreachable")
            return False

        message, msg_type = Message.from_datagram(raw)
        logger.debug(
            "received %d bytes; connectionless=%s type=%d",
            len(raw),
            message.connectionless,
            msg_type,
        )
        for listener in list(self.listeners):
            listener.receive(message, msg_type)
        return True
