"""Connectionless handshake with a Source engine server.

The exchange, seen from the client:

    q  ->                 query carrying our challenge
       <-  A              server challenge, our challenge echoed back
    k  ->                 credentials plus identity ticket
       <-  B              authentication accepted
    signon/settings ->    first connection-scoped packet

A `9` from the server at any point is a refusal with a reason string.
"""
from __future__ import annotations

import enum
import logging
import weakref

from .bitbuf import BitReader, BitWriter
from .constants import (
    MAX_REASON_LEN,
    NET_SIGNON_STATE,
    NET_STRING_CMD,
    NETMSG_TYPE_BITS,
    PROTOCOL_VERSION,
    S2C_CHALLENGE,
    S2C_CONNECTION,
    S2C_CONNREJECT,
    SCRATCH_BUFFER_SIZE,
    SIGNONSTATE_CONNECTED,
    STRING_CMD_BITS,
)
from .errors import DecodeError, NotRegisteredError
from .message import Message
from .net import UdpClient
from .ticket import TicketProvider

logger = logging.getLogger(__name__)

_INT32_MIN = -(1 << 31)
_INT32_MAX = (1 << 31) - 1

SIGNON_COMMANDS = ("VModEnable 1", "vban 0 0 0 0")


class ConnectionStep(enum.IntEnum):
    AWAITING_CHALLENGE = 1
    AUTHENTICATING = 2
    CONNECTED = 3


def build_signon_packet() -> Message:
    """Sign-on state update followed by the initial client string commands."""
    w = BitWriter(SCRATCH_BUFFER_SIZE)
    w.write_ubits(NET_SIGNON_STATE, NETMSG_TYPE_BITS)
    w.write_byte(SIGNONSTATE_CONNECTED)
    w.write_int32(-1)  # spawn count
    for command in SIGNON_COMMANDS:
        w.write_ubits(NET_STRING_CMD, STRING_CMD_BITS)
        w.write_string(command)
    return Message.generic(w.data())


class Connector:
    def __init__(
        self,
        player_name: str,
        password: str,
        game_version: str,
        client_challenge: int,
        tickets: TicketProvider,
        protocol_version: int = PROTOCOL_VERSION,
    ):
        if not _INT32_MIN <= client_challenge <= _INT32_MAX:
            raise ValueError(f"client challenge out of int32 range: {client_challenge}")
        self._player_name = player_name
        self._password = password
        self._game_version = game_version
        self.tickets = tickets
        self.protocol_version = protocol_version

        self.client_challenge = client_challenge
        self.server_challenge: int | None = None
        self.connection_step = ConnectionStep.AWAITING_CHALLENGE
        self.refusal_reason: str | None = None
        self._client: weakref.ReferenceType[UdpClient] | None = None

    @property
    def player_name(self) -> str:
        return self._player_name

    @property
    def password(self) -> str:
        return self._password

    @property
    def game_version(self) -> str:
        return self._game_version

    @property
    def connected(self) -> bool:
        return self.connection_step is ConnectionStep.CONNECTED

    @property
    def refused(self) -> bool:
        return self.refusal_reason is not None

    def register(self, client: UdpClient) -> None:
        # The client owns us, not the other way round.
        self._client = weakref.ref(client)

    def initial_message(self) -> Message:
        return Message.query(self.client_challenge)

    def receive(self, message: Message, msg_type: int = 0) -> None:
        if not message.connectionless:
            self._handle_connected(message, msg_type)

        # Connection-scoped packets come through here as well; the type byte
        # decides whether anything happens.
        self._handle_connectionless(message)

    def _send(self, message: Message) -> None:
        client = self._client() if self._client is not None else None
        if client is None:
            raise NotRegisteredError("connector has no live client to send through")
        client.send_message(message, False)

    def _handle_connectionless(self, message: Message) -> None:
        reader = BitReader(message.data)
        # Fail closed: a packet that cannot be read in full is dropped before
        # it touches any state.
        try:
            reader.read_int32()  # connectionless header
            packet_type = reader.read_uint8()
            if packet_type == S2C_CHALLENGE:
                self._on_challenge(reader)
            elif packet_type == S2C_CONNECTION:
                self._on_connection()
            elif packet_type == S2C_CONNREJECT:
                self._on_reject(reader)
        except DecodeError as e:
            logger.debug("dropping unreadable packet; len=%d error=%s", len(message.data), e)

    def _on_challenge(self, reader: BitReader) -> None:
        reader.read_int32()  # reserved
        server_challenge = reader.read_int32()
        client_challenge = reader.read_int32()

        if self.connection_step is not ConnectionStep.AWAITING_CHALLENGE:
            # Not guarded by state: a late challenge restarts authentication.
            logger.warning(
                "challenge received while %s; re-authenticating",
                self.connection_step.name,
            )

        steam_id = self.tickets.steam_id()
        ticket = self.tickets.create_ticket()
        self._send(
            Message.connect(
                client_challenge,
                server_challenge,
                self._player_name,
                self._password,
                self._game_version,
                steam_id,
                ticket,
                protocol_version=self.protocol_version,
            )
        )
        self.server_challenge = server_challenge
        self.client_challenge = client_challenge
        self.connection_step = ConnectionStep.AUTHENTICATING
        logger.info(
            "challenge answered; server_challenge=%d client_challenge=%d",
            server_challenge,
            client_challenge,
        )

    def _on_connection(self) -> None:
        if self.connection_step is not ConnectionStep.AUTHENTICATING:
            logger.debug("ignoring connection ack while %s", self.connection_step.name)
            return
        logger.info("connected successfully")
        self._send(build_signon_packet())
        self.connection_step = ConnectionStep.CONNECTED

    def _on_reject(self, reader: BitReader) -> None:
        reader.read_int32()
        reason = reader.read_string(MAX_REASON_LEN)
        self.refusal_reason = reason
        logger.warning("connection refused; reason=%s", reason)

    def _handle_connected(self, message: Message, msg_type: int) -> None:
        if msg_type != NET_SIGNON_STATE:
            return
        # TODO: answer server sign-on state changes (new, prespawn, spawn)
        # once the netchannel layer exists.
        logger.debug("sign-on state message; len=%d", len(message.data))
