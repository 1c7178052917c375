from __future__ import annotations

import struct
from dataclasses import dataclass

from .bitbuf import BitReader, BitWriter
from .constants import (
    AUTH_PROTOCOL_STEAM,
    C2S_CONNECT,
    C2S_QUERY,
    CONNECTIONLESS_HEADER,
    NET_DISCONNECT,
    NETMSG_TYPE_BITS,
    PROTOCOL_VERSION,
    QUERY_PADDING,
    STEAM_ID_LEN,
)

_HEADER = struct.pack("<i", CONNECTIONLESS_HEADER)


@dataclass(frozen=True, slots=True)
class Message:
    data: bytes
    connectionless: bool = False

    @staticmethod
    def query(challenge: int) -> "Message":
        w = BitWriter()
        w.write_int32(CONNECTIONLESS_HEADER)
        w.write_byte(C2S_QUERY)
        w.write_int32(challenge)
        w.write_string(QUERY_PADDING)
        return Message(w.data(), connectionless=True)

    @staticmethod
    def connect(
        client_challenge: int,
        server_challenge: int,
        player_name: str,
        password: str,
        game_version: str,
        steam_id: int,
        ticket: bytes,
        protocol_version: int = PROTOCOL_VERSION,
    ) -> "Message":
        """Authenticated connect request answering a server challenge."""
        w = BitWriter()
        w.write_int32(CONNECTIONLESS_HEADER)
        w.write_byte(C2S_CONNECT)
        w.write_int32(protocol_version)
        w.write_int32(AUTH_PROTOCOL_STEAM)
        w.write_int32(server_challenge)
        w.write_int32(client_challenge)
        w.write_string(player_name)
        w.write_string(password)
        w.write_string(game_version)
        # length covers the steam id in front of the ticket
        w.write_int16(len(ticket) + STEAM_ID_LEN)
        w.write_uint64(steam_id)
        w.write_bytes(ticket)
        return Message(w.data(), connectionless=True)

    @staticmethod
    def disconnect(reason: str) -> "Message":
        w = BitWriter()
        w.write_ubits(NET_DISCONNECT, NETMSG_TYPE_BITS)
        w.write_string(reason)
        return Message(w.data())

    @staticmethod
    def generic(data: bytes) -> "Message":
        return Message(bytes(data))

    @staticmethod
    def from_datagram(raw: bytes) -> tuple["Message", int]:
        """Classify an inbound datagram.

        Returns the message and its sub-type. Connectionless datagrams always
        carry sub-type 0; connection-scoped ones carry their leading 6-bit tag.
        """
        if raw[:4] == _HEADER:
            return Message(bytes(raw), connectionless=True), 0
        if not raw:
            return Message(b""), 0
        msg_type = BitReader(raw).read_ubits(NETMSG_TYPE_BITS)
        return Message(bytes(raw)), msg_type
