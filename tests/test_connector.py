from __future__ import annotations

import gc
import logging
import struct

import pytest

from srcnet.bitbuf import BitReader
from srcnet.connector import ConnectionStep, Connector, build_signon_packet
from srcnet.errors import NotRegisteredError, TicketError
from srcnet.message import Message
from srcnet.ticket import StaticTicketProvider

STEAM_ID = 76561197960287930
TICKET = b"\x14\x00\x00\x00" + b"\xab" * 16


class RecordingClient:
    def __init__(self):
        self.sent: list[tuple[Message, bool]] = []

    def send_message(self, message: Message, reliable: bool = False) -> None:
        self.sent.append((message, reliable))


def connectionless(type_code: str, body: bytes = b"") -> Message:
    return Message(struct.pack("<ib", -1, ord(type_code)) + body, connectionless=True)


def challenge(server_challenge: int, client_challenge: int) -> Message:
    return connectionless("A", struct.pack("<iii", 0x5A4F4933, server_challenge, client_challenge))


def refusal(reason: bytes) -> Message:
    return connectionless("9", struct.pack("<i", 0) + reason + b"\x00")


def make_connector(client_challenge: int = 167679079, tickets=None) -> tuple[Connector, RecordingClient]:
    c = Connector(
        "DormantLemon",
        "devowari",
        "4630212",
        client_challenge,
        tickets or StaticTicketProvider(STEAM_ID, TICKET),
    )
    client = RecordingClient()
    c.register(client)
    return c, client


def test_new_connector():
    c, _ = make_connector()
    assert c.connection_step is ConnectionStep.AWAITING_CHALLENGE
    assert c.client_challenge == 167679079
    assert c.server_challenge is None
    assert c.player_name == "DormantLemon"
    assert c.password == "devowari"
    assert c.game_version == "4630212"
    assert not c.connected
    assert not c.refused


def test_challenge_out_of_range():
    with pytest.raises(ValueError):
        Connector("p", "", "1", 1 << 31, StaticTicketProvider(STEAM_ID, TICKET))


@pytest.mark.parametrize("seed", [0, 1, -1, 167679079, (1 << 31) - 1, -(1 << 31)])
def test_initial_message_encodes_challenge(seed):
    c, client = make_connector(seed)
    m = c.initial_message()
    assert m.connectionless is True
    r = BitReader(m.data)
    assert r.read_int32() == -1
    assert r.read_uint8() == ord("q")
    assert r.read_int32() == seed
    assert client.sent == []


def test_challenge_ack_sends_connect():
    c, client = make_connector()
    c.receive(challenge(42, 555), 0)

    assert c.server_challenge == 42
    assert c.client_challenge == 555
    assert c.connection_step is ConnectionStep.AUTHENTICATING
    assert len(client.sent) == 1

    msg, reliable = client.sent[0]
    assert reliable is False
    assert msg == Message.connect(555, 42, "DormantLemon", "devowari", "4630212", STEAM_ID, TICKET)


def test_full_handshake():
    c, client = make_connector(167679079)
    c.receive(challenge(42, 167679079), 0)
    assert c.connection_step is ConnectionStep.AUTHENTICATING
    assert c.server_challenge == 42

    c.receive(connectionless("B"), 0)
    assert c.connection_step is ConnectionStep.CONNECTED
    assert c.connected
    assert len(client.sent) == 2
    assert client.sent[1] == (build_signon_packet(), False)


def test_signon_packet_layout():
    m = build_signon_packet()
    assert m.connectionless is False
    assert len(m.data) == 33

    r = BitReader(m.data)
    assert r.read_ubits(6) == 6
    assert r.read_uint8() == 2
    assert r.read_int32() == -1
    assert r.read_ubits(4) == 4
    assert r.read_bytes(13) == b"VModEnable 1\x00"
    assert r.read_ubits(4) == 4
    assert r.read_bytes(13) == b"vban 0 0 0 0\x00"
    assert r.bits_remaining < 8


def test_second_connection_ack_is_ignored():
    c, client = make_connector()
    c.receive(challenge(1, 2), 0)
    c.receive(connectionless("B"), 0)
    c.receive(connectionless("B"), 0)
    assert c.connection_step is ConnectionStep.CONNECTED
    assert len(client.sent) == 2


def test_connection_ack_before_challenge_is_ignored():
    c, client = make_connector()
    c.receive(connectionless("B"), 0)
    assert c.connection_step is ConnectionStep.AWAITING_CHALLENGE
    assert client.sent == []


@pytest.mark.parametrize("step", list(ConnectionStep))
def test_refusal_keeps_state(step, caplog):
    c, client = make_connector()
    c.connection_step = step
    with caplog.at_level(logging.WARNING, logger="srcnet.connector"):
        c.receive(refusal(b"Bad password."), 0)
    assert c.connection_step is step
    assert c.refusal_reason == "Bad password."
    assert c.refused
    assert client.sent == []
    assert "Bad password." in caplog.text


def test_refusal_reason_truncated():
    c, _ = make_connector()
    c.receive(refusal(b"r" * 1500), 0)
    assert c.refusal_reason == "r" * 1024


@pytest.mark.parametrize("step", list(ConnectionStep))
def test_unknown_type_is_ignored(step):
    c, client = make_connector()
    c.connection_step = step
    c.receive(connectionless("Z", b"\x00" * 16), 0)
    assert c.connection_step is step
    assert c.server_challenge is None
    assert client.sent == []


def test_truncated_challenge_is_dropped():
    c, client = make_connector()
    c.receive(connectionless("A", struct.pack("<ii", 0, 42)), 0)
    assert c.connection_step is ConnectionStep.AWAITING_CHALLENGE
    assert c.server_challenge is None
    assert c.client_challenge == 167679079
    assert client.sent == []


def test_short_packet_is_dropped():
    c, client = make_connector()
    c.receive(Message(b"\xff\xff"), 0)
    c.receive(Message(b"", connectionless=True), 0)
    assert c.connection_step is ConnectionStep.AWAITING_CHALLENGE
    assert client.sent == []


def test_late_challenge_reauthenticates(caplog):
    c, client = make_connector()
    c.receive(challenge(1, 2), 0)
    c.receive(connectionless("B"), 0)
    with caplog.at_level(logging.WARNING, logger="srcnet.connector"):
        c.receive(challenge(3, 4), 0)
    assert c.connection_step is ConnectionStep.AUTHENTICATING
    assert c.server_challenge == 3
    assert c.client_challenge == 4
    assert len(client.sent) == 3
    assert "re-authenticating" in caplog.text


def test_connected_message_goes_through_both_handlers():
    c, client = make_connector()
    # connection-scoped bytes that still read as a challenge ack
    c.receive(Message(challenge(9, 10).data, connectionless=False), 6)
    assert c.connection_step is ConnectionStep.AUTHENTICATING
    assert len(client.sent) == 1


def test_signon_state_hook_is_noop():
    c, client = make_connector()
    c.receive(Message(b"\x06\x02"), 6)
    c.receive(Message(b"\x01"), 1)
    assert c.connection_step is ConnectionStep.AWAITING_CHALLENGE
    assert client.sent == []


def test_ticket_failure_propagates():
    c, client = make_connector(tickets=StaticTicketProvider(STEAM_ID, b""))
    with pytest.raises(TicketError):
        c.receive(challenge(42, 1), 0)
    assert c.connection_step is ConnectionStep.AWAITING_CHALLENGE
    assert c.server_challenge is None
    assert client.sent == []


def test_unregistered_connector_cannot_send():
    c = Connector("p", "", "1", 5, StaticTicketProvider(STEAM_ID, TICKET))
    with pytest.raises(NotRegisteredError):
        c.receive(challenge(42, 5), 0)


def test_client_reference_is_weak():
    c, client = make_connector()
    del client
    gc.collect()
    with pytest.raises(NotRegisteredError):
        c.receive(challenge(42, 5), 0)
    assert c.connection_step is ConnectionStep.AWAITING_CHALLENGE
