from __future__ import annotations

import argparse
import json
import logging
import random
import time

from .connector import Connector
from .constants import DEFAULT_PORT, DEFAULT_TIMEOUT_MS, DEFAULT_WAIT_S, PROTOCOL_VERSION
from .errors import SrcnetError
from .message import Message
from .net import UdpClient
from .ticket import FileTicketProvider

logger = logging.getLogger(__name__)

DISCONNECT_REASON = "Disconnect by User."


def random_challenge() -> int:
    return random.randint(-(1 << 31), (1 << 31) - 1)


def cmd_connect(args: argparse.Namespace) -> int:
    tickets = FileTicketProvider(args.ticket_file, args.steam_id)
    connector = Connector(
        args.name,
        args.password,
        args.game_version,
        args.challenge if args.challenge is not None else random_challenge(),
        tickets,
        protocol_version=args.protocol_version,
    )

    client = UdpClient(timeout_ms=args.timeout_ms)
    client.connect(args.host, args.port)
    started = time.monotonic()
    try:
        client.add_listener(connector)
        client.send_message(connector.initial_message(), False)

        deadline = started + args.wait_s
        while not (connector.connected or connector.refused) and time.monotonic() < deadline:
            client.pump()
    finally:
        client.disconnect(Message.disconnect(DISCONNECT_REASON))

    payload = {
        "host": args.host,
        "port": args.port,
        "step": connector.connection_step.name,
        "connected": connector.connected,
        "refusal_reason": connector.refusal_reason,
        "seconds": round(time.monotonic() - started, 3),
    }
    print(json.dumps(payload, indent=2) if args.json else payload)
    if not connector.connected and not connector.refused:
        logger.error("handshake timed out; step=%s", connector.connection_step.name)
    return 0 if connector.connected else 1


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="srcnet", description="Source engine server connection handshake.")
    p.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])
    sub = p.add_subparsers(dest="cmd", required=True)

    connect = sub.add_parser("connect", help="run the handshake against a server")
    connect.add_argument("--host", required=True)
    connect.add_argument("--port", type=int, default=DEFAULT_PORT)
    connect.add_argument("--name", required=True, help="player name")
    connect.add_argument("--password", default="", help="server password")
    connect.add_argument("--game-version", required=True)
    connect.add_argument("--challenge", type=int, default=None, help="client challenge seed (random if omitted)")
    connect.add_argument("--steam-id", type=int, required=True)
    connect.add_argument("--ticket-file", required=True, help="file holding the raw authentication ticket")
    connect.add_argument("--protocol-version", type=int, default=PROTOCOL_VERSION)
    connect.add_argument("--timeout-ms", type=int, default=DEFAULT_TIMEOUT_MS, help="socket poll interval")
    connect.add_argument("--wait-s", type=float, default=DEFAULT_WAIT_S, help="give up after this many seconds")
    connect.add_argument("--json", action="store_true")
    connect.set_defaults(func=cmd_connect)

    return p


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format="%(asctime)s [%(levelname)s] %(message)s")
    try:
        return int(args.func(args))
    except SrcnetError as e:
        logger.error("%s", e)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
