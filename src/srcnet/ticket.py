from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from .errors import TicketError

_UINT64_MAX = (1 << 64) - 1


class TicketProvider(Protocol):
    def steam_id(self) -> int: ...

    def create_ticket(self) -> bytes: ...


def _check_steam_id(steam_id: int) -> None:
    if not 0 <= steam_id <= _UINT64_MAX:
        raise ValueError(f"steam id out of range: {steam_id}")


@dataclass(frozen=True, slots=True)
class StaticTicketProvider:
    sid: int
    ticket: bytes

    def __post_init__(self) -> None:
        _check_steam_id(self.sid)

    def steam_id(self) -> int:
        return self.sid

    def create_ticket(self) -> bytes:
        if not self.ticket:
            raise TicketError("no authentication ticket configured")
        return bytes(self.ticket)


@dataclass(frozen=True, slots=True)
class FileTicketProvider:
    """Ticket bytes exported by a running client, re-read on every request."""

    path: Path
    sid: int

    def __post_init__(self) -> None:
        _check_steam_id(self.sid)

    def steam_id(self) -> int:
        return self.sid

    def create_ticket(self) -> bytes:
        try:
            ticket = Path(self.path).read_bytes()
        except OSError as e:
            raise TicketError(f"cannot read ticket file {self.path}: {e}") from e
        if not ticket:
            raise TicketError(f"ticket file {self.path} is empty")
        return ticket
