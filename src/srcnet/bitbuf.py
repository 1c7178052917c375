"""Bit-level packet buffers.

Bits are packed least-significant first into each byte, so byte-aligned
multi-byte integers come out little endian. This matches the engine's
bf_write/bf_read layout and lets 6-bit message tags sit directly in front
of byte fields without padding.
"""
from __future__ import annotations

from .constants import SCRATCH_BUFFER_SIZE
from .errors import BufferOverflowError, DecodeError

MAX_FIELD_BITS = 64


def _check_width(bits: int) -> None:
    if not 1 <= bits <= MAX_FIELD_BITS:
        raise ValueError(f"bit width must be 1..{MAX_FIELD_BITS}, got {bits}")


def _check_signed(value: int, bits: int) -> None:
    lo = -(1 << (bits - 1))
    hi = (1 << (bits - 1)) - 1
    if not lo <= value <= hi:
        raise ValueError(f"{value} does not fit in a signed {bits}-bit field")


def _to_signed(value: int, bits: int) -> int:
    if value & (1 << (bits - 1)):
        return value - (1 << bits)
    return value


class BitWriter:
    def __init__(self, capacity: int = SCRATCH_BUFFER_SIZE):
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self._buf = bytearray(capacity)
        self._capacity_bits = capacity * 8
        self._pos = 0

    @property
    def bits_written(self) -> int:
        return self._pos

    def _reserve(self, bits: int) -> None:
        if self._pos + bits > self._capacity_bits:
            raise BufferOverflowError(
                f"write of {bits} bits overflows buffer "
                f"({self._pos}/{self._capacity_bits} bits used)"
            )

    def write_ubits(self, value: int, bits: int) -> None:
        """Append `value` as an unsigned integer of exactly `bits` bits."""
        _check_width(bits)
        if value < 0 or value >> bits:
            raise ValueError(f"{value} does not fit in an unsigned {bits}-bit field")
        self._reserve(bits)
        pos = self._pos
        for i in range(bits):
            if (value >> i) & 1:
                p = pos + i
                self._buf[p >> 3] |= 1 << (p & 7)
        self._pos += bits

    def write_byte(self, value: int) -> None:
        self.write_ubits(value, 8)

    def write_int16(self, value: int) -> None:
        _check_signed(value, 16)
        self.write_ubits(value & 0xFFFF, 16)

    def write_int32(self, value: int) -> None:
        _check_signed(value, 32)
        self.write_ubits(value & 0xFFFFFFFF, 32)

    def write_uint64(self, value: int) -> None:
        self.write_ubits(value, 64)

    def write_bytes(self, data: bytes) -> None:
        self._reserve(len(data) * 8)
        if self._pos % 8 == 0:
            start = self._pos >> 3
            self._buf[start : start + len(data)] = data
            self._pos += len(data) * 8
            return
        for b in data:
            self.write_ubits(b, 8)

    def write_string(self, text: str | bytes) -> None:
        """Append `text` followed by a terminating NUL byte."""
        raw = text.encode("utf-8") if isinstance(text, str) else bytes(text)
        if b"\x00" in raw:
            raise ValueError("string must not contain NUL bytes")
        self.write_bytes(raw + b"\x00")

    def data(self) -> bytes:
        return bytes(self._buf[: (self._pos + 7) // 8])


class BitReader:
    def __init__(self, data: bytes):
        self._data = bytes(data)
        self._len_bits = len(self._data) * 8
        self._pos = 0

    @property
    def bits_remaining(self) -> int:
        return self._len_bits - self._pos

    def read_ubits(self, bits: int) -> int:
        _check_width(bits)
        if bits > self.bits_remaining:
            raise DecodeError(f"need {bits} bits, only {self.bits_remaining} left")
        value = 0
        pos = self._pos
        for i in range(bits):
            p = pos + i
            if (self._data[p >> 3] >> (p & 7)) & 1:
                value |= 1 << i
        self._pos += bits
        return value

    def read_uint8(self) -> int:
        return self.read_ubits(8)

    def read_int16(self) -> int:
        return _to_signed(self.read_ubits(16), 16)

    def read_int32(self) -> int:
        return _to_signed(self.read_ubits(32), 32)

    def read_uint64(self) -> int:
        return self.read_ubits(64)

    def read_bytes(self, n: int) -> bytes:
        if n < 0:
            raise ValueError("n must be non-negative")
        if n * 8 > self.bits_remaining:
            raise DecodeError(f"need {n} bytes, only {self.bits_remaining // 8} left")
        if self._pos % 8 == 0:
            start = self._pos >> 3
            self._pos += n * 8
            return self._data[start : start + n]
        return bytes(self.read_ubits(8) for _ in range(n))

    def read_string(self, max_length: int) -> str:
        """Read a NUL-terminated string of at most `max_length` bytes.

        A string longer than `max_length` is cut there and the rest is left
        unread. Running out of data also ends the string.
        """
        if max_length <= 0:
            raise ValueError("max_length must be positive")
        out = bytearray()
        while len(out) < max_length and self.bits_remaining >= 8:
            b = self.read_uint8()
            if b == 0:
                break
            out.append(b)
        return out.decode("utf-8", errors="replace")
