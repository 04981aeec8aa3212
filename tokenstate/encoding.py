"""Text encodings for public keys (bech32 addresses) and 32-byte identifiers (cb58)."""

from __future__ import annotations

import hashlib
from collections.abc import Iterable, Sequence

PUBLIC_KEY_LEN = 32
ID_LEN = 32

_BECH32_CHARSET = "qpzry9x8gf2tvdw0s3jn54khce6mua7l"
_BECH32_GENERATOR = (0x3B6A57B2, 0x26508E6D, 0x1EA119FA, 0x3D4233DD, 0x2A1462B3)
_BECH32_MAX_LENGTH = 90
_CHECKSUM_WORDS = 6

_BASE58_ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
_CB58_CHECKSUM_LEN = 4


class AddressError(ValueError):
    """Raised when an address cannot be formatted or parsed."""


def _polymod(values: Iterable[int]) -> int:
    chk = 1
    for value in values:
        top = chk >> 25
        chk = ((chk & 0x1FFFFFF) << 5) ^ value
        for bit, generator in enumerate(_BECH32_GENERATOR):
            if (top >> bit) & 1:
                chk ^= generator
    return chk


def _hrp_expand(hrp: str) -> list[int]:
    return [ord(c) >> 5 for c in hrp] + [0] + [ord(c) & 31 for c in hrp]


def _convert_bits(data: Iterable[int], from_bits: int, to_bits: int, pad: bool) -> list[int]:
    acc = 0
    bits = 0
    out: list[int] = []
    max_value = (1 << to_bits) - 1
    for value in data:
        if value < 0 or value >> from_bits:
            raise AddressError(f"invalid data value {value}")
        acc = (acc << from_bits) | value
        bits += from_bits
        while bits >= to_bits:
            bits -= to_bits
            out.append((acc >> bits) & max_value)
    if pad:
        if bits:
            out.append((acc << (to_bits - bits)) & max_value)
    elif bits >= from_bits or ((acc << (to_bits - bits)) & max_value):
        raise AddressError("invalid padding in address data")
    return out


def _bech32_encode(hrp: str, data: Sequence[int]) -> str:
    values = _hrp_expand(hrp) + list(data)
    polymod = _polymod(values + [0] * _CHECKSUM_WORDS) ^ 1
    checksum = [(polymod >> 5 * (5 - i)) & 31 for i in range(_CHECKSUM_WORDS)]
    return hrp + "1" + "".join(_BECH32_CHARSET[d] for d in [*data, *checksum])


def _bech32_decode(text: str) -> tuple[str, list[int]]:
    if len(text) > _BECH32_MAX_LENGTH:
        raise AddressError("address is too long")
    if any(ord(c) < 33 or ord(c) > 126 for c in text):
        raise AddressError("address contains invalid characters")
    if text.lower() != text and text.upper() != text:
        raise AddressError("address has mixed case")
    text = text.lower()
    separator = text.rfind("1")
    if separator < 1 or separator + _CHECKSUM_WORDS + 1 > len(text):
        raise AddressError("address has an invalid separator position")
    hrp = text[:separator]
    try:
        data = [_BECH32_CHARSET.index(c) for c in text[separator + 1 :]]
    except ValueError as exc:
        raise AddressError("address contains invalid data characters") from exc
    if _polymod(_hrp_expand(hrp) + data) != 1:
        raise AddressError("address checksum is invalid")
    return hrp, data[:-_CHECKSUM_WORDS]


def address(public_key: bytes, hrp: str) -> str:
    """Format a 32-byte public key as a bech32 address with the given prefix."""
    public_key = bytes(public_key)
    if len(public_key) != PUBLIC_KEY_LEN:
        raise AddressError(f"public key must be {PUBLIC_KEY_LEN} bytes, got {len(public_key)}")
    return _bech32_encode(hrp, _convert_bits(public_key, 8, 5, pad=True))


def parse_address(text: str, hrp: str) -> bytes:
    """Parse a bech32 address, checking its prefix, and return the public key."""
    decoded_hrp, data = _bech32_decode(text)
    if decoded_hrp != hrp:
        raise AddressError(f"expected hrp {hrp!r}, got {decoded_hrp!r}")
    payload = bytes(_convert_bits(data, 5, 8, pad=False))
    if len(payload) != PUBLIC_KEY_LEN:
        raise AddressError(f"public key must be {PUBLIC_KEY_LEN} bytes, got {len(payload)}")
    return payload


def _base58_encode(raw: bytes) -> str:
    number = int.from_bytes(raw, "big")
    chars: list[str] = []
    while number:
        number, remainder = divmod(number, 58)
        chars.append(_BASE58_ALPHABET[remainder])
    leading = len(raw) - len(raw.lstrip(b"\x00"))
    return "1" * leading + "".join(reversed(chars))


def _base58_decode(text: str) -> bytes:
    number = 0
    for char in text:
        digit = _BASE58_ALPHABET.find(char)
        if digit < 0:
            raise ValueError(f"invalid base58 character {char!r}")
        number = number * 58 + digit
    body = number.to_bytes((number.bit_length() + 7) // 8, "big") if number else b""
    leading = len(text) - len(text.lstrip("1"))
    return b"\x00" * leading + body


def _cb58_checksum(raw: bytes) -> bytes:
    return hashlib.sha256(raw).digest()[-_CB58_CHECKSUM_LEN:]


def encode_id(raw: bytes) -> str:
    """Encode a 32-byte identifier as cb58 text."""
    raw = bytes(raw)
    if len(raw) != ID_LEN:
        raise ValueError(f"identifier must be {ID_LEN} bytes, got {len(raw)}")
    return _base58_encode(raw + _cb58_checksum(raw))


def decode_id(text: str) -> bytes:
    """Decode cb58 text into a 32-byte identifier."""
    decoded = _base58_decode(text)
    if len(decoded) < _CB58_CHECKSUM_LEN:
        raise ValueError("encoded identifier is too short")
    raw, checksum = decoded[:-_CB58_CHECKSUM_LEN], decoded[-_CB58_CHECKSUM_LEN:]
    if _cb58_checksum(raw) != checksum:
        raise ValueError("identifier checksum is invalid")
    if len(raw) != ID_LEN:
        raise ValueError(f"identifier must be {ID_LEN} bytes, got {len(raw)}")
    return raw