from typing import Union


def to_hex(raw: Union[bytes, bytearray]) -> str:
    """Encode bytes as a lowercase 0x-prefixed hex string."""
    return "0x" + bytes(raw).hex()


def from_hex(value: Union[str, bytes, bytearray]) -> bytes:
    """
    Decode a 0x-prefixed (or bare) hex string into bytes.
    Bytes are returned unchanged.

    Raises:
        ValueError when the string is not valid hex.
    """
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    text = value.strip()
    hex_str = text[2:] if text.lower().startswith("0x") else text
    return bytes.fromhex(hex_str)
