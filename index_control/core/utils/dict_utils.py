from typing import Iterable, Mapping, Optional, Tuple


def _read_field(node: object, key: str) -> Optional[object]:
    """Return `node[key]` when `node` is a mapping holding `key`, else None."""
    if isinstance(node, Mapping) and key in node:
        return node[key]
    return None


def _read_variant(node: object, names: Iterable[str]) -> Optional[Tuple[str, object]]:
    """
    Read a contract enum encoded as a single-key object, e.g. `{"Ok": 1}` or
    `{"Charge": "0x10"}`. Returns `(variant, value)` for the first of `names`
    present in `node`, or None.
    """
    if not isinstance(node, Mapping):
        return None
    for name in names:
        if name in node:
            return name, node[name]
    return None


def _read_str_field(mapping: Mapping[str, object], key: str) -> Optional[str]:
    """Return a string field if present and non-empty."""
    value = _read_field(mapping, key)
    if isinstance(value, str) and value:
        return value
    return None


def _read_int_like_field(mapping: Mapping[str, object], key: str) -> Optional[int]:
    """
    Return an integer field if present. The gateway encodes balances and weights as
    ints, decimal strings or 0x-hex strings.
    """
    raw = _read_field(mapping, key)
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw
    if isinstance(raw, str):
        try:
            return int(raw, 16) if raw.startswith("0x") else int(raw)
        except ValueError:
            return None
    return None
