# SPDX-License-Identifier: AGPL-3.0

"""
felt252 values and the string encodings layered on top of them.

Two encodings are understood:

 - short strings: up to 31 ASCII bytes packed into a single felt, most
   significant byte first (``'abc' == 0x616263``)
 - byte arrays: ``[BYTE_ARRAY_MAGIC, n, word_1, ..., word_n, pending, pending_len]``
   where every full word holds 31 bytes and the pending word holds the rest
"""

from typing import Any, TypeAlias

from .constants import BYTE_ARRAY_MAGIC, BYTES_IN_WORD, PRIME

Felt: TypeAlias = int

MAX_SHORT_STRING = 1 << (8 * BYTES_IN_WORD)


def is_printable_byte(byte: int) -> bool:
    return 0x20 <= byte <= 0x7E


def to_felt(x: Any) -> Felt:
    """Convert a python value to a field element."""
    if isinstance(x, bool):
        return int(x)

    if isinstance(x, int):
        return x % PRIME

    if isinstance(x, str):
        return encode_short_string(x)

    raise TypeError(f"cannot convert {type(x).__name__} to felt252: {x!r}")


def encode_short_string(text: str) -> Felt:
    try:
        data = text.encode("ascii")
    except UnicodeEncodeError as err:
        raise ValueError(f"short string must be ascii: {text!r}") from err

    if len(data) > BYTES_IN_WORD:
        raise ValueError(
            f"short string longer than {BYTES_IN_WORD} bytes ({len(data)}): {text!r}"
        )

    return int.from_bytes(data, "big")


def fits_short_string(text: str) -> bool:
    return text.isascii() and len(text) <= BYTES_IN_WORD


def decode_short_string(value: Felt) -> str | None:
    """
    Returns the text packed in value, or None if value is not a short string.

    A short string has between 1 and 31 bytes, all of them printable ASCII.
    """
    if value <= 0 or value >= MAX_SHORT_STRING:
        return None

    data = value.to_bytes(BYTES_IN_WORD, "big").lstrip(b"\x00")
    if not all(is_printable_byte(b) for b in data):
        return None

    return data.decode("ascii")


def encode_byte_array(text: str | bytes) -> list[Felt]:
    data = text.encode("utf-8") if isinstance(text, str) else text

    num_full_words, pending_len = divmod(len(data), BYTES_IN_WORD)
    full_len = num_full_words * BYTES_IN_WORD

    words = [
        int.from_bytes(data[i : i + BYTES_IN_WORD], "big")
        for i in range(0, full_len, BYTES_IN_WORD)
    ]
    pending_word = int.from_bytes(data[full_len:], "big")

    return [BYTE_ARRAY_MAGIC, num_full_words, *words, pending_word, pending_len]


def decode_byte_array(values: list[Felt], start: int = 0) -> tuple[str, int] | None:
    """
    Try to decode a serialized byte array starting at values[start].

    Returns the decoded text and the number of values consumed, or None if the
    values at that position do not form a valid, printable byte array.
    """
    if start >= len(values) or values[start] != BYTE_ARRAY_MAGIC:
        return None

    # magic, length, pending word, pending length
    if len(values) - start < 4:
        return None

    num_full_words = values[start + 1]
    consumed = 4 + num_full_words
    if len(values) - start < consumed:
        return None

    words = values[start + 2 : start + 2 + num_full_words]
    pending_word, pending_len = values[start + 2 + num_full_words : start + consumed]

    if pending_len >= BYTES_IN_WORD:
        return None

    if any(word >= MAX_SHORT_STRING for word in words):
        return None

    if pending_word >= 1 << (8 * pending_len):
        return None

    data = b"".join(word.to_bytes(BYTES_IN_WORD, "big") for word in words)
    data += pending_word.to_bytes(pending_len, "big")

    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError:
        return None

    if not all(c.isprintable() or c in "\n\t" for c in text):
        return None

    return text, consumed


def encode_message(text: str) -> list[Felt]:
    """Short strings for messages that fit in a felt, byte arrays otherwise."""
    if text and fits_short_string(text):
        return [encode_short_string(text)]

    return encode_byte_array(text)


def flatten_felts(value: Any) -> list[Felt]:
    """
    Serialize a (possibly nested) python value into a flat list of felts.

    None serializes to nothing; tuples and lists serialize element by element.
    """
    if value is None:
        return []

    if isinstance(value, tuple | list):
        return [felt for item in value for felt in flatten_felts(item)]

    # same encoding as assertion messages and expected panic data
    if isinstance(value, str):
        return encode_message(value)

    return [to_felt(value)]

