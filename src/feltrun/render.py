# SPDX-License-Identifier: AGPL-3.0

from collections.abc import Iterable
from dataclasses import dataclass

from .felt import Felt, decode_byte_array, decode_short_string


@dataclass(frozen=True)
class FormattedItem:
    text: str
    is_string: bool = False
    quote: str = "'"

    def quote_if_string(self) -> str:
        return f"{self.quote}{self.text}{self.quote}" if self.is_string else self.text


def render_felt(value: Felt) -> str:
    return f"0x{value:x}"


def format_next_item(values: list[Felt], pos: int) -> tuple[FormattedItem, int]:
    """
    Format the item starting at values[pos].

    Returns the formatted item and the position of the next item.
    """
    if (decoded := decode_byte_array(values, pos)) is not None:
        text, consumed = decoded
        return FormattedItem(text, is_string=True, quote='"'), pos + consumed

    value = values[pos]
    if (text := decode_short_string(value)) is not None:
        return FormattedItem(text, is_string=True), pos + 1

    return FormattedItem(render_felt(value)), pos + 1


def format_items(values: Iterable[Felt]) -> list[FormattedItem]:
    values = list(values)
    items = []

    pos = 0
    while pos < len(values):
        item, pos = format_next_item(values, pos)
        items.append(item)

    return items


def format_panic_values(values: Iterable[Felt]) -> str:
    """
    Render a panic payload, e.g. `['Out of gas']` or `[0x1, 'oops']`.
    """
    rendered = ", ".join(item.quote_if_string() for item in format_items(values))
    return f"[{rendered}]"


def render_return_values(values: Iterable[Felt]) -> str:
    # return values are shown as raw numbers, never interpreted as strings
    return f"[{', '.join(str(v) for v in values)}]"


def render_memory(memory: Iterable[Felt | None]) -> str:
    cells = "".join("_, " if cell is None else f"{cell}, " for cell in memory)
    return f"Full memory: [{cells}]"
