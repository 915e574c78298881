"""Per-column width tracking for aligned text output."""

from __future__ import annotations

from typing import Iterable, Sequence


class WidthState:
    """
    Widest rendered value seen so far in each column.

    Widths only ever grow for the lifetime of the run; lines already written
    are never re-padded.
    """

    def __init__(self, columns: int = 0):
        self.widths: list[int] = [0] * columns

    def __len__(self) -> int:
        return len(self.widths)

    def __repr__(self) -> str:
        return f"WidthState({self.widths!r})"

    def resize(self, columns: int) -> None:
        """Match a new column count; surviving columns keep their widths."""
        if columns < len(self.widths):
            del self.widths[columns:]
        else:
            self.widths.extend([0] * (columns - len(self.widths)))

    def update(self, lines: Iterable[Sequence[str]]) -> list[int]:
        for line in lines:
            for i, cell in enumerate(line[: len(self.widths)]):
                if len(cell) > self.widths[i]:
                    self.widths[i] = len(cell)
        return self.widths
