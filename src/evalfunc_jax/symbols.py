"""Symbol tables consulted by the tokenizer."""

from __future__ import annotations

from dataclasses import dataclass, field
from numbers import Number


class Cell:
    """Mutable numeric cell shared between a host and compiled programs.

    Programs hold a non-owning reference and read `value` on every
    evaluation. The cell must outlive every program that references it.
    """

    __slots__ = ("value",)

    def __init__(self, value: float | complex = 0.0) -> None:
        self.value = value

    def __repr__(self) -> str:
        return f"Cell({self.value!r})"


@dataclass(frozen=True)
class Argument:
    """Declared shape of an input argument: 1-based slot, width, complex flag."""

    slot: int
    width: int = 1
    is_complex: bool = False

    def __post_init__(self) -> None:
        if self.slot < 1:
            raise ValueError(f"argument slot must be >= 1, got {self.slot}")
        if self.width < 1:
            raise ValueError(f"argument width must be >= 1, got {self.width}")

    @property
    def slots(self) -> range:
        return range(self.slot, self.slot + self.width)


@dataclass
class SymbolTables:
    constants: dict[str, Number] = field(default_factory=dict)
    variables: dict[str, Cell] = field(default_factory=dict)
    arguments: dict[str, Argument] = field(default_factory=dict)

    def copy(self) -> "SymbolTables":
        return SymbolTables(
            constants=dict(self.constants),
            variables=dict(self.variables),
            arguments=dict(self.arguments),
        )

    def slot_names(self) -> dict[int, str]:
        """Map each argument slot to a display name such as `v[2]`."""
        names: dict[int, str] = {}
        for name, arg in self.arguments.items():
            if arg.width == 1:
                names[arg.slot] = name
                continue
            for offset, slot in enumerate(arg.slots):
                names[slot] = f"{name}[{offset}]"
        return names

    def cell_names(self) -> dict[int, str]:
        return {id(cell): name for name, cell in self.variables.items()}
