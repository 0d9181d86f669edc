from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import Iterable, Tuple

EPS = "ε"
EOF = "$"
ARROW = "→"

RESERVED = frozenset({EPS, EOF})


class SymbolKind(Enum):
	TERMINAL = auto()
	NON_TERMINAL = auto()
	EPSILON = auto()
	END = auto()


@dataclass(frozen=True)
class Symbol:
	name: str
	kind: SymbolKind

	@property
	def is_terminal(self) -> bool:
		return self.kind is SymbolKind.TERMINAL

	@property
	def is_non_terminal(self) -> bool:
		return self.kind is SymbolKind.NON_TERMINAL

	@property
	def is_epsilon(self) -> bool:
		return self.kind is SymbolKind.EPSILON

	def __str__(self) -> str:
		return self.name


EPSILON = Symbol(EPS, SymbolKind.EPSILON)
END = Symbol(EOF, SymbolKind.END)


def terminal(name: str) -> Symbol:
	return Symbol(name, SymbolKind.TERMINAL)


def non_terminal(name: str) -> Symbol:
	return Symbol(name, SymbolKind.NON_TERMINAL)


@dataclass(frozen=True)
class Production:
	antecedent: Symbol
	consequent: Tuple[Symbol, ...]

	def __post_init__(self) -> None:
		if len(self.consequent) == 0:
			object.__setattr__(self, "consequent", (EPSILON,))

	@property
	def lhs(self) -> str:
		return self.antecedent.name

	@property
	def rhs(self) -> Tuple[str, ...]:
		return tuple(s.name for s in self.consequent)

	@property
	def first_symbol(self) -> Symbol:
		return self.consequent[0]

	@property
	def is_epsilon(self) -> bool:
		return len(self.consequent) == 1 and self.consequent[0].is_epsilon

	def __str__(self) -> str:
		return f"{self.lhs} {ARROW} " + " ".join(self.rhs)


def split_production_text(text: str) -> Tuple[str, Tuple[str, ...]]:
	"""
	Split a display string such as ``E → T E'`` into ``("E", ("T", "E'"))``.

	Both the display arrow and the ASCII ``->`` are accepted.
	"""
	sep = ARROW if ARROW in text else "->"
	if sep not in text:
		raise ValueError(f"Invalid production (missing '{ARROW}'): {text}")
	lhs, rhs = text.split(sep, 1)
	lhs = lhs.strip()
	if not lhs:
		raise ValueError(f"Invalid production (empty left-hand side): {text}")
	syms = tuple(t for t in rhs.split() if t)
	return lhs, syms if syms else (EPS,)


def format_symbols(symbols: Iterable[str]) -> str:
	return " ".join(symbols)
