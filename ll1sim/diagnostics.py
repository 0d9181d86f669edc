from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import Iterable, List, Optional


class Severity(Enum):
	INFO = auto()
	WARNING = auto()
	ERROR = auto()


class IssueKind(Enum):
	# grammar structure
	NO_PRODUCTIONS = "no-productions"
	NO_TERMINALS = "no-terminals"
	NO_NON_TERMINALS = "no-non-terminals"
	NO_START_SYMBOL = "no-start-symbol"
	START_NOT_DECLARED = "start-not-declared"
	UNUSED_TERMINAL = "unused-terminal"
	UNUSED_NON_TERMINAL = "unused-non-terminal"
	UNDECLARED_ANTECEDENT = "undeclared-antecedent"
	UNDECLARED_SYMBOL = "undeclared-symbol"
	DUPLICATE_SYMBOL = "duplicate-symbol"
	# predictive table
	TABLE_CONFLICT = "table-conflict"
	UNKNOWN_ERROR_FUNCTION = "unknown-error-function"
	DUPLICATE_ERROR_FUNCTION = "duplicate-error-function"
	MISSING_ERROR_SYMBOL = "missing-error-symbol"
	UNKNOWN_CELL = "unknown-cell"
	OCCUPIED_CELL = "occupied-cell"
	# interchange document
	MALFORMED_RULE = "malformed-rule"
	RESERVED_SYMBOL = "reserved-symbol"


@dataclass(frozen=True)
class ValidationError:
	"""One problem found in a grammar or a table. Not an exception: these are collected and returned."""

	kind: IssueKind
	message: str
	symbol: Optional[str] = None
	severity: Severity = Severity.ERROR

	def __str__(self) -> str:
		return f"[{self.kind.value}] {self.message}"


class DiagnosticEngine:
	def __init__(self) -> None:
		self._items: List[ValidationError] = []

	@property
	def items(self) -> List[ValidationError]:
		return self._items

	@property
	def has_errors(self) -> bool:
		return any(d.severity is Severity.ERROR for d in self._items)

	def report(self, kind: IssueKind, message: str, symbol: Optional[str] = None, severity: Severity = Severity.ERROR) -> None:
		self._items.append(ValidationError(kind, message, symbol, severity))

	def extend(self, diagnostics: Iterable[ValidationError]) -> None:
		self._items.extend(diagnostics)

	def clear(self) -> None:
		self._items.clear()


class GrammarStructureError(Exception):
	def __init__(self, errors: List[ValidationError]) -> None:
		super().__init__("; ".join(e.message for e in errors) or "Invalid grammar")
		self.errors = errors


class NamingCollisionError(Exception):
	def __init__(self, name: str, antecedent: str) -> None:
		super().__init__(f"Cannot introduce '{name}' for '{antecedent}': the name is already in use.")
		self.name = name
		self.antecedent = antecedent


class GrammarDocumentError(Exception):
	pass
