from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

from ll1sim.diagnostics import DiagnosticEngine, IssueKind, Severity, ValidationError
from ll1sim.grammar import Grammar
from ll1sim.sets import ensure_sets, first_of_production
from ll1sim.symbols import EOF, EPS, Production

logger = logging.getLogger(__name__)


class ErrorAction(Enum):
	TERMINATE_ANALYSIS = "terminate-analysis"
	DELETE_INPUT = "delete-input"
	INSERT_INPUT = "insert-input"
	MODIFY_INPUT = "modify-input"
	INSERT_STACK = "insert-stack"
	DELETE_STACK = "delete-stack"
	MODIFY_STACK = "modify-stack"

	@property
	def needs_symbol(self) -> bool:
		return self in _NEEDS_SYMBOL


_NEEDS_SYMBOL = frozenset(
	{ErrorAction.INSERT_INPUT, ErrorAction.MODIFY_INPUT, ErrorAction.INSERT_STACK, ErrorAction.MODIFY_STACK}
)

_DESCRIPTIONS: Dict[ErrorAction, str] = {
	ErrorAction.TERMINATE_ANALYSIS: "Terminate the analysis",
	ErrorAction.DELETE_INPUT: "Delete the current input symbol",
	ErrorAction.INSERT_INPUT: "Insert a symbol into the input",
	ErrorAction.MODIFY_INPUT: "Replace the current input symbol",
	ErrorAction.INSERT_STACK: "Push a symbol onto the stack",
	ErrorAction.DELETE_STACK: "Pop the top of the stack",
	ErrorAction.MODIFY_STACK: "Replace the top of the stack",
}


@dataclass(frozen=True)
class ErrorFunction:
	"""An operator-defined recovery action placed in an otherwise empty table cell."""

	identifier: str
	action: ErrorAction
	symbol: Optional[str] = None
	message: Optional[str] = None

	def describe(self) -> str:
		if self.message:
			return self.message
		text = _DESCRIPTIONS[self.action]
		if self.symbol and self.action.needs_symbol:
			text += f": {self.symbol}"
		return text

	def __str__(self) -> str:
		return f"{self.identifier}: {self.describe()}"


Entry = Union[Production, ErrorFunction]


class PredictiveTable:
	def __init__(self, non_terminals: Sequence[str], terminals: Sequence[str]) -> None:
		self.non_terminals: List[str] = list(non_terminals)
		self.terminals: List[str] = [t for t in terminals if t != EOF] + [EOF]
		self._cells: Dict[str, Dict[str, Entry]] = {nt: {} for nt in self.non_terminals}
		self.error_functions: Dict[str, ErrorFunction] = {}
		self.conflicts: List[ValidationError] = []
		self.issues: List[ValidationError] = []

	def get(self, non_terminal: str, terminal: str) -> Optional[Entry]:
		return self._cells.get(non_terminal, {}).get(terminal)

	def production(self, non_terminal: str, terminal: str) -> Optional[Production]:
		entry = self.get(non_terminal, terminal)
		return entry if isinstance(entry, Production) else None

	def has_cell(self, non_terminal: str, terminal: str) -> bool:
		return non_terminal in self._cells and terminal in self.terminals

	def put(self, non_terminal: str, terminal: str, entry: Entry) -> Optional[Entry]:
		"""Store ``entry``, replacing whatever was there. Returns the replaced entry."""
		if non_terminal not in self._cells:
			self.non_terminals.append(non_terminal)
			self._cells[non_terminal] = {}
		if terminal not in self.terminals:
			self.terminals.insert(len(self.terminals) - 1, terminal)
		previous = self._cells[non_terminal].get(terminal)
		self._cells[non_terminal][terminal] = entry
		return previous

	def cells(self) -> Iterator[Tuple[str, str, Entry]]:
		for nt in self.non_terminals:
			for t in self.terminals:
				entry = self._cells[nt].get(t)
				if entry is not None:
					yield nt, t, entry

	@property
	def is_ll1(self) -> bool:
		return not self.conflicts

	def as_strings(self, grammar: Optional[Grammar] = None) -> Dict[str, Dict[str, str]]:
		"""
		Display form: table[NonTerminal][Terminal] = "3. A → x y", an error function id, or "".
		Production numbers are included when ``grammar`` is given.
		"""
		out: Dict[str, Dict[str, str]] = {}
		for nt in self.non_terminals:
			row: Dict[str, str] = {}
			for t in self.terminals:
				entry = self._cells[nt].get(t)
				if entry is None:
					row[t] = ""
				elif isinstance(entry, ErrorFunction):
					row[t] = entry.identifier
				elif grammar is not None and entry in grammar.productions:
					row[t] = f"{grammar.number_of(entry)}. {entry}"
				else:
					row[t] = str(entry)
			out[nt] = row
		return out


def _place(table: PredictiveTable, production: Production, terminal: str) -> None:
	previous = table.put(production.lhs, terminal, production)
	if previous is not None and previous != production:
		message = f"Conflict at M[{production.lhs}, {terminal}]: {previous} replaced by {production}"
		logger.warning(message)
		table.conflicts.append(ValidationError(IssueKind.TABLE_CONFLICT, message, production.lhs, Severity.WARNING))


def build_table(
	grammar: Grammar,
	error_functions: Iterable[ErrorFunction] = (),
	error_cells: Optional[Mapping[Tuple[str, str], str]] = None,
) -> PredictiveTable:
	"""
	Fill M[A, t] for every production A → α:
	  - for each terminal t in FIRST(α);
	  - for each f in FOLLOW(A) when ε ∈ FIRST(α).

	A cell written twice keeps the last production; the overwrite is recorded in
	``table.conflicts``. Error functions are then placed into empty cells listed in
	``error_cells`` ({(non_terminal, terminal): identifier}); every problem with them is
	collected in ``table.issues``.
	"""
	first, follow = ensure_sets(grammar)
	table = PredictiveTable(grammar.non_terminals, grammar.terminals)

	for p in grammar.productions:
		first_rhs = first_of_production(p, first)
		for a in sorted(first_rhs - {EPS}):
			_place(table, p, a)
		if EPS in first_rhs:
			for b in sorted(follow.get(p.lhs, set())):
				_place(table, p, b)

	diagnostics = DiagnosticEngine()
	for fn in error_functions:
		if fn.identifier in table.error_functions:
			diagnostics.report(
				IssueKind.DUPLICATE_ERROR_FUNCTION,
				f"Error function '{fn.identifier}' is defined more than once.",
				fn.identifier,
			)
			continue
		if fn.action.needs_symbol and not fn.symbol:
			diagnostics.report(
				IssueKind.MISSING_ERROR_SYMBOL,
				f"Error function '{fn.identifier}' ({fn.action.value}) needs a symbol.",
				fn.identifier,
			)
			continue
		table.error_functions[fn.identifier] = fn

	for (nt, t), identifier in (error_cells or {}).items():
		fn = table.error_functions.get(identifier)
		if fn is None:
			diagnostics.report(
				IssueKind.UNKNOWN_ERROR_FUNCTION,
				f"M[{nt}, {t}] refers to an unknown error function '{identifier}'.",
				identifier,
			)
		elif not table.has_cell(nt, t):
			diagnostics.report(IssueKind.UNKNOWN_CELL, f"M[{nt}, {t}] is not a cell of the table.", nt)
		elif table.get(nt, t) is not None:
			diagnostics.report(
				IssueKind.OCCUPIED_CELL,
				f"M[{nt}, {t}] already holds {table.get(nt, t)}; error function '{identifier}' not placed.",
				nt,
			)
		else:
			table.put(nt, t, fn)

	table.issues = diagnostics.items
	logger.debug(
		"Built predictive table: %d cell(s), %d conflict(s), %d issue(s)",
		sum(1 for _ in table.cells()),
		len(table.conflicts),
		len(table.issues),
	)
	return table


def productions_for(grammar: Grammar, non_terminal: str, terminal: str) -> List[Production]:
	"""
	All productions of ``non_terminal`` that could be chosen on ``terminal``, in priority order:
	  1. the consequent starts with ``terminal``;
	  2. the consequent is ε and ``terminal`` is in FOLLOW(non_terminal);
	  3. the consequent starts with a non-terminal whose FIRST contains ``terminal``.
	More than one result means the grammar is ambiguous for this cell.
	"""
	first, follow = ensure_sets(grammar)
	direct: List[Production] = []
	by_follow: List[Production] = []
	by_first: List[Production] = []
	for p in grammar.productions_of(non_terminal):
		head = p.first_symbol
		if head.name == terminal:
			direct.append(p)
		elif head.is_epsilon:
			if terminal in follow.get(non_terminal, set()):
				by_follow.append(p)
		elif head.is_non_terminal and terminal in first.get(head.name, set()):
			by_first.append(p)
	return direct + by_follow + by_first


def production_text_for(grammar: Grammar, non_terminal: str, terminal: str) -> Optional[str]:
	found = productions_for(grammar, non_terminal, terminal)
	return ", ".join(str(p) for p in found) if found else None
