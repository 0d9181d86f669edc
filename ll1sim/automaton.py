from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence, Tuple

from ll1sim.grammar import Grammar
from ll1sim.symbols import EOF, EPS, Production
from ll1sim.table import ErrorAction, ErrorFunction, PredictiveTable

logger = logging.getLogger(__name__)

ACCEPT = "Accept"
MATCH = "Match"
ERROR = "Error"


class SimulationStatus(Enum):
	NOT_STARTED = "not-started"
	RUNNING = "running"
	ACCEPTED = "accepted"
	REJECTED = "rejected"


@dataclass(frozen=True)
class HistoryEntry:
	"""State after one step, as shown in the trace table (bottom of the stack first)."""

	step: int
	stack: str
	input: str
	action: str
	production: Optional[Production] = None
	error_function: Optional[ErrorFunction] = None


@dataclass(frozen=True)
class _Snapshot:
	stack: Tuple[str, ...]
	input: Tuple[str, ...]
	steps: int


@dataclass
class ParseTreeNode:
	symbol: str
	children: List["ParseTreeNode"] = field(default_factory=list)

	@property
	def is_leaf(self) -> bool:
		return not self.children

	def leaves(self) -> List[str]:
		if self.is_leaf:
			return [self.symbol]
		out: List[str] = []
		for child in self.children:
			out.extend(child.leaves())
		return out

	def to_dict(self) -> dict:
		return {"symbol": self.symbol, "children": [c.to_dict() for c in self.children]}

	def to_dot(self, title: str = "Parse Tree") -> str:
		"""Graphviz DOT source for the tree; leaves are boxes, inner nodes ellipses."""
		lines = [f'digraph "{title}" {{']
		counter = [0]

		def visit(node: "ParseTreeNode") -> int:
			node_id = counter[0]
			counter[0] += 1
			label = node.symbol.replace('"', '\\"')
			shape = "box" if node.is_leaf else "ellipse"
			lines.append(f'  node{node_id} [label="{label}", shape={shape}];')
			for child in node.children:
				child_id = visit(child)
				lines.append(f"  node{node_id} -> node{child_id};")
			return node_id

		visit(self)
		lines.append("}")
		return "\n".join(lines)


class Simulation:
	"""
	Table-driven LL(1) pushdown automaton, advanced one decision at a time.

	- The stack starts as ``$ S`` and the input always ends with ``$``.
	- Every ``step`` saves the pre-step state, so ``step_back``/``rewind`` restore
	  snapshots instead of undoing actions.
	- Error-function cells may loop forever (e.g. an insert that never gets consumed);
	  use ``run(max_steps=...)`` where that matters.
	"""

	def __init__(self, grammar: Grammar, table: PredictiveTable, tokens: Sequence[str]) -> None:
		if grammar.start is None:
			raise ValueError("The grammar has no start symbol")
		tokens = [t for t in tokens if t]
		for tok in tokens:
			if tok in (EOF, EPS):
				raise ValueError(f"'{tok}' is reserved and cannot appear in the input")
			if grammar.is_non_terminal(tok):
				raise ValueError(f"'{tok}' is a non-terminal and cannot appear in the input")

		self.grammar = grammar
		self.table = table
		self.stack: List[str] = [EOF, grammar.start]
		self.input: List[str] = tokens + [EOF]
		self.steps = 0
		self.status = SimulationStatus.NOT_STARTED
		self.message: Optional[str] = None
		self.history: List[HistoryEntry] = []
		self._snapshots: List[_Snapshot] = [self._snapshot()]

	@property
	def top(self) -> str:
		return self.stack[-1]

	@property
	def lookahead(self) -> str:
		return self.input[0]

	@property
	def is_finished(self) -> bool:
		return self.status in (SimulationStatus.ACCEPTED, SimulationStatus.REJECTED)

	@property
	def accepted(self) -> bool:
		return self.status is SimulationStatus.ACCEPTED

	@property
	def initial_stack(self) -> Tuple[str, ...]:
		return self._snapshots[0].stack

	@property
	def initial_input(self) -> Tuple[str, ...]:
		return self._snapshots[0].input

	def _snapshot(self) -> _Snapshot:
		return _Snapshot(stack=tuple(self.stack), input=tuple(self.input), steps=self.steps)

	def _restore(self, snap: _Snapshot) -> None:
		self.stack = list(snap.stack)
		self.input = list(snap.input)
		self.steps = snap.steps
		self.status = SimulationStatus.RUNNING
		self.message = None

	def _finish(self, status: SimulationStatus, message: Optional[str]) -> None:
		self.status = status
		self.message = message

	# ------------------------------------------------------------------
	# forward

	def step(self) -> Optional[HistoryEntry]:
		"""Perform exactly one transition. Returns ``None`` once the run is accepted or rejected."""
		if self.is_finished:
			return None

		self.status = SimulationStatus.RUNNING
		self._snapshots.append(self._snapshot())

		top = self.top
		cur = self.lookahead
		production: Optional[Production] = None
		error_function: Optional[ErrorFunction] = None

		if top == EOF and cur == EOF:
			action = ACCEPT
			self._finish(SimulationStatus.ACCEPTED, None)
		elif top == cur and not self.grammar.is_non_terminal(top):
			self.stack.pop()
			self.input.pop(0)
			action = MATCH
		elif not self.grammar.is_non_terminal(top):
			action = ERROR
			self._finish(SimulationStatus.REJECTED, f"Mismatch: expected '{top}' but found '{cur}'")
		else:
			entry = self.table.get(top, cur)
			if entry is None:
				action = ERROR
				self._finish(SimulationStatus.REJECTED, f"No rule for M[{top}, {cur}]")
			elif isinstance(entry, Production):
				production = entry
				self.stack.pop()
				if not entry.is_epsilon:
					# push RHS in reverse order so the leftmost symbol ends on top
					self.stack.extend(reversed(entry.rhs))
				action = str(entry)
			else:
				error_function = entry
				action = self._recover(entry)

		self.steps += 1
		record = HistoryEntry(
			step=self.steps,
			stack=" ".join(self.stack),
			input=" ".join(self.input),
			action=action,
			production=production,
			error_function=error_function,
		)
		self.history.append(record)
		logger.debug("step %d: %s | %s | %s", record.step, record.stack, record.input, record.action)
		return record

	def _recover(self, fn: ErrorFunction) -> str:
		kind = fn.action
		if kind is ErrorAction.TERMINATE_ANALYSIS:
			self._finish(SimulationStatus.REJECTED, fn.describe())
		elif kind is ErrorAction.DELETE_INPUT:
			if self.lookahead == EOF:
				self._finish(SimulationStatus.REJECTED, f"{fn.identifier}: cannot delete the end of input")
			else:
				self.input.pop(0)
		elif kind is ErrorAction.INSERT_INPUT:
			self.input.insert(0, fn.symbol or "")
		elif kind is ErrorAction.MODIFY_INPUT:
			if self.lookahead == EOF:
				self.input.insert(0, fn.symbol or "")
			else:
				self.input[0] = fn.symbol or ""
		elif kind is ErrorAction.INSERT_STACK:
			self.stack.append(fn.symbol or "")
		elif kind is ErrorAction.DELETE_STACK:
			self.stack.pop()
		elif kind is ErrorAction.MODIFY_STACK:
			self.stack[-1] = fn.symbol or ""
		return str(fn)

	def run(self, max_steps: Optional[int] = None) -> List[HistoryEntry]:
		"""
		Step until accepted or rejected. ``max_steps`` caps the number of steps taken by
		this call; when it is hit the simulation is left running.
		"""
		taken: List[HistoryEntry] = []
		while not self.is_finished:
			if max_steps is not None and len(taken) >= max_steps:
				logger.info("Stopped after %d step(s) without reaching a final state", len(taken))
				break
			record = self.step()
			if record is not None:
				taken.append(record)
		return taken

	# ------------------------------------------------------------------
	# backward

	def step_back(self) -> bool:
		if len(self._snapshots) <= 1:
			return False
		self._restore(self._snapshots.pop())
		self.history.pop()
		return True

	def rewind(self) -> bool:
		if len(self._snapshots) <= 1:
			return False
		del self._snapshots[1:]
		self._restore(self._snapshots[0])
		self.history.clear()
		return True

	# ------------------------------------------------------------------
	# views built from the history

	def derivation(self) -> List[str]:
		"""Leftmost sentential forms, one per production applied so far."""
		form: List[str] = [self.grammar.start or ""]
		out = [" ".join(form)]
		for record in self.history:
			p = record.production
			if p is None:
				continue
			idx = next((i for i, s in enumerate(form) if self.grammar.is_non_terminal(s)), None)
			if idx is None or form[idx] != p.lhs:
				idx = form.index(p.lhs) if p.lhs in form else None
			if idx is None:
				continue
			form = form[:idx] + ([] if p.is_epsilon else list(p.rhs)) + form[idx + 1 :]
			out.append(" ".join(form) if form else EPS)
		return out

	def parse_tree(self) -> ParseTreeNode:
		root = ParseTreeNode(self.grammar.start or "")
		# unexpanded non-terminal leaves, leftmost first
		pending: List[ParseTreeNode] = [root]
		for record in self.history:
			p = record.production
			if p is None:
				continue
			pos = next((i for i, n in enumerate(pending) if n.symbol == p.lhs), None)
			if pos is None:
				continue
			node = pending.pop(pos)
			node.children = [ParseTreeNode(s) for s in p.rhs]
			expandable = [c for c in node.children if self.grammar.is_non_terminal(c.symbol)]
			pending[pos:pos] = expandable
		return root
