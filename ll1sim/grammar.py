from __future__ import annotations

import logging
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple, Union

from ll1sim.diagnostics import DiagnosticEngine, IssueKind, NamingCollisionError, ValidationError
from ll1sim.symbols import (
	ARROW,
	END,
	EOF,
	EPS,
	EPSILON,
	RESERVED,
	Production,
	Symbol,
	non_terminal,
	split_production_text,
	terminal,
)

logger = logging.getLogger(__name__)

ProductionLike = Union[Production, str, Tuple[str, Sequence[str]]]

COLLISION_POLICIES = ("raise", "rename")


class Validity(Enum):
	UNVALIDATED = "unvalidated"
	VALID = "valid"
	INVALID = "invalid"


def _unique(names: Iterable[str]) -> List[str]:
	out: List[str] = []
	for n in names:
		n = n.strip()
		if not n:
			continue
		if n in RESERVED:
			raise ValueError(f"'{n}' is reserved and cannot be declared as a grammar symbol")
		if n not in out:
			out.append(n)
	return out


def _insert_after(names: List[str], anchor: str, new: str) -> None:
	"""Insert ``new`` after ``anchor`` and after any primed names already following it."""
	if anchor not in names:
		names.append(new)
		return
	i = names.index(anchor) + 1
	while i < len(names) and names[i].startswith(anchor) and names[i][len(anchor):].strip("'") == "":
		i += 1
	names.insert(i, new)


class Grammar:
	"""
	A context-free grammar prepared for predictive (LL(1)) analysis.

	The vocabulary and the production list are only ever replaced as a whole
	(``set_vocabulary`` / ``set_productions`` / ``set_start``). Every replacement
	drops the cached FIRST/FOLLOW sets and resets ``validity``.
	"""

	def __init__(
		self,
		name: str = "",
		description: str = "",
		*,
		non_terminals: Iterable[str] = (),
		terminals: Iterable[str] = (),
		productions: Iterable[ProductionLike] = (),
		start: Optional[str] = None,
	) -> None:
		self.name = name
		self.description = description
		self._non_terminals: List[str] = []
		self._terminals: List[str] = []
		self._productions: List[Production] = []
		self._start: Optional[str] = None
		# non-terminals created by eliminate_left_recursion / left_factor
		self._introduced: Set[str] = set()
		self.validity = Validity.UNVALIDATED
		self.first: Optional[Dict[str, Set[str]]] = None
		self.follow: Optional[Dict[str, Set[str]]] = None

		self.set_vocabulary(non_terminals, terminals)
		self.set_productions(productions)
		self.set_start(start)

	# ------------------------------------------------------------------
	# vocabulary

	@property
	def non_terminals(self) -> Tuple[str, ...]:
		return tuple(self._non_terminals)

	@property
	def terminals(self) -> Tuple[str, ...]:
		return tuple(self._terminals)

	@property
	def productions(self) -> Tuple[Production, ...]:
		return tuple(self._productions)

	@property
	def start(self) -> Optional[str]:
		return self._start

	def set_vocabulary(self, non_terminals: Iterable[str], terminals: Iterable[str]) -> None:
		self._non_terminals = _unique(non_terminals)
		self._terminals = _unique(terminals)
		self._introduced &= set(self._non_terminals)
		# consequent symbols are tagged against the vocabulary, so re-tag them
		self._productions = [self._make_production(p) for p in self._productions]
		self._invalidate()

	def set_productions(self, productions: Iterable[ProductionLike]) -> None:
		self._productions = [self._make_production(p) for p in productions]
		self._invalidate()

	def set_start(self, name: Optional[str]) -> None:
		name = (name or "").strip()
		self._start = name or None
		self._invalidate()

	def _invalidate(self) -> None:
		self.first = None
		self.follow = None
		self.validity = Validity.UNVALIDATED

	def symbol(self, name: str) -> Symbol:
		if name == EPS:
			return EPSILON
		if name == EOF:
			return END
		if name in self._non_terminals:
			return non_terminal(name)
		return terminal(name)

	def is_terminal(self, name: str) -> bool:
		return name in self._terminals

	def is_non_terminal(self, name: str) -> bool:
		return name in self._non_terminals

	def _make_production(self, item: ProductionLike) -> Production:
		if isinstance(item, Production):
			lhs, rhs = item.lhs, item.rhs
		elif isinstance(item, str):
			lhs, rhs = split_production_text(item)
		else:
			lhs, rhs = item[0], tuple(item[1])
		return Production(non_terminal(lhs), tuple(self.symbol(s) for s in rhs))

	# ------------------------------------------------------------------
	# productions

	def productions_of(self, lhs: str) -> List[Production]:
		return [p for p in self._productions if p.lhs == lhs]

	def number_of(self, production: Production) -> int:
		"""1-based display number of ``production``; raises ``ValueError`` if absent."""
		return self._productions.index(production) + 1

	def numbered_productions(self) -> List[Tuple[int, Production]]:
		return [(i, p) for i, p in enumerate(self._productions, start=1)]

	def has_epsilon_production(self, name: str) -> bool:
		return any(p.lhs == name and p.first_symbol.is_epsilon for p in self._productions)

	def copy(self) -> "Grammar":
		other = Grammar(
			self.name,
			self.description,
			non_terminals=self._non_terminals,
			terminals=self._terminals,
			productions=self._productions,
			start=self._start,
		)
		other._introduced = set(self._introduced)
		other.validity = self.validity
		return other

	def __str__(self) -> str:
		return "\n".join(str(p) for p in self._productions)

	# ------------------------------------------------------------------
	# validation

	def validate(self) -> List[ValidationError]:
		diagnostics = DiagnosticEngine()
		nts = set(self._non_terminals)
		terms = set(self._terminals)
		used: Set[str] = {s.name for p in self._productions for s in p.consequent}

		if not self._productions:
			diagnostics.report(
				IssueKind.NO_PRODUCTIONS,
				"The grammar has no productions. It needs at least one to be valid.",
			)
		if not self._terminals:
			diagnostics.report(
				IssueKind.NO_TERMINALS,
				"The grammar has no terminal symbols. It needs at least one to be valid.",
			)
		if not self._non_terminals:
			diagnostics.report(
				IssueKind.NO_NON_TERMINALS,
				"The grammar has no non-terminal symbols. It needs at least one to be valid.",
			)
		if self._start is None:
			diagnostics.report(IssueKind.NO_START_SYMBOL, "The grammar has no start symbol assigned.")
		elif self._start not in nts:
			diagnostics.report(
				IssueKind.START_NOT_DECLARED,
				f"The start symbol '{self._start}' is not a declared non-terminal.",
				self._start,
			)

		for name in self._terminals:
			if name in nts:
				diagnostics.report(
					IssueKind.DUPLICATE_SYMBOL,
					f"The symbol '{name}' is declared both as a terminal and as a non-terminal.",
					name,
				)

		for name in self._terminals:
			if name not in used:
				diagnostics.report(
					IssueKind.UNUSED_TERMINAL,
					f"The terminal '{name}' does not appear in the consequent of any production.",
					name,
				)

		for name in self._non_terminals:
			if name != self._start and name not in used:
				diagnostics.report(
					IssueKind.UNUSED_NON_TERMINAL,
					f"The non-terminal '{name}' does not appear in the consequent of any production.",
					name,
				)

		for p in self._productions:
			if p.lhs not in nts:
				diagnostics.report(
					IssueKind.UNDECLARED_ANTECEDENT,
					f"The antecedent '{p.lhs}' of production '{p}' is not a declared non-terminal.",
					p.lhs,
				)

		for p in self._productions:
			for s in p.consequent:
				if s.is_epsilon or s.name in nts or s.name in terms:
					continue
				diagnostics.report(
					IssueKind.UNDECLARED_SYMBOL,
					f"The symbol '{s.name}' in production '{p}' is not a declared symbol.",
					s.name,
				)

		self.validity = Validity.INVALID if diagnostics.has_errors else Validity.VALID
		logger.debug("Validated grammar %r: %s (%d issue(s))", self.name, self.validity.value, len(diagnostics.items))
		return diagnostics.items

	# ------------------------------------------------------------------
	# normalization

	def _fresh_name(self, base: str, taken: Set[str], on_collision: str) -> str:
		if on_collision not in COLLISION_POLICIES:
			raise ValueError(f"Unknown collision policy: {on_collision!r}")
		# only names the user declared count as collisions; our own primes are skipped
		declared = (set(self._non_terminals) - self._introduced) | set(self._terminals)
		name = base + "'"
		while name in taken:
			if name in declared and on_collision == "raise":
				raise NamingCollisionError(name, base)
			name += "'"
		taken.add(name)
		return name

	def _left_recursive(self) -> List[str]:
		out: List[str] = []
		for p in self._productions:
			if p.first_symbol.name == p.lhs and p.lhs not in out:
				out.append(p.lhs)
		return out

	def verify_needs_left_recursion_removal(self) -> bool:
		return bool(self._left_recursive())

	def eliminate_left_recursion(self, *, on_collision: str = "raise") -> bool:
		"""
		Remove direct left recursion:

		  A -> A a | b      becomes      A  -> b A'
		                                 A' -> a A' | ε

		Only immediate recursion is handled; ``A -> B x, B -> A y`` is left as is.
		Returns whether anything was rewritten.
		"""
		recursive = self._left_recursive()
		if not recursive:
			return False

		nts = list(self._non_terminals)
		taken = set(self._non_terminals) | set(self._terminals)
		primes: Dict[str, Symbol] = {}
		for a in recursive:
			name = self._fresh_name(a, taken, on_collision)
			_insert_after(nts, a, name)
			primes[a] = non_terminal(name)

		last: Dict[str, int] = {p.lhs: i for i, p in enumerate(self._productions)}
		has_base = {a: any(p.first_symbol.name != a for p in self.productions_of(a)) for a in recursive}

		out: List[Production] = []
		for i, p in enumerate(self._productions):
			prime = primes.get(p.lhs)
			if prime is None:
				out.append(p)
				continue
			if p.first_symbol.name == p.lhs:
				alpha = p.consequent[1:]
				if alpha:
					out.append(Production(prime, alpha + (prime,)))
			else:
				beta = () if p.is_epsilon else p.consequent
				out.append(Production(p.antecedent, beta + (prime,)))
			if i == last[p.lhs]:
				if not has_base[p.lhs]:
					out.append(Production(p.antecedent, (prime,)))
				out.append(Production(prime, (EPSILON,)))

		logger.debug("Eliminated left recursion for %s", ", ".join(recursive))
		self.set_vocabulary(nts, self._terminals)
		self._introduced.update(s.name for s in primes.values())
		self.set_productions(out)
		return True

	def _factor_groups(self) -> Dict[Tuple[str, str], List[int]]:
		groups: Dict[Tuple[str, str], List[int]] = {}
		for i, p in enumerate(self._productions):
			if p.first_symbol.is_epsilon:
				continue
			groups.setdefault((p.lhs, p.first_symbol.name), []).append(i)
		return {k: v for k, v in groups.items() if len(v) > 1}

	def verify_needs_left_factoring(self) -> bool:
		return bool(self._factor_groups())

	def left_factor(self, *, on_collision: str = "raise") -> bool:
		"""
		Factor out a common first symbol:

		  A -> x b | x c    becomes    A  -> x A'
		                               A' -> b | c

		One symbol per call; longer common prefixes need another call.
		A fresh name that the grammar already declares raises ``NamingCollisionError``
		unless ``on_collision="rename"``; primes made by earlier rewrites are just skipped.
		"""
		groups = self._factor_groups()
		if not groups:
			return False

		nts = list(self._non_terminals)
		taken = set(self._non_terminals) | set(self._terminals)
		out: List[Production] = []
		done: Set[Tuple[str, str]] = set()
		created: List[str] = []

		for p in self._productions:
			key = (p.lhs, p.first_symbol.name)
			if key not in groups:
				out.append(p)
				continue
			if key in done:
				continue
			done.add(key)

			name = self._fresh_name(p.lhs, taken, on_collision)
			created.append(name)
			_insert_after(nts, p.lhs, name)
			prime = non_terminal(name)
			out.append(Production(p.antecedent, (p.first_symbol, prime)))

			rests: List[Tuple[Symbol, ...]] = []
			for j in groups[key]:
				rest = self._productions[j].consequent[1:] or (EPSILON,)
				if rest not in rests:
					rests.append(rest)
			out.extend(Production(prime, rest) for rest in rests)

		logger.debug("Left-factored %d production group(s)", len(groups))
		self.set_vocabulary(nts, self._terminals)
		self._introduced.update(created)
		self.set_productions(out)
		return True


def parse_grammar_lines(*, start: str, lines: Sequence[str], name: str = "", description: str = "") -> Grammar:
	"""
	Parse a small CFG given as production lines, e.g.:

	  E  -> T E'
	  E' -> + T E' | ε
	  T  -> F T'

	Notes:
	- Nonterminals are inferred from LHS symbols; every other symbol is a terminal.
	- Both '->' and '→' are accepted; alternatives can be separated by '|'.
	- Epsilon can be written as 'ε', 'eps', or 'epsilon' (case-insensitive).
	"""

	def norm_eps(tok: str) -> str:
		t = tok.strip()
		if t.lower() in {"ε", "eps", "epsilon"}:
			return EPS
		return t

	raw: List[Tuple[str, List[str]]] = []
	nonterminals: List[str] = []

	for raw_line in lines:
		line = (raw_line or "").strip()
		if not line or line.startswith("#") or line.startswith("//"):
			continue
		sep = ARROW if ARROW in line else "->"
		if sep not in line:
			raise ValueError(f"Invalid production (missing '->'): {raw_line}")
		lhs, rhs = line.split(sep, 1)
		lhs = lhs.strip()
		if not lhs:
			raise ValueError(f"Invalid production (empty LHS): {raw_line}")
		if lhs not in nonterminals:
			nonterminals.append(lhs)
		raw.append((lhs, [p.strip() for p in rhs.split("|")]))

	prods: List[Tuple[str, Tuple[str, ...]]] = []
	terminals: List[str] = []
	for lhs, alts in raw:
		for alt in alts:
			syms = [norm_eps(t) for t in alt.split() if t.strip()]
			for s in syms:
				if s != EPS and s not in nonterminals and s not in terminals:
					terminals.append(s)
			prods.append((lhs, tuple(syms) if syms else (EPS,)))

	return Grammar(name, description, non_terminals=nonterminals, terminals=terminals, productions=prods, start=start)


def default_assignment_expr_grammar() -> Grammar:
	"""
	Lab-style expression grammar, left recursive as usually written:

	  S -> id = E ;
	  E -> E + T | T
	  T -> T * F | F
	  F -> ( E ) | id | num

	``normalize`` turns it into the familiar E' / T' form.
	"""
	return parse_grammar_lines(
		start="S",
		name="Assignment",
		description="Assignments with sums and products",
		lines=[
			"S -> id = E ;",
			"E -> E + T | T",
			"T -> T * F | F",
			"F -> ( E ) | id | num",
		],
	)
