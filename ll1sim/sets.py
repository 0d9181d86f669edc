from __future__ import annotations

import logging
from typing import Dict, List, Optional, Set, Tuple

from ll1sim.grammar import Grammar
from ll1sim.symbols import EOF, EPS, Production

logger = logging.getLogger(__name__)

Sets = Dict[str, Set[str]]
Passes = List[Dict[str, List[str]]]


def first_of_production(production: Production, first: Sets) -> Set[str]:
	"""
	FIRST of a consequent, judged by its leading symbol only:
	{ε} for an ε-production, {t} for a leading terminal, FIRST(B) for a leading non-terminal.
	"""
	head = production.first_symbol
	if head.is_epsilon:
		return {EPS}
	if head.is_non_terminal:
		return set(first.get(head.name, set()))
	return {head.name}


def _solve_first(grammar: Grammar, passes: Optional[Passes]) -> Sets:
	first: Sets = {nt: set() for nt in grammar.non_terminals}
	depends_on: Dict[str, List[str]] = {}

	# seed from each production's leading symbol
	seeded: Dict[str, List[str]] = {nt: [] for nt in grammar.non_terminals}
	for p in grammar.productions:
		target = first.setdefault(p.lhs, set())
		head = p.first_symbol
		if head.is_non_terminal:
			deps = depends_on.setdefault(p.lhs, [])
			if head.name not in deps:
				deps.append(head.name)
			continue
		sym = EPS if head.is_epsilon else head.name
		if sym not in target:
			target.add(sym)
			seeded.setdefault(p.lhs, []).append(sym)
	if passes is not None and any(seeded.values()):
		passes.append({nt: sorted(syms) for nt, syms in seeded.items()})

	# propagate along dependency edges until nothing grows
	changed = True
	while changed:
		changed = False
		pass_changes: Dict[str, List[str]] = {nt: [] for nt in first}
		for lhs, deps in depends_on.items():
			for dep in deps:
				added = first.get(dep, set()) - first[lhs]
				if added:
					first[lhs] |= added
					pass_changes[lhs].extend(sorted(added))
					changed = True
		if passes is not None and changed:
			passes.append(pass_changes)

	return first


def compute_first_sets(grammar: Grammar) -> Sets:
	first = _solve_first(grammar, None)
	grammar.first = first
	logger.debug("FIRST sets computed for %d non-terminal(s)", len(first))
	return first


def compute_first_sets_with_trace(grammar: Grammar) -> Tuple[Sets, Passes]:
	"""
	Compute FIRST sets and also return an iteration log.
	The log is a list of passes; each pass maps Nonterminal -> list of newly-added symbols.
	The first pass is the seeding from leading symbols.
	"""
	passes: Passes = []
	first = _solve_first(grammar, passes)
	grammar.first = first
	return first, passes


def _solve_follow(grammar: Grammar, first: Sets, passes: Optional[Passes]) -> Sets:
	follow: Sets = {nt: set() for nt in grammar.non_terminals}
	if grammar.start is not None:
		follow.setdefault(grammar.start, set()).add(EOF)

	changed = True
	while changed:
		changed = False
		pass_changes: Dict[str, List[str]] = {nt: [] for nt in follow}
		for p in grammar.productions:
			rhs = p.consequent
			for i, sym in enumerate(rhs):
				if not sym.is_non_terminal:
					continue

				target = follow.setdefault(sym.name, set())
				pass_changes.setdefault(sym.name, [])
				before = set(target)

				if i == len(rhs) - 1:
					target |= follow.get(p.lhs, set())
				else:
					nxt = rhs[i + 1]
					if nxt.is_non_terminal:
						target |= first.get(nxt.name, set()) - {EPS}
						# nullable means "has a direct ε-production", not the full closure
						if grammar.has_epsilon_production(nxt.name):
							target |= follow.get(p.lhs, set())
					elif nxt.is_terminal:
						target.add(nxt.name)

				added = sorted(target - before)
				if added:
					pass_changes[sym.name].extend(added)
					changed = True

		if passes is not None and changed:
			passes.append(pass_changes)

	return follow


def compute_follow_sets(grammar: Grammar, first: Optional[Sets] = None) -> Sets:
	if first is None:
		first = grammar.first if grammar.first is not None else compute_first_sets(grammar)
	follow = _solve_follow(grammar, first, None)
	grammar.follow = follow
	logger.debug("FOLLOW sets computed for %d non-terminal(s)", len(follow))
	return follow


def compute_follow_sets_with_trace(grammar: Grammar, first: Optional[Sets] = None) -> Tuple[Sets, Passes]:
	"""
	Compute FOLLOW sets and also return an iteration log.
	The log is a list of passes; each pass maps Nonterminal -> list of newly-added symbols.
	"""
	if first is None:
		first = grammar.first if grammar.first is not None else compute_first_sets(grammar)
	passes: Passes = []
	follow = _solve_follow(grammar, first, passes)
	grammar.follow = follow
	return follow, passes


def ensure_sets(grammar: Grammar) -> Tuple[Sets, Sets]:
	"""Return the grammar's FIRST/FOLLOW sets, computing whichever is missing."""
	first = grammar.first if grammar.first is not None else compute_first_sets(grammar)
	follow = grammar.follow if grammar.follow is not None else compute_follow_sets(grammar, first)
	return first, follow
