"""
Print the FIRST/FOLLOW sets, the predictive table and a parse trace for a grammar.

Usage:
  python -X utf8 trace_ll1.py                          (built-in demo grammar, "id = num + id ;")
  python -X utf8 trace_ll1.py grammar.xml a a b b      (grammar file, then input tokens)

Set LL1SIM_MAX_STEPS to stop runs that loop on an error function.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import List, Optional, Sequence

from ll1sim import service
from ll1sim.diagnostics import GrammarDocumentError, GrammarStructureError, NamingCollisionError
from ll1sim.grammar import Grammar, default_assignment_expr_grammar
from ll1sim.symbols import EOF, EPS


def fmt_sym(s: str) -> str:
	return "eps" if s == EPS else s


def fmt_text(text: str) -> str:
	return text.replace(EPS, "eps")


def print_report(grammar: Grammar, tokens: Sequence[str]) -> int:
	art = service.analyze(grammar)
	if not art.is_valid:
		print("=== GRAMMAR ERRORS ===")
		for e in art.errors:
			print(f"[{e.kind.value}] {e.message}")
		return 1

	g = art.grammar
	print("=== GRAMMAR ===")
	if art.removed_left_recursion or art.left_factored:
		print(f"(normalized: left recursion removed={art.removed_left_recursion}, left factored={art.left_factored})")
	for n, p in g.numbered_productions():
		print(f"{n}. {fmt_text(str(p))}")

	print("\n=== FIRST ===")
	for nt in g.non_terminals:
		print(f"{nt}: {sorted(fmt_sym(s) for s in art.first.get(nt, set()))}")

	print("\n=== FOLLOW ===")
	for nt in g.non_terminals:
		print(f"{nt}: {sorted(fmt_sym(s) for s in art.follow.get(nt, set()))}")

	table = art.table
	assert table is not None
	print("\n=== LL(1) TABLE (non-empty cells) ===")
	for nt, t, entry in table.cells():
		print(f"M[{nt}, {t}] = {fmt_text(str(entry))}")

	print("\n=== Conflicts ===")
	for c in table.conflicts:
		print(fmt_text(c.message))
	if not table.conflicts:
		print("none")

	print(f"\n=== Parse: {' '.join(tokens)} ===")
	sim = service.new_simulation(g, table, tokens)
	service.run(sim)
	print("STACK:", " ".join(sim.initial_stack), "| IN:", " ".join(sim.initial_input), "| ACT: start")
	for s in sim.history:
		print("STACK:", s.stack, "| IN:", s.input, "| ACT:", fmt_text(s.action))
	print("status:", sim.status.value)
	if sim.message:
		print("error:", sim.message)

	print("\n(EOF symbol is:", EOF, ")")
	return 0 if sim.accepted else 2


def main(argv: Optional[List[str]] = None) -> int:
	args = sys.argv[1:] if argv is None else argv
	if not args:
		return print_report(default_assignment_expr_grammar(), "id = num + id ;".split())

	path = Path(args[0])
	if not path.exists():
		print(f"Grammar file not found: {path}")
		return 1
	try:
		grammar = service.load(path.read_text(encoding="utf-8"))
		return print_report(grammar, args[1:])
	except (GrammarDocumentError, GrammarStructureError, NamingCollisionError) as exc:
		print(f"error: {exc}")
		return 1


if __name__ == "__main__":
	sys.exit(main())
