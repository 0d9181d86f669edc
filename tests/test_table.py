from __future__ import annotations

from ll1sim import service
from ll1sim.diagnostics import IssueKind, Severity
from ll1sim.grammar import Grammar
from ll1sim.symbols import EOF, Production
from ll1sim.table import ErrorAction, ErrorFunction, PredictiveTable, build_table, production_text_for, productions_for


def ambiguous() -> Grammar:
	return Grammar(
		non_terminals=["S", "A"],
		terminals=["a"],
		productions=["S → A a", "S → a", "A → a"],
		start="S",
	)


def test_balanced_table(balanced):
	table = build_table(balanced)
	s_asb, s_eps = balanced.productions
	assert table.terminals == ["a", "b", EOF]
	assert table.get("S", "a") == s_asb
	assert table.get("S", "b") == s_eps
	assert table.get("S", EOF) == s_eps
	assert table.is_ll1
	assert table.as_strings(balanced) == {"S": {"a": "1. S → a S b", "b": "2. S → ε", EOF: "2. S → ε"}}


def test_expression_table(demo):
	g = service.normalize(demo).grammar
	table = build_table(g)
	assert table.is_ll1
	assert str(table.get("E", "id")) == "E → T E'"
	assert str(table.get("E'", ";")) == "E' → ε"
	assert str(table.get("E'", ")")) == "E' → ε"
	assert str(table.get("T'", "+")) == "T' → ε"
	assert str(table.get("F", "(")) == "F → ( E )"
	assert table.get("F", "+") is None


def test_every_entry_belongs_to_its_row(demo):
	g = service.normalize(demo).grammar
	table = build_table(g)
	for nt, _, entry in table.cells():
		assert isinstance(entry, Production)
		assert entry.lhs == nt


def test_conflict_keeps_last_write_and_is_recorded():
	g = ambiguous()
	table = build_table(g)
	assert table.get("S", "a") == g.productions[1]
	assert not table.is_ll1
	assert len(table.conflicts) == 1
	conflict = table.conflicts[0]
	assert conflict.kind is IssueKind.TABLE_CONFLICT
	assert conflict.severity is Severity.WARNING
	assert "M[S, a]" in conflict.message


def test_put_returns_replaced_entry_and_grows_table(balanced):
	table = PredictiveTable(["S"], ["a"])
	p = balanced.productions[0]
	assert table.put("S", "a", p) is None
	assert table.put("S", "a", balanced.productions[1]) == p
	table.put("X", "c", p)
	assert table.non_terminals == ["S", "X"]
	assert table.terminals == ["a", "c", EOF]


def test_productions_for_priority():
	g = ambiguous()
	found = productions_for(g, "S", "a")
	assert [str(p) for p in found] == ["S → a", "S → A a"]
	assert production_text_for(g, "S", "a") == "S → a, S → A a"


def test_productions_for_epsilon_uses_follow(balanced):
	assert [str(p) for p in productions_for(balanced, "S", "b")] == ["S → ε"]
	assert [str(p) for p in productions_for(balanced, "S", EOF)] == ["S → ε"]
	assert productions_for(balanced, "S", "c") == []
	assert production_text_for(balanced, "S", "c") is None


def test_error_functions_fill_empty_cells(pair):
	fn = ErrorFunction("E1", ErrorAction.INSERT_INPUT, "b")
	table = build_table(pair, [fn], {("B", EOF): "E1"})
	assert table.get("B", EOF) is fn
	assert table.production("B", EOF) is None
	assert table.issues == []
	assert table.as_strings(pair)["B"][EOF] == "E1"
	assert str(fn) == "E1: Insert a symbol into the input: b"


def test_error_function_problems_are_collected(pair):
	functions = [
		ErrorFunction("E1", ErrorAction.TERMINATE_ANALYSIS),
		ErrorFunction("E1", ErrorAction.DELETE_INPUT),
		ErrorFunction("E2", ErrorAction.INSERT_INPUT),
	]
	cells = {
		("S", "a"): "E1",
		("S", "b"): "E9",
		("X", "b"): "E1",
		("S", EOF): "E1",
	}
	table = build_table(pair, functions, cells)
	assert {i.kind for i in table.issues} == {
		IssueKind.DUPLICATE_ERROR_FUNCTION,
		IssueKind.MISSING_ERROR_SYMBOL,
		IssueKind.OCCUPIED_CELL,
		IssueKind.UNKNOWN_ERROR_FUNCTION,
		IssueKind.UNKNOWN_CELL,
	}
	assert table.get("S", EOF).action is ErrorAction.TERMINATE_ANALYSIS
	assert table.get("S", "a") == pair.productions[0]
	assert list(table.error_functions) == ["E1"]


def test_error_function_description():
	assert ErrorFunction("E3", ErrorAction.DELETE_STACK).describe() == "Pop the top of the stack"
	assert ErrorFunction("E4", ErrorAction.TERMINATE_ANALYSIS, message="missing ';'").describe() == "missing ';'"
	assert ErrorAction.MODIFY_STACK.needs_symbol
	assert not ErrorAction.DELETE_INPUT.needs_symbol
