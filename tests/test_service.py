from __future__ import annotations

import pydantic
import pytest

from ll1sim import service
from ll1sim.config import Settings, get_settings, reset_settings
from ll1sim.diagnostics import IssueKind, NamingCollisionError
from ll1sim.grammar import Grammar
from ll1sim.table import ErrorAction, ErrorFunction


def test_load_accepts_documents_dicts_and_xml(balanced):
	doc = service.save(balanced)
	from_doc = service.load(doc)
	from_dict = service.load(doc.model_dump())
	from_xml = service.load(service.save_xml(balanced))
	for g in (from_doc, from_dict, from_xml):
		assert [str(p) for p in g.productions] == ["S → a S b", "S → ε"]
		assert g.name == "Balanced"


def test_validate_delegates(balanced):
	balanced.set_start(None)
	assert [e.kind for e in service.validate(balanced)] == [IssueKind.NO_START_SYMBOL]


def test_normalize_works_on_a_copy(demo):
	before = [str(p) for p in demo.productions]
	result = service.normalize(demo)
	assert result.changed
	assert result.removed_left_recursion
	assert not result.left_factored
	assert result.grammar is not demo
	assert [str(p) for p in demo.productions] == before
	assert [str(p) for p in result.grammar.productions] == [
		"S → id = E ;",
		"E' → + T E'",
		"E → T E'",
		"E' → ε",
		"T' → * F T'",
		"T → F T'",
		"T' → ε",
		"F → ( E )",
		"F → id",
		"F → num",
	]
	assert result.grammar.non_terminals == ("S", "E", "E'", "T", "T'", "F")


def test_normalize_is_idempotent(demo):
	once = service.normalize(demo).grammar
	twice = service.normalize(once)
	assert not twice.changed
	assert twice.grammar is once


def test_normalize_factors_until_done():
	g = Grammar(
		non_terminals=["A"],
		terminals=["a", "b", "c", "d"],
		productions=["A → a b c", "A → a b d"],
		start="A",
	)
	result = service.normalize(g)
	assert result.left_factored
	assert [str(p) for p in result.grammar.productions] == ["A → a A'", "A' → b A''", "A'' → c", "A'' → d"]
	assert not result.grammar.verify_needs_left_factoring()


def test_normalize_collision_policy_from_settings(monkeypatch):
	def grammar():
		return Grammar(
			non_terminals=["A", "A'"],
			terminals=["a", "b", "c", "d"],
			productions=["A → a b", "A → a c", "A' → d"],
			start="A",
		)

	with pytest.raises(NamingCollisionError):
		service.normalize(grammar())
	assert service.normalize(grammar(), on_collision="rename").left_factored

	monkeypatch.setenv("LL1SIM_ON_COLLISION", "rename")
	reset_settings()
	assert "A''" in service.normalize(grammar()).grammar.non_terminals


def test_analyze_builds_everything(demo):
	art = service.analyze(demo)
	assert art.is_valid
	assert art.original is demo
	assert art.removed_left_recursion
	assert art.first["E"] == {"(", "id", "num"}
	assert art.follow["S"] == {"$"}
	assert art.table is not None and art.table.is_ll1
	assert art.duration_ms >= 0


def test_analyze_stops_on_invalid_grammar():
	art = service.analyze(Grammar())
	assert not art.is_valid
	assert art.table is None
	assert art.first == {}


def test_analyze_without_normalizing_reports_conflicts(demo):
	art = service.analyze(demo, normalize_first=False)
	assert art.grammar is demo
	assert not art.table.is_ll1


def test_analyze_places_error_functions(pair):
	fn = ErrorFunction("E1", ErrorAction.TERMINATE_ANALYSIS)
	art = service.analyze(pair, error_functions=[fn], error_cells={("S", "b"): "E1"})
	assert art.table.get("S", "b") is fn


def test_settings_from_env():
	settings = Settings.from_env({"LL1SIM_MAX_STEPS": "25", "LL1SIM_ON_COLLISION": "rename", "LL1SIM_LOG_LEVEL": " "})
	assert settings.max_steps == 25
	assert settings.on_collision == "rename"
	assert settings.log_level == "INFO"


def test_settings_reject_unknown_policy():
	with pytest.raises(pydantic.ValidationError):
		Settings.from_env({"LL1SIM_ON_COLLISION": "ignore"})


def test_settings_are_cached(monkeypatch):
	first = get_settings()
	monkeypatch.setenv("LL1SIM_MAX_STEPS", "3")
	assert get_settings() is first
	reset_settings()
	assert get_settings().max_steps == 3


def test_normalize_recursion_then_factoring():
	g = Grammar(
		non_terminals=["A"],
		terminals=["x", "b", "y", "z"],
		productions=["A → A x", "A → b y", "A → b z"],
		start="A",
	)
	result = service.normalize(g)
	assert result.removed_left_recursion and result.left_factored
	assert [str(p) for p in result.grammar.productions] == [
		"A' → x A'",
		"A → b A''",
		"A'' → y A'",
		"A'' → z A'",
		"A' → ε",
	]
	assert not service.normalize(result.grammar).changed
	assert service.build_table(result.grammar).is_ll1


def test_module_docstrings():
	import trace_ll1
	from ll1sim import document

	assert service.__doc__.strip().startswith("Operations the presentation layer calls")
	assert document.__doc__.strip().startswith("Grammar interchange document")
	assert trace_ll1.__doc__.strip().startswith("Print the FIRST/FOLLOW sets")
