from __future__ import annotations

import pytest

from ll1sim.config import reset_settings
from ll1sim.grammar import Grammar, default_assignment_expr_grammar


def make_balanced() -> Grammar:
	# S -> a S b | ε
	return Grammar(
		"Balanced",
		non_terminals=["S"],
		terminals=["a", "b"],
		productions=["S → a S b", "S → ε"],
		start="S",
	)


def make_pair() -> Grammar:
	# S -> a B ; B -> b   (leaves empty cells for error functions)
	return Grammar(
		"Pair",
		non_terminals=["S", "B"],
		terminals=["a", "b"],
		productions=["S → a B", "B → b"],
		start="S",
	)


@pytest.fixture
def balanced() -> Grammar:
	return make_balanced()


@pytest.fixture
def pair() -> Grammar:
	return make_pair()


@pytest.fixture
def demo() -> Grammar:
	return default_assignment_expr_grammar()


@pytest.fixture(autouse=True)
def _fresh_settings(monkeypatch):
	for name in ("LL1SIM_MAX_STEPS", "LL1SIM_ON_COLLISION", "LL1SIM_LOG_LEVEL", "LL1SIM_HTTP_MAX_STEPS", "LL1SIM_MAX_SESSIONS"):
		monkeypatch.delenv(name, raising=False)
	reset_settings()
	yield
	reset_settings()
