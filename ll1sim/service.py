"""
Operations the presentation layer calls. Everything here is synchronous and works on
objects owned by a single editing or simulation session.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple, Union

from ll1sim.automaton import HistoryEntry, Simulation
from ll1sim.config import get_settings
from ll1sim.diagnostics import Severity, ValidationError
from ll1sim.document import GrammarDocument, from_grammar, read_xml, to_grammar, write_xml
from ll1sim.grammar import Grammar
from ll1sim.sets import compute_first_sets, compute_follow_sets
from ll1sim.table import ErrorFunction, PredictiveTable
from ll1sim.table import build_table as _build_table

logger = logging.getLogger(__name__)

DocumentLike = Union[GrammarDocument, Mapping, str]


def load(document: DocumentLike) -> Grammar:
	"""
	Build a Grammar from an interchange document, its JSON-like dict form, or XML text.
	Raises ``GrammarStructureError`` when the document cannot describe a grammar and
	``GrammarDocumentError`` when XML text is unreadable.
	"""
	if isinstance(document, str):
		document = read_xml(document)
	elif not isinstance(document, GrammarDocument):
		document = GrammarDocument.model_validate(document)
	return to_grammar(document)


def save(grammar: Grammar) -> GrammarDocument:
	return from_grammar(grammar)


def save_xml(grammar: Grammar) -> str:
	return write_xml(from_grammar(grammar))


def validate(grammar: Grammar) -> List[ValidationError]:
	return grammar.validate()


@dataclass
class NormalizationResult:
	grammar: Grammar
	removed_left_recursion: bool
	left_factored: bool

	@property
	def changed(self) -> bool:
		return self.removed_left_recursion or self.left_factored


def normalize(grammar: Grammar, *, on_collision: Optional[str] = None) -> NormalizationResult:
	"""
	Eliminate direct left recursion, then left-factor until no antecedent has two
	productions with the same first symbol. Works on a copy; an already normalized
	grammar is returned as the same object.
	"""
	policy = on_collision or get_settings().on_collision
	work = grammar.copy()
	removed = work.eliminate_left_recursion(on_collision=policy)
	factored = False
	while work.left_factor(on_collision=policy):
		factored = True
	if not (removed or factored):
		return NormalizationResult(grammar, False, False)
	logger.info("Normalized grammar %r (left recursion removed: %s, left factored: %s)", grammar.name, removed, factored)
	return NormalizationResult(work, removed, factored)


def first_sets(grammar: Grammar) -> Dict[str, Set[str]]:
	return compute_first_sets(grammar)


def follow_sets(grammar: Grammar) -> Dict[str, Set[str]]:
	first = grammar.first if grammar.first is not None else compute_first_sets(grammar)
	return compute_follow_sets(grammar, first)


def build_table(
	grammar: Grammar,
	error_functions: Iterable[ErrorFunction] = (),
	error_cells: Optional[Mapping[Tuple[str, str], str]] = None,
) -> PredictiveTable:
	return _build_table(grammar, error_functions, error_cells)


def new_simulation(grammar: Grammar, table: PredictiveTable, tokens: Union[str, Sequence[str]]) -> Simulation:
	if isinstance(tokens, str):
		tokens = tokens.split()
	return Simulation(grammar, table, tokens)


def step(simulation: Simulation) -> Optional[HistoryEntry]:
	return simulation.step()


def step_back(simulation: Simulation) -> bool:
	return simulation.step_back()


def rewind(simulation: Simulation) -> bool:
	return simulation.rewind()


def run(simulation: Simulation, max_steps: Optional[int] = None) -> List[HistoryEntry]:
	if max_steps is None:
		max_steps = get_settings().max_steps
	return simulation.run(max_steps=max_steps)


@dataclass
class AnalysisArtifacts:
	grammar: Grammar
	original: Grammar
	removed_left_recursion: bool
	left_factored: bool
	errors: List[ValidationError]
	first: Dict[str, Set[str]] = field(default_factory=dict)
	follow: Dict[str, Set[str]] = field(default_factory=dict)
	table: Optional[PredictiveTable] = None
	duration_ms: float = 0.0

	@property
	def is_valid(self) -> bool:
		return not any(e.severity is Severity.ERROR for e in self.errors)


def analyze(
	grammar: Grammar,
	*,
	error_functions: Iterable[ErrorFunction] = (),
	error_cells: Optional[Mapping[Tuple[str, str], str]] = None,
	normalize_first: bool = True,
	on_collision: Optional[str] = None,
) -> AnalysisArtifacts:
	"""Validate, normalize, solve FIRST/FOLLOW and build the table in one go."""
	start = time.perf_counter()
	errors = grammar.validate()
	artifacts = AnalysisArtifacts(
		grammar=grammar,
		original=grammar,
		removed_left_recursion=False,
		left_factored=False,
		errors=errors,
	)
	if artifacts.is_valid:
		if normalize_first:
			result = normalize(grammar, on_collision=on_collision)
			artifacts.grammar = result.grammar
			artifacts.removed_left_recursion = result.removed_left_recursion
			artifacts.left_factored = result.left_factored
		artifacts.first = first_sets(artifacts.grammar)
		artifacts.follow = follow_sets(artifacts.grammar)
		artifacts.table = build_table(artifacts.grammar, error_functions, error_cells)
	artifacts.duration_ms = (time.perf_counter() - start) * 1000
	return artifacts
