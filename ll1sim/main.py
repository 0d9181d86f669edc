from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse
from pydantic import BaseModel

from ll1sim import service
from ll1sim.automaton import HistoryEntry, Simulation
from ll1sim.config import get_settings
from ll1sim.diagnostics import GrammarDocumentError, GrammarStructureError, NamingCollisionError, Severity, ValidationError
from ll1sim.document import GrammarDocument
from ll1sim.grammar import Grammar, default_assignment_expr_grammar, parse_grammar_lines
from ll1sim.sets import compute_first_sets_with_trace, compute_follow_sets_with_trace
from ll1sim.symbols import EOF
from ll1sim.table import ErrorAction, ErrorFunction, PredictiveTable

logger = logging.getLogger(__name__)

settings = get_settings()
logging.basicConfig(level=settings.log_level.upper())


class SessionRegistry:
	"""Simulations kept alive between requests, keyed by an opaque id."""

	def __init__(self, limit: int) -> None:
		self.limit = limit
		self._items: Dict[str, Simulation] = {}

	def add(self, simulation: Simulation) -> str:
		# dicts keep insertion order, so the first key is the oldest session
		while self._items and len(self._items) >= self.limit:
			oldest = next(iter(self._items))
			del self._items[oldest]
			logger.info("Evicted simulation %s (limit %d reached)", oldest, self.limit)
		key = uuid.uuid4().hex
		self._items[key] = simulation
		return key

	def get(self, key: str) -> Simulation:
		try:
			return self._items[key]
		except KeyError:
			raise HTTPException(status_code=404, detail=f"Unknown simulation '{key}'") from None

	def remove(self, key: str) -> None:
		self.get(key)
		del self._items[key]

	def __len__(self) -> int:
		return len(self._items)


app = FastAPI(title="LL(1) Predictive Parsing Simulator", version="1.0.0")
app.state.sessions = SessionRegistry(settings.max_sessions)

app.add_middleware(
	CORSMiddleware,
	allow_origins=["*"],
	allow_credentials=True,
	allow_methods=["*"],
	allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Request models


class GrammarRequest(BaseModel):
	# Either a full interchange document...
	grammar: Optional[GrammarDocument] = None
	# ...or production lines, e.g. ["E -> E + T | T", ...] (non-terminals inferred from the LHS)
	grammar_start: str | None = None
	grammar_lines: list[str] | None = None


class ErrorFunctionModel(BaseModel):
	identifier: str
	action: ErrorAction
	symbol: Optional[str] = None
	message: Optional[str] = None


class ErrorCellModel(BaseModel):
	non_terminal: str
	terminal: str
	function: str


class TableRequest(GrammarRequest):
	normalize: bool = True
	error_functions: List[ErrorFunctionModel] = []
	error_cells: List[ErrorCellModel] = []


class SetsRequest(GrammarRequest):
	normalize: bool = True
	include_working: bool = False


class LL1Request(TableRequest):
	# Example: "id = num + id ;"
	tokens: str
	# None means the configured http_max_steps
	max_steps: Optional[int] = None
	include_working: bool = False


class SimulationRequest(TableRequest):
	tokens: str


class RunRequest(BaseModel):
	max_steps: Optional[int] = None


class XmlRequest(BaseModel):
	xml: str


# ---------------------------------------------------------------------------
# Error handling


def _diag(d: ValidationError) -> Dict[str, Any]:
	return {"kind": d.kind.value, "severity": d.severity.name, "message": d.message, "symbol": d.symbol}


@app.exception_handler(GrammarStructureError)
def _grammar_structure_error(request: Request, exc: GrammarStructureError) -> JSONResponse:
	return JSONResponse(status_code=400, content={"detail": str(exc), "errors": [_diag(e) for e in exc.errors]})


@app.exception_handler(GrammarDocumentError)
def _grammar_document_error(request: Request, exc: GrammarDocumentError) -> JSONResponse:
	return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(NamingCollisionError)
def _naming_collision(request: Request, exc: NamingCollisionError) -> JSONResponse:
	return JSONResponse(status_code=409, content={"detail": str(exc), "name": exc.name, "antecedent": exc.antecedent})


@app.exception_handler(ValueError)
def _value_error(request: Request, exc: ValueError) -> JSONResponse:
	return JSONResponse(status_code=400, content={"detail": str(exc)})


# ---------------------------------------------------------------------------
# Helpers


def _grammar_from(req: GrammarRequest) -> Grammar:
	# Use the supplied grammar if any; otherwise fall back to the built-in demo grammar.
	if req.grammar is not None:
		return service.load(req.grammar)
	if req.grammar_lines and (req.grammar_start or ""):
		return parse_grammar_lines(start=req.grammar_start or "", lines=req.grammar_lines)
	return default_assignment_expr_grammar()


def _prepared(req: GrammarRequest, normalize: bool) -> Grammar:
	grammar = _grammar_from(req)
	errors = grammar.validate()
	if any(e.severity is Severity.ERROR for e in errors):
		raise GrammarStructureError(errors)
	if normalize:
		grammar = service.normalize(grammar).grammar
	return grammar


def _ceiling(requested: Optional[int]) -> int:
	# error functions come from the client and may never consume input
	limit = get_settings().http_max_steps
	return limit if requested is None else min(requested, limit)


def _error_setup(req: TableRequest):
	functions = [ErrorFunction(f.identifier, f.action, f.symbol, f.message) for f in req.error_functions]
	cells = {(c.non_terminal, c.terminal): c.function for c in req.error_cells}
	return functions, cells


def _grammar_view(grammar: Grammar) -> Dict[str, Any]:
	return {
		"name": grammar.name,
		"start": grammar.start,
		"nonterminals": list(grammar.non_terminals),
		"terminals": list(grammar.terminals),
		"productions": [f"{n}. {p}" for n, p in grammar.numbered_productions()],
	}


def _sets_view(sets: Dict[str, set]) -> Dict[str, List[str]]:
	return {k: sorted(v) for k, v in sets.items()}


def _table_view(grammar: Grammar, table: PredictiveTable) -> Dict[str, Any]:
	return {
		"columns": list(table.terminals),
		"rows": table.as_strings(grammar),
		"error_functions": [
			{"identifier": f.identifier, "action": f.action.value, "symbol": f.symbol, "message": f.describe()}
			for f in table.error_functions.values()
		],
		"conflicts": [_diag(c) for c in table.conflicts],
		"issues": [_diag(i) for i in table.issues],
	}


def _entry_view(e: HistoryEntry) -> Dict[str, Any]:
	return {"step": e.step, "stack": e.stack, "input": e.input, "action": e.action}


def _simulation_view(key: str, sim: Simulation) -> Dict[str, Any]:
	return {
		"id": key,
		"status": sim.status.value,
		"message": sim.message,
		"steps": sim.steps,
		"stack": " ".join(sim.stack),
		"input": " ".join(sim.input),
		"history": [_entry_view(e) for e in sim.history],
		"derivation": sim.derivation(),
	}


# ---------------------------------------------------------------------------
# Endpoints


@app.get("/", response_class=HTMLResponse)
def index() -> HTMLResponse:
	return HTMLResponse(
		"<h2>LL(1) Predictive Parsing Simulator API</h2><p>POST <code>/api/ll1</code> with JSON: <code>{\"tokens\": \"id = num + id ;\"}</code></p>"
	)


@app.get("/health")
def health() -> Dict[str, str]:
	return {"status": "ok"}


@app.post("/api/grammar/validate")
def validate_grammar(req: GrammarRequest) -> Dict[str, Any]:
	grammar = _grammar_from(req)
	errors = service.validate(grammar)
	return {
		"validity": grammar.validity.value,
		"errors": [_diag(e) for e in errors],
		"needs_left_recursion_removal": grammar.verify_needs_left_recursion_removal(),
		"needs_left_factoring": grammar.verify_needs_left_factoring(),
	}


@app.post("/api/grammar/normalize")
def normalize_grammar(req: GrammarRequest) -> Dict[str, Any]:
	grammar = _prepared(req, normalize=False)
	result = service.normalize(grammar)
	return {
		"removed_left_recursion": result.removed_left_recursion,
		"left_factored": result.left_factored,
		"grammar": service.save(result.grammar).model_dump(),
		"productions": [f"{n}. {p}" for n, p in result.grammar.numbered_productions()],
	}


@app.post("/api/grammar/sets")
def grammar_sets(req: SetsRequest) -> Dict[str, Any]:
	grammar = _prepared(req, normalize=req.normalize)
	if req.include_working:
		first, first_working = compute_first_sets_with_trace(grammar)
		follow, follow_working = compute_follow_sets_with_trace(grammar, first)
	else:
		first, first_working = service.first_sets(grammar), None
		follow, follow_working = service.follow_sets(grammar), None
	return {
		"grammar": _grammar_view(grammar),
		"first": _sets_view(first),
		"follow": _sets_view(follow),
		"working": {"first_passes": first_working, "follow_passes": follow_working} if req.include_working else None,
	}


@app.post("/api/grammar/table")
def grammar_table(req: TableRequest) -> Dict[str, Any]:
	grammar = _prepared(req, normalize=req.normalize)
	functions, cells = _error_setup(req)
	table = service.build_table(grammar, functions, cells)
	return {"grammar": _grammar_view(grammar), "table": _table_view(grammar, table)}


@app.post("/api/grammar/xml/import")
def import_xml(req: XmlRequest) -> Dict[str, Any]:
	grammar = service.load(req.xml)
	return service.save(grammar).model_dump()


@app.post("/api/grammar/xml/export")
def export_xml(req: GrammarRequest) -> Dict[str, str]:
	return {"xml": service.save_xml(_grammar_from(req))}


@app.post("/api/ll1")
def ll1_lab(req: LL1Request) -> Dict[str, Any]:
	"""
	One-shot LL(1) lab endpoint: FIRST/FOLLOW, predictive table and the full parse trace.
	"""
	grammar = _prepared(req, normalize=req.normalize)
	functions, cells = _error_setup(req)

	first_working = None
	follow_working = None
	if req.include_working:
		first, first_working = compute_first_sets_with_trace(grammar)
		follow, follow_working = compute_follow_sets_with_trace(grammar, first)
	else:
		first = service.first_sets(grammar)
		follow = service.follow_sets(grammar)
	table = service.build_table(grammar, functions, cells)

	tokens = [t for t in (req.tokens or "").split() if t]
	sim = service.new_simulation(grammar, table, tokens)
	service.run(sim, max_steps=_ceiling(req.max_steps))

	return {
		"grammar": _grammar_view(grammar),
		"first": _sets_view(first),
		"follow": _sets_view(follow),
		"working": {
			"first_passes": first_working,
			"follow_passes": follow_working,
		}
		if req.include_working
		else None,
		"table": _table_view(grammar, table),
		"input": {
			"tokens": tokens,
			"tokens_with_eof": tokens + [EOF],
		},
		"result": {
			"status": sim.status.value,
			"accepted": sim.accepted,
			"error": sim.message,
			"steps": [_entry_view(e) for e in sim.history],
			"derivation": sim.derivation(),
		},
	}


@app.post("/api/simulations")
def create_simulation(req: SimulationRequest, request: Request) -> Dict[str, Any]:
	grammar = _prepared(req, normalize=req.normalize)
	functions, cells = _error_setup(req)
	table = service.build_table(grammar, functions, cells)
	sim = service.new_simulation(grammar, table, req.tokens)
	key = request.app.state.sessions.add(sim)
	logger.info("Started simulation %s on %r", key, req.tokens)
	view = _simulation_view(key, sim)
	view["table"] = _table_view(grammar, table)
	return view


@app.get("/api/simulations/{key}")
def get_simulation(key: str, request: Request) -> Dict[str, Any]:
	return _simulation_view(key, request.app.state.sessions.get(key))


@app.delete("/api/simulations/{key}")
def delete_simulation(key: str, request: Request) -> Dict[str, str]:
	request.app.state.sessions.remove(key)
	return {"status": "deleted"}


@app.post("/api/simulations/{key}/step")
def step_simulation(key: str, request: Request) -> Dict[str, Any]:
	sim = request.app.state.sessions.get(key)
	service.step(sim)
	return _simulation_view(key, sim)


@app.post("/api/simulations/{key}/back")
def step_back_simulation(key: str, request: Request) -> Dict[str, Any]:
	sim = request.app.state.sessions.get(key)
	service.step_back(sim)
	return _simulation_view(key, sim)


@app.post("/api/simulations/{key}/rewind")
def rewind_simulation(key: str, request: Request) -> Dict[str, Any]:
	sim = request.app.state.sessions.get(key)
	service.rewind(sim)
	return _simulation_view(key, sim)


@app.post("/api/simulations/{key}/run")
def run_simulation(key: str, req: RunRequest, request: Request) -> Dict[str, Any]:
	sim = request.app.state.sessions.get(key)
	service.run(sim, max_steps=_ceiling(req.max_steps))
	return _simulation_view(key, sim)


@app.get("/api/simulations/{key}/tree")
def simulation_tree(key: str, request: Request) -> Dict[str, Any]:
	tree = request.app.state.sessions.get(key).parse_tree()
	return {"tree": tree.to_dict(), "dot": tree.to_dot()}
