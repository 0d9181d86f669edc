"""
Grammar interchange document.

The document is a plain tree (name, description, non-terminals, terminals, start
symbol, rules) so the presentation layer can move grammars around without knowing
about ``Grammar``. It travels as JSON (pydantic) or as the XML files written by
earlier versions of the tool:

  <grammar version="2.0">
    <name>..</name> <description>..</description>
    <non-terminal-symbols><non-terminal><value>E</value></non-terminal>..</non-terminal-symbols>
    <terminal-symbols><terminal><value>id</value></terminal>..</terminal-symbols>
    <init-symbol>E</init-symbol>
    <rule-set>
      <rule>
        <leftPart><value>E</value></leftPart>
        <rightPart><symbol><value>T</value></symbol>..</rightPart>
      </rule>
    </rule-set>
  </grammar>

Version 1.0 files store each rule as ``<rule><value>E → T E'</value></rule>``; they
can be read but are always written back as 2.0.
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from typing import List, Optional

from pydantic import BaseModel

from ll1sim.diagnostics import DiagnosticEngine, GrammarDocumentError, GrammarStructureError, IssueKind
from ll1sim.grammar import Grammar
from ll1sim.symbols import RESERVED, split_production_text

XML_VERSION = "2.0"


class RuleDocument(BaseModel):
	lhs: str
	rhs: List[str] = []


class GrammarDocument(BaseModel):
	name: str = ""
	description: str = ""
	non_terminals: List[str] = []
	terminals: List[str] = []
	start_symbol: Optional[str] = None
	rules: List[RuleDocument] = []


def to_grammar(doc: GrammarDocument) -> Grammar:
	diagnostics = DiagnosticEngine()
	for sym in doc.non_terminals + doc.terminals:
		if sym.strip() in RESERVED:
			diagnostics.report(
				IssueKind.RESERVED_SYMBOL,
				f"'{sym.strip()}' is reserved and cannot be declared as a grammar symbol.",
				sym.strip(),
			)
	for i, rule in enumerate(doc.rules, start=1):
		if not rule.lhs.strip():
			diagnostics.report(IssueKind.MALFORMED_RULE, f"Rule {i} has an empty left-hand side.")
	if diagnostics.items:
		raise GrammarStructureError(diagnostics.items)

	return Grammar(
		doc.name,
		doc.description,
		non_terminals=doc.non_terminals,
		terminals=doc.terminals,
		productions=[(r.lhs.strip(), [s.strip() for s in r.rhs if s.strip()]) for r in doc.rules],
		start=doc.start_symbol,
	)


def from_grammar(grammar: Grammar) -> GrammarDocument:
	return GrammarDocument(
		name=grammar.name,
		description=grammar.description,
		non_terminals=list(grammar.non_terminals),
		terminals=list(grammar.terminals),
		start_symbol=grammar.start,
		rules=[RuleDocument(lhs=p.lhs, rhs=list(p.rhs)) for p in grammar.productions],
	)


def _text(node: Optional[ET.Element]) -> str:
	if node is None or node.text is None:
		return ""
	return node.text.strip()


def _values(root: ET.Element, tag: str) -> List[str]:
	return [_text(el.find("value")) for el in root.iter(tag) if el.find("value") is not None]


def read_xml(text: str) -> GrammarDocument:
	try:
		root = ET.fromstring(text)
	except ET.ParseError as exc:
		raise GrammarDocumentError(f"Not a well-formed grammar file: {exc}") from exc
	if root.tag != "grammar":
		raise GrammarDocumentError(f"Expected a <grammar> root element, found <{root.tag}>")

	rules: List[RuleDocument] = []
	if root.get("version", "") == "2.0":
		for i, rule in enumerate(root.iter("rule"), start=1):
			left = rule.find("leftPart")
			right = rule.find("rightPart")
			if left is None or right is None:
				raise GrammarDocumentError(f"Rule {i} needs both <leftPart> and <rightPart>")
			rhs = [_text(sym.find("value")) for sym in right.iter("symbol")]
			rules.append(RuleDocument(lhs=_text(left.find("value")), rhs=[s for s in rhs if s]))
	else:
		for i, rule in enumerate(root.iter("rule"), start=1):
			try:
				lhs, rhs = split_production_text(_text(rule.find("value")))
			except ValueError as exc:
				raise GrammarDocumentError(f"Rule {i}: {exc}") from exc
			rules.append(RuleDocument(lhs=lhs, rhs=list(rhs)))

	start = _text(root.find("init-symbol"))
	return GrammarDocument(
		name=_text(root.find("name")),
		description=_text(root.find("description")),
		non_terminals=_values(root, "non-terminal"),
		terminals=_values(root, "terminal"),
		start_symbol=start or None,
		rules=rules,
	)


def write_xml(doc: GrammarDocument) -> str:
	root = ET.Element("grammar", version=XML_VERSION)
	ET.SubElement(root, "name").text = doc.name
	ET.SubElement(root, "description").text = doc.description

	nts = ET.SubElement(root, "non-terminal-symbols")
	for value in doc.non_terminals:
		ET.SubElement(ET.SubElement(nts, "non-terminal"), "value").text = value
	terms = ET.SubElement(root, "terminal-symbols")
	for value in doc.terminals:
		ET.SubElement(ET.SubElement(terms, "terminal"), "value").text = value

	ET.SubElement(root, "init-symbol").text = doc.start_symbol or ""

	rule_set = ET.SubElement(root, "rule-set")
	for rule in doc.rules:
		el = ET.SubElement(rule_set, "rule")
		ET.SubElement(ET.SubElement(el, "leftPart"), "value").text = rule.lhs
		right = ET.SubElement(el, "rightPart")
		for sym in rule.rhs:
			ET.SubElement(ET.SubElement(right, "symbol"), "value").text = sym

	ET.indent(root, space="\t")
	return '<?xml version="1.0" encoding="UTF-8"?>\n' + ET.tostring(root, encoding="unicode") + "\n"
