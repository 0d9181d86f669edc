from __future__ import annotations

import pytest

from ll1sim import service
from ll1sim.diagnostics import GrammarDocumentError, GrammarStructureError, IssueKind
from ll1sim.document import GrammarDocument, RuleDocument, from_grammar, read_xml, to_grammar, write_xml
from ll1sim.symbols import EPS

V1_XML = """<?xml version="1.0" encoding="UTF-8"?>
<grammar version="1.0">
	<name>Balanced</name>
	<description>a^n b^n</description>
	<non-terminal-symbols>
		<non-terminal><value>S</value></non-terminal>
	</non-terminal-symbols>
	<terminal-symbols>
		<terminal><value>a</value></terminal>
		<terminal><value>b</value></terminal>
	</terminal-symbols>
	<init-symbol>S</init-symbol>
	<rule-set>
		<rule><value>S → a S b</value></rule>
		<rule><value>S → ε</value></rule>
	</rule-set>
</grammar>
"""


def test_document_from_grammar(balanced):
	doc = from_grammar(balanced)
	assert doc.non_terminals == ["S"]
	assert doc.terminals == ["a", "b"]
	assert doc.start_symbol == "S"
	assert doc.rules == [RuleDocument(lhs="S", rhs=["a", "S", "b"]), RuleDocument(lhs="S", rhs=[EPS])]


def test_xml_round_trip(balanced):
	doc = from_grammar(balanced)
	text = write_xml(doc)
	assert text.startswith('<?xml version="1.0" encoding="UTF-8"?>')
	assert '<grammar version="2.0">' in text
	assert "<leftPart>" in text
	assert read_xml(text) == doc

	again = to_grammar(read_xml(text))
	assert [str(p) for p in again.productions] == [str(p) for p in balanced.productions]
	assert again.start == "S"


def test_read_version_one():
	doc = read_xml(V1_XML)
	assert doc.name == "Balanced"
	assert doc.description == "a^n b^n"
	assert doc.non_terminals == ["S"]
	assert doc.terminals == ["a", "b"]
	assert doc.rules[0] == RuleDocument(lhs="S", rhs=["a", "S", "b"])
	assert doc.rules[1] == RuleDocument(lhs="S", rhs=[EPS])

	grammar = to_grammar(doc)
	assert grammar.validate() == []


@pytest.mark.parametrize(
	"text",
	[
		"<grammar><name>x</grammar>",
		"<language version='2.0'/>",
		"<grammar version='2.0'><rule-set><rule><leftPart><value>S</value></leftPart></rule></rule-set></grammar>",
		"<grammar version='1.0'><rule-set><rule><value>S a b</value></rule></rule-set></grammar>",
	],
)
def test_unreadable_documents(text):
	with pytest.raises(GrammarDocumentError):
		read_xml(text)


def test_reserved_symbols_are_rejected():
	doc = GrammarDocument(non_terminals=["S"], terminals=["a", "$"], start_symbol="S", rules=[RuleDocument(lhs="S", rhs=["a"])])
	with pytest.raises(GrammarStructureError) as info:
		to_grammar(doc)
	assert [e.kind for e in info.value.errors] == [IssueKind.RESERVED_SYMBOL]
	assert info.value.errors[0].symbol == "$"


def test_rule_without_lhs_is_rejected():
	with pytest.raises(GrammarStructureError) as info:
		service.load({"non_terminals": ["S"], "terminals": ["a"], "rules": [{"lhs": " ", "rhs": ["a"]}]})
	assert info.value.errors[0].kind is IssueKind.MALFORMED_RULE


def test_empty_rhs_means_epsilon():
	grammar = service.load({"non_terminals": ["S"], "terminals": ["a"], "start_symbol": "S", "rules": [{"lhs": "S", "rhs": []}]})
	assert grammar.productions[0].is_epsilon
