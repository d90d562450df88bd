"""
Fact extraction: ParseTree -> one FactTable per contract.

Every table is fully built (all functions scanned, keyword indexes complete)
before it is returned, and nothing is mutated afterwards.
"""

from typing import List, Optional

from analysis.constructs import BodyScanner, is_access_modifier, modifier_guards, scan_function
from analysis.keywords import KeywordIndex
from core.config import Deadline
from core.facts import Fact, FactTable, FunctionFacts, add_fact
from core.utils import debug, qualify
from lang.nodes import ContractNode, ParseTree


class FactExtractor:
    def __init__(self, tree: ParseTree, deadline: Optional[Deadline] = None):
        self.tree = tree
        self.deadline = deadline or Deadline.unlimited(tree.path)

    def extract(self) -> List[FactTable]:
        tree = self.tree

        # Scan every function first: modifier guards may be declared in any contract of the file
        scanners: List[List[BodyScanner]] = []
        for cid, contract in enumerate(tree.contracts):
            state_vars = tree.contract_state_vars(cid)
            scanners.append(
                [
                    scan_function(tree, fn, qualify(contract.name, fn.name), state_vars, self.deadline)
                    for fn in tree.contract_functions(cid)
                ]
            )

        guards = set()
        for contract_scanners in scanners:
            guards |= modifier_guards({s.fn.name: s for s in contract_scanners})

        tables = []
        for cid, contract in enumerate(tree.contracts):
            for s in scanners[cid]:
                self._apply_guards(s, guards)
            tables.append(self._build_table(cid, contract, scanners[cid]))
        return tables

    def _apply_guards(self, scanner: BodyScanner, guards) -> None:
        for mod in scanner.fn.modifiers:
            if mod in guards and not is_access_modifier(mod):
                add_fact(scanner.facts, "HasAccessControlModifier", (scanner.qname, mod))
                add_fact(scanner.facts, "HasAccessControl", (scanner.qname,))

    def _build_table(self, cid: int, contract: ContractNode, scanners: List[BodyScanner]) -> FactTable:
        tree = self.tree
        functions = []
        for s in scanners:
            fn = s.fn
            functions.append(
                FunctionFacts(
                    qualified_name=s.qname,
                    name=fn.name,
                    kind=fn.kind,
                    visibility=fn.visibility,
                    mutability=fn.mutability,
                    modifiers=tuple(fn.modifiers),
                    line=fn.line,
                    keywords=KeywordIndex.from_ranges(tree, [(fn.decl_start_tok, fn.decl_end_tok)]),
                    facts=tuple(s.facts),
                    call_sites=tuple(sorted(s.call_sites, key=lambda c: c.offset)),
                    partial=fn.partial,
                    partial_reasons=tuple(fn.partial_reasons),
                    has_body=fn.has_body,
                )
            )

        state_vars = tree.contract_state_vars(cid)
        facts: List[Fact] = []
        add_fact(facts, "Contract", (contract.name, contract.kind))
        for base in contract.bases:
            add_fact(facts, "Inherits", (contract.name, base))
        for var in state_vars:
            add_fact(facts, "StateVar", (contract.name, var.name, var.type_name))

        segments = contract.segments or [(contract.start_tok, contract.end_tok)]
        table = FactTable(
            unit=tree.unit,
            contract=contract.name,
            kind=contract.kind,
            line=contract.line,
            keywords=KeywordIndex.from_ranges(tree, segments),
            facts=tuple(facts),
            functions=tuple(functions),
            state_vars=tuple(state_vars),
            partial=contract.partial or any(f.partial for f in functions),
        )
        debug(
            f"{tree.path}: {contract.kind} {contract.name}: {len(functions)} functions, "
            f"{len(table.all_facts())} facts{' (partial)' if table.partial else ''}"
        )
        return table


def extract_facts(tree: ParseTree, deadline: Optional[Deadline] = None) -> List[FactTable]:
    """Build the FactTable of every contract in the tree."""
    return FactExtractor(tree, deadline).extract()
