"""Tests for rule evaluation over FactTables."""
import pytest

from rules.dsl import all_of, any_of, count_of, fact, negate, none_of, words
from rules.eval_context import EvalContext
from rules.evaluator import evaluate
from rules.ir import Severity
from test_utils import make_rule, run_rule, table_for


AI_RULE = make_rule(
    "ai-agent-decision-manipulation",
    severity="high",
    requires=[words("aidecision", "ai_decision")],
    unless=words("validate", "consensus", substring=True),
)

SINGLE_ORACLE = make_rule(
    "single-oracle",
    scope="contract",
    counts=[count_of(words("oracle", "chainlink"), "==", 1)],
)


class TestScenarios:
    def test_ai_decision_without_validation_fires_once(self):
        findings = run_rule(AI_RULE, """
            contract Agent {
                // aidecision
                function executeAIDecision(bytes calldata payload) external {
                    target.call(payload);
                }
                function other() external {}
            }
        """)
        assert len(findings) == 1
        f = findings[0]
        assert (f.rule_id, f.contract, f.function, f.line) == ("ai-agent-decision-manipulation", "Agent", "executeAIDecision", 4)
        assert f.severity is Severity.HIGH
        assert f.file == "Test.sol"

    def test_ai_decision_with_validation_does_not_fire(self):
        findings = run_rule(AI_RULE, """
            contract Agent {
                // aidecision
                function executeAIDecision(bytes calldata payload) external {
                    require(validateDecision(payload));
                    target.call(payload);
                }
            }
        """)
        assert findings == []

    def test_oracle_twice_does_not_fire(self):
        findings = run_rule(SINGLE_ORACLE, """
            contract PriceUser {
                address public oracle;
                function price() public view returns (uint256) {
                    return IOracle(oracle).latest();
                }
            }
        """)
        assert findings == []

    def test_oracle_once_fires_at_counted_occurrence(self):
        findings = run_rule(SINGLE_ORACLE, """
            contract PriceUser {
                address public oracle;
                function price() public view returns (uint256) {
                    return 1;
                }
            }
        """)
        assert [(f.contract, f.function, f.line) for f in findings] == [("PriceUser", None, 3)]

    def test_count_rule_without_occurrence_uses_contract_line(self):
        rule = make_rule("no-oracle", scope="contract", counts=[count_of(words("oracle"), "==", 0)])
        findings = run_rule(rule, """
            contract Plain {
                function f() public {}
            }
        """)
        assert [(f.contract, f.line) for f in findings] == [("Plain", 2)]

    def test_overlapping_rules_are_not_suppressed(self):
        source = """
            contract Token {
                function f(address a) public {
                    token.transfer(a, 1);
                    mint(a, 1);
                }
            }
        """
        transfer_rule = make_rule("uses-transfer", requires=[words("transfer")])
        mint_rule = make_rule("uses-mint", requires=[words("mint")])
        findings = run_rule(transfer_rule, source) + run_rule(mint_rule, source)
        assert sorted(f.rule_id for f in findings) == ["uses-mint", "uses-transfer"]
        assert {(f.function, f.line) for f in findings} == {("f", 3)}


class TestPredicates:
    SOURCE = """
        contract P {
            function onlyFoo() public { foo(); }
            function fooBar() public { foo(); bar(); }
            function sanitized() public { prompt = sanitizeInput(x); }
            function both() public { prompt = sanitizeInput(validateInput(x)); }
        }
    """

    def _fired(self, rule):
        return sorted(f.function for f in run_rule(rule, self.SOURCE))

    def test_unless_word(self):
        rule = make_rule(requires=[words("foo")], unless=words("bar"))
        assert self._fired(rule) == ["onlyFoo"]

    def test_negated_unless(self):
        rule = make_rule(requires=[words("foo")], unless=negate(words("bar")))
        assert self._fired(rule) == ["fooBar"]

    def test_none_of_is_negated_any_of(self):
        rule = make_rule(requires=[words("foo")], unless=none_of(words("bar"), words("baz")))
        assert self._fired(rule) == ["fooBar"]

    def test_unless_list_means_any(self):
        rule = make_rule(requires=[words("foo", "prompt")], unless=[words("bar"), words("sanitize", substring=True)])
        assert self._fired(rule) == ["onlyFoo"]

    def test_unless_all_of_needs_every_part(self):
        rule = make_rule(
            requires=[words("prompt")],
            unless=all_of(words("sanitize", substring=True), words("validate", substring=True)),
        )
        assert self._fired(rule) == ["sanitized"]

    def test_every_required_group_must_match(self):
        rule = make_rule(requires=[words("foo"), words("bar")])
        assert self._fired(rule) == ["fooBar"]

    def test_required_fact(self):
        rule = make_rule(requires=[fact("HasAccessControl")])
        assert self._fired(rule) == []

    def test_unless_fact(self):
        rule = make_rule(requires=[words("foo")], unless=any_of(fact("IsReadOnly"), words("bar")))
        assert self._fired(rule) == ["onlyFoo"]

    def test_unknown_predicate_node(self):
        table = table_for(self.SOURCE, "P")
        with pytest.raises(TypeError):
            EvalContext(table).holds(object())


class TestCounts:
    SOURCE = """
        contract Feeds {
            address oracleA;
            address chainlink;
            // oracle fallback is the chainlink feed
            function read() public {}
        }
    """

    def _fires(self, op, n):
        rule = make_rule(scope="contract", counts=[count_of(words("oracle", "chainlink"), op, n)])
        return bool(run_rule(rule, self.SOURCE))

    def test_exact_comparisons(self):
        # chainlink (code), oracle + chainlink (comment); oracleA is a different word
        assert self._fires("==", 3)
        assert not self._fires("==", 2)
        assert not self._fires("==", 4)
        assert self._fires(">=", 3)
        assert not self._fires(">", 3)
        assert self._fires("<", 4)
        assert self._fires("<=", 3)
        assert self._fires("!=", 0)

    def test_synonyms_do_not_double_count(self):
        rule = make_rule(scope="contract", counts=[count_of(words("chainlink", "CHAINLINK"), "==", 2)])
        assert run_rule(rule, self.SOURCE)

    def test_count_respects_matching_scopes(self):
        rule = make_rule(scope="contract", within=["code"], counts=[count_of(words("oracle", "chainlink"), "==", 1)])
        assert run_rule(rule, self.SOURCE)


class TestPartialSafety:
    SOURCE = """
        contract Broken {
            function bad() public {
                foo(1;
            }
        }
    """

    def test_absence_rule_skips_partial_function(self):
        rule = make_rule(requires=[words("foo")], unless=words("bar"))
        diagnostics = []
        assert run_rule(rule, self.SOURCE, diagnostics=diagnostics) == []
        assert len(diagnostics) == 1
        d = diagnostics[0]
        assert (d.kind, d.rule_id, d.contract, d.function) == ("partial-facts-skipped", "test-rule", "Broken", "bad")

    def test_count_rule_skips_partial_contract(self):
        rule = make_rule(scope="contract", counts=[count_of(words("foo"), "==", 1)])
        diagnostics = []
        assert run_rule(rule, self.SOURCE, diagnostics=diagnostics) == []
        assert [d.kind for d in diagnostics] == ["partial-facts-skipped"]
        assert diagnostics[0].function is None

    def test_presence_rule_still_runs(self):
        rule = make_rule(requires=[words("foo")])
        diagnostics = []
        findings = run_rule(rule, self.SOURCE, diagnostics=diagnostics)
        assert [f.function for f in findings] == ["bad"]
        assert diagnostics == []


class TestFilters:
    SOURCE = """
        contract F {
            modifier guarded() { foo(); _; }
            function pub() public { foo(); }
            function ext() external { foo(); }
            function hidden() internal { foo(); }
        }
        interface I {
            function foo() external;
        }
    """

    def test_visibility_filter(self):
        rule = make_rule(requires=[words("foo")], visibility=["public", "external"])
        assert sorted(f.function for f in run_rule(rule, self.SOURCE)) == ["ext", "pub"]

    def test_modifiers_and_bodyless_functions_are_skipped_by_default(self):
        rule = make_rule(requires=[words("foo")])
        assert sorted(f.function for f in run_rule(rule, self.SOURCE)) == ["ext", "hidden", "pub"]

    def test_kinds_filter(self):
        rule = make_rule(requires=[words("foo")], kinds=["modifier"])
        assert [f.function for f in run_rule(rule, self.SOURCE)] == ["guarded"]

    def test_language_filter(self):
        rule = make_rule(requires=[words("foo")], languages=["rust"])
        assert run_rule(rule, self.SOURCE) == []
        assert run_rule(rule, "fn f() { foo(); }", path="lib.rs")


class TestFindings:
    def test_contract_finding_at_first_occurrence(self):
        rule = make_rule(scope="contract", requires=[words("selfdestruct")])
        findings = run_rule(rule, """
            contract K {
                uint256 x;

                function kill() public {
                    selfdestruct(payable(msg.sender));
                }
            }
        """)
        assert [(f.line, f.function) for f in findings] == [(6, None)]

    def test_message_template(self):
        rule = make_rule(
            "msg-rule",
            title="Title only",
            requires=[words("foo")],
            message="{contract}.{function} triggers {rule}",
            fix="Do not call foo",
        )
        finding = run_rule(rule, "contract C { function f() public { foo(); } }")[0]
        assert finding.message == "C.f triggers msg-rule"
        assert finding.fix_suggestion == "Do not call foo"
        assert finding.title == "Title only"

    def test_title_is_default_message(self):
        rule = make_rule("no-msg", title="Calls foo", requires=[words("foo")])
        finding = run_rule(rule, "contract C { function f() public { foo(); } }")[0]
        assert finding.message == "Calls foo"
        assert finding.fix_suggestion is None

    def test_evaluation_is_pure(self):
        table = table_for("contract C { function f() public { foo(); } }", "C")
        rule = make_rule(requires=[words("foo")])
        assert evaluate(rule, table) == evaluate(rule, table)
