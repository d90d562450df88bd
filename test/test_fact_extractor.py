"""Tests for fact extraction: FactTable contents and construct detection."""
from core.facts import Fact, fact_exists
from test_utils import fact_names, facts_for, get_function, table_for


class TestContractFacts:
    def test_contract_inheritance_and_state(self):
        table = table_for("""
            contract Vault is Ownable {
                uint256 public total;
                IERC20 token;
                function f() public {}
            }
        """, "Vault")
        assert fact_exists(list(table.facts), "Contract", ("Vault", "contract"))
        assert fact_exists(list(table.facts), "Inherits", ("Vault", "Ownable"))
        assert fact_exists(list(table.facts), "StateVar", ("Vault", "total", "uint256"))
        assert fact_exists(list(table.facts), "StateVar", ("Vault", "token", "IERC20"))
        assert table.kind == "contract"
        assert table.language == "solidity"
        assert not table.partial

    def test_one_table_per_contract_in_file_order(self):
        tables = facts_for("""
            contract A { function a() public {} }
            contract B { function b() public {} }
        """)
        assert [t.contract for t in tables] == ["A", "B"]
        assert [fn.qualified_name for fn in tables[1].functions] == ["B.b"]

    def test_header_facts(self):
        table = table_for("""
            contract C {
                event Deposit(address from, uint256 value);
                function deposit(uint256 amount) external payable {
                    emit Deposit(msg.sender, msg.value);
                }
                function peek() public view returns (uint256) { return 1; }
            }
        """, "C")
        deposit = get_function(table, "deposit")
        assert Fact("Fun", ("C.deposit",)) in deposit.facts
        assert Fact("Visibility", ("C.deposit", "external")) in deposit.facts
        assert Fact("FormalArg", ("C.deposit", 0, "amount", "uint256")) in deposit.facts
        assert Fact("IsPayable", ("C.deposit",)) in deposit.facts
        assert Fact("EmitsEvent", ("C.deposit", "Deposit")) in deposit.facts
        assert "IsReadOnly" in fact_names(get_function(table, "peek"))


class TestExternalCalls:
    BANK = """
        contract Bank {
            mapping(address => uint256) public balances;

            function withdraw() external {
                uint256 amount = balances[msg.sender];
                (bool ok, ) = msg.sender.call{value: amount}("");
                require(ok);
                balances[msg.sender] = 0;
            }

            function withdrawSafe() external {
                uint256 amount = balances[msg.sender];
                balances[msg.sender] = 0;
                (bool ok, ) = msg.sender.call{value: amount}("");
                require(ok);
            }
        }
    """

    def test_write_after_external_call(self):
        table = table_for(self.BANK, "Bank")
        withdraw = get_function(table, "withdraw")
        assert Fact("WriteAfterExternalCall", ("Bank.withdraw", "balances")) in withdraw.facts
        assert Fact("WritesState", ("Bank.withdraw", "balances")) in withdraw.facts
        assert Fact("LowLevelCall", ("Bank.withdraw", "call", 7)) in withdraw.facts
        assert "UncheckedLowLevelCall" not in fact_names(withdraw)

        external = [c for c in withdraw.call_sites if c.is_external]
        assert [(c.kind, c.callee, c.line) for c in external] == [("low-level", "msg.sender.call", 7)]

    def test_checks_effects_interactions_order(self):
        table = table_for(self.BANK, "Bank")
        safe = get_function(table, "withdrawSafe")
        assert "WritesState" in fact_names(safe)
        assert "ExternalCall" in fact_names(safe)
        assert "WriteAfterExternalCall" not in fact_names(safe)

    def test_unchecked_send_and_call(self):
        table = table_for("""
            contract Pay {
                function pay(address payable to) external {
                    to.send(1 ether);
                    to.call("");
                    bool ok = to.send(1);
                    require(ok);
                }
            }
        """, "Pay")
        pay = get_function(table, "pay")
        unchecked = sorted(f.args for f in pay.facts_named("UncheckedLowLevelCall"))
        assert unchecked == [("Pay.pay", "call", 5), ("Pay.pay", "send", 4)]
        assert len(pay.facts_named("ValueTransfer")) == 2

    def test_interface_and_state_receiver_calls(self):
        table = table_for("""
            contract Airdrop {
                IERC20 public token;

                function payAll(address[] memory users) external {
                    for (uint i = 0; i < users.length; i++) {
                        token.transfer(users[i], 1);
                    }
                }

                function payOne(address user) external {
                    IERC20(token).transfer(user, 1);
                }
            }
        """, "Airdrop")
        pay_all = get_function(table, "payAll")
        assert "HasLoop" in fact_names(pay_all)
        assert Fact("ExternalCallInLoop", ("Airdrop.payAll", "token.transfer", 7)) in pay_all.facts
        site = [c for c in pay_all.call_sites if c.is_external][0]
        assert (site.kind, site.in_loop) == ("state-receiver", True)

        pay_one = get_function(table, "payOne")
        assert Fact("ExternalCall", ("Airdrop.payOne", "IERC20(token).transfer", 12)) in pay_one.facts
        assert "ExternalCallInLoop" not in fact_names(pay_one)

    def test_assembly_delegatecall(self):
        table = table_for("""
            contract Asm {
                function raw(address t) public {
                    assembly {
                        let ok := delegatecall(gas(), t, 0, 0, 0, 0)
                    }
                }
            }
        """, "Asm")
        raw = get_function(table, "raw")
        assert {"AssemblyBlock", "Delegatecall", "LowLevelCall", "ExternalCall"} <= fact_names(raw)


class TestAccessControl:
    PROXY = """
        contract Proxy {
            address owner;

            modifier onlyOwner() {
                require(msg.sender == owner);
                _;
            }

            modifier gate() {
                require(msg.sender == owner);
                _;
            }

            function exec(address impl, bytes calldata data) public onlyOwner {
                (bool s, ) = impl.delegatecall(data);
                require(s);
            }

            function custom(address impl) public gate {
                impl.delegatecall("");
            }

            function open(address impl) public {
                impl.delegatecall("");
            }

            function inline() public {
                require(msg.sender == owner, "not owner");
                selfdestruct(payable(owner));
            }
        }
    """

    def test_only_modifier(self):
        exec_fn = get_function(table_for(self.PROXY, "Proxy"), "exec")
        assert Fact("HasAccessControlModifier", ("Proxy.exec", "onlyOwner")) in exec_fn.facts
        assert "HasAccessControl" in fact_names(exec_fn)
        assert Fact("Delegatecall", ("Proxy.exec", "impl", 16)) in exec_fn.facts

    def test_modifier_with_caller_check_in_body(self):
        custom = get_function(table_for(self.PROXY, "Proxy"), "custom")
        assert Fact("HasAccessControlModifier", ("Proxy.custom", "gate")) in custom.facts
        assert "HasAccessControl" in fact_names(custom)

    def test_unguarded_function(self):
        open_fn = get_function(table_for(self.PROXY, "Proxy"), "open")
        assert "Delegatecall" in fact_names(open_fn)
        assert "HasAccessControl" not in fact_names(open_fn)
        assert Fact("UncheckedLowLevelCall", ("Proxy.open", "delegatecall", 25)) in open_fn.facts

    def test_inline_sender_check(self):
        inline = get_function(table_for(self.PROXY, "Proxy"), "inline")
        assert "HasAccessControl" in fact_names(inline)
        assert "HasAccessControlModifier" not in fact_names(inline)


class TestOtherConstructs:
    def test_recursion(self):
        table = table_for("""
            contract R {
                function fact(uint n) public returns (uint) {
                    if (n == 0) return 1;
                    return n * fact(n - 1);
                }
                function viaThis(uint n) public {
                    this.viaThis(n);
                }
                function calls(uint n) public {
                    fact(n);
                }
            }
        """, "R")
        assert "SelfRecursive" in fact_names(get_function(table, "fact"))
        assert "SelfRecursive" in fact_names(get_function(table, "viaThis"))
        assert "SelfRecursive" not in fact_names(get_function(table, "calls"))

    def test_replay_guards(self):
        table = table_for("""
            contract Sig {
                mapping(address => uint256) public nonces;
                mapping(bytes32 => bool) usedSignatures;

                function a(bytes32 h, uint8 v, bytes32 r, bytes32 s) external {
                    address signer = ecrecover(h, v, r, s);
                    nonces[signer]++;
                }

                function b(bytes32 h) external {
                    usedSignatures[h] = true;
                }

                function c(bytes32 h, uint8 v, bytes32 r, bytes32 s) external {
                    ecrecover(h, v, r, s);
                }
            }
        """, "Sig")
        assert Fact("ReplayGuard", ("Sig.a", "nonces")) in get_function(table, "a").facts
        assert Fact("ReplayGuard", ("Sig.b", "usedSignatures")) in get_function(table, "b").facts
        assert "ReplayGuard" not in fact_names(get_function(table, "c"))

    def test_local_shadowing_state_is_not_a_write(self):
        table = table_for("""
            contract S {
                uint256 balance;
                function f() public {
                    uint256 balance = 1;
                    balance = 2;
                }
            }
        """, "S")
        assert "WritesState" not in fact_names(get_function(table, "f"))

    def test_constants_are_not_state_writes(self):
        table = table_for("""
            contract K {
                uint256 constant LIMIT = 10;
                uint256 counter;
                function f() public {
                    counter += LIMIT;
                }
            }
        """, "K")
        writes = [f.args[1] for f in get_function(table, "f").facts_named("WritesState")]
        assert writes == ["counter"]

    def test_unchecked_block(self):
        table = table_for("""
            contract M {
                function inc(uint x) public pure returns (uint) {
                    unchecked { x += 1; }
                    return x;
                }
            }
        """, "M")
        assert {"UncheckedBlock", "IsReadOnly"} <= fact_names(get_function(table, "inc"))

    def test_partial_function(self):
        table = table_for("""
            contract Broken {
                function bad() public {
                    foo(1;
                }
                function ok() public {}
            }
        """, "Broken")
        bad = get_function(table, "bad")
        assert bad.partial
        assert Fact("IncompleteBody", ("Broken.bad", "unbalanced brackets")) in bad.facts
        assert not get_function(table, "ok").partial
        assert table.partial


class TestRustAndMove:
    def test_solana_signer_check_and_cpi(self):
        table = table_for("""
            pub fn process_withdraw(program_id: &Pubkey, accounts: &[AccountInfo]) -> ProgramResult {
                let account_info_iter = &mut accounts.iter();
                let vault = next_account_info(account_info_iter)?;
                let authority = next_account_info(account_info_iter)?;
                if !authority.is_signer {
                    return Err(ProgramError::MissingRequiredSignature);
                }
                **vault.try_borrow_mut_lamports()? -= 10;
                invoke(&ix, &[vault.clone()])?;
                Ok(())
            }
        """, "processor", path="processor.rs")
        fn = get_function(table, "process_withdraw")
        assert table.kind == "file"
        assert "HasAccessControl" in fact_names(fn)
        assert Fact("ExternalCall", ("processor.process_withdraw", "invoke", 10)) in fn.facts
        assert Fact("WritesState", ("processor.process_withdraw", "vault")) in fn.facts
        assert "WriteAfterExternalCall" not in fact_names(fn)

    def test_unsafe(self):
        table = table_for("""
            impl Vault {
                fn raw(&self) { unsafe { do_it(); } }
                unsafe fn marked() {}
                fn safe() {}
            }
        """, "Vault", path="lib.rs")
        assert "UnsafeBlock" in fact_names(get_function(table, "raw"))
        assert "UnsafeBlock" in fact_names(get_function(table, "marked"))
        assert "UnsafeBlock" not in fact_names(get_function(table, "safe"))

    def test_move_capability_and_global_write(self):
        table = table_for("""
            module 0x1::vault {
                struct AdminCap has key { id: UID }

                public fun reset(_cap: &AdminCap, addr: address) acquires Vault {
                    let v = borrow_global_mut<Vault>(addr);
                    v.total = 0;
                }

                public fun open_reset(addr: address) acquires Vault {
                    let v = borrow_global_mut<Vault>(addr);
                    v.total = 0;
                }
            }
        """, "vault", path="vault.move")
        reset = get_function(table, "reset")
        assert "HasAccessControl" in fact_names(reset)
        assert Fact("WritesState", ("vault.reset", "borrow_global_mut")) in reset.facts
        assert "HasAccessControl" not in fact_names(get_function(table, "open_reset"))
