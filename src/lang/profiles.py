"""
Language profiles for the generic brace-language parser.

A profile only tells the parser and extractor which keywords play which role.
The grammar itself is shared: brace-delimited blocks, keyword-introduced
declarations, `;`-terminated statements.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, FrozenSet, Optional, Tuple

from core.errors import ConfigError


@dataclass(frozen=True)
class LanguageProfile:
    name: str
    extensions: Tuple[str, ...]
    # keyword -> contract kind
    container_keywords: Dict[str, str]
    # keyword -> function kind
    function_keywords: Dict[str, str]
    # function kinds declared without a name token (constructor() {...})
    anonymous_function_kinds: FrozenSet[str] = frozenset()
    # keyword -> normalized visibility
    visibility_keywords: Dict[str, str] = field(default_factory=dict)
    default_visibility: str = "private"
    mutability_keywords: FrozenSet[str] = frozenset()
    default_mutability: str = ""
    # Header words that are neither visibility, mutability nor user modifiers
    specifier_keywords: FrozenSet[str] = frozenset()
    # Prefix words recorded as function qualifiers (entry, async, ...)
    qualifier_keywords: FrozenSet[str] = frozenset()
    # Header keyword that introduces a return list / type
    returns_markers: FrozenSet[str] = frozenset()
    # Declarations skipped as a whole (struct bodies, events, ...)
    skip_block_keywords: FrozenSet[str] = frozenset()
    skip_statement_keywords: FrozenSet[str] = frozenset()
    # "typed" = `Type [specifiers] name [= value];`, "const" = `const NAME: Type = value;`
    state_var_style: str = "typed"
    const_keywords: FrozenSet[str] = frozenset()
    state_var_specifiers: FrozenSet[str] = frozenset()
    inheritance_keyword: Optional[str] = None
    # Blocks whose content is not parsed (inline assembly)
    opaque_block_keywords: FrozenSet[str] = frozenset()
    # `keyword {` blocks reported as facts: keyword -> fact name
    flagged_block_keywords: Dict[str, str] = field(default_factory=dict)
    loop_keywords: FrozenSet[str] = frozenset({"for", "while", "do"})
    self_references: FrozenSet[str] = frozenset({"this"})
    nested_functions: bool = False
    nested_block_comments: bool = False
    lifetimes: bool = False
    # Calls that write persistent state in languages without contract-level variables
    state_write_calls: FrozenSet[str] = frozenset()
    # Free calls that cross a program boundary
    external_call_functions: FrozenSet[str] = frozenset()
    # Calls that perform an access check on the caller
    access_guard_calls: FrozenSet[str] = frozenset()
    # Identifiers whose presence in a condition is an access check
    access_guard_identifiers: FrozenSet[str] = frozenset()
    # Parameter type suffix that proves the caller holds a capability
    capability_type_suffix: Optional[str] = None
    event_emitters: FrozenSet[str] = frozenset()
    # Solidity-style user modifiers between the parameter list and the body
    header_modifiers: bool = False
    default_state_visibility: str = "internal"
    # `pub(crate)`, `public(friend)`: inner word -> visibility
    restricted_visibility: Dict[str, str] = field(default_factory=dict)
    # Qualifiers that imply a visibility when none is written (Move `entry fun`)
    qualifier_visibility: Dict[str, str] = field(default_factory=dict)
    # `module a::b;` declares a module spanning the rest of the file
    file_module_keywords: FrozenSet[str] = frozenset()
    # EVM call forms: addr.call(...), addr.send(x), payable(a).transfer(x)
    evm_calls: bool = False


SOLIDITY = LanguageProfile(
    name="solidity",
    extensions=(".sol",),
    container_keywords={"contract": "contract", "interface": "interface", "library": "library"},
    function_keywords={
        "function": "function",
        "constructor": "constructor",
        "fallback": "fallback",
        "receive": "receive",
        "modifier": "modifier",
    },
    anonymous_function_kinds=frozenset({"constructor", "fallback", "receive"}),
    visibility_keywords={"public": "public", "external": "external", "internal": "internal", "private": "private"},
    default_visibility="public",
    mutability_keywords=frozenset({"view", "pure", "payable", "constant", "nonpayable"}),
    default_mutability="nonpayable",
    qualifier_keywords=frozenset({"abstract"}),
    specifier_keywords=frozenset({"virtual", "override"}),
    returns_markers=frozenset({"returns"}),
    skip_block_keywords=frozenset({"struct", "enum"}),
    skip_statement_keywords=frozenset({"event", "error", "using", "pragma", "import", "type"}),
    state_var_style="typed",
    state_var_specifiers=frozenset({"constant", "immutable", "override", "transient"}),
    inheritance_keyword="is",
    opaque_block_keywords=frozenset({"assembly"}),
    flagged_block_keywords={"unchecked": "UncheckedBlock"},
    self_references=frozenset({"this"}),
    access_guard_calls=frozenset(
        {
            "_checkOwner",
            "_checkRole",
            "hasRole",
            "_onlyOwner",
            "requireAuth",
            "isAuthorized",
            "_authorizeUpgrade",
            "onlyOwner",
            "_requireOwner",
        }
    ),
    event_emitters=frozenset({"emit"}),
    header_modifiers=True,
    evm_calls=True,
)

MOVE = LanguageProfile(
    name="move",
    extensions=(".move",),
    container_keywords={"module": "module", "script": "module"},
    function_keywords={"fun": "function"},
    visibility_keywords={"public": "public"},
    default_visibility="private",
    qualifier_keywords=frozenset({"entry", "native", "inline", "macro"}),
    specifier_keywords=frozenset({"acquires"}),
    returns_markers=frozenset({":"}),
    skip_block_keywords=frozenset({"struct", "enum", "spec"}),
    skip_statement_keywords=frozenset({"use", "friend"}),
    state_var_style="const",
    const_keywords=frozenset({"const"}),
    loop_keywords=frozenset({"while", "loop"}),
    self_references=frozenset(),
    state_write_calls=frozenset({"borrow_global_mut", "move_to", "move_from", "borrow_mut"}),
    access_guard_calls=frozenset({"assert_admin", "only_admin", "check_admin"}),
    capability_type_suffix="Cap",
    event_emitters=frozenset({"emit"}),
    default_state_visibility="private",
    restricted_visibility={"friend": "friend", "package": "package"},
    qualifier_visibility={"entry": "entry"},
    file_module_keywords=frozenset({"module"}),
)

RUST = LanguageProfile(
    name="rust",
    extensions=(".rs",),
    container_keywords={"mod": "module", "impl": "impl", "trait": "trait"},
    function_keywords={"fn": "function"},
    visibility_keywords={"pub": "public"},
    default_visibility="private",
    qualifier_keywords=frozenset({"async", "unsafe", "const", "extern"}),
    specifier_keywords=frozenset({"where"}),
    returns_markers=frozenset({"->"}),
    skip_block_keywords=frozenset({"struct", "enum", "union", "macro_rules"}),
    skip_statement_keywords=frozenset({"use", "type"}),
    state_var_style="const",
    const_keywords=frozenset({"const", "static"}),
    flagged_block_keywords={"unsafe": "UnsafeBlock"},
    loop_keywords=frozenset({"for", "while", "loop"}),
    self_references=frozenset({"self", "Self"}),
    nested_functions=True,
    nested_block_comments=True,
    lifetimes=True,
    state_write_calls=frozenset({"serialize", "try_borrow_mut_lamports", "try_borrow_mut_data", "borrow_mut", "pack"}),
    external_call_functions=frozenset({"invoke", "invoke_signed"}),
    access_guard_identifiers=frozenset({"is_signer"}),
    event_emitters=frozenset({"emit"}),
    default_state_visibility="private",
    restricted_visibility={"crate": "internal", "super": "internal", "in": "internal", "self": "private"},
)

GENERIC = LanguageProfile(
    name="generic",
    extensions=(),
    container_keywords={
        "contract": "contract",
        "interface": "interface",
        "library": "library",
        "module": "module",
        "class": "contract",
    },
    function_keywords={"function": "function", "fun": "function", "fn": "function", "func": "function"},
    visibility_keywords={
        "public": "public",
        "external": "external",
        "internal": "internal",
        "private": "private",
        "pub": "public",
    },
    default_visibility="public",
    mutability_keywords=frozenset({"view", "pure", "payable"}),
    skip_block_keywords=frozenset({"struct", "enum"}),
    skip_statement_keywords=frozenset({"import", "use", "event", "using"}),
    state_var_style="typed",
    header_modifiers=True,
    evm_calls=True,
)

PROFILES: Dict[str, LanguageProfile] = {p.name: p for p in (SOLIDITY, MOVE, RUST, GENERIC)}


def get_profile(name: str) -> LanguageProfile:
    """Look up a profile by language id."""
    profile = PROFILES.get(name.lower())
    if profile is None:
        raise ConfigError(f"Unknown language '{name}'. Known: {', '.join(sorted(PROFILES))}")
    return profile


def profile_for_path(path: str) -> LanguageProfile:
    """Pick the profile from the file extension, falling back to the generic one."""
    suffix = Path(path).suffix.lower()
    for profile in PROFILES.values():
        if suffix in profile.extensions:
            return profile
    return GENERIC


def known_extensions() -> Tuple[str, ...]:
    exts = []
    for profile in PROFILES.values():
        exts.extend(profile.extensions)
    return tuple(exts)
