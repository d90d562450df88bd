"""
Debug and development CLI commands: parser check, fact schemas, fact dumps.
"""

import os
from typing import List

from core.config import Deadline, Settings
from core.context import ProjectContext
from core.errors import AnalysisTimeout, InputError
from core.facts import FactTable, get_all_fact_schemas, get_facts_by_scope
from core.utils import error
from lang.parser import parse_source
from lang.source import load_source


def check_parser_impl(source_files: List[str], settings: Settings) -> int:
    """Parse every file and report parse errors. Returns 1 if any file has errors."""
    print("Parser check mode: Validating parse trees...")
    has_errors = False
    for source_file in source_files:
        try:
            unit = load_source(source_file, settings.max_file_size, settings.language)
            tree = parse_source(unit, deadline=Deadline(source_file, settings.file_timeout))
        except (InputError, AnalysisTimeout) as e:
            error(f"Failed to parse {source_file}: {e}")
            has_errors = True
            continue

        partial = [fn.name for fn in tree.functions if fn.partial]
        if tree.errors:
            error(f"PARSER ERRORS FOUND in {source_file}: {len(tree.errors)} error(s)")
            for err in tree.errors:
                where = f" (in {err.function})" if err.function else ""
                error(f"  {source_file}:{err.line}: {err.message}{where}")
            has_errors = True
        if partial:
            error(f"  partially parsed functions: {', '.join(partial)}")
        print(f"  {source_file}: {len(tree.contracts)} contract(s), {len(tree.functions)} function(s)")

    if has_errors:
        error("Parser validation FAILED")
        return 1
    print("✓ Parser validation PASSED: No parse errors found")
    return 0


def dump_fact_schemas() -> None:
    """Dump all registered fact schemas with descriptions."""
    print("=" * 70)
    print("SOLIDDEFEND FACT REGISTRY")
    print("=" * 70)

    for scope in ("contract", "function", "statement"):
        facts = get_facts_by_scope(scope)
        if not facts:
            continue

        print(f"\n## {scope.upper()} SCOPE ({len(facts)} facts)")
        print("-" * 50)

        for schema in sorted(facts, key=lambda s: s.name):
            args_str = ", ".join(f"{name}: {t.__name__}" for name, t in schema.args)
            print(f"  {schema.name}({args_str})")
            print(f"    {schema.description}")

    total = len(get_all_fact_schemas())
    print("\n" + "=" * 70)
    print(f"Total: {total} facts registered")
    print("=" * 70)


def _write_table(f, table: FactTable) -> None:
    partial = " (partial)" if table.partial else ""
    f.write(f"## {table.kind} {table.contract}{partial}\n")
    f.write(f"**Location:** `{table.path}:{table.line}`\n\n")

    if table.facts:
        f.write("**Facts:**\n")
        for fact in table.facts:
            f.write(f"- `{fact}`\n")
        f.write("\n")

    for fn in table.functions:
        partial = " (partial)" if fn.partial else ""
        f.write(f"### {fn.qualified_name}{partial}\n")
        f.write(f"**Location:** `{table.path}:{fn.line}`\n\n")
        f.write("**Source:**\n```\n")
        f.write(table.unit.line_text(fn.line).rstrip())
        f.write("\n```\n\n")

        if fn.facts:
            f.write("**Facts:**\n")
            for fact in sorted(fn.facts, key=lambda x: x.name):
                f.write(f"- `{fact}`\n")
            f.write("\n")

        external = [c for c in fn.call_sites if c.is_external]
        if external:
            f.write("**External calls:**\n")
            for site in external:
                loop = " (in loop)" if site.in_loop else ""
                f.write(f"- line {site.line}: `{site.callee}` [{site.kind}]{loop}\n")
            f.write("\n")
        f.write("---\n\n")


def dump_facts_to_dir(ctx: ProjectContext, output_dir: str) -> None:
    """
    Dump all facts for each analyzed file to markdown files.

    Creates one .facts.md file per source file with contracts, their facts,
    every function's facts and its external call sites.
    """
    os.makedirs(output_dir, exist_ok=True)

    for file_path, file_ctx in ctx.source_files.items():
        if not file_ctx.analyzed:
            continue

        basename = os.path.basename(file_path)
        output_path = os.path.join(output_dir, f"{basename}.facts.md")
        with open(output_path, "w", encoding="utf-8") as f:
            f.write(f"# {basename}\n\n")
            if not file_ctx.tables:
                f.write("*No contracts found.*\n")
            for table in file_ctx.tables:
                _write_table(f, table)

    print(f"Facts dumped to: {output_dir}/")
