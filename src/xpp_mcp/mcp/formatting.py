"""
Markdown rendering of service results for MCP tool responses.

Each tool returns structured data plus a ``text`` field rendered here, so
an assistant can show the result without post-processing.
"""

from typing import List, Optional, Sequence

from xpp_mcp.core.models import (
    ApiUsageReport,
    BatchSearchItem,
    IndexStats,
    MissingMethodsReport,
    PatternAnalysis,
    SearchResponse,
    SimilarMethod,
    Symbol,
    SymbolDetails,
    SymbolKind,
)
from xpp_mcp.search.suggestions import format_suggestions

MAX_LISTED = 10


def _join_limited(items: Sequence[str], limit: int = MAX_LISTED) -> str:
    text = ", ".join(items[:limit])
    if len(items) > limit:
        text += f", ... ({len(items) - limit} more)"
    return text


def symbol_line(symbol: Symbol) -> str:
    """One-line summary: kind, qualified name, signature and model."""
    line = f"- **{symbol.qualified_name}** ({symbol.kind.value}, {symbol.model})"
    if symbol.signature:
        line += f" `{symbol.signature}`"
    return line


def format_search(response: SearchResponse) -> str:
    parts = [f'# Search: "{response.query}"', ""]
    if response.hits:
        cached = " (cached)" if response.from_cache else ""
        parts.append(f"Found {len(response.hits)} result(s){cached}:")
        parts.append("")
        for hit in response.hits:
            line = symbol_line(hit.symbol)
            if hit.source == "workspace":
                line += " [workspace]"
            parts.append(line)
    else:
        parts.append("No symbols found.")
        suggestions = format_suggestions(response.suggestions)
        if suggestions:
            parts.append(suggestions)
    return "\n".join(parts)


def format_batch(items: Sequence[BatchSearchItem]) -> str:
    succeeded = sum(1 for item in items if item.success)
    parts = [f"# Batch search: {succeeded}/{len(items)} succeeded", ""]
    for item in items:
        if item.success and item.response is not None:
            parts.append(format_search(item.response).replace("# Search:", "## Search:", 1))
        else:
            parts.append(f'## Search: "{item.query}"\n\nFailed: {item.error}')
        parts.append("")
    return "\n".join(parts).rstrip()


def format_details(details: SymbolDetails) -> str:
    """Class or table with its members."""
    symbol = details.symbol
    parts = [f"# {symbol.kind.value.capitalize()}: {symbol.name}", ""]
    parts.append(f"Model: {symbol.model}")
    if symbol.extends:
        parts.append(f"Extends: {symbol.extends}")
    if symbol.implements:
        parts.append(f"Implements: {', '.join(symbol.implements)}")
    if symbol.pattern_type:
        parts.append(f"Pattern: {symbol.pattern_type}")
    if symbol.tags:
        parts.append(f"Tags: {', '.join(symbol.tags)}")
    if symbol.description:
        parts.extend(["", symbol.description])

    for kind, title in ((SymbolKind.FIELD, "Fields"), (SymbolKind.METHOD, "Methods")):
        members = details.members_of_kind(kind)
        if not members:
            continue
        parts.extend(["", f"## {title} ({len(members)})", ""])
        for member in members:
            parts.append(f"- `{member.signature or member.name}`")
    return "\n".join(parts)


def format_symbol(symbol: Symbol) -> str:
    parts = [f"# {symbol.kind.value.capitalize()}: {symbol.qualified_name}", ""]
    parts.append(f"Model: {symbol.model}")
    if symbol.signature:
        parts.append(f"Signature: `{symbol.signature}`")
    if symbol.pattern_type:
        parts.append(f"Pattern: {symbol.pattern_type}")
    if symbol.complexity is not None:
        parts.append(f"Complexity: {symbol.complexity}")
    if symbol.tags:
        parts.append(f"Tags: {', '.join(symbol.tags)}")
    if symbol.description:
        parts.extend(["", symbol.description])
    if symbol.source_snippet:
        parts.extend(["", "```xpp", symbol.source_snippet, "```"])
    return "\n".join(parts)


def format_not_found(label: str, name: str, similar: Sequence[str], kind: Optional[str] = None) -> str:
    """Not-found message with close names, or a search to try instead."""
    text = f'{label} "{name}" not found.'
    if similar:
        return f"{text} Did you mean: {', '.join(similar)}?"
    type_arg = f', type="{kind}"' if kind else ""
    return f'{text} Try search("{name[:5]}"{type_arg}).'


def format_completions(class_name: str, prefix: str, members: Sequence[Symbol]) -> str:
    prefix_msg = f' starting with "{prefix}"' if prefix else ""
    parts = [f"# Code Completion: {class_name}{prefix_msg}", ""]
    if not members:
        parts.append(f"No members{prefix_msg} found.")
        return "\n".join(parts)
    parts.extend([f"Found {len(members)} member(s):", ""])
    for member in members:
        parts.append(f"- {member.name} ({member.kind.value}): `{member.signature or member.name}`")
    return "\n".join(parts)


def format_extensions(query: str, prefix: Optional[str], symbols: Sequence[Symbol]) -> str:
    prefix_msg = f' with prefix "{prefix}"' if prefix else ""
    if not symbols:
        return f'No custom extension symbols found matching "{query}"{prefix_msg}'
    parts = [f'# Custom extensions matching "{query}"{prefix_msg}', ""]
    parts.extend(symbol_line(s) for s in symbols)
    return "\n".join(parts)


def format_pattern_analysis(analysis: PatternAnalysis) -> str:
    parts = [f'# Pattern analysis: "{analysis.scenario}"', ""]
    if not analysis.total_matches:
        parts.append("No matching classes found.")
        return "\n".join(parts)
    parts.append(f"Analysed {analysis.total_matches} class(es).")

    parts.extend(["", "## Patterns", ""])
    for group in analysis.patterns:
        parts.append(f"- **{group.pattern_type}** ({group.count}): {', '.join(group.examples)}")
    if analysis.common_methods:
        parts.extend(["", "## Common methods", ""])
        parts.extend(f"- {m.name} ({m.frequency})" for m in analysis.common_methods)
    if analysis.common_dependencies:
        parts.extend(["", "## Common dependencies", ""])
        parts.extend(f"- {d.name} ({d.frequency})" for d in analysis.common_dependencies)
    parts.extend(["", f"Examples: {_join_limited(analysis.example_classes)}"])
    return "\n".join(parts)


def format_missing_methods(report: MissingMethodsReport) -> str:
    if not report.found:
        return f'Class "{report.class_name}" not found'
    parts = [f"# Missing methods: {report.class_name}", ""]
    parts.append(f"Pattern: {report.pattern_type} ({report.peer_classes} peer class(es))")
    if not report.suggestions:
        parts.extend(["", "No missing methods detected."])
        return "\n".join(parts)
    parts.append("")
    for s in report.suggestions:
        parts.append(f"- **{s.method_name}**: {s.frequency}/{s.total_classes} classes ({s.percentage:.0f}%)")
    return "\n".join(parts)


def format_similar_methods(method_name: str, methods: Sequence[SimilarMethod]) -> str:
    if not methods:
        return f'No methods similar to "{method_name}" found'
    parts = [f'# Methods similar to "{method_name}"', ""]
    for m in methods:
        parts.append(f"## {m.class_name}.{m.method_name} (score {m.score:.2f})")
        if m.signature:
            parts.append(f"`{m.signature}`")
        details: List[str] = []
        if m.pattern_type:
            details.append(f"pattern {m.pattern_type}")
        if m.complexity is not None:
            details.append(f"complexity {m.complexity}")
        if m.tags:
            details.append(f"tags {', '.join(m.tags)}")
        if details:
            parts.append("; ".join(details))
        if m.source_excerpt:
            parts.extend(["```xpp", m.source_excerpt, "```"])
        parts.append("")
    return "\n".join(parts).rstrip()


def format_api_usage(report: ApiUsageReport) -> str:
    if not report.found:
        return f'No usages of "{report.api_name}" found'
    parts = [f"# API usage: {report.api_name}", "", f"Used by {report.usage_count} method(s)."]
    for i, pattern in enumerate(report.patterns, 1):
        parts.extend(["", f"## Pattern {i} ({pattern.usage_count} use(s))"])
        if pattern.initialization:
            parts.extend(["```xpp", *pattern.initialization, "```"])
        if pattern.method_sequence:
            parts.append(f"Calls: {' -> '.join(pattern.method_sequence)}")
        if pattern.classes:
            parts.append(f"In: {_join_limited(pattern.classes)}")
    if report.common_method_calls:
        parts.extend(["", "## Common method calls", ""])
        parts.extend(f"- {c.name} ({c.frequency})" for c in report.common_method_calls)
    return "\n".join(parts)


def format_index_stats(stats: IndexStats) -> str:
    parts = [
        f"Indexed {stats.symbols_indexed} symbols from {stats.files_parsed} files "
        f"in {stats.duration_seconds:.1f}s",
        f"Models: {_join_limited(stats.models)}",
    ]
    if stats.parse_errors:
        parts.append(f"Skipped {stats.parse_errors} file(s) that failed to parse")
    return "\n".join(parts)
