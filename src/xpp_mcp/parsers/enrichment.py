"""
Heuristic analysis of X++ method source code.

These helpers attach the analytic attributes used by search and pattern
analysis (semantic tags, complexity, referenced types, method calls, inline
comments, API usage examples) to metadata that only carries raw source.

Everything here is regex based. The results are hints for ranking and
suggestions, not a faithful X++ parse.
"""

import re
from typing import Dict, List, Any, Iterable

SNIPPET_LINES = 10
MAX_COMPLEXITY = 100

# Method-name driven tags
NAME_TAG_PATTERNS: Dict[str, re.Pattern] = {
    "validation": re.compile(r"validate|check|verify|isValid|canSubmit", re.I),
    "initialization": re.compile(r"init|create|new|construct|setup|build", re.I),
    "data-modification": re.compile(r"update|modify|change|set|edit|save|write", re.I),
    "query": re.compile(r"find|select|query|search|get|fetch|load|read", re.I),
    "deletion": re.compile(r"delete|remove|clear|purge|drop", re.I),
    "calculation": re.compile(r"calculate|compute|sum|total|aggregate", re.I),
    "conversion": re.compile(r"convert|transform|parse|format|serialize", re.I),
    "event-handler": re.compile(r"on[A-Z]|handle|process[A-Z]"),
}

# Source-content driven tags
CONTENT_TAG_PATTERNS: Dict[str, re.Pattern] = {
    "transaction": re.compile(r"\b(ttsbegin|ttscommit|ttsabort)\b", re.I),
    "error-handling": re.compile(r"\b(throw|try|catch)\b|\b(error|warning)\(", re.I),
    "database-query": re.compile(r"\bselect\b.*\bwhere\b", re.I | re.S),
    "set-based": re.compile(r"\b(insert_recordset|update_recordset|delete_from)\b", re.I),
    "loop": re.compile(r"\b(while|for|do)\s*\(", re.I),
    "conditional": re.compile(r"\bif\s*\(", re.I),
    "static-method": re.compile(r"\bstatic\b", re.I),
}

# Class-name prefix driven domain tags
DOMAIN_TAG_PATTERNS: Dict[str, re.Pattern] = {
    "customer": re.compile(r"^Cust"),
    "vendor": re.compile(r"^Vend"),
    "inventory": re.compile(r"^Invent"),
    "sales": re.compile(r"^Sales"),
    "purchasing": re.compile(r"^Purch"),
    "ledger": re.compile(r"^Ledger"),
    "tax": re.compile(r"^Tax"),
    "project": re.compile(r"^Proj"),
    "warehouse": re.compile(r"^(WMS|WHS)", re.I),
    "production": re.compile(r"^Prod"),
}

CLASS_TAG_PATTERNS: Dict[str, re.Pattern] = {
    "business-logic": re.compile(r"Controller|Engine|Service|Manager", re.I),
    "utility": re.compile(r"Helper|Util|Tool", re.I),
    "builder-pattern": re.compile(r"Builder", re.I),
    "factory-pattern": re.compile(r"Factory", re.I),
    "event-handler": re.compile(r"Handler", re.I),
}

PRIMITIVE_TYPES = frozenset({"Int", "String", "Real", "Boolean", "Date", "DateTime", "Guid", "Int64"})

_USED_TYPE_PATTERNS = (
    re.compile(r"\b([A-Z][A-Za-z0-9_]*)\s+[a-z_]"),
    re.compile(r"\b([A-Z][A-Za-z0-9_]*)::"),
    re.compile(r"\bnew\s+([A-Z][A-Za-z0-9_]*)\s*\("),
)
_CALL_PATTERNS = (
    re.compile(r"\.([a-z][A-Za-z0-9_]*)\s*\("),
    re.compile(r"::([a-z][A-Za-z0-9_]*)\s*\("),
)
_LINE_COMMENT = re.compile(r"//\s*(.+)")
_BLOCK_COMMENT = re.compile(r"/\*\s*(.+?)\s*\*/")

# "Type var = new Type(" or "Type var = Type::construct("
_INIT_PATTERN = re.compile(
    r"\b([A-Z][A-Za-z0-9_]*)\s+([a-z_][A-Za-z0-9_]*)\s*=\s*"
    r"(?:new\s+([A-Z][A-Za-z0-9_]*)\s*\(|([A-Z][A-Za-z0-9_]*)::([a-z][A-Za-z0-9_]*)\s*\()"
)


def _unique(items: Iterable[str]) -> List[str]:
    seen = set()
    out = []
    for item in items:
        if item not in seen:
            seen.add(item)
            out.append(item)
    return out


def extract_method_tags(source: str, class_name: str, method_name: str) -> List[str]:
    """Semantic tags from a method's name, body and owning class name."""
    tags = [tag for tag, pattern in NAME_TAG_PATTERNS.items() if pattern.search(method_name)]
    tags += [tag for tag, pattern in CONTENT_TAG_PATTERNS.items() if pattern.search(source or "")]
    tags += [tag for tag, pattern in DOMAIN_TAG_PATTERNS.items() if pattern.search(class_name)]
    return _unique(tags)


def extract_class_tags(class_name: str, is_abstract: bool = False, is_final: bool = False,
                       method_names: Iterable[str] = ()) -> List[str]:
    tags = [tag for tag, pattern in CLASS_TAG_PATTERNS.items() if pattern.search(class_name)]
    if is_abstract:
        tags.append("abstract")
    if is_final:
        tags.append("final")
    if "main" in method_names:
        tags.append("runnable")
    tags += [tag for tag, pattern in DOMAIN_TAG_PATTERNS.items() if pattern.search(class_name)]
    return _unique(tags)


def calculate_complexity(source: str) -> int:
    """
    Complexity score: non-blank lines plus weighted control structures.

    Capped at 100.
    """
    if not source:
        return 0
    lines = sum(1 for line in source.splitlines() if line.strip())
    score = (
        lines
        + 2 * len(re.findall(r"\bif\s*\(", source, re.I))
        + 3 * len(re.findall(r"\b(?:for|while|do)\s*\(", source, re.I))
        + 2 * len(re.findall(r"\bswitch\s*\(", source, re.I))
        + len(re.findall(r"\bcase\b", source, re.I))
        + 2 * len(re.findall(r"\bcatch\b", source, re.I))
    )
    return min(score, MAX_COMPLEXITY)


def extract_used_types(source: str) -> List[str]:
    """Capitalized type names declared, constructed or statically called."""
    found = []
    for pattern in _USED_TYPE_PATTERNS:
        found.extend(m.group(1) for m in pattern.finditer(source or ""))
    return [t for t in _unique(found) if t not in PRIMITIVE_TYPES]


def extract_method_calls(source: str) -> List[str]:
    found = []
    for pattern in _CALL_PATTERNS:
        found.extend(m.group(1) for m in pattern.finditer(source or ""))
    return _unique(found)


def extract_inline_comments(source: str) -> str:
    comments = []
    for line in (source or "").splitlines():
        match = _LINE_COMMENT.search(line)
        if match:
            comments.append(match.group(1).strip())
        match = _BLOCK_COMMENT.search(line)
        if match:
            comments.append(match.group(1).strip())
    return " ".join(comments)


def first_lines(source: str, count: int = SNIPPET_LINES) -> str:
    """First ``count`` lines, with a trailing marker when truncated."""
    lines = (source or "").splitlines()
    snippet = "\n".join(lines[:count])
    if len(lines) > count:
        snippet += "\n// ..."
    return snippet


def extract_api_patterns(source: str) -> List[Dict[str, Any]]:
    """
    Find ``Type var = new Type(...)`` style initializations and the calls
    subsequently made on the variable.

    Returns:
        List of {"api", "initialization", "methodSequence"} dicts, where
        initialization is a list of the source lines that create the object.
    """
    patterns = []
    for match in _INIT_PATTERN.finditer(source or ""):
        api = match.group(3) or match.group(4) or match.group(1)
        variable = match.group(2)
        line_start = source.rfind("\n", 0, match.start()) + 1
        line_end = source.find("\n", match.end())
        init_line = source[line_start:line_end if line_end != -1 else len(source)].strip()
        rest = source[match.end():]
        calls = re.findall(rf"\b{re.escape(variable)}\.([a-z][A-Za-z0-9_]*)\s*\(", rest)
        patterns.append({
            "api": api,
            "initialization": [init_line],
            "methodSequence": _unique(calls),
        })
    return patterns


def usage_example(class_name: str, method_name: str, parameters: List[Dict[str, str]],
                  is_static: bool) -> str:
    """Generate a call example with placeholder arguments for a method."""
    args = []
    for param in parameters:
        ptype = (param.get("type") or "").lower()
        if "int" in ptype:
            args.append("0")
        elif "str" in ptype:
            args.append('""')
        elif "bool" in ptype:
            args.append("false")
        elif "date" in ptype:
            args.append("today()")
        else:
            args.append(f"{param.get('name', 'arg')}Value")
    joined = ", ".join(args)
    if is_static:
        return f"{class_name}::{method_name}({joined});"
    return f"{class_name} obj = new {class_name}();\nobj.{method_name}({joined});"
