"""
Pattern analysis for XPP MCP.
"""

from .patterns import PatternAnalyzer, name_tokens, scenario_keywords, tag_overlap

__all__ = [
    "PatternAnalyzer",
    "name_tokens",
    "scenario_keywords",
    "tag_overlap",
]
