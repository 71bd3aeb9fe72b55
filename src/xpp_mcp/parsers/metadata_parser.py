"""
MetadataParser - turns X++ object metadata into Symbol records.

Two input formats are supported:

    - Extracted JSON records (one file per class/table/enum), laid out as
      ``<root>/<Model>/classes|tables|enums/<Name>.json``. These carry the
      enhanced attributes (tags, usedTypes, patternType, ...) produced by an
      extraction pass.
    - Raw AOT XML files (AxClass, AxTable, AxEnum), laid out as
      ``<root>/<Model>/AxClass|AxTable|AxEnum/<Name>.xml``. The enhanced
      attributes are computed from the method source on the fly.

Each file yields the owning symbol first, followed by its methods and fields.

Usage:
    >>> parser = MetadataParser()
    >>> result = parser.parse_file("metadata/ApplicationSuite/classes/CustHelper.json")
    >>> print(f"Found {len(result.symbols)} symbols")
"""

import json
import logging
import re
import threading
import time
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from xpp_mcp.core.exceptions import ParseError
from xpp_mcp.core.interfaces import IParser
from xpp_mcp.core.models import ParsedFile, Symbol, SymbolKind, infer_pattern_type
from xpp_mcp.parsers import enrichment

logger = logging.getLogger(__name__)

# Directory name -> kind of the owning symbol
CATEGORY_DIRS: Dict[str, SymbolKind] = {
    "classes": SymbolKind.CLASS,
    "tables": SymbolKind.TABLE,
    "enums": SymbolKind.ENUM,
    "axclass": SymbolKind.CLASS,
    "axtable": SymbolKind.TABLE,
    "axenum": SymbolKind.ENUM,
}

# XML root element -> kind
XML_ROOTS: Dict[str, SymbolKind] = {
    "AxClass": SymbolKind.CLASS,
    "AxTable": SymbolKind.TABLE,
    "AxEnum": SymbolKind.ENUM,
}

_MODIFIERS = {"public", "private", "protected", "static", "final", "abstract", "internal",
              "client", "server", "display", "edit"}


def _local(tag: str) -> str:
    """Strip an XML namespace from a tag or attribute name."""
    return tag.rsplit("}", 1)[-1]


def _child(element: Optional[ET.Element], name: str) -> Optional[ET.Element]:
    if element is None:
        return None
    for child in element:
        if _local(child.tag) == name:
            return child
    return None


def _children(element: Optional[ET.Element], name: str) -> List[ET.Element]:
    if element is None:
        return []
    return [child for child in element if _local(child.tag) == name]


def _text(element: Optional[ET.Element], name: str) -> Optional[str]:
    child = _child(element, name)
    if child is None or child.text is None:
        return None
    return child.text.strip() or None


def _is_yes(value: Optional[str]) -> bool:
    return (value or "").lower() in ("yes", "true")


def _split_csv(value: Any) -> List[str]:
    if not value:
        return []
    if isinstance(value, list):
        return [str(v).strip() for v in value if str(v).strip()]
    return [v.strip() for v in str(value).split(",") if v.strip()]


def _split_parameters(params: str) -> List[str]:
    """Split a parameter list on top-level commas, respecting generics."""
    parts, current, depth = [], "", 0
    for char in params:
        if char in "<(":
            depth += 1
        elif char in ">)":
            depth -= 1
        if char == "," and depth == 0:
            if current.strip():
                parts.append(current.strip())
            current = ""
        else:
            current += char
    if current.strip():
        parts.append(current.strip())
    return parts


def parse_signature(source: str, method_name: str) -> Dict[str, Any]:
    """
    Extract return type, parameters and static flag from a method's source.

    Returns:
        Dict with "returnType", "parameters" (list of {"type", "name"}) and
        "isStatic".
    """
    escaped = re.escape(method_name)
    params: List[Dict[str, str]] = []
    match = re.search(rf"\b{escaped}\s*\(([^)]*)\)", source)
    if match and match[1].strip():
        for param in _split_parameters(match[1]):
            pieces = param.split("=")[0].split()
            if len(pieces) >= 2:
                params.append({"type": " ".join(pieces[:-1]), "name": pieces[-1]})
            elif pieces:
                params.append({"type": "anytype", "name": pieces[0]})

    return_type = "void"
    match = re.search(rf"\b(\w+)\s+{escaped}\s*\(", source)
    if match and match[1].lower() not in _MODIFIERS:
        return_type = match[1]

    return {
        "returnType": return_type,
        "parameters": params,
        "isStatic": bool(re.search(r"\bstatic\s+", source.split("{", 1)[0])),
    }


def format_method_signature(method: Dict[str, Any]) -> str:
    params = ", ".join(f"{p.get('type', '')} {p.get('name', '')}".strip()
                       for p in method.get("parameters") or [])
    return f"{method.get('returnType') or 'void'} {method['name']}({params})"


class MetadataParser(IParser):
    """
    Parser for extracted JSON metadata and AOT XML files.

    Attributes:
        MAX_FILE_SIZE_MB: Maximum file size before warning (10 MB)

    Thread Safety:
        Instances hold no per-file state and can be shared between threads.
    """

    MAX_FILE_SIZE_MB = 10
    SUPPORTED_EXTENSIONS = [".json", ".xml"]

    def can_parse(self, filepath: str) -> bool:
        return Path(filepath).suffix.lower() in self.SUPPORTED_EXTENSIONS

    def get_supported_extensions(self) -> List[str]:
        return list(self.SUPPORTED_EXTENSIONS)

    def parse_file(self, filepath: str, model: Optional[str] = None) -> ParsedFile:
        """
        Parse one metadata file.

        Malformed files are reported through ``ParsedFile.error``; only a
        missing file raises.

        Args:
            filepath: Path to a .json or .xml metadata file
            model: Owning model; defaults to the directory two levels up
                (``<Model>/<category>/<file>``)

        Returns:
            ParsedFile with the owning symbol followed by its members

        Raises:
            FileNotFoundError: If the file doesn't exist
        """
        start_time = time.time()
        file_path = Path(filepath)
        if not file_path.exists():
            raise FileNotFoundError(f"File not found: {filepath}")

        model = model or file_path.parent.parent.name or "Unknown"

        size_mb = file_path.stat().st_size / (1024 * 1024)
        if size_mb > self.MAX_FILE_SIZE_MB:
            logger.warning(f"Large metadata file ({size_mb:.2f}MB): {filepath}")

        try:
            if file_path.suffix.lower() == ".json":
                symbols = self._parse_json(file_path, model)
            elif file_path.suffix.lower() == ".xml":
                symbols = self._parse_xml(file_path, model)
            else:
                raise ParseError(str(filepath), "unknown", f"Unsupported file type: {file_path.suffix}")
        except ParseError as e:
            logger.warning(str(e))
            return ParsedFile(filepath=str(filepath), parse_time=time.time() - start_time, error=str(e))
        except (OSError, UnicodeDecodeError, ValueError, ET.ParseError) as e:
            # json.JSONDecodeError and Symbol validation both surface as ValueError
            error_msg = f"Failed to parse {filepath}: {e}"
            logger.warning(error_msg)
            return ParsedFile(filepath=str(filepath), parse_time=time.time() - start_time, error=error_msg)

        parse_time = time.time() - start_time
        logger.debug(f"Parsed {filepath} in {parse_time:.3f}s - found {len(symbols)} symbols")
        return ParsedFile(filepath=str(filepath), symbols=symbols, parse_time=parse_time)

    # =========================================================================
    # JSON records
    # =========================================================================

    def _json_kind(self, file_path: Path, data: Dict[str, Any]) -> SymbolKind:
        category = CATEGORY_DIRS.get(file_path.parent.name.lower())
        if category is not None:
            return category
        if data.get("type"):
            return SymbolKind.from_string(data["type"])
        if "fields" in data:
            return SymbolKind.TABLE
        if "methods" in data or "extends" in data:
            return SymbolKind.CLASS
        raise ParseError(str(file_path), "unknown", "Cannot determine the kind of metadata record")

    def _parse_json(self, file_path: Path, model: str) -> List[Symbol]:
        data = json.loads(file_path.read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            raise ParseError(str(file_path), "json", "Top-level value must be an object")

        kind = self._json_kind(file_path, data)
        name = data.get("name") or (file_path.stem if kind == SymbolKind.ENUM else None)
        if not name:
            raise ParseError(str(file_path), kind.value, "Missing 'name'")
        location = data.get("sourcePath") or str(file_path)

        if kind == SymbolKind.CLASS:
            return self._class_symbols(data, name, model, location)
        if kind == SymbolKind.TABLE:
            return self._table_symbols(data, name, model, location)
        values = [v.get("name") if isinstance(v, dict) else str(v) for v in data.get("values") or []]
        return [Symbol(
            name=name,
            kind=SymbolKind.ENUM,
            source_location=location,
            model=model,
            signature=", ".join(v for v in values if v) or None,
            description=data.get("description") or data.get("label"),
        )]

    def _class_symbols(self, data: Dict[str, Any], name: str, model: str, location: str) -> List[Symbol]:
        methods = [m for m in data.get("methods") or [] if isinstance(m, dict) and m.get("name")]
        pattern_type = data.get("patternType") or infer_pattern_type(name)
        tags = _split_csv(data.get("tags")) or enrichment.extract_class_tags(
            name,
            _is_yes(str(data.get("isAbstract", ""))),
            _is_yes(str(data.get("isFinal", ""))),
            [m["name"] for m in methods],
        )
        implements = _split_csv(data.get("implements"))
        used_types = _split_csv(data.get("usedTypes"))
        if not used_types:
            used_types = [data["extends"]] if data.get("extends") else []
            used_types += implements
            for method in methods:
                used_types += _split_csv(method.get("usedTypes")) or enrichment.extract_used_types(method.get("source", ""))
            used_types = list(dict.fromkeys(used_types))

        symbols = [Symbol(
            name=name,
            kind=SymbolKind.CLASS,
            source_location=location,
            model=model,
            signature=f"extends {data['extends']}" if data.get("extends") else None,
            description=data.get("description") or data.get("documentation")
            or f"{name} class" + (f" extending {data['extends']}" if data.get("extends") else ""),
            tags=tags,
            used_types=used_types,
            related_methods=_split_csv(data.get("relatedMethods")),
            api_usage_patterns=list(data.get("apiPatterns") or data.get("apiUsagePatterns") or []),
            typical_usages=[str(u) for u in data.get("typicalUsages") or []],
            usage_frequency=int(data.get("usageFrequency") or 0),
            pattern_type=pattern_type,
            extends=data.get("extends"),
            implements=implements,
        )]
        symbols.extend(self._method_symbol(m, name, model, location, pattern_type) for m in methods)
        return symbols

    def _table_symbols(self, data: Dict[str, Any], name: str, model: str, location: str) -> List[Symbol]:
        symbols = [Symbol(
            name=name,
            kind=SymbolKind.TABLE,
            source_location=location,
            model=model,
            signature=data.get("label") or None,
            description=data.get("description") or (f"{data['tableGroup']} table" if data.get("tableGroup") else None),
            tags=_split_csv(data.get("tags")),
            pattern_type=data.get("patternType"),
        )]
        for fld in data.get("fields") or []:
            if not isinstance(fld, dict) or not fld.get("name"):
                continue
            symbols.append(Symbol(
                name=fld["name"],
                kind=SymbolKind.FIELD,
                parent=name,
                source_location=location,
                model=model,
                signature=fld.get("extendedDataType") or fld.get("type"),
                description=fld.get("label"),
            ))
        for method in data.get("methods") or []:
            if isinstance(method, dict) and method.get("name"):
                symbols.append(self._method_symbol(method, name, model, location, data.get("patternType")))
        return symbols

    def _method_symbol(self, method: Dict[str, Any], parent: str, model: str, location: str,
                       pattern_type: Optional[str]) -> Symbol:
        source = method.get("source") or ""
        if source and ("returnType" not in method or "parameters" not in method):
            parsed = parse_signature(source, method["name"])
            method = {**parsed, **method}
        parameters = method.get("parameters") or []

        typical_usages = [str(u) for u in method.get("typicalUsages") or []]
        if not typical_usages and method.get("usageExample"):
            typical_usages = [method["usageExample"]]
        if not typical_usages and source:
            typical_usages = [enrichment.usage_example(parent, method["name"], parameters,
                                                      bool(method.get("isStatic")))]

        return Symbol(
            name=method["name"],
            kind=SymbolKind.METHOD,
            parent=parent,
            source_location=location,
            model=model,
            signature=format_method_signature(method),
            description=method.get("documentation") or method.get("description"),
            tags=_split_csv(method.get("tags")) or enrichment.extract_method_tags(source, parent, method["name"]),
            used_types=_split_csv(method.get("usedTypes")) or enrichment.extract_used_types(source),
            method_calls=_split_csv(method.get("methodCalls")) or enrichment.extract_method_calls(source),
            related_methods=_split_csv(method.get("relatedMethods")),
            api_usage_patterns=list(method.get("apiPatterns") or method.get("apiUsagePatterns")
                                    or enrichment.extract_api_patterns(source)),
            typical_usages=typical_usages,
            usage_frequency=int(method.get("usageFrequency") or 0),
            complexity=method.get("complexity") if method.get("complexity") is not None
            else (enrichment.calculate_complexity(source) if source else None),
            pattern_type=pattern_type,
            source_snippet=method.get("sourceSnippet") or (enrichment.first_lines(source) if source else None),
            inline_comments=method.get("inlineComments") or enrichment.extract_inline_comments(source) or None,
        )

    # =========================================================================
    # AOT XML
    # =========================================================================

    def _parse_xml(self, file_path: Path, model: str) -> List[Symbol]:
        root = ET.parse(str(file_path)).getroot()
        kind = XML_ROOTS.get(_local(root.tag))
        if kind is None:
            raise ParseError(str(file_path), _local(root.tag), "Not an AxClass, AxTable or AxEnum file")

        name = _text(root, "Name")
        if not name:
            raise ParseError(str(file_path), kind.value, "Missing <Name> element")

        methods = []
        method_parent = _child(_child(root, "SourceCode"), "Methods")
        if method_parent is None:
            method_parent = _child(root, "Methods")
        for element in _children(method_parent, "Method"):
            method_name = _text(element, "Name")
            if not method_name:
                continue
            source_element = _child(element, "Source")
            source = (source_element.text or "") if source_element is not None else ""
            methods.append({
                "name": method_name,
                "source": source,
                "documentation": _text(element, "DeveloperDocumentation"),
            })

        if kind == SymbolKind.CLASS:
            data = {
                "name": name,
                "extends": _text(root, "Extends"),
                "implements": _text(root, "Implements"),
                "isAbstract": _text(root, "IsAbstract"),
                "isFinal": _text(root, "IsFinal"),
                "documentation": _text(root, "DeveloperDocumentation"),
                "methods": methods,
            }
            return self._class_symbols(data, name, model, str(file_path))

        if kind == SymbolKind.TABLE:
            fields = []
            for element in _children(_child(root, "Fields"), "AxTableField"):
                field_type = next((v for k, v in element.attrib.items() if _local(k) == "type"), None)
                fields.append({
                    "name": _text(element, "Name"),
                    "type": (field_type or "").replace("AxTableField", "") or None,
                    "extendedDataType": _text(element, "ExtendedDataType"),
                    "label": _text(element, "Label"),
                })
            data = {
                "name": name,
                "label": _text(root, "Label"),
                "tableGroup": _text(root, "TableGroup"),
                "fields": fields,
                "methods": methods,
            }
            return self._table_symbols(data, name, model, str(file_path))

        values = [_text(e, "Name") for e in _children(_child(root, "EnumValues"), "AxEnumValue")]
        return [Symbol(
            name=name,
            kind=SymbolKind.ENUM,
            source_location=str(file_path),
            model=model,
            signature=", ".join(v for v in values if v) or None,
            description=_text(root, "Label") or _text(root, "DeveloperDocumentation"),
        )]


class ThreadLocalParserFactory:
    """
    Factory that provides thread-local MetadataParser instances.

    Parallel indexing asks the factory for a parser in each worker thread,
    so custom IParser implementations that keep per-instance state stay
    safe to use concurrently.
    """

    def __init__(self, parser_class: Callable[[], IParser] = MetadataParser):
        self._parser_class = parser_class
        self._local = threading.local()

    def get_parser(self) -> IParser:
        """Get or create the parser for the current thread."""
        if not hasattr(self._local, "parser"):
            self._local.parser = self._parser_class()
        return self._local.parser
