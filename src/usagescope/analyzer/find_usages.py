"""Find Usages driver for clangd results.

Takes the reference locations clangd reported for a symbol plus the AST of
each file, and turns every location into a classified Usage with its line
text and containing function.
"""
from dataclasses import dataclass
import json
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Sequence
from urllib.parse import unquote, urlparse

from .classifier import classify
from .clangd_ast import AstFormatError, containing_function_name, get_ast_path
from .syntax import Range, SyntaxNode
from .tags import TAG_NAMES, TagSet
from ..utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class Usage:
    """One classified occurrence of a symbol."""
    file_path: str
    line_text: str
    containing_function: Optional[str]
    tags: TagSet
    line: int  # 1-based
    column: int  # 1-based
    length: int

    def to_dict(self) -> dict:
        return {
            'file': self.file_path,
            'line': self.line,
            'column': self.column,
            'length': self.length,
            'tags': self.tags.names(),
            'bits': self.tags.to_int(),
            'containing_function': self.containing_function,
            'line_text': self.line_text,
        }


@dataclass(frozen=True)
class Location:
    """A reference location as returned by textDocument/references."""
    file_path: str
    range: Range


def uri_to_path(uri: str) -> str:
    """Convert a file:// URI to a local path; plain paths pass through."""
    parsed = urlparse(uri)
    if parsed.scheme != 'file':
        return uri
    path = unquote(parsed.path)
    # file:///C:/x -> C:/x
    if len(path) > 2 and path[0] == '/' and path[2] == ':':
        path = path[1:]
    return path


def parse_locations(data) -> List[Location]:
    """Parse LSP Location objects (bare list or JSON-RPC 'result' envelope).

    Raises:
        AstFormatError: If an entry has no uri or range
    """
    if isinstance(data, dict) and 'result' in data:
        data = data['result']
    if data is None:
        return []
    if not isinstance(data, list):
        raise AstFormatError("Reference list must be a JSON array")

    locations = []
    for entry in data:
        try:
            locations.append(Location(uri_to_path(entry['uri']), Range.from_lsp(entry['range'])))
        except (KeyError, TypeError, ValueError) as e:
            raise AstFormatError(f"Invalid reference location {entry!r}: {e}")
    return locations


def load_locations(path: str | Path) -> List[Location]:
    """Load reference locations from a JSON file."""
    path = Path(path)
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise AstFormatError(f"{path}: invalid JSON: {e}")
    return parse_locations(data)


class ClangdFindUsages:
    """Classifies clangd reference locations file by file.

    Args:
        symbol_name: Spelling of the searched symbol
        categorize: When False, skip classification and report empty tags
            (e.g. for a rename, where only the locations matter)
    """

    def __init__(self, symbol_name: str, categorize: bool = True):
        self.symbol_name = symbol_name
        self.categorize = categorize

    def add_file(self, file_path: str, ast: Optional[SyntaxNode],
                 ranges: Sequence[Range], lines: Sequence[str]) -> List[Usage]:
        """Classify all occurrences found in one file.

        Args:
            file_path: File the ranges belong to
            ast: Root of the file's AST, or None if clangd could not provide one
            ranges: Occurrence ranges in the file
            lines: File content split into lines (for line text)

        Returns:
            One Usage per range, in the given order
        """
        logger.debug("%s has valid AST: %s", file_path, ast is not None)
        usages = []
        for occurrence_range in ranges:
            tags = TagSet()
            function_name = None
            if ast is not None:
                path = get_ast_path(ast, occurrence_range)
                if self.categorize:
                    tags = classify(path, self.symbol_name)
                function_name = containing_function_name(path, occurrence_range)

            line_no = occurrence_range.start.line
            line_text = lines[line_no] if 0 <= line_no < len(lines) else ''
            length = 0
            if occurrence_range.end.line == occurrence_range.start.line:
                length = occurrence_range.end.character - occurrence_range.start.character
            usages.append(Usage(
                file_path=str(file_path),
                line_text=line_text,
                containing_function=function_name,
                tags=tags,
                line=line_no + 1,
                column=occurrence_range.start.character + 1,
                length=length,
            ))
        return usages

    def run(self, locations: Iterable[Location],
            asts: Mapping[str, Optional[SyntaxNode]]) -> List[Usage]:
        """Classify every location, grouped by file.

        Files that no longer exist on disk are dropped. Files without an AST
        still produce usages, with empty tags.
        """
        by_file: Dict[str, List[Range]] = {}
        for location in locations:
            by_file.setdefault(location.file_path, []).append(location.range)
        logger.debug("found %d locations in %d documents",
                     sum(len(r) for r in by_file.values()), len(by_file))

        usages: List[Usage] = []
        for file_path, ranges in by_file.items():
            path = Path(file_path)
            if not path.exists():
                logger.warning("Skipping %s: file does not exist", file_path)
                continue
            try:
                lines = path.read_text(encoding='utf-8', errors='replace').splitlines()
            except OSError as e:
                logger.warning("Skipping %s: %s", file_path, e)
                continue
            ast = _lookup_ast(asts, file_path)
            usages.extend(self.add_file(file_path, ast, ranges, lines))
        return usages


def _lookup_ast(asts: Mapping[str, Optional[SyntaxNode]], file_path: str) -> Optional[SyntaxNode]:
    if file_path in asts:
        return asts[file_path]
    resolved = Path(file_path).resolve()
    for key, ast in asts.items():
        if Path(key).resolve() == resolved:
            return ast
    return None


def filter_usages(usages: Iterable[Usage], wanted: TagSet) -> List[Usage]:
    """Keep usages carrying at least one of the wanted tags.

    An empty ``wanted`` set keeps everything.
    """
    if not wanted:
        return list(usages)
    return [usage for usage in usages if usage.tags & wanted]


def summarize(usages: Iterable[Usage]) -> Dict[str, int]:
    """Count usages per tag; occurrences without tags count as 'unclassified'."""
    counts = {name: 0 for name in TAG_NAMES.values()}
    counts['unclassified'] = 0
    for usage in usages:
        if not usage.tags:
            counts['unclassified'] += 1
        for name in usage.tags.names():
            counts[name] += 1
    return counts
