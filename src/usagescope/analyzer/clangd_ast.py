"""Adapter for clangd's textDocument/ast responses.

clangd returns the AST of a file as nested JSON objects::

    {"role": "declaration", "kind": "Function", "detail": "main",
     "arcana": "FunctionDecl 0x... <...> main 'int ()'",
     "range": {"start": {...}, "end": {...}},
     "children": [...]}

This module turns that into SyntaxNode trees and ancestor paths.
"""
import json
from pathlib import Path
from typing import Iterable, List, Optional

from .arcana import DEFAULT_INVOKABLE_MARKERS, facts_from_arcana
from .syntax import AncestorPath, NodeKind, NodeRole, Position, Range, SyntaxNode

# Declarations that open a local scope for variables.
_SCOPE_DECLARATION_KINDS = frozenset({
    NodeKind.FUNCTION, NodeKind.METHOD, NodeKind.CONSTRUCTOR,
    NodeKind.DESTRUCTOR, NodeKind.LAMBDA,
})


class AstFormatError(ValueError):
    """Raised when clangd AST JSON does not have the expected shape."""


def parse_ast(data: dict, invokable_markers: Iterable[str] = DEFAULT_INVOKABLE_MARKERS) -> SyntaxNode:
    """Build a SyntaxNode tree from a clangd AST node object.

    Args:
        data: Decoded JSON object for the root node
        invokable_markers: Annotate markers that denote moc invokables

    Returns:
        Root SyntaxNode with children populated recursively

    Raises:
        AstFormatError: If a node is not an object or has no kind
    """
    markers = tuple(invokable_markers)
    return _parse_node(data, markers)


def _parse_node(data, markers) -> SyntaxNode:
    if not isinstance(data, dict):
        raise AstFormatError(f"AST node must be an object, got {type(data).__name__}")
    kind_name = data.get('kind')
    if not kind_name:
        raise AstFormatError("AST node without 'kind'")

    range_data = data.get('range')
    node_range = None
    if range_data is not None:
        try:
            node_range = Range.from_lsp(range_data)
        except (KeyError, TypeError, ValueError) as e:
            raise AstFormatError(f"Invalid range on {kind_name} node: {e}")

    children = None
    if data.get('children') is not None:
        children = tuple(_parse_node(child, markers) for child in data['children'])

    kind = NodeKind.lookup(kind_name)
    detail = data.get('detail')
    arcana = data.get('arcana') or ''
    return SyntaxNode(
        kind=kind,
        role=NodeRole.lookup(data.get('role')),
        detail=detail,
        descriptor=arcana,
        range=node_range,
        children=children,
        facts=facts_from_arcana(kind, detail, arcana, markers),
        kind_name=kind_name,
    )


def load_ast(path: str | Path, invokable_markers: Iterable[str] = DEFAULT_INVOKABLE_MARKERS) -> SyntaxNode:
    """Load a clangd AST dump from a JSON file.

    Accepts either the bare root node or a full JSON-RPC response whose
    'result' holds the node.

    Raises:
        AstFormatError: If the file is not valid JSON or not an AST
        OSError: If the file cannot be read
    """
    path = Path(path)
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise AstFormatError(f"{path}: invalid JSON: {e}")
    if isinstance(data, dict) and 'result' in data and 'kind' not in data:
        data = data['result']
    if data is None:
        raise AstFormatError(f"{path}: response contains no AST")
    return parse_ast(data, invokable_markers)


def get_ast_path(root: SyntaxNode, target: Range | Position) -> AncestorPath:
    """Collect the nodes enclosing ``target``, innermost first.

    Descends from the root into the first child whose range contains the
    target. The root is always part of the path.
    """
    if isinstance(target, Position):
        target = Range(target, target)
    nodes: List[SyntaxNode] = []
    node: Optional[SyntaxNode] = root
    while node is not None:
        nodes.append(node)
        next_node = None
        for child in node.children or ():
            if child.range is not None and child.range.contains(target):
                next_node = child
                break
        node = next_node
    return AncestorPath.from_root(nodes)


def containing_function_name(path: AncestorPath, target: Range) -> Optional[str]:
    """Name of the function whose body contains ``target``, if any.

    A function declaration only counts if a compound statement seen on the
    way out (its body) spans the target; a reference inside a parameter list
    or return type is not "inside" the function.
    """
    last_compound = None
    for node in path:
        if node.kind == NodeKind.COMPOUND or 'CompoundStmt' in node.descriptor:
            last_compound = node
        if node.is_function_declaration:
            if (last_compound is not None and last_compound.range is not None
                    and last_compound.range.contains(target)):
                return node.detail
    return None


def is_local_variable_definition(path: AncestorPath) -> bool:
    """Check whether the path points at a variable declared inside a function.

    Used to decide whether a local-only reference search is enough.
    """
    is_var = False
    for node in path:
        if node.role != NodeRole.DECLARATION:
            continue
        if node.kind in _SCOPE_DECLARATION_KINDS:
            return is_var
        if node.kind in (NodeKind.VAR, NodeKind.PARM_VAR):
            is_var = True
    return False
