"""Translation of clangd 'arcana' descriptor text into typed node facts.

clangd attaches a raw clang AST dump line to every node, e.g.::

    DeclRefExpr 0x55d0 <col:5> 'int' lvalue Var 0x55c0 'x' 'int'
    ImplicitCastExpr 0x5600 <col:9> 'int' <LValueToRValue>

All substring tests against that text live here, so the classifier only
ever sees booleans.
"""
import re
from typing import Iterable, Optional

from .syntax import NodeFacts, NodeKind

DEFAULT_INVOKABLE_MARKERS = ('qt_',)

_UNEVALUATED_MARKERS = ('non_odr_use_unevaluated', 'non-odr-use-unevaluated')


def node_type(arcana: Optional[str]) -> str:
    """Extract the type spelling from an arcana line.

    The first quoted string is the node's type. When clang prints a sugared
    type followed by its desugared form ('T':'int'), the desugared one wins.
    """
    if not arcana:
        return ''
    return _type_from_pos(arcana, 0)


def _type_from_pos(text: str, pos: int) -> str:
    quote1 = text.find("'", pos)
    if quote1 == -1:
        return ''
    quote2 = text.find("'", quote1 + 1)
    if quote2 == -1:
        return ''
    if text[quote2 + 1:quote2 + 3] == ":'":
        return _type_from_pos(text, quote2 + 1)
    return text[quote1 + 1:quote2]


def has_const_type(arcana: Optional[str], detail: Optional[str] = None) -> bool:
    """Decide whether a node's type is const for the purpose of writes.

    Pointers and references each need their own const for the type to count
    as const. A plain value type is const if it says so, and reading through
    an lvalue-to-rvalue conversion or an xvalue is never a write.
    """
    the_type = node_type(arcana)
    if the_type.endswith('const'):
        the_type = the_type[:-len('const')]

    # Template arguments do not affect the constness of the outer type.
    open_angle = the_type.find('<')
    if open_angle != -1:
        close_angle = the_type.rfind('>')
        if close_angle > open_angle:
            the_type = the_type[:open_angle] + the_type[close_angle + 1:]

    rvalue_refs = the_type.count('&&')
    refs = the_type.count('&') - 2 * rvalue_refs
    indirections = the_type.count('*') + refs
    consts = len(re.findall(r'\bconst\b', the_type))
    if indirections == 0:
        return (consts > 0 or detail == 'LValueToRValue'
                or 'xvalue' in (arcana or ''))
    return indirections <= consts


def operator_from_arcana(arcana: Optional[str]) -> str:
    """Return the operator of an overloaded-operator call.

    clangd prints it as the last quoted string ('=' or 'operator+=').
    """
    if not arcana:
        return ''
    closing = arcana.rfind("'")
    if closing <= 0:
        return ''
    opening = arcana.rfind("'", 0, closing)
    if opening == -1:
        return ''
    op = arcana[opening + 1:closing]
    if op.startswith('operator'):
        op = op[len('operator'):].strip()
    return op


def facts_from_arcana(kind: NodeKind, detail: Optional[str], arcana: Optional[str],
                      invokable_markers: Iterable[str] = DEFAULT_INVOKABLE_MARKERS) -> NodeFacts:
    """Build the typed facts for one clangd node.

    Args:
        kind: Parsed node kind
        detail: clangd 'detail' field
        arcana: clangd 'arcana' field (may be missing)
        invokable_markers: Substrings that mark an Annotate attribute as a
            moc invokable (Q_INVOKABLE, slots, signals)

    Returns:
        NodeFacts for the node
    """
    text = arcana or ''
    operator = None
    if kind in (NodeKind.BINARY_OPERATOR, NodeKind.COMPOUND_ASSIGN):
        operator = detail or ''
    elif kind == NodeKind.OPERATOR_CALL:
        operator = operator_from_arcana(text)
    is_invokable = (kind == NodeKind.ANNOTATE
                    and any(marker in text for marker in invokable_markers))
    return NodeFacts(
        is_lvalue='lvalue' in text,
        is_function_entity=' Function ' in text,
        has_initializer='cinit' in text,
        is_unevaluated=any(marker in text for marker in _UNEVALUATED_MARKERS),
        is_bound_member_function='bound member function' in text,
        is_function_to_pointer_decay=detail == 'FunctionToPointerDecay',
        has_const_type=has_const_type(text, detail),
        is_invokable=is_invokable,
        operator=operator,
    )
