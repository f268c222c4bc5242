"""Usage classification for a single symbol occurrence.

Given the node that names a symbol and its ancestors, decide how the symbol
is used there: declared, read, written, passed by non-const reference,
overridden, exposed to moc, or used inside a template.

The walk goes outward from the occurrence and the first decisive ancestor
wins. Rule order matters; see classify() for the exact priority.
"""
from typing import Sequence, Union

from .syntax import AncestorPath, NodeKind, NodeRole, SyntaxNode, TEMPLATE_KINDS
from .tags import Tag, TagSet

PathLike = Union[AncestorPath, Sequence[SyntaxNode]]

_BINARY_KINDS = (NodeKind.BINARY_OPERATOR, NodeKind.COMPOUND_ASSIGN)


def is_assignment_operator(op: str) -> bool:
    """Any operator ending in '=' except '=='.

    '!=', '<=' and '>=' count as assignments too, so a left-hand operand of
    those comparisons is reported as a write.
    """
    return op.endswith('=') and op != '=='


def is_some_sort_of_template(path: PathLike, index: int) -> bool:
    """Check whether the declaration at ``path[index]`` lives in a template.

    A templated function declaration carries template argument children;
    anything else is a template if some ancestor from ``index`` outward is a
    function or class template.
    """
    declaration = path[index]
    if declaration.kind == NodeKind.FUNCTION:
        for child in declaration.children or ():
            if child.role == NodeRole.TEMPLATE_ARGUMENT:
                return True
    for node in path[index:]:
        if node.kind in TEMPLATE_KINDS:
            return True
    return False


def _declaration_tags(path: PathLike, index: int) -> TagSet:
    declaration = path[index]
    tags = TagSet(Tag.DECLARATION)
    for child in declaration.children or ():
        if child.role != NodeRole.ATTRIBUTE:
            continue
        if child.kind in (NodeKind.OVERRIDE, NodeKind.FINAL):
            tags |= Tag.OVERRIDE
        elif child.kind == NodeKind.ANNOTATE and child.facts.is_invokable:
            tags |= Tag.MOC_INVOKABLE
    if is_some_sort_of_template(path, index):
        tags |= Tag.TEMPLATE
    return tags


def _is_bound_member_call(node: SyntaxNode, occurrence: SyntaxNode) -> bool:
    children = node.children
    return (children is not None and len(children) == 1
            and children[0] == occurrence
            and children[0].facts.is_bound_member_function)


def classify(path: PathLike, symbol_name: str) -> TagSet:
    """Classify the usage of ``symbol_name`` at ``path[0]``.

    Args:
        path: Non-empty ancestor path, innermost (the occurrence) first
        symbol_name: Spelling of the symbol, compared against the name of an
            invoked constructor

    Returns:
        The usage tags. Empty when no rule applies, which is a normal outcome
        (e.g. unevaluated contexts or discarded expressions).
    """
    occurrence = path[0]
    symbol_is_data_type = occurrence.role == NodeRole.TYPE and occurrence.kind == NodeKind.RECORD
    invoked_constructor = ''
    if occurrence.role == NodeRole.EXPRESSION and occurrence.kind == NodeKind.CONSTRUCT:
        invoked_constructor = occurrence.detail or ''

    potential_write = False
    is_function = False

    for index, node in enumerate(path):
        kind = node.kind
        if node.facts.is_unevaluated:
            return TagSet()
        if kind == NodeKind.DELETE:
            return TagSet(Tag.WRITE)
        if kind == NodeKind.NEW:
            return TagSet()
        if kind in (NodeKind.SWITCH, NodeKind.IF):
            return TagSet(Tag.READ)
        if kind == NodeKind.CALL:
            if is_function:
                return TagSet()
            return TagSet(Tag.WRITABLE_REF if potential_write else Tag.READ)
        if kind == NodeKind.MEMBER_CALL:
            if _is_bound_member_call(node, occurrence):
                return TagSet()
            if potential_write and not is_function:
                return TagSet(Tag.WRITABLE_REF)
            return TagSet(Tag.READ)

        if kind in (NodeKind.DECL_REF, NodeKind.MEMBER) and node.facts.is_lvalue:
            if node.facts.is_function_entity:
                is_function = True
            else:
                potential_write = True

        if node.role == NodeRole.DECLARATION:
            if symbol_is_data_type:
                return TagSet()
            if invoked_constructor and invoked_constructor == symbol_name:
                return TagSet()
            if node.facts.has_initializer:
                if index == 0 or node.child_contains_range(0, occurrence.range):
                    return TagSet(Tag.DECLARATION, Tag.WRITE)
                if is_function:
                    return TagSet(Tag.READ)
                if not node.has_const_type:
                    return TagSet(Tag.WRITABLE_REF)
                return TagSet(Tag.READ)
            return _declaration_tags(path, index)

        if kind == NodeKind.MEMBER_INITIALIZER:
            return TagSet(Tag.WRITE if index == 0 else Tag.READ)

        if kind == NodeKind.UNARY_OPERATOR and node.detail in ('++', '--'):
            return TagSet(Tag.WRITE)

        # Built-in operators put the left-hand side at index 0. Overloaded
        # operator calls have the callee first, so the left-hand side is at 1.
        is_op_call = kind == NodeKind.OPERATOR_CALL
        if kind in _BINARY_KINDS or is_op_call:
            if is_op_call and symbol_is_data_type:
                return TagSet()
            if is_assignment_operator(node.operator_spelling):
                lhs_index = 1 if is_op_call else 0
                if node.child_contains_range(lhs_index, occurrence.range):
                    return TagSet(Tag.WRITE)
                if potential_write and not is_function:
                    return TagSet(Tag.WRITABLE_REF)
                return TagSet(Tag.READ)
            return TagSet(Tag.READ)

        if kind == NodeKind.IMPLICIT_CAST:
            if node.facts.is_function_to_pointer_decay:
                return TagSet()
            if node.has_const_type:
                return TagSet(Tag.READ)
            potential_write = True

    return TagSet()
