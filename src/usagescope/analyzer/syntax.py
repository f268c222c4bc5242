"""Syntax nodes and ancestor paths consumed by the usage classifier.

Nodes are produced by a front end (clangd AST dumps, tree-sitter) and are
read-only from the classifier's point of view.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, Optional, Sequence, Tuple


@dataclass(frozen=True, order=True)
class Position:
    """Zero-based line/character position, as used by LSP."""
    line: int
    character: int

    @classmethod
    def from_lsp(cls, data: dict) -> 'Position':
        return cls(int(data['line']), int(data['character']))


@dataclass(frozen=True)
class Range:
    """Source span between two positions (both ends inclusive for containment)."""
    start: Position
    end: Position

    @classmethod
    def from_lsp(cls, data: dict) -> 'Range':
        return cls(Position.from_lsp(data['start']), Position.from_lsp(data['end']))

    @classmethod
    def at(cls, line: int, character: int, length: int = 0) -> 'Range':
        return cls(Position(line, character), Position(line, character + length))

    def contains_position(self, pos: Position) -> bool:
        return self.start <= pos <= self.end

    def contains(self, other: 'Range') -> bool:
        return self.contains_position(other.start) and self.contains_position(other.end)


class NodeKind(str, Enum):
    """Node kinds the classifier and adapters recognise, spelled as clangd does."""
    DECL_REF = 'DeclRef'
    MEMBER = 'Member'
    CALL = 'Call'
    MEMBER_CALL = 'CXXMemberCall'
    OPERATOR_CALL = 'CXXOperatorCall'
    BINARY_OPERATOR = 'BinaryOperator'
    COMPOUND_ASSIGN = 'CompoundAssignOperator'
    UNARY_OPERATOR = 'UnaryOperator'
    IMPLICIT_CAST = 'ImplicitCast'
    CONSTRUCT = 'CXXConstruct'
    NEW = 'CXXNew'
    DELETE = 'CXXDelete'
    IF = 'If'
    SWITCH = 'Switch'
    MEMBER_INITIALIZER = 'MemberInitializer'
    COMPOUND = 'Compound'
    RECORD = 'Record'
    FUNCTION = 'Function'
    METHOD = 'CXXMethod'
    CONSTRUCTOR = 'CXXConstructor'
    DESTRUCTOR = 'CXXDestructor'
    CONVERSION = 'CXXConversion'
    LAMBDA = 'Lambda'
    VAR = 'Var'
    PARM_VAR = 'ParmVar'
    FIELD = 'Field'
    FUNCTION_TEMPLATE = 'FunctionTemplate'
    CLASS_TEMPLATE = 'ClassTemplate'
    CLASS_TEMPLATE_PARTIAL_SPECIALIZATION = 'ClassTemplatePartialSpecialization'
    OVERRIDE = 'Override'
    FINAL = 'Final'
    ANNOTATE = 'Annotate'
    OTHER = ''

    @classmethod
    def lookup(cls, name: Optional[str]) -> 'NodeKind':
        try:
            return cls(name or '')
        except ValueError:
            return cls.OTHER


class NodeRole(str, Enum):
    DECLARATION = 'declaration'
    EXPRESSION = 'expression'
    TYPE = 'type'
    ATTRIBUTE = 'attribute'
    STATEMENT = 'statement'
    SPECIFIER = 'specifier'
    TEMPLATE_ARGUMENT = 'template argument'
    TEMPLATE_NAME = 'template name'
    BASE_SPECIFIER = 'base specifier'
    OTHER = ''

    @classmethod
    def lookup(cls, name: Optional[str]) -> Optional['NodeRole']:
        if name is None:
            return None
        try:
            return cls(name)
        except ValueError:
            return cls.OTHER


FUNCTION_KINDS = frozenset({
    NodeKind.FUNCTION, NodeKind.METHOD, NodeKind.CONSTRUCTOR,
    NodeKind.DESTRUCTOR, NodeKind.CONVERSION,
})

TEMPLATE_KINDS = frozenset({
    NodeKind.FUNCTION_TEMPLATE, NodeKind.CLASS_TEMPLATE,
    NodeKind.CLASS_TEMPLATE_PARTIAL_SPECIALIZATION,
})


@dataclass(frozen=True)
class NodeFacts:
    """Typed facts about a node, derived from the front end's descriptor text.

    Front-end adapters fill these in so the classifier never has to look at
    descriptor strings itself.
    """
    is_lvalue: bool = False
    is_function_entity: bool = False
    has_initializer: bool = False
    is_unevaluated: bool = False
    is_bound_member_function: bool = False
    is_function_to_pointer_decay: bool = False
    has_const_type: bool = False
    is_invokable: bool = False
    operator: Optional[str] = None


@dataclass(frozen=True)
class SyntaxNode:
    """One node of the syntax tree (or one ancestor on a path)."""
    kind: NodeKind = NodeKind.OTHER
    role: Optional[NodeRole] = None
    detail: Optional[str] = None
    descriptor: str = ''
    range: Optional[Range] = None
    children: Optional[Tuple['SyntaxNode', ...]] = None
    facts: NodeFacts = field(default_factory=NodeFacts)
    kind_name: str = ''

    def __post_init__(self):
        if self.children is not None and not isinstance(self.children, tuple):
            object.__setattr__(self, 'children', tuple(self.children))
        if not self.kind_name:
            object.__setattr__(self, 'kind_name', self.kind.value)

    @property
    def has_const_type(self) -> bool:
        return self.facts.has_const_type

    @property
    def operator_spelling(self) -> str:
        """Operator of a binary/operator-call node, falling back to the detail."""
        if self.facts.operator is not None:
            return self.facts.operator
        return self.detail or ''

    @property
    def is_function_declaration(self) -> bool:
        return self.role == NodeRole.DECLARATION and self.kind in FUNCTION_KINDS

    def child_contains_range(self, index: int, target: Optional[Range]) -> bool:
        """Check whether the child at ``index`` spans ``target``.

        Missing children or ranges simply give False.
        """
        if not self.children or target is None or not 0 <= index < len(self.children):
            return False
        child_range = self.children[index].range
        return child_range is not None and child_range.contains(target)


class AncestorPath:
    """Non-empty chain of nodes from a symbol occurrence outward.

    Index 0 is the node naming the symbol, the last entry is the outermost
    ancestor the front end supplied.
    """

    __slots__ = ('_nodes',)

    def __init__(self, nodes: Sequence[SyntaxNode]):
        """Build a path from innermost-first nodes.

        Raises:
            ValueError: If no nodes are given
        """
        nodes = tuple(nodes)
        if not nodes:
            raise ValueError("An ancestor path needs at least the occurrence node")
        self._nodes = nodes

    @classmethod
    def from_root(cls, nodes: Sequence[SyntaxNode]) -> 'AncestorPath':
        """Build a path from a root-first node list (as a tree descent yields it)."""
        return cls(tuple(reversed(tuple(nodes))))

    @property
    def occurrence(self) -> SyntaxNode:
        return self._nodes[0]

    @property
    def boundary(self) -> SyntaxNode:
        return self._nodes[-1]

    def __len__(self) -> int:
        return len(self._nodes)

    def __getitem__(self, index):
        return self._nodes[index]

    def __iter__(self) -> Iterator[SyntaxNode]:
        return iter(self._nodes)

    def __eq__(self, other) -> bool:
        if isinstance(other, AncestorPath):
            return self._nodes == other._nodes
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._nodes)

    def __repr__(self) -> str:
        kinds = ' -> '.join(node.kind_name or '?' for node in self._nodes)
        return f"AncestorPath({kinds})"
