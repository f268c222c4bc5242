"""Tree-sitter C++ front end: find and classify usages without clangd.

Walks a tree-sitter-cpp parse tree, picks every name node spelled like the
searched symbol, maps its ancestors onto the node kinds clangd would report
and classifies the occurrence on the spot.

tree-sitter has no type information, so a few facts are approximated:

- Reads of a plain lvalue in a value context (operands, return values,
  conditions, initializers of non-reference variables, right-hand sides)
  get the const LValueToRValue conversion clang would insert.
- Call arguments get no conversion: the parameter type is unknown and may
  be a non-const reference, so they are reported as writable references.
- Constness of a declaration comes from its 'const' qualifiers.
"""
from pathlib import Path
import re
from typing import Iterable, Iterator, List, Optional, Sequence, Tuple

from tree_sitter import Language, Node, Parser, Tree
import tree_sitter_cpp as tscpp

from .classifier import classify
from .find_usages import Usage
from .syntax import AncestorPath, NodeFacts, NodeKind, NodeRole, Position, Range, SyntaxNode
from ..config import get_config
from ..utils.logger import get_logger

logger = get_logger(__name__)

CPP_EXTENSIONS = frozenset({'.c', '.cc', '.cpp', '.cxx', '.c++', '.h', '.hh', '.hpp', '.hxx', '.h++', '.ipp'})

NAME_TYPES = frozenset({'identifier', 'field_identifier', 'type_identifier', 'namespace_identifier'})

# Wrappers a name may sit in while still being "the name" of something.
_NAME_WRAPPERS = frozenset({'qualified_identifier', 'template_function', 'template_type',
                            'template_method', 'destructor_name'})

_DECLARATOR_WRAPPERS = frozenset({'init_declarator', 'reference_declarator', 'pointer_declarator',
                                  'function_declarator', 'array_declarator',
                                  'parenthesized_declarator'})

_DECLARATION_TYPES = frozenset({'declaration', 'field_declaration', 'parameter_declaration',
                                'optional_parameter_declaration', 'variadic_parameter_declaration',
                                'function_definition'})

_TEMPLATE_PARAMETER_TYPES = frozenset({'type_parameter_declaration',
                                       'optional_type_parameter_declaration',
                                       'variadic_type_parameter_declaration'})

_RECORD_SPECIFIERS = frozenset({'class_specifier', 'struct_specifier', 'union_specifier'})

_UNEVALUATED_TYPES = frozenset({'sizeof_expression', 'decltype', 'alignof_expression', 'noexcept'})

_LVALUE_TYPES = frozenset({'identifier', 'qualified_identifier', 'field_expression',
                           'subscript_expression'})

# Parents that always read the value of an lvalue child.
_READING_PARENTS = frozenset({'binary_expression', 'return_statement', 'condition_clause',
                              'unary_expression', 'conditional_expression', 'cast_expression',
                              'initializer_list', 'subscript_argument_list'})

_RVALUE_CONVERSION = SyntaxNode(
    kind=NodeKind.IMPLICIT_CAST,
    role=NodeRole.EXPRESSION,
    detail='LValueToRValue',
    facts=NodeFacts(has_const_type=True),
)


def _range(node: Node) -> Range:
    return Range(Position(node.start_point[0], node.start_point[1]),
                 Position(node.end_point[0], node.end_point[1]))


def _text(node: Optional[Node]) -> str:
    if node is None or node.text is None:
        return ''
    return node.text.decode('utf-8', errors='replace')


def _shallow(node: Optional[Node], role: Optional[NodeRole] = None) -> SyntaxNode:
    if node is None:
        return SyntaxNode()
    return SyntaxNode(kind_name=node.type, role=role, range=_range(node))


def _is_field(parent: Node, field_name: str, child: Node) -> bool:
    return parent.child_by_field_name(field_name) == child


class CppUsageScanner:
    """Scan C/C++ sources with tree-sitter and classify symbol usages.

    Args:
        invokable_macros: Macro names that expose a declaration to moc
            (defaults to USAGESCOPE_INVOKABLE_MACROS)
    """

    def __init__(self, invokable_macros: Optional[Sequence[str]] = None):
        if invokable_macros is None:
            invokable_macros = get_config().invokable_macros
        self.invokable_macros = tuple(invokable_macros)
        self._macro_pattern = None
        if self.invokable_macros:
            alternatives = '|'.join(re.escape(m) for m in self.invokable_macros)
            self._macro_pattern = re.compile(rf'\b(?:{alternatives})\b')
        # v0.25+ API: Pass language to Parser constructor
        self.parser = Parser(Language(tscpp.language()))
        self._source = b''

    def parse(self, source: bytes) -> Tree:
        self._source = source
        return self.parser.parse(source)

    # ------------------------------------------------------------------
    # Scanning
    # ------------------------------------------------------------------

    def scan_source(self, source: bytes, symbol_name: str, file_path: str = '<memory>') -> List[Usage]:
        """Find and classify every occurrence of ``symbol_name`` in ``source``.

        Args:
            source: C++ source bytes
            symbol_name: Unqualified spelling of the symbol
            file_path: Path reported in the resulting usages

        Returns:
            Usages in source order
        """
        tree = self.parse(source)
        lines = source.decode('utf-8', errors='replace').splitlines()
        usages = []
        for name_node in self.iter_occurrences(tree.root_node, symbol_name):
            path = self.build_path(name_node)
            tags = classify(path, symbol_name)
            row, column = name_node.start_point[0], name_node.start_point[1]
            usages.append(Usage(
                file_path=str(file_path),
                line_text=lines[row] if row < len(lines) else '',
                containing_function=self.containing_function_name(name_node),
                tags=tags,
                line=row + 1,
                column=column + 1,
                length=name_node.end_byte - name_node.start_byte,
            ))
        logger.debug("%s: %d occurrences of %s", file_path, len(usages), symbol_name)
        return usages

    def scan_file(self, file_path: str | Path, symbol_name: str) -> List[Usage]:
        """Scan one file. Unreadable files yield no usages."""
        file_path = Path(file_path)
        try:
            source = file_path.read_bytes()
        except OSError as e:
            logger.warning("Skipping %s: %s", file_path, e)
            return []
        return self.scan_source(source, symbol_name, str(file_path))

    def scan_paths(self, paths: Iterable[str | Path], symbol_name: str,
                   excluded_dirs: Optional[Iterable[str]] = None) -> List[Usage]:
        """Scan files and directories (recursively) for C/C++ sources."""
        if excluded_dirs is None:
            excluded_dirs = get_config().excluded_dirs
        excluded = set(excluded_dirs)
        usages = []
        for file_path in self._iter_source_files(paths, excluded):
            usages.extend(self.scan_file(file_path, symbol_name))
        return usages

    @staticmethod
    def _iter_source_files(paths: Iterable[str | Path], excluded: set) -> Iterator[Path]:
        for path in paths:
            path = Path(path)
            if path.is_file():
                yield path
            elif path.is_dir():
                for file_path in sorted(path.rglob('*')):
                    if (file_path.is_file() and file_path.suffix.lower() in CPP_EXTENSIONS
                            and not any(part in excluded for part in file_path.relative_to(path).parts)):
                        yield file_path
            else:
                logger.warning("Skipping %s: no such file or directory", path)

    def iter_occurrences(self, root: Node, symbol_name: str) -> Iterator[Node]:
        """Yield name nodes spelled ``symbol_name``, in source order."""
        wanted = symbol_name.encode('utf-8')
        stack = [root]
        while stack:
            node = stack.pop()
            if node.type in NAME_TYPES and node.text == wanted:
                yield node
                continue
            stack.extend(reversed(node.children))

    def containing_function_name(self, node: Node) -> Optional[str]:
        """Name of the function definition whose body contains ``node``."""
        child, parent = node, node.parent
        while parent is not None:
            if parent.type == 'function_definition' and _is_field(parent, 'body', child):
                name = self._declarator_name(parent.child_by_field_name('declarator'))
                return _text(name) or None
            child, parent = parent, parent.parent
        return None

    # ------------------------------------------------------------------
    # Ancestor path construction
    # ------------------------------------------------------------------

    def build_path(self, name_node: Node) -> AncestorPath:
        """Map a name node and its ancestors onto an innermost-first path."""
        occurrence, start = self._occurrence(name_node)
        nodes = [occurrence]
        child, parent = start, start.parent
        while parent is not None:
            if self._reads_value(child, parent):
                nodes.append(_RVALUE_CONVERSION)
            converted = self._convert_ancestor(parent, child)
            if converted is not None:
                nodes.append(converted)
            child, parent = parent, parent.parent
        return AncestorPath(nodes)

    def _occurrence(self, name_node: Node) -> Tuple[SyntaxNode, Node]:
        expr = name_node
        while expr.parent is not None and expr.parent.type in _NAME_WRAPPERS:
            name_field = expr.parent.child_by_field_name('name')
            if name_field is not None and name_field != expr:
                break
            expr = expr.parent

        declaration = self._declaration_for_name(expr)
        if declaration is not None:
            decl_node, declarator = declaration
            return self._declaration_like(decl_node, declarator), decl_node

        parent = expr.parent
        if parent is not None and parent.type == 'field_initializer' and parent.named_children[0] == expr:
            return self._member_initializer(parent), parent
        if parent is not None and parent.type == 'field_expression' and _is_field(parent, 'field', expr):
            return self._member_node(parent), parent
        if name_node.type == 'type_identifier':
            return SyntaxNode(kind=NodeKind.RECORD, role=NodeRole.TYPE, detail=_text(name_node),
                              range=_range(expr)), expr
        if name_node.type == 'namespace_identifier':
            return SyntaxNode(role=NodeRole.SPECIFIER, detail=_text(name_node),
                              range=_range(expr), kind_name='NamespaceSpecifier'), expr

        is_callee = parent is not None and parent.type == 'call_expression' and _is_field(parent, 'function', expr)
        return SyntaxNode(
            kind=NodeKind.DECL_REF,
            role=NodeRole.EXPRESSION,
            detail=_text(name_node),
            range=_range(expr),
            facts=NodeFacts(is_lvalue=True, is_function_entity=is_callee),
        ), expr

    def _declaration_for_name(self, expr: Node) -> Optional[Tuple[Node, Optional[Node]]]:
        """Find the declaration ``expr`` names, walking up through declarators."""
        parent = expr.parent
        if parent is None:
            return None
        if parent.type in _RECORD_SPECIFIERS and _is_field(parent, 'name', expr):
            return parent, None
        if parent.type in _TEMPLATE_PARAMETER_TYPES:
            return parent, None

        child = expr
        while parent is not None and parent.type in _DECLARATOR_WRAPPERS:
            declarator_field = parent.child_by_field_name('declarator')
            if declarator_field is not None and declarator_field != child:
                return None
            child, parent = parent, parent.parent
        if parent is None or parent.type not in _DECLARATION_TYPES:
            return None
        if child not in parent.children_by_field_name('declarator'):
            return None
        return parent, child

    def _declaration_like(self, decl_node: Node, declarator: Optional[Node]) -> SyntaxNode:
        if decl_node.type == 'function_definition':
            return self._function_node(decl_node)
        if decl_node.type in _RECORD_SPECIFIERS:
            return self._record_node(decl_node)
        if decl_node.type in _TEMPLATE_PARAMETER_TYPES:
            return SyntaxNode(role=NodeRole.DECLARATION, range=_range(decl_node),
                              detail=_text(decl_node.named_children[-1]) if decl_node.named_children else None,
                              kind_name='TemplateTypeParm')
        return self._declaration_node(decl_node, declarator)

    def _convert_ancestor(self, node: Node, child: Node) -> Optional[SyntaxNode]:
        node_type = node.type
        if node_type in ('assignment_expression', 'binary_expression'):
            op = _text(node.child_by_field_name('operator'))
            kind = NodeKind.BINARY_OPERATOR
            if node_type == 'assignment_expression' and op != '=':
                kind = NodeKind.COMPOUND_ASSIGN
            return SyntaxNode(
                kind=kind, role=NodeRole.EXPRESSION, detail=op, range=_range(node),
                children=(_shallow(node.child_by_field_name('left')),
                          _shallow(node.child_by_field_name('right'))),
                facts=NodeFacts(operator=op),
            )
        if node_type in ('update_expression', 'unary_expression', 'pointer_expression'):
            return SyntaxNode(kind=NodeKind.UNARY_OPERATOR, role=NodeRole.EXPRESSION,
                              detail=_text(node.child_by_field_name('operator')), range=_range(node))
        if node_type == 'call_expression':
            return self._call_node(node)
        if node_type == 'field_expression':
            return self._member_node(node)
        if node_type == 'new_expression':
            return SyntaxNode(kind=NodeKind.NEW, role=NodeRole.EXPRESSION, range=_range(node))
        if node_type == 'delete_expression':
            return SyntaxNode(kind=NodeKind.DELETE, role=NodeRole.EXPRESSION, range=_range(node))
        if node_type == 'if_statement':
            return SyntaxNode(kind=NodeKind.IF, role=NodeRole.STATEMENT, range=_range(node))
        if node_type == 'switch_statement':
            return SyntaxNode(kind=NodeKind.SWITCH, role=NodeRole.STATEMENT, range=_range(node))
        if node_type == 'field_initializer':
            return self._member_initializer(node)
        if node_type == 'compound_statement':
            return SyntaxNode(kind=NodeKind.COMPOUND, role=NodeRole.STATEMENT, range=_range(node))
        if node_type == 'init_declarator':
            return self._declaration_node(node.parent, node)
        if node_type in ('declaration', 'field_declaration'):
            # Already represented by the init_declarator we came through.
            if child.type == 'init_declarator':
                return None
            declarators = node.children_by_field_name('declarator')
            return self._declaration_node(node, declarators[0] if declarators else None)
        if node_type in _DECLARATION_TYPES:
            if node_type == 'function_definition':
                return self._function_node(node)
            return self._declaration_node(node, node.child_by_field_name('declarator'))
        if node_type in _RECORD_SPECIFIERS:
            if _is_field(node, 'body', child):
                return self._record_node(node)
            return _shallow(node)
        if node_type == 'template_declaration':
            return self._template_node(node)
        if node_type in _UNEVALUATED_TYPES:
            return SyntaxNode(role=NodeRole.EXPRESSION, range=_range(node), kind_name=node_type,
                              facts=NodeFacts(is_unevaluated=True))
        if node_type == 'lambda_expression':
            return SyntaxNode(kind=NodeKind.LAMBDA, role=NodeRole.EXPRESSION, range=_range(node))
        return _shallow(node)

    def _reads_value(self, child: Node, parent: Node) -> bool:
        """Whether clang would convert ``child`` to an rvalue inside ``parent``."""
        if child.type not in _LVALUE_TYPES:
            if not (child.type == 'pointer_expression'
                    and _text(child.child_by_field_name('operator')) == '*'):
                return False
        if parent.type == 'call_expression' and _is_field(parent, 'function', child):
            return False
        if parent.type in _READING_PARENTS:
            return True
        if parent.type == 'assignment_expression':
            return _is_field(parent, 'right', child)
        if parent.type == 'init_declarator':
            return (_is_field(parent, 'value', child)
                    and parent.child_by_field_name('declarator').type != 'reference_declarator')
        if parent.type == 'subscript_expression':
            return not _is_field(parent, 'argument', child)
        if parent.type in ('for_statement', 'while_statement', 'do_statement'):
            return _is_field(parent, 'condition', child)
        return False

    # ------------------------------------------------------------------
    # Node builders
    # ------------------------------------------------------------------

    def _member_node(self, field_expression: Node) -> SyntaxNode:
        parent = field_expression.parent
        bound = (parent is not None and parent.type == 'call_expression'
                 and _is_field(parent, 'function', field_expression))
        return SyntaxNode(
            kind=NodeKind.MEMBER,
            role=NodeRole.EXPRESSION,
            detail=_text(field_expression.child_by_field_name('field')),
            range=_range(field_expression),
            facts=NodeFacts(is_lvalue=not bound, is_bound_member_function=bound),
        )

    def _call_node(self, call: Node) -> SyntaxNode:
        function = call.child_by_field_name('function')
        arguments = call.child_by_field_name('arguments')
        args = tuple(_shallow(arg) for arg in arguments.named_children) if arguments is not None else ()
        if function is not None and function.type == 'field_expression':
            return SyntaxNode(kind=NodeKind.MEMBER_CALL, role=NodeRole.EXPRESSION,
                              detail=_text(function.child_by_field_name('field')),
                              range=_range(call), children=(self._member_node(function),) + args)
        return SyntaxNode(kind=NodeKind.CALL, role=NodeRole.EXPRESSION, detail=_text(function),
                          range=_range(call), children=(_shallow(function),) + args)

    def _member_initializer(self, node: Node) -> SyntaxNode:
        name = node.named_children[0] if node.named_children else None
        return SyntaxNode(kind=NodeKind.MEMBER_INITIALIZER, detail=_text(name), range=_range(node))

    def _declaration_node(self, decl_node: Optional[Node], declarator: Optional[Node]) -> SyntaxNode:
        """Build a variable/field/parameter/prototype declaration node.

        Child 0 is the declared type, so an occurrence inside the initializer
        is not mistaken for the declared entity itself.
        """
        if decl_node is None:
            return _shallow(declarator)
        type_node = decl_node.child_by_field_name('type')
        name = self._declarator_name(declarator)
        function_declarator = self._find_declarator(declarator, 'function_declarator')

        if decl_node.type in ('parameter_declaration', 'optional_parameter_declaration',
                              'variadic_parameter_declaration'):
            kind = NodeKind.PARM_VAR
        elif function_declarator is not None:
            kind = NodeKind.METHOD if decl_node.type == 'field_declaration' else NodeKind.FUNCTION
        elif decl_node.type == 'field_declaration':
            kind = NodeKind.FIELD
        else:
            kind = NodeKind.VAR

        has_initializer = (declarator is not None and declarator.type == 'init_declarator'
                           and any(c.type == '=' for c in declarator.children))
        children = [_shallow(type_node, NodeRole.TYPE)]
        if has_initializer:
            children.append(_shallow(declarator.child_by_field_name('value'), NodeRole.EXPRESSION))
        children.extend(self._attribute_children(decl_node, function_declarator, name))
        children.extend(self._template_argument_children(name))

        return SyntaxNode(
            kind=kind,
            role=NodeRole.DECLARATION,
            detail=_text(name) or None,
            range=_range(decl_node),
            children=tuple(children),
            facts=NodeFacts(has_initializer=has_initializer,
                            has_const_type=self._is_const(decl_node, declarator)),
        )

    def _function_node(self, definition: Node) -> SyntaxNode:
        declarator = definition.child_by_field_name('declarator')
        name = self._declarator_name(declarator)
        function_declarator = self._find_declarator(declarator, 'function_declarator')

        if name is not None and name.type == 'destructor_name':
            kind = NodeKind.DESTRUCTOR
        elif (name is not None and name.type in ('field_identifier', 'qualified_identifier')) \
                or self._in_class_body(definition):
            kind = NodeKind.METHOD
        else:
            kind = NodeKind.FUNCTION

        children = [_shallow(definition.child_by_field_name('type'), NodeRole.TYPE)]
        children.extend(self._attribute_children(definition, function_declarator, name))
        children.extend(self._template_argument_children(name))
        children.append(_shallow(definition.child_by_field_name('body'), NodeRole.STATEMENT))
        return SyntaxNode(kind=kind, role=NodeRole.DECLARATION, detail=_text(name) or None,
                          range=_range(definition), children=tuple(children))

    def _record_node(self, specifier: Node) -> SyntaxNode:
        return SyntaxNode(kind=NodeKind.RECORD, role=NodeRole.DECLARATION,
                          detail=_text(specifier.child_by_field_name('name')) or None,
                          range=_range(specifier), children=())

    def _template_node(self, node: Node) -> SyntaxNode:
        inner = node.named_children[-1] if node.named_children else None
        kind = NodeKind.OTHER
        if inner is not None and inner.type in _RECORD_SPECIFIERS:
            name = inner.child_by_field_name('name')
            if name is not None and name.type == 'template_type':
                kind = NodeKind.CLASS_TEMPLATE_PARTIAL_SPECIALIZATION
            else:
                kind = NodeKind.CLASS_TEMPLATE
        elif inner is not None and (inner.type == 'function_definition'
                                    or self._find_declarator(inner.child_by_field_name('declarator'),
                                                             'function_declarator') is not None):
            kind = NodeKind.FUNCTION_TEMPLATE
        return SyntaxNode(kind=kind, role=NodeRole.DECLARATION, range=_range(node),
                          kind_name=kind.value or 'Template')

    def _attribute_children(self, decl_node: Node, function_declarator: Optional[Node],
                            name: Optional[Node]) -> List[SyntaxNode]:
        attributes = []
        if function_declarator is not None:
            for child in function_declarator.children:
                if child.type != 'virtual_specifier':
                    continue
                spelling = _text(child)
                kind = NodeKind.FINAL if spelling == 'final' else NodeKind.OVERRIDE
                attributes.append(SyntaxNode(kind=kind, role=NodeRole.ATTRIBUTE, detail=spelling,
                                             range=_range(child)))
        if self._macro_pattern is not None and name is not None:
            prefix = self._prefix_text(decl_node, name)
            match = self._macro_pattern.search(prefix)
            if match:
                attributes.append(SyntaxNode(kind=NodeKind.ANNOTATE, role=NodeRole.ATTRIBUTE,
                                             detail=match.group(0),
                                             facts=NodeFacts(is_invokable=True)))
        return attributes

    def _template_argument_children(self, name: Optional[Node]) -> List[SyntaxNode]:
        if name is None or name.type != 'template_function':
            return []
        arguments = name.child_by_field_name('arguments')
        if arguments is None:
            return []
        return [_shallow(arg, NodeRole.TEMPLATE_ARGUMENT) for arg in arguments.named_children]

    def _prefix_text(self, decl_node: Node, name: Node) -> str:
        """Source text from the start of the declaration's line up to its name."""
        source = self._source
        line_start = source.rfind(b'\n', 0, decl_node.start_byte) + 1
        return source[line_start:name.start_byte].decode('utf-8', errors='replace')

    # ------------------------------------------------------------------
    # Declarator helpers
    # ------------------------------------------------------------------

    def _declarator_name(self, declarator: Optional[Node]) -> Optional[Node]:
        """Innermost name of a declarator chain (keeps qualified/template wrappers)."""
        node = declarator
        while node is not None and node.type in _DECLARATOR_WRAPPERS:
            inner = node.child_by_field_name('declarator')
            if inner is None:
                named = [c for c in node.named_children if c.type not in ('type_qualifier',)]
                inner = named[0] if named else None
            node = inner
        return node

    def _find_declarator(self, declarator: Optional[Node], wanted: str) -> Optional[Node]:
        node = declarator
        while node is not None and node.type in _DECLARATOR_WRAPPERS:
            if node.type == wanted:
                return node
            inner = node.child_by_field_name('declarator')
            if inner is None:
                named = [c for c in node.named_children if c.type != 'type_qualifier']
                inner = named[0] if named else None
            node = inner
        return None

    def _is_const(self, decl_node: Node, declarator: Optional[Node]) -> bool:
        for child in decl_node.children:
            if child.type == 'type_qualifier' and _text(child) == 'const':
                return True
        node = declarator
        while node is not None and node.type in _DECLARATOR_WRAPPERS:
            for child in node.children:
                if child.type == 'type_qualifier' and _text(child) == 'const':
                    return True
            node = node.child_by_field_name('declarator')
        return False

    @staticmethod
    def _in_class_body(node: Node) -> bool:
        parent = node.parent
        while parent is not None and parent.type == 'template_declaration':
            parent = parent.parent
        return parent is not None and parent.type == 'field_declaration_list'
