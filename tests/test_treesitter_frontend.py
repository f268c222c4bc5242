"""Tests for the tree-sitter C++ front end.

Each test scans a small snippet and checks the tags reported at each
(line, column) of the symbol, both 1-based.
"""
import textwrap

import pytest

from usagescope.analyzer.tags import Tag, TagSet
from usagescope.analyzer.treesitter_frontend import CppUsageScanner

COUNTER_SOURCE = textwrap.dedent("""\
    int counter = 0;
    void bump(int &ref);
    void step(int delta) {
        counter += delta;
        counter++;
        int copy = counter;
        if (counter > 3) {
            bump(counter);
        }
    }
    """).encode()


@pytest.fixture(scope="module")
def scanner():
    return CppUsageScanner(invokable_macros=['Q_INVOKABLE'])


def scan(scanner, source, symbol):
    if isinstance(source, str):
        source = textwrap.dedent(source).encode()
    return scanner.scan_source(source, symbol, 'snippet.cpp')


def tags_by_position(usages):
    return {(usage.line, usage.column): usage.tags for usage in usages}


class TestVariableUsages:
    """Reads and writes of a global variable."""

    def test_every_occurrence_found_in_order(self, scanner):
        usages = scan(scanner, COUNTER_SOURCE, 'counter')
        assert [(u.line, u.column) for u in usages] == [(1, 5), (4, 5), (5, 5), (6, 16), (7, 9), (8, 14)]
        assert all(u.length == len('counter') for u in usages)

    def test_classification(self, scanner):
        tags = tags_by_position(scan(scanner, COUNTER_SOURCE, 'counter'))
        assert tags[(1, 5)] == TagSet(Tag.DECLARATION, Tag.WRITE)
        assert tags[(4, 5)] == TagSet(Tag.WRITE)
        assert tags[(5, 5)] == TagSet(Tag.WRITE)
        assert tags[(6, 16)] == TagSet(Tag.READ)
        assert tags[(7, 9)] == TagSet(Tag.READ)

    def test_call_argument_is_writable_ref(self, scanner):
        tags = tags_by_position(scan(scanner, COUNTER_SOURCE, 'counter'))
        assert tags[(8, 14)] == TagSet(Tag.WRITABLE_REF)

    def test_right_hand_side_of_compound_assignment(self, scanner):
        tags = tags_by_position(scan(scanner, COUNTER_SOURCE, 'delta'))
        assert tags[(3, 15)] == TagSet(Tag.DECLARATION)
        assert tags[(4, 16)] == TagSet(Tag.READ)

    def test_line_text_and_containing_function(self, scanner):
        usages = scan(scanner, COUNTER_SOURCE, 'counter')
        assert usages[0].containing_function is None
        assert usages[0].line_text == 'int counter = 0;'
        assert usages[1].containing_function == 'step'
        assert usages[1].line_text == '    counter += delta;'

    def test_parameter_is_not_inside_function_body(self, scanner):
        usages = scan(scanner, COUNTER_SOURCE, 'delta')
        assert usages[0].containing_function is None
        assert usages[1].containing_function == 'step'

    def test_unevaluated_operand(self, scanner):
        usages = scan(scanner, """\
            int counter = 0;
            int bytes = sizeof(counter);
            """, 'counter')
        assert usages[1].tags == TagSet()


class TestFunctions:
    def test_prototype_and_call(self, scanner):
        tags = tags_by_position(scan(scanner, COUNTER_SOURCE, 'bump'))
        assert tags[(2, 6)] == TagSet(Tag.DECLARATION)
        assert tags[(8, 9)] == TagSet()

    def test_reference_parameter(self, scanner):
        tags = tags_by_position(scan(scanner, COUNTER_SOURCE, 'ref'))
        assert tags[(2, 16)] == TagSet(Tag.DECLARATION)

    def test_function_template(self, scanner):
        source = """\
            template <typename T>
            T twice(T value) {
                return value + value;
            }
            """
        assert tags_by_position(scan(scanner, source, 'twice')) == {
            (2, 3): TagSet(Tag.DECLARATION, Tag.TEMPLATE),
        }
        tags = tags_by_position(scan(scanner, source, 'value'))
        assert tags[(2, 11)] == TagSet(Tag.DECLARATION, Tag.TEMPLATE)
        assert tags[(3, 12)] == TagSet(Tag.READ)
        assert tags[(3, 20)] == TagSet(Tag.READ)


class TestClasses:
    SHAPES = """\
        struct Shape {
            virtual void draw();
            virtual void run();
        };
        struct Square : Shape {
            void run() override;
            void draw() final;
        };
        void use(Shape &helper, int *ptr, int size) {
            helper.draw();
            delete ptr;
            int *fresh = new int(size);
        }
        """

    def test_override_and_final(self, scanner):
        run = tags_by_position(scan(scanner, self.SHAPES, 'run'))
        assert run[(3, 18)] == TagSet(Tag.DECLARATION)
        assert run[(6, 10)] == TagSet(Tag.DECLARATION, Tag.OVERRIDE)
        draw = tags_by_position(scan(scanner, self.SHAPES, 'draw'))
        assert draw[(7, 10)] == TagSet(Tag.DECLARATION, Tag.OVERRIDE)

    def test_member_function_call(self, scanner):
        draw = tags_by_position(scan(scanner, self.SHAPES, 'draw'))
        assert draw[(10, 12)] == TagSet()

    def test_object_of_member_call(self, scanner):
        helper = tags_by_position(scan(scanner, self.SHAPES, 'helper'))
        assert helper[(10, 5)] == TagSet(Tag.WRITABLE_REF)

    def test_delete_and_new(self, scanner):
        assert tags_by_position(scan(scanner, self.SHAPES, 'ptr'))[(11, 12)] == TagSet(Tag.WRITE)
        assert tags_by_position(scan(scanner, self.SHAPES, 'size'))[(12, 26)] == TagSet()

    def test_record_declaration_and_base(self, scanner):
        shape = tags_by_position(scan(scanner, """\
            struct Shape {};
            struct Square : Shape {};
            """, 'Shape'))
        assert shape[(1, 8)] == TagSet(Tag.DECLARATION)
        assert shape[(2, 17)] == TagSet()

    def test_member_initializer(self, scanner):
        source = """\
            class Point {
            public:
                Point(int x) : m_x(x) {}
            private:
                int m_x;
            };
            """
        m_x = tags_by_position(scan(scanner, source, 'm_x'))
        assert m_x[(3, 20)] == TagSet(Tag.WRITE)
        assert m_x[(5, 9)] == TagSet(Tag.DECLARATION)
        x = tags_by_position(scan(scanner, source, 'x'))
        assert x[(3, 15)] == TagSet(Tag.DECLARATION)
        assert x[(3, 24)] == TagSet(Tag.READ)


class TestScanPaths:
    def test_walks_directories_and_skips_excluded(self, scanner, tmp_path):
        (tmp_path / "src").mkdir()
        (tmp_path / "build").mkdir()
        (tmp_path / "src" / "a.cpp").write_bytes(COUNTER_SOURCE)
        (tmp_path / "build" / "gen.cpp").write_bytes(COUNTER_SOURCE)
        (tmp_path / "src" / "notes.txt").write_text("counter")

        usages = scanner.scan_paths([tmp_path], 'counter', excluded_dirs=['build'])
        assert len(usages) == 6
        assert {u.file_path for u in usages} == {str(tmp_path / "src" / "a.cpp")}

    def test_explicit_file_and_missing_path(self, scanner, tmp_path):
        source = tmp_path / "one.h"
        source.write_text("extern int counter;\n")
        usages = scanner.scan_paths([source, tmp_path / "missing"], 'counter', excluded_dirs=[])
        assert [(u.line, u.column) for u in usages] == [(1, 12)]
        assert usages[0].tags == TagSet(Tag.DECLARATION)

    def test_unreadable_file(self, scanner, tmp_path):
        assert scanner.scan_file(tmp_path / "nope.cpp", 'counter') == []


class TestLineEndings:
    def test_crlf_source_has_clean_line_text(self, scanner):
        source = b"int counter = 0;\r\nvoid f() {\r\n    counter = 1;\r\n}\r\n"
        usages = scanner.scan_source(source, 'counter', 'crlf.cpp')
        assert [u.line_text for u in usages] == ['int counter = 0;', '    counter = 1;']
        assert usages[1].tags == TagSet(Tag.WRITE)
