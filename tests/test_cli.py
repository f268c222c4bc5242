"""Tests for the usagescope command line interface."""
import json
import logging
import shutil
from pathlib import Path

import pytest
from typer.testing import CliRunner

from usagescope.config import __version__
from usagescope.main import app
from usagescope.utils.logger import get_logger

FIXTURES = Path(__file__).parent / "fixtures" / "clangd"
COUNTER_AST = FIXTURES / "counter_ast.json"

runner = CliRunner()


@pytest.fixture
def counter_file(tmp_path):
    target = tmp_path / "counter.cpp"
    shutil.copy(FIXTURES / "counter.cpp", target)
    return target


@pytest.fixture
def refs_file(tmp_path, counter_file):
    """textDocument/references response for 'counter' in counter.cpp."""
    def location(line, character):
        return {
            'uri': counter_file.as_uri(),
            'range': {'start': {'line': line, 'character': character},
                      'end': {'line': line, 'character': character + 7}},
        }

    path = tmp_path / "refs.json"
    path.write_text(json.dumps({'jsonrpc': '2.0', 'id': 2,
                                'result': [location(0, 4), location(2, 4), location(3, 15)]}))
    return path


class TestClassifyCommand:
    def test_json_output(self):
        result = runner.invoke(app, ['classify', str(COUNTER_AST), '--symbol', 'counter',
                                     '--line', '3', '--column', '5', '--json'])
        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert data['tags'] == ['write']
        assert data['bits'] == 4
        assert data['style'] == 'write'
        assert data['containing_function'] == 'bump'
        assert data['local_variable_definition'] is False

    def test_local_variable_definition(self):
        result = runner.invoke(app, ['classify', str(COUNTER_AST), '-s', 'copy', '-l', '4', '-c', '9', '--json'])
        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert data['tags'] == ['declaration', 'write']
        assert data['local_variable_definition'] is True

    def test_text_output(self):
        result = runner.invoke(app, ['classify', str(COUNTER_AST), '-s', 'counter', '-l', '4', '-c', '16'])
        assert result.exit_code == 0, result.output
        assert "Tags: read" in result.stdout
        assert "Containing function: bump" in result.stdout
        assert "DeclRef -> ImplicitCast" in result.stdout

    def test_missing_ast_file(self, tmp_path):
        result = runner.invoke(app, ['classify', str(tmp_path / "nope.json"), '-s', 'x', '-l', '1', '-c', '1'])
        assert result.exit_code == 1
        assert "Error" in result.output

    def test_line_must_be_positive(self):
        result = runner.invoke(app, ['classify', str(COUNTER_AST), '-s', 'x', '-l', '0', '-c', '1'])
        assert result.exit_code != 0


class TestRefsCommand:
    def test_json_output(self, refs_file, counter_file):
        result = runner.invoke(app, ['refs', str(refs_file), '-s', 'counter',
                                     '--ast', f"{counter_file}={COUNTER_AST}", '--json'])
        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert [u['tags'] for u in data['usages']] == [['declaration', 'write'], ['write'], ['read']]
        assert [u['line'] for u in data['usages']] == [1, 3, 4]
        assert data['summary']['write'] == 2
        assert data['summary']['unclassified'] == 0

    def test_only_filter(self, refs_file, counter_file):
        result = runner.invoke(app, ['refs', str(refs_file), '-s', 'counter',
                                     '--ast', f"{counter_file}={COUNTER_AST}", '--only', 'read', '--json'])
        assert result.exit_code == 0, result.output
        assert [u['line'] for u in json.loads(result.stdout)['usages']] == [4]

    def test_no_categorize(self, refs_file, counter_file):
        result = runner.invoke(app, ['refs', str(refs_file), '-s', 'counter',
                                     '--ast', f"{counter_file}={COUNTER_AST}", '--no-categorize', '--json'])
        data = json.loads(result.stdout)
        assert all(u['tags'] == [] for u in data['usages'])
        assert data['summary']['unclassified'] == 3

    def test_table_output(self, refs_file, counter_file):
        result = runner.invoke(app, ['refs', str(refs_file), '-s', 'counter',
                                     '--ast', f"{counter_file}={COUNTER_AST}"])
        assert result.exit_code == 0, result.output
        assert "Total usages: 3" in result.stdout

    def test_bad_ast_pair(self, refs_file):
        result = runner.invoke(app, ['refs', str(refs_file), '-s', 'counter', '--ast', 'nonsense'])
        assert result.exit_code == 1
        assert "FILE=AST_JSON" in result.output

    def test_unknown_tag_filter(self, refs_file):
        result = runner.invoke(app, ['refs', str(refs_file), '-s', 'counter', '--only', 'mutate'])
        assert result.exit_code == 1
        assert "mutate" in result.output


class TestScanCommand:
    SOURCE = "int total = 0;\nvoid add(int n) {\n    total += n;\n    int x = total;\n}\n"

    def test_json_output(self, tmp_path):
        (tmp_path / "total.cpp").write_text(self.SOURCE)
        result = runner.invoke(app, ['scan', str(tmp_path), '-s', 'total', '--json'])
        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert [u['tags'] for u in data['usages']] == [['declaration', 'write'], ['write'], ['read']]
        assert data['usages'][1]['containing_function'] == 'add'

    def test_only_write(self, tmp_path):
        (tmp_path / "total.cpp").write_text(self.SOURCE)
        result = runner.invoke(app, ['scan', str(tmp_path), '-s', 'total', '--only', 'write', '--json'])
        assert len(json.loads(result.stdout)['usages']) == 2

    def test_no_usages(self, tmp_path):
        (tmp_path / "total.cpp").write_text(self.SOURCE)
        result = runner.invoke(app, ['scan', str(tmp_path), '-s', 'missing_symbol'])
        assert result.exit_code == 0
        assert "No usages found" in result.stdout

    def test_missing_path(self, tmp_path):
        result = runner.invoke(app, ['scan', str(tmp_path / "nowhere"), '-s', 'total'])
        assert result.exit_code == 1
        assert "does not exist" in result.output


def test_version():
    result = runner.invoke(app, ['version'])
    assert result.exit_code == 0
    assert f"usagescope {__version__}" in result.stdout


class TestConfigurationErrors:
    """A bad environment is reported like any other user error."""

    @pytest.mark.parametrize('args', [['version'], ['scan', 'x.cpp', '-s', 'a']])
    def test_invalid_log_level(self, args):
        result = runner.invoke(app, args, env={'USAGESCOPE_LOG_LEVEL': 'bogus'})
        assert result.exit_code == 1
        assert "Error:" in result.output
        assert "USAGESCOPE_LOG_LEVEL" in result.output

    def test_log_level_applied_from_environment(self):
        result = runner.invoke(app, ['version'], env={'USAGESCOPE_LOG_LEVEL': 'error'})
        assert result.exit_code == 0
        assert get_logger().level == logging.ERROR
