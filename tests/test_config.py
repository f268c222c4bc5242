"""Tests for environment-driven configuration."""
import pytest

from usagescope.config import DEFAULT_EXCLUDED_DIRS, Config, get_config, reset_config


@pytest.fixture
def no_env_file(tmp_path):
    return tmp_path / "absent.env"


class TestDefaults:
    def test_defaults(self, no_env_file):
        config = Config(env_path=no_env_file)
        assert config.log_level == 'WARNING'
        assert config.invokable_markers == ['qt_']
        assert config.invokable_macros == ['Q_INVOKABLE', 'Q_SLOT', 'Q_SIGNAL', 'Q_SCRIPTABLE']
        assert config.excluded_dirs == list(DEFAULT_EXCLUDED_DIRS)
        assert config.no_color is False


class TestEnvironment:
    def test_log_level_is_normalized(self, monkeypatch, no_env_file):
        monkeypatch.setenv('USAGESCOPE_LOG_LEVEL', ' debug ')
        assert Config(env_path=no_env_file).log_level == 'DEBUG'

    def test_invalid_log_level(self, monkeypatch, no_env_file):
        monkeypatch.setenv('USAGESCOPE_LOG_LEVEL', 'chatty')
        with pytest.raises(ValueError, match='USAGESCOPE_LOG_LEVEL'):
            Config(env_path=no_env_file)

    def test_lists_are_comma_separated(self, monkeypatch, no_env_file):
        monkeypatch.setenv('USAGESCOPE_INVOKABLE_MARKERS', 'qt_, moc_ ,')
        monkeypatch.setenv('USAGESCOPE_INVOKABLE_MACROS', 'MY_SLOT')
        config = Config(env_path=no_env_file)
        assert config.invokable_markers == ['qt_', 'moc_']
        assert config.invokable_macros == ['MY_SLOT']

    def test_excluded_dirs_extend_defaults(self, monkeypatch, no_env_file):
        monkeypatch.setenv('USAGESCOPE_EXCLUDED_DIRS', 'generated,build')
        dirs = Config(env_path=no_env_file).excluded_dirs
        assert dirs[:len(DEFAULT_EXCLUDED_DIRS)] == list(DEFAULT_EXCLUDED_DIRS)
        assert dirs.count('build') == 1
        assert 'generated' in dirs

    @pytest.mark.parametrize('value,expected', [('1', True), ('yes', True), ('0', False), ('', False)])
    def test_no_color(self, monkeypatch, no_env_file, value, expected):
        monkeypatch.setenv('USAGESCOPE_NO_COLOR', value)
        assert Config(env_path=no_env_file).no_color is expected


class TestEnvFile:
    def test_values_loaded_from_env_file(self, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("USAGESCOPE_NO_COLOR=true\nUSAGESCOPE_INVOKABLE_MARKERS=moc_\n")
        config = Config(env_path=env_file)
        assert config.no_color is True
        assert config.invokable_markers == ['moc_']

    def test_environment_wins_over_env_file(self, monkeypatch, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("USAGESCOPE_LOG_LEVEL=ERROR\n")
        monkeypatch.setenv('USAGESCOPE_LOG_LEVEL', 'INFO')
        assert Config(env_path=env_file).log_level == 'INFO'


class TestSingleton:
    def test_get_config_is_cached(self):
        assert get_config() is get_config()

    def test_reset_config(self):
        first = get_config()
        reset_config()
        assert get_config() is not first
