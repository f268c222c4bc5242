"""Configuration management for usagescope.

Loads environment variables (optionally from a .env file) and provides
centralized config access.
"""
import os
from pathlib import Path
from typing import List

from dotenv import load_dotenv

__version__ = "0.3.0"

_LOG_LEVELS = ('CRITICAL', 'ERROR', 'WARNING', 'INFO', 'DEBUG')

# Directories never worth scanning for C++ sources
DEFAULT_EXCLUDED_DIRS = (
    '.git', '.svn', '.hg', 'build', 'dist', 'node_modules', '.cache',
    'third_party', 'vendor', 'extern', '__pycache__',
)


def _split_list(value: str) -> List[str]:
    return [item.strip() for item in value.split(',') if item.strip()]


class Config:
    """Configuration loader with environment variable support."""

    def __init__(self, env_path: Path | None = None):
        """Initialize config by loading a .env file.

        Args:
            env_path: Explicit .env location (defaults to the project root)
        """
        if env_path is None:
            env_path = Path(__file__).parent.parent.parent / ".env"
        load_dotenv(env_path)

        self._validate()

    def _validate(self):
        """Validate environment values that have a fixed vocabulary.

        Raises:
            ValueError: If USAGESCOPE_LOG_LEVEL is not a known level
        """
        if self.log_level not in _LOG_LEVELS:
            raise ValueError(
                f"USAGESCOPE_LOG_LEVEL must be one of {', '.join(_LOG_LEVELS)}, "
                f"got '{os.getenv('USAGESCOPE_LOG_LEVEL')}'"
            )

    @property
    def log_level(self) -> str:
        return os.getenv("USAGESCOPE_LOG_LEVEL", "WARNING").strip().upper()

    @property
    def invokable_markers(self) -> List[str]:
        """Annotate-attribute markers that denote moc invokables.

        Returns:
            Substrings searched in clangd's Annotate node descriptors
        """
        return _split_list(os.getenv("USAGESCOPE_INVOKABLE_MARKERS", "qt_"))

    @property
    def invokable_macros(self) -> List[str]:
        """Macros that expose a declaration to moc in plain source text.

        Returns:
            Macro names recognised by the tree-sitter scanner
        """
        return _split_list(os.getenv(
            "USAGESCOPE_INVOKABLE_MACROS",
            "Q_INVOKABLE,Q_SLOT,Q_SIGNAL,Q_SCRIPTABLE",
        ))

    @property
    def excluded_dirs(self) -> List[str]:
        """Directory names skipped while scanning.

        Priority: built-in defaults plus USAGESCOPE_EXCLUDED_DIRS.
        """
        extra = _split_list(os.getenv("USAGESCOPE_EXCLUDED_DIRS", ""))
        return list(DEFAULT_EXCLUDED_DIRS) + [d for d in extra if d not in DEFAULT_EXCLUDED_DIRS]

    @property
    def no_color(self) -> bool:
        return os.getenv("USAGESCOPE_NO_COLOR", "").strip().lower() in ('1', 'true', 'yes', 'on')


# Singleton instance
_config = None


def get_config() -> Config:
    """Get or create singleton Config instance.

    Returns:
        Config instance
    """
    global _config
    if _config is None:
        _config = Config()
    return _config


def reset_config() -> None:
    """Forget the singleton so the next get_config() re-reads the environment."""
    global _config
    _config = None
