"""Terminal-safe output helpers and the project logger.

Detects the terminal encoding and replaces characters it cannot show (e.g.
non-ASCII text in source lines) so Windows terminals without UTF-8 do not
crash. Log records go through rich's handler to stderr.
"""
import logging
import locale
import sys

from rich.console import Console
from rich.logging import RichHandler


LOGGER_NAME = 'usagescope'


def detect_terminal_encoding() -> str:
    """Detect the terminal's encoding capability.

    Returns:
        str: Terminal encoding ('utf-8', 'cp1252', 'ascii', etc.)
    """
    if hasattr(sys.stdout, 'encoding') and sys.stdout.encoding:
        return sys.stdout.encoding.lower()

    try:
        return locale.getpreferredencoding().lower()
    except (ValueError, LookupError):
        return 'ascii'


def is_utf8_capable() -> bool:
    """Check if the terminal can handle UTF-8 Unicode characters."""
    return detect_terminal_encoding() in ('utf-8', 'utf8', 'utf_8')


def sanitize_for_terminal(text: str, force: bool = False) -> str:
    """Replace characters the terminal encoding cannot represent with '?'.

    Args:
        text: Text potentially containing non-ASCII characters
        force: Sanitize even on a UTF-8 terminal

    Returns:
        str: Text safe for the current terminal
    """
    if is_utf8_capable() and not force:
        return text

    encoding = detect_terminal_encoding()
    try:
        return text.encode(encoding, errors='replace').decode(encoding)
    except LookupError:
        return text.encode('ascii', errors='replace').decode('ascii')


def get_logger(name: str = LOGGER_NAME) -> logging.Logger:
    """Return a logger under the 'usagescope' hierarchy.

    The package root logger gets a RichHandler on stderr the first time any
    logger is requested, at WARNING. The CLI applies USAGESCOPE_LOG_LEVEL
    through set_log_level() once the configuration has been validated.
    """
    root = logging.getLogger(LOGGER_NAME)
    if not root.handlers:
        handler = RichHandler(
            console=Console(stderr=True),
            show_path=False,
            markup=False,
        )
        handler.setFormatter(logging.Formatter('%(message)s'))
        root.addHandler(handler)
        root.setLevel(logging.WARNING)
        root.propagate = False

    if name == LOGGER_NAME or name.startswith(LOGGER_NAME + '.'):
        return logging.getLogger(name)
    return root.getChild(name)


def set_log_level(level: str) -> None:
    """Change the level of the package logger (e.g. for --verbose)."""
    get_logger().setLevel(level.upper())
