"""Windows-safe Console wrapper for the Rich library.

Wraps Rich's Console to sanitize Unicode glyphs on terminals that don't
support UTF-8.
"""
from typing import Any

from rich.console import Console

from .logger import sanitize_for_terminal, is_utf8_capable


class SafeConsole(Console):
    """Console that sanitizes Unicode output for non-UTF-8 terminals."""

    def __init__(self, *args, **kwargs):
        """Initialize SafeConsole with UTF-8 capability detection.

        All arguments are passed through to Rich's Console.
        """
        self._needs_sanitization = not is_utf8_capable()
        if self._needs_sanitization:
            kwargs.setdefault('legacy_windows', True)
        super().__init__(*args, **kwargs)

    @classmethod
    def from_config(cls, config, **kwargs) -> 'SafeConsole':
        """Create a console honouring USAGESCOPE_NO_COLOR."""
        if config.no_color:
            kwargs.setdefault('no_color', True)
            kwargs.setdefault('highlight', False)
        return cls(**kwargs)

    def print(self, *objects: Any, **kwargs) -> None:
        """Print with automatic Unicode sanitization.

        Args:
            *objects: Objects to print (same as Rich Console.print)
            **kwargs: Keyword arguments (same as Rich Console.print)
        """
        if self._needs_sanitization:
            objects = tuple(
                sanitize_for_terminal(obj, force=True) if isinstance(obj, str) else obj
                for obj in objects
            )
        super().print(*objects, **kwargs)
