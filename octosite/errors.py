"""
Error types raised while building an octosite site.

ConfigError is fatal for the whole build. Every other error is tied to one
source file: it is logged, collected on the build output and the build moves
on to the next file.
"""

from typing import Optional


class SiteError(Exception):
    """Base class for build errors that point at a source file."""

    def __init__(self, message: str, path: Optional[str] = None, line: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.path = path
        self.line = line

    def __str__(self):
        if self.path and self.line:
            return f"{self.path}:{self.line}: {self.message}"
        if self.path:
            return f"{self.path}: {self.message}"
        return self.message

    def __reduce__(self):
        # Worker processes send errors back through pickle
        return (self.__class__, (self.message, self.path, self.line))


class ConfigError(SiteError):
    """The site configuration is missing, unreadable or invalid."""


class ContentParseError(SiteError):
    """A content file has malformed front-matter."""


class TemplateError(SiteError):
    """A layout is missing or a template failed to render."""

    def __init__(self, message: str, path: Optional[str] = None, line: Optional[int] = None,
                 layout: Optional[str] = None):
        super().__init__(message, path, line)
        self.layout = layout

    def __reduce__(self):
        return (self.__class__, (self.message, self.path, self.line, self.layout))


class ContentConflictError(SiteError):
    """Two content files would be written to the same output path."""


class StylesheetError(SiteError):
    """A style source failed to compile."""


class OutputError(SiteError):
    """A generated file could not be written."""
