"""
octosite - static site builder for documentation and blog sites.

octosite reads Markdown and HTML content with YAML front-matter, applies
Jinja2 layouts, compiles Sass sources into one stylesheet and publishes the
result under a fixed base path, driven by a Compass-style configuration file.
"""

__version__ = "1.0.0"

from .content import ContentItem, load_content
from .core import BuildOutput, SiteBuilder, build, render
from .errors import (
    ConfigError,
    ContentConflictError,
    ContentParseError,
    OutputError,
    SiteError,
    StylesheetError,
    TemplateError,
)
from .settings import SiteConfiguration, load_configuration

__all__ = [
    'BuildOutput',
    'ConfigError',
    'ContentConflictError',
    'ContentItem',
    'ContentParseError',
    'OutputError',
    'SiteBuilder',
    'SiteConfiguration',
    'SiteError',
    'StylesheetError',
    'TemplateError',
    'build',
    'load_configuration',
    'load_content',
    'render',
]
