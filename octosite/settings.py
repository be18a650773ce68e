#!/usr/bin/env python3
"""
Settings loader for the octosite static site builder.
Supports configuration from config.rb (Compass style), site.yml, site.yaml
or site.json files.
"""

import os
import re
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml

from .errors import ConfigError

logger = logging.getLogger('octosite.settings')

OUTPUT_STYLES = ('compressed', 'expanded')
REQUIRED_KEYS = ('http_path', 'css_dir', 'sass_dir')

_DIRECTORY_KEYS = (
    'css_dir', 'sass_dir', 'images_dir', 'fonts_dir', 'source_dir',
    'destination', 'layouts_dir', 'javascripts_dir',
)
_HTTP_KEYS = ('http_path', 'http_images_path', 'http_fonts_path', 'http_javascripts_path')
_KNOWN_KEYS = set(_DIRECTORY_KEYS + _HTTP_KEYS) | {
    'line_comments', 'output_style', 'permalink', 'stylesheet', 'exclude', 'title', 'url',
}

_ASSIGNMENT_RE = re.compile(r'^(?P<key>[A-Za-z_][A-Za-z0-9_]*)\s*=\s*(?P<value>.+?)\s*$')
_REQUIRE_RE = re.compile(r'''^require\s+(["'])[^"']+\1$''')
_DOUBLE_QUOTED_RE = re.compile(r'^"((?:[^"\\]|\\.)*)"$')
_SINGLE_QUOTED_RE = re.compile(r"^'((?:[^'\\]|\\.)*)'$")
_SYMBOL_RE = re.compile(r'^:([A-Za-z_][A-Za-z0-9_]*)$')
_INTEGER_RE = re.compile(r'^-?\d+$')
_ARRAY_ITEM_RE = re.compile(r'''"(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*'|[^,\s]+''')
_ESCAPE_RE = re.compile(r'\\(.)')


def _strip_ruby_comment(line: str) -> str:
    """Drop a trailing ``#`` comment that is not inside a string literal."""
    quote = None
    escaped = False
    for index, char in enumerate(line):
        if escaped:
            escaped = False
        elif char == '\\':
            escaped = True
        elif quote:
            if char == quote:
                quote = None
        elif char in ('"', "'"):
            quote = char
        elif char == '#':
            return line[:index]
    return line


def _parse_ruby_value(token: str, path: str, lineno: int) -> Any:
    match = _DOUBLE_QUOTED_RE.match(token)
    if match:
        if '#{' in match.group(1):
            raise ConfigError(f"String interpolation is not supported: {token}", path, lineno)
        return _ESCAPE_RE.sub(r'\1', match.group(1))
    match = _SINGLE_QUOTED_RE.match(token)
    if match:
        return _ESCAPE_RE.sub(r'\1', match.group(1))
    match = _SYMBOL_RE.match(token)
    if match:
        return match.group(1)
    if token == 'true':
        return True
    if token == 'false':
        return False
    if token == 'nil':
        return None
    if _INTEGER_RE.match(token):
        return int(token)
    if token.startswith('[') and token.endswith(']'):
        return [_parse_ruby_value(item, path, lineno)
                for item in _ARRAY_ITEM_RE.findall(token[1:-1])]
    raise ConfigError(f"Unsupported value: {token}", path, lineno)


def parse_ruby_config(text: str, path: str = 'config.rb') -> Dict[str, Any]:
    """
    Parse a Compass ``config.rb`` file.

    Only plain assignments of literals are understood: strings, symbols,
    booleans, ``nil``, integers and flat arrays. ``require`` lines are
    ignored. Anything else raises ConfigError naming the line.

    Args:
        text: Contents of the configuration file
        path: Path used in error messages

    Returns:
        Dictionary of configuration settings
    """
    settings = {}
    for lineno, raw_line in enumerate(text.splitlines(), 1):
        line = _strip_ruby_comment(raw_line).strip()
        if not line:
            continue
        if _REQUIRE_RE.match(line):
            logger.debug(f"Ignoring {line!r} in {path}")
            continue
        match = _ASSIGNMENT_RE.match(line)
        if not match:
            raise ConfigError(f"Unsupported statement: {line}", path, lineno)
        settings[match.group('key')] = _parse_ruby_value(match.group('value'), path, lineno)
    return settings


def _normalize_http_path(value: str, trailing_slash: bool) -> str:
    value = '/' + value.strip('/')
    if trailing_slash and not value.endswith('/'):
        value += '/'
    return value


@dataclass(frozen=True)
class SiteConfiguration:
    """
    Validated site configuration. Directory settings are relative to
    ``project_root``; http settings always start with a slash and
    ``http_path`` always ends with one.
    """

    project_root: Path
    http_path: str
    css_dir: str
    sass_dir: str
    http_images_path: str
    http_fonts_path: str
    images_dir: Optional[str] = None
    fonts_dir: Optional[str] = None
    line_comments: bool = True
    output_style: str = 'expanded'
    source_dir: str = 'source'
    destination: str = 'public'
    layouts_dir: str = 'source/_layouts'
    permalink: str = '/blog/:year/:month/:day/:title/'
    stylesheet: str = 'screen.css'
    javascripts_dir: Optional[str] = None
    http_javascripts_path: str = '/javascripts'
    exclude: Tuple[str, ...] = ()
    title: Optional[str] = None
    url: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def resolve(self, directory: Optional[str]) -> Optional[Path]:
        """Resolve a configured directory against the project root."""
        if directory is None:
            return None
        return self.project_root / directory

    def _under_destination(self, http_path: str) -> Path:
        return self.project_root / self.destination / http_path.strip('/')

    @property
    def site_root(self) -> Path:
        return self._under_destination(self.http_path)

    @property
    def source_path(self) -> Path:
        return self.resolve(self.source_dir)

    @property
    def layouts_path(self) -> Path:
        return self.resolve(self.layouts_dir)

    @property
    def css_path(self) -> Path:
        return self.resolve(self.css_dir)

    @property
    def sass_path(self) -> Path:
        return self.resolve(self.sass_dir)

    @property
    def images_output_path(self) -> Path:
        return self._under_destination(self.http_images_path)

    @property
    def fonts_output_path(self) -> Path:
        return self._under_destination(self.http_fonts_path)

    @property
    def javascripts_output_path(self) -> Path:
        return self._under_destination(self.http_javascripts_path)

    @property
    def root_url(self) -> str:
        """``http_path`` without its trailing slash, for joining in templates."""
        return self.http_path.rstrip('/')

    @property
    def compressed(self) -> bool:
        return self.output_style == 'compressed'

    def as_context(self) -> Dict[str, Any]:
        """Settings exposed to templates as ``site``."""
        context = dict(self.extra)
        context.update({
            'http_path': self.http_path,
            'http_images_path': self.http_images_path,
            'http_fonts_path': self.http_fonts_path,
            'http_javascripts_path': self.http_javascripts_path,
            'stylesheet_url': self.http_path + self.stylesheet_url_path(),
            'root_url': self.root_url,
            'output_style': self.output_style,
            'title': self.title,
            'url': self.url,
        })
        return context

    def stylesheet_url_path(self) -> str:
        """Path of the compiled stylesheet relative to the site root."""
        stylesheet = self.css_path / self.stylesheet
        try:
            return stylesheet.relative_to(self.site_root).as_posix()
        except ValueError:
            return self.stylesheet


class SiteSettings:
    """Load and manage site configuration settings."""

    # Default configuration for optional keys
    DEFAULT_SETTINGS = {
        'images_dir': None,
        'fonts_dir': None,
        'line_comments': True,
        'output_style': 'expanded',
        'source_dir': 'source',
        'destination': 'public',
        'layouts_dir': None,
        'permalink': '/blog/:year/:month/:day/:title/',
        'stylesheet': 'screen.css',
        'javascripts_dir': None,
        'exclude': [],
        'title': None,
        'url': None,
    }

    # Config file names to look for (in order of preference)
    CONFIG_FILES = ['config.rb', 'site.yml', 'site.yaml', 'site.json']

    def __init__(self, config_dir: str = None):
        """
        Initialize settings loader.

        Args:
            config_dir: Directory to look for config files. Defaults to current directory.
        """
        self.config_dir = config_dir or os.getcwd()
        self.settings = self.DEFAULT_SETTINGS.copy()
        self.config_file_path = None

    def load_settings(self, config_file: Optional[str] = None) -> Dict[str, Any]:
        """
        Load settings from a configuration file.

        Args:
            config_file: Explicit file to load. Discovered in config_dir when omitted.

        Returns:
            Dictionary of configuration settings merged over the defaults
        """
        config_file = config_file or self.find_config_file()
        if not config_file:
            raise ConfigError(
                f"No configuration file found in {self.config_dir} "
                f"(looked for {', '.join(self.CONFIG_FILES)})"
            )

        self.config_file_path = config_file
        loaded_settings = self._load_config_file(config_file)
        if not isinstance(loaded_settings, dict):
            raise ConfigError("Configuration must be a mapping of settings", config_file)
        # Explicit nulls fall back to the defaults
        self.settings.update({k: v for k, v in loaded_settings.items() if v is not None})
        logger.info(f"Loaded configuration from: {os.path.relpath(config_file)}")

        return self.settings.copy()

    def find_config_file(self) -> Optional[str]:
        """
        Find the first available configuration file.

        Returns:
            Path to config file or None if not found
        """
        for filename in self.CONFIG_FILES:
            config_path = os.path.join(self.config_dir, filename)
            if os.path.exists(config_path):
                return config_path
        return None

    def _load_config_file(self, config_path: str) -> Dict[str, Any]:
        file_ext = os.path.splitext(config_path)[1].lower()
        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                text = f.read()
        except FileNotFoundError:
            raise ConfigError("Configuration file not found", config_path)
        except (IOError, OSError) as e:
            raise ConfigError(f"Error reading configuration file: {e}", config_path)

        if file_ext == '.rb':
            return parse_ruby_config(text, config_path)
        if file_ext in ('.yml', '.yaml'):
            try:
                return yaml.safe_load(text) or {}
            except yaml.YAMLError as e:
                mark = getattr(e, 'problem_mark', None)
                line = mark.line + 1 if mark is not None else None
                raise ConfigError(f"Invalid YAML: {getattr(e, 'problem', e)}", config_path, line)
        if file_ext == '.json':
            try:
                return json.loads(text) or {}
            except json.JSONDecodeError as e:
                raise ConfigError(f"Invalid JSON: {e.msg}", config_path, e.lineno)
        raise ConfigError(f"Unsupported config file format: {file_ext}", config_path)

    def merge_with_args(self, args_dict: Dict[str, Any]) -> Dict[str, Any]:
        """
        Merge configuration settings with command-line arguments.
        Command-line arguments take precedence over config file settings.
        """
        merged = self.settings.copy()
        for key, value in args_dict.items():
            if value is not None:
                merged[key] = value
        return merged

    def create_sample_config(self, file_format: str = 'rb') -> str:
        """
        Create a sample configuration file.

        Args:
            file_format: Format for config file ('rb', 'yml', 'yaml' or 'json')

        Returns:
            Path to created sample config file
        """
        if file_format == 'rb':
            filename = 'config.rb'
            body = SAMPLE_RUBY_CONFIG
        elif file_format in ('yml', 'yaml'):
            filename = f'site.{file_format}'
            body = SAMPLE_YAML_CONFIG
        elif file_format == 'json':
            filename = 'site.json'
            body = json.dumps(SAMPLE_SETTINGS, indent=2) + '\n'
        else:
            raise ValueError(f"Unsupported config file format: {file_format}")

        config_path = os.path.join(self.config_dir, filename)
        try:
            with open(config_path, 'w', encoding='utf-8') as f:
                f.write(body)
        except (IOError, OSError) as e:
            raise ConfigError(f"Error writing configuration file: {e}", config_path)

        return config_path


def build_configuration(settings: Dict[str, Any], project_root: Path,
                        path: Optional[str] = None) -> SiteConfiguration:
    """
    Validate raw settings and freeze them into a SiteConfiguration.

    Raises:
        ConfigError: a required key is absent or a value has the wrong type
    """
    missing = [key for key in REQUIRED_KEYS if settings.get(key) is None]
    if missing:
        raise ConfigError(f"Missing required setting(s): {', '.join(missing)}", path)

    for key in _DIRECTORY_KEYS + _HTTP_KEYS + ('permalink', 'stylesheet'):
        value = settings.get(key)
        if value is not None and not isinstance(value, str):
            raise ConfigError(f"Setting '{key}' must be a string, got {value!r}", path)

    output_style = settings.get('output_style')
    if isinstance(output_style, str):
        # YAML and JSON files may spell the Ruby symbol (":compressed")
        output_style = output_style.lstrip(':')
    if output_style not in OUTPUT_STYLES:
        raise ConfigError(
            f"Setting 'output_style' must be one of {', '.join(OUTPUT_STYLES)}, got {output_style!r}",
            path,
        )

    line_comments = settings.get('line_comments')
    if not isinstance(line_comments, bool):
        raise ConfigError(f"Setting 'line_comments' must be true or false, got {line_comments!r}", path)

    exclude = settings.get('exclude') or []
    if isinstance(exclude, str):
        exclude = [exclude]
    if not all(isinstance(item, str) for item in exclude):
        raise ConfigError("Setting 'exclude' must be a list of paths", path)

    http_path = _normalize_http_path(settings['http_path'], trailing_slash=True)
    source_dir = settings.get('source_dir') or 'source'

    def http_default(key, leaf):
        value = settings.get(key)
        if value is None:
            value = http_path + leaf
        return _normalize_http_path(value, trailing_slash=False)

    extra = {k: v for k, v in settings.items() if k not in _KNOWN_KEYS}

    return SiteConfiguration(
        project_root=Path(project_root),
        http_path=http_path,
        css_dir=settings['css_dir'],
        sass_dir=settings['sass_dir'],
        http_images_path=http_default('http_images_path', 'images'),
        http_fonts_path=http_default('http_fonts_path', 'fonts'),
        images_dir=settings.get('images_dir'),
        fonts_dir=settings.get('fonts_dir'),
        line_comments=line_comments,
        output_style=output_style,
        source_dir=source_dir,
        destination=settings.get('destination') or 'public',
        layouts_dir=settings.get('layouts_dir') or f"{source_dir.rstrip('/')}/_layouts",
        permalink=settings.get('permalink') or SiteSettings.DEFAULT_SETTINGS['permalink'],
        stylesheet=settings.get('stylesheet') or 'screen.css',
        javascripts_dir=settings.get('javascripts_dir'),
        http_javascripts_path=http_default('http_javascripts_path', 'javascripts'),
        exclude=tuple(exclude),
        title=settings.get('title'),
        url=settings.get('url'),
        extra=extra,
    )


def load_configuration(path, overrides: Optional[Dict[str, Any]] = None) -> SiteConfiguration:
    """
    Load, validate and freeze the site configuration.

    Args:
        path: Configuration file; relative directories in it resolve against its folder
        overrides: Values that win over the file (command-line options)

    Raises:
        ConfigError: the file is missing or unparsable, a required key is
            absent, or output_style is not a recognized value
    """
    path = Path(path)
    if not path.is_file():
        raise ConfigError("Configuration file not found", str(path))

    loader = SiteSettings(str(path.parent))
    loader.load_settings(str(path))
    settings = loader.merge_with_args(overrides or {})
    return build_configuration(settings, project_root=path.parent.resolve(), path=str(path))


SAMPLE_SETTINGS = {
    'http_path': '/',
    'http_images_path': '/images',
    'http_fonts_path': '/fonts',
    'css_dir': 'public/stylesheets',
    'sass_dir': 'sass',
    'images_dir': 'source/images',
    'fonts_dir': 'source/fonts',
    'line_comments': False,
    'output_style': 'compressed',
    'title': 'My Documentation Site',
}

SAMPLE_RUBY_CONFIG = """# Require any additional compass plugins here.
project_type = :stand_alone

# Publishing paths
http_path = "/"
http_images_path = "/images"
http_fonts_path = "/fonts"
css_dir = "public/stylesheets"

# Local development paths
sass_dir = "sass"
images_dir = "source/images"
fonts_dir = "source/fonts"

line_comments = false
output_style = :compressed

# Site information
title = "My Documentation Site"
"""

SAMPLE_YAML_CONFIG = """# Publishing paths
http_path: /
http_images_path: /images
http_fonts_path: /fonts
css_dir: public/stylesheets

# Local development paths
sass_dir: sass
images_dir: source/images
fonts_dir: source/fonts

line_comments: false
output_style: compressed  # compressed or expanded

# Site information
title: My Documentation Site
"""
