"""
Stylesheet compilation.

Every non-partial source in ``sass_dir`` is compiled with libsass and the
results are joined, in path order, into the single stylesheet written under
``css_dir``. Compressed output is minified with csscompressor; expanded output
keeps one rule per block and, when ``line_comments`` is off, carries no
comments at all.
"""

import re
import logging
from pathlib import Path
from typing import Callable, Dict, List, Tuple

import csscompressor
import sass

from .errors import StylesheetError
from .settings import SiteConfiguration

logger = logging.getLogger('octosite.stylesheets')

STYLE_EXTENSIONS = ('.scss', '.sass', '.css')
COMMENT_RE = re.compile(r'/\*.*?\*/', re.DOTALL)
TRAILING_SPACE_RE = re.compile(r'[ \t]+$', re.MULTILINE)
BLANK_LINES_RE = re.compile(r'\n{2,}')


def find_style_sources(sass_dir) -> List[Path]:
    """Non-partial style sources under sass_dir, sorted by relative path."""
    sass_dir = Path(sass_dir)
    if not sass_dir.is_dir():
        return []
    sources = [
        path for path in sass_dir.rglob('*')
        if path.is_file()
        and path.suffix.lower() in STYLE_EXTENSIONS
        and not any(part.startswith(('_', '.')) for part in path.relative_to(sass_dir).parts)
    ]
    return sorted(sources, key=lambda path: path.relative_to(sass_dir).as_posix())


def strip_comments(css: str) -> str:
    """Remove every ``/* ... */`` comment and the blank lines it leaves."""
    css = COMMENT_RE.sub('', css)
    css = TRAILING_SPACE_RE.sub('', css)
    return BLANK_LINES_RE.sub('\n', css).strip('\n')


def asset_url(http_prefix: str, path: str) -> str:
    """CSS ``url()`` for an asset served under http_prefix."""
    path = path.strip().strip('"\'')
    if path.startswith(('http://', 'https://', '//', 'data:')):
        return f'url("{path}")'
    return 'url("{}/{}")'.format(http_prefix.rstrip('/'), path.lstrip('/'))


class StylesheetCompiler:
    """Compile the style sources of a site according to its configuration."""

    def __init__(self, config: SiteConfiguration):
        self.config = config

    def custom_functions(self) -> Dict[str, Callable]:
        """Compass-style helpers that resolve asset paths against the http settings."""
        images = self.config.http_images_path
        fonts = self.config.http_fonts_path

        def image_url(path):
            return asset_url(images, str(path))

        def font_url(path):
            return asset_url(fonts, str(path))

        return {'image-url': image_url, 'font-url': font_url}

    def compile_source(self, source: Path) -> str:
        """
        Compile one source file to expanded CSS.

        Raises:
            StylesheetError: libsass rejected the source
        """
        rel_path = self._display_path(source)
        options = {
            'output_style': 'expanded',
            'source_comments': self.config.line_comments and not self.config.compressed,
            'include_paths': [str(self.config.sass_path)],
            'custom_functions': self.custom_functions(),
        }
        try:
            if source.suffix.lower() == '.css':
                with open(source, 'r', encoding='utf-8') as f:
                    return sass.compile(string=f.read(), **options)
            return sass.compile(filename=str(source), **options)
        except sass.CompileError as e:
            raise StylesheetError(f"Failed to compile: {e}", rel_path)
        except (IOError, OSError) as e:
            raise StylesheetError(f"Failed to read style source: {e}", rel_path)

    def compile(self) -> Tuple[str, List[StylesheetError]]:
        """
        Compile all sources into one stylesheet.

        Returns:
            (css, errors): sources that fail are left out and reported
        """
        chunks = []
        errors = []
        for source in find_style_sources(self.config.sass_path):
            try:
                chunks.append(self.compile_source(source).strip('\n'))
            except StylesheetError as e:
                logger.error(f"Stylesheet error: {e}")
                errors.append(e)
        return self.finish('\n\n'.join(chunk for chunk in chunks if chunk)), errors

    def finish(self, css: str) -> str:
        """Apply the configured output style to compiled CSS."""
        if self.config.compressed:
            return csscompressor.compress(css)
        if not self.config.line_comments:
            css = strip_comments(css)
        css = css.strip('\n')
        return css + '\n' if css else ''

    def _display_path(self, source: Path) -> str:
        try:
            return source.relative_to(self.config.project_root).as_posix()
        except ValueError:
            return str(source)
