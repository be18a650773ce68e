"""
Content discovery and front-matter parsing.

A content item is any Markdown file, or any other file whose first line is a
``---`` front-matter fence. Everything else under the content root is a
static file that is copied as is.
"""

import os
import re
import logging
from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

import yaml

from .errors import ContentParseError

logger = logging.getLogger('octosite.content')

MARKDOWN_EXTENSIONS = ('.md', '.markdown', '.mkd', '.mdown')
POSTS_DIR = '_posts'
FRONT_MATTER_FENCE = '---'
FRONT_MATTER_END = ('---', '...')
POST_FILENAME_RE = re.compile(r'^(?P<year>\d{4})-(?P<month>\d{2})-(?P<day>\d{2})-(?P<slug>.+)$')
FLAG_FIELDS = ('comments', 'sharing', 'footer', 'published')
DATE_FORMATS = [
    '%Y-%m-%d %H:%M:%S %z',
    '%Y-%m-%d %H:%M:%S',
    '%Y-%m-%d %H:%M',
    '%Y-%m-%dT%H:%M:%S',
    '%Y-%m-%d',
    '%b %d, %Y',
]


def parse_date(value) -> Optional[datetime]:
    """Parse a front-matter date. Returns None when the value is not a date."""
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    elif isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        for fmt in DATE_FORMATS:
            try:
                # Keep the wall-clock time so naive and offset dates sort together
                return datetime.strptime(value.strip(), fmt).replace(tzinfo=None)
            except ValueError:
                continue
    return None


def _flag(value, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    return default


@dataclass(frozen=True)
class ContentItem:
    """
    One source file with its front-matter. ``path`` is the POSIX path
    relative to the content root and identifies the item.
    """

    path: str
    source_path: Path
    metadata: Dict[str, Any]
    body: str
    body_line: int = 1
    kind: str = 'page'
    markup: str = 'markdown'

    @property
    def is_post(self) -> bool:
        return self.kind == 'post'

    @property
    def layout(self) -> Optional[str]:
        layout = self.metadata.get('layout')
        if layout in (None, '', 'nil', 'null'):
            return None
        return str(layout)

    @property
    def title(self) -> str:
        title = self.metadata.get('title')
        return '' if title is None else str(title)

    @property
    def date(self) -> Optional[datetime]:
        parsed = parse_date(self.metadata.get('date'))
        if parsed is None and self.is_post:
            match = POST_FILENAME_RE.match(self.stem)
            if match:
                parsed = datetime(int(match['year']), int(match['month']), int(match['day']))
        return parsed

    @property
    def comments(self) -> bool:
        return _flag(self.metadata.get('comments'), False)

    @property
    def sharing(self) -> bool:
        return _flag(self.metadata.get('sharing'), True)

    @property
    def footer(self) -> bool:
        return _flag(self.metadata.get('footer'), True)

    @property
    def published(self) -> bool:
        return _flag(self.metadata.get('published'), True)

    @property
    def keywords(self) -> str:
        keywords = self.metadata.get('keywords')
        if keywords is None:
            return ''
        if isinstance(keywords, (list, tuple)):
            return ', '.join(str(keyword) for keyword in keywords)
        return str(keywords)

    @property
    def description(self) -> str:
        description = self.metadata.get('description')
        return '' if description is None else str(description)

    @property
    def categories(self) -> List[str]:
        categories = self.metadata.get('categories') or self.metadata.get('category') or []
        if isinstance(categories, str):
            categories = categories.split()
        return [str(category) for category in categories]

    @property
    def stem(self) -> str:
        return os.path.splitext(os.path.basename(self.path))[0]

    @property
    def slug(self) -> str:
        slug = self.metadata.get('slug')
        if slug:
            return str(slug)
        match = POST_FILENAME_RE.match(self.stem)
        if self.is_post and match:
            return match['slug']
        return self.stem


def has_front_matter(file_path) -> bool:
    """Return True if the file starts with a front-matter fence."""
    try:
        with open(file_path, 'r', encoding='utf-8') as f:
            first_line = f.readline()
    except (UnicodeDecodeError, IOError, OSError):
        return False
    return first_line.lstrip('\ufeff').rstrip() == FRONT_MATTER_FENCE


def is_content_file(file_path) -> bool:
    if str(file_path).lower().endswith(MARKDOWN_EXTENSIONS):
        return True
    return has_front_matter(file_path)


def parse_front_matter(text: str, path: str = '<string>') -> Tuple[Dict[str, Any], str, int]:
    """
    Split a document into its front-matter mapping and body.

    Args:
        text: Full document text
        path: Path used in error messages

    Returns:
        (metadata, body, body_line) where body_line is the 1-based line the body starts on

    Raises:
        ContentParseError: the block is unterminated, is not valid YAML or is not a mapping
    """
    text = text.lstrip('\ufeff')
    lines = text.splitlines(keepends=True)
    if not lines or lines[0].rstrip() != FRONT_MATTER_FENCE:
        return {}, text, 1

    for end in range(1, len(lines)):
        if lines[end].rstrip() in FRONT_MATTER_END:
            break
    else:
        raise ContentParseError("Front-matter is not closed with '---'", path, 1)

    try:
        metadata = yaml.safe_load(''.join(lines[1:end]))
    except yaml.YAMLError as e:
        mark = getattr(e, 'problem_mark', None)
        # The YAML block starts on line 2 of the file
        line = mark.line + 2 if mark is not None else 1
        problem = getattr(e, 'problem', None) or str(e)
        raise ContentParseError(f"Invalid YAML front-matter: {problem}", path, line)

    if metadata is None:
        metadata = {}
    if not isinstance(metadata, dict):
        raise ContentParseError("Front-matter must be a mapping of fields", path, 2)

    if 'date' in metadata and metadata['date'] is not None and parse_date(metadata['date']) is None:
        line = _field_line(lines[1:end], 'date')
        raise ContentParseError(f"Unrecognized date: {metadata['date']!r}", path, line)

    for key in FLAG_FIELDS:
        value = metadata.get(key)
        if value is not None and not isinstance(value, bool):
            line = _field_line(lines[1:end], key)
            raise ContentParseError(f"Field '{key}' must be true or false, got {value!r}", path, line)

    return metadata, ''.join(lines[end + 1:]), end + 2


def _field_line(block_lines: Sequence[str], key: str) -> int:
    for offset, line in enumerate(block_lines):
        if line.startswith(f'{key}:'):
            return offset + 2
    return 2


def read_content_item(source_path, root_dir) -> ContentItem:
    """
    Read one content file.

    Raises:
        ContentParseError: the file cannot be decoded, its front-matter is
            malformed, or it is a post without a ``YYYY-MM-DD-`` filename
    """
    source_path = Path(source_path)
    rel_path = source_path.relative_to(root_dir).as_posix()
    try:
        with open(source_path, 'r', encoding='utf-8') as f:
            text = f.read()
    except UnicodeDecodeError as e:
        raise ContentParseError(f"File is not valid UTF-8: {e.reason}", rel_path)
    except (IOError, OSError) as e:
        raise ContentParseError(f"Failed to read file: {e}", rel_path)

    metadata, body, body_line = parse_front_matter(text, rel_path)

    kind = 'post' if POSTS_DIR in rel_path.split('/')[:-1] else 'page'
    if kind == 'post' and not POST_FILENAME_RE.match(source_path.stem):
        raise ContentParseError("Post filename must start with YYYY-MM-DD-", rel_path)

    markup = 'markdown' if source_path.suffix.lower() in MARKDOWN_EXTENSIONS else 'html'
    return ContentItem(
        path=rel_path,
        source_path=source_path,
        metadata=metadata,
        body=body,
        body_line=body_line,
        kind=kind,
        markup=markup,
    )


def _is_skipped(name: str) -> bool:
    return name.startswith('.') or (name.startswith('_') and name != POSTS_DIR)


def walk_source(root_dir, exclude: Sequence[str] = ()) -> Iterator[Tuple[str, Path]]:
    """
    Yield (relative_path, absolute_path) for every file under root_dir in sorted
    order, skipping hidden and underscore entries (except ``_posts``) and any
    path listed in ``exclude``.
    """
    root_dir = Path(root_dir)
    excluded = {item.strip('/') for item in exclude}
    for current, dirs, files in os.walk(root_dir):
        rel_dir = Path(current).relative_to(root_dir).as_posix()
        prefix = '' if rel_dir == '.' else rel_dir + '/'
        dirs[:] = sorted(d for d in dirs if not _is_skipped(d) and prefix + d not in excluded)
        for name in sorted(files):
            rel_path = prefix + name
            if _is_skipped(name) or rel_path in excluded:
                continue
            yield rel_path, Path(current) / name


def load_content(root_dir, exclude: Sequence[str] = (),
                 errors: Optional[List[ContentParseError]] = None) -> List[ContentItem]:
    """
    Load every content item under root_dir, ordered by path.

    Args:
        root_dir: Content root
        exclude: Relative paths to leave out of the walk
        errors: When given, parse errors are appended here and the walk goes on;
            otherwise the first error is raised

    Returns:
        Published content items sorted by relative path
    """
    root_dir = Path(root_dir)
    if not root_dir.is_dir():
        raise FileNotFoundError(f"Content directory not found: {root_dir}")

    items = []
    for rel_path, file_path in walk_source(root_dir, exclude):
        if not is_content_file(file_path):
            continue
        try:
            item = read_content_item(file_path, root_dir)
        except ContentParseError as e:
            if errors is None:
                raise
            logger.error(f"Content parse error: {e}")
            errors.append(e)
            continue
        if not item.published:
            logger.debug(f"Skipping unpublished item: {rel_path}")
            continue
        items.append(item)
    return sorted(items, key=lambda item: item.path)


def collect_static_files(root_dir, exclude: Sequence[str] = ()) -> List[str]:
    """Relative paths of files under root_dir that are copied without processing."""
    return sorted(rel_path for rel_path, file_path in walk_source(root_dir, exclude)
                  if not is_content_file(file_path))
