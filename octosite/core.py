import os
import shutil
import logging
import time
import traceback
from collections import defaultdict
from concurrent.futures import ProcessPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import jinja2
import mistune
from jinja2 import Environment, FileSystemLoader, TemplateNotFound, TemplateSyntaxError

from .content import ContentItem, collect_static_files, load_content
from .errors import (
    ConfigError,
    ContentConflictError,
    OutputError,
    SiteError,
    TemplateError,
)
from .links import LinkRewriter
from .output import copy_file, copy_tree, minify_javascripts, write_output
from .settings import SiteConfiguration
from .stylesheets import StylesheetCompiler

logger = logging.getLogger('octosite')

# Below this many items the process pool costs more than it saves
PARALLEL_THRESHOLD = 12
EXCERPT_SEPARATOR = '<!-- more -->'
INCLUDES_DIR = '_includes'
DISPLAY_DATE_FORMAT = '%B %d, %Y'
# Filename Jinja2 gives templates built with from_string
STRING_TEMPLATE_NAME = '<template>'

# Per-process renderer used by pool workers
_worker_renderer = None


def initializer(config, site_context):
    """Create the ItemRenderer for a worker process."""
    global _worker_renderer
    _worker_renderer = ItemRenderer(config, site_context)


def process_item(item, output_path, url):
    """Render one item inside a worker process."""
    return _worker_renderer.process(item, output_path, url)


def format_date(value, fmt=DISPLAY_DATE_FORMAT):
    """Format a date for display. Missing dates format as an empty string."""
    if not isinstance(value, datetime):
        return ''
    return value.strftime(fmt)


def xmlschema(value):
    if not isinstance(value, datetime):
        return ''
    return value.isoformat()


def template_line(error, filename):
    """Line of the innermost frame of template filename in the error's traceback, or None."""
    lineno = None
    for frame in traceback.extract_tb(error.__traceback__):
        if frame.filename == filename:
            lineno = frame.lineno
    return lineno


def describe_error(error):
    if isinstance(error, jinja2.TemplateError):
        return str(error)
    return f"{type(error).__name__}: {error}"


def create_markdown_parser():
    """Create a Mistune markdown parser with a custom renderer."""
    class CustomRenderer(mistune.HTMLRenderer):
        def __init__(self):
            super().__init__(escape=False)

        def block_code(self, code, info=None):
            escaped_code = mistune.escape(code)
            language = info.split(None, 1)[0] if info and info.strip() else None
            if language:
                return '<pre><code class="language-{}">{}</code></pre>\n'.format(
                    mistune.escape(language), escaped_code)
            return '<pre><code>{}</code></pre>\n'.format(escaped_code)

    return mistune.create_markdown(
        renderer=CustomRenderer(),
        plugins=['table', 'task_lists', 'strikethrough']
    )


def output_path_for(item: ContentItem, config: SiteConfiguration) -> str:
    """
    Path of the generated file relative to the site root.

    Posts follow the permalink pattern; pages mirror their source path with
    Markdown suffixes replaced by ``.html``. A ``permalink`` in front-matter
    wins over both.
    """
    permalink = item.metadata.get('permalink')
    if not permalink and item.is_post:
        date = item.date
        permalink = (config.permalink
                     .replace(':year', f'{date.year:04d}')
                     .replace(':month', f'{date.month:02d}')
                     .replace(':day', f'{date.day:02d}')
                     .replace(':categories', '/'.join(item.categories))
                     .replace(':title', item.slug))
    if permalink:
        permalink = '/'.join(part for part in str(permalink).split('/') if part not in ('', '.', '..'))
        if not os.path.splitext(permalink)[1]:
            permalink = f'{permalink}/index.html' if permalink else 'index.html'
        return permalink

    stem, suffix = os.path.splitext(item.path)
    if item.markup == 'markdown':
        return stem + '.html'
    return stem + suffix


class ItemRenderer:
    """Render single content items through their layouts."""

    def __init__(self, config: SiteConfiguration, site_context: Dict[str, Any]):
        self.config = config
        self.site_context = site_context
        self.site_root = config.site_root
        self.links = LinkRewriter(config.http_path)
        self.logger = logging.getLogger('octosite.render')

        # Layouts first, then partials from _includes
        self.env = Environment(
            loader=FileSystemLoader([str(config.layouts_path), str(config.source_path / INCLUDES_DIR)]),
            keep_trailing_newline=True,
        )
        self.env.filters['date_format'] = format_date
        self.env.filters['xmlschema'] = xmlschema
        self.markdown_parser = create_markdown_parser()

    def markdown_filter(self, text):
        """Convert markdown text to HTML."""
        return self.markdown_parser(text)

    def page_context(self, item: ContentItem, url: str) -> Dict[str, Any]:
        page = dict(item.metadata)
        page.update({
            'url': url,
            'path': item.path,
            'title': item.title,
            'date': item.date,
            'slug': item.slug,
            'categories': item.categories,
            'comments': item.comments,
            'sharing': item.sharing,
            'footer': item.footer,
            'keywords': item.keywords,
            'description': item.description,
        })
        return page

    def template_context(self, item: ContentItem, url: str, content: Optional[str]) -> Dict[str, Any]:
        return {
            'site': self.site_context,
            'page': self.page_context(item, url),
            'metadata': item.metadata,
            'content': content,
            'title': item.title,
            'date': format_date(item.date),
            'keywords': item.keywords,
            'description': item.description,
            'comments': item.comments,
            'sharing': item.sharing,
            'footer': item.footer,
            'layout': item.layout,
            'root_url': self.config.root_url,
        }

    def render_body(self, item: ContentItem, url: str) -> str:
        """Markdown bodies go through mistune; HTML and XML bodies are Jinja2 templates."""
        if item.markup == 'markdown':
            return self.markdown_filter(item.body)
        try:
            template = self.env.from_string(item.body)
            return template.render(**self.template_context(item, url, None))
        except TemplateSyntaxError as e:
            line = item.body_line + e.lineno - 1 if e.lineno else item.body_line
            raise TemplateError(f"Template syntax error: {e.message}", item.path, line)
        except Exception as e:
            lineno = template_line(e, STRING_TEMPLATE_NAME)
            line = item.body_line + lineno - 1 if lineno else item.body_line
            raise TemplateError(f"Template error: {describe_error(e)}", item.path, line)

    def apply_layout(self, item: ContentItem, url: str, content: str) -> str:
        layout = item.layout
        if layout is None:
            return content

        template_name = layout if os.path.splitext(layout)[1] else f'{layout}.html'
        try:
            template = self.env.get_template(template_name)
        except TemplateNotFound:
            raise TemplateError(f"Layout '{layout}' not found", item.path, None, layout)
        except TemplateSyntaxError as e:
            raise TemplateError(
                f"Syntax error in layout '{layout}' ({e.filename}:{e.lineno}): {e.message}",
                item.path, None, layout,
            )

        try:
            return template.render(**self.template_context(item, url, content))
        except Exception as e:
            lineno = template_line(e, template.filename)
            where = f"{template_name}:{lineno}" if lineno else template_name
            raise TemplateError(
                f"Error rendering layout '{layout}' ({where}): {describe_error(e)}",
                item.path, None, layout,
            )

    def render(self, item: ContentItem, url: str) -> str:
        """Render an item to its final document text, links rewritten."""
        content = self.render_body(item, url)
        return self.links.rewrite_html(self.apply_layout(item, url, content))

    def process(self, item: ContentItem, output_path: str, url: str) -> Dict[str, Any]:
        """
        Render and write a single item.

        Returns:
            Dictionary with the written ``output`` path, or the ``error`` that stopped it
        """
        try:
            html = self.render(item, url)
        except SiteError as e:
            self.logger.error(f"Failed to render {item.path}: {e}")
            return {'path': item.path, 'output': None, 'error': e}
        except Exception as e:
            error = TemplateError(f"Failed to render: {describe_error(e)}", item.path, item.body_line)
            self.logger.error(f"Failed to render {item.path}: {error}")
            return {'path': item.path, 'output': None, 'error': error}

        output_file = self.site_root / output_path
        try:
            write_output(output_file, html)
        except (IOError, OSError) as e:
            error = OutputError(f"Failed to write {output_file}: {e}", item.path)
            self.logger.error(str(error))
            return {'path': item.path, 'output': None, 'error': error}

        self.logger.debug(f"Generated: {output_file}")
        return {'path': item.path, 'output': str(output_file), 'error': None}


@dataclass
class BuildOutput:
    """What a build wrote and what went wrong."""

    site_root: Path
    written: List[Path] = field(default_factory=list)
    errors: List[SiteError] = field(default_factory=list)
    posts_generated: int = 0
    pages_generated: int = 0
    assets_copied: int = 0
    stylesheet: Optional[Path] = None

    @property
    def ok(self) -> bool:
        return not self.errors


class InfoFilter(logging.Filter):
    """Filter to allow only selected INFO messages to be shown in the console."""

    allowed_messages = [
        "Site build completed in",
        "Total posts generated:",
        "Total pages generated:",
        "Total assets copied:",
        "Compiled stylesheet",
        "Build finished with",
    ]

    def filter(self, record):
        if record.levelno >= logging.WARNING:
            return True
        return any(msg in record.getMessage() for msg in self.allowed_messages)


def setup_logging(log_dir=None, verbose=False):
    """Set up console logging and, when log_dir is given, a timestamped log file."""
    root_logger = logging.getLogger('octosite')
    root_logger.setLevel(logging.DEBUG if verbose else logging.INFO)

    if root_logger.handlers:
        return root_logger

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    if not verbose:
        console_handler.addFilter(InfoFilter())
    console_handler.setFormatter(logging.Formatter('%(message)s'))
    root_logger.addHandler(console_handler)

    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        log_filename = datetime.now().strftime('octosite_%Y-%m-%d_%H-%M-%S.log')
        file_handler = logging.FileHandler(os.path.join(log_dir, log_filename), encoding='utf-8')
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
        root_logger.addHandler(file_handler)
        root_logger.setLevel(logging.DEBUG)

    return root_logger


class SiteBuilder:
    """Turn content items and a site configuration into the published tree."""

    def __init__(self, config: SiteConfiguration, clean: bool = False, workers: Optional[int] = None):
        self.config = config
        self.clean = clean
        self.workers = workers
        self.logger = logging.getLogger('octosite.build')
        self.links = LinkRewriter(config.http_path)

    def content_excludes(self) -> List[str]:
        """Paths under the content root that are handled by their own build step."""
        source = self.config.source_path
        excludes = list(self.config.exclude)
        for directory in (self.config.images_dir, self.config.fonts_dir, self.config.javascripts_dir,
                          self.config.sass_dir, self.config.css_dir, self.config.destination):
            path = self.config.resolve(directory)
            if path is None:
                continue
            try:
                excludes.append(path.relative_to(source).as_posix())
            except ValueError:
                continue
        return excludes

    def clean_output(self):
        """Remove the generated site root and stylesheet directory."""
        project_root = self.config.project_root.resolve()
        source = self.config.source_path.resolve()
        for target in (self.config.site_root, self.config.css_path):
            target = target.resolve()
            if target == project_root or target in project_root.parents or target in (source, *source.parents):
                raise ConfigError(f"Refusing to clean {target}: it contains the project or its sources")
            if target.exists():
                shutil.rmtree(target)
                self.logger.info(f"Removed {target}")

    def plan(self, items: Sequence[ContentItem], errors: List[SiteError]) -> List[Dict[str, Any]]:
        """
        Work out where every item is written. Items that collide on an output
        path are reported and left out.
        """
        by_output = defaultdict(list)
        for item in items:
            by_output[output_path_for(item, self.config)].append(item)

        planned = []
        for item in items:
            output_path = output_path_for(item, self.config)
            colliding = by_output[output_path]
            if len(colliding) > 1:
                others = ', '.join(other.path for other in colliding if other is not item)
                error = ContentConflictError(
                    f"Output {output_path} is also produced by {others}; resolve the duplicate",
                    item.path,
                )
                self.logger.error(str(error))
                errors.append(error)
                continue
            planned.append({
                'item': item,
                'output': output_path,
                'url': self.links.url_for(output_path),
            })
        return planned

    def site_context(self, planned: Sequence[Dict[str, Any]]) -> Dict[str, Any]:
        """The ``site`` variable shared by every template."""
        markdown_parser = create_markdown_parser()
        posts = []
        pages = []
        for entry in planned:
            item = entry['item']
            summary = {
                'title': item.title,
                'url': entry['url'],
                'path': item.path,
                'date': item.date,
                'categories': item.categories,
                'description': item.description,
                'keywords': item.keywords,
            }
            if item.is_post:
                excerpt = None
                if item.markup == 'markdown' and EXCERPT_SEPARATOR in item.body:
                    excerpt = markdown_parser(item.body.split(EXCERPT_SEPARATOR, 1)[0])
                summary['excerpt'] = excerpt
                posts.append(summary)
            else:
                pages.append(summary)

        # Newest first; path breaks ties so the order never depends on the walk
        posts.sort(key=lambda post: post['path'], reverse=True)
        posts.sort(key=lambda post: post['date'] or datetime.min, reverse=True)

        context = self.config.as_context()
        context.update({'posts': posts, 'pages': pages})
        return context

    def _render_items(self, planned, site_context) -> List[Dict[str, Any]]:
        workers = self.workers
        if workers is None:
            workers = os.cpu_count() if len(planned) >= PARALLEL_THRESHOLD else 1

        if workers <= 1:
            self.logger.info(f"Using single-threaded processing for {len(planned)} files")
            renderer = ItemRenderer(self.config, site_context)
            return [renderer.process(entry['item'], entry['output'], entry['url']) for entry in planned]

        self.logger.info(f"Using multiprocessing for {len(planned)} files with {workers} workers")
        with ProcessPoolExecutor(
            max_workers=workers,
            initializer=initializer,
            initargs=(self.config, site_context)
        ) as executor:
            futures = [executor.submit(process_item, entry['item'], entry['output'], entry['url'])
                       for entry in planned]
            # Collected in submission order so results match the serial path
            return [future.result() for future in futures]

    def compile_stylesheet(self, output: BuildOutput):
        compiler = StylesheetCompiler(self.config)
        css, errors = compiler.compile()
        output.errors.extend(errors)
        if not css and not errors:
            self.logger.warning(f"No style sources found in {self.config.sass_path}")
            return

        stylesheet_path = self.config.css_path / self.config.stylesheet
        try:
            write_output(stylesheet_path, css)
        except (IOError, OSError) as e:
            error = OutputError(f"Failed to write stylesheet: {e}", str(stylesheet_path))
            self.logger.error(str(error))
            output.errors.append(error)
            return
        output.stylesheet = stylesheet_path
        output.written.append(stylesheet_path)
        self.logger.info(f"Compiled stylesheet {stylesheet_path} ({self.config.output_style})")

    def copy_asset_directories(self, output: BuildOutput):
        """Copy images, fonts and javascripts to their published locations."""
        copies = [
            ('images', self.config.images_dir, self.config.images_output_path),
            ('fonts', self.config.fonts_dir, self.config.fonts_output_path),
            ('javascripts', self.config.javascripts_dir, self.config.javascripts_output_path),
        ]
        for label, directory, destination in copies:
            source = self.config.resolve(directory)
            if source is None:
                continue
            if not source.is_dir():
                self.logger.warning(f"Configured {label} directory not found: {source}")
                continue
            try:
                copied = copy_tree(source, destination)
                if label == 'javascripts' and self.config.compressed:
                    minify_javascripts(destination)
            except (IOError, OSError) as e:
                error = OutputError(f"Failed to copy {label}: {e}", directory)
                self.logger.error(str(error))
                output.errors.append(error)
                continue
            output.written.extend(copied)
            output.assets_copied += len(copied)

    def copy_static_files(self, output: BuildOutput):
        """Copy files under the content root that are not content items."""
        source = self.config.source_path
        for rel_path in collect_static_files(source, self.content_excludes()):
            try:
                output.written.append(copy_file(source / rel_path, self.config.site_root / rel_path))
                output.assets_copied += 1
            except (IOError, OSError) as e:
                error = OutputError(f"Failed to copy static file: {e}", rel_path)
                self.logger.error(str(error))
                output.errors.append(error)

    def render(self, items: Sequence[ContentItem], errors: Optional[List[SiteError]] = None) -> BuildOutput:
        """
        Render content items, compile the stylesheet and copy asset directories.

        Args:
            items: Content items to publish
            errors: Errors already collected by this build (content parse errors)
        """
        output = BuildOutput(site_root=self.config.site_root, errors=list(errors or []))

        planned = self.plan(items, output.errors)
        site_context = self.site_context(planned)
        for result, entry in zip(self._render_items(planned, site_context), planned):
            if result['error'] is not None:
                output.errors.append(result['error'])
                continue
            output.written.append(Path(result['output']))
            if entry['item'].is_post:
                output.posts_generated += 1
            else:
                output.pages_generated += 1

        self.compile_stylesheet(output)
        self.copy_asset_directories(output)
        output.written.sort()
        return output

    def build(self) -> BuildOutput:
        """Main build process: load content, render it, copy static files and report."""
        start_time = time.time()
        source = self.config.source_path
        if not source.is_dir():
            raise ConfigError(f"Content directory not found: {source}")
        if not self.config.layouts_path.is_dir():
            self.logger.warning(f"Layouts directory not found: {self.config.layouts_path}")

        if self.clean:
            self.clean_output()

        self.logger.info("Starting site build...")
        errors = []
        items = load_content(source, exclude=self.content_excludes(), errors=errors)
        output = self.render(items, errors)
        self.copy_static_files(output)
        output.written.sort()

        self.logger.info(f"Site build completed in {time.time() - start_time:.6f} seconds.")
        self.logger.info(f"Total posts generated: {output.posts_generated}")
        self.logger.info(f"Total pages generated: {output.pages_generated}")
        self.logger.info(f"Total assets copied: {output.assets_copied}")
        self.report(output)
        return output

    def report(self, output: BuildOutput):
        if not output.errors:
            return
        self.logger.error(f"Build finished with {len(output.errors)} error(s):")
        for error in output.errors:
            self.logger.error(f"  {type(error).__name__}: {error}")


def render(items: Sequence[ContentItem], config: SiteConfiguration, workers: Optional[int] = None) -> BuildOutput:
    """Render content items with a configuration into the output tree."""
    return SiteBuilder(config, workers=workers).render(items)


def build(config: SiteConfiguration, clean: bool = False, workers: Optional[int] = None) -> BuildOutput:
    """Load the content root named by the configuration and build the whole site."""
    return SiteBuilder(config, clean=clean, workers=workers).build()
