#!/usr/bin/env python3
"""
Command-line interface for octosite.
"""

import os
import sys
import argparse
from typing import List, Optional

from . import __version__
from .core import SiteBuilder, setup_logging
from .errors import ConfigError
from .settings import SiteSettings, load_configuration

EXIT_OK = 0
EXIT_BUILD_ERRORS = 1
EXIT_CONFIG_ERROR = 2

SAMPLE_LAYOUT = """<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="utf-8">
    <title>{% if title %}{{ title }} - {% endif %}{{ site.title }}</title>
    <meta name="keywords" content="{{ keywords }}">
    <meta name="description" content="{{ description }}">
    <link href="{{ site.stylesheet_url }}" rel="stylesheet" type="text/css">
</head>
<body>
    <header><a href="index.html">{{ site.title }}</a></header>
    {% block main %}{{ content }}{% endblock %}
    {% if footer %}<footer>Built with octosite</footer>{% endif %}
</body>
</html>
"""

SAMPLE_PAGE_LAYOUT = """{% extends "default.html" %}
{% block main %}
<article>
    {% if title %}<h1>{{ title }}</h1>{% endif %}
    {{ content }}
</article>
{% endblock %}
"""

SAMPLE_POST_LAYOUT = """{% extends "default.html" %}
{% block main %}
<article>
    <h1>{{ title }}</h1>
    <time datetime="{{ page.date | xmlschema }}">{{ date }}</time>
    {{ content }}
    {% if comments %}<section id="comments"></section>{% endif %}
</article>
{% endblock %}
"""

SAMPLE_INDEX = """---
layout: default
title: Blog
---
<ul>
{% for post in site.posts %}
    <li><a href="{{ post.url }}">{{ post.title }}</a> {{ post.date | date_format }}</li>
{% endfor %}
</ul>
"""

SAMPLE_POST = """---
layout: post
title: "Welcome to your documentation site"
date: 2013-01-05 20:32
comments: true
keywords: "documentation, blog"
description: "First post of the site."
---

This post lives in `source/_posts`. Its address follows the `permalink` setting.

<!-- more -->

Images placed in `source/images` are published at the configured
`http_images_path`, for example ![logo](images/logo.png).
"""

SAMPLE_DOC = """---
layout: page
title: "Documentation"
sharing: false
footer: true
---

Pages mirror their path under `source/`, so this one is published as
`docs/index.html`.
"""

SAMPLE_STYLESHEET = """$text-color: #333;

body {
  color: $text-color;
  font-family: sans-serif;
}

article h1 {
  margin-bottom: 0.5em;
}
"""


def _write_starter_file(rel_path: str, body: str) -> None:
    path = os.path.join(os.getcwd(), rel_path)
    if os.path.exists(path):
        print(f"File already exists: {rel_path}")
        return
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, 'w', encoding='utf-8') as f:
        f.write(body)
    print(f"Created: {rel_path}")


def create_starter_structure() -> None:
    """Create a starter tree with layouts, sass, a sample post and a sample page."""
    for directory in ('source/images', 'source/fonts'):
        os.makedirs(os.path.join(os.getcwd(), directory), exist_ok=True)

    starter_files = [
        ('source/_layouts/default.html', SAMPLE_LAYOUT),
        ('source/_layouts/page.html', SAMPLE_PAGE_LAYOUT),
        ('source/_layouts/post.html', SAMPLE_POST_LAYOUT),
        ('source/index.html', SAMPLE_INDEX),
        ('source/_posts/2013-01-05-welcome.markdown', SAMPLE_POST),
        ('source/docs/index.markdown', SAMPLE_DOC),
        ('sass/screen.scss', SAMPLE_STYLESHEET),
    ]
    for rel_path, body in starter_files:
        _write_starter_file(rel_path, body)

    print("\nStarter structure created successfully!")
    print("\nNext steps:")
    print("1. Edit the configuration file")
    print("2. Customize layouts in 'source/_layouts/'")
    print("3. Add posts to 'source/_posts/' and pages anywhere under 'source/'")
    print("4. Run 'octosite' to build your site")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='octosite', description='octosite - Static Site Builder')
    parser.add_argument('--config', type=str,
                        help='Configuration file (default: config.rb, site.yml, site.yaml or site.json)')
    parser.add_argument('--source', type=str,
                        help='Content root directory (overrides source_dir)')
    parser.add_argument('--destination', type=str,
                        help='Directory the site is published into (overrides destination)')
    parser.add_argument('--output-style', type=str, choices=['compressed', 'expanded'],
                        help='Stylesheet output style')
    parser.add_argument('--clean', action='store_true',
                        help='Remove the generated site and stylesheets before building')
    parser.add_argument('--workers', type=int,
                        help='Processes used to render pages (default: automatic)')
    parser.add_argument('--log-dir', type=str, default='logs',
                        help="Directory for build log files ('' to disable)")
    parser.add_argument('--verbose', action='store_true',
                        help='Show every log message on the console')
    parser.add_argument('--init', type=str, choices=['rb', 'yml', 'yaml', 'json'],
                        help='Create a sample configuration file and starter project')
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point. Returns the process exit code."""
    args = build_parser().parse_args(argv)

    # Handle init command
    if args.init:
        settings_loader = SiteSettings()
        config_path = settings_loader.create_sample_config(args.init)
        print(f"Created sample configuration file: {config_path}")

        print("\nCreating starter project structure...")
        create_starter_structure()
        return EXIT_OK

    logger = setup_logging(args.log_dir or None, args.verbose)

    overrides = {
        'source_dir': os.path.abspath(args.source) if args.source else None,
        'destination': os.path.abspath(args.destination) if args.destination else None,
        'output_style': args.output_style,
    }

    try:
        config_path = args.config or SiteSettings().find_config_file()
        if not config_path:
            raise ConfigError(
                f"No configuration file found (looked for {', '.join(SiteSettings.CONFIG_FILES)})"
            )
        config = load_configuration(config_path, overrides)
        output = SiteBuilder(config, clean=args.clean, workers=args.workers).build()
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        return EXIT_CONFIG_ERROR

    return EXIT_OK if output.ok else EXIT_BUILD_ERRORS


def run() -> None:
    sys.exit(main())


if __name__ == '__main__':
    run()
