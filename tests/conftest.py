"""Test configuration and fixtures for octosite tests."""

import pytest
import tempfile
import shutil
from pathlib import Path

from octosite.settings import build_configuration, load_configuration

CONFIG_RB = """# Require any additional compass plugins here.
project_type = :stand_alone

# Publishing paths
http_path = "/go-aop-php/"
http_images_path = "/go-aop-php/images"
http_fonts_path = "/go-aop-php/fonts"
css_dir = "public/go-aop-php/stylesheets"

# Local development paths
sass_dir = "sass"
images_dir = "source/images"
fonts_dir = "source/fonts"

line_comments = false
output_style = :compressed
"""

DEFAULT_LAYOUT = """<!DOCTYPE html>
<html>
<head>
<title>{{ title }}</title>
<meta name="keywords" content="{{ keywords }}">
<link href="stylesheets/screen.css" rel="stylesheet">
</head>
<body>
{% block main %}{{ content }}{% endblock %}
{% if footer %}<footer>site footer</footer>{% endif %}
</body>
</html>
"""

POST_LAYOUT = """{% extends "default.html" %}
{% block main %}
<article>
<h1>{{ title }}</h1>
<time>{{ date }}</time>
{{ content }}
{% if comments %}<section id="comments"></section>{% endif %}
</article>
{% endblock %}
"""

PAGE_LAYOUT = """{% extends "default.html" %}
{% block main %}
<div class="page"><h1>{{ title }}</h1>{{ content }}</div>
{% endblock %}
"""

HELLO_POST = """---
layout: post
title: Hello World
date: 2013-01-05 20:32
comments: true
keywords: aop, php
---
Intro paragraph.

<!-- more -->

![Foo](images/foo.png)

Read the [docs](/docs/) or the [manual](docs/manual.html).
"""

SECOND_POST = """---
layout: post
title: Privileged Advices
date: 2013-03-10
---
Second post body.
"""

DOCS_INDEX = """---
layout: page
title: Documentation
sharing: false
footer: false
---
Start with the [first post](blog/2013/01/05/hello-world/).
"""

SITE_INDEX = """---
layout: default
title: Home
---
<ul>
{% for post in site.posts %}<li><a href="{{ post.url }}">{{ post.title }}</a></li>
{% endfor %}</ul>
"""

SCREEN_SCSS = """@import "base";
$accent: #336699;

/* Main layout */
body {
  color: $accent;
}
"""

BASE_SCSS = """html {
  margin: 0;
}
"""

PNG_BYTES = b'\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR\x00\x00\x00\x01\x00\x00\x00\x01\x08\x02\x00\x00\x00\x90wS\xde'


def write_file(root, rel_path, data):
    """Write text or bytes below root, creating directories."""
    path = Path(root) / rel_path
    path.parent.mkdir(parents=True, exist_ok=True)
    if isinstance(data, bytes):
        path.write_bytes(data)
    else:
        path.write_text(data, encoding='utf-8')
    return path


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    temp_dir = tempfile.mkdtemp()
    yield temp_dir
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def make_file():
    """Helper that writes a file below a root directory."""
    return write_file


@pytest.fixture
def project_dir(temp_dir):
    """Create a complete site project: config.rb, content, layouts, sass and assets."""
    root = Path(temp_dir) / 'site'
    files = {
        'config.rb': CONFIG_RB,
        'source/_layouts/default.html': DEFAULT_LAYOUT,
        'source/_layouts/post.html': POST_LAYOUT,
        'source/_layouts/page.html': PAGE_LAYOUT,
        'source/_posts/2013-01-05-hello-world.markdown': HELLO_POST,
        'source/_posts/2013-03-10-privileged-advices.markdown': SECOND_POST,
        'source/docs/index.markdown': DOCS_INDEX,
        'source/index.html': SITE_INDEX,
        'source/images/foo.png': PNG_BYTES,
        'source/fonts/icons.woff': b'wOFF\x00\x01',
        'source/downloads/code/TestPrivileged.php': "<?php\nclass TestPrivileged {}\n",
        'sass/screen.scss': SCREEN_SCSS,
        'sass/_base.scss': BASE_SCSS,
    }
    for rel_path, data in files.items():
        write_file(root, rel_path, data)
    return root


@pytest.fixture
def config(project_dir):
    """Configuration loaded from the project's config.rb."""
    return load_configuration(project_dir / 'config.rb')


@pytest.fixture
def make_config(project_dir):
    """Build a configuration for the project with some settings replaced."""
    def factory(**overrides):
        settings = {
            'http_path': '/go-aop-php/',
            'http_images_path': '/go-aop-php/images',
            'http_fonts_path': '/go-aop-php/fonts',
            'css_dir': 'public/go-aop-php/stylesheets',
            'sass_dir': 'sass',
            'images_dir': 'source/images',
            'fonts_dir': 'source/fonts',
            'line_comments': False,
            'output_style': 'compressed',
        }
        settings.update(overrides)
        return build_configuration(settings, project_root=project_dir)
    return factory
