"""
Link rewriting for generated pages.

Every internal link or asset reference in a rendered page is rewritten so it
resolves under the configured base path. External URLs, fragments and
protocol-relative URLs are left untouched.
"""

import re
import posixpath
from urllib.parse import urlsplit, urlunsplit
from typing import Set


class LinkRewriter:
    """
    Rewrite internal URLs against a site base path.

    Relative URLs are resolved against the site root, so ``images/foo.png``
    becomes ``<http_path>images/foo.png`` from any page. Root-absolute URLs
    that are not already under the base path get it prepended.
    """

    # Schemes that always point outside the site
    EXTERNAL_SCHEMES: Set[str] = {
        'http', 'https', 'ftp', 'ftps', 'mailto', 'tel', 'data',
        'javascript', 'irc', 'git', 'ssh', 'file',
    }

    # Start tags; escaped markup and comments never match
    TAG_RE = re.compile(r'<[a-zA-Z][^<>]*>')

    # Elements whose content is kept verbatim
    VERBATIM_RE = re.compile(
        r'<(?P<tag>pre|code|script|style|textarea)\b[^>]*>(?P<body>.*?)</(?P=tag)\s*>',
        re.IGNORECASE | re.DOTALL,
    )

    # Attributes carrying a single URL, inside a start tag
    ATTRIBUTE_RE = re.compile(
        r'(?P<prefix>(?<=\s)(?:href|src|action|poster)\s*=\s*)'
        r'(?P<quote>["\'])(?P<url>.*?)(?P=quote)',
        re.IGNORECASE | re.DOTALL,
    )

    def __init__(self, http_path: str):
        """
        Args:
            http_path: Base path the site is served from, e.g. ``/go-aop-php/``
        """
        self.http_path = '/' + http_path.strip('/') + '/' if http_path.strip('/') else '/'
        self.root_url = self.http_path.rstrip('/')

    def is_internal(self, url: str) -> bool:
        """
        Check whether a URL points inside the site.

        Args:
            url: The URL to check

        Returns:
            True if the URL should be rewritten
        """
        url = url.strip()
        if not url or url.startswith(('#', '//', '?')):
            return False
        # Unrendered template expressions are left alone
        if '{{' in url or '{%' in url:
            return False
        scheme = urlsplit(url).scheme.lower()
        if scheme in self.EXTERNAL_SCHEMES:
            return False
        return scheme == ''

    def rewrite_url(self, url: str) -> str:
        """Return the URL as served under the base path."""
        if not self.is_internal(url):
            return url

        url = url.strip()
        if url == self.root_url or url.startswith(self.http_path):
            return url
        if url.startswith('/'):
            return self.root_url + url

        parts = urlsplit(url)
        path = posixpath.normpath('/' + parts.path) if parts.path else '/'
        if parts.path.endswith('/') and not path.endswith('/'):
            path += '/'
        path = self.http_path + path.lstrip('/')
        return urlunsplit(('', '', path, parts.query, parts.fragment))

    def rewrite_tag(self, tag: str) -> str:
        """Rewrite the URL attributes of a single start tag."""
        def replace(match):
            return '{}{}{}{}'.format(
                match.group('prefix'),
                match.group('quote'),
                self.rewrite_url(match.group('url')),
                match.group('quote'),
            )
        return self.ATTRIBUTE_RE.sub(replace, tag)

    def rewrite_html(self, html: str) -> str:
        """
        Rewrite every href/src/action/poster attribute in an HTML document.

        Only attributes of real start tags are touched. The content of
        ``pre``, ``code``, ``script``, ``style`` and ``textarea`` elements is
        copied unchanged, so code samples keep their text.
        """
        def rewrite_tags(chunk):
            return self.TAG_RE.sub(lambda match: self.rewrite_tag(match.group(0)), chunk)

        pieces = []
        position = 0
        for match in self.VERBATIM_RE.finditer(html):
            pieces.append(rewrite_tags(html[position:match.start('body')]))
            pieces.append(match.group('body'))
            position = match.end('body')
        pieces.append(rewrite_tags(html[position:]))
        return ''.join(pieces)

    def url_for(self, output_path: str) -> str:
        """
        Public URL of a generated file given its path relative to the site root.
        ``index.html`` files are addressed by their directory.
        """
        output_path = output_path.lstrip('/')
        if output_path == 'index.html':
            return self.http_path
        if output_path.endswith('/index.html'):
            return self.http_path + output_path[:-len('index.html')]
        return self.http_path + output_path
