"""Tests for link rewriting."""

import pytest

from octosite.links import LinkRewriter


@pytest.fixture
def rewriter():
    return LinkRewriter('/go-aop-php/')


class TestLinkRewriter:
    """Test cases for LinkRewriter."""

    def test_relative_asset_gets_base_path(self, rewriter):
        """Test that a relative image path is served under the base path."""
        assert rewriter.rewrite_url('images/foo.png') == '/go-aop-php/images/foo.png'

    def test_root_absolute_link(self, rewriter):
        """Test that root-absolute links get the base path prepended."""
        assert rewriter.rewrite_url('/docs/') == '/go-aop-php/docs/'

    def test_already_prefixed_link_is_kept(self, rewriter):
        """Test that links under the base path are not prefixed twice."""
        assert rewriter.rewrite_url('/go-aop-php/docs/') == '/go-aop-php/docs/'
        assert rewriter.rewrite_url('/go-aop-php') == '/go-aop-php'

    def test_dot_segments_are_normalized(self, rewriter):
        """Test that ./ and ../ are resolved and cannot escape the root."""
        assert rewriter.rewrite_url('./docs/index.html') == '/go-aop-php/docs/index.html'
        assert rewriter.rewrite_url('../../images/foo.png') == '/go-aop-php/images/foo.png'

    def test_query_and_fragment_are_kept(self, rewriter):
        """Test that query strings and fragments survive."""
        assert rewriter.rewrite_url('docs/page.html?x=1#intro') == '/go-aop-php/docs/page.html?x=1#intro'

    def test_trailing_slash_is_kept(self, rewriter):
        """Test that directory links keep their trailing slash."""
        assert rewriter.rewrite_url('blog/archives/') == '/go-aop-php/blog/archives/'

    @pytest.mark.parametrize('url', [
        'https://github.com/lisachenko/go-aop-php',
        'http://example.com/image.png',
        '//cdn.example.com/script.js',
        'mailto:someone@example.com',
        'data:image/png;base64,iVBORw0KGgo=',
        'javascript:void(0)',
        '#comments',
        '',
    ])
    def test_external_urls_untouched(self, rewriter, url):
        """Test that external and in-page URLs are not rewritten."""
        assert rewriter.rewrite_url(url) == url

    def test_root_base_path(self):
        """Test a site served from the domain root."""
        rewriter = LinkRewriter('/')

        assert rewriter.rewrite_url('images/foo.png') == '/images/foo.png'
        assert rewriter.rewrite_url('/docs/') == '/docs/'

    def test_base_path_is_normalized(self):
        """Test that the base path gains its slashes."""
        assert LinkRewriter('go-aop-php').http_path == '/go-aop-php/'

    def test_rewrite_html_attributes(self, rewriter):
        """Test rewriting of href and src attributes with both quote styles."""
        html = ('<a href="docs/">Docs</a><img src=\'images/foo.png\' alt="x">'
                '<a href="https://example.com/">Out</a>')

        result = rewriter.rewrite_html(html)

        assert '<a href="/go-aop-php/docs/">' in result
        assert "src='/go-aop-php/images/foo.png'" in result
        assert '<a href="https://example.com/">' in result
        assert 'alt="x"' in result

    def test_escaped_code_is_untouched(self, rewriter):
        """Test that escaped markup inside code blocks is not rewritten."""
        html = '<pre><code>&lt;a href=&quot;images/foo.png&quot;&gt;</code></pre>'

        assert rewriter.rewrite_html(html) == html

    def test_single_quoted_code_is_untouched(self, rewriter):
        """Test that PHP samples in code blocks and inline code keep their text."""
        html = ('<pre><code class="language-php">$action = \'index\';\n'
                'echo "&lt;img src=\'logo.png\'&gt;";\n</code></pre>\n'
                '<p>Use <code>$href = \'home\';</code> in <a href="docs/">the docs</a>.</p>')

        result = rewriter.rewrite_html(html)

        assert "$action = 'index';" in result
        assert "src='logo.png'" in result
        assert "<code>$href = 'home';</code>" in result
        assert '<a href="/go-aop-php/docs/">' in result

    def test_text_outside_tags_is_untouched(self, rewriter):
        """Test that attribute-like text in paragraphs is not rewritten."""
        html = "<p>Set action = 'index' and data-src='x.png'</p><img data-src='x.png' src='y.png'>"

        result = rewriter.rewrite_html(html)

        assert "<p>Set action = 'index' and data-src='x.png'</p>" in result
        assert "data-src='x.png' src='/go-aop-php/y.png'" in result

    def test_script_tag_src_is_rewritten(self, rewriter):
        """Test that a script tag's src is rewritten but its body is kept."""
        html = "<script src=\"javascripts/app.js\"></script><script>var src = 'x.png';</script>"

        result = rewriter.rewrite_html(html)

        assert '<script src="/go-aop-php/javascripts/app.js"></script>' in result
        assert "var src = 'x.png';" in result

    def test_url_for(self, rewriter):
        """Test public URLs of generated files."""
        assert rewriter.url_for('index.html') == '/go-aop-php/'
        assert rewriter.url_for('blog/2013/01/05/hello-world/index.html') == '/go-aop-php/blog/2013/01/05/hello-world/'
        assert rewriter.url_for('atom.xml') == '/go-aop-php/atom.xml'
