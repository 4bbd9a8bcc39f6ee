"""Tests for markup to Markdown conversion and Markdown rendering."""

import pytest

from converters import html_to_markdown, markdown_to_html
from converters.html_cleaner import HtmlCleaner
from converters.html_renderer import HtmlRenderer, InlineTokenizer
from converters.markdown_converter import MarkdownConverter
from converters.media_paths import (
    is_media_path,
    is_remote_reference,
    lookup_media,
    normalize_media_path,
)
from models import MediaAsset


class TestMarkdownConverter:
    """Test conversion of stored post markup."""

    def setup_method(self):
        self.converter = MarkdownConverter()

    def test_paragraph_with_bold(self):
        assert self.converter.convert('<p>Hello <strong>world</strong></p>') == 'Hello **world**'

    def test_empty_input(self):
        assert self.converter.convert('') == ''
        assert self.converter.convert('   \n ') == ''

    def test_headings(self):
        result = self.converter.convert('<h2>Section</h2><p>Text</p>')
        assert result == '## Section\n\nText'

    def test_deep_headings_become_paragraphs(self):
        result = self.converter.convert('<h5>Small print</h5>')
        assert result == 'Small print'
        assert '#' not in result

    def test_nested_lists_are_flattened(self):
        html = '<ul><li>One<ul><li>Nested</li></ul></li><li>Two</li></ul>'
        assert self.converter.convert(html) == '- One\n- Nested\n- Two'

    def test_ordered_list_uses_bullets(self):
        assert self.converter.convert('<ol><li>First</li><li>Second</li></ol>') == '- First\n- Second'

    def test_code_block_with_language(self):
        html = '<pre><code class="language-python">print("hi")</code></pre>'
        assert self.converter.convert(html) == '```python\nprint("hi")\n```'

    def test_unknown_tags_keep_text(self):
        result = self.converter.convert('<p><span class="x">Plain</span> text</p>')
        assert result == 'Plain text'

    def test_scripts_removed(self):
        result = self.converter.convert('<p>Visible</p><script>alert(1)</script>')
        assert 'alert' not in result
        assert 'Visible' in result

    def test_links_and_images(self):
        html = '<p><a href="https://example.com">Site</a> <img src="_images/a.png" alt="A" /></p>'
        result = self.converter.convert(html)
        assert '[Site](https://example.com)' in result
        assert '![A](_images/a.png)' in result

    def test_bare_text_gets_paragraphs(self):
        result = self.converter.convert('First line\nsecond line\n\nNext paragraph')
        assert 'second line' in result
        assert result.split('\n\n')[-1] == 'Next paragraph'

    def test_convenience_function(self):
        assert html_to_markdown('<p><em>Hi</em></p>') == '*Hi*'


class TestHtmlCleaner:
    def test_autop_leaves_block_markup(self):
        cleaner = HtmlCleaner()
        assert cleaner.autop('<ul><li>a</li></ul>') == '<ul><li>a</li></ul>'

    def test_autop_preserves_pre(self):
        cleaner = HtmlCleaner()
        html = 'Intro\n\n<pre>line 1\n\nline 2</pre>'
        result = cleaner.autop(html)
        assert '<p>Intro</p>' in result
        assert '<pre>line 1\n\nline 2</pre>' in result


class TestHtmlRenderer:
    """Test rendering of Markdown bodies."""

    def setup_method(self):
        self.renderer = HtmlRenderer()

    def test_heading_and_emphasis(self):
        result = self.renderer.render('## Title\n\nSome **bold** and *it*')
        assert result == '<h2>Title</h2>\n<p>Some <strong>bold</strong> and <em>it</em></p>'

    def test_list(self):
        assert self.renderer.render('- a\n- b') == '<ul><li>a</li><li>b</li></ul>'

    def test_code_block_is_escaped(self):
        result = self.renderer.render('```python\nx = 1 < 2\n```')
        assert result == '<pre><code class="language-python">x = 1 &lt; 2</code></pre>'

    def test_code_span_blocks_emphasis(self):
        assert self.renderer.render('Use `*args*` here') == '<p>Use <code>*args*</code> here</p>'

    def test_blockquote_paragraphs(self):
        result = self.renderer.render('> one\n>\n> two')
        assert result == '<blockquote><p>one</p><p>two</p></blockquote>'

    def test_text_is_escaped(self):
        assert self.renderer.render('a < b & c') == '<p>a &lt; b &amp; c</p>'

    def test_horizontal_rule(self):
        assert self.renderer.render('above\n\n---\n\nbelow') == '<p>above</p>\n<hr />\n<p>below</p>'

    def test_hard_line_break(self):
        assert self.renderer.render('line one  \nline two') == '<p>line one<br />line two</p>'

    def test_soft_wrap_joins_lines(self):
        assert self.renderer.render('line one\nline two') == '<p>line one line two</p>'

    def test_media_map_resolves_relative_image(self):
        media_map = {'_images/logo.png': MediaAsset(id=1, url='https://cdn.example.com/logo.png')}
        result = self.renderer.render('![Logo](../_images/logo.png)', media_map)
        assert result == '<p><img src="https://cdn.example.com/logo.png" alt="Logo" /></p>'

    def test_image_title_becomes_caption(self):
        result = self.renderer.render('![Alt](pic.png "A caption")')
        assert '<figure class="md-image"><img src="pic.png" alt="Alt" />' in result
        assert '<figcaption>A caption</figcaption></figure>' in result

    def test_link_url_not_emphasized(self):
        result = self.renderer.render('[docs](https://example.com/a_*b*_c)')
        assert result == '<p><a href="https://example.com/a_*b*_c">docs</a></p>'

    def test_unterminated_fence(self):
        assert self.renderer.render('```\ncode') == '<pre><code>code</code></pre>'

    def test_empty(self):
        assert markdown_to_html('') == ''


class TestInlineTokenizer:
    def test_precedence(self):
        tokens = InlineTokenizer().tokenize('a `b` ![c](d.png) [e](f)')
        assert [token.kind for token in tokens] == ['text', 'code', 'text', 'image', 'text', 'link']


class TestMediaPaths:
    @pytest.mark.parametrize('reference', [
        '../_images/a.png',
        '/docs/_images/a.png',
        '_images\\a.png',
        '_images/a.png?v=2',
    ])
    def test_normalize(self, reference):
        assert normalize_media_path(reference) == '_images/a.png'

    def test_non_media_path(self):
        assert normalize_media_path('img/a.png') == 'img/a.png'
        assert not is_media_path('img/a.png')

    def test_remote(self):
        assert is_remote_reference('https://example.com/_images/a.png')
        assert not is_remote_reference('_images/a.png')

    def test_lookup_with_leading_slash(self):
        media_map = {'/_images/a.png': 'asset'}
        assert lookup_media(media_map, '_images/a.png') == 'asset'
        assert lookup_media(media_map, 'missing.png') is None
