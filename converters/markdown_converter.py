"""Converter from stored post markup to Markdown document bodies."""

import logging
import re
from typing import Any, Dict, List

from bs4 import BeautifulSoup
from markdownify import MarkdownConverter as MarkdownifyConverter
from markdownify import chomp

from .html_cleaner import HtmlCleaner

logger = logging.getLogger('posts_markdown_sync.converters.markdownconverter')

# Private-use markers that never survive into the output.
CODE_TOKEN = '\x00{}\x00'
CODE_TOKEN_RE = re.compile(r'\x00(\d+)\x00')
NESTED_LIST_MARK = '\x01'

LIST_ITEM_RE = re.compile(r'^- ')
LANGUAGE_CLASS_RE = re.compile(r'^(?:language|lang)-([\w+#.-]+)$')


class MarkdownConverter(MarkdownifyConverter):
    """
    Converts post markup to the Markdown dialect understood by ``HtmlRenderer``.

    Supported constructs, in precedence order: fenced code blocks, inline
    code, headings 1-4, blockquotes, lists (flattened to ``- item`` lines),
    bold, italic, links, images, horizontal rules, paragraphs and line
    breaks. Every other tag is unwrapped and only its text is kept.
    """

    def __init__(self, logger: logging.Logger = None, config: Dict[str, Any] = None, **kwargs):
        """Initialize markdown converter with logger and configuration."""
        markdownify_options = {
            'heading_style': 'ATX',
            'bullets': '-',
            'strong_em_symbol': '*',
            'newline_style': 'spaces',
            'escape_asterisks': False,
            'escape_underscores': False,
            'escape_misc': False,
            'autolinks': False,
            # wrap with no width collapses source newlines without reflowing paragraphs
            'wrap': True,
            'wrap_width': None
        }
        markdownify_options.update(kwargs)
        super().__init__(**markdownify_options)

        self.logger = logger or logging.getLogger('posts_markdown_sync.converters.markdownconverter')
        self.config = config or {}
        self.html_cleaner = HtmlCleaner(self.logger)
        self.apply_autop = self.config.get('autop', True)
        self._code_blocks: List[str] = []

    def convert(self, html: str) -> str:
        """
        Convert post markup to Markdown.

        Never raises for string input; empty or whitespace-only markup
        produces an empty string.

        Args:
            html: Stored post markup

        Returns:
            Markdown body text
        """
        if not html or not str(html).strip():
            return ''

        html = str(html).replace('\x00', '').replace('\x01', '')
        if self.apply_autop:
            html = self.html_cleaner.autop(html)

        soup = BeautifulSoup(html, 'lxml')
        self.html_cleaner.clean(soup)

        self._code_blocks = []
        raw_markdown = self.convert_soup(soup)
        return self._post_process_markdown(raw_markdown)

    def _post_process_markdown(self, markdown: str) -> str:
        """Normalize whitespace, separate lists from prose and restore code blocks."""
        markdown = markdown.replace('\xa0', ' ')
        lines = markdown.split('\n')

        cleaned = []
        for index, line in enumerate(lines):
            stripped = line.strip()
            if not stripped:
                cleaned.append('')
                continue
            has_next = index + 1 < len(lines) and lines[index + 1].strip()
            if line.endswith('  ') and has_next:
                stripped += '  '
            cleaned.append(stripped)

        result: List[str] = []
        for line in cleaned:
            if LIST_ITEM_RE.match(line) and result and result[-1] and not LIST_ITEM_RE.match(result[-1]):
                result[-1] = result[-1].rstrip()
                result.append('')
            result.append(line)

        markdown = '\n'.join(result)
        markdown = re.sub(r'\n{3,}', '\n\n', markdown)
        markdown = CODE_TOKEN_RE.sub(lambda m: self._code_blocks[int(m.group(1))], markdown)
        return markdown.strip()

    def _block(self, text: str, parent_tags) -> str:
        text = (text or '').strip()
        if '_inline' in parent_tags:
            return ' ' + text + ' '
        return f'\n\n{text}\n\n' if text else ''

    def _heading(self, level: int, text: str, parent_tags) -> str:
        text = ' '.join((text or '').split())
        if '_inline' in parent_tags:
            return text
        if not text:
            return ''
        if level > 4:
            return f'\n\n{text}\n\n'
        return f"\n\n{'#' * level} {text}\n\n"

    def convert_h1(self, el, text, parent_tags=None, **kwargs):
        return self._heading(1, text, parent_tags or set())

    def convert_h2(self, el, text, parent_tags=None, **kwargs):
        return self._heading(2, text, parent_tags or set())

    def convert_h3(self, el, text, parent_tags=None, **kwargs):
        return self._heading(3, text, parent_tags or set())

    def convert_h4(self, el, text, parent_tags=None, **kwargs):
        return self._heading(4, text, parent_tags or set())

    def convert_h5(self, el, text, parent_tags=None, **kwargs):
        return self._heading(5, text, parent_tags or set())

    def convert_h6(self, el, text, parent_tags=None, **kwargs):
        return self._heading(6, text, parent_tags or set())

    def convert_pre(self, el, text, parent_tags=None, **kwargs):
        """Stash fenced code so later whitespace cleanup leaves it untouched."""
        code = (text or '').strip('\n')
        if not code.strip():
            return ''
        language = self._extract_code_language(el)
        self._code_blocks.append(f'```{language}\n{code}\n```')
        return '\n\n' + CODE_TOKEN.format(len(self._code_blocks) - 1) + '\n\n'

    def convert_code(self, el, text, parent_tags=None, **kwargs):
        if '_noformat' in (parent_tags or set()):
            return text
        prefix, suffix, text = chomp(text or '')
        if not text:
            return ''
        return f'{prefix}`{text}`{suffix}'

    def convert_blockquote(self, el, text, parent_tags=None, **kwargs):
        """Prefix every line with ``> `` and separate quoted paragraphs with a lone ``>``."""
        parent_tags = parent_tags or set()
        text = (text or '').strip()
        if '_inline' in parent_tags:
            return ' ' + ' '.join(text.split()) + ' '
        if not text:
            return ''

        quoted = []
        for paragraph in re.split(r'\n\s*\n', text):
            lines = [line.strip() for line in paragraph.split('\n') if line.strip()]
            if not lines:
                continue
            if quoted:
                quoted.append('>')
            for line in lines:
                quoted.append(line if line.startswith('>') else f'> {line}')

        return '\n\n' + '\n'.join(quoted) + '\n\n'

    def convert_ul(self, el, text, parent_tags=None, **kwargs):
        items = (text or '').strip('\n')
        if not items.strip():
            return ''
        if 'li' in (parent_tags or set()):
            return NESTED_LIST_MARK + items + '\n'
        return f'\n\n{items}\n\n'

    convert_ol = convert_ul

    def convert_li(self, el, text, parent_tags=None, **kwargs):
        """Render one ``- item`` line, followed by any nested items flattened to the same level."""
        own, _, nested = (text or '').partition(NESTED_LIST_MARK)
        own = ' '.join(own.split())

        lines = [f'- {own}'] if own else []
        for line in nested.replace(NESTED_LIST_MARK, '\n').split('\n'):
            line = line.strip()
            if not line:
                continue
            lines.append(line if LIST_ITEM_RE.match(line) else f'- {line}')

        if not lines:
            return ''
        return '\n'.join(lines) + '\n'

    def convert_a(self, el, text, parent_tags=None, **kwargs):
        if '_noformat' in (parent_tags or set()):
            return text
        prefix, suffix, text = chomp(text or '')
        text = ' '.join(text.split())
        href = (el.get('href') or '').strip()
        if not text:
            return ''
        if not href:
            return f'{prefix}{text}{suffix}'
        return f'{prefix}[{text}]({self._escape_url(href)}){suffix}'

    def convert_img(self, el, text, parent_tags=None, **kwargs):
        """Render ``![alt](src)``; the title attribute is dropped."""
        src = (el.get('src') or '').strip()
        if not src:
            return ''
        alt = ' '.join((el.get('alt') or '').split())
        alt = alt.replace('[', '').replace(']', '')
        return f'![{alt}]({self._escape_url(src)})'

    def convert_div(self, el, text, parent_tags=None, **kwargs):
        return self._block(text, parent_tags or set())

    convert_article = convert_div
    convert_section = convert_div
    convert_figure = convert_div
    convert_figcaption = convert_div
    convert_header = convert_div
    convert_footer = convert_div
    convert_main = convert_div
    convert_aside = convert_div
    convert_nav = convert_div
    convert_dl = convert_div
    convert_dt = convert_div
    convert_dd = convert_div
    convert_table = convert_div
    convert_thead = convert_div
    convert_tbody = convert_div
    convert_tfoot = convert_div
    convert_caption = convert_div

    def convert_tr(self, el, text, parent_tags=None, **kwargs):
        cells = ' '.join((text or '').split())
        return f'\n\n{cells}\n\n' if cells else ''

    def convert_td(self, el, text, parent_tags=None, **kwargs):
        return ' ' + ' '.join((text or '').split()) + ' '

    convert_th = convert_td

    def _unwrap(self, el, text, parent_tags=None, **kwargs):
        return text

    convert_del = _unwrap
    convert_s = _unwrap
    convert_q = _unwrap
    convert_kbd = _unwrap
    convert_samp = _unwrap
    convert_sub = _unwrap
    convert_sup = _unwrap

    def convert_script(self, el, text, parent_tags=None, **kwargs):
        return ''

    convert_style = convert_script

    @staticmethod
    def _escape_url(url: str) -> str:
        return url.replace(' ', '%20').replace('(', '%28').replace(')', '%29')

    @staticmethod
    def _extract_code_language(element) -> str:
        """Read a ``language-x`` or ``lang-x`` class from the pre or its code child."""
        candidates = [element]
        code_el = element.find('code')
        if code_el is not None:
            candidates.append(code_el)

        for candidate in candidates:
            data_language = candidate.get('data-language')
            if data_language:
                return data_language.strip()
            for cls in candidate.get('class', []) or []:
                match = LANGUAGE_CLASS_RE.match(cls)
                if match:
                    return match.group(1)
        return ''


__all__ = ['MarkdownConverter']
