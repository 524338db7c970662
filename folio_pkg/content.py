"""
Multi-format content: markdown source, rendered HTML and plain text.
"""

import html
import re

import mistune

from .utils import count_words

TAG_RE = re.compile(r'<[^>]*>')
WS_RE = re.compile(r'\s+')


class CustomRenderer(mistune.HTMLRenderer):
    def __init__(self):
        super().__init__(escape=False)

    def block_code(self, code, info=None):
        escaped_code = mistune.escape(code)
        return '<pre style="white-space: pre-wrap;"><code>{}</code></pre>'.format(escaped_code)


def create_markdown_parser():
    """Create a Mistune markdown parser with a custom renderer."""
    return mistune.create_markdown(
        renderer=CustomRenderer(),
        plugins=['table', 'task_lists', 'strikethrough']
    )


_parser = None


def markdown_to_html(text):
    """Convert markdown text to HTML."""
    global _parser
    if _parser is None:
        _parser = create_markdown_parser()
    return _parser(text or '').strip()


def html_to_text(markup):
    """
    Reduce HTML to plain text.

    Tags are stripped both before and after entity decoding, so escaped markup
    such as ``&lt;b&gt;`` cannot come back as a tag.
    """
    if not markup:
        return ''
    text = TAG_RE.sub(' ', markup)
    text = html.unescape(text)
    text = TAG_RE.sub(' ', text)
    text = text.replace('<', '').replace('>', '')
    return WS_RE.sub(' ', text).strip()


class MultiFormat:
    """A content field held as source markup, HTML and plain text."""

    def __init__(self, source=None, html_value=None):
        self.is_list = isinstance(source, (list, tuple))
        if self.is_list:
            source = '\n'.join(f"1. {item}" for item in source)
        self.md = source if source is not None else None
        if source is not None:
            self.html = markdown_to_html(source)
        else:
            self.html = html_value or ''
        self.text = html_to_text(self.html)

    @classmethod
    def from_html(cls, markup):
        return cls(source=None, html_value=markup)

    def set_html(self, markup):
        """Replace the HTML (after pre-render processing) and refresh the text."""
        self.html = markup
        self.text = html_to_text(markup)

    @property
    def words(self):
        return count_words(self.text)

    def __bool__(self):
        return bool(self.html)

    def __str__(self):
        return self.html

    def __repr__(self):
        return f"MultiFormat(words={self.words}, is_list={self.is_list})"

    def as_dict(self):
        return {'md': self.md, 'html': self.html, 'text': self.text, 'is_list': self.is_list}
