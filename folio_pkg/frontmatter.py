"""
YAML front matter extraction.
"""

import re

import yaml

from .errors import ArticleError

FM_DELIM = '---'
LAYOUT_OPEN = '<!--@'
LAYOUT_CLOSE = '@-->'


def split_front_matter(text, open_delim=FM_DELIM, close_delim=FM_DELIM, partial=False):
    """
    Split text into its YAML header and the remaining body.

    In normal mode the header must open on the first line. In partial mode the
    header may sit anywhere in the text (used for layouts that embed it in an
    HTML comment) and is cut out of the body.

    Returns:
        (yaml_text or None, body)
    """
    if partial:
        start = text.find(open_delim)
        if start == -1:
            return None, text
        end = text.find(close_delim, start + len(open_delim))
        if end == -1:
            return None, text
        header = text[start + len(open_delim):end]
        body = text[:start] + text[end + len(close_delim):]
        return header, body

    stripped = text.lstrip('\ufeff')
    lines = stripped.split('\n')
    if not lines or lines[0].strip() != open_delim:
        return None, text
    for idx in range(1, len(lines)):
        if lines[idx].strip() == close_delim:
            return '\n'.join(lines[1:idx]), '\n'.join(lines[idx + 1:])
    return None, text


def parse_front_matter(text, rel_path=None, **kwargs):
    """
    Extract and load the YAML header of a document.

    Returns:
        (data dict, body)

    Raises:
        ArticleError: the header is not valid YAML or not a mapping
    """
    header, body = split_front_matter(text, **kwargs)
    if header is None:
        return {}, body
    try:
        data = yaml.safe_load(header)
    except yaml.YAMLError as e:
        raise ArticleError(f"Invalid YAML front matter: {e}", rel_path)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ArticleError("Front matter must be a mapping", rel_path)
    return data, body.strip('\n')


def fill_tokens(text, reps, rel_path=None):
    """
    Replace ``-token-`` placeholders in a dummy article.

    The front matter is loaded first and the tokens are filled into the
    loaded values, so substituted text never has to be valid YAML itself.
    The header is written back with ``yaml.safe_dump``.

    Raises:
        ArticleError: the dummy's own front matter is invalid
    """
    pattern = re.compile('|'.join(re.escape(t) for t in sorted(reps, key=len, reverse=True)))

    def fill(value):
        if isinstance(value, str):
            return pattern.sub(lambda m: str(reps[m.group(0)]), value)
        if isinstance(value, dict):
            return {k: fill(v) for k, v in value.items()}
        if isinstance(value, list):
            return [fill(v) for v in value]
        return value

    header, body = split_front_matter(text)
    if header is None:
        return fill(text)
    data, body = parse_front_matter(text, rel_path)
    header = yaml.safe_dump(fill(data), sort_keys=False, allow_unicode=True)
    return f"{FM_DELIM}\n{header}{FM_DELIM}\n{fill(body)}\n"


def parse_layout_front_matter(text, rel_path=None):
    """Pull the ``<!--@ ... @-->`` YAML block out of a layout."""
    return parse_front_matter(text, rel_path=rel_path, open_delim=LAYOUT_OPEN,
                              close_delim=LAYOUT_CLOSE, partial=True)
