"""
Citation normalisation and attribution strings.
"""

import logging

logger = logging.getLogger('Folio.Citations')


def _person_or_site(item, link):
    """Render an author or site entry that may be a name, a URL or both."""
    if isinstance(item, dict):
        name = item.get('name')
        url = item.get('url')
        if name and url:
            return link(name, url)
        if name:
            return str(name)
        if url:
            return link(url, url)
        return ''
    return str(item) if item else ''


def citation_string(citation, link, x):
    """
    Build the display string for a citation.

    The title comes first (as a link when the citation has a URL), then
    " by " and the authors, then " on " and the site.

    Args:
        citation: Citation dict with 'headline', optional 'url', 'author' and 'site'
        link: Callable (text, url) -> HTML link
        x: Callable translating 'by' and 'on'
    """
    cite = f"<cite>{citation['headline']}</cite>"
    result = link(cite, citation['url']) if citation.get('url') else cite

    authors = citation.get('author')
    if authors:
        if isinstance(authors, dict) or not isinstance(authors, (list, tuple)):
            authors = [authors]
        rendered = [s for s in (_person_or_site(a, link) for a in authors) if s]
        if rendered:
            result += f" {x('by')} " + ', '.join(rendered)

    site = citation.get('site')
    if site:
        rendered = _person_or_site(site, link)
        if rendered:
            result += f" {x('on')} " + rendered

    return result


def process_citations(raw, rel_path, link, x):
    """
    Normalise the ``citation`` front matter into a list of citation dicts,
    each with a ``txt`` attribution string.

    Citations without a headline are logged and skipped. Citations without a
    URL are kept with a warning.
    """
    if not raw:
        return []

    if isinstance(raw, dict) and any(k in raw for k in ('headline', 'title', 'url')):
        items = [raw]
    elif isinstance(raw, dict):
        items = list(raw.values())
    elif isinstance(raw, (list, tuple)):
        items = list(raw)
    else:
        logger.error(f"Citation must be a mapping or a list of mappings: {rel_path}")
        return []

    citations = []
    for item in items:
        if not isinstance(item, dict):
            logger.error(f"Ignoring malformed citation in {rel_path}")
            continue
        citation = dict(item)
        if not citation.get('headline') and citation.get('title'):
            citation['headline'] = citation.pop('title')
        if not citation.get('headline'):
            logger.error(f"Citations must have a headline: {rel_path}")
            continue
        if not citation.get('url'):
            logger.warning(f"Citations should have a URL: {rel_path}")
        citation['txt'] = citation_string(citation, link, x)
        citations.append(citation)
    return citations
