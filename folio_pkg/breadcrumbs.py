"""
Breadcrumb evaluation.

A breadcrumb spec is an ordered list of elements. Each element is either a
literal ``{name, url}`` or a ``{calc: ...}`` directive:

- ``self``: the article itself
- ``path``: the article's directory (skipped at the site root)
- ``<taxonomy>#<n>``: the n-th value of a taxonomy (skipped if missing)
"""

import logging

from .utils import slugify, ucfirst

logger = logging.getLogger('Folio.Breadcrumbs')

SEPARATOR = ' &rarr; '


def evaluate_element(elem, article, taxonomy_spec):
    """
    Evaluate one breadcrumb element.

    Returns:
        {'name', 'url'} dict, or None when the element should be skipped
    """
    if not isinstance(elem, dict) or not (elem.get('calc') or (elem.get('name') and elem.get('url'))):
        logger.error(f"Breadcrumbs need a 'calc' field or both 'name' and 'url': {article.rel_path}")
        return None

    if elem.get('name') and elem.get('url'):
        return {'name': ucfirst(str(elem['name'])), 'url': elem['url']}

    calc = str(elem['calc'])
    if calc == 'self':
        return {'name': article.name, 'url': article.url}

    if calc == 'path':
        dirname = article.dirname.strip('/')
        if not dirname:
            return None
        return {'name': ucfirst(dirname.split('/')[-1]), 'url': '/' + dirname + '/'}

    if '#' in calc:
        tax_type, _, idx = calc.partition('#')
        values = article.taxonomies.get(tax_type)
        if not values:
            logger.debug(f"Article has no '{tax_type}' for breadcrumbs: {article.rel_path}")
            return None
        try:
            pos = int(idx)
            if pos < 0:
                raise IndexError(pos)
            value = values[pos]
        except (ValueError, IndexError):
            logger.debug(f"Article has no '{tax_type}' index {idx} for breadcrumbs: {article.rel_path}")
            return None
        path = (taxonomy_spec.get(tax_type) or {}).get('path', '/' + tax_type).rstrip('/')
        return {'name': ucfirst(value), 'url': f"{path}/{slugify(value)}/"}

    logger.warning(f"Unknown breadcrumb calc '{calc}': {article.rel_path}")
    return None


def build_breadcrumbs(spec, article, taxonomy_spec):
    """Evaluate a breadcrumb spec, dropping elements with no source."""
    crumbs = []
    for elem in spec or []:
        crumb = evaluate_element(elem, article, taxonomy_spec)
        if crumb is not None:
            crumbs.append(crumb)
    return crumbs


def breadcrumb_string(crumbs, link):
    """Join breadcrumbs into HTML; every item but the last is a link."""
    parts = []
    for pos, crumb in enumerate(crumbs):
        if pos == len(crumbs) - 1:
            parts.append(str(crumb['name']))
        else:
            parts.append(link(crumb['name'], crumb['url']))
    return SEPARATOR.join(parts)
