"""
Taxonomy pages: one synthetic article per taxonomy value, generated from a
dummy layout.
"""

import logging
import os

from ..errors import FolioError
from ..frontmatter import fill_tokens
from ..events import Event
from ..render import report_errors
from ..utils import humanize, slugify

DEFAULT_TAXONOMY_PAGES_SPEC = {
    'dummy': '_dummies/taxonomy.md',
    'types': None,
}

logger = logging.getLogger('Folio.TaxonomyPages')


def fill_taxonomy_dummy(template, taxonomy, tax_spec):
    name_str = tax_spec.get('name_str') or [humanize(taxonomy.type)] * 2
    if isinstance(name_str, str):
        name_str = [name_str, name_str]
    reps = {
        '-taxonomyTypeName-': str(tax_spec.get('type_name') or humanize(taxonomy.type)),
        '-taxonomyType-': taxonomy.type,
        '-taxonomyNameStrPlural-': str(name_str[1]),
        '-taxonomyNameStr-': str(name_str[0]),
        '-taxonomyPath-': taxonomy.path.rstrip('/'),
        '-taxonomySlug-': taxonomy.slug,
        '-taxonomy-': taxonomy.name,
    }
    return fill_tokens(template, reps)


def find_dummy(ctx, name):
    for layout_dir in ctx.layout_dirs:
        candidate = os.path.join(layout_dir, name)
        if os.path.isfile(candidate):
            return candidate
    return None


async def after_parse_late(ctx):
    spec = ctx.settings.section('taxonomy_pages_spec')
    dummy_path = find_dummy(ctx, spec.get('dummy'))
    if dummy_path is None:
        logger.error(f"Could not find dummy taxonomy layout '{spec.get('dummy')}'.")
        return
    with open(dummy_path, 'r', encoding='utf-8') as f:
        dummy = f.read()

    parser = ctx.get_parser(os.path.splitext(dummy_path)[1])
    wanted = spec.get('types')
    taxonomy_spec = ctx.settings.get('taxonomy_spec') or {}
    logger.info("Processing taxonomy pages.")

    errors = []
    for type_name, tax_type in list(ctx.index.taxonomies.items()):
        if wanted is not None and type_name not in wanted:
            continue
        out_dir = os.path.join(ctx.temp_dir, 'taxonomies', type_name)
        os.makedirs(out_dir, exist_ok=True)
        for taxonomy in list(tax_type):
            file_name = os.path.join(out_dir, (taxonomy.slug or 'untitled') + '.md')
            try:
                with open(file_name, 'w', encoding='utf-8') as f:
                    f.write(fill_taxonomy_dummy(dummy, taxonomy, taxonomy_spec.get(type_name, {})))
                article = await parser(file_name, is_dummy=True)
            except FolioError as e:
                errors.append(('/' + os.path.relpath(file_name, ctx.site_dir), e))
                continue
            article.extensions['taxonomy'] = taxonomy

    report_errors(logger, 'taxonomy page parsing', errors,
                  ctx.settings.get('site.error_control.show_all_errors', False))
    ctx.counts['failed'] += len(errors)


def init(ctx):
    ctx.settings.merge_section('taxonomy_pages_spec', DEFAULT_TAXONOMY_PAGES_SPEC, preserve=True)
    ctx.on(Event.AFTER_PARSE_LATE, after_parse_late, priority=70)
