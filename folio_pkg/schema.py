"""
Schema.org metadata for articles, emitted as a JSON-LD ``@graph``.
"""

import json

CONTEXT = 'https://schema.org'


def _id(site_url, ref):
    return f"{site_url}/#{ref}"


def _images(ctx, article, purpose='featured'):
    """Qualified URLs of the image chosen for a purpose, if the images plugin ran."""
    selected = (article.extensions.get('images') or {}).get('selected', {})
    image = selected.get(purpose)
    if not image:
        return []
    return [ctx.qualify(image['url'])]


def publisher_schema(ctx):
    publisher = ctx.settings.get('site.publisher') or {}
    if not publisher.get('name'):
        return None
    site_url = ctx.site_url.rstrip('/')
    schema = {
        '@type': publisher.get('type', 'Organization'),
        '@id': _id(site_url, 'publisher'),
        'name': publisher['name'],
        'url': publisher.get('url', site_url),
    }
    if publisher.get('logo'):
        schema['logo'] = {'@type': 'ImageObject', 'url': ctx.qualify(publisher['logo'])}
    return schema


def author_schema(ctx, author):
    site_url = ctx.site_url.rstrip('/')
    schema = {
        '@type': 'Person',
        '@id': _id(site_url, 'author-' + str(author.get('key', author.get('name')))),
        'name': author.get('name'),
    }
    if author.get('url'):
        schema['url'] = author['url']
    if author.get('same_as'):
        schema['sameAs'] = list(author['same_as'])
    return schema


def breadcrumb_schema(ctx, article):
    items = []
    for pos, crumb in enumerate(article.breadcrumbs, start=1):
        items.append({
            '@type': 'ListItem',
            'position': pos,
            'name': crumb['name'],
            'item': ctx.qualify(crumb['url']),
        })
    return {
        '@type': 'BreadcrumbList',
        '@id': ctx.qualify(article.url) + '#breadcrumb',
        'itemListElement': items,
    }


def product_schema(ctx, article, key, product):
    schema = {
        '@type': product.get('type', 'Product'),
        '@id': ctx.qualify(article.url) + f'#product-{key}',
        'name': product.get('name', article.name),
    }
    for field in ('brand', 'description', 'sku', 'gtin13'):
        if product.get(field):
            schema[field] = product[field]
    if product.get('review_url'):
        schema['url'] = ctx.qualify(product['review_url'])
    review = article.reviews.get(key)
    if review:
        schema['review'] = review_schema(ctx, article, key, review)
    return schema


def review_schema(ctx, article, key, review):
    schema = {
        '@type': 'Review',
        '@id': ctx.qualify(article.url) + f'#review-{key}',
        'datePublished': article.published_date.iso,
        'author': [{'@id': author_schema(ctx, a)['@id']} for a in article.authors],
    }
    if review.get('rating') is not None:
        schema['reviewRating'] = {
            '@type': 'Rating',
            'ratingValue': review['rating'],
            'bestRating': review.get('best_rating', 5),
            'worstRating': review.get('worst_rating', 0),
        }
    if review.get('description'):
        schema['description'] = review['description']
    return schema


def faq_schema(ctx, article):
    questions = []
    for pos, item in enumerate(article.faq['faqs'], start=1):
        questions.append({
            '@type': 'Question',
            'url': ctx.qualify(article.url) + f'#faq-{pos}',
            'name': item['q'],
            'acceptedAnswer': {'@type': 'Answer', 'text': item['a'].text},
        })
    schema = {'@type': 'FAQPage', '@id': ctx.qualify(article.url) + '#faq', 'mainEntity': questions}
    if article.faq.get('name'):
        schema['name'] = article.faq['name']
    return schema


def howto_schema(ctx, article):
    howto = article.howto
    schema = {
        '@type': 'HowTo',
        '@id': ctx.qualify(article.url) + '#howto',
        'name': howto['name'],
        'description': howto['description'],
        'supply': howto['supply'],
        'tool': howto['tool'],
        'isPartOf': {'@id': ctx.qualify(article.url) + '#webpage'},
        'step': [],
    }
    if howto.get('time'):
        schema['totalTime'] = howto['time']
    for step in howto['steps']:
        entry = {'@type': 'HowToStep', 'name': step['name'], 'text': step.get('text', step['name'])}
        if step.get('url'):
            entry['url'] = ctx.qualify(article.url) + '#' + str(step['url']).lstrip('#')
        schema['step'].append(entry)
    return schema


def build_schema(ctx, article):
    """
    Build the schema.org graph for a fully-derived article.

    Reads taxonomies, authors, breadcrumbs and selected images, so it must run
    after the derivation steps and the AFTER_ARTICLE_PARSER_RUN handlers.
    """
    site_url = ctx.site_url.rstrip('/')
    page_url = ctx.qualify(article.url)
    graph = []

    website = {
        '@type': 'WebSite',
        '@id': _id(site_url, 'website'),
        'url': site_url + '/',
        'name': ctx.settings.get('site.title'),
        'description': ctx.settings.get('site.description'),
        'inLanguage': ctx.settings.get('site.lang'),
    }
    publisher = publisher_schema(ctx)
    if publisher:
        website['publisher'] = {'@id': publisher['@id']}
        graph.append(publisher)
    graph.append(website)

    authors = [author_schema(ctx, a) for a in article.authors]
    graph.extend(authors)

    if article.breadcrumbs:
        graph.append(breadcrumb_schema(ctx, article))

    webpage = {
        '@type': 'WebPage',
        '@id': page_url + '#webpage',
        'url': page_url,
        'name': article.name,
        'isPartOf': {'@id': website['@id']},
        'datePublished': article.published_date.iso,
        'dateModified': article.modified_date.iso,
    }
    if article.description:
        webpage['description'] = article.description
    if article.breadcrumbs:
        webpage['breadcrumb'] = {'@id': page_url + '#breadcrumb'}
    graph.append(webpage)

    if article.type == 'post':
        body = {
            '@type': 'BlogPosting',
            '@id': page_url + '#article',
            'headline': article.headline,
            'mainEntityOfPage': {'@id': webpage['@id']},
            'datePublished': article.published_date.iso,
            'dateModified': article.modified_date.iso,
            'wordCount': article.words,
            'author': [{'@id': a['@id']} for a in authors],
        }
        if publisher:
            body['publisher'] = {'@id': publisher['@id']}
        if article.tags:
            body['keywords'] = ', '.join(article.tags)
        if article.article_section:
            body['articleSection'] = list(article.article_section)
        if article.abstract is not None and not article.abstract_synthesized:
            body['abstract'] = article.abstract.text
        if article.description:
            body['description'] = article.description
        images = _images(ctx, article)
        if images:
            body['image'] = images
        if article.citations:
            body['citation'] = [
                {'@type': 'CreativeWork', 'headline': c['headline'], 'url': c.get('url')}
                for c in article.citations
            ]
        graph.append(body)

    for key, product in article.products.items():
        graph.append(product_schema(ctx, article, key, product))

    if article.faq and article.faq['faqs']:
        graph.append(faq_schema(ctx, article))

    if article.howto:
        graph.append(howto_schema(ctx, article))

    return {'@context': CONTEXT, '@graph': graph}


def schema_to_json(schema):
    return json.dumps(schema, indent=2, ensure_ascii=False, default=str)
