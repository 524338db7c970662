"""
Links each post to its chronological neighbours.
"""

from ..events import Event


def link_neighbours(articles):
    """
    ``articles`` is in descending date order, so the previous entry is the
    newer ("next") post and the following entry the older ("prev") one.
    """
    for pos, article in enumerate(articles):
        newer = articles[pos - 1] if pos > 0 else None
        older = articles[pos + 1] if pos + 1 < len(articles) else None
        article.extensions['prev_next'] = {
            'next': {'name': newer.name, 'url': newer.url} if newer else None,
            'prev': {'name': older.name, 'url': older.url} if older else None,
        }


def after_parse_late(ctx):
    posts = [a for a in ctx.index.type_collection('post').values() if a.published and not a.is_dummy]
    link_neighbours(posts)


def init(ctx):
    ctx.on(Event.AFTER_PARSE_LATE, after_parse_late)
