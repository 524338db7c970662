"""
Related posts: posts that share tags with each other.
"""

from ..collection import published_ms
from ..events import Event

DEFAULT_RELATED_POSTS_SPEC = {
    'default_matches_min': 2,
    'exclude_taxonomies': [],
    'max_related_posts': 4,
}


def find_related(posts, spec):
    """
    Map each post URL to its related posts.

    A candidate must share at least ``default_matches_min`` tags (after
    removing ``exclude_taxonomies``). Candidates are ordered by the number of
    shared tags, then newest first, and capped at ``max_related_posts``.
    """
    excluded = set(spec.get('exclude_taxonomies') or [])
    minimum = max(1, int(spec.get('default_matches_min') or 1))
    limit = int(spec.get('max_related_posts') or 0)

    tags = {}
    for post in posts:
        kept = [t for t in post.tags if t not in excluded]
        if kept:
            tags[post.url] = (post, set(kept))

    related = {}
    for src_url, (src, src_tags) in tags.items():
        matches = []
        for tar_url, (target, tar_tags) in tags.items():
            if tar_url == src_url:
                continue
            shared = src_tags & tar_tags
            if len(shared) >= minimum:
                matches.append((len(shared), published_ms(target), target))
        if not matches:
            continue
        matches.sort(key=lambda m: (m[0], m[1]), reverse=True)
        if limit:
            matches = matches[:limit]
        related[src_url] = [m[2] for m in matches]
    return related


def after_parse_late(ctx):
    posts = [a for a in ctx.index.type_collection('post').values() if not a.is_dummy and a.published]
    spec = ctx.settings.section('related_posts_spec')
    by_url = {a.url: a for a in posts}
    for url, targets in find_related(posts, spec).items():
        article = by_url[url]
        article.extensions['related_posts'] = [
            {'name': t.name, 'url': t.url, 'description': t.description} for t in targets
        ]


def init(ctx):
    ctx.settings.merge_section('related_posts_spec', DEFAULT_RELATED_POSTS_SPEC, preserve=True)
    ctx.on(Event.AFTER_PARSE_LATE, after_parse_late)
