"""Tests for the webmentions plugin."""

import json
from pathlib import Path
from unittest.mock import Mock

import pytest
import requests

from folio_pkg.plugins.webmentions import DEFAULT_WEBMENTIONS_SPEC, WebmentionsPlugin, WebmentionsProcessor

from conftest import run


MENTIONS = [
    {
        'wm-target': 'https://example.com/hello-world/',
        'wm-property': 'in-reply-to',
        'wm-source': 'https://friend.example/reply',
        'published': '2023-01-02T10:00:00',
        'author': {'name': 'Friend', 'url': 'https://friend.example/'},
        'content': {'text': 'Nice <b>post</b>!'},
    },
    {
        'wm-target': 'https://example.com/hello-world/',
        'wm-property': 'like-of',
        'published': '2023-01-02T10:00:00',
        'author': {'name': 'Liker'},
        'content': {'text': 'liked'},
    },
    {
        'wm-target': 'https://example.com/hello-world/',
        'wm-property': 'mention-of',
        'wm-source': 'https://example.com/other/',
        'published': '2023-01-03T10:00:00',
        'author': {'name': 'Me', 'url': 'https://example.com/'},
        'content': {'text': 'Self mention'},
    },
    {
        'wm-target': 'https://example.com/hello-world/',
        'wm-property': 'mention-of',
        'author': {'name': 'No date'},
        'content': {'text': 'Missing published'},
    },
]


def make_spec(**overrides):
    spec = dict(DEFAULT_WEBMENTIONS_SPEC, on=True, id='example.com', own_urls=['https://example.com'])
    spec.update(overrides)
    return spec


def response_with(children):
    response = Mock()
    response.json.return_value = {'children': children}
    response.raise_for_status.return_value = None
    return response


class TestWebmentionsProcessor:
    """Test cases for WebmentionsProcessor."""

    def test_fetch_uses_api_parameters(self, ctx, mock_session):
        mock_session.get.return_value = response_with(MENTIONS)
        processor = WebmentionsProcessor(ctx, make_spec(token='secret'), session=mock_session)

        assert processor.fetch() == MENTIONS
        args, kwargs = mock_session.get.call_args
        assert args[0] == 'https://webmention.io/api/mentions.jf2'
        assert kwargs['params'] == {'domain': 'example.com', 'per-page': 10000, 'token': 'secret'}
        assert kwargs['timeout'] == 30

    def test_load_saves_cache(self, ctx, mock_session, site_dir):
        mock_session.get.return_value = response_with(MENTIONS)
        processor = WebmentionsProcessor(ctx, make_spec(), session=mock_session)

        run(processor.load())
        cache = Path(site_dir, '_webmentions', 'received.json')
        assert json.loads(cache.read_text()) == MENTIONS

    def test_load_falls_back_to_cache(self, ctx, mock_session, site_dir, caplog):
        cache = Path(site_dir, '_webmentions', 'received.json')
        cache.parent.mkdir(parents=True)
        cache.write_text(json.dumps(MENTIONS[:1]))
        mock_session.get.side_effect = requests.ConnectionError("offline")
        processor = WebmentionsProcessor(ctx, make_spec(), session=mock_session)

        assert run(processor.load()) == MENTIONS[:1]
        assert "using cached copy" in caplog.text

    def test_dev_mode_uses_cache_only(self, ctx, mock_session):
        ctx.settings['site']['dev_mode'] = True
        processor = WebmentionsProcessor(ctx, make_spec(), session=mock_session)
        assert run(processor.load()) == []
        mock_session.get.assert_not_called()

    def test_mentions_for_url_filters(self, ctx, mock_session):
        processor = WebmentionsProcessor(ctx, make_spec(), session=mock_session)
        processor.mentions = MENTIONS

        found = processor.mentions_for_url('https://example.com/hello-world/')
        assert [m['author']['name'] for m in found] == ['Friend']
        assert found[0]['content_html'] == 'Nice &lt;b&gt;post&lt;/b&gt;!'
        assert processor.mentions_for_url('https://example.com/other/') == []


class TestWebmentionsPlugin:
    """Test cases for WebmentionsPlugin."""

    def test_disabled_by_default(self, ctx):
        plugin = WebmentionsPlugin(ctx)
        assert plugin.processor is None
        assert ctx.settings.get('webmentions_spec.on') is False

    def test_enabled_without_id_logs_error(self, ctx, caplog):
        ctx.settings.merge_section('webmentions_spec', {'on': True})
        plugin = WebmentionsPlugin(ctx)
        assert plugin.processor is None
        assert "no 'webmentions_spec.id'" in caplog.text

    def test_mentions_attached_to_articles(self, ctx, mock_session):
        ctx.settings.merge_section('webmentions_spec', {'on': True, 'id': 'example.com',
                                                   'own_urls': ['https://example.com']})
        plugin = WebmentionsPlugin(ctx)
        plugin.processor.session = mock_session
        plugin.processor.mentions = MENTIONS

        article = Mock(url='/hello-world/', extensions={})
        plugin.after_article_parser_run(article)
        assert len(article.extensions['webmentions']) == 1
