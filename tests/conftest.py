"""Test configuration and fixtures for Folio tests."""

import asyncio
import logging
import os
import shutil
import sys
import tempfile
from pathlib import Path
from unittest.mock import Mock

import pytest
import yaml
from PIL import Image

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from folio_pkg.context import RunContext
from folio_pkg.pipeline import ArticlePipeline
from folio_pkg.settings import FolioSettings


SITE_CONFIG = {
    'site': {
        'title': 'Example Site',
        'description': 'An example site',
        'prod_domain': 'example.com',
        'log_to_file': False,
        'authors': {
            'alice': {'name': 'Alice Example', 'url': 'https://example.com/alice/'},
        },
        'publisher': {'name': 'Example Ltd', 'url': 'https://example.com'},
    },
}


def write_file(path, text):
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding='utf-8')
    return str(path)


def make_image(path, width, height, fmt='JPEG'):
    """Write a solid-colour image of the given size."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    Image.new('RGB', (width, height), (200, 80, 40)).save(path, format=fmt)
    return str(path)


def run(coro):
    return asyncio.run(coro)


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    temp_dir = tempfile.mkdtemp()
    yield temp_dir
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def site_dir(temp_dir):
    """A minimal site: config, two posts, a page and a home page."""
    site = Path(temp_dir) / 'site'
    site.mkdir()
    (site / 'folio.yml').write_text(yaml.dump(SITE_CONFIG), encoding='utf-8')

    write_file(site / '_posts' / '2023-01-01-hello-world.md', """---
name: Hello World
description: The first post.
tags: [python, web, notes]
---

# Hello

This is the first post with a few words in it.
""")

    write_file(site / '_posts' / '2023-02-01-second-post.md', """---
tags: [python, web]
---

The second post, newer than the first.
""")

    write_file(site / 'about.md', """---
name: About
description: About this site.
---

About the site.
""")

    write_file(site / 'index.md', """---
name: Home
description: The home page.
paginate:
  data: type.post
  per_page: 1
---

Welcome.
""")
    return str(site)


@pytest.fixture
def settings(site_dir):
    """Loaded production-mode settings for the sample site."""
    settings = FolioSettings(site_dir)
    settings.load_settings()
    settings.setup_urls()
    return settings


@pytest.fixture
def ctx(settings, site_dir):
    return RunContext(settings, site_dir)


@pytest.fixture
def pipeline(ctx):
    """An article pipeline with the markdown and html parsers registered."""
    pipeline = ArticlePipeline(ctx)
    ctx.set_extension_parser(['md', 'html'], pipeline.parse)
    return pipeline


@pytest.fixture
def mock_session():
    """Create a mock requests session."""
    session = Mock()
    session.headers = {}
    return session


@pytest.fixture(autouse=True)
def reset_folio_logger():
    """Detach the handlers a Folio build attaches to the shared logger."""
    yield
    logger = logging.getLogger('Folio')
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
