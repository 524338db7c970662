"""
Plugin host.

System plugins are modules in this package; user plugins are Python files
in the site's plugins directory. Either kind exposes ``init(ctx)``, which
registers event handlers, parsers or renderers on the run context.
"""

import importlib
import importlib.util
import logging
import os

from ..errors import ConfigError

SYSTEM_PLUGINS = [
    'images',
    'product_reviews',
    'related_posts',
    'prev_next',
    'taxonomy_pages',
    'pre_links',
    'webmentions',
]

logger = logging.getLogger('Folio.Plugins')


def load_system_plugin(name):
    if name not in SYSTEM_PLUGINS:
        raise ConfigError(f"Unknown system plugin: {name}")
    return importlib.import_module(f"{__name__}.{name}")


def load_user_plugin(plugins_dir, name):
    path = os.path.join(plugins_dir, name if name.endswith('.py') else name + '.py')
    if not os.path.isfile(path):
        raise ConfigError(f"Plugin '{name}' not found at {path}")
    spec = importlib.util.spec_from_file_location(f"folio_user_plugins.{os.path.splitext(os.path.basename(path))[0]}", path)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def load_plugins(ctx):
    """
    Load and initialise every enabled plugin, system plugins first.

    Returns:
        List of plugin names that were initialised
    """
    loaded = []
    modules = []
    for name in ctx.settings.get('site.sys_plugins', SYSTEM_PLUGINS) or []:
        modules.append((name, load_system_plugin(name)))

    plugins_dir = os.path.join(ctx.site_dir, ctx.settings.get('locations.plugins', '_plugins'))
    for name in ctx.settings.get('site.plugins', []) or []:
        modules.append((name, load_user_plugin(plugins_dir, name)))

    for name, module in modules:
        init = getattr(module, 'init', None)
        if not callable(init):
            raise ConfigError(f"Plugin '{name}' has no init(ctx) function")
        init(ctx)
        logger.debug(f"Initialised plugin: {name}")
        loaded.append(name)
    return loaded
