#!/usr/bin/env python3
"""
Settings loader for the Folio static site generator.

Configuration is layered: built-in defaults, then the site's root config file
(folio.yml, folio.yaml or folio.json), then the files in the site's ``_config``
directory, then plugin defaults (merged with ``preserve=True`` so the user's
values win) and finally command-line arguments.
"""

import copy
import json
import logging
import os
import socket
from typing import Any, Dict, List, Optional

import yaml

from .errors import ConfigError
from .utils import deep_merge


class FolioSettings:
    """Load and manage Folio configuration settings."""

    # Default configuration
    DEFAULT_SETTINGS = {
        'site': {
            'title': 'Your site title.',
            'description': 'Your site description',
            'lang': 'en',
            'url': None,
            'prod_domain': None,
            'ssl': True,
            'assets_url': '/assets',
            'dev': {'addr': '127.0.0.1', 'port': 8081},
            'hosts': {},
            'authors': {},
            'publisher': {},
            'products': {},
            'reviews': {},
            'default_article_image': None,
            'clever_descriptions': True,
            'log_to_file': True,
            'sys_plugins': [
                'images',
                'product_reviews',
                'related_posts',
                'prev_next',
                'taxonomy_pages',
                'pre_links',
                'webmentions',
            ],
            'plugins': [],
            'error_control': {
                'exit_on_first': False,
                'show_all_errors': False,
                'fail_on_article_errors': False,
            },
        },
        'locations': {
            'layouts': '_layouts',
            'site': '_site',
            'temp': '_temp',
            'cache': '_cache',
            'config': '_config',
            'logs': '_logs',
            'plugins': '_plugins',
        },
        'file_system': {
            'allow_paths': ['/_posts'],
            'ignore_paths': ['/node_modules', '_', '.'],
            'ignore_files': ['.', '_'],
            'ignore_names': ['folio.yml', 'folio.yaml', 'folio.json'],
            'ignore_exts': ['sh', 'json', 'code-workspace', 'pyc'],
            'early_parse': [],
            'just_copy': {'dirs': [], 'files': []},
        },
        'article_spec': {
            'default_type': 'page',
            'default_permalink': ':fn',
            'default_breadcrumbs': [
                {'name': 'home', 'url': '/'},
                {'calc': 'path'},
                {'calc': 'self'},
            ],
            'types': {
                'post': {
                    'fn_start': r'^\d{4}-\d{2}-\d{2}-',
                    'fn_grab_len': 10,
                    'dirs': ['/_posts'],
                    'combine_test': 'or',
                    'default_config': {
                        'permalink': ':fn',
                        'breadcrumbs': [
                            {'name': 'home', 'url': '/'},
                            {'calc': 'tags#0'},
                            {'calc': 'tags#1'},
                            {'calc': 'self'},
                        ],
                    },
                },
                'page': {
                    'default_config': {
                        'permalink': ':path/:fn',
                        'breadcrumbs': [
                            {'name': 'home', 'url': '/'},
                            {'calc': 'self'},
                        ],
                    },
                },
            },
            'exts': ['md', 'html'],
            'index_fn': 'index',
            'output_ext': '.html',
            'output_mode': 'directory',
            'terminate_url': '/',
            'abstract_extract_len': 200,
            'description_extract_len': 160,
            'multi_format': ['content', 'content_rss', 'abstract', 'summary'],
            'wpm': 250,
            'url_collision': 'warn',
            'tags_are_sections': [],
            'tags_are_types': [],
            'default_section': 'general',
        },
        'taxonomy_spec': {
            'tags': {'field': 'tags', 'path': '/tags', 'name_str': ['Tag', 'Tags']},
            'sections': {'field': 'article_section', 'path': '/sections', 'name_str': ['Section', 'Sections']},
            'types': {'field': 'article_types', 'path': '/types', 'name_str': ['Type', 'Types']},
        },
        'template_spec': {
            'default_type': 'html',
        },
        'paginate': {
            'per_page': 20,
            'dummy': '_dummies/paginate.md',
        },
        'lang_strs': {
            'en': {
                'and': 'and',
                'by': 'by',
                'home': 'home',
                'link': 'link',
                'map': 'map',
                'on': 'on',
            },
        },
        'cfg_chk': {
            'site': {
                '_compulsory': ['prod_domain'],
                '_advisory': ['title', 'description', 'publisher', 'authors'],
                'publisher': {
                    '_compulsory': ['name', 'url'],
                },
                'authors': {
                    '_each': {
                        '_compulsory': ['name', 'url'],
                    },
                },
            },
        },
    }

    # Config file names to look for (in order of preference)
    CONFIG_FILES = ['folio.yml', 'folio.yaml', 'folio.json']

    # Lists under these keys are replaced by a higher layer instead of unioned
    REPLACE_LIST_KEYS = frozenset([
        'sys_plugins',
        'plugins',
        'sizes_required',
        'types',
        'breadcrumbs',
        'default_breadcrumbs',
        'exts',
        'early_parse',
    ])

    def __init__(self, site_dir: str = None, dev_mode: bool = False):
        """
        Initialize settings loader.

        Args:
            site_dir: Site root to look for config files in. Defaults to current directory.
            dev_mode: Whether URLs should point at the local dev server.
        """
        self.site_dir = os.path.abspath(site_dir or os.getcwd())
        self.dev_mode = dev_mode
        self.settings = copy.deepcopy(self.DEFAULT_SETTINGS)
        self.config_file_path = None
        self.logger = logging.getLogger('Folio.Settings')

    # ------------------------------------------------------------------
    # Access
    # ------------------------------------------------------------------

    def __getitem__(self, key: str) -> Any:
        return self.settings[key]

    def __contains__(self, key: str) -> bool:
        return key in self.settings

    def get(self, path: str, default: Any = None) -> Any:
        """
        Look up a dotted path such as ``site.error_control.show_all_errors``.

        Args:
            path: Dotted key path
            default: Value returned when any part of the path is missing

        Returns:
            The configured value or the default
        """
        node = self.settings
        for part in path.split('.'):
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]
        return node

    def section(self, name: str) -> Dict[str, Any]:
        """Return a section, creating it empty if absent."""
        return self.settings.setdefault(name, {})

    def as_dict(self) -> Dict[str, Any]:
        return self.settings

    # ------------------------------------------------------------------
    # Merging
    # ------------------------------------------------------------------

    def merge(self, data: Dict[str, Any], preserve: bool = False) -> None:
        """
        Merge data into the whole configuration.

        Args:
            data: Data to merge
            preserve: If True, existing values win over ``data``
        """
        if not data:
            return
        if preserve:
            self.settings = deep_merge(data, self.settings, self.REPLACE_LIST_KEYS)
        else:
            self.settings = deep_merge(self.settings, data, self.REPLACE_LIST_KEYS)

    def merge_section(self, name: str, data: Dict[str, Any], preserve: bool = False) -> None:
        """
        Merge data into a single named section.

        Args:
            name: Section name
            data: Data to merge
            preserve: If True, existing values in the section win over ``data``
        """
        current = self.settings.get(name)
        if current is None:
            self.settings[name] = copy.deepcopy(data)
        elif preserve:
            self.settings[name] = deep_merge(data, current, self.REPLACE_LIST_KEYS)
        else:
            self.settings[name] = deep_merge(current, data, self.REPLACE_LIST_KEYS)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load_settings(self) -> Dict[str, Any]:
        """
        Load settings from the root config file and the config directory.

        Returns:
            Dictionary of configuration settings
        """
        config_file = self._find_config_file()

        if config_file:
            self.config_file_path = config_file
            loaded_settings = self._load_config_file(config_file)
            if loaded_settings:
                self.merge(self._parse_includes(loaded_settings))
                self.logger.info(f"Loaded configuration from: {os.path.relpath(config_file, self.site_dir)}")

        self._load_config_dir()
        return self.settings

    def _find_config_file(self) -> Optional[str]:
        """
        Find the first available configuration file.

        Returns:
            Path to config file or None if not found
        """
        for filename in self.CONFIG_FILES:
            config_path = os.path.join(self.site_dir, filename)
            if os.path.exists(config_path):
                return config_path
        return None

    def _load_config_file(self, config_path: str) -> Dict[str, Any]:
        """
        Load configuration from a file.

        Args:
            config_path: Path to the configuration file

        Returns:
            Dictionary of configuration settings
        """
        file_ext = os.path.splitext(config_path)[1].lower()
        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                if file_ext in ['.yml', '.yaml']:
                    data = yaml.safe_load(f) or {}
                elif file_ext == '.json':
                    data = json.load(f) or {}
                else:
                    raise ConfigError(f"Unsupported config file format: {file_ext}")
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in configuration file {config_path}: {e}")
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON in configuration file {config_path}: {e}")
        except (IOError, OSError) as e:
            raise ConfigError(f"Error reading configuration file {config_path}: {e}")

        if not isinstance(data, dict):
            raise ConfigError(f"Configuration file {config_path} must contain a mapping")
        return data

    def _load_config_dir(self) -> List[str]:
        """
        Merge every YAML file in the site's config directory.

        Files whose name starts with ``_`` are merged at the top level, any
        other file is merged into the section named after it.

        Returns:
            List of files loaded
        """
        config_dir = os.path.join(self.site_dir, self.get('locations.config', '_config'))
        loaded = []
        if not os.path.isdir(config_dir):
            return loaded

        for filename in sorted(os.listdir(config_dir)):
            base, ext = os.path.splitext(filename)
            if ext.lower() not in ('.yml', '.yaml') or filename.startswith('.'):
                continue
            path = os.path.join(config_dir, filename)
            data = self._load_config_file(path)
            if data.get('included') is not None and len(data) == 1:
                # Include targets are only merged where referenced.
                continue
            data = self._parse_includes(data)
            if base.startswith('_'):
                self.merge(data)
            else:
                self.merge_section(base, data)
            loaded.append(path)
            self.logger.debug(f"Loaded config file {path}")
        return loaded

    def _parse_includes(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Replace ``_include <file>`` string values with the included file's data."""
        result = {}
        for key, value in data.items():
            if isinstance(value, dict):
                result[key] = self._parse_includes(value)
            elif isinstance(value, str) and value.startswith('_include '):
                fn = value[len('_include '):].strip()
                path = os.path.join(self.site_dir, self.get('locations.config', '_config'), fn)
                if not os.path.exists(path):
                    self.logger.warning(f"YAML include file {path} cannot be found.")
                    continue
                included = self._load_config_file(path)
                if 'included' not in included:
                    self.logger.warning(f"Included YAML files must have the 'included' master key ({path}).")
                    continue
                result[key] = included['included']
            else:
                result[key] = value
        return result

    def merge_with_args(self, args_dict: Dict[str, Any]) -> Dict[str, Any]:
        """
        Merge configuration settings with command-line arguments.
        Command-line arguments take precedence over config file settings.

        Args:
            args_dict: Dictionary of command-line arguments

        Returns:
            Merged configuration dictionary
        """
        site = self.section('site')
        for key, value in args_dict.items():
            if value is None:
                continue
            if key == 'verbose':
                site['verbose'] = value
                if value:
                    site.setdefault('error_control', {})['show_all_errors'] = True
            elif key == 'show_all_errors':
                site.setdefault('error_control', {})['show_all_errors'] = value
            elif key == 'clear_cache':
                site['clear_cache'] = value
            elif key == 'no_image_cache_check':
                self.section('image_spec')['cache_check'] = not value
            elif key == 'dev':
                self.dev_mode = bool(value)
        return self.settings

    # ------------------------------------------------------------------
    # URLs and checks
    # ------------------------------------------------------------------

    def setup_urls(self) -> str:
        """
        Work out ``site.url`` for the current mode.

        Dev mode points at the local server address, possibly overridden per
        host through ``site.hosts``. Production mode needs ``site.prod_domain``.

        Returns:
            The site URL
        """
        site = self.section('site')
        if self.dev_mode:
            dev = dict(site.get('dev') or {})
            host_overrides = (site.get('hosts') or {}).get(socket.gethostname())
            if host_overrides:
                dev.update(host_overrides)
            addr = dev.get('addr', '127.0.0.1')
            port = dev.get('port', 8081)
            site['dev'] = dev
            site['url'] = f"http://{addr}:{port}"
        else:
            domain = site.get('prod_domain')
            if not domain:
                raise ConfigError("No 'site.prod_domain' is configured; it is required in production mode.")
            scheme = 'https' if site.get('ssl', True) else 'http'
            site['url'] = f"{scheme}://{domain}"

        assets_url = site.get('assets_url') or '/assets'
        if not assets_url.startswith('/'):
            assets_url = '/' + assets_url
        site['assets_url'] = assets_url
        site['dev_mode'] = self.dev_mode
        return site['url']

    def check(self) -> Dict[str, List[str]]:
        """
        Run the ``cfg_chk`` rules against the configuration.

        Missing compulsory items are logged as errors and missing advisory
        items as warnings.

        Returns:
            Dict with 'errors' and 'warnings' lists
        """
        result = {'errors': [], 'warnings': []}
        rules = self.settings.get('cfg_chk') or {}
        for key, rule in rules.items():
            self._check(rule, self.settings.get(key), key, result)

        for msg in result['errors']:
            self.logger.error(msg)
        for msg in result['warnings']:
            self.logger.warning(msg)
        return result

    def _check(self, rule: Dict[str, Any], data: Any, path: str, result: Dict[str, List[str]]) -> None:
        if not isinstance(data, dict):
            data = {}
        for item in rule.get('_compulsory', []):
            # The production domain only matters outside dev mode.
            if item == 'prod_domain' and self.dev_mode:
                continue
            if not data.get(item):
                result['errors'].append(f"Config item '{path}.{item}' is compulsory.")
        for item in rule.get('_advisory', []):
            if not data.get(item):
                result['warnings'].append(f"Config item '{path}.{item}' is advisable.")
        each = rule.get('_each')
        if each:
            for name, sub in data.items():
                self._check(each, sub, f"{path}.{name}", result)
        for key, sub_rule in rule.items():
            if key.startswith('_') or not isinstance(sub_rule, dict):
                continue
            if key in data:
                self._check(sub_rule, data.get(key), f"{path}.{key}", result)
