import asyncio
import logging
import os
import shutil
import time
from datetime import datetime

from .context import RunContext
from .discovery import FileWalker
from .errors import FolioError
from .events import Event
from .paginate import PaginationProcessor
from .pipeline import ArticlePipeline
from .plugins import load_plugins
from .render import OutputWriter, TemplateRenderer, report_errors
from .server import serve
from .settings import FolioSettings


class InfoFilter(logging.Filter):
    """Filter to allow warnings and only selected INFO messages to be shown in the console."""
    allowed_messages = [
        "Site build completed in",
        "Total articles generated:",
        "Total posts generated:",
        "Total pages generated:",
        "Total words:",
        "Total images processed:",
        "Total files copied:",
        "Articles that failed:",
        "Parsing images",
        "Processing taxonomy pages",
        "Processing webmentions",
        "Rendering articles",
    ]

    def filter(self, record):
        if record.levelno >= logging.WARNING:
            return True
        return any(msg in record.getMessage() for msg in self.allowed_messages)


class Folio:
    """Builds one site: configuration, parse phases, pagination, rendering and copying."""

    def __init__(self, site_dir='.', dev=False, args=None):
        self.site_dir = os.path.abspath(site_dir)
        self.settings = FolioSettings(self.site_dir, dev_mode=dev)
        self.settings.load_settings()
        self.settings.merge_with_args(args or {})

        self.setup_logging()
        self.settings.setup_urls()
        self.settings.check()

        self.ctx = RunContext(self.settings, self.site_dir)
        self.pipeline = ArticlePipeline(self.ctx)
        self.template_renderer = None
        self.leftovers = []
        self.errors = []

    def setup_logging(self):
        """Set up the console handler and the per-run log file."""
        self.logger = logging.getLogger('Folio')
        self.logger.setLevel(logging.DEBUG)
        for handler in list(self.logger.handlers):
            self.logger.removeHandler(handler)
            handler.close()

        verbose = bool(self.settings.get('site.verbose'))
        console_handler = logging.StreamHandler()
        console_handler.setLevel(logging.INFO)
        if not verbose:
            console_handler.addFilter(InfoFilter())
        console_handler.setFormatter(logging.Formatter('%(message)s'))
        self.logger.addHandler(console_handler)

        self.log_file = None
        if self.settings.get('site.log_to_file', True):
            logs_dir = os.path.join(self.site_dir, self.settings.get('locations.logs', '_logs'))
            os.makedirs(logs_dir, exist_ok=True)
            self.log_file = os.path.join(logs_dir, datetime.now().strftime('folio_%Y-%m-%d_%H-%M-%S.log'))
            file_handler = logging.FileHandler(self.log_file, encoding='utf-8')
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
            self.logger.addHandler(file_handler)

    def close_logging(self):
        for handler in list(self.logger.handlers):
            self.logger.removeHandler(handler)
            handler.close()

    def clean_output(self):
        """Empty the output and temp directories, and the cache when asked to."""
        dirs = [self.ctx.output_dir, self.ctx.temp_dir]
        if self.settings.get('site.clear_cache'):
            self.logger.info(f"Clearing cache: {self.ctx.cache_dir}")
            dirs.append(self.ctx.cache_dir)
        for path in dirs:
            if os.path.isdir(path):
                shutil.rmtree(path)
        os.makedirs(self.ctx.output_dir, exist_ok=True)

    def render_html(self, article):
        """Default renderer for html layouts."""
        if self.template_renderer is None:
            self.template_renderer = TemplateRenderer(self.ctx)
        return self.template_renderer.render(article)

    def register_core_handlers(self):
        exts = self.settings.get('article_spec.exts', ['md', 'html'])
        self.ctx.set_extension_parser(exts, self.pipeline.parse)
        self.ctx.set_extension_renderer('html', self.render_html)

    def get_files(self):
        walker = FileWalker(self.site_dir, self.settings.section('file_system'),
                            extra_ignore=[self.ctx.output_dir, self.ctx.cache_dir, self.ctx.temp_dir])
        return walker.walk()

    def partition(self, files):
        """Split files into (early, late, leftovers) by their registered parsers."""
        early, late, leftovers = [], [], []
        for path in files:
            ext = os.path.splitext(path)[1].lstrip('.').lower()
            if self.ctx.get_parser(ext) is None:
                leftovers.append(path)
            elif ext in self.ctx.early_parse:
                early.append(path)
            else:
                late.append(path)
        return early, late, leftovers

    def rel_path(self, path):
        return '/' + os.path.relpath(path, self.site_dir).replace(os.sep, '/')

    async def parse_batch(self, files, phase):
        """Parse files concurrently, collecting per-file failures."""
        errors = []
        exit_on_first = self.settings.get('site.error_control.exit_on_first', False)

        async def guarded(path):
            parser = self.ctx.get_parser(os.path.splitext(path)[1])
            try:
                await parser(path)
            except Exception as e:
                if exit_on_first:
                    raise
                errors.append((self.rel_path(path), e))

        await asyncio.gather(*(guarded(path) for path in files))
        report_errors(self.logger, phase, errors, self.settings.get('site.error_control.show_all_errors', False))
        self.ctx.counts['failed'] += len(errors)
        self.errors.extend(errors)
        return errors

    def copy_leftovers(self):
        """Copy files no parser claimed, and the configured just-copy paths, verbatim."""
        out = self.ctx.output_dir
        for path in self.leftovers:
            dest = os.path.join(out, os.path.relpath(path, self.site_dir))
            os.makedirs(os.path.dirname(dest), exist_ok=True)
            shutil.copy2(path, dest)
            self.ctx.counts['copied'] += 1
            self.logger.debug(f"Copied {self.rel_path(path)}")

        just_copy = self.settings.get('file_system.just_copy') or {}
        for rel in just_copy.get('dirs') or []:
            src = os.path.join(self.site_dir, rel.strip('/'))
            if not os.path.isdir(src):
                self.logger.warning(f"Just-copy directory does not exist: {rel}")
                continue
            shutil.copytree(src, os.path.join(out, rel.strip('/')), dirs_exist_ok=True)
            self.ctx.counts['copied'] += 1
        for rel in just_copy.get('files') or []:
            src = os.path.join(self.site_dir, rel.strip('/'))
            if not os.path.isfile(src):
                self.logger.warning(f"Just-copy file does not exist: {rel}")
                continue
            dest = os.path.join(out, rel.strip('/'))
            os.makedirs(os.path.dirname(dest), exist_ok=True)
            shutil.copy2(src, dest)
            self.ctx.counts['copied'] += 1

    async def run(self):
        """Run every build phase in order. Returns the process exit code."""
        start = time.time()
        ctx = self.ctx

        self.register_core_handlers()
        load_plugins(ctx)
        await ctx.emit(Event.AFTER_CONFIG, ctx)

        self.clean_output()
        early, late, self.leftovers = self.partition(self.get_files())

        await ctx.emit(Event.BEFORE_PARSE_EARLY, ctx)
        await self.parse_batch(early, 'early parsing')
        await ctx.emit(Event.AFTER_PARSE_EARLY, ctx)

        await ctx.emit(Event.BEFORE_PARSE_LATE, ctx)
        await self.parse_batch(late, 'parsing')
        ctx.index.sort_all()
        await ctx.emit(Event.AFTER_PARSE_LATE, ctx)

        pag_errors = await PaginationProcessor(ctx, self.pipeline).process()
        report_errors(self.logger, 'pagination', pag_errors,
                      self.settings.get('site.error_control.show_all_errors', False))
        ctx.counts['failed'] += len(pag_errors)
        self.errors.extend(pag_errors)

        self.logger.info(f"Rendering articles: {len(ctx.render_queue)}")
        writer = OutputWriter(ctx)
        failed = await writer.render_all()
        ctx.counts['failed'] += failed
        self.errors.extend(writer.errors)

        self.copy_leftovers()

        counts = ctx.counts
        self.logger.info(f"Site build completed in {time.time() - start:.6f} seconds.")
        self.logger.info(f"Total articles generated: {counts['articles']}")
        self.logger.info(f"Total posts generated: {counts['posts']}")
        self.logger.info(f"Total pages generated: {counts['pages']}")
        self.logger.info(f"Total words: {counts['words']}")
        self.logger.info(f"Total images processed: {counts['images']}")
        self.logger.info(f"Total files copied: {counts['copied']}")
        if counts['failed']:
            self.logger.info(f"Articles that failed: {counts['failed']}")

        if counts['failed'] and self.settings.get('site.error_control.fail_on_article_errors', False):
            return 1
        return 0

    def build(self):
        """Build the site. Returns the process exit code."""
        try:
            return asyncio.run(self.run())
        except FolioError as e:
            self.logger.error(f"Build aborted: {e}")
            raise

    def serve(self):
        """Serve the output directory on the dev address."""
        dev = self.settings.get('site.dev') or {}
        serve(self.ctx.output_dir, dev.get('addr', '127.0.0.1'), dev.get('port', 8081))
