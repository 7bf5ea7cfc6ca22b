"""
Template compilation and source loading.

Page templates are Jinja2 sources. Compiling is pure: the same source
always yields a render function producing the same text for the same
context. A source that fails to compile raises ``TemplateSyntaxError`` and
the caller keeps whatever render function it had before.
"""
import asyncio
from pathlib import Path
from typing import Any, Dict, Mapping, Tuple

import jinja2
import structlog

from config.settings import WebsiteConfig
from error_handling.errors import TemplateSyntaxError

logger = structlog.get_logger()


class RenderFunction:
    """A compiled template: a pure function of a context mapping to text."""

    def __init__(self, template: jinja2.Template, page_id: str = None):
        self._template = template
        self.page_id = page_id

    def render(self, context: Mapping[str, Any]) -> str:
        return self._template.render(context)


class TemplateCompiler:
    """Compiles template source text into render functions."""

    def __init__(self):
        self.env = jinja2.Environment(
            autoescape=True,
            undefined=jinja2.ChainableUndefined,
            keep_trailing_newline=True,
        )

    def compile(self, source: str, page_id: str = None) -> RenderFunction:
        try:
            template = self.env.from_string(source)
        except jinja2.TemplateSyntaxError as e:
            raise TemplateSyntaxError(
                f"{e.message} (line {e.lineno})", page_id=page_id, lineno=e.lineno
            ) from e
        return RenderFunction(template, page_id=page_id)


async def read_template_source(path: Path) -> str:
    return await asyncio.to_thread(Path(path).read_text, encoding="utf-8")


class TemplateLoader:
    """Reads configured template files and compiles them."""

    def __init__(self, website: WebsiteConfig, compiler: TemplateCompiler = None):
        self.website = website
        self.compiler = compiler or TemplateCompiler()

    def page_id_for(self, file_name: str):
        """Page id of a template file name, or None if the file is not a page."""
        return self.website.pages.get(Path(file_name).name)

    async def load(self, file_name: str) -> Tuple[str, RenderFunction]:
        """
        Read and compile one template.

        Raises:
            KeyError: If the file is not in the page table
            TemplateSyntaxError: If the source does not compile
            OSError: If the file cannot be read
        """
        page_id = self.website.pages[file_name]
        source = await read_template_source(self.website.template_path(file_name))
        return page_id, self.compiler.compile(source, page_id=page_id)

    async def load_all(self) -> Dict[str, RenderFunction]:
        """Compile every configured template; broken or missing files are logged and skipped."""
        file_names = list(self.website.pages)
        results = await asyncio.gather(
            *(self.load(name) for name in file_names), return_exceptions=True
        )

        compiled = {}
        for file_name, result in zip(file_names, results):
            if isinstance(result, (TemplateSyntaxError, OSError)):
                logger.error("template_load_failed", file=file_name, error=str(result))
                continue
            if isinstance(result, BaseException):
                raise result
            page_id, render_fn = result
            compiled[page_id] = render_fn
        logger.info("templates_loaded", count=len(compiled), total=len(file_names))
        return compiled
