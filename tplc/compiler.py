"""
Compilation pipeline of one translation unit.

parse directives -> reconcile directives -> parse the unit -> semantic
validation -> collect -> scripting variables -> text concatenation ->
function maps -> generation -> source map.
"""

from __future__ import annotations

import ast
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional

from .config import CompilerOptions
from .context import CompilationContext
from .generator import collect, concatenate_text, generate, generate_smap, map_el_functions
from .generator.naming import make_package
from .generator.smap import SourceMap
from .nodes import CustomTag, Nodes, Visitor
from .parser import ParserController
from .taglib.cache import DescriptorCache
from .taglib.library import TagFileInfo
from .validator import (
    BeanRepository,
    PageInfo,
    set_scripting_vars,
    validate_directives,
    validate_ex_directives,
)

logger = logging.getLogger(__name__)


# --------------------------------------------------------------------------- #
# Result
# --------------------------------------------------------------------------- #
@dataclass
class CompileResult:
    """
    Output of one compile.

    Attributes:
        unit: Compiled unit path
        module: Dotted name the generated module should be stored under
        source: Generated Python source
        smap: Line map of ``source`` back to the template units
        dependants: Every other file the unit was built from, with its mtime (ms)
        tag_files: Tag files referenced by the unit, by generated module name
    """
    unit: str
    module: str
    source: str
    smap: SourceMap
    dependants: Dict[str, int] = field(default_factory=dict)
    tag_files: Dict[str, TagFileInfo] = field(default_factory=dict)

    @property
    def output_file(self) -> str:
        return module_file(self.module)


def module_file(module: str) -> str:
    """``'a.b_tpl'`` -> ``'a/b_tpl.py'``."""
    return module.replace(".", "/") + ".py"


class _TagFileCollector(Visitor):
    """Gathers the tag files custom tags of a page are implemented by."""

    def __init__(self) -> None:
        self.found: Dict[str, TagFileInfo] = {}

    def visit_custom_tag(self, n: CustomTag) -> None:
        info = n.tag_file_info
        if info is not None and info.tag_info.handler_class:
            self.found.setdefault(info.tag_info.handler_class, info)
        self.visit_body(n)


# --------------------------------------------------------------------------- #
# Compiler
# --------------------------------------------------------------------------- #
class Compiler:
    """
    Compiles units below one source root.

    Args:
        root: Source root directory
        options: Compiler options (defaults when omitted)
        cache: Descriptor cache (the process-wide one when omitted)
    """

    def __init__(
        self,
        root: Path,
        options: Optional[CompilerOptions] = None,
        cache: Optional[DescriptorCache] = None,
    ):
        self.root = Path(root)
        self.options = options or CompilerOptions()
        self.cache = cache

    def context(self, unit: str, tag_info=None) -> CompilationContext:
        return CompilationContext(self.root, unit, self.options, tag_info=tag_info, cache=self.cache)

    # ----------------------------------------------------------------- pages

    def compile(self, unit: str) -> CompileResult:
        """
        Compile a page.

        Raises:
            CompileError: First diagnostic raised by any phase
        """
        ctxt = self.context(unit)
        return self._compile(ctxt, make_package(ctxt.unit))

    def compile_tag_file(self, info: TagFileInfo) -> CompileResult:
        """Compile the tag file behind ``info`` into a simple handler module."""
        ctxt = self.context(info.path, tag_info=info.tag_info)
        return self._compile(ctxt, info.tag_info.handler_class or make_package(ctxt.unit))

    def compile_all(self, unit: str) -> List[CompileResult]:
        """Compile ``unit`` and, transitively, every tag file it uses."""
        results = [self.compile(unit)]
        done = set()
        pending = list(results[0].tag_files.values())
        while pending:
            info = pending.pop(0)
            if info.path in done:
                continue
            done.add(info.path)
            result = self.compile_tag_file(info)
            results.append(result)
            pending.extend(result.tag_files.values())
        return results

    def check(self, unit: str) -> PageInfo:
        """Parse and validate ``unit`` without generating code."""
        ctxt = self.context(unit)
        page_info, _ = self._front_end(ctxt)
        return page_info

    # -------------------------------------------------------------- pipeline

    def _new_page_info(self, ctxt: CompilationContext) -> PageInfo:
        page_info = PageInfo(BeanRepository(), ctxt.unit, ctxt.is_tag_file)
        props = ctxt.unit_properties()
        if props.el_ignored is not None:
            page_info.set_el_ignored_default(props.el_ignored)
        if props.scripting_invalid is not None:
            page_info.scripting_invalid = props.scripting_invalid
        page_info.include_prelude = list(props.include_prelude)
        page_info.include_coda = list(props.include_coda)
        if props.deferred_syntax_allowed_as_literal is not None:
            page_info.deferred_syntax_allowed_as_literal = props.deferred_syntax_allowed_as_literal
        if props.trim_directive_whitespaces is not None:
            page_info.trim_directive_whitespaces = props.trim_directive_whitespaces
        if props.buffer is not None:
            page_info.set_buffer_value(props.buffer)
        page_info.error_on_undeclared_namespace = (props.error_on_undeclared_namespace
                                                   or self.options.error_on_undeclared_namespace)
        return page_info

    def _front_end(self, ctxt: CompilationContext):
        page_info = self._new_page_info(ctxt)
        pc = ParserController(ctxt, page_info)

        # directives first: isELIgnored in any unit changes how the rest parses
        directives = pc.parse_directives(ctxt.unit)
        validate_directives(page_info, directives)

        page = pc.parse(ctxt.unit)
        default_type = ctxt.unit_properties().default_content_type
        if page_info.content_type is None and default_type is not None:
            page_info.content_type = default_type
        validate_ex_directives(page_info, page)
        logger.debug("front end done for %s", ctxt.unit)
        return page_info, page

    def _compile(self, ctxt: CompilationContext, module: str) -> CompileResult:
        page_info, page = self._front_end(ctxt)
        collect(page, page_info)

        tag_files = _TagFileCollector()
        page.visit(tag_files)

        set_scripting_vars(page)
        concatenate_text(page, page_info, self.options.trim_spaces)
        map_el_functions(page, page_info)
        source = generate(ctxt, page_info, page)
        smap = generate_smap(page, module_file(module).rsplit("/", 1)[-1], self.options.mapped_file)
        logger.info("compiled %s -> %s", ctxt.unit, module)
        return CompileResult(
            unit=ctxt.unit,
            module=module,
            source=source,
            smap=smap,
            dependants=dict(page_info.dependants),
            tag_files=tag_files.found,
        )

    # ------------------------------------------------------------ staleness

    def is_out_dated(self, unit: str, dependants: Mapping[str, int],
                     generated_mtime: Optional[int] = None) -> bool:
        """
        Whether a module generated from ``unit`` must be rebuilt.

        Args:
            unit: Unit the module was generated from
            dependants: Dependencies recorded in the module
            generated_mtime: Modification time (ms) of the generated module;
                the unit must not be newer
        """
        ctxt = self.context(unit)
        unit_mtime = ctxt.last_modified(ctxt.unit)
        if unit_mtime < 0:
            return True
        if generated_mtime is not None and unit_mtime > generated_mtime:
            logger.debug("%s is newer than its module", ctxt.unit)
            return True
        for path, recorded in dependants.items():
            if ctxt.last_modified(path) != recorded:
                logger.debug("dependency %s of %s changed", path, ctxt.unit)
                return True
        return False


def read_dependants(source: str) -> Dict[str, int]:
    """The ``_tplc_dependants`` mapping recorded in a generated module."""
    tree = ast.parse(source)
    for node in tree.body:
        if isinstance(node, ast.Assign) and any(
            isinstance(t, ast.Name) and t.id == "_tplc_dependants" for t in node.targets
        ):
            return dict(ast.literal_eval(node.value))
    return {}


def compile_unit(root: Path, unit: str, options: Optional[CompilerOptions] = None) -> CompileResult:
    """Compile one page below ``root`` with ``options``."""
    return Compiler(root, options).compile(unit)


__all__ = [
    "Compiler", "CompileResult", "compile_unit", "module_file", "read_dependants",
]
