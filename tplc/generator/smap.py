"""
Source map from generated lines back to template lines.

The map is a single stratum of ``LineInfo`` entries, compacted and
rendered the same way as a JSR-045 SMAP. Besides rendering it answers
the question a runtime error needs answered: which template line
produced a given generated line.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from ..nodes import Node, Nodes, Visitor

logger = logging.getLogger(__name__)

STRATUM_NAME = "TPL"


@dataclass
class LineInfo:
    input_start: int
    output_start: int
    file_id: int = 0
    input_count: int = 1
    output_increment: int = 1
    file_id_set: bool = False

    def __post_init__(self) -> None:
        for name in ("input_start", "output_start", "file_id", "input_count", "output_increment"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must not be negative: {getattr(self, name)}")

    def render(self) -> str:
        out = [str(self.input_start)]
        if self.file_id_set:
            out.append(f"#{self.file_id}")
        if self.input_count != 1:
            out.append(f",{self.input_count}")
        out.append(f":{self.output_start}")
        if self.output_increment != 1:
            out.append(f",{self.output_increment}")
        return "".join(out) + "\n"


@dataclass
class SmapStratum:
    name: str = STRATUM_NAME
    file_names: List[str] = field(default_factory=list)
    file_paths: List[str] = field(default_factory=list)
    lines: List[LineInfo] = field(default_factory=list)
    _last_file_id: int = 0

    def add_file(self, name: str, path: Optional[str] = None) -> None:
        path = path or name
        if path not in self.file_paths:
            self.file_names.append(name)
            self.file_paths.append(path)

    def add_line_data(self, input_start: int, path: str, input_count: int,
                      output_start: int, output_increment: int) -> None:
        """
        Raises:
            ValueError: ``path`` was not added with ``add_file``
        """
        try:
            file_id = self.file_paths.index(path)
        except ValueError:
            raise ValueError(f"unknown input file: {path}") from None
        # nodes that produced no code
        if output_start == 0:
            return
        li = LineInfo(input_start, output_start, input_count=input_count,
                      output_increment=output_increment)
        if file_id != self._last_file_id:
            li.file_id = file_id
            li.file_id_set = True
        self._last_file_id = file_id
        self.lines.append(li)

    def optimize_line_section(self) -> None:
        """Merge entries that extend one another."""
        lines = self.lines
        # same input line, contiguous output: widen the increment
        i = 0
        while i < len(lines) - 1:
            li, nxt = lines[i], lines[i + 1]
            if (not nxt.file_id_set
                    and nxt.input_start == li.input_start
                    and nxt.input_count == 1 and li.input_count == 1
                    and nxt.output_start == li.output_start + li.input_count * li.output_increment):
                li.output_increment = nxt.output_start - li.output_start + nxt.output_increment
                del lines[i + 1]
            else:
                i += 1
        # consecutive input lines with the same increment: widen the count
        i = 0
        while i < len(lines) - 1:
            li, nxt = lines[i], lines[i + 1]
            if (not nxt.file_id_set
                    and nxt.input_start == li.input_start + li.input_count
                    and nxt.output_increment == li.output_increment
                    and nxt.output_start == li.output_start + li.input_count * li.output_increment):
                li.input_count += nxt.input_count
                del lines[i + 1]
            else:
                i += 1

    def render(self) -> Optional[str]:
        if not self.file_names or not self.lines:
            return None
        out = [f"*S {self.name}\n", "*F\n"]
        for i, (name, path) in enumerate(zip(self.file_names, self.file_paths)):
            out.append(f"+ {i} {name}\n")
            out.append(path.lstrip("/") + "\n")
        out.append("*L\n")
        out.extend(li.render() for li in self.lines)
        return "".join(out)

    def lookup(self, output_line: int) -> Optional[Tuple[str, int]]:
        """(unit path, template line) that generated ``output_line``."""
        file_id = 0
        for li in self.lines:
            if li.file_id_set:
                file_id = li.file_id
            step = max(li.output_increment, 1)
            for k in range(li.input_count):
                first = li.output_start + k * li.output_increment
                if first <= output_line < first + step:
                    return self.file_paths[file_id], li.input_start + k
        return None


class SourceMap:
    """Rendered map of one generated module."""

    def __init__(self, output_file: str, stratum: SmapStratum):
        self.output_file = output_file
        self.stratum = stratum

    def render(self) -> str:
        body = self.stratum.render() or ""
        return f"SMAP\n{self.output_file}\n{self.stratum.name}\n{body}*E\n"

    def lookup(self, output_line: int) -> Optional[Tuple[str, int]]:
        return self.stratum.lookup(output_line)

    def __str__(self) -> str:
        return self.render()


def _unqualify(path: str) -> str:
    return path.rsplit("/", 1)[-1]


class _SmapGenVisitor(Visitor):

    def __init__(self, stratum: SmapStratum, break_at_lf: bool):
        self.smap = stratum
        self.break_at_lf = break_at_lf

    def _with_smap(self, n: Node) -> None:
        self._do_smap(n)
        self.visit_body(n)

    visit_include_action = _with_smap
    visit_forward_action = _with_smap
    visit_get_property = _with_smap
    visit_set_property = _with_smap
    visit_use_bean = _with_smap
    visit_plugin = _with_smap
    visit_custom_tag = _with_smap
    visit_uninterpreted_tag = _with_smap
    visit_jsp_element = _with_smap
    visit_jsp_text = _with_smap
    visit_jsp_body = _with_smap
    visit_invoke_action = _with_smap
    visit_do_body_action = _with_smap

    def visit_el_expression(self, n: Node) -> None:
        self._do_smap(n)

    def visit_named_attribute(self, n: Node) -> None:
        self.visit_body(n)

    def _scripting(self, n: Node) -> None:
        self._do_smap_text(n)

    visit_declaration = _scripting
    visit_expression = _scripting
    visit_scriptlet = _scripting

    def visit_template_text(self, n: Node) -> None:
        mark = n.start
        if mark is None:
            return
        self.smap.add_file(_unqualify(mark.unit), mark.unit)
        increment = 1 if self.break_at_lf else 0
        self.smap.add_line_data(mark.line, mark.unit, 1, n.begin_line, increment)
        for src_offset, out_line in n.extra_smap or ():
            self.smap.add_line_data(mark.line + src_offset, mark.unit, 1, out_line, increment)

    def _do_smap(self, n: Node, in_line_count: int = 1, out_increment: Optional[int] = None,
                 skipped_lines: int = 0) -> None:
        mark = n.start
        if mark is None:
            return
        if out_increment is None:
            out_increment = n.end_line - n.begin_line
        self.smap.add_file(_unqualify(mark.unit), mark.unit)
        self.smap.add_line_data(mark.line + skipped_lines, mark.unit,
                                in_line_count - skipped_lines,
                                n.begin_line + skipped_lines if n.begin_line else 0,
                                out_increment)

    def _do_smap_text(self, n: Node) -> None:
        """Map code line by line, skipping blank and comment lines at the top."""
        lines = (n.text or "").split("\n")
        skipped = 0
        for line in lines[:-1]:
            stripped = line.strip()
            if stripped and not stripped.startswith("#"):
                break
            skipped += 1
        self._do_smap(n, len(lines), 1, skipped)


def generate_smap(page: Nodes, output_file: str, break_at_lf: bool) -> SourceMap:
    """
    Build the map of a generated module from the line annotations the
    generator left on ``page``.
    """
    stratum = SmapStratum()
    page.visit(_SmapGenVisitor(stratum, break_at_lf))
    stratum.optimize_line_section()
    logger.debug("source map for %s: %d entries", output_file, len(stratum.lines))
    return SourceMap(output_file, stratum)


__all__ = ["LineInfo", "SmapStratum", "SourceMap", "generate_smap", "STRATUM_NAME"]
