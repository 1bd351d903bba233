"""
Side buffers of the generator.

Split methods and fragment bodies are generated out of document order
into their own buffers and spliced into the module afterwards. Nodes
generated into a buffer record line numbers relative to the buffer, so
each buffer shifts those numbers once its final position is known.
"""

from __future__ import annotations

from typing import List, Optional, Set

from ..nodes import Node, Nodes, Visitor
from .writer import CodeWriter

HELPER_CLASS_NAME = "Helper"


def _shift(n: Node, offset: int) -> None:
    if n.begin_line > 0:
        n.begin_line += offset
        n.end_line += offset
    extra = getattr(n, "extra_smap", None)
    if extra:
        n.extra_smap = [(src, out + offset) for src, out in extra]


class _LineAdjuster(Visitor):

    def __init__(self, offset: int, owners: Set[int]):
        self.offset = offset
        self.owners = owners

    def do_visit(self, n: Node) -> None:
        _shift(n, self.offset)

    def visit_custom_tag(self, n: Node) -> None:
        # a tag owning a buffer is shifted by that buffer
        if id(n) not in self.owners:
            _shift(n, self.offset)
        if n.body is not None and not n.body.generated_in_buffer:
            n.body.visit(self)


class GenBuffer:
    """
    Code generated out of order.

    The start of a custom tag may be generated into a different buffer
    than its body, hence the separate ``node`` and ``body``; either is
    None when the buffer holds code with no source counterpart.

    Args:
        node: Node owning the buffer
        body: Body generated into the buffer
        owners: Ids of all buffer-owning nodes of the unit
        indent: Indentation level the buffer starts at
    """

    def __init__(self, node: Optional[Node] = None, body: Optional[Nodes] = None,
                 owners: Optional[Set[int]] = None, indent: int = 0):
        self.node = node
        self.body = body
        self.owners = owners if owners is not None else set()
        if node is not None:
            self.owners.add(id(node))
        if body is not None:
            body.generated_in_buffer = True
        self.out = CodeWriter(indent)

    def adjust_lines(self, offset: int) -> None:
        """Shift the recorded line numbers of the buffer's nodes by ``offset``."""
        if self.node is not None:
            _shift(self.node, offset)
        if self.body is not None:
            self.body.visit(_LineAdjuster(offset, self.owners))

    def __str__(self) -> str:
        return self.out.get_text()


class Fragment:
    def __init__(self, id_: int, node: Node, owners: Set[int], indent: int):
        self.id = id_
        self.gen_buffer = GenBuffer(None, node.body, owners, indent)


class FragmentHelperClass:
    """
    The nested dispatcher class of a page.

    Every fragment body becomes an ``invoke<N>`` method; ``invoke`` picks
    the method by the discriminator the helper was constructed with.

    Args:
        class_indent: Indentation of the ``class`` statement
    """

    def __init__(self, class_indent: int = 1, class_name: str = HELPER_CLASS_NAME):
        self.class_name = class_name
        self.class_indent = class_indent
        self.used = False
        self.fragments: List[Fragment] = []
        self.class_buffer = GenBuffer(indent=class_indent)

    def open_fragment(self, parent: Node, owners: Set[int], local_variables) -> Fragment:
        """
        Start a new fragment body and return it.

        ``local_variables`` is called with the fragment's writer to emit
        the locals the body needs.
        """
        result = Fragment(len(self.fragments), parent, owners, self.class_indent + 1)
        self.fragments.append(result)
        self.used = True
        parent.inner_class_name = self.class_name
        out = result.gen_buffer.out
        out.blank()
        out.printil(f"def invoke{result.id}(self, out):")
        out.push_indent()
        out.printil("page_context = self.jsp_context")
        out.printil("_tplc_push_body_count = self.push_body_count")
        local_variables(out, parent)
        return result

    def close_fragment(self, fragment: Fragment) -> None:
        out = fragment.gen_buffer.out
        out.printil("return False")
        out.pop_indent()

    def generate_postamble(self) -> None:
        out = self.class_buffer.out
        out.blank()
        out.printil(f"class {self.class_name}(_tplc_rt.FragmentHelper):")
        out.push_indent()
        for fragment in self.fragments:
            fragment.gen_buffer.adjust_lines(out.line - 1)
            out.print_multi_ln(str(fragment.gen_buffer))
        out.blank()
        out.printil("def invoke(self, writer):")
        out.push_indent()
        out.printil("if writer is not None:")
        out.push_indent()
        out.printil("out = self.jsp_context.push_body(writer)")
        out.pop_indent()
        out.printil("else:")
        out.push_indent()
        out.printil("out = self.jsp_context.get_out()")
        out.pop_indent()
        out.printil("try:")
        out.push_indent()
        for i, fragment in enumerate(self.fragments):
            keyword = "if" if i == 0 else "elif"
            out.printil(f"{keyword} self.discriminator == {fragment.id}:")
            out.push_indent()
            out.printil(f"self.invoke{fragment.id}(out)")
            out.pop_indent()
        out.pop_indent()
        out.printil("except _tplc_rt.SkipPageException:")
        out.push_indent()
        out.printil("raise")
        out.pop_indent()
        out.printil("except Exception as e:")
        out.push_indent()
        out.printil("raise _tplc_rt.TagException(e) from e")
        out.pop_indent()
        out.printil("finally:")
        out.push_indent()
        out.printil("if writer is not None:")
        out.push_indent()
        out.printil("self.jsp_context.pop_body()")
        out.pop_indent()
        out.pop_indent()
        out.pop_indent()
        out.pop_indent()

    def adjust_lines(self, offset: int) -> None:
        for fragment in self.fragments:
            fragment.gen_buffer.adjust_lines(offset)

    def __str__(self) -> str:
        return str(self.class_buffer)


__all__ = ["GenBuffer", "Fragment", "FragmentHelperClass", "HELPER_CLASS_NAME"]
