"""
Python code generation for a validated page or tag file.

One ``GenerateVisitor`` pass writes the body of ``service`` (or
``do_tag`` for tag files) in document order. Split methods and fragment
bodies go to side buffers that are spliced in after the body; every node
records the generated lines it produced, which is what the source map is
built from.
"""

from __future__ import annotations

import logging
import re
import time
import zlib
from typing import TYPE_CHECKING, Dict, List, Optional, Tuple

from ..errors import CompileError
from ..nodes import AttributeKind, AttributeValue, CustomTag, Node, Nodes, Visitor
from ..taglib.hooks import VariableInfo
from ..taglib.model import TagInfo, VariableScope
from ..version import tool_version
from .fragments import HELPER_CLASS_NAME, FragmentHelperClass, GenBuffer
from .naming import make_identifier_for_attribute, quote, to_python_type
from .writer import INDENT, CodeWriter

if TYPE_CHECKING:  # pragma: no cover
    from ..context import CompilationContext
    from ..validator.page_info import PageInfo

logger = logging.getLogger(__name__)

RUNTIME = "_tplc_rt"
CHAR_ARRAY_LIMIT = 16384
IE_CLASS_ID = "clsid:8AD9C840-044E-11D1-B3E9-00805F499D93"

_SCOPES = {
    "request": "_tplc_rt.REQUEST_SCOPE",
    "session": "_tplc_rt.SESSION_SCOPE",
    "application": "_tplc_rt.APPLICATION_SCOPE",
}

_BLOCK_END = re.compile(r"end\w*$")
_BLOCK_CONTINUATION = re.compile(r"(else|elif|except|finally)\b.*:$")


# --------------------------------------------------------------------------- #
# Helpers
# --------------------------------------------------------------------------- #
def scope_constant(scope: Optional[str]) -> str:
    return _SCOPES.get(scope or "", "_tplc_rt.PAGE_SCOPE")


def split_class_ref(ref: str, is_tag_file: bool = False) -> Tuple[str, str]:
    """
    ``'pkg.mod:Cls'`` -> ``('pkg.mod', 'Cls')``.

    Tag file handlers live in a module of their own named like the class,
    so ``'tplc_tags.web.a_tag'`` imports ``a_tag`` from that module.
    """
    module, sep, name = ref.partition(":")
    if sep:
        return module, name
    if is_tag_file:
        return ref, ref.rpartition(".")[2]
    module, _, name = ref.rpartition(".")
    return module, name


def code_lines(text: str) -> List[str]:
    """
    Lines of a code block dedented to column zero, one per source line.

    The first line starts right after the opening delimiter and is
    stripped on its own; the others lose their common indentation. When
    the first line opens a block and the next code line ends up at column
    zero, the following lines are indented one level.
    """
    lines = text.expandtabs(8).split("\n")
    first = lines[0].strip()
    rest = [line.rstrip() for line in lines[1:]]
    indents = [len(line) - len(line.lstrip()) for line in rest if line]
    common = min(indents) if indents else 0
    rest = [line[common:] for line in rest]
    if first.endswith(":"):
        following = next((line for line in rest if line and not line.startswith("#")), None)
        if following is not None and not following[0].isspace():
            rest = [INDENT + line if line else "" for line in rest]
    return [first] + rest


def _next_code_line(lines: List[str], index: int) -> Optional[str]:
    for line in lines[index + 1:]:
        if line and not line.lstrip().startswith("#"):
            return line
    return None


def _first_code_index(lines: List[str]) -> Optional[int]:
    for i, line in enumerate(lines):
        if line and not line.startswith("#"):
            return i
    return None


def _closes_block(line: str) -> bool:
    return bool(_BLOCK_END.match(line) or _BLOCK_CONTINUATION.match(line))


def convert_string(type_name: str, s: str, is_named_attribute: bool) -> str:
    """
    Code for a compile-time string converted to ``type_name``.

    Named attribute values are already variables holding a string; plain
    literals of the basic types become literals of that type.
    """
    quoted = s if is_named_attribute else quote(s)
    if type_name in ("str", "object"):
        return quoted
    if not is_named_attribute:
        value = s.strip()
        if type_name == "bool":
            return "True" if value.lower() == "true" else "False"
        try:
            if type_name == "int":
                return repr(int(value)) if value else "0"
            if type_name == "float":
                return repr(float(value)) if value else "0.0"
        except ValueError:
            pass
    return f"{RUNTIME}.coerce({quoted}, {quote(type_name)})"


def tag_handler_pool_name(n: CustomTag) -> str:
    """
    Pool key of a classic tag call site.

    Only call sites with the same tag, the same attribute names and the
    same body emptiness share handler instances.
    """
    name = f"_tplc_tagPool_{n.prefix}_{n.local_name}"
    names = [a.qname for a in n.attrs or ()]
    names.extend(na.name or "" for na in n.get_named_attribute_nodes())
    names.sort(reverse=True)
    if names:
        name += "&"
    for attr in names:
        name += "_" + attr
    if n.has_empty_body():
        name += "_nobody"
    return make_identifier_for_attribute(name)


def find_jsp_body(parent: Node) -> Optional[Node]:
    for n in parent.body or ():
        if n.kind == "jsp_body":
            return n
    return None


def generate_local_variables(out: CodeWriter, n: Node) -> None:
    """Implicit objects a split method or fragment body needs."""
    ci = n.child_info
    if ci.has_use_bean:
        out.printil("session = page_context.get_session()")
        out.printil("application = page_context.get_servlet_context()")
    if ci.has_use_bean or ci.has_include_action or ci.has_set_property or ci.has_param_action:
        out.printil("request = page_context.get_request()")
    if ci.has_include_action:
        out.printil("response = page_context.get_response()")


class _Concat:
    """String concatenation expression with adjacent literals merged."""

    def __init__(self) -> None:
        self.parts: List[Tuple[bool, str]] = []

    def lit(self, text: str) -> "_Concat":
        if self.parts and self.parts[-1][0]:
            self.parts[-1] = (True, self.parts[-1][1] + text)
        else:
            self.parts.append((True, text))
        return self

    def expr(self, code: str) -> "_Concat":
        self.parts.append((False, code))
        return self

    def render(self) -> str:
        if not self.parts:
            return '""'
        return " + ".join(quote(v) if is_lit else v for is_lit, v in self.parts)


# --------------------------------------------------------------------------- #
# Pre-pass: handler classes and pools
# --------------------------------------------------------------------------- #
class _HandlerListVisitor(Visitor):

    def __init__(self, gen: "Generator"):
        self.gen = gen

    def visit_custom_tag(self, n: CustomTag) -> None:
        self.gen.register_handler(n)
        if self.gen.is_pooling_enabled and not n.implements_simple_tag and not n.implements_id_consumer:
            n.pool_name = tag_handler_pool_name(n)
            if n.pool_name not in self.gen.pool_names:
                self.gen.pool_names.append(n.pool_name)
        self.visit_body(n)


class _DeclarationVisitor(Visitor):

    def __init__(self, out: CodeWriter):
        self.out = out

    def visit_declaration(self, n: Node) -> None:
        n.begin_line = self.out.line
        self.out.print_block(code_lines(n.text or ""))
        n.end_line = self.out.line


class _ParamVisitor(Visitor):
    """Query string of the ``jsp:param`` children of an include or forward."""

    def __init__(self, gen: "GenerateVisitor", separator: str):
        self.gen = gen
        self.separator = separator
        self.parts: List[str] = []

    def visit_param_action(self, n: Node) -> None:
        name = n.get_text_attribute("name")
        value = self.gen.attribute_value(n.value, True, "str")
        self.parts.append(
            f" + {self.separator} + {RUNTIME}.url_encode({quote(name)}, request.get_character_encoding())"
            f' + "=" + {value}'
        )
        self.separator = '"&"'


# --------------------------------------------------------------------------- #
# Body generation
# --------------------------------------------------------------------------- #
class GenerateVisitor(Visitor):
    """
    Writes the code of every node in document order.

    ``parent`` is the expression of the innermost enclosing handler and
    ``page_ref`` the expression of the page (or tag) instance, both of
    which change inside split methods and fragment bodies.
    """

    def __init__(self, gen: "Generator", out: CodeWriter):
        self.gen = gen
        self.page_info = gen.page_info
        self.options = gen.options
        self.is_tag_file = gen.is_tag_file
        self.out = out
        self.methods_buffered = gen.methods_buffered
        self.fragment_helper_class = gen.fragment_helper_class
        self.owners = gen.owners

        self.parent: Optional[str] = None
        self.is_simple_tag_parent = False
        self.push_body_count_var: Optional[str] = None
        self.simple_tag_handler_var: Optional[str] = None
        self.is_simple_tag_handler = False
        self.is_fragment = False
        self.page_ref = "self"
        self.method_nesting = 0
        self.tag_var_numbers: Dict[str, int] = {}
        self.jsp_id_count = 0
        # open persistent scriptlet blocks, one counter per body
        self.script_blocks: List[int] = []

    # ---------------------------------------------------------------- basics

    def visit_body(self, n: Node) -> None:
        self.script_blocks.append(0)
        super().visit_body(n)
        if self.script_blocks.pop():
            raise CompileError("error.scriptlet.unclosed_block", mark=n.start)

    def _return_skip(self) -> str:
        return "return True" if self.method_nesting > 0 or self.is_fragment else "return"

    def _interpreter_call(self, expression: str, type_name: str, map_name: Optional[str]) -> str:
        return (f"{RUNTIME}.evaluate({quote(expression)}, {quote(type_name)}, "
                f"page_context, {map_name or 'None'})")

    def attribute_value(self, attr: AttributeValue, encode: bool, expected_type: str) -> str:
        """Code evaluating an attribute of a standard action."""
        v = attr.value
        if not attr.is_named_attribute and v is None:
            return '""'
        if attr.is_expression:
            code = f"str({v})" if encode else v
        elif attr.is_el_interpreter_input:
            code = self._interpreter_call(v, expected_type, attr.el.map_name if attr.el else None)
        elif attr.is_named_attribute:
            return attr.named_attribute_node.temporary_variable_name
        else:
            code = quote(v)
        if encode:
            return f"{RUNTIME}.url_encode({code}, request.get_character_encoding())"
        return code

    # ------------------------------------------------------------- scripting

    def visit_declaration(self, n: Node) -> None:
        pass

    def visit_expression(self, n: Node) -> None:
        text = (n.text or "").strip(" \t")
        closing = "\n)" if "#" in text.rsplit("\n", 1)[-1] else ")"
        n.begin_line = self.out.line
        self.out.printil("out.print(" + text + closing)
        n.end_line = self.out.line

    def _push_script_block(self) -> None:
        self.out.push_indent()
        self.script_blocks[-1] += 1

    def _pop_script_block(self, n: Node) -> None:
        if not self.script_blocks or self.script_blocks[-1] == 0:
            raise CompileError("error.scriptlet.unbalanced_end", mark=n.start)
        self.script_blocks[-1] -= 1
        self.out.pop_indent()

    def visit_scriptlet(self, n: Node) -> None:
        """
        Emit code one line per source line.

        A top-level line ending in ``:`` with no indented lines after it
        leaves its block open for the template that follows; ``else:``
        style lines continue such a block and a line ``end`` closes it.
        """
        out = self.out
        lines = code_lines(n.text or "")
        first = _first_code_index(lines)
        if first is not None and _closes_block(lines[first]):
            self._pop_script_block(n)
        n.begin_line = out.line
        inline = False
        for i, line in enumerate(lines):
            if not line:
                out.blank()
                continue
            if line.lstrip().startswith("#"):
                out.printil(line, statement=False)
                continue
            if line[0].isspace():
                out.printil(line)
                continue
            following = _next_code_line(lines, i)
            opens_inline = line.endswith(":") and following is not None and following[0].isspace()
            if _BLOCK_END.match(line):
                if i != first:
                    self._pop_script_block(n)
                out.printil("# " + line, statement=False)
                inline = False
            elif _BLOCK_CONTINUATION.match(line) and not inline:
                if i != first:
                    self._pop_script_block(n)
                out.printil(line)
                inline = opens_inline
                if not opens_inline:
                    self._push_script_block()
            elif line.endswith(":"):
                out.printil(line)
                inline = opens_inline
                if not opens_inline:
                    self._push_script_block()
            else:
                out.printil(line)
                inline = False
        n.end_line = out.line

    def visit_el_expression(self, n: Node) -> None:
        n.begin_line = self.out.line
        expression = f"{n.type}{{{n.text}}}"
        if not self.page_info.is_el_ignored and n.el is not None:
            self.out.printil(f"out.write({self._interpreter_call(expression, 'str', n.el.map_name)})")
        else:
            self.out.printil(f"out.write({quote(expression)})")
        n.end_line = self.out.line

    # ------------------------------------------------------ standard actions

    def _prepare_params(self, parent: Optional[Node]) -> None:
        """Evaluate the named attributes of ``jsp:param`` children up front."""
        if parent is None or parent.body is None:
            return
        for n in parent.body:
            if n.kind == "param_action":
                for m in n.body or ():
                    if m.kind == "named_attribute":
                        self._generate_named_attribute_value(m)

    def _print_params(self, n: Node, page_param: str, literal: bool) -> str:
        if literal:
            separator = '"&"' if page_param.find("?") > 0 else '"?"'
        else:
            separator = f'("&" if ({page_param}).find("?") > 0 else "?")'
        visitor = _ParamVisitor(self, separator)
        if n.body is not None:
            n.body.visit(visitor)
        return "".join(visitor.parts)

    def _page_param(self, n: Node) -> str:
        page = n.page
        if page.is_named_attribute:
            return self._generate_named_attribute_value(page.named_attribute_node)
        return self.attribute_value(page, False, "str")

    def visit_include_action(self, n: Node) -> None:
        flush = n.get_text_attribute("flush") == "true"
        n.begin_line = self.out.line
        page_param = self._page_param(n)
        jsp_body = find_jsp_body(n)
        self._prepare_params(jsp_body if jsp_body is not None else n)
        params = self._print_params(n, page_param, n.page.is_literal)
        self.out.printil(f"{RUNTIME}.include(request, response, {page_param}{params}, out, {flush})")
        n.end_line = self.out.line

    def visit_forward_action(self, n: Node) -> None:
        n.begin_line = self.out.line
        page_param = self._page_param(n)
        jsp_body = find_jsp_body(n)
        self._prepare_params(jsp_body if jsp_body is not None else n)
        params = self._print_params(n, page_param, n.page.is_literal)
        self.out.printil(f"page_context.forward({page_param}{params})")
        if self.is_tag_file or self.is_fragment:
            self.out.printil(f"raise {RUNTIME}.SkipPageException()")
        else:
            self.out.printil(self._return_skip())
        n.end_line = self.out.line

    def visit_get_property(self, n: Node) -> None:
        name = n.get_text_attribute("name")
        prop = n.get_text_attribute("property")
        n.begin_line = self.out.line
        bean = f"page_context.find_attribute({quote(name)})"
        if self.page_info.bean_repository.check_variable(name) and prop.isidentifier():
            self.out.printil(f"out.write({RUNTIME}.to_string({bean}.{prop}))")
        elif name in self.page_info.var_info_names or self.page_info.bean_repository.check_variable(name):
            self.out.printil(f"out.write({RUNTIME}.to_string("
                             f"{RUNTIME}.handle_get_property({bean}, {quote(prop)})))")
        else:
            raise CompileError("error.getProperty.unknown_bean", name, mark=n.start)
        n.end_line = self.out.line

    def visit_set_property(self, n: Node) -> None:
        name = n.get_text_attribute("name")
        prop = n.get_text_attribute("property")
        param = n.get_text_attribute("param")
        value = n.value
        bean = f"page_context.find_attribute({quote(name)})"
        out = self.out
        n.begin_line = out.line
        if prop == "*":
            out.printil(f"{RUNTIME}.introspect({bean}, request)")
        elif value is None:
            param = param or prop
            out.printil(f"{RUNTIME}.introspect_helper({bean}, {quote(prop)}, "
                        f"request.get_parameter({quote(param)}), request, {quote(param)}, False)")
        elif value.kind is AttributeKind.SCRIPT:
            out.printil(f"{RUNTIME}.handle_set_property({bean}, {quote(prop)}, {value.value})")
        elif value.kind is AttributeKind.NAMED:
            var = self._generate_named_attribute_value(value.named_attribute_node)
            out.printil(f"{RUNTIME}.introspect_helper({bean}, {quote(prop)}, {var}, None, None, False)")
        elif value.is_el_interpreter_input:
            map_name = value.el.map_name if value.el is not None else None
            out.printil(f"{RUNTIME}.handle_set_property_expression({bean}, {quote(prop)}, "
                        f"{quote(value.value)}, page_context, {map_name or 'None'})")
        else:
            out.printil(f"{RUNTIME}.introspect_helper({bean}, {quote(prop)}, "
                        f"{self.attribute_value(value, False, 'str')}, None, None, False)")
        n.end_line = out.line

    def visit_use_bean(self, n: Node) -> None:
        name = n.get_text_attribute("id")
        scope = n.get_text_attribute("scope")
        klass = n.get_text_attribute("class")
        bean_name = n.bean_name
        scope_name = scope_constant(scope)
        lock = scope in ("session", "application")
        out = self.out

        n.begin_line = out.line
        out.printil(f"{name} = None")
        if lock:
            out.printil(f"with page_context.scope_lock({scope_name}):")
            out.push_indent()
        out.printil(f"{name} = page_context.get_attribute({quote(name)}, {scope_name})")
        out.printil(f"if {name} is None:")
        out.push_indent()
        if klass is None and bean_name is None:
            out.printil(f"raise {RUNTIME}.InstantiationError("
                        f"{quote('bean ' + name + ' not found within scope')})")
        else:
            if bean_name is not None:
                if bean_name.is_named_attribute:
                    binary_name = self._generate_named_attribute_value(bean_name.named_attribute_node)
                else:
                    binary_name = self.attribute_value(bean_name, False, "str")
            else:
                binary_name = quote(klass)
            out.printil(f"{name} = {RUNTIME}.instantiate_bean({binary_name})")
            out.printil(f"page_context.set_attribute({quote(name)}, {name}, {scope_name})")
            self.visit_body(n)
        out.pop_indent()
        if lock:
            out.pop_indent()
        n.end_line = out.line

    def visit_plugin(self, n: Node) -> None:
        """``<object>``/``<embed>`` markup for a plugin, parameters included twice."""
        out = self.out
        text = n.get_text_attribute
        plugin_type, code, name = text("type"), text("code"), text("name")
        hspace, vspace, align = text("hspace"), text("vspace"), text("align")
        codebase, archive, jreversion = text("codebase"), text("archive"), text("jreversion")

        def value_of(attr: Optional[AttributeValue]) -> Optional[str]:
            if attr is None:
                return None
            if attr.is_named_attribute:
                return self._generate_named_attribute_value(attr.named_attribute_node)
            return self.attribute_value(attr, False, "str")

        width = value_of(n.width)
        height = value_of(n.height)

        def attr(key: str, value: Optional[str]) -> str:
            return "" if value is None else f' {key}="{value}"'

        def write_line(expr: str) -> None:
            out.printil(f"out.write({expr})")
            out.printil('out.write("\\n")')

        def sized(head: str, tail: str) -> str:
            c = _Concat().lit(head)
            if width is not None:
                c.lit(' width="').expr(f"{RUNTIME}.to_string({width})").lit('"')
            if height is not None:
                c.lit(' height="').expr(f"{RUNTIME}.to_string({height})").lit('"')
            return c.lit(tail).render()

        n.begin_line = out.line
        jsp_body = find_jsp_body(n)
        if jsp_body is not None:
            for m in jsp_body.body or ():
                if m.kind == "params_action":
                    self._prepare_params(m)
                    break

        mime = "application/x-java-" + (plugin_type or "") + ("" if jreversion is None else ";version=" + jreversion)
        write_line(sized("<object" + attr("classid", IE_CLASS_ID) + attr("name", name),
                         attr("hspace", hspace) + attr("vspace", vspace) + attr("align", align) + ">"))
        write_line(quote('<param name="java_code"' + attr("value", code) + ">"))
        if codebase is not None:
            write_line(quote('<param name="java_codebase"' + attr("value", codebase) + ">"))
        if archive is not None:
            write_line(quote('<param name="java_archive"' + attr("value", archive) + ">"))
        write_line(quote('<param name="type"' + attr("value", mime) + ">"))
        self._plugin_params(n, ie=True)
        write_line(quote("<comment>"))
        out.printil(f"out.write({sized('<EMBED' + attr('type', mime) + attr('name', name), attr('hspace', hspace) + attr('vspace', vspace) + attr('align', align) + attr('java_code', code) + attr('java_codebase', codebase) + attr('java_archive', archive))})")
        self._plugin_params(n, ie=False)
        write_line(quote("/>"))
        write_line(quote("<noembed>"))
        if n.body is not None:
            self.visit_body(n)
            out.printil('out.write("\\n")')
        write_line(quote("</noembed>"))
        write_line(quote("</comment>"))
        write_line(quote("</object>"))
        n.end_line = out.line

    def _plugin_params(self, n: Node, ie: bool) -> None:
        gen = self

        class _PluginParams(Visitor):
            def visit_param_action(self, p: Node) -> None:
                name = p.get_text_attribute("name")
                if name.lower() == "object":
                    name = "java_object"
                elif name.lower() == "type":
                    name = "java_type"
                value = f"{RUNTIME}.to_string({gen.attribute_value(p.value, False, 'str')})"
                p.begin_line = gen.out.line
                if ie:
                    gen.out.printil(f"out.write({_Concat().lit(f'<param name={chr(34)}{name}{chr(34)} value={chr(34)}').expr(value).lit(chr(34) + '>').render()})")
                    gen.out.printil('out.write("\\n")')
                else:
                    gen.out.printil(f"out.write({_Concat().lit(f' {name}={chr(34)}').expr(value).lit(chr(34)).render()})")
                p.end_line = gen.out.line

        if n.body is not None:
            n.body.visit(_PluginParams())

    def visit_param_action(self, n: Node) -> None:
        pass

    def visit_named_attribute(self, n: Node) -> None:
        pass

    # ---------------------------------------------------------------- markup

    def visit_uninterpreted_tag(self, n: Node) -> None:
        out = self.out
        n.begin_line = out.line
        c = _Concat().lit("<" + n.qname)
        for a in n.non_taglib_xmlns_attrs or ():
            c.lit(f' {a.qname}="{a.value.replace(chr(34), "&quot;")}"')
        for a, ja in zip(n.attrs or (), n.jsp_attrs):
            if ja.is_el_interpreter_input:
                c.lit(f' {a.qname}="').expr(self.attribute_value(ja, False, "str")).lit('"')
            else:
                c.lit(f' {a.qname}="{(ja.value or "").replace(chr(34), "&quot;")}"')
        if n.body is not None:
            c.lit(">")
            out.printil(f"out.write({c.render()})")
            self.visit_body(n)
            out.printil(f"out.write({quote('</' + n.qname + '>')})")
        else:
            c.lit("/>")
            out.printil(f"out.write({c.render()})")
        n.end_line = out.line

    def visit_jsp_element(self, n: Node) -> None:
        out = self.out
        n.begin_line = out.line
        attrs: Dict[str, _Concat] = {}
        for attr in n.jsp_attrs:
            c = _Concat()
            if attr.is_named_attribute:
                na = attr.named_attribute_node
                omit_attr = na.omit
                omit: Optional[str] = None
                if omit_attr is not None:
                    if omit_attr.is_literal:
                        if (omit_attr.value or "").lower() == "true":
                            continue
                    else:
                        omit = self.attribute_value(omit_attr, False, "bool")
                value = self._generate_named_attribute_value(na)
                if omit is None:
                    c.lit(f' {attr.qname}="').expr(value).lit('"')
                else:
                    inner = _Concat().lit(f' {attr.qname}="').expr(value).lit('"').render()
                    c.expr(f'("" if {RUNTIME}.coerce({omit}, "bool") else {inner})')
            else:
                value = f"{RUNTIME}.to_string({self.attribute_value(attr, False, 'object')})"
                c.lit(f' {attr.qname}="').expr(value).lit('"')
            attrs[attr.qname] = c

        elem_name = self.attribute_value(n.name_attr, False, "str")
        start = _Concat().lit("<").expr(elem_name)
        for c in attrs.values():
            for is_lit, v in c.parts:
                if is_lit:
                    start.lit(v)
                else:
                    start.expr(v)
        has_body = any(m.kind != "named_attribute" for m in n.body or ())
        if has_body:
            out.printil(f"out.write({start.lit('>').render()})")
            n.end_line = out.line
            self.visit_body(n)
            out.printil(f"out.write({_Concat().lit('</').expr(elem_name).lit('>').render()})")
        else:
            out.printil(f"out.write({start.lit('/>').render()})")
            n.end_line = out.line

    def visit_template_text(self, n: Node) -> None:
        text = n.text or ""
        if not text:
            return
        out = self.out

        if len(text) <= 3:
            n.begin_line = out.line
            line_inc = 0
            for i, ch in enumerate(text):
                if i > 0:
                    n.add_smap(line_inc, out.line)
                out.printil(f"out.write({quote(ch)})")
                if ch == "\n":
                    line_inc += 1
            n.end_line = out.line
            return

        if self.options.gen_string_as_char_array:
            n.begin_line = out.line
            index = 0
            while index < len(text):
                chunk = text[index:index + CHAR_ARRAY_LIMIT]
                out.printil(f"out.write({self.gen.char_array_name(chunk)})")
                index += len(chunk)
            n.end_line = out.line
            return

        budget = self.options.text_chunk_size
        break_at_lf = self.gen.break_at_lf
        chunk: List[str] = []
        used = 0

        def flush() -> None:
            nonlocal chunk, used
            out.printil(f"out.write({quote(''.join(chunk))})")
            chunk = []
            used = 0

        n.begin_line = out.line
        src_line = 0
        last = len(text) - 1
        for i, ch in enumerate(text):
            size = len(ch.encode("utf-8", "surrogatepass"))
            if chunk and used + size > budget:
                flush()
            chunk.append(ch)
            used += size
            if ch == "\n":
                src_line += 1
                if break_at_lf and i < last:
                    flush()
                if i < last:
                    n.add_smap(src_line, out.line)
        if chunk:
            flush()
        n.end_line = out.line

    # ---------------------------------------------------------- bodies

    def visit_jsp_body(self, n: Node) -> None:
        if n.body is None:
            return
        if self.is_simple_tag_handler:
            handler = self.simple_tag_handler_var
            fragment = self._generate_jsp_fragment(n, handler)
            self.out.printil(f"{handler}.set_jsp_body({fragment})")
        else:
            self.visit_body(n)

    def _sync_before_invoke(self) -> None:
        self.out.printil(f"{self.page_ref}._tplc_context.sync_before_invoke()")

    def _store_invoke_result(self, n: Node) -> None:
        var_reader = n.get_text_attribute("varReader")
        var = n.get_text_attribute("var")
        if var_reader is None and var is None:
            return
        scope = n.get_text_attribute("scope")
        if var_reader is not None:
            target, value = var_reader, f"{RUNTIME}.StringReader(_tplc_sout.getvalue())"
        else:
            target, value = var, "_tplc_sout.getvalue()"
        scope_arg = f", {scope_constant(scope)}" if scope is not None else ""
        self.out.printil(f"page_context.set_attribute({quote(target)}, {value}{scope_arg})")

    def _open_invoke_writer(self, n: Node) -> None:
        if n.get_text_attribute("varReader") is not None or n.get_text_attribute("var") is not None:
            self.out.printil(f"_tplc_sout = {RUNTIME}.StringWriter()")
        else:
            self.out.printil("_tplc_sout = None")

    def visit_invoke_action(self, n: Node) -> None:
        out = self.out
        n.begin_line = out.line
        self._sync_before_invoke()
        self._open_invoke_writer(n)
        fragment = f"{self.page_ref}.{make_identifier_for_attribute(n.get_text_attribute('fragment'))}"
        out.printil(f"if {fragment} is not None:")
        out.push_indent()
        out.printil(f"{fragment}.invoke(_tplc_sout)")
        out.pop_indent()
        self._store_invoke_result(n)
        n.end_line = out.line

    def visit_do_body_action(self, n: Node) -> None:
        out = self.out
        n.begin_line = out.line
        self._sync_before_invoke()
        self._open_invoke_writer(n)
        out.printil(f"if {self.page_ref}.get_jsp_body() is not None:")
        out.push_indent()
        out.printil(f"{self.page_ref}.get_jsp_body().invoke(_tplc_sout)")
        out.pop_indent()
        self._store_invoke_result(n)
        n.end_line = out.line

    def visit_attribute_generator(self, n: Node) -> None:
        tag = n.tag
        for attr in tag.jsp_attrs:
            if attr.qname == n.name:
                value = self._evaluate_attribute(attr, tag, None)
                if value is not None:
                    self.out.printil(f"out.print({value})")
                break

    # ------------------------------------------------------------ custom tags

    def _create_tag_var_name(self, full_name: str, prefix: str, short_name: str) -> str:
        i = self.tag_var_numbers.get(full_name, 0)
        self.tag_var_numbers[full_name] = i + 1
        return make_identifier_for_attribute(f"{prefix}_{short_name}_{i}")

    def visit_custom_tag(self, n: CustomTag) -> None:
        base_var = self._create_tag_var_name(n.qname, n.prefix, n.local_name)
        eval_var = "_tplc_eval_" + base_var
        handler_var = "_tplc_th_" + base_var
        push_var = "_tplc_push_body_count_" + base_var

        ci = n.child_info
        split = ci.scriptless and not ci.has_scripting_vars
        saved = None
        if split:
            saved = self._open_split_method(n, "_tplc_meth_" + base_var)

        for info in n.variable_infos:
            if info.var_name:
                self.page_info.var_info_names.add(info.var_name)
        for tag_var in n.tag_info.variables:
            name = tag_var.name_given
            if name is None:
                name = n.get_attribute_value(tag_var.name_from_attribute)
            if name is not None:
                self.page_info.var_info_names.add(name)

        if n.implements_simple_tag:
            self._generate_custom_do_tag(n, handler_var)
        else:
            self._generate_custom_start(n, handler_var, eval_var, push_var)
            state = (self.parent, self.is_simple_tag_parent, self.push_body_count_var,
                     self.is_simple_tag_handler)
            self.parent = handler_var
            self.is_simple_tag_parent = False
            if n.implements_try_catch_finally:
                self.push_body_count_var = push_var
            self.is_simple_tag_handler = False
            self.visit_body(n)
            (self.parent, self.is_simple_tag_parent, self.push_body_count_var,
             self.is_simple_tag_handler) = state
            self._generate_custom_end(n, handler_var, eval_var, push_var)

        if split:
            self._close_split_method(saved)

    def _open_split_method(self, n: CustomTag, method: str):
        """
        Emit the call of ``method`` and redirect output into its body.

        Returns the state to restore once the tag is generated.
        """
        out = self.out
        args = []
        if self.parent is not None:
            args.append(self.parent)
        args.append("page_context")
        if self.push_body_count_var is not None:
            args.append(self.push_body_count_var)
        out.printil(f"if {self.page_ref}.{method}({', '.join(args)}):")
        out.push_indent()
        out.printil(self._return_skip())
        out.pop_indent()

        saved = (self.out, self.parent, self.push_body_count_var, self.page_ref)
        buffer = GenBuffer(n, None if n.implements_simple_tag else n.body, self.owners, indent=1)
        self.methods_buffered.append(buffer)
        self.out = buffer.out
        self.method_nesting += 1

        params = ["self"]
        if self.parent is not None:
            params.append("_tplc_parent")
            self.parent = "_tplc_parent"
        params.append("page_context")
        if self.push_body_count_var is not None:
            params.append("_tplc_push_body_count")
            self.push_body_count_var = "_tplc_push_body_count"
        self.page_ref = "self"

        self.out.blank()
        self.out.printil(f"def {method}({', '.join(params)}):")
        self.out.push_indent()
        self.out.printil("out = page_context.get_out()")
        generate_local_variables(self.out, n)
        return saved

    def _close_split_method(self, saved) -> None:
        self.out.printil("return False")
        self.out.pop_indent()
        self.method_nesting -= 1
        self.out, self.parent, self.push_body_count_var, self.page_ref = saved

    def _handler(self, n: CustomTag) -> str:
        return self.gen.register_handler(n)

    def _generate_custom_start(self, n: CustomTag, handler_var: str, eval_var: str, push_var: str) -> None:
        out = self.out
        handler_class = self._handler(n)
        out.comment(n.qname)
        n.begin_line = out.line

        self._declare_scripting_vars(n, VariableScope.AT_BEGIN)
        self._save_scripting_vars(n, VariableScope.AT_BEGIN)

        pooled = self.gen.is_pooling_enabled and not n.implements_id_consumer
        if pooled:
            out.printil(f"{handler_var} = {self.page_ref}.{n.pool_name}.get({handler_class})")
            out.printil(f"{handler_var}_reused = False")
        else:
            out.printil(f"{handler_var} = {handler_class}()")

        out.printil("try:")
        out.push_indent()
        self._generate_setters(n, handler_var, simple=False)

        if n.implements_try_catch_finally:
            out.printil(f"{push_var} = [0]")
            out.printil("try:")
            out.push_indent()
        out.printil(f"{eval_var} = {handler_var}.do_start_tag()")

        if not n.implements_body_tag:
            self._sync_scripting_vars(n, VariableScope.AT_BEGIN)

        if not n.has_empty_body():
            out.printil(f"if {eval_var} != {RUNTIME}.SKIP_BODY:")
            out.push_indent()
            self._declare_scripting_vars(n, VariableScope.NESTED)
            self._save_scripting_vars(n, VariableScope.NESTED)

            if n.implements_body_tag:
                out.printil(f"if {eval_var} != {RUNTIME}.EVAL_BODY_INCLUDE:")
                out.push_indent()
                if n.implements_try_catch_finally:
                    out.printil(f"{push_var}[0] += 1")
                elif self.push_body_count_var is not None:
                    out.printil(f"{self.push_body_count_var}[0] += 1")
                out.printil(f"out = {RUNTIME}.start_buffered_body(page_context, {handler_var})")
                out.pop_indent()
                self._sync_scripting_vars(n, VariableScope.AT_BEGIN)
                self._sync_scripting_vars(n, VariableScope.NESTED)
            else:
                self._sync_scripting_vars(n, VariableScope.NESTED)

            if n.implements_iteration_tag:
                out.printil("while True:")
                out.push_indent()
        n.end_line = out.line

    def _generate_custom_end(self, n: CustomTag, handler_var: str, eval_var: str, push_var: str) -> None:
        out = self.out
        if not n.has_empty_body():
            if n.implements_iteration_tag:
                out.printil(f"_tplc_eval_after_body = {handler_var}.do_after_body()")
                self._sync_scripting_vars(n, VariableScope.AT_BEGIN)
                self._sync_scripting_vars(n, VariableScope.NESTED)
                out.printil(f"if _tplc_eval_after_body != {RUNTIME}.EVAL_BODY_AGAIN:")
                out.push_indent()
                out.printil("break")
                out.pop_indent()
                out.pop_indent()

            self._restore_scripting_vars(n, VariableScope.NESTED)

            if n.implements_body_tag:
                out.printil(f"if {eval_var} != {RUNTIME}.EVAL_BODY_INCLUDE:")
                out.push_indent()
                out.printil("out = page_context.pop_body()")
                if n.implements_try_catch_finally:
                    out.printil(f"{push_var}[0] -= 1")
                elif self.push_body_count_var is not None:
                    out.printil(f"{self.push_body_count_var}[0] -= 1")
                out.pop_indent()
            out.pop_indent()

        out.printil(f"if {handler_var}.do_end_tag() == {RUNTIME}.SKIP_PAGE:")
        out.push_indent()
        if self.is_tag_file or self.is_fragment:
            out.printil(f"raise {RUNTIME}.SkipPageException()")
        else:
            out.printil(self._return_skip())
        out.pop_indent()
        self._sync_scripting_vars(n, VariableScope.AT_BEGIN)

        if n.implements_try_catch_finally:
            out.pop_indent()
            out.printil("except Exception as _tplc_exception:")
            out.push_indent()
            out.printil(f"while {push_var}[0] > 0:")
            out.push_indent()
            out.printil(f"{push_var}[0] -= 1")
            out.printil("out = page_context.pop_body()")
            out.pop_indent()
            out.printil(f"{handler_var}.do_catch(_tplc_exception)")
            out.pop_indent()
            out.printil("finally:")
            out.push_indent()
            out.printil(f"{handler_var}.do_finally()")
            out.pop_indent()

        pooled = self.gen.is_pooling_enabled and not n.implements_id_consumer
        if pooled:
            out.printil(f"{self.page_ref}.{n.pool_name}.reuse({handler_var})")
            out.printil(f"{handler_var}_reused = True")

        out.pop_indent()
        out.printil("finally:")
        out.push_indent()
        reused = f"{handler_var}_reused" if pooled else "False"
        out.printil(f"{RUNTIME}.release_tag({handler_var}, {reused})")
        out.pop_indent()

        self._declare_scripting_vars(n, VariableScope.AT_END)
        self._sync_scripting_vars(n, VariableScope.AT_END)
        self._restore_scripting_vars(n, VariableScope.AT_BEGIN)

    def _generate_custom_do_tag(self, n: CustomTag, handler_var: str) -> None:
        out = self.out
        handler_class = self._handler(n)
        n.begin_line = out.line
        out.comment(n.qname)

        self._declare_scripting_vars(n, VariableScope.AT_BEGIN)
        self._save_scripting_vars(n, VariableScope.AT_BEGIN)
        self._declare_scripting_vars(n, VariableScope.AT_END)

        out.printil(f"{handler_var} = {handler_class}()")
        self._generate_setters(n, handler_var, simple=True)

        if find_jsp_body(n) is None:
            if not n.has_empty_body():
                fragment = self._generate_jsp_fragment(n, handler_var)
                self.out.printil(f"{handler_var}.set_jsp_body({fragment})")
        else:
            state = (self.simple_tag_handler_var, self.is_simple_tag_handler)
            self.simple_tag_handler_var = handler_var
            self.is_simple_tag_handler = True
            self.visit_body(n)
            self.simple_tag_handler_var, self.is_simple_tag_handler = state

        out.printil(f"{handler_var}.do_tag()")

        self._restore_scripting_vars(n, VariableScope.AT_BEGIN)
        self._sync_scripting_vars(n, VariableScope.AT_BEGIN)
        self._sync_scripting_vars(n, VariableScope.AT_END)
        n.end_line = out.line

    # ------------------------------------------------------- scripting vars

    @staticmethod
    def _var_name(n: CustomTag, info) -> Optional[str]:
        """Name of an exposed variable; None for aliased tag file variables."""
        if isinstance(info, VariableInfo):
            return info.var_name
        name = info.name_given
        if name is None:
            return n.tag_data.get_attribute_string(info.name_from_attribute)
        if info.name_from_attribute is not None:
            return None
        return name

    def _declare_scripting_vars(self, n: CustomTag, scope: VariableScope) -> None:
        if self.is_fragment:
            return
        for info in n.get_scripting_vars(scope) or ():
            name = self._var_name(n, info)
            if name is not None:
                self.out.printil(f"{name} = None")

    def _undeclared_vars(self, n: CustomTag, scope: VariableScope) -> List[str]:
        """Variables ``n`` exposes in ``scope`` that an enclosing tag declared."""
        declared = n.get_scripting_vars(scope) or []
        names: List[str] = []
        if n.variable_infos:
            for info in n.variable_infos:
                if info.scope != scope.value or any(d is info for d in declared):
                    continue
                names.append(info.var_name)
        else:
            for info in n.tag_info.variables:
                if info.scope is not scope or any(d is info for d in declared):
                    continue
                name = self._var_name(n, info)
                if name is not None:
                    names.append(name)
        return names

    def _save_scripting_vars(self, n: CustomTag, scope: VariableScope) -> None:
        if n.custom_nesting_level == 0 or self.is_fragment:
            return
        for name in self._undeclared_vars(n, scope):
            self.out.printil(f"_tplc_{name}_{n.custom_nesting_level} = {name}")

    def _restore_scripting_vars(self, n: CustomTag, scope: VariableScope) -> None:
        if n.custom_nesting_level == 0 or self.is_fragment:
            return
        for name in self._undeclared_vars(n, scope):
            self.out.printil(f"{name} = _tplc_{name}_{n.custom_nesting_level}")

    def _sync_scripting_vars(self, n: CustomTag, scope: VariableScope) -> None:
        if self.is_fragment:
            return
        if n.variable_infos:
            names = [info.var_name for info in n.variable_infos if info.scope == scope.value]
        else:
            names = [self._var_name(n, info) for info in n.tag_info.variables if info.scope is scope]
        for name in names:
            if name is not None:
                self.out.printil(f"{name} = page_context.find_attribute({quote(name)})")

    # ---------------------------------------------------------------- setters

    def _generate_alias_map(self, n: CustomTag, handler_var: str) -> Optional[str]:
        alias_map = None
        for tag_var in n.tag_info.variables:
            if tag_var.name_from_attribute is None:
                continue
            aliased = n.get_attribute_value(tag_var.name_from_attribute)
            if aliased is None:
                continue
            if alias_map is None:
                alias_map = handler_var + "_alias_map"
                self.out.printil(f"{alias_map} = {{}}")
            self.out.printil(f"{alias_map}[{quote(tag_var.name_given)}] = {quote(aliased)}")
        return alias_map

    def _create_jsp_id(self) -> str:
        prefix = "jsp_%d_" % zlib.crc32(self.page_info.unit.encode("utf-8"))
        self.jsp_id_count += 1
        return prefix + str(self.jsp_id_count - 1)

    def _generate_setters(self, n: CustomTag, handler_var: str, simple: bool) -> None:
        out = self.out
        if simple:
            alias_map = self._generate_alias_map(n, handler_var) if n.is_tag_file else None
            if alias_map is None:
                out.printil(f"{handler_var}.set_jsp_context(page_context)")
            else:
                out.printil(f"{handler_var}.set_jsp_context(page_context, {alias_map})")
        else:
            out.printil(f"{handler_var}.set_page_context(page_context)")

        if self.is_tag_file and self.parent is None:
            if simple:
                out.printil(f"{handler_var}.set_parent(self)")
            else:
                out.printil(f"{handler_var}.set_parent({RUNTIME}.TagAdapter(self))")
        elif not simple:
            if self.parent is None:
                out.printil(f"{handler_var}.set_parent(None)")
            elif self.is_simple_tag_parent:
                out.printil(f"{handler_var}.set_parent({RUNTIME}.TagAdapter({self.parent}))")
            else:
                out.printil(f"{handler_var}.set_parent({self.parent})")
        elif self.parent is not None:
            out.printil(f"{handler_var}.set_parent({self.parent})")

        for attr in n.jsp_attrs:
            value = self._evaluate_attribute(attr, n, handler_var)
            if value is None:
                continue
            if attr.is_dynamic:
                uri = quote(attr.uri) if attr.uri else "None"
                out.printil(f"{handler_var}.set_dynamic_attribute({uri}, {quote(attr.local_name)}, {value})")
            else:
                out.printil(f"{handler_var}.{make_identifier_for_attribute(attr.local_name)} = {value}")

        if n.implements_id_consumer:
            out.printil(f"{handler_var}.set_jsp_id({quote(self._create_jsp_id())})")

    def _setter_type(self, n: CustomTag, attr: AttributeValue) -> str:
        if attr.is_dynamic:
            return "object"
        tai = attr.tag_attribute_info or n.tag_info.attribute(attr.local_name)
        if tai is None:
            raise CompileError("error.unable.to_find_method", attr.qname, mark=n.start)
        if tai.fragment:
            return "object"
        return to_python_type(tai.type)

    def _evaluate_attribute(self, attr: AttributeValue, n: CustomTag, handler_var: Optional[str]) -> Optional[str]:
        value = attr.value
        is_fragment = n.check_if_attribute_is_fragment(attr.local_name)
        if value is None:
            if not attr.is_named_attribute:
                return None
            if is_fragment:
                value = self._generate_named_attribute_fragment(attr.named_attribute_node, handler_var)
            else:
                value = self._generate_named_attribute_value(attr.named_attribute_node)

        type_name = self._setter_type(n, attr)
        if attr.is_expression:
            return value
        if attr.is_named_attribute:
            if not is_fragment and not attr.is_dynamic:
                return convert_string(type_name, value, True)
            return value
        if attr.is_el_interpreter_input:
            return self._el_attribute(attr, n, value, type_name)
        return convert_string(type_name, value, False)

    def _el_attribute(self, attr: AttributeValue, n: CustomTag, value: str, type_name: str) -> str:
        tai = attr.tag_attribute_info
        map_name = attr.el.map_name if attr.el is not None else None
        fn_map = map_name or "None"
        mark = quote(f"{n.start} '{value}'")
        expected = quote(to_python_type(attr.expected_type_name))
        if attr.is_deferred_input or (tai is not None and tai.type == "ValueExpression"):
            code = f"{RUNTIME}.ValueExpression({mark}, {quote(value)}, {expected}, {fn_map})"
            evaluate = tai is not None and tai.can_be_request_time()
            if attr.is_deferred_input:
                evaluate = False
                if tai is not None and tai.can_be_request_time():
                    evaluate = "#{" not in value
            if evaluate:
                code += ".get_value(page_context)"
            return code
        if attr.is_deferred_method_input or (tai is not None and tai.type == "MethodExpression"):
            params = ", ".join(quote(to_python_type(p)) for p in attr.parameter_type_names)
            return f"{RUNTIME}.MethodExpression({mark}, {quote(value)}, {expected}, [{params}], {fn_map})"
        return self._interpreter_call(value, type_name, map_name)

    # ------------------------------------------------------------- fragments

    def _generate_jsp_fragment(self, n: Node, handler_var: Optional[str]) -> str:
        """Generate the body of ``n`` as a dispatcher case; returns the constructor call."""
        fragment = self.fragment_helper_class.open_fragment(n, self.owners, generate_local_variables)
        state = (self.out, self.parent, self.is_simple_tag_parent, self.is_fragment,
                 self.push_body_count_var, self.page_ref, self.is_simple_tag_handler)
        self.out = fragment.gen_buffer.out
        self.parent = "self.parent"
        self.is_simple_tag_parent = True
        self.is_fragment = True
        self.is_simple_tag_handler = False
        if self.push_body_count_var is not None:
            self.push_body_count_var = "_tplc_push_body_count"
        self.page_ref = "self.page"
        self.visit_body(n)
        (self.out, self.parent, self.is_simple_tag_parent, self.is_fragment,
         self.push_body_count_var, self.page_ref, self.is_simple_tag_handler) = state
        self.fragment_helper_class.close_fragment(fragment)
        return (f"{self.page_ref}.{HELPER_CLASS_NAME}({fragment.id}, {self.page_ref}, page_context, "
                f"{handler_var or 'None'}, {self.push_body_count_var or 'None'})")

    def _generate_named_attribute_value(self, n: Node) -> str:
        var = n.temporary_variable_name
        body = n.body
        if body is None:
            self.out.printil(f'{var} = ""')
        elif len(body) == 1 and body[0].kind == "template_text":
            self.out.printil(f"{var} = {quote(body[0].text or '')}")
        else:
            self.out.printil("out = page_context.push_body()")
            self.visit_body(n)
            self.out.printil(f"{var} = out.get_string()")
            self.out.printil("out = page_context.pop_body()")
        return var

    def _generate_named_attribute_fragment(self, n: Node, handler_var: Optional[str]) -> str:
        var = n.temporary_variable_name
        fragment = self._generate_jsp_fragment(n, handler_var)
        self.out.printil(f"{var} = {fragment}")
        return var


# --------------------------------------------------------------------------- #
# Module generation
# --------------------------------------------------------------------------- #
class Generator:
    """
    Writes the Python module of one translation unit.

    Args:
        ctxt: Compilation context of the unit
        page_info: Settings collected by the validator
    """

    def __init__(self, ctxt: CompilationContext, page_info: PageInfo):
        self.ctxt = ctxt
        self.page_info = page_info
        self.options = ctxt.options
        self.is_tag_file = ctxt.is_tag_file
        self.tag_info: Optional[TagInfo] = ctxt.tag_info
        self.break_at_lf = self.options.mapped_file
        # pooling only applies to pages using the default base class
        self.is_pooling_enabled = (self.options.pooling_enabled
                                   and page_info.get_extends(False) is None)
        self.pool_names: List[str] = []
        self.methods_buffered: List[GenBuffer] = []
        self.fragment_helper_class = FragmentHelperClass(class_indent=1)
        self.owners: set = set()
        # handler class reference -> (module, class, alias)
        self.handlers: Dict[str, Tuple[str, str, str]] = {}
        self.char_arrays: Dict[str, str] = {}
        self.out = CodeWriter()

    # ---------------------------------------------------------------- registry

    def register_handler(self, n: CustomTag) -> str:
        """Alias under which the handler class of ``n`` is imported."""
        ref = n.tag_info.handler_class
        if not ref:
            raise CompileError("error.tag.handler.missing", n.qname, mark=n.start)
        entry = self.handlers.get(ref)
        if entry is None:
            module, name = split_class_ref(ref, n.is_tag_file)
            if not module or not name:
                raise CompileError("error.tag.handler.invalid", ref, n.qname, mark=n.start)
            alias = "_tplc_h_" + make_identifier_for_attribute(name)
            taken = {a for _, _, a in self.handlers.values()}
            base, i = alias, 1
            while alias in taken:
                alias = f"{base}_{i}"
                i += 1
            entry = (module, name, alias)
            self.handlers[ref] = entry
        return entry[2]

    def char_array_name(self, text: str) -> str:
        name = self.char_arrays.get(text)
        if name is None:
            name = f"_tplc_char_array_{len(self.char_arrays)}"
            self.char_arrays[text] = name
        return name

    # --------------------------------------------------------------- entry

    def generate(self, page: Nodes) -> str:
        page.visit(_HandlerListVisitor(self))
        self._generate_comment_header()
        visitor = GenerateVisitor(self, self.out)
        if self.is_tag_file:
            self._generate_tag_handler_preamble(page)
            self._generate_xml_prolog(page)
            page.visit(visitor)
            self._generate_tag_handler_postamble()
        else:
            self._generate_preamble(page)
            self._generate_xml_prolog(page)
            page.visit(visitor)
            self._generate_postamble()
        logger.debug("generated %d lines for %s (%d split methods, %d fragments)",
                     self.out.line - 1, self.page_info.unit, len(self.methods_buffered),
                     len(self.fragment_helper_class.fragments))
        return self.out.get_text()

    # -------------------------------------------------------------- module

    def _generate_comment_header(self) -> None:
        out = self.out
        out.comment(f"Generated by tplc {tool_version()} from {self.page_info.unit}")
        out.comment("Generated at: " + time.strftime("%Y-%m-%d %H:%M:%S", time.gmtime()) + " UTC")
        out.comment("Do not edit: the module is rewritten when its source changes.")

    def _page_imports(self) -> List[str]:
        seen: List[str] = []
        for entry in self.page_info.imports:
            entry = entry.strip()
            if entry and entry not in seen:
                seen.append(entry)
        return seen

    def _extends(self) -> str:
        extends = self.page_info.get_extends(False)
        if extends is None:
            return f"{RUNTIME}.PageBase"
        return "_tplc_extends"

    def _generate_module_head(self) -> None:
        out = self.out
        out.blank()
        for entry in self._page_imports():
            if entry.startswith(("from ", "import ")):
                out.printil(entry)
            else:
                out.printil(f"import {entry}")
        extends = self.page_info.get_extends(False)
        if extends is not None:
            module, name = split_class_ref(extends)
            out.printil(f"from {module} import {name} as _tplc_extends")
        for module, name, alias in self.handlers.values():
            out.printil(f"from {module} import {name} as {alias}")

        out.blank()
        dependants = self.page_info.dependants
        if dependants:
            items = "".join(f"\n    {quote(path)}: {mtime}," for path, mtime in dependants.items())
            out.printil("_tplc_dependants = {" + items + "\n}")
        else:
            out.printil("_tplc_dependants = {}")
        imports = [e for e in self._page_imports() if e not in ("from tplc import runtime as _tplc_rt",)]
        if imports:
            items = "".join(f"\n    {quote(e)}," for e in imports)
            out.printil("_tplc_imports = [" + items + "\n]")
        else:
            out.printil("_tplc_imports = []")
        for name, mapping in self.page_info.function_maps.items():
            out.printil(f"{name} = {RUNTIME}.FunctionMapper({mapping})")

    def _generate_declarations(self, page: Nodes) -> None:
        page.visit(_DeclarationVisitor(self.out))

    def _generate_getters(self) -> None:
        out = self.out
        out.blank()
        out.printil("def get_dependants(self):")
        out.push_indent()
        out.printil("return _tplc_dependants")
        out.pop_indent()
        out.blank()
        out.printil("def get_imports(self):")
        out.push_indent()
        out.printil("return _tplc_imports")
        out.pop_indent()

    def _generate_init(self) -> None:
        if not self.pool_names:
            return
        out = self.out
        out.blank()
        out.printil("def _tplc_init(self, config=None):")
        out.push_indent()
        for name in self.pool_names:
            out.printil(f"self.{name} = {RUNTIME}.HandlerPool.for_config(config)")
        out.pop_indent()

    def _generate_destroy(self) -> None:
        if not self.pool_names:
            return
        out = self.out
        out.blank()
        out.printil("def _tplc_destroy(self):")
        out.push_indent()
        for name in self.pool_names:
            out.printil(f"self.{name}.release()")
        out.pop_indent()

    def _generate_preamble(self, page: Nodes) -> None:
        out = self.out
        pi = self.page_info
        self._generate_module_head()
        out.blank()
        out.blank()
        out.printil(f"class {self.ctxt.class_name}({self._extends()}):")
        out.push_indent()
        self._generate_declarations(page)
        if not pi.is_thread_safe:
            out.printil("is_thread_safe = False")
        self._generate_getters()
        self._generate_init()
        self._generate_destroy()

        out.blank()
        out.printil("def service(self, request, response):")
        out.push_indent()
        out.printil("page_context = None")
        if pi.is_session:
            out.printil("session = None")
        if pi.is_error_page:
            out.printil(f"exception = {RUNTIME}.get_throwable(request)")
            out.printil("if exception is not None:")
            out.push_indent()
            out.printil("response.set_status(500)")
            out.pop_indent()
        out.printil("out = None")
        out.printil("page = self")
        out.printil("_tplc_out = None")
        out.blank()
        out.printil("try:")
        out.push_indent()
        out.printil(f"response.set_content_type({quote(pi.content_type)})")
        out.printil(f"page_context = self.get_page_context(request, response, {quote(pi.error_page)}, "
                    f"{pi.is_session}, {pi.buffer}, {pi.is_auto_flush})")
        out.printil("application = page_context.get_servlet_context()")
        out.printil("config = page_context.get_servlet_config()")
        if pi.is_session:
            out.printil("session = page_context.get_session()")
        out.printil("out = page_context.get_out()")
        out.printil("_tplc_out = out")
        out.blank()

    def _generate_postamble(self) -> None:
        out = self.out
        out.pop_indent()
        out.printil("except Exception as t:")
        out.push_indent()
        out.printil(f"if not isinstance(t, {RUNTIME}.SkipPageException):")
        out.push_indent()
        out.printil("out = _tplc_out")
        out.printil("if out is not None and out.get_buffer_size() != 0:")
        out.push_indent()
        out.printil("if response.is_committed():")
        out.push_indent()
        out.printil("out.flush()")
        out.pop_indent()
        out.printil("else:")
        out.push_indent()
        out.printil("out.clear_buffer()")
        out.pop_indent()
        out.pop_indent()
        out.printil("if page_context is None:")
        out.push_indent()
        out.printil("raise")
        out.pop_indent()
        out.printil("page_context.handle_page_exception(t)")
        out.pop_indent()
        out.pop_indent()
        out.printil("finally:")
        out.push_indent()
        out.printil("self.release_page_context(page_context)")
        out.pop_indent()
        out.pop_indent()
        self._gen_common_postamble()

    def _generate_xml_prolog(self, page: Nodes) -> None:
        pi = self.page_info
        root = page[0] if len(page) else None
        omit = pi.omit_xml_decl
        is_xml = root is not None and getattr(root, "is_xml_syntax", False)
        if ((omit is not None and omit.lower() != "true")
                or (omit is None and is_xml and not pi.has_jsp_root and not self.is_tag_file)):
            content_type = pi.content_type or ""
            charset = content_type[content_type.find("charset=") + 8:] if "charset=" in content_type else "UTF-8"
            self.out.printil(f"out.write({quote(f'<?xml version={chr(34)}1.0{chr(34)} encoding={chr(34)}{charset}{chr(34)}?>' + chr(10))})")
        if pi.doctype_name is not None:
            doctype = "<!DOCTYPE " + pi.doctype_name
            if pi.doctype_public is None:
                doctype += ' SYSTEM "'
            else:
                doctype += f' PUBLIC "{pi.doctype_public}" "'
            doctype += f'{pi.doctype_system}">\n'
            self.out.printil(f"out.write({quote(doctype)})")

    def _gen_common_postamble(self) -> None:
        out = self.out
        for buffer in self.methods_buffered:
            buffer.adjust_lines(out.line - 1)
            out.print_multi_ln(str(buffer))
        helper = self.fragment_helper_class
        if helper.used:
            helper.generate_postamble()
            helper.adjust_lines(out.line - 1)
            out.print_multi_ln(str(helper))
        out.pop_indent()
        if self.char_arrays:
            out.blank()
            out.blank()
            for text, name in self.char_arrays.items():
                out.printil(f"{name} = {quote(text)}")

    # ------------------------------------------------------------- tag files

    def _tag_class_name(self) -> str:
        return split_class_ref(self.tag_info.handler_class, True)[1]

    def _generate_tag_handler_preamble(self, page: Nodes) -> None:
        out = self.out
        tag_info = self.tag_info
        self._generate_module_head()
        out.blank()
        out.blank()
        out.printil(f"class {self._tag_class_name()}({RUNTIME}.SimpleTagSupport):")
        out.push_indent()
        self._generate_declarations(page)
        self._generate_tag_handler_init(tag_info)
        self._generate_set_jsp_context(tag_info)
        self._generate_tag_handler_attributes(tag_info)
        if tag_info.dynamic_attributes:
            self._generate_set_dynamic_attribute()
        self._generate_getters()
        self._generate_init()
        self._generate_destroy()

        out.blank()
        out.printil("def do_tag(self):")
        out.push_indent()
        out.printil("page_context = self._tplc_context")
        out.printil("request = page_context.get_request()")
        out.printil("response = page_context.get_response()")
        out.printil("session = page_context.get_session()")
        out.printil("application = page_context.get_servlet_context()")
        out.printil("config = page_context.get_servlet_config()")
        out.printil("out = page_context.get_out()")
        if self.pool_names:
            out.printil("self._tplc_init(config)")
        self._generate_page_scoped_variables(tag_info)
        out.blank()
        out.printil("try:")
        out.push_indent()

    def _generate_tag_handler_postamble(self) -> None:
        out = self.out
        out.pop_indent()
        out.printil(f"except ({RUNTIME}.SkipPageException, {RUNTIME}.TagException):")
        out.push_indent()
        out.printil("raise")
        out.pop_indent()
        out.printil("except Exception as t:")
        out.push_indent()
        out.printil(f"raise {RUNTIME}.TagException(t) from t")
        out.pop_indent()
        out.printil("finally:")
        out.push_indent()
        out.printil("self._tplc_context.sync_end_tag_file()")
        if self.pool_names:
            out.printil("self._tplc_destroy()")
        out.pop_indent()
        out.pop_indent()
        self._gen_common_postamble()

    def _generate_tag_handler_init(self, tag_info: TagInfo) -> None:
        out = self.out
        out.blank()
        out.printil("def __init__(self):")
        out.push_indent()
        out.printil("super().__init__()")
        out.printil("self._tplc_context = None")
        if tag_info.dynamic_attributes:
            out.printil("self._tplc_dynamic_attrs = {}")
        for attr in tag_info.attributes:
            out.printil(f"self._tplc_attr_{make_identifier_for_attribute(attr.name)} = None")
        out.pop_indent()

    def _generate_set_jsp_context(self, tag_info: TagInfo) -> None:
        out = self.out

        def names(scope: VariableScope) -> str:
            found = [quote(v.name_given) for v in tag_info.variables if v.scope is scope]
            return "[" + ", ".join(found) + "]" if found else "None"

        out.blank()
        out.printil("def set_jsp_context(self, ctx, alias_map=None):")
        out.push_indent()
        out.printil("super().set_jsp_context(ctx)")
        out.printil(f"self._tplc_context = {RUNTIME}.JspContextWrapper(self, ctx, "
                    f"{names(VariableScope.NESTED)}, {names(VariableScope.AT_BEGIN)}, "
                    f"{names(VariableScope.AT_END)}, alias_map)")
        out.pop_indent()
        out.blank()
        out.printil("def get_jsp_context(self):")
        out.push_indent()
        out.printil("return self._tplc_context")
        out.pop_indent()

    def _generate_tag_handler_attributes(self, tag_info: TagInfo) -> None:
        out = self.out
        for attr in tag_info.attributes:
            name = make_identifier_for_attribute(attr.name)
            out.blank()
            out.printil("@property")
            out.printil(f"def {name}(self):")
            out.push_indent()
            out.printil(f"return self._tplc_attr_{name}")
            out.pop_indent()
            out.blank()
            out.printil(f"@{name}.setter")
            out.printil(f"def {name}(self, value):")
            out.push_indent()
            out.printil(f"self._tplc_attr_{name} = value")
            out.printil(f"self._tplc_context.set_attribute({quote(attr.name)}, value)")
            out.pop_indent()

    def _generate_set_dynamic_attribute(self) -> None:
        out = self.out
        out.blank()
        out.printil("def set_dynamic_attribute(self, uri, local_name, value):")
        out.push_indent()
        out.printil("if uri is None:")
        out.push_indent()
        out.printil("self._tplc_dynamic_attrs[local_name] = value")
        out.pop_indent()
        out.pop_indent()

    def _generate_page_scoped_variables(self, tag_info: TagInfo) -> None:
        out = self.out
        for attr in tag_info.attributes:
            getter = f"self.{make_identifier_for_attribute(attr.name)}"
            if attr.deferred_value or attr.deferred_method:
                out.printil(f"page_context.set_attribute({quote(attr.name)}, {getter})")
            else:
                out.printil(f"if {getter} is not None:")
                out.push_indent()
                out.printil(f"page_context.set_attribute({quote(attr.name)}, {getter})")
                out.pop_indent()
        if tag_info.dynamic_attributes:
            map_name = tag_info.dynamic_attributes_map_name or "dynamicAttributes"
            out.printil(f"page_context.set_attribute({quote(map_name)}, self._tplc_dynamic_attrs)")


def generate(ctxt: CompilationContext, page_info: PageInfo, page: Nodes) -> str:
    """Generate the Python module of the unit described by ``ctxt``."""
    return Generator(ctxt, page_info).generate(page)


__all__ = [
    "Generator", "GenerateVisitor", "generate", "code_lines", "convert_string",
    "tag_handler_pool_name", "split_class_ref", "scope_constant",
]
