"""
Message catalogue of compile diagnostics.

Keys are stable identifiers (tests and tooling match on them); the text
is a ``str.format`` template with positional arguments.
"""

from __future__ import annotations

from typing import Dict

MESSAGES: Dict[str, str] = {
    # ------------------------------------------------------------ files
    "error.file.not.found": "File \"{0}\" not found",
    "error.include.recursive": "Recursive include of \"{0}\"",
    "error.taglib.notfound": "Unable to locate tag library for uri \"{0}\"",
    "error.tagdir.invalid": "Tag directory \"{0}\" must start with /WEB-INF/tags",
    "error.implicit.version.invalid": "Invalid version in implicit library descriptor \"{0}\"",
    "error.tagfile.suffix": "Tag file \"{0}\" does not end with .tag or .tagx",

    # --------------------------------------------------------- encoding
    "error.encoding.unsupported": "Unsupported encoding \"{0}\" in {1}",
    "error.encoding.invalid": "Input is not valid \"{0}\" at byte {1}",
    "error.prolog.config.encoding.mismatch":
        "XML prolog declares encoding \"{0}\" but the configuration requires \"{1}\"",
    "error.prolog.pagedir.encoding.mismatch":
        "XML prolog declares encoding \"{0}\" but pageEncoding is \"{1}\"",
    "error.config.pagedir.encoding.mismatch":
        "Configured page encoding \"{0}\" differs from pageEncoding \"{1}\"",

    # ------------------------------------------------------- attributes
    "error.attribute.nowhitespace": "Attributes must be separated by whitespace",
    "error.attribute.duplicate": "Attribute \"{0}\" appears more than once",
    "error.attribute.invalid.prefix": "Attribute prefix \"{0}\" is not bound to a tag library",
    "error.attribute.invalidPrefix": "Function prefix \"{0}\" is not bound to a tag library",
    "error.attribute.noequal": "Expected \"=\" after the attribute name",
    "error.attribute.noquote": "Attribute value must be quoted",
    "error.attribute.unterminated": "Value of attribute \"{0}\" is not terminated",
    "error.attribute.noescape": "Value of attribute \"{0}\" contains an unescaped {1}",
    "error.attribute.deferredmix": "Attribute mixes ${{}} and #{{}} expressions",
    "error.attribute.custom.non_rt_with_expr":
        "Attribute \"{0}\" does not accept any expressions",
    "error.attribute.standard.non_rt_with_expr":
        "Attribute \"{0}\" of {1} does not accept any expressions",
    "error.attr.quoted": "Attribute value must be quoted",
    "error.quotes.unterminated": "Unterminated quotes",
    "error.bad_attribute": "Attribute \"{0}\" is invalid for tag {1}",
    "error.missing_attribute": "Required attribute \"{0}\" of tag {1} is missing",
    "error.mandatory.attribute": "{0}: mandatory attribute \"{1}\" is missing",
    "error.invalid.attribute": "{0}: invalid attribute \"{1}\"",
    "error.duplicate.name.jspattribute":
        "Attribute \"{0}\" is given both inline and as a named attribute",
    "error.literal_with_void": "Attribute \"{0}\" is a method with void result and cannot take a literal",
    "error.coerce_to_type": "Cannot convert \"{2}\" to {1} for attribute \"{0}\"",

    # ------------------------------------------------------- directives
    "error.invalid.directive": "Invalid directive",
    "error.directive.istagfile": "Directive {0} may not be used in a tag file",
    "error.directive.isnottagfile": "Directive {0} may only be used in a tag file",
    "error.page.conflict":
        "Page directive: \"{0}\" has conflicting values, \"{1}\" (set in {2}) and \"{3}\" (in {4})",
    "error.tag.conflict":
        "Tag directive: \"{0}\" has conflicting values, \"{1}\" (set in {2}) and \"{3}\" (in {4})",
    "error.tag.conflict.attr": "Tag directive: \"{0}\" has conflicting values, \"{1}\" and \"{2}\"",
    "error.page.multi.pageencoding": "Page directive may not declare pageEncoding twice",
    "error.tag.multi.pageencoding": "Tag directive may not declare pageEncoding twice",
    "error.page.badCombo": "Page directive: autoFlush=\"false\" requires a buffer",
    "error.page.invalid.import": "Page directive: invalid import ({0})",
    "error.page.language.unsupported": "Page directive: unsupported language \"{0}\"",
    "error.tag.language.unsupported": "Tag directive: unsupported language \"{0}\"",
    "error.page.buffer.invalid": "Page directive: invalid buffer value \"{0}\"",
    "error.page.session.invalid": "Page directive: invalid session value \"{0}\"",
    "error.page.autoflush.invalid": "Page directive: invalid autoFlush value \"{0}\"",
    "error.page.isthreadsafe.invalid": "Page directive: invalid isThreadSafe value \"{0}\"",
    "error.page.iserrorpage.invalid": "Page directive: invalid isErrorPage value \"{0}\"",
    "error.page.iselignored.invalid": "Page directive: invalid isELIgnored value \"{0}\"",
    "error.tag.iselignored.invalid": "Tag directive: invalid isELIgnored value \"{0}\"",
    "error.page.deferredsyntax.invalid":
        "Page directive: invalid deferredSyntaxAllowedAsLiteral value \"{0}\"",
    "error.tag.deferredsyntax.invalid":
        "Tag directive: invalid deferredSyntaxAllowedAsLiteral value \"{0}\"",
    "error.page.trimwhitespaces.invalid":
        "Page directive: invalid trimDirectiveWhitespaces value \"{0}\"",
    "error.tag.trimwhitespaces.invalid":
        "Tag directive: invalid trimDirectiveWhitespaces value \"{0}\"",
    "error.tagdirective.badbodycontent": "Tag directive: invalid body-content \"{0}\"",
    "error.taglibDirective.missing.location": "Taglib directive needs either uri or tagdir",
    "error.taglibDirective.both_uri_and_tagdir": "Taglib directive may not give both uri and tagdir",
    "error.prefix.redefined": "Prefix \"{0}\" is bound to \"{1}\", already bound to \"{2}\"",
    "error.prefix.use.before.dcl": "Prefix \"{0}\" is used in {1} line {2} before its declaration",
    "error.invalid.version": "Invalid version in tag file \"{0}\"",
    "error.invalid.scope": "Invalid scope \"{0}\"",

    # --------------------------------------------------------- tag files
    "error.deferredmethodsignaturewithoutdeferredmethod":
        "deferredMethodSignature requires deferredMethod=\"true\"",
    "error.deferredvaluetypewithoutdeferredvalue":
        "deferredValueType requires deferredValue=\"true\"",
    "error.deferredmethodandvalue": "An attribute cannot be both deferredValue and deferredMethod",
    "error.fragmentwithtype": "A fragment attribute may not declare a type",
    "error.fragmentwithrtexprvalue": "A fragment attribute may not declare rtexprvalue",
    "error.variable.either.name": "Variable directive needs name-given or name-from-attribute",
    "error.variable.both.name": "Variable directive may not give both name-given and name-from-attribute",
    "error.variable.alias": "Variable directive: alias requires name-from-attribute",
    "error.tagfile.nameNotUnique": "Name of {0} is already used by {1} at line {2}",
    "error.tagfile.nameFrom.noAttribute": "name-from-attribute \"{0}\" names no attribute",
    "error.tagfile.nameFrom.badAttribute":
        "Attribute \"{0}\" (line {1}) must be a required String without expressions",
    "error.action.istagfile": "Action {0} may not be used in a tag file",
    "error.action.isnottagfile": "Action {0} may only be used in a tag file",
    "error.dynamic.attributes.not.implemented": "Tag {0} does not accept dynamic attributes",

    # ----------------------------------------------------------- markup
    "error.unterminated": "Unterminated {0}",
    "error.unbalanced.endtag": "End tag \"</{0}\" does not match any open element",
    "error.bad.tag": "Tag \"{0}\" is not defined in the library bound to \"{1}\"",
    "error.bad.standard.action": "Invalid standard action",
    "error.xml.bad.standard.action": "Invalid standard action \"{0}\"",
    "error.xml.bad.tag": "No tag \"{0}\" in the library for \"{1}\"",
    "error.xml.parse": "Document is not well formed: {0}",
    "error.xml.doctype": "Documents in XML syntax may not carry a DOCTYPE",
    "error.xml.scripting.invalid.body": "Body of {0} may only contain character data",
    "error.undeclared.namespace": "Prefix \"{0}\" is not declared",
    "error.not.in.template": "{0} not allowed in template text",
    "error.no.scriptlets": "Scripting elements are disallowed here",
    "error.nested.jsproot": "Nested root element",
    "error.text.has.subelement": "Text element may not contain subelements",
    "error.jsptext.badcontent": "Text element may not contain \"<\"",
    "error.emptybodycontent.nonempty": "Tag {0} has an empty body content but has a body",
    "error.simpletag.badbodycontent": "Simple tag {0} may not declare body content JSP",
    "error.bad.bodycontent.type": "Invalid body content type",
    "error.loadclass.taghandler": "Unable to load the handler class of tag \"{1}\"",

    # ---------------------------------------------------------- actions
    "error.param.expected": "Expected a param action",
    "error.params.emptyBody": "Params action needs at least one param",
    "error.params.invalid.use": "Params action must be a child of plugin",
    "error.param.invalid.use": "Param action must be a child of include, forward or params",
    "error.fallback.invalid.use": "Fallback action must be a child of plugin",
    "error.namedattribute.invalid.use": "Named attribute must be a child of an action",
    "error.namedAttribute.invalidUse": "Named attribute must be a child of an action",
    "error.nested.jspattribute": "Named attributes may not be nested",
    "error.jspbody.invalid.use": "Body action must be a child of an action",
    "error.nested.jspbody": "Body actions may not be nested",
    "error.jspbody.required": "Tag {0} with named attributes needs an explicit body action",
    "error.jspbody.emptybody.only": "Tag {0} with an empty body may only contain named attributes",
    "error.jspelement.missing.name": "Element action needs a name",
    "error.jspoutput.invalid.use": "Output action is only allowed in XML syntax",
    "error.jspoutput.nonemptybody": "Output action must have an empty body",
    "error.jspoutput.conflict": "Output action: \"{0}\" has conflicting values \"{1}\" and \"{2}\"",
    "error.jspoutput.doctypenamesystem":
        "Output action: doctype-root-element and doctype-system go together",
    "error.jspoutput.doctypepublicsystem": "Output action: doctype-public requires doctype-system",
    "error.jsproot.version.invalid": "Invalid root version \"{0}\"",
    "error.plugin.badtype": "Plugin type must be \"bean\" or \"applet\"",
    "error.setProperty.invalid": "setProperty: value and param are mutually exclusive",
    "error.getProperty.unknown_bean": "getProperty: no bean named \"{0}\"",
    "error.usebean.missingType": "useBean needs class, type or beanName",
    "error.usebean.duplicate": "Duplicate bean name \"{0}\"",
    "error.usebean.noSession": "useBean with session scope on a page without a session",
    "error.usebean.notBoth": "useBean may not give both class and beanName",
    "error.usebean.scope.bad": "Invalid bean scope \"{0}\"",
    "error.bean.unknown": "Unknown bean \"{0}\"",
    "error.missing_var_or_varReader": "Invoke action needs var or varReader when scope is given",
    "error.var_and_varReader": "var and varReader are mutually exclusive",

    # ------------------------------------------------------ expressions
    "error.invalid.expression": "Invalid expression \"{0}\": {1}",
    "error.el.template.deferred": "#{{}} is not allowed in template text",
    "error.noFunction": "No function named \"{0}\"",
    "error.tld.fn.invalid.signature": "Invalid signature of function \"{0}:{1}\"",

    # ------------------------------------------------------ custom tags
    "error.missing.tagInfo": "No tag information for {0}",
    "error.non_null_tei_and_var_subelems":
        "Tag {0} has both an extra-info hook and declared variables",
    "error.tei.invalid.attributes": "Invalid attributes for tag {0}: {1}",
    "error.tlv.invalid.page": "Tag library validation failed for {0}: {1}",
    "error.scripting.variable.missing_name": "No value for the name-from-attribute \"{0}\"",
    "error.tag.handler.missing": "Tag {0} has no handler class",
    "error.tag.handler.invalid": "Handler reference \"{0}\" of tag {1} is not \"module:Class\"",
    "error.unable.to_find_method": "No setter for attribute \"{0}\"",

    # --------------------------------------------------------- scripting
    "error.scriptlet.unbalanced_end": "Block terminator without an open block",
    "error.scriptlet.unclosed_block": "Scriptlet block is not closed",
}


__all__ = ["MESSAGES"]
