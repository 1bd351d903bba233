import re
from pathlib import Path

from tplc.errors import CompileError, ConfigError, TplcUserError, format_message
from tplc.mark import Mark
from tplc.messages import MESSAGES


def test_message_arguments_are_substituted():
    assert format_message("error.attribute.duplicate", "id") == 'Attribute "id" appears more than once'


def test_unknown_key_is_literal_text():
    assert format_message("handler says no") == "handler says no"


def test_missing_arguments_do_not_raise():
    text = format_message("error.attribute.duplicate")
    assert text.startswith("Attribute")


def test_compile_error_carries_key_and_mark():
    mark = Mark("/dir/page.tpl", 3, 7)
    e = CompileError("error.file.not.found", "/inc.tpl", mark=mark)
    assert e.key == "error.file.not.found"
    assert e.args_ == ("/inc.tpl",)
    assert e.mark == mark
    assert str(e).startswith("/dir/page.tpl(3,7) ")
    assert "/inc.tpl" in str(e)


def test_compile_error_without_mark():
    e = CompileError("error.scriptlet.unclosed_block")
    assert str(e) == MESSAGES["error.scriptlet.unclosed_block"]


def test_user_errors_share_a_base():
    assert issubclass(CompileError, TplcUserError)
    assert issubclass(ConfigError, TplcUserError)


def test_every_raised_key_has_a_message():
    """Each ``error.*`` key raised by the package is in the catalogue."""
    pkg = Path(__file__).resolve().parents[1] / "tplc"
    keys = set()
    for path in pkg.rglob("*.py"):
        if path.name == "messages.py":
            continue
        keys.update(re.findall(r'"(error\.[A-Za-z0-9_.]+)"', path.read_text(encoding="utf-8")))
    missing = sorted(k for k in keys if k not in MESSAGES)
    assert missing == []
