"""
tplc: compiles hybrid markup/expression templates into Python modules.
"""

from .compiler import Compiler, CompileResult, compile_unit
from .config import CompilerOptions, PropertyGroup, load_options
from .errors import CompileError, ConfigError, TplcUserError
from .version import tool_version

__all__ = [
    "Compiler", "CompileResult", "compile_unit", "CompilerOptions", "PropertyGroup",
    "load_options", "CompileError", "ConfigError", "TplcUserError", "tool_version",
]
