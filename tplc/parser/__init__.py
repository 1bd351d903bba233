"""Front ends: the relaxed and strict syntax parsers and their controller."""

from .controller import ParserController, UnitSource, has_jsp_root
from .relaxed import RelaxedParser
from .strict import StrictParser
from .tagfile import parse_tag_file_directives

__all__ = [
    "ParserController", "UnitSource", "has_jsp_root", "RelaxedParser",
    "StrictParser", "parse_tag_file_directives",
]
