from .collector import collect, concatenate_text, map_el_functions
from .generator import Generator, generate
from .smap import SourceMap, generate_smap

__all__ = [
    "collect", "concatenate_text", "map_el_functions",
    "Generator", "generate", "SourceMap", "generate_smap",
]
