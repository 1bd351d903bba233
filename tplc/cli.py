from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

from .compiler import Compiler, CompileResult
from .config import DEFAULT_CFG_FILE, load_options
from .errors import TplcUserError
from .version import tool_version

_LOG = logging.getLogger("tplc")


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose or os.environ.get("TPLC_DEBUG") else logging.WARNING
    _LOG.setLevel(level)
    if not _LOG.handlers:
        h = logging.StreamHandler()
        h.setFormatter(logging.Formatter("[%(levelname)s] %(message)s"))
        _LOG.addHandler(h)


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="tplc",
        description="Template page compiler: templates in, Python modules out",
    )
    p.add_argument("--version", action="version", version=f"%(prog)s {tool_version()}")
    p.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    sub = p.add_subparsers(dest="cmd", required=True)

    def add_common(sp: argparse.ArgumentParser) -> None:
        sp.add_argument("unit", help="unit path inside the source root, e.g. /index.tpl")
        sp.add_argument("--root", type=Path, default=None, help="source root (default: cwd)")
        sp.add_argument(
            "--config",
            type=Path,
            default=None,
            help=f"options file (default: <root>/{DEFAULT_CFG_FILE} when present)",
        )

    sp_compile = sub.add_parser("compile", help="generate the Python module of a unit")
    add_common(sp_compile)
    sp_compile.add_argument("--out", type=Path, help="write the module here instead of stdout")
    sp_compile.add_argument("--smap", type=Path, help="write the line map here")
    sp_compile.add_argument(
        "--out-dir",
        type=Path,
        help="write the module and the modules of every tag file it uses below this directory",
    )

    sp_check = sub.add_parser("check", help="parse and validate only")
    add_common(sp_check)

    sp_deps = sub.add_parser("deps", help="JSON list of the files a unit is built from")
    add_common(sp_deps)
    return p


def _compiler(ns: argparse.Namespace) -> Compiler:
    root = (ns.root or Path.cwd()).resolve()
    cfg = ns.config if ns.config is not None else root / DEFAULT_CFG_FILE
    return Compiler(root, load_options(cfg))


def _write(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


def _write_tree(out_dir: Path, results: List[CompileResult]) -> None:
    for result in results:
        target = out_dir / result.output_file
        _write(target, result.source)
        # every directory on the way becomes a package
        pkg = target.parent
        while pkg != out_dir and out_dir in pkg.parents:
            init = pkg / "__init__.py"
            if not init.exists():
                init.write_text("", encoding="utf-8")
            pkg = pkg.parent
        _LOG.info("wrote %s", target)


def main(argv: Optional[List[str]] = None) -> int:
    ns = _build_parser().parse_args(argv)
    _setup_logging(ns.verbose)

    try:
        compiler = _compiler(ns)

        if ns.cmd == "compile":
            if ns.out_dir is not None:
                results = compiler.compile_all(ns.unit)
                _write_tree(ns.out_dir, results)
                result = results[0]
            else:
                result = compiler.compile(ns.unit)
            if ns.out is not None:
                _write(ns.out, result.source)
            elif ns.out_dir is None:
                sys.stdout.write(result.source)
            if ns.smap is not None:
                _write(ns.smap, result.smap.render())
            return 0

        if ns.cmd == "check":
            compiler.check(ns.unit)
            sys.stderr.write(f"{ns.unit}: ok\n")
            return 0

        if ns.cmd == "deps":
            page_info = compiler.check(ns.unit)
            sys.stdout.write(json.dumps(sorted(page_info.dependants), indent=2) + "\n")
            return 0

    except TplcUserError as e:
        sys.stderr.write(str(e).rstrip() + "\n")
        return 2

    return 2


if __name__ == "__main__":
    raise SystemExit(main())
