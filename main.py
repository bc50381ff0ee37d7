#!/usr/bin/env python3
"""Forward ``python main.py ...`` to :mod:`jsdeob.main`.

Running from a checkout without installing the package keeps working through
this wrapper; the installed ``jsdeob`` console script calls the same function.
"""

from __future__ import annotations

import sys

from jsdeob import main as _cli


def main(argv: list[str] | None = None) -> int:
    return _cli.main(sys.argv[1:] if argv is None else argv)


if __name__ == "__main__":  # pragma: no cover - thin CLI shim
    raise SystemExit(main())
