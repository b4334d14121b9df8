from __future__ import annotations

import sys

try:
    from .cli import main as _cli_main
except ImportError:
    # Run as a plain script, without package context.
    from serialgrid_app.cli import main as _cli_main


def main(argv: list[str] | None = None) -> int:
    args = sys.argv[1:] if argv is None else argv
    if not args:
        # Bare invocation runs the demo on the first device found.
        return int(_cli_main(["demo"]))
    return int(_cli_main(args))


if __name__ == "__main__":
    raise SystemExit(main())
