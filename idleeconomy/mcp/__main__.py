"""Trusted offline service: python -m idleeconomy.mcp <catalog_module>"""

from __future__ import annotations

import logging
import sys


def main() -> None:
    if len(sys.argv) < 2:
        print("Usage: python -m idleeconomy.mcp <catalog_module>", file=sys.stderr)
        print("Example: python -m idleeconomy.mcp examples.rice_example", file=sys.stderr)
        sys.exit(1)

    # stdout carries the protocol; logs go to stderr
    logging.basicConfig(
        stream=sys.stderr,
        level=logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    module_path = sys.argv[1]
    real_stdout = sys.stdout
    sys.stdout = sys.stderr
    try:
        from idleeconomy.cli import load_catalog

        catalog = load_catalog(module_path)
    finally:
        sys.stdout = real_stdout

    from idleeconomy.mcp.server import create_server

    server = create_server(catalog)
    logging.getLogger(__name__).info(
        "Serving offline recomputation for %r (%d buildings)",
        catalog.name, len(catalog.buildings),
    )
    server.run(transport="stdio")


if __name__ == "__main__":
    main()
