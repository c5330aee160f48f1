"""Create a dated PRD from docs/prd/PRD_TEMPLATE.md in the current repository."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path

from scarlet.prd_template import render_prd


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Render a new PRD from the repository template")
    parser.add_argument("title", nargs="+", help="PRD title, e.g. \"Add Widget\"")
    parser.add_argument("--repo-root", type=Path, default=Path.cwd(), help="Repository root (default: cwd)")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    title = " ".join(args.title)
    try:
        out_path = render_prd(title, repo_root=args.repo_root)
    except (OSError, ValueError) as exc:
        logging.error("Unable to render PRD: %s", exc)
        return 1
    print(out_path)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
