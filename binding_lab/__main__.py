"""CLI entry point.

Usage:
    python -m binding_lab <command> [OPTIONS]

Commands:
    models      Browse the provider model catalog
    run         Evaluate candidates against a baseline with a judge
    rank        Rank evaluated models by quality and cost
    bind        Save the production binding for a category
    bindings    Show saved bindings
    templates   List and add prompt templates
"""

import sys

from binding_lab.pipeline.cli import cli


def main() -> None:
    """Entry point for ``python -m binding_lab`` and ``binding-lab``."""
    # Fix Windows console encoding for Unicode output
    import io

    if sys.platform == "win32":
        sys.stdout = io.TextIOWrapper(sys.stdout.buffer, encoding="utf-8", errors="replace")
        sys.stderr = io.TextIOWrapper(sys.stderr.buffer, encoding="utf-8", errors="replace")

    cli()


if __name__ == "__main__":
    main()
