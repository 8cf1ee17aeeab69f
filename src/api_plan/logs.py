# logs.py
# Route stdlib logging through rich so log lines share the report console.

import logging

from rich.logging import RichHandler

from api_plan.display import console


def configure(level: str | int = "INFO") -> None:
    logging.basicConfig(
        level=level,
        format="%(name)s: %(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False, rich_tracebacks=True)],
        force=True,
    )
