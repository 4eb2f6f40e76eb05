from __future__ import annotations

import typer

from duel_ledger.cli.details import app as details_app
from duel_ledger.cli.feed import app as feed_app
from duel_ledger.cli.geo import app as geo_app
from duel_ledger.core.config import settings
from duel_ledger.core.logging import configure_logging

app = typer.Typer(no_args_is_help=True)
app.add_typer(feed_app, name="feed")
app.add_typer(details_app, name="details")
app.add_typer(geo_app, name="geo")


@app.callback()
def main(
    log_level: str | None = typer.Option(
        None, "--log-level", help="Logging level (defaults to LOG_LEVEL / INFO)."
    ),
) -> None:
    """Match history ingestion for head-to-head and team duels."""

    configure_logging(log_level or settings.log_level)
