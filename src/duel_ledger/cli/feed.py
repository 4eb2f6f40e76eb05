from __future__ import annotations

import typer

from duel_ledger.cli.common import make_http_client, session_scope
from duel_ledger.ingestion.feed.sync import sync_feed
from duel_ledger.ingestion.providers.game_api.client import GameApiClient

app = typer.Typer(help="Activity feed sync.")


@app.command("sync")
def sync_feed_cmd(
    max_pages: int = typer.Option(120, "--max-pages", help="Stop after this many feed pages."),
    delay_seconds: float = typer.Option(
        0.15, "--delay-seconds", help="Pause between page requests."
    ),
) -> None:
    """Pull the private feed and upsert matches into the local DB."""

    with make_http_client() as http, session_scope() as session:
        result = sync_feed(
            session,
            client=GameApiClient(http=http),
            max_pages=max_pages,
            delay_seconds=delay_seconds,
        )

    typer.echo(
        " ".join(
            [
                f"Synced feed: pages={result.pages}",
                f"upserted={result.upserted}",
                f"total={result.total}",
                f"reached_last_seen={result.reached_last_seen}",
            ]
        )
    )
