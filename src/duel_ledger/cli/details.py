from __future__ import annotations

import threading
from datetime import timedelta

import typer

from duel_ledger.cli.common import make_http_client, make_session_factory, session_scope
from duel_ledger.core.config import settings
from duel_ledger.geo.resolver import CountryResolver
from duel_ledger.ingestion.details.backfill import backfill_guess_countries
from duel_ledger.ingestion.details.coordinator import PlanOptions, ingest_match_details
from duel_ledger.ingestion.details.normalizer import PayloadNormalizer
from duel_ledger.ingestion.details.profiles import ProfileDirectory
from duel_ledger.ingestion.details.store import SqlDetailStore
from duel_ledger.ingestion.progress import FetchProgress
from duel_ledger.ingestion.providers.base.errors import ProviderError
from duel_ledger.ingestion.providers.game_api.client import GameApiClient

app = typer.Typer(help="Match detail ingestion.")


def _echo_progress(progress: FetchProgress) -> None:
    typer.echo(progress.label())


@app.command("fetch")
def fetch_details_cmd(
    limit: int | None = typer.Option(
        None, "--limit", help="Only consider the newest N head-to-head/team matches."
    ),
    concurrency: int = typer.Option(
        settings.detail_concurrency, "--concurrency", help="Number of worker threads."
    ),
    retry_errors: bool = typer.Option(
        True,
        "--retry-errors/--no-retry-errors",
        help="Re-fetch matches whose last attempt ended in a transient error.",
    ),
    verify_completeness: bool = typer.Option(
        True,
        "--verify-completeness/--no-verify-completeness",
        help="Re-fetch ok matches with fewer stored rounds than declared.",
    ),
    own_player_id: str | None = typer.Option(
        None, "--own-player-id", help="Authenticated player id (discovered when omitted)."
    ),
    time_budget_seconds: float | None = typer.Option(
        None,
        "--time-budget-seconds",
        help="Stop starting new matches after this many seconds; running ones finish.",
    ),
    backfill: bool = typer.Option(
        True,
        "--backfill/--no-backfill",
        help="Afterwards, resolve guess countries still missing in stored rounds.",
    ),
) -> None:
    """Fetch, normalize and store match details for feed matches that need it."""

    factory = make_session_factory()
    options = PlanOptions(
        retry_errors=retry_errors,
        verify_completeness=verify_completeness,
        missing_retry_after=timedelta(days=settings.missing_retry_days),
        enrichment_retry_after=timedelta(days=settings.enrichment_retry_days),
    )

    with make_http_client() as http:
        client = GameApiClient(http=http)
        own_id = own_player_id or settings.own_player_id
        if own_id is None:
            try:
                own_id = client.discover_own_player_id()
            except ProviderError as e:
                typer.echo(f"warning: {e}; own team falls back to the first team", err=True)

        resolver = CountryResolver(http=http)
        normalizer = PayloadNormalizer(resolver=resolver, profiles=ProfileDirectory(client=client))

        cancel = threading.Event()
        timer = None
        if time_budget_seconds is not None:
            timer = threading.Timer(time_budget_seconds, cancel.set)
            timer.daemon = True
            timer.start()
        try:
            result = ingest_match_details(
                SqlDetailStore(factory),
                client=client,
                normalizer=normalizer,
                own_player_id=own_id,
                limit=limit,
                concurrency=concurrency,
                options=options,
                on_status=_echo_progress,
                cancel=cancel,
            )
        finally:
            if timer is not None:
                timer.cancel()

        typer.echo(
            " ".join(
                [
                    f"Details: candidates={result.candidates}",
                    f"queued={result.queued}",
                    f"ok={result.ok}",
                    f"fail={result.fail}",
                    f"missing={result.missing}",
                    f"skipped={result.skipped}",
                    f"up_to_date={result.up_to_date}",
                ]
            )
        )

        if backfill:
            with session_scope() as session:
                backfilled = backfill_guess_countries(session, resolver=resolver)
            typer.echo(
                f"Guess countries: filled={backfilled.filled} attempted={backfilled.attempted} "
                f"skipped={backfilled.skipped}"
            )


@app.command("backfill-countries")
def backfill_countries_cmd(
    force: bool = typer.Option(
        False, "--force", help="Run even if the last backfill was less than 24h ago."
    ),
    batch_size: int = typer.Option(500, "--batch-size", help="Rows per batch."),
) -> None:
    """Resolve guess countries for stored rounds that have coordinates but no country."""

    with make_http_client() as http, session_scope() as session:
        result = backfill_guess_countries(
            session,
            resolver=CountryResolver(http=http),
            force=force,
            batch_size=batch_size,
        )

    typer.echo(
        " ".join(
            [
                f"Backfilled guess countries: scanned={result.scanned}",
                f"attempted={result.attempted}",
                f"filled={result.filled}",
                f"no_coordinates={result.no_coordinates}",
                f"resolve_failed={result.resolve_failed}",
                f"skipped={result.skipped}",
            ]
        )
    )
