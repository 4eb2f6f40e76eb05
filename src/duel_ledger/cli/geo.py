from __future__ import annotations

import typer

from duel_ledger.cli.common import make_http_client
from duel_ledger.geo.resolver import CountryResolver

app = typer.Typer(help="Coordinate to country resolution.")


@app.command("resolve")
def resolve_cmd(
    lat: float = typer.Option(..., "--lat", help="Latitude."),
    lng: float = typer.Option(..., "--lng", help="Longitude."),
) -> None:
    """Print the ISO2 country for a coordinate (or '-' when none)."""

    with make_http_client() as http:
        iso2 = CountryResolver(http=http).resolve_country(lat, lng)
    typer.echo(iso2 or "-")
