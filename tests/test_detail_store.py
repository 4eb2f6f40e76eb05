from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import Session, sessionmaker

import duel_ledger.db.models  # noqa: F401
from duel_ledger.db.base import Base
from duel_ledger.db.engine import DatabaseConfig, create_db_engine, create_session_factory
from duel_ledger.db.enums import DetailStatusEnum, ModeFamilyEnum, RoleEnum
from duel_ledger.db.models.details.game_detail import GameDetail
from duel_ledger.db.models.details.round import Round
from duel_ledger.db.models.feed.feed_match import FeedMatch
from duel_ledger.ingestion.details.normalizer import PayloadNormalizer
from duel_ledger.ingestion.details.store import SqlDetailStore
from duel_ledger.ingestion.details.types import MatchRef, NormalizedMatch

NOW = datetime(2026, 2, 10, 9, 30, tzinfo=UTC)


def _make_session_factory(tmp_path: Path) -> sessionmaker[Session]:
    engine = create_db_engine(DatabaseConfig(f"sqlite+pysqlite:///{tmp_path / 'store.db'}"))
    Base.metadata.create_all(engine)
    return create_session_factory(engine)


def _payload(rounds: int) -> dict[str, Any]:
    return {
        "teams": [
            {
                "id": "t-me",
                "players": [
                    {
                        "playerId": "p-me",
                        "guesses": [
                            {"roundNumber": n, "lat": 1.0, "lng": 1.0, "countryCode": "GH"}
                            for n in range(1, rounds + 1)
                        ],
                    }
                ],
            },
            {"id": "t-them", "players": [{"playerId": "p-them", "guesses": []}]},
        ],
        "rounds": [{"roundNumber": n} for n in range(1, rounds + 1)],
        "options": {"map": {"name": "World", "slug": "world"}, "isRated": False},
    }


def _normalized(match_id: str, endpoint: str, rounds: int) -> NormalizedMatch:
    match = MatchRef(match_id=match_id, family=ModeFamilyEnum.DUELS)
    return PayloadNormalizer().normalize(
        match, _payload(rounds), endpoint, own_player_id="p-me", now=NOW
    )


class FailingRoundsStore(SqlDetailStore):
    """Blows up between the detail write and the round writes."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        super().__init__(session_factory, store_raw=False)
        self.seen_by_reader: tuple[str | None, int] | None = None

    def _write_rounds(self, session: Session, rounds) -> None:
        # A second connection reads while the write transaction is open.
        with self.session_factory() as reader:
            row = reader.get(GameDetail, rounds[0].match_id)
            count = reader.execute(
                select(func.count()).select_from(Round).where(Round.match_id == rounds[0].match_id)
            ).scalar_one()
            self.seen_by_reader = (row.endpoint if row else None, int(count))
        raise RuntimeError("simulated crash before rounds")


def _round_count(session_factory: sessionmaker[Session], match_id: str) -> int:
    with session_factory() as session:
        stmt = select(func.count()).select_from(Round).where(Round.match_id == match_id)
        return int(session.execute(stmt).scalar_one())


def test_failed_save_of_new_match_leaves_nothing_behind(tmp_path: Path) -> None:
    session_factory = _make_session_factory(tmp_path)
    store = FailingRoundsStore(session_factory)

    with pytest.raises(RuntimeError):
        store.save_normalized(_normalized("M1", "https://a.test/M1", rounds=3))

    assert store.seen_by_reader == (None, 0)
    with session_factory() as session:
        assert session.get(GameDetail, "M1") is None
    assert _round_count(session_factory, "M1") == 0


def test_failed_resave_keeps_previous_detail_and_rounds(tmp_path: Path) -> None:
    session_factory = _make_session_factory(tmp_path)
    SqlDetailStore(session_factory, store_raw=False).save_normalized(
        _normalized("M1", "https://a.test/M1", rounds=2)
    )

    store = FailingRoundsStore(session_factory)
    with pytest.raises(RuntimeError):
        store.save_normalized(_normalized("M1", "https://b.test/M1", rounds=5))

    assert store.seen_by_reader == ("https://a.test/M1", 2)
    with session_factory() as session:
        row = session.get(GameDetail, "M1")
        assert row.endpoint == "https://a.test/M1"
        assert row.total_rounds == 2
        assert {p.role for p in row.players} == {RoleEnum.SELF, RoleEnum.OPPONENT}
    assert _round_count(session_factory, "M1") == 2


def test_resave_replaces_rounds_and_players(tmp_path: Path) -> None:
    session_factory = _make_session_factory(tmp_path)
    store = SqlDetailStore(session_factory, store_raw=False)

    store.save_normalized(_normalized("M1", "https://a.test/M1", rounds=3))
    store.save_normalized(_normalized("M1", "https://b.test/M1", rounds=2))

    assert store.round_counts(["M1", "M9"]) == {"M1": 2}
    with session_factory() as session:
        row = session.get(GameDetail, "M1")
        assert row.status == DetailStatusEnum.OK
        assert row.endpoint == "https://b.test/M1"
        assert row.raw is None
        assert len(row.players) == 2
    assert store.prior_guess_countries("M1") == {
        (1, RoleEnum.SELF): "gh",
        (2, RoleEnum.SELF): "gh",
    }


def test_payload_with_repeated_round_number_saves_cleanly(tmp_path: Path) -> None:
    session_factory = _make_session_factory(tmp_path)
    store = SqlDetailStore(session_factory, store_raw=False)
    payload = _payload(2)
    payload["rounds"].append({"roundNumber": 2, "panorama": {"countryCode": "PT"}})
    match = MatchRef(match_id="M1", family=ModeFamilyEnum.DUELS)

    store.save_normalized(
        PayloadNormalizer().normalize(
            match, payload, "https://a.test/M1", own_player_id="p-me", now=NOW
        )
    )

    assert store.round_counts(["M1"]) == {"M1": 2}
    with session_factory() as session:
        assert session.get(GameDetail, "M1").status == DetailStatusEnum.OK
        assert session.get(Round, "M1:2").true_country == "pt"


def test_placeholders_are_created_once(tmp_path: Path) -> None:
    session_factory = _make_session_factory(tmp_path)
    store = SqlDetailStore(session_factory, store_raw=False)
    matches = [
        MatchRef(match_id="M1", family=ModeFamilyEnum.DUELS, mode_label="Duels"),
        MatchRef(match_id="M2", family=ModeFamilyEnum.TEAM_DUELS),
        MatchRef(match_id="M1", family=ModeFamilyEnum.DUELS),
    ]

    assert store.put_placeholders(matches) == 2
    assert store.put_placeholders(matches) == 0
    assert store.put_placeholders([]) == 0

    states = store.bulk_get_details(["M1", "M2", "M3"])
    assert set(states) == {"M1", "M2"}
    assert states["M1"].status == DetailStatusEnum.MISSING
    assert states["M1"].fetched_at is None
    assert states["M2"].total_rounds is None


def test_failure_never_downgrades_an_ok_detail(tmp_path: Path) -> None:
    session_factory = _make_session_factory(tmp_path)
    store = SqlDetailStore(session_factory, store_raw=False)
    store.save_normalized(_normalized("M1", "https://a.test/M1", rounds=2))
    match = MatchRef(match_id="M1", family=ModeFamilyEnum.DUELS)
    later = datetime(2026, 3, 1, tzinfo=UTC)

    store.record_failure(match, status=DetailStatusEnum.MISSING, message="x -> HTTP 404", at=later)

    state = store.bulk_get_details(["M1"])["M1"]
    assert state.status == DetailStatusEnum.OK
    assert state.fetched_at.replace(tzinfo=UTC) == NOW
    assert store.round_counts(["M1"]) == {"M1": 2}
    with session_factory() as session:
        assert session.get(GameDetail, "M1").error == "x -> HTTP 404"


def test_failure_updates_placeholder_and_error_can_become_missing(tmp_path: Path) -> None:
    session_factory = _make_session_factory(tmp_path)
    store = SqlDetailStore(session_factory, store_raw=False)
    match = MatchRef(match_id="M1", family=ModeFamilyEnum.DUELS)
    store.put_placeholders([match])

    store.record_failure(match, status=DetailStatusEnum.ERROR, message="HTTP 502", at=NOW)
    assert store.bulk_get_details(["M1"])["M1"].status == DetailStatusEnum.ERROR

    store.record_failure(match, status=DetailStatusEnum.MISSING, message="HTTP 410", at=NOW)
    state = store.bulk_get_details(["M1"])["M1"]
    assert state.status == DetailStatusEnum.MISSING
    assert state.fetched_at is not None

    other = MatchRef(match_id="M2", family=ModeFamilyEnum.TEAM_DUELS)
    store.record_failure(other, status=DetailStatusEnum.ERROR, message="boom", at=NOW)
    assert store.bulk_get_details(["M2"])["M2"].status == DetailStatusEnum.ERROR


def test_load_candidates_filters_and_limits_newest_first(tmp_path: Path) -> None:
    session_factory = _make_session_factory(tmp_path)
    with session_factory.begin() as session:
        rows = [
            ("M1", ModeFamilyEnum.DUELS, "Duels", 1),
            ("S1", ModeFamilyEnum.OTHER, "Standard", 2),
            ("T1", ModeFamilyEnum.TEAM_DUELS, "TeamDuels", 3),
            ("X1", ModeFamilyEnum.OTHER, "DuelsLegacy", 4),
        ]
        for match_id, family, label, day in rows:
            session.add(
                FeedMatch(
                    match_id=match_id,
                    family=family,
                    mode_label=label,
                    played_at=datetime(2026, 1, day, tzinfo=UTC),
                )
            )
    store = SqlDetailStore(session_factory, store_raw=False)

    assert [m.match_id for m in store.load_candidates()] == ["X1", "T1", "M1"]
    assert [m.match_id for m in store.load_candidates(limit=2)] == ["X1", "T1"]
