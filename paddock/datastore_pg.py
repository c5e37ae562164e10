import os
import json
from typing import Any, Dict, List, Optional

import psycopg2
from psycopg2 import pool as pg_pool
from psycopg2.extras import RealDictCursor
from contextlib import contextmanager


_POOL: Optional[pg_pool.AbstractConnectionPool] = None

OUTPUT_COLUMNS = (
    "round_results",
    "qualifying_results",
    "race_time_results",
    "fastest_lap_results",
    "team_championship_results",
)


def _env_int(name: str, default: Optional[int] = None) -> Optional[int]:
    val = os.environ.get(name)
    if val is None:
        return default
    try:
        return int(val)
    except ValueError:
        return default


def _connect_kwargs() -> Dict[str, Any]:
    """Connection kwargs shared by the pool and direct connections.

    Defaults:
      - connect_timeout: 10 seconds (DB_CONNECT_TIMEOUT)
      - keepalives: on unless DB_KEEPALIVES=0/false
      - DB_KEEPALIVES_IDLE / _INTERVAL / _COUNT applied when set
    """
    kwargs: Dict[str, Any] = {}
    timeout = _env_int("DB_CONNECT_TIMEOUT")
    kwargs["connect_timeout"] = timeout if timeout is not None else 10

    ka_env = os.environ.get("DB_KEEPALIVES")
    if ka_env is None:
        kwargs["keepalives"] = 1
    else:
        kwargs["keepalives"] = 0 if str(ka_env).lower() in ("0", "false") else 1

    for env_name, kwarg in (
        ("DB_KEEPALIVES_IDLE", "keepalives_idle"),
        ("DB_KEEPALIVES_INTERVAL", "keepalives_interval"),
        ("DB_KEEPALIVES_COUNT", "keepalives_count"),
    ):
        value = _env_int(env_name)
        if value is not None:
            kwargs[kwarg] = value
    return kwargs


def init_pool(minconn: int = 1, maxconn: int = 10) -> None:
    """Create the global connection pool from DATABASE_URL.

    Calling it again once a pool exists does nothing.
    """
    global _POOL
    if _POOL is not None:
        return
    url = os.environ.get("DATABASE_URL")
    if not url:
        return
    _POOL = pg_pool.ThreadedConnectionPool(minconn, maxconn, dsn=url, **_connect_kwargs())


def _is_healthy(conn) -> bool:
    try:
        with conn.cursor() as cur:
            cur.execute("SELECT 1")
        if not getattr(conn, "autocommit", False):
            conn.rollback()
    except (psycopg2.OperationalError, psycopg2.InterfaceError):
        return False
    return True


@contextmanager
def _get_conn():
    """Yield a pooled connection (or a direct one when no pool exists).

    Pooled connections are pinged first; a dead one is discarded and the
    checkout retried once. Any exception inside the block rolls back.
    """
    url = os.environ.get("DATABASE_URL")
    if not url:
        raise RuntimeError("DATABASE_URL not set; configure a PostgreSQL connection string")
    if _POOL is None:
        conn = psycopg2.connect(url, **_connect_kwargs())
        try:
            yield conn
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()
        return

    conn = _POOL.getconn()
    if not _is_healthy(conn):
        _POOL.putconn(conn, close=True)
        conn = _POOL.getconn()
        if not _is_healthy(conn):
            _POOL.putconn(conn, close=True)
            raise psycopg2.OperationalError("Failed to acquire healthy DB connection after retry")
    try:
        yield conn
    except Exception:
        conn.rollback()
        raise
    finally:
        # status 1 = active, 2 = intrans, 3 = inerror
        if getattr(conn, "closed", 0) == 0 and not getattr(conn, "autocommit", False):
            if getattr(conn, "status", 0) in (1, 2, 3):
                conn.rollback()
        _POOL.putconn(conn)


def _jsonb(value: Any) -> Optional[str]:
    if value is None:
        return None
    return json.dumps(value, sort_keys=True, separators=(",", ":"))


def load_round_inputs(round_id: int) -> Dict[str, Any]:
    """Read everything the engine needs for one round.

    Returns ``{"round": {...}, "races": [...], "results": [...]}`` with row
    dictionaries keyed the way ``paddock.engine.inputs_from_rows`` expects.
    Raises ``LookupError`` if the round does not exist.
    """
    with _get_conn() as conn, conn.cursor(cursor_factory=RealDictCursor) as cur:
        cur.execute(
            """
            SELECT r.id AS round_id, r.season_id, r.status,
                   r.round_points AS round_points_enabled, r.points_system,
                   r.fastest_lap_bonus, r.fastest_lap_top_10,
                   r.pole_bonus, r.pole_top_10, r.bonus_scope,
                   s.divisions_enabled, s.tiebreaker_rules,
                   s.team_championship_enabled, s.teams_drivers_for_calculation
            FROM rounds r
            JOIN seasons s ON s.id = r.season_id
            WHERE r.id = %s
            """,
            (round_id,),
        )
        round_row = cur.fetchone()
        if not round_row:
            raise LookupError(f"Round {round_id} not found")
        round_row = dict(round_row)

        cur.execute(
            "SELECT driver_id, team_id FROM season_drivers WHERE season_id = %s ORDER BY driver_id",
            (round_row["season_id"],),
        )
        season_drivers = cur.fetchall()
        roster = [r["driver_id"] for r in season_drivers]
        # No roster recorded means no roster check
        round_row["driver_ids"] = roster or None
        round_row["driver_teams"] = [dict(r) for r in season_drivers if r["team_id"] is not None]

        cur.execute(
            "SELECT id AS team_id, name FROM teams WHERE season_id = %s ORDER BY id",
            (round_row["season_id"],),
        )
        round_row["teams"] = [dict(r) for r in cur.fetchall()]

        cur.execute(
            """
            SELECT id AS race_id, race_number, is_qualifier, points_system,
                   fastest_lap_bonus, fastest_lap_top_10, pole_bonus, pole_top_10
            FROM races
            WHERE round_id = %s
            ORDER BY race_number NULLS FIRST, id
            """,
            (round_id,),
        )
        races = [dict(r) for r in cur.fetchall()]

        cur.execute(
            """
            SELECT rr.id AS result_id, rr.race_id, rr.driver_id, rr.division_id,
                   rr.position, rr.dnf, rr.lap_time_ms, rr.race_time_ms,
                   rr.penalties_ms, rr.has_fastest_lap, rr.has_pole, rr.positions_gained
            FROM race_results rr
            JOIN races ra ON ra.id = rr.race_id
            WHERE ra.round_id = %s
            ORDER BY rr.id
            """,
            (round_id,),
        )
        results = [dict(r) for r in cur.fetchall()]
    return {"round": round_row, "races": races, "results": results}


def save_round_outputs(round_id: int, outputs: Dict[str, Any], complete: bool = False) -> None:
    """Replace the stored outputs of a round in one transaction.

    With ``complete`` the round is also marked completed. Raises
    ``LookupError`` (after rolling back) if the round does not exist.
    """
    params: List[Any] = [_jsonb(outputs.get(col)) for col in OUTPUT_COLUMNS]
    sets = ", ".join(f"{col} = %s::jsonb" for col in OUTPUT_COLUMNS)
    if complete:
        sets += ", status = 'completed', completed_at = NOW()"
    params.append(round_id)
    with _get_conn() as conn, conn.cursor() as cur:
        cur.execute(f"UPDATE rounds SET {sets} WHERE id = %s", params)
        if cur.rowcount == 0:
            conn.rollback()
            raise LookupError(f"Round {round_id} not found")
        conn.commit()


def uncomplete_round(round_id: int) -> None:
    """Put a completed round back to scheduled; stored outputs are kept.

    Raises ``LookupError`` (after rolling back) if the round does not exist.
    """
    with _get_conn() as conn, conn.cursor() as cur:
        cur.execute(
            "UPDATE rounds SET status = 'scheduled', completed_at = NULL WHERE id = %s",
            (round_id,),
        )
        if cur.rowcount == 0:
            conn.rollback()
            raise LookupError(f"Round {round_id} not found")
        conn.commit()


def get_round_outputs(round_id: int) -> Optional[Dict[str, Any]]:
    """Return stored outputs and status for a round, or None if it is unknown."""
    with _get_conn() as conn, conn.cursor(cursor_factory=RealDictCursor) as cur:
        cur.execute(
            f"""
            SELECT id AS round_id, status, completed_at, {', '.join(OUTPUT_COLUMNS)}
            FROM rounds
            WHERE id = %s
            """,
            (round_id,),
        )
        row = cur.fetchone()
    if not row:
        return None
    out = dict(row)
    completed_at = out.get("completed_at")
    out["completed_at"] = completed_at.isoformat() if completed_at is not None else None
    return out


def server_info() -> Dict[str, Any]:
    """Return the connected user, database and server version."""
    with _get_conn() as conn, conn.cursor() as cur:
        cur.execute("SELECT current_user, current_database(), version()")
        user, db, ver = cur.fetchone()
        conn.rollback()
    return {
        "user": user,
        "database": db,
        "server_version": (ver or "").split("\n")[0],
    }
