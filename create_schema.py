#!/usr/bin/env python3
"""
Create the PostgreSQL tables used by the round results service.
"""
import os
import psycopg2


def create_tables(conn):
    """Create the database schema"""
    with conn.cursor() as cur:
        cur.execute("""
            CREATE TABLE IF NOT EXISTS seasons (
                id SERIAL PRIMARY KEY,
                name VARCHAR(100) NOT NULL,
                divisions_enabled BOOLEAN NOT NULL DEFAULT FALSE,
                tiebreaker_rules JSONB NOT NULL DEFAULT '[]'::jsonb,
                team_championship_enabled BOOLEAN NOT NULL DEFAULT FALSE,
                -- best N results per team count; NULL or 0 counts all
                teams_drivers_for_calculation INTEGER
            )
        """)

        cur.execute("""
            CREATE TABLE IF NOT EXISTS teams (
                id SERIAL PRIMARY KEY,
                season_id INTEGER REFERENCES seasons(id) ON DELETE CASCADE,
                name VARCHAR(100) NOT NULL
            )
        """)

        cur.execute("""
            CREATE TABLE IF NOT EXISTS drivers (
                id SERIAL PRIMARY KEY,
                name VARCHAR(100) NOT NULL
            )
        """)

        # Season roster; optional, an empty roster disables the roster check
        cur.execute("""
            CREATE TABLE IF NOT EXISTS season_drivers (
                season_id INTEGER REFERENCES seasons(id) ON DELETE CASCADE,
                driver_id INTEGER REFERENCES drivers(id) ON DELETE CASCADE,
                division_id INTEGER,
                team_id INTEGER REFERENCES teams(id) ON DELETE SET NULL,
                PRIMARY KEY (season_id, driver_id)
            )
        """)

        cur.execute("""
            CREATE TABLE IF NOT EXISTS rounds (
                id SERIAL PRIMARY KEY,
                season_id INTEGER REFERENCES seasons(id) ON DELETE CASCADE,
                round_number INTEGER,
                name VARCHAR(200),
                status VARCHAR(20) NOT NULL DEFAULT 'scheduled',
                round_points BOOLEAN NOT NULL DEFAULT FALSE,
                points_system JSONB,
                fastest_lap_bonus INTEGER NOT NULL DEFAULT 0,
                fastest_lap_top_10 BOOLEAN NOT NULL DEFAULT FALSE,
                pole_bonus INTEGER NOT NULL DEFAULT 0,
                pole_top_10 BOOLEAN NOT NULL DEFAULT FALSE,
                bonus_scope VARCHAR(10),
                round_results JSONB,
                qualifying_results JSONB,
                race_time_results JSONB,
                fastest_lap_results JSONB,
                team_championship_results JSONB,
                completed_at TIMESTAMP
            )
        """)

        cur.execute("""
            CREATE TABLE IF NOT EXISTS races (
                id SERIAL PRIMARY KEY,
                round_id INTEGER REFERENCES rounds(id) ON DELETE CASCADE,
                race_number INTEGER,
                is_qualifier BOOLEAN NOT NULL DEFAULT FALSE,
                points_system JSONB,
                fastest_lap_bonus INTEGER NOT NULL DEFAULT 0,
                fastest_lap_top_10 BOOLEAN NOT NULL DEFAULT FALSE,
                pole_bonus INTEGER NOT NULL DEFAULT 0,
                pole_top_10 BOOLEAN NOT NULL DEFAULT FALSE
            )
        """)

        cur.execute("""
            CREATE TABLE IF NOT EXISTS race_results (
                id SERIAL PRIMARY KEY,
                race_id INTEGER REFERENCES races(id) ON DELETE CASCADE,
                driver_id INTEGER REFERENCES drivers(id) ON DELETE CASCADE,
                division_id INTEGER,
                position INTEGER CHECK (position IS NULL OR position > 0),
                dnf BOOLEAN NOT NULL DEFAULT FALSE,
                lap_time_ms INTEGER,
                race_time_ms INTEGER,
                penalties_ms INTEGER NOT NULL DEFAULT 0,
                has_fastest_lap BOOLEAN NOT NULL DEFAULT FALSE,
                has_pole BOOLEAN NOT NULL DEFAULT FALSE,
                positions_gained INTEGER,
                UNIQUE(race_id, driver_id)
            )
        """)

        cur.execute("CREATE INDEX IF NOT EXISTS idx_races_round ON races(round_id)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_race_results_race ON race_results(race_id)")

        conn.commit()
        print("Database schema created successfully")


def main():
    database_url = os.environ.get('DATABASE_URL')
    if not database_url:
        print("DATABASE_URL environment variable not set")
        return 1

    conn = psycopg2.connect(database_url)
    try:
        print("Connected to PostgreSQL database")
        create_tables(conn)
    finally:
        conn.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
