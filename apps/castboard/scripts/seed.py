from __future__ import annotations

import argparse
import random
import sqlite3
from datetime import date, datetime, timezone
from pathlib import Path

from faker import Faker

from castboard.config import Config
from castboard.schedule import expected_slots
from castboard.schema import SCHEMA_SQL


def parse_args() -> argparse.Namespace:
    today = date.today()
    parser = argparse.ArgumentParser(description="Seed Castboard data")
    parser.add_argument("--seed", type=int, default=42, help="Random seed")
    parser.add_argument("--actors", type=int, default=3, help="Actors per lead role")
    parser.add_argument("--year", type=int, default=today.year, help="Year of the seeded month")
    parser.add_argument("--month", type=int, default=today.month, help="Month to generate slots for")
    parser.add_argument("--cast-ratio", type=float, default=0.6, help="Share of slots that get a casting")
    parser.add_argument("--reset", action="store_true", help="Delete existing DB before seeding")
    return parser.parse_args()


def connect(db_path: str) -> sqlite3.Connection:
    conn = sqlite3.connect(db_path)
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def main() -> None:
    args = parse_args()
    random.seed(args.seed)
    faker = Faker("ko_KR")
    Faker.seed(args.seed)

    db_path = Path(Config.DB_PATH)
    db_path.parent.mkdir(parents=True, exist_ok=True)

    if args.reset and db_path.exists():
        db_path.unlink()

    conn = connect(str(db_path))
    try:
        conn.executescript(SCHEMA_SQL)
        conn.commit()

        now = datetime.now(timezone.utc).isoformat(timespec="seconds")
        conn.execute(
            "INSERT OR IGNORE INTO users (username, display_name, role, pin) VALUES (?, ?, ?, ?)",
            ("admin", "관리자", "ADMIN", "1234"),
        )

        actors = {"MALE_LEAD": [], "FEMALE_LEAD": []}
        for role_type in actors:
            for i in range(args.actors):
                name = faker.name_male() if role_type == "MALE_LEAD" else faker.name_female()
                conn.execute(
                    "INSERT INTO actors (name, role_type, calendar_id, created_at) VALUES (?, ?, ?, ?)",
                    (name, role_type, None, now),
                )
                actor_id = conn.execute("SELECT last_insert_rowid()").fetchone()[0]
                actors[role_type].append(actor_id)

                username = f"{'m' if role_type == 'MALE_LEAD' else 'f'}{i + 1}"
                conn.execute(
                    """
                    INSERT OR IGNORE INTO users (username, display_name, role, pin, email, actor_id)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (username, name, "ACTOR", "0000", faker.unique.free_email(), actor_id),
                )

        slot_ids = []
        for slot_date, start_time in expected_slots(args.year, args.month):
            conn.execute(
                "INSERT OR IGNORE INTO performance_dates (date, start_time) VALUES (?, ?)",
                (slot_date, start_time),
            )
            row = conn.execute(
                "SELECT id FROM performance_dates WHERE date = ? AND start_time = ?",
                (slot_date, start_time),
            ).fetchone()
            slot_ids.append(row[0])

        unavailable = set()
        for actor_ids in actors.values():
            for actor_id in actor_ids:
                for slot_id in random.sample(slot_ids, k=min(len(slot_ids), 6)):
                    conn.execute(
                        """
                        INSERT OR IGNORE INTO unavailable_dates (actor_id, performance_date_id, synced, created_at)
                        VALUES (?, ?, 0, ?)
                        """,
                        (actor_id, slot_id, now),
                    )
                    unavailable.add((actor_id, slot_id))

        casting_count = 0
        for slot_id in slot_ids:
            if random.random() > args.cast_ratio:
                continue
            for role_type, actor_ids in actors.items():
                candidates = [a for a in actor_ids if (a, slot_id) not in unavailable]
                if not candidates:
                    continue
                conn.execute(
                    """
                    INSERT OR IGNORE INTO castings (performance_date_id, actor_id, role_type, synced, updated_at)
                    VALUES (?, ?, ?, 0, ?)
                    """,
                    (slot_id, random.choice(candidates), role_type, now),
                )
                casting_count += 1

        conn.commit()

        print("Seed complete")
        print(f"Actors: {sum(len(ids) for ids in actors.values())}")
        print(f"Slots: {len(slot_ids)} ({args.year}-{args.month:02d})")
        print(f"Unavailable: {len(unavailable)}")
        print(f"Castings: {casting_count}")
    finally:
        conn.close()


if __name__ == "__main__":
    main()
