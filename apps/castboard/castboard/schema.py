from __future__ import annotations

SCHEMA_SQL = """
PRAGMA foreign_keys = ON;

CREATE TABLE IF NOT EXISTS actors (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  name TEXT NOT NULL,
  role_type TEXT NOT NULL,
  calendar_id TEXT,
  created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS users (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  username TEXT NOT NULL UNIQUE,
  display_name TEXT NOT NULL,
  role TEXT NOT NULL,
  pin TEXT NOT NULL,
  email TEXT UNIQUE,
  actor_id INTEGER,
  FOREIGN KEY(actor_id) REFERENCES actors(id) ON DELETE SET NULL
);

CREATE TABLE IF NOT EXISTS performance_dates (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  date TEXT NOT NULL,
  start_time TEXT NOT NULL,
  end_time TEXT,
  label TEXT,
  UNIQUE(date, start_time)
);

CREATE TABLE IF NOT EXISTS castings (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  performance_date_id INTEGER NOT NULL,
  actor_id INTEGER NOT NULL,
  role_type TEXT NOT NULL,
  synced INTEGER NOT NULL DEFAULT 0,
  event_calendar_id TEXT,
  calendar_event_id TEXT,
  all_calendar_event_id TEXT,
  updated_at TEXT NOT NULL,
  UNIQUE(performance_date_id, role_type),
  FOREIGN KEY(performance_date_id) REFERENCES performance_dates(id) ON DELETE CASCADE,
  FOREIGN KEY(actor_id) REFERENCES actors(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS unavailable_dates (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  actor_id INTEGER NOT NULL,
  performance_date_id INTEGER NOT NULL,
  synced INTEGER NOT NULL DEFAULT 0,
  calendar_event_id TEXT,
  all_calendar_event_id TEXT,
  created_at TEXT NOT NULL,
  UNIQUE(actor_id, performance_date_id),
  FOREIGN KEY(actor_id) REFERENCES actors(id) ON DELETE CASCADE,
  FOREIGN KEY(performance_date_id) REFERENCES performance_dates(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS reservation_statuses (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  performance_date_id INTEGER NOT NULL UNIQUE,
  has_reservation INTEGER NOT NULL DEFAULT 0,
  reservation_name TEXT,
  reservation_contact TEXT,
  checked_at TEXT NOT NULL,
  FOREIGN KEY(performance_date_id) REFERENCES performance_dates(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS actor_month_overrides (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  actor_id INTEGER NOT NULL,
  year INTEGER NOT NULL,
  month INTEGER NOT NULL,
  UNIQUE(actor_id, year, month),
  FOREIGN KEY(actor_id) REFERENCES actors(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_performance_dates_date ON performance_dates(date);
CREATE INDEX IF NOT EXISTS idx_castings_actor_id ON castings(actor_id);
CREATE INDEX IF NOT EXISTS idx_castings_synced ON castings(synced);
CREATE INDEX IF NOT EXISTS idx_unavailable_dates_pd ON unavailable_dates(performance_date_id);
CREATE INDEX IF NOT EXISTS idx_overrides_year_month ON actor_month_overrides(year, month);
"""
