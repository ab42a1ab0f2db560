#!/usr/bin/env python3
"""Emit deterministic SQL for the jobs table the sync writes into."""

from __future__ import annotations

import argparse
import re

_IDENTIFIER_RE = re.compile(r"^[a-z_][a-z0-9_]*$")


def render_sql(*, table: str, retention_days: int) -> str:
    if not _IDENTIFIER_RE.match(table):
        raise ValueError(f"table must be a plain sql identifier, got {table!r}")

    return f"""-- Front office jobs table
-- Run this in the Supabase SQL editor (or equivalent privileged Postgres session).

create table if not exists {table} (
  id bigint generated always as identity primary key,
  source_id text not null,
  title text not null,
  firm text not null,
  location text,
  "function" text,
  "level" text,
  description text not null default '',
  apply_url text not null default '',
  source text not null,
  posted_at timestamptz not null default now(),
  is_front_office boolean not null default false,
  is_approved boolean not null default false,
  is_featured boolean not null default false,
  created_at timestamptz not null default now(),
  constraint {table}_source_id_key unique (source_id)
);

create index if not exists {table}_posted_at_idx on {table} (posted_at);
create index if not exists {table}_listing_idx on {table} (is_front_office, is_approved, is_featured);

-- Rows the daily sync removes: older than {retention_days} days and not featured.
-- delete from {table} where posted_at <= now() - interval '{retention_days} days' and is_featured = false;
"""


def main() -> None:
    parser = argparse.ArgumentParser(description="Emit SQL that creates the front office jobs table.")
    parser.add_argument("--table", default="jobs", help="Table name (matches FOSYNC_JOBS_TABLE)")
    parser.add_argument(
        "--retention-days",
        type=int,
        default=60,
        help="Retention window noted in the emitted cleanup statement",
    )
    args = parser.parse_args()

    print(render_sql(table=args.table, retention_days=args.retention_days))


if __name__ == "__main__":
    main()
