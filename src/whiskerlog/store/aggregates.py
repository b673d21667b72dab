"""Read-only statistics over the commands table.

Each aggregate takes an open connection and a result limit. List-valued
columns are stored as JSON text, so their counts are reduced in Python.
"""

import sqlite3
from collections import Counter
from collections.abc import Callable
from typing import Any

from whiskerlog.models import load_json_list, load_package_refs
from whiskerlog.store import aliases


def summary(conn: sqlite3.Connection, limit: int = 10) -> dict[str, Any]:
    """Overall totals for the whole store."""
    row = conn.execute(
        """
        SELECT
            COUNT(*) AS total,
            COUNT(DISTINCT command) AS unique_commands,
            COALESCE(SUM(is_dangerous), 0) AS dangerous,
            COALESCE(SUM(is_experiment), 0) AS experiments,
            COUNT(DISTINCT session_id) AS sessions,
            COUNT(DISTINCT host_id) AS hosts,
            MIN(timestamp) AS first_timestamp,
            MAX(timestamp) AS last_timestamp,
            AVG(duration) AS avg_duration_ms,
            COUNT(exit_code) AS with_exit_code,
            COALESCE(SUM(exit_code = 0), 0) AS succeeded
        FROM commands
        """
    ).fetchone()

    with_exit_code = row["with_exit_code"]
    return {
        "total": row["total"],
        "unique_commands": row["unique_commands"],
        "dangerous": row["dangerous"],
        "experiments": row["experiments"],
        "sessions": row["sessions"],
        "hosts": row["hosts"],
        "first_timestamp": row["first_timestamp"],
        "last_timestamp": row["last_timestamp"],
        "avg_duration_ms": row["avg_duration_ms"],
        "success_rate": row["succeeded"] / with_exit_code if with_exit_code else None,
    }


def top_commands(conn: sqlite3.Connection, limit: int = 10) -> list[dict[str, Any]]:
    """Most frequently run commands."""
    rows = conn.execute(
        """
        SELECT command, COUNT(*) AS count, MAX(timestamp) AS last_used
        FROM commands
        GROUP BY command
        ORDER BY count DESC, last_used DESC, command
        LIMIT ?
        """,
        (limit,),
    ).fetchall()
    return [dict(row) for row in rows]


def top_dangerous(conn: sqlite3.Connection, limit: int = 10) -> list[dict[str, Any]]:
    """Dangerous commands ranked by impact (highest score times count)."""
    risky: dict[str, dict[str, Any]] = {}
    rows = conn.execute(
        "SELECT command, danger_score, danger_reasons FROM commands WHERE is_dangerous ORDER BY id"
    )
    for row in rows:
        entry = risky.setdefault(
            row["command"],
            {"command": row["command"], "count": 0, "max_danger_score": 0.0, "reasons": []},
        )
        entry["count"] += 1
        entry["max_danger_score"] = max(entry["max_danger_score"], row["danger_score"] or 0.0)
        for reason in load_json_list(row["danger_reasons"]):
            if reason not in entry["reasons"]:
                entry["reasons"].append(reason)

    ranked = sorted(
        risky.values(),
        key=lambda e: (-e["max_danger_score"] * e["count"], e["command"]),
    )
    return ranked[:limit]


def _group_by(conn: sqlite3.Connection, column: str, limit: int) -> list[dict[str, Any]]:
    rows = conn.execute(
        f"""
        SELECT {column}, COUNT(*) AS count,
               COALESCE(SUM(is_dangerous), 0) AS dangerous,
               COALESCE(SUM(is_experiment), 0) AS experiments,
               MAX(timestamp) AS last_timestamp
        FROM commands
        GROUP BY {column}
        ORDER BY count DESC, {column}
        LIMIT ?
        """,
        (limit,),
    ).fetchall()
    return [dict(row) for row in rows]


def by_host(conn: sqlite3.Connection, limit: int = 10) -> list[dict[str, Any]]:
    return _group_by(conn, "host_id", limit)


def by_shell(conn: sqlite3.Connection, limit: int = 10) -> list[dict[str, Any]]:
    return _group_by(conn, "shell", limit)


def by_session(conn: sqlite3.Connection, limit: int = 10) -> list[dict[str, Any]]:
    """Most recent sessions with their time span."""
    rows = conn.execute(
        """
        SELECT session_id, host_id, shell, COUNT(*) AS count,
               MIN(timestamp) AS start_timestamp,
               MAX(timestamp) AS end_timestamp,
               COALESCE(SUM(is_dangerous), 0) AS dangerous,
               COALESCE(SUM(is_experiment), 0) AS experiments
        FROM commands
        GROUP BY session_id, host_id
        ORDER BY end_timestamp DESC, session_id
        LIMIT ?
        """,
        (limit,),
    ).fetchall()
    return [dict(row) for row in rows]


def _count_list_column(conn: sqlite3.Connection, column: str, limit: int) -> list[dict[str, Any]]:
    counts: Counter[str] = Counter()
    for row in conn.execute(f"SELECT {column} FROM commands WHERE {column} != '[]'"):
        counts.update(load_json_list(row[column]))
    ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    return [{"value": value, "count": count} for value, count in ranked[:limit]]


def danger_reasons(conn: sqlite3.Connection, limit: int = 10) -> list[dict[str, Any]]:
    return _count_list_column(conn, "danger_reasons", limit)


def experiment_tags(conn: sqlite3.Connection, limit: int = 10) -> list[dict[str, Any]]:
    return _count_list_column(conn, "experiment_tags", limit)


def packages(conn: sqlite3.Connection, limit: int = 10) -> list[dict[str, Any]]:
    return _count_list_column(conn, "packages_used", limit)


def endpoints(conn: sqlite3.Connection, limit: int = 10) -> list[dict[str, Any]]:
    return _count_list_column(conn, "network_endpoints", limit)


def remote_hosts(conn: sqlite3.Connection, limit: int = 10) -> list[dict[str, Any]]:
    """Hosts, containers and pods that commands were run on, besides local."""
    rows = conn.execute(
        """
        SELECT host_context, COUNT(*) AS count, MAX(timestamp) AS last_timestamp
        FROM commands
        WHERE host_context IS NOT NULL AND host_context != 'local'
        GROUP BY host_context
        ORDER BY count DESC, host_context
        LIMIT ?
        """,
        (limit,),
    ).fetchall()
    return [dict(row) for row in rows]


def package_actions(conn: sqlite3.Connection, limit: int = 10) -> list[dict[str, Any]]:
    """Counts of (manager, action, package) across package-manager commands."""
    counts: Counter[tuple[str, str, str]] = Counter()
    for row in conn.execute("SELECT package_refs FROM commands WHERE package_refs != '[]'"):
        counts.update((ref.manager, ref.action, ref.name) for ref in load_package_refs(row["package_refs"]))
    ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    return [
        {"manager": manager, "action": action, "name": name, "count": count}
        for (manager, action, name), count in ranked[:limit]
    ]


def alias_suggestions(conn: sqlite3.Connection, limit: int = 10) -> list[dict[str, Any]]:
    """Aliases worth defining for the most recent commands."""
    rows = conn.execute(
        "SELECT command FROM commands ORDER BY timestamp DESC, id DESC LIMIT ?",
        (aliases.ANALYSIS_WINDOW,),
    ).fetchall()
    commands = [row["command"] for row in reversed(rows)]
    return [suggestion.to_dict() for suggestion in aliases.suggest_aliases(commands, limit)]


def hourly(conn: sqlite3.Connection, limit: int = 10) -> list[dict[str, Any]]:
    """Command counts for each hour of the day (UTC), always 24 entries."""
    rows = conn.execute(
        """
        SELECT CAST(strftime('%H', timestamp, 'unixepoch') AS INTEGER) AS hour, COUNT(*)
        FROM commands
        GROUP BY hour
        """
    ).fetchall()
    counts = {row[0]: row[1] for row in rows}
    return [{"hour": hour, "count": counts.get(hour, 0)} for hour in range(24)]


AGGREGATES: dict[str, Callable[[sqlite3.Connection, int], Any]] = {
    "summary": summary,
    "top_commands": top_commands,
    "top_dangerous": top_dangerous,
    "by_host": by_host,
    "by_shell": by_shell,
    "by_session": by_session,
    "danger_reasons": danger_reasons,
    "experiment_tags": experiment_tags,
    "packages": packages,
    "endpoints": endpoints,
    "hourly": hourly,
    "remote_hosts": remote_hosts,
    "package_actions": package_actions,
    "alias_suggestions": alias_suggestions,
}

AGGREGATE_KINDS = tuple(AGGREGATES)
