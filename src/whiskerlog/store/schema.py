"""SQLite schema for the command store.

The `commands` table and its FTS5 shadow `commands_fts` are shared with
other tools reading the same database, so column names and trigger
behaviour must stay as they are. `duration` holds milliseconds.
"""

COMMANDS_TABLE = """
CREATE TABLE IF NOT EXISTS commands (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    command TEXT NOT NULL,
    timestamp INTEGER NOT NULL,
    exit_code INTEGER,
    duration INTEGER,
    working_directory TEXT,
    session_id TEXT NOT NULL,
    host_id TEXT NOT NULL DEFAULT 'local',
    network_endpoints TEXT DEFAULT '[]',
    packages_used TEXT DEFAULT '[]',
    is_experiment BOOLEAN DEFAULT FALSE,
    experiment_tags TEXT DEFAULT '[]',
    is_dangerous BOOLEAN DEFAULT FALSE,
    danger_score REAL DEFAULT 0.0,
    danger_reasons TEXT DEFAULT '[]',
    shell TEXT NOT NULL DEFAULT 'unknown',
    package_refs TEXT DEFAULT '[]',
    host_context TEXT,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP
)
"""

COMMANDS_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_commands_timestamp ON commands(timestamp)",
    "CREATE INDEX IF NOT EXISTS idx_commands_session ON commands(session_id)",
    "CREATE INDEX IF NOT EXISTS idx_commands_host ON commands(host_id)",
    "CREATE INDEX IF NOT EXISTS idx_commands_dangerous ON commands(is_dangerous)",
    "CREATE INDEX IF NOT EXISTS idx_commands_experiment ON commands(is_experiment)",
    "CREATE INDEX IF NOT EXISTS idx_commands_shell ON commands(shell)",
    "CREATE INDEX IF NOT EXISTS idx_commands_host_context ON commands(host_context)",
    # Dedup key lookups during upsert
    """
    CREATE UNIQUE INDEX IF NOT EXISTS idx_commands_dedup
    ON commands(command, timestamp, session_id, host_id)
    """,
]

COMMANDS_FTS_TABLE = """
CREATE VIRTUAL TABLE IF NOT EXISTS commands_fts USING fts5(
    command,
    working_directory,
    content='commands',
    content_rowid='id'
)
"""

# External-content FTS5 tables remove entries with the special 'delete'
# command, which needs the old column values.
COMMANDS_FTS_TRIGGERS = [
    """
    CREATE TRIGGER IF NOT EXISTS commands_fts_insert AFTER INSERT ON commands BEGIN
        INSERT INTO commands_fts(rowid, command, working_directory)
        VALUES (new.id, new.command, new.working_directory);
    END
    """,
    """
    CREATE TRIGGER IF NOT EXISTS commands_fts_delete AFTER DELETE ON commands BEGIN
        INSERT INTO commands_fts(commands_fts, rowid, command, working_directory)
        VALUES ('delete', old.id, old.command, old.working_directory);
    END
    """,
    """
    CREATE TRIGGER IF NOT EXISTS commands_fts_update AFTER UPDATE ON commands BEGIN
        INSERT INTO commands_fts(commands_fts, rowid, command, working_directory)
        VALUES ('delete', old.id, old.command, old.working_directory);
        INSERT INTO commands_fts(rowid, command, working_directory)
        VALUES (new.id, new.command, new.working_directory);
    END
    """,
]

IMPORT_CURSORS_TABLE = """
CREATE TABLE IF NOT EXISTS import_cursors (
    host_id TEXT NOT NULL,
    source TEXT NOT NULL,
    shell TEXT NOT NULL DEFAULT 'unknown',
    last_offset INTEGER DEFAULT 0,
    last_line INTEGER DEFAULT 0,
    last_timestamp INTEGER DEFAULT 0,
    session_id TEXT,
    tail_digests TEXT DEFAULT '[]',
    tail_length INTEGER DEFAULT 0,
    updated_at INTEGER,
    PRIMARY KEY (host_id, source)
)
"""

SCHEMA_STATEMENTS = [
    COMMANDS_TABLE,
    *COMMANDS_INDEXES,
    COMMANDS_FTS_TABLE,
    *COMMANDS_FTS_TRIGGERS,
    IMPORT_CURSORS_TABLE,
]

COMMAND_COLUMNS = (
    "command",
    "timestamp",
    "exit_code",
    "duration",
    "working_directory",
    "session_id",
    "host_id",
    "network_endpoints",
    "packages_used",
    "is_experiment",
    "experiment_tags",
    "is_dangerous",
    "danger_score",
    "danger_reasons",
    "shell",
    "package_refs",
    "host_context",
)
