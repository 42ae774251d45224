"""
SimpleScrum Database Schema Definitions

Raw SQL schema for the SQLite persistence backend. Every entity table is
scoped by ``owner_id`` so one database file can hold several users' data.
"""

SCHEMA_SQLITE = """
CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    email TEXT NOT NULL UNIQUE,
    password_hash TEXT NOT NULL,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS projects (
    id TEXT PRIMARY KEY,
    owner_id TEXT NOT NULL,
    name TEXT NOT NULL,
    product_goal TEXT NOT NULL DEFAULT '',
    current_velocity INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS pbis (
    id TEXT PRIMARY KEY,
    owner_id TEXT NOT NULL,
    project_id TEXT NOT NULL REFERENCES projects(id),
    pbi_number INTEGER NOT NULL,
    title TEXT NOT NULL,
    story_points INTEGER NOT NULL,
    priority_index INTEGER NOT NULL,
    refinement_status TEXT NOT NULL DEFAULT 'vague',
    sprint_id TEXT,
    status_override TEXT,
    updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS sprints (
    id TEXT PRIMARY KEY,
    owner_id TEXT NOT NULL,
    project_id TEXT NOT NULL REFERENCES projects(id),
    sprint_number INTEGER NOT NULL,
    sprint_goal TEXT NOT NULL DEFAULT '',
    team_capacity INTEGER NOT NULL,
    committed_sp INTEGER NOT NULL DEFAULT 0,
    completed_sp INTEGER NOT NULL DEFAULT 0,
    start_date TEXT NOT NULL,
    end_date TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'active',
    updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS tasks (
    id TEXT PRIMARY KEY,
    owner_id TEXT NOT NULL,
    task_id TEXT NOT NULL,
    sprint_id TEXT NOT NULL REFERENCES sprints(id),
    pbi_id TEXT,
    description TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'to_do',
    owner TEXT NOT NULL DEFAULT '',
    time_estimate_hours REAL NOT NULL DEFAULT 0,
    updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS retrospectives (
    id TEXT PRIMARY KEY,
    owner_id TEXT NOT NULL,
    sprint_id TEXT NOT NULL REFERENCES sprints(id),
    went_well TEXT NOT NULL DEFAULT '',
    to_improve TEXT NOT NULL DEFAULT '',
    action_item TEXT NOT NULL DEFAULT '',
    updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_pbis_owner_project ON pbis(owner_id, project_id);
CREATE INDEX IF NOT EXISTS idx_sprints_owner_project ON sprints(owner_id, project_id);
CREATE INDEX IF NOT EXISTS idx_tasks_owner_sprint ON tasks(owner_id, sprint_id);
CREATE INDEX IF NOT EXISTS idx_retrospectives_owner_sprint ON retrospectives(owner_id, sprint_id);
"""
