"""
Schema preparation for the users table.

Databases created by earlier versions of the site use different column names
for the same user fields. ``resolve_user_columns`` maps the logical fields onto
whatever exists, and ``prepare_users_schema`` brings an existing table up to
the current layout (display-name column, no-digits constraint, id sequence).
"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import inspect, text

logger = logging.getLogger(__name__)

USERS_TABLE = "usuarios"
NAME_CONSTRAINT = "usuarios_nombre_solo_texto"

# Preferred name first, then legacy alternatives.
ID_CANDIDATES = ("id_usuario", "id")
NAME_CANDIDATES = ("nombre", "nombre_completo", "usuario")
EMAIL_CANDIDATES = ("correo", "usuario")
PASSWORD_CANDIDATES = ("contrasena", "password_hash")


@dataclass(frozen=True)
class UserColumns:
    id: str
    nombre: str
    correo: Optional[str]
    contrasena: str


def _pick(columns, candidates, default=None):
    for name in candidates:
        if name in columns:
            return name
    return default


def get_user_column_names(bind) -> set:
    return {col["name"] for col in inspect(bind).get_columns(USERS_TABLE)}


def resolve_user_columns(bind) -> UserColumns:
    """Return which physical column holds each logical user field."""
    columns = get_user_column_names(bind)
    return UserColumns(
        id=_pick(columns, ID_CANDIDATES, default="id"),
        nombre=_pick(columns, NAME_CANDIDATES, default="usuario"),
        correo=_pick(columns, EMAIL_CANDIDATES),
        contrasena=_pick(columns, PASSWORD_CANDIDATES, default="password_hash"),
    )


def ensure_name_column(conn) -> None:
    columns = get_user_column_names(conn)

    if "nombre" not in columns:
        conn.execute(text(f"ALTER TABLE {USERS_TABLE} ADD COLUMN nombre TEXT"))
        legacy = _pick(columns, NAME_CANDIDATES[1:])
        if legacy:
            conn.execute(text(f'UPDATE {USERS_TABLE} SET nombre = "{legacy}" WHERE nombre IS NULL'))
        logger.info("Added column nombre to %s (backfilled from %s)", USERS_TABLE, legacy)

    if conn.dialect.name != "postgresql":
        return

    existing = conn.execute(
        text(
            "SELECT constraint_name FROM information_schema.table_constraints "
            "WHERE table_name = :table AND constraint_name = :name"
        ),
        {"table": USERS_TABLE, "name": NAME_CONSTRAINT},
    ).first()
    if existing is None:
        conn.execute(
            text(f"ALTER TABLE {USERS_TABLE} ADD CONSTRAINT {NAME_CONSTRAINT} CHECK (nombre !~ '[0-9]')")
        )
        logger.info("Added constraint %s", NAME_CONSTRAINT)


def sequence_name(id_column: str) -> str:
    return f"{USERS_TABLE}_{id_column}_seq"


def sync_id_sequence(conn, id_column: str) -> None:
    """Point the id sequence at MAX(id) so the next insert gets MAX(id) + 1.

    Only Postgres keeps a separate sequence; SQLite derives the next rowid
    from the current maximum on its own.
    """
    if conn.dialect.name != "postgresql":
        return
    seq = sequence_name(id_column)
    conn.execute(
        text(
            f"SELECT setval('{seq}', GREATEST(COALESCE(MAX(\"{id_column}\"), 0), 1), "
            f"COALESCE(MAX(\"{id_column}\"), 0) > 0) FROM {USERS_TABLE}"
        )
    )


def ensure_id_sequence(conn, id_column: str) -> None:
    if conn.dialect.name != "postgresql":
        return
    seq = sequence_name(id_column)
    conn.execute(text(f"CREATE SEQUENCE IF NOT EXISTS {seq}"))
    conn.execute(
        text(f"ALTER TABLE {USERS_TABLE} ALTER COLUMN \"{id_column}\" SET DEFAULT nextval('{seq}')")
    )
    sync_id_sequence(conn, id_column)


def prepare_users_schema(engine) -> UserColumns:
    """Bring the users table to the current layout and return its columns."""
    with engine.begin() as conn:
        ensure_name_column(conn)
        columns = resolve_user_columns(conn)
        ensure_id_sequence(conn, columns.id)
    logger.info("Users schema ready: %s", columns)
    return columns
