"""
Relational backend: documents through the ORM, users through plain SQL so the
same queries work whatever column layout the users table has.
"""

import logging
from typing import Optional

from sqlalchemy import text

from ..errors import Conflict, NotFound, ServiceUnavailable
from ..models import Documento
from .schema_service import USERS_TABLE, UserColumns, resolve_user_columns, sync_id_sequence

logger = logging.getLogger(__name__)


class SqlStore:
    name = "postgres"

    def __init__(self, db, compact_user_ids: bool = True):
        self.db = db
        self.compact_user_ids = compact_user_ids
        self._columns: Optional[UserColumns] = None

    # --- Columns ---

    @property
    def session(self):
        return self.db.session

    def set_user_columns(self, columns: UserColumns) -> None:
        self._columns = columns

    def user_columns(self) -> UserColumns:
        if self._columns is None:
            self._columns = resolve_user_columns(self.session.connection())
        return self._columns

    def _user_select(self) -> str:
        c = self.user_columns()
        correo = f'"{c.correo}"' if c.correo else "NULL"
        return (
            f'SELECT "{c.id}" AS id, "{c.nombre}" AS nombre, {correo} AS correo, '
            f'"{c.contrasena}" AS contrasena FROM {USERS_TABLE}'
        )

    def _email_column(self) -> str:
        c = self.user_columns()
        if not c.correo:
            raise ServiceUnavailable("La tabla usuarios no tiene una columna de correo.")
        return c.correo

    # --- Health ---

    def ping(self):
        return self.session.execute(text("SELECT CURRENT_TIMESTAMP AS fecha_actual")).scalar()

    # --- Documents ---

    def list_documents(self, tipo: Optional[str] = None) -> list:
        stmt = self.db.select(Documento)
        if tipo:
            stmt = stmt.where(Documento.tipo_documento == tipo)
        stmt = stmt.order_by(Documento.titulo_documento.asc(), Documento.id_documento.asc())
        return [doc.as_dict() for doc in self.session.execute(stmt).scalars()]

    def create_document(self, fields: dict) -> dict:
        doc = Documento(
            titulo_documento=fields["titulo"],
            descripcion_documento=fields.get("descripcion") or "",
            documento=fields["url"],
            tipo_documento=fields["tipo"],
        )
        self.session.add(doc)
        self.session.commit()
        return doc.as_dict()

    def update_document(self, doc_id: int, fields: dict) -> dict:
        doc = self.session.get(Documento, doc_id)
        if doc is None:
            raise NotFound("Documento no encontrado.")
        if "titulo" in fields:
            doc.titulo_documento = fields["titulo"]
        if "descripcion" in fields:
            doc.descripcion_documento = fields["descripcion"]
        if "url" in fields:
            doc.documento = fields["url"]
        if "tipo" in fields:
            doc.tipo_documento = fields["tipo"]
        self.session.commit()
        return doc.as_dict()

    def delete_document(self, doc_id: int) -> None:
        doc = self.session.get(Documento, doc_id)
        if doc is None:
            raise NotFound("Documento no encontrado.")
        self.session.delete(doc)
        self.session.commit()

    # --- Users ---

    def list_users(self) -> list:
        c = self.user_columns()
        rows = self.session.execute(text(f'{self._user_select()} ORDER BY "{c.id}" ASC')).mappings()
        return [dict(row) for row in rows]

    def get_user(self, user_id: int) -> Optional[dict]:
        c = self.user_columns()
        row = self.session.execute(
            text(f'{self._user_select()} WHERE "{c.id}" = :id'), {"id": user_id}
        ).mappings().first()
        return dict(row) if row else None

    def find_user_by_email(self, correo: str) -> Optional[dict]:
        email_col = self._email_column()
        row = self.session.execute(
            text(f'{self._user_select()} WHERE "{email_col}" = :correo LIMIT 1'), {"correo": correo}
        ).mappings().first()
        return dict(row) if row else None

    def _email_taken(self, correo: str, exclude_id: Optional[int] = None) -> bool:
        existing = self.find_user_by_email(correo)
        return existing is not None and existing["id"] != exclude_id

    def create_user(self, nombre: str, correo: str, contrasena: str) -> dict:
        c = self.user_columns()
        email_col = self._email_column()
        if self._email_taken(correo):
            raise Conflict("Ya existe un usuario con ese correo.")

        values = {c.nombre: nombre, email_col: correo, c.contrasena: contrasena}
        if c.nombre == email_col:
            # Old tables keep a single "usuario" column for both; the email wins.
            values = {email_col: correo, c.contrasena: contrasena}
        names = ", ".join(f'"{col}"' for col in values)
        params = ", ".join(f":p{i}" for i in range(len(values)))
        try:
            self.session.execute(
                text(f"INSERT INTO {USERS_TABLE} ({names}) VALUES ({params})"),
                {f"p{i}": value for i, value in enumerate(values.values())},
            )
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        return self.find_user_by_email(correo)

    def update_user(self, user_id: int, nombre=None, correo=None, contrasena=None) -> dict:
        c = self.user_columns()
        if self.get_user(user_id) is None:
            raise NotFound("Usuario no encontrado.")
        if correo is not None and self._email_taken(correo, exclude_id=user_id):
            raise Conflict("Ya existe un usuario con ese correo.")

        assignments = [f'"{c.contrasena}" = COALESCE(:contrasena, "{c.contrasena}")']
        if c.nombre != c.correo:
            assignments.append(f'"{c.nombre}" = COALESCE(:nombre, "{c.nombre}")')
        if c.correo:
            assignments.append(f'"{c.correo}" = COALESCE(:correo, "{c.correo}")')
        try:
            self.session.execute(
                text(f'UPDATE {USERS_TABLE} SET {", ".join(assignments)} WHERE "{c.id}" = :id'),
                {"id": user_id, "nombre": nombre, "correo": correo, "contrasena": contrasena},
            )
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        return self.get_user(user_id)

    def delete_user(self, user_id: int) -> None:
        """Delete a user and, when enabled, close the gap it leaves in the ids.

        Every id above the deleted one moves down by one and the id sequence
        is reset to the new maximum. The three steps share one transaction.
        """
        c = self.user_columns()
        try:
            result = self.session.execute(
                text(f'DELETE FROM {USERS_TABLE} WHERE "{c.id}" = :id'), {"id": user_id}
            )
            if result.rowcount == 0:
                raise NotFound("Usuario no encontrado.")

            if self.compact_user_ids:
                # Two passes through negative ids so no row collides with its
                # neighbour while the primary key is being rewritten.
                self.session.execute(
                    text(f'UPDATE {USERS_TABLE} SET "{c.id}" = -("{c.id}" - 1) WHERE "{c.id}" > :id'),
                    {"id": user_id},
                )
                self.session.execute(
                    text(f'UPDATE {USERS_TABLE} SET "{c.id}" = -"{c.id}" WHERE "{c.id}" < 0')
                )
                sync_id_sequence(self.session.connection(), c.id)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        logger.info("Deleted user %s (compacted=%s)", user_id, self.compact_user_ids)
