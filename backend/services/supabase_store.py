import logging
from datetime import datetime
from typing import Optional

from supabase import Client, create_client

from ..errors import Conflict, NotFound

logger = logging.getLogger(__name__)

DOCUMENT_COLUMNS = "id_documento,titulo_documento,descripcion_documento,documento,tipo_documento"
USER_COLUMNS = "id_usuario,nombre,correo,contrasena"


def build_client(url: Optional[str], key: Optional[str]) -> Optional[Client]:
    """Create the Supabase client, or return None when credentials are missing."""
    if not url or not key:
        logger.warning("Supabase credentials missing; hosted backend disabled")
        return None
    return create_client(url, key)


def document_from_row(row: dict) -> dict:
    return {
        "id": row.get("id_documento"),
        "titulo": row.get("titulo_documento"),
        "descripcion": row.get("descripcion_documento") or "",
        "url": row.get("documento"),
        "tipo": row.get("tipo_documento"),
    }


def user_from_row(row: dict) -> dict:
    return {
        "id": row.get("id_usuario"),
        "nombre": row.get("nombre"),
        "correo": row.get("correo"),
        "contrasena": row.get("contrasena"),
    }


class SupabaseStore:
    """Documents and users through the Supabase table API, files through Storage."""

    name = "supabase"

    def __init__(self, client: Client, bucket: str = "documentos"):
        self.client = client
        self.bucket = bucket

    # --- Health ---

    def ping(self):
        res = self.client.table("usuarios").select("correo").limit(1).execute()
        return res.data

    # --- Storage ---

    def ensure_bucket(self) -> bool:
        """Create the documents bucket (public, so stored files have a URL). Returns True if created."""
        existing = {bucket.name for bucket in self.client.storage.list_buckets()}
        if self.bucket in existing:
            return False
        self.client.storage.create_bucket(self.bucket, options={"public": True})
        logger.info("Created storage bucket %s", self.bucket)
        return True

    def upload_file(self, filename: str, content: bytes, content_type: Optional[str] = None) -> str:
        """
        Uploads a file to Supabase Storage and returns its public URL.
        A timestamp prefix avoids name collisions.
        """
        timestamp = int(datetime.utcnow().timestamp())
        file_path = f"{timestamp}_{filename}"

        self.client.storage.from_(self.bucket).upload(
            path=file_path,
            file=content,
            file_options={"content-type": content_type or "application/octet-stream"},
        )
        logger.info("Uploaded %s to bucket %s", file_path, self.bucket)
        return self.client.storage.from_(self.bucket).get_public_url(file_path)

    # --- Documents ---

    def list_documents(self, tipo: Optional[str] = None) -> list:
        query = self.client.table("documentos").select(DOCUMENT_COLUMNS)
        if tipo:
            query = query.eq("tipo_documento", tipo)
        res = query.order("titulo_documento").execute()
        return [document_from_row(row) for row in res.data or []]

    def create_document(self, fields: dict) -> dict:
        res = self.client.table("documentos").insert({
            "titulo_documento": fields["titulo"],
            "descripcion_documento": fields.get("descripcion") or "",
            "documento": fields["url"],
            "tipo_documento": fields["tipo"],
        }).execute()
        return document_from_row(res.data[0])

    def update_document(self, doc_id: int, fields: dict) -> dict:
        column_map = {
            "titulo": "titulo_documento",
            "descripcion": "descripcion_documento",
            "url": "documento",
            "tipo": "tipo_documento",
        }
        payload = {column_map[key]: value for key, value in fields.items()}
        if not payload:
            res = self.client.table("documentos").select(DOCUMENT_COLUMNS).eq("id_documento", doc_id).execute()
        else:
            res = self.client.table("documentos").update(payload).eq("id_documento", doc_id).execute()
        if not res.data:
            raise NotFound("Documento no encontrado.")
        return document_from_row(res.data[0])

    def delete_document(self, doc_id: int) -> None:
        res = self.client.table("documentos").delete().eq("id_documento", doc_id).execute()
        if not res.data:
            raise NotFound("Documento no encontrado.")

    # --- Users ---

    def list_users(self) -> list:
        res = self.client.table("usuarios").select(USER_COLUMNS).order("id_usuario").execute()
        return [user_from_row(row) for row in res.data or []]

    def find_user_by_email(self, correo: str) -> Optional[dict]:
        res = self.client.table("usuarios").select(USER_COLUMNS).eq("correo", correo).limit(1).execute()
        if not res.data:
            return None
        return user_from_row(res.data[0])

    def _email_taken(self, correo: str, exclude_id: Optional[int] = None) -> bool:
        existing = self.find_user_by_email(correo)
        return existing is not None and existing["id"] != exclude_id

    def create_user(self, nombre: str, correo: str, contrasena: str) -> dict:
        if self._email_taken(correo):
            raise Conflict("Ya existe un usuario con ese correo.")
        res = self.client.table("usuarios").insert(
            {"nombre": nombre, "correo": correo, "contrasena": contrasena}
        ).execute()
        return user_from_row(res.data[0])

    def update_user(self, user_id: int, nombre=None, correo=None, contrasena=None) -> dict:
        if correo is not None and self._email_taken(correo, exclude_id=user_id):
            raise Conflict("Ya existe un usuario con ese correo.")
        payload = {"nombre": nombre, "correo": correo, "contrasena": contrasena}
        payload = {key: value for key, value in payload.items() if value is not None}
        if payload:
            res = self.client.table("usuarios").update(payload).eq("id_usuario", user_id).execute()
        else:
            res = self.client.table("usuarios").select(USER_COLUMNS).eq("id_usuario", user_id).execute()
        if not res.data:
            raise NotFound("Usuario no encontrado.")
        return user_from_row(res.data[0])

    def delete_user(self, user_id: int) -> None:
        # No id compaction here: the table API cannot run it in one transaction.
        res = self.client.table("usuarios").delete().eq("id_usuario", user_id).execute()
        if not res.data:
            raise NotFound("Usuario no encontrado.")
