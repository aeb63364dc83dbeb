from .extensions import db


class Documento(db.Model):
    __tablename__ = 'documentos'

    id_documento = db.Column(db.Integer, primary_key=True)
    titulo_documento = db.Column(db.Text, nullable=False)
    descripcion_documento = db.Column(db.Text, nullable=True, default="")
    documento = db.Column(db.Text, nullable=False)  # public URL or storage path
    tipo_documento = db.Column(db.Text, nullable=False, index=True)  # e.g. "unidades", "material"

    def as_dict(self) -> dict:
        return {
            "id": self.id_documento,
            "titulo": self.titulo_documento,
            "descripcion": self.descripcion_documento or "",
            "url": self.documento,
            "tipo": self.tipo_documento,
        }


class Usuario(db.Model):
    """
    Current layout of the users table. Older databases may still carry the
    legacy column names; see services.schema_service for how those are read.
    """
    __tablename__ = 'usuarios'

    id_usuario = db.Column(db.Integer, primary_key=True)
    nombre = db.Column(db.Text, nullable=True)
    correo = db.Column(db.Text, unique=True, nullable=False)
    contrasena = db.Column(db.Text, nullable=False)
