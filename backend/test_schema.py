import unittest

from sqlalchemy import create_engine, text
from sqlalchemy.pool import StaticPool

from backend.extensions import db
from backend.testing import build_test_app
from backend.services.schema_service import UserColumns, prepare_users_schema, resolve_user_columns


def memory_engine(*statements):
    engine = create_engine("sqlite://", poolclass=StaticPool, connect_args={"check_same_thread": False})
    with engine.begin() as conn:
        for statement in statements:
            conn.execute(text(statement))
    return engine


class ResolveColumnsTests(unittest.TestCase):
    def test_current_layout(self):
        engine = memory_engine(
            "CREATE TABLE usuarios (id_usuario INTEGER PRIMARY KEY, nombre TEXT, correo TEXT, contrasena TEXT)"
        )
        self.assertEqual(
            resolve_user_columns(engine),
            UserColumns(id="id_usuario", nombre="nombre", correo="correo", contrasena="contrasena"),
        )

    def test_legacy_layout(self):
        engine = memory_engine(
            "CREATE TABLE usuarios (id INTEGER PRIMARY KEY, nombre_completo TEXT, usuario TEXT, password_hash TEXT)"
        )
        self.assertEqual(
            resolve_user_columns(engine),
            UserColumns(id="id", nombre="nombre_completo", correo="usuario", contrasena="password_hash"),
        )

    def test_no_email_column(self):
        engine = memory_engine("CREATE TABLE usuarios (id INTEGER PRIMARY KEY, nombre TEXT, contrasena TEXT)")
        self.assertIsNone(resolve_user_columns(engine).correo)


class PrepareSchemaTests(unittest.TestCase):
    def test_adds_and_backfills_name_from_full_name(self):
        engine = memory_engine(
            "CREATE TABLE usuarios (id INTEGER PRIMARY KEY, nombre_completo TEXT, correo TEXT, contrasena TEXT)",
            "INSERT INTO usuarios (nombre_completo, correo, contrasena) VALUES ('Ana Pérez', 'ana@x.com', 'a')",
        )
        columns = prepare_users_schema(engine)

        self.assertEqual(columns.nombre, "nombre")
        self.assertEqual(columns.id, "id")
        with engine.connect() as conn:
            self.assertEqual(conn.execute(text("SELECT nombre FROM usuarios")).scalar(), "Ana Pérez")

    def test_backfills_name_from_username(self):
        engine = memory_engine(
            "CREATE TABLE usuarios (id INTEGER PRIMARY KEY, usuario TEXT, contrasena TEXT)",
            "INSERT INTO usuarios (usuario, contrasena) VALUES ('instructor@x.com', 'a')",
        )
        columns = prepare_users_schema(engine)

        self.assertEqual(columns.correo, "usuario")
        with engine.connect() as conn:
            self.assertEqual(conn.execute(text("SELECT nombre FROM usuarios")).scalar(), "instructor@x.com")

    def test_is_idempotent(self):
        engine = memory_engine(
            "CREATE TABLE usuarios (id_usuario INTEGER PRIMARY KEY, nombre TEXT, correo TEXT, contrasena TEXT)"
        )
        self.assertEqual(prepare_users_schema(engine), prepare_users_schema(engine))


class LegacySchemaApiTests(unittest.TestCase):
    """The API keeps working against a users table with the old column names."""

    def setUp(self):
        self.app = build_test_app()
        with self.app.app_context():
            db.session.execute(text("DROP TABLE usuarios"))
            db.session.execute(
                text("CREATE TABLE usuarios (id INTEGER PRIMARY KEY, usuario TEXT UNIQUE, password_hash TEXT)")
            )
            db.session.execute(text("INSERT INTO usuarios (usuario, password_hash) VALUES ('ana@x.com', 'clave')"))
            db.session.commit()
            columns = prepare_users_schema(db.engine)
        self.app.extensions["persistencia"].relational.set_user_columns(columns)
        self.client = self.app.test_client()

    def test_login_and_listing(self):
        response = self.client.post("/api/autenticacion", json={"correo": "ana@x.com", "contrasena": "clave"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json["usuario"], {"id": 1, "correo": "ana@x.com", "nombre_completo": "ana@x.com"})

        usuarios = self.client.get("/api/usuarios").json["usuarios"]
        self.assertEqual(usuarios, [{"id": 1, "nombre": "ana@x.com", "correo": "ana@x.com"}])

    def test_create_and_delete(self):
        created = self.client.post(
            "/api/usuarios", json={"nombre": "Luis", "correo": "luis@x.com", "contrasena": "otra"}
        )
        self.assertEqual(created.status_code, 201)
        self.assertEqual(created.json["usuario"]["id"], 2)

        self.assertEqual(self.client.delete("/api/usuarios/1").status_code, 200)
        usuarios = self.client.get("/api/usuarios").json["usuarios"]
        self.assertEqual(usuarios, [{"id": 1, "nombre": "Luis", "correo": "luis@x.com"}])



class UnpreparedLegacySchemaTests(unittest.TestCase):
    """Old table with a single 'usuario' column for both the name and the email."""

    def setUp(self):
        self.app = build_test_app()
        with self.app.app_context():
            db.session.execute(text("DROP TABLE usuarios"))
            db.session.execute(
                text("CREATE TABLE usuarios (id INTEGER PRIMARY KEY, usuario TEXT UNIQUE, password_hash TEXT)")
            )
            db.session.commit()
            columns = resolve_user_columns(db.engine)
        self.assertEqual(columns.nombre, columns.correo)
        self.app.extensions["persistencia"].relational.set_user_columns(columns)
        self.client = self.app.test_client()

    def test_create_stores_the_email(self):
        created = self.client.post(
            "/api/usuarios", json={"nombre": "Luis", "correo": "luis@x.com", "contrasena": "otra"}
        )
        self.assertEqual(created.status_code, 201)
        self.assertEqual(created.json["usuario"]["correo"], "luis@x.com")

        with self.app.app_context():
            self.assertEqual(db.session.execute(text("SELECT usuario FROM usuarios")).scalar(), "luis@x.com")

    def test_update_sets_the_column_once(self):
        self.client.post("/api/usuarios", json={"nombre": "Luis", "correo": "luis@x.com", "contrasena": "otra"})

        response = self.client.put("/api/usuarios/1", json={"nombre": "Luis Gil", "correo": "lgil@x.com"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json["usuario"]["correo"], "lgil@x.com")
        login = self.client.post("/api/autenticacion", json={"correo": "lgil@x.com", "contrasena": "otra"})
        self.assertEqual(login.status_code, 200)


if __name__ == "__main__":
    unittest.main()
