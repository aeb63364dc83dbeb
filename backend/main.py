import logging
import os

import click
from flask import Flask, jsonify, send_from_directory
from werkzeug.exceptions import InternalServerError, RequestEntityTooLarge

from .config import load_config
from .errors import ApiError
from .extensions import bcrypt, cors, db
from .routes import api
from .services.persistence import Persistence
from .services.schema_service import prepare_users_schema
from .services.sql_store import SqlStore
from .services.supabase_store import SupabaseStore, build_client

logger = logging.getLogger(__name__)

ROOT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


def create_app(test_config=None, supabase_client=None):
    """
    Build the Flask app and its persistence handle.

    ``supabase_client`` replaces the client built from SUPABASE_URL/KEY
    (tests pass a fake here).
    """
    if not logging.getLogger().handlers:
        logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    settings = load_config()
    if test_config:
        settings.update(test_config)

    public_dir = os.path.join(ROOT_DIR, settings["CARPETA_PUBLICA"])
    app = Flask(__name__, static_folder=public_dir, static_url_path="")
    app.config.update(settings)

    # Extensions
    cors.init_app(app, resources={r"/api/*": {"origins": app.config["CORS_ORIGINS"]}})
    bcrypt.init_app(app)

    relational = None
    if app.config.get("SQLALCHEMY_DATABASE_URI"):
        db.init_app(app)
        relational = SqlStore(db, compact_user_ids=app.config["COMPACTAR_IDS_USUARIOS"])

    client = supabase_client or build_client(app.config["SUPABASE_URL"], app.config["SUPABASE_KEY"])
    hosted = SupabaseStore(client, bucket=app.config["SUPABASE_BUCKET"]) if client is not None else None

    app.extensions["persistencia"] = Persistence(
        relational=relational,
        hosted=hosted,
        preferred=app.config["PERSISTENCIA_PREFERIDA"],
    )

    # Serverless deployments prepare the schema at deploy time instead.
    if relational is not None and app.config.get("PREPARAR_BD", not app.config["VERCEL"]):
        with app.app_context():
            try:
                relational.set_user_columns(prepare_users_schema(db.engine))
            except Exception as e:
                logger.error("Could not prepare the usuarios table: %s", e)
    elif relational is None and not app.config["VERCEL"]:
        logger.warning("No relational database configured; schema preparation skipped")

    app.register_blueprint(api)
    register_error_handlers(app)
    register_commands(app)

    @app.route("/", methods=["GET"])
    def home():
        return send_from_directory(public_dir, "index.html")

    return app


def register_error_handlers(app):
    @app.errorhandler(ApiError)
    def handle_api_error(e):
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(RequestEntityTooLarge)
    def handle_too_large(e):
        return jsonify({"exito": False, "mensaje": "El cuerpo de la solicitud supera el límite permitido."}), 413

    @app.errorhandler(InternalServerError)
    def handle_internal_error(e):
        original = getattr(e, "original_exception", None)
        logger.error("Unhandled error: %s", original or e)
        payload = {"exito": False, "mensaje": "Ocurrió un problema interno."}
        if original is not None:
            payload["detalle"] = str(original)
        return jsonify(payload), 500


def init_database(app):
    """Create missing tables and bring the users table to the current layout."""
    with app.app_context():
        db.create_all()
        columns = prepare_users_schema(db.engine)
        app.extensions["persistencia"].relational.set_user_columns(columns)
    return columns


def register_commands(app):
    @app.cli.command("preparar-bd")
    def prepare_database_command():
        """Create tables and prepare the usuarios schema."""
        if app.extensions["persistencia"].relational is None:
            raise click.ClickException("No relational database configured.")
        columns = init_database(app)
        click.echo(f"Base de datos preparada: {columns}")

    @app.cli.command("crear-bucket")
    def create_bucket_command():
        """Create the Supabase Storage bucket used for uploaded documents."""
        hosted = app.extensions["persistencia"].hosted
        if hosted is None:
            raise click.ClickException("Supabase is not configured.")
        if hosted.ensure_bucket():
            click.echo(f"Bucket creado: {hosted.bucket}")
        else:
            click.echo(f"El bucket {hosted.bucket} ya existe.")

    @app.cli.command("probar-conexion")
    def test_connection_command():
        """Check that the relational database answers."""
        relational = app.extensions["persistencia"].relational
        if relational is None:
            raise click.ClickException("No relational database configured.")
        try:
            fecha = relational.ping()
        except Exception as e:
            click.echo(f"No se pudo establecer la conexión con PostgreSQL. Detalle: {e}", err=True)
            raise SystemExit(1)
        click.echo(f"Conexión a PostgreSQL exitosa. Fecha del servidor: {fecha}")


if __name__ == "__main__":
    app = create_app()
    app.run(host='0.0.0.0', port=app.config['PUERTO_APP'])
