"""
HTTP routes for the site API: documents, users, login and diagnostics.
"""

import logging
import re

from flask import Blueprint, current_app, jsonify, request

from .errors import ServiceUnavailable, ValidationFailed
from .services.auth_service import authenticate, hash_secret
from .services.persistence import error_text

logger = logging.getLogger(__name__)

api = Blueprint("api", __name__, url_prefix="/api")

DIGITS = re.compile(r"[0-9]")


def get_persistence():
    return current_app.extensions["persistencia"]


def _body() -> dict:
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form.to_dict()


def _text(value):
    if value is None:
        return None
    return str(value).strip()


def _first(body: dict, *keys):
    for key in keys:
        if body.get(key) is not None:
            return body[key]
    return None


def _parse_id(raw) -> int:
    try:
        value = int(raw)
    except (TypeError, ValueError):
        value = 0
    if value <= 0:
        raise ValidationFailed("ID inválido.")
    return value


def _require(fields: dict):
    missing = [name for name, value in fields.items() if not value]
    if missing:
        raise ValidationFailed(f"Faltan campos obligatorios: {', '.join(missing)}.")


def _check_name(nombre: str):
    if DIGITS.search(nombre):
        raise ValidationFailed("El nombre no puede contener números.")


def _public_user(usuario: dict) -> dict:
    return {"id": usuario["id"], "nombre": usuario.get("nombre"), "correo": usuario.get("correo")}


def _uploaded_url():
    """Upload the multipart file, if one came with the request, and return its URL."""
    file = request.files.get("archivo") or request.files.get("file")
    if file is None or not file.filename:
        return None
    return get_persistence().upload_file(file.filename, file.read(), file.mimetype)


def _document_fields(body: dict) -> dict:
    fields = {
        "titulo": _text(_first(body, "titulo_documento", "titulo")),
        "descripcion": _first(body, "descripcion_documento", "descripcion"),
        "url": _text(_first(body, "documento", "url")),
        "tipo": _text(_first(body, "tipo_documento", "tipo")),
    }
    if fields["descripcion"] is not None:
        fields["descripcion"] = str(fields["descripcion"])
    return fields


# --- Documents ---

@api.route("/documentos", methods=["GET"])
def list_documents():
    tipo = _text(request.args.get("tipo")) or None
    documentos = get_persistence().call("list_documents", tipo)
    return jsonify({"exito": True, "documentos": documentos})


@api.route("/documentos", methods=["POST"])
def create_document():
    fields = _document_fields(_body())
    _require({"titulo": fields["titulo"], "tipo": fields["tipo"]})

    uploaded = _uploaded_url()
    if uploaded:
        fields["url"] = uploaded
    _require({"url": fields["url"]})

    documento = get_persistence().call("create_document", fields)
    return jsonify({"exito": True, "documento": documento}), 201


@api.route("/documentos/<doc_id>", methods=["PUT"])
def update_document(doc_id):
    doc_id = _parse_id(doc_id)
    fields = _document_fields(_body())
    uploaded = _uploaded_url()
    if uploaded:
        fields["url"] = uploaded

    for key in ("titulo", "tipo"):
        if fields[key] is not None:
            _require({key: fields[key]})

    # A blank location keeps the current file.
    if not fields["url"]:
        fields.pop("url")
    fields = {key: value for key, value in fields.items() if value is not None}

    documento = get_persistence().call("update_document", doc_id, fields)
    return jsonify({"exito": True, "documento": documento})


@api.route("/documentos/<doc_id>", methods=["DELETE"])
def delete_document(doc_id):
    get_persistence().call("delete_document", _parse_id(doc_id))
    return jsonify({"exito": True})


# --- Users ---

@api.route("/usuarios", methods=["GET"])
def list_users():
    usuarios = get_persistence().call("list_users")
    return jsonify({"exito": True, "usuarios": [_public_user(u) for u in usuarios]})


@api.route("/usuarios", methods=["POST"])
def create_user():
    body = _body()
    nombre = _text(body.get("nombre"))
    correo = _text(body.get("correo"))
    contrasena = _text(_first(body, "contrasena", "password"))

    _require({"nombre": nombre, "correo": correo, "contrasena": contrasena})
    _check_name(nombre)

    if current_app.config["HASH_CONTRASENAS"]:
        contrasena = hash_secret(contrasena)
    usuario = get_persistence().call("create_user", nombre, correo, contrasena)
    return jsonify({"exito": True, "usuario": _public_user(usuario)}), 201


@api.route("/usuarios/<user_id>", methods=["PUT"])
def update_user(user_id):
    user_id = _parse_id(user_id)
    body = _body()
    nombre = _text(body.get("nombre"))
    correo = _text(body.get("correo"))
    contrasena = _text(_first(body, "contrasena", "password")) or None

    if nombre is not None:
        _require({"nombre": nombre})
        _check_name(nombre)
    if correo is not None:
        _require({"correo": correo})
    if contrasena and current_app.config["HASH_CONTRASENAS"]:
        contrasena = hash_secret(contrasena)

    usuario = get_persistence().call(
        "update_user", user_id, nombre=nombre, correo=correo, contrasena=contrasena
    )
    return jsonify({"exito": True, "usuario": _public_user(usuario)})


@api.route("/usuarios/<user_id>", methods=["DELETE"])
def delete_user(user_id):
    get_persistence().call("delete_user", _parse_id(user_id))
    return jsonify({"exito": True})


# --- Auth ---

@api.route("/autenticacion", methods=["POST"])
def login():
    """
    Check the login form credentials and return the basic user data the
    client shows after signing in.
    """
    body = _body()
    correo = _text(_first(body, "correo", "usuario"))
    clave = body.get("contrasena") or body.get("password")

    usuario = authenticate(get_persistence(), correo, clave)
    return jsonify({"exito": True, "usuario": usuario})


# --- Diagnostics ---

@api.route("/estado-bd", methods=["GET"])
def database_status():
    """Quick check that the relational database answers."""
    relational = get_persistence().relational
    if relational is None:
        raise ServiceUnavailable(
            "No hay configuración de base de datos disponible en este entorno.",
            detalle="Defina DB_CONNECTION_STRING o PG_HOST/PG_DATABASE.",
        )

    try:
        fecha = relational.ping()
    except Exception as e:
        logger.error("Database health check failed: %s", e)
        return jsonify({
            "exito": False,
            "mensaje": "No se pudo establecer la conexión con PostgreSQL",
            "detalle": error_text(e),
        }), 503

    return jsonify({
        "exito": True,
        "mensaje": "Conexión a PostgreSQL exitosa",
        "fecha": fecha.isoformat() if hasattr(fecha, "isoformat") else str(fecha),
    })


@api.route("/diag/supabase", methods=["GET"])
def supabase_diagnostics():
    """Tell credential, RLS and missing-table problems apart on the hosted backend."""
    hosted = get_persistence().hosted
    if hosted is None:
        return jsonify({"ok": False, "error": "Faltan SUPABASE_URL o SUPABASE_*_KEY en variables de entorno."}), 503

    try:
        sample = hosted.ping()
    except Exception as e:
        logger.error("Supabase diagnostics failed: %s", e)
        return jsonify({"ok": False, "error": error_text(e)}), 500
    return jsonify({"ok": True, "sample": sample})


@api.route("/configuracion-publica", methods=["GET"])
def public_config():
    url = current_app.config.get("SUPABASE_URL")
    anon_key = current_app.config.get("SUPABASE_ANON_KEY")
    if not url or not anon_key:
        raise ServiceUnavailable("Supabase no está configurado para el navegador.")
    return jsonify({"exito": True, "supabaseUrl": url, "supabaseAnonKey": anon_key})
