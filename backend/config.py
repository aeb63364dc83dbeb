"""
Environment-backed configuration for the Flask app.

Values come from the process environment or a local ``.env`` file through
python-decouple.
"""

import re
from urllib.parse import quote_plus

from decouple import Csv, config

_SIZE_UNITS = {"": 1, "b": 1, "kb": 1024, "mb": 1024 ** 2, "gb": 1024 ** 3}


def parse_size(value) -> int:
    """Convert sizes such as ``20mb`` or ``512kb`` into bytes."""
    if isinstance(value, int):
        return value
    match = re.fullmatch(r"\s*(\d+)\s*([kmg]?b?)\s*", str(value).lower())
    if not match:
        raise ValueError(f"Invalid size: {value!r}")
    number, unit = match.groups()
    return int(number) * _SIZE_UNITS[unit]


def database_url():
    """Build the SQLAlchemy URL, or return None when nothing is configured."""
    url = config("DB_CONNECTION_STRING", default=None) or config("DATABASE_URL", default=None)
    if url:
        # Heroku-style URLs still use the old scheme name.
        if url.startswith("postgres://"):
            url = "postgresql://" + url[len("postgres://"):]
        return url

    host = config("PG_HOST", default=None)
    name = config("PG_DATABASE", default=None)
    if not host and not name:
        return None

    user = quote_plus(config("PG_USER", default="postgres"))
    password = quote_plus(config("PG_PASSWORD", default=""))
    port = config("PG_PORT", default=5432, cast=int)
    url = f"postgresql://{user}:{password}@{host or 'localhost'}:{port}/{name or 'postgres'}"
    if config("PG_SSL", default=False, cast=bool):
        url += "?sslmode=require"
    return url


def engine_options(url):
    if not url or url.startswith("sqlite"):
        return {}
    return {
        "pool_size": config("PG_POOL_MAX", default=10, cast=int),
        "pool_recycle": config("PG_IDLE_TIMEOUT", default=30000, cast=int) // 1000,
        "pool_pre_ping": True,
    }


def load_config() -> dict:
    url = database_url()
    service_key = (
        config("SUPABASE_SERVICE_ROLE_KEY", default=None)
        or config("SUPABASE_SERVICE_KEY", default=None)
        or config("SUPABASE_KEY", default=None)
        or config("SUPABASE_ANON_KEY", default=None)
    )

    return {
        "SQLALCHEMY_DATABASE_URI": url,
        "SQLALCHEMY_ENGINE_OPTIONS": engine_options(url),
        "SQLALCHEMY_TRACK_MODIFICATIONS": False,
        "SUPABASE_URL": config("SUPABASE_URL", default=None),
        "SUPABASE_KEY": service_key,
        "SUPABASE_ANON_KEY": config("SUPABASE_ANON_KEY", default=None),
        "SUPABASE_BUCKET": config("SUPABASE_BUCKET", default="documentos"),
        "PUERTO_APP": config("PUERTO_APP", default=3000, cast=int),
        "MAX_CONTENT_LENGTH": parse_size(config("LIMITE_CUERPO_JSON", default="20mb")),
        "VERCEL": config("VERCEL", default=False, cast=bool),
        "PERSISTENCIA_PREFERIDA": config("PERSISTENCIA_PREFERIDA", default="supabase"),
        "COMPACTAR_IDS_USUARIOS": config("COMPACTAR_IDS_USUARIOS", default=True, cast=bool),
        "HASH_CONTRASENAS": config("HASH_CONTRASENAS", default=True, cast=bool),
        "CORS_ORIGINS": config("CORS_ORIGINS", default="*", cast=Csv()),
        "CARPETA_PUBLICA": config("CARPETA_PUBLICA", default="public"),
    }
