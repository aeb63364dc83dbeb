import hmac
import logging

from ..errors import InvalidCredentials, ValidationFailed
from ..extensions import bcrypt

logger = logging.getLogger(__name__)

BCRYPT_PREFIXES = ("$2a$", "$2b$", "$2y$")
INVALID_CREDENTIALS = "Credenciales incorrectas, verifique sus datos."


def is_hashed(value: str) -> bool:
    return value.startswith(BCRYPT_PREFIXES)


def hash_secret(clave: str) -> str:
    return bcrypt.generate_password_hash(clave.strip()).decode('utf-8')


def verify_secret(stored, submitted) -> bool:
    """
    Compare a submitted password with the stored value, ignoring surrounding
    whitespace on both. Rows written before hashing was enabled still hold
    plain text; those are compared in constant time.
    """
    stored = (stored or "").strip()
    submitted = str(submitted or "").strip()
    if not stored:
        return False
    if is_hashed(stored):
        return bcrypt.check_password_hash(stored, submitted)
    return hmac.compare_digest(stored.encode('utf-8'), submitted.encode('utf-8'))


def authenticate(persistence, correo, clave) -> dict:
    """Return the public projection of the user matching the credentials."""
    if not correo or not clave:
        raise ValidationFailed("Debe proporcionar el correo y la contraseña.")

    usuario = persistence.call("find_user_by_email", str(correo).strip())
    if not usuario or not verify_secret(usuario.get("contrasena"), clave):
        logger.info("Rejected login for %s", correo)
        raise InvalidCredentials(INVALID_CREDENTIALS)

    return {
        "id": usuario["id"],
        "correo": usuario["correo"],
        "nombre_completo": usuario.get("nombre") or usuario["correo"],
    }
