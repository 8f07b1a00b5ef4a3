import hashlib
import hmac
import json
from typing import Any, Mapping

INTEGRITY_UNSIGNED = "unsigned"
INTEGRITY_VALID = "valid"
INTEGRITY_TAMPERED = "tampered"


def canonical_payload(payload: Mapping[str, Any]) -> bytes:
    """
    Serializa el contenido con claves ordenadas (en todos los niveles) y sin
    espacios, de modo que dos objetos iguales produzcan los mismos bytes sin
    importar el orden de inserción.
    """
    return json.dumps(
        payload,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        allow_nan=False,
    ).encode("utf-8")


def compute_hash(payload: Mapping[str, Any]) -> str:
    """SHA-256 hex del contenido canónico."""
    return hashlib.sha256(canonical_payload(payload)).hexdigest()


def verify(payload: Mapping[str, Any], expected_hash: str) -> bool:
    if not expected_hash:
        return False
    return hmac.compare_digest(compute_hash(payload), expected_hash)


def integrity_status(form) -> str:
    """
    Recalcula el hash del contenido guardado y lo compara con el registrado
    al firmar.
    """
    if form.signed_at is None:
        return INTEGRITY_UNSIGNED
    if verify(form.data, form.signature_hash):
        return INTEGRITY_VALID
    return INTEGRITY_TAMPERED
