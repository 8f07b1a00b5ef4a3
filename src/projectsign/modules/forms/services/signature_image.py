import base64
import binascii
import io

from PIL import Image, UnidentifiedImageError

from projectsign.errors import ValidationError

DATA_URI_PREFIX = "data:image/png;base64,"
PNG_MAGIC = b"\x89PNG\r\n\x1a\n"

MIN_SIGNATURE_BYTES = 100
MAX_SIGNATURE_BYTES = 2 * 1024 * 1024
MIN_SIGNATURE_SIDE = 20
MAX_SIGNATURE_SIDE = 4000
SIGNER_NAME_MAX_LENGTH = 100


def validate_signer_name(signer_name: str) -> str:
    name = (signer_name or "").strip()
    if not name:
        raise ValidationError("Missing required fields", [{"loc": ["signerName"], "msg": "signer name is required"}])
    if len(name) > SIGNER_NAME_MAX_LENGTH:
        raise ValidationError(
            "Invalid signer name",
            [{"loc": ["signerName"], "msg": f"at most {SIGNER_NAME_MAX_LENGTH} characters"}]
        )
    return name


def decode_signature_image(signature_data: str) -> bytes:
    """
    Decodifica y valida la imagen de firma (PNG en base64, con o sin prefijo
    data URI).

    Rechaza imágenes vacías, demasiado chicas o completamente en blanco.
    """
    if not signature_data:
        raise ValidationError("Missing required fields", [{"loc": ["signatureData"], "msg": "signature is required"}])

    raw = signature_data.strip()
    if raw.startswith("data:"):
        if not raw.startswith(DATA_URI_PREFIX):
            raise ValidationError("La firma debe ser una imagen PNG")
        raw = raw[len(DATA_URI_PREFIX):]

    try:
        image_bytes = base64.b64decode(raw, validate=True)
    except (binascii.Error, ValueError):
        raise ValidationError("Firma inválida: base64 mal formado")

    if len(image_bytes) < MIN_SIGNATURE_BYTES:
        raise ValidationError("Firma vacía o demasiado pequeña")
    if len(image_bytes) > MAX_SIGNATURE_BYTES:
        raise ValidationError(f"El tamaño máximo de la firma es {MAX_SIGNATURE_BYTES // (1024 * 1024)} MB")
    if not image_bytes.startswith(PNG_MAGIC):
        raise ValidationError("La firma debe ser una imagen PNG")

    # Validar integridad de la imagen; las dimensiones se leen del
    # encabezado antes de decodificar pixeles
    try:
        with Image.open(io.BytesIO(image_bytes)) as img:
            _check_dimensions(img.size)
            img.verify()
        with Image.open(io.BytesIO(image_bytes)) as img:
            if _is_blank(img):
                raise ValidationError("Firma vacía")
    except Image.DecompressionBombError:
        raise ValidationError(f"La firma supera {MAX_SIGNATURE_SIDE}x{MAX_SIGNATURE_SIDE} pixeles")
    except (UnidentifiedImageError, OSError, SyntaxError):
        raise ValidationError("PNG inválido o dañado")

    return image_bytes


def _check_dimensions(size) -> None:
    width, height = size
    if width < MIN_SIGNATURE_SIDE or height < MIN_SIGNATURE_SIDE:
        raise ValidationError("Firma vacía o demasiado pequeña")
    if width > MAX_SIGNATURE_SIDE or height > MAX_SIGNATURE_SIDE:
        raise ValidationError(f"La firma supera {MAX_SIGNATURE_SIDE}x{MAX_SIGNATURE_SIDE} pixeles")


def _is_blank(img: Image.Image) -> bool:
    """Sin trazos: todo transparente o de un único color."""
    rgba = img.convert("RGBA")
    if rgba.getchannel("A").getbbox() is None:
        return True
    extrema = rgba.getextrema()
    return all(low == high for low, high in extrema)
