# src/projectsign/modules/storage/services/signature_storage.py

import os
from abc import ABC, abstractmethod
from typing import Optional

import httpx

from projectsign.config import get_settings
from projectsign.errors import DependencyFailure
from projectsign.utils.logger import get_logger

logger = get_logger(__name__)


class SignatureStorage(ABC):
    """Interfaz del almacenamiento de imágenes de firma."""

    @abstractmethod
    def upload(self, key: str, data: bytes, content_type: str = "image/png") -> str:
        """Guarda ``data`` bajo ``key`` y devuelve su URL pública."""
        raise NotImplementedError

    @abstractmethod
    def delete(self, key: str) -> None:
        raise NotImplementedError

    def key_for_url(self, url: str) -> Optional[str]:
        """Clave interna de una URL emitida por este almacenamiento, o None."""
        return None

    @abstractmethod
    def read(self, key: str) -> bytes:
        raise NotImplementedError

    def fetch(self, url: str, timeout: float) -> bytes:
        """
        Descarga una imagen de firma; lee directo del almacenamiento si la URL
        es propia, si no la pide por HTTP.
        """
        key = self.key_for_url(url)
        if key is not None:
            return self.read(key)
        try:
            response = httpx.get(url, timeout=timeout, follow_redirects=True)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise DependencyFailure("signature_storage", f"Failed to fetch signature image: {e}")
        return response.content


class LocalSignatureStorage(SignatureStorage):
    """
    Guarda las firmas en disco; la app las sirve como archivos estáticos bajo
    ``public_base_url``.
    """

    def __init__(self, base_dir: str, public_base_url: str):
        self.base_dir = base_dir
        self.public_base_url = public_base_url.rstrip("/")

    def _path(self, key: str) -> str:
        path = os.path.normpath(os.path.join(self.base_dir, key))
        if not path.startswith(os.path.normpath(self.base_dir) + os.sep):
            raise ValueError(f"Invalid storage key: {key}")
        return path

    def upload(self, key: str, data: bytes, content_type: str = "image/png") -> str:
        path = self._path(key)
        try:
            os.makedirs(os.path.dirname(path), exist_ok=True)
            with open(path, "xb") as f:
                f.write(data)
        except OSError as e:
            logger.error("signature_upload_failed", key=key, error=str(e))
            raise DependencyFailure("signature_storage", "Failed to upload signature")
        return f"{self.public_base_url}/{key}"

    def delete(self, key: str) -> None:
        path = self._path(key)
        if os.path.exists(path):
            os.remove(path)

    def key_for_url(self, url: str) -> Optional[str]:
        prefix = self.public_base_url + "/"
        if url and url.startswith(prefix):
            return url[len(prefix):]
        return None

    def read(self, key: str) -> bytes:
        try:
            with open(self._path(key), "rb") as f:
                return f.read()
        except OSError as e:
            raise DependencyFailure("signature_storage", f"Failed to read signature image: {e}")


_storage: Optional[SignatureStorage] = None


def get_signature_storage() -> SignatureStorage:
    global _storage
    if _storage is None:
        settings = get_settings()
        _storage = LocalSignatureStorage(
            settings.signature_storage_dir,
            settings.signature_public_base_url
        )
    return _storage
