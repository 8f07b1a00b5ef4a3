from .signature_storage import SignatureStorage, LocalSignatureStorage, get_signature_storage

__all__ = ['SignatureStorage', 'LocalSignatureStorage', 'get_signature_storage']
