from .cleanup import delete_expired_tokens
from .dispatch_service import DispatchService
from .form_service import FormService
from .pdf_service import PdfService
from .signature_service import SignatureService
from .token_service import TokenService

__all__ = [
    'delete_expired_tokens', 'DispatchService', 'FormService',
    'PdfService', 'SignatureService', 'TokenService'
]
