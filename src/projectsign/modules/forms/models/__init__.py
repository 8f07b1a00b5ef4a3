from .form import Form, FormType, FORM_TYPE_LABELS
from .signing_token import SigningToken

__all__ = ['Form', 'FormType', 'FORM_TYPE_LABELS', 'SigningToken']
