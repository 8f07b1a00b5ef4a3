from .auto_delete import start_token_cleanup_job

__all__ = ['start_token_cleanup_job']
