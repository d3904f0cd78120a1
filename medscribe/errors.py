from typing import Optional


class ConfigError(RuntimeError):
    """Configuração obrigatória ausente ou inválida"""


class MedscribeError(Exception):
    status_code = 500

    def __init__(self, message: str, job_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.job_id = job_id


class ValidationError(MedscribeError):
    status_code = 400


class AuthorizationError(MedscribeError):
    status_code = 401


class CallbackAuthorizationError(AuthorizationError):
    pass


class NotFoundError(MedscribeError):
    status_code = 404


class StorageError(MedscribeError):
    status_code = 500


class DatabaseError(MedscribeError):
    status_code = 500


class WorkflowError(MedscribeError):
    status_code = 502


class WorkflowTimeoutError(WorkflowError):
    status_code = 504
