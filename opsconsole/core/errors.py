from typing import Any, Optional


class BackendError(Exception):
    """Error payload returned by the hosted backend (table, RPC, storage or edge function)."""

    def __init__(self, message: str, code: Optional[str] = None, details: Any = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details

    @property
    def is_unique_violation(self) -> bool:
        return self.code == "23505"


class FormValidationError(ValueError):
    """Raised before any remote write when submitted form data is incomplete or inconsistent."""

    def __init__(self, message: str, title: str = "Error"):
        super().__init__(message)
        self.message = message
        self.title = title


class AuthenticationError(Exception):
    def __init__(self, message: str = "Invalid email or password. Please check your credentials and try again."):
        super().__init__(message)
        self.message = message


class PermissionDenied(Exception):
    def __init__(self, permission: str):
        super().__init__(f"Missing permission: {permission}")
        self.permission = permission
        self.message = f"You do not have permission to perform this action ({permission})."


class RecordNotFound(LookupError):
    def __init__(self, entity: str, entity_id: str):
        super().__init__(f"{entity} {entity_id} not found")
        self.message = f"{entity} not found"
        self.entity_id = entity_id
