from __future__ import annotations

from typing import Any, Optional


class PersistenceError(Exception):
    def __init__(
        self,
        message: str,
        code: str = "PERSISTENCE_ERROR",
        status_code: int = 500,
        context: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.code = code
        self.status_code = status_code
        self.context = context or {}


class NotFoundError(PersistenceError):
    def __init__(self, entity: str, identifier: str, message: Optional[str] = None):
        super().__init__(
            message or f"{entity} not found: {identifier}",
            code="NOT_FOUND",
            status_code=404,
            context={"entity": entity, "identifier": identifier},
        )
        self.entity = entity
        self.identifier = identifier


class ValidationError(PersistenceError):
    def __init__(self, entity: str, message: str, field: Optional[str] = None):
        super().__init__(
            message,
            code="VALIDATION_FAILED",
            status_code=400,
            context={"entity": entity, "field": field},
        )
        self.entity = entity
        self.field = field


class _OperationError(PersistenceError):
    code = "OPERATION_FAILED"
    verb = "process"

    def __init__(
        self,
        entity: str,
        message: Optional[str] = None,
        original_error: Optional[BaseException] = None,
    ):
        super().__init__(
            message or f"Failed to {self.verb} {entity}",
            code=self.code,
            status_code=500,
            context={"entity": entity, "original_error": repr(original_error) if original_error else None},
        )
        self.entity = entity
        self.original_error = original_error


class CreationError(_OperationError):
    code = "CREATION_FAILED"
    verb = "create"


class UpdateError(_OperationError):
    code = "UPDATE_FAILED"
    verb = "update"


class DeletionError(_OperationError):
    code = "DELETION_FAILED"
    verb = "delete"


class QueryError(_OperationError):
    code = "QUERY_FAILED"
    verb = "query"


class PermissionDeniedError(ValidationError):
    def __init__(self, entity: str, message: str, field: Optional[str] = None):
        super().__init__(entity, message, field)
        self.code = "PERMISSION_DENIED"
        self.status_code = 403
