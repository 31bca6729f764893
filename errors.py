from enum import Enum


class ErrorKind(str, Enum):
    """
    Closed set of domain error kinds. Each kind maps to one HTTP status.
    """

    BAD_REQUEST = "bad_request"
    UNAUTHORIZED = "unauthorized"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    INTERNAL = "internal"


STATUS_BY_KIND = {
    ErrorKind.BAD_REQUEST: 400,
    ErrorKind.UNAUTHORIZED: 401,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.INTERNAL: 500,
}


class AppError(Exception):
    """Domain error carrying (kind, message, status_code)."""

    def __init__(self, kind: ErrorKind, message: str):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.status_code = STATUS_BY_KIND[kind]

    def __repr__(self) -> str:
        return f"AppError({self.kind.value!r}, {self.message!r})"

    def to_dict(self) -> dict:
        return {"msg": self.message}

    @classmethod
    def bad_request(cls, message: str) -> "AppError":
        return cls(ErrorKind.BAD_REQUEST, message)

    @classmethod
    def unauthorized(cls, message: str) -> "AppError":
        return cls(ErrorKind.UNAUTHORIZED, message)

    @classmethod
    def not_found(cls, message: str) -> "AppError":
        return cls(ErrorKind.NOT_FOUND, message)

    @classmethod
    def conflict(cls, message: str) -> "AppError":
        return cls(ErrorKind.CONFLICT, message)

    @classmethod
    def internal(cls, message: str) -> "AppError":
        return cls(ErrorKind.INTERNAL, message)
