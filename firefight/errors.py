"""Domain errors. Each one carries a stable code and an HTTP status."""


class ArenaError(Exception):
    code = "arena_error"
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self):
        return {"error": self.code, "message": self.message}


class ValidationError(ArenaError):
    code = "validation_error"
    status_code = 422


class NotFoundError(ArenaError):
    code = "not_found"
    status_code = 404


class Unauthorized(ArenaError):
    code = "unauthorized"
    status_code = 403


class CapacityExceeded(ArenaError):
    code = "capacity_exceeded"
    status_code = 409


class InsufficientFunds(ArenaError):
    code = "insufficient_funds"
    status_code = 402


class DuplicateRegistration(ArenaError):
    code = "duplicate_registration"
    status_code = 409


class RegistrationClosed(ArenaError):
    code = "registration_closed"
    status_code = 409


class AlreadyVerified(ArenaError):
    code = "already_verified"
    status_code = 409
