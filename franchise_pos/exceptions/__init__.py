"""Custom exceptions for the franchise POS engine."""


class PosError(Exception):
    """Base exception for all application errors."""
    def __init__(self, message="An internal error occurred", status_code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    @property
    def kind(self):
        return type(self).__name__

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['message'] = self.message
        rv['error'] = self.kind
        rv['status'] = 'error'
        return rv


class ValidationError(PosError):
    """Malformed input, wrong-state reversal or foreign product in a sale."""
    def __init__(self, message, payload=None):
        super().__init__(message, 400, payload)


class NotFoundError(PosError):
    """Exception raised when a resource is not found."""
    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)


class ForbiddenError(PosError):
    """Raised when the actor lacks the role or franchise scope for an action."""
    def __init__(self, message="Forbidden", payload=None):
        super().__init__(message, 403, payload)


class ConflictError(PosError):
    """An inventory precondition failed at write time."""
    def __init__(self, message="Conflict", payload=None):
        super().__init__(message, 409, payload)


class InsufficientStockError(ConflictError):
    """Raised when a conditional stock write finds fewer units than required."""
    def __init__(self, product_name, required, available=None):
        if available is None:
            message = f"Stock insuficiente para {product_name}: se requieren {required}"
        else:
            message = f"Stock insuficiente para {product_name}: se requieren {required}, disponible {available}"
        super().__init__(message, payload={'required': required})
        self.product_name = product_name
        self.required = required
        self.available = available


class AuthenticationRequired(PosError):
    """Raised when a request reaches a protected endpoint without an actor."""
    def __init__(self, message="Authentication required"):
        super().__init__(message, 401)
