"""Custom exceptions for the Optica API."""


class OpticaError(Exception):
    """Base exception for all application errors."""
    def __init__(self, message="An internal error occurred", status_code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['message'] = self.message
        rv['status'] = 'error'
        return rv


class ValidationError(OpticaError):
    """Raised for missing or malformed input."""
    def __init__(self, message, field=None):
        payload = {'field': field} if field else None
        super().__init__(message, 400, payload)
        self.field = field


class BusinessLogicError(OpticaError):
    """Exception raised for business logic violations."""
    def __init__(self, message, status_code=400, payload=None):
        super().__init__(message, status_code, payload)


class NotFoundError(OpticaError):
    """Exception raised when a resource is not found."""
    def __init__(self, message="Recurso no encontrado", payload=None):
        super().__init__(message, 404, payload)


class ConflictError(BusinessLogicError):
    """Raised on duplicate keys or on requests that were already resolved."""
    def __init__(self, message, payload=None):
        super().__init__(message, status_code=409, payload=payload)


class InsufficientStockError(ConflictError):
    """Raised when an operation fails due to lack of stock."""
    def __init__(self, product_name, required, available):
        message = f"Stock insuficiente para {product_name}: se requieren {required}, disponible {available}"
        super().__init__(message, payload={'requested': required, 'available': available})
        self.product_name = product_name
        self.required = required
        self.available = available


class UnauthorizedError(OpticaError):
    """Raised when the caller is not authenticated."""
    def __init__(self, message="Token de autenticación requerido"):
        super().__init__(message, 401)


class ForbiddenError(OpticaError):
    """Raised when a user lacks permission for an action."""
    def __init__(self, message="Acceso denegado"):
        super().__init__(message, 403)


class DatabaseUnavailableError(OpticaError):
    """Raised when the database cannot be reached at startup."""
    def __init__(self, message="Base de datos no disponible"):
        super().__init__(message, 503)
