class BaseAppException(Exception):
    """Clase base para excepciones personalizadas de la aplicación."""
    status_code = 500

    def __init__(self, message="Error interno de la aplicación.", original_exception=None):
        super().__init__(message)
        self.message = message
        self.original_exception = original_exception

    def to_dict(self):
        return {"message": self.message}


class AccessDeniedError(BaseAppException):
    """El rol del usuario no permite la operación solicitada."""
    status_code = 403

    def __init__(self, message="Forbidden", original_exception=None):
        super().__init__(message, original_exception)


class ReadOnlyTicketError(AccessDeniedError):
    """Intento de modificar un ticket que proviene de GLPI."""
    def __init__(self, ticket_id, original_exception=None):
        super().__init__(f"El ticket {ticket_id} proviene de GLPI y es de solo lectura.", original_exception)
        self.ticket_id = ticket_id


class ResourceNotFoundError(BaseAppException):
    status_code = 404

    def __init__(self, message="Recurso no encontrado.", original_exception=None):
        super().__init__(message, original_exception)


class TicketNotFoundError(ResourceNotFoundError):
    def __init__(self, message="Ticket no encontrado.", original_exception=None):
        super().__init__(message, original_exception)


class RequestValidationError(BaseAppException):
    """El cuerpo o los parámetros de la petición no cumplen el esquema."""
    status_code = 400

    def __init__(self, message="Datos inválidos.", field=None, original_exception=None):
        super().__init__(message, original_exception)
        self.field = field

    def to_dict(self):
        data = super().to_dict()
        if self.field:
            data["field"] = self.field
        return data

    @classmethod
    def from_form(cls, form):
        """Construye la excepción a partir del primer error de un formulario WTForms."""
        for field_name, errors in form.errors.items():
            if errors:
                message = errors[0] if isinstance(errors[0], str) else str(errors[0])
                return cls(message, field=field_name)
        return cls()


class ConflictError(BaseAppException):
    status_code = 409

    def __init__(self, message="El recurso ya existe.", original_exception=None):
        super().__init__(message, original_exception)


class ConfigurationError(BaseAppException):
    """Faltan credenciales de IA o de GLPI."""
    status_code = 500

    def __init__(self, message="Configuración incompleta.", original_exception=None):
        super().__init__(message, original_exception)


class AIError(BaseAppException):
    """Fallo en la llamada al modelo generativo."""
    status_code = 500

    def __init__(self, message="AI Error", original_exception=None):
        super().__init__(message, original_exception)


class RemoteUnavailableError(BaseAppException):
    """
    Cualquier fallo del sistema GLPI. El cliente GLPI la captura en su frontera,
    nunca llega al usuario final.
    """
    status_code = 503

    def __init__(self, message="GLPI no disponible.", original_exception=None):
        super().__init__(message, original_exception)


class RemoteAuthError(RemoteUnavailableError):
    def __init__(self, status, body="", original_exception=None):
        message = f"GLPI Auth failed: {status}"
        if body:
            message = f"{message} - {body}"
        super().__init__(message, original_exception)
        self.status = status
        self.body = body


class RemoteTimeoutError(RemoteUnavailableError):
    def __init__(self, message="GLPI request timeout", original_exception=None):
        super().__init__(message, original_exception)
