# app/auth/decorators.py

from functools import wraps
from flask import abort
from flask_login import login_required
import logging

from app.auth.policy import get_current_caller, ROLE_ADMIN, ROLE_AGENT

logger = logging.getLogger(__name__)


# Decorador general para requerir uno o varios roles
def role_required(roles):
    """
    Decorador que verifica si el usuario actual tiene alguno de los roles especificados.
    El rol se lee del perfil del usuario (se crea como 'customer' si no existe).

    Uso:
    @role_required('admin')
    @role_required(['admin', 'agent'])
    """

    def decorator(f):
        @wraps(f)
        @login_required  # Asegura que el usuario esté logueado antes de comprobar el rol
        def decorated_function(*args, **kwargs):
            # Convertir 'roles' a una lista si se pasó un solo rol como cadena
            if isinstance(roles, str):
                allowed_roles = [roles]
            else:
                allowed_roles = roles

            caller = get_current_caller()
            if caller.role not in allowed_roles:
                logger.warning(f"Acceso denegado a {caller.user_id}: rol '{caller.role}' no está en {allowed_roles}")
                abort(403)  # HTTP 403 Forbidden
            return f(*args, **kwargs)

        return decorated_function

    return decorator


def admin_required(f):
    """Solo permite acceso a usuarios con el rol 'admin'."""
    return role_required(ROLE_ADMIN)(f)


def agent_or_admin_required(f):
    """Permite acceso a 'agent' o 'admin'."""
    return role_required([ROLE_AGENT, ROLE_ADMIN])(f)
