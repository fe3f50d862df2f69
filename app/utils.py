# app/utils.py

from datetime import datetime, timezone
from flask import request
from wtforms.validators import StopValidation
import logging

from app.exceptions import RequestValidationError

logger = logging.getLogger(__name__)


def utcnow():
    """Instante actual en UTC sin tzinfo, igual que los datetimes que devuelve PyMongo."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_glpi_datetime(value):
    """GLPI devuelve fechas como 'YYYY-MM-DD HH:MM:SS'. Devuelve None si no se puede leer."""
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value))
    except ValueError:
        logger.debug(f"Fecha GLPI no reconocida: {value!r}")
        return None


def log_ticket_history(message_repository, ticket_id, changed_by_id, details):
    """
    Añade una entrada de historial al ticket como mensaje de tipo 'system'.
    Un fallo al registrar el historial no interrumpe la operación principal.
    """
    try:
        message_repository.add({
            "ticket_id": ticket_id,
            "sender_id": changed_by_id,
            "content": details,
            "type": "system",
            "created_at": utcnow(),
        })
    except Exception as e:
        logger.error(f"Error al registrar historial para ticket {ticket_id}: {e}", exc_info=True)


def get_json_payload():
    """Cuerpo JSON de la petición actual. Debe ser un objeto; si no, 400."""
    payload = request.get_json(silent=True)
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise RequestValidationError("El cuerpo de la petición debe ser un objeto JSON.")
    return payload


def is_text(form, field):
    """
    Validador para formularios alimentados desde JSON: el valor debe ser una
    cadena (o null). Va primero en la cadena de validadores.
    """
    if field.data is not None and not isinstance(field.data, str):
        raise StopValidation("Debe ser una cadena de texto.")
