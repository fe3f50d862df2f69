# app/auth/policy.py
"""
Política de acceso a tickets.

Resuelve el rol del usuario (perfil creado de forma perezosa como 'customer')
y decide qué tickets puede ver o modificar:

    customer: solo sus tickets locales, nunca tickets GLPI
    agent:    todos los tickets locales (o solo los asignados) y los de GLPI
    admin:    como agent, además gestiona técnicos

Los tickets GLPI son de solo lectura para todos los roles.
"""

from collections import namedtuple
import logging

from flask import current_app, g
from flask_login import current_user
from pymongo.errors import DuplicateKeyError

from app.exceptions import AccessDeniedError, ReadOnlyTicketError
from app.models import SOURCE_GLPI, SOURCE_LOCAL
from app.repositories import MongoProfileRepository

logger = logging.getLogger(__name__)

ROLE_CUSTOMER = "customer"
ROLE_AGENT = "agent"
ROLE_ADMIN = "admin"
ROLES = (ROLE_CUSTOMER, ROLE_AGENT, ROLE_ADMIN)

# Campos de un ticket que un cliente no puede cambiar
CUSTOMER_PROTECTED_FIELDS = ("assignedToId", "customerId", "channel")

Caller = namedtuple("Caller", ["user_id", "role"])


def get_or_create_profile(user_id, profile_repository=None):
    """Perfil del usuario. Si no existe se crea con rol 'customer'; repetir la llamada no crea otro."""
    profiles = profile_repository or MongoProfileRepository()
    profile = profiles.find_by_user_id(user_id)
    if profile:
        return profile
    try:
        profile = profiles.create(user_id, role=ROLE_CUSTOMER)
        logger.info(f"Perfil creado para el usuario {user_id} con rol '{ROLE_CUSTOMER}'")
    except DuplicateKeyError:
        # Otra petición lo creó entre la lectura y la inserción
        profile = profiles.find_by_user_id(user_id)
    return profile


def get_current_caller():
    """Caller (id + rol) del usuario autenticado, resuelto una vez por petición."""
    caller = g.get("caller")
    if caller is None or caller.user_id != current_user.id:
        profile = get_or_create_profile(current_user.id)
        caller = Caller(user_id=current_user.id, role=profile.get("role", ROLE_CUSTOMER))
        g.caller = caller
    return caller


def is_staff(role):
    return role in (ROLE_AGENT, ROLE_ADMIN)


def can_view_remote(role):
    return is_staff(role)


def is_remote_request(ticket_id, source=None, threshold=None):
    """
    Un ticket se trata como GLPI si el origen explícito lo indica o, sin origen
    explícito, si su id supera el umbral REMOTE_TICKET_ID_THRESHOLD.
    """
    if source == SOURCE_GLPI:
        return True
    # Un origen explícito prevalece sobre el umbral: con source=local un id
    # mayor que REMOTE_TICKET_ID_THRESHOLD sigue siendo un ticket local.
    if source == SOURCE_LOCAL:
        return False
    if threshold is None:
        threshold = current_app.config.get("REMOTE_TICKET_ID_THRESHOLD", 1000)
    return ticket_id > threshold


def build_ticket_filters(caller, status=None, priority=None, assigned_to_me=False):
    """Filtros del listado local según el rol más los filtros pedidos por el usuario."""
    filters = {}
    if caller.role == ROLE_CUSTOMER:
        filters["customer_id"] = caller.user_id
    elif assigned_to_me:
        filters["assigned_to_id"] = caller.user_id
    if status:
        filters["status"] = status
    if priority:
        filters["priority"] = priority
    return filters


def check_remote_access(caller):
    if not can_view_remote(caller.role):
        logger.warning(f"Usuario {caller.user_id} ({caller.role}) intentó acceder a un ticket GLPI")
        raise AccessDeniedError()


def check_local_access(caller, ticket):
    if caller.role == ROLE_CUSTOMER and ticket.get("customer_id") != caller.user_id:
        logger.warning(f"Usuario {caller.user_id} intentó acceder al ticket {ticket.get('_id')} de otro cliente")
        raise AccessDeniedError()


def check_ticket_mutation(caller, ticket_id, source=None):
    """Rechaza cualquier escritura sobre un ticket GLPI, sea cual sea el rol."""
    if is_remote_request(ticket_id, source):
        logger.warning(f"Usuario {caller.user_id} intentó modificar el ticket GLPI {ticket_id}")
        raise ReadOnlyTicketError(ticket_id)


def check_customer_changes(caller, changes):
    """Un cliente no puede reasignar su ticket, cambiar su dueño ni su canal."""
    if caller.role != ROLE_CUSTOMER:
        return
    for field in CUSTOMER_PROTECTED_FIELDS:
        if field in changes:
            raise AccessDeniedError(f"No tienes permiso para modificar el campo '{field}'.")
