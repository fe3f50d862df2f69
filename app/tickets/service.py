# app/tickets/service.py
"""
Agregación de tickets locales (MongoDB) y remotos (GLPI).

El listado combina ambas fuentes en una sola vista ordenada por fecha de
creación. GLPI es opcional: si falla, el listado sigue devolviendo todos los
tickets locales. Los errores de MongoDB no se capturan aquí.
"""

from datetime import datetime
import logging

from flask import current_app

from app.auth.models import Persona
from app.auth.policy import (
    ROLE_CUSTOMER,
    build_ticket_filters,
    can_view_remote,
    check_customer_changes,
    check_local_access,
    check_remote_access,
    check_ticket_mutation,
    is_remote_request,
    is_staff,
)
from app.exceptions import AccessDeniedError, TicketNotFoundError
from app.glpi_client import RemoteLookup, followup_to_message, get_glpi_client
from app.models import (
    SOURCE_LOCAL,
    TICKET_UPDATABLE_FIELDS,
    message_to_json,
    new_ticket_document,
    ticket_to_json,
)
from app.repositories import (
    MongoTicketMessageRepository,
    MongoTicketRepository,
    MongoUserRepository,
)
from app.utils import log_ticket_history, utcnow

logger = logging.getLogger(__name__)


def _created_at_key(ticket):
    return ticket.get("created_at") or datetime.min


def _matches(ticket, status=None, priority=None):
    if status and ticket.get("status") != status:
        return False
    if priority and ticket.get("priority") != priority:
        return False
    return True


class TicketAggregator:
    def __init__(self, glpi_client, ticket_repository, message_repository, user_repository,
                 items_per_page=20, default_range="1-20", default_order="DESC"):
        self.glpi = glpi_client
        self.tickets = ticket_repository
        self.messages = message_repository
        self.users = user_repository
        self.items_per_page = items_per_page
        self.default_range = default_range
        self.default_order = default_order

    # --- Lectura ---

    def fetch_merged(self, caller, status=None, priority=None, assigned_to_me=False,
                     ticket_range=None, order=None, search_text=None):
        """
        Tickets visibles para el usuario, ambas fuentes, filtrados y ordenados
        por created_at descendente. Devuelve (tickets, total_local, estimacion_remota).
        """
        filters = build_ticket_filters(caller, status=status, priority=priority,
                                       assigned_to_me=assigned_to_me)
        local_tickets = [dict(t, source=SOURCE_LOCAL) for t in self.tickets.find_all(filters)]

        remote_tickets = []
        remote_estimate = 0
        if can_view_remote(caller.role):
            try:
                remote_estimate = self.glpi.get_last_ticket()
                remote_tickets = self.glpi.get_tickets(
                    ticket_range=ticket_range or self.default_range,
                    order=order or self.default_order,
                    search_text=search_text,
                )
            except Exception as e:
                logger.error(f"Error al obtener tickets de GLPI, se devuelven solo los locales: {e}", exc_info=True)
                remote_tickets = []

        merged = [t for t in local_tickets + list(remote_tickets) if _matches(t, status, priority)]
        # sorted() es estable también con reverse=True: los empates conservan el orden
        merged = sorted(merged, key=_created_at_key, reverse=True)
        return merged, len(local_tickets), remote_estimate

    def list_tickets(self, caller, **query):
        tickets, local_total, remote_estimate = self.fetch_merged(caller, **query)
        logger.debug(
            f"Listado para {caller.user_id} ({caller.role}): {local_total} locales, "
            f"{len(tickets) - local_total} GLPI"
        )
        return {
            "tickets": [ticket_to_json(t) for t in tickets],
            "pagination": {
                "total": remote_estimate,
                "itemsPerPage": self.items_per_page,
                "localTotal": local_total,
                "remoteTotalEstimate": remote_estimate,
            },
        }

    def get_ticket(self, caller, ticket_id, source=None):
        """
        Ticket canónico y sus mensajes (en orden cronológico), aplicando la política
        de acceso. Para tickets GLPI los mensajes son los followups mapeados.
        """
        if is_remote_request(ticket_id, source):
            check_remote_access(caller)
            lookup = self.glpi.lookup_ticket_detail(ticket_id)
            if lookup.status == RemoteLookup.UNAVAILABLE:
                raise TicketNotFoundError(f"El ticket GLPI {ticket_id} no está disponible en este momento.")
            if not lookup.found:
                raise TicketNotFoundError("Ticket GLPI no encontrado.")
            followups = self.glpi.get_ticket_followups(ticket_id)
            messages = [followup_to_message(f, ticket_id, index) for index, f in enumerate(followups)]
            return lookup.ticket, messages

        ticket = self.tickets.find_by_id(ticket_id)
        if not ticket:
            raise TicketNotFoundError()
        check_local_access(caller, ticket)
        return dict(ticket, source=SOURCE_LOCAL), self.messages.find_by_ticket_id(ticket_id)

    def get_ticket_detail(self, caller, ticket_id, source=None):
        ticket, messages = self.get_ticket(caller, ticket_id, source)
        data = ticket_to_json(ticket)
        data["messages"] = [message_to_json(m) for m in messages]
        data["assignedTo"] = self._resolve_assignee(ticket.get("assigned_to_id"))
        return data

    def _resolve_assignee(self, user_id):
        if not user_id:
            return None
        user_data = self.users.find_by_id(user_id)
        if not user_data:
            return None
        return Persona.from_document(user_data).to_json()

    # --- Escritura (solo tickets locales) ---

    def create_ticket(self, caller, title, description, status=None, priority=None, category=None,
                      channel=None, assigned_to_id=None, tags=None):
        # Solo el personal puede fijar estado o asignación al crear
        if not is_staff(caller.role):
            status = None
            assigned_to_id = None
        ticket = new_ticket_document(
            title=title,
            description=description,
            customer_id=caller.user_id,
            status=status or "open",
            priority=priority or "medium",
            category=category,
            channel=channel,
            assigned_to_id=assigned_to_id,
            tags=tags,
        )
        ticket = self.tickets.add(ticket)
        logger.info(f"Ticket {ticket['_id']} creado por {caller.user_id}")
        return ticket_to_json(dict(ticket, source=SOURCE_LOCAL))

    def update_ticket(self, caller, ticket_id, changes, source=None):
        """
        Actualización parcial. `changes` usa los nombres de la API (camelCase);
        los cambios de estado y de asignación quedan en el historial del ticket.
        """
        check_ticket_mutation(caller, ticket_id, source)
        ticket = self.tickets.find_by_id(ticket_id)
        if not ticket:
            raise TicketNotFoundError()
        check_local_access(caller, ticket)
        check_customer_changes(caller, changes)

        updates = {
            TICKET_UPDATABLE_FIELDS[key]: value
            for key, value in changes.items()
            if key in TICKET_UPDATABLE_FIELDS
        }
        if not updates:
            return ticket_to_json(dict(ticket, source=SOURCE_LOCAL))

        updated = self.tickets.update(ticket_id, updates)
        self._record_history(caller, ticket, updates)
        logger.info(f"Ticket {ticket_id} actualizado por {caller.user_id}: {sorted(updates)}")
        return ticket_to_json(dict(updated, source=SOURCE_LOCAL))

    def _record_history(self, caller, before, updates):
        ticket_id = before["_id"]
        if "status" in updates and updates["status"] != before.get("status"):
            log_ticket_history(
                self.messages, ticket_id, caller.user_id,
                f"Estado cambiado de '{before.get('status')}' a '{updates['status']}'.",
            )
        if "assigned_to_id" in updates and updates["assigned_to_id"] != before.get("assigned_to_id"):
            if updates["assigned_to_id"]:
                details = f"Ticket asignado a {updates['assigned_to_id']}."
            else:
                details = "Asignación eliminada."
            log_ticket_history(self.messages, ticket_id, caller.user_id, details)

    def add_message(self, caller, ticket_id, content, message_type=None, source=None):
        check_ticket_mutation(caller, ticket_id, source)
        ticket = self.tickets.find_by_id(ticket_id)
        if not ticket:
            raise TicketNotFoundError()
        check_local_access(caller, ticket)

        message_type = message_type or "text"
        if caller.role == ROLE_CUSTOMER and message_type != "text":
            raise AccessDeniedError("Los clientes solo pueden enviar mensajes de texto.")

        message = self.messages.add({
            "ticket_id": ticket_id,
            "sender_id": caller.user_id,
            "content": content,
            "type": message_type,
            "created_at": utcnow(),
        })
        logger.info(f"Mensaje {message['_id']} añadido al ticket {ticket_id} por {caller.user_id}")
        return message_to_json(message)


def get_ticket_service():
    """Servicio de tickets cableado con los repositorios MongoDB y el cliente GLPI de la aplicación."""
    config = current_app.config
    return TicketAggregator(
        glpi_client=get_glpi_client(),
        ticket_repository=MongoTicketRepository(),
        message_repository=MongoTicketMessageRepository(),
        user_repository=MongoUserRepository(),
        items_per_page=config.get("TICKETS_PER_PAGE", 20),
        default_range=config.get("DEFAULT_GLPI_RANGE", "1-20"),
        default_order=config.get("DEFAULT_GLPI_ORDER", "DESC"),
    )
