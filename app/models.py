# Con PyMongo no se usan clases de modelo como con un ORM: los tickets,
# mensajes y artículos se manejan como diccionarios (documentos de MongoDB).
# Este módulo fija los valores válidos y la conversión a la forma JSON de la API.

from datetime import datetime

from app.utils import utcnow

TICKET_STATUSES = ("open", "in_progress", "resolved", "closed")
TICKET_PRIORITIES = ("low", "medium", "high", "critical")
TICKET_CHANNELS = ("web", "email", "whatsapp", "glpi")
MESSAGE_TYPES = ("text", "system", "internal_note")

SOURCE_LOCAL = "local"
SOURCE_GLPI = "glpi"

DEFAULT_CATEGORY = "general"

# Campos que un PATCH puede modificar (nombre API -> nombre en el documento)
TICKET_UPDATABLE_FIELDS = {
    "title": "title",
    "description": "description",
    "status": "status",
    "priority": "priority",
    "category": "category",
    "channel": "channel",
    "assignedToId": "assigned_to_id",
    "tags": "tags",
}


def _iso(value):
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def new_ticket_document(title, description, customer_id, status="open", priority="medium",
                        category=DEFAULT_CATEGORY, channel="web", assigned_to_id=None, tags=None,
                        now=None):
    """Documento de un ticket local listo para insertar (sin `_id`)."""
    now = now or utcnow()
    return {
        "title": title,
        "description": description,
        "status": status,
        "priority": priority,
        "category": category or DEFAULT_CATEGORY,
        "channel": channel or "web",
        "customer_id": customer_id,
        "assigned_to_id": assigned_to_id,
        "tags": list(tags or []),
        "created_at": now,
        "updated_at": now,
    }


def ticket_to_json(ticket):
    """
    Convierte un ticket canónico (documento local o ticket GLPI transformado)
    en el diccionario camelCase de la API.
    """
    data = {
        "id": ticket.get("_id", ticket.get("id")),
        "title": ticket.get("title"),
        "description": ticket.get("description"),
        "status": ticket.get("status"),
        "priority": ticket.get("priority"),
        "category": ticket.get("category"),
        "channel": ticket.get("channel"),
        "customerId": ticket.get("customer_id"),
        "assignedToId": ticket.get("assigned_to_id"),
        "tags": ticket.get("tags") or [],
        "createdAt": _iso(ticket.get("created_at")),
        "updatedAt": _iso(ticket.get("updated_at")),
        "source": ticket.get("source", SOURCE_LOCAL),
    }
    if ticket.get("glpi_data") is not None:
        data["glpiData"] = ticket["glpi_data"]
    return data


def message_to_json(message):
    data = {
        "id": message.get("_id", message.get("id")),
        "ticketId": message.get("ticket_id"),
        "senderId": message.get("sender_id"),
        "content": message.get("content"),
        "type": message.get("type", "text"),
        "createdAt": _iso(message.get("created_at")),
    }
    if message.get("source"):
        data["source"] = message["source"]
    return data


def article_to_json(article):
    return {
        "id": article.get("_id"),
        "title": article.get("title"),
        "content": article.get("content"),
        "authorId": article.get("author_id"),
        "isPublic": article.get("is_public", True),
        "tags": article.get("tags") or [],
        "createdAt": _iso(article.get("created_at")),
        "updatedAt": _iso(article.get("updated_at")),
    }


def profile_to_json(profile):
    return {
        "userId": profile.get("user_id"),
        "role": profile.get("role"),
        "preferences": profile.get("preferences") or {},
    }
