# app/glpi_client.py
"""
Cliente de la API REST de GLPI.

GLPI se integra como segunda fuente de tickets, de solo lectura. Todas las
operaciones públicas devuelven resultados vacíos (0, [], None) cuando el
cliente no está configurado o GLPI falla: la caída de GLPI nunca debe impedir
que se listen los tickets locales.
"""

from collections import namedtuple
from datetime import timedelta
import logging
import re
import time

from flask import current_app
import requests

from app.exceptions import RemoteAuthError, RemoteTimeoutError, RemoteUnavailableError
from app.models import DEFAULT_CATEGORY, SOURCE_GLPI
from app.utils import parse_glpi_datetime, utcnow

logger = logging.getLogger(__name__)

# Estados GLPI: 1 Nuevo, 2 En curso (asignado), 3 En curso (planificado),
# 4 En espera, 5 Resuelto, 6 Cerrado
GLPI_STATUS_MAP = {
    1: "open",
    2: "in_progress",
    3: "in_progress",
    4: "in_progress",
    5: "resolved",
    6: "closed",
}

# Prioridad GLPI: 1 Muy baja ... 5 Muy alta
GLPI_PRIORITY_MAP = {
    1: "low",
    2: "low",
    3: "medium",
    4: "high",
    5: "critical",
}

# Los followups sin id reciben un id sintético a partir de este valor
FOLLOWUP_ID_OFFSET = 1000000

HTML_ENTITIES = (
    ("&#60;", "<"),
    ("&#62;", ">"),
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&amp;", "&"),
    ("&#39;", "'"),
    ("&quot;", '"'),
)

_TAG_RE = re.compile(r"<[^>]*>")
_WHITESPACE_RE = re.compile(r"\s+")
# Un "&" suelto entre espacios se descarta junto con las etiquetas
_STRAY_AMPERSAND_RE = re.compile(r"(?<!\S)&(?!\S)")


def map_glpi_status(glpi_status):
    try:
        return GLPI_STATUS_MAP.get(int(glpi_status), "open")
    except (TypeError, ValueError):
        return "open"


def map_glpi_priority(glpi_priority):
    try:
        return GLPI_PRIORITY_MAP.get(int(glpi_priority), "medium")
    except (TypeError, ValueError):
        return "medium"


def decode_html(html):
    """Decodifica las entidades que GLPI guarda en el contenido y elimina las etiquetas."""
    if not html:
        return ""
    text = html
    for entity, char in HTML_ENTITIES:
        text = text.replace(entity, char)
    text = _TAG_RE.sub(" ", text)
    text = _STRAY_AMPERSAND_RE.sub(" ", text)
    text = _WHITESPACE_RE.sub(" ", text)
    return text.strip()


def transform_glpi_ticket(glpi_ticket, detail=False):
    """Convierte un ticket de GLPI a la forma canónica de ticket con source='glpi'."""
    glpi_data = {
        "entities_id": glpi_ticket.get("entities_id"),
        "requesttypes_id": glpi_ticket.get("requesttypes_id"),
        "itilcategories_id": glpi_ticket.get("itilcategories_id"),
        "urgency": glpi_ticket.get("urgency"),
        "impact": glpi_ticket.get("impact"),
        "closedate": glpi_ticket.get("closedate"),
        "solvedate": glpi_ticket.get("solvedate"),
    }
    if detail:
        glpi_data["users_id_recipient"] = glpi_ticket.get("users_id_recipient")
        glpi_data["users_id_lastupdater"] = glpi_ticket.get("users_id_lastupdater")

    return {
        "id": int(glpi_ticket.get("id")),
        "title": glpi_ticket.get("name") or "Sin título",
        "description": decode_html(glpi_ticket.get("content")),
        "status": map_glpi_status(glpi_ticket.get("status")),
        "priority": map_glpi_priority(glpi_ticket.get("priority")),
        "category": DEFAULT_CATEGORY,
        "channel": "glpi",
        "source": SOURCE_GLPI,
        "created_at": parse_glpi_datetime(glpi_ticket.get("date")),
        "updated_at": parse_glpi_datetime(glpi_ticket.get("date_mod")),
        "customer_id": f"glpi-user-{glpi_ticket.get('users_id_recipient')}",
        "assigned_to_id": None,
        "tags": [],
        "glpi_data": glpi_data,
    }


def followup_to_message(followup, ticket_id, index):
    """Followup de GLPI en forma de mensaje de ticket. Nunca se persiste."""
    sender = followup.get("users_id") or followup.get("users_id_technician") or "unknown"
    created_at = parse_glpi_datetime(followup.get("date") or followup.get("date_creation")) or utcnow()
    return {
        "id": followup.get("id") or FOLLOWUP_ID_OFFSET + index,
        "ticket_id": ticket_id,
        "sender_id": f"glpi-user-{sender}",
        "content": followup.get("content", ""),
        "type": "text",
        "created_at": created_at,
        "source": SOURCE_GLPI,
    }


def _as_list(payload):
    """GLPI a veces envuelve las colecciones en {'data': [...]}."""
    if isinstance(payload, dict) and "data" in payload:
        payload = payload["data"] or []
    return payload if isinstance(payload, list) else []


RemoteSession = namedtuple("RemoteSession", ["token", "expires_at"])


class RemoteSessionStore:
    """
    Caché del session token de GLPI, local al proceso y compartida entre
    peticiones. Dos peticiones concurrentes pueden renovar la sesión a la vez;
    autenticarse dos veces es inocuo, así que no hay lock.
    """
    def __init__(self, clock=utcnow):
        self._clock = clock
        self._session = None

    def get_token(self):
        session = self._session
        if session and self._clock() < session.expires_at:
            return session.token
        return None

    def store(self, token, duration):
        self._session = RemoteSession(token=token, expires_at=self._clock() + duration)
        return self._session

    def clear(self):
        self._session = None

    @property
    def current(self):
        return self._session


class RemoteLookup(namedtuple("RemoteLookup", ["status", "ticket"])):
    """Resultado de buscar un ticket en GLPI: distingue 'no existe' de 'GLPI no disponible'."""
    FOUND = "found"
    NOT_FOUND = "not_found"
    UNAVAILABLE = "unavailable"

    @property
    def found(self):
        return self.status == self.FOUND


class GLPIClient:
    # Un 401 invalida la sesión y se reintenta una sola vez
    MAX_AUTH_RETRIES = 1

    def __init__(self, base_url, app_token, auth_token, session_store=None, http=None,
                 timeout=5, session_duration=timedelta(hours=1)):
        self.base_url = f"{base_url.rstrip('/')}/" if base_url else ""
        self.app_token = app_token or ""
        self.auth_token = auth_token or ""
        self.session_store = session_store or RemoteSessionStore()
        self.http = http or requests.Session()
        self.timeout = timeout
        self.session_duration = session_duration

        if not self.is_configured():
            logger.warning(
                "[GLPI] Configuración incompleta. Variables de entorno necesarias: "
                "GLPI_API_URL, GLPI_APP_TOKEN, GLPI_AUTH_TOKEN"
            )

    @classmethod
    def from_config(cls, config, **kwargs):
        return cls(
            base_url=config.get("GLPI_API_URL", ""),
            app_token=config.get("GLPI_APP_TOKEN", ""),
            auth_token=config.get("GLPI_AUTH_TOKEN", ""),
            timeout=config.get("GLPI_REQUEST_TIMEOUT", 5),
            session_duration=config.get("GLPI_SESSION_DURATION", timedelta(hours=1)),
            **kwargs,
        )

    def is_configured(self):
        return bool(self.base_url and self.app_token and self.auth_token)

    # --- Sesión ---

    def get_session_token(self):
        token = self.session_store.get_token()
        if token:
            return token
        return self.init_session()

    def init_session(self):
        headers = {
            "App-Token": self.app_token,
            "Authorization": f"user_token {self.auth_token}",
            "Content-Type": "application/json",
        }
        response = self._send("initSession", headers)

        if not response.ok:
            body = response.text or ""
            logger.error(f"[GLPI] Error de autenticación {response.status_code}: {body or response.reason}")
            raise RemoteAuthError(response.status_code, body)

        try:
            token = response.json().get("session_token")
        except ValueError as e:
            raise RemoteAuthError(response.status_code, "respuesta no es JSON", original_exception=e)
        if not token:
            raise RemoteAuthError(response.status_code, "respuesta sin session_token")

        self.session_store.store(token, self.session_duration)
        logger.info("[GLPI] Sesión iniciada con éxito")
        return token

    def kill_session(self):
        session = self.session_store.current
        if not session:
            return
        try:
            self._send("killSession", {"Session-Token": session.token, "App-Token": self.app_token})
            logger.info("[GLPI] Sesión cerrada")
        except RemoteUnavailableError as e:
            logger.error(f"[GLPI] Error al cerrar sesión: {e}")
        finally:
            self.session_store.clear()

    # --- HTTP ---

    def _send(self, path, headers, params=None):
        """GET con timeout. Traduce errores de transporte a RemoteUnavailableError."""
        url = f"{self.base_url}{path}"
        logger.info(f"[GLPI] Petición: GET {url}")
        logger.debug(
            f"[GLPI] Headers: App-Token={'***' if self.app_token else 'no definido'}"
            f"{', Session-Token=***' if 'Session-Token' in headers else ''}"
        )
        started = time.monotonic()
        try:
            response = self.http.get(url, headers=headers, params=params, timeout=self.timeout)
        except requests.Timeout as e:
            logger.error(f"[GLPI] Timeout en la petición GET {path}")
            raise RemoteTimeoutError(original_exception=e)
        except requests.RequestException as e:
            logger.error(f"[GLPI] Error de red en GET {path}: {e}")
            raise RemoteUnavailableError(f"GLPI request failed: {e}", original_exception=e)
        duration_ms = int((time.monotonic() - started) * 1000)
        logger.info(f"[GLPI] Respuesta: {response.status_code} {response.reason} ({duration_ms}ms)")
        return response

    def _get(self, path, params=None):
        """
        GET autenticado con el session token. Ante un 401 limpia la caché y
        reintenta con los mismos parámetros, como máximo MAX_AUTH_RETRIES veces.
        """
        attempt = 0
        while True:
            headers = {
                "Session-Token": self.get_session_token(),
                "App-Token": self.app_token,
                "Content-Type": "application/json",
            }
            response = self._send(path, headers, params=params)
            if response.status_code == 401 and attempt < self.MAX_AUTH_RETRIES:
                logger.info("[GLPI] Sesión expirada, renovando...")
                self.session_store.clear()
                attempt += 1
                continue
            return response

    @staticmethod
    def _raise_for_status(response):
        if not response.ok:
            raise RemoteUnavailableError(f"GLPI API error: {response.status_code} {response.reason}")

    # --- Tickets ---

    def get_last_ticket(self):
        """
        Id del ticket más reciente. GLPI no expone un recuento, así que el id más
        alto se usa como estimación del número total de tickets.
        """
        if not self.is_configured():
            logger.warning("[GLPI] Cliente no configurado. Devolviendo 0.")
            return 0
        try:
            response = self._get("Ticket/", params={"range": "0-0", "order": "DESC"})
            self._raise_for_status(response)
            tickets = _as_list(response.json())
            last_ticket_id = int(tickets[0].get("id") or 0) if tickets else 0
        except (RemoteUnavailableError, ValueError, TypeError) as e:
            logger.error(f"[GLPI] Error al buscar el último ticket: {e}")
            return 0
        logger.info(f"[GLPI] Último ticket ID: {last_ticket_id}")
        return last_ticket_id

    def get_tickets(self, ticket_range=None, order=None, search_text=None):
        """
        Página de tickets GLPI. `ticket_range` sigue la convención de GLPI ("1-20",
        "21-40"); `order` es ASC o DESC. Una lista vacía significa "GLPI no
        aporta tickets ahora", no "no hay tickets".
        """
        if not self.is_configured():
            logger.warning("[GLPI] Cliente no configurado. Devolviendo lista vacía.")
            return []

        params = {}
        if ticket_range:
            params["range"] = ticket_range
        if order:
            params["order"] = order
        if search_text:
            params["searchText"] = search_text

        try:
            response = self._get("Ticket/", params=params or None)
            if not response.ok:
                logger.error(f"[GLPI] Error en la respuesta: {response.status_code} - {response.text or response.reason}")
                self._raise_for_status(response)
            tickets = [transform_glpi_ticket(t) for t in _as_list(response.json())]
        except (RemoteUnavailableError, ValueError, TypeError) as e:
            logger.error(f"[GLPI] Error al buscar tickets: {e}")
            return []

        logger.info(f"[GLPI] {len(tickets)} tickets recuperados (range: {ticket_range}, order: {order})")
        return tickets

    def lookup_ticket_detail(self, ticket_id):
        if not self.is_configured():
            logger.warning("[GLPI] Cliente no configurado. Ticket no disponible.")
            return RemoteLookup(RemoteLookup.UNAVAILABLE, None)
        try:
            response = self._get(f"Ticket/{ticket_id}")
            if response.status_code == 404:
                logger.info(f"[GLPI] Ticket {ticket_id} no encontrado")
                return RemoteLookup(RemoteLookup.NOT_FOUND, None)
            self._raise_for_status(response)
            ticket = transform_glpi_ticket(response.json(), detail=True)
        except (RemoteUnavailableError, ValueError, TypeError) as e:
            logger.error(f"[GLPI] Error al buscar detalles del ticket {ticket_id}: {e}")
            return RemoteLookup(RemoteLookup.UNAVAILABLE, None)
        return RemoteLookup(RemoteLookup.FOUND, ticket)

    def get_ticket_detail(self, ticket_id):
        """Ticket GLPI o None, tanto si no existe como si GLPI no responde."""
        return self.lookup_ticket_detail(ticket_id).ticket

    def get_ticket_followups(self, ticket_id):
        if not self.is_configured():
            logger.warning("[GLPI] Cliente no configurado. Devolviendo lista vacía.")
            return []
        try:
            response = self._get(f"Ticket/{ticket_id}/TicketFollowup")
            if response.status_code == 404:
                logger.info(f"[GLPI] Followups del ticket {ticket_id} no encontrados")
                return []
            self._raise_for_status(response)
            followups = _as_list(response.json())
        except (RemoteUnavailableError, ValueError) as e:
            logger.error(f"[GLPI] Error al buscar followups del ticket {ticket_id}: {e}")
            return []

        logger.info(f"[GLPI] {len(followups)} followups recuperados para el ticket {ticket_id}")
        return [dict(f, content=decode_html(f.get("content"))) for f in followups]


def get_glpi_client():
    """Cliente GLPI de la aplicación actual (creado una vez en create_app)."""
    return current_app.extensions["glpi_client"]
