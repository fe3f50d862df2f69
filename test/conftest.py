import pytest
from app import create_app, mongo
from app.glpi_client import RemoteLookup, transform_glpi_ticket
from requests import HTTPError
from werkzeug.security import generate_password_hash
from unittest.mock import Mock, patch
from datetime import datetime
import logging
import json
import mongomock

# Desactivar la propagación de logs para evitar duplicados en la consola de pytest
logging.getLogger("werkzeug").setLevel(logging.ERROR)
logging.getLogger("flask_limiter").setLevel(logging.ERROR)

TEST_PASSWORD = "ThisIsA-Valid-Password123!"


class FakeGLPIClient:
    """
    Sustituto del cliente GLPI para los tests de agregación. Recibe tickets en
    formato GLPI (como los devuelve la API) y registra las llamadas recibidas.
    """
    def __init__(self, tickets=None, last_ticket_id=None, followups=None, configured=True, error=None):
        self.raw_tickets = tickets or []
        self.last_ticket_id = last_ticket_id
        self.followups = followups or {}
        self.configured = configured
        self.error = error
        self.calls = []

    def is_configured(self):
        return self.configured

    def get_last_ticket(self):
        self.calls.append(("get_last_ticket",))
        if self.error:
            raise self.error
        if not self.configured:
            return 0
        if self.last_ticket_id is not None:
            return self.last_ticket_id
        return max((int(t["id"]) for t in self.raw_tickets), default=0)

    def get_tickets(self, ticket_range=None, order=None, search_text=None):
        self.calls.append(("get_tickets", ticket_range, order, search_text))
        if self.error:
            raise self.error
        if not self.configured:
            return []
        return [transform_glpi_ticket(t) for t in self.raw_tickets]

    def lookup_ticket_detail(self, ticket_id):
        self.calls.append(("lookup_ticket_detail", ticket_id))
        if self.error or not self.configured:
            return RemoteLookup(RemoteLookup.UNAVAILABLE, None)
        for ticket in self.raw_tickets:
            if int(ticket["id"]) == ticket_id:
                return RemoteLookup(RemoteLookup.FOUND, transform_glpi_ticket(ticket, detail=True))
        return RemoteLookup(RemoteLookup.NOT_FOUND, None)

    def get_ticket_detail(self, ticket_id):
        return self.lookup_ticket_detail(ticket_id).ticket

    def get_ticket_followups(self, ticket_id):
        self.calls.append(("get_ticket_followups", ticket_id))
        return self.followups.get(ticket_id, [])


def glpi_ticket(ticket_id, name="Ticket GLPI", status=1, priority=3, date="2024-01-01 10:00:00",
                content="&lt;p&gt;Contenido&lt;/p&gt;", users_id_recipient=7):
    """Ticket tal como lo devuelve la API de GLPI."""
    return {
        "id": ticket_id,
        "name": name,
        "content": content,
        "status": status,
        "priority": priority,
        "date": date,
        "date_mod": date,
        "users_id_recipient": users_id_recipient,
        "users_id_lastupdater": users_id_recipient,
        "entities_id": 0,
        "requesttypes_id": 1,
        "itilcategories_id": 0,
        "urgency": 3,
        "impact": 3,
        "closedate": None,
        "solvedate": None,
    }


def make_response(status_code=200, json_data=None, text=None, reason=None):
    """Respuesta falsa de `requests` para los tests de los clientes HTTP."""
    response = Mock()
    response.status_code = status_code
    response.ok = 200 <= status_code < 400
    response.reason = reason or ("OK" if response.ok else "Error")
    if isinstance(json_data, Exception):
        # Cuerpo que no es JSON: .json() lanza la excepción indicada
        response.text = text or ""
        response.json.side_effect = json_data
    else:
        response.text = text if text is not None else (json.dumps(json_data) if json_data is not None else "")
        response.json.return_value = json_data
    if response.ok:
        response.raise_for_status.return_value = None
    else:
        response.raise_for_status.side_effect = HTTPError(f"{status_code} Error")
    return response


@pytest.fixture(scope="function")
def app():
    """Crea y configura una instancia de la aplicación Flask para cada test."""
    with patch('flask_pymongo.MongoClient', mongomock.MongoClient):
        app = create_app('testing')
        yield app


@pytest.fixture(scope="function")
def client(app):
    """Cliente de prueba simple para la aplicación Flask."""
    return app.test_client()


@pytest.fixture(scope="function")
def db(app):
    """
    Fixture que proporciona acceso a la BD y la limpia antes de cada test.
    El contexto de aplicación se cierra antes del test: cada petición del
    cliente de prueba debe abrir el suyo (Flask-Login guarda el usuario en `g`).
    """
    with app.app_context():
        mongo.db.client.drop_database(mongo.db.name)
    return mongo


@pytest.fixture(scope="function")
def fake_glpi(app):
    """Cliente GLPI falso instalado en la aplicación; por defecto sin tickets."""
    fake = FakeGLPIClient()
    app.extensions["glpi_client"] = fake
    return fake


def create_user(db, email, role=None, first_name="Test", last_name="User", password=TEST_PASSWORD):
    """Inserta un usuario (y su perfil si se indica un rol) directamente en la BD."""
    user_data = {
        "email": email,
        "firstName": first_name,
        "lastName": last_name,
        "password_hash": generate_password_hash(password),
        "created_at": datetime(2024, 1, 1),
    }
    result = db.db.users.insert_one(user_data)
    user_data["_id"] = result.inserted_id
    if role:
        db.db.profiles.insert_one({"user_id": str(result.inserted_id), "role": role, "preferences": {}})
    return user_data


def login(client, user_data, password=TEST_PASSWORD):
    """Función de ayuda para iniciar sesión con un usuario en los tests."""
    response = client.post("/api/login", json={"email": user_data["email"], "password": password})
    assert response.status_code == 200, response.get_json()
    return response


@pytest.fixture(scope="function")
def seed_customer(db):
    """Cliente sin perfil: se le asigna el rol 'customer' en su primera petición."""
    return create_user(db, "customer@example.com", first_name="Ana", last_name="Cliente")


@pytest.fixture(scope="function")
def seed_other_customer(db):
    return create_user(db, "other@example.com", role="customer", first_name="Bruno", last_name="Cliente")


@pytest.fixture(scope="function")
def seed_agent(db):
    return create_user(db, "agent@example.com", role="agent", first_name="Carla", last_name="Agente")


@pytest.fixture(scope="function")
def seed_admin(db):
    return create_user(db, "admin@example.com", role="admin", first_name="Admin", last_name="User")


@pytest.fixture
def customer_client(app, seed_customer):
    client = app.test_client()
    login(client, seed_customer)
    return client


@pytest.fixture
def other_customer_client(app, seed_other_customer):
    client = app.test_client()
    login(client, seed_other_customer)
    return client


@pytest.fixture
def agent_client(app, seed_agent):
    client = app.test_client()
    login(client, seed_agent)
    return client


@pytest.fixture
def admin_client(app, seed_admin):
    client = app.test_client()
    login(client, seed_admin)
    return client
