from datetime import datetime, timedelta
from unittest.mock import Mock
import pytest
import requests

from app.exceptions import RemoteAuthError, RemoteTimeoutError
from app.glpi_client import (
    FOLLOWUP_ID_OFFSET,
    GLPIClient,
    RemoteLookup,
    RemoteSessionStore,
    decode_html,
    followup_to_message,
    map_glpi_priority,
    map_glpi_status,
    transform_glpi_ticket,
)
from test.conftest import glpi_ticket, make_response


class FakeClock:
    def __init__(self, now=datetime(2024, 1, 1, 12, 0, 0)):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


def make_client(http, clock=None):
    return GLPIClient(
        base_url="https://glpi.example.com/apirest.php",
        app_token="app-token",
        auth_token="user-token",
        session_store=RemoteSessionStore(clock=clock or FakeClock()),
        http=http,
    )


def session_response(token="session-1"):
    return make_response(200, {"session_token": token})


# --- Mapeos y transformación ---

@pytest.mark.parametrize("code, expected", [
    (1, "open"), (2, "in_progress"), (3, "in_progress"), (4, "in_progress"),
    (5, "resolved"), (6, "closed"), (99, "open"), (None, "open"), ("5", "resolved"),
])
def test_map_glpi_status(code, expected):
    assert map_glpi_status(code) == expected


@pytest.mark.parametrize("code, expected", [
    (1, "low"), (2, "low"), (3, "medium"), (4, "high"), (5, "critical"), (0, "medium"), ("x", "medium"),
])
def test_map_glpi_priority(code, expected):
    assert map_glpi_priority(code) == expected


def test_decode_html_strips_tags_and_entities():
    assert decode_html("&lt;b&gt;Hi&lt;/b&gt; &amp; bye") == "Hi bye"


def test_decode_html_keeps_text_and_quotes():
    html = "&#60;p&#62;L&#39;ordinateur   ne &quot;démarre&quot; pas&#60;/p&#62;<br/>R&amp;D"
    assert decode_html(html) == "L'ordinateur ne \"démarre\" pas R&D"
    assert decode_html(None) == ""


def test_transform_glpi_ticket():
    """
    GIVEN un ticket tal como lo devuelve GLPI
    WHEN se transforma
    THEN queda en la forma canónica, marcado como 'glpi'
    """
    raw = glpi_ticket(4321, name="", status=5, priority=5, content="&lt;p&gt;Impresora rota&lt;/p&gt;")
    ticket = transform_glpi_ticket(raw)

    assert ticket["id"] == 4321
    assert ticket["title"] == "Sin título"
    assert ticket["description"] == "Impresora rota"
    assert ticket["status"] == "resolved"
    assert ticket["priority"] == "critical"
    assert ticket["source"] == "glpi"
    assert ticket["channel"] == "glpi"
    assert ticket["customer_id"] == "glpi-user-7"
    assert ticket["assigned_to_id"] is None
    assert ticket["created_at"] == datetime(2024, 1, 1, 10, 0, 0)
    assert "users_id_recipient" not in ticket["glpi_data"]

    detail = transform_glpi_ticket(raw, detail=True)
    assert detail["glpi_data"]["users_id_recipient"] == 7


def test_followup_to_message_uses_synthetic_id():
    message = followup_to_message({"content": "Hola", "users_id": 3, "date": "2024-02-01 09:30:00"}, 4321, 2)
    assert message["id"] == FOLLOWUP_ID_OFFSET + 2
    assert message["sender_id"] == "glpi-user-3"
    assert message["created_at"] == datetime(2024, 2, 1, 9, 30, 0)

    with_id = followup_to_message({"id": 55, "content": "x", "users_id_technician": 9}, 4321, 0)
    assert with_id["id"] == 55
    assert with_id["sender_id"] == "glpi-user-9"


# --- Cliente sin configurar ---

def test_unconfigured_client_returns_empty_results():
    """
    GIVEN un cliente GLPI sin URL ni tokens
    WHEN se consultan tickets
    THEN devuelve 0 / [] / None sin hacer ninguna petición
    """
    http = Mock()
    client = GLPIClient(base_url="", app_token="", auth_token="", http=http)

    assert client.is_configured() is False
    assert client.get_last_ticket() == 0
    assert client.get_tickets() == []
    assert client.get_ticket_detail(5000) is None
    assert client.lookup_ticket_detail(5000).status == RemoteLookup.UNAVAILABLE
    assert client.get_ticket_followups(5000) == []
    http.get.assert_not_called()


# --- Sesión ---

def test_init_session_sends_credentials_and_caches_token():
    http = Mock()
    http.get.side_effect = [session_response("tok-1"), make_response(200, [glpi_ticket(2000)]),
                            make_response(200, [glpi_ticket(2000)])]
    client = make_client(http)

    client.get_tickets()
    client.get_tickets()

    # Una sola autenticación para dos peticiones
    assert http.get.call_count == 3
    init_call = http.get.call_args_list[0]
    assert init_call.args[0].endswith("/initSession")
    assert init_call.kwargs["headers"]["App-Token"] == "app-token"
    assert init_call.kwargs["headers"]["Authorization"] == "user_token user-token"
    assert init_call.kwargs["timeout"] == 5
    assert http.get.call_args_list[2].kwargs["headers"]["Session-Token"] == "tok-1"


def test_session_expires_after_one_hour():
    clock = FakeClock()
    http = Mock()
    http.get.side_effect = [session_response("tok-1"), make_response(200, []),
                            session_response("tok-2"), make_response(200, [])]
    client = make_client(http, clock)

    client.get_tickets()
    clock.advance(hours=1, seconds=1)
    client.get_tickets()

    assert http.get.call_args_list[2].args[0].endswith("/initSession")
    assert http.get.call_args_list[3].kwargs["headers"]["Session-Token"] == "tok-2"


def test_init_session_failure_raises_auth_error():
    http = Mock()
    http.get.return_value = make_response(401, text="ERROR_APP_TOKEN_PARAMETERS_MISSING")
    client = make_client(http)

    with pytest.raises(RemoteAuthError) as excinfo:
        client.init_session()
    assert excinfo.value.status == 401
    assert "ERROR_APP_TOKEN_PARAMETERS_MISSING" in excinfo.value.message


def test_init_session_timeout_raises_timeout_error():
    http = Mock()
    http.get.side_effect = requests.Timeout("timed out")
    client = make_client(http)

    with pytest.raises(RemoteTimeoutError):
        client.init_session()


def test_kill_session_clears_cache():
    http = Mock()
    http.get.side_effect = [session_response("tok-1"), make_response(200, [])]
    client = make_client(http)
    client.get_session_token()

    client.kill_session()

    assert http.get.call_args_list[1].args[0].endswith("/killSession")
    assert client.session_store.current is None


# --- Reintento ante 401 ---

def test_401_triggers_single_reauth_and_retry_with_same_params():
    """
    GIVEN una sesión cacheada que GLPI ya no acepta
    WHEN se piden tickets
    THEN se invalida la caché una vez y se reintenta con los mismos parámetros
    """
    http = Mock()
    http.get.side_effect = [
        session_response("old"),
        make_response(401, text="ERROR_SESSION_TOKEN_INVALID"),
        session_response("new"),
        make_response(200, [glpi_ticket(2001)]),
    ]
    client = make_client(http)

    tickets = client.get_tickets(ticket_range="21-40", order="ASC", search_text="impresora")

    assert [t["id"] for t in tickets] == [2001]
    assert http.get.call_count == 4
    first_try, retry = http.get.call_args_list[1], http.get.call_args_list[3]
    assert first_try.kwargs["params"] == retry.kwargs["params"] == {
        "range": "21-40", "order": "ASC", "searchText": "impresora"
    }
    assert retry.kwargs["headers"]["Session-Token"] == "new"


def test_second_consecutive_401_does_not_retry_again():
    http = Mock()
    http.get.side_effect = [
        session_response("a"),
        make_response(401),
        session_response("b"),
        make_response(401),
    ]
    client = make_client(http)

    assert client.get_tickets() == []
    assert http.get.call_count == 4


def test_get_tickets_swallows_server_errors():
    http = Mock()
    http.get.side_effect = [session_response(), make_response(500, text="boom")]
    client = make_client(http)

    assert client.get_tickets() == []


def test_get_tickets_swallows_network_errors():
    http = Mock()
    http.get.side_effect = [session_response(), requests.ConnectionError("refused"), requests.ConnectionError("refused")]
    client = make_client(http)

    assert client.get_tickets() == []
    assert client.get_last_ticket() == 0


def test_get_last_ticket_returns_highest_id():
    http = Mock()
    http.get.side_effect = [session_response(), make_response(200, [glpi_ticket(3500)])]
    client = make_client(http)

    assert client.get_last_ticket() == 3500
    assert http.get.call_args_list[1].kwargs["params"] == {"range": "0-0", "order": "DESC"}


# --- Detalle y followups ---

def test_lookup_ticket_detail_distinguishes_not_found_from_unavailable():
    http = Mock()
    http.get.side_effect = [session_response(), make_response(404), make_response(503)]
    client = make_client(http)

    assert client.lookup_ticket_detail(9999).status == RemoteLookup.NOT_FOUND
    assert client.lookup_ticket_detail(9999).status == RemoteLookup.UNAVAILABLE


def test_get_ticket_detail_found():
    http = Mock()
    http.get.side_effect = [session_response(), make_response(200, glpi_ticket(2500, name="VPN caída"))]
    client = make_client(http)

    ticket = client.get_ticket_detail(2500)

    assert ticket["title"] == "VPN caída"
    assert ticket["glpi_data"]["users_id_lastupdater"] == 7
    assert http.get.call_args_list[1].args[0].endswith("/Ticket/2500")


def test_get_ticket_followups_decodes_content():
    http = Mock()
    http.get.side_effect = [
        session_response(),
        make_response(200, [{"id": 1, "content": "&lt;p&gt;Reiniciado&lt;/p&gt;", "users_id": 2}]),
        make_response(404),
    ]
    client = make_client(http)

    followups = client.get_ticket_followups(2500)
    assert followups[0]["content"] == "Reiniciado"
    assert client.get_ticket_followups(2501) == []
