from test.conftest import create_user


def test_list_technicians_sorted_by_name(customer_client, seed_agent, db):
    create_user(db, "zeta@example.com", role="agent", first_name="Alberto", last_name="Zeta")
    create_user(db, "admin2@example.com", role="admin", first_name="Aaron", last_name="Admin")

    response = customer_client.get("/api/technicians")

    assert response.status_code == 200
    technicians = response.get_json()
    assert [t["email"] for t in technicians] == ["zeta@example.com", "agent@example.com"]
    assert all("password_hash" not in t for t in technicians)


def test_list_technicians_requires_login(client, db):
    assert client.get("/api/technicians").status_code == 401


def test_admin_creates_technician(admin_client, db):
    """
    GIVEN un administrador
    WHEN da de alta un técnico
    THEN se crea el usuario con perfil 'agent' y puede iniciar sesión
    """
    response = admin_client.post("/api/technicians", json={
        "email": "Tecnico@Empresa.com",
        "password": "secreto1",
        "firstName": "Tomás",
        "lastName": "Técnico",
    })

    assert response.status_code == 201
    technician = response.get_json()
    assert technician["email"] == "tecnico@empresa.com"
    assert db.db.profiles.find_one({"user_id": technician["id"]})["role"] == "agent"

    response = admin_client.post("/api/technicians", json={"email": "tecnico@empresa.com", "password": "secreto1"})
    assert response.status_code == 409


def test_only_admins_manage_technicians(agent_client, customer_client, seed_agent):
    payload = {"email": "nuevo@empresa.com", "password": "secreto1"}

    assert agent_client.post("/api/technicians", json=payload).status_code == 403
    assert customer_client.post("/api/technicians", json=payload).status_code == 403
    assert agent_client.delete(f"/api/technicians/{seed_agent['_id']}").status_code == 403


def test_admin_deletes_technician(admin_client, seed_agent, seed_other_customer, db):
    agent_id = str(seed_agent["_id"])

    response = admin_client.delete(f"/api/technicians/{agent_id}")

    assert response.status_code == 204
    assert db.db.users.find_one({"_id": seed_agent["_id"]}) is None
    assert db.db.profiles.find_one({"user_id": agent_id}) is None

    # Solo se eliminan técnicos
    assert admin_client.delete(f"/api/technicians/{agent_id}").status_code == 404
    assert admin_client.delete(f"/api/technicians/{seed_other_customer['_id']}").status_code == 404
    assert db.db.users.find_one({"_id": seed_other_customer["_id"]}) is not None
