from datetime import datetime

from bson import ObjectId

from app.auth.models import Persona


def test_password_is_hashed():
    user = Persona(email="ana@example.com", password="secreto1")

    assert user.password_hash != "secreto1"
    assert user.check_password("secreto1") is True
    assert user.check_password("otra") is False


def test_user_without_password_never_authenticates():
    assert Persona(email="ana@example.com").check_password("") is False


def test_from_document_and_public_json():
    """
    GIVEN un documento de la colección 'users'
    WHEN se construye el usuario y se serializa
    THEN el id es el ObjectId como string y el JSON no expone el hash
    """
    object_id = ObjectId()
    user = Persona.from_document({
        "_id": object_id,
        "email": "ana@example.com",
        "firstName": "Ana",
        "lastName": "López",
        "password_hash": "hash",
        "created_at": datetime(2024, 5, 1, 8, 0, 0),
    })

    assert user.get_id() == str(object_id)
    assert user.to_json() == {
        "id": str(object_id),
        "email": "ana@example.com",
        "firstName": "Ana",
        "lastName": "López",
        "createdAt": "2024-05-01T08:00:00",
    }
    assert user.to_document()["password_hash"] == "hash"
    assert "_id" not in user.to_document()
