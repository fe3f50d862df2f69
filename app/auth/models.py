# app/auth/models.py

from werkzeug.security import generate_password_hash, check_password_hash
from flask_login import UserMixin

from app.utils import utcnow


class Persona(UserMixin):
    """
    Usuario autenticado. El rol no vive aquí sino en su perfil
    (colección 'profiles'), ver app.auth.policy.
    """
    def __init__(self, email, firstName="", lastName="", password="", _id=None, password_hash=None,
                 created_at=None, **kwargs):
        self.email = email
        self.firstName = firstName or ""
        self.lastName = lastName or ""
        self.created_at = created_at or utcnow()

        # Flask-Login requiere que el atributo 'id' sea un string.
        self.id = str(_id) if _id else None

        if password_hash:
            self.password_hash = password_hash
        elif password:
            self.set_password(password)
        else:
            self.password_hash = None

    @classmethod
    def from_document(cls, document):
        return cls(**document)

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        if self.password_hash:
            return check_password_hash(self.password_hash, password)
        return False

    # get_id es requerido por Flask-Login
    def get_id(self):
        return self.id

    def to_document(self):
        """Documento para insertar en 'users' (sin `_id`, lo asigna MongoDB)."""
        return {
            "email": self.email,
            "firstName": self.firstName,
            "lastName": self.lastName,
            "password_hash": self.password_hash,
            "created_at": self.created_at,
        }

    def to_json(self):
        """Representación pública: nunca incluye el hash de la contraseña."""
        return {
            "id": self.id,
            "email": self.email,
            "firstName": self.firstName,
            "lastName": self.lastName,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Persona {self.email}>"
