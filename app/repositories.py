from app import mongo
from app.utils import utcnow
from bson.objectid import ObjectId
from bson.errors import InvalidId
from pymongo import ASCENDING, DESCENDING, ReturnDocument

# -----------------------------------------------
# INTERFACES DE REPOSITORIO
# -----------------------------------------------

class UserRepository:
    """Define el contrato para operaciones de datos de usuario."""
    def find_by_id(self, user_id):
        raise NotImplementedError

    def find_by_ids(self, user_ids):
        raise NotImplementedError

    def find_by_email(self, email):
        raise NotImplementedError

    def add(self, user_data):
        raise NotImplementedError

    def delete(self, user_id):
        raise NotImplementedError

class ProfileRepository:
    """Define el contrato para operaciones de datos de perfiles (rol del usuario)."""
    def find_by_user_id(self, user_id):
        raise NotImplementedError

    def create(self, user_id, role="customer"):
        raise NotImplementedError

    def update(self, user_id, updates):
        raise NotImplementedError

    def find_by_role(self, role):
        raise NotImplementedError

    def delete_by_user_id(self, user_id):
        raise NotImplementedError

class TicketRepository:
    """Define el contrato para operaciones de datos de tickets."""
    def find_all(self, filters=None):
        raise NotImplementedError

    def find_by_id(self, ticket_id):
        raise NotImplementedError

    def add(self, ticket):
        raise NotImplementedError

    def update(self, ticket_id, updates):
        raise NotImplementedError

class TicketMessageRepository:
    """Define el contrato para operaciones de datos de mensajes de tickets."""
    def find_by_ticket_id(self, ticket_id):
        raise NotImplementedError

    def add(self, message):
        raise NotImplementedError

class ArticleRepository:
    """Define el contrato para la base de conocimiento."""
    def find_all(self):
        raise NotImplementedError

    def add(self, article):
        raise NotImplementedError

# -----------------------------------------------
# IMPLEMENTACIONES MONGODB
# -----------------------------------------------

# Filtros de listado aceptados (clave del filtro -> campo del documento)
TICKET_FILTER_FIELDS = {
    "status": "status",
    "priority": "priority",
    "customer_id": "customer_id",
    "assigned_to_id": "assigned_to_id",
}


def next_sequence(name):
    """Ids enteros autoincrementales, uno por colección, guardados en 'counters'."""
    counter = mongo.db.counters.find_one_and_update(
        {"_id": name},
        {"$inc": {"seq": 1}},
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )
    return counter["seq"]


def _to_object_id(user_id):
    try:
        return ObjectId(user_id)
    except (InvalidId, TypeError):
        return None


class MongoUserRepository(UserRepository):
    """Usuarios en la colección 'users'. El `_id` es un ObjectId; la API usa su forma string."""
    def find_by_id(self, user_id):
        object_id = _to_object_id(user_id)
        if object_id is None:
            return None
        return mongo.db.users.find_one({"_id": object_id})

    def find_by_ids(self, user_ids):
        object_ids = [oid for oid in (_to_object_id(u) for u in user_ids) if oid is not None]
        return list(mongo.db.users.find({"_id": {"$in": object_ids}}))

    def find_by_email(self, email):
        return mongo.db.users.find_one({"email": email})

    def add(self, user_data):
        result = mongo.db.users.insert_one(user_data)
        user_data["_id"] = result.inserted_id
        return user_data

    def delete(self, user_id):
        object_id = _to_object_id(user_id)
        if object_id is None:
            return False
        return mongo.db.users.delete_one({"_id": object_id}).deleted_count == 1

class MongoProfileRepository(ProfileRepository):
    def find_by_user_id(self, user_id):
        return mongo.db.profiles.find_one({"user_id": user_id})

    def create(self, user_id, role="customer"):
        profile = {"user_id": user_id, "role": role, "preferences": {}}
        mongo.db.profiles.insert_one(profile)
        return profile

    def update(self, user_id, updates):
        return mongo.db.profiles.find_one_and_update(
            {"user_id": user_id},
            {"$set": updates},
            return_document=ReturnDocument.AFTER,
        )

    def find_by_role(self, role):
        return list(mongo.db.profiles.find({"role": role}))

    def delete_by_user_id(self, user_id):
        mongo.db.profiles.delete_one({"user_id": user_id})

class MongoTicketRepository(TicketRepository):
    """Implementación concreta del repositorio de tickets para MongoDB."""
    def find_all(self, filters=None):
        query = {}
        for key, field in TICKET_FILTER_FIELDS.items():
            value = (filters or {}).get(key)
            if value:
                query[field] = value
        return list(mongo.db.tickets.find(query).sort("created_at", DESCENDING))

    def find_by_id(self, ticket_id):
        return mongo.db.tickets.find_one({"_id": ticket_id})

    def add(self, ticket):
        ticket["_id"] = next_sequence("tickets")
        mongo.db.tickets.insert_one(ticket)
        return ticket

    def update(self, ticket_id, updates):
        updates = dict(updates, updated_at=utcnow())
        return mongo.db.tickets.find_one_and_update(
            {"_id": ticket_id},
            {"$set": updates},
            return_document=ReturnDocument.AFTER,
        )

class MongoTicketMessageRepository(TicketMessageRepository):
    def find_by_ticket_id(self, ticket_id):
        return list(
            mongo.db.ticket_messages.find({"ticket_id": ticket_id}).sort(
                [("created_at", ASCENDING), ("_id", ASCENDING)]
            )
        )

    def add(self, message):
        message["_id"] = next_sequence("ticket_messages")
        mongo.db.ticket_messages.insert_one(message)
        return message

class MongoArticleRepository(ArticleRepository):
    def find_all(self):
        return list(mongo.db.articles.find().sort("created_at", DESCENDING))

    def add(self, article):
        article["_id"] = next_sequence("articles")
        mongo.db.articles.insert_one(article)
        return article


def create_indexes():
    """Índices usados por los filtros de listado y las restricciones de unicidad."""
    mongo.db.users.create_index("email", unique=True)
    mongo.db.profiles.create_index("user_id", unique=True)
    mongo.db.profiles.create_index("role")
    mongo.db.tickets.create_index([("created_at", DESCENDING)])
    for field in ("status", "priority", "customer_id", "assigned_to_id"):
        mongo.db.tickets.create_index(field)
    mongo.db.ticket_messages.create_index([("ticket_id", ASCENDING), ("created_at", ASCENDING)])
