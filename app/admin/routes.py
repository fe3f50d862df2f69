from flask import jsonify
from flask_login import login_required
import logging

from app.admin import admin_bp
from app.admin.forms import TechnicianForm
from app.auth.decorators import admin_required
from app.auth.models import Persona
from app.auth.policy import get_current_caller, ROLE_AGENT
from app.exceptions import ConflictError, RequestValidationError, ResourceNotFoundError
from app.repositories import MongoUserRepository, MongoProfileRepository
from app.utils import get_json_payload

logger = logging.getLogger(__name__)


@admin_bp.route('', methods=['GET'])
@login_required
def list_technicians():
    profiles = MongoProfileRepository().find_by_role(ROLE_AGENT)
    users = MongoUserRepository().find_by_ids([p["user_id"] for p in profiles])
    technicians = sorted(
        (Persona.from_document(u).to_json() for u in users),
        key=lambda t: (t["firstName"].lower(), t["lastName"].lower(), t["email"]),
    )
    return jsonify(technicians)


@admin_bp.route('', methods=['POST'])
@admin_required
def create_technician():
    get_json_payload()
    form = TechnicianForm()
    if not form.validate_on_submit():
        raise RequestValidationError.from_form(form)

    users = MongoUserRepository()
    email = form.email.data.strip().lower()
    if users.find_by_email(email):
        raise ConflictError("Este correo electrónico ya está registrado.")

    technician = Persona(
        email=email,
        firstName=form.firstName.data,
        lastName=form.lastName.data,
        password=form.password.data,
    )
    technician = Persona.from_document(users.add(technician.to_document()))
    MongoProfileRepository().create(technician.id, role=ROLE_AGENT)

    logger.info(f"Administrador {get_current_caller().user_id} creó el técnico {technician.email}.")
    return jsonify(technician.to_json()), 201


@admin_bp.route('/<string:user_id>', methods=['DELETE'])
@admin_required
def delete_technician(user_id):
    profiles = MongoProfileRepository()
    profile = profiles.find_by_user_id(user_id)
    if not profile or profile.get("role") != ROLE_AGENT:
        raise ResourceNotFoundError("Técnico no encontrado.")

    profiles.delete_by_user_id(user_id)
    MongoUserRepository().delete(user_id)

    logger.info(f"Administrador {get_current_caller().user_id} eliminó el técnico {user_id}.")
    return '', 204
