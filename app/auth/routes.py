from flask import jsonify, g
from flask_login import login_user, logout_user, login_required, current_user
from flask_wtf.csrf import generate_csrf
import logging

from app import limiter
from app.auth import auth_bp
from app.auth.forms import RegistrationForm, LoginForm, ProfileForm
from app.auth.models import Persona
from app.auth.policy import get_or_create_profile, get_current_caller, ROLE_ADMIN
from app.exceptions import AccessDeniedError, ConflictError, RequestValidationError
from app.models import profile_to_json
from app.repositories import MongoUserRepository, MongoProfileRepository
from app.utils import get_json_payload

logger = logging.getLogger(__name__)


@auth_bp.route("/csrf-token", methods=["GET"])
def csrf_token():
    return jsonify({"csrfToken": generate_csrf()})


@auth_bp.route("/register", methods=["POST"])
def register():
    get_json_payload()
    form = RegistrationForm()
    if not form.validate_on_submit():
        raise RequestValidationError.from_form(form)

    users = MongoUserRepository()
    email = form.email.data.strip().lower()
    if users.find_by_email(email):
        raise ConflictError("Este correo electrónico ya está registrado.")

    user = Persona(
        email=email,
        firstName=form.firstName.data,
        lastName=form.lastName.data,
        password=form.password.data,
    )
    user_data = users.add(user.to_document())
    user = Persona.from_document(user_data)
    get_or_create_profile(user.id)

    login_user(user)
    logger.info(f"Nuevo usuario registrado: {user.email}")
    return jsonify(user.to_json()), 201


@auth_bp.route("/login", methods=["POST"])
@limiter.limit("10 per minute")
def login():
    get_json_payload()
    form = LoginForm()
    if not form.validate_on_submit():
        raise RequestValidationError.from_form(form)

    user_data = MongoUserRepository().find_by_email(form.email.data.strip().lower())
    if user_data:
        user = Persona.from_document(user_data)
        if user.check_password(form.password.data):
            login_user(user, remember=form.remember_me.data)
            logger.info(f"Usuario {user.email} ha iniciado sesión.")
            return jsonify({"message": "Sesión iniciada.", "user": user.to_json()})

    logger.warning(f"Intento de inicio de sesión fallido para: {form.email.data}")
    return jsonify({"message": "Correo electrónico o contraseña inválidos."}), 401


@auth_bp.route("/logout", methods=["POST"])
@login_required
def logout():
    logger.info(f"Usuario {current_user.email} ha cerrado sesión.")
    logout_user()
    return jsonify({"message": "Has cerrado sesión."})


@auth_bp.route("/auth/user", methods=["GET"])
@login_required
def get_current_user():
    return jsonify(current_user.to_json())


@auth_bp.route("/profile", methods=["GET"])
@login_required
def get_profile():
    profile = get_or_create_profile(current_user.id)
    return jsonify(profile_to_json(profile))


@auth_bp.route("/profile", methods=["PATCH"])
@login_required
def update_profile():
    payload = get_json_payload()
    form = ProfileForm()
    if not form.validate_on_submit():
        raise RequestValidationError.from_form(form)

    caller = get_current_caller()
    updates = {}
    if "role" in payload and form.role.data != caller.role:
        # Solo un administrador puede cambiar roles; nadie se asciende a sí mismo
        if caller.role != ROLE_ADMIN:
            raise AccessDeniedError("No tienes permiso para cambiar tu rol.")
        updates["role"] = form.role.data
    if "preferences" in payload and form.preferences.data is not None:
        updates["preferences"] = form.preferences.data

    if not updates:
        return jsonify(profile_to_json(get_or_create_profile(caller.user_id)))

    profile = MongoProfileRepository().update(caller.user_id, updates)
    g.pop("caller", None)
    logger.info(f"Perfil de {caller.user_id} actualizado: {sorted(updates)}")
    return jsonify(profile_to_json(profile))
