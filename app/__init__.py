# app/__init__.py

from flask import Flask, jsonify, request, current_app
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_login import LoginManager
from flask_pymongo import PyMongo
from flask_wtf.csrf import CSRFProtect, CSRFError
from pymongo.errors import ConnectionFailure, ConfigurationError
from werkzeug.exceptions import HTTPException
import logging
from logging.handlers import RotatingFileHandler
from config import DevelopmentConfig, ProductionConfig, TestingConfig
import os
import sys
import time

# --- Instancias de Extensiones ---
login_manager = LoginManager()
mongo = PyMongo()
csrf = CSRFProtect()
limiter = Limiter(key_func=get_remote_address)


# --- Funciones Auxiliares para Modularizar la Configuración ---

def init_app_extensions(app):
    """
    Inicializa las extensiones de Flask, la conexión a la BD y el cliente GLPI.
    """
    csrf.init_app(app)
    limiter.init_app(app)

    mongo_uri = app.config.get("MONGO_URI")
    if not mongo_uri:
        raise RuntimeError("FATAL: La variable de entorno MONGO_URI no está configurada.")

    app.logger.info("Intentando conectar a MongoDB...")

    try:
        mongo.init_app(
            app,
            maxPoolSize=app.config["MONGO_MAX_POOL_SIZE"],
            maxIdleTimeMS=app.config["MONGO_MAX_IDLE_TIME_MS"],
            connectTimeoutMS=app.config["MONGO_CONNECT_TIMEOUT_MS"],
        )
        mongo.cx.server_info() # Fuerza la conexión para verificarla
        app.logger.info("Conexión a MongoDB establecida exitosamente.")
    except (ConnectionFailure, ConfigurationError) as e:
        app.logger.error(f"Error al conectar o configurar MongoDB: {e}")
        raise RuntimeError(f"No se pudo conectar a la base de datos: {e}")

    login_manager.init_app(app)

    from app.auth.models import Persona
    from app.repositories import MongoUserRepository

    @login_manager.user_loader
    def load_user(user_id):
        try:
            user_data = MongoUserRepository().find_by_id(user_id)
            if user_data:
                return Persona.from_document(user_data)
        except Exception as e:
            app.logger.error(f"Error en load_user para user_id {user_id}: {e}")
        return None

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({"message": "Unauthorized"}), 401

    from app.glpi_client import GLPIClient
    from app.ai.advisor import AIAdvisor
    app.extensions["glpi_client"] = GLPIClient.from_config(app.config)
    app.extensions["ai_advisor"] = AIAdvisor.from_config(app.config)

def register_app_blueprints(app):
    """
    Registra todos los Blueprints de la aplicación.
    """
    from app.main import main_bp
    app.register_blueprint(main_bp, url_prefix='/api')

    from app.auth import auth_bp
    app.register_blueprint(auth_bp, url_prefix='/api')

    from app.tickets import tickets_bp
    app.register_blueprint(tickets_bp, url_prefix='/api/tickets')

    from app.ai import ai_bp
    app.register_blueprint(ai_bp, url_prefix='/api/ai')

    from app.admin import admin_bp
    app.register_blueprint(admin_bp, url_prefix='/api/technicians')

    from app.articles import articles_bp
    app.register_blueprint(articles_bp, url_prefix='/api/articles')

    from app.reports import reports_bp
    app.register_blueprint(reports_bp, url_prefix='/api/reports')

def configure_app_logging(app):
    """
    Configura el sistema de logging de la aplicación.
    """
    if not os.path.exists("logs"):
        os.mkdir("logs")

    for handler in app.logger.handlers[:]:
        app.logger.removeHandler(handler)

    file_handler = RotatingFileHandler("logs/app.log", maxBytes=10240, backupCount=10)
    file_handler.setFormatter(logging.Formatter(
        '%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]'))

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(logging.Formatter('%(levelname)s: %(message)s'))

    level = logging.DEBUG if (app.debug or app.testing) else logging.INFO
    file_handler.setLevel(level)
    stream_handler.setLevel(level)
    app.logger.setLevel(level)

    app.logger.addHandler(file_handler)
    app.logger.addHandler(stream_handler)

    # Los loggers de los módulos (logging.getLogger(__name__)) cuelgan de 'app'
    package_logger = logging.getLogger("app")
    package_logger.setLevel(level)
    if not package_logger.handlers:
        package_logger.addHandler(file_handler)
        package_logger.addHandler(stream_handler)
    package_logger.propagate = False

    app.logger.info("Logging inicializado")

def register_request_logging(app):
    """Registra en el log cada petición a /api con su estado y duración."""
    @app.before_request
    def start_timer():
        request.environ["app.started_at"] = time.monotonic()

    @app.after_request
    def log_api_request(response):
        if request.path.startswith("/api"):
            started = request.environ.get("app.started_at")
            duration_ms = int((time.monotonic() - started) * 1000) if started else 0
            app.logger.info(f"{request.method} {request.path} {response.status_code} in {duration_ms}ms")
        return response

def register_app_error_handlers(app):
    """
    Registra los manejadores de errores globales. Todas las respuestas de error son JSON.
    """
    from app.exceptions import BaseAppException

    @app.errorhandler(BaseAppException)
    def app_exception(error):
        if error.status_code >= 500:
            current_app.logger.error(f"{type(error).__name__}: {error.message}", exc_info=error.original_exception)
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(CSRFError)
    def csrf_error(error):
        return jsonify({"message": error.description}), 400

    @app.errorhandler(400)
    def bad_request_error(error):
        return jsonify({"message": "Bad Request"}), 400

    @app.errorhandler(401)
    def unauthorized_error(error):
        return jsonify({"message": "Unauthorized"}), 401

    @app.errorhandler(403)
    def forbidden_access(error):
        return jsonify({"message": "Forbidden"}), 403

    @app.errorhandler(404)
    def page_not_found_error(error):
        return jsonify({"message": "Not Found"}), 404

    @app.errorhandler(405)
    def method_not_allowed_error(error):
        return jsonify({"message": "Method Not Allowed"}), 405

    @app.errorhandler(429)
    def too_many_requests_error(error):
        return jsonify({"message": "Too Many Requests"}), 429

    @app.errorhandler(500)
    def internal_server_error(error):
        current_app.logger.error(f"Internal Server Error: {error}", exc_info=True)
        return jsonify({"message": "Internal Server Error"}), 500

    @app.errorhandler(Exception)
    def unhandled_exception(error):
        if isinstance(error, HTTPException):
            return jsonify({"message": error.description}), error.code
        current_app.logger.error(f"Error inesperado: {error}", exc_info=True)
        if current_app.config.get("ENV_NAME") == "production":
            return jsonify({"message": "Internal Server Error"}), 500
        return jsonify({"message": "Internal Server Error", "error": str(error)}), 500

# --- Función de Fábrica de Aplicación (create_app) ---
def create_app(config_class="development"):
    """
    Función de fábrica para crear y configurar la instancia de la aplicación Flask.
    """
    app = Flask(__name__)

    config_map = {
        'testing': TestingConfig,
        'production': ProductionConfig,
        'development': DevelopmentConfig
    }
    app.config.from_object(config_map.get(config_class, DevelopmentConfig))
    app.config["ENV_NAME"] = config_class if config_class in config_map else "development"

    configure_app_logging(app)
    init_app_extensions(app)
    register_app_blueprints(app)
    register_request_logging(app)
    register_app_error_handlers(app)

    from app import commands as commands
    app.cli.add_command(commands.init_db_command)
    app.cli.add_command(commands.glpi_check_command)

    return app
