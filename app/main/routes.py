# app/main/routes.py
from flask import jsonify
from flask_login import current_user
from pymongo.errors import PyMongoError
import logging

from app import mongo
from app.glpi_client import get_glpi_client
from app.main import main_bp

logger = logging.getLogger(__name__)


@main_bp.route('/')
@main_bp.route('/health')
def health():
    try:
        mongo.cx.server_info()
        database = "ok"
    except PyMongoError as e:
        logger.error(f"Health check: MongoDB no responde: {e}")
        database = "unavailable"

    return jsonify({
        "status": "ok" if database == "ok" else "degraded",
        "database": database,
        "glpi": {"configured": get_glpi_client().is_configured()},
        "authenticated": current_user.is_authenticated,
    }), 200 if database == "ok" else 503
