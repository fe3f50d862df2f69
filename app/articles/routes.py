from flask import jsonify
import logging

from app.articles import articles_bp
from app.articles.forms import ArticleForm
from app.auth.decorators import agent_or_admin_required
from app.auth.policy import get_current_caller
from app.exceptions import RequestValidationError
from app.models import article_to_json
from app.repositories import MongoArticleRepository
from app.utils import get_json_payload, utcnow

logger = logging.getLogger(__name__)


@articles_bp.route('', methods=['GET'])
def list_articles():
    articles = MongoArticleRepository().find_all()
    return jsonify([article_to_json(a) for a in articles])


@articles_bp.route('', methods=['POST'])
@agent_or_admin_required
def create_article():
    payload = get_json_payload()
    form = ArticleForm()
    if not form.validate_on_submit():
        raise RequestValidationError.from_form(form)

    now = utcnow()
    article = MongoArticleRepository().add({
        "title": form.title.data.strip(),
        "content": form.content.data,
        "author_id": get_current_caller().user_id,
        # Sin 'isPublic' en el cuerpo el artículo es público
        "is_public": form.isPublic.data if "isPublic" in payload else True,
        "tags": form.tags.data or [],
        "created_at": now,
        "updated_at": now,
    })
    logger.info(f"Artículo {article['_id']} creado por {article['author_id']}")
    return jsonify(article_to_json(article)), 201
