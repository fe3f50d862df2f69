from flask import jsonify
from flask_login import login_required
import logging

from app.ai import ai_bp
from app.ai.advisor import get_ai_advisor
from app.auth.policy import get_current_caller, is_remote_request
from app.exceptions import RequestValidationError
from app.models import SOURCE_LOCAL
from app.tickets.forms import TicketReferenceForm
from app.tickets.service import get_ticket_service
from app.utils import get_json_payload

logger = logging.getLogger(__name__)


def _ticket_reference():
    get_json_payload()
    form = TicketReferenceForm()
    if not form.validate_on_submit():
        raise RequestValidationError.from_form(form)
    return form.ticketId.data, form.source.data or None


@ai_bp.route('/suggest', methods=['POST'])
@login_required
def suggest_response():
    ticket_id, source = _ticket_reference()
    if is_remote_request(ticket_id, source):
        raise RequestValidationError("Las sugerencias solo están disponibles para tickets locales.", field="ticketId")

    ticket, messages = get_ticket_service().get_ticket(get_current_caller(), ticket_id, source=SOURCE_LOCAL)
    suggestion = get_ai_advisor().suggest_response(ticket, messages)
    logger.info(f"[AI] Sugerencia generada para el ticket {ticket_id}")
    return jsonify({"suggestion": suggestion})


@ai_bp.route('/analyze-ticket', methods=['POST'])
@login_required
def analyze_ticket():
    ticket_id, source = _ticket_reference()
    ticket, messages = get_ticket_service().get_ticket(get_current_caller(), ticket_id, source=source)
    analysis = get_ai_advisor().analyze_ticket(ticket, messages)
    logger.info(f"[AI] Análisis generado para el ticket {ticket_id} (categoría: {analysis['category']})")
    return jsonify(analysis)
