from flask import jsonify, request
from flask_login import login_required
import logging

from app.auth.policy import get_current_caller
from app.exceptions import RequestValidationError
from app.tickets import tickets_bp
from app.tickets.forms import (
    MessageForm,
    TicketCreateForm,
    TicketDetailQueryForm,
    TicketListQueryForm,
    TicketUpdateForm,
)
from app.tickets.service import get_ticket_service
from app.utils import get_json_payload

logger = logging.getLogger(__name__)


def _source_param():
    form = TicketDetailQueryForm(formdata=request.args)
    if not form.validate():
        raise RequestValidationError.from_form(form)
    return form.source.data or None


@tickets_bp.route('', methods=['GET'])
@login_required
def list_tickets():
    form = TicketListQueryForm(formdata=request.args)
    if not form.validate():
        raise RequestValidationError.from_form(form)

    envelope = get_ticket_service().list_tickets(
        get_current_caller(),
        status=form.status.data or None,
        priority=form.priority.data or None,
        assigned_to_me=form.assignedToMe.data,
        ticket_range=form.range.data or None,
        order=form.order.data or None,
        search_text=form.searchText.data or None,
    )
    return jsonify(envelope)


@tickets_bp.route('', methods=['POST'])
@login_required
def create_ticket():
    get_json_payload()
    form = TicketCreateForm()
    if not form.validate_on_submit():
        raise RequestValidationError.from_form(form)

    ticket = get_ticket_service().create_ticket(
        get_current_caller(),
        title=form.title.data.strip(),
        description=form.description.data,
        status=form.status.data or None,
        priority=form.priority.data or None,
        category=form.category.data or None,
        channel=form.channel.data or None,
        assigned_to_id=form.assignedToId.data or None,
        tags=form.tags.data,
    )
    return jsonify(ticket), 201


@tickets_bp.route('/<int:ticket_id>', methods=['GET'])
@login_required
def get_ticket(ticket_id):
    detail = get_ticket_service().get_ticket_detail(get_current_caller(), ticket_id, source=_source_param())
    return jsonify(detail)


@tickets_bp.route('/<int:ticket_id>', methods=['PATCH'])
@login_required
def update_ticket(ticket_id):
    payload = get_json_payload()
    form = TicketUpdateForm()
    if not form.validate_on_submit():
        raise RequestValidationError.from_form(form)

    # Solo los campos presentes en el cuerpo, con el valor ya validado
    changes = {name: form[name].data for name in payload if name in form}
    if "assignedToId" in changes:
        changes["assignedToId"] = changes["assignedToId"] or None
    if "customerId" in payload:
        changes["customerId"] = payload["customerId"]

    ticket = get_ticket_service().update_ticket(get_current_caller(), ticket_id, changes, source=_source_param())
    return jsonify(ticket)


@tickets_bp.route('/<int:ticket_id>/messages', methods=['POST'])
@login_required
def create_message(ticket_id):
    get_json_payload()
    form = MessageForm()
    if not form.validate_on_submit():
        raise RequestValidationError.from_form(form)

    message = get_ticket_service().add_message(
        get_current_caller(),
        ticket_id,
        content=form.content.data,
        message_type=form.type.data or None,
        source=_source_param(),
    )
    return jsonify(message), 201
