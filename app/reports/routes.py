from flask import Response, jsonify, request
from flask_login import login_required
from datetime import datetime
from io import BytesIO
from openpyxl import Workbook
import logging

from app.auth.decorators import agent_or_admin_required
from app.auth.policy import get_current_caller
from app.exceptions import RequestValidationError
from app.models import TICKET_PRIORITIES, TICKET_STATUSES, SOURCE_GLPI, SOURCE_LOCAL
from app.reports import reports_bp
from app.tickets.forms import TicketListQueryForm
from app.tickets.service import get_ticket_service

logger = logging.getLogger(__name__)

XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _merged_tickets():
    """Listado combinado del usuario con los mismos filtros que GET /api/tickets."""
    form = TicketListQueryForm(formdata=request.args)
    if not form.validate():
        raise RequestValidationError.from_form(form)
    tickets, _, _ = get_ticket_service().fetch_merged(
        get_current_caller(),
        status=form.status.data or None,
        priority=form.priority.data or None,
        assigned_to_me=form.assignedToMe.data,
        ticket_range=form.range.data or None,
        order=form.order.data or None,
        search_text=form.searchText.data or None,
    )
    return tickets


def _count_by(tickets, field, values):
    counts = dict.fromkeys(values, 0)
    for ticket in tickets:
        value = ticket.get(field)
        counts[value] = counts.get(value, 0) + 1
    return counts


@reports_bp.route('/summary', methods=['GET'])
@login_required
def summary():
    tickets = _merged_tickets()
    return jsonify({
        "total": len(tickets),
        "byStatus": _count_by(tickets, "status", TICKET_STATUSES),
        "byPriority": _count_by(tickets, "priority", TICKET_PRIORITIES),
        "bySource": _count_by(tickets, "source", (SOURCE_LOCAL, SOURCE_GLPI)),
    })


@reports_bp.route('/export', methods=['GET'])
@agent_or_admin_required
def export_tickets_to_xlsx():
    tickets = _merged_tickets()

    workbook = Workbook()
    worksheet = workbook.active
    worksheet.title = "Tickets"

    headers = ['ID', 'Origen', 'Título', 'Estado', 'Prioridad', 'Categoría', 'Canal', 'Cliente', 'Asignado a', 'Fecha Creación']
    worksheet.append(headers)

    for ticket in tickets:
        row_data = [
            ticket.get('_id', ticket.get('id')),
            ticket.get('source', SOURCE_LOCAL),
            ticket.get('title', 'N/A'),
            ticket.get('status', 'N/A'),
            ticket.get('priority', 'N/A'),
            ticket.get('category') or 'N/A',
            ticket.get('channel') or 'N/A',
            ticket.get('customer_id') or 'N/A',
            ticket.get('assigned_to_id') or 'N/A',
            ticket.get('created_at').strftime('%d/%m/%Y %H:%M') if ticket.get('created_at') else 'N/A'
        ]
        worksheet.append(row_data)

    output = BytesIO()
    workbook.save(output)
    output.seek(0)

    logger.info(f'Usuario {get_current_caller().user_id} ha generado un reporte de tickets en ".xlsx" con {len(tickets)} tickets.')

    return Response(
        output.read(),
        mimetype=XLSX_MIMETYPE,
        headers={"Content-Disposition": f"attachment;filename=tickets_{datetime.now().strftime('%Y%m%d_%H%M%S')}.xlsx"}
    )
