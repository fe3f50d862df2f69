from flask_wtf import FlaskForm
from wtforms import Field, StringField, TextAreaField, BooleanField, IntegerField
from wtforms.validators import DataRequired, Length, Optional, AnyOf, ValidationError, Regexp

from app.models import TICKET_STATUSES, TICKET_PRIORITIES, TICKET_CHANNELS, MESSAGE_TYPES
from app.utils import is_text


class TagListField(Field):
    """
    Lista ordenada de etiquetas. Acepta una lista JSON (cada elemento llega como
    un valor del campo) o una cadena separada por comas.
    """
    def process_formdata(self, valuelist):
        tags = []
        for value in valuelist:
            if value is None:
                continue
            parts = value.split(",") if isinstance(value, str) else [value]
            tags.extend(str(part).strip() for part in parts if str(part).strip())
        self.data = tags

    def pre_validate(self, form):
        for tag in self.data or []:
            if len(tag) > 50:
                raise ValidationError("Cada etiqueta debe tener como máximo 50 caracteres.")


def not_blank(form, field):
    """Permite omitir el campo, pero no enviarlo vacío ni null."""
    if field.raw_data and (field.data is None or not field.data.strip()):
        raise ValidationError("Este campo no puede estar vacío.")


class TicketIdField(IntegerField):
    """Id de ticket en un cuerpo JSON: rechaza objetos y booleanos."""
    def process_formdata(self, valuelist):
        if valuelist and isinstance(valuelist[0], (dict, bool)):
            self.data = None
            raise ValueError("Debe ser un número entero.")
        super().process_formdata(valuelist)


class TicketCreateForm(FlaskForm):
    title = StringField('Título', validators=[is_text, DataRequired(message="Este campo es obligatorio"), Length(max=200)])
    description = TextAreaField('Descripción', validators=[is_text, DataRequired(message="Este campo es obligatorio")])
    status = StringField('Estado', validators=[is_text, Optional(), AnyOf(TICKET_STATUSES, message="Estado inválido.")])
    priority = StringField('Prioridad', validators=[is_text, Optional(), AnyOf(TICKET_PRIORITIES, message="Prioridad inválida.")])
    category = StringField('Categoría', validators=[is_text, Optional(), Length(max=50)])
    channel = StringField('Canal', validators=[is_text, Optional(), AnyOf(TICKET_CHANNELS, message="Canal inválido.")])
    assignedToId = StringField('Asignado a', validators=[is_text, Optional()])
    tags = TagListField('Etiquetas')


class TicketUpdateForm(FlaskForm):
    """
    Actualización parcial: solo se aplican los campos presentes en el cuerpo.
    Un campo presente no puede llegar vacío, salvo assignedToId (vacío o null
    elimina la asignación).
    """
    title = StringField('Título', validators=[is_text, not_blank, Length(max=200)])
    description = TextAreaField('Descripción', validators=[is_text, not_blank])
    status = StringField('Estado', validators=[is_text, not_blank, Optional(), AnyOf(TICKET_STATUSES, message="Estado inválido.")])
    priority = StringField('Prioridad', validators=[is_text, not_blank, Optional(), AnyOf(TICKET_PRIORITIES, message="Prioridad inválida.")])
    category = StringField('Categoría', validators=[is_text, not_blank, Length(max=50)])
    channel = StringField('Canal', validators=[is_text, not_blank, Optional(), AnyOf(TICKET_CHANNELS, message="Canal inválido.")])
    assignedToId = StringField('Asignado a', validators=[is_text, Optional()])
    tags = TagListField('Etiquetas')


class MessageForm(FlaskForm):
    content = TextAreaField('Mensaje', validators=[is_text, DataRequired(message="Este campo es obligatorio")])
    type = StringField('Tipo', validators=[is_text, Optional(), AnyOf(MESSAGE_TYPES, message="Tipo de mensaje inválido.")])


class TicketListQueryForm(FlaskForm):
    """Parámetros de la query string del listado (se valida sin CSRF)."""
    class Meta:
        csrf = False

    status = StringField('Estado', validators=[Optional(), AnyOf(TICKET_STATUSES, message="Estado inválido.")])
    priority = StringField('Prioridad', validators=[Optional(), AnyOf(TICKET_PRIORITIES, message="Prioridad inválida.")])
    assignedToMe = BooleanField('Asignados a mí', false_values=(False, "false", "0", ""))
    range = StringField('Rango', validators=[Optional(), Regexp(r"^\d+-\d+$", message="El rango debe tener la forma 'inicio-fin'.")])
    order = StringField('Orden', validators=[Optional(), AnyOf(("ASC", "DESC"), message="El orden debe ser ASC o DESC.")])
    searchText = StringField('Buscar', validators=[Optional(), Length(max=200)])


class TicketDetailQueryForm(FlaskForm):
    class Meta:
        csrf = False

    source = StringField('Origen', validators=[is_text, Optional(), AnyOf(("local", "glpi"), message="Origen inválido.")])


class TicketReferenceForm(FlaskForm):
    """Referencia a un ticket en el cuerpo de una petición (endpoints de IA)."""
    ticketId = TicketIdField('Ticket', validators=[DataRequired(message="Este campo es obligatorio")])
    source = StringField('Origen', validators=[is_text, Optional(), AnyOf(("local", "glpi"), message="Origen inválido.")])
