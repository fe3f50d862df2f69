from flask_wtf import FlaskForm
from wtforms import StringField, TextAreaField, BooleanField
from wtforms.validators import DataRequired, Length

from app.tickets.forms import TagListField
from app.utils import is_text


class ArticleForm(FlaskForm):
    title = StringField('Título', validators=[is_text, DataRequired(message="Este campo es obligatorio"), Length(max=200)])
    content = TextAreaField('Contenido', validators=[is_text, DataRequired(message="Este campo es obligatorio")])
    isPublic = BooleanField('Público')
    tags = TagListField('Etiquetas')
