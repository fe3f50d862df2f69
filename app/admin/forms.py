from flask_wtf import FlaskForm
from wtforms import StringField, PasswordField
from wtforms.validators import DataRequired, Email, Length, Optional

from app.utils import is_text


class TechnicianForm(FlaskForm):
    email = StringField('Correo Electrónico', validators=[is_text, DataRequired(message="Este campo es obligatorio"), Email(message="Correo electrónico inválido.")])
    password = PasswordField('Contraseña', validators=[is_text, DataRequired(message="Este campo es obligatorio"), Length(min=6, message="La contraseña debe tener al menos 6 caracteres.")])
    firstName = StringField('Nombre', validators=[is_text, Optional(), Length(max=100)])
    lastName = StringField('Apellido', validators=[is_text, Optional(), Length(max=100)])
