from flask_wtf import FlaskForm
from wtforms import Field, StringField, PasswordField, BooleanField
from wtforms.validators import DataRequired, Email, Length, Optional, AnyOf, ValidationError

from app.auth.policy import ROLES
from app.utils import is_text


class JSONObjectField(Field):
    """Campo que acepta un objeto JSON tal cual (p. ej. las preferencias del perfil)."""
    def process_formdata(self, valuelist):
        if valuelist:
            self.data = valuelist[0]

    def pre_validate(self, form):
        if self.data is not None and not isinstance(self.data, dict):
            raise ValidationError("Debe ser un objeto.")


class RegistrationForm(FlaskForm):
    email = StringField('Correo Electrónico', validators=[is_text, DataRequired(message="Este campo es obligatorio"), Email(message="Correo electrónico inválido.")])
    password = PasswordField('Contraseña', validators=[is_text, DataRequired(message="Este campo es obligatorio"), Length(min=6, message="La contraseña debe tener al menos 6 caracteres.")])
    firstName = StringField('Nombre', validators=[is_text, Optional(), Length(max=100)])
    lastName = StringField('Apellido', validators=[is_text, Optional(), Length(max=100)])


class LoginForm(FlaskForm):
    email = StringField('Correo Electrónico', validators=[is_text, DataRequired(message="Este campo es obligatorio")])
    password = PasswordField('Contraseña', validators=[is_text, DataRequired(message="Este campo es obligatorio")])
    remember_me = BooleanField('Recordarme')


class ProfileForm(FlaskForm):
    role = StringField('Rol', validators=[is_text, Optional(), AnyOf(ROLES, message="Rol inválido.")])
    preferences = JSONObjectField('Preferencias')
