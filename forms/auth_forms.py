from wtforms import Form, StringField, PasswordField
from wtforms.validators import DataRequired, EqualTo, Length, Optional, ValidationError

from core.security import is_valid_email, validate_password_strength


class ValidEmail:
    def __init__(self, message=None):
        self.message = message or 'Please enter a valid email address'

    def __call__(self, form, field):
        if field.data and not is_valid_email(field.data):
            raise ValidationError(self.message)


class StrongPassword:
    def __call__(self, form, field):
        if field.data:
            errors = validate_password_strength(field.data)
            if errors:
                raise ValidationError('. '.join(errors))


class LoginForm(Form):
    email = StringField('Email', validators=[DataRequired('Email is required')])
    password = PasswordField('Password', validators=[DataRequired('Password is required')])


class RegisterForm(Form):
    username = StringField('Username', validators=[Optional(), Length(min=3, max=100)])
    display_name = StringField('Display name', validators=[Optional(), Length(max=100)])
    email = StringField('Email', validators=[
        DataRequired('Email is required'),
        ValidEmail(),
    ])
    password = PasswordField('Password', validators=[DataRequired('Password is required'), StrongPassword()])
    confirm_password = PasswordField('Confirm password', validators=[
        DataRequired('Confirm password is required'),
        EqualTo('password', message='Passwords do not match'),
    ])


class ProfileForm(Form):
    display_name = StringField('Display name', validators=[DataRequired('Display name is required'), Length(max=100)])
    current_password = PasswordField('Current password')
    new_password = PasswordField('New password', validators=[StrongPassword()])
    confirm_password = PasswordField('Confirm new password', validators=[
        EqualTo('new_password', message='Passwords do not match'),
    ])

    def validate_current_password(self, field):
        if self.new_password.data and not field.data:
            raise ValidationError('Current password is required')
