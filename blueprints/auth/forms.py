"""
Authentication forms using Flask-WTF.
Provides login, registration, profile and verification forms with CSRF protection.
Form data or a JSON body are both accepted.
"""

from flask_wtf import FlaskForm
from wtforms import StringField, PasswordField, BooleanField
from wtforms.validators import DataRequired, Email, Length, Optional, Regexp

USERNAME_REGEX = r'^[a-z0-9_]{3,20}$'
USERNAME_MESSAGE = "Le nom d'utilisateur doit contenir 3 à 20 caractères (minuscules, chiffres, _)"


class LoginForm(FlaskForm):
    """Login form with email and password."""

    identifier = StringField('Email', validators=[
        DataRequired(message="L'email est requis")
    ])

    password = PasswordField('Mot de passe', validators=[
        DataRequired(message='Le mot de passe est requis')
    ])

    remember_me = BooleanField('Se souvenir de moi')


class RegisterForm(FlaskForm):
    """Account creation form."""

    email = StringField('Email', validators=[
        DataRequired(message="L'email est requis"),
        Email(message="Format d'email invalide")
    ])

    password = PasswordField('Mot de passe', validators=[
        DataRequired(message='Le mot de passe est requis'),
        Length(min=6, message='Le mot de passe doit contenir au moins 6 caractères')
    ])

    username = StringField("Nom d'utilisateur", validators=[
        DataRequired(message="Le nom d'utilisateur est requis"),
        Regexp(USERNAME_REGEX, message=USERNAME_MESSAGE)
    ])

    full_name = StringField('Nom complet', validators=[
        Optional(),
        Length(max=200)
    ])


class ProfileForm(FlaskForm):
    """Profile editing form; only submitted fields are changed."""

    username = StringField("Nom d'utilisateur", validators=[
        Optional(),
        Regexp(USERNAME_REGEX, message=USERNAME_MESSAGE)
    ])

    full_name = StringField('Nom complet', validators=[
        Optional(),
        Length(max=200)
    ])

    phone = StringField('Téléphone', validators=[
        Optional(),
        Length(max=30)
    ])

    avatar_url = StringField('Avatar', validators=[
        Optional(),
        Length(max=500)
    ])


class ResendVerificationForm(FlaskForm):
    """Resend the confirmation email; the pending address is used when empty."""

    email = StringField('Email', validators=[
        Optional(),
        Email(message="Format d'email invalide")
    ])
