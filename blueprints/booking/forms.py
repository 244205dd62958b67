"""
Booking flow forms using Flask-WTF.
"""

from flask_wtf import FlaskForm
from wtforms import StringField, TextAreaField
from wtforms.validators import DataRequired, Email, Length, Optional

CUSTOMER_FIELDS = ('full_name', 'email', 'phone', 'license_number')


class SelectVehicleForm(FlaskForm):
    """Vehicle chosen from the search results."""

    vehicle_id = StringField('Véhicule', validators=[
        DataRequired(message='Veuillez choisir un véhicule')
    ])


class BookingDetailsForm(FlaskForm):
    """Customer details; fields left out keep their current value."""

    full_name = StringField('Nom complet', validators=[Optional(), Length(max=200)])

    email = StringField('Email', validators=[
        Optional(),
        Email(message="Format d'email invalide")
    ])

    phone = StringField('Téléphone', validators=[Optional(), Length(max=30)])

    license_number = StringField('Numéro de permis', validators=[Optional(), Length(max=50)])

    special_requests = TextAreaField('Demandes particulières', validators=[
        Optional(),
        Length(max=1000)
    ])
