"""
Centralized French UI messages.
All user-facing text in French for consistency.
"""

MESSAGES = {
    # Success messages
    'login_success': 'Bienvenue {name}',
    'logout_success': 'Déconnexion réussie',
    'registration_success': 'Inscription réussie ! Vérifiez votre boîte mail pour confirmer votre compte.',
    'verification_sent': 'Un nouvel email de vérification a été envoyé. Consultez votre boîte de réception.',
    'email_verified': 'Adresse email vérifiée. Vous pouvez maintenant vous connecter.',
    'profile_updated': 'Profil mis à jour avec succès',
    'booking_created': 'Réservation enregistrée. Nous vous contacterons pour la confirmer.',
    'booking_status_updated': 'Statut de la réservation mis à jour : {status}',

    # Error messages
    'invalid_credentials': 'Email ou mot de passe incorrect',
    'email_not_confirmed': 'Veuillez vérifier votre adresse email avant de vous connecter',
    'email_exists': 'Un compte existe déjà avec cette adresse email',
    'username_exists': "Ce nom d'utilisateur est déjà pris",
    'invalid_username': "Le nom d'utilisateur doit contenir 3 à 20 caractères : lettres minuscules, chiffres ou _",
    'registration_unavailable': "Service d'inscription indisponible. Veuillez réessayer plus tard.",
    'registration_failed': "Votre compte n'a pas pu être créé. Veuillez réessayer.",
    'network_error': 'Le serveur ne répond pas. Vérifiez votre connexion et réessayez.',
    'login_timeout': 'La connexion a expiré. Veuillez réessayer.',
    'not_authenticated': 'Utilisateur non connecté',
    'profile_not_found': 'Profil utilisateur introuvable',
    'profile_update_failed': 'La mise à jour du profil a échoué',
    'no_verification_email': 'Aucune adresse email à vérifier',
    'invalid_verification_link': 'Lien de vérification invalide ou expiré',
    'access_denied': 'Accès refusé',
    'not_found': 'Ressource introuvable',
    'server_error': 'Erreur interne du serveur',
    'unexpected_error': "Une erreur inattendue s'est produite",

    # Booking messages
    'customer_info_required': 'Veuillez remplir tous les champs obligatoires',
    'dates_required': 'Les dates de début et de fin sont requises',
    'invalid_date_range': 'La date de fin doit être postérieure ou égale à la date de début',
    'invalid_date': 'Date invalide (format attendu : AAAA-MM-JJ)',
    'vehicle_not_found': 'Véhicule introuvable',
    'vehicle_unavailable': "Ce véhicule n'est pas disponible pour les dates sélectionnées",
    'booking_failed': "Erreur lors de l'enregistrement de la réservation. Veuillez réessayer.",
    'booking_not_found': 'Réservation introuvable',
    'invalid_step': "Cette action n'est pas possible à l'étape actuelle",
    'invalid_status_transition': 'Impossible de passer la réservation de « {current} » à « {target} »',
    'invalid_status': 'Statut de réservation inconnu',

    # Validation messages
    'field_required': 'Ce champ est requis',
    'invalid_email': 'Adresse email invalide',
    'invalid_phone': 'Numéro de téléphone invalide',
    'password_too_short': 'Le mot de passe doit contenir au moins 6 caractères',
    'invalid_value': 'Valeur invalide',

    # Map widget
    'map_fallback': 'Carte indisponible. Nos agences : Aéroport, Centre-ville, Gare.',

    # Booking statuses
    'status_pending': 'En attente',
    'status_confirmed': 'Confirmée',
    'status_active': 'En cours',
    'status_completed': 'Terminée',
    'status_cancelled': 'Annulée',

    # Vehicle categories
    'category_economic': 'Économique',
    'category_luxury': 'Luxe',
    'category_suv': 'SUV',
    'category_utility': 'Utilitaire',
}

# Known backend error strings and their user-facing translation
BACKEND_ERRORS = {
    'Invalid login credentials': MESSAGES['invalid_credentials'],
    'Email not confirmed': MESSAGES['email_not_confirmed'],
    'User already registered': MESSAGES['email_exists'],
    'User already exists': MESSAGES['email_exists'],
    'Database error saving new user': MESSAGES['registration_unavailable'],
    'Token has expired or is invalid': MESSAGES['invalid_verification_link'],
    'Request timed out': MESSAGES['network_error'],
}


def get_message(key: str, **kwargs) -> str:
    """
    Get message with optional formatting.

    Args:
        key: Message key
        **kwargs: Format parameters

    Returns:
        Formatted message or key if not found
    """
    message = MESSAGES.get(key, key)
    if kwargs:
        return message.format(**kwargs)
    return message


def translate_backend_error(error) -> str:
    """
    Translate a backend error into user-facing text.

    Args:
        error: Exception or raw message string

    Returns:
        Known translation, or the raw message when the string is unknown
    """
    message = getattr(error, 'message', None) or str(error)
    if not message:
        return MESSAGES['unexpected_error']
    return BACKEND_ERRORS.get(message, message)
