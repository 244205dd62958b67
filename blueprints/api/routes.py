"""
API routes for JSON endpoints.
Provides public access to the vehicle catalog and client configuration.
"""

from flask import jsonify, request, Blueprint, current_app
from flask_wtf.csrf import generate_csrf

from extensions import get_backend
from models.vehicle import RentalStatus, list_vehicles
from utils.api_response import api_success
from utils.messages import MESSAGES
from utils.notifications import pop_notifications

api_bp = Blueprint('api', __name__)


@api_bp.route('/health')
def health_check():
    """
    Health check endpoint (no authentication required).

    Returns:
        JSON with status and version
    """
    return jsonify({
        'status': 'ok',
        'version': current_app.config.get('APP_VERSION', '1.0.0'),
        'app': 'Locauto Vehicle Rental Service'
    })


@api_bp.route('/csrf-token')
def csrf_token():
    """CSRF token for clients posting JSON bodies (X-CSRFToken header)."""
    return api_success(data={'csrf_token': generate_csrf()})


@api_bp.route('/vehicles')
def api_vehicles():
    """
    Get the vehicle catalog as JSON.

    Query params:
        category: Filter by category (optional)
        status: Rental status (optional, default: available, 'all' for any)

    Returns:
        JSON list of vehicles
    """
    status = request.args.get('status', RentalStatus.AVAILABLE.value)
    vehicles = list_vehicles(
        get_backend(),
        status=None if status == 'all' else status,
        category=request.args.get('category') or None
    )

    return api_success(data={'vehicles': [v.to_dict() for v in vehicles]}, count=len(vehicles))


@api_bp.route('/config/map')
def map_config():
    """
    Map widget configuration.
    Without a maps key the widget shows the agency list as text.
    """
    api_key = current_app.config.get('MAPS_API_KEY')
    if not api_key:
        return api_success(data={'enabled': False, 'fallback_text': MESSAGES['map_fallback']})
    return api_success(data={'enabled': True, 'api_key': api_key})


@api_bp.route('/notifications')
def notifications():
    """Pending toasts for the current session; reading them clears them."""
    return api_success(data={'notifications': pop_notifications()})
