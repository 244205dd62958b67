"""User-visible notifications (toasts) backed by Flask flash messages."""

import logging

from flask import flash, get_flashed_messages, has_request_context

logger = logging.getLogger(__name__)

LOG_LEVELS = {
    'success': logging.INFO,
    'info': logging.INFO,
    'warning': logging.WARNING,
    'error': logging.WARNING,
}


def notify(message: str, category: str = 'info') -> None:
    """
    Show a message to the user and log it.

    Args:
        message: Text shown to the user
        category: 'success', 'info', 'warning' or 'error'
    """
    logger.log(LOG_LEVELS.get(category, logging.INFO), f'[{category}] {message}')
    if has_request_context():
        flash(message, category)


def pop_notifications() -> list:
    """Drain pending notifications for the current session."""
    return [{'category': category, 'message': message}
            for category, message in get_flashed_messages(with_categories=True)]
