"""Persistent error log for failures worth investigating (e.g. registration)."""

import traceback


def create_error_log(backend, message: str, detail: str = None, context: str = None,
                     registration_context: dict = None, exc: BaseException = None) -> str:
    """
    Insert an error_logs row.

    Args:
        backend: Gateway backend
        message: Short error message
        detail: Longer description or backend message
        context: Where the error happened (e.g. 'sign_up')
        registration_context: Structured data about the failed registration
        exc: Exception to record the stack trace of

    Returns:
        New error log ID
    """
    stack_trace = None
    if exc is not None:
        stack_trace = ''.join(traceback.format_exception(type(exc), exc, exc.__traceback__))

    rows = backend.table('error_logs').insert({
        'error_message': message,
        'error_detail': detail,
        'error_context': context,
        'registration_context': registration_context,
        'stack_trace': stack_trace,
    })
    return rows[0]['id'] if rows else None
