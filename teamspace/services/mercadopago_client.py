"""
Mercado Pago REST client (preapproval subscriptions and plans).

Thin wrapper over ``requests``. Every call is a single attempt: transport
errors and non-2xx responses raise MercadoPagoError.
"""
import logging
from typing import Any, Dict, Optional

import requests
from flask import current_app

logger = logging.getLogger(__name__)


class MercadoPagoError(Exception):
    """Raised when Mercado Pago rejects a request or cannot be reached."""

    def __init__(self, message: str, status_code: Optional[int] = None, payload: Optional[dict] = None):
        self.message = message
        self.status_code = status_code
        self.payload = payload or {}
        super().__init__(message)

    @property
    def is_client_error(self) -> bool:
        return self.status_code is not None and 400 <= self.status_code < 500


def _request(method: str, path: str, json: Optional[dict] = None,
             params: Optional[dict] = None) -> Dict[str, Any]:
    token = current_app.config.get('MP_ACCESS_TOKEN')
    if not token:
        raise MercadoPagoError('Mercado Pago is not configured (MP_ACCESS_TOKEN missing).')

    url = f"{current_app.config['MP_API_URL'].rstrip('/')}{path}"
    headers = {
        'Authorization': f'Bearer {token}',
        'Content-Type': 'application/json',
    }

    try:
        response = requests.request(
            method,
            url,
            headers=headers,
            json=json,
            params=params,
            timeout=current_app.config.get('MP_TIMEOUT_SECONDS', 10),
        )
    except requests.RequestException as e:
        logger.error(f"Mercado Pago {method} {path} failed: {e}")
        raise MercadoPagoError(f'Mercado Pago unreachable: {e}') from e

    try:
        data = response.json()
    except ValueError:
        data = {}

    if not response.ok:
        message = data.get('message') or data.get('error') or response.reason or 'Mercado Pago error'
        logger.warning(f"Mercado Pago {method} {path} returned {response.status_code}: {message}")
        raise MercadoPagoError(message, status_code=response.status_code, payload=data)

    return data


def get_preapproval(preapproval_id: str) -> Dict[str, Any]:
    """Fetch a preapproval (subscription) by ID."""
    return _request('GET', f'/preapproval/{preapproval_id}')


def create_preapproval(plan_id: str, payer_email: str, external_reference: str,
                       back_url: str, reason: Optional[str] = None) -> Dict[str, Any]:
    """
    Create a pending preapproval for a plan.

    The payer completes the payment at the returned ``init_point``.

    Args:
        plan_id: Provider plan ID (preapproval_plan_id)
        payer_email: Email of the paying user
        external_reference: Local user ID, echoed back in webhooks
        back_url: Where Mercado Pago redirects after checkout
        reason: Label shown to the payer

    Returns:
        Preapproval payload including ``id`` and ``init_point``
    """
    body = {
        'preapproval_plan_id': plan_id,
        'payer_email': payer_email,
        'external_reference': external_reference,
        'back_url': back_url,
        'status': 'pending',
    }
    if reason:
        body['reason'] = reason
    return _request('POST', '/preapproval', json=body)


def cancel_preapproval(preapproval_id: str) -> Dict[str, Any]:
    """Ask Mercado Pago to cancel a preapproval."""
    return _request('PUT', f'/preapproval/{preapproval_id}', json={'status': 'cancelled'})


def search_plans(status: str = 'active', limit: int = 50) -> Dict[str, Any]:
    """Search preapproval plans."""
    return _request('GET', '/preapproval_plan/search', params={'status': status, 'limit': limit})


def get_plan(plan_id: str) -> Dict[str, Any]:
    """Fetch a preapproval plan by ID."""
    return _request('GET', f'/preapproval_plan/{plan_id}')
