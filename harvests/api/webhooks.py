# harvests/api/webhooks.py
# Stripe webhook receiver. Public; authenticity comes from the signature.

from flask import Blueprint, request, jsonify
from harvests.services.stripe_webhooks import handle_stripe_webhook

bp = Blueprint('webhooks', __name__)


@bp.route('/webhooks/stripe', methods=['POST'])
def stripe_webhook_route():
    payload = request.get_data()
    signature = request.headers.get('Stripe-Signature')
    body, status_code = handle_stripe_webhook(payload, signature)
    return jsonify(body), status_code
