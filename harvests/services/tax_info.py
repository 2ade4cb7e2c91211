# harvests/services/tax_info.py
"""
W-9 tax information for payees.

The tax id is encrypted with AES-256-GCM before it touches the database.
The key is derived per record with PBKDF2-HMAC-SHA256 from
TAX_ENCRYPTION_KEY and a random salt. Stored format:

    base64(salt[16] || iv[12] || ciphertext || tag[16])
"""

import base64
import json
import os
import re
from datetime import datetime
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from flask import current_app
from harvests import db
from harvests.errors import ValidationError, NotFoundError
from harvests.models import Profile
from harvests.utils.general import validate_string

SALT_BYTES = 16
IV_BYTES = 12
KDF_ITERATIONS = 100000
TAX_ID_TYPES = ('ssn', 'ein')


def _derive_key(secret, salt):
    kdf = PBKDF2HMAC(algorithm=hashes.SHA256(), length=32, salt=salt, iterations=KDF_ITERATIONS)
    return kdf.derive(secret.encode('utf-8'))


def _secret():
    secret = current_app.config.get('TAX_ENCRYPTION_KEY')
    if not secret:
        raise RuntimeError("TAX_ENCRYPTION_KEY not configured")
    return secret


def encrypt_tax_payload(payload, secret=None):
    secret = secret or _secret()
    salt = os.urandom(SALT_BYTES)
    iv = os.urandom(IV_BYTES)
    ciphertext = AESGCM(_derive_key(secret, salt)).encrypt(iv, json.dumps(payload).encode('utf-8'), None)
    return base64.b64encode(salt + iv + ciphertext).decode('ascii')


def decrypt_tax_id(encrypted, secret=None):
    """Reverses encrypt_tax_payload. Returns the {tax_id, tax_id_type} dict."""
    secret = secret or _secret()
    raw = base64.b64decode(encrypted)
    salt, iv, ciphertext = raw[:SALT_BYTES], raw[SALT_BYTES:SALT_BYTES + IV_BYTES], raw[SALT_BYTES + IV_BYTES:]
    plaintext = AESGCM(_derive_key(secret, salt)).decrypt(iv, ciphertext, None)
    return json.loads(plaintext.decode('utf-8'))


def store_tax_info(user_id, data):
    tax_id = data.get('tax_id')
    if not isinstance(tax_id, str):
        raise ValidationError("'tax_id' is required")
    digits = tax_id.replace('-', '').strip()
    if not re.fullmatch(r'\d{9}', digits):
        raise ValidationError("'tax_id' must contain exactly 9 digits")

    tax_id_type = data.get('tax_id_type')
    if tax_id_type not in TAX_ID_TYPES:
        raise ValidationError("'tax_id_type' must be 'ssn' or 'ein'")

    tax_name = validate_string(data.get('tax_name'), 'tax_name', max_length=200)
    tax_address = validate_string(data.get('tax_address'), 'tax_address', max_length=500)

    profile = db.session.get(Profile, user_id)
    if not profile:
        raise NotFoundError("Profile not found")

    profile.tax_id_encrypted = encrypt_tax_payload({'tax_id': digits, 'tax_id_type': tax_id_type})
    profile.tax_id_type = tax_id_type
    profile.tax_name = tax_name
    profile.tax_address = tax_address
    profile.w9_submitted_at = datetime.utcnow()

    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info(f"Tax info securely stored for user {user_id}")
    return {
        "success": True,
        "message": "Tax information saved",
        "w9_submitted_at": profile.w9_submitted_at,
    }
