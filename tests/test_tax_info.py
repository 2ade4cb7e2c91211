import pytest
from cryptography.exceptions import InvalidTag

from harvests import db
from harvests.models import Profile
from harvests.services.tax_info import encrypt_tax_payload, decrypt_tax_id
from conftest import make_profile, auth_headers

W9 = {
    'tax_id': '123-45-6789',
    'tax_id_type': 'ssn',
    'tax_name': 'Jane Farmer',
    'tax_address': '12 Orchard Ln, Springfield, IL 62701',
}


def test_encryption_round_trip_uses_fresh_salt():
    payload = {'tax_id': '123456789', 'tax_id_type': 'ein'}

    first = encrypt_tax_payload(payload, secret='k1')
    second = encrypt_tax_payload(payload, secret='k1')

    assert first != second
    assert decrypt_tax_id(first, secret='k1') == payload


def test_wrong_key_cannot_decrypt():
    encrypted = encrypt_tax_payload({'tax_id': '123456789', 'tax_id_type': 'ssn'}, secret='k1')
    with pytest.raises(InvalidTag):
        decrypt_tax_id(encrypted, secret='k2')


def test_store_tax_info_encrypts(client, app):
    farmer = make_profile(roles=('farmer',))

    response = client.post('/api/tax-info', headers=auth_headers(farmer), json=W9)

    assert response.status_code == 200
    assert '123456789' not in response.get_data(as_text=True)
    profile = db.session.get(Profile, farmer.id)
    assert '123456789' not in profile.tax_id_encrypted
    assert decrypt_tax_id(profile.tax_id_encrypted) == {'tax_id': '123456789', 'tax_id_type': 'ssn'}
    assert profile.tax_name == 'Jane Farmer'
    assert profile.w9_submitted_at is not None


@pytest.mark.parametrize('override', [
    {'tax_id': '12345678'},
    {'tax_id': '12345678a'},
    {'tax_id': None},
    {'tax_id_type': 'itin'},
    {'tax_name': ''},
    {'tax_address': 'x' * 501},
])
def test_store_tax_info_validation(client, app, override):
    driver = make_profile(roles=('driver',))
    response = client.post('/api/tax-info', headers=auth_headers(driver), json=dict(W9, **override))
    assert response.status_code == 400


def test_consumers_cannot_submit_tax_info(client, app):
    consumer = make_profile()
    assert client.post('/api/tax-info', headers=auth_headers(consumer), json=W9).status_code == 403
