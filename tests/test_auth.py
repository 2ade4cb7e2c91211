import uuid

from harvests import db
from harvests.models import Profile
from conftest import make_token, make_profile, auth_headers, CRON_SECRET


def test_me_requires_token(client):
    response = client.get('/auth/me')
    assert response.status_code == 401
    assert response.get_json()['message'] == 'Missing Authorization header'


def test_me_rejects_malformed_header(client):
    response = client.get('/auth/me', headers={'Authorization': 'Token abc'})
    assert response.status_code == 401


def test_me_rejects_expired_token(client):
    token = make_token(str(uuid.uuid4()), 'late@example.com', expires_in=-60)
    response = client.get('/auth/me', headers={'Authorization': f'Bearer {token}'})
    assert response.status_code == 401
    assert response.get_json()['message'] == 'Token has expired'


def test_first_login_provisions_consumer_profile(client):
    user_id = str(uuid.uuid4())
    token = make_token(user_id, 'new@example.com', full_name='New Shopper')

    response = client.get('/auth/me', headers={'Authorization': f'Bearer {token}'})

    assert response.status_code == 200
    body = response.get_json()
    assert body['user_id'] == user_id
    assert body['roles'] == ['consumer']
    assert body['full_name'] == 'New Shopper'

    profile = db.session.get(Profile, user_id)
    assert profile.email == 'new@example.com'


def test_login_syncs_changed_email(client, app):
    profile = make_profile(email='old@example.com')
    token = make_token(profile.id, 'renamed@example.com')

    response = client.get('/auth/me', headers={'Authorization': f'Bearer {token}'})

    assert response.status_code == 200
    assert db.session.get(Profile, profile.id).email == 'renamed@example.com'


def test_admin_routes_reject_consumers(client, app):
    consumer = make_profile()
    response = client.get('/api/admin/users', headers=auth_headers(consumer))
    assert response.status_code == 403


def test_admin_routes_allow_admins(client, app):
    admin = make_profile(roles=('admin', 'consumer'))
    response = client.get('/api/admin/users', headers=auth_headers(admin))
    assert response.status_code == 200
    emails = [u['email'] for u in response.get_json()['users']]
    assert admin.email in emails


def test_cron_endpoint_accepts_cron_secret(client, app):
    response = client.post('/api/jobs/generate-batches',
                           headers={'Authorization': f'Bearer {CRON_SECRET}'})
    assert response.status_code == 200
    assert response.get_json()['batches_created'] == 0


def test_cron_endpoint_rejects_non_admin_users(client, app):
    driver = make_profile(roles=('driver',))
    response = client.post('/api/jobs/generate-batches', headers=auth_headers(driver))
    assert response.status_code == 403


def test_cron_endpoint_requires_credentials(client):
    assert client.post('/api/jobs/generate-batches').status_code == 401


def test_cron_endpoint_rejects_non_ascii_token(client, app):
    response = client.post('/api/jobs/generate-batches', headers={'Authorization': 'Bearer señal'})
    assert response.status_code == 401
