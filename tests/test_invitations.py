import uuid
from datetime import datetime, timedelta
from types import SimpleNamespace

import pytest

from harvests import db
from harvests.models import AdminInvitation, Profile, AdminAuditLog
from harvests.services import invitations
from conftest import make_profile, auth_headers


@pytest.fixture
def supabase_admin(monkeypatch):
    calls = {'created': [], 'deleted': []}

    def create_user(attributes):
        calls['created'].append(attributes)
        return SimpleNamespace(user=SimpleNamespace(id=str(uuid.uuid4())))

    def delete_user(user_id):
        calls['deleted'].append(user_id)

    auth_admin = SimpleNamespace(create_user=create_user, delete_user=delete_user)
    monkeypatch.setattr(invitations, 'create_client',
                        lambda url, key: SimpleNamespace(auth=SimpleNamespace(admin=auth_admin)))
    return calls


def _invitation(email='invitee@example.com', **fields):
    invitation = AdminInvitation(
        email=email,
        invitation_token=fields.pop('invitation_token', uuid.uuid4().hex),
        expires_at=fields.pop('expires_at', datetime.utcnow() + timedelta(days=7)),
        **fields
    )
    db.session.add(invitation)
    db.session.commit()
    return invitation


def test_admin_creates_invitation(client, app):
    admin = make_profile(roles=('admin',))

    response = client.post('/api/admin/invitations', headers=auth_headers(admin),
                           json={'email': ' New.Admin@Example.com '})

    assert response.status_code == 200
    invitation = AdminInvitation.query.one()
    assert invitation.email == 'new.admin@example.com'
    assert len(invitation.invitation_token) == 64
    assert invitation.expires_at > datetime.utcnow() + timedelta(days=6)
    assert AdminAuditLog.query.filter_by(action_type='admin_invited').count() == 1


def test_invitation_conflicts(client, app):
    admin = make_profile(roles=('admin',))
    existing = make_profile(email='farmer@example.com')
    _invitation(email='pending@example.com')

    response = client.post('/api/admin/invitations', headers=auth_headers(admin), json={'email': existing.email})
    assert response.status_code == 409

    response = client.post('/api/admin/invitations', headers=auth_headers(admin),
                           json={'email': 'pending@example.com'})
    assert response.status_code == 409

    response = client.post('/api/admin/invitations', headers=auth_headers(admin), json={'email': 'not-an-email'})
    assert response.status_code == 400


def test_non_admin_cannot_invite(client, app):
    consumer = make_profile()
    response = client.post('/api/admin/invitations', headers=auth_headers(consumer),
                           json={'email': 'someone@example.com'})
    assert response.status_code == 403


def test_accept_invitation_creates_admin(client, app, supabase_admin):
    admin = make_profile(roles=('admin',))
    invitation = _invitation(invited_by=admin.id)

    response = client.post('/api/invitations/accept', json={
        'token': invitation.invitation_token, 'password': 'hunter22', 'full_name': 'Ada Admin',
    })

    assert response.status_code == 200
    created = supabase_admin['created'][0]
    assert created['email'] == 'invitee@example.com'
    assert created['email_confirm'] is True

    profile = Profile.query.filter_by(email='invitee@example.com').one()
    assert {r.role for r in profile.roles} == {'admin', 'consumer'}
    assert db.session.get(AdminInvitation, invitation.id).used_at is not None
    assert AdminAuditLog.query.filter_by(action_type='admin_invitation_accepted').count() == 1


def test_invitation_cannot_be_reused(client, app, supabase_admin):
    invitation = _invitation()
    body = {'token': invitation.invitation_token, 'password': 'hunter22', 'full_name': 'Ada Admin'}

    assert client.post('/api/invitations/accept', json=body).status_code == 200
    response = client.post('/api/invitations/accept', json=body)

    assert response.status_code == 400
    assert 'already been used' in response.get_json()['message']
    assert len(supabase_admin['created']) == 1


def test_expired_invitation(client, app, supabase_admin):
    invitation = _invitation(expires_at=datetime.utcnow() - timedelta(minutes=1))

    response = client.post('/api/invitations/accept', json={
        'token': invitation.invitation_token, 'password': 'hunter22', 'full_name': 'Ada Admin',
    })

    assert response.status_code == 400
    assert supabase_admin['created'] == []


def test_unknown_token(client, app, supabase_admin):
    response = client.post('/api/invitations/accept', json={
        'token': 'f' * 64, 'password': 'hunter22', 'full_name': 'Ada Admin',
    })
    assert response.status_code == 404


@pytest.mark.parametrize('body', [
    {'password': 'hunter22', 'full_name': 'Ada'},
    {'token': 'abc', 'password': 'short', 'full_name': 'Ada'},
    {'token': 'abc', 'password': 'hunter22', 'full_name': ''},
])
def test_accept_validation(client, app, body):
    assert client.post('/api/invitations/accept', json=body).status_code == 400


def test_supabase_failure_is_reported(client, app, monkeypatch):
    invitation = _invitation()

    def refuse(attributes):
        raise RuntimeError('User already registered')

    auth_admin = SimpleNamespace(create_user=refuse, delete_user=lambda user_id: None)
    monkeypatch.setattr(invitations, 'create_client',
                        lambda url, key: SimpleNamespace(auth=SimpleNamespace(admin=auth_admin)))

    response = client.post('/api/invitations/accept', json={
        'token': invitation.invitation_token, 'password': 'hunter22', 'full_name': 'Ada Admin',
    })

    assert response.status_code == 502
    assert db.session.get(AdminInvitation, invitation.id).used_at is None
