import io
import os
import re
from datetime import timedelta

from extensions import db
from models import User, utcnow


def test_signup_signin_profile_logout(client, signup):
    rv = signup(client, email='  Alice@Example.com ')
    assert rv.status_code == 201
    assert rv.get_json()['user']['email'] == 'alice@example.com'
    cookie = rv.headers.get('Set-Cookie')
    assert cookie.startswith('token=')
    assert 'HttpOnly' in cookie

    rv = client.get('/api/profile')
    assert rv.status_code == 200
    assert rv.get_json()['user']['name'] == 'Alice'

    rv = client.post('/api/logout')
    assert rv.status_code == 200
    assert client.get('/api/profile').status_code == 401

    rv = client.post('/api/signin', json={'email': 'alice@example.com', 'password': 'secret123'})
    assert rv.status_code == 200
    assert client.get('/api/profile').status_code == 200


def test_signup_validation(client, signup):
    assert signup(client, name='').status_code == 400
    assert signup(client, email='not-an-email').status_code == 400
    assert signup(client, password='123').status_code == 400
    assert signup(client).status_code == 201
    assert signup(client).status_code == 409


def test_signin_failures_are_disguised(client, signup):
    signup(client)
    client.post('/api/logout')
    wrong_password = client.post('/api/signin', json={'email': 'alice@example.com', 'password': 'nope-nope'})
    unknown = client.post('/api/signin', json={'email': 'ghost@example.com', 'password': 'secret123'})
    assert wrong_password.status_code == unknown.status_code == 404
    assert wrong_password.get_json() == unknown.get_json()


def test_tampered_cookie_is_rejected(app):
    client = app.test_client()
    client.set_cookie('token', 'forged.value')
    rv = client.get('/api/profile')
    assert rv.status_code == 401
    assert rv.get_json() == {'error': 'Authentication required'}


def test_password_reset_flow(app, client, signup, stub_email):
    signup(client)

    rv = client.post('/api/forgot-password', json={'email': 'ghost@example.com'})
    assert rv.status_code == 200
    assert stub_email == []

    rv = client.post('/api/forgot-password', json={'email': 'alice@example.com'})
    assert rv.status_code == 200
    assert len(stub_email) == 1
    token = re.search(r'/reset-password/([0-9a-f]+)', stub_email[0]['html']).group(1)

    with app.app_context():
        user = User.query.filter_by(email='alice@example.com').first()
        # only the hash is stored
        assert user.reset_password_token != token

    assert client.post(f'/api/reset-password/{token}', json={'password': 'x'}).status_code == 400
    assert client.post('/api/reset-password/bogus', json={'password': 'newsecret'}).status_code == 400

    rv = client.post(f'/api/reset-password/{token}', json={'password': 'newsecret'})
    assert rv.status_code == 200
    # single use
    assert client.post(f'/api/reset-password/{token}', json={'password': 'again123'}).status_code == 400

    rv = client.post('/api/signin', json={'email': 'alice@example.com', 'password': 'newsecret'})
    assert rv.status_code == 200


def test_expired_reset_token(app, client, signup, stub_email):
    signup(client)
    client.post('/api/forgot-password', json={'email': 'alice@example.com'})
    token = re.search(r'/reset-password/([0-9a-f]+)', stub_email[0]['html']).group(1)

    with app.app_context():
        user = User.query.filter_by(email='alice@example.com').first()
        user.reset_password_expire = utcnow() - timedelta(minutes=1)
        db.session.commit()

    assert client.post(f'/api/reset-password/{token}', json={'password': 'newsecret'}).status_code == 400


def _upload(client, payload=b'\x89PNG fake image', filename='avatar.png'):
    return client.post('/api/upload-profile-image', data={
        'profileImage': (io.BytesIO(payload), filename),
    }, content_type='multipart/form-data')


def test_profile_image_upload_replace_and_delete(settings, auth_client):
    folder = settings.upload_folder + '/profile-images'

    rv = _upload(auth_client)
    assert rv.status_code == 200
    first = rv.get_json()['profileImage']
    assert first.startswith('/uploads/profile-images/')
    assert auth_client.get('/api/profile').get_json()['user']['avatar'] == first
    assert auth_client.get(first).data == b'\x89PNG fake image'

    rv = _upload(auth_client, payload=b'second image', filename='../../me.JPG')
    assert rv.status_code == 200
    second = rv.get_json()['profileImage']
    assert second.endswith('.jpg')
    # the replaced file is removed from disk
    assert os.listdir(folder) == [second.rsplit('/', 1)[1]]

    rv = auth_client.delete('/api/delete-profile-image')
    assert rv.status_code == 200
    assert os.listdir(folder) == []
    assert auth_client.get('/api/profile').get_json()['user']['avatar'] is None

    rv = auth_client.delete('/api/delete-profile-image')
    assert rv.status_code == 400
    assert rv.get_json() == {'message': 'No profile image to delete'}


def test_profile_image_upload_validation(client, auth_client):
    rv = auth_client.post('/api/upload-profile-image', data={}, content_type='multipart/form-data')
    assert rv.status_code == 400
    assert rv.get_json() == {'message': 'No file uploaded'}

    assert _upload(auth_client, filename='notes.txt').status_code == 400
    assert _upload(auth_client, payload=b'x' * (5 * 1024 * 1024 + 1)).status_code == 413

    client.post('/api/logout')
    assert _upload(client).status_code == 401
