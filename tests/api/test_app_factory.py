import pytest

from config import Settings


def test_app_factory_creates_app(app):
    # App fixture comes from tests/conftest.py
    assert app is not None
    assert app.testing is True
    services = app.extensions['prevue']
    assert set(services) == {'redis', 'llm', 'orchestrator', 'evaluator', 'finalizer', 'queue', 'tts'}
    assert services['llm'].configured is True


def test_routes_registered(client):
    # Basic smoke checks that endpoints exist (not asserting full behavior here)
    assert client.post('/api/questions/next-question', json={}).status_code == 400
    assert client.get('/api/questions/user-interviews').status_code == 401
    assert client.post('/api/signin', json={}).status_code == 400
    assert client.post('/api/tts/synthesize', json={}).status_code == 401


def test_unknown_endpoint_is_json(client):
    rv = client.get('/api/nope')
    assert rv.status_code == 404
    assert rv.get_json()['error'] == 'Endpoint not found'

    rv = client.get('/api/signup')
    assert rv.status_code == 405
    assert rv.is_json


def test_missing_gemini_key_answers_500(settings):
    from app import create_app
    settings.gemini_api_key = None
    app = create_app(settings)
    rv = app.test_client().post('/api/questions/next-question', json={
        'role': 'Backend Developer', 'mode': 'Technical', 'difficulty': 'Easy',
    })
    assert rv.status_code == 500
    assert rv.get_json() == {'error': 'GEMINI_API_KEY not configured'}
    app.extensions['prevue']['queue'].shutdown()


def test_settings_from_env(monkeypatch):
    monkeypatch.setenv('DATABASE_URL', 'postgres://u:p@db:5432/prevue')
    monkeypatch.setenv('EVALUATION_WORKERS', 'two')
    monkeypatch.setenv('COOKIE_SECURE', 'false')
    monkeypatch.setenv('GEMINI_RETRIES', '0')
    settings = Settings.from_env()
    assert settings.database_url == 'postgresql://u:p@db:5432/prevue'
    assert settings.evaluation_workers == 4
    assert settings.cookie_secure is False
    assert settings.gemini_retries == 1
    assert settings.gemini_url.endswith('/v1/models/gemini-2.5-flash-lite:generateContent')

    monkeypatch.delenv('DATABASE_URL')
    with pytest.raises(RuntimeError):
        Settings.from_env()
