import json
import os
import sys

import fakeredis
import pytest

# Ensure repo root is on sys.path so tests can import top-level modules (e.g., interview_logic.py)
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

# Ensure env for Settings.from_env() in case anything falls back to it
os.environ.setdefault('DATABASE_URL', 'sqlite:///:memory:')
os.environ.setdefault('REDIS_URL', 'redis://localhost:6379/0')

QUESTION = 'What is normalization?'
EVALUATION = {'correctness': 8, 'depth': 6, 'structure': 7, 'feedback': 'Clear and mostly accurate.'}
SUMMARY = {
    'pros': ['Clear structure', 'Good fundamentals', 'Calm delivery'],
    'cons': ['Few examples', 'Shallow on trade-offs', 'Rushed ending'],
    'improvementPlan': 'Practice explaining trade-offs with concrete examples.',
}


class FakeModel:
    """Answers prompts by recognising which service built them."""

    def __init__(self):
        self.prompts = []
        self.question = QUESTION
        self.ideal_answer = 'Normalization organises tables to reduce redundancy.'
        self.evaluation = json.dumps(EVALUATION)
        self.summary = json.dumps(SUMMARY)
        self.role = json.dumps({'role': 'Backend Developer', 'resumeContext': 'Python and PostgreSQL APIs.'})
        self.transcript = 'i used indexes to speed up queries'
        self.corrected = 'I used indexes to speed up queries.'

    def reply(self, prompt):
        self.prompts.append(prompt)
        if 'Ideal Answer:' in prompt:
            return self.ideal_answer
        if "evaluating a candidate's interview answer" in prompt:
            return self.evaluation
        if 'writing feedback' in prompt:
            return self.summary
        if 'Read the resume below' in prompt:
            return self.role
        if 'speech-to-text transcript' in prompt:
            return self.corrected
        return self.question


@pytest.fixture(scope='session')
def fake_redis_server():
    return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture(autouse=True)
def patch_redis(monkeypatch, fake_redis_server):
    import redis
    monkeypatch.setattr(redis, 'from_url', lambda *args, **kwargs: fake_redis_server)
    yield
    fake_redis_server.flushall()


@pytest.fixture()
def settings(tmp_path):
    from config import Settings
    # File-backed SQLite: evaluation workers and requests see the same committed rows
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'test.db'}",
        secret_key='test-secret',
        gemini_api_key='test-key',
        cookie_secure=False,
        evaluation_workers=1,
        evaluation_wait_seconds=5,
        log_level='WARNING',
        upload_folder=str(tmp_path / 'uploads'),
    )


@pytest.fixture()
def app(settings):
    from app import create_app
    from extensions import db
    application = create_app(settings)
    application.config.update(TESTING=True)
    yield application
    application.extensions['prevue']['queue'].shutdown()
    with application.app_context():
        db.session.remove()
        db.engine.dispose()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def fake_model(monkeypatch):
    from utilities.llm import GeminiClient
    model = FakeModel()
    monkeypatch.setattr(GeminiClient, 'generate', lambda self, prompt: model.reply(prompt))
    monkeypatch.setattr(
        GeminiClient, 'generate_with_audio',
        lambda self, prompt, audio, mime_type: model.transcript,
    )
    return model


@pytest.fixture()
def stub_email(monkeypatch):
    # Prevent real HTTP for sending emails via utilities layer
    import utilities.email as uemail
    sent = []

    def _send(settings, to_email, subject, html):
        sent.append({'to': to_email, 'subject': subject, 'html': html})
        return True, None

    monkeypatch.setattr(uemail, 'send_email', _send)
    return sent


@pytest.fixture()
def signup():
    def _signup(client, name='Alice', email='alice@example.com', password='secret123'):
        return client.post('/api/signup', json={'name': name, 'email': email, 'password': password})
    return _signup


@pytest.fixture()
def auth_client(client, signup):
    rv = signup(client)
    assert rv.status_code == 201
    return client
