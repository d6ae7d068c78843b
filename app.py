import logging

import redis
from flask import Flask, jsonify, request
from flask_cors import CORS

import auth_routes
import media_routes
import routes
from config import Settings
from extensions import db
from interview_logic import QuestionOrchestrator
from scorecard import AnswerEvaluator, Finalizer
from speech import TextToSpeech
from tasks import EvaluationQueue
from utilities.llm import GeminiClient
from utilities.log import setup_logging

logger = logging.getLogger(__name__)


def _connect_redis(redis_url):
    try:
        r = redis.from_url(redis_url, decode_responses=True)
        r.ping()  # Check connection
        logger.info("Successfully connected to Redis.")
        return r
    except (redis.exceptions.ConnectionError, TypeError, ValueError) as e:
        logger.error("Could not connect to Redis: %s", e)
        return None


def _register_error_handlers(app):
    # API routes always answer JSON, never the default HTML pages
    @app.errorhandler(404)
    def handle_404(e):
        return jsonify({'error': 'Endpoint not found', 'path': request.path}), 404

    @app.errorhandler(405)
    def handle_405(e):
        return jsonify({'error': 'Method not allowed'}), 405

    @app.errorhandler(500)
    def handle_500(e):
        logger.error("Unhandled server error: %s", e)
        return jsonify({'error': 'Internal server error'}), 500


def create_app(settings=None):
    settings = settings or Settings.from_env()
    setup_logging(settings.log_level)

    app = Flask(__name__)
    CORS(app, supports_credentials=True, origins=[settings.client_url, "http://localhost:5173"])

    app.config['SETTINGS'] = settings
    app.config['SQLALCHEMY_DATABASE_URI'] = settings.database_url
    app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False

    # Initialize the database with the app
    db.init_app(app)

    r = _connect_redis(settings.redis_url)

    llm = GeminiClient.from_settings(settings)
    if not llm.configured:
        logger.warning("GEMINI_API_KEY is not set; AI endpoints will answer 500.")

    services = {
        'redis': r,
        'llm': llm,
        'orchestrator': QuestionOrchestrator(llm),
        'evaluator': AnswerEvaluator(llm),
        'finalizer': Finalizer(llm),
        'queue': EvaluationQueue(app, r, max_workers=settings.evaluation_workers),
        'tts': TextToSpeech(settings),
    }
    app.extensions['prevue'] = services

    # Initialize routes
    auth_routes.init_app(app)
    routes.init_app(app, services)
    media_routes.init_app(app, services)
    _register_error_handlers(app)

    # Create database tables if they don't exist
    with app.app_context():
        db.create_all()

    return app


if __name__ == '__main__':
    app = create_app()
    app.run(port=3000, debug=True)
