import logging
from io import BytesIO

from flask import Blueprint, current_app, g, jsonify, request, send_file

from auth import login_required
from extensions import db
from models import InterviewSession
from report import render_feedback_report, report_filename
from speech import SpeechError, transcribe

logger = logging.getLogger(__name__)

MAX_TTS_CHARS = 5000


def init_app(app, services):
    """Registers the PDF report, speech-to-text and text-to-speech blueprints."""
    llm = services['llm']
    tts = services['tts']

    pdf_bp = Blueprint('pdf', __name__, url_prefix='/api/pdf')
    stt_bp = Blueprint('stt', __name__, url_prefix='/api/stt')
    tts_bp = Blueprint('tts', __name__, url_prefix='/api/tts')

    @pdf_bp.route('/feedback-report/<interview_id>', methods=['GET'])
    @login_required
    def feedback_report(interview_id):
        session = db.session.get(InterviewSession, interview_id)
        if session is None or session.user_id != g.user.id:
            return jsonify({'error': 'Interview not found'}), 404
        try:
            pdf = render_feedback_report(session, g.user)
        except Exception:
            logger.exception("PDF generation failed for %s", interview_id)
            return jsonify({'error': 'Failed to generate feedback report'}), 500
        return send_file(
            BytesIO(pdf), mimetype='application/pdf', as_attachment=True,
            download_name=report_filename(g.user, session),
        )

    @stt_bp.route('/speech-to-text', methods=['POST'])
    @login_required
    def speech_to_text():
        upload = request.files.get('audio')
        if upload is None:
            return jsonify({'error': 'No audio uploaded'}), 400
        audio = upload.read()
        if not audio:
            return jsonify({'error': 'No audio uploaded'}), 400
        if not llm.configured:
            return jsonify({'error': 'GEMINI_API_KEY not configured'}), 500

        settings = current_app.config['SETTINGS']
        correct = request.form.get('correct')
        correct = settings.stt_text_correction if correct is None else correct.lower() in ('1', 'true', 'yes')
        try:
            text = transcribe(llm, audio, upload.mimetype, correct=correct)
        except SpeechError as e:
            logger.error("STT Error: %s", e)
            return jsonify({'error': 'Speech to text failed'}), 502
        return jsonify({'text': text})

    @tts_bp.route('/synthesize', methods=['POST'])
    @login_required
    def synthesize():
        data = request.get_json(silent=True) or {}
        text = data.get('text') or ''
        if not text.strip():
            return jsonify({'error': 'Text is required'}), 400
        if len(text) > MAX_TTS_CHARS:
            return jsonify({'error': f'Text must be at most {MAX_TTS_CHARS} characters'}), 400
        if not tts.configured:
            return jsonify({'error': 'GEMINI_API_KEY not configured'}), 500

        try:
            audio, mime_type, voice = tts.synthesize(text, data.get('voiceName'))
        except SpeechError as e:
            logger.error("Gemini TTS error: %s", e)
            return jsonify({'error': 'Failed to synthesize speech'}), 502

        resp = current_app.response_class(audio, mimetype=mime_type)
        resp.headers['Cache-Control'] = 'no-store'
        resp.headers['X-TTS-Provider'] = tts.provider
        resp.headers['X-TTS-Model'] = tts.model
        resp.headers['X-TTS-Audio-Format'] = mime_type
        resp.headers['X-TTS-Voice'] = voice
        return resp

    for bp in (pdf_bp, stt_bp, tts_bp):
        app.register_blueprint(bp)
