import logging
import secrets

from flask import Blueprint, current_app, g, jsonify, request

from analytics import build_analytics, latest_result_for, user_interviews
from auth import login_required
from behavior import analyze_frames
from extensions import db
from interview_logic import QuestionGenerationError, clamp_question_number
from models import HrSchedule, InterviewSession
from resume import ResumeError, extract_resume_text, infer_role
from utilities.email import send_interview_invitation
from utilities.validators import (
    is_valid_difficulty, is_valid_mode, looks_like_email, normalize_email, parse_iso_datetime,
)

logger = logging.getLogger(__name__)

NOT_CONFIGURED = {'error': 'GEMINI_API_KEY not configured'}


def _history(raw):
    """Accept history as [{question, answer}] or a plain list of question strings."""
    items = []
    for item in raw or []:
        if isinstance(item, dict):
            items.append({'question': str(item.get('question') or ''), 'answer': str(item.get('answer') or '')})
        elif isinstance(item, str):
            items.append({'question': item, 'answer': ''})
    return items


def _own_session(interview_id):
    if not interview_id:
        return None
    session = db.session.get(InterviewSession, str(interview_id))
    if session is None or session.user_id != g.user.id:
        return None
    return session


def init_app(app, services):
    """Registers the /api/questions blueprint using the services built by the app factory."""
    bp = Blueprint('questions', __name__, url_prefix='/api/questions')
    llm = services['llm']
    orchestrator = services['orchestrator']
    evaluator = services['evaluator']
    finalizer = services['finalizer']
    queue = services['queue']

    # === Interview Flow ===

    @bp.route('/next-question', methods=['POST'])
    def next_question():
        """Returns exactly one generated question for the given role/mode/difficulty and history."""
        data = request.get_json(silent=True) or {}
        role = (data.get('role') or '').strip()
        mode = data.get('mode') or ''
        difficulty = data.get('difficulty') or ''
        resume_context = data.get('resumeContext') or ''

        if not (role or resume_context) or not mode or not difficulty:
            return jsonify({'error': 'Role (or resume), mode and difficulty are required.'}), 400
        if not llm.configured:
            return jsonify(NOT_CONFIGURED), 500

        question_number = clamp_question_number(data.get('questionNumber', 1))
        try:
            result = orchestrator.next_question(
                role or 'candidate matching the resume', mode, difficulty, question_number,
                last_question=data.get('lastQuestion') or '',
                last_answer=data.get('lastAnswer') or '',
                history=_history(data.get('history')),
                resume_context=resume_context,
            )
        except QuestionGenerationError:
            return jsonify({'error': 'Failed to generate question'}), 500

        return jsonify({
            'question': result.question,
            'questionNumber': question_number,
            'attempts': result.attempts,
        })

    @bp.route('/create-interview', methods=['POST'])
    @login_required
    def create_interview():
        data = request.get_json(silent=True) or {}
        role = (data.get('role') or '').strip()
        mode = data.get('mode')
        difficulty = data.get('difficulty')

        if not role or not mode or not difficulty:
            return jsonify({'error': 'Role, mode and difficulty are required.'}), 400
        if not is_valid_mode(mode) or not is_valid_difficulty(difficulty):
            return jsonify({'error': 'Invalid mode or difficulty.'}), 400

        session = InterviewSession(user_id=g.user.id, role=role, mode=mode, difficulty=difficulty)
        db.session.add(session)
        db.session.commit()
        logger.info("Created interview %s for user %s", session.id, g.user.id)
        return jsonify({'message': 'Interview created', 'interviewId': session.id,
                        'interview': session.to_dict()}), 201

    @bp.route('/evaluate', methods=['POST'])
    @login_required
    def evaluate():
        """Queues evaluation of one answer and returns at once with the task id."""
        data = request.get_json(silent=True) or {}
        question = (data.get('question') or '').strip()
        answer = data.get('answer') or ''
        try:
            question_number = int(data.get('questionNumber'))
        except (TypeError, ValueError):
            question_number = 0

        if not data.get('interviewId') or not question or question_number < 1:
            return jsonify({'error': 'interviewId, questionNumber and question are required.'}), 400

        session = _own_session(data.get('interviewId'))
        if session is None:
            return jsonify({'error': 'Interview not found'}), 404
        if session.is_finalized:
            return jsonify({'error': 'Interview already finalized'}), 409
        if not llm.configured:
            return jsonify(NOT_CONFIGURED), 500

        task_id = queue.submit(
            session.id, question_number, evaluator.evaluate,
            session.id, question_number, question, answer, g.user.id,
        )
        return jsonify({'message': 'Evaluation started', 'taskId': task_id, 'status': 'pending'}), 202

    @bp.route('/evaluation-status/<task_id>', methods=['GET'])
    @login_required
    def evaluation_status(task_id):
        record = queue.status(task_id)
        if not record:
            return jsonify({'error': 'Task not found'}), 404
        return jsonify({'taskId': task_id, **record})

    @bp.route('/finalize-interview', methods=['POST'])
    @login_required
    def finalize_interview():
        """Closes the interview: blends verbal and behavioral scores and stores the summary."""
        data = request.get_json(silent=True) or {}
        session = _own_session(data.get('interviewId'))
        if session is None:
            return jsonify({'error': 'Interview not found'}), 404
        if session.is_finalized:
            return jsonify({'error': 'Interview already finalized'}), 409

        if data.get('frames') is not None:
            try:
                report = analyze_frames(data['frames'])
            except (KeyError, IndexError, TypeError, ValueError):
                return jsonify({'error': 'Malformed face-landmark frames.'}), 400
            behavior = report.to_dict() if report else {}
        else:
            behavior = data.get('behavior') if isinstance(data.get('behavior'), dict) else data

        settings = current_app.config['SETTINGS']
        queue.wait_for_session(session.id, timeout=settings.evaluation_wait_seconds)
        db.session.refresh(session)
        if session.is_finalized:
            return jsonify({'error': 'Interview already finalized'}), 409

        try:
            result = finalizer.finalize(session, behavior)
        except Exception:
            db.session.rollback()
            logger.exception("Finalize failed for %s", session.id)
            return jsonify({'error': 'Failed to finalize interview'}), 500
        return jsonify({'message': 'Interview finalized', **result})

    # === History & Analytics ===

    @bp.route('/user-interviews', methods=['GET'])
    @login_required
    def list_user_interviews():
        sessions = user_interviews(g.user.id)
        return jsonify({'interviews': [s.to_dict() for s in sessions]})

    @bp.route('/interview/<interview_id>', methods=['GET'])
    @login_required
    def get_interview(interview_id):
        session = _own_session(interview_id)
        if session is None:
            return jsonify({'error': 'Interview not found'}), 404
        return jsonify({'interview': session.to_dict()})

    @bp.route('/analytics', methods=['GET'])
    @login_required
    def analytics():
        return jsonify(build_analytics(user_interviews(g.user.id)))

    # === HR Mode ===

    @bp.route('/schedule-interview', methods=['POST'])
    @login_required
    def schedule_interview():
        data = request.get_json(silent=True) or {}
        name = (data.get('candidateName') or '').strip()
        email = normalize_email(data.get('candidateEmail'))
        role = (data.get('role') or '').strip()
        mode = data.get('mode')
        difficulty = data.get('difficulty')
        notes = (data.get('notes') or '').strip()
        scheduled_at = parse_iso_datetime(data.get('scheduledAt'))

        if not all([name, email, role, mode, difficulty, data.get('scheduledAt')]):
            return jsonify({'error': 'Candidate name, email, role, mode, difficulty and schedule time are required.'}), 400
        if not looks_like_email(email):
            return jsonify({'error': 'Invalid candidate email.'}), 400
        if not is_valid_mode(mode) or not is_valid_difficulty(difficulty):
            return jsonify({'error': 'Invalid mode or difficulty.'}), 400
        if scheduled_at is None:
            return jsonify({'error': 'Invalid schedule time.'}), 400
        if len(notes) > 1000:
            return jsonify({'error': 'Notes must be at most 1000 characters.'}), 400

        schedule = HrSchedule(
            hr_user_id=g.user.id, candidate_name=name, candidate_email=email,
            role=role, mode=mode, difficulty=difficulty, scheduled_at=scheduled_at,
            notes=notes, invite_token=secrets.token_urlsafe(32),
        )
        db.session.add(schedule)
        db.session.commit()

        settings = current_app.config['SETTINGS']
        invite_link = f"{settings.client_url.rstrip('/')}/guest-interview/{schedule.invite_token}"
        sent, error = send_interview_invitation(settings, schedule, invite_link)
        if not sent:
            logger.warning("Invitation email for schedule %s not sent: %s", schedule.id, error)

        return jsonify({
            'message': 'Interview scheduled successfully',
            'schedule': schedule.to_dict(),
            'invitationSent': sent,
        }), 201

    @bp.route('/hr/scheduled-interviews', methods=['GET'])
    @login_required
    def scheduled_interviews():
        schedules = (
            HrSchedule.query
            .filter_by(hr_user_id=g.user.id)
            .order_by(HrSchedule.scheduled_at.desc())
            .all()
        )
        payload = []
        for schedule in schedules:
            linked, latest = latest_result_for(schedule)
            item = schedule.to_dict()
            item['candidateUserLinked'] = linked
            item['latestResult'] = latest.to_dict(include_questions=False) if latest else None
            payload.append(item)
        return jsonify({'schedules': payload})

    # === Resume ===

    @bp.route('/extract-role-from-resume', methods=['POST'])
    @login_required
    def extract_role_from_resume():
        upload = request.files.get('resume')
        if upload is None or not upload.filename:
            return jsonify({'error': 'No resume uploaded'}), 400
        if not llm.configured:
            return jsonify(NOT_CONFIGURED), 500

        try:
            text = extract_resume_text(upload.filename, upload.read())
        except ResumeError as e:
            return jsonify({'error': str(e)}), 400
        except Exception:
            logger.exception("Resume parsing failed for %s", upload.filename)
            return jsonify({'error': 'Resume processing failed. Please select a role manually.'}), 400

        result = infer_role(llm, text)
        if isinstance(result, str):
            logger.error("Role inference failed: %s", result)
            return jsonify({'error': 'Resume processing failed. Please select a role manually.'}), 502
        return jsonify(result)

    app.register_blueprint(bp)
