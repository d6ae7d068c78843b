import logging
import math

from sqlalchemy.exc import IntegrityError

from extensions import db
from models import InterviewSession, QuestionRecord, utcnow
from utilities.constants import VERBAL_WEIGHT, BEHAVIORAL_WEIGHT, BEHAVIOR_FIELDS
from utilities.llm import is_error
from utilities.model_json import parse_model_json
from utilities.validators import to_score

logger = logging.getLogger(__name__)


class EvaluationError(Exception):
    """An answer could not be evaluated (upstream failure or unknown session)."""


def round_half_up(value, digits=1):
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def mean(values):
    values = list(values)
    return sum(values) / len(values) if values else 0.0


def verbal_averages(records):
    """Average correctness/depth/structure over records, missing scores counting as 0."""
    records = list(records)
    if not records:
        return 0.0, 0.0, 0.0
    return tuple(
        round_half_up(mean((getattr(r, axis) or 0.0) for r in records))
        for axis in ('correctness', 'depth', 'structure')
    )


def provisional_total(correctness, depth, structure):
    return round_half_up(mean((correctness, depth, structure)))


def blended_total_score(correctness, depth, structure, eye_contact, confidence, stability):
    """Blend verbal (0-10) and behavioral (0-100) scores into one 0-10 total.

    verbal = mean(correctness, depth, structure)
    behavioral = mean(eye_contact, confidence, stability) / 10
    total = round((verbal * 0.7 + behavioral * 0.3) * 10) / 10
    """
    verbal = mean((correctness, depth, structure))
    behavioral = mean((eye_contact, confidence, stability)) / 10
    total = round_half_up(verbal * VERBAL_WEIGHT + behavioral * BEHAVIORAL_WEIGHT)
    return max(0.0, min(10.0, total))


def normalize_behavior(bundle):
    """Map an incoming behavioral bundle onto the stored fields, 0-100, missing as 0."""
    bundle = dict(bundle or {})
    if bundle.get('confidence') is None and bundle.get('avgConfidence') is not None:
        bundle['confidence'] = bundle['avgConfidence']
    normalized = {}
    for field in BEHAVIOR_FIELDS:
        value = to_score(bundle.get(field), 0.0, 100.0)
        normalized[field] = value if value is not None else 0.0
    return normalized


def apply_verbal_averages(session):
    correctness, depth, structure = verbal_averages(session.records.values())
    session.overall_correctness = correctness
    session.overall_depth = depth
    session.overall_structure = structure
    return correctness, depth, structure


def upsert_record(session, question_number, **fields):
    """Write the record for ``question_number``, replacing any earlier evaluation."""
    record = session.records.get(question_number)
    if record is None:
        record = QuestionRecord(question_number=question_number)
        session.records[question_number] = record
    for key, value in fields.items():
        setattr(record, key, value)
    record.evaluated_at = utcnow()
    return record


def generate_ideal_answer(llm, question, role=''):
    """Asks the LLM to provide an ideal answer to a given interview question."""
    expert = f"an experienced {role}" if role else "a world-class expert interviewer"
    prompt = f"""You are {expert}. Provide a concise, ideal answer to the following interview question. Focus on accuracy and clarity. Keep it under 150 words.

Question: {question}

Ideal Answer:"""
    return llm.generate(prompt)


def build_evaluation_prompt(question, answer, ideal_answer):
    return f"""You are evaluating a candidate's interview answer against an ideal answer.

Question: {question}

Ideal answer: {ideal_answer}

Candidate answer: {answer or "(no answer given)"}

Score the candidate answer from 0 to 10 on each axis:
- correctness: is the content accurate compared with the ideal answer?
- depth: does it show understanding beyond the surface?
- structure: is it clear, organised and easy to follow?

Return ONLY JSON in this format:
{{"correctness": <0-10>, "depth": <0-10>, "structure": <0-10>, "feedback": "<two or three sentences>"}}"""


def parse_evaluation(text):
    """Turn the model's evaluation into scores and feedback.

    When the response is not parseable JSON, all three scores are None and the
    raw model text is kept as the feedback.
    """
    parsed = parse_model_json(text)
    if parsed is None:
        logger.warning("Evaluation response was not JSON; storing raw text as feedback")
        return {'correctness': None, 'depth': None, 'structure': None, 'feedback': text}
    feedback = parsed.get('feedback')
    return {
        'correctness': to_score(parsed.get('correctness')),
        'depth': to_score(parsed.get('depth')),
        'structure': to_score(parsed.get('structure')),
        'feedback': feedback if isinstance(feedback, str) else (text if feedback is None else str(feedback)),
    }


class AnswerEvaluator:
    """Scores one answer against a model-generated ideal answer and stores it."""

    def __init__(self, llm):
        self.llm = llm

    def evaluate(self, session_id, question_number, question, answer, user_id=None):
        """Evaluate and persist one answer. Runs on a background worker.

        Returns the stored record as a dict, or None when the session has
        already been finalized.

        Raises:
            EvaluationError: unknown session or a failed model call.
        """
        session = db.session.get(InterviewSession, session_id)
        if session is None or (user_id is not None and session.user_id != user_id):
            raise EvaluationError(f"Interview {session_id} not found")
        if session.is_finalized:
            logger.warning("Skipping evaluation of Q%s: interview %s already finalized", question_number, session_id)
            return None

        ideal_answer = generate_ideal_answer(self.llm, question, session.role)
        if is_error(ideal_answer):
            raise EvaluationError(ideal_answer or "Empty ideal answer")

        raw = self.llm.generate(build_evaluation_prompt(question, answer, ideal_answer))
        if is_error(raw):
            raise EvaluationError(raw or "Empty evaluation")

        scores = parse_evaluation(raw)
        fields = dict(scores, question=question, answer=answer or '', ideal_answer=ideal_answer)

        try:
            record = self._store(session, question_number, fields)
        except IntegrityError:
            # A concurrent evaluation inserted the same number first; overwrite it.
            db.session.rollback()
            session = db.session.get(InterviewSession, session_id)
            record = self._store(session, question_number, fields)

        if record is None:
            logger.warning(
                "Discarding evaluation of Q%s: interview %s was finalized while it was scored",
                question_number, session_id,
            )
            return None

        logger.info(
            "Evaluated Q%s of %s: correctness=%s depth=%s structure=%s",
            question_number, session_id, record.correctness, record.depth, record.structure,
        )
        return record.to_dict()

    def _store(self, session, question_number, fields):
        """Upsert the record and the provisional aggregates unless the session is finalized.

        The model calls take seconds, so the session is re-read first and the
        aggregate write is conditional on ``completed_at IS NULL``. A finalize
        committed in the meantime leaves the session untouched and this
        returns None.
        """
        db.session.refresh(session)
        if session.is_finalized:
            db.session.rollback()
            return None

        record = upsert_record(session, question_number, **fields)
        correctness, depth, structure = verbal_averages(session.records.values())
        claimed = (
            InterviewSession.query
            .filter(InterviewSession.id == session.id, InterviewSession.completed_at.is_(None))
            .update({
                InterviewSession.overall_correctness: correctness,
                InterviewSession.overall_depth: depth,
                InterviewSession.overall_structure: structure,
                InterviewSession.total_score: provisional_total(correctness, depth, structure),
            }, synchronize_session=False)
        )
        if not claimed:
            db.session.rollback()
            return None
        db.session.commit()
        return record


def build_summary_prompt(session):
    log = []
    for record in session.ordered_records():
        log.append(
            f"Q{record.question_number}: {record.question}\n"
            f"Answer: {record.answer or '(no answer)'}\n"
            f"Scores: correctness={record.correctness}, depth={record.depth}, structure={record.structure}\n"
            f"Feedback: {record.feedback or ''}"
        )
    transcript = "\n\n".join(log) or "No answers were recorded."
    return f"""You are a senior interviewer writing feedback for a {session.mode} interview for a {session.role} ({session.difficulty}).

Interview log:
{transcript}

Behavioral scores (0-100): eye contact {session.eye_contact}, confidence {session.confidence}, stability {session.stability}.

Return ONLY JSON in this format:
{{"pros": ["...", "...", "..."], "cons": ["...", "...", "..."], "improvementPlan": "<one sentence>"}}
Give exactly 3 pros, exactly 3 cons and one improvement sentence."""


def _string_list(value):
    if not isinstance(value, list):
        return []
    return [str(item).strip() for item in value if str(item).strip()][:3]


class Finalizer:
    """Closes a session: verbal averages, behavioral scores, blended total, summary."""

    def __init__(self, llm):
        self.llm = llm

    def feedback_summary(self, session):
        """Ask the model for pros/cons/plan. Returns None on any failure."""
        try:
            text = self.llm.generate(build_summary_prompt(session))
            if is_error(text):
                logger.error("Feedback summary failed for %s: %s", session.id, text)
                return None
            parsed = parse_model_json(text)
            if parsed is None:
                logger.error("Feedback summary for %s was not JSON", session.id)
                return None
            plan = parsed.get('improvementPlan')
            return {
                'pros': _string_list(parsed.get('pros')),
                'cons': _string_list(parsed.get('cons')),
                'improvementPlan': plan.strip() if isinstance(plan, str) else '',
            }
        except Exception:
            logger.exception("Feedback summary crashed for %s", session.id)
            return None

    def finalize(self, session, behavior):
        correctness, depth, structure = apply_verbal_averages(session)

        scores = normalize_behavior(behavior)
        session.eye_contact = scores['eyeContact']
        session.confidence = scores['confidence']
        session.engagement = scores['engagement']
        session.professionalism = scores['professionalism']
        session.stability = scores['stability']
        session.face_presence = scores['facePresence']
        session.blink_rate = scores['blinkRate']

        session.total_score = blended_total_score(
            correctness, depth, structure,
            session.eye_contact, session.confidence, session.stability,
        )
        session.feedback_summary = self.feedback_summary(session)
        session.completed_at = utcnow()
        db.session.commit()

        logger.info("Finalized interview %s with total score %s", session.id, session.total_score)
        return {
            'interviewId': session.id,
            'totalScore': session.total_score,
            'overallCorrectness': correctness,
            'overallDepth': depth,
            'overallStructure': structure,
            'behavior': session.behavior_dict(),
            'feedbackSummary': session.feedback_summary,
        }
