import uuid
from datetime import datetime, timezone

from sqlalchemy.orm import attribute_keyed_dict

from extensions import db

# Note: The db instance is created in extensions.py
# and initialized in the app factory to avoid circular imports.


def utcnow():
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id():
    return uuid.uuid4().hex


def _iso(value):
    return value.isoformat() + 'Z' if value else None


class User(db.Model):
    """An account; candidates and recruiters share the same table."""
    __tablename__ = 'users'

    id = db.Column(db.String(32), primary_key=True, default=new_id)
    name = db.Column(db.String(150), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(512), nullable=False)
    profile_image = db.Column(db.String(255), nullable=True)
    reset_password_token = db.Column(db.String(64), nullable=True, index=True)
    reset_password_expire = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)

    def to_public_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'email': self.email,
            'avatar': self.profile_image,
        }

    def __repr__(self):
        return f'<User {self.email}>'


class InterviewSession(db.Model):
    """Represents a single interview attempt and its scores."""
    __tablename__ = 'interview_sessions'

    id = db.Column(db.String(32), primary_key=True, default=new_id)
    user_id = db.Column(db.String(32), db.ForeignKey('users.id'), nullable=False, index=True)
    role = db.Column(db.String(150), nullable=False)
    mode = db.Column(db.String(20), nullable=False)
    difficulty = db.Column(db.String(20), nullable=False)

    # Verbal aggregates, 0-10
    overall_correctness = db.Column(db.Float, default=0.0, nullable=False)
    overall_depth = db.Column(db.Float, default=0.0, nullable=False)
    overall_structure = db.Column(db.Float, default=0.0, nullable=False)

    # Behavioral scores, 0-100
    eye_contact = db.Column(db.Float, default=0.0, nullable=False)
    confidence = db.Column(db.Float, default=0.0, nullable=False)
    engagement = db.Column(db.Float, default=0.0, nullable=False)
    professionalism = db.Column(db.Float, default=0.0, nullable=False)
    stability = db.Column(db.Float, default=0.0, nullable=False)
    face_presence = db.Column(db.Float, default=0.0, nullable=False)
    blink_rate = db.Column(db.Float, default=0.0, nullable=False)

    total_score = db.Column(db.Float, default=0.0, nullable=False)
    feedback_summary = db.Column(db.JSON, nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow, index=True)
    completed_at = db.Column(db.DateTime, nullable=True)

    # question_number -> QuestionRecord; assigning a key replaces the old record
    records = db.relationship(
        'QuestionRecord',
        collection_class=attribute_keyed_dict('question_number'),
        cascade='all, delete-orphan',
        backref='session',
        lazy='select',
    )

    @property
    def is_finalized(self):
        return self.completed_at is not None

    def ordered_records(self):
        return [self.records[n] for n in sorted(self.records)]

    def behavior_dict(self):
        return {
            'eyeContact': self.eye_contact,
            'confidence': self.confidence,
            'engagement': self.engagement,
            'professionalism': self.professionalism,
            'stability': self.stability,
            'facePresence': self.face_presence,
            'blinkRate': self.blink_rate,
        }

    def to_dict(self, include_questions=True):
        data = {
            '_id': self.id,
            'id': self.id,
            'userId': self.user_id,
            'role': self.role,
            'mode': self.mode,
            'difficulty': self.difficulty,
            'overallCorrectness': self.overall_correctness,
            'overallDepth': self.overall_depth,
            'overallStructure': self.overall_structure,
            'totalScore': self.total_score,
            'feedbackSummary': self.feedback_summary,
            'createdAt': _iso(self.created_at),
            'completedAt': _iso(self.completed_at),
        }
        data.update(self.behavior_dict())
        if include_questions:
            data['questions'] = [r.to_dict() for r in self.ordered_records()]
        return data

    def __repr__(self):
        return f'<InterviewSession {self.id} {self.role}/{self.mode}>'


class QuestionRecord(db.Model):
    """One question's answer and evaluation within a session."""
    __tablename__ = 'question_records'
    __table_args__ = (
        db.UniqueConstraint('session_id', 'question_number', name='uq_question_per_session'),
    )

    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.String(32), db.ForeignKey('interview_sessions.id'), nullable=False)
    question_number = db.Column(db.Integer, nullable=False)
    question = db.Column(db.Text, nullable=False, default='')
    answer = db.Column(db.Text, nullable=False, default='')
    ideal_answer = db.Column(db.Text, nullable=True)
    correctness = db.Column(db.Float, nullable=True)
    depth = db.Column(db.Float, nullable=True)
    structure = db.Column(db.Float, nullable=True)
    feedback = db.Column(db.Text, nullable=True)
    evaluated_at = db.Column(db.DateTime, default=utcnow)

    def to_dict(self):
        return {
            'questionNumber': self.question_number,
            'question': self.question,
            'answer': self.answer,
            'idealAnswer': self.ideal_answer,
            'correctness': self.correctness,
            'depth': self.depth,
            'structure': self.structure,
            'feedback': self.feedback,
        }

    def __repr__(self):
        return f'<QuestionRecord {self.question_number} for {self.session_id}>'


class HrSchedule(db.Model):
    """A recruiter-initiated guest interview invitation."""
    __tablename__ = 'hr_schedules'

    id = db.Column(db.String(32), primary_key=True, default=new_id)
    hr_user_id = db.Column(db.String(32), db.ForeignKey('users.id'), nullable=False, index=True)
    candidate_name = db.Column(db.String(150), nullable=False)
    candidate_email = db.Column(db.String(255), nullable=False, index=True)
    role = db.Column(db.String(150), nullable=False)
    mode = db.Column(db.String(20), nullable=False)
    difficulty = db.Column(db.String(20), nullable=False)
    scheduled_at = db.Column(db.DateTime, nullable=False)
    notes = db.Column(db.String(1000), default='')
    status = db.Column(db.String(20), default='scheduled', nullable=False)
    invite_token = db.Column(db.String(64), unique=True, nullable=False, index=True)
    invitation_sent_at = db.Column(db.DateTime, default=utcnow)
    created_at = db.Column(db.DateTime, default=utcnow)

    def to_dict(self):
        return {
            '_id': self.id,
            'id': self.id,
            'candidateName': self.candidate_name,
            'candidateEmail': self.candidate_email,
            'role': self.role,
            'mode': self.mode,
            'difficulty': self.difficulty,
            'scheduledAt': _iso(self.scheduled_at),
            'notes': self.notes or '',
            'status': self.status,
            'invitationSentAt': _iso(self.invitation_sent_at),
            'createdAt': _iso(self.created_at),
        }

    def __repr__(self):
        return f'<HrSchedule {self.id} for {self.candidate_email}>'
