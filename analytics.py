from models import InterviewSession, User
from scorecard import mean, round_half_up
from utilities.constants import DIFFICULTIES, MODES


def _pct(score):
    """0-10 score to a 0-100 percentage."""
    return round_half_up((score or 0.0) * 10)


def user_interviews(user_id):
    return (
        InterviewSession.query
        .filter_by(user_id=user_id)
        .order_by(InterviewSession.created_at.desc())
        .all()
    )


def build_analytics(sessions):
    """Summarize a user's interviews (``sessions`` newest first) for the dashboard."""
    if not sessions:
        return {
            'totalInterviews': 0,
            'averageScore': 0,
            'bestScore': 0,
            'recentScore': 0,
            'skillTrends': [],
            'performanceByDifficulty': [],
            'modeBreakdown': [],
            'recentInterviews': [],
        }

    scores = [s.total_score or 0.0 for s in sessions]
    chronological = list(reversed(sessions))

    skill_trends = [
        {
            'interview': f"#{i + 1}",
            'date': s.created_at.isoformat() + 'Z' if s.created_at else None,
            'correctness': _pct(s.overall_correctness),
            'depth': _pct(s.overall_depth),
            'structure': _pct(s.overall_structure),
            'totalScore': _pct(s.total_score),
        }
        for i, s in enumerate(chronological)
    ]

    by_difficulty = []
    for difficulty in DIFFICULTIES:
        subset = [s.total_score or 0.0 for s in sessions if s.difficulty == difficulty]
        if subset:
            by_difficulty.append({
                'difficulty': difficulty,
                'averageScore': _pct(mean(subset)),
                'count': len(subset),
            })

    by_mode = []
    for mode in MODES:
        subset = [s.total_score or 0.0 for s in sessions if s.mode == mode]
        if subset:
            by_mode.append({'mode': mode, 'averageScore': _pct(mean(subset)), 'count': len(subset)})

    return {
        'totalInterviews': len(sessions),
        'averageScore': round_half_up(mean(scores)),
        'bestScore': max(scores),
        'recentScore': scores[0],
        'skillTrends': skill_trends,
        'performanceByDifficulty': by_difficulty,
        'modeBreakdown': by_mode,
        'recentInterviews': [
            {
                'id': s.id,
                'role': s.role,
                'mode': s.mode,
                'difficulty': s.difficulty,
                'score': s.total_score or 0.0,
                'createdAt': s.created_at.isoformat() + 'Z' if s.created_at else None,
            }
            for s in sessions[:5]
        ],
    }


def latest_result_for(schedule):
    """Soft join from a schedule to the candidate's interview.

    Candidate email -> user account, then that user's sessions with the same
    role and mode created at or after the scheduled time. Returns
    ``(user_linked, latest_session_or_None)``.
    """
    candidate = User.query.filter_by(email=schedule.candidate_email).first()
    if candidate is None:
        return False, None
    latest = (
        InterviewSession.query
        .filter(
            InterviewSession.user_id == candidate.id,
            InterviewSession.role == schedule.role,
            InterviewSession.mode == schedule.mode,
            InterviewSession.created_at >= schedule.scheduled_at,
        )
        .order_by(InterviewSession.created_at.desc())
        .first()
    )
    return True, latest
