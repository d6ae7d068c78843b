BREVO_SEND_URL = 'https://api.brevo.com/v3/smtp/email'

# Sentinel prefix returned by the LLM client instead of raising
ERROR_PREFIX = 'Error:'

TOTAL_QUESTIONS = 6
MAX_QUESTION_ATTEMPTS = 3
DUPLICATE_OVERLAP_THRESHOLD = 0.8

MODES = ('Technical', 'HR')
DIFFICULTIES = ('Easy', 'Medium', 'Hard')
SCHEDULE_STATUSES = ('scheduled', 'completed', 'cancelled')

ROLES = [
    'Software Developer', 'Frontend Developer', 'Backend Developer',
    'Data Analyst', 'Full Stack Developer', 'DevOps Engineer',
]

# Topic focus per question number (1-based)
TECHNICAL_TOPICS = {
    1: 'background and core fundamentals of the role',
    2: 'key technical concepts used day to day',
    3: 'practical problem solving on a realistic task',
    4: 'design and architecture thinking',
    5: 'debugging, testing and edge cases',
    6: 'best practices, trade-offs and performance',
}

HR_TOPICS = {
    1: 'self introduction and motivation for the role',
    2: 'teamwork and collaboration',
    3: 'handling conflict or disagreement',
    4: 'working under pressure and meeting deadlines',
    5: 'strengths, weaknesses and personal growth',
    6: 'career goals and culture fit',
}

# Verbal/behavioral blend used for the final score
VERBAL_WEIGHT = 0.7
BEHAVIORAL_WEIGHT = 0.3

BEHAVIOR_FIELDS = (
    'eyeContact', 'confidence', 'engagement', 'professionalism',
    'stability', 'facePresence', 'blinkRate',
)

SESSION_COOKIE = 'token'
TASK_TTL_SEC = 60 * 60 * 24
