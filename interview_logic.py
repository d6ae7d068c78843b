import logging
import re
from dataclasses import dataclass

from utilities.constants import (
    TOTAL_QUESTIONS, MAX_QUESTION_ATTEMPTS, DUPLICATE_OVERLAP_THRESHOLD,
    TECHNICAL_TOPICS, HR_TOPICS,
)
from utilities.llm import is_error

logger = logging.getLogger(__name__)

_NON_ALNUM = re.compile(r'[^a-z0-9\s]')
_SPACES = re.compile(r'\s+')

RESUME_CONTEXT_LIMIT = 3000

ROLE_FOCUS = {
    'frontend': 'Ground technical questions in browser, UI, state management and web performance topics.',
    'backend': 'Ground technical questions in APIs, databases, concurrency and service reliability.',
    'full stack': 'Balance questions between client-side and server-side concerns.',
    'data': 'Ground technical questions in SQL, data cleaning, statistics and reporting.',
    'devops': 'Ground technical questions in CI/CD, infrastructure, containers and monitoring.',
    'software': 'Ground technical questions in programming fundamentals, data structures and clean code.',
}


def normalize_question(text) -> str:
    """Lowercase, drop everything but letters/digits/spaces, collapse whitespace."""
    lowered = (text or '').lower()
    return _SPACES.sub(' ', _NON_ALNUM.sub(' ', lowered)).strip()


def token_overlap(a, b) -> float:
    """|tokens(a) & tokens(b)| / max(|tokens(a)|, |tokens(b)|) on normalized text."""
    tokens_a = set(normalize_question(a).split())
    tokens_b = set(normalize_question(b).split())
    if not tokens_a or not tokens_b:
        return 0.0
    return len(tokens_a & tokens_b) / max(len(tokens_a), len(tokens_b))


def is_duplicate(candidate, previous, threshold=DUPLICATE_OVERLAP_THRESHOLD) -> bool:
    normalized = normalize_question(candidate)
    if not normalized:
        return False
    for prior in previous:
        if not prior:
            continue
        if normalized == normalize_question(prior):
            return True
        if token_overlap(candidate, prior) >= threshold:
            return True
    return False


def clamp_question_number(value) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        number = 1
    return max(1, min(TOTAL_QUESTIONS, number))


class QuestionGenerationError(Exception):
    """Raised when the model cannot produce a question (upstream error or missing key)."""


@dataclass
class QuestionResult:
    question: str
    attempts: int
    duplicate: bool = False


class QuestionOrchestrator:
    """Builds interviewer prompts and asks the model for exactly one question."""

    def __init__(self, llm, max_attempts=MAX_QUESTION_ATTEMPTS):
        self.llm = llm
        self.max_attempts = max_attempts

    def topic_for(self, mode, question_number):
        table = HR_TOPICS if mode == 'HR' else TECHNICAL_TOPICS
        return table[clamp_question_number(question_number)]

    def _role_constraints(self, role):
        lowered = (role or '').lower()
        for key, text in ROLE_FOCUS.items():
            if key in lowered:
                return text
        return f"Keep questions specific to the day-to-day work of a {role}."

    def _mode_constraints(self, mode):
        if mode == 'HR':
            return (
                "This is a behavioural HR round. Ask about real past situations, motivation and soft skills. "
                "Do NOT ask coding or technical trivia questions."
            )
        return (
            "This is a technical round. Ask about concepts, reasoning and practical experience. "
            "Do NOT ask the candidate to write long code; explanations are expected."
        )

    def build_prompt(self, role, mode, difficulty, question_number, last_question='',
                     last_answer='', history=(), resume_context=''):
        q_num = clamp_question_number(question_number)
        history = list(history or [])

        if history:
            history_text = "\n\n".join(
                f"Q{i + 1}: {item.get('question', '')}\nA{i + 1}: {item.get('answer', '')}"
                for i, item in enumerate(history)
            )
        else:
            history_text = "No previous answers."

        prompt = (
            f"You are a human interviewer conducting a {mode} interview for a {role}.\n"
            f"Difficulty level: {difficulty}.\n"
            f"This is question number {q_num} out of {TOTAL_QUESTIONS}.\n"
            f"Topic focus for this question: {self.topic_for(mode, q_num)}.\n\n"
            f"{self._mode_constraints(mode)}\n"
            f"{self._role_constraints(role)}\n"
        )

        if resume_context:
            prompt += (
                "\nCandidate resume summary (use it to personalise the question):\n"
                f"{resume_context[:RESUME_CONTEXT_LIMIT]}\n"
            )

        prompt += f"\nConversation so far:\n{history_text}\n"

        if last_question and last_answer and q_num >= 3:
            prompt += (
                f'\nPrevious question:\n"{last_question}"\n\n'
                f'Candidate\'s answer:\n"{last_answer}"\n\n'
                "Ask a follow-up or deeper question based on the answer.\n"
            )
        else:
            prompt += "\nAsk a relevant interview question for the role and difficulty.\n"

        asked = self._previous_questions(history, last_question)
        if asked:
            asked_text = "\n".join(f"- {q}" for q in asked)
            prompt += f"\nQuestions already asked (do NOT repeat or rephrase any of them):\n{asked_text}\n"

        prompt += (
            "\nRules:\n"
            "- Ask ONE question\n"
            "- Keep it conversational\n"
            "- Max 50 words\n"
            "- Avoid generic phrasing\n"
            "- Return ONLY the question text\n"
        )
        return prompt

    @staticmethod
    def _previous_questions(history, last_question):
        asked = [item.get('question', '') for item in history or [] if item.get('question')]
        if last_question and last_question not in asked:
            asked.append(last_question)
        return asked

    def next_question(self, role, mode, difficulty, question_number, last_question='',
                      last_answer='', history=(), resume_context=''):
        """Return a QuestionResult for the next interview question.

        The model is asked up to ``max_attempts`` times. An empty answer or one
        flagged by ``is_duplicate`` triggers a retry with a note about the
        repeated output; after the last attempt the latest non-empty candidate
        is returned even if it is still a duplicate.

        Raises:
            QuestionGenerationError: when the model call fails and no
                candidate was produced.
        """
        base_prompt = self.build_prompt(
            role, mode, difficulty, question_number,
            last_question=last_question, last_answer=last_answer,
            history=history, resume_context=resume_context,
        )
        previous = self._previous_questions(history, last_question)

        prompt = base_prompt
        candidate = None
        duplicate = False
        attempts = 0

        for attempt in range(1, self.max_attempts + 1):
            attempts = attempt
            text = self.llm.generate(prompt)
            if is_error(text):
                if text:
                    logger.error("Question generation failed: %s", text)
                    if candidate is None:
                        raise QuestionGenerationError(text)
                    break
                text = ''

            text = text.strip().strip('"').strip()
            if not text:
                logger.warning("Empty question from model on attempt %s", attempt)
                prompt = base_prompt + "\nYour previous output was empty. Return exactly one question.\n"
                continue

            candidate = text
            duplicate = is_duplicate(text, previous)
            if not duplicate:
                break

            logger.info("Duplicate question on attempt %s: %s", attempt, text[:80])
            prompt = (
                base_prompt
                + f'\nYour previous output repeated an earlier question: "{text}". '
                "Ask a clearly different question.\n"
            )

        if candidate is None:
            raise QuestionGenerationError("Failed to generate question")
        return QuestionResult(question=candidate, attempts=attempts, duplicate=duplicate)
