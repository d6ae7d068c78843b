import io
import logging

import pdfplumber
from docx import Document

from utilities.constants import ROLES
from utilities.llm import is_error
from utilities.model_json import parse_model_json

logger = logging.getLogger(__name__)

RESUME_TEXT_LIMIT = 6000
SUPPORTED_EXTENSIONS = ('.pdf', '.docx', '.txt')


class ResumeError(ValueError):
    """The uploaded file could not be read as a resume."""


def extract_resume_text(filename: str, raw: bytes) -> str:
    name = (filename or '').lower()
    if name.endswith('.pdf'):
        text = ""
        with pdfplumber.open(io.BytesIO(raw)) as pdf:
            for page in pdf.pages:
                text += (page.extract_text() or "") + "\n"
    elif name.endswith('.docx'):
        doc = Document(io.BytesIO(raw))
        text = "\n".join(p.text for p in doc.paragraphs)
    elif name.endswith('.txt'):
        text = raw.decode('utf-8', errors='ignore')
    else:
        raise ResumeError("Unsupported resume format. Upload a PDF, DOCX or TXT file.")
    text = text.strip()
    if not text:
        raise ResumeError("Could not read any text from the resume.")
    return text


def build_role_prompt(text: str) -> str:
    roles = ", ".join(ROLES)
    return f"""Read the resume below and decide which interview role fits the candidate best.

Rules:
- "role" must be exactly one of: {roles}. Use an empty string if none fits.
- "resumeContext" is a short summary (max 80 words) of skills, projects and experience useful to an interviewer.
- Do not include explanations or any other keys.

Return ONLY JSON:
{{"role": "...", "resumeContext": "..."}}

Resume Text:
{text[:RESUME_TEXT_LIMIT]}
"""


def infer_role(llm, text: str):
    """Return ``{"role", "resumeContext"}`` or the client's ``Error:`` string on upstream failure."""
    response = llm.generate(build_role_prompt(text))
    if is_error(response):
        return response or "Error: Empty response"
    parsed = parse_model_json(response, default={})
    role = parsed.get('role') if isinstance(parsed.get('role'), str) else ''
    matched = next((r for r in ROLES if r.lower() == role.strip().lower()), '')
    context = parsed.get('resumeContext')
    if not isinstance(context, str) or not context.strip():
        logger.info("Model gave no resume summary; falling back to raw resume excerpt")
        context = text[:500]
    return {'role': matched, 'resumeContext': context.strip()}
