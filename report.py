import re
from io import BytesIO

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.utils import simpleSplit
from reportlab.pdfgen import canvas as pdf_canvas

BRAND = 'PREVUE.AI'
DARK = colors.HexColor('#0F172A')
ACCENT = colors.HexColor('#3B82F6')
MUTED = colors.HexColor('#64748B')
BODY = colors.HexColor('#334155')
LIGHT = colors.HexColor('#F8FAFC')
GREEN = colors.HexColor('#10B981')
AMBER = colors.HexColor('#F59E0B')
RED = colors.HexColor('#EF4444')

MARGIN = 50
BOTTOM = 60


def _safe(text):
    return re.sub(r'[^a-zA-Z0-9]+', '_', text or '').strip('_')


def report_filename(user, session):
    name = _safe((user.name if user else '') or 'User') or 'User'
    created = session.created_at
    date = f"{created.day}-{created.strftime('%b')}-{created.year}"
    return f"{name}_{_safe(session.role)}_{date}.pdf"


def _status(avg_pct):
    if avg_pct >= 70:
        return 'PASS', GREEN
    if avg_pct >= 50:
        return 'AVG', AMBER
    return 'LOW', RED


class _Writer:
    """Keeps a y cursor on a reportlab canvas and starts new pages as needed."""

    def __init__(self, canvas):
        self.c = canvas
        self.width, self.height = A4
        self.y = self.height - MARGIN

    def ensure(self, needed, title):
        if self.y - needed < BOTTOM:
            self.c.showPage()
            self.c.setFillColor(DARK)
            self.c.rect(0, self.height - 30, self.width, 30, stroke=0, fill=1)
            self.c.setFillColor(LIGHT)
            self.c.setFont('Helvetica-Bold', 10)
            self.c.drawString(MARGIN, self.height - 19, f"{BRAND} - {title}")
            self.y = self.height - 50

    def paragraph(self, text, font='Helvetica', size=9, color=BODY, x=MARGIN + 5, width=485, title='Interview Report'):
        lines = simpleSplit(text or '', font, size, width)
        for line in lines:
            self.ensure(size + 4, title)
            self.c.setFont(font, size)
            self.c.setFillColor(color)
            self.c.drawString(x, self.y, line)
            self.y -= size + 3

    def rule(self):
        self.c.setStrokeColor(colors.HexColor('#CBD5E1'))
        self.c.setLineWidth(0.5)
        self.c.line(MARGIN, self.y, self.width - MARGIN, self.y)
        self.y -= 15

    def heading(self, text):
        self.ensure(30, 'Interview Report')
        self.c.setFillColor(DARK)
        self.c.setFont('Helvetica-Bold', 11)
        self.c.drawString(MARGIN, self.y, text)
        self.y -= 20


def render_feedback_report(session, user) -> bytes:
    """Render the interview feedback report and return the PDF bytes."""
    buf = BytesIO()
    c = pdf_canvas.Canvas(buf, pagesize=A4)
    w = _Writer(c)
    width, height = A4

    # Header
    c.setFillColor(DARK)
    c.rect(0, height - 120, width, 120, stroke=0, fill=1)
    c.setFillColor(ACCENT)
    c.rect(0, height - 124, width, 4, stroke=0, fill=1)
    c.setFillColor(LIGHT)
    c.setFont('Helvetica-Bold', 22)
    c.drawString(MARGIN, height - 45, BRAND)
    c.setFillColor(MUTED)
    c.setFont('Helvetica', 9)
    c.drawString(MARGIN, height - 60, 'INTERVIEW PERFORMANCE REPORT')

    name = ((user.name if user else '') or 'User').strip()
    c.setFillColor(LIGHT)
    c.setFont('Helvetica-Bold', 14)
    c.drawRightString(width - MARGIN, height - 35, name.upper())
    c.setFillColor(colors.HexColor('#94A3B8'))
    c.setFont('Helvetica', 9)
    c.drawRightString(width - MARGIN, height - 50, user.email if user else '')
    c.drawRightString(width - MARGIN, height - 64, f"{session.role} | {session.mode} | {session.difficulty}")
    c.drawRightString(width - MARGIN, height - 78, session.created_at.strftime('%b %d, %Y'))

    # Overall score and metrics
    w.y = height - 150
    w.heading('OVERALL SCORE')
    box_top = w.y + 8
    c.setFillColor(DARK)
    c.rect(MARGIN, box_top - 60, 120, 60, stroke=0, fill=1)
    c.setFillColor(ACCENT)
    c.setFont('Helvetica-Bold', 28)
    c.drawCentredString(MARGIN + 60, box_top - 35, f"{round((session.total_score or 0) * 10)}%")
    c.setFillColor(MUTED)
    c.setFont('Helvetica', 8)
    c.drawCentredString(MARGIN + 60, box_top - 52, 'PERFORMANCE')

    technical = [
        ('Correctness', (session.overall_correctness or 0) * 10),
        ('Depth', (session.overall_depth or 0) * 10),
        ('Structure', (session.overall_structure or 0) * 10),
    ]
    behavioral = [
        ('Confidence', session.confidence or 0),
        ('Eye Contact', session.eye_contact or 0),
        ('Stability', session.stability or 0),
    ]
    for x, title, rows in ((190, 'TECHNICAL METRICS', technical), (380, 'BEHAVIORAL METRICS', behavioral)):
        c.setFillColor(colors.HexColor('#475569'))
        c.setFont('Helvetica-Bold', 9)
        c.drawString(x, box_top - 8, title)
        for i, (label, pct) in enumerate(rows):
            row_y = box_top - 24 - i * 14
            c.setFillColor(colors.HexColor('#1E293B'))
            c.setFont('Helvetica', 9)
            c.drawString(x, row_y, label)
            c.setFillColor(DARK)
            c.setFont('Helvetica-Bold', 9)
            c.drawString(x + 90, row_y, f"{pct:.1f}%")
    w.y = box_top - 80
    w.rule()

    # Feedback summary
    w.heading('PERFORMANCE ANALYSIS')
    summary = session.feedback_summary or {}
    sections = (
        ('[+] STRENGTHS', GREEN, summary.get('pros') or [], 'No strengths recorded'),
        ('[-] AREAS FOR IMPROVEMENT', RED, summary.get('cons') or [], 'No areas recorded'),
    )
    for title, color, items, empty in sections:
        w.ensure(40, 'Interview Report')
        c.setFillColor(DARK)
        c.rect(MARGIN, w.y - 5, 495, 18, stroke=0, fill=1)
        c.setFillColor(color)
        c.setFont('Helvetica-Bold', 9)
        c.drawString(MARGIN + 8, w.y, title)
        w.y -= 20
        if items:
            for item in items:
                w.paragraph(f"- {item}")
                w.y -= 2
        else:
            w.paragraph(empty, color=colors.HexColor('#94A3B8'))
        w.y -= 8

    plan = summary.get('improvementPlan')
    if plan:
        w.ensure(40, 'Interview Report')
        c.setFillColor(colors.HexColor('#1E293B'))
        c.rect(MARGIN, w.y - 5, 495, 18, stroke=0, fill=1)
        c.setFillColor(ACCENT)
        c.setFont('Helvetica-Bold', 9)
        c.drawString(MARGIN + 8, w.y, '[>] RECOMMENDED ACTION PLAN')
        w.y -= 20
        w.paragraph(plan)
        w.y -= 10
    w.rule()

    # Per-question analysis
    w.heading('QUESTION ANALYSIS')
    for record in session.ordered_records():
        w.ensure(80, 'Question Analysis (continued)')
        c.setFillColor(DARK)
        c.rect(MARGIN, w.y - 8, 495, 22, stroke=0, fill=1)
        c.setFillColor(ACCENT)
        c.setFont('Helvetica-Bold', 10)
        c.drawString(MARGIN + 8, w.y, f"Q{record.question_number}")

        for x, label, value in ((380, 'COR', record.correctness), (420, 'DEP', record.depth), (460, 'STR', record.structure)):
            c.setFillColor(MUTED)
            c.setFont('Helvetica', 7)
            c.drawString(x, w.y + 5, label)
            c.setFillColor(LIGHT)
            c.setFont('Helvetica-Bold', 8)
            c.drawString(x, w.y - 4, f"{value * 10:.0f}%" if value is not None else '-')

        avg = ((record.correctness or 0) + (record.depth or 0) + (record.structure or 0)) / 3 * 10
        label, color = _status(avg)
        c.setFillColor(color)
        c.rect(510, w.y - 4, 30, 14, stroke=0, fill=1)
        c.setFillColor(colors.white)
        c.setFont('Helvetica-Bold', 7)
        c.drawCentredString(525, w.y, label)
        w.y -= 26

        w.paragraph(record.question or 'N/A', font='Helvetica-Bold', size=10, color=DARK,
                    title='Question Analysis (continued)')
        w.y -= 6
        w.paragraph('MODEL ANSWER', font='Helvetica-Bold', size=8, color=MUTED, title='Question Analysis (continued)')
        w.paragraph(record.ideal_answer or 'N/A', color=colors.HexColor('#475569'),
                    title='Question Analysis (continued)')
        if record.feedback:
            w.y -= 4
            w.paragraph('FEEDBACK', font='Helvetica-Bold', size=8, color=MUTED, title='Question Analysis (continued)')
            w.paragraph(record.feedback, title='Question Analysis (continued)')
        w.y -= 16

    # Footer
    w.ensure(30, 'Interview Report')
    w.rule()
    c.setFillColor(colors.HexColor('#94A3B8'))
    c.setFont('Helvetica', 8)
    c.drawCentredString(width / 2, w.y, f'Generated by {BRAND} | AI-Powered Interview Analytics')

    c.save()
    return buf.getvalue()
