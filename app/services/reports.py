"""
Monthly attendance report for one university.

The figures are computed from enrolled, non-deleted students and the
absences recorded in the calendar month, then rendered to PDF with
reportlab. Reports are generated on request and never stored.
"""

import io
from xml.sax.saxutils import escape
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import cm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from app.models import Absence, AbsenceReason, Student, StudentStatus
from app.utils.dates import month_bounds

WORKING_DAYS_PER_MONTH = 22
RISK_THRESHOLD = 3


@dataclass
class MonthlyReport:
    university_id: int
    university_name: str
    year: int
    month: int
    total_students: int
    total_absences: int
    absence_rate: float
    reason_breakdown: Dict[str, int]
    risk_students: List[dict] = field(default_factory=list)
    absences: List[dict] = field(default_factory=list)

    @property
    def filename(self):
        safe_name = ''.join(c if c.isalnum() or c in '-_' else '_' for c in self.university_name)
        return f"report_{safe_name}_{self.year}_{self.month:02d}.pdf"

    def to_dict(self):
        return {
            "university_id": self.university_id,
            "university_name": self.university_name,
            "year": self.year,
            "month": self.month,
            "total_students": self.total_students,
            "total_absences": self.total_absences,
            "absence_rate": self.absence_rate,
            "reason_breakdown": self.reason_breakdown,
            "risk_students": self.risk_students,
        }


def build_monthly_report(university, year, month):
    first_day, last_day = month_bounds(year, month)

    total_students = Student.query.filter(
        Student.university_id == university.id,
        Student.deleted_at.is_(None),
        Student.status == StudentStatus.ENROLLED,
    ).count()

    absences = (
        Absence.query
        .join(Student, Absence.student_id == Student.id)
        .filter(
            Student.university_id == university.id,
            Student.deleted_at.is_(None),
            Absence.absence_date >= first_day,
            Absence.absence_date <= last_day,
        )
        .order_by(Absence.absence_date, Student.name)
        .all()
    )

    reasons = Counter(a.reason for a in absences)
    per_student = Counter(a.student_id for a in absences)
    students_by_id = {a.student_id: a.student for a in absences}

    risk_students = [
        {
            "student_id": student_id,
            "student_no": students_by_id[student_id].student_no,
            "name": students_by_id[student_id].name,
            "absence_count": count,
        }
        for student_id, count in per_student.items()
        if count >= RISK_THRESHOLD
    ]
    risk_students.sort(key=lambda s: (-s["absence_count"], s["name"]))

    working_days = total_students * WORKING_DAYS_PER_MONTH
    absence_rate = round(len(absences) / working_days * 100, 2) if working_days else 0.0

    return MonthlyReport(
        university_id=university.id,
        university_name=university.name,
        year=year,
        month=month,
        total_students=total_students,
        total_absences=len(absences),
        absence_rate=absence_rate,
        reason_breakdown={reason.value: reasons.get(reason, 0) for reason in AbsenceReason},
        risk_students=risk_students,
        absences=[
            {
                "date": a.absence_date.isoformat(),
                "student_no": a.student.student_no,
                "name": a.student.name,
                "reason": a.reason.label,
            }
            for a in absences
        ],
    )


def _styled_table(rows, col_widths):
    table = Table(rows, colWidths=col_widths, repeatRows=1)
    table.setStyle(TableStyle([
        ('BACKGROUND', (0, 0), (-1, 0), colors.HexColor('#1f3a5f')),
        ('TEXTCOLOR', (0, 0), (-1, 0), colors.white),
        ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 0), (-1, -1), 9),
        ('GRID', (0, 0), (-1, -1), 0.5, colors.grey),
        ('ROWBACKGROUNDS', (0, 1), (-1, -1), [colors.white, colors.HexColor('#f2f5f9')]),
        ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),
    ]))
    return table


def render_monthly_report_pdf(report):
    """Render ``report`` to PDF bytes."""
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        leftMargin=2 * cm,
        rightMargin=2 * cm,
        topMargin=2 * cm,
        bottomMargin=2 * cm,
        title=f"Monthly report {report.university_name} {report.year}-{report.month:02d}",
    )
    styles = getSampleStyleSheet()
    story = [
        Paragraph(f"Monthly Attendance Report: {escape(report.university_name)}", styles["Title"]),
        Paragraph(f"{report.year}-{report.month:02d}", styles['Heading3']),
        Spacer(1, 0.5 * cm),
        _styled_table([
            ['Enrolled students', 'Absences', 'Absence rate'],
            [str(report.total_students), str(report.total_absences), f"{report.absence_rate:.2f}%"],
        ], [5 * cm, 5 * cm, 5 * cm]),
        Spacer(1, 0.5 * cm),
        Paragraph("Absences by reason", styles['Heading2']),
        _styled_table(
            [['Reason', 'Count']] + [
                [AbsenceReason.from_string(reason).label, str(count)]
                for reason, count in report.reason_breakdown.items()
            ],
            [8 * cm, 4 * cm],
        ),
        Spacer(1, 0.5 * cm),
        Paragraph(f"Students with {RISK_THRESHOLD} or more absences", styles['Heading2']),
    ]

    if report.risk_students:
        story.append(_styled_table(
            [['Student no.', 'Name', 'Absences']] + [
                [s['student_no'], s['name'], str(s['absence_count'])] for s in report.risk_students
            ],
            [4 * cm, 8 * cm, 3 * cm],
        ))
    else:
        story.append(Paragraph("None.", styles['Normal']))

    story.append(Spacer(1, 0.5 * cm))
    story.append(Paragraph("Absence details", styles['Heading2']))
    if report.absences:
        story.append(_styled_table(
            [['Date', 'Student no.', 'Name', 'Reason']] + [
                [a['date'], a['student_no'], a['name'], a['reason']] for a in report.absences
            ],
            [3 * cm, 3.5 * cm, 6 * cm, 3.5 * cm],
        ))
    else:
        story.append(Paragraph("No absences recorded this month.", styles['Normal']))

    doc.build(story)
    return buffer.getvalue()
