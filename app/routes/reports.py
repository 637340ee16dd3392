"""
Report routes. University users only ever receive their own university's report.
"""

import io

from flask import Blueprint, current_app, g, request, send_file

from app import audit
from app.auth import login_required, require_university_scope
from app.errors import ValidationError
from app.models import Role
from app.repositories import UniversityRepository
from app.services.reports import build_monthly_report, render_monthly_report_pdf
from app.utils.dates import local_today
from app.utils.validation import parse_int, parse_year

reports_bp = Blueprint('reports', __name__, url_prefix='/api/reports')


@reports_bp.route('/monthly', methods=['GET'])
@login_required
def monthly_report():
    identity = g.identity
    today = local_today()
    year = parse_year(request.args.get('year'), today.year)
    month = parse_int(request.args.get('month'), 'month', required=False) or today.month
    if not 1 <= month <= 12:
        raise ValidationError("month must be between 1 and 12.")

    if identity.role == Role.UNIVERSITY:
        university_id = identity.university_id
    else:
        university_id = parse_int(request.args.get('university_id'), 'university_id', required=False)
        if university_id is None:
            raise ValidationError("university_id is required.")
    require_university_scope(identity, university_id)

    university = UniversityRepository(identity).get(university_id)
    report = build_monthly_report(university, year, month)
    pdf = render_monthly_report_pdf(report)

    current_app.logger.info(f"Monthly report {report.filename} generated for user {identity.id}")
    audit.log_download(identity.id, 'report', report.filename, university.id)
    return send_file(
        io.BytesIO(pdf),
        mimetype='application/pdf',
        as_attachment=True,
        download_name=report.filename,
    )
