"""
Main routes for the FRISK portal.

Contains the health check, the login landing route and the role home
pages. Navigation to the role pages is gated by the route access
controller before these views run; each view returns a JSON summary for
its dashboard.
"""

from flask import Blueprint, current_app, g, jsonify, redirect
from sqlalchemy import func, text
from sqlalchemy.exc import SQLAlchemyError

from app.access import LOGIN_PATH, home_path_for
from app.auth import get_current_identity, login_required, roles_required
from app.extensions import db, limiter
from app.models import (
    Absence,
    AuditLog,
    QuarterlyCheckin,
    Role,
    Student,
    StudentStatus,
    University,
    User,
)
from app.utils.dates import local_today, month_bounds, quarter_bucket, quarter_of

# Create blueprint
main_bp = Blueprint('main', __name__)


@main_bp.route('/')
def home():
    """Send visitors to their dashboard, or to the login page."""
    identity = get_current_identity()
    if identity is None:
        return redirect(LOGIN_PATH)
    return redirect(home_path_for(identity.role))


@main_bp.route('/health')
@limiter.exempt
def health_check():
    """Simple health check endpoint for uptime monitoring."""
    try:
        db.session.execute(text('SELECT 1'))
        return 'ok', 200
    except SQLAlchemyError:
        current_app.logger.exception('Health check failed')
        return jsonify(error='Database error'), 500


@main_bp.route('/login')
def login_page():
    return jsonify({
        "status": "success",
        "message": "Sign in by POSTing email and password to /api/auth/login.",
        "login_endpoint": "/api/auth/login",
    })


# -------------------- DASHBOARD SUMMARIES --------------------

def _enrolled_students(university_id=None):
    query = Student.query.filter(
        Student.deleted_at.is_(None),
        Student.status == StudentStatus.ENROLLED,
    )
    if university_id is not None:
        query = query.filter(Student.university_id == university_id)
    return query


def _absences_between(first_day, last_day, university_id=None):
    query = (
        Absence.query
        .join(Student, Absence.student_id == Student.id)
        .filter(
            Student.deleted_at.is_(None),
            Absence.absence_date >= first_day,
            Absence.absence_date <= last_day,
        )
    )
    if university_id is not None:
        query = query.filter(Student.university_id == university_id)
    return query


def _checked_this_quarter(today):
    return (
        db.session.query(func.count(func.distinct(QuarterlyCheckin.student_id)))
        .join(Student, QuarterlyCheckin.student_id == Student.id)
        .filter(
            QuarterlyCheckin.quarter_bucket == quarter_bucket(today),
            Student.deleted_at.is_(None),
            Student.status == StudentStatus.ENROLLED,
        )
        .scalar()
    ) or 0


def _month_summary(today, university_id=None):
    first_day, last_day = month_bounds(today.year, today.month)
    return {
        "year": today.year,
        "month": today.month,
        "enrolled_students": _enrolled_students(university_id).count(),
        "absences_this_month": _absences_between(first_day, last_day, university_id).count(),
    }


@main_bp.route('/admin')
@roles_required(Role.ADMIN)
def admin_dashboard():
    today = local_today()
    summary = _month_summary(today)
    summary.update(
        universities=University.query.count(),
        users=User.query.count(),
        checked_this_quarter=_checked_this_quarter(today),
        quarter=quarter_of(today),
        audit_events_total=AuditLog.query.count(),
    )
    return jsonify({"status": "success", "dashboard": "admin", "summary": summary})


@main_bp.route('/agency')
@roles_required(Role.ADMIN, Role.AGENCY)
def agency_dashboard():
    today = local_today()
    summary = _month_summary(today)
    summary.update(
        checked_this_quarter=_checked_this_quarter(today),
        quarter=quarter_of(today),
    )
    return jsonify({"status": "success", "dashboard": "agency", "summary": summary})


@main_bp.route('/university')
@roles_required(Role.ADMIN, Role.UNIVERSITY)
def university_dashboard():
    today = local_today()
    university_id = g.identity.university_id if g.identity.role == Role.UNIVERSITY else None
    summary = _month_summary(today, university_id)
    if university_id is not None:
        university = db.session.get(University, university_id)
        summary["university_name"] = university.name if university else None
    return jsonify({"status": "success", "dashboard": "university", "summary": summary})


@main_bp.route('/settings')
@login_required
def settings():
    return jsonify({"status": "success", "user": g.identity.to_dict()})
