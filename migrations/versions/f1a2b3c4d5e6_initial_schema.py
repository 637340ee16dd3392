"""Initial FRISK schema

Revision ID: f1a2b3c4d5e6
Revises:
Create Date: 2026-10-19 09:00:00.000000

Creates accounts, universities and their contacts, students, absences with
evidence files, quarterly check-ins, the append-only contact change and
audit logs, and the error log.
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'f1a2b3c4d5e6'
down_revision = None
branch_labels = None
depends_on = None


user_role = sa.Enum('admin', 'agency', 'university', name='user_role')
student_program = sa.Enum('language', 'bachelor', 'master', 'phd', name='student_program')
student_status = sa.Enum('enrolled', 'graduated', 'completed', 'withdrawn', 'expelled', name='student_status')
absence_reason = sa.Enum('illness', 'personal', 'other', name='absence_reason')
contact_field = sa.Enum('phone', 'address', 'email', name='contact_field')
audit_action = sa.Enum('login', 'logout', 'download', 'upload', 'update', 'delete', name='audit_action')


def upgrade():
    op.create_table('universities',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name')
    )

    op.create_table('users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(length=254), nullable=False),
        sa.Column('password_hash', sa.String(length=256), nullable=False),
        sa.Column('role', user_role, nullable=False),
        sa.Column('university_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('last_login', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['university_id'], ['universities.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email')
    )
    op.create_index('ix_users_role', 'users', ['role'])
    op.create_index('ix_users_university_id', 'users', ['university_id'])

    op.create_table('university_contacts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('university_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('email', sa.String(length=254), nullable=False),
        sa.Column('phone', sa.String(length=50), nullable=True),
        sa.Column('is_primary', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['university_id'], ['universities.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_university_contacts_university_id', 'university_contacts', ['university_id'])

    op.create_table('students',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('university_id', sa.Integer(), nullable=False),
        sa.Column('student_no', sa.String(length=50), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('department', sa.String(length=100), nullable=False),
        sa.Column('program', student_program, nullable=False),
        sa.Column('status', student_status, nullable=False),
        sa.Column('phone', sa.LargeBinary(), nullable=False),
        sa.Column('address', sa.LargeBinary(), nullable=False),
        sa.Column('email', sa.LargeBinary(), nullable=True),
        sa.Column('consent_file_path', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('deleted_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['university_id'], ['universities.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(
        'uq_students_university_program_student_no',
        'students',
        ['university_id', 'program', 'student_no'],
        unique=True,
        postgresql_where=sa.text('deleted_at IS NULL'),
        sqlite_where=sa.text('deleted_at IS NULL'),
    )
    op.create_index('ix_students_university_id', 'students', ['university_id'])
    op.create_index('ix_students_deleted_at', 'students', ['deleted_at'])

    op.create_table('absences',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('student_id', sa.Integer(), nullable=False),
        sa.Column('absence_date', sa.Date(), nullable=False),
        sa.Column('reason', absence_reason, nullable=False),
        sa.Column('note', sa.Text(), nullable=True),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['student_id'], ['students.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['created_by'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('student_id', 'absence_date', name='uq_absences_student_date')
    )
    op.create_index('ix_absences_absence_date', 'absences', ['absence_date'])

    op.create_table('absence_files',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('absence_id', sa.Integer(), nullable=False),
        sa.Column('file_path', sa.String(length=255), nullable=False),
        sa.Column('original_name', sa.String(length=255), nullable=False),
        sa.Column('content_type', sa.String(length=100), nullable=True),
        sa.Column('size_bytes', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['absence_id'], ['absences.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_absence_files_absence_id', 'absence_files', ['absence_id'])

    op.create_table('quarterly_checkins',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('student_id', sa.Integer(), nullable=False),
        sa.Column('quarter_bucket', sa.String(length=8), nullable=False),
        sa.Column('check_in_date', sa.Date(), nullable=False),
        sa.Column('phone_verified', sa.Boolean(), nullable=False),
        sa.Column('address_verified', sa.Boolean(), nullable=False),
        sa.Column('email_verified', sa.Boolean(), nullable=False),
        sa.Column('checked_by', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['student_id'], ['students.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['checked_by'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('student_id', 'quarter_bucket', name='uq_quarterly_checkins_student_bucket')
    )
    op.create_index('ix_quarterly_checkins_check_in_date', 'quarterly_checkins', ['check_in_date'])

    # Append-only history: actor ids are plain integers so records survive account deletion
    op.create_table('contact_change_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('student_id', sa.Integer(), nullable=False),
        sa.Column('field_name', contact_field, nullable=False),
        sa.Column('old_value', sa.LargeBinary(), nullable=True),
        sa.Column('new_value', sa.LargeBinary(), nullable=True),
        sa.Column('changed_by', sa.Integer(), nullable=True),
        sa.Column('check_in_date', sa.Date(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['student_id'], ['students.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_contact_change_logs_student_id', 'contact_change_logs', ['student_id'])

    op.create_table('audit_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('action_type', audit_action, nullable=False),
        sa.Column('details', sa.JSON(), nullable=True),
        sa.Column('ip_address', sa.String(length=64), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_audit_logs_created_at', 'audit_logs', ['created_at'])
    op.create_index('ix_audit_logs_action_type', 'audit_logs', ['action_type'])
    op.create_index('ix_audit_logs_user_id', 'audit_logs', ['user_id'])

    op.create_table('error_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('timestamp', sa.DateTime(), nullable=False),
        sa.Column('error_type', sa.String(length=100), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('request_path', sa.String(length=500), nullable=True),
        sa.Column('request_method', sa.String(length=10), nullable=True),
        sa.Column('user_agent', sa.String(length=500), nullable=True),
        sa.Column('ip_address', sa.String(length=64), nullable=True),
        sa.Column('stack_trace', sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_error_logs_timestamp', 'error_logs', ['timestamp'])

    # Reject UPDATE/DELETE on the append-only tables at the database level
    if op.get_bind().dialect.name == 'postgresql':
        op.execute("""
            CREATE OR REPLACE FUNCTION reject_append_only_change() RETURNS trigger AS $$
            BEGIN
                RAISE EXCEPTION '% records are append-only', TG_TABLE_NAME;
            END;
            $$ LANGUAGE plpgsql;
        """)
        for table in ('audit_logs', 'contact_change_logs'):
            op.execute(f"""
                CREATE TRIGGER {table}_append_only
                BEFORE UPDATE OR DELETE ON {table}
                FOR EACH ROW EXECUTE FUNCTION reject_append_only_change();
            """)


def downgrade():
    if op.get_bind().dialect.name == 'postgresql':
        for table in ('audit_logs', 'contact_change_logs'):
            op.execute(f"DROP TRIGGER IF EXISTS {table}_append_only ON {table}")
        op.execute("DROP FUNCTION IF EXISTS reject_append_only_change()")

    op.drop_index('ix_error_logs_timestamp', table_name='error_logs')
    op.drop_table('error_logs')
    op.drop_index('ix_audit_logs_user_id', table_name='audit_logs')
    op.drop_index('ix_audit_logs_action_type', table_name='audit_logs')
    op.drop_index('ix_audit_logs_created_at', table_name='audit_logs')
    op.drop_table('audit_logs')
    op.drop_index('ix_contact_change_logs_student_id', table_name='contact_change_logs')
    op.drop_table('contact_change_logs')
    op.drop_index('ix_quarterly_checkins_check_in_date', table_name='quarterly_checkins')
    op.drop_table('quarterly_checkins')
    op.drop_index('ix_absence_files_absence_id', table_name='absence_files')
    op.drop_table('absence_files')
    op.drop_index('ix_absences_absence_date', table_name='absences')
    op.drop_table('absences')
    op.drop_index('ix_students_deleted_at', table_name='students')
    op.drop_index('ix_students_university_id', table_name='students')
    op.drop_index('uq_students_university_program_student_no', table_name='students')
    op.drop_table('students')
    op.drop_index('ix_university_contacts_university_id', table_name='university_contacts')
    op.drop_table('university_contacts')
    op.drop_index('ix_users_university_id', table_name='users')
    op.drop_index('ix_users_role', table_name='users')
    op.drop_table('users')
    op.drop_table('universities')

    bind = op.get_bind()
    for enum_type in (audit_action, contact_field, absence_reason, student_status, student_program, user_role):
        enum_type.drop(bind, checkfirst=True)
