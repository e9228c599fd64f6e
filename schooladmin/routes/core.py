import logging

from flask import request, session, jsonify
from sqlalchemy import or_
from werkzeug.security import check_password_hash

from schooladmin import app, db
from schooladmin.api import (ApiError, ValidationError, ok, json_body, paginate, get_or_404, require, as_text, one_of,
                             as_number)
from schooladmin.auth import login_required, crud_required, current_user, record_audit
from schooladmin.models import User, Student, AuditLog, Alumni, Exam, Hostel, Announcement

logger = logging.getLogger(__name__)

STUDENT_STATUSES = ('active', 'inactive', 'graduated', 'transferred')
GENDERS = ('male', 'female', 'other')


@app.route("/healthz")
def healthz():
    try:
        return jsonify({
            "status": "ok",
            "students": Student.query.count(),
            "alumni": Alumni.query.count(),
            "exams": Exam.query.count(),
            "hostels": Hostel.query.count(),
            "announcements": Announcement.query.count(),
        }), 200
    except Exception as e:
        logger.exception("Health check failed")
        return jsonify({"status": "error", "message": str(e)}), 500


# --- Auth ---

@app.route('/api/auth/login', methods=['POST'])
def login():
    payload = json_body()
    require(payload, 'username', 'password')
    username = str(payload['username']).strip()
    user = User.query.filter_by(username=username).first()
    if not user or not check_password_hash(user.password_hash, str(payload['password'])):
        logger.warning(f"Failed login for {username}")
        raise ApiError(401, "Invalid username or password")
    session.clear()
    session.permanent = True
    session['logged_in'] = True
    session['user'] = user.username
    session['role'] = user.role
    record_audit('login', user.username)
    return ok(user.to_dict())


@app.route('/api/auth/logout', methods=['POST'])
def logout():
    session.clear()
    return ok({"success": True})


@app.route('/api/auth/me')
@login_required
def me():
    user = current_user()
    if user is None:
        raise ApiError(401, "Authentication required")
    return ok(user.to_dict())


# --- Students ---

@app.route('/api/students')
@crud_required('student', 'read')
def list_students():
    q = Student.query
    search = request.args.get('search', '').strip()
    if search:
        like = f"%{search}%"
        q = q.filter(or_(Student.name.ilike(like), Student.admission_number.ilike(like), Student.email.ilike(like)))
    class_name = request.args.get('class', '').strip()
    if class_name:
        q = q.filter(Student.class_name == class_name)
    section = request.args.get('section', '').strip()
    if section:
        q = q.filter(Student.section == section)
    status = request.args.get('status', '').strip()
    if status:
        q = q.filter(Student.status == status)
    return paginate(q.order_by(Student.class_name, Student.section, Student.roll_number, Student.name))


@app.route('/api/students/<student_id>')
@crud_required('student', 'read')
def get_student(student_id):
    return ok(get_or_404(Student, student_id).to_dict())


@app.route('/api/students', methods=['POST'])
@crud_required('student', 'create')
def create_student():
    payload = json_body()
    require(payload, 'admissionNumber', 'name', 'class', 'section')
    if payload.get('gender') is not None:
        one_of(payload['gender'], GENDERS, 'gender')
    status = one_of(payload.get('status', 'active'), STUDENT_STATUSES, 'status')
    if Student.query.filter_by(admission_number=payload['admissionNumber']).first():
        logger.warning(f"Failed to add student due to duplicate admission number: {payload['admissionNumber']}")
        raise ApiError(409, "A student with this admission number already exists")
    email = as_text(payload, 'email', required=False)
    if email and Student.query.filter_by(email=email).first():
        logger.warning(f"Failed to add student due to duplicate email: {email}")
        raise ValidationError("Email already in use", {"email": ["A student with this email already exists"]})
    student = Student(
        admission_number=as_text(payload, 'admissionNumber'),
        name=as_text(payload, 'name'),
        email=email,
        phone=payload.get('phone'),
        gender=payload.get('gender'),
        class_name=as_text(payload, 'class'),
        section=as_text(payload, 'section'),
        roll_number=as_number(payload['rollNumber'], 'rollNumber', minimum=1, integer=True) if payload.get('rollNumber') is not None else None,
        photo_url=payload.get('photoUrl'),
        status=status,
    )
    db.session.add(student)
    db.session.commit()
    logger.info(f"Student {student.admission_number} created")
    record_audit('student_create', student.admission_number, f"class={student.class_name},section={student.section}")
    return ok(student.to_dict(), 201)


# --- Audit ---

@app.route('/api/audit')
@crud_required('audit', 'read')
def list_audit():
    q = AuditLog.query
    action = request.args.get('action', '').strip()
    if action:
        q = q.filter(AuditLog.action == action)
    actor = request.args.get('actor', '').strip()
    if actor:
        q = q.filter(AuditLog.actor_username == actor)
    target = request.args.get('target', '').strip()
    if target:
        q = q.filter(AuditLog.target.ilike(f"%{target}%"))
    return paginate(q.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()))
