import logging

from flask import request, current_app
from sqlalchemy import or_, func, case

from schooladmin import app, db
from schooladmin.api import (ApiError, ValidationError, ok, no_content, json_body, paginate, get_or_404,
                             arg_bool, require, as_text, one_of, as_number, as_list, parse_date, parse_datetime)
from schooladmin.auth import crud_required, record_audit
from schooladmin.models import (Alumni, AlumniAchievement, AlumniContribution, AlumniEvent,
                                AlumniEventRegistration, Student, utcnow)

logger = logging.getLogger(__name__)

ACHIEVEMENT_CATEGORIES = ('academic', 'professional', 'sports', 'arts', 'social', 'other')
CONTRIBUTION_TYPES = ('monetary', 'scholarship', 'mentorship', 'infrastructure', 'books', 'other')
CONTRIBUTION_FLOW = ('pledged', 'received', 'utilized')
EVENT_TYPES = ('reunion', 'meet', 'webinar', 'fundraiser', 'sports', 'other')
EVENT_STATUSES = ('upcoming', 'ongoing', 'completed', 'cancelled')

_ALUMNI_FIELDS = {
    'name': 'name', 'email': 'email', 'phone': 'phone', 'batch': 'batch', 'class': 'class_name',
    'section': 'section', 'rollNumber': 'roll_number', 'photo': 'photo', 'currentCity': 'current_city',
    'currentCountry': 'current_country', 'occupation': 'occupation', 'company': 'company',
    'linkedIn': 'linkedin',
}


def _apply_alumni_fields(alumni, payload):
    for key, attr in _ALUMNI_FIELDS.items():
        if key in payload:
            value = as_text(payload, key) if key in ('name', 'email') else payload[key]
            setattr(alumni, attr, value.strip() if isinstance(value, str) else value)


def _email_taken(email, exclude_id=None):
    q = Alumni.query.filter(func.lower(Alumni.email) == email.lower())
    if exclude_id:
        q = q.filter(Alumni.id != exclude_id)
    return q.first() is not None


# --- Stats ---

@app.route('/api/alumni/stats')
@crud_required('alumni', 'read')
def alumni_stats():
    amount = db.session.query(func.coalesce(func.sum(AlumniContribution.amount), 0)) \
        .filter(AlumniContribution.status != 'pledged').scalar()
    return ok({
        "totalAlumni": Alumni.query.count(),
        "verifiedAlumni": Alumni.query.filter_by(is_verified=True).count(),
        "totalContributions": AlumniContribution.query.count(),
        "contributionAmount": float(amount or 0),
        "totalAchievements": AlumniAchievement.query.filter_by(is_published=True).count(),
        "upcomingEvents": AlumniEvent.query.filter_by(status='upcoming').count(),
        "batchCount": db.session.query(func.count(func.distinct(Alumni.batch))).scalar() or 0,
    })


@app.route('/api/alumni/batches/stats')
@crud_required('alumni', 'read')
def alumni_batch_stats():
    rows = db.session.query(
        Alumni.batch,
        func.count(Alumni.id),
        func.sum(case((Alumni.is_verified.is_(True), 1), else_=0)),
    ).group_by(Alumni.batch).order_by(Alumni.batch.desc()).all()
    contributions = dict(db.session.query(Alumni.batch, func.count(AlumniContribution.id))
                         .join(AlumniContribution, AlumniContribution.alumni_id == Alumni.id)
                         .group_by(Alumni.batch).all())
    achievements = dict(db.session.query(Alumni.batch, func.count(AlumniAchievement.id))
                        .join(AlumniAchievement, AlumniAchievement.alumni_id == Alumni.id)
                        .group_by(Alumni.batch).all())
    return ok([{
        "batch": batch,
        "totalAlumni": total,
        "verifiedAlumni": int(verified or 0),
        "contributions": contributions.get(batch, 0),
        "achievements": achievements.get(batch, 0),
    } for batch, total, verified in rows])


# --- Graduation ---

def _graduate(student_id, batch_year, extra=None):
    """Turn an active student into a verified alumni record. Raises ApiError on refusal."""
    extra = extra or {}
    student = get_or_404(Student, student_id, "Student")
    if student.status == 'graduated':
        raise ApiError(400, f"{student.name} has already graduated")
    if Alumni.query.filter_by(student_id=student.id).first():
        raise ApiError(400, f"An alumni record already exists for {student.name}")
    email = student.email or f"{student.admission_number.lower()}@alumni.local"
    if _email_taken(email):
        raise ApiError(400, f"An alumni record already exists for {email}")
    alumni = Alumni(
        student_id=student.id,
        name=student.name,
        email=email,
        phone=student.phone,
        batch=str(batch_year),
        class_name=student.class_name,
        section=student.section,
        roll_number=str(student.roll_number) if student.roll_number is not None else None,
        photo=student.photo_url,
        current_city=extra.get('currentCity'),
        current_country=extra.get('currentCountry') or current_app.config.get('DEFAULT_ALUMNI_COUNTRY'),
        occupation=extra.get('occupation'),
        company=extra.get('company'),
        is_verified=True,
    )
    student.status = 'graduated'
    db.session.add(alumni)
    return alumni, student


@app.route('/api/alumni/graduate', methods=['POST'])
@crud_required('graduation', 'create')
def graduate_student():
    payload = json_body()
    require(payload, 'studentId', 'batchYear')
    alumni, student = _graduate(payload['studentId'], payload['batchYear'], payload)
    db.session.commit()
    logger.info(f"Student {student.admission_number} graduated into batch {alumni.batch}")
    record_audit('alumni_graduate', student.admission_number, f"batch={alumni.batch}")
    return ok({
        "alumni": alumni.to_dict(),
        "student": {"id": student.id, "name": student.name, "status": student.status},
    }, 201)


@app.route('/api/alumni/graduate-batch', methods=['POST'])
@crud_required('graduation', 'create')
def graduate_batch():
    payload = json_body()
    require(payload, 'batchYear')
    student_ids = as_list(payload.get('studentIds'), 'studentIds')
    if not student_ids:
        raise ValidationError("No students selected", {"studentIds": ["Select at least one student"]})
    results = []
    for student_id in student_ids:
        try:
            alumni, student = _graduate(student_id, payload['batchYear'])
            db.session.commit()
            results.append({"studentId": student_id, "success": True, "alumniId": alumni.id})
        except ApiError as e:
            db.session.rollback()
            results.append({"studentId": student_id, "success": False, "error": e.message})
    graduated = sum(1 for r in results if r["success"])
    logger.info(f"Batch graduation {payload['batchYear']}: {graduated}/{len(results)} graduated")
    record_audit('alumni_graduate_batch', str(payload['batchYear']), f"graduated={graduated},failed={len(results) - graduated}")
    return ok({"total": len(results), "graduated": graduated, "failed": len(results) - graduated, "results": results})


@app.route('/api/alumni/eligible-for-graduation')
@crud_required('graduation', 'read')
def eligible_for_graduation():
    graduating = current_app.config.get('GRADUATION_CLASS', 'Class 12')
    students = Student.query.filter_by(class_name=graduating, status='active') \
        .order_by(Student.section, Student.roll_number, Student.name).all()
    return ok([s.to_dict() for s in students])


# --- Achievements ---

@app.route('/api/alumni/achievements')
@crud_required('alumni', 'read')
def list_achievements():
    q = AlumniAchievement.query
    category = request.args.get('category', '').strip()
    if category:
        q = q.filter(AlumniAchievement.category == category)
    published = arg_bool('isPublished')
    if published is not None:
        q = q.filter(AlumniAchievement.is_published.is_(published))
    alumni_id = request.args.get('alumniId', '').strip()
    if alumni_id:
        q = q.filter(AlumniAchievement.alumni_id == alumni_id)
    items = q.order_by(AlumniAchievement.date.desc(), AlumniAchievement.created_at.desc()).all()
    return ok([a.to_dict() for a in items])


@app.route('/api/alumni/achievements', methods=['POST'])
@crud_required('alumni', 'create')
def create_achievement():
    payload = json_body()
    require(payload, 'alumniId', 'title', 'category', 'date')
    alumni = get_or_404(Alumni, payload['alumniId'], "Alumni")
    achievement = AlumniAchievement(
        alumni_id=alumni.id,
        title=as_text(payload, 'title'),
        description=payload.get('description'),
        category=one_of(payload['category'], ACHIEVEMENT_CATEGORIES, 'category'),
        date=parse_date(payload['date'], 'date'),
        is_published=bool(payload.get('isPublished', False)),
        added_by='admin',
    )
    db.session.add(achievement)
    db.session.commit()
    logger.info(f"Achievement '{achievement.title}' added for alumni {alumni.id}")
    record_audit('alumni_achievement_create', achievement.id, f"alumni={alumni.id}")
    return ok(achievement.to_dict(), 201)


@app.route('/api/alumni/achievements/<achievement_id>', methods=['PUT'])
@crud_required('alumni', 'update')
def update_achievement(achievement_id):
    achievement = get_or_404(AlumniAchievement, achievement_id, "Achievement")
    payload = json_body()
    if 'title' in payload:
        require(payload, 'title')
        achievement.title = as_text(payload, 'title')
    if 'description' in payload:
        achievement.description = payload['description']
    if 'category' in payload:
        achievement.category = one_of(payload['category'], ACHIEVEMENT_CATEGORIES, 'category')
    if 'date' in payload:
        achievement.date = parse_date(payload['date'], 'date') or achievement.date
    if 'isPublished' in payload:
        achievement.is_published = bool(payload['isPublished'])
    db.session.commit()
    record_audit('alumni_achievement_update', achievement.id)
    return ok(achievement.to_dict())


@app.route('/api/alumni/achievements/<achievement_id>/publish', methods=['PATCH'])
@crud_required('alumni', 'update')
def publish_achievement(achievement_id):
    achievement = get_or_404(AlumniAchievement, achievement_id, "Achievement")
    payload = json_body()
    achievement.is_published = bool(payload.get('isPublished', True))
    db.session.commit()
    record_audit('alumni_achievement_publish', achievement.id, f"published={achievement.is_published}")
    return ok(achievement.to_dict())


@app.route('/api/alumni/achievements/<achievement_id>', methods=['DELETE'])
@crud_required('alumni', 'delete')
def delete_achievement(achievement_id):
    achievement = get_or_404(AlumniAchievement, achievement_id, "Achievement")
    db.session.delete(achievement)
    db.session.commit()
    logger.info(f"Achievement {achievement_id} deleted")
    record_audit('alumni_achievement_delete', achievement_id)
    return no_content()


# --- Contributions ---

@app.route('/api/alumni/contributions')
@crud_required('alumni', 'read')
def list_contributions():
    q = AlumniContribution.query
    ctype = request.args.get('type', '').strip()
    if ctype:
        q = q.filter(AlumniContribution.type == ctype)
    status = request.args.get('status', '').strip()
    if status:
        q = q.filter(AlumniContribution.status == status)
    alumni_id = request.args.get('alumniId', '').strip()
    if alumni_id:
        q = q.filter(AlumniContribution.alumni_id == alumni_id)
    items = q.order_by(AlumniContribution.date.desc(), AlumniContribution.created_at.desc()).all()
    return ok([c.to_dict() for c in items])


@app.route('/api/alumni/contributions', methods=['POST'])
@crud_required('alumni', 'create')
def create_contribution():
    payload = json_body()
    require(payload, 'alumniId', 'type', 'description')
    alumni = get_or_404(Alumni, payload['alumniId'], "Alumni")
    ctype = one_of(payload['type'], CONTRIBUTION_TYPES, 'type')
    amount = payload.get('amount')
    if amount is not None:
        amount = as_number(amount, 'amount', minimum=0)
    elif ctype in ('monetary', 'scholarship'):
        raise ValidationError("Amount is required", {"amount": ["Required for monetary contributions"]})
    contribution = AlumniContribution(
        alumni_id=alumni.id,
        type=ctype,
        description=as_text(payload, 'description'),
        amount=amount,
        date=parse_date(payload.get('date'), 'date') or utcnow().date(),
        status='pledged',
    )
    db.session.add(contribution)
    db.session.commit()
    logger.info(f"Contribution {contribution.id} pledged by alumni {alumni.id}")
    record_audit('alumni_contribution_create', contribution.id, f"type={ctype},amount={amount}")
    return ok(contribution.to_dict(), 201)


@app.route('/api/alumni/contributions/<contribution_id>/status', methods=['PATCH'])
@crud_required('alumni', 'update')
def update_contribution_status(contribution_id):
    contribution = get_or_404(AlumniContribution, contribution_id, "Contribution")
    payload = json_body()
    require(payload, 'status')
    status = one_of(payload['status'], CONTRIBUTION_FLOW, 'status')
    if CONTRIBUTION_FLOW.index(status) < CONTRIBUTION_FLOW.index(contribution.status):
        raise ApiError(400, f"Cannot move a {contribution.status} contribution back to {status}")
    contribution.status = status
    if payload.get('acknowledgement') is not None:
        contribution.acknowledgement = payload['acknowledgement']
    db.session.commit()
    record_audit('alumni_contribution_status', contribution.id, f"status={status}")
    return ok(contribution.to_dict())


@app.route('/api/alumni/contributions/<contribution_id>', methods=['DELETE'])
@crud_required('alumni', 'delete')
def delete_contribution(contribution_id):
    contribution = get_or_404(AlumniContribution, contribution_id, "Contribution")
    db.session.delete(contribution)
    db.session.commit()
    logger.info(f"Contribution {contribution_id} deleted")
    record_audit('alumni_contribution_delete', contribution_id)
    return no_content()


# --- Events ---

def _apply_event_fields(event, payload):
    if 'title' in payload:
        require(payload, 'title')
        event.title = as_text(payload, 'title')
    if 'description' in payload:
        event.description = payload['description']
    if 'type' in payload:
        event.type = one_of(payload['type'], EVENT_TYPES, 'type')
    if 'date' in payload:
        event.date = parse_datetime(payload['date'], 'date') or event.date
    if 'venue' in payload:
        event.venue = payload['venue']
    if 'isVirtual' in payload:
        event.is_virtual = bool(payload['isVirtual'])
    if 'meetingLink' in payload:
        event.meeting_link = payload['meetingLink']
    if 'targetBatches' in payload:
        event.target_batches = [str(b) for b in as_list(payload['targetBatches'], 'targetBatches')]
    if 'maxCapacity' in payload:
        cap = payload['maxCapacity']
        event.max_capacity = as_number(cap, 'maxCapacity', minimum=1, integer=True) if cap is not None else None
    if event.is_virtual and not event.meeting_link:
        raise ValidationError("Meeting link required", {"meetingLink": ["Virtual events need a meeting link"]})


@app.route('/api/alumni/events')
@crud_required('alumni_event', 'read')
def list_alumni_events():
    q = AlumniEvent.query
    etype = request.args.get('type', '').strip()
    if etype:
        q = q.filter(AlumniEvent.type == etype)
    status = request.args.get('status', '').strip()
    if status:
        q = q.filter(AlumniEvent.status == status)
    events = q.order_by(case((AlumniEvent.status == 'upcoming', 0), else_=1), AlumniEvent.date.desc()).all()
    batch = request.args.get('batch', '').strip()
    if batch:
        # Events with no target batches are open to everyone.
        events = [e for e in events if not e.target_batches or batch in e.target_batches]
    return ok([e.to_dict() for e in events])


@app.route('/api/alumni/events/<event_id>')
@crud_required('alumni_event', 'read')
def get_alumni_event(event_id):
    return ok(get_or_404(AlumniEvent, event_id, "Event").to_dict())


@app.route('/api/alumni/events', methods=['POST'])
@crud_required('alumni_event', 'create')
def create_alumni_event():
    payload = json_body()
    require(payload, 'title', 'type', 'date')
    event = AlumniEvent(status='upcoming', registered_count=0, target_batches=[])
    _apply_event_fields(event, payload)
    db.session.add(event)
    db.session.commit()
    logger.info(f"Alumni event '{event.title}' created")
    record_audit('alumni_event_create', event.id, f"type={event.type}")
    return ok(event.to_dict(), 201)


@app.route('/api/alumni/events/<event_id>', methods=['PUT'])
@crud_required('alumni_event', 'update')
def update_alumni_event(event_id):
    event = get_or_404(AlumniEvent, event_id, "Event")
    payload = json_body()
    _apply_event_fields(event, payload)
    if event.max_capacity is not None and event.max_capacity < event.registered_count:
        raise ValidationError("Capacity below registrations",
                              {"maxCapacity": [f"{event.registered_count} alumni are already registered"]})
    db.session.commit()
    record_audit('alumni_event_update', event.id)
    return ok(event.to_dict())


@app.route('/api/alumni/events/<event_id>/status', methods=['PATCH'])
@crud_required('alumni_event', 'update')
def update_alumni_event_status(event_id):
    event = get_or_404(AlumniEvent, event_id, "Event")
    payload = json_body()
    require(payload, 'status')
    event.status = one_of(payload['status'], EVENT_STATUSES, 'status')
    db.session.commit()
    record_audit('alumni_event_status', event.id, f"status={event.status}")
    return ok(event.to_dict())


@app.route('/api/alumni/events/<event_id>', methods=['DELETE'])
@crud_required('alumni_event', 'delete')
def delete_alumni_event(event_id):
    event = get_or_404(AlumniEvent, event_id, "Event")
    db.session.delete(event)
    db.session.commit()
    logger.info(f"Alumni event {event_id} deleted")
    record_audit('alumni_event_delete', event_id)
    return no_content()


@app.route('/api/alumni/events/<event_id>/registrations')
@crud_required('alumni_event', 'read')
def list_event_registrations(event_id):
    event = get_or_404(AlumniEvent, event_id, "Event")
    regs = sorted(event.registrations, key=lambda r: r.registered_at)
    return ok([r.to_dict() for r in regs])


@app.route('/api/alumni/events/<event_id>/register', methods=['POST'])
@crud_required('alumni_event', 'update')
def register_for_alumni_event(event_id):
    event = get_or_404(AlumniEvent, event_id, "Event")
    payload = json_body()
    require(payload, 'alumniId')
    alumni = get_or_404(Alumni, payload['alumniId'], "Alumni")
    if event.status not in ('upcoming', 'ongoing'):
        raise ApiError(400, f"Registration is closed for {event.status} events")
    if AlumniEventRegistration.query.filter_by(event_id=event.id, alumni_id=alumni.id).first():
        raise ApiError(400, "Already registered for this event")
    if event.is_full:
        raise ApiError(400, "Event is full")
    registration = AlumniEventRegistration(event_id=event.id, alumni_id=alumni.id, status='registered')
    event.registered_count = (event.registered_count or 0) + 1
    db.session.add(registration)
    db.session.commit()
    record_audit('alumni_event_register', event.id, f"alumni={alumni.id}")
    return ok(registration.to_dict(), 201)


@app.route('/api/alumni/events/<event_id>/register/<alumni_id>', methods=['DELETE'])
@crud_required('alumni_event', 'update')
def cancel_alumni_event_registration(event_id, alumni_id):
    event = get_or_404(AlumniEvent, event_id, "Event")
    registration = AlumniEventRegistration.query.filter_by(event_id=event.id, alumni_id=alumni_id).first()
    if registration is None:
        raise ApiError(404, "Registration not found")
    db.session.delete(registration)
    event.registered_count = max((event.registered_count or 0) - 1, 0)
    db.session.commit()
    record_audit('alumni_event_unregister', event.id, f"alumni={alumni_id}")
    return no_content()


# --- Alumni directory ---

@app.route('/api/alumni')
@crud_required('alumni', 'read')
def list_alumni():
    q = Alumni.query
    batch = request.args.get('batch', '').strip()
    if batch:
        q = q.filter(Alumni.batch == batch)
    verified = arg_bool('isVerified')
    if verified is not None:
        q = q.filter(Alumni.is_verified.is_(verified))
    search = request.args.get('search', '').strip()
    if search:
        like = f"%{search}%"
        q = q.filter(or_(Alumni.name.ilike(like), Alumni.email.ilike(like),
                         Alumni.occupation.ilike(like), Alumni.company.ilike(like)))
    return paginate(q.order_by(Alumni.batch.desc(), Alumni.name.asc()))


@app.route('/api/alumni/<alumni_id>')
@crud_required('alumni', 'read')
def get_alumni(alumni_id):
    return ok(get_or_404(Alumni, alumni_id, "Alumni").to_dict())


@app.route('/api/alumni', methods=['POST'])
@crud_required('alumni', 'create')
def create_alumni():
    payload = json_body()
    require(payload, 'name', 'email', 'batch')
    email = as_text(payload, 'email')
    if _email_taken(email):
        logger.warning(f"Failed to add alumni due to duplicate email: {email}")
        raise ApiError(409, "An alumni record with this email already exists")
    alumni = Alumni(is_verified=False)
    _apply_alumni_fields(alumni, payload)
    alumni.batch = str(alumni.batch)
    if not alumni.current_country:
        alumni.current_country = current_app.config.get('DEFAULT_ALUMNI_COUNTRY')
    db.session.add(alumni)
    db.session.commit()
    logger.info(f"Alumni {alumni.email} registered for batch {alumni.batch}")
    record_audit('alumni_create', alumni.id, f"batch={alumni.batch}")
    return ok(alumni.to_dict(), 201)


@app.route('/api/alumni/<alumni_id>', methods=['PUT'])
@crud_required('alumni', 'update')
def update_alumni(alumni_id):
    alumni = get_or_404(Alumni, alumni_id, "Alumni")
    payload = json_body()
    if 'email' in payload:
        require(payload, 'email')
        if _email_taken(as_text(payload, 'email'), exclude_id=alumni.id):
            raise ApiError(409, "An alumni record with this email already exists")
    if 'name' in payload:
        require(payload, 'name')
    _apply_alumni_fields(alumni, payload)
    db.session.commit()
    record_audit('alumni_update', alumni.id)
    return ok(alumni.to_dict())


@app.route('/api/alumni/<alumni_id>/verify', methods=['PATCH'])
@crud_required('alumni', 'update')
def verify_alumni(alumni_id):
    alumni = get_or_404(Alumni, alumni_id, "Alumni")
    alumni.is_verified = True
    db.session.commit()
    record_audit('alumni_verify', alumni.id)
    return ok(alumni.to_dict())


@app.route('/api/alumni/<alumni_id>', methods=['DELETE'])
@crud_required('alumni', 'delete')
def delete_alumni(alumni_id):
    alumni = get_or_404(Alumni, alumni_id, "Alumni")
    for registration in list(alumni.registrations):
        if registration.event is not None:
            registration.event.registered_count = max((registration.event.registered_count or 0) - 1, 0)
    db.session.delete(alumni)
    db.session.commit()
    logger.info(f"Alumni {alumni_id} deleted")
    record_audit('alumni_delete', alumni_id)
    return no_content()
