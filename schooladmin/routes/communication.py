import logging
from datetime import datetime

from flask import request, current_app
from sqlalchemy import or_, case, func

from schooladmin import app, db
from schooladmin.api import (ApiError, ValidationError, ok, json_body, paginate, get_or_404,
                             require, as_text, one_of, as_number, as_list, parse_datetime)
from schooladmin.auth import crud_required, login_required, current_actor, current_username, record_audit
from schooladmin.models import (Announcement, AnnouncementAcknowledgement, Conversation, ConversationParticipant,
                                Message, Circular, Survey, SurveyResponse, EmergencyAlert, AlertAcknowledgement,
                                SchoolEvent, SchoolEventRegistration, User, Student, new_id, utcnow)

logger = logging.getLogger(__name__)

PRIORITIES = ('low', 'normal', 'high', 'urgent')
ANNOUNCEMENT_STATUSES = ('draft', 'scheduled', 'published', 'archived')
TARGET_TYPES = ('all', 'role', 'class', 'section', 'individual')
CIRCULAR_STATUSES = ('draft', 'published', 'archived')
SURVEY_STATUSES = ('draft', 'active', 'closed', 'archived')
QUESTION_TYPES = ('text', 'textarea', 'single_choice', 'multiple_choice', 'rating', 'scale')
QUESTION_BOUNDS = {'rating': (1, 5), 'scale': (1, 10)}
SEVERITIES = ('info', 'warning', 'critical', 'emergency')
ALERT_STATUSES = ('active', 'resolved', 'cancelled')
CHANNELS = ('app', 'sms', 'email', 'push')
SAFETY_STATUSES = ('safe', 'need_help')
EVENT_TYPES = ('academic', 'sports', 'cultural', 'meeting', 'holiday', 'other')
EVENT_STATUSES = ('upcoming', 'ongoing', 'completed', 'cancelled')


# --- Shared helpers ---

def parse_target(raw):
    if not isinstance(raw, dict):
        raise ValidationError("Invalid target", {"target": ["Must be an object with a type"]})
    ttype = one_of(raw.get('type'), TARGET_TYPES, 'target.type')
    target = {"type": ttype}
    for key in ('roles', 'classIds', 'sectionIds', 'userIds'):
        target[key] = [str(v) for v in as_list(raw.get(key), f"target.{key}")]
    needed = {'role': 'roles', 'class': 'classIds', 'section': 'sectionIds', 'individual': 'userIds'}.get(ttype)
    if needed and not target[needed]:
        raise ValidationError("Invalid target", {f"target.{needed}": [f"Required when targeting by {ttype}"]})
    return target


def count_targeted(target):
    """Size of the audience a target addresses."""
    ttype = target.get('type')
    if ttype == 'all':
        return User.query.count()
    if ttype == 'role':
        return User.query.filter(User.role.in_(target['roles'])).count()
    if ttype == 'individual':
        return len(set(target['userIds']))
    q = Student.query.filter(Student.status == 'active')
    if target.get('classIds'):
        q = q.filter(Student.class_name.in_(target['classIds']))
    if ttype == 'section':
        q = q.filter(Student.section.in_(target['sectionIds']))
    return q.count()


def parse_attachments(raw):
    attachments = []
    for i, item in enumerate(as_list(raw, 'attachments')):
        if not isinstance(item, dict) or not item.get('name') or not item.get('url'):
            raise ValidationError("Invalid attachment", {f"attachments[{i}]": ["name and url are required"]})
        attachments.append({
            "id": new_id(),
            "name": item['name'],
            "url": item['url'],
            "type": item.get('type'),
            "size": item.get('size'),
        })
    return attachments


def _search_filter(q, *columns):
    search = request.args.get('search', '').strip()
    if search:
        like = f"%{search}%"
        q = q.filter(or_(*[c.ilike(like) for c in columns]))
    return q


def _arg(name):
    return request.args.get(name, '').strip()


# --- Announcements ---

def release_due_announcements():
    """Publish scheduled announcements that are due and archive expired ones."""
    if not current_app.config.get('AUTO_PUBLISH_SCHEDULED', True):
        return 0
    now = utcnow()
    changed = 0
    for a in Announcement.query.filter(Announcement.status == 'scheduled', Announcement.scheduled_at <= now).all():
        a.status = 'published'
        a.published_at = a.published_at or now
        changed += 1
    for a in Announcement.query.filter(Announcement.status == 'published', Announcement.expires_at.isnot(None),
                                       Announcement.expires_at <= now).all():
        a.status = 'archived'
        changed += 1
    if changed:
        db.session.commit()
        logger.info(f"Released {changed} scheduled or expired announcements")
    return changed


def _apply_announcement_fields(ann, payload):
    if 'title' in payload:
        require(payload, 'title')
        ann.title = as_text(payload, 'title')
    if 'content' in payload:
        require(payload, 'content')
        ann.content = payload['content']
    if 'priority' in payload:
        ann.priority = one_of(payload['priority'], PRIORITIES, 'priority')
    if 'target' in payload:
        ann.target = parse_target(payload['target'])
    if 'attachments' in payload:
        ann.attachments = parse_attachments(payload['attachments'])
    if 'scheduledAt' in payload:
        ann.scheduled_at = parse_datetime(payload['scheduledAt'], 'scheduledAt')
    if 'expiresAt' in payload:
        ann.expires_at = parse_datetime(payload['expiresAt'], 'expiresAt')
    if 'acknowledgementRequired' in payload:
        ann.acknowledgement_required = bool(payload['acknowledgementRequired'])


@app.route('/api/communication/announcements')
@crud_required('announcement', 'read')
def list_announcements():
    release_due_announcements()
    q = _search_filter(Announcement.query, Announcement.title, Announcement.content)
    if _arg('priority'):
        q = q.filter(Announcement.priority == _arg('priority'))
    if _arg('status'):
        q = q.filter(Announcement.status == _arg('status'))
    if _arg('targetType'):
        wanted = _arg('targetType')
        ids = [a.id for a in Announcement.query.all() if (a.target or {}).get('type') == wanted]
        q = q.filter(Announcement.id.in_(ids))
    return paginate(q.order_by(Announcement.created_at.desc()), default_limit=10)


@app.route('/api/communication/announcements/<announcement_id>')
@crud_required('announcement', 'read')
def get_announcement(announcement_id):
    release_due_announcements()
    ann = get_or_404(Announcement, announcement_id, "Announcement")
    if ann.status == 'published':
        ann.view_count = (ann.view_count or 0) + 1
        db.session.commit()
    return ok(ann.to_dict())


@app.route('/api/communication/announcements', methods=['POST'])
@crud_required('announcement', 'create')
def create_announcement():
    payload = json_body()
    require(payload, 'title', 'content', 'target')
    username, name, _ = current_actor()
    ann = Announcement(priority='normal', attachments=[], created_by=username, created_by_name=name)
    _apply_announcement_fields(ann, payload)
    ann.status = 'scheduled' if ann.scheduled_at else 'draft'
    db.session.add(ann)
    db.session.commit()
    logger.info(f"Announcement '{ann.title}' created as {ann.status}")
    record_audit('announcement_create', ann.id, f"status={ann.status},priority={ann.priority}")
    return ok(ann.to_dict(), 201)


@app.route('/api/communication/announcements/<announcement_id>', methods=['PUT'])
@crud_required('announcement', 'update')
def update_announcement(announcement_id):
    ann = get_or_404(Announcement, announcement_id, "Announcement")
    payload = json_body()
    _apply_announcement_fields(ann, payload)
    if 'status' in payload:
        status = one_of(payload['status'], ANNOUNCEMENT_STATUSES, 'status')
        if status == 'scheduled' and not ann.scheduled_at:
            raise ValidationError("Schedule time required", {"scheduledAt": ["Required to schedule an announcement"]})
        if status == 'published' and ann.published_at is None:
            ann.published_at = utcnow()
        ann.status = status
    db.session.commit()
    record_audit('announcement_update', ann.id, f"status={ann.status}")
    return ok(ann.to_dict())


@app.route('/api/communication/announcements/<announcement_id>', methods=['DELETE'])
@crud_required('announcement', 'delete')
def delete_announcement(announcement_id):
    ann = get_or_404(Announcement, announcement_id, "Announcement")
    db.session.delete(ann)
    db.session.commit()
    logger.info(f"Announcement {announcement_id} deleted")
    record_audit('announcement_delete', announcement_id)
    return ok({"success": True})


@app.route('/api/communication/announcements/<announcement_id>/acknowledge', methods=['POST'])
@login_required
def acknowledge_announcement(announcement_id):
    ann = get_or_404(Announcement, announcement_id, "Announcement")
    if ann.status != 'published':
        raise ApiError(400, "Only published announcements can be acknowledged")
    username = current_username()
    existing = AnnouncementAcknowledgement.query.filter_by(announcement_id=ann.id, username=username).first()
    if existing is None:
        db.session.add(AnnouncementAcknowledgement(announcement_id=ann.id, username=username))
        db.session.commit()
    return ok({"acknowledged": True, "acknowledgementCount": len(ann.acknowledgements)})


# --- Messaging ---

def _my_conversation(conversation_id):
    conversation = get_or_404(Conversation, conversation_id, "Conversation")
    if conversation.participant(current_username()) is None:
        raise ApiError(403, "You are not part of this conversation")
    return conversation


@app.route('/api/communication/conversations')
@crud_required('message', 'read')
def list_conversations():
    username = current_username()
    q = Conversation.query.join(ConversationParticipant) \
        .filter(ConversationParticipant.username == username)
    if _arg('type'):
        q = q.filter(Conversation.type == _arg('type'))
    conversations = q.order_by(Conversation.updated_at.desc()).all()
    search = _arg('search').lower()
    if search:
        conversations = [c for c in conversations
                         if search in (c.title or '').lower()
                         or any(search in (p.name or p.username).lower() for p in c.participants if p.username != username)]
    return ok([c.to_dict(username) for c in conversations])


@app.route('/api/communication/conversations/<conversation_id>/messages')
@crud_required('message', 'read')
def list_messages(conversation_id):
    conversation = _my_conversation(conversation_id)
    username = current_username()
    now = utcnow()
    for message in conversation.messages.filter(Message.sender_username != username, Message.read_at.is_(None)).all():
        message.read_at = now
        message.status = 'read'
    conversation.participant(username).last_read_at = now
    db.session.commit()
    return paginate(conversation.messages.order_by(Message.created_at.asc()), default_limit=50)


def _direct_conversation(user_a, user_b):
    candidates = Conversation.query.join(ConversationParticipant) \
        .filter(Conversation.type == 'direct', ConversationParticipant.username == user_a).all()
    for c in candidates:
        names = {p.username for p in c.participants}
        if names == {user_a, user_b}:
            return c
    return None


@app.route('/api/communication/messages', methods=['POST'])
@crud_required('message', 'create')
def send_message():
    payload = json_body()
    require(payload, 'content')
    username, name, role = current_actor()
    now = utcnow()
    if payload.get('conversationId'):
        conversation = _my_conversation(payload['conversationId'])
    else:
        recipient_ids = [r for r in as_list(payload.get('recipientIds'), 'recipientIds') if r != username]
        if not recipient_ids:
            raise ValidationError("No recipients", {"recipientIds": ["Choose a conversation or at least one recipient"]})
        recipients = User.query.filter(User.username.in_(recipient_ids)).all()
        missing = sorted(set(recipient_ids) - {u.username for u in recipients})
        if missing:
            raise ValidationError("Unknown recipients", {"recipientIds": [f"Unknown user: {m}" for m in missing]})
        conversation = _direct_conversation(username, recipients[0].username) if len(recipients) == 1 else None
        if conversation is None:
            conversation = Conversation(
                type='direct' if len(recipients) == 1 else 'group',
                title=payload.get('title') or (None if len(recipients) == 1 else ', '.join(u.display_name for u in recipients)),
                created_at=now,
            )
            conversation.participants.append(ConversationParticipant(username=username, name=name, role=role, last_read_at=now))
            for user in recipients:
                conversation.participants.append(ConversationParticipant(username=user.username, name=user.display_name, role=user.role))
            db.session.add(conversation)
            logger.info(f"{conversation.type.capitalize()} conversation started by {username}")
    message = Message(
        conversation=conversation,
        sender_username=username,
        sender_name=name,
        sender_role=role,
        content=payload['content'],
        attachments=parse_attachments(payload.get('attachments')),
        status='sent',
        created_at=now,
    )
    conversation.updated_at = now
    me = conversation.participant(username)
    if me is not None:
        me.last_read_at = now
    db.session.add(message)
    db.session.commit()
    return ok(message.to_dict(), 201)


# --- Circulars ---

def next_reference_number(year=None):
    prefix = current_app.config.get('CIRCULAR_REFERENCE_PREFIX', 'CIR')
    year = year or utcnow().year
    stem = f"{prefix}/{year}/"
    highest = 0
    for (ref,) in db.session.query(Circular.reference_number).filter(Circular.reference_number.like(f"{stem}%")):
        try:
            highest = max(highest, int(ref.rsplit('/', 1)[1]))
        except (IndexError, ValueError):
            continue
    return f"{stem}{highest + 1:03d}"


def _apply_circular_fields(circular, payload):
    if 'title' in payload:
        require(payload, 'title')
        circular.title = as_text(payload, 'title')
    if 'content' in payload:
        require(payload, 'content')
        circular.content = payload['content']
    if 'category' in payload:
        circular.category = payload['category']
    if 'target' in payload:
        circular.target = parse_target(payload['target'])
    if 'attachments' in payload:
        circular.attachments = parse_attachments(payload['attachments'])


@app.route('/api/communication/circulars')
@crud_required('circular', 'read')
def list_circulars():
    q = _search_filter(Circular.query, Circular.title, Circular.reference_number)
    if _arg('category'):
        q = q.filter(Circular.category == _arg('category'))
    if _arg('status'):
        q = q.filter(Circular.status == _arg('status'))
    return paginate(q.order_by(Circular.created_at.desc()), default_limit=10)


@app.route('/api/communication/circulars/<circular_id>')
@crud_required('circular', 'read')
def get_circular(circular_id):
    return ok(get_or_404(Circular, circular_id, "Circular").to_dict())


@app.route('/api/communication/circulars', methods=['POST'])
@crud_required('circular', 'create')
def create_circular():
    payload = json_body()
    require(payload, 'title', 'content', 'target')
    username, name, _ = current_actor()
    circular = Circular(reference_number=next_reference_number(), status='draft', attachments=[],
                        created_by=username, created_by_name=name)
    _apply_circular_fields(circular, payload)
    db.session.add(circular)
    db.session.commit()
    logger.info(f"Circular {circular.reference_number} created")
    record_audit('circular_create', circular.reference_number)
    return ok(circular.to_dict(), 201)


@app.route('/api/communication/circulars/<circular_id>', methods=['PUT'])
@crud_required('circular', 'update')
def update_circular(circular_id):
    circular = get_or_404(Circular, circular_id, "Circular")
    payload = json_body()
    _apply_circular_fields(circular, payload)
    if 'status' in payload:
        circular.status = one_of(payload['status'], CIRCULAR_STATUSES, 'status')
        if circular.status == 'published' and circular.published_at is None:
            circular.published_at = utcnow()
    db.session.commit()
    record_audit('circular_update', circular.reference_number, f"status={circular.status}")
    return ok(circular.to_dict())


@app.route('/api/communication/circulars/<circular_id>', methods=['DELETE'])
@crud_required('circular', 'delete')
def delete_circular(circular_id):
    circular = get_or_404(Circular, circular_id, "Circular")
    reference = circular.reference_number
    db.session.delete(circular)
    db.session.commit()
    logger.info(f"Circular {reference} deleted")
    record_audit('circular_delete', reference)
    return ok({"success": True})


@app.route('/api/communication/circulars/<circular_id>/download', methods=['POST'])
@crud_required('circular', 'read')
def download_circular(circular_id):
    circular = get_or_404(Circular, circular_id, "Circular")
    circular.download_count = (circular.download_count or 0) + 1
    db.session.commit()
    return ok(circular.to_dict())


# --- Surveys ---

def normalise_questions(raw, existing=None):
    """Validate survey questions. Ids are generated; on update an id is kept
    only when it names one of the survey's current questions, once."""
    known_ids = {q.get('id') for q in existing or []}
    used_ids = set()
    questions = []
    errors = {}
    for i, item in enumerate(as_list(raw, 'questions')):
        key = f"questions[{i}]"
        if not isinstance(item, dict):
            errors[key] = ["Must be an object"]
            continue
        qtype = item.get('type')
        text = str(item.get('question') or '').strip()
        if qtype not in QUESTION_TYPES:
            errors[key] = [f"type must be one of: {', '.join(QUESTION_TYPES)}"]
            continue
        if not text:
            errors[key] = ["question text is required"]
            continue
        options = [str(o) for o in (item.get('options') or [])]
        if qtype in ('single_choice', 'multiple_choice') and len(options) < 2:
            errors[key] = ["Choice questions need at least two options"]
            continue
        qid = item.get('id')
        if not isinstance(qid, str) or qid not in known_ids or qid in used_ids:
            qid = new_id()
        used_ids.add(qid)
        questions.append({
            "id": qid,
            "type": qtype,
            "question": text,
            "required": bool(item.get('required', False)),
            "options": options if qtype in ('single_choice', 'multiple_choice') else [],
            "order": len(questions) + 1,
        })
    if errors:
        raise ValidationError("Invalid questions", errors)
    if not questions:
        raise ValidationError("Invalid questions", {"questions": ["Add at least one question"]})
    return questions


def validate_answers(questions, answers):
    """Check answers (questionId -> value) against the survey's questions."""
    if isinstance(answers, list):
        answers = {a.get('questionId'): a.get('value') for a in answers if isinstance(a, dict)}
    if not isinstance(answers, dict):
        raise ValidationError("Invalid answers", {"answers": ["Must map question ids to answers"]})
    known = {q['id']: q for q in questions}
    errors = {}
    for qid in answers:
        if qid not in known:
            errors[str(qid)] = ["Unknown question"]
    clean = {}
    for q in questions:
        value = answers.get(q['id'])
        blank = value is None or value == '' or value == []
        if blank:
            if q.get('required'):
                errors[q['id']] = ["An answer is required"]
            continue
        qtype = q['type']
        if qtype == 'single_choice' and value not in q['options']:
            errors[q['id']] = ["Choose one of the listed options"]
        elif qtype == 'multiple_choice' and (not isinstance(value, list) or any(v not in q['options'] for v in value)):
            errors[q['id']] = ["Choose from the listed options"]
        elif qtype in QUESTION_BOUNDS:
            low, high = QUESTION_BOUNDS[qtype]
            if isinstance(value, bool) or not isinstance(value, (int, float)) or not low <= value <= high:
                errors[q['id']] = [f"Must be between {low} and {high}"]
        elif qtype in ('text', 'textarea') and not isinstance(value, str):
            errors[q['id']] = ["Must be text"]
        clean[q['id']] = value
    if errors:
        raise ValidationError("Invalid answers", errors)
    return clean


def _apply_survey_fields(survey, payload):
    if 'title' in payload:
        require(payload, 'title')
        survey.title = as_text(payload, 'title')
    if 'description' in payload:
        survey.description = payload['description']
    if 'target' in payload:
        survey.target = parse_target(payload['target'])
        survey.total_targeted = count_targeted(survey.target)
    if 'anonymous' in payload:
        survey.anonymous = bool(payload['anonymous'])
    if 'startsAt' in payload:
        survey.starts_at = parse_datetime(payload['startsAt'], 'startsAt')
    if 'endsAt' in payload:
        survey.ends_at = parse_datetime(payload['endsAt'], 'endsAt')
    if survey.starts_at and survey.ends_at and survey.ends_at <= survey.starts_at:
        raise ValidationError("Invalid survey window", {"endsAt": ["Must be after startsAt"]})
    if 'questions' in payload:
        survey.questions = normalise_questions(payload['questions'], survey.questions)


@app.route('/api/communication/surveys')
@crud_required('survey', 'read')
def list_surveys():
    q = _search_filter(Survey.query, Survey.title, Survey.description)
    if _arg('status'):
        q = q.filter(Survey.status == _arg('status'))
    return paginate(q.order_by(Survey.created_at.desc()), default_limit=10)


@app.route('/api/communication/surveys/<survey_id>')
@crud_required('survey', 'read')
def get_survey(survey_id):
    return ok(get_or_404(Survey, survey_id, "Survey").to_dict())


@app.route('/api/communication/surveys', methods=['POST'])
@crud_required('survey', 'create')
def create_survey():
    payload = json_body()
    require(payload, 'title', 'target', 'questions')
    username, name, _ = current_actor()
    survey = Survey(status='draft', created_by=username, created_by_name=name)
    _apply_survey_fields(survey, payload)
    db.session.add(survey)
    db.session.commit()
    logger.info(f"Survey '{survey.title}' created with {len(survey.questions)} questions")
    record_audit('survey_create', survey.id, f"questions={len(survey.questions)}")
    return ok(survey.to_dict(), 201)


@app.route('/api/communication/surveys/<survey_id>', methods=['PUT'])
@crud_required('survey', 'update')
def update_survey(survey_id):
    survey = get_or_404(Survey, survey_id, "Survey")
    payload = json_body()
    if 'questions' in payload and survey.responses.count():
        raise ApiError(409, "Questions cannot change once responses have been collected")
    _apply_survey_fields(survey, payload)
    if 'status' in payload:
        survey.status = one_of(payload['status'], SURVEY_STATUSES, 'status')
    db.session.commit()
    record_audit('survey_update', survey.id, f"status={survey.status}")
    return ok(survey.to_dict())


@app.route('/api/communication/surveys/<survey_id>', methods=['DELETE'])
@crud_required('survey', 'delete')
def delete_survey(survey_id):
    survey = get_or_404(Survey, survey_id, "Survey")
    db.session.delete(survey)
    db.session.commit()
    logger.info(f"Survey {survey_id} deleted")
    record_audit('survey_delete', survey_id)
    return ok({"success": True})


@app.route('/api/communication/surveys/<survey_id>/responses', methods=['POST'])
@login_required
def submit_survey_response(survey_id):
    survey = get_or_404(Survey, survey_id, "Survey")
    if survey.status != 'active':
        raise ApiError(400, "This survey is not accepting responses")
    now = utcnow()
    if (survey.starts_at and now < survey.starts_at) or (survey.ends_at and now > survey.ends_at):
        raise ApiError(400, "This survey is outside its response window")
    payload = json_body()
    answers = validate_answers(survey.questions or [], payload.get('answers'))
    username, name, _ = current_actor()
    if not survey.anonymous and survey.responses.filter_by(respondent_username=username).first():
        raise ApiError(409, "You have already responded to this survey")
    response = SurveyResponse(
        survey_id=survey.id,
        respondent_username=None if survey.anonymous else username,
        respondent_name=None if survey.anonymous else name,
        answers=answers,
    )
    db.session.add(response)
    db.session.commit()
    return ok(response.to_dict(), 201)


@app.route('/api/communication/surveys/<survey_id>/responses')
@crud_required('survey', 'update')
def list_survey_responses(survey_id):
    survey = get_or_404(Survey, survey_id, "Survey")
    return paginate(survey.responses.order_by(SurveyResponse.submitted_at.desc()))


# --- Emergency alerts ---

def _parse_channels(raw):
    channels = as_list(raw, 'channels') or ['app']
    for channel in channels:
        one_of(channel, CHANNELS, 'channels')
    return list(dict.fromkeys(channels))


@app.route('/api/communication/alerts')
@crud_required('alert', 'read')
def list_alerts():
    q = _search_filter(EmergencyAlert.query, EmergencyAlert.title, EmergencyAlert.message)
    if _arg('severity'):
        q = q.filter(EmergencyAlert.severity == _arg('severity'))
    if _arg('status'):
        q = q.filter(EmergencyAlert.status == _arg('status'))
    alerts = q.order_by(case((EmergencyAlert.status == 'active', 0), else_=1), EmergencyAlert.created_at.desc()).all()
    return ok([a.to_dict() for a in alerts])


@app.route('/api/communication/alerts/<alert_id>')
@crud_required('alert', 'read')
def get_alert(alert_id):
    return ok(get_or_404(EmergencyAlert, alert_id, "Alert").to_dict())


@app.route('/api/communication/alerts', methods=['POST'])
@crud_required('alert', 'create')
def create_alert():
    payload = json_body()
    require(payload, 'title', 'message', 'severity', 'target')
    username, name, _ = current_actor()
    alert = EmergencyAlert(
        title=as_text(payload, 'title'),
        message=payload['message'],
        severity=one_of(payload['severity'], SEVERITIES, 'severity'),
        status='active',
        target=parse_target(payload['target']),
        channels=_parse_channels(payload.get('channels')),
        instructions=payload.get('instructions'),
        created_by=username,
        created_by_name=name,
    )
    db.session.add(alert)
    db.session.commit()
    logger.warning(f"{alert.severity.upper()} alert raised by {username}: {alert.title}")
    record_audit('alert_create', alert.id, f"severity={alert.severity}")
    return ok(alert.to_dict(), 201)


@app.route('/api/communication/alerts/<alert_id>', methods=['PUT'])
@crud_required('alert', 'update')
def update_alert(alert_id):
    alert = get_or_404(EmergencyAlert, alert_id, "Alert")
    payload = json_body()
    if 'title' in payload:
        require(payload, 'title')
        alert.title = as_text(payload, 'title')
    if 'message' in payload:
        require(payload, 'message')
        alert.message = payload['message']
    if 'severity' in payload:
        alert.severity = one_of(payload['severity'], SEVERITIES, 'severity')
    if 'instructions' in payload:
        alert.instructions = payload['instructions']
    if 'channels' in payload:
        alert.channels = _parse_channels(payload['channels'])
    if 'status' in payload:
        status = one_of(payload['status'], ALERT_STATUSES, 'status')
        if status == 'resolved' and alert.status != 'resolved':
            alert.resolved_at = utcnow()
            alert.resolved_by = current_username()
        elif status == 'active':
            alert.resolved_at = None
            alert.resolved_by = None
        alert.status = status
    db.session.commit()
    record_audit('alert_update', alert.id, f"status={alert.status}")
    return ok(alert.to_dict())


@app.route('/api/communication/alerts/<alert_id>/acknowledge', methods=['POST'])
@login_required
def acknowledge_alert(alert_id):
    alert = get_or_404(EmergencyAlert, alert_id, "Alert")
    if alert.status != 'active':
        raise ApiError(400, "This alert is no longer active")
    payload = json_body()
    status = one_of(payload.get('status', 'safe'), SAFETY_STATUSES, 'status')
    username, name, _ = current_actor()
    ack = AlertAcknowledgement.query.filter_by(alert_id=alert.id, username=username).first()
    if ack is None:
        ack = AlertAcknowledgement(alert_id=alert.id, username=username, name=name)
        db.session.add(ack)
    ack.status = status
    ack.location = payload.get('location')
    ack.acknowledged_at = utcnow()
    db.session.commit()
    if status == 'need_help':
        logger.warning(f"{username} needs help during alert {alert.id} at {ack.location or 'unknown location'}")
    return ok(alert.to_dict())


# --- Events ---

def _apply_school_event_fields(event, payload):
    if 'title' in payload:
        require(payload, 'title')
        event.title = as_text(payload, 'title')
    if 'description' in payload:
        event.description = payload['description']
    if 'type' in payload:
        event.type = one_of(payload['type'], EVENT_TYPES, 'type')
    if 'status' in payload:
        event.status = one_of(payload['status'], EVENT_STATUSES, 'status')
    if 'target' in payload:
        event.target = parse_target(payload['target'])
    if 'venue' in payload:
        event.venue = payload['venue']
    if 'startsAt' in payload:
        event.starts_at = parse_datetime(payload['startsAt'], 'startsAt') or event.starts_at
    if 'endsAt' in payload:
        event.ends_at = parse_datetime(payload['endsAt'], 'endsAt')
    if 'registrationRequired' in payload:
        event.registration_required = bool(payload['registrationRequired'])
    if 'registrationDeadline' in payload:
        event.registration_deadline = parse_datetime(payload['registrationDeadline'], 'registrationDeadline')
    if 'maxAttendees' in payload:
        cap = payload['maxAttendees']
        event.max_attendees = as_number(cap, 'maxAttendees', minimum=1, integer=True) if cap is not None else None
    if 'attachments' in payload:
        event.attachments = parse_attachments(payload['attachments'])
    if event.ends_at and event.starts_at and event.ends_at < event.starts_at:
        raise ValidationError("Invalid event window", {"endsAt": ["Must not be before startsAt"]})


@app.route('/api/communication/events')
@crud_required('school_event', 'read')
def list_school_events():
    q = _search_filter(SchoolEvent.query, SchoolEvent.title, SchoolEvent.description)
    if _arg('type'):
        q = q.filter(SchoolEvent.type == _arg('type'))
    if _arg('status'):
        q = q.filter(SchoolEvent.status == _arg('status'))
    return ok([e.to_dict() for e in q.order_by(SchoolEvent.starts_at.desc()).all()])


@app.route('/api/communication/events/<event_id>')
@crud_required('school_event', 'read')
def get_school_event(event_id):
    return ok(get_or_404(SchoolEvent, event_id, "Event").to_dict())


@app.route('/api/communication/events', methods=['POST'])
@crud_required('school_event', 'create')
def create_school_event():
    payload = json_body()
    require(payload, 'title', 'type', 'startsAt', 'target')
    username, name, _ = current_actor()
    event = SchoolEvent(status='upcoming', attachments=[], created_by=username, created_by_name=name)
    _apply_school_event_fields(event, payload)
    db.session.add(event)
    db.session.commit()
    logger.info(f"School event '{event.title}' created")
    record_audit('school_event_create', event.id, f"type={event.type}")
    return ok(event.to_dict(), 201)


@app.route('/api/communication/events/<event_id>', methods=['PUT'])
@crud_required('school_event', 'update')
def update_school_event(event_id):
    event = get_or_404(SchoolEvent, event_id, "Event")
    _apply_school_event_fields(event, json_body())
    db.session.commit()
    record_audit('school_event_update', event.id, f"status={event.status}")
    return ok(event.to_dict())


@app.route('/api/communication/events/<event_id>', methods=['DELETE'])
@crud_required('school_event', 'delete')
def delete_school_event(event_id):
    event = get_or_404(SchoolEvent, event_id, "Event")
    db.session.delete(event)
    db.session.commit()
    logger.info(f"School event {event_id} deleted")
    record_audit('school_event_delete', event_id)
    return ok({"success": True})


@app.route('/api/communication/events/<event_id>/register', methods=['POST'])
@login_required
def register_for_school_event(event_id):
    event = get_or_404(SchoolEvent, event_id, "Event")
    if not event.registration_required:
        raise ApiError(400, "This event does not take registrations")
    if event.status not in ('upcoming', 'ongoing'):
        raise ApiError(400, f"Registration is closed for {event.status} events")
    if event.registration_deadline and utcnow() > event.registration_deadline:
        raise ApiError(400, "The registration deadline has passed")
    username, name, role = current_actor()
    if SchoolEventRegistration.query.filter_by(event_id=event.id, username=username).first():
        raise ApiError(400, "Already registered for this event")
    if event.max_attendees is not None and len(event.registrations) >= event.max_attendees:
        raise ApiError(400, "Event is full")
    registration = SchoolEventRegistration(event_id=event.id, username=username, name=name, role=role)
    db.session.add(registration)
    db.session.commit()
    return ok(registration.to_dict(), 201)


@app.route('/api/communication/events/<event_id>/register', methods=['DELETE'])
@login_required
def cancel_school_event_registration(event_id):
    event = get_or_404(SchoolEvent, event_id, "Event")
    registration = SchoolEventRegistration.query.filter_by(event_id=event.id, username=current_username()).first()
    if registration is None:
        raise ApiError(404, "You are not registered for this event")
    db.session.delete(registration)
    db.session.commit()
    return ok({"success": True})


# --- Stats ---

@app.route('/api/communication/stats')
@crud_required('communication_stats', 'read')
def communication_stats():
    release_due_announcements()
    username = current_username()
    now = utcnow()
    today = datetime(now.year, now.month, now.day)
    month_start = datetime(now.year, now.month, 1)

    def count_status(model, status):
        return model.query.filter(model.status == status).count()

    conversations = Conversation.query.join(ConversationParticipant) \
        .filter(ConversationParticipant.username == username).all()
    unread = sum(c.to_dict(username)['unreadCount'] for c in conversations)
    active_surveys = Survey.query.filter_by(status='active').all()
    return ok({
        "announcements": {
            "total": Announcement.query.count(),
            "published": count_status(Announcement, 'published'),
            "draft": count_status(Announcement, 'draft'),
            "scheduled": count_status(Announcement, 'scheduled'),
        },
        "messages": {
            "totalConversations": len(conversations),
            "unreadCount": unread,
            "sentToday": Message.query.filter(Message.created_at >= today).count(),
        },
        "circulars": {
            "total": Circular.query.count(),
            "published": count_status(Circular, 'published'),
            "totalDownloads": int(db.session.query(func.coalesce(func.sum(Circular.download_count), 0)).scalar() or 0),
        },
        "surveys": {
            "active": len(active_surveys),
            "totalResponses": SurveyResponse.query.count(),
            "pendingResponses": sum(max((s.total_targeted or 0) - s.responses.count(), 0) for s in active_surveys),
        },
        "alerts": {
            "active": count_status(EmergencyAlert, 'active'),
            "resolvedThisMonth": EmergencyAlert.query.filter(EmergencyAlert.status == 'resolved',
                                                             EmergencyAlert.resolved_at >= month_start).count(),
        },
        "events": {
            "upcoming": count_status(SchoolEvent, 'upcoming'),
            "totalRegistrations": SchoolEventRegistration.query.count(),
        },
    })
