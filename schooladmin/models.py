from schooladmin import db
from flask import current_app
from datetime import datetime, date, timedelta, timezone
import uuid


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every DateTime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def iso(value):
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.isoformat(timespec='seconds') + 'Z'
    if isinstance(value, date):
        return value.isoformat()
    return value


# Accounts

class User(db.Model):
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    username = db.Column(db.String(80), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(20), nullable=False, default='student')
    name = db.Column(db.String(120))
    email = db.Column(db.String(120))
    student_id = db.Column(db.String(36), db.ForeignKey('student.id'))
    created_at = db.Column(db.DateTime, default=utcnow)

    @property
    def display_name(self):
        return self.name or self.username

    def to_dict(self):
        return {
            'id': self.id,
            'username': self.username,
            'name': self.display_name,
            'email': self.email,
            'role': self.role,
            'studentId': self.student_id,
        }

    def __repr__(self):
        return f"User('{self.username}', role='{self.role}')"


class Student(db.Model):
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    admission_number = db.Column(db.String(30), unique=True, nullable=False)
    name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(120), unique=True)
    phone = db.Column(db.String(20))
    gender = db.Column(db.String(10))
    class_name = db.Column('class', db.String(30), nullable=False)
    section = db.Column(db.String(10), nullable=False)
    roll_number = db.Column(db.Integer)
    photo_url = db.Column(db.String(255))
    status = db.Column(db.String(20), default='active')
    created_at = db.Column(db.DateTime, default=utcnow)

    parent_links = db.relationship('ParentStudentLink', backref='student', lazy=True, cascade="all, delete-orphan")

    def to_dict(self):
        return {
            'id': self.id,
            'admissionNumber': self.admission_number,
            'name': self.name,
            'email': self.email,
            'phone': self.phone,
            'gender': self.gender,
            'class': self.class_name,
            'section': self.section,
            'rollNumber': self.roll_number,
            'photoUrl': self.photo_url,
            'status': self.status,
        }

    def __repr__(self):
        return f"Student('{self.admission_number}', '{self.name}', '{self.class_name}-{self.section}')"


class ParentStudentLink(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    parent_username = db.Column(db.String(80), nullable=False)
    student_id = db.Column(db.String(36), db.ForeignKey('student.id'), nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)
    __table_args__ = (db.UniqueConstraint('parent_username', 'student_id', name='uq_parent_student'),)


class AuditLog(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    action = db.Column(db.String(50), nullable=False)
    actor_username = db.Column(db.String(80))
    actor_role = db.Column(db.String(20))
    target = db.Column(db.String(120))
    details = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'action': self.action,
            'actor': self.actor_username,
            'actorRole': self.actor_role,
            'target': self.target,
            'details': self.details,
            'createdAt': iso(self.created_at),
        }


# Alumni

class Alumni(db.Model):
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    student_id = db.Column(db.String(36), db.ForeignKey('student.id'), unique=True)
    name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(120), unique=True, nullable=False)
    phone = db.Column(db.String(20))
    batch = db.Column(db.String(10), nullable=False)
    class_name = db.Column('class', db.String(30))
    section = db.Column(db.String(10))
    roll_number = db.Column(db.String(20))
    photo = db.Column(db.String(255))
    current_city = db.Column(db.String(100))
    current_country = db.Column(db.String(100))
    occupation = db.Column(db.String(100))
    company = db.Column(db.String(120))
    linkedin = db.Column(db.String(255))
    is_verified = db.Column(db.Boolean, default=False, nullable=False)
    registered_at = db.Column(db.DateTime, default=utcnow)

    student = db.relationship('Student', lazy=True)
    achievements = db.relationship('AlumniAchievement', backref='alumni', lazy=True, cascade="all, delete-orphan")
    contributions = db.relationship('AlumniContribution', backref='alumni', lazy=True, cascade="all, delete-orphan")
    registrations = db.relationship('AlumniEventRegistration', backref='alumni', lazy=True, cascade="all, delete-orphan")

    def to_dict(self):
        return {
            'id': self.id,
            'studentId': self.student_id,
            'name': self.name,
            'email': self.email,
            'phone': self.phone,
            'batch': self.batch,
            'class': self.class_name,
            'section': self.section,
            'rollNumber': self.roll_number,
            'photo': self.photo,
            'currentCity': self.current_city,
            'currentCountry': self.current_country,
            'occupation': self.occupation,
            'company': self.company,
            'linkedIn': self.linkedin,
            'isVerified': bool(self.is_verified),
            'registeredAt': iso(self.registered_at),
        }

    def __repr__(self):
        return f"Alumni('{self.name}', batch='{self.batch}')"


class AlumniAchievement(db.Model):
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    alumni_id = db.Column(db.String(36), db.ForeignKey('alumni.id'), nullable=False)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    category = db.Column(db.String(20), nullable=False)
    date = db.Column(db.Date, nullable=False)
    is_published = db.Column(db.Boolean, default=False, nullable=False)
    added_by = db.Column(db.String(10), default='admin')
    created_at = db.Column(db.DateTime, default=utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'alumniId': self.alumni_id,
            'alumniName': self.alumni.name if self.alumni else None,
            'title': self.title,
            'description': self.description,
            'category': self.category,
            'date': iso(self.date),
            'isPublished': bool(self.is_published),
            'addedBy': self.added_by,
            'createdAt': iso(self.created_at),
        }


class AlumniContribution(db.Model):
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    alumni_id = db.Column(db.String(36), db.ForeignKey('alumni.id'), nullable=False)
    type = db.Column(db.String(20), nullable=False)
    description = db.Column(db.Text)
    amount = db.Column(db.Float)
    date = db.Column(db.Date, nullable=False)
    status = db.Column(db.String(20), default='pledged', nullable=False)
    acknowledgement = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'alumniId': self.alumni_id,
            'alumniName': self.alumni.name if self.alumni else None,
            'type': self.type,
            'description': self.description,
            'amount': self.amount,
            'date': iso(self.date),
            'status': self.status,
            'acknowledgement': self.acknowledgement,
            'createdAt': iso(self.created_at),
        }


class AlumniEvent(db.Model):
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    type = db.Column(db.String(20), nullable=False)
    date = db.Column(db.DateTime, nullable=False)
    venue = db.Column(db.String(200))
    is_virtual = db.Column(db.Boolean, default=False, nullable=False)
    meeting_link = db.Column(db.String(255))
    target_batches = db.Column(db.JSON, default=list)
    max_capacity = db.Column(db.Integer)
    registered_count = db.Column(db.Integer, default=0, nullable=False)
    status = db.Column(db.String(20), default='upcoming', nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)

    registrations = db.relationship('AlumniEventRegistration', backref='event', lazy=True, cascade="all, delete-orphan")

    @property
    def is_full(self):
        return self.max_capacity is not None and (self.registered_count or 0) >= self.max_capacity

    def to_dict(self):
        return {
            'id': self.id,
            'title': self.title,
            'description': self.description,
            'type': self.type,
            'date': iso(self.date),
            'venue': self.venue,
            'isVirtual': bool(self.is_virtual),
            'meetingLink': self.meeting_link,
            'targetBatches': list(self.target_batches or []),
            'maxCapacity': self.max_capacity,
            'registeredCount': self.registered_count or 0,
            'status': self.status,
            'createdAt': iso(self.created_at),
        }


class AlumniEventRegistration(db.Model):
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    event_id = db.Column(db.String(36), db.ForeignKey('alumni_event.id'), nullable=False)
    alumni_id = db.Column(db.String(36), db.ForeignKey('alumni.id'), nullable=False)
    status = db.Column(db.String(20), default='registered', nullable=False)
    registered_at = db.Column(db.DateTime, default=utcnow)
    __table_args__ = (db.UniqueConstraint('event_id', 'alumni_id', name='uq_alumni_event_registration'),)

    def to_dict(self):
        return {
            'id': self.id,
            'eventId': self.event_id,
            'alumniId': self.alumni_id,
            'alumniName': self.alumni.name if self.alumni else None,
            'batch': self.alumni.batch if self.alumni else None,
            'status': self.status,
            'registeredAt': iso(self.registered_at),
        }


# Communication

class Announcement(db.Model):
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    title = db.Column(db.String(200), nullable=False)
    content = db.Column(db.Text, nullable=False)
    priority = db.Column(db.String(10), default='normal', nullable=False)
    status = db.Column(db.String(20), default='draft', nullable=False)
    target = db.Column(db.JSON, nullable=False)
    attachments = db.Column(db.JSON, default=list)
    acknowledgement_required = db.Column(db.Boolean, default=False, nullable=False)
    view_count = db.Column(db.Integer, default=0, nullable=False)
    published_at = db.Column(db.DateTime)
    scheduled_at = db.Column(db.DateTime)
    expires_at = db.Column(db.DateTime)
    created_by = db.Column(db.String(80))
    created_by_name = db.Column(db.String(120))
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    acknowledgements = db.relationship('AnnouncementAcknowledgement', backref='announcement', lazy=True, cascade="all, delete-orphan")

    def to_dict(self):
        return {
            'id': self.id,
            'title': self.title,
            'content': self.content,
            'priority': self.priority,
            'status': self.status,
            'target': self.target,
            'attachments': list(self.attachments or []),
            'acknowledgementRequired': bool(self.acknowledgement_required),
            'acknowledgementCount': len(self.acknowledgements),
            'viewCount': self.view_count or 0,
            'publishedAt': iso(self.published_at),
            'scheduledAt': iso(self.scheduled_at),
            'expiresAt': iso(self.expires_at),
            'createdBy': self.created_by,
            'createdByName': self.created_by_name,
            'createdAt': iso(self.created_at),
            'updatedAt': iso(self.updated_at),
        }


class AnnouncementAcknowledgement(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    announcement_id = db.Column(db.String(36), db.ForeignKey('announcement.id'), nullable=False)
    username = db.Column(db.String(80), nullable=False)
    acknowledged_at = db.Column(db.DateTime, default=utcnow)
    __table_args__ = (db.UniqueConstraint('announcement_id', 'username', name='uq_announcement_ack'),)


class Conversation(db.Model):
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    type = db.Column(db.String(10), default='direct', nullable=False)
    title = db.Column(db.String(200))
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow)

    participants = db.relationship('ConversationParticipant', backref='conversation', lazy=True, cascade="all, delete-orphan")
    messages = db.relationship('Message', backref='conversation', lazy='dynamic', cascade="all, delete-orphan")

    def participant(self, username):
        for p in self.participants:
            if p.username == username:
                return p
        return None

    def to_dict(self, username=None):
        last = self.messages.order_by(Message.created_at.desc()).first()
        unread = 0
        me = self.participant(username) if username else None
        if me is not None:
            q = self.messages.filter(Message.sender_username != username)
            if me.last_read_at is not None:
                q = q.filter(Message.created_at > me.last_read_at)
            unread = q.count()
        return {
            'id': self.id,
            'type': self.type,
            'title': self.title,
            'participants': [p.to_dict() for p in self.participants],
            'lastMessage': last.to_dict() if last else None,
            'unreadCount': unread,
            'createdAt': iso(self.created_at),
            'updatedAt': iso(self.updated_at),
        }


class ConversationParticipant(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    conversation_id = db.Column(db.String(36), db.ForeignKey('conversation.id'), nullable=False)
    username = db.Column(db.String(80), nullable=False)
    name = db.Column(db.String(120))
    role = db.Column(db.String(20))
    last_read_at = db.Column(db.DateTime)
    __table_args__ = (db.UniqueConstraint('conversation_id', 'username', name='uq_conversation_participant'),)

    def to_dict(self):
        return {'userId': self.username, 'name': self.name, 'role': self.role}


class Message(db.Model):
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    conversation_id = db.Column(db.String(36), db.ForeignKey('conversation.id'), nullable=False)
    sender_username = db.Column(db.String(80), nullable=False)
    sender_name = db.Column(db.String(120))
    sender_role = db.Column(db.String(20))
    content = db.Column(db.Text, nullable=False)
    attachments = db.Column(db.JSON, default=list)
    status = db.Column(db.String(10), default='sent', nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)
    read_at = db.Column(db.DateTime)

    def to_dict(self):
        return {
            'id': self.id,
            'conversationId': self.conversation_id,
            'senderId': self.sender_username,
            'senderName': self.sender_name,
            'senderRole': self.sender_role,
            'content': self.content,
            'attachments': list(self.attachments or []),
            'status': self.status,
            'createdAt': iso(self.created_at),
            'readAt': iso(self.read_at),
        }


class Circular(db.Model):
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    reference_number = db.Column(db.String(30), unique=True, nullable=False)
    title = db.Column(db.String(200), nullable=False)
    content = db.Column(db.Text, nullable=False)
    category = db.Column(db.String(50))
    status = db.Column(db.String(20), default='draft', nullable=False)
    target = db.Column(db.JSON, nullable=False)
    attachments = db.Column(db.JSON, default=list)
    download_count = db.Column(db.Integer, default=0, nullable=False)
    published_at = db.Column(db.DateTime)
    created_by = db.Column(db.String(80))
    created_by_name = db.Column(db.String(120))
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'referenceNumber': self.reference_number,
            'title': self.title,
            'content': self.content,
            'category': self.category,
            'status': self.status,
            'target': self.target,
            'attachments': list(self.attachments or []),
            'downloadCount': self.download_count or 0,
            'publishedAt': iso(self.published_at),
            'createdBy': self.created_by,
            'createdByName': self.created_by_name,
            'createdAt': iso(self.created_at),
            'updatedAt': iso(self.updated_at),
        }


class Survey(db.Model):
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    status = db.Column(db.String(20), default='draft', nullable=False)
    target = db.Column(db.JSON, nullable=False)
    questions = db.Column(db.JSON, default=list)
    anonymous = db.Column(db.Boolean, default=False, nullable=False)
    starts_at = db.Column(db.DateTime)
    ends_at = db.Column(db.DateTime)
    total_targeted = db.Column(db.Integer, default=0, nullable=False)
    created_by = db.Column(db.String(80))
    created_by_name = db.Column(db.String(120))
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    responses = db.relationship('SurveyResponse', backref='survey', lazy='dynamic', cascade="all, delete-orphan")

    def to_dict(self):
        return {
            'id': self.id,
            'title': self.title,
            'description': self.description,
            'status': self.status,
            'target': self.target,
            'questions': list(self.questions or []),
            'anonymous': bool(self.anonymous),
            'startsAt': iso(self.starts_at),
            'endsAt': iso(self.ends_at),
            'responseCount': self.responses.count(),
            'totalTargeted': self.total_targeted or 0,
            'createdBy': self.created_by,
            'createdByName': self.created_by_name,
            'createdAt': iso(self.created_at),
            'updatedAt': iso(self.updated_at),
        }


class SurveyResponse(db.Model):
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    survey_id = db.Column(db.String(36), db.ForeignKey('survey.id'), nullable=False)
    respondent_username = db.Column(db.String(80))
    respondent_name = db.Column(db.String(120))
    answers = db.Column(db.JSON, nullable=False)
    submitted_at = db.Column(db.DateTime, default=utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'surveyId': self.survey_id,
            'respondentId': self.respondent_username,
            'respondentName': self.respondent_name,
            'answers': self.answers,
            'submittedAt': iso(self.submitted_at),
        }


class EmergencyAlert(db.Model):
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    title = db.Column(db.String(200), nullable=False)
    message = db.Column(db.Text, nullable=False)
    severity = db.Column(db.String(20), nullable=False)
    status = db.Column(db.String(20), default='active', nullable=False)
    target = db.Column(db.JSON, nullable=False)
    channels = db.Column(db.JSON, default=list)
    instructions = db.Column(db.Text)
    resolved_at = db.Column(db.DateTime)
    resolved_by = db.Column(db.String(80))
    created_by = db.Column(db.String(80))
    created_by_name = db.Column(db.String(120))
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    acknowledgements = db.relationship('AlertAcknowledgement', backref='alert', lazy=True, cascade="all, delete-orphan")

    def to_dict(self):
        acks = self.acknowledgements
        return {
            'id': self.id,
            'title': self.title,
            'message': self.message,
            'severity': self.severity,
            'status': self.status,
            'target': self.target,
            'channels': list(self.channels or []),
            'instructions': self.instructions,
            'acknowledgements': [a.to_dict() for a in acks],
            'safeCount': sum(1 for a in acks if a.status == 'safe'),
            'needHelpCount': sum(1 for a in acks if a.status == 'need_help'),
            'resolvedAt': iso(self.resolved_at),
            'resolvedBy': self.resolved_by,
            'createdBy': self.created_by,
            'createdByName': self.created_by_name,
            'createdAt': iso(self.created_at),
            'updatedAt': iso(self.updated_at),
        }


class AlertAcknowledgement(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    alert_id = db.Column(db.String(36), db.ForeignKey('emergency_alert.id'), nullable=False)
    username = db.Column(db.String(80), nullable=False)
    name = db.Column(db.String(120))
    status = db.Column(db.String(20), default='safe', nullable=False)
    location = db.Column(db.String(200))
    acknowledged_at = db.Column(db.DateTime, default=utcnow)
    __table_args__ = (db.UniqueConstraint('alert_id', 'username', name='uq_alert_ack'),)

    def to_dict(self):
        return {
            'userId': self.username,
            'userName': self.name,
            'status': self.status,
            'location': self.location,
            'acknowledgedAt': iso(self.acknowledged_at),
        }


class SchoolEvent(db.Model):
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    type = db.Column(db.String(20), nullable=False)
    status = db.Column(db.String(20), default='upcoming', nullable=False)
    target = db.Column(db.JSON, nullable=False)
    venue = db.Column(db.String(200))
    starts_at = db.Column(db.DateTime, nullable=False)
    ends_at = db.Column(db.DateTime)
    registration_required = db.Column(db.Boolean, default=False, nullable=False)
    registration_deadline = db.Column(db.DateTime)
    max_attendees = db.Column(db.Integer)
    attachments = db.Column(db.JSON, default=list)
    created_by = db.Column(db.String(80))
    created_by_name = db.Column(db.String(120))
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    registrations = db.relationship('SchoolEventRegistration', backref='event', lazy=True, cascade="all, delete-orphan")

    def to_dict(self):
        return {
            'id': self.id,
            'title': self.title,
            'description': self.description,
            'type': self.type,
            'status': self.status,
            'target': self.target,
            'venue': self.venue,
            'startsAt': iso(self.starts_at),
            'endsAt': iso(self.ends_at),
            'registrationRequired': bool(self.registration_required),
            'registrationDeadline': iso(self.registration_deadline),
            'maxAttendees': self.max_attendees,
            'registeredCount': len(self.registrations),
            'attachments': list(self.attachments or []),
            'createdBy': self.created_by,
            'createdByName': self.created_by_name,
            'createdAt': iso(self.created_at),
            'updatedAt': iso(self.updated_at),
        }


class SchoolEventRegistration(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    event_id = db.Column(db.String(36), db.ForeignKey('school_event.id'), nullable=False)
    username = db.Column(db.String(80), nullable=False)
    name = db.Column(db.String(120))
    role = db.Column(db.String(20))
    registered_at = db.Column(db.DateTime, default=utcnow)
    __table_args__ = (db.UniqueConstraint('event_id', 'username', name='uq_school_event_registration'),)

    def to_dict(self):
        return {
            'eventId': self.event_id,
            'userId': self.username,
            'userName': self.name,
            'userRole': self.role,
            'registeredAt': iso(self.registered_at),
        }


# Exams

class Exam(db.Model):
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    name = db.Column(db.String(150), nullable=False)
    type = db.Column(db.String(20), nullable=False)
    academic_year = db.Column(db.String(10), nullable=False)
    term = db.Column(db.String(20))
    applicable_classes = db.Column(db.JSON, default=list)
    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=False)
    status = db.Column(db.String(20), default='scheduled', nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    subjects = db.relationship('ExamSubject', backref='exam', lazy=True, cascade="all, delete-orphan",
                               order_by='ExamSubject.position')
    marks = db.relationship('StudentMark', backref='exam', lazy='dynamic', cascade="all, delete-orphan")
    slots = db.relationship('ExamSlot', backref='exam', lazy=True, cascade="all, delete-orphan")
    report_cards = db.relationship('ReportCard', backref='exam', lazy=True, cascade="all, delete-orphan")

    def subject_by_id(self, subject_id):
        for s in self.subjects:
            if s.id == subject_id:
                return s
        return None

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'type': self.type,
            'academicYear': self.academic_year,
            'term': self.term,
            'applicableClasses': list(self.applicable_classes or []),
            'subjects': [s.to_dict() for s in self.subjects],
            'startDate': iso(self.start_date),
            'endDate': iso(self.end_date),
            'status': self.status,
            'createdAt': iso(self.created_at),
            'updatedAt': iso(self.updated_at),
        }

    def __repr__(self):
        return f"Exam('{self.name}', '{self.academic_year}', status='{self.status}')"


class ExamSubject(db.Model):
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    exam_id = db.Column(db.String(36), db.ForeignKey('exam.id'), nullable=False)
    name = db.Column(db.String(100), nullable=False)
    code = db.Column(db.String(20), nullable=False)
    type = db.Column(db.String(10), default='theory', nullable=False)
    max_marks = db.Column(db.Float, nullable=False)
    passing_marks = db.Column(db.Float, nullable=False)
    position = db.Column(db.Integer, default=0)
    __table_args__ = (db.UniqueConstraint('exam_id', 'code', name='uq_exam_subject_code'),)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'code': self.code,
            'type': self.type,
            'maxMarks': self.max_marks,
            'passingMarks': self.passing_marks,
        }


class StudentMark(db.Model):
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    exam_id = db.Column(db.String(36), db.ForeignKey('exam.id'), nullable=False)
    subject_id = db.Column(db.String(36), db.ForeignKey('exam_subject.id'), nullable=False)
    student_id = db.Column(db.String(36), db.ForeignKey('student.id'), nullable=False)
    marks_obtained = db.Column(db.Float, default=0, nullable=False)
    max_marks = db.Column(db.Float, nullable=False)
    grade = db.Column(db.String(5))
    grade_point = db.Column(db.Float)
    is_absent = db.Column(db.Boolean, default=False, nullable=False)
    remarks = db.Column(db.String(255))
    entered_by = db.Column(db.String(80))
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)
    __table_args__ = (db.UniqueConstraint('exam_id', 'subject_id', 'student_id', name='uq_student_mark'),)

    subject = db.relationship('ExamSubject', lazy=True)
    student = db.relationship('Student', lazy=True)

    def to_dict(self):
        return {
            'id': self.id,
            'examId': self.exam_id,
            'studentId': self.student_id,
            'studentName': self.student.name if self.student else None,
            'studentClass': self.student.class_name if self.student else None,
            'studentSection': self.student.section if self.student else None,
            'admissionNumber': self.student.admission_number if self.student else None,
            'subjectId': self.subject_id,
            'subjectName': self.subject.name if self.subject else None,
            'marksObtained': self.marks_obtained,
            'maxMarks': self.max_marks,
            'grade': self.grade,
            'gradePoint': self.grade_point,
            'isAbsent': bool(self.is_absent),
            'remarks': self.remarks,
            'createdAt': iso(self.created_at),
            'updatedAt': iso(self.updated_at),
        }


class GradeScale(db.Model):
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    name = db.Column(db.String(100), nullable=False)
    is_default = db.Column(db.Boolean, default=False, nullable=False)
    ranges = db.Column(db.JSON, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'isDefault': bool(self.is_default),
            'ranges': list(self.ranges or []),
            'createdAt': iso(self.created_at),
            'updatedAt': iso(self.updated_at),
        }


class ReportCard(db.Model):
    """Stored snapshot of a computed report card."""
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    exam_id = db.Column(db.String(36), db.ForeignKey('exam.id'), nullable=False)
    student_id = db.Column(db.String(36), db.ForeignKey('student.id'), nullable=False)
    data = db.Column(db.JSON, nullable=False)
    generated_by = db.Column(db.String(80))
    generated_at = db.Column(db.DateTime, default=utcnow)
    __table_args__ = (db.UniqueConstraint('exam_id', 'student_id', name='uq_report_card'),)

    def to_dict(self):
        out = dict(self.data or {})
        out['id'] = self.id
        out['generatedAt'] = iso(self.generated_at)
        return out


class ExamSlot(db.Model):
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    exam_id = db.Column(db.String(36), db.ForeignKey('exam.id'), nullable=False)
    subject_id = db.Column(db.String(36), db.ForeignKey('exam_subject.id'), nullable=False)
    date = db.Column(db.Date, nullable=False)
    start_time = db.Column(db.String(5), nullable=False)
    end_time = db.Column(db.String(5), nullable=False)
    room = db.Column(db.String(50))
    invigilator = db.Column(db.String(100))
    applicable_classes = db.Column(db.JSON, default=list)

    subject = db.relationship('ExamSubject', lazy=True)

    def to_dict(self):
        return {
            'id': self.id,
            'examId': self.exam_id,
            'subjectId': self.subject_id,
            'subjectName': self.subject.name if self.subject else None,
            'date': iso(self.date),
            'startTime': self.start_time,
            'endTime': self.end_time,
            'room': self.room,
            'invigilator': self.invigilator,
            'applicableClasses': list(self.applicable_classes or []),
        }


class CoScholasticRecord(db.Model):
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    student_id = db.Column(db.String(36), db.ForeignKey('student.id'), nullable=False)
    academic_year = db.Column(db.String(10), nullable=False)
    term = db.Column(db.String(20), nullable=False)
    area = db.Column(db.String(100), nullable=False)
    grade = db.Column(db.String(2), nullable=False)
    remarks = db.Column(db.String(255))
    assessed_by = db.Column(db.String(80))
    assessed_at = db.Column(db.DateTime, default=utcnow)
    __table_args__ = (db.UniqueConstraint('student_id', 'academic_year', 'term', 'area', name='uq_co_scholastic'),)

    student = db.relationship('Student', lazy=True)

    def to_dict(self):
        return {
            'id': self.id,
            'studentId': self.student_id,
            'studentName': self.student.name if self.student else None,
            'studentClass': self.student.class_name if self.student else None,
            'studentSection': self.student.section if self.student else None,
            'academicYear': self.academic_year,
            'term': self.term,
            'area': self.area,
            'grade': self.grade,
            'remarks': self.remarks,
            'assessedBy': self.assessed_by,
            'assessedAt': iso(self.assessed_at),
        }


class QuestionPaper(db.Model):
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    exam_id = db.Column(db.String(36), db.ForeignKey('exam.id'))
    subject_id = db.Column(db.String(36), nullable=False)
    subject_name = db.Column(db.String(100), nullable=False)
    subject_code = db.Column(db.String(20))
    class_name = db.Column('class', db.String(30), nullable=False)
    academic_year = db.Column(db.String(10))
    term = db.Column(db.String(20))
    total_marks = db.Column(db.Float, nullable=False)
    duration = db.Column(db.String(30), nullable=False)
    difficulty = db.Column(db.String(10), default='medium')
    sections = db.Column(db.JSON, default=list)
    created_by = db.Column(db.String(80))
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    exam = db.relationship('Exam', lazy=True)

    def to_dict(self):
        return {
            'id': self.id,
            'examId': self.exam_id,
            'examName': self.exam.name if self.exam else None,
            'subjectId': self.subject_id,
            'subjectName': self.subject_name,
            'subjectCode': self.subject_code,
            'className': self.class_name,
            'academicYear': self.academic_year,
            'term': self.term,
            'totalMarks': self.total_marks,
            'duration': self.duration,
            'difficulty': self.difficulty,
            'sections': list(self.sections or []),
            'createdBy': self.created_by,
            'createdAt': iso(self.created_at),
            'updatedAt': iso(self.updated_at),
        }


# Hostel

class Hostel(db.Model):
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    name = db.Column(db.String(100), unique=True, nullable=False)
    type = db.Column(db.String(10), nullable=False)
    capacity = db.Column(db.Integer, default=0, nullable=False)
    occupancy = db.Column(db.Integer, default=0, nullable=False)
    floors = db.Column(db.Integer, default=1)
    warden_id = db.Column(db.String(36))
    warden_name = db.Column(db.String(120))
    address = db.Column(db.String(255))
    contact_number = db.Column(db.String(20))
    email = db.Column(db.String(120))
    amenities = db.Column(db.JSON, default=list)
    status = db.Column(db.String(10), default='active', nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    rooms = db.relationship('Room', backref='hostel', lazy=True, cascade="all, delete-orphan")

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'type': self.type,
            'capacity': self.capacity,
            'occupancy': self.occupancy,
            'floors': self.floors,
            'wardenId': self.warden_id,
            'wardenName': self.warden_name,
            'address': self.address,
            'contactNumber': self.contact_number,
            'email': self.email,
            'amenities': list(self.amenities or []),
            'roomCount': len(self.rooms),
            'status': self.status,
            'createdAt': iso(self.created_at),
        }

    def __repr__(self):
        return f"Hostel('{self.name}', {self.occupancy}/{self.capacity})"


class Room(db.Model):
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    hostel_id = db.Column(db.String(36), db.ForeignKey('hostel.id'), nullable=False)
    room_number = db.Column(db.String(20), nullable=False)
    floor = db.Column(db.Integer, default=0, nullable=False)
    type = db.Column(db.String(10), nullable=False)
    capacity = db.Column(db.Integer, nullable=False)
    occupancy = db.Column(db.Integer, default=0, nullable=False)
    amenities = db.Column(db.JSON, default=list)
    status = db.Column(db.String(15), default='available', nullable=False)
    monthly_rent = db.Column(db.Float, default=0)
    created_at = db.Column(db.DateTime, default=utcnow)
    __table_args__ = (db.UniqueConstraint('hostel_id', 'room_number', name='uq_hostel_room_number'),)

    def refresh_status(self):
        if self.status == 'maintenance':
            return
        self.status = 'full' if self.occupancy >= self.capacity else 'available'

    def to_dict(self):
        return {
            'id': self.id,
            'hostelId': self.hostel_id,
            'hostelName': self.hostel.name if self.hostel else None,
            'roomNumber': self.room_number,
            'floor': self.floor,
            'type': self.type,
            'capacity': self.capacity,
            'occupancy': self.occupancy,
            'amenities': list(self.amenities or []),
            'status': self.status,
            'monthlyRent': self.monthly_rent,
        }


class RoomAllocation(db.Model):
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    room_id = db.Column(db.String(36), db.ForeignKey('room.id'), nullable=False)
    hostel_id = db.Column(db.String(36), db.ForeignKey('hostel.id'), nullable=False)
    student_id = db.Column(db.String(36), db.ForeignKey('student.id'), nullable=False)
    bed_number = db.Column(db.Integer, nullable=False)
    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date)
    status = db.Column(db.String(15), default='active', nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)

    room = db.relationship('Room', lazy=True)
    hostel = db.relationship('Hostel', lazy=True)
    student = db.relationship('Student', lazy=True)

    def to_dict(self):
        return {
            'id': self.id,
            'roomId': self.room_id,
            'roomNumber': self.room.room_number if self.room else None,
            'hostelId': self.hostel_id,
            'hostelName': self.hostel.name if self.hostel else None,
            'studentId': self.student_id,
            'studentName': self.student.name if self.student else None,
            'class': self.student.class_name if self.student else None,
            'section': self.student.section if self.student else None,
            'bedNumber': self.bed_number,
            'startDate': iso(self.start_date),
            'endDate': iso(self.end_date),
            'status': self.status,
        }


class HostelFee(db.Model):
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    student_id = db.Column(db.String(36), db.ForeignKey('student.id'), nullable=False)
    allocation_id = db.Column(db.String(36), db.ForeignKey('room_allocation.id'))
    fee_type = db.Column(db.String(15), nullable=False)
    amount = db.Column(db.Float, nullable=False)
    month = db.Column(db.String(7), nullable=False)
    due_date = db.Column(db.Date, nullable=False)
    paid_date = db.Column(db.Date)
    status = db.Column(db.String(10), default='pending', nullable=False)
    transaction_id = db.Column(db.String(80))
    created_at = db.Column(db.DateTime, default=utcnow)

    student = db.relationship('Student', lazy=True)
    allocation = db.relationship('RoomAllocation', lazy=True)

    @property
    def is_overdue(self):
        grace = current_app.config.get('HOSTEL_FEE_OVERDUE_GRACE_DAYS', 0)
        return self.status == 'pending' and self.due_date < utcnow().date() - timedelta(days=grace)

    @property
    def effective_status(self):
        return 'overdue' if self.is_overdue else self.status

    def to_dict(self):
        alloc = self.allocation
        return {
            'id': self.id,
            'studentId': self.student_id,
            'studentName': self.student.name if self.student else None,
            'roomNumber': alloc.room.room_number if alloc and alloc.room else None,
            'hostelName': alloc.hostel.name if alloc and alloc.hostel else None,
            'feeType': self.fee_type,
            'amount': self.amount,
            'month': self.month,
            'dueDate': iso(self.due_date),
            'paidDate': iso(self.paid_date),
            'status': self.effective_status,
            'transactionId': self.transaction_id,
            'createdAt': iso(self.created_at),
        }


class MessMenu(db.Model):
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    hostel_id = db.Column(db.String(36), db.ForeignKey('hostel.id'), nullable=False)
    day_of_week = db.Column(db.Integer, nullable=False)
    meal_type = db.Column(db.String(10), nullable=False)
    items = db.Column(db.JSON, default=list)
    special_diet = db.Column(db.String(255))
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)
    __table_args__ = (db.UniqueConstraint('hostel_id', 'day_of_week', 'meal_type', name='uq_mess_menu_slot'),)

    hostel = db.relationship('Hostel', lazy=True)

    def to_dict(self):
        return {
            'id': self.id,
            'hostelId': self.hostel_id,
            'hostelName': self.hostel.name if self.hostel else None,
            'dayOfWeek': self.day_of_week,
            'mealType': self.meal_type,
            'items': list(self.items or []),
            'specialDiet': self.special_diet,
            'updatedAt': iso(self.updated_at),
        }


class HostelAttendance(db.Model):
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    student_id = db.Column(db.String(36), db.ForeignKey('student.id'), nullable=False)
    allocation_id = db.Column(db.String(36), db.ForeignKey('room_allocation.id'), nullable=False)
    hostel_id = db.Column(db.String(36), db.ForeignKey('hostel.id'), nullable=False)
    date = db.Column(db.Date, nullable=False)
    status = db.Column(db.String(10), nullable=False)
    check_in = db.Column(db.String(5))
    check_out = db.Column(db.String(5))
    remarks = db.Column(db.String(255))
    marked_by = db.Column(db.String(80))
    created_at = db.Column(db.DateTime, default=utcnow)
    __table_args__ = (db.UniqueConstraint('student_id', 'date', name='uq_hostel_attendance_day'),)

    student = db.relationship('Student', lazy=True)
    allocation = db.relationship('RoomAllocation', lazy=True)
    hostel = db.relationship('Hostel', lazy=True)

    def to_dict(self):
        alloc = self.allocation
        return {
            'id': self.id,
            'studentId': self.student_id,
            'studentName': self.student.name if self.student else None,
            'roomNumber': alloc.room.room_number if alloc and alloc.room else None,
            'hostelId': self.hostel_id,
            'hostelName': self.hostel.name if self.hostel else None,
            'date': iso(self.date),
            'status': self.status,
            'checkIn': self.check_in,
            'checkOut': self.check_out,
            'remarks': self.remarks,
            'markedBy': self.marked_by,
        }
