import logging

from flask import request, current_app
from sqlalchemy import or_

from schooladmin import app, db
from schooladmin.api import (ApiError, ValidationError, ok, json_body, paginate, get_or_404,
                             require, as_text, one_of, as_number, as_list, parse_date, parse_time)
from schooladmin.auth import crud_required, roles_required, current_user, current_username, record_audit
from schooladmin.grading import (DEFAULT_GRADE_RANGES, ABSENT_GRADE, percent, letter_grade, grade_point,
                                 validate_ranges, compile_report_cards, class_analytics, progress_report)
from schooladmin.models import (Exam, ExamSubject, StudentMark, GradeScale, ReportCard, ExamSlot,
                                CoScholasticRecord, QuestionPaper, Student, ParentStudentLink, utcnow)

logger = logging.getLogger(__name__)

EXAM_TYPES = ('unit_test', 'mid_term', 'quarterly', 'half_yearly', 'annual', 'practical')
EXAM_STATUSES = ('scheduled', 'ongoing', 'completed', 'results_published')
SUBJECT_TYPES = ('theory', 'practical', 'both')
CO_SCHOLASTIC_AREAS = ('art', 'music', 'dance', 'sports', 'yoga', 'discipline', 'work_education', 'health_education')
CO_SCHOLASTIC_GRADES = ('A', 'B', 'C')
PAPER_DIFFICULTIES = ('easy', 'medium', 'hard')


def active_grade_ranges():
    scale = GradeScale.query.filter_by(is_default=True).first()
    return scale.ranges if scale and scale.ranges else DEFAULT_GRADE_RANGES


def current_academic_year(today=None):
    # Academic years run April to March.
    today = today or utcnow().date()
    start = today.year if today.month >= 4 else today.year - 1
    return f"{start}-{str(start + 1)[-2:]}"


def _parse_subjects(raw):
    subjects = []
    errors = {}
    seen = set()
    for i, item in enumerate(as_list(raw, 'subjects')):
        key = f"subjects[{i}]"
        if not isinstance(item, dict) or not str(item.get('name') or '').strip() or not str(item.get('code') or '').strip():
            errors[key] = ["name and code are required"]
            continue
        code = str(item['code']).strip().upper()
        if code in seen:
            errors[key] = [f"Duplicate subject code {code}"]
            continue
        seen.add(code)
        try:
            max_marks = as_number(item.get('maxMarks'), 'maxMarks', minimum=1)
            passing = as_number(item.get('passingMarks', 0), 'passingMarks', minimum=0, maximum=max_marks)
            stype = one_of(item.get('type', 'theory'), SUBJECT_TYPES, 'type')
        except ValidationError as e:
            errors[key] = [f"{k}: {'; '.join(v)}" for k, v in (e.fields or {}).items()]
            continue
        subjects.append({"id": item.get('id'), "name": str(item['name']).strip(), "code": code, "type": stype,
                         "maxMarks": max_marks, "passingMarks": passing})
    if errors:
        raise ValidationError("Invalid subjects", errors)
    if not subjects:
        raise ValidationError("Invalid subjects", {"subjects": ["Add at least one subject"]})
    return subjects


def _sync_subjects(exam, parsed):
    """Replace the exam's subjects, keeping rows (and their marks) whose code survives."""
    existing = {s.code: s for s in exam.subjects}
    wanted = {p['code'] for p in parsed}
    for code, subject in existing.items():
        if code not in wanted and subject.id is not None:
            if StudentMark.query.filter_by(subject_id=subject.id).first():
                raise ApiError(409, f"Cannot remove {subject.name}: marks have already been entered")
    for code, subject in existing.items():
        if code not in wanted:
            exam.subjects.remove(subject)
    for position, p in enumerate(parsed):
        subject = existing.get(p['code'])
        if subject is None:
            subject = ExamSubject(code=p['code'])
            exam.subjects.append(subject)
        subject.name = p['name']
        subject.type = p['type']
        subject.max_marks = p['maxMarks']
        subject.passing_marks = p['passingMarks']
        subject.position = position


def _apply_exam_fields(exam, payload):
    if 'name' in payload:
        require(payload, 'name')
        exam.name = as_text(payload, 'name')
    if 'type' in payload:
        exam.type = one_of(payload['type'], EXAM_TYPES, 'type')
    if 'academicYear' in payload:
        require(payload, 'academicYear')
        exam.academic_year = str(payload['academicYear']).strip()
    if 'term' in payload:
        exam.term = payload['term']
    if 'applicableClasses' in payload:
        exam.applicable_classes = [str(c) for c in as_list(payload['applicableClasses'], 'applicableClasses')]
    if 'startDate' in payload:
        exam.start_date = parse_date(payload['startDate'], 'startDate')
    if 'endDate' in payload:
        exam.end_date = parse_date(payload['endDate'], 'endDate')
    if exam.start_date and exam.end_date and exam.end_date < exam.start_date:
        raise ValidationError("Invalid exam dates", {"endDate": ["Must not be before startDate"]})
    if 'subjects' in payload:
        _sync_subjects(exam, _parse_subjects(payload['subjects']))


# --- Self service ---

def _student_for_user(user):
    if user is None:
        return None
    if user.student_id:
        return db.session.get(Student, user.student_id)
    if user.email:
        return Student.query.filter_by(email=user.email).first()
    return None


def _marks_grouped_by_exam(student_id, academic_year=None):
    q = StudentMark.query.join(Exam).filter(StudentMark.student_id == student_id)
    if academic_year:
        q = q.filter(Exam.academic_year == academic_year)
    groups = {}
    for mark in q.order_by(Exam.start_date, Exam.name).all():
        group = groups.setdefault(mark.exam_id, {"examId": mark.exam_id, "examName": mark.exam.name, "marks": []})
        group["marks"].append(mark.to_dict())
    return list(groups.values())


@app.route('/api/exams/my-marks')
@roles_required('student')
def my_marks():
    student = _student_for_user(current_user())
    if student is None:
        raise ApiError(403, "No student record is linked to this account")
    return ok(_marks_grouped_by_exam(student.id, request.args.get('academicYear', '').strip() or None))


@app.route('/api/exams/my-children-marks')
@roles_required('parent')
def my_children_marks():
    links = ParentStudentLink.query.filter_by(parent_username=current_username()).all()
    if not links:
        raise ApiError(404, "No children linked to account")
    academic_year = request.args.get('academicYear', '').strip() or None
    return ok([{
        "studentId": link.student.id,
        "studentName": link.student.name,
        "studentClass": link.student.class_name,
        "studentSection": link.student.section,
        "exams": _marks_grouped_by_exam(link.student.id, academic_year),
    } for link in links])


@app.route('/api/exams/my-report-card')
@roles_required('student')
def my_report_card():
    student = _student_for_user(current_user())
    if student is None:
        raise ApiError(403, "No student record is linked to this account")
    return ok(_report_card_for(student, request.args.get('examId', '').strip() or None))


# --- Co-scholastic ---

@app.route('/api/exams/co-scholastic')
@crud_required('marks', 'read')
def list_co_scholastic():
    q = CoScholasticRecord.query.join(Student)
    for arg, column in (('studentId', CoScholasticRecord.student_id), ('term', CoScholasticRecord.term),
                        ('area', CoScholasticRecord.area), ('academicYear', CoScholasticRecord.academic_year),
                        ('class', Student.class_name), ('section', Student.section)):
        value = request.args.get(arg, '').strip()
        if value:
            q = q.filter(column == value)
    return paginate(q.order_by(Student.class_name, Student.section, Student.roll_number, CoScholasticRecord.area))


@app.route('/api/exams/co-scholastic', methods=['POST'])
@crud_required('marks', 'create')
def submit_co_scholastic():
    payload = json_body()
    require(payload, 'studentId', 'term')
    student = get_or_404(Student, payload['studentId'], "Student")
    academic_year = str(payload.get('academicYear') or current_academic_year())
    records = as_list(payload.get('records'), 'records')
    if not records:
        raise ValidationError("No records", {"records": ["Add at least one assessment"]})
    saved = []
    for i, item in enumerate(records):
        if not isinstance(item, dict):
            raise ValidationError("Invalid record", {f"records[{i}]": ["Must be an object"]})
        area = one_of(item.get('area'), CO_SCHOLASTIC_AREAS, f"records[{i}].area")
        grade = one_of(item.get('grade'), CO_SCHOLASTIC_GRADES, f"records[{i}].grade")
        record = CoScholasticRecord.query.filter_by(student_id=student.id, academic_year=academic_year,
                                                    term=payload['term'], area=area).first()
        if record is None:
            record = CoScholasticRecord(student_id=student.id, academic_year=academic_year,
                                        term=payload['term'], area=area)
            db.session.add(record)
        record.grade = grade
        record.remarks = item.get('remarks')
        record.assessed_by = current_username()
        record.assessed_at = utcnow()
        saved.append(record)
    db.session.commit()
    record_audit('co_scholastic_submit', student.admission_number, f"term={payload['term']},records={len(saved)}")
    return ok([r.to_dict() for r in saved], 201)


# --- Question papers ---

def _validate_sections(raw, total_marks):
    sections = []
    for i, item in enumerate(as_list(raw, 'sections')):
        if not isinstance(item, dict) or not str(item.get('name') or '').strip():
            raise ValidationError("Invalid section", {f"sections[{i}]": ["name is required"]})
        count = as_number(item.get('questionCount'), f"sections[{i}].questionCount", minimum=1, integer=True)
        each = as_number(item.get('marksPerQuestion'), f"sections[{i}].marksPerQuestion", minimum=0)
        sections.append({"name": str(item['name']).strip(), "instructions": item.get('instructions') or '',
                         "questionCount": count, "marksPerQuestion": each, "totalMarks": count * each})
    if not sections:
        raise ValidationError("Invalid sections", {"sections": ["Add at least one section"]})
    allotted = sum(s['totalMarks'] for s in sections)
    if abs(allotted - total_marks) > 1e-6:
        raise ValidationError("Section marks do not add up",
                              {"sections": [f"Sections carry {allotted:g} marks but the paper is worth {total_marks:g}"]})
    return sections


@app.route('/api/exams/question-papers')
@crud_required('question_paper', 'read')
def list_question_papers():
    q = QuestionPaper.query
    for arg, column in (('examId', QuestionPaper.exam_id), ('subjectId', QuestionPaper.subject_id),
                        ('className', QuestionPaper.class_name), ('academicYear', QuestionPaper.academic_year)):
        value = request.args.get(arg, '').strip()
        if value:
            q = q.filter(column == value)
    return ok([p.to_dict() for p in q.order_by(QuestionPaper.created_at.desc()).all()])


@app.route('/api/exams/question-papers/<paper_id>')
@crud_required('question_paper', 'read')
def get_question_paper(paper_id):
    return ok(get_or_404(QuestionPaper, paper_id, "Question paper").to_dict())


@app.route('/api/exams/question-papers', methods=['POST'])
@crud_required('question_paper', 'create')
def create_question_paper():
    payload = json_body()
    require(payload, 'subjectId', 'subjectName', 'className', 'totalMarks', 'duration')
    total = as_number(payload['totalMarks'], 'totalMarks', minimum=1)
    exam_id = payload.get('examId') or None
    if exam_id:
        get_or_404(Exam, exam_id, "Exam")
    paper = QuestionPaper(
        exam_id=exam_id,
        subject_id=payload['subjectId'],
        subject_name=as_text(payload, 'subjectName'),
        subject_code=payload.get('subjectCode'),
        class_name=as_text(payload, 'className'),
        academic_year=payload.get('academicYear') or current_academic_year(),
        term=payload.get('term'),
        total_marks=total,
        duration=str(payload['duration']),
        difficulty=one_of(payload.get('difficulty', 'medium'), PAPER_DIFFICULTIES, 'difficulty'),
        sections=_validate_sections(payload.get('sections'), total),
        created_by=current_username(),
    )
    db.session.add(paper)
    db.session.commit()
    logger.info(f"Question paper for {paper.subject_name} ({paper.class_name}) created")
    record_audit('question_paper_create', paper.id, f"subject={paper.subject_name},class={paper.class_name}")
    return ok(paper.to_dict(), 201)


@app.route('/api/exams/question-papers/<paper_id>', methods=['DELETE'])
@crud_required('question_paper', 'delete')
def delete_question_paper(paper_id):
    paper = get_or_404(QuestionPaper, paper_id, "Question paper")
    db.session.delete(paper)
    db.session.commit()
    record_audit('question_paper_delete', paper_id)
    return ok({"success": True})


# --- Exams ---

@app.route('/api/exams')
@crud_required('exam', 'read')
def list_exams():
    q = Exam.query
    for arg, column in (('type', Exam.type), ('status', Exam.status), ('academicYear', Exam.academic_year)):
        value = request.args.get(arg, '').strip()
        if value:
            q = q.filter(column == value)
    search = request.args.get('search', '').strip()
    if search:
        q = q.filter(or_(Exam.name.ilike(f"%{search}%"), Exam.term.ilike(f"%{search}%")))
    class_name = request.args.get('className', '').strip()
    if class_name:
        ids = [e.id for e in q.all() if class_name in (e.applicable_classes or [])]
        q = Exam.query.filter(Exam.id.in_(ids))
    return paginate(q.order_by(Exam.start_date.desc(), Exam.name), default_limit=10)


@app.route('/api/exams/<exam_id>')
@crud_required('exam', 'read')
def get_exam(exam_id):
    return ok(get_or_404(Exam, exam_id, "Exam").to_dict())


@app.route('/api/exams', methods=['POST'])
@crud_required('exam', 'create')
def create_exam():
    payload = json_body()
    require(payload, 'name', 'type', 'academicYear', 'startDate', 'endDate', 'subjects')
    exam = Exam(status='scheduled', applicable_classes=[])
    _apply_exam_fields(exam, payload)
    db.session.add(exam)
    db.session.commit()
    logger.info(f"Exam '{exam.name}' created with {len(exam.subjects)} subjects")
    record_audit('exam_create', exam.id, f"name={exam.name},year={exam.academic_year}")
    return ok(exam.to_dict(), 201)


@app.route('/api/exams/<exam_id>', methods=['PUT'])
@crud_required('exam', 'update')
def update_exam(exam_id):
    exam = get_or_404(Exam, exam_id, "Exam")
    payload = json_body()
    _apply_exam_fields(exam, payload)
    if 'status' in payload:
        exam.status = one_of(payload['status'], EXAM_STATUSES, 'status')
    db.session.commit()
    record_audit('exam_update', exam.id, f"status={exam.status}")
    return ok(exam.to_dict())


@app.route('/api/exams/<exam_id>', methods=['DELETE'])
@crud_required('exam', 'delete')
def delete_exam(exam_id):
    exam = get_or_404(Exam, exam_id, "Exam")
    name = exam.name
    QuestionPaper.query.filter_by(exam_id=exam.id).update({QuestionPaper.exam_id: None}, synchronize_session=False)
    db.session.delete(exam)
    db.session.commit()
    logger.info(f"Exam '{name}' deleted")
    record_audit('exam_delete', exam_id, f"name={name}")
    return ok({"success": True})


@app.route('/api/exams/<exam_id>/publish', methods=['POST'])
@crud_required('exam', 'update')
def publish_exam_results(exam_id):
    exam = get_or_404(Exam, exam_id, "Exam")
    exam.status = 'results_published'
    db.session.commit()
    logger.info(f"Results published for exam '{exam.name}'")
    record_audit('exam_publish', exam.id)
    return ok(exam.to_dict())


# --- Marks ---

@app.route('/api/exams/<exam_id>/students')
@crud_required('marks', 'read')
def students_for_marks_entry(exam_id):
    exam = get_or_404(Exam, exam_id, "Exam")
    class_name = request.args.get('className', '').strip()
    section = request.args.get('section', '').strip()
    if not class_name or not section:
        raise ApiError(400, "Class and section are required")
    subject_id = request.args.get('subjectId', '').strip() or None
    students = Student.query.filter_by(class_name=class_name, section=section, status='active') \
        .order_by(Student.roll_number, Student.name).all()
    q = StudentMark.query.filter(StudentMark.exam_id == exam.id,
                                 StudentMark.student_id.in_([s.id for s in students]))
    if subject_id:
        q = q.filter(StudentMark.subject_id == subject_id)
    marks = {}
    for mark in q.all():
        marks.setdefault(mark.student_id, []).append(mark)
    rows = []
    for student in students:
        row = student.to_dict()
        existing = marks.get(student.id, [])
        if subject_id:
            mark = existing[0] if existing else None
            row.update({
                "marksObtained": mark.marks_obtained if mark else None,
                "isAbsent": bool(mark.is_absent) if mark else None,
                "remarks": mark.remarks if mark else None,
                "grade": mark.grade if mark else None,
            })
        else:
            row["marks"] = {m.subject_id: {"marksObtained": m.marks_obtained, "isAbsent": bool(m.is_absent),
                                           "grade": m.grade, "remarks": m.remarks} for m in existing}
        rows.append(row)
    return ok(rows)


@app.route('/api/exams/<exam_id>/marks')
@crud_required('marks', 'read')
def list_exam_marks(exam_id):
    exam = get_or_404(Exam, exam_id, "Exam")
    q = StudentMark.query.join(Student).filter(StudentMark.exam_id == exam.id)
    subject_id = request.args.get('subjectId', '').strip()
    if subject_id:
        q = q.filter(StudentMark.subject_id == subject_id)
    class_name = request.args.get('classId', '').strip()
    if class_name:
        q = q.filter(Student.class_name == class_name)
    section = request.args.get('section', '').strip()
    if section:
        q = q.filter(Student.section == section)
    marks = q.order_by(Student.class_name, Student.section, Student.roll_number).all()
    return ok([m.to_dict() for m in marks])


@app.route('/api/exams/<exam_id>/marks', methods=['POST'])
@crud_required('marks', 'create')
def submit_marks(exam_id):
    exam = get_or_404(Exam, exam_id, "Exam")
    if exam.status == 'results_published':
        raise ApiError(409, "Results are already published for this exam")
    payload = json_body()
    require(payload, 'subjectId')
    subject = exam.subject_by_id(payload['subjectId'])
    if subject is None:
        raise ApiError(400, "Subject not found in exam")
    entries = as_list(payload.get('marks'), 'marks')
    if not entries:
        raise ValidationError("No marks submitted", {"marks": ["Submit at least one entry"]})

    errors = {}
    rows = []
    for i, entry in enumerate(entries):
        if not isinstance(entry, dict) or not entry.get('studentId'):
            errors[f"marks[{i}]"] = ["studentId is required"]
            continue
        if db.session.get(Student, entry['studentId']) is None:
            errors[f"marks[{i}].studentId"] = ["Student not found"]
            continue
        absent = bool(entry.get('isAbsent', False))
        obtained = 0.0
        if not absent:
            try:
                obtained = as_number(entry.get('marksObtained'), 'marksObtained', minimum=0, maximum=subject.max_marks)
            except ValidationError as e:
                errors[f"marks[{i}].marksObtained"] = e.fields['marksObtained']
                continue
        rows.append((entry['studentId'], obtained, absent, entry.get('remarks')))
    if errors:
        raise ValidationError("Some marks are invalid", errors)

    ranges = active_grade_ranges()
    for student_id, obtained, absent, remarks in rows:
        mark = StudentMark.query.filter_by(exam_id=exam.id, subject_id=subject.id, student_id=student_id).first()
        if mark is None:
            mark = StudentMark(exam_id=exam.id, subject_id=subject.id, student_id=student_id)
            db.session.add(mark)
        mark.marks_obtained = obtained
        mark.max_marks = subject.max_marks
        mark.is_absent = absent
        mark.grade = ABSENT_GRADE if absent else letter_grade(percent(obtained, subject.max_marks), ranges)
        mark.grade_point = grade_point(mark.grade, ranges)
        mark.remarks = remarks
        mark.entered_by = current_username()
    # Stored report cards no longer reflect these students' marks.
    ReportCard.query.filter(ReportCard.exam_id == exam.id,
                            ReportCard.student_id.in_([r[0] for r in rows])).delete(synchronize_session=False)
    if exam.status == 'scheduled':
        exam.status = 'ongoing'
    db.session.commit()
    logger.info(f"{len(rows)} marks submitted for {subject.name} in '{exam.name}'")
    record_audit('marks_submit', exam.id, f"subject={subject.code},count={len(rows)}")
    return ok({"success": True, "marksSubmitted": len(rows)})


@app.route('/api/students/<student_id>/marks')
@crud_required('marks', 'read')
def student_marks(student_id):
    student = get_or_404(Student, student_id, "Student")
    q = StudentMark.query.join(Exam).filter(StudentMark.student_id == student.id)
    academic_year = request.args.get('academicYear', '').strip()
    if academic_year:
        q = q.filter(Exam.academic_year == academic_year)
    return ok([m.to_dict() for m in q.order_by(Exam.start_date, Exam.name).all()])


# --- Report cards ---

def exam_report_cards(exam):
    """Live report cards for every student with marks, overlaid with stored snapshots."""
    cards = compile_report_cards(exam, exam.marks.all(), active_grade_ranges())
    stored = {rc.student_id: rc for rc in exam.report_cards}
    return [stored[c['studentId']].to_dict() if c['studentId'] in stored else c for c in cards]


def _report_card_for(student, exam_id=None):
    if exam_id:
        exam = get_or_404(Exam, exam_id, "Exam")
    else:
        exam = Exam.query.join(StudentMark).filter(StudentMark.student_id == student.id,
                                                   Exam.status == 'results_published') \
            .order_by(Exam.end_date.desc()).first()
        if exam is None:
            raise ApiError(404, "No published exam found")
    for card in exam_report_cards(exam):
        if card['studentId'] == student.id:
            return card
    raise ApiError(404, f"No marks recorded for {student.name} in {exam.name}")


@app.route('/api/exams/<exam_id>/report-cards')
@crud_required('report_card', 'read')
def list_report_cards(exam_id):
    exam = get_or_404(Exam, exam_id, "Exam")
    cards = exam_report_cards(exam)
    class_name = request.args.get('classId', '').strip()
    if class_name:
        cards = [c for c in cards if c['class'] == class_name]
    section = request.args.get('section', '').strip()
    if section:
        cards = [c for c in cards if c['section'] == section]
    return ok(cards)


@app.route('/api/students/<student_id>/report-card')
@crud_required('report_card', 'read')
def student_report_card(student_id):
    student = get_or_404(Student, student_id, "Student")
    return ok(_report_card_for(student, request.args.get('examId', '').strip() or None))


@app.route('/api/report-cards/generate', methods=['POST'])
@crud_required('report_card', 'create')
def generate_report_cards():
    payload = json_body()
    require(payload, 'examId')
    exam = get_or_404(Exam, payload['examId'], "Exam")
    cards = compile_report_cards(exam, exam.marks.all(), active_grade_ranges())
    if payload.get('classId'):
        cards = [c for c in cards if c['class'] == payload['classId']]
    wanted = as_list(payload.get('studentIds'), 'studentIds')
    if wanted:
        cards = [c for c in cards if c['studentId'] in wanted]
    stored = {rc.student_id: rc for rc in exam.report_cards}
    for card in cards:
        snapshot = stored.get(card['studentId'])
        if snapshot is None:
            snapshot = ReportCard(exam_id=exam.id, student_id=card['studentId'])
            db.session.add(snapshot)
        snapshot.data = card
        snapshot.generated_by = current_username()
        snapshot.generated_at = utcnow()
    db.session.commit()
    logger.info(f"Generated {len(cards)} report cards for '{exam.name}'")
    record_audit('report_cards_generate', exam.id, f"count={len(cards)}")
    return ok({"success": True, "generatedCount": len(cards)})


# --- Grade scales ---

def _set_only_default(scale):
    GradeScale.query.filter(GradeScale.id != scale.id).update({GradeScale.is_default: False}, synchronize_session=False)
    scale.is_default = True


def _checked_ranges(raw):
    errors = validate_ranges(raw)
    if errors:
        raise ValidationError("Invalid grade ranges", {"ranges": errors})
    return [{
        "minPercentage": r["minPercentage"],
        "maxPercentage": r["maxPercentage"],
        "grade": str(r["grade"]).strip(),
        "gradePoint": r.get("gradePoint"),
        "description": r.get("description") or "",
    } for r in sorted(raw, key=lambda r: r["minPercentage"], reverse=True)]


@app.route('/api/grade-scales')
@crud_required('grade_scale', 'read')
def list_grade_scales():
    scales = GradeScale.query.order_by(GradeScale.is_default.desc(), GradeScale.name).all()
    return ok([s.to_dict() for s in scales])


@app.route('/api/grade-scales/<scale_id>')
@crud_required('grade_scale', 'read')
def get_grade_scale(scale_id):
    return ok(get_or_404(GradeScale, scale_id, "Grade scale").to_dict())


@app.route('/api/grade-scales', methods=['POST'])
@crud_required('grade_scale', 'create')
def create_grade_scale():
    payload = json_body()
    require(payload, 'name', 'ranges')
    scale = GradeScale(name=as_text(payload, 'name'), ranges=_checked_ranges(payload['ranges']), is_default=False)
    db.session.add(scale)
    db.session.flush()
    if payload.get('isDefault') or GradeScale.query.count() == 1:
        _set_only_default(scale)
    db.session.commit()
    logger.info(f"Grade scale '{scale.name}' created")
    record_audit('grade_scale_create', scale.id, f"default={scale.is_default}")
    return ok(scale.to_dict(), 201)


@app.route('/api/grade-scales/<scale_id>', methods=['PUT'])
@crud_required('grade_scale', 'update')
def update_grade_scale(scale_id):
    scale = get_or_404(GradeScale, scale_id, "Grade scale")
    payload = json_body()
    if 'name' in payload:
        require(payload, 'name')
        scale.name = as_text(payload, 'name')
    if 'ranges' in payload:
        scale.ranges = _checked_ranges(payload['ranges'])
    if payload.get('isDefault') is True:
        _set_only_default(scale)
    elif payload.get('isDefault') is False and scale.is_default:
        raise ApiError(400, "Mark another scale as default instead")
    db.session.commit()
    record_audit('grade_scale_update', scale.id)
    return ok(scale.to_dict())


@app.route('/api/grade-scales/<scale_id>', methods=['DELETE'])
@crud_required('grade_scale', 'delete')
def delete_grade_scale(scale_id):
    scale = get_or_404(GradeScale, scale_id, "Grade scale")
    if scale.is_default:
        raise ApiError(400, "Cannot delete the default grade scale")
    db.session.delete(scale)
    db.session.commit()
    record_audit('grade_scale_delete', scale_id)
    return ok({"success": True})


# --- Timetable ---

@app.route('/api/exams/<exam_id>/timetable')
@crud_required('exam', 'read')
def exam_timetable(exam_id):
    exam = get_or_404(Exam, exam_id, "Exam")
    slots = sorted(exam.slots, key=lambda s: (s.date, s.start_time))
    return ok({"examId": exam.id, "examName": exam.name, "slots": [s.to_dict() for s in slots]})


@app.route('/api/exams/<exam_id>/timetable', methods=['POST'])
@crud_required('exam', 'update')
def add_exam_slot(exam_id):
    exam = get_or_404(Exam, exam_id, "Exam")
    payload = json_body()
    require(payload, 'subjectId', 'date', 'startTime', 'endTime')
    subject = exam.subject_by_id(payload['subjectId'])
    if subject is None:
        raise ValidationError("Unknown subject", {"subjectId": ["Subject is not part of this exam"]})
    day = parse_date(payload['date'], 'date')
    if day < exam.start_date or day > exam.end_date:
        raise ValidationError("Date outside exam", {"date": [f"Must fall between {exam.start_date} and {exam.end_date}"]})
    start = parse_time(payload['startTime'], 'startTime')
    end = parse_time(payload['endTime'], 'endTime')
    if start >= end:
        raise ValidationError("Invalid slot", {"endTime": ["Must be after startTime"]})
    room = as_text(payload, 'room', required=False)
    if room:
        clash = ExamSlot.query.filter(ExamSlot.room == room, ExamSlot.date == day,
                                      ExamSlot.start_time < end, ExamSlot.end_time > start).first()
        if clash:
            logger.warning(f"Room {room} double-booked on {day} {start}-{end}")
            raise ApiError(409, f"Room {room} is already booked from {clash.start_time} to {clash.end_time}")
    slot = ExamSlot(
        exam_id=exam.id,
        subject_id=subject.id,
        date=day,
        start_time=start,
        end_time=end,
        room=room,
        invigilator=payload.get('invigilator'),
        applicable_classes=[str(c) for c in as_list(payload.get('applicableClasses'), 'applicableClasses')]
        or list(exam.applicable_classes or []),
    )
    db.session.add(slot)
    db.session.commit()
    record_audit('exam_slot_create', exam.id, f"subject={subject.code},date={day}")
    return ok(slot.to_dict(), 201)


@app.route('/api/exams/<exam_id>/timetable/<slot_id>', methods=['DELETE'])
@crud_required('exam', 'update')
def delete_exam_slot(exam_id, slot_id):
    slot = get_or_404(ExamSlot, slot_id, "Timetable slot")
    if slot.exam_id != exam_id:
        raise ApiError(404, "Timetable slot not found")
    db.session.delete(slot)
    db.session.commit()
    record_audit('exam_slot_delete', exam_id, f"slot={slot_id}")
    return ok({"success": True})


# --- Analytics ---

@app.route('/api/exams/<exam_id>/analytics')
@crud_required('report_card', 'read')
def exam_analytics(exam_id):
    exam = get_or_404(Exam, exam_id, "Exam")
    class_name = (request.args.get('class') or request.args.get('className') or '').strip() or None
    section = request.args.get('section', '').strip() or None
    q = StudentMark.query.join(Student).filter(StudentMark.exam_id == exam.id)
    if class_name:
        q = q.filter(Student.class_name == class_name)
    if section:
        q = q.filter(Student.section == section)
    return ok(class_analytics(exam, q.all(), active_grade_ranges(), class_name, section))


@app.route('/api/students/<student_id>/progress')
@crud_required('report_card', 'read')
def student_progress(student_id):
    student = get_or_404(Student, student_id, "Student")
    exams = Exam.query.join(StudentMark).filter(StudentMark.student_id == student.id).distinct().all()
    pairs = []
    for exam in exams:
        for card in exam_report_cards(exam):
            if card['studentId'] == student.id:
                pairs.append((exam, card))
                break
    threshold = current_app.config.get('PASS_PERCENTAGE_TREND_THRESHOLD', 2.0)
    return ok(progress_report(student, pairs, threshold))
