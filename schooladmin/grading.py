"""Grading, ranking and result analytics.

Everything here works on already-loaded rows and plain dicts; the exam
routes do the querying and hand the results over.
"""
from collections import OrderedDict
from statistics import mean, median

# Ten-point CBSE style scale used until an admin marks a grade scale as default.
DEFAULT_GRADE_RANGES = [
    {"minPercentage": 90, "maxPercentage": 100, "grade": "A+", "gradePoint": 10, "description": "Outstanding"},
    {"minPercentage": 80, "maxPercentage": 89.99, "grade": "A", "gradePoint": 9, "description": "Excellent"},
    {"minPercentage": 70, "maxPercentage": 79.99, "grade": "B+", "gradePoint": 8, "description": "Very Good"},
    {"minPercentage": 60, "maxPercentage": 69.99, "grade": "B", "gradePoint": 7, "description": "Good"},
    {"minPercentage": 50, "maxPercentage": 59.99, "grade": "C+", "gradePoint": 6, "description": "Above Average"},
    {"minPercentage": 40, "maxPercentage": 49.99, "grade": "C", "gradePoint": 5, "description": "Average"},
    {"minPercentage": 33, "maxPercentage": 39.99, "grade": "D", "gradePoint": 4, "description": "Pass"},
    {"minPercentage": 0, "maxPercentage": 32.99, "grade": "F", "gradePoint": 0, "description": "Needs Improvement"},
]

ABSENT_GRADE = "AB"


def percent(obtained, total) -> float:
    if not total:
        return 0.0
    return round(obtained / total * 100, 2)


def grade_band(percentage, ranges=None):
    """Return the first band, highest minimum first, whose minimum the percentage reaches."""
    for band in sorted(ranges or DEFAULT_GRADE_RANGES, key=lambda r: r["minPercentage"], reverse=True):
        if percentage >= band["minPercentage"]:
            return band
    return None


def letter_grade(percentage, ranges=None) -> str:
    band = grade_band(percentage, ranges)
    return band["grade"] if band else "-"


def grade_point(grade, ranges=None):
    for band in ranges or DEFAULT_GRADE_RANGES:
        if band["grade"] == grade:
            return band.get("gradePoint")
    return None


def validate_ranges(ranges) -> list:
    errors = []
    if not isinstance(ranges, list) or not ranges:
        return ["At least one grade range is required"]
    spans = []
    for i, band in enumerate(ranges):
        if not isinstance(band, dict):
            errors.append(f"Range {i + 1} must be an object")
            continue
        low, high = band.get("minPercentage"), band.get("maxPercentage")
        if not isinstance(low, (int, float)) or not isinstance(high, (int, float)) \
                or isinstance(low, bool) or isinstance(high, bool):
            errors.append(f"Range {i + 1} needs numeric minPercentage and maxPercentage")
            continue
        if low < 0 or high > 100 or low > high:
            errors.append(f"Range {i + 1} must satisfy 0 <= minPercentage <= maxPercentage <= 100")
            continue
        if not str(band.get("grade") or "").strip():
            errors.append(f"Range {i + 1} needs a grade label")
            continue
        spans.append((low, high, i))
    spans.sort()
    for (low_a, high_a, i), (low_b, high_b, j) in zip(spans, spans[1:]):
        if low_b <= high_a:
            errors.append(f"Ranges {i + 1} and {j + 1} overlap")
    return errors


def assign_ranks(rows, key="percentage", field="rank"):
    """Standard competition ranking (1, 2, 2, 4) on `key`, highest first. Mutates and returns rows sorted."""
    ordered = sorted(rows, key=lambda r: r[key], reverse=True)
    previous = None
    rank = 0
    for position, row in enumerate(ordered, start=1):
        if row[key] != previous:
            rank = position
            previous = row[key]
        row[field] = rank
    return ordered


# --- Report cards ---

def _mark_grade_point(mark, ranges):
    # Points recorded when the mark was entered win over the current scale.
    stored = getattr(mark, 'grade_point', None)
    return stored if stored is not None else grade_point(mark.grade, ranges)


def build_report_card(exam, student, marks, ranges=None):
    """Report card for one student in one exam; `marks` are that student's StudentMark rows."""
    by_subject = {m.subject_id: m for m in marks}
    subjects = []
    total_max = 0.0
    total_obtained = 0.0
    passed = True
    for subject in exam.subjects:
        mark = by_subject.get(subject.id)
        if mark is None:
            continue
        obtained = 0.0 if mark.is_absent else (mark.marks_obtained or 0.0)
        total_max += mark.max_marks
        total_obtained += obtained
        if mark.is_absent or obtained < subject.passing_marks:
            passed = False
        subjects.append({
            "subjectId": subject.id,
            "subjectName": subject.name,
            "subjectCode": subject.code,
            "maxMarks": mark.max_marks,
            "marksObtained": obtained,
            "isAbsent": bool(mark.is_absent),
            "grade": mark.grade,
            "gradePoint": _mark_grade_point(mark, ranges),
            "remarks": mark.remarks,
        })
    percentage = percent(total_obtained, total_max)
    return {
        "examId": exam.id,
        "examName": exam.name,
        "academicYear": exam.academic_year,
        "term": exam.term,
        "studentId": student.id,
        "studentName": student.name,
        "admissionNumber": student.admission_number,
        "class": student.class_name,
        "section": student.section,
        "rollNumber": student.roll_number,
        "subjects": subjects,
        "totalMarks": total_max,
        "totalObtained": total_obtained,
        "percentage": percentage,
        "grade": letter_grade(percentage, ranges),
        "result": "pass" if passed and subjects else "fail",
        "rank": None,
    }


def compile_report_cards(exam, marks, ranges=None):
    """Build report cards for every student with marks, ranked within their class."""
    per_student = OrderedDict()
    for mark in marks:
        per_student.setdefault(mark.student_id, (mark.student, []))[1].append(mark)
    cards = [build_report_card(exam, student, rows, ranges) for student, rows in per_student.values()]
    by_class = OrderedDict()
    for card in cards:
        by_class.setdefault(card["class"], []).append(card)
    ranked = []
    for class_name in sorted(by_class):
        ranked.extend(assign_ranks(by_class[class_name]))
    return ranked


# --- Analytics ---

def subject_summary(subject, marks, total_students):
    appeared = [m for m in marks if not m.is_absent]
    scores = [m.marks_obtained or 0.0 for m in appeared]
    passed = sum(1 for s in scores if s >= subject.passing_marks)
    toppers = sorted(appeared, key=lambda m: m.marks_obtained or 0.0, reverse=True)[:3]
    return {
        "subjectId": subject.id,
        "subjectName": subject.name,
        "totalStudents": total_students,
        "appeared": len(appeared),
        "absent": len(marks) - len(appeared),
        "passed": passed,
        "failed": len(appeared) - passed,
        "passPercentage": percent(passed, len(appeared)),
        "average": round(mean(scores), 2) if scores else 0.0,
        "highest": max(scores) if scores else 0.0,
        "lowest": min(scores) if scores else 0.0,
        "median": round(median(scores), 2) if scores else 0.0,
        "toppers": [
            {"studentId": m.student_id, "studentName": m.student.name if m.student else None,
             "marks": m.marks_obtained}
            for m in toppers
        ],
    }


def class_analytics(exam, marks, ranges=None, class_name=None, section=None):
    cards = compile_report_cards(exam, marks, ranges)
    # One ranking across the whole scope, independent of the per-class ranks.
    overall = assign_ranks([dict(c) for c in cards], field="position")
    total = len(cards)
    distribution = OrderedDict((band["grade"], 0) for band in
                               sorted(ranges or DEFAULT_GRADE_RANGES, key=lambda r: r["minPercentage"], reverse=True))
    for card in cards:
        distribution[card["grade"]] = distribution.get(card["grade"], 0) + 1
    subject_wise = []
    for subject in exam.subjects:
        rows = [m for m in marks if m.subject_id == subject.id]
        subject_wise.append(subject_summary(subject, rows, total))
    return {
        "examId": exam.id,
        "examName": exam.name,
        "className": class_name or "All",
        "section": section or "All",
        "totalStudents": total,
        "classAverage": round(mean(c["percentage"] for c in cards), 2) if cards else 0.0,
        "passPercentage": percent(sum(1 for c in cards if c["result"] == "pass"), total),
        "gradeDistribution": [{"grade": g, "count": n} for g, n in distribution.items()],
        "subjectWise": subject_wise,
        "toppers": [
            {"rank": c["position"], "studentId": c["studentId"], "studentName": c["studentName"],
             "class": c["class"], "section": c["section"], "percentage": c["percentage"], "grade": c["grade"]}
            for c in overall[:10]
        ],
    }


def progress_report(student, cards, threshold=2.0):
    """Term-over-term progress. `cards` are (exam, report card) pairs for the student."""
    ordered = sorted(cards, key=lambda pair: (pair[0].start_date, pair[0].name))
    terms = [{
        "examId": exam.id,
        "examName": exam.name,
        "term": exam.term or exam.name,
        "academicYear": exam.academic_year,
        "percentage": card["percentage"],
        "grade": card["grade"],
        "rank": card["rank"],
        "subjectWise": [
            {"subjectName": s["subjectName"], "marksObtained": s["marksObtained"],
             "maxMarks": s["maxMarks"], "percentage": percent(s["marksObtained"], s["maxMarks"])}
            for s in card["subjects"]
        ],
    } for exam, card in ordered]
    change = round(terms[-1]["percentage"] - terms[0]["percentage"], 2) if len(terms) > 1 else 0.0
    if change > threshold:
        trend = "improving"
    elif change < -threshold:
        trend = "declining"
    else:
        trend = "stable"
    return {
        "studentId": student.id,
        "studentName": student.name,
        "class": student.class_name,
        "section": student.section,
        "terms": terms,
        "overallTrend": trend,
        "improvementPercentage": change,
    }
