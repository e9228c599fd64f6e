import unittest

from tests.base import ApiTestCase
from schooladmin import db
from schooladmin.models import ParentStudentLink

SUBJECTS = [
    {'name': 'Mathematics', 'code': 'math', 'maxMarks': 100, 'passingMarks': 33},
    {'name': 'Science', 'code': 'SCI', 'maxMarks': 50, 'passingMarks': 17},
]


class ExamTestCase(ApiTestCase):

    def setUp(self):
        super().setUp()
        self.login_as('admin')
        self.s1 = self.make_student('ADM001', name='Asha', class_name='Class 10', section='A', roll_number=1)
        self.s2 = self.make_student('ADM002', name='Bala', class_name='Class 10', section='A', roll_number=2)
        self.s3 = self.make_student('ADM003', name='Chitra', class_name='Class 9', section='B', roll_number=1)

    def create_exam(self, **extra):
        payload = {
            'name': 'Half Yearly', 'type': 'half_yearly', 'academicYear': '2029-30', 'term': 'Term 1',
            'startDate': '2030-03-01', 'endDate': '2030-03-10', 'subjects': SUBJECTS,
            'applicableClasses': ['Class 9', 'Class 10'],
        }
        payload.update(extra)
        response = self.client.post('/api/exams', json=payload)
        self.assertEqual(response.status_code, 201, response.get_json())
        exam = response.get_json()['data']
        self.math, self.science = [s['id'] for s in exam['subjects']]
        return exam

    def submit(self, exam_id, subject_id, marks):
        return self.client.post(f"/api/exams/{exam_id}/marks", json={'subjectId': subject_id, 'marks': marks})

    def enter_standard_marks(self, exam_id):
        self.submit(exam_id, self.math, [
            {'studentId': self.s1.id, 'marksObtained': 90},
            {'studentId': self.s2.id, 'marksObtained': 45},
            {'studentId': self.s3.id, 'isAbsent': True},
        ])
        self.submit(exam_id, self.science, [
            {'studentId': self.s1.id, 'marksObtained': 45},
            {'studentId': self.s2.id, 'marksObtained': 10},
            {'studentId': self.s3.id, 'marksObtained': 40},
        ])


class ExamSetupTests(ExamTestCase):

    def test_create_exam(self):
        exam = self.create_exam()
        self.assertEqual(exam['status'], 'scheduled')
        self.assertEqual([s['code'] for s in exam['subjects']], ['MATH', 'SCI'])

    def test_subject_codes_must_be_unique(self):
        response = self.client.post('/api/exams', json={
            'name': 'Unit test', 'type': 'unit_test', 'academicYear': '2029-30',
            'startDate': '2030-03-01', 'endDate': '2030-03-02',
            'subjects': [{'name': 'A', 'code': 'X', 'maxMarks': 20}, {'name': 'B', 'code': 'x', 'maxMarks': 20}],
        })
        self.assertEqual(response.status_code, 400)
        self.assertIn('subjects[1]', response.get_json()['fields'])

    def test_dates_must_be_ordered(self):
        response = self.client.post('/api/exams', json={
            'name': 'Unit test', 'type': 'unit_test', 'academicYear': '2029-30',
            'startDate': '2030-03-05', 'endDate': '2030-03-01', 'subjects': SUBJECTS,
        })
        self.assertEqual(response.status_code, 400)
        self.assertIn('endDate', response.get_json()['fields'])

    def test_list_filters_by_class(self):
        self.create_exam()
        self.create_exam(name='Class 12 preboard', applicableClasses=['Class 12'])
        body = self.client.get('/api/exams', query_string={'className': 'Class 12'}).get_json()
        self.assertEqual(body['meta']['total'], 1)
        self.assertEqual(body['data'][0]['name'], 'Class 12 preboard')

    def test_removing_subject_with_marks_conflicts(self):
        exam = self.create_exam()
        self.submit(exam['id'], self.science, [{'studentId': self.s1.id, 'marksObtained': 30}])
        response = self.client.put(f"/api/exams/{exam['id']}", json={'subjects': SUBJECTS[:1]})
        self.assertEqual(response.status_code, 409)

    def test_teacher_cannot_create_or_delete(self):
        exam = self.create_exam()
        self.login_as('teacher')
        self.assertEqual(self.client.post('/api/exams', json={}).status_code, 403)
        self.assertEqual(self.client.delete(f"/api/exams/{exam['id']}").status_code, 403)

    def test_delete_exam(self):
        exam = self.create_exam()
        response = self.client.delete(f"/api/exams/{exam['id']}")
        self.assertEqual(response.get_json()['data'], {'success': True})
        self.assertEqual(self.client.get(f"/api/exams/{exam['id']}").status_code, 404)


class MarksTests(ExamTestCase):

    def test_marks_are_graded(self):
        exam = self.create_exam()
        self.login_as('teacher')
        response = self.submit(exam['id'], self.math, [
            {'studentId': self.s1.id, 'marksObtained': 90},
            {'studentId': self.s2.id, 'marksObtained': 45},
            {'studentId': self.s3.id, 'isAbsent': True},
        ])
        self.assertEqual(response.get_json()['data'], {'success': True, 'marksSubmitted': 3})

        marks = self.client.get(f"/api/exams/{exam['id']}/marks", query_string={'subjectId': self.math}).get_json()
        grades = {m['admissionNumber']: m['grade'] for m in marks['data']}
        self.assertEqual(grades, {'ADM001': 'A+', 'ADM002': 'C', 'ADM003': 'AB'})
        self.assertEqual(self.client.get(f"/api/exams/{exam['id']}").get_json()['data']['status'], 'ongoing')

    def test_resubmission_overwrites(self):
        exam = self.create_exam()
        self.submit(exam['id'], self.math, [{'studentId': self.s1.id, 'marksObtained': 50}])
        self.submit(exam['id'], self.math, [{'studentId': self.s1.id, 'marksObtained': 70}])
        marks = self.client.get(f"/api/students/{self.s1.id}/marks").get_json()['data']
        self.assertEqual(len(marks), 1)
        self.assertEqual(marks[0]['marksObtained'], 70)

    def test_marks_above_maximum_rejected(self):
        exam = self.create_exam()
        response = self.submit(exam['id'], self.science, [{'studentId': self.s1.id, 'marksObtained': 51}])
        self.assertEqual(response.status_code, 400)
        self.assertIn('marks[0].marksObtained', response.get_json()['fields'])

    def test_unknown_subject_or_student(self):
        exam = self.create_exam()
        self.assertEqual(self.submit(exam['id'], 'nope', [{'studentId': self.s1.id, 'marksObtained': 1}]).status_code, 400)
        response = self.submit(exam['id'], self.math, [{'studentId': 'ghost', 'marksObtained': 1}])
        self.assertIn('marks[0].studentId', response.get_json()['fields'])

    def test_marks_locked_after_publishing(self):
        exam = self.create_exam()
        self.client.post(f"/api/exams/{exam['id']}/publish")
        response = self.submit(exam['id'], self.math, [{'studentId': self.s1.id, 'marksObtained': 60}])
        self.assertEqual(response.status_code, 409)

    def test_students_for_entry(self):
        exam = self.create_exam()
        self.submit(exam['id'], self.math, [{'studentId': self.s1.id, 'marksObtained': 60}])
        rows = self.client.get(f"/api/exams/{exam['id']}/students",
                               query_string={'className': 'Class 10', 'section': 'A', 'subjectId': self.math}).get_json()
        self.assertEqual([r['marksObtained'] for r in rows['data']], [60, None])

        missing = self.client.get(f"/api/exams/{exam['id']}/students", query_string={'className': 'Class 10'})
        self.assertEqual(missing.status_code, 400)


class ReportCardTests(ExamTestCase):

    def test_report_cards_rank_within_class(self):
        exam = self.create_exam()
        self.enter_standard_marks(exam['id'])
        cards = self.client.get(f"/api/exams/{exam['id']}/report-cards").get_json()['data']
        by_student = {c['admissionNumber']: c for c in cards}

        self.assertEqual(by_student['ADM001']['percentage'], 90.0)
        self.assertEqual(by_student['ADM001']['grade'], 'A+')
        self.assertEqual(by_student['ADM001']['result'], 'pass')
        self.assertEqual(by_student['ADM001']['rank'], 1)
        # Science 10/50 is below the pass mark
        self.assertEqual(by_student['ADM002']['result'], 'fail')
        self.assertEqual(by_student['ADM002']['rank'], 2)
        self.assertEqual(by_student['ADM003']['rank'], 1)
        self.assertEqual(by_student['ADM003']['result'], 'fail')

    def test_generated_snapshots_are_dropped_when_marks_change(self):
        exam = self.create_exam()
        self.enter_standard_marks(exam['id'])
        generated = self.client.post('/api/report-cards/generate', json={'examId': exam['id']}).get_json()['data']
        self.assertEqual(generated['generatedCount'], 3)

        cards = self.client.get(f"/api/exams/{exam['id']}/report-cards", query_string={'classId': 'Class 10'})
        self.assertTrue(all('id' in c for c in cards.get_json()['data']))

        self.submit(exam['id'], self.math, [{'studentId': self.s1.id, 'marksObtained': 60}])
        card = self.client.get(f"/api/students/{self.s1.id}/report-card", query_string={'examId': exam['id']})
        card = card.get_json()['data']
        self.assertNotIn('id', card)
        self.assertEqual(card['percentage'], 70.0)

    def test_student_report_card_needs_published_exam(self):
        exam = self.create_exam()
        self.enter_standard_marks(exam['id'])
        self.assertEqual(self.client.get(f"/api/students/{self.s1.id}/report-card").status_code, 404)
        self.client.post(f"/api/exams/{exam['id']}/publish")
        card = self.client.get(f"/api/students/{self.s1.id}/report-card").get_json()['data']
        self.assertEqual(card['examId'], exam['id'])

    def test_analytics(self):
        exam = self.create_exam()
        self.enter_standard_marks(exam['id'])
        analytics = self.client.get(f"/api/exams/{exam['id']}/analytics").get_json()['data']
        self.assertEqual(analytics['totalStudents'], 3)
        self.assertEqual(analytics['passPercentage'], 33.33)
        self.assertEqual(analytics['classAverage'], 51.11)
        self.assertEqual([t['studentName'] for t in analytics['toppers']], ['Asha', 'Bala', 'Chitra'])

        math = analytics['subjectWise'][0]
        self.assertEqual((math['appeared'], math['absent'], math['passed']), (2, 1, 2))
        self.assertEqual(math['highest'], 90.0)
        self.assertEqual(math['average'], 67.5)

        class_10 = self.client.get(f"/api/exams/{exam['id']}/analytics", query_string={'class': 'Class 10'})
        self.assertEqual(class_10.get_json()['data']['totalStudents'], 2)
        self.assertEqual(class_10.get_json()['data']['className'], 'Class 10')

    def test_progress_trend(self):
        first = self.create_exam()
        self.enter_standard_marks(first['id'])
        second = self.create_exam(name='Annual', type='annual', term='Term 2',
                                  startDate='2030-06-01', endDate='2030-06-10')
        self.submit(second['id'], self.math, [{'studentId': self.s1.id, 'marksObtained': 99}])
        self.submit(second['id'], self.science, [{'studentId': self.s1.id, 'marksObtained': 48}])

        progress = self.client.get(f"/api/students/{self.s1.id}/progress").get_json()['data']
        self.assertEqual([t['examName'] for t in progress['terms']], ['Half Yearly', 'Annual'])
        self.assertEqual(progress['improvementPercentage'], 8.0)
        self.assertEqual(progress['overallTrend'], 'improving')

    def test_snapshots_and_grade_points_survive_scale_change(self):
        exam = self.create_exam()
        self.enter_standard_marks(exam['id'])
        self.client.post('/api/report-cards/generate', json={'examId': exam['id']})
        self.client.post('/api/grade-scales', json={'name': 'Pass/Fail', 'ranges': [
            {'minPercentage': 0, 'maxPercentage': 49.99, 'grade': 'F', 'gradePoint': 0},
            {'minPercentage': 50, 'maxPercentage': 100, 'grade': 'P', 'gradePoint': 1},
        ]})

        card = self.client.get(f"/api/students/{self.s1.id}/report-card",
                               query_string={'examId': exam['id']}).get_json()['data']
        progress = self.client.get(f"/api/students/{self.s1.id}/progress").get_json()['data']
        self.assertEqual(card['grade'], 'A+')
        self.assertEqual(progress['terms'][0]['grade'], card['grade'])

        live = self.client.get(f"/api/exams/{exam['id']}/marks", query_string={'subjectId': self.math}).get_json()
        self.assertEqual(live['data'][0]['gradePoint'], 10)


class GradeScaleTests(ExamTestCase):

    PASS_FAIL = [
        {'minPercentage': 0, 'maxPercentage': 49.99, 'grade': 'F', 'gradePoint': 0},
        {'minPercentage': 50, 'maxPercentage': 100, 'grade': 'P', 'gradePoint': 1},
    ]

    def test_first_scale_becomes_default_and_grades_marks(self):
        scale = self.client.post('/api/grade-scales', json={'name': 'Pass/Fail', 'ranges': self.PASS_FAIL})
        self.assertEqual(scale.status_code, 201)
        self.assertTrue(scale.get_json()['data']['isDefault'])
        self.assertEqual(scale.get_json()['data']['ranges'][0]['grade'], 'P')

        exam = self.create_exam()
        self.submit(exam['id'], self.math, [{'studentId': self.s1.id, 'marksObtained': 60}])
        marks = self.client.get(f"/api/exams/{exam['id']}/marks").get_json()['data']
        self.assertEqual(marks[0]['grade'], 'P')

    def test_overlapping_ranges_rejected(self):
        ranges = [
            {'minPercentage': 0, 'maxPercentage': 60, 'grade': 'F'},
            {'minPercentage': 50, 'maxPercentage': 100, 'grade': 'P'},
        ]
        response = self.client.post('/api/grade-scales', json={'name': 'Broken', 'ranges': ranges})
        self.assertEqual(response.status_code, 400)
        self.assertIn('ranges', response.get_json()['fields'])

    def test_default_moves_and_cannot_be_deleted(self):
        first = self.client.post('/api/grade-scales', json={'name': 'One', 'ranges': self.PASS_FAIL}).get_json()['data']
        second = self.client.post('/api/grade-scales', json={'name': 'Two', 'ranges': self.PASS_FAIL}).get_json()['data']
        self.assertFalse(second['isDefault'])
        self.assertEqual(self.client.delete(f"/api/grade-scales/{first['id']}").status_code, 400)

        self.client.put(f"/api/grade-scales/{second['id']}", json={'isDefault': True})
        scales = self.client.get('/api/grade-scales').get_json()['data']
        self.assertEqual([s['name'] for s in scales if s['isDefault']], ['Two'])
        self.assertEqual(self.client.delete(f"/api/grade-scales/{first['id']}").get_json()['data'], {'success': True})


class TimetableTests(ExamTestCase):

    def add_slot(self, exam_id, **extra):
        payload = {'subjectId': self.math, 'date': '2030-03-02', 'startTime': '09:00', 'endTime': '12:00',
                   'room': 'Hall A'}
        payload.update(extra)
        return self.client.post(f"/api/exams/{exam_id}/timetable", json=payload)

    def test_slots_and_room_clash(self):
        exam = self.create_exam()
        self.assertEqual(self.add_slot(exam['id']).status_code, 201)
        clash = self.add_slot(exam['id'], subjectId=self.science, startTime='11:00', endTime='13:00')
        self.assertEqual(clash.status_code, 409)
        self.assertEqual(self.add_slot(exam['id'], subjectId=self.science, date='2030-03-01').status_code, 201)

        timetable = self.client.get(f"/api/exams/{exam['id']}/timetable").get_json()['data']
        self.assertEqual([s['date'] for s in timetable['slots']], ['2030-03-01', '2030-03-02'])
        self.assertEqual(timetable['slots'][0]['applicableClasses'], ['Class 9', 'Class 10'])

    def test_slot_validation(self):
        exam = self.create_exam()
        outside = self.add_slot(exam['id'], date='2030-04-01')
        self.assertIn('date', outside.get_json()['fields'])
        backwards = self.add_slot(exam['id'], startTime='12:00', endTime='10:00')
        self.assertIn('endTime', backwards.get_json()['fields'])
        bad_time = self.add_slot(exam['id'], startTime='9am')
        self.assertIn('startTime', bad_time.get_json()['fields'])

    def test_delete_slot(self):
        exam = self.create_exam()
        slot = self.add_slot(exam['id']).get_json()['data']
        self.assertEqual(self.client.delete(f"/api/exams/other/timetable/{slot['id']}").status_code, 404)
        self.assertEqual(self.client.delete(f"/api/exams/{exam['id']}/timetable/{slot['id']}").status_code, 200)


class CoScholasticAndPaperTests(ExamTestCase):

    def test_co_scholastic_upsert(self):
        url = '/api/exams/co-scholastic'
        payload = {'studentId': self.s1.id, 'term': 'Term 1', 'academicYear': '2029-30',
                   'records': [{'area': 'art', 'grade': 'A'}, {'area': 'sports', 'grade': 'B'}]}
        self.assertEqual(self.client.post(url, json=payload).status_code, 201)
        payload['records'] = [{'area': 'art', 'grade': 'C', 'remarks': 'Needs practice'}]
        self.client.post(url, json=payload)

        body = self.client.get(url, query_string={'studentId': self.s1.id}).get_json()
        self.assertEqual(body['meta']['total'], 2)
        art = [r for r in body['data'] if r['area'] == 'art'][0]
        self.assertEqual(art['grade'], 'C')

        bad = self.client.post(url, json={'studentId': self.s1.id, 'term': 'Term 1', 'records': [{'area': 'chess', 'grade': 'A'}]})
        self.assertIn('records[0].area', bad.get_json()['fields'])

    def test_question_paper_sections_must_add_up(self):
        exam = self.create_exam()
        payload = {
            'examId': exam['id'], 'subjectId': self.math, 'subjectName': 'Mathematics', 'className': 'Class 10',
            'totalMarks': 50, 'duration': '3 hours',
            'sections': [{'name': 'A', 'questionCount': 10, 'marksPerQuestion': 2},
                         {'name': 'B', 'questionCount': 5, 'marksPerQuestion': 6}],
        }
        created = self.client.post('/api/exams/question-papers', json=payload)
        self.assertEqual(created.status_code, 201)
        self.assertEqual(created.get_json()['data']['examName'], 'Half Yearly')

        payload['totalMarks'] = 80
        mismatch = self.client.post('/api/exams/question-papers', json=payload)
        self.assertEqual(mismatch.status_code, 400)
        self.assertIn('sections', mismatch.get_json()['fields'])

        papers = self.client.get('/api/exams/question-papers', query_string={'examId': exam['id']}).get_json()['data']
        self.assertEqual(len(papers), 1)
        deleted = self.client.delete(f"/api/exams/question-papers/{papers[0]['id']}")
        self.assertEqual(deleted.get_json()['data'], {'success': True})


class SelfServiceTests(ExamTestCase):

    def test_student_sees_own_marks_and_report_card(self):
        exam = self.create_exam()
        self.enter_standard_marks(exam['id'])
        self.make_user('asha', 'student', student_id=self.s1.id)
        self.login_as('student', 'asha')

        groups = self.client.get('/api/exams/my-marks').get_json()['data']
        self.assertEqual(len(groups), 1)
        self.assertEqual(len(groups[0]['marks']), 2)
        self.assertEqual(self.client.get('/api/exams/my-report-card').status_code, 404)

        self.login_as('admin')
        self.client.post(f"/api/exams/{exam['id']}/publish")
        self.login_as('student', 'asha')
        card = self.client.get('/api/exams/my-report-card').get_json()['data']
        self.assertEqual(card['percentage'], 90.0)

    def test_unlinked_student_is_refused(self):
        self.login_as('student')
        self.assertEqual(self.client.get('/api/exams/my-marks').status_code, 403)

    def test_parent_sees_linked_children(self):
        exam = self.create_exam()
        self.enter_standard_marks(exam['id'])
        self.login_as('parent')
        self.assertEqual(self.client.get('/api/exams/my-children-marks').status_code, 404)

        db.session.add(ParentStudentLink(parent_username='parent1', student_id=self.s2.id))
        db.session.commit()
        children = self.client.get('/api/exams/my-children-marks').get_json()['data']
        self.assertEqual(children[0]['studentName'], 'Bala')
        self.assertEqual(len(children[0]['exams'][0]['marks']), 2)

    def test_staff_cannot_use_student_views(self):
        self.assertEqual(self.client.get('/api/exams/my-marks').status_code, 403)


if __name__ == "__main__":
    unittest.main()
