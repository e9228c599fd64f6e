from schooladmin.client.cache import FeatureClient, freeze


class ExamsKeys:
    all = ('exams',)

    @classmethod
    def lists(cls):
        return cls.all + ('list',)

    @classmethod
    def list(cls, filters=None):
        return cls.lists() + (freeze(filters),)

    @classmethod
    def detail(cls, exam_id):
        return cls.all + ('detail', exam_id)

    @classmethod
    def exam(cls, exam_id):
        """Everything cached about one exam: marks, cards, timetable, analytics."""
        return cls.all + ('exam', exam_id)

    @classmethod
    def students(cls, exam_id, filters=None):
        return cls.exam(exam_id) + ('students', freeze(filters))

    @classmethod
    def marks(cls, exam_id, filters=None):
        return cls.exam(exam_id) + ('marks', freeze(filters))

    @classmethod
    def report_cards(cls, exam_id, filters=None):
        return cls.exam(exam_id) + ('report-cards', freeze(filters))

    @classmethod
    def timetable(cls, exam_id):
        return cls.exam(exam_id) + ('timetable',)

    @classmethod
    def analytics(cls, exam_id, filters=None):
        return cls.exam(exam_id) + ('analytics', freeze(filters))

    @classmethod
    def student(cls, student_id):
        return cls.all + ('student', student_id)

    @classmethod
    def student_marks(cls, student_id, filters=None):
        return cls.student(student_id) + ('marks', freeze(filters))

    @classmethod
    def student_report_card(cls, student_id, exam_id=None):
        return cls.student(student_id) + ('report-card', exam_id)

    @classmethod
    def student_progress(cls, student_id):
        return cls.student(student_id) + ('progress',)

    @classmethod
    def grade_scales(cls):
        return cls.all + ('grade-scales',)

    @classmethod
    def question_papers(cls):
        return cls.all + ('question-papers',)

    @classmethod
    def question_paper_list(cls, filters=None):
        return cls.question_papers() + ('list', freeze(filters))

    @classmethod
    def co_scholastic(cls, filters=None):
        return cls.all + ('co-scholastic', freeze(filters))

    @classmethod
    def mine(cls):
        return cls.all + ('mine',)


class ExamsClient(FeatureClient):
    keys = ExamsKeys

    # Exams

    def list(self, **filters):
        return self._query(ExamsKeys.list(filters), '/api/exams', params=filters, envelope=True)

    def get(self, exam_id):
        return self._query(ExamsKeys.detail(exam_id), f'/api/exams/{exam_id}')

    def create(self, payload):
        return self._mutate('POST', '/api/exams', payload, invalidate=(ExamsKeys.lists(),))

    def update(self, exam_id, payload):
        return self._mutate('PUT', f'/api/exams/{exam_id}', payload,
                            invalidate=(ExamsKeys.lists(), ExamsKeys.detail(exam_id), ExamsKeys.exam(exam_id)))

    def delete(self, exam_id):
        return self._mutate('DELETE', f'/api/exams/{exam_id}',
                            invalidate=(ExamsKeys.lists(), ExamsKeys.detail(exam_id), ExamsKeys.exam(exam_id),
                                        ExamsKeys.question_papers()))

    def publish(self, exam_id):
        return self._mutate('POST', f'/api/exams/{exam_id}/publish',
                            invalidate=(ExamsKeys.lists(), ExamsKeys.detail(exam_id), ExamsKeys.mine()))

    # Marks

    def students_for_entry(self, exam_id, **filters):
        return self._query(ExamsKeys.students(exam_id, filters), f'/api/exams/{exam_id}/students', params=filters)

    def marks(self, exam_id, **filters):
        return self._query(ExamsKeys.marks(exam_id, filters), f'/api/exams/{exam_id}/marks', params=filters)

    def submit_marks(self, exam_id, subject_id, entries):
        """Save a batch of `{studentId, marksObtained, isAbsent, remarks}` rows for one subject."""
        return self._mutate('POST', f'/api/exams/{exam_id}/marks', {'subjectId': subject_id, 'marks': list(entries)},
                            invalidate=(ExamsKeys.exam(exam_id), ExamsKeys.all + ('student',)))

    def student_marks(self, student_id, **filters):
        return self._query(ExamsKeys.student_marks(student_id, filters), f'/api/students/{student_id}/marks',
                           params=filters)

    # Report cards

    def report_cards(self, exam_id, **filters):
        return self._query(ExamsKeys.report_cards(exam_id, filters), f'/api/exams/{exam_id}/report-cards',
                           params=filters)

    def student_report_card(self, student_id, exam_id=None):
        return self._query(ExamsKeys.student_report_card(student_id, exam_id),
                           f'/api/students/{student_id}/report-card', params={'examId': exam_id})

    def generate_report_cards(self, exam_id, class_id=None, student_ids=None):
        payload = {'examId': exam_id}
        if class_id:
            payload['classId'] = class_id
        if student_ids:
            payload['studentIds'] = list(student_ids)
        return self._mutate('POST', '/api/report-cards/generate', payload,
                            invalidate=(ExamsKeys.exam(exam_id), ExamsKeys.all + ('student',)))

    def student_progress(self, student_id):
        return self._query(ExamsKeys.student_progress(student_id), f'/api/students/{student_id}/progress')

    def analytics(self, exam_id, **filters):
        return self._query(ExamsKeys.analytics(exam_id, filters), f'/api/exams/{exam_id}/analytics', params=filters)

    # Grade scales

    def grade_scales(self):
        return self._query(ExamsKeys.grade_scales(), '/api/grade-scales')

    def create_grade_scale(self, payload):
        return self._mutate('POST', '/api/grade-scales', payload, invalidate=(ExamsKeys.grade_scales(),))

    def update_grade_scale(self, scale_id, payload):
        return self._mutate('PUT', f'/api/grade-scales/{scale_id}', payload, invalidate=(ExamsKeys.grade_scales(),))

    def delete_grade_scale(self, scale_id):
        return self._mutate('DELETE', f'/api/grade-scales/{scale_id}', invalidate=(ExamsKeys.grade_scales(),))

    # Timetable

    def timetable(self, exam_id):
        return self._query(ExamsKeys.timetable(exam_id), f'/api/exams/{exam_id}/timetable')

    def add_timetable_slot(self, exam_id, payload):
        return self._mutate('POST', f'/api/exams/{exam_id}/timetable', payload,
                            invalidate=(ExamsKeys.timetable(exam_id),))

    def delete_timetable_slot(self, exam_id, slot_id):
        return self._mutate('DELETE', f'/api/exams/{exam_id}/timetable/{slot_id}',
                            invalidate=(ExamsKeys.timetable(exam_id),))

    # Co-scholastic

    def co_scholastic(self, **filters):
        return self._query(ExamsKeys.co_scholastic(filters), '/api/exams/co-scholastic', params=filters,
                           envelope=True)

    def save_co_scholastic(self, payload):
        return self._mutate('POST', '/api/exams/co-scholastic', payload, invalidate=(ExamsKeys.all + ('co-scholastic',),))

    # Question papers

    def question_papers(self, **filters):
        return self._query(ExamsKeys.question_paper_list(filters), '/api/exams/question-papers', params=filters)

    def question_paper(self, paper_id):
        return self._query(ExamsKeys.question_papers() + ('detail', paper_id), f'/api/exams/question-papers/{paper_id}')

    def create_question_paper(self, payload):
        return self._mutate('POST', '/api/exams/question-papers', payload, invalidate=(ExamsKeys.question_papers(),))

    def delete_question_paper(self, paper_id):
        return self._mutate('DELETE', f'/api/exams/question-papers/{paper_id}',
                            invalidate=(ExamsKeys.question_papers(),))

    # Self-service

    def my_marks(self, academic_year=None):
        return self._query(ExamsKeys.mine() + ('marks', academic_year), '/api/exams/my-marks',
                           params={'academicYear': academic_year})

    def my_children_marks(self, academic_year=None):
        return self._query(ExamsKeys.mine() + ('children-marks', academic_year), '/api/exams/my-children-marks',
                           params={'academicYear': academic_year})

    def my_report_card(self, exam_id=None):
        return self._query(ExamsKeys.mine() + ('report-card', exam_id), '/api/exams/my-report-card',
                           params={'examId': exam_id})
