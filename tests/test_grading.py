import os
import unittest
from datetime import date
from types import SimpleNamespace

os.environ['FLASK_ENV'] = 'testing'

from schooladmin.grading import (percent, grade_band, letter_grade, grade_point, validate_ranges, assign_ranks,
                                 build_report_card, progress_report)


def _subject(sid, name, max_marks=100, passing=33):
    return SimpleNamespace(id=sid, name=name, code=name[:3].upper(), max_marks=max_marks, passing_marks=passing)


def _mark(subject, obtained, absent=False, grade=None):
    return SimpleNamespace(subject_id=subject.id, max_marks=subject.max_marks, marks_obtained=obtained,
                           is_absent=absent, grade=grade, remarks=None)


class GradeBandTests(unittest.TestCase):

    def test_percent(self):
        self.assertEqual(percent(45, 50), 90.0)
        self.assertEqual(percent(1, 3), 33.33)
        self.assertEqual(percent(10, 0), 0.0)

    def test_band_boundaries(self):
        self.assertEqual(letter_grade(100), 'A+')
        self.assertEqual(letter_grade(90), 'A+')
        self.assertEqual(letter_grade(89.995), 'A')
        self.assertEqual(letter_grade(33), 'D')
        self.assertEqual(letter_grade(32.99), 'F')
        self.assertEqual(letter_grade(0), 'F')

    def test_custom_ranges(self):
        ranges = [{'minPercentage': 40, 'maxPercentage': 100, 'grade': 'P'}]
        self.assertEqual(letter_grade(55, ranges), 'P')
        self.assertIsNone(grade_band(10, ranges))
        self.assertEqual(letter_grade(10, ranges), '-')

    def test_grade_point(self):
        self.assertEqual(grade_point('A'), 9)
        self.assertIsNone(grade_point('AB'))


class ValidateRangesTests(unittest.TestCase):

    def test_valid(self):
        ranges = [
            {'minPercentage': 0, 'maxPercentage': 49.99, 'grade': 'F'},
            {'minPercentage': 50, 'maxPercentage': 100, 'grade': 'P'},
        ]
        self.assertEqual(validate_ranges(ranges), [])

    def test_problems_are_reported(self):
        self.assertEqual(validate_ranges([]), ["At least one grade range is required"])
        errors = validate_ranges([
            {'minPercentage': 70, 'maxPercentage': 60, 'grade': 'X'},
            {'minPercentage': 0, 'maxPercentage': 50, 'grade': ''},
            {'minPercentage': 'a', 'maxPercentage': 50, 'grade': 'Y'},
        ])
        self.assertEqual(len(errors), 3)

    def test_overlap(self):
        errors = validate_ranges([
            {'minPercentage': 0, 'maxPercentage': 50, 'grade': 'F'},
            {'minPercentage': 50, 'maxPercentage': 100, 'grade': 'P'},
        ])
        self.assertEqual(errors, ["Ranges 1 and 2 overlap"])


class RankingTests(unittest.TestCase):

    def test_competition_ranking(self):
        rows = [{'id': i, 'percentage': p} for i, p in enumerate([70, 90, 90, 50])]
        ranked = assign_ranks(rows)
        self.assertEqual([r['rank'] for r in ranked], [1, 1, 3, 4])
        self.assertEqual(ranked[-1]['id'], 3)


class ReportCardBuildTests(unittest.TestCase):

    def setUp(self):
        self.math = _subject('m', 'Mathematics')
        self.art = _subject('a', 'Art', max_marks=50, passing=20)
        self.exam = SimpleNamespace(id='e1', name='Annual', academic_year='2029-30', term='Term 2',
                                    subjects=[self.math, self.art])
        self.student = SimpleNamespace(id='s1', name='Asha', admission_number='ADM001', class_name='Class 10',
                                       section='A', roll_number=1)

    def test_absent_subject_fails_the_card(self):
        card = build_report_card(self.exam, self.student, [
            _mark(self.math, 80, grade='A'),
            _mark(self.art, 0, absent=True, grade='AB'),
        ])
        self.assertEqual(card['totalMarks'], 150)
        self.assertEqual(card['totalObtained'], 80)
        self.assertEqual(card['result'], 'fail')
        self.assertEqual(card['subjects'][0]['gradePoint'], 9)
        self.assertIsNone(card['rank'])

    def test_subjects_without_marks_are_skipped(self):
        card = build_report_card(self.exam, self.student, [_mark(self.art, 40, grade='A+')])
        self.assertEqual([s['subjectName'] for s in card['subjects']], ['Art'])
        self.assertEqual(card['percentage'], 80.0)
        self.assertEqual(card['result'], 'pass')

    def test_recorded_grade_point_wins_over_scale(self):
        mark = _mark(self.math, 80, grade='A')
        mark.grade_point = 8.5
        card = build_report_card(self.exam, self.student, [mark], ranges=[
            {'minPercentage': 0, 'maxPercentage': 100, 'grade': 'P', 'gradePoint': 1},
        ])
        self.assertEqual(card['subjects'][0]['gradePoint'], 8.5)

    def test_no_marks_is_not_a_pass(self):
        card = build_report_card(self.exam, self.student, [])
        self.assertEqual(card['result'], 'fail')
        self.assertEqual(card['percentage'], 0.0)


class ProgressTests(unittest.TestCase):

    student = SimpleNamespace(id='s1', name='Asha', class_name='Class 10', section='A')

    def _pair(self, name, start, pct):
        exam = SimpleNamespace(id=name, name=name, term=None, academic_year='2029-30', start_date=start)
        return exam, {'percentage': pct, 'grade': letter_grade(pct), 'rank': 1, 'subjects': []}

    def test_trend(self):
        pairs = [self._pair('Annual', date(2030, 3, 1), 70.0), self._pair('Unit 1', date(2029, 7, 1), 80.0)]
        report = progress_report(self.student, pairs)
        self.assertEqual([t['examName'] for t in report['terms']], ['Unit 1', 'Annual'])
        self.assertEqual(report['improvementPercentage'], -10.0)
        self.assertEqual(report['overallTrend'], 'declining')
        self.assertEqual(report['terms'][0]['term'], 'Unit 1')

    def test_change_within_threshold_is_stable(self):
        pairs = [self._pair('Unit 1', date(2029, 7, 1), 70.0), self._pair('Unit 2', date(2029, 9, 1), 72.0)]
        self.assertEqual(progress_report(self.student, pairs)['overallTrend'], 'stable')
        self.assertEqual(progress_report(self.student, pairs, threshold=1.0)['overallTrend'], 'improving')

    def test_single_term(self):
        report = progress_report(self.student, [self._pair('Unit 1', date(2029, 7, 1), 70.0)])
        self.assertEqual(report['improvementPercentage'], 0.0)
        self.assertEqual(report['overallTrend'], 'stable')


if __name__ == "__main__":
    unittest.main()
