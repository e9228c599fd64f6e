import unittest

from tests.base import ApiTestCase
from schooladmin import db
from schooladmin.models import Alumni, Student


class AlumniTests(ApiTestCase):

    def setUp(self):
        super().setUp()
        self.login_as('admin')

    def create_alumni(self, name='Meera', email='meera@alumni.test', batch='2019', **extra):
        payload = dict(name=name, email=email, batch=batch, **extra)
        response = self.client.post('/api/alumni', json=payload)
        self.assertEqual(response.status_code, 201, response.get_json())
        return response.get_json()['data']

    def test_create_alumni_defaults(self):
        alumni = self.create_alumni(batch=2019)
        self.assertEqual(alumni['batch'], '2019')
        self.assertFalse(alumni['isVerified'])
        self.assertEqual(alumni['currentCountry'], 'India')

    def test_duplicate_email_conflicts(self):
        self.create_alumni(email='meera@alumni.test')
        response = self.client.post('/api/alumni', json={'name': 'Other', 'email': 'MEERA@alumni.test', 'batch': '2020'})
        self.assertEqual(response.status_code, 409)

    def test_missing_fields(self):
        response = self.client.post('/api/alumni', json={'name': 'Only name'})
        self.assertEqual(response.status_code, 400)
        fields = response.get_json()['fields']
        self.assertIn('email', fields)
        self.assertIn('batch', fields)

    def test_non_text_fields_are_rejected(self):
        response = self.client.post('/api/alumni', json={'name': 'Meera', 'email': 123, 'batch': '2019'})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()['fields']['email'], ["Must be a string"])

        alumni = self.create_alumni()
        update = self.client.put(f"/api/alumni/{alumni['id']}", json={'name': ['Meera']})
        self.assertEqual(update.status_code, 400)
        self.assertIn('name', update.get_json()['fields'])

    def test_list_is_paginated_and_filtered(self):
        for i in range(3):
            self.create_alumni(name=f"A{i}", email=f"a{i}@alumni.test", batch='2018')
        self.create_alumni(name='Zed', email='zed@alumni.test', batch='2020', company='Acme')

        body = self.client.get('/api/alumni', query_string={'batch': '2018', 'limit': 2}).get_json()
        self.assertEqual(body['meta'], {'total': 3, 'page': 1, 'limit': 2, 'totalPages': 2})
        self.assertEqual(len(body['data']), 2)

        found = self.client.get('/api/alumni', query_string={'search': 'acme'}).get_json()
        self.assertEqual([a['name'] for a in found['data']], ['Zed'])

    def test_verify_update_and_delete(self):
        alumni = self.create_alumni()
        verified = self.client.patch(f"/api/alumni/{alumni['id']}/verify").get_json()['data']
        self.assertTrue(verified['isVerified'])

        updated = self.client.put(f"/api/alumni/{alumni['id']}", json={'occupation': 'Architect'}).get_json()['data']
        self.assertEqual(updated['occupation'], 'Architect')

        response = self.client.delete(f"/api/alumni/{alumni['id']}")
        self.assertEqual(response.status_code, 204)
        self.assertEqual(self.client.get(f"/api/alumni/{alumni['id']}").status_code, 404)

    def test_delete_requires_admin(self):
        alumni = self.create_alumni()
        self.login_as('staff')
        self.assertEqual(self.client.delete(f"/api/alumni/{alumni['id']}").status_code, 403)

    def test_stats(self):
        a = self.create_alumni(batch='2019')
        self.create_alumni(name='B', email='b@alumni.test', batch='2020')
        self.client.patch(f"/api/alumni/{a['id']}/verify")
        self.client.post('/api/alumni/contributions', json={
            'alumniId': a['id'], 'type': 'monetary', 'description': 'Library fund', 'amount': 5000,
        })
        stats = self.client.get('/api/alumni/stats').get_json()['data']
        self.assertEqual(stats['totalAlumni'], 2)
        self.assertEqual(stats['verifiedAlumni'], 1)
        self.assertEqual(stats['totalContributions'], 1)
        # pledged money is not counted until received
        self.assertEqual(stats['contributionAmount'], 0.0)
        self.assertEqual(stats['batchCount'], 2)

        batches = self.client.get('/api/alumni/batches/stats').get_json()['data']
        self.assertEqual([b['batch'] for b in batches], ['2020', '2019'])
        self.assertEqual(batches[1]['contributions'], 1)
        self.assertEqual(batches[1]['verifiedAlumni'], 1)


class AchievementAndContributionTests(ApiTestCase):

    def setUp(self):
        super().setUp()
        self.login_as('admin')
        response = self.client.post('/api/alumni', json={'name': 'Kiran', 'email': 'kiran@alumni.test', 'batch': '2017'})
        self.alumni_id = response.get_json()['data']['id']

    def test_achievement_publish_flow(self):
        response = self.client.post('/api/alumni/achievements', json={
            'alumniId': self.alumni_id, 'title': 'National award', 'category': 'professional', 'date': '2024-03-01',
        })
        self.assertEqual(response.status_code, 201)
        achievement = response.get_json()['data']

        published = self.client.get('/api/alumni/achievements', query_string={'isPublished': 'true'}).get_json()
        self.assertEqual(published['data'], [])

        self.client.patch(f"/api/alumni/achievements/{achievement['id']}/publish", json={'isPublished': True})
        published = self.client.get('/api/alumni/achievements', query_string={'isPublished': 'true'}).get_json()
        self.assertEqual(len(published['data']), 1)

        self.assertEqual(self.client.delete(f"/api/alumni/achievements/{achievement['id']}").status_code, 204)

    def test_achievement_bad_category(self):
        response = self.client.post('/api/alumni/achievements', json={
            'alumniId': self.alumni_id, 'title': 'Thing', 'category': 'nope', 'date': '2024-03-01',
        })
        self.assertEqual(response.status_code, 400)
        self.assertIn('category', response.get_json()['fields'])

    def test_monetary_contribution_needs_amount(self):
        response = self.client.post('/api/alumni/contributions', json={
            'alumniId': self.alumni_id, 'type': 'monetary', 'description': 'Gift',
        })
        self.assertEqual(response.status_code, 400)
        self.assertIn('amount', response.get_json()['fields'])

    def test_contribution_status_moves_forward_only(self):
        contribution = self.client.post('/api/alumni/contributions', json={
            'alumniId': self.alumni_id, 'type': 'mentorship', 'description': 'Career talks',
        }).get_json()['data']
        self.assertEqual(contribution['status'], 'pledged')

        received = self.client.patch(f"/api/alumni/contributions/{contribution['id']}/status",
                                     json={'status': 'received', 'acknowledgement': 'Thank you'})
        self.assertEqual(received.status_code, 200)
        self.assertEqual(received.get_json()['data']['acknowledgement'], 'Thank you')

        back = self.client.patch(f"/api/alumni/contributions/{contribution['id']}/status", json={'status': 'pledged'})
        self.assertEqual(back.status_code, 400)


class AlumniEventTests(ApiTestCase):

    def setUp(self):
        super().setUp()
        self.login_as('admin')
        self.alumni = [
            self.client.post('/api/alumni', json={'name': f"A{i}", 'email': f"a{i}@alumni.test", 'batch': '2016'})
            .get_json()['data'] for i in range(3)
        ]

    def create_event(self, **extra):
        payload = {'title': 'Reunion', 'type': 'reunion', 'date': '2030-01-15T18:00:00Z'}
        payload.update(extra)
        response = self.client.post('/api/alumni/events', json=payload)
        self.assertEqual(response.status_code, 201, response.get_json())
        return response.get_json()['data']

    def test_virtual_event_needs_link(self):
        response = self.client.post('/api/alumni/events', json={
            'title': 'Webinar', 'type': 'webinar', 'date': '2030-01-15T18:00:00Z', 'isVirtual': True,
        })
        self.assertEqual(response.status_code, 400)
        self.assertIn('meetingLink', response.get_json()['fields'])

    def test_registration_capacity(self):
        event = self.create_event(maxCapacity=2)
        for alumni in self.alumni[:2]:
            response = self.client.post(f"/api/alumni/events/{event['id']}/register", json={'alumniId': alumni['id']})
            self.assertEqual(response.status_code, 201)

        full = self.client.post(f"/api/alumni/events/{event['id']}/register", json={'alumniId': self.alumni[2]['id']})
        self.assertEqual(full.status_code, 400)
        self.assertEqual(full.get_json()['error'], 'Event is full')

        again = self.client.post(f"/api/alumni/events/{event['id']}/register", json={'alumniId': self.alumni[0]['id']})
        self.assertEqual(again.status_code, 400)

        detail = self.client.get(f"/api/alumni/events/{event['id']}").get_json()['data']
        self.assertEqual(detail['registeredCount'], 2)

        cancel = self.client.delete(f"/api/alumni/events/{event['id']}/register/{self.alumni[0]['id']}")
        self.assertEqual(cancel.status_code, 204)
        regs = self.client.get(f"/api/alumni/events/{event['id']}/registrations").get_json()['data']
        self.assertEqual(len(regs), 1)

    def test_closed_event_rejects_registration(self):
        event = self.create_event()
        self.client.patch(f"/api/alumni/events/{event['id']}/status", json={'status': 'completed'})
        response = self.client.post(f"/api/alumni/events/{event['id']}/register", json={'alumniId': self.alumni[0]['id']})
        self.assertEqual(response.status_code, 400)

    def test_upcoming_events_listed_first_and_batch_filter(self):
        done = self.create_event(title='Old meet', type='meet', targetBatches=['2010'])
        self.client.patch(f"/api/alumni/events/{done['id']}/status", json={'status': 'completed'})
        self.create_event(title='Open reunion')

        events = self.client.get('/api/alumni/events').get_json()['data']
        self.assertEqual([e['title'] for e in events], ['Open reunion', 'Old meet'])

        for_2016 = self.client.get('/api/alumni/events', query_string={'batch': '2016'}).get_json()['data']
        self.assertEqual([e['title'] for e in for_2016], ['Open reunion'])

    def test_deleting_alumni_releases_seat(self):
        event = self.create_event(maxCapacity=5)
        self.client.post(f"/api/alumni/events/{event['id']}/register", json={'alumniId': self.alumni[0]['id']})
        self.client.delete(f"/api/alumni/{self.alumni[0]['id']}")
        detail = self.client.get(f"/api/alumni/events/{event['id']}").get_json()['data']
        self.assertEqual(detail['registeredCount'], 0)


class GraduationTests(ApiTestCase):

    def setUp(self):
        super().setUp()
        self.login_as('admin')
        self.senior = self.make_student('ADM100', name='Senior One', class_name='Class 12', email='senior@school.test')
        self.junior = self.make_student('ADM200', name='Junior', class_name='Class 9')

    def test_eligible_lists_graduating_class(self):
        eligible = self.client.get('/api/alumni/eligible-for-graduation').get_json()['data']
        self.assertEqual([s['admissionNumber'] for s in eligible], ['ADM100'])

    def test_graduate_student(self):
        response = self.client.post('/api/alumni/graduate', json={
            'studentId': self.senior.id, 'batchYear': '2025', 'occupation': 'Student',
        })
        self.assertEqual(response.status_code, 201)
        data = response.get_json()['data']
        self.assertEqual(data['student']['status'], 'graduated')
        self.assertTrue(data['alumni']['isVerified'])
        self.assertEqual(data['alumni']['email'], 'senior@school.test')
        self.assertEqual(data['alumni']['batch'], '2025')

        twice = self.client.post('/api/alumni/graduate', json={'studentId': self.senior.id, 'batchYear': '2025'})
        self.assertEqual(twice.status_code, 400)

    def test_graduate_batch_reports_each_student(self):
        response = self.client.post('/api/alumni/graduate-batch', json={
            'studentIds': [self.senior.id, self.junior.id, 'missing'], 'batchYear': '2025',
        })
        self.assertEqual(response.status_code, 200)
        data = response.get_json()['data']
        self.assertEqual(data['total'], 3)
        self.assertEqual(data['graduated'], 2)
        self.assertEqual(data['failed'], 1)
        self.assertFalse(data['results'][2]['success'])

        junior_alumni = Alumni.query.filter_by(student_id=self.junior.id).first()
        self.assertEqual(junior_alumni.email, 'adm200@alumni.local')
        self.assertEqual(db.session.get(Student, self.junior.id).status, 'graduated')

    def test_graduation_is_admin_only(self):
        self.login_as('staff')
        response = self.client.post('/api/alumni/graduate', json={'studentId': self.senior.id, 'batchYear': '2025'})
        self.assertEqual(response.status_code, 403)


if __name__ == "__main__":
    unittest.main()
