import unittest

from tests.base import ApiTestCase
from werkzeug.security import check_password_hash

from reset_admin import reset_admin
from schooladmin.models import AuditLog, User


class BasicTests(ApiTestCase):

    def test_healthz(self):
        response = self.client.get('/healthz')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()['status'], 'ok')

    def test_login_and_me(self):
        self.make_user('office', 'staff', name='Office Staff', password='pw123')
        response = self.client.post('/api/auth/login', json={'username': 'office', 'password': 'pw123'})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()['data']['role'], 'staff')

        me = self.client.get('/api/auth/me')
        self.assertEqual(me.status_code, 200)
        self.assertEqual(me.get_json()['data']['name'], 'Office Staff')
        self.assertEqual(AuditLog.query.filter_by(action='login').count(), 1)

    def test_login_wrong_password(self):
        self.make_user('office', 'staff', password='pw123')
        response = self.client.post('/api/auth/login', json={'username': 'office', 'password': 'nope'})
        self.assertEqual(response.status_code, 401)
        self.assertIn('error', response.get_json())

    def test_login_missing_fields(self):
        response = self.client.post('/api/auth/login', json={'username': 'office'})
        self.assertEqual(response.status_code, 400)
        self.assertIn('password', response.get_json()['fields'])

    def test_logout_clears_session(self):
        self.login_as('admin')
        self.client.post('/api/auth/logout')
        self.assertEqual(self.client.get('/api/auth/me').status_code, 401)

    def test_requires_login(self):
        response = self.client.get('/api/students')
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.get_json()['error'], 'Authentication required')

    def test_role_forbidden(self):
        self.login_as('student')
        self.assertEqual(self.client.get('/api/students').status_code, 403)

    def test_unknown_route_is_json(self):
        response = self.client.get('/api/does-not-exist')
        self.assertEqual(response.status_code, 404)
        self.assertIn('error', response.get_json())

    def test_create_and_list_students(self):
        self.login_as('staff')
        response = self.client.post('/api/students', json={
            'admissionNumber': 'ADM001', 'name': 'Asha', 'class': 'Class 10', 'section': 'A',
            'rollNumber': 3, 'gender': 'female', 'email': 'asha@school.test',
        })
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.get_json()['data']['class'], 'Class 10')

        listing = self.client.get('/api/students', query_string={'class': 'Class 10'}).get_json()
        self.assertEqual(listing['meta']['total'], 1)
        self.assertEqual(listing['data'][0]['admissionNumber'], 'ADM001')

    def test_duplicate_admission_number_conflicts(self):
        self.login_as('staff')
        self.make_student('ADM001')
        response = self.client.post('/api/students', json={
            'admissionNumber': 'ADM001', 'name': 'Other', 'class': 'Class 10', 'section': 'B',
        })
        self.assertEqual(response.status_code, 409)

    def test_duplicate_student_email_is_validation_error(self):
        self.login_as('staff')
        self.make_student('ADM001', email='same@school.test')
        response = self.client.post('/api/students', json={
            'admissionNumber': 'ADM002', 'name': 'Other', 'class': 'Class 10', 'section': 'B',
            'email': 'same@school.test',
        })
        self.assertEqual(response.status_code, 400)
        self.assertIn('email', response.get_json()['fields'])

    def test_get_missing_student(self):
        self.login_as('staff')
        self.assertEqual(self.client.get('/api/students/nope').status_code, 404)

    def test_audit_listing_is_admin_only(self):
        self.login_as('staff')
        self.client.post('/api/students', json={
            'admissionNumber': 'ADM009', 'name': 'Ravi', 'class': 'Class 9', 'section': 'A',
        })
        self.assertEqual(self.client.get('/api/audit').status_code, 403)

        self.login_as('admin')
        body = self.client.get('/api/audit?action=student_create').get_json()
        self.assertEqual(body['meta']['total'], 1)
        self.assertEqual(body['data'][0]['actor'], 'staff1')
        self.assertEqual(body['data'][0]['target'], 'ADM009')

    def test_reset_admin_promotes_and_rehashes(self):
        self.make_user('principal', 'staff', password='old')
        new_pw = reset_admin('principal')
        user = User.query.filter_by(username='principal').first()
        self.assertEqual(user.role, 'admin')
        self.assertTrue(check_password_hash(user.password_hash, new_pw))
        self.assertEqual(len(new_pw), 16)

        reset_admin('fresh')
        self.assertEqual(User.query.filter_by(username='fresh').first().name, 'Administrator')


if __name__ == "__main__":
    unittest.main()
