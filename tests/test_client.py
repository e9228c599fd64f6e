import unittest

import httpx

from tests.base import ApiTestCase
from schooladmin import app
from schooladmin.client import (ApiClient, ApiClientError, QueryCache, freeze, AlumniClient, CommunicationClient,
                                ExamsClient, HostelClient, HostelKeys, ExamsKeys)


class QueryCacheTests(unittest.TestCase):

    def test_freeze_ignores_order_and_blanks(self):
        self.assertEqual(freeze({'b': 1, 'a': 'x', 'c': None, 'd': ''}), freeze({'a': 'x', 'b': 1}))
        self.assertEqual(freeze(None), ())
        self.assertEqual(freeze({'ids': ['1', '2']}), (('ids', ('1', '2')),))

    def test_fetch_memoises(self):
        cache = QueryCache()
        calls = []
        loader = lambda: calls.append(1) or len(calls)
        self.assertEqual(cache.fetch(('a', 'list'), loader), 1)
        self.assertEqual(cache.fetch(['a', 'list'], loader), 1)
        self.assertEqual((cache.hits, cache.misses), (1, 1))

    def test_invalidate_by_prefix(self):
        cache = QueryCache()
        cache.set(('hostel', 'rooms', 'list', ()), [])
        cache.set(('hostel', 'rooms', 'detail', 'r1'), {})
        cache.set(('hostel', 'stats'), {})
        self.assertEqual(cache.invalidate(HostelKeys.rooms()), 2)
        self.assertEqual(cache.keys(), [('hostel', 'stats')])
        self.assertEqual(cache.invalidate(('alumni',)), 0)

    def test_exam_scoped_keys_share_a_prefix(self):
        marks = ExamsKeys.marks('e1', {'subjectId': 's1'})
        cards = ExamsKeys.report_cards('e1')
        prefix = ExamsKeys.exam('e1')
        self.assertEqual(marks[:len(prefix)], prefix)
        self.assertEqual(cards[:len(prefix)], prefix)
        self.assertNotEqual(ExamsKeys.marks('e2')[:len(prefix)], prefix)


class ApiClientErrorTests(unittest.TestCase):

    def test_user_messages(self):
        self.assertIn("log in", ApiClientError(401, "Authentication required").user_message())
        self.assertIn("permission", ApiClientError(403, "nope").user_message())
        self.assertIn("reach the server", ApiClientError(0, "timeout").user_message())
        self.assertIn("server", ApiClientError(502, "Bad Gateway").user_message())
        validation = ApiClientError(400, "Missing required fields", {'name': ["This field is required"]})
        self.assertEqual(validation.user_message(), "name: This field is required")
        self.assertEqual(ApiClientError(409, "Already exists").user_message(), "Already exists")

    def test_predicates(self):
        error = ApiClientError(409, "dup")
        self.assertTrue(error.is_conflict())
        self.assertFalse(error.is_not_found())
        self.assertTrue(ApiClientError(422, "bad").is_validation_error())


class ApiClientTransportTests(unittest.TestCase):

    def client_for(self, handler):
        return ApiClient('http://testserver', transport=httpx.MockTransport(handler))

    def test_params_are_cleaned(self):
        seen = {}

        def handler(request):
            seen.update(request.url.params)
            return httpx.Response(200, json={'data': []})

        with self.client_for(handler) as api:
            api.get('/api/alumni', params={'isVerified': True, 'batch': None, 'search': '', 'page': 2})
        self.assertEqual(seen, {'isVerified': 'true', 'page': '2'})

    def test_error_body_is_decoded(self):
        def handler(request):
            return httpx.Response(400, json={'error': 'Missing required fields', 'fields': {'email': ['Required']}})

        with self.client_for(handler) as api:
            with self.assertRaises(ApiClientError) as ctx:
                api.post('/api/alumni', {})
        self.assertEqual(ctx.exception.status, 400)
        self.assertEqual(ctx.exception.fields, {'email': ['Required']})

    def test_non_json_error(self):
        with self.client_for(lambda request: httpx.Response(500, text='boom')) as api:
            with self.assertRaises(ApiClientError) as ctx:
                api.get('/api/hostel/stats')
        self.assertEqual(ctx.exception.message, 'Internal Server Error')

    def test_network_failure(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with self.client_for(handler) as api:
            with self.assertRaises(ApiClientError) as ctx:
                api.get('/healthz')
        self.assertTrue(ctx.exception.is_network_error())

    def test_no_content(self):
        with self.client_for(lambda request: httpx.Response(204)) as api:
            self.assertIsNone(api.delete('/api/alumni/a1'))


class ClientIntegrationTests(ApiTestCase):

    def setUp(self):
        super().setUp()
        self.make_user('admin', 'admin', name='Administrator', password='secret')
        self.api = ApiClient('http://testserver', transport=httpx.WSGITransport(app=app))
        self.api.login('admin', 'secret')

    def tearDown(self):
        self.api.close()
        super().tearDown()

    def test_session_is_kept(self):
        self.assertEqual(self.api.me()['username'], 'admin')
        self.api.logout()
        with self.assertRaises(ApiClientError) as ctx:
            self.api.me()
        self.assertTrue(ctx.exception.is_unauthorized())

    def test_bad_login(self):
        with ApiClient('http://testserver', transport=httpx.WSGITransport(app=app)) as other:
            with self.assertRaises(ApiClientError) as ctx:
                other.login('admin', 'wrong')
        self.assertEqual(ctx.exception.status, 401)

    def test_allocation_refreshes_cached_rooms(self):
        hostel_client = HostelClient(self.api)
        hostel = hostel_client.create_hostel({'name': 'Tagore House', 'type': 'boys', 'capacity': 2})
        room = hostel_client.create_room({'hostelId': hostel['id'], 'roomNumber': '101', 'type': 'double', 'capacity': 2})
        student = self.make_student('ADM001')

        self.assertEqual(hostel_client.rooms(hostelId=hostel['id'])[0]['occupancy'], 0)
        hostel_client.rooms(hostelId=hostel['id'])
        self.assertEqual(hostel_client.cache.hits, 1)
        self.assertEqual(hostel_client.stats()['occupiedBeds'], 0)

        hostel_client.allocate(student.id, room['id'], 1)
        self.assertNotIn(HostelKeys.room_list({'hostelId': hostel['id']}), hostel_client.cache)
        self.assertEqual(hostel_client.rooms(hostelId=hostel['id'])[0]['occupancy'], 1)
        self.assertEqual(hostel_client.stats()['occupiedBeds'], 1)

    def test_server_errors_surface_as_client_errors(self):
        hostel_client = HostelClient(self.api)
        hostel_client.create_hostel({'name': 'Tagore House', 'type': 'boys', 'capacity': 2})
        with self.assertRaises(ApiClientError) as ctx:
            hostel_client.create_hostel({'name': 'Tagore House', 'type': 'boys', 'capacity': 2})
        self.assertTrue(ctx.exception.is_conflict())

    def test_alumni_envelope_and_delete(self):
        alumni = AlumniClient(self.api)
        created = alumni.create({'name': 'Meera', 'email': 'meera@alumni.test', 'batch': '2019'})
        page = alumni.list(batch='2019')
        self.assertEqual(page['meta']['total'], 1)
        self.assertIsNone(alumni.delete(created['id']))
        self.assertEqual(alumni.list(batch='2019')['meta']['total'], 0)

    def test_marks_invalidate_exam_queries(self):
        exams = ExamsClient(self.api)
        student = self.make_student('ADM001')
        exam = exams.create({
            'name': 'Unit Test 1', 'type': 'unit_test', 'academicYear': '2029-30',
            'startDate': '2030-03-01', 'endDate': '2030-03-02',
            'subjects': [{'name': 'Mathematics', 'code': 'MATH', 'maxMarks': 25, 'passingMarks': 9}],
        })
        subject_id = exam['subjects'][0]['id']
        self.assertEqual(exams.marks(exam['id']), [])
        exams.submit_marks(exam['id'], subject_id, [{'studentId': student.id, 'marksObtained': 20}])
        marks = exams.marks(exam['id'])
        self.assertEqual(marks[0]['grade'], 'A')
        self.assertEqual(exams.report_cards(exam['id'])[0]['percentage'], 80.0)

    def test_messages_through_client(self):
        self.make_user('teacher1', 'teacher')
        comms = CommunicationClient(self.api)
        self.assertEqual(comms.conversations(), [])
        message = comms.send_message('Hello', recipient_ids=['teacher1'])
        conversations = comms.conversations()
        self.assertEqual(conversations[0]['id'], message['conversationId'])
        page = comms.messages(message['conversationId'])
        self.assertEqual(page['meta']['total'], 1)


if __name__ == "__main__":
    unittest.main()
