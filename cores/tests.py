from django.test import SimpleTestCase
from rest_framework import exceptions, status

from .outcomes import Ok, Err, ErrorKind, ineligible, not_found
from .responses import envelope_exception_handler, respond_with_outcome, respond_with_template


class EnvelopeTests(SimpleTestCase):
    def test_empty_payload_is_an_empty_list(self):
        response = respond_with_template(True)
        self.assertEqual(response.data, {'success': True, 'data': []})

    def test_ok_outcome(self):
        response = respond_with_outcome(Ok({'id': 1}, "done"), status.HTTP_201_CREATED)
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data, {'success': True, 'data': {'id': 1}, 'message': "done"})

    def test_error_kinds_map_to_statuses(self):
        expected = {
            ErrorKind.VALIDATION: 400,
            ErrorKind.AUTHORIZATION: 403,
            ErrorKind.NOT_FOUND: 404,
            ErrorKind.ELIGIBILITY: 422,
            ErrorKind.INTERNAL: 500,
        }
        for kind, code in expected.items():
            response = respond_with_outcome(Err(kind, "nope"))
            self.assertEqual(response.status_code, code)
            self.assertEqual(response.data, {'success': False, 'data': [], 'message': "nope"})

    def test_helpers_tag_their_kind(self):
        self.assertEqual(not_found("x").kind, ErrorKind.NOT_FOUND)
        self.assertEqual(ineligible("x").kind, ErrorKind.ELIGIBILITY)
        self.assertFalse(ineligible("x").ok)
        self.assertTrue(Ok().ok)


class ExceptionHandlerTests(SimpleTestCase):
    def test_validation_errors_keep_field_details(self):
        exc = exceptions.ValidationError({'title': ["This field is required."]})

        response = envelope_exception_handler(exc, {})

        self.assertEqual(response.status_code, 400)
        self.assertFalse(response.data['success'])
        self.assertEqual(response.data['message'], "This field is required.")
        self.assertIn('title', response.data['data'])

    def test_other_api_errors_have_no_data(self):
        response = envelope_exception_handler(exceptions.NotFound("Missing."), {})
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.data, {'success': False, 'data': [], 'message': "Missing."})

    def test_unknown_exceptions_are_left_alone(self):
        self.assertIsNone(envelope_exception_handler(RuntimeError("boom"), {}))
