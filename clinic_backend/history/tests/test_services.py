"""
Tests for the history update service layer.

Tests cover:
- Accepted updates are returned verbatim and audited
- Rejected updates raise AuthorizationError with the section's message key
- Request validation (patientId, medicalHistory, envelopes, section)
"""

from types import SimpleNamespace

from django.test import SimpleTestCase
from rest_framework.exceptions import ValidationError

from clinic_backend.history.exceptions import (
    AuthorizationError,
    MalformedDocumentError,
    ReasonCode,
    UnknownSectionError,
)
from clinic_backend.history.responses import MESSAGES
from clinic_backend.history.services import review_history_request, review_history_update


AUDIT_LOGGER = "clinic_backend.core.utils"
DUMMY_PATIENT_ID = 99999


def make_user(role):
    return SimpleNamespace(
        username="%s_history" % role,
        is_authenticated=True,
        role=SimpleNamespace(name=role),
    )


class ReviewHistoryUpdateTestCase(SimpleTestCase):
    """Tests for review_history_update."""

    def setUp(self):
        super().setUp()
        self.student = make_user("student")
        self.doctor = make_user("doctor")
        self.saved = {
            "cancer": {"version": 1, "data": [{"who": "Father", "typeOfCancer": "Breast"}]},
        }

    def test_accepted_update_is_returned_verbatim(self):
        proposed = {
            "cancer": {
                "version": 1,
                "data": [
                    {"who": "Father", "typeOfCancer": "Breast"},
                    {"who": "Aunt", "typeOfCancer": "Lung"},
                ],
            },
        }
        with self.assertLogs(AUDIT_LOGGER, level="INFO") as logs:
            result = review_history_update(self.student, "family", DUMMY_PATIENT_ID, proposed, self.saved)

        self.assertIs(result, proposed)
        self.assertEqual(len(logs.records), 1)
        message = logs.records[0].getMessage()
        self.assertIn("action=family_history_update", message)
        self.assertIn("patient_id=99999", message)
        self.assertIn("user=student_history", message)
        self.assertIn("'role': 'patient'", message)

    def test_rejected_update_raises_with_section_message_key(self):
        """Clearing a saved cancer record is not allowed for students."""
        proposed = {"cancer": {"version": 1, "data": []}}
        with self.assertLogs(AUDIT_LOGGER, level="INFO") as logs:
            with self.assertRaises(AuthorizationError) as ctx:
                review_history_update(self.student, "family", DUMMY_PATIENT_ID, proposed, self.saved)

        self.assertEqual(ctx.exception.reason, ReasonCode.RECORD_REMOVED)
        self.assertEqual(ctx.exception.field, "cancer")
        self.assertEqual(ctx.exception.message_key, "update")
        message = logs.records[0].getMessage()
        self.assertIn("action=family_history_rejected", message)
        self.assertIn("'reason': 'record_removed'", message)

    def test_saved_info_sections_use_saved_info_message(self):
        saved = {"traumas": {"version": 2, "data": [{"type": "Fracture", "year": 2019}]}}
        proposed = {"traumas": {"version": 2, "data": [{"type": "Sprain", "year": 2019}]}}
        with self.assertRaises(AuthorizationError) as ctx:
            review_history_update(self.student, "traumatological", DUMMY_PATIENT_ID, proposed, saved)
        self.assertEqual(ctx.exception.message_key, "saved_info")

    def test_gynecoobstetric_uses_modify_message(self):
        saved = {"pregnancies": {"version": 1, "data": {"gestations": 2}}}
        proposed = {"pregnancies": {"version": 1, "data": {"gestations": 1}}}
        with self.assertRaises(AuthorizationError) as ctx:
            review_history_update(self.student, "gynecoobstetric", DUMMY_PATIENT_ID, proposed, saved)
        self.assertEqual(ctx.exception.message_key, "modify")
        self.assertEqual(ctx.exception.reason, ReasonCode.COUNTER_DECREASED)

    def test_doctor_may_replace_saved_history(self):
        proposed = {"cancer": {"version": 1, "data": []}}
        with self.assertLogs(AUDIT_LOGGER, level="INFO") as logs:
            result = review_history_update(self.doctor, "family", DUMMY_PATIENT_ID, proposed, self.saved)
        self.assertIs(result, proposed)
        self.assertIn("'role': 'clinician'", logs.records[0].getMessage())

    def test_first_submission_is_accepted(self):
        proposed = {"smoker": {"version": 1, "data": {"isSmoker": True}}}
        result = review_history_update(self.student, "nonpathological", DUMMY_PATIENT_ID, proposed)
        self.assertIs(result, proposed)

    # ---- request validation -------------------------------------------------

    def test_missing_patient_id(self):
        for patient_id in (None, 0):
            with self.subTest(patient_id=patient_id):
                with self.assertRaises(MalformedDocumentError) as ctx:
                    review_history_update(self.student, "family", patient_id, {}, None)
                self.assertEqual(ctx.exception.field, "patientId")

    def test_missing_medical_history(self):
        with self.assertRaises(MalformedDocumentError) as ctx:
            review_history_update(self.student, "family", DUMMY_PATIENT_ID, None)
        self.assertEqual(ctx.exception.field, "medicalHistory")

    def test_malformed_envelope_is_rejected_for_every_role(self):
        """Envelopes are parsed before the clinician bypass applies."""
        for user in (self.student, self.doctor):
            with self.subTest(user=user.username):
                with self.assertRaises(MalformedDocumentError) as ctx:
                    review_history_update(user, "family", DUMMY_PATIENT_ID, {"cancer": []})
                self.assertEqual(ctx.exception.field, "cancer")

    def test_unknown_section(self):
        with self.assertRaises(UnknownSectionError):
            review_history_update(self.student, "dental", DUMMY_PATIENT_ID, {})


class ReviewHistoryRequestTestCase(SimpleTestCase):
    """Tests for review_history_request (serializer + review)."""

    def setUp(self):
        super().setUp()
        self.student = make_user("student")
        self.saved = {"hypertension": {"version": 1, "data": ["Father"]}}

    def test_valid_body_is_reviewed(self):
        body = {
            "patientId": DUMMY_PATIENT_ID,
            "medicalHistory": {"hypertension": {"version": 1, "data": ["Father", "Mother"]}},
        }
        with self.assertLogs(AUDIT_LOGGER, level="INFO") as logs:
            result = review_history_request(self.student, "family", body, self.saved)

        self.assertEqual(result["hypertension"]["data"], ["Father", "Mother"])
        self.assertEqual(result["hypertension"]["version"], 1)
        self.assertIn("action=family_history_update", logs.records[0].getMessage())

    def test_missing_patient_id_fails_validation(self):
        body = {"medicalHistory": {"hypertension": {"version": 1, "data": ["Father"]}}}
        with self.assertRaises(ValidationError) as ctx:
            review_history_request(self.student, "family", body, self.saved)
        self.assertEqual(str(ctx.exception.detail["patientId"][0]), MESSAGES["missing_patient_id"])

    def test_invalid_envelope_fails_validation(self):
        body = {"patientId": DUMMY_PATIENT_ID, "medicalHistory": {"hypertension": {"version": 1}}}
        with self.assertRaises(ValidationError) as ctx:
            review_history_request(self.student, "family", body, self.saved)
        self.assertIn("medicalHistory", ctx.exception.detail)

    def test_rejected_update_raises(self):
        body = {
            "patientId": DUMMY_PATIENT_ID,
            "medicalHistory": {"hypertension": {"version": 1, "data": []}},
        }
        with self.assertRaises(AuthorizationError) as ctx:
            review_history_request(self.student, "family", body, self.saved)
        self.assertEqual(ctx.exception.field, "hypertension")
