"""
Tests for versioned history envelopes and shape checks.
"""

from django.test import SimpleTestCase

from clinic_backend.history.documents import (
    FieldShape,
    VersionedField,
    ensure_shape,
    entries,
    infer_shape,
)
from clinic_backend.history.exceptions import MalformedDocumentError, ShapeMismatchError


class VersionedFieldTestCase(SimpleTestCase):
    """Tests for VersionedField parsing."""

    def test_from_dict(self):
        field = VersionedField.from_dict({"version": 3, "data": ["Father"]})
        self.assertEqual(field.version, 3)
        self.assertEqual(field.data, ["Father"])
        self.assertEqual(field.to_dict(), {"version": 3, "data": ["Father"]})

    def test_existing_instance_is_returned_as_is(self):
        field = VersionedField(version=1, data=[])
        self.assertIs(VersionedField.from_dict(field), field)

    def test_non_object_payload_is_malformed(self):
        with self.assertRaises(MalformedDocumentError) as ctx:
            VersionedField.from_dict(["Father"], field="hypertension")
        self.assertEqual(ctx.exception.field, "hypertension")

    def test_missing_data_is_malformed(self):
        with self.assertRaises(MalformedDocumentError):
            VersionedField.from_dict({"version": 1})

    def test_version_must_be_an_integer(self):
        """Strings, floats, booleans and a missing version are rejected."""
        for version in ("1", 1.0, True, None):
            with self.subTest(version=version):
                with self.assertRaises(MalformedDocumentError):
                    VersionedField.from_dict({"version": version, "data": []})
        with self.assertRaises(MalformedDocumentError):
            VersionedField.from_dict({"data": []})


class ShapeTestCase(SimpleTestCase):
    """Tests for infer_shape, ensure_shape and entries."""

    def test_infer_shape(self):
        self.assertEqual(infer_shape(["Father"]), FieldShape.SCALAR_LIST)
        self.assertEqual(infer_shape([]), FieldShape.SCALAR_LIST)
        self.assertEqual(infer_shape([{"who": "Father"}]), FieldShape.RECORD_LIST)
        self.assertEqual(infer_shape({"isSmoker": True}), FieldShape.RECORD)

    def test_infer_shape_rejects_scalars(self):
        for data in ("Father", 3, None):
            with self.subTest(data=data):
                with self.assertRaises(ShapeMismatchError):
                    infer_shape(data)

    def test_ensure_shape_accepts_matching_data(self):
        ensure_shape("hypertension", ["Father", "Mother"], FieldShape.SCALAR_LIST)
        ensure_shape("cancer", [{"who": "Father"}], FieldShape.RECORD_LIST)
        ensure_shape("smoker", {"isSmoker": False}, FieldShape.RECORD)
        ensure_shape("pregnancies", {"gestations": 1}, FieldShape.COUNTERS)

    def test_empty_object_stands_for_an_empty_list(self):
        ensure_shape("depression", {}, FieldShape.RECORD_LIST)
        ensure_shape("asthma", {}, "scalar_list")
        self.assertEqual(entries({}), [])
        self.assertEqual(entries(["Father"]), ["Father"])

    def test_ensure_shape_rejects_mismatches(self):
        cases = (
            ({"who": "Father"}, FieldShape.RECORD_LIST, "object"),
            ([{"who": "Father"}], FieldShape.SCALAR_LIST, "list of containers"),
            (["Father"], FieldShape.RECORD_LIST, "list containing str"),
            (["Father"], FieldShape.RECORD, "list"),
            (None, FieldShape.COUNTERS, "null"),
        )
        for data, expected, actual in cases:
            with self.subTest(expected=expected, data=data):
                with self.assertRaises(ShapeMismatchError) as ctx:
                    ensure_shape("cancer", data, expected)
                self.assertEqual(ctx.exception.field, "cancer")
                self.assertEqual(ctx.exception.expected, expected.value)
                self.assertEqual(ctx.exception.actual, actual)
