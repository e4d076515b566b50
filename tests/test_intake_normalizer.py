"""
Tests for intake normalization: step resolution, aliasing, test-submission
short-circuit, legacy and missing-step gates, required fields.
"""
import copy
import unittest

from services.intake_normalizer import (
    SHAPE_MIXED,
    SHAPE_NONE,
    SHAPE_STEP_KEYED,
    SHAPE_WRAPPED,
    IntakeError,
    apply_aliases,
    canonical_fields,
    detect_shape,
    normalize_submission,
    parse_amount,
    resolve_steps,
)


def _steps():
    return {
        "step1": {"requestedAmount": 50_000, "useOfFunds": "Inventory"},
        "step3": {"businessName": "Acme Co"},
        "step4": {"email": "owner@acme.example", "firstName": "Dana"},
    }


class TestStepResolution(unittest.TestCase):
    def test_step_keyed(self):
        """All steps at the top level -> step-keyed shape."""
        sub = normalize_submission(_steps())
        self.assertEqual(sub.shape, SHAPE_STEP_KEYED)
        self.assertEqual(sub.business_name, "Acme Co")

    def test_form_data_wrapped(self):
        """Steps nested under formData are found."""
        sub = normalize_submission({"formData": _steps()})
        self.assertEqual(sub.shape, SHAPE_WRAPPED)
        self.assertEqual(sub.email, "owner@acme.example")

    def test_mixed_sources(self):
        """Top level wins per step; missing steps fall back to formData."""
        steps = _steps()
        payload = {"step1": steps["step1"], "formData": {"step1": {"requestedAmount": 1}, "step3": steps["step3"], "step4": steps["step4"]}}
        sub = normalize_submission(payload)
        self.assertEqual(sub.shape, SHAPE_MIXED)
        self.assertEqual(sub.requested_amount, 50_000)
        self.assertEqual(sub.step_sources["step3"], "formData")

    def test_non_object_step_ignored(self):
        """A step that is not an object does not count as present."""
        steps, sources = resolve_steps({"step1": "x", "formData": {"step1": {"requestedAmount": 5}}})
        self.assertEqual(steps["step1"], {"requestedAmount": 5})
        self.assertEqual(sources, {"step1": "formData"})

    def test_no_steps(self):
        _, sources = resolve_steps({"foo": 1})
        self.assertEqual(sources, {})
        with self.assertRaises(IntakeError) as ctx:
            normalize_submission({"foo": 1})
        self.assertEqual(ctx.exception.status_code, 400)
        self.assertEqual(detect_shape(sources), SHAPE_NONE)


class TestAliases(unittest.TestCase):
    def test_legacy_name_fills_empty_canonical(self):
        """fundingAmount and applicantEmail are copied onto empty canonical keys."""
        out = apply_aliases({"step1": {"fundingAmount": 25_000}, "step4": {"applicantEmail": "a@b.example"}})
        self.assertEqual(out["step1"]["requestedAmount"], 25_000)
        self.assertEqual(out["step4"]["email"], "a@b.example")

    def test_canonical_not_overwritten(self):
        out = apply_aliases({"step3": {"businessName": "Real Name", "operatingName": "Other"}})
        self.assertEqual(out["step3"]["businessName"], "Real Name")

    def test_input_not_mutated(self):
        payload = {"step1": {"loanAmount": "10,000"}, "step3": {"operatingName": "Acme Co"}, "step4": {"email": "x@y.example"}}
        before = copy.deepcopy(payload)
        sub = normalize_submission(payload)
        self.assertEqual(payload, before)
        self.assertEqual(sub.business_name, "Acme Co")
        self.assertEqual(sub.requested_amount, 10_000)


class TestGates(unittest.TestCase):
    def test_test_business_name_short_circuits(self):
        """Internal test names return 202 with ignored:true."""
        steps = _steps()
        steps["step3"]["businessName"] = "Webhook Test Company"
        with self.assertRaises(IntakeError) as ctx:
            normalize_submission(steps)
        self.assertEqual(ctx.exception.status_code, 202)
        body = ctx.exception.body
        self.assertTrue(body["ignored"])
        self.assertEqual(body["businessName"], "Webhook Test Company")
        self.assertEqual(body["applicantEmail"], "owner@acme.example")
        self.assertIn("reason", body)
        self.assertIn("message", body)

    def test_test_email_short_circuits(self):
        steps = _steps()
        steps["step4"]["email"] = "qa+test@boreal.financial"
        with self.assertRaises(IntakeError) as ctx:
            normalize_submission(steps)
        self.assertEqual(ctx.exception.status_code, 202)

    def test_legacy_flat_body_rejected(self):
        """Flat legacy keys with no steps -> 400 listing exactly those keys in order."""
        payload = {"operatingName": "Acme Co", "fundingAmount": 5, "applicantFirstName": "Dana", "legalName": "Acme Ltd"}
        with self.assertRaises(IntakeError) as ctx:
            normalize_submission(payload)
        self.assertEqual(ctx.exception.status_code, 400)
        self.assertEqual(ctx.exception.body["rejectedFields"], ["operatingName", "applicantFirstName", "legalName"])

    def test_legacy_keys_tolerated_with_steps(self):
        payload = _steps()
        payload["businessName"] = "Ignored"
        sub = normalize_submission(payload)
        self.assertEqual(sub.business_name, "Acme Co")

    def test_missing_step(self):
        """Missing step3 -> 400 with required and received maps."""
        payload = _steps()
        del payload["step3"]
        with self.assertRaises(IntakeError) as ctx:
            normalize_submission(payload)
        body = ctx.exception.body
        self.assertEqual(body["required"], ["step1", "step3", "step4"])
        self.assertEqual(body["received"], {"step1": True, "step3": False, "step4": True})

    def test_amount_required_and_positive(self):
        for bad in (None, "", "abc", 0, "-5"):
            payload = _steps()
            payload["step1"]["requestedAmount"] = bad
            with self.assertRaises(IntakeError) as ctx:
                normalize_submission(payload)
            self.assertEqual(ctx.exception.status_code, 400)
            self.assertEqual(ctx.exception.body["field"], "requestedAmount")

    def test_business_name_too_short(self):
        payload = _steps()
        payload["step3"]["businessName"] = " A "
        with self.assertRaises(IntakeError) as ctx:
            normalize_submission(payload)
        self.assertEqual(ctx.exception.body["field"], "businessName")

    def test_email_required(self):
        payload = _steps()
        payload["step4"]["email"] = "  "
        with self.assertRaises(IntakeError) as ctx:
            normalize_submission(payload)
        self.assertEqual(ctx.exception.body["field"], "email")


class TestCanonicalFields(unittest.TestCase):
    def test_revenue_precedence(self):
        """annualRevenue beats estimatedYearlyRevenue beats revenueLastYear."""
        fields = canonical_fields({"step3": {"estimatedYearlyRevenue": "200,000", "revenueLastYear": 100}})
        self.assertEqual(fields["annual_revenue"], 200_000)
        fields = canonical_fields({"step3": {"annualRevenue": 300_000, "estimatedYearlyRevenue": 1}})
        self.assertEqual(fields["annual_revenue"], 300_000)

    def test_country_normalized(self):
        self.assertEqual(canonical_fields({"step1": {"businessLocation": "Canada"}})["country"], "CA")
        self.assertEqual(canonical_fields({"step1": {"businessLocation": "united states"}})["country"], "US")

    def test_parse_amount(self):
        self.assertEqual(parse_amount("$50,000.50"), 50_000.5)
        self.assertEqual(parse_amount(12), 12.0)
        self.assertIsNone(parse_amount("n/a"))
        self.assertIsNone(parse_amount(True))


class TestFormData(unittest.TestCase):
    def test_verbatim_submission_kept(self):
        payload = _steps()
        payload["source"] = "client-portal"
        sub = normalize_submission(payload)
        form_data = sub.form_data()
        self.assertEqual(form_data["submitted"], payload)
        self.assertEqual(form_data["applicationSource"], "client-portal")
        self.assertEqual(form_data["detectedFormat"], SHAPE_STEP_KEYED)


if __name__ == "__main__":
    unittest.main()
