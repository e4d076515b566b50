"""Tests for key-case conversion."""
import unittest

from utils.case import dict_keys_to_camel, dict_keys_to_snake


class TestCaseConversion(unittest.TestCase):
    def test_to_snake_nested(self):
        data = {"minAmount": 1, "industries": [{"industryCode": "44"}], "lender_name": "x"}
        self.assertEqual(
            dict_keys_to_snake(data),
            {"min_amount": 1, "industries": [{"industry_code": "44"}], "lender_name": "x"},
        )

    def test_to_camel_leaves_camel_keys(self):
        """Already-camel keys are not mangled."""
        self.assertEqual(
            dict_keys_to_camel({"min_amount": 1, "acceptedFormats": ["pdf"]}),
            {"minAmount": 1, "acceptedFormats": ["pdf"]},
        )

    def test_preserve(self):
        self.assertEqual(dict_keys_to_snake({"formData": {"stepOne": 1}}, preserve=["formData"]), {"formData": {"step_one": 1}})

    def test_non_dict_values(self):
        self.assertEqual(dict_keys_to_camel("plain"), "plain")
        self.assertEqual(dict_keys_to_snake({1: "a"}), {1: "a"})


if __name__ == "__main__":
    unittest.main()
