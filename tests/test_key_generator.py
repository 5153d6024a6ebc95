"""
Unit tests for form_recall.core.keys.generator.

Covers:
- Tokenization and label sanitizing
- Key source precedence (materialized label, ML prediction, tokens)
- Section namespacing and the person-level fact override
- Start/end date suffixes
"""

import unittest

from form_recall.core.keys import SemanticKeyGenerator, sanitize_label, tokenize
from form_recall.core.keys.generator import UNKNOWN_KEY
from form_recall.models import FieldDescriptor, InstanceType, MLPrediction, Scope


def _sectional(selector: str, label: str, *, index: int, section_type: str = "work") -> FieldDescriptor:
    field = FieldDescriptor(selector=selector, label=label, section_type=section_type, field_index=index)
    field.assign_structure(InstanceType.ATOMIC_SINGLE, Scope.SECTION)
    return field


class TestTokenize(unittest.TestCase):
    def test_drops_stop_words_and_digits(self):
        self.assertEqual(tokenize("Please enter your Email Address 2"), ["email", "address"])

    def test_splits_camel_case(self):
        self.assertEqual(tokenize("firstName"), ["first", "name"])

    def test_keeps_container_index_when_asked(self):
        self.assertEqual(tokenize("education[1].school", keep_container_index=True), ["education", "1", "school"])
        self.assertEqual(tokenize("education[1].school"), ["education", "school"])

    def test_sanitize_label(self):
        self.assertEqual(sanitize_label("Company Name:"), "company_name")
        self.assertEqual(sanitize_label("jobTitle"), "job_title")


class TestGenerateKey(unittest.TestCase):
    def setUp(self):
        self.generator = SemanticKeyGenerator()

    def test_tokenized_key_from_label(self):
        result = self.generator.generate_key(FieldDescriptor(selector="#e", label="Email Address"))
        self.assertEqual(result.key, "email_address")
        self.assertFalse(result.is_high_confidence)
        self.assertEqual(result.base_key, "email_address")

    def test_name_wins_over_label(self):
        field = FieldDescriptor(selector="#f", name="firstName", label="Your given name")
        self.assertEqual(self.generator.generate_key(field).key, "first_name")

    def test_unknown_field_when_nothing_tokenizes(self):
        self.assertEqual(self.generator.generate_key(FieldDescriptor(selector="#x")).key, UNKNOWN_KEY)
        self.assertEqual(self.generator.generate_key(FieldDescriptor(selector="#y", label="???")).key, UNKNOWN_KEY)

    def test_confident_ml_prediction_is_used_verbatim(self):
        field = FieldDescriptor(
            selector="#c", label="Company", ml_prediction=MLPrediction("employer_name", 0.9)
        )
        result = self.generator.generate_key(field)
        self.assertEqual(result.key, "employer_name")
        self.assertTrue(result.is_high_confidence)
        self.assertEqual(result.fallback_key, "company")

    def test_ml_prediction_at_threshold_is_ignored(self):
        field = FieldDescriptor(
            selector="#c", label="Company", ml_prediction=MLPrediction("employer_name", 0.8)
        )
        result = self.generator.generate_key(field)
        self.assertEqual(result.key, "company")
        self.assertFalse(result.is_high_confidence)

    def test_cache_label_is_used_verbatim(self):
        field = FieldDescriptor(selector="#t", label="Title", cache_label="SECTION:work_0:job_title")
        result = self.generator.generate_key(field)
        self.assertEqual(result.key, "SECTION:work_0:job_title")
        self.assertEqual(result.base_key, "job_title")
        self.assertTrue(result.is_high_confidence)

    def test_generic_option_label_falls_back_to_question(self):
        field = FieldDescriptor(selector="#r", label="Are you willing to relocate?")
        self.assertEqual(
            self.generator.generate_key(field, "Yes").key,
            self.generator.generate_key(field).key,
        )


class TestSectionNamespace(unittest.TestCase):
    def setUp(self):
        self.generator = SemanticKeyGenerator()

    def test_rows_get_distinct_keys(self):
        first = self.generator.generate_key(_sectional("#t0", "Job Title", index=0))
        second = self.generator.generate_key(_sectional("#t1", "Job Title", index=1))
        self.assertEqual(first.key, "SECTION:work_0:job_title")
        self.assertEqual(second.key, "SECTION:work_1:job_title")
        self.assertTrue(first.is_scoped)
        self.assertEqual(first.base_key, second.base_key)

    def test_person_level_fact_is_never_namespaced(self):
        for index in (0, 3):
            result = self.generator.generate_key(_sectional(f"#n{index}", "Notice Period", index=index))
            self.assertEqual(result.key, "notice_period")
            self.assertFalse(result.is_scoped)

    def test_global_scope_is_not_namespaced(self):
        field = FieldDescriptor(selector="#t", label="Job Title", section_type="work", field_index=1)
        field.assign_structure(InstanceType.ATOMIC_SINGLE, Scope.GLOBAL)
        self.assertEqual(self.generator.generate_key(field).key, "job_title")

    def test_repeater_rows_are_not_namespaced(self):
        field = FieldDescriptor(selector="#t", label="Job Title", section_type="work", field_index=1)
        field.assign_structure(InstanceType.SECTION_REPEATER, Scope.SECTION)
        self.assertEqual(self.generator.generate_key(field).key, "job_title")

    def test_canonical_key_keeps_namespace(self):
        self.assertEqual(self.generator.get_canonical_key("company_name"), "employer_name")
        self.assertEqual(
            self.generator.get_canonical_key("SECTION:work_1:company_name"),
            "SECTION:work_1:employer_name",
        )
        self.assertEqual(self.generator.get_canonical_key("favourite_colour"), "favourite_colour")


class TestDateSuffix(unittest.TestCase):
    def setUp(self):
        self.generator = SemanticKeyGenerator()

    def test_role_replaces_bare_date_and_keeps_part(self):
        field = FieldDescriptor(selector="#d", label="Date", dom_id="edu_date_month", date_role="start_date")
        self.assertEqual(self.generator.base_key(field), "start_date_month")

    def test_end_role_on_year_select(self):
        field = FieldDescriptor(selector="#y", label="Year", date_role="end_date")
        self.assertEqual(self.generator.base_key(field), "end_date_year")

    def test_unknown_role_is_left_alone(self):
        field = FieldDescriptor(selector="#d", label="Date", date_role="unknown")
        self.assertEqual(self.generator.base_key(field), "date")


if __name__ == "__main__":
    unittest.main()
