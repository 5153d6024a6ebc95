import unittest

from form_recall.core.classification import FieldClassifier, RepeaterRegistry
from form_recall.models import FieldDescriptor, IndexSource, InstanceType, Scope, StructureLockedError


class TestInstanceType(unittest.TestCase):
    def setUp(self):
        self.registry = RepeaterRegistry()
        self.classifier = FieldClassifier(self.registry)

    def test_flat_survey_guard_beats_structural_signals(self):
        field = FieldDescriptor(
            selector="#src",
            label="How did you hear about this job?",
            section_type="work",
            field_index=1,
            index_source=IndexSource.STRUCTURAL,
            is_strong_repeater=True,
        )
        self.assertEqual(self.classifier.classify_instance_type(field), InstanceType.ATOMIC_SINGLE)
        self.assertIn("flat_survey_guard", field.routing_reasons)
        self.assertEqual(len(self.registry), 0)

    def test_multi_select_of_set_noun_is_atomic_set(self):
        field = FieldDescriptor(selector="#skills", label="Skills", control_type="checkbox", field_index=0)
        result = self.classifier.classify(field)
        self.assertEqual(result.instance_type, InstanceType.ATOMIC_MULTI)
        self.assertEqual(result.scope, Scope.GLOBAL)

    def test_structural_signals_promote_and_register(self):
        field = FieldDescriptor(
            selector="#t0",
            label="Job Title",
            section_type="work",
            field_index=0,
            index_source=IndexSource.STRUCTURAL,
            is_strong_repeater=True,
        )
        result = self.classifier.classify(field)
        self.assertEqual((result.instance_type, result.scope), (InstanceType.SECTION_REPEATER, Scope.SECTION))
        self.assertIn("job_title", self.registry)
        self.assertEqual(field.structural_signal_count, 2)

    def test_registry_keeps_later_fields_in_section(self):
        self.registry.add("job_title")
        field = FieldDescriptor(selector="#t", label="Job Title")
        self.assertEqual(self.classifier.classify_instance_type(field), InstanceType.SECTION_REPEATER)
        self.assertIn("registry:job_title", field.routing_reasons)

    def test_repeated_sectional_field_is_repeater(self):
        field = FieldDescriptor(selector="#s1", label="School Name", field_index=1)
        self.assertEqual(self.classifier.classify_instance_type(field, duplicate_count=2), InstanceType.SECTION_REPEATER)
        self.assertEqual(field.sectional_score, 2)
        # Only structural promotion registers a base key.
        self.assertEqual(len(self.registry), 0)

    def test_single_sectional_field_is_candidate(self):
        field = FieldDescriptor(selector="#s1", label="School Name", field_index=1)
        result = self.classifier.classify(field, duplicate_count=1)
        self.assertEqual((result.instance_type, result.scope), (InstanceType.SECTION_CANDIDATE, Scope.SECTION))

    def test_unindexed_field_is_atomic(self):
        field = FieldDescriptor(selector="#fn", label="First Name")
        result = self.classifier.classify(field)
        self.assertEqual((result.instance_type, result.scope), (InstanceType.ATOMIC_SINGLE, Scope.GLOBAL))
        self.assertIn("not_indexed", field.routing_reasons)

    def test_notice_period_inside_work_section_stays_global(self):
        field = FieldDescriptor(
            selector="#notice", label="Notice Period", control_type="select", section_type="work", field_index=1
        )
        result = self.classifier.classify(field)
        self.assertEqual((result.instance_type, result.scope), (InstanceType.ATOMIC_SINGLE, Scope.GLOBAL))
        self.assertEqual(field.base_key, "notice_period")
        self.assertEqual(field.sectional_score, 1)

    def test_profile_question_lowers_score(self):
        field = FieldDescriptor(
            selector="#g", label="Gender", field_index=1, index_source=IndexSource.STRUCTURAL
        )
        score, signals = self.classifier.score(field)
        self.assertEqual(score, 1)
        self.assertEqual(signals, 1)


class TestScope(unittest.TestCase):
    def setUp(self):
        self.classifier = FieldClassifier()

    def test_group_scope_for_grouped_controls(self):
        field = FieldDescriptor(selector="#g", label="Gender", control_type="radio", group_id="gender")
        self.assertEqual(self.classifier.classify_scope(field, InstanceType.ATOMIC_SINGLE), Scope.GROUP)

    def test_indexed_atomic_field_is_section_scoped(self):
        field = FieldDescriptor(selector="#c", label="City", field_index=1)
        result = self.classifier.classify(field)
        self.assertEqual((result.instance_type, result.scope), (InstanceType.ATOMIC_SINGLE, Scope.SECTION))

    def test_structure_is_assigned_once(self):
        field = FieldDescriptor(selector="#fn", label="First Name")
        self.classifier.classify(field)
        self.assertTrue(field.is_frozen)
        with self.assertRaises(StructureLockedError):
            self.classifier.classify(field)
        self.assertEqual(field.instance_type, InstanceType.ATOMIC_SINGLE)


class TestRepeaterRegistry(unittest.TestCase):
    def test_add_reports_new_keys(self):
        registry = RepeaterRegistry()
        self.assertTrue(registry.add("job_title"))
        self.assertFalse(registry.add("job_title"))
        self.assertFalse(registry.add(""))
        self.assertEqual(list(registry), ["job_title"])
        registry.reset()
        self.assertEqual(len(registry), 0)


if __name__ == "__main__":
    unittest.main()
