import unittest

from form_recall.indexing import DefaultIndexingService, get_section_type, is_section_header
from form_recall.models import FieldDescriptor, IndexSource


class TestIndexDetection(unittest.TestCase):
    def test_attribute_positions(self):
        detect = DefaultIndexingService.detect_index_from_attribute
        self.assertEqual(detect(FieldDescriptor(selector="#a", name="work_experience_2")), 2)
        self.assertEqual(detect(FieldDescriptor(selector="#b", dom_id="jobs[1].title")), 1)
        self.assertEqual(detect(FieldDescriptor(selector="#c", name="work-3-title")), 3)
        self.assertIsNone(detect(FieldDescriptor(selector="#d", name="employer")))

    def test_uuid_digits_are_not_indices(self):
        field = FieldDescriptor(selector="#u", name="resp_550e8400-e29b-41d4-a716-446655440000_1")
        self.assertEqual(DefaultIndexingService.detect_index_from_attribute(field), 1)

    def test_label_ranks(self):
        detect = DefaultIndexingService.detect_index_from_label
        self.assertEqual(detect("Current Employer"), 0)
        self.assertEqual(detect("Previous Employer"), 1)
        self.assertEqual(detect("Third school"), 2)
        self.assertEqual(detect("Job #3"), 2)
        self.assertIsNone(detect("Employer"))
        self.assertIsNone(detect(""))


class TestDefaultIndexingService(unittest.TestCase):
    def setUp(self):
        self.service = DefaultIndexingService()

    def test_no_section_type_means_no_index(self):
        result = self.service.get_index(FieldDescriptor(selector="#x", name="title_1"), None)
        self.assertIsNone(result.index)
        self.assertEqual(result.source, IndexSource.NONE)

    def test_attribute_index_is_structural(self):
        result = self.service.get_index(FieldDescriptor(selector="#x", name="title_1"), "work")
        self.assertEqual((result.index, result.confidence, result.source), (1, 3, IndexSource.STRUCTURAL))

    def test_label_rank_is_synthetic(self):
        result = self.service.get_index(FieldDescriptor(selector="#x", label="Previous Employer"), "work")
        self.assertEqual((result.index, result.confidence, result.source), (1, 1, IndexSource.SYNTHETIC))

    def test_sequential_counter(self):
        field = FieldDescriptor(selector="#x", label="Employer")
        self.assertEqual(self.service.get_index(field, "work").index, 0)
        self.service.increment_counter("work")
        self.assertEqual(self.service.get_index(field, "work").index, 1)
        self.assertEqual(self.service.get_index(field, "education").index, 0)
        self.service.increment_counter("volunteering")
        self.assertEqual(self.service.counters["generic"], 1)
        self.service.reset()
        self.assertEqual(self.service.get_index(field, "work").index, 0)

    def test_base_key_strips_indices(self):
        self.assertEqual(self.service.get_base_key(FieldDescriptor(selector="#x", name="work_title_2")), "work_title")
        self.assertEqual(self.service.get_base_key(FieldDescriptor(selector="#x", dom_id="jobs[1].title")), "jobs_title")


class TestSectionHelpers(unittest.TestCase):
    def test_section_type(self):
        self.assertEqual(get_section_type("School Name"), "education")
        self.assertEqual(get_section_type("Company"), "work")
        self.assertIsNone(get_section_type("Email"))
        self.assertIsNone(get_section_type(""))

    def test_section_header(self):
        self.assertTrue(is_section_header("Company Name", "work"))
        self.assertTrue(is_section_header("University", "education"))
        self.assertFalse(is_section_header("Job Title", "work"))
        self.assertFalse(is_section_header("Company", None))


if __name__ == "__main__":
    unittest.main()
