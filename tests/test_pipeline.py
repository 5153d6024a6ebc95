import random
import unittest
from types import SimpleNamespace

from form_recall.cache import InMemoryCacheRepository
from form_recall.config import PipelineSettings, Settings
from form_recall.models import FieldDescriptor, InstanceType, ResolvedValue, Scope
from form_recall.pipeline import ResolutionPipeline, ScanContext
from form_recall.store import SECTION, SINGLE, TieredCacheStore


class _Executor:
    def __init__(self, *, result=True, error: Exception | None = None) -> None:
        self.fills: list[tuple[str, object]] = []
        self.result = result
        self.error = error

    def fill(self, selector, value, confidence, field):
        if self.error is not None:
            raise self.error
        self.fills.append((selector, value))
        return self.result


class _RuleEngine:
    def __init__(self, defined: dict) -> None:
        self.defined = defined
        self.calls = 0

    async def resolve_fields(self, fields, profile_data):
        self.calls += 1
        selectors = {field.selector for field in fields}
        return {
            "defined": {k: v for k, v in self.defined.items() if k in selectors},
            "remaining": [f for f in fields if f.selector not in self.defined],
        }


class _BrokenStrategy:
    name = "broken"

    async def resolve(self, fields, ctx):
        raise RuntimeError("strategy blew up")


def _settings(**pipeline) -> Settings:
    pipeline.setdefault("pacing_min_seconds", 0.0)
    pipeline.setdefault("pacing_max_seconds", 0.0)
    return Settings(pipeline=PipelineSettings(**pipeline))


class TestResolutionPipeline(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.repo = InMemoryCacheRepository()
        self.settings = _settings()
        self.store = TieredCacheStore(self.repo, self.settings)

    def _pipeline(self, **kwargs) -> ResolutionPipeline:
        kwargs.setdefault("load_entry_points", False)
        return ResolutionPipeline(self.store, settings=self.settings, **kwargs)

    async def test_default_strategy_order(self):
        self.assertEqual(self._pipeline().strategy_names, ["cache_replay", "rule_engine", "memory_recall"])

    async def test_disabled_and_reordered_strategies(self):
        pipeline = self._pipeline(
            disabled_plugins={"memory_recall"},
            plugin_order={"atomic_strategies": ["rule_engine", "cache_replay"]},
        )
        self.assertEqual(pipeline.strategy_names, ["rule_engine", "cache_replay"])

    async def test_learns_new_values_and_replays_them(self):
        records = [{"selector": "#email", "label": "Email Address"}]
        executor = _Executor()
        first = await self._pipeline(
            rule_engine=_RuleEngine({"#email": "ada@example.com"}), executor=executor
        ).run(records)
        self.assertEqual(first["#email"].source, "rule_engine")
        self.assertEqual(self.repo.get(SINGLE, "email")["useCount"], 1)

        second = await self._pipeline(executor=executor).run(records)
        self.assertEqual(second["#email"].source, "cache")
        self.assertEqual(executor.fills, [("#email", "ada@example.com"), ("#email", "ada@example.com")])
        # Replayed values are not written back.
        self.assertEqual(self.repo.get(SINGLE, "email")["useCount"], 1)

    async def test_memory_recall_values_are_written_back(self):
        phone = FieldDescriptor(selector="#p", label="Phone Number")
        phone.assign_structure(InstanceType.ATOMIC_SINGLE, Scope.GLOBAL)
        await self.store.write(phone, None, "555-0100")

        results = await self._pipeline(executor=_Executor()).run([{"selector": "#h", "label": "Home Phone"}])
        self.assertEqual(results["#h"].source, "memory")
        self.assertEqual(self.repo.get(SINGLE, "home_phone")["value"], "555-0100")

    async def test_failing_strategy_does_not_stop_the_chain(self):
        pipeline = self._pipeline(
            rule_engine=_RuleEngine({"#email": "ada@example.com"}),
            extra_strategies=[_BrokenStrategy()],
            plugin_order={"atomic_strategies": ["broken", "cache_replay", "rule_engine"]},
        )
        with self.assertLogs("form_recall.pipeline.core", level="ERROR") as logs:
            results = await pipeline.run([{"selector": "#email", "label": "Email Address"}])
        self.assertEqual(results["#email"].value, "ada@example.com")
        self.assertIn("broken", logs.output[0])

    async def test_unresolved_fields_go_to_inference(self):
        inference = SimpleNamespace(handle=lambda fields, scan: {f.selector: {"value": "Ada", "confidence": 0.5} for f in fields})
        results = await self._pipeline(inference_client=inference).run([{"selector": "#fn", "label": "First Name"}])
        self.assertEqual(results["#fn"].source, "inference")
        self.assertEqual(results["#fn"].confidence, 0.5)

    async def test_results_for_unknown_selectors_are_ignored(self):
        rules = _RuleEngine({})
        rules.resolve_fields = lambda fields, profile: {"defined": {"#other": "x"}, "remaining": []}
        results = await self._pipeline(rule_engine=rules).run([{"selector": "#fn", "label": "First Name"}])
        self.assertEqual(results, {})

    async def test_composite_results_skip_execution(self):
        composite = SimpleNamespace(handle=lambda fields, scan: {"#skills": ["Python"]})
        executor = _Executor()
        results = await self._pipeline(composite_handler=composite, executor=executor).run(
            [{"selector": "#skills", "label": "Skills", "type": "checkbox"}]
        )
        self.assertTrue(results["#skills"].skip_execution)
        self.assertEqual(executor.fills, [])

    async def test_section_rows_are_handed_over_and_learned(self):
        record = {
            "selector": "#t0",
            "label": "Job Title",
            "sectionType": "work",
            "fieldIndex": 0,
            "indexSource": "STRUCTURAL",
            "isStrongRepeater": True,
        }
        section = SimpleNamespace(handle=lambda fields, scan: {f.selector: "Engineer" for f in fields})
        results = await self._pipeline(section_handler=section, executor=_Executor()).run([record])
        self.assertEqual(results["#t0"].source, "section_handler")
        self.assertEqual(self.repo.get(SECTION, "work_experience")["value"], [{"job_title": "Engineer"}])

        replay = await self._pipeline(executor=_Executor()).run([record])
        self.assertEqual(replay["#t0"].source, "cache")

    async def test_executor_failure_is_logged_and_not_learned(self):
        pipeline = self._pipeline(
            rule_engine=_RuleEngine({"#email": "ada@example.com"}),
            executor=_Executor(error=RuntimeError("detached")),
        )
        with self.assertLogs("form_recall.pipeline.core", level="ERROR"):
            await pipeline.run([{"selector": "#email", "label": "Email Address"}])
        self.assertEqual(self.repo.counts()[SINGLE], 0)

    async def test_fills_are_paced(self):
        delays: list[float] = []

        async def sleep(seconds):
            delays.append(seconds)

        self.settings = _settings(pacing_min_seconds=0.01, pacing_max_seconds=0.02)
        pipeline = self._pipeline(
            rule_engine=_RuleEngine({"#a": "Ada", "#b": "Lovelace", "#c": "London"}),
            executor=_Executor(),
            sleep=sleep,
            rng=random.Random(7),
        )
        await pipeline.run(
            [
                {"selector": "#a", "label": "First Name"},
                {"selector": "#b", "label": "Last Name"},
                {"selector": "#c", "label": "City"},
            ]
        )
        self.assertEqual(len(delays), 2)
        self.assertTrue(all(0.01 <= delay <= 0.02 for delay in delays))


class TestIngest(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.store = TieredCacheStore(InMemoryCacheRepository(), _settings())
        self.pipeline = ResolutionPipeline(self.store, load_entry_points=False)

    async def test_bad_records_are_skipped(self):
        await self.pipeline.begin_pass(ScanContext())
        with self.assertLogs("form_recall.pipeline.core", level="WARNING"):
            fields = await self.pipeline.ingest([{"label": "Nameless"}, {"selector": "#ok", "label": "City"}])
        self.assertEqual([f.selector for f in fields], ["#ok"])
        self.assertTrue(fields[0].is_frozen)

    async def test_third_bare_date_is_ambiguous(self):
        await self.pipeline.begin_pass(ScanContext())
        records = [
            {"selector": f"#d{n}", "label": "Date", "sectionType": "work", "fieldIndex": 0} for n in range(3)
        ]
        fields = await self.pipeline.ingest(records)
        self.assertEqual([f.date_role for f in fields], ["start_date", "end_date", "unknown"])
        self.assertFalse(await self.pipeline.write_back(fields[2], ResolvedValue("2020", 1.0, "inference")))
        self.assertTrue(await self.pipeline.write_back(fields[0], ResolvedValue("2018", 1.0, "inference")))
        self.assertIsNone(await self.store.read(fields[2]))

    async def test_repeated_header_starts_next_row(self):
        await self.pipeline.begin_pass(ScanContext())
        fields = await self.pipeline.ingest(
            [
                {"selector": "#c1", "label": "Company"},
                {"selector": "#t1", "label": "Job Title"},
                {"selector": "#c2", "label": "Company"},
                {"selector": "#t2", "label": "Job Title"},
            ]
        )
        self.assertEqual([f.field_index for f in fields], [0, 0, 1, 1])
        self.assertTrue(all(f.section_type == "work" for f in fields))

    async def test_global_fields_drop_their_row_index(self):
        await self.pipeline.begin_pass(ScanContext())
        notice, skills, title = await self.pipeline.ingest(
            [
                {"selector": "#np", "label": "Notice Period", "sectionType": "work"},
                {"selector": "#sk", "label": "Skills", "type": "checkbox", "sectionType": "work"},
                {"selector": "#t0", "label": "Job Title", "sectionType": "work"},
            ]
        )
        self.assertEqual((notice.scope, notice.field_index), (Scope.GLOBAL, None))
        self.assertEqual((skills.scope, skills.field_index), (Scope.GLOBAL, None))
        self.assertEqual(skills.instance_type, InstanceType.ATOMIC_MULTI)
        self.assertEqual((title.scope, title.field_index), (Scope.SECTION, 0))

    async def test_registry_survives_incremental_passes_only(self):
        structural = {
            "selector": "#t0",
            "label": "Job Title",
            "sectionType": "work",
            "fieldIndex": 0,
            "indexSource": "STRUCTURAL",
            "isStrongRepeater": True,
        }
        await self.pipeline.begin_pass(ScanContext())
        await self.pipeline.ingest([structural])
        self.assertIn("job_title", self.pipeline.registry)

        await self.pipeline.begin_pass(ScanContext(incremental=True))
        (later,) = await self.pipeline.ingest([{"selector": "#t9", "label": "Job Title"}])
        self.assertEqual(later.instance_type, InstanceType.SECTION_REPEATER)

        await self.pipeline.begin_pass(ScanContext())
        (fresh,) = await self.pipeline.ingest([{"selector": "#t9", "label": "Job Title"}])
        self.assertEqual(fresh.instance_type, InstanceType.ATOMIC_SINGLE)
        self.assertEqual(len(self.pipeline.registry), 0)

    async def test_ml_prediction_is_attached(self):
        ml = SimpleNamespace(predict=lambda field: {"label": "employer_name", "confidence": 0.95})
        pipeline = ResolutionPipeline(self.store, ml_classifier=ml, load_entry_points=False)
        await pipeline.begin_pass(ScanContext())
        (field,) = await pipeline.ingest([{"selector": "#org", "label": "Organisation"}])
        self.assertEqual(field.ml_prediction.label, "employer_name")
        self.assertEqual(field.base_key, "employer_name")


if __name__ == "__main__":
    unittest.main()
