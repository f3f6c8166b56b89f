import json
import threading
import unittest
from concurrent.futures import wait

from fridgemate_backend.services.llm import LLMAuthError, LLMResult, LLMTransportError
from fridgemate_backend.services.recipes import (
    EMPTY_INVENTORY_MESSAGE,
    RECIPE_FALLBACK_WARNING,
    RecipeCacheRegistry,
    RecipeDetailCache,
    RecipeOrchestrator,
)

_INVENTORY = [
    {"name": "계란", "quantity": 6},
    {"name": "양파", "quantity": 2},
    {"name": "당근", "quantity": 1},
    {"name": "우유", "quantity": 1},
]


class _RecipeLLM:
    """Answers text prompts through ``respond(prompt)``; thread-safe call log."""

    recognition_model = "vision-model"
    recipe_model = "recipe-model"

    def __init__(self, respond):
        self.respond = respond
        self.prompts: list[str] = []
        self.models: list[str] = []
        self._lock = threading.Lock()

    def run_prompt(self, *, prompt, model=None, **kwargs):
        with self._lock:
            self.prompts.append(prompt)
            self.models.append(model)
        answer = self.respond(prompt)
        if isinstance(answer, Exception):
            raise answer
        if not isinstance(answer, str):
            answer = json.dumps(answer, ensure_ascii=False)
        return LLMResult(raw_text=answer, model=model)


def _constant(answer):
    return _RecipeLLM(lambda prompt: answer)


def _detail_answer(name):
    return {
        "recipe": {
            "name": name,
            "description": "설명",
            "difficulty": "쉬움",
            "ingredients": [{"name": "계란", "amount": "2개", "essential": False}, {"name": "소금"}],
            "instructions": [
                {"step": 1, "title": "준비", "description": "계란을 푼다", "tip": "잘 섞기"},
                {"title": "굽기", "description": "팬에 굽는다"},
            ],
        }
    }


class RecommendTests(unittest.TestCase):
    def setUp(self):
        self.orchestrators = []

    def tearDown(self):
        for orchestrator in self.orchestrators:
            orchestrator.shutdown()

    def _orchestrator(self, llm):
        orchestrator = RecipeOrchestrator(llm)
        self.orchestrators.append(orchestrator)
        return orchestrator

    def test_coerces_out_of_set_values(self):
        llm = _constant(
            {
                "recipes": [
                    {
                        "name": "계란말이",
                        "difficulty": "impossible",
                        "category": "fusion",
                        "cookingTime": "10분",
                        "availableIngredients": ["계란", "양파"],
                    },
                    {},
                ]
            }
        )

        result = self._orchestrator(llm).recommend(_INVENTORY)

        self.assertIsNone(result.warning)
        first, second = result.recipes
        self.assertEqual(first["difficulty"], "보통")
        self.assertEqual(first["category"], "기타")
        self.assertEqual(first["cookingTime"], "10분")
        self.assertEqual(first["missingIngredients"], [])
        self.assertEqual(second["name"], "추천 레시피 2")
        self.assertEqual(second["servings"], "2인분")
        self.assertEqual(llm.models, ["recipe-model"])

    def test_prompt_embeds_inventory_and_request(self):
        llm = _constant({"recipes": []})

        self._orchestrator(llm).recommend(_INVENTORY, "매운 요리")

        self.assertIn("계란 6개", llm.prompts[0])
        self.assertIn("매운 요리", llm.prompts[0])

    def test_blank_request_is_omitted(self):
        llm = _constant({"recipes": []})

        self._orchestrator(llm).recommend(_INVENTORY, "   ")

        self.assertNotIn("사용자 요청사항", llm.prompts[0])

    def test_unparseable_answer_serves_fallback(self):
        for answer in ("레시피를 추천할 수 없습니다", '{"recipes": [', '{"recipes": "none"}'):
            with self.subTest(answer=answer):
                result = self._orchestrator(_constant(answer)).recommend(_INVENTORY)
                self.assertEqual(result.warning, RECIPE_FALLBACK_WARNING)
                self.assertEqual(
                    [recipe["name"] for recipe in result.recipes],
                    ["간단한 볶음밥", "야채 스프"],
                )
                self.assertEqual(result.recipes[0]["availableIngredients"], ["계란", "양파", "당근"])
                self.assertEqual(result.recipes[1]["availableIngredients"], ["계란", "양파"])

    def test_empty_inventory_is_rejected(self):
        llm = _constant({"recipes": []})
        with self.assertRaises(ValueError) as ctx:
            self._orchestrator(llm).recommend([])
        self.assertEqual(str(ctx.exception), EMPTY_INVENTORY_MESSAGE)
        self.assertEqual(llm.prompts, [])

    def test_transport_and_auth_errors_propagate(self):
        for error in (LLMTransportError("down"), LLMAuthError("bad key")):
            with self.subTest(error=type(error).__name__):
                with self.assertRaises(type(error)):
                    self._orchestrator(_constant(error)).recommend(_INVENTORY)


class DetailTests(unittest.TestCase):
    def setUp(self):
        self.orchestrators = []

    def tearDown(self):
        for orchestrator in self.orchestrators:
            orchestrator.shutdown()

    def _orchestrator(self, llm):
        orchestrator = RecipeOrchestrator(llm)
        self.orchestrators.append(orchestrator)
        return orchestrator

    def test_fills_detail_defaults(self):
        llm = _constant(_detail_answer("계란말이"))

        result = self._orchestrator(llm).detail("계란말이", _INVENTORY)

        recipe = result.recipe
        self.assertIsNone(result.warning)
        self.assertFalse(result.cached)
        self.assertEqual(recipe["prepTime"], "10분")
        self.assertEqual(recipe["calories"], "400kcal")
        self.assertEqual(recipe["ingredients"][1], {"name": "소금", "amount": "적당량", "essential": True})
        self.assertFalse(recipe["ingredients"][0]["essential"])
        self.assertEqual(recipe["instructions"][0]["tip"], "잘 섞기")
        self.assertNotIn("tip", recipe["instructions"][1])
        self.assertEqual(recipe["instructions"][1]["step"], 2)
        self.assertEqual(set(recipe["nutrition"]), {"protein", "carbs", "fat", "fiber"})
        self.assertEqual(recipe["tags"], ["맛있는", "건강한"])
        self.assertIn("계란 6개", llm.prompts[0])

    def test_unparseable_answer_serves_fallback(self):
        result = self._orchestrator(_constant("```\nnot json\n```")).detail("계란말이")

        self.assertEqual(result.warning, RECIPE_FALLBACK_WARNING)
        self.assertEqual(result.recipe["name"], "계란말이")
        self.assertEqual(len(result.recipe["instructions"]), 3)

    def test_second_detail_is_served_from_cache(self):
        llm = _constant(_detail_answer("계란말이"))
        orchestrator = self._orchestrator(llm)
        cache = RecipeDetailCache()

        first = orchestrator.detail("계란말이", cache=cache)
        second = orchestrator.detail("계란말이", cache=cache)

        self.assertEqual(len(llm.prompts), 1)
        self.assertFalse(first.cached)
        self.assertTrue(second.cached)
        self.assertEqual(first.recipe, second.recipe)

    def test_blank_name_is_rejected(self):
        with self.assertRaises(ValueError):
            self._orchestrator(_constant({})).detail("  ")


class PreloadTests(unittest.TestCase):
    def test_preloads_first_three_and_isolates_failures(self):
        def respond(prompt):
            if "실패요리" in prompt:
                return LLMTransportError("timeout")
            for name in ("계란말이", "볶음밥", "스프", "샐러드"):
                if f'"{name}"' in prompt:
                    return _detail_answer(name)
            return "nothing"

        llm = _RecipeLLM(respond)
        orchestrator = RecipeOrchestrator(llm)
        self.addCleanup(orchestrator.shutdown)
        cache = RecipeDetailCache()

        futures = orchestrator.preload_details(
            ["계란말이", "실패요리", "볶음밥", "샐러드"], _INVENTORY, cache
        )
        wait(futures, timeout=5)

        self.assertEqual(len(futures), 3)
        self.assertEqual(sorted(f.result() for f in futures), [False, True, True])
        self.assertIn("계란말이", cache)
        self.assertIn("볶음밥", cache)
        self.assertNotIn("실패요리", cache)
        self.assertNotIn("샐러드", cache)

        cached = orchestrator.detail("볶음밥", cache=cache)
        self.assertTrue(cached.cached)
        self.assertEqual(len(llm.prompts), 3)

    def test_already_cached_names_are_skipped(self):
        llm = _constant(_detail_answer("계란말이"))
        orchestrator = RecipeOrchestrator(llm)
        self.addCleanup(orchestrator.shutdown)
        cache = RecipeDetailCache()
        orchestrator.detail("계란말이", cache=cache)

        futures = orchestrator.preload_details(["계란말이"], None, cache)

        self.assertEqual(futures, [])
        self.assertEqual(len(llm.prompts), 1)


class RecipeCacheRegistryTests(unittest.TestCase):
    def test_sessions_are_isolated_and_resettable(self):
        registry = RecipeCacheRegistry()
        cache = registry.for_session("a")
        cache.set("계란말이", object())

        self.assertIs(registry.for_session("a"), cache)
        self.assertEqual(len(registry.for_session("b")), 0)

        registry.reset("a")
        self.assertEqual(len(registry.for_session("a")), 0)

    def test_least_recently_used_session_is_evicted(self):
        registry = RecipeCacheRegistry(max_sessions=2)
        kept = registry.for_session("a")
        kept.set("계란말이", object())
        registry.for_session("b").set("양파볶음", object())
        registry.for_session("a")

        registry.for_session("c")

        self.assertEqual(len(registry), 2)
        self.assertNotIn("b", registry)
        self.assertIs(registry.for_session("a"), kept)
        self.assertIn("계란말이", kept)
        self.assertEqual(len(registry.for_session("b")), 0)

    def test_session_cap_must_be_positive(self):
        with self.assertRaises(ValueError):
            RecipeCacheRegistry(max_sessions=0)


if __name__ == "__main__":
    unittest.main()
