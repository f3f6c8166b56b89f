import json
import os
import threading
import time
import unittest
from unittest import mock

from fridgemate_backend import create_app
from fridgemate_backend.services.auth_tokens import AuthSettings, issue_token
from fridgemate_backend.services.llm import (
    LLMAuthError,
    LLMRejectedInputError,
    LLMResult,
    LLMTransportError,
)
from fridgemate_backend.services.normalization import FALLBACK_WARNING
from fridgemate_backend.services.receipt import RECEIPT_WARNING
from fridgemate_backend.services.recipes import RecipeOrchestrator

_SECRET = "test-secret"
_IMAGE = "data:image/jpeg;base64,/9j/4AAQ"


class _StubLLM:
    """Serves queued answers for image/text calls and fixed recipe answers."""

    recognition_model = "vision-model"
    recipe_model = "recipe-model"

    def __init__(self):
        self.answers: list = []
        self.recipe_answers: dict[str, object] = {}
        self.recipe_calls: list[str] = []
        self._lock = threading.Lock()

    def _render(self, answer, model):
        if isinstance(answer, Exception):
            raise answer
        if not isinstance(answer, str):
            answer = json.dumps(answer, ensure_ascii=False)
        return LLMResult(raw_text=answer, model=model)

    def analyze_image(self, **kwargs):
        return self._render(self.answers.pop(0), self.recognition_model)

    def run_prompt(self, *, prompt, model=None, **kwargs):
        if model == self.recipe_model:
            with self._lock:
                self.recipe_calls.append(prompt)
            for marker, answer in self.recipe_answers.items():
                if marker in prompt:
                    return self._render(answer, model)
            return self._render("no recipes", model)
        return self._render(self.answers.pop(0), model)


class ApiTestCase(unittest.TestCase):
    def setUp(self):
        self.app = create_app(
            {
                "TESTING": True,
                "DATABASE_URL": "sqlite://",
                "LLM_API_KEY": None,
                "AUTH_SECRET": _SECRET,
            }
        )
        self.llm = _StubLLM()
        self.orchestrator = RecipeOrchestrator(self.llm)
        self.addCleanup(self.orchestrator.shutdown)
        self.app.extensions["llm_client"] = self.llm
        self.app.extensions["recipe_orchestrator"] = self.orchestrator
        self.client = self.app.test_client()
        token = issue_token(settings=AuthSettings(secret=_SECRET))
        self.headers = {"Authorization": f"Bearer {token}"}

    def post(self, path, payload):
        return self.client.post(path, json=payload, headers=self.headers)

    def get(self, path):
        return self.client.get(path, headers=self.headers)


class HealthAndAuthTests(ApiTestCase):
    def test_health_needs_no_token(self):
        for path in ("/healthz", "/api/healthz", "/api/health"):
            with self.subTest(path=path):
                response = self.client.get(path)
                self.assertEqual(response.status_code, 200)
                self.assertEqual(response.get_json(), {"status": "ok"})

    def test_missing_token_is_rejected(self):
        response = self.client.get("/api/fridge/ingredients")
        self.assertEqual(response.status_code, 401)
        self.assertFalse(response.get_json()["success"])

    def test_foreign_token_is_rejected(self):
        token = issue_token(settings=AuthSettings(secret="someone-else"))
        response = self.client.get(
            "/api/fridge/ingredients", headers={"Authorization": f"Bearer {token}"}
        )
        self.assertEqual(response.status_code, 401)

    def test_unconfigured_secret_closes_api(self):
        env = {k: v for k, v in os.environ.items() if k != "FRIDGEMATE_AUTH_SECRET"}
        with mock.patch.dict(os.environ, env, clear=True):
            app = create_app({"DATABASE_URL": "sqlite://", "LLM_API_KEY": None, "AUTH_SECRET": None})
        self.assertNotIn("auth_settings", app.extensions)
        client = app.test_client()

        response = client.get("/api/fridge/ingredients")
        self.assertEqual(response.status_code, 503)
        self.assertFalse(response.get_json()["success"])
        self.assertEqual(
            client.get("/api/fridge/ingredients", headers=self.headers).status_code, 503
        )
        self.assertEqual(client.get("/api/health").status_code, 200)


class AnalysisApiTests(ApiTestCase):
    def test_analyze_ingredient(self):
        self.llm.answers.append(
            {"type": "ingredients", "ingredients": [{"name": "사과", "quantity": 2, "confidence": 50}]}
        )

        response = self.post("/api/analyze-ingredient", {"imageData": _IMAGE})

        self.assertEqual(response.status_code, 200)
        body = response.get_json()
        self.assertTrue(body["success"])
        self.assertEqual(body["data"]["totalCount"], 2)
        self.assertEqual(body["warning"], body["data"]["warning"])

    def test_analyze_receipt(self):
        self.llm.answers.extend(
            [
                {"type": "receipt", "text": "두부 1모"},
                {"ingredients": [{"name": "두부"}]},
            ]
        )

        body = self.post("/api/analyze-ingredient", {"imageData": _IMAGE}).get_json()

        self.assertEqual(body["warning"], RECEIPT_WARNING)

    def test_analyze_ingredient_validation(self):
        self.assertEqual(self.post("/api/analyze-ingredient", {}).status_code, 400)
        response = self.post("/api/analyze-ingredient", {"imageData": "aGVsbG8="})
        self.assertEqual(response.status_code, 400)

    def test_unrecognized_image_is_400(self):
        self.llm.answers.append({"ingredients": [{"name": "알 수 없음"}]})
        response = self.post("/api/analyze-ingredient", {"imageData": _IMAGE})
        self.assertEqual(response.status_code, 400)

    def test_unparseable_image_answer_is_500(self):
        self.llm.answers.append("I see a fridge.")
        response = self.post("/api/analyze-ingredient", {"imageData": _IMAGE})
        self.assertEqual(response.status_code, 500)
        self.assertFalse(response.get_json()["success"])

    def test_invalid_structure_serves_fallback_batch(self):
        self.llm.answers.append('{"ingredients": [1]}')
        body = self.post("/api/analyze-ingredient", {"imageData": _IMAGE}).get_json()
        self.assertTrue(body["success"])
        self.assertEqual(body["warning"], FALLBACK_WARNING)

    def test_upstream_errors(self):
        cases = [
            (LLMAuthError("bad key"), 401),
            (LLMRejectedInputError("bad image"), 400),
            (LLMTransportError("timeout"), 500),
        ]
        for error, status in cases:
            with self.subTest(status=status):
                self.llm.answers.append(error)
                response = self.post("/api/analyze-ingredient", {"imageData": _IMAGE})
                self.assertEqual(response.status_code, status)
                self.assertEqual(response.get_json()["error"], str(error))

    def test_missing_llm_is_503(self):
        self.app.extensions.pop("llm_client")
        response = self.post("/api/analyze-text", {"text": "사과 3개"})
        self.assertEqual(response.status_code, 503)

    def test_analyze_text(self):
        self.llm.answers.append({"ingredients": [{"name": "사과", "quantity": 3}]})

        body = self.post("/api/analyze-text", {"text": "사과 3개"}).get_json()

        self.assertEqual(body["data"]["ingredients"][0]["confidence"], 90)
        self.assertNotIn("warning", body)
        self.assertEqual(self.post("/api/analyze-text", {"text": " "}).status_code, 400)

    def test_empty_text_result_is_400(self):
        self.llm.answers.append({"ingredients": []})
        response = self.post("/api/analyze-text", {"text": "오늘 날씨"})
        self.assertEqual(response.status_code, 400)

    def test_ingredient_info_fallback(self):
        self.llm.answers.append("잘 모르겠어요")

        body = self.post("/api/ingredient-info", {"name": "두부", "quantity": 2}).get_json()

        self.assertTrue(body["success"])
        self.assertEqual(body["warning"], FALLBACK_WARNING)
        self.assertEqual(body["data"]["quantity"], 2)
        self.assertEqual(self.post("/api/ingredient-info", {}).status_code, 400)


class HistoryApiTests(ApiTestCase):
    def _save(self, name="사과", timestamp="2024-05-01T10:00:00.000Z"):
        return self.post(
            "/api/ingredients",
            {
                "imageData": _IMAGE,
                "ingredientData": {"ingredients": [{"name": name, "quantity": 1}], "totalCount": 1},
                "timestamp": timestamp,
            },
        )

    def test_save_read_delete(self):
        response = self._save()
        self.assertEqual(response.status_code, 200)
        record_id = response.get_json()["id"]

        record = self.get(f"/api/ingredients/{record_id}").get_json()["data"]
        self.assertEqual(record["ingredientData"]["ingredients"][0]["name"], "사과")
        self.assertEqual(record["timestamp"], "2024-05-01T10:00:00.000Z")

        recent = self.get("/api/ingredients/recent").get_json()["records"]
        self.assertEqual([r["id"] for r in recent], [record_id])

        deleted = self.client.delete(f"/api/ingredients/{record_id}", headers=self.headers)
        self.assertEqual(deleted.status_code, 200)
        self.assertEqual(self.get(f"/api/ingredients/{record_id}").status_code, 404)
        missing = self.client.delete(f"/api/ingredients/{record_id}", headers=self.headers)
        self.assertEqual(missing.status_code, 404)

    def test_recent_limit_is_clamped(self):
        for _ in range(3):
            self._save()
        self.assertEqual(len(self.get("/api/ingredients/recent?limit=2").get_json()["records"]), 2)
        self.assertEqual(len(self.get("/api/ingredients/recent?limit=0").get_json()["records"]), 1)
        self.assertEqual(len(self.get("/api/ingredients/recent?limit=abc").get_json()["records"]), 3)

    def test_empty_batch_is_not_saved(self):
        response = self.post(
            "/api/ingredients",
            {"imageData": _IMAGE, "ingredientData": {"ingredients": [], "totalCount": 0}},
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(self.get("/api/ingredients/recent").get_json()["records"], [])

    def test_missing_store_is_503(self):
        self.app.extensions.pop("kv_store")
        self.assertEqual(self.get("/api/ingredients/recent").status_code, 503)


class FridgeApiTests(ApiTestCase):
    def test_reconcile_edit_delete(self):
        self.post("/api/fridge/ingredients", {"ingredients": [{"name": "사과", "quantity": 2}]})
        body = self.post(
            "/api/fridge/ingredients",
            {
                "ingredients": [
                    {"name": "사과", "quantity": 3, "freshness": "excellent", "storage": ["냉장"]},
                    {"name": "우유", "quantity": 1},
                ]
            },
        ).get_json()

        items = body["data"]
        self.assertEqual([(i["name"], i["quantity"]) for i in items], [("사과", 5), ("우유", 1)])
        self.assertEqual(items[0]["freshness"], "excellent")
        self.assertEqual(self.get("/api/fridge/ingredients").get_json()["data"], items)

        apple_id, milk_id = items[0]["id"], items[1]["id"]
        edited = self.client.put(
            f"/api/fridge/ingredients/{apple_id}",
            json={"quantity": 4, "expiryDate": "2024-06-01"},
            headers=self.headers,
        )
        self.assertEqual(edited.status_code, 200)
        self.assertEqual(edited.get_json()["data"]["quantity"], 4)
        self.assertEqual(edited.get_json()["data"]["expiryDate"], "2024-06-01")

        clash = self.client.put(
            f"/api/fridge/ingredients/{apple_id}", json={"name": "우유"}, headers=self.headers
        )
        self.assertEqual(clash.status_code, 400)

        missing = self.client.put(
            "/api/fridge/ingredients/nope", json={"quantity": 1}, headers=self.headers
        )
        self.assertEqual(missing.status_code, 404)

        deleted = self.client.delete(f"/api/fridge/ingredients/{milk_id}", headers=self.headers)
        self.assertEqual(deleted.status_code, 200)
        remaining = self.get("/api/fridge/ingredients").get_json()["data"]
        self.assertEqual([i["id"] for i in remaining], [apple_id])

    def test_add_validation(self):
        self.assertEqual(self.post("/api/fridge/ingredients", {"ingredients": []}).status_code, 400)
        self.assertEqual(
            self.post("/api/fridge/ingredients", {"ingredients": ["사과"]}).status_code, 400
        )
        self.assertEqual(
            self.post("/api/fridge/ingredients", {"ingredients": [{"quantity": 1}]}).status_code,
            400,
        )


class RecipeApiTests(ApiTestCase):
    inventory = [{"name": "계란", "quantity": 6}, {"name": "양파", "quantity": 2}]

    def setUp(self):
        super().setUp()
        self.llm.recipe_answers = {
            "요리 3-5개": {
                "recipes": [
                    {"name": "계란말이", "difficulty": "쉬움", "category": "한식"},
                    {"name": "양파볶음", "difficulty": "???"},
                ]
            },
            '"계란말이"': {"recipe": {"name": "계란말이"}},
            '"양파볶음"': {"recipe": {"name": "양파볶음"}},
        }

    def test_recommend(self):
        body = self.post("/api/recipes/recommend", {"ingredients": self.inventory}).get_json()

        self.assertTrue(body["success"])
        recipes = body["data"]["recipes"]
        self.assertEqual(recipes[1]["difficulty"], "보통")
        self.assertNotIn("warning", body)

    def test_recommend_fallback(self):
        self.llm.recipe_answers = {}
        body = self.post("/api/recipes/recommend", {"ingredients": self.inventory}).get_json()
        self.assertTrue(body["success"])
        self.assertIn("warning", body)
        self.assertEqual(body["data"]["recipes"][0]["name"], "간단한 볶음밥")

    def test_recommend_requires_inventory(self):
        response = self.post("/api/recipes/recommend", {"ingredients": []})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["error"], "냉장고에 식재료가 없습니다")

    def test_detail_is_cached_per_session(self):
        payload = {"recipeName": "계란말이", "ingredients": self.inventory, "sessionId": "s1"}

        first = self.post("/api/recipes/detail", payload).get_json()
        second = self.post("/api/recipes/detail", payload).get_json()

        self.assertFalse(first["cached"])
        self.assertTrue(second["cached"])
        self.assertEqual(first["data"]["recipe"], second["data"]["recipe"])
        self.assertEqual(len(self.llm.recipe_calls), 1)

        other = self.post("/api/recipes/detail", {**payload, "sessionId": "s2"}).get_json()
        self.assertFalse(other["cached"])

    def test_recommend_with_preload_warms_session_cache(self):
        self.post(
            "/api/recipes/recommend",
            {"ingredients": self.inventory, "sessionId": "s1", "preloadDetails": True},
        )
        cache = self.app.extensions["recipe_caches"].for_session("s1")
        deadline = time.monotonic() + 5
        while len(cache) < 2 and time.monotonic() < deadline:
            time.sleep(0.01)

        body = self.post(
            "/api/recipes/detail", {"recipeName": "양파볶음", "sessionId": "s1"}
        ).get_json()

        self.assertTrue(body["cached"])
        self.assertEqual(len(self.llm.recipe_calls), 3)

    def test_new_recommendation_resets_session_cache(self):
        payload = {"recipeName": "계란말이", "sessionId": "s1"}
        self.post("/api/recipes/detail", payload)
        self.post("/api/recipes/recommend", {"ingredients": self.inventory, "sessionId": "s1"})

        body = self.post("/api/recipes/detail", payload).get_json()

        self.assertFalse(body["cached"])

    def test_detail_requires_name(self):
        self.assertEqual(self.post("/api/recipes/detail", {}).status_code, 400)

    def test_missing_cache_registry_is_503(self):
        self.app.extensions.pop("recipe_caches")
        detail = {"recipeName": "계란말이", "ingredients": self.inventory, "sessionId": "s1"}
        self.assertEqual(self.post("/api/recipes/detail", detail).status_code, 503)
        recommend = {"ingredients": self.inventory, "sessionId": "s1"}
        self.assertEqual(self.post("/api/recipes/recommend", recommend).status_code, 503)
        self.assertEqual(self.llm.recipe_calls, [])


if __name__ == "__main__":
    unittest.main()
