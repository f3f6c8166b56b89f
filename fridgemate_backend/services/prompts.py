"""Prompt builders for recognition and recipe requests."""

from __future__ import annotations

from typing import Iterable, Mapping

_JSON_ONLY_RULES = (
    "응답 규칙:\n"
    "1. 절대로 마크다운, 코드블록, 설명 텍스트 포함 금지\n"
    "2. 오직 JSON 객체만 응답\n"
    "3. 모든 문자열은 큰따옴표 사용\n"
    "4. 숫자는 따옴표 없이 작성"
)

_INGREDIENT_EXAMPLE = (
    '{"ingredients":[{"name":"사과","quantity":2,"confidence":90,'
    '"freshness":"excellent","storage":["냉장보관 2주일","실온보관 1주일"],'
    '"recipes":["사과 파이","사과 쥬스"],'
    '"nutrition":{"calories":52,"protein":0.3,"carbs":14,"fat":0.2,"vitamin":"C"},'
    '"tips":["껍질째 먹으면 더 영양가가 높습니다"]},'
    '{"name":"계란","quantity":6,"confidence":95,"freshness":"good",'
    '"storage":["냉장보관 3-4주"],"recipes":["계란후라이","계란찜"],'
    '"nutrition":{"calories":68,"protein":6,"carbs":0.6,"fat":4.8,"vitamin":"B12, D"},'
    '"tips":["신선도 확인은 물에 띄워보세요"]}],"totalCount":8}'
)

_IMAGE_EXAMPLE = '{"type":"ingredients",' + _INGREDIENT_EXAMPLE[1:]

RECIPE_DIFFICULTIES = ("쉬움", "보통", "어려움")
RECIPE_CATEGORIES = ("한식", "양식", "중식", "일식", "디저트", "기타")

IMAGE_ANALYSIS_PROMPT = (
    "이 이미지를 분석해주세요. 먼저 이미지가 무엇인지 판단하고, 적절한 분석을 수행하세요.\n\n"
    "**1단계: 이미지 종류 판단**\n"
    "- 식재료/음식 사진인가요?\n"
    "- 영수증/쇼핑 리스트인가요?\n"
    "- 텍스트가 포함된 문서인가요?\n\n"
    "**2단계: 적절한 분석 수행**\n\n"
    "**영수증/텍스트 문서인 경우:**\n"
    '{"type":"receipt","text":"추출된 전체 텍스트"}\n\n'
    "**식재료/음식 사진인 경우:**\n"
    '{"type":"ingredients", ...} 형식으로 응답하세요. 예시:\n'
    f"{_IMAGE_EXAMPLE}\n\n"
    "분석 가이드라인:\n"
    "- 영수증인 경우: 모든 텍스트를 정확히 추출하여 text 필드에 포함\n"
    "- 식재료인 경우: 과일, 채소, 고기, 생선, 유제품, 곡물, 견과류, 향신료, "
    "조리된 음식 등 모든 식품을 분석\n"
    "- 확실하지 않더라도 가장 가능성 높은 추측으로 응답하세요\n"
    "- 여러 식재료가 보이면 각각을 모두 인식하여 배열로 만드세요\n"
    "- 조리된 음식의 경우 주재료들을 각각 분석하세요\n"
    '- 정말 음식과 전혀 관련이 없는 경우에만 name을 "알 수 없음"으로 설정하세요\n'
    "- 각 식재료의 개수를 정확히 세어서 quantity 필드에 입력하세요\n"
    "- 개수를 명확히 셀 수 없는 경우 1로 설정하세요\n"
    "- totalCount는 모든 식재료의 quantity 합계입니다\n\n"
    f"{_JSON_ONLY_RULES}\n"
    '5. 반드시 type 필드를 포함하여 "receipt" 또는 "ingredients" 값 설정'
)


def _quote(text: str) -> str:
    return text.replace('"', "'").strip()


def build_receipt_prompt(ocr_text: str) -> str:
    """Second-hop prompt that extracts ingredients from receipt text."""

    return (
        "다음은 영수증에서 추출한 텍스트입니다. 이 텍스트에서 식재료와 개수를 분석하여 "
        "완전한 정보를 제공하세요. 정확히 다음 JSON 형식으로만 응답하세요.\n\n"
        f'영수증 텍스트: "{_quote(ocr_text)}"\n\n'
        f"응답 예시:\n{_INGREDIENT_EXAMPLE}\n\n"
        "분석 가이드라인:\n"
        "- 영수증에서 언급된 모든 식재료를 찾아서 각각 완전한 정보로 분석하세요\n"
        "- 가격, 브랜드명, 상품코드 등은 무시하고 식재료 이름만 추출하세요\n"
        "- 개수가 명시된 경우 정확히 반영하세요 (kg, g 단위는 1개로 계산)\n"
        "- 개수가 명시되지 않은 경우 1로 설정하세요\n"
        "- storage, recipes, tips는 각각 최소 3가지, nutrition은 100g 기준으로 작성하세요\n"
        '- freshness: 영수증에서 구매한 것이므로 "good" 또는 "excellent"로 설정\n'
        "- confidence는 영수증 텍스트 품질에 따라 85-95 사이로 설정하세요\n"
        '- 정말 식재료를 찾을 수 없는 경우에만 name을 "인식 불가"로 설정하세요\n'
        "- totalCount는 모든 식재료의 quantity 합계입니다\n\n"
        f"{_JSON_ONLY_RULES}\n"
        "5. 각 식재료마다 완전한 정보를 제공할 것"
    )


def build_text_analysis_prompt(text: str) -> str:
    """Prompt for free-text input such as "사과 3개, 우유 1개"."""

    return (
        "다음 텍스트에서 식재료와 개수를 분석하여 정보를 제공하세요. "
        "정확히 다음 JSON 형식으로만 응답하세요.\n\n"
        f'텍스트: "{_quote(text)}"\n\n'
        f"응답 예시:\n{_INGREDIENT_EXAMPLE}\n\n"
        "분석 가이드라인:\n"
        "- 텍스트에서 언급된 모든 식재료를 찾아서 각각 분석하세요\n"
        '- 개수가 명시된 경우 정확히 반영하세요 ("3개", "두 개", "한 박스", "12개들이" 등)\n'
        "- 개수가 명시되지 않은 경우 1로 설정하세요\n"
        '- "한 박스", "한 꾸러미" 등은 일반적인 개수로 추정하세요 (사과 한 박스 = 10개 정도)\n'
        "- confidence는 텍스트 명확도에 따라 85-95 사이로 설정하세요\n"
        '- 정말 식재료를 찾을 수 없는 경우에만 name을 "인식 불가"로 설정하세요\n'
        "- totalCount는 모든 식재료의 quantity 합계입니다\n\n"
        f"{_JSON_ONLY_RULES}\n"
        "5. 불확실하더라도 최선의 추측으로 응답"
    )


def build_ingredient_info_prompt(name: str, quantity: int) -> str:
    """Prompt that describes a single, manually entered ingredient."""

    safe_name = _quote(name)
    return (
        f'"{safe_name}"이라는 식재료에 대한 정보를 제공하세요. '
        "정확히 다음 JSON 형식으로만 응답하세요.\n\n"
        "응답 예시:\n"
        f'{{"name":"토마토","quantity":{quantity},"confidence":95,"freshness":"good",'
        '"storage":["실온보관 2-3일","냉장보관 1주일"],'
        '"recipes":["토마토 파스타 (조리시간: 20분)","토마토 샐러드 (조리시간: 5분)"],'
        '"nutrition":{"calories":18,"protein":0.9,"carbs":3.9,"fat":0.2,"vitamin":"C, K"},'
        '"tips":["빨간색이 진할수록 좋습니다"]}\n\n'
        "분석 가이드라인:\n"
        f'- 식재료 이름은 정확히 "{safe_name}"으로 설정하세요\n'
        f"- quantity는 정확히 {quantity}으로 설정하세요\n"
        "- confidence는 수동 입력이므로 90-95 사이로 설정하세요\n"
        '- freshness는 "excellent", "good", "fair", "poor" 중에서 선택하세요\n'
        "- storage 2-3가지, recipes 3-4가지(조리시간 포함), tips 2-3가지를 제공하세요\n"
        "- nutrition은 100g 기준으로 정확한 영양 정보를 제공하세요\n\n"
        f"{_JSON_ONLY_RULES}\n"
        "5. 실제 식재료 정보를 기반으로 정확한 정보 제공"
    )


def format_inventory(inventory: Iterable[Mapping[str, object]]) -> str:
    """Render fridge items as "사과 3개, 우유 1개"."""

    return ", ".join(
        f"{item.get('name')} {item.get('quantity')}개"
        for item in inventory
        if item.get("name")
    )


def build_recommend_prompt(
    inventory: Iterable[Mapping[str, object]], user_request: str | None = None
) -> str:
    request_text = (user_request or "").strip()
    request_line = f"\n\n사용자 요청사항: {request_text}" if request_text else ""
    request_rule = "\n- 사용자 요청사항을 최대한 반영하여 추천" if request_text else ""
    return (
        "당신은 레시피 추천 전문가입니다. 다음 냉장고 식재료들을 기반으로 "
        "만들 수 있는 요리 3-5개를 추천해주세요:\n\n"
        f"보유 식재료: {format_inventory(inventory)}{request_line}\n\n"
        "반드시 아래 JSON 형식으로만 응답해주세요. 다른 텍스트나 설명은 절대 포함하지 마세요:\n\n"
        '{"recipes":[{"name":"요리 이름","difficulty":"쉬움","cookingTime":"30분",'
        '"servings":"2인분","description":"요리에 대한 간단한 설명",'
        '"availableIngredients":["사용 가능한 보유 식재료"],'
        '"missingIngredients":["부족한 식재료 (없으면 빈 배열)"],"category":"한식"}]}\n\n'
        "규칙:\n"
        "- 보유 식재료만으로 만들 수 있는 요리 우선 추천\n"
        f"- 1-2개 재료만 부족한 현실적 요리 포함{request_rule}\n"
        f"- difficulty는 {_choices(RECIPE_DIFFICULTIES)} 중 하나\n"
        f"- category는 {_choices(RECIPE_CATEGORIES)} 중 하나\n"
        "- 응답은 순수 JSON만, 코드블록이나 다른 텍스트 없이"
    )


def build_detail_prompt(
    recipe_name: str, inventory: Iterable[Mapping[str, object]] | None = None
) -> str:
    safe_name = _quote(recipe_name)
    ingredient_list = format_inventory(inventory or [])
    inventory_line = f"보유 식재료: {ingredient_list}\n\n" if ingredient_list else ""
    return (
        f'당신은 요리 전문가입니다. "{safe_name}" 요리의 상세한 레시피를 제공해주세요.\n\n'
        f"{inventory_line}"
        "반드시 아래 JSON 형식으로만 응답해주세요. 다른 텍스트나 설명은 절대 포함하지 마세요:\n\n"
        f'{{"recipe":{{"name":"{safe_name}","description":"요리에 대한 상세한 설명",'
        '"difficulty":"쉬움","cookingTime":"30분","prepTime":"10분","servings":"2인분",'
        '"calories":"400kcal",'
        '"ingredients":[{"name":"재료명","amount":"필요한 양","essential":true}],'
        '"instructions":[{"step":1,"title":"단계 제목","description":"상세한 조리 방법",'
        '"tip":"조리 팁"}],'
        '"tips":["유용한 조리 팁들"],'
        '"nutrition":{"protein":"15g","carbs":"45g","fat":"12g","fiber":"8g"},'
        '"tags":["간단","건강","맛있는"]}}\n\n'
        "규칙:\n"
        "- 실제로 만들 수 있는 현실적인 레시피\n"
        "- 초보자도 따라할 수 있게 친절하고 구체적으로 설명\n"
        f"- difficulty는 {_choices(RECIPE_DIFFICULTIES)} 중 하나\n"
        "- 응답은 순수 JSON만, 코드블록이나 다른 텍스트 없이"
    )


def _choices(values: Iterable[str]) -> str:
    return ", ".join(f'"{value}"' for value in values)
