"""
Fragfolio Backend — Prompt Builder
====================================

What:  Builds the Japanese prompts and function-calling schemas shared by
       every provider.
Who:   OpenAIProvider, AnthropicProvider and GeminiProvider.

Prompt contract:
    Completion and normalization answers must arrive as tool/function call
    arguments (schemas below); free-form text is only accepted as a parse
    fallback. Notes and attributes are requested as plain JSON.
"""

from typing import Any, Dict, List, Optional

COMPLETION_TOOL_NAME = "suggest_fragrances"
NORMALIZATION_TOOL_NAME = "normalize_fragrance"

_SEPARATION_RULES = """【多言語規則（厳守）】
- text: 日本語の香水名（ブランド名は絶対に含めない）
- text_en: 英語の香水名（ブランド名は絶対に含めない）
- brand_name: 日本語ブランド名
- brand_name_en: 英語ブランド名
- text と text_en は異なる言語表記にする（同一英語の再掲は禁止）

【分離規則（最重要・厳守）】
- 香水名とブランド名は必ず完全に分離する
  - ❌ text: "シャネル No.5"
  - ✅ text: "No.5", brand_name: "シャネル"
- コンセントレーション・フランカー名は香水名に含めてよい（例: "ソヴァージュ EDP"）"""


def build_completion_prompt(
    query: str,
    query_type: str,
    limit: int,
    language: str,
    few_shot_examples: Optional[List[Dict[str, Any]]] = None,
) -> str:
    type_text = "ブランド名" if query_type == "brand" else "香水名"
    prompt = f"""あなたは香水データの正規化と候補提案に特化したアシスタントです。出力はツール/関数呼び出しの引数 JSON のみとし、説明文や思考過程は出力しません。

【対象範囲】
- 実在する香水ブランドとその製品のみ（メジャー〜ニッチ含む）
- 架空名・誤綴り・未確認品は除外。曖昧な場合は confidence を下げる

{_SEPARATION_RULES}

【提案要件】
- ユーザークエリ: "{query}"（{type_text}として入力中）
- 回答言語: {language}
- 返す件数: ちょうど {limit} 件
- すべて「ブランド名 + 香水名」の固有組み合わせ（重複禁止）

【ソート順序（厳守）】
1. クエリとの直接一致を最優先（例: クエリ「トムフォード」→ brand_name_en が "Tom Ford" の候補を先頭に）
2. 次に音韻類似・部分一致
3. 最後に同カテゴリー・関連製品

【音韻マッチング】
- 文字数・音節数の一致を優先する（「カルトゥージア」→「Carthusia」であり「Cartier」ではない）
- 音韻が近いが文字数が異なる場合は confidence 0.5 以下

【信頼度スコア（上限 1.0）】
- 文字列一致度: 完全 0.4 / 部分 0.2 / 音韻類似 0.1
- ブランド知名度: 超有名 0.3 / 有名 0.2 / 一般 0.1
- 製品知名度: 代表 0.2 / 有名 0.15 / 一般 0.1
- 実在確実性: 確実 0.1 / 高い 0.05
"""

    if few_shot_examples:
        prompt += "\n以下は推論パターンの参考例（固有名詞は鵜呑みにしない）：\n"
        for i, example in enumerate(few_shot_examples, start=1):
            prompt += "- 例%d: 入力「%s」→ 採択「%s」 (関連度: %s)\n" % (
                i,
                example.get("query", ""),
                example.get("selected_text", ""),
                example.get("relevance_score", ""),
            )

    prompt += f"""
【出力】
- {COMPLETION_TOOL_NAME} ツールを1回呼び出し、ちょうど {limit} 件の配列を返すこと。
"""
    return prompt


def build_normalization_prompt(brand_name: str, fragrance_name: str, language: str) -> str:
    return f"""あなたは香水データベースの専門家です。出力はツール/関数呼び出しの引数 JSON のみ。説明文や思考過程は出力しません。

【入力】
- ブランド名: "{brand_name}"
- 香水名   : "{fragrance_name}"
- 言語     : {language}

【正規化ルール】
1. ブランド名を公式表記へ統一する（例: "dior" → "Dior" / "ディオール"）
2. 香水名を公式製品名へ統一する（例: "サベージ" → "Sauvage" / "ソヴァージュ"）
3. コンセントレーション表記を統一する（EDT/EDP/Parfum）
4. 香水名にブランド名を含めない

【信頼度スコア（final_confidence_score, 上限 1.0）】
- 完全一致・公式確認済み: 0.9-1.0
- 高い確度での推定: 0.7-0.9
- 部分一致・音韻類似: 0.5-0.7
- 低い確度・推測含む: 0.3-0.5
- 実在しない・未確認: 0.0-0.3（validation_notes に根拠を記載）

【出力】
- {NORMALIZATION_TOOL_NAME} ツールを1回呼び出す
"""


def build_smart_input_prompt(text: str, language: str) -> str:
    return f"""以下の入力から香水情報を抽出・正規化してください。

入力: {text}
言語: {language}

重要な要件：
- 入力からブランド名と香水名を自動判別する
- 日本語と英語の両方の名前を提供する（normalized_brand_ja / normalized_brand_en / normalized_fragrance_ja / normalized_fragrance_en）
- ブランド名のみ、香水名のみの場合も対応する
- 不明な情報は null にする
- 信頼度スコア final_confidence_score を 0.0-1.0 で設定する
- 実在する香水・ブランドを優先する

例：
入力「シャネル No.5」→ ブランド：「シャネル/CHANEL」、香水：「No.5/No.5」
入力「Tom Ford Black Orchid」→ ブランド：「トム フォード/Tom Ford」、香水：「ブラック オーキッド/Black Orchid」

{NORMALIZATION_TOOL_NAME} ツールを1回呼び出して回答してください。
"""


def build_notes_prompt(brand_name: str, fragrance_name: str, language: str) -> str:
    return f"""香水の香りノートを推定してください。

ブランド名: {brand_name}
香水名: {fragrance_name}
言語: {language}

以下のJSON形式で回答してください：
{{
    "notes": {{
        "top": [
            {{"name": "bergamot", "intensity": "strong", "confidence": 0.85}},
            {{"name": "lemon", "intensity": "moderate", "confidence": 0.72}}
        ],
        "middle": [...],
        "base": [...]
    }},
    "confidence_score": 0.80
}}

注意：
- 強度レベル: light/moderate/strong
- 信頼度は0.0-1.0で設定
- 具体的な香料名（英語）で回答"""


def build_attributes_prompt(brand_name: str, fragrance_name: str, language: str,
                            notes: Optional[Dict[str, Any]] = None) -> str:
    note_line = ""
    if notes:
        names = [
            note.get("name", "") if isinstance(note, dict) else str(note)
            for tier in ("top", "middle", "base")
            for note in notes.get(tier) or []
        ]
        if names:
            note_line = f"\n香りノート: {', '.join(n for n in names if n)}"
    return f"""香水の季節・シーン適性を推定してください。

ブランド名: {brand_name}
香水名: {fragrance_name}{note_line}
言語: {language}

以下のJSON形式で回答してください：
{{
    "attributes": {{
        "seasons": ["spring", "summer"],
        "occasions": ["casual", "business"],
        "time_of_day": ["morning", "afternoon"],
        "intensity_rating": "moderate",
        "longevity_hours": 6,
        "sillage": "moderate"
    }},
    "confidence_score": 0.75
}}

注意：
- seasons: spring/summer/autumn/winter
- occasions: casual/business/formal/date/party/daily
- time_of_day: morning/afternoon/evening/night
- 適切な属性のみ選択する
- 信頼度は0.0-1.0で設定"""


# ══════════════════════════════════════════════════════════════════════════
# Function-calling schemas (JSON Schema; each provider wraps them)
# ══════════════════════════════════════════════════════════════════════════

def completion_tool_schema(limit: int) -> Dict[str, Any]:
    return {
        "name": COMPLETION_TOOL_NAME,
        "description": "香水またはブランドの提案リストを生成する",
        "parameters": {
            "type": "object",
            "properties": {
                "suggestions": {
                    "type": "array",
                    "description": "提案リスト",
                    "items": {
                        "type": "object",
                        "properties": {
                            "text": {"type": "string", "description": "日本語名"},
                            "text_en": {"type": "string", "description": "英語名"},
                            "confidence": {
                                "type": "number",
                                "description": "信頼度（0.0-1.0）",
                                "minimum": 0.0,
                                "maximum": 1.0,
                            },
                            "type": {
                                "type": "string",
                                "description": "タイプ",
                                "enum": ["brand", "fragrance"],
                            },
                            "brand_name": {"type": "string", "description": "ブランド名（香水の場合）"},
                            "brand_name_en": {"type": "string", "description": "英語ブランド名（香水の場合）"},
                        },
                        "required": ["text", "text_en", "confidence", "type"],
                    },
                    "minItems": limit,
                    "maxItems": limit,
                },
            },
            "required": ["suggestions"],
        },
    }


def normalization_tool_schema() -> Dict[str, Any]:
    string_fields = {
        "normalized_brand": "正規化されたブランド名（基本）",
        "normalized_brand_ja": "日本語ブランド名",
        "normalized_brand_en": "英語ブランド名",
        "normalized_fragrance_name": "正規化された香水名（基本）",
        "normalized_fragrance_ja": "日本語香水名",
        "normalized_fragrance_en": "英語香水名",
        "concentration_type": "EDP/EDT/Parfum/その他",
        "launch_year": "発売年",
        "fragrance_family": "香りファミリー",
        "description_ja": "日本語での説明",
        "description_en": "English description",
        "validation_notes": "信頼度の根拠や確認事項",
    }
    properties: Dict[str, Any] = {
        name: {"type": "string", "description": description}
        for name, description in string_fields.items()
    }
    properties["final_confidence_score"] = {
        "type": "number",
        "description": "信頼度スコア（0.0-1.0）",
        "minimum": 0.0,
        "maximum": 1.0,
    }
    return {
        "name": NORMALIZATION_TOOL_NAME,
        "description": "香水情報を正規化・検証する",
        "parameters": {
            "type": "object",
            "properties": properties,
            "required": ["normalized_brand", "normalized_fragrance_name", "final_confidence_score"],
        },
    }
