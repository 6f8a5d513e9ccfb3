"""Flags queries that ask for a personal fatwa rather than general research."""
from __future__ import annotations

import re

_EN = [
    r"\b(should i|can i|am i allowed|is it ok for me|is it permissible for me)\b",
    r"\b(i want to|i need to|i am|i'm|i have been|i did|i was)\b",
    r"\b(my (husband|wife|spouse|father|mother|brother|sister|son|daughter|family|situation|case|problem))\b",
    r"\b(what should i do|what do i do|help me|advise me|give me a fatwa)\b",
    r"\b(in my case|in my situation|for my|is it halal for me|is it haram for me)\b",
    r"\b(i committed|i broke|i missed|i forgot to|i accidentally)\b",
]

_AR = [
    r"(هل يجوز لي|هل أستطيع|ماذا أفعل|ما حكم أن أ)",
    r"\b(أنا|زوجي|زوجتي|والدي|والدتي|عائلتي|حالتي|مشكلتي)\b",
    r"(أريد أن|أحتاج|ساعدوني|أفتوني|أعطوني فتوى)",
    r"(في حالتي|بالنسبة لي|نسيت أن|ارتكبت)",
]

_UR = [
    r"\b(کیا میں|مجھے|میری|میرا|میرے)\b",
    r"(مجھے بتائیں|مدد کریں|فتویٰ دیں)",
]

_FR = [
    r"\b(est-ce que je peux|dois-je|puis-je|est-il permis pour moi)\b",
    r"\b(mon mari|ma femme|ma famille|ma situation|mon cas)\b",
    r"\b(je veux|j'ai besoin|aidez-moi|donnez-moi une fatwa)\b",
    r"\b(j'ai oublié|j'ai commis|j'ai raté)",
]

_JA = [
    r"私は|私の|自分の|自分が",
    r"してもいいですか|すべきですか|どうすれば",
]

_ZH = [
    r"我可以|我应该|我能|我的|对我来说",
    r"帮我|给我|我犯了|我忘了",
]

PATTERNS: dict[str, list[re.Pattern[str]]] = {
    lang: [re.compile(p, re.IGNORECASE) for p in patterns]
    for lang, patterns in {
        "en": _EN,
        "ar": _AR,
        "ur": _UR,
        "fr": _FR,
        "ja": _JA,
        "zh": _ZH,
    }.items()
}


def is_personal_question(query: str, language: str = "en") -> bool:
    """English patterns always apply, whatever the UI language."""
    patterns = list(PATTERNS.get(language, []))
    if language != "en":
        patterns += PATTERNS["en"]
    return any(p.search(query) for p in patterns)
