"""Canonical scripture and hadith URLs plus the alias tables behind them."""
from __future__ import annotations

import re

QURAN_BASE_URL = "https://quran.com"
SUNNAH_BASE_URL = "https://sunnah.com"

SURAH_COUNT = 114

# Transliterated surah names (lowercase, hyphenated) to surah number.
SURAH_ALIASES: dict[str, int] = {
    "al-fatihah": 1, "fatiha": 1, "fatihah": 1,
    "al-baqarah": 2, "baqarah": 2, "baqara": 2,
    "ali-imran": 3, "al-imran": 3, "imran": 3,
    "an-nisa": 4, "nisa": 4, "nisaa": 4,
    "al-maidah": 5, "maidah": 5, "maida": 5,
    "al-anam": 6, "anam": 6,
    "al-araf": 7, "araf": 7,
    "al-anfal": 8, "anfal": 8,
    "at-tawbah": 9, "tawbah": 9, "tawba": 9,
    "yunus": 10,
    "hud": 11,
    "yusuf": 12,
    "ar-rad": 13, "rad": 13,
    "ibrahim": 14,
    "al-hijr": 15, "hijr": 15,
    "an-nahl": 16, "nahl": 16,
    "al-isra": 17, "isra": 17, "bani-israil": 17,
    "al-kahf": 18, "kahf": 18,
    "maryam": 19,
    "taha": 20, "ta-ha": 20,
    "al-anbiya": 21, "anbiya": 21,
    "al-hajj": 22, "hajj": 22,
    "al-muminun": 23, "muminun": 23, "muminoon": 23,
    "an-nur": 24, "nur": 24, "noor": 24,
    "al-furqan": 25, "furqan": 25,
    "ash-shuara": 26, "shuara": 26,
    "an-naml": 27, "naml": 27,
    "al-qasas": 28, "qasas": 28,
    "al-ankabut": 29, "ankabut": 29, "ankaboot": 29,
    "ar-rum": 30, "rum": 30,
    "luqman": 31,
    "as-sajdah": 32, "sajdah": 32, "sajda": 32,
    "al-ahzab": 33, "ahzab": 33,
    "saba": 34,
    "fatir": 35,
    "ya-sin": 36, "yasin": 36, "yaseen": 36,
    "as-saffat": 37, "saffat": 37,
    "sad": 38,
    "az-zumar": 39, "zumar": 39,
    "ghafir": 40, "al-mumin": 40,
    "fussilat": 41,
    "ash-shura": 42, "shura": 42,
    "az-zukhruf": 43, "zukhruf": 43,
    "ad-dukhan": 44, "dukhan": 44,
    "al-jathiyah": 45, "jathiyah": 45,
    "al-ahqaf": 46, "ahqaf": 46,
    "muhammad": 47,
    "al-fath": 48, "fath": 48,
    "al-hujurat": 49, "hujurat": 49,
    "qaf": 50,
    "adh-dhariyat": 51, "dhariyat": 51,
    "at-tur": 52, "tur": 52,
    "an-najm": 53, "najm": 53,
    "al-qamar": 54, "qamar": 54,
    "ar-rahman": 55, "rahman": 55,
    "al-waqiah": 56, "waqiah": 56, "waqia": 56,
    "al-hadid": 57, "hadid": 57,
    "al-mujadila": 58, "mujadila": 58,
    "al-hashr": 59, "hashr": 59,
    "al-mumtahanah": 60, "mumtahanah": 60,
    "as-saff": 61, "saff": 61,
    "al-jumuah": 62, "jumuah": 62, "jumua": 62,
    "al-munafiqun": 63, "munafiqun": 63,
    "at-taghabun": 64, "taghabun": 64,
    "at-talaq": 65, "talaq": 65,
    "at-tahrim": 66, "tahrim": 66,
    "al-mulk": 67, "mulk": 67,
    "al-qalam": 68, "qalam": 68,
    "al-haqqah": 69, "haqqah": 69,
    "al-maarij": 70, "maarij": 70,
    "nuh": 71, "noah": 71,
    "al-jinn": 72, "jinn": 72,
    "al-muzzammil": 73, "muzzammil": 73,
    "al-muddaththir": 74, "muddaththir": 74,
    "al-qiyamah": 75, "qiyamah": 75, "qiyama": 75,
    "al-insan": 76, "insan": 76,
    "al-mursalat": 77, "mursalat": 77,
    "an-naba": 78, "naba": 78,
    "an-naziat": 79, "naziat": 79,
    "abasa": 80,
    "at-takwir": 81, "takwir": 81,
    "al-infitar": 82, "infitar": 82,
    "al-mutaffifin": 83, "mutaffifin": 83,
    "al-inshiqaq": 84, "inshiqaq": 84,
    "al-buruj": 85, "buruj": 85,
    "at-tariq": 86, "tariq": 86,
    "al-ala": 87, "ala": 87,
    "al-ghashiyah": 88, "ghashiyah": 88,
    "al-fajr": 89, "fajr": 89,
    "al-balad": 90, "balad": 90,
    "ash-shams": 91, "shams": 91,
    "al-layl": 92, "layl": 92,
    "ad-duha": 93, "duha": 93,
    "ash-sharh": 94, "sharh": 94, "inshirah": 94,
    "at-tin": 95, "tin": 95,
    "al-alaq": 96, "alaq": 96,
    "al-qadr": 97, "qadr": 97,
    "al-bayyinah": 98, "bayyinah": 98,
    "az-zalzalah": 99, "zalzalah": 99,
    "al-adiyat": 100, "adiyat": 100,
    "al-qariah": 101, "qariah": 101,
    "at-takathur": 102, "takathur": 102,
    "al-asr": 103, "asr": 103,
    "al-humazah": 104, "humazah": 104,
    "al-fil": 105, "fil": 105,
    "quraysh": 106,
    "al-maun": 107, "maun": 107,
    "al-kawthar": 108, "kawthar": 108, "kauthar": 108,
    "al-kafirun": 109, "kafirun": 109,
    "an-nasr": 110, "nasr": 110,
    "al-masad": 111, "masad": 111, "lahab": 111,
    "al-ikhlas": 112, "ikhlas": 112,
    "al-falaq": 113, "falaq": 113,
    "an-nas": 114, "nas": 114,
}

# Collection names as written in prose (lowercase) to sunnah.com slugs.
COLLECTION_ALIASES: dict[str, str] = {
    "sahih al-bukhari": "bukhari",
    "sahih bukhari": "bukhari",
    "al-bukhari": "bukhari",
    "bukhari": "bukhari",
    "sahih muslim": "muslim",
    "muslim": "muslim",
    "jami at-tirmidhi": "tirmidhi",
    "jami` at-tirmidhi": "tirmidhi",
    "jami' at-tirmidhi": "tirmidhi",
    "at-tirmidhi": "tirmidhi",
    "tirmidhi": "tirmidhi",
    "sunan abu dawud": "abudawud",
    "abu dawud": "abudawud",
    "abu dawood": "abudawud",
    "sunan an-nasai": "nasai",
    "sunan an-nasa'i": "nasai",
    "an-nasai": "nasai",
    "nasai": "nasai",
    "sunan ibn majah": "ibnmajah",
    "ibn majah": "ibnmajah",
    "muwatta malik": "malik",
    "malik": "malik",
    "musnad ahmad": "ahmad",
    "ahmad": "ahmad",
    "sunan ad-darimi": "darimi",
    "darimi": "darimi",
    "40 hadith nawawi": "nawawi40",
    "nawawi": "nawawi40",
    "hadith qudsi": "qudsi40",
    "qudsi": "qudsi40",
    "riyad as-salihin": "riyadussalihin",
    "riyadh al-salihin": "riyadussalihin",
    "riyadh us saliheen": "riyadussalihin",
    "mishkat al-masabih": "mishkat",
    "mishkat": "mishkat",
    "baihaqi": "mishkat",
}

# sunnah.com slugs to display names.
COLLECTION_NAMES: dict[str, str] = {
    "bukhari": "Sahih Bukhari",
    "muslim": "Sahih Muslim",
    "tirmidhi": "Jami at-Tirmidhi",
    "abudawud": "Sunan Abu Dawud",
    "nasai": "Sunan an-Nasa'i",
    "ibnmajah": "Sunan Ibn Majah",
    "malik": "Muwatta Malik",
    "ahmad": "Musnad Ahmad",
    "darimi": "Sunan ad-Darimi",
    "nawawi40": "40 Hadith Nawawi",
    "qudsi40": "Hadith Qudsi",
    "riyadussalihin": "Riyad as-Salihin",
    "mishkat": "Mishkat al-Masabih",
}

_NUMBER_LABEL = r"(?:(?:hadith|no\.?|number|#)\s*)"
_PLAIN_NUMBER = re.compile(rf"^{_NUMBER_LABEL}*(\d+)$", re.I)
# "Book 2, Hadith 15" and "2:15" name a book and a hadith; only the latter is linkable.
_BOOK_AND_HADITH = re.compile(rf"^(?:book\s*)?\d+\s*(?:[:/]\s*|,?\s*{_NUMBER_LABEL}+)(\d+)$", re.I)


def normalize_surah_name(name: str) -> str:
    return re.sub(r"[\s']+", "-", name.strip().lower()).strip("-")


def surah_number(name: str) -> int | None:
    return SURAH_ALIASES.get(normalize_surah_name(name))


def collection_slug(collection: str) -> str:
    """Map a collection name to its sunnah.com slug.

    Unknown names fall back to the lowercased name with spaces removed.
    """
    key = " ".join(collection.strip().lower().split())
    if key in COLLECTION_ALIASES:
        return COLLECTION_ALIASES[key]
    if key in COLLECTION_NAMES:
        return key
    return key.replace(" ", "")


def collection_name(slug: str) -> str:
    return COLLECTION_NAMES.get(slug.lower(), slug)


def hadith_number(number: object) -> str | None:
    """The hadith number as digits, or None when it cannot be read unambiguously.

    Accepts a bare number ("15", "Hadith No. 15", "#15") or a book and hadith
    pair ("Book 2, Hadith 15", "2:15"). Anything else yields None.
    """
    if number is None:
        return None
    text = str(number).strip().rstrip(". ")
    if text.lower() in ("", "null", "none", "undefined"):
        return None
    match = _PLAIN_NUMBER.match(text) or _BOOK_AND_HADITH.match(text)
    return match.group(1) if match else None


def quran_url(surah: int, ayah: int, ayah_end: int | None = None) -> str:
    if ayah_end and ayah_end != ayah:
        return f"{QURAN_BASE_URL}/{surah}/{ayah}-{ayah_end}"
    return f"{QURAN_BASE_URL}/{surah}/{ayah}"


def hadith_url(collection: str | None, number: object) -> str:
    """sunnah.com link, or "" without a collection or a numeric hadith number."""
    if not collection:
        return ""
    numeric = hadith_number(number)
    if numeric is None:
        return ""
    return f"{SUNNAH_BASE_URL}/{collection_slug(collection)}:{numeric}"


def normalize_grade(grade: object) -> str:
    """Collapse free-text hadith grades to sahih/hasan/daif/mawdu/unknown."""
    if not grade:
        return "unknown"
    lower = str(grade).strip().lower()
    if "sahih" in lower or "saheeh" in lower or lower == "authentic":
        return "sahih"
    if "hasan" in lower or lower == "good":
        return "hasan"
    if "daif" in lower or "da'if" in lower or "da`if" in lower or "weak" in lower:
        return "daif"
    if "mawdu" in lower or "fabricated" in lower:
        return "mawdu"
    return "unknown"
