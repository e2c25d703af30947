from __future__ import annotations
from typing import Dict

TRANSLATIONS: Dict[str, Dict[str, str]] = {
    "en": {
        "enterName": "Enter your name",
        "start": "Start",
        "next": "Next",
        "previous": "Previous",
        "submit": "Submit",
        "timeLeft": "Time left",
        "question": "Question",
        "of": "of",
        "points": "points",
        "typeAnswer": "Type your answer",
        "selectMatch": "Choose a match",
        "blockedNotOpen": "This quiz is not open yet.",
        "blockedClosed": "This quiz is closed.",
        "blockedAttempts": "You have used all allowed attempts.",
        "retry": "Try again",
        "resumePrompt": "An unfinished attempt was found. Continue where you left off?",
        "resume": "Continue",
        "restart": "Start over",
        "focusWarning": "Leaving the quiz window is not allowed. This has been recorded.",
        "captureWarning": "Screen capture is not allowed. This has been recorded.",
        "locked": "This attempt was locked after repeated violations. Your teacher will review it.",
        "timeout": "Time is up. Your answers were submitted.",
        "manualReview": "Some answers will be graded by your teacher.",
        "score": "Score",
        "contactTeacher": "Contact teacher",
    },
    "ar": {
        "enterName": "اكتب اسمك",
        "start": "ابدأ",
        "next": "التالي",
        "previous": "السابق",
        "submit": "إرسال",
        "timeLeft": "الوقت المتبقي",
        "question": "سؤال",
        "of": "من",
        "points": "درجات",
        "typeAnswer": "اكتب إجابتك",
        "selectMatch": "اختر المطابقة",
        "blockedNotOpen": "الاختبار لم يبدأ بعد.",
        "blockedClosed": "انتهى وقت الاختبار.",
        "blockedAttempts": "لقد استنفدت جميع المحاولات المسموح بها.",
        "retry": "حاول مرة أخرى",
        "resumePrompt": "توجد محاولة غير مكتملة. هل تريد المتابعة من حيث توقفت؟",
        "resume": "متابعة",
        "restart": "البدء من جديد",
        "focusWarning": "مغادرة نافذة الاختبار غير مسموح بها. تم تسجيل ذلك.",
        "captureWarning": "تصوير الشاشة غير مسموح به. تم تسجيل ذلك.",
        "locked": "تم قفل هذه المحاولة بعد تكرار المخالفات. سيراجعها المعلم.",
        "timeout": "انتهى الوقت. تم إرسال إجاباتك.",
        "manualReview": "بعض الإجابات سيصححها المعلم.",
        "score": "الدرجة",
        "contactTeacher": "تواصل مع المعلم",
    },
}

BLOCK_KEYS = {
    "not-open": "blockedNotOpen",
    "closed": "blockedClosed",
    "attempts-exhausted": "blockedAttempts",
}


def strings_for(language: str) -> Dict[str, str]:
    return dict(TRANSLATIONS.get(language) or TRANSLATIONS["en"])
