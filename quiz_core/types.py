from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Literal, Optional


class QuestionType(str, Enum):
    MULTIPLE_CHOICE = "Multiple Choice"
    TRUE_FALSE = "True/False"
    FILL_IN_THE_BLANK = "Fill in the blank"
    ESSAY = "Essay"
    MATCHING = "Matching"
    OTHER = "Other"


class Difficulty(str, Enum):
    HIGH = "High"
    MEDIUM = "Medium"
    EASY = "Easy"


class EducationStage(str, Enum):
    PRIMARY = "Primary"
    PREPARATORY = "Preparatory"
    SECONDARY = "Secondary"


class Semester(str, Enum):
    FIRST = "First"
    SECOND = "Second"


class TimerMode(str, Enum):
    TOTAL = "total"
    QUESTION = "question"


class Reaction(str, Enum):
    WARN = "warn"
    SUBMIT = "submit"
    LOCK = "lock"


class CompletionStatus(str, Enum):
    COMPLETED = "completed"
    TIMEOUT = "auto-submitted-on-timeout"
    VIOLATION = "auto-submitted-on-violation"
    LOCKED = "locked-on-violation"
    ABANDONED = "abandoned"


Language = Literal["en", "ar"]
Position = Literal["left", "center", "right"]


@dataclass
class Choice:
    id: str
    text: str
    is_correct: bool = False
    image: Optional[str] = None
    match_text: Optional[str] = None


@dataclass
class Question:
    id: str
    type: QuestionType
    text: str
    choices: List[Choice] = field(default_factory=list)
    points: float = 1.0
    difficulty: Difficulty = Difficulty.MEDIUM
    category: str = ""
    image: Optional[str] = None
    correct_answer: Optional[str] = None
    bg_color: Optional[str] = None
    # bank classification; never read during delivery
    stage: Optional[EducationStage] = None
    grade: Optional[str] = None
    subject: Optional[str] = None
    semester: Optional[Semester] = None
    branch: Optional[str] = None

    def correct_choice_ids(self) -> List[str]:
        return [c.id for c in self.choices if c.is_correct]


@dataclass
class QuizAppearance:
    background_color: str = "#f8fafc"
    background_image: Optional[str] = None
    answer_box_bg: str = "#ffffff"
    answer_text_color: str = "#1e293b"
    selected_color: str = "#4f46e5"
    selected_text_color: str = "#ffffff"
    font_size_choices: int = 18
    spacing_choices: int = 12
    border_style: Literal["none", "solid", "dashed", "double"] = "solid"
    show_side_column: bool = True
    answer_box_shape: Literal["rounded", "square", "pill", "leaf"] = "rounded"
    box_effect: Literal["flat", "3d", "glow", "glass", "neon"] = "flat"
    transition_effect: Literal["slide", "fade", "zoom", "flip", "none"] = "fade"
    answer_animation: Literal["none", "pulse", "scale", "wobble", "shake"] = "none"
    question_image_style: Literal["default", "rounded", "square_frame", "square"] = "default"


@dataclass
class CloudConfig:
    firebase_config: Optional[str] = None
    cloud_url: Optional[str] = None
    folder_name: Optional[str] = None
    sync_grades: bool = False
    sync_tests: bool = False
    sync_bank: bool = False


@dataclass
class BrandingConfig:
    designer_name: str = ""
    designer_logo: Optional[str] = None
    position: Position = "center"
    text_layout: Literal["top", "bottom", "left", "right", "circular"] = "bottom"
    logo_width: int = 48
    logo_height: int = 48
    text_color: str = "#64748b"
    font_size: int = 12
    font_family: str = "system-ui"


@dataclass
class FeedbackMessages:
    full_mark: str = "Perfect score!"
    excellent: str = "Excellent work!"
    very_good: str = "Very good!"
    good: str = "Good job."
    fair: str = "Fair, keep practicing."
    poor: str = "Needs improvement."

    def for_tier(self, tier: Optional[str]) -> str:
        return {
            "fullMark": self.full_mark,
            "excellent": self.excellent,
            "veryGood": self.very_good,
            "good": self.good,
            "fair": self.fair,
            "poor": self.poor,
        }.get(tier or "", "")


@dataclass
class QuizSettings:
    language: Language = "en"
    title: str = "Quiz"
    class_name: str = ""
    subject: str = ""
    branch: str = ""
    unit: str = ""
    lesson: str = ""
    timer_enabled: bool = False
    timer_mode: TimerMode = TimerMode.TOTAL
    timer_seconds: int = 600
    teacher_whatsapp: str = ""
    skip_name_entry: bool = False
    welcome_message: str = "Welcome!"
    message_duration: int = 3
    max_attempts: int = 0
    appearance: QuizAppearance = field(default_factory=QuizAppearance)
    cloud_config: CloudConfig = field(default_factory=CloudConfig)
    branding: BrandingConfig = field(default_factory=BrandingConfig)
    feedback_messages: FeedbackMessages = field(default_factory=FeedbackMessages)
    final_score_header: str = "Your score"
    scheduling_enabled: bool = False
    shuffle_questions: bool = False
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    scheduling_message: Optional[str] = None
    prevent_split_screen: bool = False
    prevent_screenshot: bool = False
    offline_mode: bool = False
    designer_name: Optional[str] = None
    designer_logo: Optional[str] = None
    copyright_position: Position = "center"
    default_stage: Optional[EducationStage] = None
    default_grade: Optional[str] = None
    default_semester: Optional[Semester] = None

    @property
    def direction(self) -> str:
        return "rtl" if self.language == "ar" else "ltr"


@dataclass
class FeedbackBands:
    """Lower bounds (percent) of each feedback tier below full mark."""

    excellent: float = 90.0
    very_good: float = 75.0
    good: float = 60.0
    fair: float = 40.0

    def ordered(self) -> List[tuple[str, float]]:
        return [
            ("excellent", self.excellent),
            ("veryGood", self.very_good),
            ("good", self.good),
            ("fair", self.fair),
        ]


@dataclass
class AntiCheatPolicy:
    strike_limit: int = 3
    reaction: Reaction = Reaction.LOCK


@dataclass
class DeliveryPolicy:
    bands: FeedbackBands = field(default_factory=FeedbackBands)
    allow_revisit: bool = True
    anticheat: AntiCheatPolicy = field(default_factory=AntiCheatPolicy)


@dataclass
class QuizData:
    questions: List[Question]
    settings: QuizSettings = field(default_factory=QuizSettings)
    policy: DeliveryPolicy = field(default_factory=DeliveryPolicy)

    def question_map(self) -> Dict[str, Question]:
        return {q.id: q for q in self.questions}


@dataclass
class QuestionOutcome:
    question_id: str
    status: Literal["correct", "incorrect", "unanswered", "manual_review"]
    points_awarded: float
    points_possible: float
    auto_scored: bool


@dataclass
class Strike:
    t: Optional[float]
    kind: str
    count: int
    reaction: str


@dataclass
class SessionResult:
    session_id: str
    artifact_id: str
    name: Optional[str]
    answers: Dict[str, Any]
    outcomes: List[QuestionOutcome]
    score: float
    max_score: float
    percentage: Optional[float]
    tier: Optional[str]
    started_at: Optional[float]
    ended_at: Optional[float]
    attempt: int
    status: CompletionStatus
    strikes: List[Strike] = field(default_factory=list)
    manual_review: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """JSON-friendly representation shared by the store and the wire."""

        return {
            "sessionId": self.session_id,
            "artifactId": self.artifact_id,
            "name": self.name,
            "answers": dict(self.answers),
            "outcomes": [
                {
                    "questionId": o.question_id,
                    "status": o.status,
                    "pointsAwarded": o.points_awarded,
                    "pointsPossible": o.points_possible,
                    "autoScored": o.auto_scored,
                }
                for o in self.outcomes
            ],
            "score": self.score,
            "maxScore": self.max_score,
            "percentage": self.percentage,
            "tier": self.tier,
            "startedAt": self.started_at,
            "endedAt": self.ended_at,
            "attempt": self.attempt,
            "status": self.status.value,
            "strikes": [
                {"t": s.t, "kind": s.kind, "count": s.count, "reaction": s.reaction}
                for s in self.strikes
            ],
            "manualReview": list(self.manual_review),
        }
