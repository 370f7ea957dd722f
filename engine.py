"""UI-level exam constants: refresh cadence, list sizes, score bands. No UI."""
# Score bands: >= 90 excellent, >= 80 great, >= 70 good, >= 60 close, else keep practicing

CHECKPOINT_INTERVAL_SECONDS = 5
RECENT_ATTEMPTS = 5
HISTORY_RECENT = 10
PASS_COLOR_THRESHOLD = 80
WARN_COLOR_THRESHOLD = 60

SCORE_MESSAGES = (
    (90, "Excellent work! You've mastered this material."),
    (80, "Great job! You have a strong understanding."),
    (70, "Good effort! A bit more practice will help."),
    (60, "You're getting there! Review the explanations."),
    (0, "Keep practicing! Review the material and try again."),
)


def score_message(score: int) -> str:
    for threshold, message in SCORE_MESSAGES:
        if score >= threshold:
            return message
    return SCORE_MESSAGES[-1][1]


def score_color(score: int) -> str:
    """Streamlit markdown color for a percentage."""
    if score >= PASS_COLOR_THRESHOLD:
        return "green"
    if score >= WARN_COLOR_THRESHOLD:
        return "orange"
    return "red"


def format_duration(seconds: int) -> str:
    """H:MM:SS, or M:SS under an hour."""
    h, rem = divmod(max(0, int(seconds)), 3600)
    m, s = divmod(rem, 60)
    return f"{h}:{m:02d}:{s:02d}" if h else f"{m}:{s:02d}"
