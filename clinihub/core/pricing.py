"""Centralized speech-to-text pricing configuration.

Single source of truth for transcription costs (USD per audio minute).
Used when a usage row is recorded and exposed via the platform plans API.
"""

DEFAULT_STT_MODEL = "nova-3"

# Maps STT model identifiers to USD cost per minute of audio.
# Unknown models fall back to a conservative estimate.
STT_MODEL_PRICING: dict[str, float] = {
    "nova-3":              0.0043,
    "nova-3-multilingual": 0.0052,
    "nova-2":              0.0043,
    "nova-2-medical":      0.0043,
    "enhanced":            0.0145,
    "base":                0.0125,
    "whisper-large":       0.0048,
}

DEFAULT_COST_PER_MINUTE: float = 0.0060


def get_cost_per_minute(model: str) -> float:
    return STT_MODEL_PRICING.get(model, DEFAULT_COST_PER_MINUTE)


def calc_cost(model: str, audio_duration_seconds: float) -> float:
    """USD cost for a recording, billed on exact (unrounded) duration."""
    return round(audio_duration_seconds / 60 * get_cost_per_minute(model), 4)
