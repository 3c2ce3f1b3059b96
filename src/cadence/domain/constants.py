"""Centralized constants for the cadence engine.

All magic numbers and configuration defaults live here so every layer
imports from a single source of truth.
"""

# ---------- Memory model (FSRS-4 family) ----------
# w0..w3: initial stability per first rating (Again, Hard, Good, Easy)
# w4, w5: initial difficulty and its slope per rating
# w6, w7: difficulty step and mean reversion
# w8..w10: stability growth on success
# w11..w14: stability after a lapse
# w15, w16: hard penalty, easy bonus
DEFAULT_WEIGHTS = (
    0.4, 0.6, 2.4, 5.8,
    4.93, 0.94, 0.86, 0.01,
    1.49, 0.14, 0.94,
    2.18, 0.05, 0.34, 1.26,
    0.29, 2.61,
)
FSRS_WEIGHT_COUNT = 17

DEFAULT_TARGET_RETENTION = 0.9
REFERENCE_RETENTION = 0.9  # Retention at which t == stability
FORGETTING_CURVE_FACTOR = 9.0

DIFFICULTY_MIN = 1.0
DIFFICULTY_MAX = 10.0
MIN_STABILITY = 0.1  # days
MAX_STABILITY = 36500.0  # days

MIN_INTERVAL_MINUTES = 1
MAX_INTERVAL_DAYS = 36500

LEARNING_STEPS_MINUTES = (1, 10, 1440)
RELEARNING_STEPS_MINUTES = (10,)

SECONDS_PER_DAY = 86400.0

# ---------- Mastery classification ----------
FAMILIAR_STABILITY_DAYS = 3.0  # T1
PROFICIENT_STABILITY_DAYS = 7.0  # T2
MASTERED_STABILITY_DAYS = 30.0  # T3

LAPSE_CEILING_LOW = 4  # Familiar band
LAPSE_CEILING_MID = 3  # Proficient band
LAPSE_CEILING_HIGH = 2  # Mastered band

# ---------- Quiz ----------
QUIZ_PASSING_SCORE = 70  # percent, first attempt

# ---------- Review queue ----------
DEFAULT_MAX_SESSION_CARDS = 20
DEFAULT_MAX_NEW_CARDS = 10
DEFAULT_NEW_CARD_RATIO = 0.3
DEFAULT_DUE_LIMIT = 50

# ---------- Lesson gate ----------
DEMOTION_POLICY_BADGE = "badge"
DEMOTION_POLICY_REVIEW_LOCK = "review-lock"
