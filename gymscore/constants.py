"""Fixed enumerations shared by forms, validation and the leaderboard."""

GENDERS = ("male", "female")

COMPETITION_STATUSES = ("upcoming", "active", "completed", "cancelled")
STATUS_ALIASES = {"ongoing": "active"}

ROUTINE_STATUSES = ("pending", "in_progress", "completed")

SCORE_TYPES = ("difficulty", "execution", "neutral_deduction")

# Display order of the age-group buckets; also the only labels accepted on input.
AGE_GROUPS = (
    "7-8 years",
    "7-9 years",
    "7-10 years",
    "7-11 years",
    "7-13 years",
    "9 years",
    "9-10 years",
    "10 years",
    "10-11 years",
    "11 years",
    "12 years",
    "12-13 years",
    "13 years",
    "14+ years",
)

# Display order of level buckets. Levels are free text, so anything else
# is shown after these.
LEVEL_ORDER = (
    "Level 1",
    "Level 2",
    "Level 3",
    "Level 4",
    "Level 5",
    "Level 6",
    "Level 7",
    "Level 8",
    "Level 9",
    "Level 10",
    "Elite",
)

NO_LEVEL = "No Level"
NO_AGE_GROUP = "No Age Group"

# name, code, gender, display_order, max_score
DEFAULT_EVENTS = (
    ("Floor Exercise", "FX", "male", 1, 20.0),
    ("Pommel Horse", "PH", "male", 2, 20.0),
    ("Still Rings", "SR", "male", 3, 20.0),
    ("Vault", "VT", "male", 4, 20.0),
    ("Parallel Bars", "PB", "male", 5, 20.0),
    ("Horizontal Bar", "HB", "male", 6, 20.0),
    ("Vault", "VT", "female", 1, 20.0),
    ("Uneven Bars", "UB", "female", 2, 20.0),
    ("Balance Beam", "BB", "female", 3, 20.0),
    ("Floor Exercise", "FX", "female", 4, 20.0),
)
