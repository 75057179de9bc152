# Planning grid: Monday to Friday (weekday() 0-4), two half-days each
WORKING_WEEKDAYS = 5

# Clock hour from which a manual instance counts as an afternoon slot
AFTERNOON_START_HOUR = 13

# Work rate: fraction of the 10 standard half-days a worker is present.
STANDARD_HALF_DAYS = 10
MIN_WORK_RATE = 0.1

# Holidays (fixed by (month, day) and movable relative to Easter Sunday)
FIXED_HOLIDAYS = {
    (1, 1): "Jour de l'An",
    (5, 1): "Fête du Travail",
    (5, 8): "Victoire 1945",
    (7, 14): "Fête Nationale",
    (8, 15): "Assomption",
    (11, 1): "Toussaint",
    (11, 11): "Armistice",
    (12, 25): "Noël",
}
MOVABLE_HOLIDAY_OFFSETS = {  # Days relative to Easter
    "Lundi de Pâques": 1,
    "Ascension": 39,
    "Lundi de Pentecôte": 50,
}

# Equity groups
# Activities without an explicit equity group get a private one.
CUSTOM_GROUP_PREFIX = "custom_"
# Week-granularity rotation that only needs "no absence this week".
WORKFLOW_EQUITY_GROUP = "workflow"
# Weighted scores closer than this to the best candidate are treated as ties.
EQUITY_SCORE_TOLERANCE = 0.1

# Manual override values
CLOSED_OVERRIDE = "__CLOSED__"
AUTO_OVERRIDE_PREFIX = "auto:"

# History replay safety ceiling (about two years of weeks)
HISTORY_MAX_WEEKS = 104

# Month view spans this many consecutive weeks
MONTH_VIEW_WEEKS = 5

# Replacement scoring.
# A suggestion starts at REPLACEMENT_BASE_SCORE and is clamped to [0, 100].
REPLACEMENT_BASE_SCORE = 50
REPLACEMENT_SPECIALTY_BONUS = 30     # shares a specialty with the absent worker
REPLACEMENT_LOAD_ADJUSTMENT = 20     # +/- depending on weighted equity load
REPLACEMENT_AFFINITY_BONUS = 20      # a specialty appears in the slot location
REPLACEMENT_LOW_LOAD = 10            # weighted load below this is "light"
REPLACEMENT_HIGH_LOAD = 30           # weighted load above this is "heavy"
MAX_REPLACEMENT_SUGGESTIONS = 5
