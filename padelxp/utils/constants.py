"""
Constants used across the PadelXP scoring, level and billing rules.
"""

# Leaderboard points
POINTS_PER_WIN = 10
POINTS_PER_LOSS = 3
REVIEW_BONUS_POINTS = 10
BOOST_BASE_POINTS = 10  # A boosted win replaces the regular win points
MAX_MATCHES_PER_DAY = 2  # Confirmed matches per player and UTC day counting toward points
MATCH_CONFIRMATIONS_REQUIRED = 2

# Player level (ELO-like, 1.0 to 10.0)
INITIAL_LEVEL = 5.0
MIN_LEVEL = 1.0
MAX_LEVEL = 10.0
LEVEL_SCALE = 2.0  # Level gap for which the stronger side is 10x more likely to win

# Trial lifecycle
TRIAL_DAYS = 14
AUTO_EXTENSION_DAYS = 15
AUTO_EXTENSION_MIN_PLAYERS = 10
AUTO_EXTENSION_MIN_MATCHES = 20
PROPOSED_EXTENSION_DAY = 12
TRIAL_REMINDER_DAYS = (3, 1)

# Plan prices in euros
PRICE_MONTHLY = 99
PRICE_QUARTERLY = 279
PRICE_ANNUAL_PER_MONTH = 82
PRICE_ANNUAL_TOTAL = 982
