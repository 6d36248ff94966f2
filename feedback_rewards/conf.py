"""
Configuration for the Feedback Rewards engine.

Values are loaded through navconfig (``env/.env`` at the project root) and
every key has a fallback, so the engine runs with an empty environment.
"""
from navconfig import config


# Database
REWARDS_SCHEMA = config.get('REWARDS_SCHEMA', fallback='rewards')
REWARDS_DSN = config.get('REWARDS_DSN', fallback=None)

# External quality scoring service
SCORING_SERVICE_URL = config.get('FEEDBACK_SCORING_URL', fallback=None)
SCORING_SERVICE_TOKEN = config.get('FEEDBACK_SCORING_TOKEN', fallback=None)
SCORING_TIMEOUT = float(
    config.get('FEEDBACK_SCORING_TIMEOUT', fallback=5)
)
ANALYSIS_CACHE_TTL = config.getint(
    'FEEDBACK_ANALYSIS_CACHE_TTL', fallback=1800
)

# Persistence tiers
PERSISTENCE_TIMEOUT = float(
    config.get('REWARDS_PERSISTENCE_TIMEOUT', fallback=10)
)

# Points
BASE_FEEDBACK_POINTS = config.getint('FEEDBACK_BASE_POINTS', fallback=10)
MAX_QUALITY_POINTS = config.getint('FEEDBACK_MAX_QUALITY_POINTS', fallback=25)
QUALITY_THRESHOLD = float(
    config.get('FEEDBACK_QUALITY_THRESHOLD', fallback=0.6)
)

# Achievements
QUALITY_REVIEWER_WINDOW = config.getint(
    'QUALITY_REVIEWER_WINDOW', fallback=1000
)

# Reconciliation
RECONCILIATION_MAX_ATTEMPTS = config.getint(
    'RECONCILIATION_MAX_ATTEMPTS', fallback=3
)

# HTTP
REWARDS_API_BASE = config.get('REWARDS_API_BASE', fallback='/rewards/api/v1')
