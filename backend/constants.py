"""
Centralized Constants - SINGLE SOURCE OF TRUTH

Competitor lifecycle statuses, amenity vocabulary, analysis types and the
freshness thresholds used across market aggregation and AI analysis.

DO NOT duplicate these definitions in other files.
"""

# =============================================================================
# COMPETITOR PROJECT CLASSIFICATION
# =============================================================================

PROJECT_TYPES = ['residential', 'commercial', 'mixed_use', 'plotted_development']

PRE_LAUNCH = 'pre_launch'
NEWLY_LAUNCHED = 'newly_launched'
UNDER_CONSTRUCTION = 'under_construction'
READY_TO_MOVE = 'ready_to_move'
COMPLETED = 'completed'

PROJECT_STATUSES = [PRE_LAUNCH, NEWLY_LAUNCHED, UNDER_CONSTRUCTION, READY_TO_MOVE, COMPLETED]

# Supply pipeline partition (demand-supply analysis)
UPCOMING_STATUSES = [PRE_LAUNCH, NEWLY_LAUNCHED]
ACTIVE_STATUSES = [UNDER_CONSTRUCTION, READY_TO_MOVE]

DATA_SOURCES = [
    'manual',
    'csv_import',
    'ai_research',
    'propstack',
    'squareyards',
    'zapkey',
    'web_research',
    'field_visit',
]

# Fixed amenity vocabulary for prevalence stats
AMENITY_NAMES = [
    'gym', 'swimmingPool', 'clubhouse', 'garden', 'playground',
    'powerBackup', 'security24x7', 'lifts', 'joggingTrack',
    'indoorGames', 'multipurposeHall', 'rainwaterHarvesting',
    'solarPanels', 'evCharging', 'concierge', 'coWorkingSpace',
]

DEFAULT_CONFIDENCE_SCORE = 50


# =============================================================================
# DATA FRESHNESS
# =============================================================================

FRESH_MAX_AGE_DAYS = 30    # age < 30 days
RECENT_MAX_AGE_DAYS = 90   # 30 <= age <= 90 days; older is stale

FRESH = 'fresh'
RECENT = 'recent'
STALE = 'stale'


# =============================================================================
# OUTLIER DETECTION
# =============================================================================

# Standard Tukey fence. Below OUTLIER_MIN_SAMPLE values detection is a no-op.
IQR_MULTIPLIER = 1.5
OUTLIER_MIN_SAMPLE = 5


# =============================================================================
# SNAPSHOTS
# =============================================================================

SNAPSHOT_TRIGGERS = ['manual', 'scheduled', 'on_demand']
TREND_MAX_MONTHS = 36


# =============================================================================
# AI ANALYSIS
# =============================================================================

ANALYSIS_TYPES = [
    'pricing_recommendations',
    'revenue_planning',
    'absorption_rate',
    'demand_supply_gap',
    'launch_timing',
    'optimal_unit_mix',
    'marketing_strategy',
    'comprehensive',
]

DEFAULT_ANALYSIS_TYPE = 'comprehensive'

MARKET_SEGMENTS = ['budget', 'affordable', 'mid_segment', 'premium', 'luxury', 'ultra_luxury']

# Reasoning engine retry policy: attempt number -> temperature
GENERATION_TEMPERATURES = (0.3, 0.2)
PROMPT_VERSION = '1.0'
