"""
Analysis Prompts - Prompt text and result schemas per analysis type

Each analysis type has:
- a task line and the JSON schema the model is asked to return
- a pydantic result model requiring that type's top-level section plus
  `recommendations`

Results are validated before they are cached, so a response that parses as
JSON but misses its section is treated like malformed output and retried.

Usage:
    prompt = build_user_prompt('pricing_recommendations', project, competitors, overview)
    raw = engine.complete(SYSTEM_PROMPT, prompt, temperature=0.3)
    results = validate_analysis_result('pricing_recommendations', parse_json_response(raw))
"""

import json
import re
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from constants import MARKET_SEGMENTS


SYSTEM_PROMPT = (
    "You are an expert Indian real estate market analyst. You provide data-driven "
    "recommendations based on competitive market data. All monetary values are in "
    "INR (Indian Rupees). You always respond with valid JSON matching the requested "
    "schema exactly. Never include markdown, comments, or explanation outside the JSON."
)


# =============================================================================
# PROMPT TEXT
# =============================================================================

_RECOMMENDATION_SCHEMA = (
    '{ "category": "%s", "priority": "critical|high|medium|low", "title": "string", '
    '"description": "string", "confidenceScore": number, "estimatedImpact": "string", '
    '"actionItems": ["string"] }'
)

_POSITIONING_SEGMENTS = "|".join(MARKET_SEGMENTS)

ANALYSIS_TASKS = {
    'pricing_recommendations': (
        "Analyze the competitive landscape and provide pricing recommendations for this real estate project.",
        """{
  "optimalPricing": {
    "pricePerSqft": { "recommended": number, "range": { "min": number, "max": number }, "confidence": number },
    "floorRiseCharge": { "recommended": number, "range": { "min": number, "max": number } },
    "facingPremiums": {
      "parkFacing": { "recommended": number },
      "roadFacing": { "recommended": number },
      "cornerUnit": { "recommended": number }
    },
    "parkingCharges": { "covered": number, "open": number },
    "clubMembership": number,
    "maintenanceDeposit": number
  },
  "marketPositioning": {
    "segment": "%(segments)s",
    "pricePercentile": number,
    "narrative": "string"
  },
  "recommendations": [%(rec)s]
}""",
        'pricing',
    ),
    'revenue_planning': (
        "Provide revenue planning analysis for this real estate project based on competitive data.",
        """{
  "revenueTargets": {
    "totalProjectRevenue": number,
    "revenuePerUnitType": [{ "unitType": "string", "avgPrice": number, "count": number, "revenue": number }],
    "priceEscalationStrategy": {
      "phase1": { "pricePerSqft": number, "duration": "string" },
      "phase2": { "pricePerSqft": number, "duration": "string" },
      "phase3": { "pricePerSqft": number, "duration": "string" }
    }
  },
  "recommendations": [%(rec)s]
}""",
        'revenue',
    ),
    'absorption_rate': (
        "Predict absorption rate and sales velocity for this project based on competitive market data.",
        """{
  "absorption": {
    "predictedMonthlySales": number,
    "timeToSellOut": { "months": number, "confidence": number },
    "priceSensitivity": [{ "pricePoint": number, "estimatedMonthlySales": number, "timeToSellOut": number }]
  },
  "recommendations": [%(rec)s]
}""",
        'absorption',
    ),
    'demand_supply_gap': (
        "Analyze demand-supply gap in this locality for this project.",
        """{
  "demandSupply": {
    "overallAssessment": "oversupply|balanced|undersupply",
    "byUnitType": [{ "unitType": "string", "supply": number, "demandIndicator": "high|medium|low", "gap": "string" }],
    "saturationIndicators": { "projectDensity": "string", "priceStability": "string", "inventoryAge": "string" }
  },
  "recommendations": [%(rec)s]
}""",
        'demand_supply',
    ),
    'launch_timing': (
        "Recommend optimal launch timing for this project based on competitive landscape.",
        """{
  "launchTiming": {
    "recommendedLaunchWindow": { "quarter": "string", "year": number, "reason": "string" },
    "competitorPipeline": [{ "status": "string", "count": number, "implication": "string" }],
    "seasonalFactors": [{ "period": "string", "demandLevel": "high|medium|low", "reason": "string" }],
    "preLaunchStrategy": { "duration": "string", "priceDiscount": number, "targetBookings": number }
  },
  "recommendations": [%(rec)s]
}""",
        'launch_timing',
    ),
    'optimal_unit_mix': (
        "Recommend optimal unit mix for this project based on market demand signals.",
        """{
  "unitMix": {
    "recommended": [{
      "unitType": "string", "percentage": number, "count": number,
      "carpetAreaRange": { "min": number, "max": number },
      "pricePerSqftRange": { "min": number, "max": number },
      "rationale": "string"
    }],
    "marketDemandSignals": [{ "signal": "string", "source": "string", "impact": "string" }]
  },
  "recommendations": [%(rec)s]
}""",
        'unit_mix',
    ),
    'marketing_strategy': (
        "Develop marketing strategy recommendations based on competitive positioning.",
        """{
  "marketing": {
    "usps": ["string"],
    "competitiveAdvantages": ["string"],
    "competitiveDisadvantages": ["string"],
    "pricingNarrative": "string",
    "targetBuyerPersona": { "demographics": "string", "motivations": ["string"], "concerns": ["string"] },
    "keySellingPoints": ["string"],
    "channelRecommendations": [{ "channel": "string", "priority": "high|medium|low", "reason": "string" }]
  },
  "recommendations": [%(rec)s]
}""",
        'marketing',
    ),
    'comprehensive': (
        "Provide a comprehensive competitive analysis covering ALL aspects: pricing, revenue, "
        "absorption, demand-supply, launch timing, unit mix, and marketing.",
        """{
  "pricing": { "optimalPricePerSqft": number, "range": { "min": number, "max": number }, "segment": "string", "pricePercentile": number },
  "revenue": { "totalTarget": number, "escalationStrategy": "string" },
  "absorption": { "monthlySales": number, "timeToSellOut": number },
  "demandSupply": { "assessment": "string", "gaps": ["string"] },
  "launchTiming": { "recommended": "string", "reason": "string" },
  "unitMix": [{ "unitType": "string", "percentage": number, "rationale": "string" }],
  "marketing": { "usps": ["string"], "targetBuyer": "string", "keyMessage": "string" },
  "marketPositioning": {
    "segment": "%(segments)s",
    "pricePercentile": number,
    "advantages": ["string"],
    "disadvantages": ["string"]
  },
  "recommendations": [%(rec)s]
}""",
        'string',
    ),
}


def _to_json(value: Any) -> str:
    return json.dumps(value, indent=2, default=str)


def build_user_prompt(analysis_type: str, project: Dict[str, Any],
                      competitors: List[Dict[str, Any]], overview: Dict[str, Any]) -> str:
    """
    Build the user message for one analysis type.

    Raises:
        KeyError: unknown analysis_type (callers validate first)
    """
    task, schema, category = ANALYSIS_TASKS[analysis_type]
    schema = schema % {
        'rec': _RECOMMENDATION_SCHEMA % category,
        'segments': _POSITIONING_SEGMENTS,
    }

    parts = [
        task,
        "",
        "PROJECT DATA:",
        _to_json(project),
        "",
        f"COMPETITOR DATA ({len(competitors)} projects, outliers removed):",
        _to_json(competitors),
        "",
        "MARKET OVERVIEW:",
        _to_json(overview),
        "",
        "Return JSON with this exact schema:",
        schema,
    ]
    return "\n".join(parts)


# =============================================================================
# RESPONSE PARSING
# =============================================================================

_FENCE_RE = re.compile(r"^\s*```(?:json)?\s*(.*?)\s*```\s*$", re.DOTALL)


def parse_json_response(raw: str) -> Dict[str, Any]:
    """
    Parse the model's reply as a JSON object.

    A single surrounding ``` / ```json fence is tolerated; anything else that is
    not a JSON object raises ValueError.
    """
    if raw is None:
        raise ValueError("Empty response from reasoning engine")
    match = _FENCE_RE.match(raw)
    text = match.group(1) if match else raw.strip()
    parsed = json.loads(text)
    if not isinstance(parsed, dict):
        raise ValueError(f"Expected a JSON object, got {type(parsed).__name__}")
    return parsed


# =============================================================================
# RESULT SCHEMAS
# =============================================================================

class _LenientModel(BaseModel):
    """Unknown keys are kept; the schema only pins what callers rely on."""
    model_config = ConfigDict(extra='allow')


class Recommendation(_LenientModel):
    title: str
    category: Optional[str] = None
    priority: Optional[str] = None
    description: Optional[str] = None
    confidenceScore: Optional[float] = None
    estimatedImpact: Optional[str] = None
    actionItems: List[str] = Field(default_factory=list)


class PricePoint(_LenientModel):
    recommended: float


class OptimalPricing(_LenientModel):
    pricePerSqft: PricePoint


class MarketPositioning(_LenientModel):
    segment: Optional[str] = None
    pricePercentile: Optional[float] = None


class AnalysisResult(_LenientModel):
    recommendations: List[Recommendation]


class PricingRecommendationsResult(AnalysisResult):
    optimalPricing: OptimalPricing
    marketPositioning: Optional[MarketPositioning] = None


class RevenuePlanningResult(AnalysisResult):
    revenueTargets: Dict[str, Any]


class AbsorptionRateResult(AnalysisResult):
    absorption: Dict[str, Any]


class DemandSupplyGapResult(AnalysisResult):
    demandSupply: Dict[str, Any]


class LaunchTimingResult(AnalysisResult):
    launchTiming: Dict[str, Any]


class OptimalUnitMixResult(AnalysisResult):
    unitMix: Dict[str, Any]


class MarketingStrategyResult(AnalysisResult):
    marketing: Dict[str, Any]


class ComprehensiveResult(AnalysisResult):
    pricing: Dict[str, Any]
    marketPositioning: Optional[MarketPositioning] = None


RESULT_MODELS = {
    'pricing_recommendations': PricingRecommendationsResult,
    'revenue_planning': RevenuePlanningResult,
    'absorption_rate': AbsorptionRateResult,
    'demand_supply_gap': DemandSupplyGapResult,
    'launch_timing': LaunchTimingResult,
    'optimal_unit_mix': OptimalUnitMixResult,
    'marketing_strategy': MarketingStrategyResult,
    'comprehensive': ComprehensiveResult,
}


def validate_analysis_result(analysis_type: str, data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Validate a parsed response against its analysis type's schema.

    Returns the document with only the keys the model supplied.

    Raises:
        pydantic.ValidationError (a ValueError) when required sections are missing
    """
    model = RESULT_MODELS[analysis_type].model_validate(data)
    return model.model_dump(exclude_unset=True)


def extract_market_positioning(results: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """
    Positioning summary from either a dedicated marketPositioning section or
    the comprehensive pricing section. None when neither is present.
    """
    positioning = results.get('marketPositioning') or {}
    pricing = results.get('pricing') or {}
    marketing = results.get('marketing') or {}
    if not positioning and not pricing.get('segment'):
        return None

    return {
        'segment': positioning.get('segment') or pricing.get('segment'),
        'pricePercentile': positioning.get('pricePercentile') or pricing.get('pricePercentile'),
        'competitiveAdvantages': (
            positioning.get('advantages') or marketing.get('competitiveAdvantages') or []
        ),
        'competitiveDisadvantages': (
            positioning.get('disadvantages') or marketing.get('competitiveDisadvantages') or []
        ),
    }
