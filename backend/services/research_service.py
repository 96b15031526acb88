"""
Competitor Research Service - AI-assisted discovery of competitor projects

Flow for research_locality():

    1. Research: one reasoning-engine call lists the projects on sale in the
       locality, as free text (URLs it cites are kept as sources).
    2. Extract: the text is turned into {"projects": [...]} JSON; at most
       len(EXTRACTION_TEMPERATURES) attempts, lower temperature on the retry.
    3. Store: each project goes through CompetitorService.ingest() with data
       source 'ai_research'. Existing records (same name and area) only get
       their empty pricing / scale fields filled.

The reasoning engine is injected (see services.reasoning_client), so the
service never builds an SDK client itself.
"""

import logging
import re
import time
import uuid
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from constants import PROJECT_STATUSES, PROJECT_TYPES, UNDER_CONSTRUCTION
from services.analysis_prompts import parse_json_response
from services.errors import MarketIntelError, ReasoningEngineUnavailable, ResearchFailedError
from utils.normalize import ValidationError

logger = logging.getLogger(__name__)

RESEARCH_DATA_SOURCE = 'ai_research'
RESEARCH_DEFAULT_CONFIDENCE = 50
RESEARCH_TEMPERATURE = 0.3
EXTRACTION_TEMPERATURES = (0.2, 0.1)
MAX_SOURCES = 20

# Fields an existing competitor may be enriched with
MERGE_PATHS = (
    'pricing.pricePerSqft.min',
    'pricing.pricePerSqft.max',
    'pricing.pricePerSqft.avg',
    'pricing.floorRiseCharge',
    'pricing.parkingCharges.covered',
    'pricing.parkingCharges.open',
    'totalUnits',
    'totalTowers',
    'reraNumber',
)

_URL_RE = re.compile(r'https?://[^\s)"\]]+')


# =============================================================================
# PROMPTS
# =============================================================================

RESEARCH_SYSTEM_PROMPT = (
    "You are a real estate market research analyst specializing in Indian "
    "property markets. Report concrete figures and cite the portals, developer "
    "sites, RERA records or news articles they come from. Mark estimated "
    "figures as estimates."
)

EXTRACTION_SYSTEM_PROMPT = (
    "You are a data extraction specialist. Return ONLY valid JSON with no "
    "markdown, comments or explanation."
)


def build_research_prompt(city: str, area: str, project_type: Optional[str] = None,
                          additional_context: Optional[str] = None) -> str:
    type_filter = project_type or 'residential'
    prompt = (
        f"List ALL major {type_filter} real estate projects currently available for sale "
        f"in {area}, {city}, India.\n\n"
        "For each project give as much of the following as you can:\n"
        "- Project name and developer\n"
        "- RERA registration number\n"
        "- Price per sqft (min, max, average) and base price range\n"
        "- Unit types with carpet area, price range and unit counts\n"
        "- Floor rise, facing premiums, PLC, parking, club membership, maintenance "
        "deposit and legal charges; GST and stamp duty rates\n"
        "- Project status and expected possession\n"
        "- Total units and towers\n"
        "- Key amenities\n\n"
        "Include well-known developers and smaller local projects."
    )
    if additional_context:
        prompt += f"\n\nAdditional context: {additional_context}"
    return prompt


def build_extraction_prompt(raw_research: str, city: str, area: str) -> str:
    return f"""Parse the following real estate market research for {area}, {city} into JSON.

RULES:
1. Return an object with a "projects" key containing an array.
2. Numeric fields are numbers, not strings. Use null for unknown values.
3. Amounts are absolute INR: 1 Lakh = 100000, 1 Crore = 10000000.
   "85 Lakhs" = 8500000, "1.2 Cr" = 12000000, "8,500/sqft" = 8500.
4. confidence is 30-80: 30 for estimated data, 50 for partially verified,
   70-80 for data with clear sources.

Schema:
{{
  "projects": [
    {{
      "projectName": "string",
      "developerName": "string",
      "reraNumber": "string or null",
      "location": {{"city": "{city}", "area": "{area}", "state": "string or null"}},
      "projectType": "{'|'.join(PROJECT_TYPES)}",
      "projectStatus": "{'|'.join(PROJECT_STATUSES)}",
      "totalUnits": "number or null",
      "totalTowers": "number or null",
      "pricing": {{
        "pricePerSqft": {{"min": "number", "max": "number", "avg": "number"}},
        "basePriceRange": {{"min": "number", "max": "number"}},
        "floorRiseCharge": "number",
        "parkingCharges": {{"covered": "number", "open": "number"}},
        "gstRate": "number"
      }},
      "unitMix": [
        {{
          "unitType": "1BHK|2BHK|3BHK|4BHK|Penthouse|Studio|Villa",
          "carpetAreaRange": {{"min": "number", "max": "number"}},
          "pricePerSqftRange": {{"min": "number", "max": "number"}},
          "totalCount": "number or null"
        }}
      ],
      "amenities": {{"gym": "boolean", "swimmingPool": "boolean", "clubhouse": "boolean"}},
      "confidence": "number 30-80"
    }}
  ]
}}

RAW RESEARCH DATA:
{raw_research}"""


# =============================================================================
# EXTRACTION SCHEMA
# =============================================================================

class _ExtractedModel(BaseModel):
    model_config = ConfigDict(extra='allow', coerce_numbers_to_str=True)


class ResearchedProject(_ExtractedModel):
    projectName: Optional[str] = None
    developerName: Optional[str] = None
    reraNumber: Optional[str] = None
    location: Dict[str, Any] = Field(default_factory=dict)
    projectType: Optional[str] = None
    projectStatus: Optional[str] = None
    totalUnits: Optional[int] = None
    totalTowers: Optional[int] = None
    pricing: Dict[str, Any] = Field(default_factory=dict)
    unitMix: List[Dict[str, Any]] = Field(default_factory=list)
    amenities: Dict[str, Any] = Field(default_factory=dict)
    confidence: Optional[int] = None


class ExtractionResult(_ExtractedModel):
    projects: List[ResearchedProject]


def extract_sources(text: str) -> List[Dict[str, str]]:
    """Distinct URLs cited in the research text, first MAX_SOURCES kept."""
    sources = []
    seen = set()
    for url in _URL_RE.findall(text or ''):
        url = url.rstrip('.,;')
        if url in seen:
            continue
        seen.add(url)
        sources.append({'url': url, 'title': url.rstrip('/').rsplit('/', 1)[-1] or url})
    return sources[:MAX_SOURCES]


def to_competitor_record(project: ResearchedProject, city: str, area: str) -> Dict[str, Any]:
    """Researched project -> CompetitorService.ingest() record, pinned to the locality."""
    project_type = project.projectType if project.projectType in PROJECT_TYPES else 'residential'
    status = project.projectStatus if project.projectStatus in PROJECT_STATUSES else UNDER_CONSTRUCTION
    confidence = project.confidence or RESEARCH_DEFAULT_CONFIDENCE
    record = {
        'projectName': project.projectName.strip(),
        'developerName': project.developerName.strip(),
        'location': {'city': city, 'area': area, 'state': project.location.get('state')},
        'projectType': project_type,
        'projectStatus': status,
        'pricing': project.pricing,
        'unitMix': project.unitMix,
        'amenities': {k: v for k, v in project.amenities.items() if isinstance(v, bool)},
        'confidenceScore': max(0, min(100, confidence)),
    }
    for field in ('reraNumber', 'totalUnits', 'totalTowers'):
        value = getattr(project, field)
        if value is not None:
            record[field] = value
    return record


# =============================================================================
# SERVICE
# =============================================================================

class CompetitorResearchService:
    """
    Args:
        reasoning_engine: ReasoningEngine (complete(system, user, temperature) -> str)
        competitor_service: exposes ingest(org, record, data_source, user_id=, merge_paths=)
        timer: monotonic seconds, for durationMs
    """

    def __init__(self, reasoning_engine, competitor_service,
                 timer: Callable[[], float] = time.monotonic):
        self.reasoning_engine = reasoning_engine
        self.competitor_service = competitor_service
        self.timer = timer

    def research_locality(self, organization_id: str, city: str, area: str,
                          project_type: Optional[str] = None,
                          additional_context: Optional[str] = None,
                          user_id: Optional[str] = None) -> Dict[str, Any]:
        started = self.timer()
        city, area = city.strip(), area.strip()
        warnings: List[str] = []

        logger.info("Research started for %s, %s org=%s", area, city, organization_id)
        raw_research = self._research(city, area, project_type, additional_context)
        sources = extract_sources(raw_research)
        projects = self._extract(raw_research, city, area, warnings)

        created, updated, stored = 0, 0, []
        for project in projects:
            if not (project.projectName or '').strip() or not (project.developerName or '').strip():
                warnings.append(f'Skipped project with missing name/developer: {project.projectName!r}')
                continue
            record = to_competitor_record(project, city, area)
            try:
                outcome, competitor, _ = self.competitor_service.ingest(
                    organization_id, record, RESEARCH_DATA_SOURCE,
                    user_id=user_id, merge_paths=MERGE_PATHS,
                )
            except ValidationError as e:
                warnings.append(f'Error saving "{record["projectName"]}": {e}')
                continue
            except MarketIntelError as e:
                warnings.append(f'Duplicate detected for "{record["projectName"]}": {e.message}')
                continue
            if outcome == 'created':
                created += 1
            elif outcome == 'updated':
                updated += 1
            if outcome != 'unchanged':
                stored.append(competitor)

        duration_ms = round((self.timer() - started) * 1000)
        logger.info("Research complete for %s, %s: found=%d created=%d updated=%d in %dms",
                    area, city, len(projects), created, updated, duration_ms)

        return {
            'researchId': uuid.uuid4().hex,
            'status': 'partial' if len(warnings) > len(projects) / 2 else 'completed',
            'projectsFound': len(projects),
            'projectsCreated': created,
            'projectsUpdated': updated,
            'projects': stored,
            'sources': sources,
            'researchSummary': (
                f'Found {len(projects)} projects in {area}, {city}. '
                f'Created {created} new records, enriched {updated} existing records.'
            ),
            'warnings': warnings,
            'modelName': getattr(self.reasoning_engine, 'model_name', None),
            'durationMs': duration_ms,
        }

    def _research(self, city: str, area: str, project_type: Optional[str],
                  additional_context: Optional[str]) -> str:
        prompt = build_research_prompt(city, area, project_type, additional_context)
        try:
            raw = self.reasoning_engine.complete(RESEARCH_SYSTEM_PROMPT, prompt, RESEARCH_TEMPERATURE)
        except ReasoningEngineUnavailable:
            raise
        except Exception as e:
            logger.error("Research call failed for %s, %s: %s", area, city, e)
            raise ResearchFailedError(f'AI research failed: {e}', city=city, area=area) from e
        if not (raw or '').strip():
            raise ResearchFailedError('AI research returned no content', city=city, area=area)
        return raw

    def _extract(self, raw_research: str, city: str, area: str,
                 warnings: List[str]) -> List[ResearchedProject]:
        """Bounded retry over EXTRACTION_TEMPERATURES."""
        prompt = build_extraction_prompt(raw_research, city, area)
        last_error = None
        for attempt, temperature in enumerate(EXTRACTION_TEMPERATURES, start=1):
            try:
                raw = self.reasoning_engine.complete(EXTRACTION_SYSTEM_PROMPT, prompt, temperature)
                return ExtractionResult.model_validate(parse_json_response(raw)).projects
            except ReasoningEngineUnavailable:
                raise
            except Exception as e:
                last_error = e
                logger.warning("Extraction attempt %d/%d failed (temperature=%s): %s",
                               attempt, len(EXTRACTION_TEMPERATURES), temperature, e)
                if attempt < len(EXTRACTION_TEMPERATURES):
                    warnings.append(f'Extraction attempt {attempt} failed, retrying')

        raise ResearchFailedError(
            f'Failed to extract structured data after {len(EXTRACTION_TEMPERATURES)} attempts: {last_error}',
            city=city, area=area,
        ) from last_error
