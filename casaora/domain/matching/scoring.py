"""
Professional match scoring.

Weights: skills 30, languages 20, experience 15, rating 15, availability 10,
price 5, special requirements 5. The total is rounded half up.
"""

import logging
import time
from typing import Any, Optional

from ...shared.money import round_half_up
from ..amara.llm import StructuredLLM
from ..amara.schemas import MatchingCriteria

logger = logging.getLogger(__name__)

SYSTEM_PROMPT_EN = """You are a matching criteria parser for Casaora, a household services platform.

Your job is to convert natural language requirements into structured criteria for finding professionals.

Skills:
- deep cleaning, eco-friendly products, pet care, childcare, cooking, ironing, organization

Availability:
- weekdays: Monday through Friday
- weekends: Saturday and Sunday
- evenings: After 6pm
- mornings: Before 12pm
- flexible: Flexible schedule

Examples:
- "experienced with kids" -> childcare skill + 2+ years experience
- "speaks English" -> languages: ['english']
- "weekends" -> availability.weekends: true
- "under $50k/hour" -> price_range.max_hourly_rate_cop: 50000
- "certified" -> verification_level: 'verified'
- "pet friendly" -> special_requirements.pet_friendly: true

Extract all criteria and make intelligent inferences about requirements."""

SYSTEM_PROMPT_ES = """Eres un parser de criterios de coincidencia para Casaora, una plataforma de servicios domésticos.

Tu trabajo es convertir requisitos en lenguaje natural en criterios estructurados para buscar profesionales.

Habilidades:
- limpieza profunda, productos ecológicos, cuidado de mascotas, cuidado de niños, cocinar, planchar, organización

Disponibilidad:
- weekdays: Lunes a viernes
- weekends: Sábados y domingos
- evenings: Después de las 6pm
- mornings: Antes de las 12pm
- flexible: Horario flexible

Ejemplos:
- "con experiencia con niños" -> habilidad childcare + 2+ años de experiencia
- "habla inglés" -> languages: ['english']
- "fines de semana" -> availability.weekends: true
- "menos de $50k/hora" -> price_range.max_hourly_rate_cop: 50000
- "certificado" -> verification_level: 'verified'

Extrae todos los criterios y haz inferencias inteligentes sobre los requisitos."""


def parse_matching_criteria(
    query: str, locale: str = "en", llm: Optional[StructuredLLM] = None
) -> MatchingCriteria:
    llm = llm or StructuredLLM()
    started = time.monotonic()
    try:
        criteria = llm.generate(
            MatchingCriteria,
            system=SYSTEM_PROMPT_ES if locale == "es" else SYSTEM_PROMPT_EN,
            user_message=query,
            temperature=0.2,
        )
    except Exception as e:
        logger.error(f"❌ Matching criteria parsing failed ({locale}): {e}")
        raise

    logger.info(
        "🔍 Matching criteria parsed: "
        f"skills={bool(criteria.skills)} languages={bool(criteria.languages)} "
        f"experience={criteria.experience_years is not None} "
        f"price_range={criteria.price_range is not None} "
        f"({time.monotonic() - started:.2f}s, {locale})"
    )
    return criteria


def criteria_to_filters(criteria: MatchingCriteria) -> dict:
    filters: dict[str, Any] = {}

    if criteria.skills:
        filters["skills"] = criteria.skills
    if criteria.languages:
        filters["languages"] = criteria.languages
    if criteria.experience_years is not None:
        filters["min_experience_years"] = criteria.experience_years
    if criteria.verification_level and criteria.verification_level != "any":
        filters["verification_level"] = criteria.verification_level

    if criteria.price_range:
        if criteria.price_range.min_hourly_rate_cop:
            filters["min_hourly_rate"] = criteria.price_range.min_hourly_rate_cop
        if criteria.price_range.max_hourly_rate_cop:
            filters["max_hourly_rate"] = criteria.price_range.max_hourly_rate_cop

    if criteria.minimum_rating:
        filters["min_rating"] = criteria.minimum_rating
    if criteria.max_distance:
        filters["max_distance_km"] = criteria.max_distance

    special = criteria.special_requirements
    if special:
        if special.pet_friendly:
            filters["pet_friendly"] = True
        if special.background_check:
            filters["has_background_check"] = True
        if special.insurance:
            filters["has_insurance"] = True
        if special.eco_friendly:
            filters["uses_eco_products"] = True

    if criteria.availability:
        filters["availability"] = criteria.availability.model_dump()
    if criteria.sort_preference:
        filters["sort_by"] = criteria.sort_preference

    return filters


def _fraction_score(required: list[tuple[Any, Any]], points: int) -> float:
    """`points` scaled by how many (wanted, actual) pairs agree; full points when nothing is asked"""
    if not required:
        return points
    matched = sum(1 for wanted, actual in required if wanted == actual)
    return matched / len(required) * points


def calculate_match_score(criteria: MatchingCriteria, professional: dict) -> dict:
    """
    Score a professional against parsed criteria.

    `professional` keys: skills, languages, experience_years, rating,
    hourly_rate_cop, verification_level, availability (dict or None),
    special_capabilities (dict or None).
    """
    breakdown = {}

    pro_skills = [s.lower() for s in professional.get("skills") or []]
    if criteria.skills:
        matched = [s for s in criteria.skills if any(s.lower() in p for p in pro_skills)]
        breakdown["skills"] = len(matched) / len(criteria.skills) * 30
    else:
        breakdown["skills"] = 30

    pro_languages = [lang.lower() for lang in professional.get("languages") or []]
    if criteria.languages:
        matched = [lang for lang in criteria.languages if lang.lower() in pro_languages]
        breakdown["languages"] = len(matched) / len(criteria.languages) * 20
    else:
        breakdown["languages"] = 20

    experience = professional.get("experience_years") or 0
    if criteria.experience_years is not None and experience < criteria.experience_years:
        breakdown["experience"] = experience / criteria.experience_years * 15
    else:
        breakdown["experience"] = 15

    rating = professional.get("rating") or 0
    breakdown["rating"] = rating / 5 * 15 if rating >= (criteria.minimum_rating or 0) else 0

    pro_availability = professional.get("availability")
    if criteria.availability is not None and pro_availability is not None:
        wanted = criteria.availability
        breakdown["availability"] = _fraction_score(
            [
                (getattr(wanted, key), bool(pro_availability.get(key)))
                for key in ("weekdays", "weekends", "evenings")
                if getattr(wanted, key) is not None
            ],
            10,
        )
    else:
        breakdown["availability"] = 10

    max_rate = criteria.price_range.max_hourly_rate_cop if criteria.price_range else None
    if max_rate:
        breakdown["price"] = 5 if (professional.get("hourly_rate_cop") or 0) <= max_rate else 0
    else:
        breakdown["price"] = 5

    capabilities = professional.get("special_capabilities")
    if criteria.special_requirements is not None and capabilities is not None:
        special = criteria.special_requirements
        breakdown["special"] = _fraction_score(
            [
                (True, bool(capabilities.get(key)))
                for key in ("pet_friendly", "background_check", "insurance", "eco_friendly")
                if getattr(special, key) is not None
            ],
            5,
        )
    else:
        breakdown["special"] = 5

    return {"score": round_half_up(sum(breakdown.values())), "breakdown": breakdown}
