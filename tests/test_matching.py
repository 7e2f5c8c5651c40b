import pytest
from fastapi import HTTPException

from casaora.domain.amara.llm import AmaraUnavailableError
from casaora.domain.amara.schemas import MatchingCriteria
from casaora.domain.matching.scoring import (
    calculate_match_score,
    criteria_to_filters,
    parse_matching_criteria,
)
from casaora.domain.matching.service import SmartMatchingService
from tests.conftest import FakeLLM

PERFECT = {
    "skills": ["deep cleaning", "pet care"],
    "languages": ["spanish", "english"],
    "experience_years": 6,
    "rating": 5,
    "hourly_rate_cop": 40_000,
    "availability": None,
    "special_capabilities": None,
}


def test_perfect_match_scores_100():
    criteria = MatchingCriteria(skills=["deep cleaning"], languages=["english"], experience_years=3)
    result = calculate_match_score(criteria, PERFECT)
    assert result["score"] == 100
    assert result["breakdown"]["skills"] == 30


def test_partial_matches_scale_each_component():
    criteria = MatchingCriteria(
        skills=["deep cleaning", "cooking"],
        languages=["english", "french"],
        experience_years=4,
        price_range={"max_hourly_rate_cop": 30_000},
    )
    professional = {**PERFECT, "experience_years": 2, "rating": 4}

    breakdown = calculate_match_score(criteria, professional)["breakdown"]

    assert breakdown["skills"] == 15
    assert breakdown["languages"] == 10
    assert breakdown["experience"] == 7.5
    assert breakdown["rating"] == pytest.approx(12)
    assert breakdown["price"] == 0
    assert calculate_match_score(criteria, professional)["score"] == 60


def test_rating_below_minimum_scores_nothing():
    criteria = MatchingCriteria(minimum_rating=4.5)
    assert calculate_match_score(criteria, {**PERFECT, "rating": 4})["breakdown"]["rating"] == 0


def test_special_requirements_fraction():
    criteria = MatchingCriteria(special_requirements={"pet_friendly": True, "insurance": True})
    professional = {**PERFECT, "special_capabilities": {"pet_friendly": True, "insurance": False}}
    assert calculate_match_score(criteria, professional)["breakdown"]["special"] == 2.5


def test_availability_compares_requested_flags():
    criteria = MatchingCriteria(availability={"weekdays": True, "weekends": True, "evenings": False})
    professional = {**PERFECT, "availability": {"weekdays": True, "weekends": False, "evenings": False}}
    assert calculate_match_score(criteria, professional)["breakdown"]["availability"] == pytest.approx(20 / 3)


def test_criteria_to_filters():
    criteria = MatchingCriteria(
        skills=["ironing"],
        verification_level="verified",
        price_range={"min_hourly_rate_cop": 20_000, "max_hourly_rate_cop": 50_000},
        minimum_rating=4,
        special_requirements={"pet_friendly": True, "background_check": True},
        sort_preference="price_low",
    )
    filters = criteria_to_filters(criteria)
    assert filters["skills"] == ["ironing"]
    assert filters["verification_level"] == "verified"
    assert filters["min_hourly_rate"] == 20_000
    assert filters["max_hourly_rate"] == 50_000
    assert filters["min_rating"] == 4
    assert filters["pet_friendly"] is True
    assert filters["has_background_check"] is True
    assert filters["sort_by"] == "price_low"
    assert "verification_level" not in criteria_to_filters(MatchingCriteria(verification_level="any"))


def test_parse_uses_locale_prompt():
    llm = FakeLLM(MatchingCriteria(skills=["cooking"]))
    criteria = parse_matching_criteria("alguien que cocine", locale="es", llm=llm)
    assert criteria.skills == ["cooking"]
    assert llm.requests[0]["schema"] is MatchingCriteria
    assert llm.requests[0]["system"].startswith("Eres un parser")


# ============================================================================
# Service
# ============================================================================


@pytest.fixture
def roster(make_professional):
    return {
        "expert": make_professional(
            hourly_rate_cop=45_000, skills=["deep cleaning"], languages=["english"], rating=4.9, experience_years=8
        ),
        "cheap": make_professional(
            hourly_rate_cop=25_000, skills=["deep cleaning"], languages=["english"], rating=4.9, experience_years=8
        ),
        "elsewhere": make_professional(hourly_rate_cop=30_000, city="Medellín", skills=["cooking"], rating=4.0),
        "inactive": make_professional(is_active=False, skills=["deep cleaning"], rating=5),
    }


def test_find_matches_ranks_by_score_then_preference(db, roster):
    criteria = MatchingCriteria(skills=["deep cleaning"], languages=["english"], sort_preference="price_low")

    result = SmartMatchingService(db).find_matches(criteria=criteria, city="Bogotá")

    ids = [m["professional_id"] for m in result["matches"]]
    assert ids == [roster["cheap"].id, roster["expert"].id]
    assert result["total"] == 2
    assert result["filters"]["skills"] == ["deep cleaning"]


def test_find_matches_applies_hard_filters(db, roster):
    criteria = MatchingCriteria(price_range={"max_hourly_rate_cop": 30_000})
    result = SmartMatchingService(db).find_matches(criteria=criteria, limit=1)
    assert result["total"] == 2
    assert len(result["matches"]) == 1


def test_find_matches_parses_free_text(db, roster):
    llm = FakeLLM(MatchingCriteria(skills=["cooking"]))
    result = SmartMatchingService(db, llm=llm).find_matches(query="someone who cooks")
    assert result["matches"][0]["professional_id"] == roster["elsewhere"].id


def test_find_matches_errors(db):
    with pytest.raises(HTTPException) as exc:
        SmartMatchingService(db).find_matches()
    assert exc.value.status_code == 400

    llm = FakeLLM(AmaraUnavailableError("no key"))
    with pytest.raises(HTTPException) as exc:
        SmartMatchingService(db, llm=llm).find_matches(query="cleaner")
    assert exc.value.status_code == 503

    llm = FakeLLM(ValueError("bad json"))
    with pytest.raises(HTTPException) as exc:
        SmartMatchingService(db, llm=llm).find_matches(query="cleaner")
    assert exc.value.status_code == 502
