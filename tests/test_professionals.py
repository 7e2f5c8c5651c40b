from datetime import timedelta

import pytest
from fastapi import HTTPException

from casaora.domain.professionals.schemas import ProfessionalProfileUpdate
from casaora.domain.professionals.service import ProfessionalService
from casaora.models import ProfessionalProfile, Profile
from tests.conftest import NOW


def test_directory_sorted_by_rating_and_filtered(db, make_professional, make_profile):
    top = make_professional(rating=4.9, review_count=40)
    runner_up = make_professional(rating=4.9, review_count=12)
    cook = make_professional(rating=4.2, service_category="cooking")
    make_professional(rating=5.0, city="Cali")
    make_professional(rating=5.0, is_active=False)
    suspended = make_professional(rating=5.0)
    suspended.account_status = "suspended"
    db.commit()

    service = ProfessionalService(db)

    page = service.search_directory(city="bogotá")
    assert [p["id"] for p in page["professionals"]] == [top.id, runner_up.id, cook.id]
    assert page["total"] == 3

    assert [p["id"] for p in service.search_directory(service="cook")["professionals"]] == [cook.id]
    assert service.search_directory(min_rating=4.5, city="Bogotá")["total"] == 2

    second = service.search_directory(city="Bogotá", page=2, page_size=2)
    assert [p["id"] for p in second["professionals"]] == [cook.id]
    assert second["page"] == 2


def test_directory_rate_filter(db, make_professional):
    make_professional(hourly_rate_cop=80_000)
    affordable = make_professional(hourly_rate_cop=35_000)
    result = ProfessionalService(db).search_directory(max_rate=40_000)
    assert [p["id"] for p in result["professionals"]] == [affordable.id]


def test_get_professional_detail(db, make_professional):
    pro = make_professional(skills=["ironing"], pet_friendly=True)
    hidden = make_professional(is_active=False)
    service = ProfessionalService(db)

    detail = service.get_professional(pro.id)
    assert detail["skills"] == ["ironing"]
    assert detail["pet_friendly"] is True
    assert detail["city"] == "Bogotá"

    with pytest.raises(HTTPException) as exc:
        service.get_professional(hidden.id)
    assert exc.value.status_code == 404


def test_update_profile_splits_account_and_professional_fields(db, make_professional):
    pro = make_professional()
    update = ProfessionalProfileUpdate(
        full_name="Ana María",
        phone_number="300 123 4567",
        bio="<b>Ten years</b> of deep cleaning",
        hourly_rate_cop=55_000,
    )

    detail = ProfessionalService(db).update_own_profile(pro, update)

    assert detail["full_name"] == "Ana María"
    assert detail["bio"] == "Ten years of deep cleaning"
    assert detail["hourly_rate_cop"] == 55_000
    profile = db.query(Profile).filter(Profile.id == pro.id).one()
    assert profile.phone_number == "+573001234567"
    assert profile.professional_profile.service_category == "cleaning"


def test_update_creates_missing_professional_profile(db, make_profile):
    user = make_profile("professional")
    ProfessionalService(db).update_own_profile(user, ProfessionalProfileUpdate(service_category="laundry"))
    created = db.query(ProfessionalProfile).filter(ProfessionalProfile.profile_id == user.id).one()
    assert created.service_category == "laundry"
    assert created.is_active is True


def test_coordinates_must_come_together():
    assert ProfessionalProfileUpdate(latitude=4.6, longitude=-74.1).latitude == 4.6
    with pytest.raises(ValueError):
        ProfessionalProfileUpdate(latitude=4.6)
    with pytest.raises(ValueError):
        ProfessionalProfileUpdate(latitude=95, longitude=0)


def test_dashboard_stats(db, make_profile, make_professional, make_booking):
    customer = make_profile()
    pro = make_professional(total_completed_bookings=12, total_earnings_cop=900_000, rating=4.7, review_count=9)
    for days in range(1, 8):
        make_booking(customer, pro, scheduled_start=NOW + timedelta(days=days))
    make_booking(customer, pro, scheduled_start=NOW - timedelta(days=1))
    make_booking(customer, pro, status="completed", amount_captured=80_000, completed_at=NOW - timedelta(days=1))
    make_booking(
        customer, pro, status="completed", amount_captured=50_000, completed_at=NOW - timedelta(days=5)
    )

    stats = ProfessionalService(db).get_dashboard_stats(pro, now=NOW)

    assert stats["upcoming_bookings_count"] == 7
    assert len(stats["upcoming_bookings"]) == 5
    assert stats["upcoming_bookings"][0]["scheduled_start"] == NOW + timedelta(days=1)
    assert stats["earnings_this_month"] == 80_000
    assert stats["total_completed_bookings"] == 12
    assert stats["rating"] == 4.7
    assert stats["balance"]["available_balance"] == 0


def test_dashboard_requires_professional_profile(db, make_profile):
    with pytest.raises(HTTPException) as exc:
        ProfessionalService(db).get_dashboard_stats(make_profile("professional"), now=NOW)
    assert exc.value.status_code == 404
