import pytest

from turnboard.services import vendors as vendor_service


@pytest.fixture
def add_vendor(db_session):
    def _add(name, category="Plumbing", **overrides):
        payload = {"vendor_name": name, "category": category}
        payload.update(overrides)
        result = vendor_service.create_vendor(db_session, payload)
        assert result.success, result.error
        return result.data

    return _add


def test_create_vendor_defaults(db_session, add_vendor):
    vendor = add_vendor(
        "Drip Fix",
        contact_name="Pat Plumber",
        address={"street": "1 Main St", "city": "Springfield", "state": "IL", "zip": "62701"},
    )

    assert vendor["active"] is True
    assert vendor["preferred_vendor"] is False
    assert vendor["total_jobs_completed"] == 0
    assert vendor["rating"] is None
    assert vendor["address"]["city"] == "Springfield"


def test_unknown_category_is_invalid_input(db_session):
    result = vendor_service.create_vendor(db_session, {"vendor_name": "Acme", "category": "Roofing"})

    assert result.error_code == "invalid-input"


@pytest.mark.parametrize("rating, stored", [(4.44, 4.4), (1, 1.0), (5, 5.0)])
def test_rating_is_rounded_to_one_decimal(db_session, add_vendor, rating, stored):
    vendor = add_vendor("Cool Air", category="HVAC")

    result = vendor_service.update_vendor_rating(db_session, vendor["id"], rating)

    assert result.data["rating"] == stored


@pytest.mark.parametrize("rating", [0, 0.99, 5.01, None])
def test_rating_outside_range_is_refused(db_session, add_vendor, rating):
    vendor = add_vendor("Cool Air", category="HVAC")

    result = vendor_service.update_vendor_rating(db_session, vendor["id"], rating)

    assert result.error_code == "invalid-rating"
    assert vendor_service.get_vendor_by_id(db_session, vendor["id"]).data["rating"] is None


def test_search_matches_name_contact_and_category(db_session, add_vendor):
    add_vendor("Drip Fix", contact_name="Pat")
    add_vendor("Bright Paint", category="Paint", contact_name="Dripley")
    add_vendor("Spark Co", category="Electrical")
    add_vendor("Old Drip", active=False)

    by_name = vendor_service.search_vendors(db_session, "drip")
    by_category = vendor_service.search_vendors(db_session, "ELECTR")

    assert [vendor["vendor_name"] for vendor in by_name.data] == ["Bright Paint", "Drip Fix"]
    assert [vendor["vendor_name"] for vendor in by_category.data] == ["Spark Co"]


def test_categories_and_preferred_listing(db_session, add_vendor):
    low = add_vendor("Drip Fix")
    high = add_vendor("Pipe Pros")
    add_vendor("Spark Co", category="Electrical")
    add_vendor("Gone Plumbing", active=False)
    for vendor, rating in ((low, 3.5), (high, 4.8)):
        vendor_service.mark_vendor_preferred(db_session, vendor["id"])
        vendor_service.update_vendor_rating(db_session, vendor["id"], rating)

    categories = vendor_service.get_vendor_categories(db_session)
    preferred = vendor_service.get_preferred_vendors(db_session)
    plumbers = vendor_service.get_vendors_by_category(db_session, "Plumbing")
    all_plumbers = vendor_service.get_vendors_by_category(db_session, "Plumbing", active_only=False)

    assert categories.data == [{"name": "Electrical", "count": 1}, {"name": "Plumbing", "count": 2}]
    assert [vendor["id"] for vendor in preferred.data] == [high["id"], low["id"]]
    assert len(plumbers.data) == 2
    assert len(all_plumbers.data) == 3


def test_deactivate_and_reactivate(db_session, add_vendor):
    vendor = add_vendor("Drip Fix")

    assert vendor_service.deactivate_vendor(db_session, vendor["id"]).data["active"] is False
    assert vendor_service.get_active_vendors(db_session).data == []
    assert vendor_service.reactivate_vendor(db_session, vendor["id"]).data["active"] is True


def test_job_completion_counts_and_stamps(db_session, frozen_clock, add_vendor):
    vendor = add_vendor("Drip Fix")

    vendor_service.record_vendor_job_completion(db_session, vendor["id"])
    result = vendor_service.record_vendor_job_completion(db_session, vendor["id"])

    assert result.data["total_jobs_completed"] == 2
    assert result.data["last_service_date"] == frozen_clock.now


def test_bulk_create_and_statistics(db_session):
    bulk = vendor_service.create_bulk_vendors(
        db_session,
        [
            {"vendor_name": "Drip Fix", "category": "Plumbing", "rating": 4, "preferred_vendor": True},
            {"vendor_name": "Spark Co", "category": "Electrical", "rating": 3, "total_jobs_completed": 5},
            {"vendor_name": "", "category": "Paint"},
        ],
    )

    assert bulk.error_code == "partial-failure"
    assert bulk.data["success_count"] == 2
    assert bulk.data["errors"][0]["index"] == 2

    stats = vendor_service.get_vendor_statistics(db_session).data
    assert stats == {
        "total_vendors": 2,
        "active_vendors": 2,
        "inactive_vendors": 0,
        "preferred_vendors": 1,
        "by_category": {"Plumbing": 1, "Electrical": 1},
        "avg_rating": 3.5,
        "total_jobs_completed": 5,
    }


def test_update_and_delete(db_session, add_vendor):
    vendor = add_vendor("Drip Fix")

    updated = vendor_service.update_vendor(db_session, vendor["id"], {"phone": "555-0100"})
    refused = vendor_service.update_vendor(db_session, vendor["id"], {"rating": 5})

    assert updated.data["phone"] == "555-0100"
    assert refused.error_code == "invalid-input"
    assert vendor_service.delete_vendor(db_session, vendor["id"]).success
    assert vendor_service.get_vendor_by_id(db_session, vendor["id"]).error_code == "not-found"
