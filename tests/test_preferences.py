import pytest
from proximity_notifier.schemas.event import EVENT_CATEGORIES
from proximity_notifier.services.candidates import Candidate
from proximity_notifier.services.preferences import PreferenceFilter, exclusion_reason
from conftest import make_event, make_profile


def _ids(candidates):
    return {c.user_id for c in candidates}


def test_excludes_unreachable_disabled_and_uninterested_users():
    candidates = [
        Candidate(make_profile("ok", preferred_categories={"Gospel Concert"})),
        Candidate(make_profile("no-token", push_destination=None)),
        Candidate(make_profile("blank-token", push_destination="  ")),
        Candidate(make_profile("disabled", notifications_enabled=False)),
        Candidate(make_profile("jazz-only", preferred_categories={"Jazz Room"})),
    ]

    kept = PreferenceFilter().filter(candidates, make_event(category="Gospel Concert"))

    assert _ids(kept) == {"ok"}


@pytest.mark.parametrize("category", sorted(EVENT_CATEGORIES))
def test_empty_preferences_match_every_category(category):
    profile = make_profile("open-minded", preferred_categories=set())
    assert exclusion_reason(profile, make_event(category=category)) is None


def test_exclusion_reasons():
    event = make_event()
    assert exclusion_reason(make_profile("a", push_destination=None), event) == "no_push_destination"
    assert exclusion_reason(make_profile("b", notifications_enabled=False), event) == "notifications_disabled"
    assert exclusion_reason(make_profile("c", preferred_categories={"Carnival"}), event) == "category_not_preferred"
