from sheetgenius.models.plan import Plan
from sheetgenius.workers.reset_usage import reset_monthly_usage


def test_reset_monthly_usage(profile_store):
    profile_store.get_or_create("user_alice")
    profile_store.apply_billing("user_bob", Plan.STARTER, "cus_1", "sub_1")
    for user_id in ("user_alice", "user_bob"):
        profile_store.record_usage(user_id, None)

    result = reset_monthly_usage(plan=Plan.STARTER, store=profile_store)

    assert result["plan"] == "starter"
    assert result["profiles_reset"] == 1
    assert profile_store.get("user_bob").usage_count == 0
    assert profile_store.get("user_alice").usage_count == 1

    result = reset_monthly_usage(store=profile_store)

    assert result["plan"] == "all"
    assert profile_store.get("user_alice").usage_count == 0
