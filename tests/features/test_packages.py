"""
Tests for the feature package catalog and subscription windows.
"""

from datetime import UTC, datetime, timedelta
from uuid import uuid4

import pytest

from ppt.platform.features.exceptions import DuplicatePackageError, PackageNotFoundError
from ppt.platform.features.packages import FeaturePackageCatalog, subscription_is_active

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=UTC)


class TestSubscriptionIsActive:
    def test_open_ended(self):
        assert subscription_is_active(NOW - timedelta(days=1), None, NOW)

    def test_not_started(self):
        assert not subscription_is_active(NOW + timedelta(seconds=1), None, NOW)

    def test_starts_now(self):
        assert subscription_is_active(NOW, None, NOW)

    def test_expiry_is_exclusive(self):
        assert not subscription_is_active(NOW - timedelta(days=1), NOW, NOW)
        assert subscription_is_active(NOW - timedelta(days=1), NOW + timedelta(seconds=1), NOW)

    def test_inactive_flag(self):
        assert not subscription_is_active(NOW - timedelta(days=1), None, NOW, is_active=False)

    def test_naive_datetimes_treated_as_utc(self):
        started = (NOW - timedelta(hours=1)).replace(tzinfo=None)
        expires = (NOW + timedelta(hours=1)).replace(tzinfo=None)
        assert subscription_is_active(started, expires, NOW)


class TestCatalog:
    @pytest.fixture
    def catalog(self, async_db_session) -> FeaturePackageCatalog:
        return FeaturePackageCatalog(async_db_session)

    async def test_create_and_lookup(self, catalog):
        package = await catalog.create_package(name="Pro", slug="pro", price_monthly_cents=1900)

        assert (await catalog.get_package(package.id)).slug == "pro"
        assert (await catalog.get_package_by_slug("pro")).id == package.id
        assert await catalog.get_package_by_slug("missing") is None

    async def test_duplicate_slug(self, catalog):
        await catalog.create_package(name="Pro", slug="pro")
        with pytest.raises(DuplicatePackageError):
            await catalog.create_package(name="Pro again", slug="pro")

    async def test_list_packages_hides_inactive(self, catalog):
        await catalog.create_package(name="Active", slug="active")
        await catalog.create_package(name="Retired", slug="retired", is_active=False)

        assert [p.slug for p in await catalog.list_packages()] == ["active"]
        assert {p.slug for p in await catalog.list_packages(include_inactive=True)} == {
            "active",
            "retired",
        }

    async def test_update_package(self, catalog):
        package = await catalog.create_package(name="Pro", slug="pro")
        updated = await catalog.update_package(package.id, name="Pro Plus", price_monthly_cents=2900)

        assert updated.name == "Pro Plus"
        assert updated.price_monthly_cents == 2900

        cleared = await catalog.update_package(package.id, price_monthly_cents=None)
        assert cleared.price_monthly_cents is None
        assert cleared.name == "Pro Plus"

    async def test_update_unknown_package(self, catalog):
        with pytest.raises(PackageNotFoundError):
            await catalog.update_package(uuid4(), name="x")

    async def test_add_flag_is_idempotent(self, catalog, seed):
        flag = await seed.flag("reports")
        package = await catalog.create_package(name="Pro", slug="pro")

        await catalog.add_flag(package.id, flag.id)
        await catalog.add_flag(package.id, flag.id)

        assert [f.key for f in await catalog.list_package_flags(package.id)] == ["reports"]

    async def test_remove_flag(self, catalog, seed):
        flag = await seed.flag("reports")
        package = await seed.package_with("pro", flag)

        assert await catalog.remove_flag(package.id, flag.id) is True
        assert await catalog.remove_flag(package.id, flag.id) is False
        assert await catalog.list_package_flags(package.id) == []

    async def test_packages_with_flag_cheapest_first(self, catalog, seed):
        flag = await seed.flag("reports")
        await seed.package_with("custom", flag)
        await seed.package_with("enterprise", flag, price_monthly_cents=9900)
        await seed.package_with("pro", flag, price_monthly_cents=1900)
        retired = await seed.package_with("retired", flag, price_monthly_cents=100)
        await catalog.update_package(retired.id, is_active=False)

        slugs = [p.slug for p in await catalog.packages_with_flag(flag.id)]
        assert slugs == ["pro", "enterprise", "custom"]

    async def test_get_active_package(self, catalog, seed):
        pro = await seed.package_with("pro")
        retired = await seed.package_with("retired")
        await catalog.update_package(retired.id, is_active=False)

        assert (await catalog.get_active_package(pro.id)).slug == "pro"
        assert await catalog.get_active_package(retired.id) is None
        assert await catalog.get_active_package(uuid4()) is None

    async def test_feature_counts(self, catalog, seed):
        reports = await seed.flag("reports")
        exports = await seed.flag("exports")
        pro = await seed.package_with("pro", reports, exports)
        empty = await seed.package_with("empty")

        assert await catalog.feature_counts([pro.id, empty.id]) == {pro.id: 2, empty.id: 0}
        assert await catalog.feature_counts([]) == {}

    async def test_compare_packages(self, catalog, seed):
        reports = await seed.flag("reports")
        exports = await seed.flag("exports")
        basic = await seed.package_with("basic", reports)
        pro = await seed.package_with("pro", reports, exports)
        retired = await seed.package_with("retired", exports)
        await catalog.update_package(retired.id, is_active=False)

        packages, flags = await catalog.compare_packages([pro.id, retired.id, basic.id, uuid4()])

        assert [p.slug for p in packages] == ["pro", "basic"]
        assert [f.key for f in flags[pro.id]] == ["exports", "reports"]
        assert [f.key for f in flags[basic.id]] == ["reports"]
        assert retired.id not in flags

    async def test_compare_nothing(self, catalog):
        assert await catalog.compare_packages([]) == ([], {})


class TestSubscriptions:
    @pytest.fixture
    def catalog(self, async_db_session) -> FeaturePackageCatalog:
        return FeaturePackageCatalog(async_db_session)

    async def test_active_package_flag_ids(self, catalog, seed, org_id):
        reports = await seed.flag("reports")
        exports = await seed.flag("exports")
        await seed.flag("unrelated")
        package = await seed.package_with("pro", reports, exports)

        assert await catalog.active_package_flag_ids(org_id) == set()

        await catalog.subscribe(org_id, package.id)
        assert await catalog.active_package_flag_ids(org_id) == {reports.id, exports.id}

    async def test_other_organizations_unaffected(self, catalog, seed, org_id):
        reports = await seed.flag("reports")
        package = await seed.package_with("pro", reports)
        await catalog.subscribe(org_id, package.id)

        assert await catalog.active_package_flag_ids(uuid4()) == set()

    async def test_expired_subscription(self, catalog, seed, org_id):
        reports = await seed.flag("reports")
        package = await seed.package_with("pro", reports)
        now = datetime.now(UTC)
        await catalog.subscribe(
            org_id, package.id, started_at=now - timedelta(days=30), expires_at=now - timedelta(days=1)
        )

        assert await catalog.active_package_flag_ids(org_id) == set()

    async def test_future_subscription(self, catalog, seed, org_id):
        reports = await seed.flag("reports")
        package = await seed.package_with("pro", reports)
        await catalog.subscribe(org_id, package.id, started_at=datetime.now(UTC) + timedelta(days=1))

        assert await catalog.active_package_flag_ids(org_id) == set()

    async def test_window_evaluated_at_given_time(self, catalog, seed, org_id):
        reports = await seed.flag("reports")
        package = await seed.package_with("pro", reports)
        now = datetime.now(UTC)
        await catalog.subscribe(
            org_id, package.id, started_at=now - timedelta(days=1), expires_at=now + timedelta(days=1)
        )

        assert await catalog.active_package_flag_ids(org_id, now) == {reports.id}
        assert await catalog.active_package_flag_ids(org_id, now + timedelta(days=2)) == set()

    async def test_unsubscribe_and_resubscribe(self, catalog, seed, org_id):
        reports = await seed.flag("reports")
        package = await seed.package_with("pro", reports)
        await catalog.subscribe(org_id, package.id)

        assert await catalog.unsubscribe(org_id, package.id) is True
        assert await catalog.unsubscribe(org_id, package.id) is False
        assert await catalog.active_package_flag_ids(org_id) == set()

        subscription = await catalog.subscribe(org_id, package.id)
        assert subscription.is_active is True
        assert await catalog.active_package_flag_ids(org_id) == {reports.id}
        assert len(await catalog.list_org_subscriptions(org_id)) == 1

    async def test_inactive_package_unlocks_nothing(self, catalog, seed, org_id):
        reports = await seed.flag("reports")
        package = await seed.package_with("pro", reports)
        await catalog.subscribe(org_id, package.id)
        await catalog.update_package(package.id, is_active=False)

        assert await catalog.active_package_flag_ids(org_id) == set()

    async def test_list_active_only(self, catalog, seed, org_id):
        first = await seed.package_with("pro")
        second = await seed.package_with("plus")
        await catalog.subscribe(org_id, first.id)
        await catalog.subscribe(org_id, second.id)
        await catalog.unsubscribe(org_id, second.id)

        active = await catalog.list_org_subscriptions(org_id, active_only=True)
        assert [s.package_id for s in active] == [first.id]

    async def test_subscribe_unknown_package(self, catalog, org_id):
        with pytest.raises(PackageNotFoundError):
            await catalog.subscribe(org_id, uuid4())
