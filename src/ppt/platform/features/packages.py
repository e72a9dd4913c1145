"""
Feature package catalog.

Packages bundle flags an organization can subscribe to. A subscription is
active while ``is_active`` is set and ``started_at <= now`` and either
there is no expiry or ``now < expires_at``. Renewal and proration belong to
billing and are not handled here.
"""

from collections.abc import Sequence
from datetime import datetime
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ppt.platform.db import as_utc, utcnow

from .exceptions import DuplicatePackageError, PackageNotFoundError
from .models import (
    FeatureFlag,
    FeaturePackage,
    FeaturePackageItem,
    OrganizationFeaturePackage,
)
from .repository import dialect_insert

logger = structlog.get_logger(__name__)


def subscription_is_active(
    started_at: datetime,
    expires_at: datetime | None,
    now: datetime | None = None,
    is_active: bool = True,
) -> bool:
    """Check the subscription time window."""
    if not is_active:
        return False
    now = as_utc(now or utcnow())
    if as_utc(started_at) > now:
        return False
    return expires_at is None or now < as_utc(expires_at)


class FeaturePackageCatalog:
    """Packages, their flags and organization subscriptions."""

    def __init__(self, session: AsyncSession):
        self.session = session

    # ------------------------------------------------------------------
    # Packages
    # ------------------------------------------------------------------

    async def create_package(
        self,
        name: str,
        slug: str,
        description: str | None = None,
        is_active: bool = True,
        price_monthly_cents: int | None = None,
        price_yearly_cents: int | None = None,
    ) -> FeaturePackage:
        if await self.get_package_by_slug(slug) is not None:
            raise DuplicatePackageError(slug)

        package = FeaturePackage(
            name=name,
            slug=slug,
            description=description,
            is_active=is_active,
            price_monthly_cents=price_monthly_cents,
            price_yearly_cents=price_yearly_cents,
        )
        self.session.add(package)
        await self.session.commit()
        await self.session.refresh(package)

        logger.info("feature.package.created", slug=slug, package_id=str(package.id))
        return package

    async def get_package(self, package_id: UUID) -> FeaturePackage | None:
        return await self.session.get(FeaturePackage, package_id)

    async def get_package_by_slug(self, slug: str) -> FeaturePackage | None:
        result = await self.session.execute(
            select(FeaturePackage).where(FeaturePackage.slug == slug)
        )
        return result.scalar_one_or_none()

    async def require_package(self, package_id: UUID) -> FeaturePackage:
        package = await self.get_package(package_id)
        if package is None:
            raise PackageNotFoundError(package_id=str(package_id))
        return package

    async def list_packages(self, include_inactive: bool = False) -> list[FeaturePackage]:
        stmt = select(FeaturePackage).order_by(FeaturePackage.name)
        if not include_inactive:
            stmt = stmt.where(FeaturePackage.is_active.is_(True))
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def update_package(self, package_id: UUID, **fields: Any) -> FeaturePackage:
        package = await self.require_package(package_id)
        for name, value in fields.items():
            setattr(package, name, value)
        await self.session.commit()
        await self.session.refresh(package)

        logger.info("feature.package.updated", package_id=str(package_id), fields=sorted(fields))
        return package

    # ------------------------------------------------------------------
    # Package items
    # ------------------------------------------------------------------

    async def add_flag(self, package_id: UUID, flag_id: UUID) -> None:
        """Add a flag to a package. Adding it twice is a no-op."""
        await self.require_package(package_id)
        stmt = dialect_insert(self.session, FeaturePackageItem).values(
            package_id=package_id, flag_id=flag_id
        )
        stmt = stmt.on_conflict_do_nothing(index_elements=["package_id", "flag_id"])
        await self.session.execute(stmt)
        await self.session.commit()

    async def remove_flag(self, package_id: UUID, flag_id: UUID) -> bool:
        result = await self.session.execute(
            delete(FeaturePackageItem).where(
                FeaturePackageItem.package_id == package_id,
                FeaturePackageItem.flag_id == flag_id,
            )
        )
        await self.session.commit()
        return bool(result.rowcount)

    async def list_package_flags(self, package_id: UUID) -> list[FeatureFlag]:
        result = await self.session.execute(
            select(FeatureFlag)
            .join(FeaturePackageItem, FeaturePackageItem.flag_id == FeatureFlag.id)
            .where(FeaturePackageItem.package_id == package_id)
            .order_by(FeatureFlag.key)
        )
        return list(result.scalars().all())

    async def get_active_package(self, package_id: UUID) -> FeaturePackage | None:
        """Package visible in the public catalog, or None when unknown or retired."""
        package = await self.get_package(package_id)
        if package is None or not package.is_active:
            return None
        return package

    async def feature_counts(self, package_ids: Sequence[UUID]) -> dict[UUID, int]:
        """Number of flags in each package, zero for empty packages."""
        counts = dict.fromkeys(package_ids, 0)
        if not counts:
            return counts
        result = await self.session.execute(
            select(FeaturePackageItem.package_id, func.count())
            .where(FeaturePackageItem.package_id.in_(list(counts)))
            .group_by(FeaturePackageItem.package_id)
        )
        counts.update({package_id: count for package_id, count in result.all()})
        return counts

    async def flags_by_package(self, package_ids: Sequence[UUID]) -> dict[UUID, list[FeatureFlag]]:
        """Flags of several packages in one query, each list ordered by key."""
        grouped: dict[UUID, list[FeatureFlag]] = {package_id: [] for package_id in package_ids}
        if not grouped:
            return grouped
        result = await self.session.execute(
            select(FeaturePackageItem.package_id, FeatureFlag)
            .join(FeatureFlag, FeatureFlag.id == FeaturePackageItem.flag_id)
            .where(FeaturePackageItem.package_id.in_(list(grouped)))
            .order_by(FeatureFlag.key)
        )
        for package_id, flag in result.all():
            grouped[package_id].append(flag)
        return grouped

    async def compare_packages(
        self, package_ids: Sequence[UUID]
    ) -> tuple[list[FeaturePackage], dict[UUID, list[FeatureFlag]]]:
        """Active packages among the given IDs, in request order, with their flags.

        Unknown and inactive packages are left out.
        """
        requested = list(dict.fromkeys(package_ids))
        if not requested:
            return [], {}
        result = await self.session.execute(
            select(FeaturePackage).where(
                FeaturePackage.id.in_(requested), FeaturePackage.is_active.is_(True)
            )
        )
        found = {package.id: package for package in result.scalars()}
        packages = [found[package_id] for package_id in requested if package_id in found]
        return packages, await self.flags_by_package([p.id for p in packages])

    async def packages_with_flag(self, flag_id: UUID) -> list[FeaturePackage]:
        """Active packages containing the flag, cheapest first."""
        result = await self.session.execute(
            select(FeaturePackage)
            .join(FeaturePackageItem, FeaturePackageItem.package_id == FeaturePackage.id)
            .where(
                FeaturePackageItem.flag_id == flag_id,
                FeaturePackage.is_active.is_(True),
            )
            .order_by(
                FeaturePackage.price_monthly_cents.is_(None),
                FeaturePackage.price_monthly_cents,
                FeaturePackage.name,
            )
        )
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    async def subscribe(
        self,
        organization_id: UUID,
        package_id: UUID,
        expires_at: datetime | None = None,
        started_at: datetime | None = None,
    ) -> OrganizationFeaturePackage:
        """Subscribe an organization, re-activating an existing subscription."""
        await self.require_package(package_id)
        started_at = started_at or utcnow()

        stmt = dialect_insert(self.session, OrganizationFeaturePackage).values(
            organization_id=organization_id,
            package_id=package_id,
            is_active=True,
            started_at=started_at,
            expires_at=expires_at,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["organization_id", "package_id"],
            set_={
                "is_active": True,
                "started_at": stmt.excluded.started_at,
                "expires_at": stmt.excluded.expires_at,
            },
        )
        await self.session.execute(stmt)
        await self.session.commit()

        result = await self.session.execute(
            select(OrganizationFeaturePackage)
            .where(
                OrganizationFeaturePackage.organization_id == organization_id,
                OrganizationFeaturePackage.package_id == package_id,
            )
            .execution_options(populate_existing=True)
        )
        logger.info(
            "feature.package.subscribed",
            organization_id=str(organization_id),
            package_id=str(package_id),
            expires_at=expires_at.isoformat() if expires_at else None,
        )
        return result.scalar_one()

    async def unsubscribe(self, organization_id: UUID, package_id: UUID) -> bool:
        result = await self.session.execute(
            select(OrganizationFeaturePackage).where(
                OrganizationFeaturePackage.organization_id == organization_id,
                OrganizationFeaturePackage.package_id == package_id,
            )
        )
        subscription = result.scalar_one_or_none()
        if subscription is None or not subscription.is_active:
            return False

        subscription.is_active = False
        await self.session.commit()
        logger.info(
            "feature.package.unsubscribed",
            organization_id=str(organization_id),
            package_id=str(package_id),
        )
        return True

    async def list_org_subscriptions(
        self, organization_id: UUID, now: datetime | None = None, active_only: bool = False
    ) -> list[OrganizationFeaturePackage]:
        result = await self.session.execute(
            select(OrganizationFeaturePackage)
            .where(OrganizationFeaturePackage.organization_id == organization_id)
            .order_by(OrganizationFeaturePackage.started_at)
        )
        subscriptions = list(result.scalars().all())
        if active_only:
            subscriptions = [
                s
                for s in subscriptions
                if subscription_is_active(s.started_at, s.expires_at, now, s.is_active)
            ]
        return subscriptions

    async def active_package_flag_ids(
        self, organization_id: UUID, now: datetime | None = None
    ) -> set[UUID]:
        """Flags unlocked by the organization's currently active packages."""
        now = now or utcnow()
        result = await self.session.execute(
            select(FeaturePackageItem.flag_id)
            .join(
                OrganizationFeaturePackage,
                OrganizationFeaturePackage.package_id == FeaturePackageItem.package_id,
            )
            .join(FeaturePackage, FeaturePackage.id == FeaturePackageItem.package_id)
            .where(
                OrganizationFeaturePackage.organization_id == organization_id,
                OrganizationFeaturePackage.is_active.is_(True),
                FeaturePackage.is_active.is_(True),
                OrganizationFeaturePackage.started_at <= now,
                or_(
                    OrganizationFeaturePackage.expires_at.is_(None),
                    OrganizationFeaturePackage.expires_at > now,
                ),
            )
            .distinct()
        )
        return set(result.scalars().all())
