"""
Public feature package catalog.

Read-only listing of active packages for pricing pages, a single package
with its features, and a side-by-side comparison. No authentication is
required.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ppt.platform.db import get_async_session

from .dependencies import parse_uuid
from .exceptions import PackageComparisonError, PackageNotFoundError
from .models import FeatureFlag, FeaturePackage
from .packages import FeaturePackageCatalog
from .schemas import (
    FeatureComparisonRow,
    PackageComparisonResponse,
    PackageDetailResponse,
    PackageFeature,
    PublicPackageResponse,
)

MAX_COMPARED_PACKAGES = 5

package_router = APIRouter(tags=["Feature Packages"])


def _public(package: FeaturePackage, feature_count: int) -> PublicPackageResponse:
    response = PublicPackageResponse.model_validate(package)
    response.feature_count = feature_count
    return response


def comparison_rows(
    packages: list[FeaturePackage], flags: dict[UUID, list[FeatureFlag]]
) -> list[FeatureComparisonRow]:
    """One row per feature in any compared package, ordered by feature key."""
    rows: dict[str, FeatureComparisonRow] = {}
    for package in packages:
        for flag in flags.get(package.id, []):
            row = rows.get(flag.key)
            if row is None:
                row = FeatureComparisonRow(
                    feature_key=flag.key,
                    feature_name=flag.name,
                    feature_description=flag.description,
                    packages={str(p.id): False for p in packages},
                )
                rows[flag.key] = row
            row.packages[str(package.id)] = True
    return [rows[key] for key in sorted(rows)]


@package_router.get("", response_model=list[PublicPackageResponse])
async def list_public_packages(
    session: AsyncSession = Depends(get_async_session),
) -> list[PublicPackageResponse]:
    """Active packages with the number of features each includes."""
    catalog = FeaturePackageCatalog(session)
    packages = await catalog.list_packages()
    counts = await catalog.feature_counts([p.id for p in packages])
    return [_public(p, counts[p.id]) for p in packages]


@package_router.get("/compare", response_model=PackageComparisonResponse)
async def compare_packages(
    ids: str = Query(..., description="Comma-separated package IDs"),
    session: AsyncSession = Depends(get_async_session),
) -> PackageComparisonResponse:
    """Compare up to five active packages feature by feature."""
    package_ids = [
        parse_uuid("package_id", value.strip()) for value in ids.split(",") if value.strip()
    ]
    if not 1 <= len(package_ids) <= MAX_COMPARED_PACKAGES:
        raise PackageComparisonError(len(package_ids), MAX_COMPARED_PACKAGES)

    packages, flags = await FeaturePackageCatalog(session).compare_packages(package_ids)
    return PackageComparisonResponse(
        packages=[_public(p, len(flags[p.id])) for p in packages],
        features=comparison_rows(packages, flags),
    )


@package_router.get("/{package_id}", response_model=PackageDetailResponse)
async def get_public_package(
    package_id: UUID,
    session: AsyncSession = Depends(get_async_session),
) -> PackageDetailResponse:
    catalog = FeaturePackageCatalog(session)
    package = await catalog.get_active_package(package_id)
    if package is None:
        raise PackageNotFoundError(package_id=str(package_id))

    flags = await catalog.list_package_flags(package_id)
    return PackageDetailResponse(
        **_public(package, len(flags)).model_dump(),
        features=[PackageFeature.model_validate(f) for f in flags],
    )
