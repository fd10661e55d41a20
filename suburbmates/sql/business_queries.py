"""
Business Queries Module for the quality scoring service.

Provides parameterized PostgreSQL queries over the directory tables used by
PostgresBusinessRepository:

- businesses: profile fields, "qualityScore", "abnStatus", "approvalStatus"
- business_customizations: "gallery" JSONB array per business
- content: public posts with an "images" JSON text column
- inquiries / leads: engagement records counted over a trailing window

Columns are camelCase and therefore quoted. Builders return a
``(sql, params)`` tuple with $n placeholders so values never reach the SQL
text.
"""

from typing import Any, Dict, List, Optional, Tuple

from suburbmates.models.schemas import BusinessFilter


# =============================================================================
# CONSTANTS
# =============================================================================

# Most recent public content items inspected for images
CONTENT_ITEMS_LIMIT: int = 5

# Columns the repository may write through update()
UPDATABLE_COLUMNS = frozenset({"qualityScore", "updatedAt"})

BASE_COLUMNS = """
    b."id",
    b."name",
    b."slug",
    b."suburb",
    b."category",
    b."bio",
    b."phone",
    b."email",
    b."website",
    b."address",
    b."latitude",
    b."longitude",
    b."abn",
    b."abnStatus",
    b."approvalStatus",
    b."showBusinessHours",
    b."qualityScore",
    b."createdAt",
    b."updatedAt"
"""

# $1 is always the engagement window start
RELATED_COLUMNS = f"""
    COALESCE(
        (SELECT bc."gallery" FROM business_customizations bc WHERE bc."businessId" = b."id"),
        '[]'::jsonb
    ) AS gallery,
    ARRAY(
        SELECT c."images" FROM content c
        WHERE c."businessId" = b."id" AND c."isPublic" = TRUE
        ORDER BY c."createdAt" DESC
        LIMIT {CONTENT_ITEMS_LIMIT}
    ) AS content_images,
    (SELECT COUNT(*) FROM inquiries i
        WHERE i."businessId" = b."id" AND i."createdAt" >= $1) AS recent_inquiries,
    (SELECT COUNT(*) FROM leads l
        WHERE l."businessId" = b."id" AND l."createdAt" >= $1) AS recent_leads
"""


class _Params:
    """Accumulates positional parameters and hands out $n placeholders."""

    def __init__(self, initial: Optional[List[Any]] = None) -> None:
        self.values: List[Any] = list(initial or [])

    def add(self, value: Any) -> str:
        self.values.append(value)
        return f"${len(self.values)}"


def _enum_value(value: Any) -> Any:
    return getattr(value, "value", value)


def _where_clause(business_filter: BusinessFilter, params: _Params) -> str:
    conditions: List[str] = []

    if business_filter.businessIds:
        conditions.append(f'b."id" = ANY({params.add(list(business_filter.businessIds))}::text[])')
    if business_filter.minScore is not None:
        conditions.append(f'b."qualityScore" >= {params.add(business_filter.minScore)}')
    if business_filter.maxScore is not None:
        conditions.append(f'b."qualityScore" <= {params.add(business_filter.maxScore)}')
    if business_filter.category:
        conditions.append(f'b."category" = {params.add(business_filter.category)}')
    if business_filter.suburb:
        conditions.append(f'b."suburb" = {params.add(business_filter.suburb)}')
    if business_filter.abnStatus is not None:
        conditions.append(f'b."abnStatus" = {params.add(_enum_value(business_filter.abnStatus))}')
    if business_filter.approvalStatus is not None:
        conditions.append(
            f'b."approvalStatus" = {params.add(_enum_value(business_filter.approvalStatus))}'
        )

    return " AND ".join(conditions) if conditions else "TRUE"


# =============================================================================
# SELECT QUERIES
# =============================================================================


def build_find_many_query(
    business_filter: BusinessFilter,
    include_related: bool,
    engagement_since: Any,
    limit: Optional[int] = None,
) -> Tuple[str, List[Any]]:
    """
    Build the filtered business selection, lowest score first.

    Args:
        business_filter: Selection criteria; unset fields do not filter.
        include_related: Add gallery, content images and engagement counts.
        engagement_since: Start of the engagement window (only used when
            include_related is set).
        limit: Optional cap on returned rows.

    Returns:
        (sql, params) ready for asyncpg's fetch().
    """
    params = _Params([engagement_since] if include_related else [])
    where = _where_clause(business_filter, params)
    columns = BASE_COLUMNS + ("," + RELATED_COLUMNS if include_related else "")

    sql = f"""
    SELECT {columns}
    FROM businesses b
    WHERE {where}
    ORDER BY b."qualityScore" ASC, b."id" ASC
    """
    if limit is not None:
        sql += f"LIMIT {params.add(limit)}\n"

    return sql, params.values


def build_find_unique_query(
    business_id: str,
    include_related: bool,
    engagement_since: Any,
) -> Tuple[str, List[Any]]:
    params = _Params([engagement_since] if include_related else [])
    columns = BASE_COLUMNS + ("," + RELATED_COLUMNS if include_related else "")
    sql = f"""
    SELECT {columns}
    FROM businesses b
    WHERE b."id" = {params.add(business_id)}
    """
    return sql, params.values


# =============================================================================
# UPDATE QUERY
# =============================================================================


def build_update_query(business_id: str, patch: Dict[str, Any]) -> Tuple[str, List[Any]]:
    """
    Build an UPDATE for the whitelisted columns in `patch`.

    Raises:
        ValueError: If the patch is empty or names a column that may not be written.
    """
    if not patch:
        raise ValueError("Empty update patch")

    unknown = set(patch) - UPDATABLE_COLUMNS
    if unknown:
        raise ValueError(f"Columns not updatable: {sorted(unknown)}")

    params = _Params()
    assignments = ", ".join(f'"{column}" = {params.add(value)}' for column, value in patch.items())
    sql = f"""
    UPDATE businesses
    SET {assignments}
    WHERE "id" = {params.add(business_id)}
    RETURNING "id"
    """
    return sql, params.values


# =============================================================================
# AUDIT LOG
# =============================================================================

INSERT_AUDIT_LOG_QUERY = """
    INSERT INTO audit_logs ("id", "action", "target", "actorId", "meta", "ipAddress", "userAgent", "createdAt")
    VALUES ($1, $2, $3, $4, $5::jsonb, $6, $7, NOW())
"""
