"""
Pledge Service Data Repository

Data access layer - PostgreSQL (Async)
"""

import asyncio
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import asyncpg

from core.config import get_settings
from core.postgres_client import AsyncPostgresClient
from .models import (
    Campaign,
    CampaignStatus,
    ChargeStatus,
    Pledge,
    SetupStatus,
)
from .protocols import InvalidStatusTransitionError, PledgeStoreError
from .status_transitions import allowed_sources

logger = logging.getLogger(__name__)

STORE_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError)

SCHEMA_MIGRATION = Path(__file__).parent / "migrations" / "001_create_pledge_tables.sql"

# Columns writable through update_pledge_fields and transition extras
PLEDGE_MUTABLE_FIELDS = {
    "stripe_customer_id",
    "stripe_payment_method_id",
    "stripe_payment_intent_id",
    "computed_views",
    "computed_amount_cents",
    "error_message",
}


class PledgeRepository:
    """Pledge service data repository - PostgreSQL (Async)"""

    def __init__(self, db: Optional[AsyncPostgresClient] = None):
        if db is None:
            infra = get_settings().infrastructure
            logger.info(f"Connecting to PostgreSQL at {infra.postgres_host}:{infra.postgres_port}")
            db = AsyncPostgresClient.from_config(infra, user_id="pledge_service")
        self.db = db
        self.schema = "pledge"

        # Table names
        self.campaigns_table = "campaigns"
        self.pledges_table = "pledges"

    async def initialize(self):
        """Initialize database connection"""
        try:
            await self.db.connect()
        except STORE_ERRORS as e:
            logger.error(f"Failed to connect pledge repository: {e}")
            raise PledgeStoreError(f"Record store unavailable: {e}") from e
        await self._ensure_schema()
        logger.info("Pledge repository initialized with PostgreSQL")

    async def _ensure_schema(self):
        """Ensure pledge schema and tables exist"""
        try:
            async with self.db:
                await self.db.execute(SCHEMA_MIGRATION.read_text())
            logger.info("Pledge schema ensured")
        except STORE_ERRORS as e:
            logger.warning(f"Could not ensure schema/tables (may already exist): {e}")

    async def close(self):
        """Close database connection"""
        await self.db.close()
        logger.info("Pledge repository database connection closed")

    async def health_check(self) -> bool:
        """Check repository health"""
        try:
            async with self.db:
                result = await self.db.query_row("SELECT 1 as healthy")
            return bool(result and result.get("healthy") == 1)
        except STORE_ERRORS as e:
            logger.error(f"Pledge repository health check failed: {e}")
            return False

    # ====================
    # Low-level helpers
    # ====================

    async def _fetch(self, query: str, params: List[Any], action: str) -> List[Dict[str, Any]]:
        try:
            async with self.db:
                return await self.db.query(query, params=params)
        except STORE_ERRORS as e:
            logger.error(f"Error {action}: {e}")
            raise PledgeStoreError(f"Record store failure while {action}") from e

    async def _fetch_row(self, query: str, params: List[Any], action: str) -> Optional[Dict[str, Any]]:
        rows = await self._fetch(query, params, action)
        return rows[0] if rows else None

    # ====================
    # Campaigns
    # ====================

    async def get_campaign(self, campaign_id: str) -> Optional[Campaign]:
        """Get campaign by ID"""
        query = f"""
            SELECT * FROM {self.schema}.{self.campaigns_table}
            WHERE id = $1
        """
        row = await self._fetch_row(query, [campaign_id], f"getting campaign {campaign_id}")
        return self._row_to_campaign(row) if row else None

    async def set_final_views(self, campaign_id: str, final_views: int) -> Optional[Campaign]:
        """Store final views and lock the campaign"""
        sources = [s.value for s in allowed_sources(CampaignStatus.LOCKED)]
        query = f"""
            UPDATE {self.schema}.{self.campaigns_table}
            SET final_views = $1, status = $2, updated_at = $3
            WHERE id = $4 AND status = ANY($5::text[])
            RETURNING *
        """
        row = await self._fetch_row(
            query,
            [final_views, CampaignStatus.LOCKED.value, datetime.now(timezone.utc), campaign_id, sources],
            f"setting final views of campaign {campaign_id}",
        )
        if row:
            return self._row_to_campaign(row)
        await self._raise_if_campaign_exists(campaign_id, CampaignStatus.LOCKED)
        return None

    async def update_campaign_status(
        self, campaign_id: str, status: CampaignStatus
    ) -> Optional[Campaign]:
        """Move campaign status when the transition is legal"""
        sources = [s.value for s in allowed_sources(status)]
        query = f"""
            UPDATE {self.schema}.{self.campaigns_table}
            SET status = $1, updated_at = $2
            WHERE id = $3 AND status = ANY($4::text[])
            RETURNING *
        """
        row = await self._fetch_row(
            query,
            [status.value, datetime.now(timezone.utc), campaign_id, sources],
            f"updating status of campaign {campaign_id}",
        )
        if row:
            return self._row_to_campaign(row)
        await self._raise_if_campaign_exists(campaign_id, status)
        return None

    async def _raise_if_campaign_exists(self, campaign_id: str, target: CampaignStatus) -> None:
        current = await self.get_campaign(campaign_id)
        if current is not None:
            raise InvalidStatusTransitionError(
                f"Campaign {campaign_id} cannot move from {current.status.value} to {target.value}",
                current=current.status,
                target=target,
            )

    # ====================
    # Pledges
    # ====================

    async def create_pledge(self, pledge: Pledge) -> Pledge:
        """Insert a new pledge"""
        now = datetime.now(timezone.utc)
        query = f"""
            INSERT INTO {self.schema}.{self.pledges_table} (
                id, campaign_id, name, email, rate_per_1000_cents,
                cap_amount_cents, views_cap, setup_status, charge_status,
                stripe_customer_id, created_at, updated_at
            ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12)
            RETURNING *
        """
        params = [
            pledge.id,
            pledge.campaign_id,
            pledge.name,
            pledge.email,
            pledge.rate_per_1000_cents,
            pledge.cap_amount_cents,
            pledge.views_cap,
            pledge.setup_status.value,
            pledge.charge_status.value,
            pledge.stripe_customer_id,
            now,
            now,
        ]
        row = await self._fetch_row(query, params, f"creating pledge {pledge.id}")
        if not row:
            raise PledgeStoreError(f"Failed to create pledge {pledge.id}")
        return self._row_to_pledge(row)

    async def get_pledge(self, pledge_id: str) -> Optional[Pledge]:
        """Get pledge by ID"""
        query = f"""
            SELECT * FROM {self.schema}.{self.pledges_table}
            WHERE id = $1
        """
        row = await self._fetch_row(query, [pledge_id], f"getting pledge {pledge_id}")
        return self._row_to_pledge(row) if row else None

    async def list_chargeable_pledges(self, campaign_id: str) -> List[Pledge]:
        """Pledges with setup complete and charge not yet attempted"""
        query = f"""
            SELECT * FROM {self.schema}.{self.pledges_table}
            WHERE campaign_id = $1 AND setup_status = $2 AND charge_status = $3
            ORDER BY created_at ASC
        """
        rows = await self._fetch(
            query,
            [campaign_id, SetupStatus.COMPLETE.value, ChargeStatus.NOT_CHARGED.value],
            f"listing chargeable pledges of campaign {campaign_id}",
        )
        return [self._row_to_pledge(row) for row in rows]

    async def find_latest_pledge_by_customer(self, customer_id: str) -> Optional[Pledge]:
        """Most recently created pledge with this Stripe customer"""
        query = f"""
            SELECT * FROM {self.schema}.{self.pledges_table}
            WHERE stripe_customer_id = $1
            ORDER BY created_at DESC
            LIMIT 1
        """
        row = await self._fetch_row(query, [customer_id], f"finding pledge of customer {customer_id}")
        return self._row_to_pledge(row) if row else None

    async def update_pledge_fields(
        self, pledge_id: str, updates: Dict[str, Any]
    ) -> Optional[Pledge]:
        """Update non-status pledge fields"""
        if not updates:
            return await self.get_pledge(pledge_id)

        set_clauses, params = self._set_clauses(updates)
        params.append(pledge_id)
        query = f"""
            UPDATE {self.schema}.{self.pledges_table}
            SET {", ".join(set_clauses)}
            WHERE id = ${len(params)}
            RETURNING *
        """
        row = await self._fetch_row(query, params, f"updating pledge {pledge_id}")
        return self._row_to_pledge(row) if row else None

    async def transition_setup_status(
        self, pledge_id: str, status: SetupStatus, **fields
    ) -> Optional[Pledge]:
        """Conditionally move setup_status, writing extra fields in the same update"""
        return await self._transition(pledge_id, "setup_status", status, fields)

    async def transition_charge_status(
        self, pledge_id: str, status: ChargeStatus, **fields
    ) -> Optional[Pledge]:
        """Conditionally move charge_status, writing extra fields in the same update"""
        return await self._transition(pledge_id, "charge_status", status, fields)

    async def _transition(
        self, pledge_id: str, column: str, status, fields: Dict[str, Any]
    ) -> Optional[Pledge]:
        """
        Single conditional UPDATE guarded by the transition table.

        Returns None when the pledge does not exist. Raises
        InvalidStatusTransitionError when it exists in a state that cannot
        move to ``status``.
        """
        set_clauses, params = self._set_clauses(fields)
        params.append(status.value)
        set_clauses.insert(0, f"{column} = ${len(params)}")
        params.append(pledge_id)
        id_param = len(params)
        params.append([s.value for s in allowed_sources(status)])
        sources_param = len(params)

        query = f"""
            UPDATE {self.schema}.{self.pledges_table}
            SET {", ".join(set_clauses)}
            WHERE id = ${id_param} AND {column} = ANY(${sources_param}::text[])
            RETURNING *
        """
        row = await self._fetch_row(query, params, f"moving {column} of pledge {pledge_id} to {status.value}")
        if row:
            return self._row_to_pledge(row)

        current = await self.get_pledge(pledge_id)
        if current is None:
            return None
        raise InvalidStatusTransitionError(
            f"Pledge {pledge_id} {column} cannot move from "
            f"{getattr(current, column).value} to {status.value}",
            current=getattr(current, column),
            target=status,
        )

    def _set_clauses(self, updates: Dict[str, Any]):
        """SET fragments for mutable pledge columns plus updated_at"""
        set_clauses = []
        params: List[Any] = []
        for key, value in updates.items():
            if key not in PLEDGE_MUTABLE_FIELDS:
                raise ValueError(f"Pledge field is not updatable: {key}")
            params.append(value)
            set_clauses.append(f"{key} = ${len(params)}")
        params.append(datetime.now(timezone.utc))
        set_clauses.append(f"updated_at = ${len(params)}")
        return set_clauses, params

    # ====================
    # Row mapping
    # ====================

    def _row_to_campaign(self, row: Dict[str, Any]) -> Campaign:
        return Campaign(
            id=str(row["id"]),
            name=row.get("name"),
            views_cap=row.get("views_cap"),
            final_views=row.get("final_views"),
            status=CampaignStatus(row.get("status") or CampaignStatus.OPEN.value),
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )

    def _row_to_pledge(self, row: Dict[str, Any]) -> Pledge:
        return Pledge(
            id=str(row["id"]),
            campaign_id=str(row["campaign_id"]),
            name=row["name"],
            email=row["email"],
            rate_per_1000_cents=row["rate_per_1000_cents"],
            cap_amount_cents=row.get("cap_amount_cents"),
            views_cap=row["views_cap"],
            setup_status=SetupStatus(row["setup_status"]),
            charge_status=ChargeStatus(row["charge_status"]),
            stripe_customer_id=row.get("stripe_customer_id"),
            stripe_payment_method_id=row.get("stripe_payment_method_id"),
            stripe_payment_intent_id=row.get("stripe_payment_intent_id"),
            computed_views=row.get("computed_views"),
            computed_amount_cents=row.get("computed_amount_cents"),
            error_message=row.get("error_message"),
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )


__all__ = ["PledgeRepository", "PLEDGE_MUTABLE_FIELDS"]
