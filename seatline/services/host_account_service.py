"""Host payout account synchronisation."""

import logging
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from seatline.core.idempotency import dialect_insert
from seatline.models.payment import HostPayoutAccount
from seatline.utils.clock import utcnow

logger = logging.getLogger(__name__)


class HostAccountService:
    """Keeps ``payout_eligible`` in step with the processor's account status."""

    async def get_by_external_id(
        self,
        db: AsyncSession,
        external_account_id: str,
    ) -> HostPayoutAccount | None:
        result = await db.execute(
            select(HostPayoutAccount)
            .where(HostPayoutAccount.external_account_id == external_account_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def sync_account_status(
        self,
        db: AsyncSession,
        external_account_id: str,
        details_submitted: bool,
        host_id: UUID | None = None,
    ) -> HostPayoutAccount | None:
        """Apply an account status change; the caller commits.

        Looks the account up by its external id first. When no row is linked
        yet and the event names the host, upserts keyed by host so repeated
        events never create a second row.

        Returns:
            The updated account, or None if the account matches no host
        """
        account = await self.get_by_external_id(db, external_account_id)
        if account is not None:
            account.payout_eligible = details_submitted
            account.updated_at = utcnow()
            await db.flush()
            logger.info(
                f"Host {account.host_id} payout_eligible={details_submitted} "
                f"(account {external_account_id})"
            )
            return account

        if host_id is None:
            logger.warning(
                f"Account {external_account_id} is not linked to any host and "
                f"carries no host id; status change ignored"
            )
            return None

        stmt = dialect_insert(db, HostPayoutAccount).values(
            host_id=host_id,
            external_account_id=external_account_id,
            payout_eligible=details_submitted,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["host_id"],
            set_={
                "external_account_id": stmt.excluded.external_account_id,
                "payout_eligible": stmt.excluded.payout_eligible,
                "updated_at": utcnow(),
            },
        )
        await db.execute(stmt)
        logger.info(
            f"Linked account {external_account_id} to host {host_id} "
            f"(payout_eligible={details_submitted})"
        )
        return await self.get_by_external_id(db, external_account_id)


host_account_service = HostAccountService()
