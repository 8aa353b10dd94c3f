"""
Tests for the Celery maintenance tasks and beat schedule.

Tasks are invoked directly with ``run_async`` patched to hand back the coroutine,
so they run on the test loop against the test session.
"""
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from decimal import Decimal
from unittest.mock import AsyncMock, patch

import pytest

from reach.db.models.tracking_link import PromotionStatus
from reach.db.models.wallet_transaction import (
    TransactionCategory,
    TransactionStatus,
    TransactionType,
    WalletTransaction,
)
from reach.domain.services.creator_tier_service import RefreshSummary
from reach.workers import tasks
from reach.workers.celery_app import celery_app


@pytest.fixture
def task_env(db_session):
    """Route task sessions to the test session and run coroutines on the test loop"""

    @asynccontextmanager
    async def _session():
        yield db_session

    with patch("reach.workers.tasks.get_task_session", _session), \
         patch("reach.workers.tasks.run_async", side_effect=lambda coro: coro):
        yield


class TestBeatSchedule:
    @pytest.mark.unit
    def test_all_tasks_scheduled(self) -> None:
        scheduled = {entry["task"] for entry in celery_app.conf.beat_schedule.values()}
        assert scheduled == {
            "reach.workers.tasks.expire_promotions",
            "reach.workers.tasks.fail_stale_deposits",
            "reach.workers.tasks.refresh_creator_tiers",
        }

    @pytest.mark.unit
    def test_tasks_registered(self) -> None:
        for name in (
            "reach.workers.tasks.expire_promotions",
            "reach.workers.tasks.fail_stale_deposits",
            "reach.workers.tasks.refresh_creator_tiers",
        ):
            assert name in celery_app.tasks

    @pytest.mark.unit
    def test_serialization_and_timezone(self) -> None:
        assert celery_app.conf.task_serializer == "json"
        assert celery_app.conf.timezone == "Africa/Lagos"
        assert celery_app.conf.task_acks_late is True


class TestRunAsync:
    @pytest.mark.unit
    def test_runs_coroutine_on_fresh_loop(self) -> None:
        async def _work():
            return {"expired": 0}

        assert tasks.run_async(_work()) == {"expired": 0}


class TestTasks:
    @pytest.mark.unit
    async def test_expire_promotions(
        self, task_env, sample_creator, sample_property, link_factory, db_session
    ) -> None:
        link = await link_factory(
            sample_creator.id, sample_property.id, expires_at=datetime.utcnow() - timedelta(days=1)
        )

        result = await tasks.expire_promotions()

        assert result == {"expired": 1}
        await db_session.refresh(link)
        assert link.status == PromotionStatus.EXPIRED

    @pytest.mark.unit
    async def test_fail_stale_deposits(self, task_env, sample_buyer, wallet_factory, db_session) -> None:
        wallet = await wallet_factory(sample_buyer)
        db_session.add(
            WalletTransaction(
                wallet_id=wallet.id,
                user_id=sample_buyer.id,
                type=TransactionType.CREDIT,
                category=TransactionCategory.DEPOSIT,
                status=TransactionStatus.PENDING,
                amount=Decimal("1000"),
                net_amount=Decimal("1000"),
                reference="reach_deposit_celerytest",
                created_at=datetime.utcnow() - timedelta(hours=1),
            )
        )
        await db_session.commit()

        assert await tasks.fail_stale_deposits() == {"failed": 1}

    @pytest.mark.unit
    async def test_refresh_creator_tiers(self, task_env) -> None:
        summary = RefreshSummary(creators=3, accounts_refreshed=4, accounts_failed=1, tier_changes=1)

        with patch(
            "reach.workers.tasks.CreatorTierService.refresh_all",
            new_callable=AsyncMock,
            return_value=summary,
        ):
            result = await tasks.refresh_creator_tiers()

        assert result == {
            "creators": 3,
            "accounts_refreshed": 4,
            "accounts_failed": 1,
            "tier_changes": 1,
        }
