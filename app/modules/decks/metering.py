"""Usage metering around deck generation.

Active subscribers are unmetered. Everyone else must hold at least ``cost``
tokens before the model is called, and is debited only once a deck exists.
A debit that fails after a successful generation does not fail the request:
the deck is returned and the desync is flagged for reconciliation.
"""

from __future__ import annotations

import asyncio
import enum
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Protocol

from app.core.logging import get_logger
from app.modules.decks.errors import MeteringError, MeteringErrorKind
from app.modules.decks.models import GeneratedDeck

logger = get_logger(__name__)


@dataclass(frozen=True)
class UsageLedgerEntry:
    token_count: int
    subscription_status: Optional[str] = None


class MeteringState(enum.Enum):
    PENDING = "pending"
    GENERATING = "generating"
    SUCCEEDED_DEBITED = "succeeded_debited"
    SUCCEEDED_UNMETERED = "succeeded_unmetered"
    SUCCEEDED_DEBIT_FAILED = "succeeded_debit_failed"
    FAILED = "failed"


class ProfileStore(Protocol):
    """Per-user allowance storage used by the gate."""

    async def get_usage(self, user_id: int) -> Optional[UsageLedgerEntry]:
        """Return the ledger entry, or None when the user has no profile."""
        ...

    async def debit(self, user_id: int, cost: int) -> bool:
        """Atomically subtract ``cost`` if the balance covers it; False otherwise."""
        ...

    async def flag_debit_failure(self, user_id: int, cost: int, reason: str) -> None:
        ...


@dataclass
class MeteredDeck:
    deck: GeneratedDeck
    state: MeteringState
    balance_before: Optional[int] = None


GenerateFn = Callable[[], Awaitable[GeneratedDeck]]


class MeteringGate:
    """Meters one generation; ``state`` follows PENDING -> GENERATING -> outcome."""

    def __init__(self, store: ProfileStore, *, active_status: str = "active") -> None:
        self.store = store
        self.active_status = active_status
        self.state = MeteringState.PENDING

    def _transition(self, state: MeteringState) -> None:
        logger.debug("Metering %s -> %s", self.state.value, state.value)
        self.state = state

    async def check(self, user_id: int, cost: int) -> tuple[UsageLedgerEntry, bool]:
        """Pre-check; returns the ledger entry and whether a debit will be due."""
        try:
            usage = await self.store.get_usage(user_id)
        except MeteringError:
            raise
        except Exception as e:  # noqa: BLE001
            logger.error("Failed to fetch usage profile for user %s: %s", user_id, e)
            raise MeteringError(
                MeteringErrorKind.PROFILE_LOOKUP_FAILED,
                "Failed to fetch user profile for token processing.",
                original=e,
            )
        if usage is None:
            logger.error("No usage profile found for user %s", user_id)
            raise MeteringError(
                MeteringErrorKind.PROFILE_NOT_FOUND, "User profile not found."
            )

        if (usage.subscription_status or "").lower() == self.active_status:
            logger.info("User %s is an active subscriber, skipping token check", user_id)
            return usage, False

        if usage.token_count < cost:
            logger.warning(
                "User %s has insufficient tokens (%d < %d)",
                user_id,
                usage.token_count,
                cost,
            )
            raise MeteringError(
                MeteringErrorKind.INSUFFICIENT_BALANCE,
                f"Insufficient tokens. You have {usage.token_count}, but {cost} are "
                "required to generate a deck. Please purchase more tokens or "
                "subscribe for unlimited access.",
                balance=usage.token_count,
                required=cost,
            )
        return usage, True

    async def with_metering(
        self, user_id: int, cost: int, generate_fn: GenerateFn
    ) -> MeteredDeck:
        try:
            usage, metered = await self.check(user_id, cost)
        except MeteringError:
            self._transition(MeteringState.FAILED)
            raise

        self._transition(MeteringState.GENERATING)
        try:
            deck = await generate_fn()
        except asyncio.CancelledError:
            self._transition(MeteringState.FAILED)
            logger.info("Generation cancelled for user %s, no debit", user_id)
            raise
        except Exception:
            self._transition(MeteringState.FAILED)
            logger.info("Generation failed for user %s, no debit", user_id)
            raise

        if not metered:
            self._transition(MeteringState.SUCCEEDED_UNMETERED)
        else:
            self._transition(await self._debit(user_id, cost))
        return MeteredDeck(deck, self.state, usage.token_count)

    async def _debit(self, user_id: int, cost: int) -> MeteringState:
        reason: Optional[str] = None
        try:
            if await self.store.debit(user_id, cost):
                logger.info("Deducted %d tokens from user %s", cost, user_id)
                return MeteringState.SUCCEEDED_DEBITED
            reason = "balance no longer covers the cost"
        except Exception as e:  # noqa: BLE001
            reason = f"debit write failed: {e}"

        logger.critical(
            "Failed to deduct %d tokens for user %s after successful generation (%s)",
            cost,
            user_id,
            reason,
        )
        try:
            await self.store.flag_debit_failure(user_id, cost, reason)
        except Exception as e:  # noqa: BLE001
            logger.critical(
                "Could not record usage anomaly for user %s: %s", user_id, e
            )
        return MeteringState.SUCCEEDED_DEBIT_FAILED
