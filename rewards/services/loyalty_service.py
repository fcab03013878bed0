"""
Loyalty Ledger Service.

Owns every change to an account's reward balances:
- award_points: accrue points for a completed order (once per order)
- adjust_points: move the balance when an order total is edited later
- redeem_points: spend points for store value

INVARIANTS:
- lifetime_reward_points never decreases
- reward_points (spendable) never goes below zero
- at most one 'earn' ledger entry per order; adjustments require it
- balance update and ledger append commit together or not at all

Each mutation runs in _run_atomic(): the account row is locked
(SELECT ... FOR UPDATE) and the version column catches lost updates on
backends without row locks. A conflicting write is retried once; after that
the caller gets PersistenceError with nothing committed.

The reward email is queued after the points commit, outside the
transaction. A failure there is logged and never affects the award.
"""

import uuid
from dataclasses import dataclass, asdict
from decimal import Decimal
from typing import Optional, List, Dict, Any, Callable
from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..models.account import Account
from ..models.ledger import LedgerEntry, LedgerKind, ReferenceType
from ..utils.exceptions import (
    RewardsError,
    AccountNotFoundError,
    ConcurrencyConflict,
    InsufficientPointsError,
    InvalidInputError,
    PersistenceError,
)
from ..utils.money import to_decimal, to_cents
from .accrual import compute_base_points, compute_earned_points
from .notification_service import notification_service
from .program_config import LoyaltyConfig
from .tiers import (
    Tier,
    load_tiers,
    resolve_tier,
    points_to_next_tier,
    tier_progress_percent,
)


# ==================== Results ====================

@dataclass
class AwardResult:
    success: bool
    points_earned: int = 0
    new_balance: int = 0
    lifetime_points: int = 0
    old_tier: Optional[Tier] = None
    new_tier: Optional[Tier] = None
    next_tier: Optional[Tier] = None
    points_to_next_tier: int = 0
    tier_upgrade: bool = False
    multiplier: Decimal = Decimal('1')
    ledger_entry_id: Optional[int] = None
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': self.success,
            'points_earned': self.points_earned,
            'new_balance': self.new_balance,
            'lifetime_points': self.lifetime_points,
            'old_tier': self.old_tier.to_dict() if self.old_tier else None,
            'new_tier': self.new_tier.to_dict() if self.new_tier else None,
            'next_tier': self.next_tier.to_dict() if self.next_tier else None,
            'points_to_next_tier': self.points_to_next_tier,
            'tier_upgrade': self.tier_upgrade,
            'multiplier': float(self.multiplier),
            'ledger_entry_id': self.ledger_entry_id,
            'reason': self.reason,
        }


@dataclass
class AdjustResult:
    success: bool
    points_adjusted: int = 0
    adjustment_type: str = 'none'  # increase, decrease, none
    previous_balance: Optional[int] = None
    new_balance: Optional[int] = None
    lifetime_points: Optional[int] = None
    ledger_entry_id: Optional[int] = None
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class RedeemResult:
    success: bool
    points_redeemed: int = 0
    credit_value: Decimal = Decimal('0')
    new_balance: Optional[int] = None
    reference_id: Optional[str] = None
    ledger_entry_id: Optional[int] = None
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['credit_value'] = float(self.credit_value)
        return data


class LoyaltyService:
    """
    Central service for reward point balances.

    Usage:
        config = load_loyalty_config()
        service = LoyaltyService()

        result = service.award_points(account_id, order_id, 'ORD-1001', Decimal('150.00'), config)
        result = service.adjust_points(account_id, order_id, 'ORD-1001', Decimal('150.00'), Decimal('100.00'), config)
    """

    def __init__(self, notifier=None, tier_loader: Callable[[], List[Tier]] = None):
        """
        Args:
            notifier: anything with queue_reward_email(account, variables);
                defaults to the SendGrid-backed email queue
            tier_loader: returns the tier table; defaults to the cached loader
        """
        self.notifier = notifier or notification_service
        self.tier_loader = tier_loader or load_tiers

    # ==================== Award ====================

    def award_points(
        self,
        account_id: str,
        order_id: str,
        order_number: str,
        order_total,
        config: LoyaltyConfig
    ) -> AwardResult:
        """
        Award points for a completed order.

        Points are earned at the multiplier of the tier the account holds
        before this order. Calling this again for the same order is a no-op.

        Raises:
            InvalidInputError: negative order total
            AccountNotFoundError: unknown account
            ConfigurationError: no tiers defined
            PersistenceError: storage failure, nothing committed
        """
        if not config.program_enabled:
            return AwardResult(success=False, reason='program_disabled')

        total = to_decimal(order_total, 'order_total')
        if total < 0:
            raise InvalidInputError('Order total cannot be negative', 'order_total')

        order_id = str(order_id)
        tiers = self.tier_loader()

        def operation() -> AwardResult:
            account = self._lock_account(account_id)

            # Checked under the account lock so a retried call cannot double-accrue
            if LedgerEntry.find_order_earn(order_id):
                return self._already_awarded(account, tiers)

            old = resolve_tier(account.reward_points, tiers)
            earned = compute_earned_points(total, config.points_per_unit, old.current.multiplier)

            new_balance = account.reward_points + earned
            new_lifetime = (account.lifetime_reward_points or 0) + earned
            new = resolve_tier(new_balance, tiers)

            account.reward_points = new_balance
            account.lifetime_reward_points = new_lifetime
            account.reward_tier = new.current.name

            entry = LedgerEntry(
                account_id=account.id,
                points=earned,
                kind=LedgerKind.EARN.value,
                description=f'Earned from order #{order_number}',
                reference_type=ReferenceType.ORDER.value,
                reference_id=order_id,
            )
            db.session.add(entry)
            db.session.flush()

            return AwardResult(
                success=True,
                points_earned=earned,
                new_balance=new_balance,
                lifetime_points=new_lifetime,
                old_tier=old.current,
                new_tier=new.current,
                next_tier=new.next,
                points_to_next_tier=points_to_next_tier(new_balance, new),
                tier_upgrade=new.current.name != old.current.name,
                multiplier=old.current.multiplier,
                ledger_entry_id=entry.id,
            )

        def on_duplicate() -> AwardResult:
            account = self._get_account(account_id)
            return self._already_awarded(account, tiers)

        result = self._run_atomic(operation, account_id, on_integrity_error=on_duplicate)

        if result.success:
            current_app.logger.info(
                f"Points awarded: account {account_id} +{result.points_earned} pts "
                f"for order #{order_number} ({result.old_tier.name} {result.multiplier}x)"
                + (f", upgraded to {result.new_tier.name}" if result.tier_upgrade else '')
            )
            self._notify_points_earned(account_id, order_number, total, result)
        else:
            current_app.logger.info(
                f"Points already awarded for order #{order_number}, skipping (account {account_id})"
            )

        return result

    def _already_awarded(self, account: Account, tiers: List[Tier]) -> AwardResult:
        resolution = resolve_tier(account.reward_points, tiers)
        return AwardResult(
            success=False,
            new_balance=account.reward_points,
            lifetime_points=account.lifetime_reward_points or 0,
            old_tier=resolution.current,
            new_tier=resolution.current,
            next_tier=resolution.next,
            points_to_next_tier=points_to_next_tier(account.reward_points, resolution),
            reason='already_awarded',
        )

    def _notify_points_earned(self, account_id: str, order_number: str, order_total: Decimal, result: AwardResult) -> None:
        """Queue the reward email. Never raises."""
        if result.points_earned <= 0:
            return

        try:
            account = self._get_account(account_id)
            resolution = resolve_tier(result.new_balance, self.tier_loader())
            variables = {
                'order_number': order_number,
                'order_total': f"{to_cents(order_total):.2f}",
                'points_earned': result.points_earned,
                'multiplier': f"{result.multiplier.normalize():f}",
                'new_balance': result.new_balance,
                'old_tier': result.old_tier.name,
                'new_tier': result.new_tier.name,
                'new_multiplier': f"{result.new_tier.multiplier.normalize():f}",
                'tier_upgrade': result.tier_upgrade,
                'next_tier': result.next_tier.name if result.next_tier else None,
                'points_to_next_tier': result.points_to_next_tier,
                'progress_percent': tier_progress_percent(result.new_balance, resolution, baseline=result.old_tier),
                'next_tier_benefits': (
                    ', '.join(result.next_tier.benefits) or 'Exclusive perks'
                ) if result.next_tier else '',
            }
            self.notifier.queue_reward_email(account, variables)
        except Exception as e:
            db.session.rollback()
            current_app.logger.warning(
                f"Reward email not queued for account {account_id}, order #{order_number}: {e}"
            )

    # ==================== Adjust ====================

    def adjust_points(
        self,
        account_id: str,
        order_id: str,
        order_number: str,
        old_total,
        new_total,
        config: LoyaltyConfig
    ) -> AdjustResult:
        """
        Adjust points after an order's total was edited.

        Only orders that earned points originally are adjusted. The change is
        computed at the base rate only: the tier multiplier applied at award
        time stays locked in.

        Decreases clamp the spendable balance at zero and never reduce
        lifetime points.

        Raises:
            InvalidInputError: negative totals, or the order belongs to another account
            AccountNotFoundError: unknown account
            PersistenceError: storage failure, nothing committed
        """
        if not config.program_enabled:
            return AdjustResult(success=False, reason='program_disabled')

        old_amount = to_decimal(old_total, 'old_total')
        new_amount = to_decimal(new_total, 'new_total')
        if old_amount < 0 or new_amount < 0:
            raise InvalidInputError('Order totals cannot be negative', 'order_total')

        order_id = str(order_id)
        anchor = LedgerEntry.find_order_earn(order_id)
        if anchor is None:
            current_app.logger.info(
                f"No reward accrual found for order #{order_number}, skipping adjustment"
            )
            return AdjustResult(success=False, reason='no_prior_accrual')

        if anchor.account_id != str(account_id):
            raise InvalidInputError(
                f'Order #{order_number} earned points for a different account', 'account_id'
            )

        old_points = compute_base_points(old_amount, config.points_per_unit)
        new_points = compute_base_points(new_amount, config.points_per_unit)
        delta = new_points - old_points

        if delta == 0:
            return AdjustResult(success=True, adjustment_type='none', reason='no_change')

        tiers = self.tier_loader()
        adjustment_type = 'increase' if delta > 0 else 'decrease'
        verb = 'increased' if delta > 0 else 'decreased'
        description = (
            f'Order #{order_number} total {verb}: {delta:+d} points '
            f'({to_cents(old_amount):.2f} → {to_cents(new_amount):.2f})'
        )

        def operation() -> AdjustResult:
            account = self._lock_account(account_id)
            previous = account.reward_points

            updated = max(0, previous + delta)
            lifetime = account.lifetime_reward_points or 0
            if delta > 0:
                lifetime += delta

            account.reward_points = updated
            account.lifetime_reward_points = lifetime
            account.reward_tier = resolve_tier(updated, tiers).current.name

            entry = LedgerEntry(
                account_id=account.id,
                points=delta,
                kind=LedgerKind.ADJUST.value,
                description=description,
                reference_type=ReferenceType.ORDER_EDIT.value,
                reference_id=order_id,
            )
            db.session.add(entry)
            db.session.flush()

            return AdjustResult(
                success=True,
                points_adjusted=delta,
                adjustment_type=adjustment_type,
                previous_balance=previous,
                new_balance=updated,
                lifetime_points=lifetime,
                ledger_entry_id=entry.id,
            )

        result = self._run_atomic(operation, account_id)
        current_app.logger.info(
            f"Points adjusted: account {account_id} {delta:+d} pts for order #{order_number} "
            f"({result.previous_balance} → {result.new_balance})"
        )
        return result

    # ==================== Redeem ====================

    def redeem_points(
        self,
        account_id: str,
        points: int,
        config: LoyaltyConfig,
        reference_id: str = None,
        description: str = None
    ) -> RedeemResult:
        """
        Spend points for store value at the program's point value.

        Lifetime points are untouched.

        Raises:
            InvalidInputError: points is not a positive integer
            InsufficientPointsError: balance too small
            AccountNotFoundError: unknown account
            PersistenceError: storage failure, nothing committed
        """
        if not config.program_enabled:
            return RedeemResult(success=False, reason='program_disabled')

        if isinstance(points, bool) or not isinstance(points, int) or points <= 0:
            raise InvalidInputError('Points to redeem must be a positive whole number', 'points')

        reference_id = str(reference_id or uuid.uuid4())
        credit_value = to_cents(Decimal(points) * config.point_value)
        tiers = self.tier_loader()

        def operation() -> RedeemResult:
            account = self._lock_account(account_id)
            if account.reward_points < points:
                raise InsufficientPointsError(account.reward_points, points)

            account.reward_points -= points
            account.reward_tier = resolve_tier(account.reward_points, tiers).current.name

            entry = LedgerEntry(
                account_id=account.id,
                points=-points,
                kind=LedgerKind.REDEEM.value,
                description=description or f'Redeemed {points} points for ${credit_value:.2f}',
                reference_type=ReferenceType.REDEMPTION.value,
                reference_id=reference_id,
            )
            db.session.add(entry)
            db.session.flush()

            return RedeemResult(
                success=True,
                points_redeemed=points,
                credit_value=credit_value,
                new_balance=account.reward_points,
                reference_id=reference_id,
                ledger_entry_id=entry.id,
            )

        result = self._run_atomic(operation, account_id)
        current_app.logger.info(
            f"Points redeemed: account {account_id} -{points} pts for ${credit_value:.2f}"
        )
        return result

    # ==================== Read Operations ====================

    def preview_order_points(self, account_id: str, order_total, config: LoyaltyConfig) -> int:
        """Points an order of this size would earn right now (0 if the program is off)."""
        if not config.program_enabled:
            return 0
        account = self._get_account(account_id)
        resolution = resolve_tier(account.reward_points, self.tier_loader())
        return compute_earned_points(order_total, config.points_per_unit, resolution.current.multiplier)

    def is_order_eligible_for_adjustment(self, order_id: str) -> bool:
        """An order can be adjusted only if it earned points originally."""
        return LedgerEntry.find_order_earn(str(order_id)) is not None

    def get_order_reward_history(self, order_id: str) -> List[Dict[str, Any]]:
        """Accrual and edit adjustments for an order, newest first."""
        entries = (
            LedgerEntry.query
            .filter(
                LedgerEntry.reference_id == str(order_id),
                LedgerEntry.reference_type.in_([
                    ReferenceType.ORDER.value,
                    ReferenceType.ORDER_EDIT.value,
                ]),
            )
            .order_by(LedgerEntry.created_at.desc(), LedgerEntry.id.desc())
            .all()
        )
        return [entry.to_dict() for entry in entries]

    def get_account_history(self, account_id: str, limit: int = 50) -> List[Dict[str, Any]]:
        """Most recent ledger entries for an account."""
        self._get_account(account_id)
        entries = (
            LedgerEntry.query
            .filter_by(account_id=str(account_id))
            .order_by(LedgerEntry.created_at.desc(), LedgerEntry.id.desc())
            .limit(limit)
            .all()
        )
        return [entry.to_dict() for entry in entries]

    def get_account_summary(self, account_id: str) -> Dict[str, Any]:
        """
        Balance, tier and progress for the rewards page.

        The tier is resolved from the balance, not read from the cached
        reward_tier column.
        """
        account = self._get_account(account_id)
        resolution = resolve_tier(account.reward_points, self.tier_loader())
        return {
            'account_id': account.id,
            'reward_points': account.reward_points,
            'lifetime_reward_points': account.lifetime_reward_points or 0,
            'tier': resolution.current.to_dict(),
            'next_tier': resolution.next.to_dict() if resolution.next else None,
            'points_to_next_tier': points_to_next_tier(account.reward_points, resolution),
            'progress_percent': tier_progress_percent(account.reward_points, resolution),
        }

    # ==================== Helpers ====================

    def _get_account(self, account_id: str) -> Account:
        account = db.session.get(Account, str(account_id))
        if account is None:
            raise AccountNotFoundError(account_id)
        return account

    def _lock_account(self, account_id: str) -> Account:
        """Load the account row FOR UPDATE, refreshing any stale copy in the session."""
        account = (
            Account.query
            .filter_by(id=str(account_id))
            .populate_existing()
            .with_for_update()
            .first()
        )
        if account is None:
            raise AccountNotFoundError(account_id)
        return account

    def _run_atomic(self, operation: Callable, account_id: str, on_integrity_error: Callable = None):
        """
        Run operation() and commit, as one unit of work.

        StaleDataError means another request updated the account between our
        read and write (ConcurrencyConflict); the whole operation is retried
        up to BALANCE_UPDATE_ATTEMPTS times. Any storage failure rolls back
        and surfaces as PersistenceError.

        on_integrity_error, when given, turns a unique-constraint violation
        into a result instead of an error.
        """
        attempts = max(1, int(current_app.config.get('BALANCE_UPDATE_ATTEMPTS', 2)))

        for attempt in range(1, attempts + 1):
            try:
                result = operation()
                db.session.commit()
                return result
            except StaleDataError as e:
                db.session.rollback()
                conflict = ConcurrencyConflict('Account', account_id)
                current_app.logger.warning(f"{conflict.message} (attempt {attempt}/{attempts})")
                if attempt == attempts:
                    raise PersistenceError(
                        f'Could not update account {account_id} after {attempts} attempts',
                        original_error=e
                    ) from conflict
            except IntegrityError as e:
                db.session.rollback()
                if on_integrity_error is not None:
                    return on_integrity_error()
                raise PersistenceError(f'Integrity error updating account {account_id}', original_error=e)
            except RewardsError:
                db.session.rollback()
                raise
            except SQLAlchemyError as e:
                db.session.rollback()
                current_app.logger.error(f"Points update failed for account {account_id}: {e}")
                raise PersistenceError(f'Failed to update account {account_id}', original_error=e)


# Singleton instance
loyalty_service = LoyaltyService()
