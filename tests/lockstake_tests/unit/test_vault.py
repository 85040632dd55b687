"""
Tests for the simulated yield vault.

The vault emits 1 token-unit per second between start and end, shared
pro-rata by remaining principal.
"""
import pytest

from lockstake.core.clock import ONE_DAY_SEC, ChainClock
from lockstake.core.contracts.erc20 import ERC20Token
from lockstake.core.defi.vault import ExternalVault, LockTier, SimulatedVault
from lockstake.core.pool_exceptions import AuthorizationError, BatchLockedError, ZeroAmountError

OWNER = "0xowner"
POOL = "0xpool"
OTHER = "0xother"
START = 1_000_000
E = 10**18


def _vault(vesting_period=0, rate=E):
    clock = ChainClock(timestamp=START - 10)
    token = ERC20Token(name="Magic", symbol="MAGIC", owner=OWNER)
    vault = SimulatedVault(
        token=token,
        clock=clock,
        reward_rate=rate,
        start=START,
        end=START + 100 * ONE_DAY_SEC,
        vesting_period=vesting_period,
    )
    token.mint(OWNER, vault.address, rate * 100 * ONE_DAY_SEC)
    for holder in (POOL, OTHER):
        token.mint(OWNER, holder, 1_000 * E)
        token.approve(holder, vault.address, token.UINT256_MAX)
    return vault, token, clock


class TestLockTier:
    def test_durations(self):
        assert LockTier.TWO_WEEKS.value == 14 * ONE_DAY_SEC
        assert LockTier.TWELVE_MONTHS.value == 365 * ONE_DAY_SEC

    def test_from_name(self):
        assert LockTier.from_name(" one_month ") is LockTier.ONE_MONTH
        with pytest.raises(ValueError):
            LockTier.from_name("forever")


class TestSimulatedVault:
    def test_satisfies_protocol(self):
        vault, _, _ = _vault()
        assert isinstance(vault, ExternalVault)

    def test_deposit_pulls_tokens_and_locks(self):
        vault, token, clock = _vault()

        handle = vault.deposit(POOL, 100 * E, LockTier.TWO_WEEKS)

        assert token.balance_of(POOL) == 900 * E
        assert vault.current_principal(handle) == 100 * E
        assert vault.deposits[handle].unlock_at == clock.now() + 14 * ONE_DAY_SEC
        assert vault.withdrawable_principal(handle) == 0

    def test_zero_deposit_rejected(self):
        vault, _, _ = _vault()
        with pytest.raises(ZeroAmountError):
            vault.deposit(POOL, 0, LockTier.TWO_WEEKS)

    def test_withdraw_before_unlock_rejected(self):
        vault, _, clock = _vault()
        handle = vault.deposit(POOL, 100 * E, LockTier.TWO_WEEKS)
        clock.advance(ONE_DAY_SEC)

        with pytest.raises(BatchLockedError):
            vault.withdraw_and_harvest(POOL, handle, 1)

    def test_withdraw_by_other_owner_rejected(self):
        vault, _, clock = _vault()
        handle = vault.deposit(POOL, 100 * E, LockTier.TWO_WEEKS)
        clock.advance(15 * ONE_DAY_SEC)

        with pytest.raises(AuthorizationError):
            vault.withdraw_and_harvest(OTHER, handle, 1)

    def test_emissions_split_by_principal(self):
        vault, token, clock = _vault()
        vault.deposit(POOL, 300 * E, LockTier.TWO_WEEKS)
        vault.deposit(OTHER, 100 * E, LockTier.TWO_WEEKS)
        clock.set(START + 1_000)

        assert vault.pending_yield(POOL) == 750 * E
        assert vault.harvest_all(POOL) == 750 * E
        assert token.balance_of(POOL) == 700 * E + 750 * E
        assert vault.pending_yield(POOL) == 0
        assert vault.pending_yield(OTHER) == 250 * E

    def test_no_emission_before_start(self):
        vault, _, clock = _vault()
        vault.deposit(POOL, 100 * E, LockTier.TWO_WEEKS)
        clock.set(START)

        assert vault.harvest_all(POOL) == 0

    def test_withdraw_returns_principal_and_yield(self):
        vault, _, clock = _vault()
        handle = vault.deposit(POOL, 100 * E, LockTier.TWO_WEEKS)
        clock.set(START + 15 * ONE_DAY_SEC)

        principal, harvested = vault.withdraw_and_harvest(POOL, handle, 40 * E)

        assert principal == 40 * E
        assert harvested == 15 * ONE_DAY_SEC * E
        assert vault.current_principal(handle) == 60 * E

    def test_vesting_limits_released_principal(self):
        vault, _, clock = _vault(vesting_period=10 * ONE_DAY_SEC)
        handle = vault.deposit(POOL, 100 * E, LockTier.TWO_WEEKS)
        unlock_at = vault.deposits[handle].unlock_at
        clock.set(unlock_at + 5 * ONE_DAY_SEC)

        assert vault.withdrawable_principal(handle) == 50 * E
        principal, _ = vault.withdraw_and_harvest(POOL, handle, 100 * E)

        assert principal == 50 * E
        assert vault.current_principal(handle) == 50 * E
        assert vault.withdrawable_principal(handle) == 0

    def test_restore_reverts_accounting(self):
        vault, _, clock = _vault()
        vault.deposit(POOL, 100 * E, LockTier.TWO_WEEKS)
        clock.set(START + 100)
        snapshot = vault.snapshot()

        vault.harvest_all(POOL)
        vault.deposit(POOL, 5 * E, LockTier.TWO_WEEKS)
        vault.restore(snapshot)

        assert vault.pending_yield(POOL) == 100 * E
        assert vault.total_deposits == 100 * E
        assert len(vault.deposits) == 1
