"""Paper wallet accounting and trade ledger records."""

from datetime import datetime
from typing import Any

import structlog

from ..core.types import (
    InsufficientFundsError,
    Position,
    TradeAction,
    TradeLogEntry,
    WalletAccount,
    WalletLogEntry,
)

logger = structlog.get_logger(__name__)


class WalletAccountant:
    """Applies BUY/SELL effects to the paper wallet and emits ledger records."""

    def __init__(
        self,
        starting_balance_sol: float = 10.0,
        trade_size_sol: float = 1.0,
        fee_rate: float = 0.003,
    ) -> None:
        """Initialize the accountant.

        Args:
            starting_balance_sol: Initial SOL balance
            trade_size_sol: Fixed SOL committed per entry (also the P&L cost basis)
            fee_rate: Simulated fee per side as a fraction of the traded SOL
        """
        self.trade_size_sol = trade_size_sol
        self.fee_rate = fee_rate
        self.wallet = WalletAccount(
            sol_balance=starting_balance_sol, initial_sol=starting_balance_sol
        )

        logger.info("Paper wallet initialized", sol_balance=starting_balance_sol)

    def fee(self, sol_amount: float) -> float:
        """Simulated fee for a SOL amount."""
        return sol_amount * self.fee_rate

    @property
    def entry_cost_sol(self) -> float:
        """Trade size plus its entry fee."""
        return self.trade_size_sol + self.fee(self.trade_size_sol)

    def can_afford_entry(self) -> bool:
        return self.wallet.sol_balance >= self.entry_cost_sol

    def record_buy(self, position: Position, now: datetime) -> TradeLogEntry:
        """Debit the wallet for an entry and return the BUY record.

        Args:
            position: The freshly opened position
            now: Execution time

        Returns:
            BUY trade record

        Raises:
            InsufficientFundsError: If the balance cannot cover trade size plus fee
        """
        fee = self.fee(self.trade_size_sol)
        cost = self.trade_size_sol + fee
        if self.wallet.sol_balance < cost:
            raise InsufficientFundsError(
                f"Balance {self.wallet.sol_balance:.6f} SOL < required {cost:.6f} SOL"
            )

        self.wallet.sol_balance -= cost
        self.wallet.total_fees_paid += fee

        entry = TradeLogEntry(
            timestamp=now,
            action=TradeAction.BUY,
            symbol=position.symbol,
            pair_address=position.pair_address,
            sol_amount=self.trade_size_sol,
            token_amount=position.amount_token,
            price_native=position.entry_price_native,
            fee_sol=fee,
        )

        logger.info(
            "Paper BUY recorded",
            symbol=entry.symbol,
            pair_address=entry.pair_address,
            token_amount=entry.token_amount,
            price_native=entry.price_native,
            fee_sol=fee,
            sol_balance=self.wallet.sol_balance,
        )
        return entry

    def record_sell(
        self, position: Position, price_native: float, reason: str, now: datetime
    ) -> TradeLogEntry:
        """Credit the wallet for an exit and return the SELL record.

        P&L is net proceeds minus the fixed trade size; the entry fee is not
        part of the cost basis.

        Args:
            position: The position being closed
            price_native: Exit price in SOL
            reason: Human readable exit reason
            now: Execution time

        Returns:
            SELL trade record
        """
        gross = position.amount_token * price_native
        fee = self.fee(gross)
        net = gross - fee
        profit_loss = net - self.trade_size_sol

        self.wallet.sol_balance += net
        self.wallet.total_fees_paid += fee
        self.wallet.trades_made += 1
        if profit_loss > 0:
            self.wallet.profitable_trades += 1

        entry = TradeLogEntry(
            timestamp=now,
            action=TradeAction.SELL,
            symbol=position.symbol,
            pair_address=position.pair_address,
            sol_amount=gross,
            token_amount=position.amount_token,
            price_native=price_native,
            fee_sol=fee,
            profit_loss_sol=profit_loss,
            reason=reason,
        )

        logger.info(
            "Paper SELL recorded",
            symbol=entry.symbol,
            pair_address=entry.pair_address,
            gross_sol=gross,
            fee_sol=fee,
            profit_loss_sol=profit_loss,
            reason=reason,
            sol_balance=self.wallet.sol_balance,
        )
        return entry

    def wallet_entry(self, position: Position, now: datetime) -> WalletLogEntry:
        """Snapshot the wallet together with the current holding."""
        return WalletLogEntry(
            timestamp=now,
            sol_balance=self.wallet.sol_balance,
            holding=position.model_copy(),
            trades_made=self.wallet.trades_made,
            fees_paid=self.wallet.total_fees_paid,
        )

    def summary(self) -> dict[str, Any]:
        """Wallet summary for logging."""
        return {
            "sol_balance": self.wallet.sol_balance,
            "trades_made": self.wallet.trades_made,
            "profitable_pct": self.wallet.profitability_pct,
            "total_fees_paid": self.wallet.total_fees_paid,
            "net_change_sol": self.wallet.sol_balance - self.wallet.initial_sol,
        }
