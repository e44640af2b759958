"""
launch-trader Core: Swap Execution

Quote -> router-built transaction -> sign -> submit -> wait for confirmation.
A swap either returns a confirmed SwapResult or raises an ExecutionFailure;
nothing is fire-and-forget.
"""

import logging
from typing import Optional, Tuple

from core.exceptions import ExecutionRejected, ExecutionTimeout
from core.jupiter_client import JupiterClient, JupiterQuote
from core.models import SwapDirection, SwapResult
from core.solana_rpc import ConfirmationStatus, SolanaRpcClient
from core.wallet import WalletSigner

logger = logging.getLogger(__name__)


class SwapExecutor:
    """
    Executes buys and sells of a token against the user's trading asset.

    Amounts are in UI units: for a buy `amount` is trading-asset units to
    spend, for a sell it is token units to sell.
    """

    def __init__(
        self,
        jupiter: JupiterClient,
        rpc: SolanaRpcClient,
        signer: WalletSigner,
        slippage_bps: Optional[int] = None,
        confirm_timeout_seconds: float = 60.0,
        metrics=None,
    ):
        self.jupiter = jupiter
        self.rpc = rpc
        self.signer = signer
        self.slippage_bps = slippage_bps
        self.confirm_timeout_seconds = float(confirm_timeout_seconds)
        self.metrics = metrics

    @property
    def public_key(self) -> str:
        return self.signer.public_key

    def _mints(self, token_address: str, direction: SwapDirection, trading_asset_mint: str) -> Tuple[str, str]:
        if direction == SwapDirection.BUY:
            return trading_asset_mint, token_address
        return token_address, trading_asset_mint

    def execute(
        self,
        token_address: str,
        direction: SwapDirection,
        amount: float,
        trading_asset_mint: str,
    ) -> SwapResult:
        """
        Swap `amount` and wait for the outcome.

        Raises:
            QuoteUnavailable: no route for the pair/amount
            ExecutionRejected: build or submit refused, or confirmed with an error
            ExecutionTimeout: confirmation did not land in time
        """
        direction = SwapDirection(direction)
        try:
            result = self._execute(token_address, direction, amount, trading_asset_mint)
        except Exception as e:
            self._record(direction, type(e).__name__)
            raise
        self._record(direction, "success")
        return result

    def _execute(
        self,
        token_address: str,
        direction: SwapDirection,
        amount: float,
        trading_asset_mint: str,
    ) -> SwapResult:
        input_mint, output_mint = self._mints(token_address, direction, trading_asset_mint)
        in_decimals = self.rpc.get_token_decimals(input_mint)
        out_decimals = self.rpc.get_token_decimals(output_mint)

        raw_amount = int(amount * 10 ** in_decimals)
        quote: JupiterQuote = self.jupiter.get_quote(input_mint, output_mint, raw_amount, self.slippage_bps)
        quoted_out = quote.out_amount / 10 ** out_decimals
        logger.info(
            f"{direction.value.upper()} {token_address}: quote {amount} -> {quoted_out:.6f} "
            f"(impact {quote.price_impact_pct:.4f}%)"
        )

        unsigned_tx = self.jupiter.build_swap_transaction(quote, self.signer.public_key)
        signed_tx = self.signer.sign_transaction(unsigned_tx)
        signature = self.rpc.send_transaction(signed_tx)

        confirmation = self.rpc.wait_for_confirmation(signature, self.confirm_timeout_seconds)
        if confirmation.status == ConfirmationStatus.FAILED:
            raise ExecutionRejected(f"Swap failed on-chain: {confirmation.error}", signature=signature)
        if confirmation.status == ConfirmationStatus.TIMEOUT:
            raise ExecutionTimeout(
                f"Swap not confirmed within {self.confirm_timeout_seconds:.0f}s", signature=signature
            )

        realized = self.rpc.get_token_balance_change(signature, self.signer.public_key, output_mint)
        if realized is not None and realized > 0:
            output_amount = realized
        else:
            output_amount = quoted_out

        input_amount = quote.in_amount / 10 ** in_decimals
        if direction == SwapDirection.BUY:
            execution_price = input_amount / output_amount if output_amount else 0.0
        else:
            execution_price = output_amount / input_amount if input_amount else 0.0

        logger.info(
            f"{direction.value.upper()} {token_address} confirmed {signature}: "
            f"in={input_amount:.6f} out={output_amount:.6f} price={execution_price:.10f}"
        )
        return SwapResult(
            success=True,
            direction=direction,
            signature=signature,
            input_amount=input_amount,
            output_amount=output_amount,
            execution_price=execution_price,
            price_impact_pct=quote.price_impact_pct,
            quoted_output_amount=quoted_out,
        )

    def _record(self, direction: SwapDirection, outcome: str) -> None:
        if self.metrics is not None:
            self.metrics.record_swap(direction.value, outcome)
