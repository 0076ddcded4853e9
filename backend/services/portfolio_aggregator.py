"""
Multi-Wallet Aggregator
Folds per-wallet token lists into one portfolio keyed by token address.

Raw balances are summed as Python ints, amounts and values as Decimals
under the exact unit context, so large balances are never rounded.
LP share percentages are added wallet by wallet, not recomputed against a
combined supply; two wallets in the same pool can exceed 100% in sum when
their snapshots differ.
"""

import logging
from decimal import localcontext
from typing import Dict, List, Optional, Sequence, Tuple

from models.tokens import CombinedLPData, CombinedToken, LPPosition, TokenQuote, WalletHolding
from models.units import UNIT_CONTEXT, ZERO, safe_div

logger = logging.getLogger("Aggregator")

WalletTokens = Tuple[str, Sequence[TokenQuote]]


def wallet_label(address: str) -> str:
    """Short display label: first 8 characters of the address"""
    return f"{address[:8]}..."


class MultiWalletAggregator:
    """Pure fold, no state kept between calls"""

    def combine(self, per_wallet: Sequence[WalletTokens]) -> List[CombinedToken]:
        """
        Merge (wallet_address, tokens) pairs into CombinedTokens sorted by
        total value, descending. Ties sort by address so the result does not
        depend on wallet order.
        """
        combined: Dict[str, CombinedToken] = {}

        with localcontext(UNIT_CONTEXT):
            for wallet, tokens in per_wallet:
                label = wallet_label(wallet)
                for token in tokens:
                    self._fold(combined, wallet, label, token)

        result = sorted(combined.values(), key=lambda t: (-t.total_value, t.address))
        logger.info(f"Combined {len(per_wallet)} wallets into {len(result)} unique tokens")
        return result

    def _fold(self, combined: Dict[str, CombinedToken], wallet: str, label: str, token: TokenQuote):
        key = token.address.lower()
        holding = WalletHolding(
            wallet_address=wallet,
            wallet_label=label,
            raw_balance=token.raw_balance,
            amount=token.balance_formatted,
            value=token.value,
        )

        existing = combined.get(key)
        if existing is None:
            entry = CombinedToken(
                address=key,
                symbol=token.symbol,
                name=token.name,
                decimals=token.decimals,
                price=token.price,
                has_price=token.has_price,
                total_raw_balance=int(token.raw_balance),
                total_amount=token.balance_formatted,
                total_value=token.value,
                breakdown=[holding],
                priced_amount=token.balance_formatted if token.has_price else ZERO,
            )
            if isinstance(token, LPPosition):
                entry.combined_lp_data = CombinedLPData(
                    token0_amount=token.token0.amount,
                    token1_amount=token.token1.amount,
                    token0_value=token.token0.value,
                    token1_value=token.token1.value,
                    total_share_percent=token.user_share_percent,
                )
                entry.pair_label = token.pair_label
            combined[key] = entry
            return

        existing.total_raw_balance += int(token.raw_balance)
        existing.total_amount += token.balance_formatted
        existing.total_value += token.value
        existing.wallet_count += 1
        existing.breakdown.append(holding)

        if token.has_price:
            # Wallets scanned minutes apart can carry different quotes;
            # the value-weighted price does not depend on fold order
            existing.priced_amount += token.balance_formatted
            existing.has_price = True
            existing.price = safe_div(existing.total_value, existing.priced_amount)

        if isinstance(token, LPPosition):
            lp = existing.combined_lp_data
            if lp is None:
                lp = existing.combined_lp_data = CombinedLPData()
                existing.pair_label = token.pair_label
            lp.token0_amount += token.token0.amount
            lp.token1_amount += token.token1.amount
            lp.token0_value += token.token0.value
            lp.token1_value += token.token1.value
            lp.total_share_percent += token.user_share_percent


def build_combined_lp_summary(
    tokens: Sequence[CombinedToken],
    wallet_positions: Optional[List[Dict]] = None,
) -> Optional[Dict]:
    """Portfolio-wide LP overview, None when no wallet holds an LP token"""
    lp_tokens = [t for t in tokens if t.is_liquidity_pair]
    if not lp_tokens:
        return None

    summary = {
        "count": len(lp_tokens),
        "totalValue": float(sum((t.total_value for t in lp_tokens), ZERO)),
        "positions": [
            {
                "pair": lp.pair_label or "Unknown",
                "address": lp.address,
                "totalValue": float(lp.total_value),
                "walletCount": lp.wallet_count,
                "combinedSharePercent": float(lp.combined_lp_data.total_share_percent),
                "token0Value": float(lp.combined_lp_data.token0_value),
                "token1Value": float(lp.combined_lp_data.token1_value),
            }
            for lp in lp_tokens
        ],
    }
    if wallet_positions is not None:
        summary["walletPositions"] = wallet_positions
    return summary
