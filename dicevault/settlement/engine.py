"""
Settlement engine for resolving bets against the house signature.
"""

import logging
from dataclasses import dataclass

from dicevault.core.models import VAULT_SEED, Bet, SettlementRecord
from dicevault.ledger.transaction import AccountMeta, InstructionContext
from dicevault.settlement.outcome import compute_payout, derive_outcome, is_win
from dicevault.verification.verifier import SignatureVerifier

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolveAccounts:
    """Accounts of a resolve_bet instruction, already constraint-checked."""
    house:      AccountMeta
    player:     AccountMeta
    vault:      AccountMeta
    bet:        AccountMeta
    sysvar:     AccountMeta
    vault_bump: int
    record:     Bet


class SettlementEngine:
    """
    Settles one open bet.

    Open → Settled is a single transition:
        verify signature → derive outcome → pay if won → close bet to player

    Any failure raises; the ledger then rolls the transaction back, leaving
    the bet open for a retry with a valid signature.
    """

    def __init__(self, verifier: SignatureVerifier):
        self.verifier = verifier

    def settle(
        self,
        ctx:       InstructionContext,
        accounts:  ResolveAccounts,
        signature: bytes,
    ) -> SettlementRecord:
        """
        Args:
            ctx:       Context of the executing resolve_bet instruction
            accounts:  Validated accounts and the decoded bet
            signature: 64-byte house signature from the instruction data

        Returns:
            SettlementRecord, also emitted as a ``bet_settled`` event
        """
        bet = accounts.record
        house = accounts.house.address
        player = accounts.player.address
        vault = accounts.vault.address

        auth = self.verifier.verify(bet, house, signature, ctx, accounts.sysvar)

        outcome = derive_outcome(auth.signature)
        won = is_win(outcome, bet.roll)

        payout = 0
        if won:
            payout = compute_payout(bet.amount, bet.roll)
            ctx.ledger.transfer(
                ctx,
                vault,
                player,
                payout,
                signer_seeds=[VAULT_SEED, house, bytes([accounts.vault_bump])],
            )

        # Closed on both branches.
        reclaimed = ctx.ledger.close_account(ctx, accounts.bet.address, player)

        record = SettlementRecord(
            bet=accounts.bet.address.hex(),
            player=player.hex(),
            vault=vault.hex(),
            seed=bet.seed,
            roll=bet.roll,
            amount=bet.amount,
            outcome=outcome,
            won=won,
            payout=payout,
            reclaimed=reclaimed,
            slot=ctx.slot,
        )
        ctx.emit("bet_settled", record.to_dict())
        logger.info(
            "bet %s settled: roll=%d outcome=%d %s payout=%d",
            record.bet[:16], bet.roll, outcome, "won" if won else "lost", payout,
        )
        return record
