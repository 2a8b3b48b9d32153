"""
Dice program.

Four instructions over two kinds of accounts:

    vault  system-owned PDA [b"vault", house]; holds the bankroll and stakes
    bet    program-owned PDA [b"bet", vault, seed]; one per open wager

    initialize   house moves funds into its vault
    place_bet    player opens a bet and moves the stake into the vault
    resolve_bet  house settles the bet with its signature (SettlementEngine)
    refund_bet   player reclaims the stake after the timeout

Account constraints are checked here, before any handler logic runs.
"""

import logging
from typing import Sequence

from dicevault.config import DiceConfig
from dicevault.core.addressing import create_program_address, find_program_address
from dicevault.core.exceptions import (
    AccountNotFoundError,
    AddressDerivationError,
    ConstraintError,
    InvalidAmountError,
    InvalidInstructionError,
    MaximumRollError,
    MinimumRollError,
    TimeoutNotReachedError,
)
from dicevault.core.models import (
    BET_SEED,
    MAX_ROLL,
    MIN_ROLL,
    VAULT_SEED,
    Bet,
    seed_bytes,
)
from dicevault.ledger.ledger import Ledger
from dicevault.ledger.transaction import AccountMeta, InstructionContext
from dicevault.program.instructions import (
    InitializeArgs,
    PlaceBetArgs,
    RefundBetArgs,
    ResolveBetArgs,
    decode_instruction,
)
from dicevault.settlement.engine import ResolveAccounts, SettlementEngine
from dicevault.verification.verifier import SignatureVerifier

logger = logging.getLogger(__name__)


class DiceProgram:
    """Instruction handler registered on a Ledger under config.program_id."""

    def __init__(self, config: DiceConfig):
        self.config = config
        self.engine = SettlementEngine(SignatureVerifier(config.ed25519_program_id))

    def install(self, ledger: Ledger) -> "DiceProgram":
        ledger.register_program(self.config.program_id, self)
        return self

    def __call__(self, ctx: InstructionContext) -> None:
        args = decode_instruction(ctx.data)
        if isinstance(args, InitializeArgs):
            self.initialize(ctx, args)
        elif isinstance(args, PlaceBetArgs):
            self.place_bet(ctx, args)
        elif isinstance(args, ResolveBetArgs):
            self.resolve_bet(ctx, args)
        elif isinstance(args, RefundBetArgs):
            self.refund_bet(ctx, args)

    # ── Account constraints ───────────────────────────────────

    @staticmethod
    def _expect_accounts(ctx: InstructionContext, count: int) -> Sequence[AccountMeta]:
        if len(ctx.accounts) != count:
            raise InvalidInstructionError(
                "Wrong number of accounts",
                {"expected": count, "got": len(ctx.accounts)},
            )
        return ctx.accounts

    def _check_system(self, meta: AccountMeta) -> None:
        if meta.address != self.config.system_program_id:
            raise ConstraintError("Expected the system program", code="ConstraintAddress")

    def _check_vault(self, vault: AccountMeta, house: AccountMeta) -> int:
        expected, bump = find_program_address([VAULT_SEED, house.address], self.config.program_id)
        if vault.address != expected:
            raise ConstraintError(
                "Vault does not derive from house",
                {"vault": vault.address.hex()},
                code="ConstraintSeeds",
            )
        return bump

    def _load_bet(
        self,
        ctx:    InstructionContext,
        bet:    AccountMeta,
        player: AccountMeta,
        vault:  AccountMeta,
    ) -> Bet:
        account = ctx.ledger.get_account(bet.address)
        if account is None:
            raise AccountNotFoundError("Bet does not exist", {"bet": bet.address.hex()})
        if account.owner != self.config.program_id:
            raise ConstraintError("Bet is not owned by the dice program", code="ConstraintOwner")
        record = Bet.from_account_data(account.data)

        if record.player != player.address:
            raise ConstraintError(
                "Bet belongs to a different player",
                {"player": player.address.hex()},
                code="ConstraintHasOne",
            )
        try:
            derived = create_program_address(
                [BET_SEED, vault.address, seed_bytes(record.seed), bytes([record.bump])],
                self.config.program_id,
            )
        except AddressDerivationError as exc:
            raise ConstraintError("Bet seeds do not derive an address", code="ConstraintSeeds") from exc
        if derived != bet.address or record.vault != vault.address:
            raise ConstraintError(
                "Bet address does not match its seeds",
                {"bet": bet.address.hex()},
                code="ConstraintSeeds",
            )
        return record

    # ── Handlers ──────────────────────────────────────────────

    def initialize(self, ctx: InstructionContext, args: InitializeArgs) -> None:
        house, vault, system = self._expect_accounts(ctx, 3)
        ctx.require_signer(house, "house")
        self._check_vault(vault, house)
        self._check_system(system)
        if args.amount == 0:
            raise InvalidAmountError(details={"amount": args.amount})

        ctx.ledger.transfer(ctx, house.address, vault.address, args.amount)
        ctx.emit("vault_funded", {
            "house":  house.address.hex(),
            "vault":  vault.address.hex(),
            "amount": args.amount,
        })
        logger.info("vault %s funded with %d", vault.address.hex()[:16], args.amount)

    def place_bet(self, ctx: InstructionContext, args: PlaceBetArgs) -> None:
        player, house, vault, bet, system = self._expect_accounts(ctx, 5)
        ctx.require_signer(player, "player")
        self._check_vault(vault, house)
        self._check_system(system)

        if args.roll < MIN_ROLL:
            raise MinimumRollError(details={"roll": args.roll})
        if args.roll > MAX_ROLL:
            raise MaximumRollError(details={"roll": args.roll})
        if args.amount == 0:
            raise InvalidAmountError(details={"amount": args.amount})

        address, bump = find_program_address(
            [BET_SEED, vault.address, seed_bytes(args.seed)], self.config.program_id
        )
        if bet.address != address:
            raise ConstraintError(
                "Bet address does not match its seeds",
                {"bet": bet.address.hex()},
                code="ConstraintSeeds",
            )

        record = Bet(
            player=player.address,
            vault=vault.address,
            seed=args.seed,
            slot=ctx.slot,
            amount=args.amount,
            roll=args.roll,
            bump=bump,
        )
        ctx.ledger.create_account(
            ctx,
            player.address,
            bet.address,
            record.to_account_data(),
            signer_seeds=[BET_SEED, vault.address, seed_bytes(args.seed), bytes([bump])],
        )
        ctx.ledger.transfer(ctx, player.address, vault.address, args.amount)

        ctx.emit("bet_placed", {"bet": bet.address.hex(), **record.to_dict()})
        logger.info(
            "bet %s placed: seed=%d roll=%d amount=%d",
            bet.address.hex()[:16], args.seed, args.roll, args.amount,
        )

    def resolve_bet(self, ctx: InstructionContext, args: ResolveBetArgs) -> None:
        house, player, vault, bet, sysvar, system = self._expect_accounts(ctx, 6)
        ctx.require_signer(house, "house")
        vault_bump = self._check_vault(vault, house)
        record = self._load_bet(ctx, bet, player, vault)
        if sysvar.address != self.config.instructions_sysvar_id:
            raise ConstraintError("Expected the instructions sysvar", code="ConstraintAddress")
        self._check_system(system)

        self.engine.settle(
            ctx,
            ResolveAccounts(
                house=house,
                player=player,
                vault=vault,
                bet=bet,
                sysvar=sysvar,
                vault_bump=vault_bump,
                record=record,
            ),
            args.signature,
        )

    def refund_bet(self, ctx: InstructionContext, args: RefundBetArgs) -> None:
        player, house, vault, bet, system = self._expect_accounts(ctx, 5)
        ctx.require_signer(player, "player")
        vault_bump = self._check_vault(vault, house)
        record = self._load_bet(ctx, bet, player, vault)
        self._check_system(system)

        elapsed = ctx.slot - record.slot
        if elapsed <= self.config.refund_timeout_slots:
            raise TimeoutNotReachedError(details={
                "elapsed": elapsed,
                "timeout": self.config.refund_timeout_slots,
            })

        ctx.ledger.transfer(
            ctx,
            vault.address,
            player.address,
            record.amount,
            signer_seeds=[VAULT_SEED, house.address, bytes([vault_bump])],
        )
        reclaimed = ctx.ledger.close_account(ctx, bet.address, player.address)

        ctx.emit("bet_refunded", {
            "bet":       bet.address.hex(),
            "player":    player.address.hex(),
            "amount":    record.amount,
            "reclaimed": reclaimed,
        })
        logger.info("bet %s refunded after %d slots", bet.address.hex()[:16], elapsed)
