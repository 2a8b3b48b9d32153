"""
Shared fixtures: a ledger with the dice program installed, a funded house
vault and a funded player.
"""

import pytest

from dicevault.client import House, Player
from dicevault.config import DiceConfig
from dicevault.core.crypto import Ed25519KeyManager
from dicevault.core.models import Bet
from dicevault.ledger.ledger import Ledger
from dicevault.program import instructions
from dicevault.program.dice import DiceProgram
from dicevault.settlement.outcome import derive_outcome

HOUSE_FUNDS  = 10_000_000_000
VAULT_FUNDS  = 5_000_000_000
PLAYER_FUNDS = 2_000_000_000


@pytest.fixture
def config():
    return DiceConfig()


@pytest.fixture
def ledger(config):
    ledger = Ledger(config)
    DiceProgram(config).install(ledger)
    return ledger


@pytest.fixture
def house_key():
    return Ed25519KeyManager.generate()


@pytest.fixture
def player_key():
    return Ed25519KeyManager.generate()


@pytest.fixture
def house(ledger, house_key):
    house = House(house_key, ledger)
    ledger.airdrop(house.address, HOUSE_FUNDS)
    house.fund_vault(VAULT_FUNDS)
    return house


@pytest.fixture
def player(ledger, player_key):
    player = Player(player_key, ledger)
    ledger.airdrop(player.address, PLAYER_FUNDS)
    return player


@pytest.fixture
def reserve(config):
    """Rent-exempt reserve locked in every bet account."""
    return config.rent_exempt_minimum(Bet.ACCOUNT_SIZE)


@pytest.fixture
def predict_bet(ledger, house, player):
    """Bet record that place_bet would create right now for these terms."""
    def _predict(seed, roll, amount):
        _, bump = instructions.bet_address(ledger.config, house.vault, seed)
        return Bet(
            player=player.address,
            vault=house.vault,
            seed=seed,
            slot=ledger.slot,
            amount=amount,
            roll=roll,
            bump=bump,
        )
    return _predict


@pytest.fixture
def find_seed(house, predict_bet):
    """
    First seed whose house signature yields an outcome satisfying predicate.

    Ed25519 signatures are deterministic, so the outcome of a bet placed in
    the current slot is known to the house before the bet exists.
    """
    def _find(roll, amount, predicate, start=1, limit=20_000):
        for seed in range(start, start + limit):
            bet = predict_bet(seed, roll, amount)
            if predicate(derive_outcome(house.key.sign(bet.to_bytes()))):
                return seed
        raise AssertionError("no seed found for predicate")
    return _find
