"""
dicevault: Basic Usage Example

Demonstrates:
- Funding a house vault
- Placing a bet
- Resolving it with the house signature
- Recomputing the outcome from the signature alone
- Verifying the journal
"""

import tempfile
from pathlib import Path

from dicevault import DiceConfig, DiceProgram, House, Ledger, Player
from dicevault.core.crypto import Ed25519KeyManager
from dicevault.ledger.journal import Journal, load_entries, verify_entries
from dicevault.settlement.outcome import derive_outcome


def main():
    """Basic dicevault usage."""

    print("=" * 60)
    print("dicevault: Basic Usage Example")
    print("=" * 60)
    print()

    workdir = Path(tempfile.mkdtemp(prefix="dicevault-"))
    journal_path = workdir / "journal.jsonl"

    # 1️⃣ Ledger with the dice program installed
    print("1️⃣ Starting ledger...")
    config = DiceConfig()
    house_key = Ed25519KeyManager.generate()
    ledger = Ledger(config, journal=Journal(house_key, journal_path))
    DiceProgram(config).install(ledger)
    print(f"✅ Ledger at slot {ledger.slot}, journal {journal_path}")
    print()

    # 2️⃣ House funds its vault
    print("2️⃣ Funding vault...")
    house = House(house_key, ledger)
    ledger.airdrop(house.address, 2_000_000_000)
    house.fund_vault(1_000_000_000)
    print(f"  Vault {house.vault.hex()[:16]}… holds {ledger.balance(house.vault)}")
    print()

    # 3️⃣ Player places a bet
    print("3️⃣ Placing bet: roll under or equal 50, stake 1,000,000...")
    player = Player(Ed25519KeyManager.generate(), ledger)
    ledger.airdrop(player.address, 100_000_000)
    player.place_bet(house.address, seed=1, roll=50, amount=1_000_000)
    bet = house.load_bet(1)
    print(f"  Bet placed at slot {bet.slot}")
    print()

    # 4️⃣ House resolves
    print("4️⃣ Resolving with house signature...")
    _, signature = house.sign_bet(bet)
    receipt = house.resolve(1)
    settled = receipt.events_of("bet_settled")[0]
    print(f"  Outcome {settled['outcome']} → {'WIN' if settled['won'] else 'LOSS'}, payout {settled['payout']}")
    print()

    # 5️⃣ Anyone can recompute the outcome
    print("5️⃣ Recomputing outcome from the signature...")
    assert derive_outcome(signature) == settled["outcome"]
    print(f"  dicevault roll {signature.hex()[:24]}… → {derive_outcome(signature)}")
    print()

    # 6️⃣ Verify the journal
    print("6️⃣ Verifying journal...")
    entries = load_entries(journal_path)
    verify_entries(entries, house_key.public_key_hex)
    print(f"✅ {len(entries)} entries, chain and signatures valid")
    print()

    print("=" * 60)
    print("✅ Basic usage complete!")
    print("=" * 60)
    print()
    print("Next steps:")
    print(f"  - Verify from the CLI: dicevault verify {journal_path}")
    print("  - Run many bets:      dicevault simulate --bets 100 --roll 50")


if __name__ == "__main__":
    main()
