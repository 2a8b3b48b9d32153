"""
dicevault program - the dice game running on the ledger.
"""

from dicevault.program import instructions
from dicevault.program.dice import DiceProgram

__all__ = ["DiceProgram", "instructions"]
