"""Shared constants and the deterministic clock used by the stakepool tests."""

E18 = 10**18
ONE_DAY = 24 * 60 * 60
START_TIME = 1_700_000_000

OWNER = "0x" + "a" * 40
ALICE = "0x" + "b" * 40
BOB = "0x" + "c" * 40
CAROL = "0x" + "d" * 40
OUTSIDER = "0x" + "e" * 40
CUSTODIAN = "0x" + "f" * 40


class ManualClock:
    def __init__(self, start_time: int):
        self.current_time = start_time

    def now(self) -> int:
        return self.current_time

    def advance(self, seconds: int):
        self.current_time += seconds
