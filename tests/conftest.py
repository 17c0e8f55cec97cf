"""Pytest configuration and fixtures."""

from datetime import datetime, timedelta

import pytest

from clarity.config import Settings, StageOptions
from clarity.matching import MatcherUnavailableError, MatchResult
from clarity.storage import InMemoryRecordStore


class PrefixMatcher:
    """Matcher double: names starting with ``prefix`` match, listed names fail."""

    def __init__(self, prefix: str = "A", fail_names: tuple[str, ...] = ()):
        self.prefix = prefix
        self.fail_names = set(fail_names)
        self.calls: list[tuple[str, dict]] = []

    async def match(self, name: str, hints: dict) -> MatchResult:
        self.calls.append((name, hints))
        if name in self.fail_names:
            raise MatcherUnavailableError(f"timeout matching {name}")
        if name.upper().startswith(self.prefix.upper()):
            return MatchResult(
                matched=True,
                candidate_id=f"SUP-{name}",
                candidate_name=name,
                confidence=0.95,
                method="exact",
                reasoning="prefix rule",
            )
        return MatchResult(matched=False, method="exact", reasoning="no candidate")


class ManualClock:
    """Clock whose time only moves when told to."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2024, 1, 1, 12, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


async def no_sleep(_seconds: float) -> None:
    return None


def make_payees(total: int, matching: int = 0, first_id: int = 1) -> list[dict]:
    """``matching`` names start with 'A', the rest with 'B'; ids count up from ``first_id``."""
    payees = []
    for i in range(total):
        name = f"Alpha Supply {i}" if i < matching else f"Beta Services {i}"
        payees.append({
            "id": first_id + i,
            "original_name": name,
            "city": "Austin",
            "state": "TX",
        })
    return payees


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def store(clock) -> InMemoryRecordStore:
    return InMemoryRecordStore(clock=clock)


@pytest.fixture
def matcher() -> PrefixMatcher:
    return PrefixMatcher()


@pytest.fixture
def fast_options() -> StageOptions:
    """Default chunk sizes without the inter-chunk pause."""
    return StageOptions(chunk_size=50, concurrency_limit=20, inter_chunk_delay_ms=0)


@pytest.fixture
def settings(fast_options) -> Settings:
    return Settings(
        default_stage_options=fast_options,
        stage_options={},
        database_url="sqlite:///:memory:",
    )
