import asyncio

__all__ = [
    "ManualClock",
]


class ManualClock:
    """A clock that only moves when told to.

    Serves both as the credential store clock (``clock.time``) and as the
    refresh scheduler's sleep function (``clock.sleep``), so token expiry and
    refresh timers can be driven deterministically in tests:

        clock = ManualClock()
        store = CredentialStore(clock=clock.time)
        scheduler = RefreshScheduler(sleep=clock.sleep)
        ...
        await clock.advance(3600)
    """

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start
        self._sleepers: list[tuple[float, asyncio.Future]] = []

    def time(self) -> float:
        return self.now

    async def sleep(self, delay: float) -> None:
        future = asyncio.get_running_loop().create_future()
        self._sleepers.append((self.now + delay, future))
        await future

    @property
    def sleeping(self) -> int:
        """Number of sleeps still waiting for the clock to advance."""
        return sum(1 for _, future in self._sleepers if not future.done())

    async def advance(self, seconds: float) -> None:
        """Move the clock forward and wake every sleep that is due.

        Yields to the event loop first so freshly created tasks reach their
        sleep before the clock moves.
        """
        for _ in range(3):
            await asyncio.sleep(0)

        self.now += seconds
        waiting = []
        for deadline, future in self._sleepers:
            if future.done():
                continue
            if deadline <= self.now:
                future.set_result(None)
            else:
                waiting.append((deadline, future))
        self._sleepers = waiting
