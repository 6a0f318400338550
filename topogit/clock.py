class LogicalClock:
    """
    Source of commit timestamps for one repository.

    Each tick advances by ``step`` seconds. ``set()`` moves the clock
    anywhere, including into the past, which is how clock-skewed
    histories are built.
    """

    # git's test-suite clock: 1112911993 plus one step.
    DEFAULT_START = 1112912053
    DEFAULT_STEP = 60

    def __init__(self, start: int = DEFAULT_START, step: int = DEFAULT_STEP):
        if step <= 0:
            raise ValueError("step must be > 0")
        self._next = start
        self.step = step

    def tick(self) -> int:
        value = self._next
        self._next += self.step
        return value

    def peek(self) -> int:
        return self._next

    def set(self, value: int):
        """Make the next tick return exactly ``value``."""
        self._next = value

    def __repr__(self) -> str:
        return f"LogicalClock(next={self._next}, step={self.step})"
