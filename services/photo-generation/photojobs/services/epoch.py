class GenerationEpoch:
    """
    Identifies the request a controller currently cares about.

    Every start() takes a fresh value with next(); each asynchronous continuation
    holds on to its value and checks is_current() right before touching visible state.
    Work tagged with an older value is inert. There is no other cancellation mechanism.
    """

    def __init__(self):
        self._current = 0
        self._disposed = False

    @property
    def current(self) -> int:
        return self._current

    @property
    def disposed(self) -> bool:
        return self._disposed

    def next(self) -> int:
        if self._disposed:
            raise RuntimeError("GenerationEpoch has been disposed")
        self._current += 1
        return self._current

    def is_current(self, epoch: int) -> bool:
        return not self._disposed and epoch == self._current

    def dispose(self) -> None:
        """Abandons whatever epoch is live. No value is current afterwards."""
        self._current += 1
        self._disposed = True
