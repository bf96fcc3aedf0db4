class CancellationToken:
    """Cooperative cancellation flag shared by a controller's operations.

    Nothing is interrupted: operations check :attr:`cancelled` once
    their awaited result is available and drop it if the token has fired.
    """

    def __init__(self) -> None:
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True
