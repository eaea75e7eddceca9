"""Coded errors that can wrap other errors and carry message parameters."""

from __future__ import annotations

from typing import Any, Iterable, Iterator, Optional


class _JoinedError(Exception):
    """Several errors reported together, one per line."""

    def __init__(self, errors: Iterable[BaseException]) -> None:
        self.errors = tuple(errors)
        super().__init__(*self.errors)

    def __str__(self) -> str:
        return "\n".join(str(err) for err in self.errors)


def _join(*errors: Optional[BaseException]) -> Optional[BaseException]:
    present = [err for err in errors if err is not None]
    if not present:
        return None
    if len(present) == 1:
        return present[0]
    return _JoinedError(present)


def _unwrap(err: BaseException) -> Iterator[BaseException]:
    if isinstance(err, Error):
        if err.err is not None:
            yield err.err
    elif isinstance(err, _JoinedError):
        yield from err.errors
    if err.__cause__ is not None:
        yield err.__cause__


def is_error(err: Optional[BaseException], target: Optional[BaseException]) -> bool:
    """Report whether ``err`` or any error it wraps matches ``target``."""
    if err is None or target is None:
        return err is target

    seen: set[int] = set()
    pending = [err]
    while pending:
        current = pending.pop()
        if id(current) in seen:
            continue
        seen.add(id(current))
        if current is target:
            return True
        matcher = getattr(current, "is_", None)
        if callable(matcher) and matcher(target):
            return True
        pending.extend(_unwrap(current))
    return False


class Error(Exception):
    """An error identified by a code, with an optional wrapped cause."""

    def __init__(
        self,
        code: str,
        message: str,
        err: Optional[BaseException] = None,
        params: Iterable[Any] = (),
    ) -> None:
        super().__init__(code, message)
        self.code = code
        self.message = message
        self.err = err
        self.params = tuple(params)

    def is_(self, target: Optional[BaseException]) -> bool:
        """Two coded errors match when their codes are equal."""
        if target is None:
            return False
        return isinstance(target, Error) and target.code == self.code

    def wrap(self, err: Optional[BaseException]) -> Error:
        """Return a copy of this error with ``err`` joined to its cause."""
        return Error(self.code, self.message, _join(self.err, err), self.params)

    def with_params(self, *args: Any) -> Error:
        """Return a copy of this error whose message is formatted with ``args``."""
        return Error(self.code, self.message, self.err, args)

    def _formatted_message(self) -> str:
        if not self.params:
            return self.message
        try:
            return self.message.replace("%v", "%s") % self.params
        except (TypeError, ValueError):
            return self.message

    def __str__(self) -> str:
        # An error that wraps itself would otherwise recurse forever.
        if is_error(self.err, self):
            return self.message
        message = self._formatted_message()
        if self.err is not None:
            return f"{message}: {self.err}"
        return message

    def __repr__(self) -> str:
        return f"Error(code={self.code!r}, message={str(self)!r})"