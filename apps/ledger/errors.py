from __future__ import annotations


class LedgerError(Exception):
    """Structured failure raised by the analyzer and registry operations.

    ``status_code`` is the HTTP status the API layer answers with and
    ``kind`` the stable name clients switch on.
    """

    status_code = 400

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail

    @property
    def kind(self) -> str:
        return type(self).__name__

    def to_payload(self) -> dict:
        return {'kind': self.kind, 'detail': self.detail}


class InvalidAddress(LedgerError):
    status_code = 422


class InvalidRoot(LedgerError):
    status_code = 422


class InvalidSelector(LedgerError):
    status_code = 422


class DuplicateRoot(LedgerError):
    status_code = 409


class RootNotFound(LedgerError):
    status_code = 404


class Unauthorized(LedgerError):
    status_code = 403


class InactiveTree(LedgerError):
    status_code = 409


class InsufficientFee(LedgerError):
    status_code = 402


class ArithmeticOverflow(LedgerError):
    status_code = 422
