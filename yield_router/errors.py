"""Ledger error taxonomy — every failure carries a stable numeric code."""
from __future__ import annotations

from enum import IntEnum


class ErrorCode(IntEnum):
    # Yield aggregator
    UNAUTHORIZED = 100
    ALREADY_INITIALIZED = 101
    NOT_INITIALIZED = 102
    INSUFFICIENT_BALANCE = 103
    INVALID_AMOUNT = 104

    # Protocol adapter
    ADAPTER_UNAUTHORIZED = 200
    PROTOCOL_NOT_FOUND = 201
    ADAPTER_NOT_INITIALIZED = 202
    INVALID_PROTOCOL = 203
    NO_ELIGIBLE_PROTOCOL = 204
    TRANSFER_FAILED = 205
    INSUFFICIENT_LIQUIDITY = 206
    PROTOCOL_PAUSED = 207


class LedgerError(Exception):
    """Base class for all ledger operation failures."""

    default_code: ErrorCode = ErrorCode.UNAUTHORIZED

    def __init__(self, message: str = "", code: ErrorCode | None = None) -> None:
        self.code = code if code is not None else self.default_code
        super().__init__(message or self.code.name.lower())

    def __str__(self) -> str:
        return f"[{int(self.code)}] {self.args[0]}"


class Unauthorized(LedgerError):
    default_code = ErrorCode.UNAUTHORIZED


class AlreadyInitialized(LedgerError):
    default_code = ErrorCode.ALREADY_INITIALIZED


class NotInitialized(LedgerError):
    default_code = ErrorCode.NOT_INITIALIZED


class InsufficientBalance(LedgerError):
    default_code = ErrorCode.INSUFFICIENT_BALANCE


class InvalidAmount(LedgerError):
    default_code = ErrorCode.INVALID_AMOUNT


class TransferFailed(LedgerError):
    default_code = ErrorCode.TRANSFER_FAILED


class ProtocolNotFound(LedgerError):
    default_code = ErrorCode.PROTOCOL_NOT_FOUND


class InvalidProtocol(LedgerError):
    default_code = ErrorCode.INVALID_PROTOCOL


class NoEligibleProtocol(LedgerError):
    default_code = ErrorCode.NO_ELIGIBLE_PROTOCOL


class InsufficientLiquidity(LedgerError):
    default_code = ErrorCode.INSUFFICIENT_LIQUIDITY


class ProtocolPaused(LedgerError):
    default_code = ErrorCode.PROTOCOL_PAUSED
