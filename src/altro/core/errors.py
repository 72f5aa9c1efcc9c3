from __future__ import annotations

ERROR_502_MESSAGE = "[ALTRO ERROR: Сбой связи с Ядром. Перезапустите Ollama]"
OPR_RESONANCE_ERROR = "ALTRO: Ожидание резонанса OPR..."
TIMEOUT_MESSAGE = "ALTRO: Ядро не ответило вовремя даже в упрощенном режиме."
IN_FLIGHT_MESSAGE = "ALTRO: Предыдущий запрос еще выполняется."


class AltroError(Exception):
    """Base class for errors surfaced to the caller as a short fixed message."""


class TransportError(AltroError):
    """Non-2xx answer other than a gateway failure."""

    def __init__(self, status_code: int) -> None:
        super().__init__(f"Ollama request failed: {status_code}")
        self.status_code = status_code


class UpstreamUnavailableError(AltroError):
    """Gateway failure (HTTP 502) or unreachable service. Terminal, never retried."""

    def __init__(self, message: str = ERROR_502_MESSAGE) -> None:
        super().__init__(message)


class EmptyResponseError(AltroError):
    """Empty or unparseable response body."""

    def __init__(self, message: str = OPR_RESONANCE_ERROR) -> None:
        super().__init__(message)


class TransportTimeoutError(AltroError):
    """Per-call timeout; the orchestrator answers it with one degraded retry."""


class GenerationTimeoutError(AltroError):
    def __init__(self, message: str = TIMEOUT_MESSAGE) -> None:
        super().__init__(message)


class RequestInFlightError(AltroError):
    def __init__(self, message: str = IN_FLIGHT_MESSAGE) -> None:
        super().__init__(message)
