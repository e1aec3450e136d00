from __future__ import annotations


class IntegrationDisabledError(RuntimeError):
    pass


class IntegrationMisconfiguredError(RuntimeError):
    pass


class ProviderError(RuntimeError):
    """A provider call failed; ``code`` is stable and safe to return to clients."""

    def __init__(self, code: str, message: str = "", raw: dict | None = None):
        super().__init__(f"{code}:{message}" if message else code)
        self.code = code
        self.message = message
        self.raw = raw or {}


def integration_mode(settings) -> str:
    return (getattr(settings, "integrations_mode", "disabled") or "disabled").strip().lower()
