from __future__ import annotations


class ConfiguratorError(Exception):
    kind = 'error'

    def __init__(self, detail: str, *, chain_slug: int | None = None, step: str | None = None) -> None:
        super().__init__(detail)
        self.detail = detail
        self.chain_slug = chain_slug
        self.step = step


class ConfigurationError(ConfiguratorError):
    kind = 'config'


class TransientRpcError(ConfiguratorError):
    kind = 'transient'


class OnChainRejection(ConfiguratorError):
    kind = 'rejected'
