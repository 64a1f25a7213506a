"""
SecretRef — credentials as explicit sum types.

A credential is either a ``LiteralSecret`` (a concrete value supplied
by configuration) or a ``DeferredSecret`` (a handle resolved only when
the manifest is rendered). Neither prints its value: both reprs are
masked, so summaries and log lines never carry plaintext. Unwrapping
always goes through ``reveal()`` with a resolver.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    from stackplan.core.services.secrets import SecretResolver


class LiteralSecret(BaseModel):
    """A concrete credential value."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["literal"] = "literal"
    value: str = Field(repr=False)

    def reveal(self, resolver: SecretResolver | None = None) -> str:
        return self.value

    def describe(self) -> str:
        return "literal(***)"

    def __str__(self) -> str:
        return "***"


class DeferredSecret(BaseModel):
    """A handle resolved at consumption time (``env:NAME``, ``generate:32``)."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["deferred"] = "deferred"
    handle: str

    def reveal(self, resolver: SecretResolver | None = None) -> str:
        if resolver is None:
            from stackplan.core.services.secrets import SecretResolver

            resolver = SecretResolver()
        return resolver.resolve(self.handle)

    def describe(self) -> str:
        return f"deferred({self.handle})"

    def __str__(self) -> str:
        return f"<deferred {self.handle}>"


SecretRef = Annotated[Union[LiteralSecret, DeferredSecret], Field(discriminator="kind")]


def literal(value: str) -> LiteralSecret:
    return LiteralSecret(value=value)


def deferred(handle: str) -> DeferredSecret:
    return DeferredSecret(handle=handle)
