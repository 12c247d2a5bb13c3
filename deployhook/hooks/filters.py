"""Request filters: source address, shared-secret token and branch allow-lists.

Every filter reduces to ``allow_list.matches(value)`` over a value pulled out
of the request. Filters are installed only for allow-lists that are actually
configured; a hook whose configuration installs none is rejected up front.
"""

from __future__ import annotations

import hmac
import ipaddress
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Mapping, Sequence

from deployhook.config import AllowListSpec, HookConfig
from deployhook.errors import ConfigurationError
from deployhook.hooks.models import HookRequest
from deployhook.utils.logging import get_logger

log = get_logger(__name__)

WILDCARD = "*"


def _same(provided: str, expected: str) -> bool:
    # JSON may carry lone surrogates, which plain utf-8 refuses to encode
    return hmac.compare_digest(
        provided.encode("utf-8", "surrogatepass"),
        expected.encode("utf-8", "surrogatepass"),
    )


# ---------------------------------------------------------------------------
# Allow-lists
# ---------------------------------------------------------------------------

class AllowList(ABC):
    @abstractmethod
    def matches(self, value: Any) -> bool: ...


@dataclass(frozen=True)
class Wildcard(AllowList):
    def matches(self, value: Any) -> bool:
        return True


@dataclass(frozen=True)
class Exact(AllowList):
    value: str

    def matches(self, value: Any) -> bool:
        return value is not None and _same(str(value), self.value)


@dataclass(frozen=True)
class AnyOf(AllowList):
    values: tuple[str, ...]

    def matches(self, value: Any) -> bool:
        if value is None:
            return False
        provided = str(value)
        # No early exit: every candidate is compared
        hits = [_same(provided, candidate) for candidate in self.values]
        return any(hits)


@dataclass(frozen=True)
class Predicate(AllowList):
    fn: Callable[[Any], bool]

    def matches(self, value: Any) -> bool:
        try:
            return bool(self.fn(value))
        except Exception:
            log.warning(
                "allow_list_predicate_failed",
                predicate=getattr(self.fn, "__name__", repr(self.fn)),
                exc_info=True,
            )
            return False


@dataclass(frozen=True)
class Network(AllowList):
    """Addresses and CIDR blocks, e.g. ``10.0.0.0/8`` or ``::1``."""

    networks: tuple[ipaddress.IPv4Network | ipaddress.IPv6Network, ...]

    def matches(self, value: Any) -> bool:
        if value is None:
            return False
        try:
            address = ipaddress.ip_address(str(value))
        except ValueError:
            return False
        if isinstance(address, ipaddress.IPv6Address) and address.ipv4_mapped:
            address = address.ipv4_mapped
        return any(address in net for net in self.networks if net.version == address.version)


def build_allow_list(allowed: AllowListSpec, *, networks: bool = False) -> AllowList | None:
    """Turn a configured allow-list into its variant, or None when disabled.

    With ``networks`` set, values that all parse as addresses or CIDR blocks
    become a :class:`Network` allow-list so that ``10.0.0.0/8`` and
    IPv4-mapped IPv6 callers work; anything else is compared literally.
    """
    if allowed is None or allowed is False:
        return None
    if allowed is True:
        return Wildcard()
    if callable(allowed):
        return Predicate(allowed)
    if isinstance(allowed, int):
        allowed = str(allowed)
    if isinstance(allowed, str):
        if not allowed:
            return None
        if allowed == WILDCARD:
            return Wildcard()
        net = _network_list([allowed]) if networks else None
        return net or Exact(allowed)

    values = [str(v) for v in allowed if v not in (None, "")]
    if not values:
        return None
    if WILDCARD in values:
        return Wildcard()
    net = _network_list(values) if networks else None
    return net or AnyOf(tuple(values))


def _network_list(values: Iterable[str]) -> Network | None:
    try:
        return Network(tuple(ipaddress.ip_network(v, strict=False) for v in values))
    except ValueError:
        return None


# ---------------------------------------------------------------------------
# Filters
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class FilterRejection:
    filter: str
    status: int
    value: Any = None


class Filter(ABC):
    name: str = "filter"
    status: int = 404

    def __init__(self, allow: AllowList) -> None:
        self.allow = allow

    @abstractmethod
    def extract(self, request: HookRequest) -> Any: ...

    def check(self, request: HookRequest) -> FilterRejection | None:
        value = self.extract(request)
        if self.allow.matches(value):
            return None
        return FilterRejection(filter=self.name, status=self.status, value=value)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.allow!r})"


class IpFilter(Filter):
    name = "ip"
    status = 404

    def extract(self, request: HookRequest) -> Any:
        return request.remote


class TokenFilter(Filter):
    name = "token"
    status = 404

    def __init__(self, allow: AllowList, token_key: str = "token", header: str | None = None) -> None:
        super().__init__(allow)
        self.token_key = token_key
        self.header = header

    def extract(self, request: HookRequest) -> Any:
        value = request.param(self.token_key)
        if value is None and self.header:
            value = request.headers.get(self.header)
        return value


class BranchFilter(Filter):
    """Matches the short ref name (``main``, ``v1.0``), never ``refs/heads/main``.

    With ``raw_ref`` the body's ``ref`` is compared as sent instead, which is
    what legacy hooks configure (``refs/heads/production``).
    """

    name = "branch"
    status = 403

    def __init__(self, allow: AllowList, raw_ref: bool = False) -> None:
        super().__init__(allow)
        self.raw_ref = raw_ref

    def extract(self, request: HookRequest) -> Any:
        if self.raw_ref:
            return request.body.get("ref") if isinstance(request.body, Mapping) else None
        return request.event.ref


class FilterChain:
    def __init__(self, filters: Sequence[Filter]) -> None:
        self.filters = list(filters)

    def __len__(self) -> int:
        return len(self.filters)

    def evaluate(self, request: HookRequest) -> FilterRejection | None:
        """Return the first rejection, or None when every filter passes."""
        for f in self.filters:
            rejection = f.check(request)
            if rejection is not None:
                return rejection
        return None


def build_filter_chain(config: HookConfig) -> FilterChain:
    filters: list[Filter] = []

    ips = build_allow_list(config.ips, networks=True)
    if ips is not None:
        log.debug("filter_installed", route=config.path, filter="ip", allow=repr(ips))
        filters.append(IpFilter(ips))

    token = build_allow_list(config.token)
    if token is not None:
        log.debug("filter_installed", route=config.path, filter="token", token_key=config.token_key)
        filters.append(TokenFilter(token, config.token_key, config.token_header or None))

    branches = build_allow_list(config.branches)
    if branches is not None:
        log.debug("filter_installed", route=config.path, filter="branch", allow=repr(branches))
        filters.append(BranchFilter(branches, raw_ref=config.legacy))

    if not filters:
        raise ConfigurationError(
            f"Hook {config.path} has no filters; configure ips, token or branches"
        )
    return FilterChain(filters)
