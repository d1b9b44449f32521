"""Rate-limit registry — per-caller state for the default and bound rules.

One registry belongs to one ``App``. For each caller key (usually the
client address) it keeps a map from rule key to ``RateLimitState``,
created lazily on the caller's first request that needs it.

A request is checked against the default rule (if configured) plus every
rule whose bound path pattern matches the request path. Every applicable
rule is evaluated, even after one has denied, so each rule's counters
see every attempt.
"""

import logging
import threading
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import TypeAlias

from turnstile.errors import ConfigurationError
from turnstile.ratelimit.algorithms import RateLimitState, create_state, now_millis
from turnstile.ratelimit.rule import DEFAULT_RULE_KEY, RateLimitRule
from turnstile.routing.pattern import CompiledPattern, compile_template, normalize_path

logger = logging.getLogger("turnstile.ratelimit")


@dataclass(frozen=True, slots=True)
class Allowed:
    """Every applicable rule admitted the request."""

    @property
    def allowed(self) -> bool:
        return True


@dataclass(frozen=True, slots=True)
class Denied:
    """At least one rule denied the request.

    ``retry_after_ms`` is the wait until all applicable rules admit
    again; ``rule_keys`` names the rules that denied.
    """

    retry_after_ms: int
    rule_keys: tuple[str, ...] = ()

    @property
    def allowed(self) -> bool:
        return False


Admission: TypeAlias = Allowed | Denied

ALLOWED = Allowed()


@dataclass(frozen=True, slots=True)
class RateLimitBinding:
    """A rule attached to a compiled path pattern."""

    pattern: CompiledPattern
    rule: RateLimitRule


class _CallerStates:
    """All rule states for one caller key."""

    __slots__ = ("lock", "states")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.states: dict[str, RateLimitState] = {}

    def get_or_create(self, rule: RateLimitRule) -> RateLimitState:
        state = self.states.get(rule.key)
        if state is not None:
            return state
        with self.lock:
            # First creator wins; racers reuse its state.
            state = self.states.get(rule.key)
            if state is None:
                state = create_state(rule)
                self.states[rule.key] = state
            return state

    def is_idle(self, now: int, idle_ttl_ms: int) -> bool:
        # Every state must also have outlived its own window.
        return all(
            now - state.last_seen >= max(idle_ttl_ms, state.window_ms)
            for state in list(self.states.values())
        )


class RateLimitRegistry:
    """Per-caller admission control across the default and bound rules.

    Usage::

        registry = RateLimitRegistry(RateLimitRule("default", 100, 60_000))
        registry.bind("/login", RateLimitRule("login", 5, 60_000))

        match registry.check("203.0.113.7", "/login"):
            case Denied(retry_after_ms=wait):
                ...

    Thread safety:
        The caller map is guarded by a registry lock, rule states inside
        a caller by a per-caller lock, and each state by its own lock.
        Unrelated callers never contend on a state lock.
    """

    __slots__ = (
        "_bindings",
        "_callers",
        "_default_rule",
        "_idle_ttl_ms",
        "_last_sweep",
        "_lock",
    )

    def __init__(
        self,
        default_rule: RateLimitRule | None = None,
        *,
        idle_ttl_ms: int | None = None,
    ) -> None:
        if default_rule is not None and default_rule.key != DEFAULT_RULE_KEY:
            msg = f"The default rule must use the key {DEFAULT_RULE_KEY!r}, got {default_rule.key!r}."
            raise ConfigurationError(msg)
        if idle_ttl_ms is not None and idle_ttl_ms <= 0:
            msg = f"idle_ttl_ms must be positive or None, got {idle_ttl_ms}."
            raise ConfigurationError(msg)
        self._default_rule = default_rule
        self._idle_ttl_ms = idle_ttl_ms
        self._bindings: tuple[RateLimitBinding, ...] = ()
        self._callers: dict[str, _CallerStates] = {}
        self._lock = threading.Lock()
        self._last_sweep = 0

    # -- Configuration --

    @property
    def default_rule(self) -> RateLimitRule | None:
        return self._default_rule

    @property
    def bindings(self) -> tuple[RateLimitBinding, ...]:
        return self._bindings

    def bind(self, template: str | CompiledPattern, rule: RateLimitRule) -> None:
        """Attach ``rule`` to every request whose path matches ``template``.

        The same rule may be bound to several patterns; it then shares a
        single state per caller. Re-binding a key with different limits
        is a configuration error.
        """
        self.bind_all(template, (rule,))

    def bind_all(self, template: str | CompiledPattern, rules: Iterable[RateLimitRule]) -> None:
        """Bind several rules to ``template`` at once.

        Every rule is validated before any is bound, so a conflict leaves
        the registry unchanged.
        """
        rules = tuple(rules)
        for rule in rules:
            if rule.key == DEFAULT_RULE_KEY:
                msg = f"The rule key {DEFAULT_RULE_KEY!r} is reserved for the server-wide default rule."
                raise ConfigurationError(msg)
        pattern = compile_template(template) if isinstance(template, str) else template
        with self._lock:
            known = {binding.rule.key: binding.rule for binding in self._bindings}
            for rule in rules:
                existing = known.setdefault(rule.key, rule)
                if existing != rule:
                    msg = (
                        f"Rate-limit key {rule.key!r} is already bound as {existing!r}; "
                        f"cannot rebind it as {rule!r}."
                    )
                    raise ConfigurationError(msg)
            self._bindings = (
                *self._bindings,
                *(RateLimitBinding(pattern, rule) for rule in rules),
            )
        for rule in rules:
            logger.debug("Bound rate limit %r to %s", rule.key, pattern.template)

    # -- Admission --

    def applicable_rules(self, path: str) -> tuple[RateLimitRule, ...]:
        """Rules that apply to ``path``, default first, each key once."""
        normalized = normalize_path(path)
        rules: list[RateLimitRule] = []
        seen: set[str] = set()
        if self._default_rule is not None:
            rules.append(self._default_rule)
            seen.add(DEFAULT_RULE_KEY)
        for binding in self._bindings:
            if binding.rule.key in seen:
                continue
            if binding.pattern.match(normalized) is not None:
                rules.append(binding.rule)
                seen.add(binding.rule.key)
        return tuple(rules)

    def check(self, caller_key: str, path: str, now_ms: int | None = None) -> Admission:
        """Evaluate every applicable rule for ``caller_key`` at ``path``."""
        now = now_millis() if now_ms is None else now_ms
        self._maybe_sweep(now)

        rules = self.applicable_rules(path)
        if not rules:
            return ALLOWED

        caller = self._caller(caller_key)
        states = [caller.get_or_create(rule) for rule in rules]

        # No short-circuit: every rule sees the attempt.
        denied = [state for state in states if not state.allow(now)]
        if not denied:
            return ALLOWED

        retry_after = max(state.retry_after_ms(now) for state in states)
        keys = tuple(state.rule.key for state in denied)
        logger.debug("Rate limit exceeded for %s at %s (rules: %s)", caller_key, path, ", ".join(keys))
        return Denied(retry_after_ms=retry_after, rule_keys=keys)

    def allow(self, caller_key: str, path: str, now_ms: int | None = None) -> bool:
        """Boolean shorthand for ``check``."""
        return self.check(caller_key, path, now_ms).allowed

    def retry_after_ms(self, caller_key: str, path: str, now_ms: int | None = None) -> int:
        """Wait until every applicable rule admits again. Does not consume."""
        now = now_millis() if now_ms is None else now_ms
        caller = self._callers.get(caller_key)
        if caller is None:
            return 0
        waits = [
            state.retry_after_ms(now)
            for rule in self.applicable_rules(path)
            if (state := caller.states.get(rule.key)) is not None
        ]
        return max(waits, default=0)

    def earliest_allowed_ms(self, caller_key: str, path: str, now_ms: int | None = None) -> int:
        """Epoch milliseconds at which the caller is admitted again."""
        now = now_millis() if now_ms is None else now_ms
        return now + self.retry_after_ms(caller_key, path, now)

    # -- Introspection --

    def states(self, caller_key: str) -> Mapping[str, RateLimitState]:
        """Read-only view of a caller's rule states (empty if unknown)."""
        caller = self._callers.get(caller_key)
        if caller is None:
            return MappingProxyType({})
        return MappingProxyType(dict(caller.states))

    def __len__(self) -> int:
        return len(self._callers)

    def __contains__(self, caller_key: object) -> bool:
        return caller_key in self._callers

    # -- Eviction --

    def sweep(self, now_ms: int | None = None) -> int:
        """Drop idle callers. Returns the count.

        A caller is idle once every one of its states has gone unused for
        ``idle_ttl_ms`` and for that state's own window, whichever is
        longer. Without an idle TTL nothing is ever evicted.
        """
        ttl = self._idle_ttl_ms
        if ttl is None:
            return 0
        now = now_millis() if now_ms is None else now_ms
        with self._lock:
            self._last_sweep = now
            stale = [key for key, caller in self._callers.items() if caller.is_idle(now, ttl)]
            for key in stale:
                del self._callers[key]
        if stale:
            logger.debug("Evicted rate-limit state for %d idle caller(s)", len(stale))
        return len(stale)

    def _maybe_sweep(self, now: int) -> None:
        ttl = self._idle_ttl_ms
        if ttl is None or now - self._last_sweep < ttl // 2:
            return
        self.sweep(now)

    def _caller(self, caller_key: str) -> _CallerStates:
        caller = self._callers.get(caller_key)
        if caller is not None:
            return caller
        with self._lock:
            return self._callers.setdefault(caller_key, _CallerStates())
