"""Method registry.

Maps external method names to their descriptor and decoder binding.  It is
filled once during setup, sealed, and read without locking afterwards.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Iterator

from slimapi.codec import DocumentCodec, JsonDocumentCodec
from slimapi.decoders import Decoder, DecoderBinding, MemberPriority, resolve_binding
from slimapi.errors import ConfigurationError
from slimapi.method import MethodDescriptor

log = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class RegistryEntry:
    """One registered method under its effective (unique) name."""

    name: str
    method: MethodDescriptor
    decoders: DecoderBinding


class MethodRegistry:
    """Effective name → (descriptor, decoder binding).

    Usage::

        registry = MethodRegistry()
        registry.register(MethodDescriptor.create(add))
        registry.seal()

        entry = registry.entry("ADD")  # names are case-insensitive
    """

    def __init__(
        self,
        name_key: Callable[[str], str] = str.casefold,
        codec: DocumentCodec | None = None,
        member_priority: MemberPriority = MemberPriority.PROPERTY,
    ) -> None:
        self._name_key = name_key
        self._codec = codec or JsonDocumentCodec(name_key)
        self._member_priority = member_priority
        self._entries: dict[str, RegistryEntry] = {}
        self._sealed = False

    # -- Registration --------------------------------------------------
    def register(self, method: MethodDescriptor) -> str:
        """Add *method* and return the name it is reachable under.

        A name already taken gets a numeric suffix (``name2``, ``name3``,
        …).  Registration is all-or-nothing: if the decoders cannot be
        resolved, nothing is added.
        """
        if self._sealed:
            raise ConfigurationError("the registry is sealed")

        name = method.name
        i = 2
        while self._name_key(name) in self._entries:
            name = f"{method.name}{i}"
            i += 1

        binding = resolve_binding(method, self._codec, self._name_key, self._member_priority)
        self._entries[self._name_key(name)] = RegistryEntry(name, method, binding)
        if name != method.name:
            log.info("method %r registered as %r to avoid a name clash", method.name, name)
        log.debug("registered method %r → %s", name, method.qualname)
        return name

    def seal(self) -> None:
        self._sealed = True

    @property
    def sealed(self) -> bool:
        return self._sealed

    # -- Lookup --------------------------------------------------------
    def entry(self, name: str | None) -> RegistryEntry | None:
        if name is None:
            return None
        return self._entries.get(self._name_key(name))

    def lookup(self, name: str | None) -> MethodDescriptor | None:
        entry = self.entry(name)
        return None if entry is None else entry.method

    def lookup_decoder(self, name: str | None, fmt: str | None) -> Decoder | None:
        entry = self.entry(name)
        return None if entry is None else entry.decoders.for_format(fmt)

    # -- Introspection -------------------------------------------------
    @property
    def methods(self) -> list[str]:
        return [e.name for e in self._entries.values()]

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.entry(name) is not None

    def __iter__(self) -> Iterator[RegistryEntry]:
        return iter(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)


class LazyRegistry:
    """Builds a registry on first use, exactly once.

    Concurrent first callers race on an unsynchronized check, then on a
    lock; only the winner runs *build*.  The result is sealed before it is
    published.
    """

    def __init__(self, build: Callable[[], MethodRegistry]) -> None:
        self._build = build
        self._registry: MethodRegistry | None = None
        self._lock = threading.Lock()

    @property
    def built(self) -> bool:
        return self._registry is not None

    def get(self) -> MethodRegistry:
        registry = self._registry
        if registry is not None:
            return registry

        with self._lock:
            if self._registry is None:
                registry = self._build()
                registry.seal()
                log.info("api registry built: %d methods", len(registry))
                self._registry = registry
            return self._registry
