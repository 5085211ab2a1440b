"""Credential and model pool with rolling rotation shared by all runs."""

import threading
from collections.abc import Sequence
from dataclasses import dataclass

from .exceptions import ConfigurationError


@dataclass(frozen=True)
class Candidate:
    """A (credential, model) pair eligible for one invocation attempt."""

    credential: str
    model: str

    @property
    def masked_credential(self) -> str:
        """Credential reduced to its last four characters for logs."""
        if len(self.credential) <= 4:
            return "****"
        return f"...{self.credential[-4:]}"

    def describe(self) -> str:
        return f"{self.model} [{self.masked_credential}]"


class AccessPool:
    """Ordered credentials and models with a rolling single-pick cursor.

    Position ``p`` of the rotation maps to credential ``p % C`` and model
    ``(p // C) % M``: the credential advances on every pick and the model
    advances once per full lap over the credentials. One cursor is shared by
    every run in the process, so all mutations happen under a lock.
    """

    def __init__(self, credentials: Sequence[str], models: Sequence[str]):
        if not credentials:
            raise ConfigurationError("Access pool requires at least one credential.")
        if not models:
            raise ConfigurationError("Access pool requires at least one model.")
        self._credentials = tuple(credentials)
        self._models = tuple(models)
        self._cursor = 0
        self._lock = threading.Lock()

    @property
    def credentials(self) -> tuple[str, ...]:
        return self._credentials

    @property
    def models(self) -> tuple[str, ...]:
        return self._models

    @property
    def size(self) -> int:
        """Number of distinct candidates (credentials x models)."""
        return len(self._credentials) * len(self._models)

    @property
    def credential_cursor(self) -> int:
        with self._lock:
            return self._cursor % len(self._credentials)

    @property
    def model_cursor(self) -> int:
        with self._lock:
            return (self._cursor // len(self._credentials)) % len(self._models)

    def candidate_at(self, position: int) -> Candidate:
        """Candidate at an absolute rotation position."""
        position %= self.size
        credential_count = len(self._credentials)
        return Candidate(
            credential=self._credentials[position % credential_count],
            model=self._models[position // credential_count],
        )

    def claim(self) -> int:
        """Take the current rotation position and advance the shared cursor by one."""
        with self._lock:
            position = self._cursor
            self._cursor = (self._cursor + 1) % self.size
            return position

    def next_candidate(self) -> Candidate:
        """Rolling single pick: the candidate at the cursor, advancing it."""
        return self.candidate_at(self.claim())

    def failover_order(self) -> list[Candidate]:
        """Every candidate exactly once, starting at a freshly claimed position.

        One logical call claims a single slot, so consecutive calls start on
        consecutive credentials, while the call itself can fail over through
        the whole pool without repeating an endpoint even when other runs move
        the cursor concurrently.
        """
        start = self.claim()
        return [self.candidate_at(start + offset) for offset in range(self.size)]
