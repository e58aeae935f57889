"""
Per-domain concurrency limiting and allowed/blocked domain policy.
"""

import logging
from collections import defaultdict
from typing import Dict, Iterable, Optional


class DomainLimiter:
    """
    Tracks in-flight requests per domain against a parallelism cap.

    Not synchronized on its own: the frontier calls it while holding its
    condition lock, so check and acquire happen in one step.
    """

    def __init__(self, max_per_domain: int = 2,
                 domain_limits: Optional[Dict[str, int]] = None):
        if max_per_domain < 1:
            raise ValueError("max_per_domain must be at least 1")
        self.max_per_domain = max_per_domain
        self.domain_limits = {d.lower(): n for d, n in (domain_limits or {}).items()}
        self.in_flight: Dict[str, int] = defaultdict(int)
        self.peak_in_flight: Dict[str, int] = defaultdict(int)
        self.logger = logging.getLogger(__name__)

    def limit_for(self, domain: str) -> int:
        return self.domain_limits.get(domain, self.max_per_domain)

    def can_acquire(self, domain: str) -> bool:
        return self.in_flight[domain] < self.limit_for(domain)

    def acquire(self, domain: str):
        """Take a slot for domain. Callers must check can_acquire first."""
        if not self.can_acquire(domain):
            raise RuntimeError(f"Domain {domain} is at its parallelism cap")
        self.in_flight[domain] += 1
        if self.in_flight[domain] > self.peak_in_flight[domain]:
            self.peak_in_flight[domain] = self.in_flight[domain]

    def release(self, domain: str):
        """Give back a slot for domain."""
        if self.in_flight[domain] <= 0:
            raise RuntimeError(f"Release without acquire for domain {domain}")
        self.in_flight[domain] -= 1
        if self.in_flight[domain] == 0:
            del self.in_flight[domain]

    def total_in_flight(self) -> int:
        return sum(self.in_flight.values())

    def get_stats(self) -> Dict[str, int]:
        return dict(self.in_flight)


class DomainFilter:
    """
    Allowed/blocked domain policy.

    A host matches a configured domain when it equals it or is a subdomain
    of it. An empty allow-list allows every host not blocked.
    """

    def __init__(self, allowed_domains: Optional[Iterable[str]] = None,
                 blocked_domains: Optional[Iterable[str]] = None):
        self.allowed_domains = {d.lower().strip('.') for d in (allowed_domains or []) if d}
        self.blocked_domains = {d.lower().strip('.') for d in (blocked_domains or []) if d}

    @staticmethod
    def _matches(host: str, domain: str) -> bool:
        return host == domain or host.endswith('.' + domain)

    def is_allowed(self, domain: str) -> bool:
        """Check a task domain (host or host:port)."""
        host = domain.lower().rsplit('@', 1)[-1]
        if not host.startswith('['):
            host = host.split(':', 1)[0]

        if any(self._matches(host, blocked) for blocked in self.blocked_domains):
            return False

        if self.allowed_domains:
            return any(self._matches(host, allowed) for allowed in self.allowed_domains)

        return True
