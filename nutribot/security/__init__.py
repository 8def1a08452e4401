"""Security & GDPR module — encryption, consent, data rights, erasure, audit."""

from nutribot.security.consent import ConsentManager
from nutribot.security.erasure import ErasureProcessor

__all__ = ["ConsentManager", "ErasureProcessor"]
