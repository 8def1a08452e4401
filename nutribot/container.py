"""Service container — one explicit object graph per application.

Everything is constructed from the frozen Settings and a Repositories bundle;
nothing is a module-level singleton. `nutribot.main` builds the graph with SQL
repositories inside the lifespan, tests build it with in-memory ones.

Usage:
    services = build_services(settings, build_memory_repositories())
    app = create_app(settings, services=services)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from nutribot.advice.service import AdviceService
from nutribot.assessment.engine import AssessmentService
from nutribot.assessment.locks import KeyedLock
from nutribot.config import Settings
from nutribot.events import EventBus
from nutribot.llm.chain import ProviderChain, build_provider_chain
from nutribot.privacy.gate import ConsentGate
from nutribot.privacy.pipeline import PrivacyPipeline
from nutribot.security.audit import AuditLogger
from nutribot.security.consent import ConsentManager
from nutribot.security.data_rights import DataRightsService
from nutribot.security.encryption import FieldEncryptor, build_field_encryptor
from nutribot.security.erasure import ErasureProcessor
from nutribot.security.identity import (
    ConsentValidator,
    HmacConsentValidator,
    HmacIdentityVerifier,
    IdentityVerifier,
)
from nutribot.security.rate_limiter import RateLimiter
from nutribot.storage.ports import Repositories

logger = logging.getLogger(__name__)


@dataclass
class Services:
    settings: Settings
    bus: EventBus
    repositories: Repositories
    encryptor: FieldEncryptor
    identity: IdentityVerifier
    consent_validator: ConsentValidator
    consents: ConsentManager
    gate: ConsentGate
    pipeline: PrivacyPipeline
    chain: ProviderChain
    assessments: AssessmentService
    advice: AdviceService
    erasure: ErasureProcessor
    data_rights: DataRightsService
    audit: AuditLogger
    locks: KeyedLock
    rate_limiter: RateLimiter | None = None


def build_services(
    settings: Settings,
    repositories: Repositories,
    *,
    bus: EventBus | None = None,
    chain: ProviderChain | None = None,
    encryptor: FieldEncryptor | None = None,
    identity: IdentityVerifier | None = None,
    consent_validator: ConsentValidator | None = None,
    rate_limiter: RateLimiter | None = None,
) -> Services:
    """Wire the full object graph. Any collaborator can be overridden."""
    bus = bus or EventBus()
    encryptor = encryptor or build_field_encryptor(settings.security)
    chain = chain or build_provider_chain(settings.llm, bus)
    locks = KeyedLock()

    audit = AuditLogger(repositories.audit)
    bus.subscribe(audit.on_event)

    consents = ConsentManager(repositories.consents, bus)
    gate = ConsentGate(consents, repositories.restrictions, bus)
    pipeline = PrivacyPipeline(bus, fail_closed=settings.privacy.fail_closed)

    assessments = AssessmentService(
        repository=repositories.assessments,
        gate=gate,
        pipeline=pipeline,
        chain=chain,
        encryptor=encryptor,
        bus=bus,
        settings=settings.assessment,
        locks=locks,
    )
    advice = AdviceService(gate=gate, pipeline=pipeline, chain=chain, bus=bus)
    erasure = ErasureProcessor(repositories, consents, bus, locks)
    data_rights = DataRightsService(
        repositories=repositories,
        consents=consents,
        assessments=assessments,
        erasure=erasure,
        encryptor=encryptor,
        bus=bus,
        locks=locks,
    )

    return Services(
        settings=settings,
        bus=bus,
        repositories=repositories,
        encryptor=encryptor,
        identity=identity or HmacIdentityVerifier(settings.security.auth_secret),
        consent_validator=consent_validator or HmacConsentValidator(settings.security.consent_secret),
        consents=consents,
        gate=gate,
        pipeline=pipeline,
        chain=chain,
        assessments=assessments,
        advice=advice,
        erasure=erasure,
        data_rights=data_rights,
        audit=audit,
        locks=locks,
        rate_limiter=rate_limiter,
    )
