"""
End-to-end tests for the domain analysis orchestrator.

Every upstream (reputation, WHOIS, fraud, abuse, blacklist and the page
mirrors) is faked behind a single httpx.MockTransport.
"""

import asyncio
from collections import Counter
from datetime import datetime, timezone
from typing import Optional

import httpx
import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from domain_intel.config import ApiCredentials, MirrorConfig, SystemConfig
from domain_intel.enums import RiskLevel
from domain_intel.exceptions import InputValidationError
from domain_intel.ip_intelligence import IpIntelligenceCache
from domain_intel.metadata_extractor import MetadataExtractor
from domain_intel.models import METADATA_BOOKKEEPING_FIELDS, IdSequence
from domain_intel.orchestrator import DomainAnalysisOrchestrator, is_ip_literal


CREATED_EPOCH = 808358400
MODIFIED_EPOCH = 1700000000
PAGE = """
<html lang="en"><head>
<title>Example Domain</title>
<meta name="description" content="Illustrative examples in documents.">
</head><body></body></html>
"""

TIMEOUT_TEXT = "Request timed out while fetching metadata (try again or website may be slow)"


def reputation_payload(malicious: int = 0, suspicious: int = 0, dns_records: Optional[list] = None) -> dict:
    if dns_records is None:
        dns_records = [
            {"type": "NS", "value": "a.iana-servers.net"},
            {"type": "AAAA", "value": "2606:2800:220:1:248:1893:25c8:1946"},
            {"type": "A", "value": "93.184.216.34"},
        ]
    return {"data": {"id": "example.com", "type": "domain", "attributes": {
        "last_analysis_stats": {
            "malicious": malicious,
            "suspicious": suspicious,
            "harmless": 66,
            "undetected": 24,
        },
        "last_dns_records": dns_records,
        "creation_date": CREATED_EPOCH,
        "last_modification_date": MODIFIED_EPOCH,
        "registrar": "Reputation Registrar",
        "reputation": 3,
        "tags": ["parked"],
    }}}


class FakeUpstreams:
    """Routes requests by host; each upstream's behavior is configurable."""

    def __init__(
        self,
        reputation: Optional[dict] = None,
        reputation_status: int = 200,
        whois_status: int = 200,
        fraud: Optional[dict] = None,
        abuse_score: int = 0,
        mirror_mode: str = "ok",
    ) -> None:
        self.reputation = reputation if reputation is not None else reputation_payload()
        self.reputation_status = reputation_status
        self.whois_status = whois_status
        self.fraud = fraud if fraud is not None else {"success": True, "fraud_score": 0}
        self.abuse_score = abuse_score
        self.mirror_mode = mirror_mode
        self.calls: Counter = Counter()
        self.reputation_headers: list = []

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        host = request.url.host
        self.calls[host] += 1

        if host == "www.virustotal.com":
            self.reputation_headers.append(request.headers.get("x-apikey"))
            return httpx.Response(self.reputation_status, json=self.reputation)
        if host == "whois-aoi.onrender.com":
            if self.whois_status != 200:
                return httpx.Response(self.whois_status, text="upstream down")
            return httpx.Response(200, json={
                "created": "1995-08-14T04:00:00Z",
                "expires": "2025-08-13T04:00:00Z",
                "registrar": "RESERVED-Internet Assigned Numbers Authority",
            })
        if host == "ipqualityscore.com":
            return httpx.Response(200, json=self.fraud)
        if host == "api.abuseipdb.com":
            return httpx.Response(200, json={"data": {"abuseConfidenceScore": self.abuse_score}})
        if host == "localhost":
            return httpx.Response(200, json={"listedCount": 0, "results": []})
        if host in ("api.allorigins.win", "corsproxy.io", "api.codetabs.com"):
            if self.mirror_mode == "timeout" or (self.mirror_mode == "mixed" and host == "api.allorigins.win"):
                await asyncio.sleep(1.0)
            if self.mirror_mode != "ok":
                return httpx.Response(500, text="mirror error")
            return httpx.Response(200, text=PAGE)
        return httpx.Response(404)

    def mirror_calls(self) -> int:
        return sum(self.calls[h] for h in ("api.allorigins.win", "corsproxy.io", "api.codetabs.com"))


def make_config(per_attempt_timeout: float = 0.05) -> SystemConfig:
    config = SystemConfig(
        credentials=ApiCredentials(
            reputation_api_key="vt-key",
            abuse_api_key="abuse-key",
            fraud_api_keys=["fraud-key-1", "fraud-key-2"],
        ),
        mirrors=MirrorConfig(per_attempt_timeout=per_attempt_timeout),
    )
    config.key_rotation.startup_wait_seconds = 0.5
    return config


def analyze(upstreams: FakeUpstreams, domain: str = "example.com", **kwargs):
    async def run():
        async with DomainAnalysisOrchestrator(
            config=kwargs.pop("config", make_config()),
            transport=httpx.MockTransport(upstreams),
            id_sequence=IdSequence(clock=lambda: 1000),
            **kwargs,
        ) as orchestrator:
            outcome = await orchestrator.analyze(domain)
            metadata = await outcome.wait_metadata()
            return outcome, metadata

    return asyncio.run(run())


class TestEndToEndScan:
    """A clean domain produces all three records."""

    def test_clean_domain(self) -> None:
        upstreams = FakeUpstreams()
        outcome, metadata = analyze(upstreams)

        assert outcome.ok
        scan, reputation = outcome.scan, outcome.reputation
        assert reputation.risk_level == RiskLevel.CLEAN
        assert scan.abuse_score == 0
        assert not scan.is_vpn_proxy
        assert scan.ip_address == "93.184.216.34"
        assert scan.registrar == "RESERVED-Internet Assigned Numbers Authority"
        assert scan.created == "1995-08-14T04:00:00Z"
        assert scan.expires == "2025-08-13T04:00:00Z"
        assert scan.name_servers == ("a.iana-servers.net",)
        assert "A: 93.184.216.34" in scan.dns_records
        assert scan.domain_age not in ("-", "Less than 1 day")
        assert metadata.title == "Example Domain"
        assert metadata.error is None
        assert upstreams.reputation_headers == ["vt-key"]

    def test_ids_follow_scan_id(self) -> None:
        outcome, metadata = analyze(FakeUpstreams())

        assert outcome.scan.id == 1000
        assert metadata.id == 1001
        assert outcome.reputation.id == 1002

    def test_reputation_fields_copied(self) -> None:
        outcome, _ = analyze(FakeUpstreams())
        reputation = outcome.reputation

        assert reputation.harmless_score == 66
        assert reputation.undetected_score == 24
        assert reputation.reputation == 3
        assert reputation.tags == ["parked"]
        assert reputation.creation_date == datetime.fromtimestamp(CREATED_EPOCH, tz=timezone.utc).isoformat()
        assert len(reputation.last_dns_records) == 3
        assert reputation.to_dict()["risk_level"] == "Clean"

    def test_input_is_trimmed_and_lowercased(self) -> None:
        outcome, _ = analyze(FakeUpstreams(), domain="  Example.COM ")
        assert outcome.scan.domain == "example.com"


class TestRiskAndIntelligence:
    @given(malicious=st.integers(min_value=6, max_value=90))
    @settings(max_examples=10, deadline=None)
    def test_many_malicious_is_high(self, malicious: int) -> None:
        outcome, _ = analyze(FakeUpstreams(reputation=reputation_payload(malicious=malicious)))
        assert outcome.reputation.risk_level == RiskLevel.HIGH
        assert outcome.reputation.malicious_score == malicious

    def test_anonymized_ip_raises_abuse_score(self) -> None:
        upstreams = FakeUpstreams(fraud={"success": True, "fraud_score": 82, "vpn": True, "city": "Paris"})
        outcome, _ = analyze(upstreams)

        assert outcome.scan.is_vpn_proxy
        assert outcome.scan.abuse_score >= 82
        assert outcome.scan.city == "Paris"

    def test_aaaa_used_when_no_a_record(self) -> None:
        records = [{"type": "AAAA", "value": "2001:db8::1"}]
        outcome, _ = analyze(FakeUpstreams(reputation=reputation_payload(dns_records=records)))
        assert outcome.scan.ip_address == "2001:db8::1"

    def test_non_ip_record_skips_intelligence(self) -> None:
        records = [{"type": "A", "value": "not-an-ip"}]
        upstreams = FakeUpstreams(reputation=reputation_payload(dns_records=records))
        outcome, _ = analyze(upstreams)

        assert outcome.scan.ip_address == "not-an-ip"
        assert outcome.scan.country == "-"
        assert upstreams.calls["ipqualityscore.com"] == 0
        assert upstreams.calls["api.abuseipdb.com"] == 0


class TestFailureIsolation:
    def test_reputation_failure_continues_with_empty_attributes(self) -> None:
        upstreams = FakeUpstreams(reputation_status=500)
        outcome, _ = analyze(upstreams)

        assert outcome.ok
        assert outcome.reputation.risk_level == RiskLevel.CLEAN
        assert outcome.scan.ip_address == "-"
        assert outcome.scan.registrar == "RESERVED-Internet Assigned Numbers Authority"
        assert upstreams.calls["ipqualityscore.com"] == 0

    def test_whois_failure_keeps_reputation_dates(self) -> None:
        outcome, _ = analyze(FakeUpstreams(whois_status=503))

        assert outcome.scan.created == datetime.fromtimestamp(CREATED_EPOCH, tz=timezone.utc).isoformat()
        assert outcome.scan.expires == datetime.fromtimestamp(MODIFIED_EPOCH, tz=timezone.utc).isoformat()
        assert outcome.scan.registrar == "Reputation Registrar"

    def test_invalid_input_makes_no_network_call(self) -> None:
        upstreams = FakeUpstreams()
        with pytest.raises(InputValidationError):
            analyze(upstreams, domain="exa mple.com")
        assert sum(upstreams.calls.values()) == 0

    def test_empty_input_rejected(self) -> None:
        with pytest.raises(InputValidationError):
            analyze(FakeUpstreams(), domain="   ")

    def test_main_path_failure_still_delivers_metadata(self) -> None:
        delivered = []

        def broken_presenter(scan) -> None:
            raise RuntimeError("boom")

        outcome, metadata = analyze(
            FakeUpstreams(),
            on_scan=broken_presenter,
            on_metadata=delivered.append,
        )

        assert not outcome.ok
        assert outcome.error == "Scan Failed: boom"
        assert outcome.scan is None
        assert metadata.title == "Example Domain"
        assert delivered == [metadata]


class TestMetadataFailureProperty:
    """When every mirror fails, only bookkeeping fields and the error remain."""

    def test_all_mirrors_fail(self) -> None:
        upstreams = FakeUpstreams(mirror_mode="error")
        outcome, metadata = analyze(upstreams)

        assert outcome.ok
        assert upstreams.mirror_calls() == 3
        assert set(metadata.to_dict()) <= METADATA_BOOKKEEPING_FIELDS
        assert metadata.error == "Failed to fetch metadata"
        assert metadata.error != TIMEOUT_TEXT
        assert metadata.completeness_score is None

    def test_all_mirrors_time_out(self) -> None:
        outcome, metadata = analyze(FakeUpstreams(mirror_mode="timeout"))

        assert outcome.ok
        assert metadata.error == TIMEOUT_TEXT
        assert set(metadata.to_dict()) <= METADATA_BOOKKEEPING_FIELDS

    def test_http_errors_after_timeout_report_timeout(self) -> None:
        upstreams = FakeUpstreams(mirror_mode="mixed")
        _, metadata = analyze(upstreams)

        assert upstreams.mirror_calls() == 3
        assert metadata.error == TIMEOUT_TEXT

    def test_extraction_failure_still_delivers_metadata(self, monkeypatch) -> None:
        def broken_extract(self, html, domain, result_id):
            raise RecursionError("maximum recursion depth exceeded")

        monkeypatch.setattr(MetadataExtractor, "extract", broken_extract)
        delivered = []
        outcome, metadata = analyze(FakeUpstreams(), on_metadata=delivered.append)

        assert outcome.ok
        assert delivered == [metadata]
        assert metadata.id == outcome.scan.id + 1
        assert metadata.error == "Failed to fetch metadata"
        assert set(metadata.to_dict()) <= METADATA_BOOKKEEPING_FIELDS

    def test_metadata_error_in_german(self) -> None:
        config = make_config()
        config.language = "de"
        _, metadata = analyze(FakeUpstreams(mirror_mode="timeout"), config=config)
        assert metadata.error.startswith("Zeitüberschreitung")


class TestCallbacksAndReuse:
    def test_callbacks_receive_records(self) -> None:
        events = []
        outcome, metadata = analyze(
            FakeUpstreams(),
            on_scan=lambda r: events.append(("scan", r)),
            on_reputation=lambda r: events.append(("reputation", r)),
            on_metadata=lambda r: events.append(("metadata", r)),
        )

        assert ("scan", outcome.scan) in events
        assert ("reputation", outcome.reputation) in events
        assert ("metadata", metadata) in events
        assert [name for name, _ in events].index("scan") < [name for name, _ in events].index("reputation")

    def test_back_to_back_scans_share_ip_cache(self) -> None:
        upstreams = FakeUpstreams()
        cache = IpIntelligenceCache()

        async def run():
            async with DomainAnalysisOrchestrator(
                config=make_config(),
                transport=httpx.MockTransport(upstreams),
                ip_cache=cache,
            ) as orchestrator:
                first = await orchestrator.analyze("example.com")
                second = await orchestrator.analyze("example.com")
                await first.wait_metadata()
                await second.wait_metadata()
                return first, second

        first, second = asyncio.run(run())

        assert first.scan.id < second.scan.id
        assert second.scan.abuse_score == first.scan.abuse_score
        assert upstreams.calls["api.abuseipdb.com"] == 1


class TestIpLiteral:
    @pytest.mark.parametrize("value", ["93.184.216.34", "2001:db8::1", "::1"])
    def test_ip_literals(self, value: str) -> None:
        assert is_ip_literal(value)

    @pytest.mark.parametrize("value", ["-", "example.com", "999.1.1.1", ""])
    def test_non_literals(self, value: str) -> None:
        assert not is_ip_literal(value)
