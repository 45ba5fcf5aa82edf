"""
Unit tests for the Sync Orchestrator.

Uses in-memory fakes for the Secret Fetcher and balancer client, so the
retry and failure mapping logic runs without network or cluster access.
"""
import asyncio

import httpx
import pytest

from certsync import (
    ClusterUnavailableError,
    FetchRetryPolicy,
    LinodeNodeBalancerClient,
    PushRejectedError,
    PushRetriesExhaustedError,
    SecretMalformedError,
    SecretNotFoundError,
    SyncOrchestrator,
    SyncStage,
    TriggerRequest,
)
from tests.fakes import FakeBalancerClient, FakeSecretFetcher, secret_data

NAMESPACE = "default"
NAME = "wildcard-mydomain-tls"


class SleepRecorder:
    """Stand-in for asyncio.sleep that records requested delays."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def _orchestrator(fetcher, balancer, target, max_attempts=3, delay=0.25, skip_unchanged=False):
    sleep = SleepRecorder()
    orchestrator = SyncOrchestrator(
        fetcher=fetcher,
        balancer=balancer,
        target=target,
        fetch_policy=FetchRetryPolicy(max_attempts=max_attempts, delay=delay),
        skip_unchanged=skip_unchanged,
        sleep=sleep,
    )
    return orchestrator, sleep


@pytest.fixture
def stored_secret(pem_pair):
    cert_pem, key_pem = pem_pair
    return {(NAMESPACE, NAME): secret_data(cert_pem, key_pem)}


@pytest.fixture
def trigger():
    return TriggerRequest(secret_name=NAME, secret_namespace=NAMESPACE, issuer="letsencrypt-prod")


class TestSuccess:
    """Happy path behaviour."""

    @pytest.mark.asyncio
    async def test_fetches_and_pushes_once(self, stored_secret, trigger, target, pem_pair):
        """An existing well-formed Secret results in exactly one push."""
        fetcher = FakeSecretFetcher(stored_secret)
        balancer = FakeBalancerClient()
        orchestrator, sleep = _orchestrator(fetcher, balancer, target)

        result = await orchestrator.sync(trigger)

        assert result.success is True
        assert result.skipped is False
        assert fetcher.calls == [(NAMESPACE, NAME)]
        assert len(balancer.pushes) == 1
        pushed_target, material = balancer.pushes[0]
        assert pushed_target == target
        assert material.certificate_pem == pem_pair[0]
        assert material.private_key_pem == pem_pair[1]
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_concurrent_runs_are_independent(self, stored_secret, trigger, target):
        """Concurrent triggers for the same Secret both succeed."""
        fetcher = FakeSecretFetcher(stored_secret)
        balancer = FakeBalancerClient()
        orchestrator, _ = _orchestrator(fetcher, balancer, target)

        results = await asyncio.gather(orchestrator.sync(trigger), orchestrator.sync(trigger))

        assert all(r.success for r in results)
        assert len(balancer.pushes) == 2
        first, second = (material for _, material in balancer.pushes)
        assert first.fingerprint == second.fingerprint


class TestValidation:
    """Invalid triggers never reach the network."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("namespace,name", [
        ("", NAME),
        (NAMESPACE, ""),
        ("", ""),
        ("Bad_Namespace", NAME),
    ])
    async def test_invalid_trigger(self, stored_secret, target, namespace, name):
        fetcher = FakeSecretFetcher(stored_secret)
        balancer = FakeBalancerClient()
        orchestrator, _ = _orchestrator(fetcher, balancer, target)

        result = await orchestrator.sync(TriggerRequest(secret_name=name, secret_namespace=namespace))

        assert result.success is False
        assert result.stage == SyncStage.VALIDATION
        assert fetcher.calls == []
        assert balancer.pushes == []


class TestFetchRetry:
    """Fetch retry policy."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("max_attempts", [1, 3, 5])
    async def test_not_found_is_bounded(self, trigger, target, max_attempts):
        """A Secret that never appears costs exactly N fetch attempts."""
        fetcher = FakeSecretFetcher({})
        balancer = FakeBalancerClient()
        orchestrator, sleep = _orchestrator(fetcher, balancer, target, max_attempts=max_attempts)

        result = await orchestrator.sync(trigger)

        assert result.success is False
        assert result.stage == SyncStage.FETCH
        assert isinstance(result.error, SecretNotFoundError)
        assert len(fetcher.calls) == max_attempts
        assert sleep.delays == [0.25] * (max_attempts - 1)
        assert balancer.pushes == []

    @pytest.mark.asyncio
    async def test_secret_appears_after_retry(self, stored_secret, trigger, target):
        """Issuance racing the trigger is absorbed by the retry."""
        fetcher = FakeSecretFetcher(stored_secret, errors=[SecretNotFoundError("not yet")])
        balancer = FakeBalancerClient()
        orchestrator, sleep = _orchestrator(fetcher, balancer, target)

        result = await orchestrator.sync(trigger)

        assert result.success is True
        assert len(fetcher.calls) == 2
        assert sleep.delays == [0.25]
        assert len(balancer.pushes) == 1

    @pytest.mark.asyncio
    async def test_unavailable_is_retried(self, stored_secret, trigger, target):
        fetcher = FakeSecretFetcher(stored_secret, errors=[ClusterUnavailableError("blip")])
        balancer = FakeBalancerClient()
        orchestrator, _ = _orchestrator(fetcher, balancer, target)

        result = await orchestrator.sync(trigger)

        assert result.success is True
        assert len(fetcher.calls) == 2

    @pytest.mark.asyncio
    async def test_unavailable_exhausted(self, trigger, target):
        fetcher = FakeSecretFetcher({}, errors=[ClusterUnavailableError("down")] * 3)
        orchestrator, _ = _orchestrator(fetcher, FakeBalancerClient(), target)

        result = await orchestrator.sync(trigger)

        assert result.stage == SyncStage.FETCH
        assert isinstance(result.error, ClusterUnavailableError)
        assert len(fetcher.calls) == 3

    @pytest.mark.asyncio
    async def test_malformed_is_not_retried(self, pem_pair, trigger, target):
        """A Secret missing tls.crt fails once and never reaches the balancer."""
        _, key_pem = pem_pair
        fetcher = FakeSecretFetcher({(NAMESPACE, NAME): secret_data(None, key_pem)})
        balancer = FakeBalancerClient()
        orchestrator, sleep = _orchestrator(fetcher, balancer, target)

        result = await orchestrator.sync(trigger)

        assert result.stage == SyncStage.FETCH
        assert isinstance(result.error, SecretMalformedError)
        assert len(fetcher.calls) == 1
        assert sleep.delays == []
        assert balancer.pushes == []

    @pytest.mark.asyncio
    async def test_non_utf8_certificate_fails_at_fetch(self, pem_pair, trigger, target):
        """Undecodable PEM text is a malformed Secret, not a push error."""
        cert_pem, key_pem = pem_pair
        fetcher = FakeSecretFetcher({
            (NAMESPACE, NAME): secret_data(b"Subject: caf\xe9\n" + cert_pem, key_pem),
        })
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={"id": int(target.https_config_id)})

        balancer = LinodeNodeBalancerClient(
            api_token="test-token",
            transport=httpx.MockTransport(handler),
        )
        orchestrator, _ = _orchestrator(fetcher, balancer, target)

        result = await orchestrator.sync(trigger)
        await balancer.close()

        assert result.stage == SyncStage.FETCH
        assert isinstance(result.error, SecretMalformedError)
        assert "UTF-8" in result.message
        assert requests == []

    @pytest.mark.asyncio
    async def test_unexpected_fetch_error_is_contained(self, trigger, target):
        fetcher = FakeSecretFetcher({}, errors=[RuntimeError("boom")])
        orchestrator, _ = _orchestrator(fetcher, FakeBalancerClient(), target)

        result = await orchestrator.sync(trigger)

        assert result.success is False
        assert result.stage == SyncStage.FETCH
        assert "boom" in result.message


class TestPush:
    """Push failures map to push-stage results."""

    @pytest.mark.asyncio
    async def test_rejected(self, stored_secret, trigger, target):
        balancer = FakeBalancerClient(error=PushRejectedError("HTTP 401: Invalid Token", status_code=401))
        orchestrator, _ = _orchestrator(FakeSecretFetcher(stored_secret), balancer, target)

        result = await orchestrator.sync(trigger)

        assert result.stage == SyncStage.PUSH
        assert isinstance(result.error, PushRejectedError)
        assert len(balancer.pushes) == 1

    @pytest.mark.asyncio
    async def test_retries_exhausted(self, stored_secret, trigger, target):
        balancer = FakeBalancerClient(error=PushRetriesExhaustedError("HTTP 500", attempts=3))
        orchestrator, _ = _orchestrator(FakeSecretFetcher(stored_secret), balancer, target)

        result = await orchestrator.sync(trigger)

        assert result.stage == SyncStage.PUSH
        assert isinstance(result.error, PushRetriesExhaustedError)

    @pytest.mark.asyncio
    async def test_unexpected_push_error_is_contained(self, stored_secret, trigger, target):
        balancer = FakeBalancerClient(error=RuntimeError("socket exploded"))
        orchestrator, _ = _orchestrator(FakeSecretFetcher(stored_secret), balancer, target)

        result = await orchestrator.sync(trigger)

        assert result.stage == SyncStage.PUSH
        assert "socket exploded" in result.message


class TestSkipUnchanged:
    """Fingerprint comparison before pushing."""

    @pytest.mark.asyncio
    async def test_identical_certificate_skips_push(self, stored_secret, trigger, target):
        fetcher = FakeSecretFetcher(stored_secret)
        balancer = FakeBalancerClient()
        orchestrator, _ = _orchestrator(fetcher, balancer, target, skip_unchanged=True)

        first = await orchestrator.sync(trigger)
        second = await orchestrator.sync(trigger)

        assert first.success is True and first.skipped is False
        assert second.success is True and second.skipped is True
        assert len(balancer.pushes) == 1

    @pytest.mark.asyncio
    async def test_fingerprint_lookup_failure_still_pushes(self, stored_secret, trigger, target):
        balancer = FakeBalancerClient()
        balancer.fingerprint_error = RuntimeError("lookup failed")
        orchestrator, _ = _orchestrator(FakeSecretFetcher(stored_secret), balancer, target, skip_unchanged=True)

        result = await orchestrator.sync(trigger)

        assert result.success is True
        assert result.skipped is False
        assert len(balancer.pushes) == 1

    @pytest.mark.asyncio
    async def test_disabled_always_pushes(self, stored_secret, trigger, target):
        balancer = FakeBalancerClient()
        orchestrator, _ = _orchestrator(FakeSecretFetcher(stored_secret), balancer, target)

        await orchestrator.sync(trigger)
        await orchestrator.sync(trigger)

        assert len(balancer.pushes) == 2
