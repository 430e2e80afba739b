"""Tests for broker/store.py.

Tests for publication, pact selection, verification records and the
can-i-deploy decision.
"""

import pytest

from pactlayer.broker.store import BrokerStore
from pactlayer.contract.document import content_hash
from pactlayer.contract.models import Contract
from pactlayer.core.errors import PublishConflictError


@pytest.fixture
def store():
    return BrokerStore()


@pytest.fixture
def small_contract(health_interaction):
    return Contract("web", "orders", (health_interaction,))


class TestPublish:
    """Tests for storing contracts per consumer version."""

    def test_publish_returns_publication(self, store, orders_contract):
        publication = store.publish(orders_contract, "1.0.0")
        assert publication.consumer == "web"
        assert publication.provider == "orders"
        assert publication.pact_version == content_hash(orders_contract)
        assert store.pact("orders", "web", "1.0.0") == publication

    def test_republish_identical_is_noop(self, store, orders_contract):
        first = store.publish(orders_contract, "1.0.0")
        second = store.publish(orders_contract, "1.0.0")
        assert second.sequence == first.sequence

    def test_different_content_conflicts(self, store, orders_contract, small_contract):
        store.publish(orders_contract, "1.0.0")
        with pytest.raises(PublishConflictError):
            store.publish(small_contract, "1.0.0")
        assert store.pact("orders", "web", "1.0.0").contract == orders_contract

    def test_overwrite_allowed(self, orders_contract, small_contract):
        store = BrokerStore(allow_overwrite=True)
        store.publish(orders_contract, "1.0.0")
        store.publish(small_contract, "1.0.0")
        assert store.pact("orders", "web", "1.0.0").contract == small_contract

    def test_other_versions_untouched(self, store, orders_contract, small_contract):
        store.publish(orders_contract, "1.0.0")
        store.publish(small_contract, "1.1.0")
        assert store.pact("orders", "web", "1.0.0").contract == orders_contract

    def test_tags_and_branch_applied(self, store, orders_contract):
        store.publish(orders_contract, "1.0.0", tags=["prod"], branch="main")
        assert store.tags("web", "1.0.0") == {"prod", "main"}


class TestLatestPacts:
    """Tests for selecting the pacts a provider must verify."""

    def test_latest_per_consumer(self, store, orders_contract, small_contract, health_interaction):
        store.publish(orders_contract, "1.0.0")
        store.publish(small_contract, "1.1.0")
        store.publish(Contract("mobile", "orders", (health_interaction,)), "3.0.0")
        store.publish(Contract("web", "billing", (health_interaction,)), "1.1.0")

        latest = store.latest_pacts("orders")
        assert [(p.consumer, p.consumer_version) for p in latest] == [("web", "1.1.0"), ("mobile", "3.0.0")]

    def test_tagged_versions_included(self, store, orders_contract, small_contract):
        store.publish(orders_contract, "1.0.0", tags=["prod"])
        store.publish(small_contract, "1.1.0")

        latest = store.latest_pacts("orders", tags=["prod"])
        assert [p.consumer_version for p in latest] == ["1.0.0", "1.1.0"]

    def test_duplicate_content_dropped(self, store, orders_contract):
        store.publish(orders_contract, "1.0.0", tags=["prod"])
        latest = store.latest_pacts("orders", tags=["prod"])
        assert len(latest) == 1

    def test_latest_for_tag(self, store, orders_contract, small_contract):
        store.publish(orders_contract, "1.0.0", tags=["prod"])
        store.publish(small_contract, "1.1.0")
        assert [p.consumer_version for p in store.latest_pacts_for_tag("orders", "prod")] == ["1.0.0"]
        assert store.latest_pacts_for_tag("orders", "staging") == []

    def test_pact_by_version(self, store, orders_contract):
        publication = store.publish(orders_contract, "1.0.0")
        assert store.pact_by_version("orders", "web", publication.pact_version) == publication
        assert store.pact_by_version("orders", "web", "nope") is None


class TestVerificationRecords:
    def test_record_and_lookup(self, store, orders_contract):
        publication = store.publish(orders_contract, "1.0.0")
        store.record_verification("orders", "web", publication.pact_version, "2.0.0", False)
        store.record_verification("orders", "web", publication.pact_version, "2.0.0", True)

        record = store.latest_verification("orders", publication.pact_version, "2.0.0")
        assert record.success is True
        assert store.latest_verification("orders", publication.pact_version, "9.9.9") is None

    def test_unknown_pact_version_rejected(self, store):
        with pytest.raises(KeyError):
            store.record_verification("orders", "web", "unknown", "2.0.0", True)


class TestCanIDeploy:
    """Tests for the deployment decision."""

    def test_no_contracts_is_deployable(self, store):
        result = store.can_i_deploy("lonely", "1.0.0", "prod")
        assert result.deployable
        assert result.matrix == []

    def test_consumer_with_passing_verification(self, store, orders_contract):
        publication = store.publish(orders_contract, "1.0.0")
        store.record_verification("orders", "web", publication.pact_version, "2.0.0", True)
        store.record_deployment("orders", "2.0.0", "prod")

        result = store.can_i_deploy("web", "1.0.0", "prod")
        assert result.deployable
        (row,) = result.matrix
        assert row.provider_version == "2.0.0"
        assert row.success is True

    def test_consumer_with_failed_verification(self, store, orders_contract):
        publication = store.publish(orders_contract, "1.0.0")
        store.record_verification("orders", "web", publication.pact_version, "2.0.0", False)
        store.record_deployment("orders", "2.0.0", "prod")

        result = store.can_i_deploy("web", "1.0.0", "prod")
        assert not result.deployable
        assert len(result.failed) == 1
        assert "failed" in result.reason

    def test_verification_against_other_provider_version_is_unknown(self, store, orders_contract):
        publication = store.publish(orders_contract, "1.0.0")
        store.record_verification("orders", "web", publication.pact_version, "2.0.0", True)
        store.record_deployment("orders", "1.9.0", "prod")

        result = store.can_i_deploy("web", "1.0.0", "prod")
        assert not result.deployable
        assert len(result.unknown) == 1
        assert "No verification result" in result.reason

    def test_provider_not_deployed_is_unknown(self, store, orders_contract):
        store.publish(orders_contract, "1.0.0")

        result = store.can_i_deploy("web", "1.0.0", "prod")
        assert not result.deployable
        assert result.reason == "No version of orders is deployed to prod"

    def test_provider_checked_against_deployed_consumers(self, store, orders_contract):
        publication = store.publish(orders_contract, "1.0.0")
        store.record_deployment("web", "1.0.0", "prod")
        store.record_verification("orders", "web", publication.pact_version, "2.0.0", True)

        assert store.can_i_deploy("orders", "2.0.0", "prod").deployable
        assert not store.can_i_deploy("orders", "2.1.0", "prod").deployable

    def test_environments_independent(self, store, orders_contract):
        publication = store.publish(orders_contract, "1.0.0")
        store.record_verification("orders", "web", publication.pact_version, "2.0.0", True)
        store.record_deployment("orders", "2.0.0", "staging")

        assert store.can_i_deploy("web", "1.0.0", "staging").deployable
        assert not store.can_i_deploy("web", "1.0.0", "prod").deployable

    def test_deployment_replaces_previous_version(self, store):
        store.record_deployment("orders", "1.0.0", "prod")
        store.record_deployment("orders", "2.0.0", "prod")
        assert store.deployed_version("orders", "prod") == "2.0.0"
