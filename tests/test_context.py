# Copyright 2024-2025 Amiable Development
# SPDX-License-Identifier: Apache-2.0

"""
Tests for resource context: RunCache, PVC analysis and hooks.
"""

import threading

import pytest

from kube_janitor.errors import TransportError
from kube_janitor.janitor.context import (
    PVC_NOT_MOUNTED,
    PVC_NOT_REFERENCED,
    ContextProvider,
    RunCache,
)


def pod_with_claim(make_obj, name, claim, namespace="default"):
    return make_obj(
        kind="Pod",
        name=name,
        namespace=namespace,
        spec={"volumes": [{"name": "data", "persistentVolumeClaim": {"claimName": claim}}]},
    )


class TestRunCache:
    """Tests for the run-scoped cache."""

    def test_get_or_set_computes_once(self):
        cache = RunCache()
        calls = []

        def factory():
            calls.append(1)
            return 4

        assert cache.get_or_set("dice", factory) == 4
        assert cache.get_or_set("dice", factory) == 4
        assert len(calls) == 1

    def test_first_writer_wins(self):
        cache = RunCache()
        cache.setdefault("k", "first")
        assert cache.setdefault("k", "second") == "first"
        assert cache.get("k") == "first"

    def test_contains_and_len(self):
        cache = RunCache()
        assert "k" not in cache
        cache.setdefault("k", None)
        assert "k" in cache
        assert len(cache) == 1

    def test_concurrent_get_or_set_single_computation(self):
        cache = RunCache()
        calls = []
        lock = threading.Lock()
        barrier = threading.Barrier(8)

        def factory():
            with lock:
                calls.append(1)
            return object()

        results = []

        def worker():
            barrier.wait()
            results.append(cache.get_or_set("shared", factory))

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(calls) == 1
        assert all(r is results[0] for r in results)

    def test_separate_runs_are_isolated(self):
        first, second = RunCache(), RunCache()
        first.setdefault("dice", 1)
        assert second.get("dice") is None


class TestPVCContext:
    """Tests for built-in PersistentVolumeClaim analysis."""

    @pytest.fixture
    def pvc(self, make_resource):
        return make_resource(kind="PersistentVolumeClaim", name="data-claim", namespace="default")

    def test_unused_claim(self, fake_client, pvc):
        context = ContextProvider(fake_client).get_context(pvc, RunCache())
        assert context == {PVC_NOT_MOUNTED: True, PVC_NOT_REFERENCED: True}

    def test_mounted_by_pod(self, fake_client, make_obj, pvc):
        fake_client.add_objects("v1", "pods", pod_with_claim(make_obj, "web", "data-claim"))
        context = ContextProvider(fake_client).get_context(pvc, RunCache())
        assert context[PVC_NOT_MOUNTED] is False
        assert context[PVC_NOT_REFERENCED] is True

    def test_pod_in_other_namespace_ignored(self, fake_client, make_obj, pvc):
        fake_client.add_objects(
            "v1", "pods", pod_with_claim(make_obj, "web", "data-claim", namespace="other")
        )
        context = ContextProvider(fake_client).get_context(pvc, RunCache())
        assert context[PVC_NOT_MOUNTED] is True

    def test_referenced_by_statefulset_template(self, fake_client, make_obj, make_resource):
        fake_client.add_objects(
            "apps/v1",
            "statefulsets",
            make_obj(
                kind="StatefulSet",
                name="db",
                spec={"volumeClaimTemplates": [{"metadata": {"name": "data"}}]},
            ),
        )
        claim = make_resource(kind="PersistentVolumeClaim", name="data-db-0")
        context = ContextProvider(fake_client).get_context(claim, RunCache())
        assert context[PVC_NOT_REFERENCED] is False

    def test_statefulset_template_requires_ordinal(self, fake_client, make_obj, make_resource):
        fake_client.add_objects(
            "apps/v1",
            "statefulsets",
            make_obj(
                kind="StatefulSet",
                name="db",
                spec={"volumeClaimTemplates": [{"metadata": {"name": "data"}}]},
            ),
        )
        claim = make_resource(kind="PersistentVolumeClaim", name="data-db-backup")
        context = ContextProvider(fake_client).get_context(claim, RunCache())
        assert context[PVC_NOT_REFERENCED] is True

    @pytest.mark.parametrize(
        "group_version,plural,kind,spec",
        [
            (
                "apps/v1",
                "deployments",
                "Deployment",
                {"template": {"spec": {"volumes": [{"persistentVolumeClaim": {"claimName": "data-claim"}}]}}},
            ),
            (
                "batch/v1",
                "jobs",
                "Job",
                {"template": {"spec": {"volumes": [{"persistentVolumeClaim": {"claimName": "data-claim"}}]}}},
            ),
            (
                "batch/v1",
                "cronjobs",
                "CronJob",
                {
                    "jobTemplate": {
                        "spec": {
                            "template": {
                                "spec": {
                                    "volumes": [{"persistentVolumeClaim": {"claimName": "data-claim"}}]
                                }
                            }
                        }
                    }
                },
            ),
        ],
    )
    def test_referenced_by_pod_template(self, fake_client, make_obj, pvc, group_version, plural, kind, spec):
        fake_client.add_objects(group_version, plural, make_obj(kind=kind, name="w", spec=spec))
        context = ContextProvider(fake_client).get_context(pvc, RunCache())
        assert context[PVC_NOT_REFERENCED] is False
        assert context[PVC_NOT_MOUNTED] is True

    def test_mounting_flips_only_not_mounted(self, fake_client, make_obj, pvc):
        provider = ContextProvider(fake_client)
        before = provider.get_context(pvc, RunCache())

        fake_client.add_objects("v1", "pods", pod_with_claim(make_obj, "web", "data-claim"))
        after = provider.get_context(pvc, RunCache())

        assert before[PVC_NOT_MOUNTED] is True and after[PVC_NOT_MOUNTED] is False
        assert before[PVC_NOT_REFERENCED] == after[PVC_NOT_REFERENCED]

    def test_listings_are_namespace_scoped(self, fake_client, pvc):
        ContextProvider(fake_client).get_context(pvc, RunCache())
        assert fake_client.list_calls
        assert all(namespace == "default" for _, _, namespace in fake_client.list_calls)

    def test_non_pvc_has_no_builtin_facts(self, fake_client, make_resource):
        context = ContextProvider(fake_client).get_context(make_resource(kind="Pod"), RunCache())
        assert context == {}
        assert fake_client.list_calls == []

    def test_transport_error_propagates(self, fake_client, pvc):
        fake_client.fail("list_objects:v1/pods")
        with pytest.raises(TransportError):
            ContextProvider(fake_client).get_context(pvc, RunCache())


class TestContextHook:
    """Tests for the resource context hook."""

    def test_hook_facts_merged(self, fake_client, make_resource):
        provider = ContextProvider(fake_client, hook=lambda resource, cache: {"owner": "team-a"})
        assert provider.get_context(make_resource(), RunCache()) == {"owner": "team-a"}

    def test_hook_overwrites_builtin(self, fake_client, make_resource):
        provider = ContextProvider(fake_client, hook=lambda resource, cache: {PVC_NOT_MOUNTED: False})
        pvc = make_resource(kind="PersistentVolumeClaim", name="data")
        context = provider.get_context(pvc, RunCache())
        assert context[PVC_NOT_MOUNTED] is False
        assert context[PVC_NOT_REFERENCED] is True

    def test_hook_receives_run_cache(self, fake_client, make_resource):
        seen = []

        def hook(resource, cache):
            seen.append(cache)
            return {}

        cache = RunCache()
        ContextProvider(fake_client, hook=hook).get_context(make_resource(), cache)
        assert seen == [cache]
