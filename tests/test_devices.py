"""
Tests for the per-device registry

Devices past the cap are evicted least recently used first, but a device a
request is still holding, or whose engine is mid-call, stays registered so
its local storage is never driven by a second engine.
"""
import asyncio

import pytest

from conftest import V_PLAIN, FakeCartStore, make_variant
from storefront.schemas.user import Identity
from storefront.utils.devices import DeviceRegistry
from storefront.utils.local_storage import MemoryLocalStorage

DEV_A = "aaaaaaaa-aaaa-aaaa-aaaa-aaaaaaaaaaaa"
DEV_B = "bbbbbbbb-bbbb-bbbb-bbbb-bbbbbbbbbbbb"
DEV_C = "cccccccc-cccc-cccc-cccc-cccccccccccc"


class ClosingStore(FakeCartStore):
    def __init__(self):
        super().__init__([make_variant(V_PLAIN, 50)])
        self.closed = False

    async def aclose(self):
        self.closed = True


@pytest.fixture
def stores():
    return []


@pytest.fixture
def registry(stores):
    def store_factory():
        store = ClosingStore()
        stores.append(store)
        return store

    return DeviceRegistry(store_factory, storage_factory=lambda _: MemoryLocalStorage(), max_devices=1)


class TestEviction:
    async def test_least_recently_used_device_is_evicted(self, registry, stores):
        await registry.get(DEV_A)
        await registry.get(DEV_B)

        assert DEV_A not in registry
        assert DEV_B in registry
        assert len(registry) == 1
        assert stores[0].closed is True
        assert stores[1].closed is False

    async def test_same_device_is_reused(self, registry, stores):
        first = await registry.get(DEV_A)

        assert await registry.get(DEV_A) is first
        assert len(stores) == 1

    async def test_close_releases_every_store(self, registry, stores):
        await registry.get(DEV_A)

        await registry.close()

        assert len(registry) == 0
        assert all(s.closed for s in stores)


class TestDevicesInUse:
    async def test_leased_device_is_not_evicted(self, registry, stores):
        async with registry.lease(DEV_A) as held:
            await registry.get(DEV_B)

            assert DEV_A in registry
            assert len(registry) == 2
            assert held.store.closed is False

        assert held.leases == 0

    async def test_registry_shrinks_back_once_released(self, registry):
        async with registry.lease(DEV_A):
            await registry.get(DEV_B)

        await registry.get(DEV_C)

        assert len(registry) == 1
        assert DEV_C in registry

    async def test_lease_returns_the_live_device(self, registry):
        async with registry.lease(DEV_A) as first:
            async with registry.lease(DEV_A) as second:
                assert first is second
                assert first.leases == 2

    async def test_device_with_running_mutation_is_not_evicted(self, registry):
        device = await registry.get(DEV_A)
        await registry.sync_identity(device, None)
        device.store.hang.add("fetch_variants_with_product")

        task = asyncio.create_task(device.engine.add_item(V_PLAIN))
        await asyncio.sleep(0.01)
        assert device.in_use is True

        await registry.get(DEV_B)
        assert DEV_A in registry
        assert device.store.closed is False

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    async def test_identity_is_synced_on_leased_device(self, registry):
        alice = Identity(user_id="aaaaaaaa-0000-0000-0000-000000000001", email="alice@example.com")

        async with registry.lease(DEV_A) as device:
            await registry.sync_identity(device, alice)

            assert device.engine.state.value == "bound"
            assert device.store.cart_of(alice.user_id) == device.engine.cart_id
