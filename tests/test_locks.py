"""Tests for the per-professional lock registry."""

import asyncio

from clinic_api.scheduling.locks import ProfessionalLockRegistry


async def test_same_professional_shares_a_lock():
    registry = ProfessionalLockRegistry()
    assert registry.get("a") is registry.get("a")
    assert registry.get("a") is not registry.get("b")


async def test_hold_serializes_critical_sections():
    registry = ProfessionalLockRegistry()
    inside = 0
    peak = 0

    async def critical():
        nonlocal inside, peak
        async with registry.hold("prof-1"):
            inside += 1
            peak = max(peak, inside)
            await asyncio.sleep(0)
            inside -= 1

    await asyncio.gather(*(critical() for _ in range(10)))
    assert peak == 1


async def test_different_professionals_run_concurrently():
    registry = ProfessionalLockRegistry()
    entered = asyncio.Event()

    async def first():
        async with registry.hold("prof-1"):
            await asyncio.wait_for(entered.wait(), timeout=1)

    async def second():
        async with registry.hold("prof-2"):
            entered.set()

    await asyncio.gather(first(), second())
