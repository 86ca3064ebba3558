"""Tests for CodeAllocator batch generation and pool claims."""

from random import Random
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from inventory_kernel.domain.codes import SafeAlphabetFormat, default_format_chain
from inventory_kernel.domain.context import OrgContext
from inventory_kernel.domain.lifecycle import AllocationMode, CodeStatus
from inventory_kernel.exceptions import (
    CodeAlreadyUsedError,
    CodeNotFoundError,
    GenerationExhaustedError,
    InvalidQuantityError,
)
from inventory_kernel.models.code import Code
from inventory_kernel.services.code_allocator import CodeAllocator


class ConstantRandom(Random):
    """Always picks the first alphabet character: every code collides."""

    def choice(self, seq):
        return seq[0]


def _code_count(session, ctx) -> int:
    return session.scalar(
        select(func.count(Code.id)).where(Code.organization_id == ctx.organization_id)
    )


class TestAllocate:

    def test_allocates_n_distinct_codes_in_current_format(self, kernel, ctx):
        result = kernel.allocator.allocate(ctx, 50)
        assert len(result.codes) == 50
        assert len(set(result.values)) == 50
        fmt = SafeAlphabetFormat()
        assert all(fmt.matches(v) for v in result.values)
        assert all(c.format_version == "v2" for c in result.codes)

    def test_pooled_codes_are_available_under_one_batch(self, kernel, ctx):
        result = kernel.allocator.allocate(ctx, 3)
        assert {c.status for c in result.codes} == {CodeStatus.AVAILABLE.value}
        assert {c.batch_id for c in result.codes} == {result.batch_id}

    def test_immediate_codes_are_stored_used(self, kernel, ctx):
        result = kernel.allocator.allocate(ctx, 2, mode=AllocationMode.IMMEDIATE)
        assert {c.status for c in result.codes} == {CodeStatus.USED.value}

    def test_new_codes_never_repeat_existing_values(self, kernel, ctx):
        first = set(kernel.allocator.allocate(ctx, 100).values)
        second = set(kernel.allocator.allocate(ctx, 100).values)
        assert not first & second

    @pytest.mark.parametrize("n", [0, -3, 10_001])
    def test_batch_size_bounds(self, kernel, ctx, n):
        with pytest.raises(InvalidQuantityError):
            kernel.allocator.allocate(ctx, n)

    def test_exhausted_budget_persists_nothing(self, session, clock, ctx, captured_logs):
        allocator = CodeAllocator(session, clock, rng=ConstantRandom(), attempt_factor=3)
        with pytest.raises(GenerationExhaustedError) as exc_info:
            allocator.allocate(ctx, 2)
        err = exc_info.value
        assert err.requested == 2
        assert err.generated == 1
        assert err.attempts == 6
        assert _code_count(session, ctx) == 0
        assert any(r["message"] == "code_generation_exhausted" for r in captured_logs())

    def test_collision_with_existing_code_exhausts(self, session, clock, ctx):
        allocator = CodeAllocator(session, clock, rng=ConstantRandom())
        allocator.allocate(ctx, 1)
        with pytest.raises(GenerationExhaustedError):
            allocator.allocate(ctx, 1)
        assert _code_count(session, ctx) == 1

    def test_namespaces_are_per_organization(self, session, clock, ctx):
        allocator = CodeAllocator(session, clock, rng=ConstantRandom())
        other = OrgContext(organization_id=uuid4(), actor_id=ctx.actor_id)
        a = allocator.allocate(ctx, 1)
        b = allocator.allocate(other, 1)
        assert a.values == b.values

    def test_legacy_current_format(self, session, clock, ctx):
        allocator = CodeAllocator(
            session, clock, formats=default_format_chain("v1"), rng=Random(3),
        )
        result = allocator.allocate(ctx, 5)
        assert all(c.format_version == "v1" for c in result.codes)
        assert all(len(v) == 8 for v in result.values)


class TestClaim:

    def test_claim_marks_used(self, kernel, ctx, clock):
        value = kernel.allocator.allocate(ctx, 1).values[0]
        claim = kernel.allocator.claim(ctx, value)
        assert claim.value == value
        assert claim.used_at == clock.now()

    def test_second_claim_rejected(self, kernel, ctx):
        value = kernel.allocator.allocate(ctx, 1).values[0]
        kernel.allocator.claim(ctx, value)
        with pytest.raises(CodeAlreadyUsedError):
            kernel.allocator.claim(ctx, value)

    def test_unknown_code(self, kernel, ctx):
        with pytest.raises(CodeNotFoundError):
            kernel.allocator.claim(ctx, "XK7M2PQ9RA")
