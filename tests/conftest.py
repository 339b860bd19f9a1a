"""Shared instruction builders and scenario programs"""
from types import SimpleNamespace

import pytest

from loopprobe.models import Instruction

EXTERNAL = 0x10000


def op(address):
    return Instruction(address)


def br(address, target):
    """Conditional direct branch"""
    return Instruction(address, is_direct_branch_or_call=True, direct_target=target)


def jmp(address, target):
    """Unconditional direct jump"""
    return Instruction(address, is_direct_branch_or_call=True, direct_target=target,
                       has_fall_through=False)


def call(address, target=EXTERNAL):
    return Instruction(address, is_direct_branch_or_call=True, direct_target=target,
                       is_call=True)


def ret(address):
    return Instruction(address, has_fall_through=False)


@pytest.fixture
def asm():
    return SimpleNamespace(op=op, br=br, jmp=jmp, call=call, ret=ret, EXTERNAL=EXTERNAL)


@pytest.fixture
def straight_line():
    """No branches at all"""
    return [op(0x00), op(0x04), ret(0x08)]


@pytest.fixture
def if_else():
    """
    B0 [0x00,0x04] -> B1 [0x08,0x0c] (then) / B2 [0x10] (else) -> B3 [0x14] (join)
    """
    return [
        op(0x00),
        br(0x04, 0x10),
        op(0x08),
        jmp(0x0c, 0x14),
        op(0x10),
        ret(0x14),
    ]


@pytest.fixture
def while_loop():
    """
    B0 [0x00] entry
    B1 [0x04,0x08] head, leaves to B5
    B2 [0x0c,0x10] body, may skip B3
    B3 [0x14] body
    B4 [0x18] tail, jumps back to B1
    B5 [0x1c] after the loop
    """
    return [
        op(0x00),
        op(0x04),
        br(0x08, 0x1c),
        op(0x0c),
        br(0x10, 0x18),
        op(0x14),
        jmp(0x18, 0x04),
        ret(0x1c),
    ]


@pytest.fixture
def shared_head():
    """
    Two back edges into B1 [0x04,0x08]: from B2 [0x0c,0x10] and B3 [0x14,0x18].
    B4 [0x1c] follows.
    """
    return [
        op(0x00),
        op(0x04),
        br(0x08, 0x14),
        op(0x0c),
        br(0x10, 0x04),
        op(0x14),
        br(0x18, 0x04),
        ret(0x1c),
    ]


@pytest.fixture
def unreachable_block():
    """B0 [0x00,0x04] jumps over B1 [0x08] straight to B2 [0x0c]"""
    return [
        op(0x00),
        jmp(0x04, 0x0c),
        op(0x08),
        ret(0x0c),
    ]


@pytest.fixture
def jump_into_loop():
    """
    B0 [0x00] branches into B2, bypassing the head B1 [0x04,0x08].
    B2 [0x0c,0x10] jumps back to B1. B3 [0x14] follows.
    """
    return [
        br(0x00, 0x0c),
        op(0x04),
        op(0x08),
        op(0x0c),
        br(0x10, 0x04),
        ret(0x14),
    ]
