"""Consistency of the program tables."""

from __future__ import annotations

import pytest
from solders.pubkey import Pubkey

from agent_registry.codec.encoder import encode_instruction, instruction_discriminator
from agent_registry.codec.schema import ANCHOR_ERROR_OFFSET, Pda, Value
from agent_registry.errors import ErrorKind, SchemaError
from agent_registry.programs import REGISTRY, get_program
from agent_registry.programs.identity import (
    IDENTITY,
    clamp_score,
    reward_multiplier,
    score_change,
    success_rate,
)

PROGRAMS = list(REGISTRY.values())


def test_registry_holds_four_programs():
    assert sorted(REGISTRY) == ["attestation", "capability", "consensus", "identity"]
    assert get_program("identity") is IDENTITY
    with pytest.raises(SchemaError):
        get_program("escrow")


@pytest.mark.parametrize("program", PROGRAMS, ids=lambda p: p.name)
def test_program_ids_are_valid_keys(program):
    assert set(program.program_ids) == {"devnet", "localhost"}
    for value in program.program_ids.values():
        Pubkey.from_string(value)


@pytest.mark.parametrize("program", PROGRAMS, ids=lambda p: p.name)
def test_pda_accounts_have_templates(program):
    for schema in program.instructions.values():
        names = set(schema.account_names)
        assert len(names) == len(schema.accounts), f"duplicate account in {schema.name}"
        for spec in schema.accounts:
            if spec.pda is None:
                continue
            template = program.seed_template(spec.pda)
            for part in template.parts:
                if isinstance(part, Pda):
                    program.seed_template(part.kind)


@pytest.mark.parametrize("program", PROGRAMS, ids=lambda p: p.name)
def test_account_kinds_map_to_layouts(program):
    for kind in program.account_kinds:
        assert kind in program.seeds
        layout = program.layout_for(kind)
        assert layout.space is not None and layout.space > 8


@pytest.mark.parametrize("program", PROGRAMS, ids=lambda p: p.name)
def test_limits_name_real_fields(program):
    field_names = {name for schema in program.instructions.values() for name in schema.field_names}
    assert set(program.limits) <= field_names


@pytest.mark.parametrize("program", PROGRAMS, ids=lambda p: p.name)
def test_discriminators_are_unique(program):
    tags = {instruction_discriminator(name) for name in program.instructions}
    assert len(tags) == len(program.instructions)


def test_error_numbering():
    table = IDENTITY.error_table
    assert table[ANCHOR_ERROR_OFFSET] == ("AgentIdTooLong", "Agent ID exceeds maximum length of 64 characters")
    assert table[6027][0] == "BidNotPending"
    assert len(table) == 28


def test_seed_params_are_declared():
    assert IDENTITY.seeds["identity"].params == ("agent_id",)
    assert IDENTITY.seeds["validation"].params == ("task_hash",)
    assert isinstance(IDENTITY.seeds["validation"].parts[1], Pda)
    assert isinstance(IDENTITY.seeds["bid"].parts[1], Value)


def test_no_argument_instruction_is_tag_only():
    schema = IDENTITY.instruction("deactivate_agent")
    assert encode_instruction(schema, []) == instruction_discriminator("deactivate_agent")


def test_unknown_instruction():
    with pytest.raises(SchemaError) as exc:
        IDENTITY.instruction("registerAgent")
    assert exc.value.kind == ErrorKind.UNKNOWN_INSTRUCTION
    assert "register_agent" in exc.value.diagnostics["known"]


@pytest.mark.parametrize(
    "successful,total,rate", [(0, 0, 100), (9, 10, 90), (1, 3, 33)]
)
def test_success_rate(successful, total, rate):
    assert success_rate(successful, total) == rate


def test_score_change_bands():
    assert score_change(95, True) == 100
    assert score_change(85, True) == 75
    assert score_change(75, True) == 50
    assert score_change(10, True) == 25
    assert score_change(40, False) == -150
    assert score_change(60, False) == -100
    assert score_change(95, False) == -50


def test_reward_multiplier_and_clamp():
    assert reward_multiplier(9500) == 5
    assert reward_multiplier(5000) == 1
    assert clamp_score(-10) == 0
    assert clamp_score(12000) == 10000
    assert clamp_score(5000) == 5000
