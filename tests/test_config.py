"""
Configuration tests.
"""
import dataclasses

import pytest

from envreply.config import ABSENT, RESPONSE_VARIABLE, Configuration


def test_reads_the_response_variable():
    config = Configuration.FromEnv({"response": "hello", "other": "x"})

    assert RESPONSE_VARIABLE == "response"
    assert config.responseValue == "hello"
    assert config.isAbsent is False
    assert config.responseText == "hello"


def test_missing_variable_is_absent():
    config = Configuration.FromEnv({"RESPONSE": "wrong case"})

    assert config.responseValue is None
    assert config.isAbsent is True
    assert config.responseText == ABSENT


def test_reads_the_process_environment_once(monkeypatch):
    monkeypatch.setenv("response", "captured")
    config = Configuration.FromEnv()
    monkeypatch.setenv("response", "changed")

    assert config.responseValue == "captured"


def test_unset_process_environment(monkeypatch):
    monkeypatch.delenv("response", raising=False)

    assert Configuration.FromEnv().isAbsent


def test_configuration_is_immutable():
    config = Configuration("hello")

    with pytest.raises(dataclasses.FrozenInstanceError):
        config.responseValue = "other"  # type: ignore[misc]


def test_custom_variable_name():
    config = Configuration.FromEnv({"GREETING": "hi"}, name="GREETING")

    assert config.responseValue == "hi"
