#  -------------------------------------------------------------------------------------------
#  Copyright (c) Microsoft Corporation. All rights reserved.
#  Licensed under the MIT License (MIT). See LICENSE in the repo root for license information.
#  -------------------------------------------------------------------------------------------
from argparse import ArgumentParser
from pathlib import Path
from typing import List, Optional, Tuple

import param
import pytest

from automl_dsvm.argparsing import (
    apply_overrides,
    create_argparser,
    get_overridable_parameters,
    parse_args_and_update_config,
    parse_arguments,
    parse_bool,
)
from automl_dsvm.automl_config import AutoMLJobSettings
from automl_dsvm.compute import ComputeSettings
from automl_dsvm.runner import AutoMLRemoteConfig
from automl_dsvm.utils import GenericConfig


class ParamClass(GenericConfig):
    label: Optional[str] = param.String(None, allow_None=True, doc="Label")
    seed: int = param.Integer(42, doc="Seed")
    flag: bool = param.Boolean(False, doc="Flag")
    not_flag: bool = param.Boolean(True, doc="Not Flag")
    number: float = param.Number(3.14)
    optional_int: Optional[int] = param.Integer(None, allow_None=True, doc="Optional int")
    choice: str = param.Selector(default="a", objects=["a", "b"], doc="Choice")
    strings: List[str] = param.List(default=["some_string"], item_type=str)
    integers: List[int] = param.List(default=[], item_type=int)
    folder: Path = param.ClassSelector(class_=Path, default=Path("outputs"))
    readonly: str = param.String("Nope", readonly=True)
    _non_override: str = param.String("Nope")
    constant: str = param.String("Nope", constant=True)

    def validate(self) -> None:
        if self.seed < 0:
            raise ValueError("seed must not be negative")


@pytest.fixture(scope="module")
def parameterized_config_and_parser() -> Tuple[ParamClass, ArgumentParser]:
    parameterized_config = ParamClass()
    parser = create_argparser(parameterized_config)
    return parameterized_config, parser


@pytest.mark.fast
def test_parse_args() -> None:
    new_string_arg = "dummy_string"
    new_args = ["--string_param", new_string_arg, "--unknown=1"]
    parser = ArgumentParser()
    parser.add_argument("--string_param", type=str, default=None)
    parser_result = parse_arguments(parser, args=new_args)
    assert parser_result.args.get("string_param") == new_string_arg
    assert parser_result.unknown == ["--unknown=1"]
    with pytest.raises(ValueError, match="Unknown arguments"):
        parse_arguments(parser, args=new_args, fail_on_unknown_args=True)


@pytest.mark.fast
def test_get_overridable_parameters() -> None:
    overridable = get_overridable_parameters(ParamClass())
    assert "seed" in overridable
    assert "flag" in overridable
    for name in ["readonly", "constant", "_non_override"]:
        assert name not in overridable


@pytest.mark.fast
def test_parser_defaults(parameterized_config_and_parser: Tuple[ParamClass, ArgumentParser]) -> None:
    _, parser = parameterized_config_and_parser
    args = vars(parser.parse_args([]))
    assert args["seed"] == 42
    assert args["flag"] is False
    assert args["not_flag"] is True
    assert args["optional_int"] is None
    assert args["strings"] == ["some_string"]
    assert args["folder"] == Path("outputs")


@pytest.mark.parametrize(
    "args, field, expected",
    [
        (["--seed=7"], "seed", 7),
        (["--number=1.5"], "number", 1.5),
        (["--optional_int=3"], "optional_int", 3),
        (["--choice=b"], "choice", "b"),
        (["--strings=a,b"], "strings", ["a", "b"]),
        (["--integers=1,2,3"], "integers", [1, 2, 3]),
        (["--folder=foo/bar"], "folder", Path("foo/bar")),
        (["--flag"], "flag", True),
        (["--flag=false"], "flag", False),
        (["--no-not_flag"], "not_flag", False),
        (["--not_flag=no"], "not_flag", False),
    ],
)
@pytest.mark.fast
def test_parsing_succeeds(
    parameterized_config_and_parser: Tuple[ParamClass, ArgumentParser], args: List[str], field: str, expected: object
) -> None:
    _, parser = parameterized_config_and_parser
    parser_result = parse_arguments(parser, args=args, fail_on_unknown_args=True)
    assert parser_result.args[field] == expected


@pytest.mark.fast
def test_parsing_fails(parameterized_config_and_parser: Tuple[ParamClass, ArgumentParser]) -> None:
    _, parser = parameterized_config_and_parser
    with pytest.raises(SystemExit):
        parse_arguments(parser, args=["--seed=foo"])
    with pytest.raises(SystemExit):
        parse_arguments(parser, args=["--flag=maybe"])


@pytest.mark.parametrize("value", ["on", "t", "True", "y", "YES", "1"])
@pytest.mark.fast
def test_parse_bool_true(value: str) -> None:
    assert parse_bool(value) is True


@pytest.mark.parametrize("value", ["off", "f", "False", "n", "NO", "0"])
@pytest.mark.fast
def test_parse_bool_false(value: str) -> None:
    assert parse_bool(value) is False


@pytest.mark.fast
def test_parse_bool_invalid() -> None:
    with pytest.raises(ValueError, match="Invalid value maybe"):
        parse_bool("maybe")


@pytest.mark.fast
def test_parse_args_and_update_config() -> None:
    config = ParamClass()
    parse_args_and_update_config(config, ["--seed=1", "--label=foo", "--flag"])
    assert config.seed == 1
    assert config.label == "foo"
    assert config.flag
    # Validation runs after the overrides are applied
    with pytest.raises(ValueError, match="seed must not be negative"):
        parse_args_and_update_config(config, ["--seed=-1"])
    with pytest.raises(ValueError, match="Unknown arguments"):
        parse_args_and_update_config(config, ["--does_not_exist=1"])


@pytest.mark.fast
def test_apply_overrides() -> None:
    config = ParamClass()
    applied = apply_overrides(config, {"seed": 3, "readonly": "foo", "not_a_field": 1})
    assert applied == {"seed": 3}
    assert config.seed == 3
    assert config.readonly == "Nope"
    assert apply_overrides(config, None) == {}


@pytest.mark.fast
def test_generic_config_rejects_illegal_params() -> None:
    with pytest.raises(ValueError, match="cannot be overridden"):
        ParamClass(constant="abc")
    with pytest.raises(ValueError, match="do not exist"):
        ParamClass(throw_if_unknown_param=True, not_a_field=1)
    with pytest.raises(ValueError, match="seed must not be negative"):
        ParamClass(seed=-1)
    config = ParamClass(should_validate=False, seed=-1)
    assert config.seed == -1




@pytest.mark.fast
def test_overridable_parameters_come_from_the_class() -> None:
    config = ParamClass(seed=3)
    assert get_overridable_parameters(config).keys() == get_overridable_parameters(ParamClass()).keys()
    # The name parameter that every Parameterized object has is constant
    assert "name" not in get_overridable_parameters(config)
    assert config.seed == 3


@pytest.mark.fast
def test_settings_classes_can_be_constructed() -> None:
    """All settings classes must work with the installed version of param, including the subclass that combines
    compute and job settings."""
    for settings_class in [ComputeSettings, AutoMLJobSettings, AutoMLRemoteConfig]:
        settings = settings_class()
        assert isinstance(settings, GenericConfig)
    combined = AutoMLRemoteConfig(iterations=5, max_nodes=2, throw_if_unknown_param=True)
    assert combined.iterations == 5
    assert combined.max_nodes == 2
    overridable = get_overridable_parameters(combined)
    assert "compute_name" in overridable
    assert "primary_metric" in overridable
    assert "action" in overridable
